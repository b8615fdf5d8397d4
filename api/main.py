#!/usr/bin/env python3
import base64
import io
import locale
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

import anyio
import qrcode
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from qrcode.image.pil import PilImage

from config.settings import (
    DEFAULT_ADMIN_PASSWORD,
    QR_BACK_COLOR,
    QR_BORDER,
    QR_BOX_SIZE,
    QR_FILL_COLOR,
)
from config.sites import SITE_DEFAULTS, deep_merge, generate_theme_css, get_site_by_path, load_site_configs
from db.catalog import CatalogStore
from engine.auth_guard import LoginRateLimiter, verify_password
from engine.paths import build_app_paths, ensure_dir, resolve_data_file
from engine.search_engine import filter_and_sort
from engine.search_normalization import sort_songs

APP_NAME = "Lyricshelf API"


class LoginPayload(BaseModel):
    password: str = ""


class SongPayload(BaseModel):
    title: Optional[str] = None
    lyrics: Optional[str] = None


class SongListPayload(BaseModel):
    name: Optional[str] = None
    songIds: Optional[list[str]] = None
    customOrder: Optional[bool] = None


def _setup_logging(log_dir):
    ensure_dir(log_dir)
    root = logging.getLogger("")
    log_path = os.path.join(log_dir, "lyricshelf.log")
    root.setLevel(logging.INFO)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(logging.INFO)
    root.addHandler(file_handler)


def _setup_collation():
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error:
        logging.warning("Environment collation locale unavailable; falling back to the C locale")


def _select_site(sites, site_id):
    if site_id:
        if site_id in sites:
            return sites[site_id]
        logging.error("Unknown site %r; falling back to the root site", site_id)
    site = get_site_by_path(sites, "/")
    return site if site is not None else deep_merge(SITE_DEFAULTS, {})


def _client_identifier(request: Request) -> str:
    client = request.client
    return client.host if client and client.host else "unknown"


def _require_feature(name):
    if not app.state.site.get("features", {}).get(name, True):
        raise HTTPException(status_code=404, detail="Not found")


def _site_url(request: Request, suffix: str) -> str:
    base = str(request.base_url).rstrip("/")
    return f"{base}{app.state.site.get('basePath', '')}/{suffix}"


def _render_qr_data_url(url: str) -> str:
    qr = qrcode.QRCode(box_size=QR_BOX_SIZE, border=QR_BORDER)
    qr.add_data(url)
    qr.make(fit=True)
    image = qr.make_image(image_factory=PilImage, fill_color=QR_FILL_COLOR, back_color=QR_BACK_COLOR)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


async def startup():
    paths = build_app_paths()
    _setup_logging(paths.log_dir)
    _setup_collation()
    app.state.paths = paths
    app.state.sites = load_site_configs(paths.sites_dir)
    app.state.site = _select_site(app.state.sites, paths.site_id)
    db_path = paths.db_path or resolve_data_file(app.state.site["dbFile"], paths.data_dir)
    app.state.store = CatalogStore(db_path)
    app.state.default_admin_password = os.environ.get("LYRICSHELF_ADMIN_PASSWORD") or DEFAULT_ADMIN_PASSWORD
    app.state.store.ensure_credential(app.state.default_admin_password)
    app.state.rate_limiter = LoginRateLimiter()
    logging.info("Serving site %s from %s", app.state.site["id"], db_path)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await startup()
    yield


app = FastAPI(
    title=APP_NAME,
    description="Lyricshelf API for song catalogs, curated lists, and lyric search.",
    lifespan=lifespan,
)


# ============ AUTH ROUTES ============

@app.post("/api/auth/login")
async def login(payload: LoginPayload, request: Request):
    _require_feature("admin")
    limiter = app.state.rate_limiter
    identifier = _client_identifier(request)
    # The attempt is counted before verification so parallel guesses cannot outrun the lockout.
    limit = limiter.reserve(identifier)
    if not limit.allowed:
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": f"Too many login attempts. Try again in {limit.remaining_minutes} minutes.",
                "retryAfterMinutes": limit.remaining_minutes,
            },
            headers={"Retry-After": str(limit.remaining_minutes * 60)},
        )

    store = app.state.store
    credential = store.ensure_credential(app.state.default_admin_password)
    result = await anyio.to_thread.run_sync(verify_password, payload.password, credential)
    if not result.valid:
        logging.warning("Failed admin login from %s", identifier)
        return JSONResponse(status_code=401, content={"success": False, "error": "Invalid password"})

    limiter.clear(identifier)
    if result.migrated_credential is not None:
        try:
            store.save_credential(result.migrated_credential)
            logging.info("Admin credential migrated to salted hash")
        except Exception:
            # The stored credential stays plain text and migrates again on the next login.
            logging.exception("Failed to persist migrated admin credential")
    # Informational only; no route checks the token.
    return {"success": True, "token": f"admin-token-{uuid4().hex}"}


# ============ SONG ROUTES ============

@app.get("/api/songs")
async def list_songs():
    return sort_songs(app.state.store.list_songs())


@app.get("/api/songs/{song_id}")
async def get_song(song_id: str):
    song = app.state.store.get_song(song_id)
    if song is None:
        raise HTTPException(status_code=404, detail="Song not found")
    if app.state.site["features"].get("statistics"):
        app.state.store.record_song_view(song_id)
    return song


@app.post("/api/songs", status_code=201)
async def create_song(payload: SongPayload):
    if not payload.title or not payload.lyrics:
        raise HTTPException(status_code=400, detail="Title and lyrics are required")
    try:
        return app.state.store.add_song(payload.title, payload.lyrics)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.put("/api/songs/{song_id}")
async def update_song(song_id: str, payload: SongPayload):
    song = app.state.store.update_song(song_id, title=payload.title, lyrics=payload.lyrics)
    if song is None:
        raise HTTPException(status_code=404, detail="Song not found")
    return song


@app.delete("/api/songs/{song_id}")
async def delete_song(song_id: str):
    if not app.state.store.delete_song(song_id):
        raise HTTPException(status_code=404, detail="Song not found")
    return {"success": True}


# ============ LIST ROUTES ============

@app.get("/api/lists")
async def list_lists():
    return app.state.store.list_lists()


@app.get("/api/lists/{list_id}")
async def get_list(list_id: str):
    store = app.state.store
    song_list = store.get_list(list_id)
    if song_list is None:
        raise HTTPException(status_code=404, detail="List not found")
    songs_by_id = {song["id"]: song for song in store.list_songs()}
    songs = [songs_by_id[song_id] for song_id in song_list["songIds"] if song_id in songs_by_id]
    if not song_list["customOrder"]:
        songs = sort_songs(songs)
    if app.state.site["features"].get("statistics"):
        store.record_list_view(list_id)
    return {**song_list, "songs": songs}


@app.post("/api/lists", status_code=201)
async def create_list(payload: SongListPayload):
    if not payload.name:
        raise HTTPException(status_code=400, detail="List name is required")
    try:
        return app.state.store.add_list(
            payload.name,
            payload.songIds or [],
            custom_order=bool(payload.customOrder),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.put("/api/lists/{list_id}")
async def update_list(list_id: str, payload: SongListPayload):
    song_list = app.state.store.update_list(
        list_id,
        name=payload.name,
        song_ids=payload.songIds,
        custom_order=payload.customOrder,
    )
    if song_list is None:
        raise HTTPException(status_code=404, detail="List not found")
    return song_list


@app.delete("/api/lists/{list_id}")
async def delete_list(list_id: str):
    if not app.state.store.delete_list(list_id):
        raise HTTPException(status_code=404, detail="List not found")
    return {"success": True}


# ============ SEARCH ROUTE ============

@app.get("/api/search")
async def search(q: Optional[str] = None, listId: Optional[str] = None):
    _require_feature("search")
    store = app.state.store
    contains = None
    if listId:
        song_list = store.get_list(listId)
        if song_list is not None:
            member_ids = set(song_list["songIds"])
            contains = lambda song: song["id"] in member_ids  # noqa: E731
    return filter_and_sort(store.list_songs(), q, contains)


# ============ QR CODE ROUTE ============

@app.get("/api/qr/{target}")
async def share_qr(target: str, request: Request):
    _require_feature("qrCodes")
    if target == "home":
        url = _site_url(request, "")
    elif target == "catalog":
        url = _site_url(request, "catalog.html")
    else:
        song_list = app.state.store.get_list(target)
        if song_list is None:
            raise HTTPException(status_code=404, detail="List not found")
        url = _site_url(request, f"list.html?id={song_list['id']}")
    try:
        qr_code = await anyio.to_thread.run_sync(_render_qr_data_url, url)
    except Exception:
        logging.exception("Failed to generate QR code for %s", url)
        raise HTTPException(status_code=500, detail="Failed to generate QR code")
    return {"qrCode": qr_code, "url": url}


# ============ STATS & SITE ROUTES ============

@app.get("/api/stats")
async def stats():
    _require_feature("statistics")
    return app.state.store.get_stats()


@app.get("/api/site")
async def site_config():
    return app.state.site


@app.get("/api/site/theme.css", response_class=PlainTextResponse)
async def site_theme():
    return PlainTextResponse(generate_theme_css(app.state.site.get("theme")), media_type="text/css")


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("LYRICSHELF_HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "3000"))
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
