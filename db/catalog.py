"""SQLite persistence for songs, song lists, the admin credential, and view counts."""

from __future__ import annotations

import logging
import secrets
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from db.migrations import ensure_catalog_tables
from engine.auth_guard import Credential

logger = logging.getLogger(__name__)

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """Millisecond timestamp plus a random suffix, both base-36."""
    return _to_base36(int(time.time() * 1000)) + _to_base36(secrets.randbits(52))


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _song_from_row(row: sqlite3.Row) -> dict[str, Any]:
    song = {
        "id": row["id"],
        "title": row["title"],
        "lyrics": row["lyrics"],
        "createdAt": row["created_at"],
    }
    if row["updated_at"]:
        song["updatedAt"] = row["updated_at"]
    return song


class CatalogStore:
    """Song catalog backed by a single SQLite file."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        conn = self._connect()
        try:
            ensure_catalog_tables(conn)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # Songs

    def list_songs(self) -> list[dict[str, Any]]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM songs ORDER BY created_at ASC, rowid ASC").fetchall()
            return [_song_from_row(row) for row in rows]
        finally:
            conn.close()

    def get_song(self, song_id: str) -> Optional[dict[str, Any]]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM songs WHERE id=?", (song_id,)).fetchone()
            return _song_from_row(row) if row else None
        finally:
            conn.close()

    def add_song(self, title: str, lyrics: str) -> dict[str, Any]:
        clean_title = str(title or "").strip()
        clean_lyrics = str(lyrics or "").strip()
        if not clean_title or not clean_lyrics:
            raise ValueError("Title and lyrics are required")
        song_id = generate_id()
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO songs (id, title, lyrics, created_at) VALUES (?, ?, ?, ?)",
                (song_id, clean_title, clean_lyrics, _utc_now()),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM songs WHERE id=?", (song_id,)).fetchone()
        finally:
            conn.close()
        logger.info("Added song %s (%s)", song_id, clean_title)
        return _song_from_row(row)

    def update_song(
        self,
        song_id: str,
        *,
        title: Optional[str] = None,
        lyrics: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """Overwrite only the provided non-empty fields; returns ``None`` for an unknown id."""
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM songs WHERE id=?", (song_id,)).fetchone()
            if row is None:
                return None
            new_title = title.strip() if title else row["title"]
            new_lyrics = lyrics.strip() if lyrics else row["lyrics"]
            conn.execute(
                "UPDATE songs SET title=?, lyrics=?, updated_at=? WHERE id=?",
                (new_title, new_lyrics, _utc_now(), song_id),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM songs WHERE id=?", (song_id,)).fetchone()
            return _song_from_row(row)
        finally:
            conn.close()

    def delete_song(self, song_id: str) -> bool:
        """Delete a song and drop it from every list, keeping the remaining order."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("DELETE FROM songs WHERE id=?", (song_id,))
            if cur.rowcount == 0:
                conn.rollback()
                return False
            affected = [
                row["list_id"]
                for row in cur.execute(
                    "SELECT DISTINCT list_id FROM song_list_items WHERE song_id=?", (song_id,)
                ).fetchall()
            ]
            for list_id in affected:
                remaining = [
                    row["song_id"]
                    for row in cur.execute(
                        "SELECT song_id FROM song_list_items WHERE list_id=? ORDER BY position ASC",
                        (list_id,),
                    ).fetchall()
                    if row["song_id"] != song_id
                ]
                self._replace_items(cur, list_id, remaining)
            conn.commit()
        finally:
            conn.close()
        logger.info("Deleted song %s (removed from %d lists)", song_id, len(affected))
        return True

    # Lists

    @staticmethod
    def _replace_items(cur: sqlite3.Cursor, list_id: str, song_ids: list[str]) -> None:
        cur.execute("DELETE FROM song_list_items WHERE list_id=?", (list_id,))
        cur.executemany(
            "INSERT INTO song_list_items (list_id, position, song_id) VALUES (?, ?, ?)",
            [(list_id, position, str(song_id)) for position, song_id in enumerate(song_ids)],
        )

    def _list_from_row(self, conn: sqlite3.Connection, row: sqlite3.Row) -> dict[str, Any]:
        song_ids = [
            item["song_id"]
            for item in conn.execute(
                "SELECT song_id FROM song_list_items WHERE list_id=? ORDER BY position ASC",
                (row["id"],),
            ).fetchall()
        ]
        payload = {
            "id": row["id"],
            "name": row["name"],
            "songIds": song_ids,
            "customOrder": bool(row["custom_order"]),
            "createdAt": row["created_at"],
        }
        if row["updated_at"]:
            payload["updatedAt"] = row["updated_at"]
        return payload

    def list_lists(self) -> list[dict[str, Any]]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM song_lists ORDER BY created_at ASC, rowid ASC").fetchall()
            return [self._list_from_row(conn, row) for row in rows]
        finally:
            conn.close()

    def get_list(self, list_id: str) -> Optional[dict[str, Any]]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM song_lists WHERE id=?", (list_id,)).fetchone()
            return self._list_from_row(conn, row) if row else None
        finally:
            conn.close()

    def add_list(
        self,
        name: str,
        song_ids: Optional[list[str]] = None,
        *,
        custom_order: bool = False,
    ) -> dict[str, Any]:
        clean_name = str(name or "").strip()
        if not clean_name:
            raise ValueError("List name is required")
        list_id = generate_id()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                "INSERT INTO song_lists (id, name, custom_order, created_at) VALUES (?, ?, ?, ?)",
                (list_id, clean_name, int(bool(custom_order)), _utc_now()),
            )
            self._replace_items(cur, list_id, list(song_ids or []))
            conn.commit()
            row = conn.execute("SELECT * FROM song_lists WHERE id=?", (list_id,)).fetchone()
            return self._list_from_row(conn, row)
        finally:
            conn.close()

    def update_list(
        self,
        list_id: str,
        *,
        name: Optional[str] = None,
        song_ids: Optional[list[str]] = None,
        custom_order: Optional[bool] = None,
    ) -> Optional[dict[str, Any]]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            row = cur.execute("SELECT * FROM song_lists WHERE id=?", (list_id,)).fetchone()
            if row is None:
                return None
            new_name = name.strip() if name else row["name"]
            new_order = row["custom_order"] if custom_order is None else int(bool(custom_order))
            cur.execute(
                "UPDATE song_lists SET name=?, custom_order=?, updated_at=? WHERE id=?",
                (new_name, new_order, _utc_now(), list_id),
            )
            if song_ids is not None:
                self._replace_items(cur, list_id, list(song_ids))
            conn.commit()
            row = conn.execute("SELECT * FROM song_lists WHERE id=?", (list_id,)).fetchone()
            return self._list_from_row(conn, row)
        finally:
            conn.close()

    def delete_list(self, list_id: str) -> bool:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM song_lists WHERE id=?", (list_id,))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    # Admin credential

    def get_credential(self) -> Optional[Credential]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT secret, salt FROM admin_credential WHERE id=1").fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return Credential(secret=row["secret"], salt=row["salt"] or None)

    def save_credential(self, credential: Credential) -> None:
        """Upsert the single credential row using fixed key ``id=1``."""
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO admin_credential (id, secret, salt, updated_at)
                VALUES (1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    secret=excluded.secret,
                    salt=excluded.salt,
                    updated_at=excluded.updated_at
                """,
                (credential.secret, credential.salt, _utc_now()),
            )
            conn.commit()
        finally:
            conn.close()

    def ensure_credential(self, default_password: str) -> Credential:
        existing = self.get_credential()
        if existing is not None:
            return existing
        credential = Credential(secret=default_password)
        self.save_credential(credential)
        logger.warning("No admin credential found; seeded the default password. Change it before deploying.")
        return credential

    # View statistics

    def _record_view(self, kind: str, item_id: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO view_stats (kind, item_id, views) VALUES (?, ?, 1)
                ON CONFLICT(kind, item_id) DO UPDATE SET views = views + 1
                """,
                (kind, item_id),
            )
            conn.commit()
        finally:
            conn.close()

    def record_song_view(self, song_id: str) -> None:
        self._record_view("song", song_id)

    def record_list_view(self, list_id: str) -> None:
        self._record_view("list", list_id)

    def get_stats(self) -> dict[str, dict[str, int]]:
        stats: dict[str, dict[str, int]] = {"songViews": {}, "listViews": {}}
        conn = self._connect()
        try:
            rows = conn.execute("SELECT kind, item_id, views FROM view_stats").fetchall()
        finally:
            conn.close()
        for row in rows:
            bucket = "songViews" if row["kind"] == "song" else "listViews"
            stats[bucket][row["item_id"]] = int(row["views"])
        return stats
