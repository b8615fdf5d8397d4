from __future__ import annotations

import importlib
import json

import anyio
import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient
import httpx


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("LYRICSHELF_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LYRICSHELF_ADMIN_PASSWORD", "testpass123")
    monkeypatch.delenv("LYRICSHELF_DB_PATH", raising=False)
    monkeypatch.delenv("LYRICSHELF_LOG_DIR", raising=False)
    monkeypatch.delenv("LYRICSHELF_SITE", raising=False)
    monkeypatch.delenv("LYRICSHELF_SITES_DIR", raising=False)
    module = importlib.import_module("api.main")
    with TestClient(module.app) as test_client:
        yield test_client


def _seed(client: TestClient) -> dict[str, str]:
    ids = {}
    for key, title, lyrics in (
        ("song1", "Apple Tree Wassail", "Old apple tree we wassail thee"),
        ("song2", "The Bells of Norwich", "All shall be well"),
        ("song3", "Chariots", "Swing low\nsweet chariots"),
    ):
        response = client.post("/api/songs", json={"title": title, "lyrics": lyrics})
        assert response.status_code == 201
        ids[key] = response.json()["id"]
    response = client.post(
        "/api/lists",
        json={"name": "Christmas Songs", "songIds": [ids["song3"], ids["song1"]]},
    )
    ids["list1"] = response.json()["id"]
    return ids


def _titles(response) -> list[str]:
    return [song["title"] for song in response.json()]


def test_songs_are_returned_library_sorted(client) -> None:
    _seed(client)
    response = client.get("/api/songs")
    assert response.status_code == 200
    assert _titles(response) == ["Apple Tree Wassail", "The Bells of Norwich", "Chariots"]


def test_songs_with_accented_titles_sort_beside_base_letter(client) -> None:
    for title in ("Zebra", "Éire", "Fields"):
        client.post("/api/songs", json={"title": title, "lyrics": "la la"})
    assert _titles(client.get("/api/songs")) == ["Éire", "Fields", "Zebra"]


def test_song_crud(client) -> None:
    ids = _seed(client)
    assert client.get(f"/api/songs/{ids['song1']}").json()["title"] == "Apple Tree Wassail"
    assert client.get("/api/songs/nonexistent").status_code == 404

    assert client.post("/api/songs", json={"lyrics": "x"}).status_code == 400
    assert client.post("/api/songs", json={"title": "x"}).status_code == 400

    updated = client.put(f"/api/songs/{ids['song1']}", json={"title": "Updated Title"})
    assert updated.status_code == 200
    assert updated.json()["title"] == "Updated Title"
    assert updated.json()["updatedAt"]
    assert client.put("/api/songs/nonexistent", json={"title": "x"}).status_code == 404

    deleted = client.delete(f"/api/songs/{ids['song1']}")
    assert deleted.json() == {"success": True}
    assert client.get(f"/api/songs/{ids['song1']}").status_code == 404
    assert ids["song1"] not in client.get(f"/api/lists/{ids['list1']}").json()["songIds"]
    assert client.delete("/api/songs/nonexistent").status_code == 404


def test_list_songs_sorted_unless_custom_order(client) -> None:
    ids = _seed(client)
    response = client.get(f"/api/lists/{ids['list1']}")
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Christmas Songs"
    assert [song["title"] for song in body["songs"]] == ["Apple Tree Wassail", "Chariots"]

    client.put(f"/api/lists/{ids['list1']}", json={"customOrder": True})
    body = client.get(f"/api/lists/{ids['list1']}").json()
    assert [song["title"] for song in body["songs"]] == ["Chariots", "Apple Tree Wassail"]
    assert client.get("/api/lists/nonexistent").status_code == 404


def test_list_crud(client) -> None:
    ids = _seed(client)
    assert client.post("/api/lists", json={"songIds": []}).status_code == 400
    empty = client.post("/api/lists", json={"name": "New List"})
    assert empty.status_code == 201
    assert empty.json()["songIds"] == []

    renamed = client.put(f"/api/lists/{ids['list1']}", json={"songIds": [ids["song2"]]})
    assert renamed.json()["songIds"] == [ids["song2"]]
    assert client.put("/api/lists/nonexistent", json={"name": "x"}).status_code == 404

    assert client.delete(f"/api/lists/{ids['list1']}").json() == {"success": True}
    assert client.delete(f"/api/lists/{ids['list1']}").status_code == 404
    assert [item["name"] for item in client.get("/api/lists").json()] == ["New List"]


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("apple", ["Apple Tree Wassail"]),
        ("wassail", ["Apple Tree Wassail"]),
        ("chariot", ["Chariots"]),
        ('"All shall be well"', ["The Bells of Norwich"]),
        ('"Swing low sweet"', ["Chariots"]),
        ("xyznonexistent", []),
    ],
)
def test_search(client, query, expected) -> None:
    _seed(client)
    response = client.get("/api/search", params={"q": query})
    assert response.status_code == 200
    assert _titles(response) == expected


def test_search_without_query_and_with_list_filter(client) -> None:
    ids = _seed(client)
    assert len(client.get("/api/search").json()) == 3
    assert _titles(client.get("/api/search", params={"listId": ids["list1"]})) == [
        "Apple Tree Wassail",
        "Chariots",
    ]
    assert _titles(client.get("/api/search", params={"q": "apple", "listId": ids["list1"]})) == [
        "Apple Tree Wassail"
    ]
    assert len(client.get("/api/search", params={"listId": "missing"}).json()) == 3


def test_qr_codes(client) -> None:
    ids = _seed(client)
    response = client.get(f"/api/qr/{ids['list1']}")
    assert response.status_code == 200
    assert response.json()["qrCode"].startswith("data:image/png;base64,")
    assert response.json()["url"].endswith(f"list.html?id={ids['list1']}")
    assert client.get("/api/qr/catalog").json()["url"].endswith("/catalog.html")
    assert client.get("/api/qr/home").json()["url"].endswith("/")
    assert client.get("/api/qr/nonexistent").status_code == 404


def test_login_accepts_and_rejects(client) -> None:
    ok = client.post("/api/auth/login", json={"password": "testpass123"})
    assert ok.status_code == 200
    assert ok.json()["success"] is True
    assert ok.json()["token"]

    bad = client.post("/api/auth/login", json={"password": "wrongpassword"})
    assert bad.status_code == 401
    assert bad.json() == {"success": False, "error": "Invalid password"}


def test_login_rate_limited_after_max_attempts(client) -> None:
    for _ in range(5):
        client.post("/api/auth/login", json={"password": "wrongpassword"})
    response = client.post("/api/auth/login", json={"password": "testpass123"})
    assert response.status_code == 429
    assert response.json()["success"] is False
    assert response.json()["retryAfterMinutes"] > 0


def test_concurrent_bad_logins_cannot_exceed_lockout(client) -> None:
    codes = []

    async def attempt(http: httpx.AsyncClient) -> None:
        response = await http.post("/api/auth/login", json={"password": "wrongpassword"})
        codes.append(response.status_code)

    async def main() -> None:
        transport = httpx.ASGITransport(app=client.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            async with anyio.create_task_group() as tg:
                for _ in range(20):
                    tg.start_soon(attempt, http)

    anyio.run(main)

    assert len(codes) == 20
    assert codes.count(401) == 5
    assert codes.count(429) == 15


def test_login_success_clears_failed_attempts(client) -> None:
    for _ in range(4):
        client.post("/api/auth/login", json={"password": "wrongpassword"})
    assert client.post("/api/auth/login", json={"password": "testpass123"}).status_code == 200
    for _ in range(4):
        client.post("/api/auth/login", json={"password": "wrongpassword"})
    assert client.post("/api/auth/login", json={"password": "testpass123"}).status_code == 200


def test_login_migrates_plain_text_password(client) -> None:
    store = client.app.state.store
    assert store.get_credential().salt is None

    assert client.post("/api/auth/login", json={"password": "testpass123"}).status_code == 200
    credential = store.get_credential()
    assert credential.salt
    assert credential.secret != "testpass123"

    client.app.state.rate_limiter.reset()
    response = client.post("/api/auth/login", json={"password": "testpass123"})
    assert response.status_code == 200
    assert store.get_credential() == credential


def test_stats_and_site_endpoints(client) -> None:
    ids = _seed(client)
    client.get(f"/api/songs/{ids['song2']}")
    client.get(f"/api/lists/{ids['list1']}")
    stats = client.get("/api/stats").json()
    assert stats == {"songViews": {ids["song2"]: 1}, "listViews": {ids["list1"]: 1}}

    site = client.get("/api/site").json()
    assert site["id"] == "pubsongs"
    theme = client.get("/api/site/theme.css")
    assert theme.headers["content-type"].startswith("text/css")
    assert "--primary-color" in theme.text


def test_disabled_features_return_404(tmp_path, monkeypatch) -> None:
    sites_dir = tmp_path / "sites"
    sites_dir.mkdir()
    (sites_dir / "quiet.json").write_text(
        json.dumps({"id": "quiet", "features": {"search": False, "qrCodes": False, "statistics": False}}),
        encoding="utf-8",
    )
    monkeypatch.setenv("LYRICSHELF_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LYRICSHELF_SITES_DIR", str(sites_dir))
    monkeypatch.delenv("LYRICSHELF_DB_PATH", raising=False)
    monkeypatch.delenv("LYRICSHELF_LOG_DIR", raising=False)
    monkeypatch.delenv("LYRICSHELF_SITE", raising=False)
    module = importlib.import_module("api.main")
    with TestClient(module.app) as quiet_client:
        assert quiet_client.get("/api/search").status_code == 404
        assert quiet_client.get("/api/qr/home").status_code == 404
        assert quiet_client.get("/api/stats").status_code == 404
        assert quiet_client.get("/api/songs").status_code == 200
