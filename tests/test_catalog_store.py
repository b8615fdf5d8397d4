import re

from db.catalog import CatalogStore, generate_id
from engine.auth_guard import Credential


def _store(tmp_path) -> CatalogStore:
    return CatalogStore(tmp_path / "catalog.sqlite")


def test_generate_id_is_unique_url_safe_string() -> None:
    ids = {generate_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(re.fullmatch(r"[0-9a-z]+", value) for value in ids)


def test_add_song_trims_and_persists(tmp_path) -> None:
    store = _store(tmp_path)
    song = store.add_song("  Trimmed Title  ", "  Trimmed lyrics  ")
    assert song["title"] == "Trimmed Title"
    assert song["lyrics"] == "Trimmed lyrics"
    assert song["createdAt"]
    assert "updatedAt" not in song
    assert store.get_song(song["id"]) == song
    assert CatalogStore(tmp_path / "catalog.sqlite").list_songs() == [song]


def test_add_song_requires_title_and_lyrics(tmp_path) -> None:
    store = _store(tmp_path)
    for title, lyrics in (("", "words"), ("Title", "   "), (None, None)):
        try:
            store.add_song(title, lyrics)
        except ValueError:
            continue
        raise AssertionError("expected ValueError")


def test_update_song_only_overwrites_given_fields(tmp_path) -> None:
    store = _store(tmp_path)
    song = store.add_song("Old", "Lyrics")
    updated = store.update_song(song["id"], title=" New ")
    assert updated["title"] == "New"
    assert updated["lyrics"] == "Lyrics"
    assert updated["updatedAt"]
    assert store.update_song("missing", title="x") is None


def test_delete_song_removes_it_from_lists(tmp_path) -> None:
    store = _store(tmp_path)
    first = store.add_song("First", "a")
    second = store.add_song("Second", "b")
    third = store.add_song("Third", "c")
    song_list = store.add_list("Mix", [third["id"], first["id"], second["id"]])

    assert store.delete_song(first["id"]) is True
    assert store.get_song(first["id"]) is None
    assert store.get_list(song_list["id"])["songIds"] == [third["id"], second["id"]]
    assert store.delete_song(first["id"]) is False


def test_lists_crud_preserves_song_order(tmp_path) -> None:
    store = _store(tmp_path)
    created = store.add_list("  Christmas Songs ", ["b", "a"], custom_order=True)
    assert created["name"] == "Christmas Songs"
    assert created["songIds"] == ["b", "a"]
    assert created["customOrder"] is True

    updated = store.update_list(created["id"], song_ids=["a"], custom_order=False)
    assert updated["songIds"] == ["a"]
    assert updated["customOrder"] is False
    assert updated["name"] == "Christmas Songs"
    assert [item["id"] for item in store.list_lists()] == [created["id"]]

    assert store.delete_list(created["id"]) is True
    assert store.get_list(created["id"]) is None
    assert store.delete_list(created["id"]) is False
    assert store.update_list("missing", name="x") is None


def test_add_list_requires_name(tmp_path) -> None:
    store = _store(tmp_path)
    try:
        store.add_list("   ")
    except ValueError as exc:
        assert "name" in str(exc)
    else:
        raise AssertionError("expected ValueError")
    assert store.add_list("Empty")["songIds"] == []


def test_credential_seed_and_save(tmp_path) -> None:
    store = _store(tmp_path)
    assert store.get_credential() is None
    seeded = store.ensure_credential("admin123")
    assert seeded == Credential(secret="admin123")
    assert store.ensure_credential("other") == seeded

    store.save_credential(Credential(secret="abc", salt="def"))
    assert store.get_credential() == Credential(secret="abc", salt="def")


def test_view_stats(tmp_path) -> None:
    store = _store(tmp_path)
    assert store.get_stats() == {"songViews": {}, "listViews": {}}
    store.record_song_view("song1")
    store.record_song_view("song1")
    store.record_list_view("list1")
    assert store.get_stats() == {"songViews": {"song1": 2}, "listViews": {"list1": 1}}
