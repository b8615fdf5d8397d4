"""SQLite migrations for the song catalog."""

from __future__ import annotations

import sqlite3


def ensure_catalog_tables(conn: sqlite3.Connection) -> None:
    """Ensure catalog tables and indexes exist."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS songs (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            lyrics TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS song_lists (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            custom_order INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS song_list_items (
            list_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            song_id TEXT NOT NULL,
            FOREIGN KEY (list_id) REFERENCES song_lists(id) ON DELETE CASCADE,
            PRIMARY KEY (list_id, position)
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_song_list_items_song "
        "ON song_list_items (song_id)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS admin_credential (
            id INTEGER PRIMARY KEY,
            secret TEXT NOT NULL,
            salt TEXT,
            updated_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS view_stats (
            kind TEXT NOT NULL,
            item_id TEXT NOT NULL,
            views INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (kind, item_id)
        )
        """
    )
    conn.commit()
