"""Database helpers for Lyricshelf."""

from db.catalog import CatalogStore, generate_id

__all__ = ["CatalogStore", "generate_id"]
