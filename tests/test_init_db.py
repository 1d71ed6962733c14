"""Tests for the migration entry point helpers."""

from reconciler.db.base import normalize_database_url
from reconciler.db.init_db import _display_url


def test_display_url_masks_password():
    assert _display_url("postgresql://shop:hunter2@db:5432/shop") == "postgresql://shop:****@db:5432/shop"
    assert _display_url("sqlite+aiosqlite:///reconciler.db") == "sqlite+aiosqlite:///reconciler.db"


def test_normalize_database_url():
    assert normalize_database_url("postgresql://db/shop") == "postgresql+asyncpg://db/shop"
    assert normalize_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"
