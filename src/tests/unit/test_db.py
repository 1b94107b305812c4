"""Tests for database initialization."""

import pytest
from sqlalchemy import text

from devspaces.infra import close_db, get_engine, init_db


class TestInitDb:
    """Tests for init_db()."""

    async def test_creates_tables(self, tmp_path) -> None:
        engine = await init_db(f"sqlite+aiosqlite:///{tmp_path / 'db.sqlite'}")
        try:
            async with engine.connect() as conn:
                result = await conn.execute(
                    text("SELECT name FROM sqlite_master WHERE type='table'")
                )
                tables = {row[0] for row in result}
            assert {"users", "sessions", "workspaces"} <= tables
        finally:
            await close_db()

    async def test_wal_mode_enabled_for_file_db(self, tmp_path) -> None:
        engine = await init_db(f"sqlite+aiosqlite:///{tmp_path / 'wal.sqlite'}")
        try:
            async with engine.connect() as conn:
                journal_mode = (
                    await conn.execute(text("PRAGMA journal_mode"))
                ).scalar()
            assert journal_mode == "wal"
        finally:
            await close_db()

    async def test_close_resets_engine(self, tmp_path) -> None:
        await init_db(f"sqlite+aiosqlite:///{tmp_path / 'close.sqlite'}")
        await close_db()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
