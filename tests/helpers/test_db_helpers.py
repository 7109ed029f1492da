"""Tests for database helper functions."""

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from sqlalchemy import inspect

from stayer_keeper.helpers.db import create_session_factory, create_tables
from stayer_keeper.helpers.db_mixins import as_utc, utc_now


class TestCreateSessionFactory:
    """Tests for create_session_factory and create_tables."""

    @pytest.mark.asyncio
    async def test_creates_sqlite_parent_directory(self, tmp_path: Path) -> None:
        """Test that a missing data directory is created."""
        db_path = tmp_path / "nested" / "data" / "keeper.db"

        engine, _ = create_session_factory(f"sqlite+aiosqlite:///{db_path}")
        try:
            assert db_path.parent.is_dir()
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_memory_database_needs_no_directory(self) -> None:
        """Test in-memory SQLite URLs are accepted."""
        engine, _ = create_session_factory("sqlite+aiosqlite:///:memory:")
        try:
            assert engine.url.database == ":memory:"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_create_tables_registers_keeper_tables(self, tmp_path: Path) -> None:
        """Test that both keeper tables are created."""
        engine, _ = create_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'k.db'}")
        try:
            await create_tables(engine)
            await create_tables(engine)

            async with engine.connect() as conn:
                tables = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).get_table_names()
                )
        finally:
            await engine.dispose()

        assert "pending_operations" in tables
        assert "unbonding_records" in tables


class TestTimestampHelpers:
    """Tests for the UTC helpers used by TimestampMixin."""

    def test_utc_now_is_aware(self) -> None:
        """Test that utc_now carries tzinfo."""
        assert utc_now().tzinfo is UTC

    def test_as_utc_attaches_zone_to_naive(self) -> None:
        """Test naive SQLite values are read as UTC."""
        naive = datetime(2025, 1, 1, 12, 0)

        assert as_utc(naive) == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def test_as_utc_converts_other_zones(self) -> None:
        """Test aware values are converted to UTC."""
        plus_two = datetime(2025, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        assert as_utc(plus_two) == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
        assert as_utc(plus_two).tzinfo is UTC
