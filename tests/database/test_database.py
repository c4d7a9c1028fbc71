"""Tests for database lifecycle and connection handling."""

import pytest

from modrelay.database.database import Database
from modrelay.database.db_connection import ConnectionManager
from modrelay.errors import StoreUnavailable


@pytest.mark.asyncio
async def test_initialize_creates_tables(test_db):
    async with test_db.connection.read() as conn:
        cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in await cursor.fetchall()}
    assert {"banned_users", "messages", "schema_version"} <= tables


@pytest.mark.asyncio
async def test_initialize_sets_schema_version(test_db):
    async with test_db.connection.read() as conn:
        cursor = await conn.execute("SELECT version FROM schema_version")
        row = await cursor.fetchone()
    assert row[0] == 1


@pytest.mark.asyncio
async def test_initialize_is_idempotent(test_db):
    await test_db.initialize()
    assert test_db.initialized


@pytest.mark.asyncio
async def test_data_survives_reopen(tmp_path):
    path = tmp_path / "persist.db"
    db = Database(path)
    await db.initialize()
    await db.bans.insert("a" * 64, "1234", "U1", "spam")
    await db.shutdown()

    reopened = Database(path)
    await reopened.initialize()
    try:
        ban = await reopened.bans.lookup_by_case_id("1234")
        assert ban is not None and ban.reason == "spam"
    finally:
        await reopened.shutdown()


@pytest.mark.asyncio
async def test_store_unavailable_when_not_open(tmp_path):
    db = Database(tmp_path / "never-opened.db")

    with pytest.raises(StoreUnavailable):
        await db.bans.lookup_by_handle("a" * 64)
    with pytest.raises(StoreUnavailable):
        await db.messages.insert("a" * 64, "text", "C1", "1.0")


@pytest.mark.asyncio
async def test_store_unavailable_after_shutdown(test_db):
    await test_db.shutdown()
    with pytest.raises(StoreUnavailable):
        await test_db.bans.list_all()


@pytest.mark.asyncio
async def test_shutdown_without_initialize_is_noop(tmp_path):
    await Database(tmp_path / "x.db").shutdown()


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(tmp_path):
    manager = ConnectionManager()
    await manager.open(tmp_path / "tx.db")
    try:
        async with manager.transaction() as conn:
            await conn.execute("CREATE TABLE t (v INTEGER)")

        with pytest.raises(RuntimeError):
            async with manager.transaction() as conn:
                await conn.execute("INSERT INTO t (v) VALUES (1)")
                raise RuntimeError("boom")

        async with manager.read() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM t")
            assert (await cursor.fetchone())[0] == 0
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_operational_error_becomes_store_unavailable(tmp_path):
    manager = ConnectionManager()
    await manager.open(tmp_path / "op.db")
    try:
        with pytest.raises(StoreUnavailable):
            async with manager.read() as conn:
                await conn.execute("SELECT * FROM missing_table")
    finally:
        await manager.close()
