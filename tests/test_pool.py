"""Unit tests for core.pool.ConnectionPool (asyncpg mocked)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.errors import AcquireTimeout, ConnectTimeout
from core.pool import ConnectionPool


def _raw_pool(conn: MagicMock | None = None) -> MagicMock:
    raw = MagicMock()
    raw.acquire = AsyncMock(return_value=conn or MagicMock())
    raw.release = AsyncMock()
    raw.close = AsyncMock()
    return raw


@pytest.mark.asyncio
async def test_create_passes_pool_bounds(db_config) -> None:
    """create() forwards size, timeouts, TLS and transport keepalive to asyncpg."""
    raw = _raw_pool()
    with patch("core.pool.asyncpg.create_pool", new=AsyncMock(return_value=raw)) as create_pool:
        pool = await ConnectionPool.create(db_config)

    kwargs = create_pool.call_args.kwargs
    assert kwargs["host"] == "db.test"
    assert kwargs["port"] == 5432
    assert kwargs["database"] == "tenders"
    assert kwargs["user"] == "svc"
    assert kwargs["password"] == "secret"
    assert kwargs["ssl"] == "require"
    assert kwargs["max_size"] == 20
    assert kwargs["max_inactive_connection_lifetime"] == 30.0
    assert kwargs["timeout"] == db_config.connect_timeout_s
    assert kwargs["server_settings"]["tcp_keepalives_idle"] == "10"


@pytest.mark.asyncio
async def test_create_times_out_with_connect_timeout(db_config) -> None:
    async def never_answers(**_kwargs):
        await asyncio.Event().wait()

    config = type(db_config)(
        host=db_config.host,
        database=db_config.database,
        user=db_config.user,
        password=db_config.password,
        connect_timeout_s=0.01,
    )
    with patch("core.pool.asyncpg.create_pool", new=never_answers):
        with pytest.raises(ConnectTimeout, match="Timed out"):
            await ConnectionPool.create(config)


@pytest.mark.asyncio
async def test_acquire_timeout_is_distinguishable() -> None:
    raw = _raw_pool()
    raw.acquire = AsyncMock(side_effect=asyncio.TimeoutError())
    pool = ConnectionPool(raw, acquire_timeout_s=0.5)

    with pytest.raises(AcquireTimeout):
        await pool.acquire()
    raw.acquire.assert_awaited_once_with(timeout=0.5)


@pytest.mark.asyncio
async def test_connection_is_released_on_error() -> None:
    conn = MagicMock()
    raw = _raw_pool(conn)
    pool = ConnectionPool(raw, acquire_timeout_s=1)

    with pytest.raises(RuntimeError):
        async with pool.connection():
            raise RuntimeError("query blew up")

    raw.release.assert_awaited_once_with(conn)


@pytest.mark.asyncio
async def test_probe_runs_select_one() -> None:
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=1)
    raw = _raw_pool(conn)
    pool = ConnectionPool(raw, acquire_timeout_s=1)

    await pool.probe()

    conn.fetchval.assert_awaited_once_with("SELECT 1")
    raw.release.assert_awaited_once_with(conn)


@pytest.mark.asyncio
async def test_end_is_idempotent() -> None:
    raw = _raw_pool()
    pool = ConnectionPool(raw, acquire_timeout_s=1)

    await pool.end()
    await pool.end()

    raw.close.assert_awaited_once()
    assert pool.closed is True


def test_terminate_closes_immediately() -> None:
    raw = _raw_pool()
    pool = ConnectionPool(raw, acquire_timeout_s=1)

    pool.terminate()

    raw.terminate.assert_called_once()
    assert pool.closed is True
