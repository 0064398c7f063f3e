"""
Pooled PostgreSQL connections (asyncpg).

`ConnectionPool` wraps one `asyncpg.Pool` and adds the bounds the service
relies on: a creation timeout, a per-acquire timeout, and an idempotent
`end()`. Only `core.lifecycle.LifecycleManager` creates or ends pools.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

from .config import ConnectionConfig
from .errors import AcquireTimeout, ConnectTimeout

logger = logging.getLogger(__name__)

APPLICATION_NAME = "tender-api"


class ConnectionPool:
    def __init__(self, pool: asyncpg.Pool, *, acquire_timeout_s: float) -> None:
        self._pool = pool
        self._acquire_timeout_s = acquire_timeout_s
        self._closed = False

    @classmethod
    async def create(cls, config: ConnectionConfig) -> ConnectionPool:
        """
        Open a pool for `config`. Raises ConnectTimeout when the server does
        not answer within the connect timeout; driver errors propagate.
        """
        try:
            pool = await asyncio.wait_for(
                asyncpg.create_pool(
                    host=config.host,
                    port=config.port,
                    database=config.database,
                    user=config.user,
                    password=config.password,
                    ssl=config.ssl_mode,
                    min_size=1,
                    max_size=config.pool_max,
                    max_inactive_connection_lifetime=config.idle_timeout_s,
                    timeout=config.connect_timeout_s,
                    command_timeout=config.statement_timeout_s,
                    server_settings={
                        "application_name": APPLICATION_NAME,
                        # Server-side TCP keepalive, separate from the app-level probe.
                        "tcp_keepalives_idle": str(config.tcp_keepalive_idle_s),
                    },
                ),
                timeout=config.connect_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise ConnectTimeout(
                f"Timed out after {config.connect_timeout_s}s connecting to {config.describe()}"
            ) from exc
        return cls(pool, acquire_timeout_s=config.acquire_timeout_s)

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self) -> asyncpg.Connection:
        try:
            return await self._pool.acquire(timeout=self._acquire_timeout_s)
        except asyncio.TimeoutError as exc:
            raise AcquireTimeout(
                f"No connection available within {self._acquire_timeout_s}s"
            ) from exc

    async def release(self, conn: asyncpg.Connection) -> None:
        await self._pool.release(conn)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)

    async def probe(self) -> None:
        """Trivial round trip; raises whatever the driver raises."""
        async with self.connection() as conn:
            await conn.fetchval("SELECT 1")

    async def end(self) -> None:
        """Gracefully close idle and in-flight connections. Safe to call twice."""
        if self._closed:
            return None
        self._closed = True
        await self._pool.close()

    def terminate(self) -> None:
        """Close every connection immediately, without waiting on in-flight work."""
        self._closed = True
        self._pool.terminate()
