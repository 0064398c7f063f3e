"""
Database connection lifecycle.

`LifecycleManager` is the only thing in the process that creates, replaces, or
ends the connection pool, and the only writer of the connection state. Routes
read its state and ask it to reconnect; they never touch the pool lifecycle.

States:

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTING   -> CONNECTING (retry, bounded)   -> DISCONNECTED (gave up)
    CONNECTED    -> DISCONNECTED (keepalive / reset during a query)
    CONNECTED    -> DEGRADED (health probe failed)
    any          -> SHUTTING_DOWN (terminal)

At most one connect sequence runs at a time. Every trigger (startup, a query
arriving while disconnected, a keepalive tick, a lost connection) goes through
`request_connect()`, which hands back the sequence already in flight instead of
starting a second one.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable

from .config import ConnectionConfig, RetryPolicy
from .errors import ServiceUnavailable
from .pool import ConnectionPool

logger = logging.getLogger(__name__)

PoolFactory = Callable[[ConnectionConfig], Awaitable[ConnectionPool]]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"
    SHUTTING_DOWN = "shutting_down"


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class LifecycleManager:
    def __init__(
        self,
        config: ConnectionConfig | None,
        *,
        retry: RetryPolicy | None = None,
        pool_factory: PoolFactory | None = None,
    ) -> None:
        self._config = config
        self._retry = retry or RetryPolicy()
        self._pool_factory = pool_factory or ConnectionPool.create
        self._state = ConnectionState.DISCONNECTED
        self._pool: ConnectionPool | None = None
        self._connect_lock = asyncio.Lock()
        self._connect_task: asyncio.Task[bool] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._attempts = 0
        self._last_error: str | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def config(self) -> ConnectionConfig | None:
        return self._config

    @property
    def is_configured(self) -> bool:
        return self._config is not None

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def attempts(self) -> int:
        """Attempt number of the current (or last failed) connect sequence; 0 once connected."""
        return self._attempts

    @property
    def reconnecting(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    @property
    def pool(self) -> ConnectionPool:
        if self._state is not ConnectionState.CONNECTED or self._pool is None:
            raise ServiceUnavailable("Database not connected")
        return self._pool

    def _set_state(self, state: ConnectionState) -> None:
        old = self._state
        if old is state:
            return None
        # Shutdown is terminal.
        if old is ConnectionState.SHUTTING_DOWN:
            return None
        logger.info("db_state from=%s to=%s", old.value, state.value)
        self._state = state

    # ------------------------------------------------------------------
    # Startup / connect
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Start the keepalive loop and kick off the initial connect sequence
        in the background. Returns immediately.
        """
        if self._config is None:
            logger.warning("db_disabled reason=config_missing")
            return None
        if self._state is ConnectionState.SHUTTING_DOWN:
            return None
        if self._keepalive_task is None:
            self._keepalive_task = asyncio.create_task(self._keepalive_loop(), name="db-keepalive")
        self.request_connect()

    def request_connect(self, max_attempts: int | None = None) -> asyncio.Task[bool] | None:
        """
        Schedule a connect sequence, or return the one already running.

        Returns None when there is nothing to do: no config, shutting down,
        or already connected.
        """
        if self._config is None or self._state is ConnectionState.SHUTTING_DOWN:
            return None
        if self.reconnecting:
            return self._connect_task
        if self._state is ConnectionState.CONNECTED:
            return None
        attempts = max_attempts if max_attempts is not None else self._retry.max_attempts
        self._connect_task = asyncio.create_task(
            self._connect_sequence(max(1, attempts)),
            name="db-connect",
        )
        return self._connect_task

    async def connect(self, max_attempts: int | None = None) -> bool:
        """Wait for a connect sequence (possibly shared with other callers)."""
        task = self.request_connect(max_attempts)
        if task is None:
            return self._state is ConnectionState.CONNECTED
        try:
            # Shielded so one impatient caller cannot cancel the shared sequence.
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return False
            raise

    async def _connect_sequence(self, max_attempts: int) -> bool:
        assert self._config is not None
        async with self._connect_lock:
            for attempt in range(1, max_attempts + 1):
                if self._state is ConnectionState.SHUTTING_DOWN:
                    return False
                self._attempts = attempt
                self._set_state(ConnectionState.CONNECTING)
                # The previous handle is fully drained before a new one exists.
                await self._retire_pool(self._config.statement_timeout_s)
                try:
                    pool = await self._open_pool()
                except Exception as exc:
                    self._last_error = _error_text(exc)
                    logger.warning(
                        "db_connect_failed attempt=%s/%s target=%s error=%s",
                        attempt,
                        max_attempts,
                        self._config.describe(),
                        self._last_error,
                    )
                    if attempt < max_attempts:
                        logger.info(
                            "db_connect_retry next_attempt=%s/%s delay_s=%s",
                            attempt + 1,
                            max_attempts,
                            self._retry.delay_s,
                        )
                        await asyncio.sleep(self._retry.delay_s)
                    continue

                self._pool = pool
                self._attempts = 0
                self._last_error = None
                self._set_state(ConnectionState.CONNECTED)
                logger.info("db_connected target=%s attempt=%s", self._config.describe(), attempt)
                return True

            self._set_state(ConnectionState.DISCONNECTED)
            logger.error(
                "db_connect_gave_up attempts=%s error=%s; continuing without database",
                max_attempts,
                self._last_error,
            )
            return False

    async def _open_pool(self) -> ConnectionPool:
        assert self._config is not None
        pool = await self._pool_factory(self._config)
        try:
            await pool.probe()
        except asyncio.CancelledError:
            pool.terminate()
            raise
        except Exception:
            await self._end_pool(pool, self._config.connect_timeout_s)
            raise
        return pool

    async def _retire_pool(self, timeout_s: float) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await self._end_pool(pool, timeout_s)

    @staticmethod
    async def _end_pool(pool: ConnectionPool, timeout_s: float) -> None:
        try:
            await asyncio.wait_for(pool.end(), timeout_s)
        except asyncio.CancelledError:
            pool.terminate()
            raise
        except Exception:
            logger.exception("db_pool_close_failed timeout_s=%s; terminating connections", timeout_s)
            pool.terminate()

    # ------------------------------------------------------------------
    # Failure reporting / probing
    # ------------------------------------------------------------------

    def report_connection_lost(
        self,
        exc: BaseException,
        *,
        state: ConnectionState = ConnectionState.DISCONNECTED,
    ) -> asyncio.Task[bool] | None:
        """
        Demote out of CONNECTED and schedule one reconnect attempt.

        Does not wait for the reconnect. Reports that arrive after the
        manager already left CONNECTED are ignored (the first one wins).
        """
        if self._state is not ConnectionState.CONNECTED:
            return None
        self._last_error = _error_text(exc)
        logger.warning("db_connection_lost next_state=%s error=%s", state.value, self._last_error)
        self._set_state(state)
        return self.request_connect(max_attempts=1)

    async def check(self) -> str | None:
        """
        Probe once while connected. Returns the failure text, or None when the
        probe passed or there was no live pool to probe.
        """
        pool = self._pool
        if self._state is not ConnectionState.CONNECTED or pool is None:
            return None
        try:
            await pool.probe()
        except Exception as exc:
            logger.error("db_health_probe_failed error=%s", _error_text(exc))
            self.report_connection_lost(exc, state=ConnectionState.DEGRADED)
            return _error_text(exc)
        return None

    async def keepalive_tick(self) -> None:
        """
        One application-level keepalive step.

        CONNECTED: probe, demote + reconnect on failure.
        DISCONNECTED: start a fresh single-attempt reconnect.
        Skipped entirely while a connect sequence is in flight.
        """
        if self._state is ConnectionState.SHUTTING_DOWN or self.reconnecting:
            return None
        if self._state is ConnectionState.DISCONNECTED:
            self.request_connect(max_attempts=1)
            return None
        pool = self._pool
        if self._state is not ConnectionState.CONNECTED or pool is None:
            return None
        try:
            await pool.probe()
        except Exception as exc:
            logger.error("db_keepalive_failed error=%s", _error_text(exc))
            self.report_connection_lost(exc)

    async def _keepalive_loop(self) -> None:
        assert self._config is not None
        interval = self._config.keepalive_interval_s
        while True:
            await asyncio.sleep(interval)
            # Ticks run inline, so a slow probe delays the next tick instead of overlapping it.
            try:
                await self.keepalive_tick()
            except Exception:
                logger.exception("db_keepalive_tick_failed")

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self, timeout_s: float = 10.0) -> None:
        """
        Enter SHUTTING_DOWN, cancel background work, drain the pool.

        A pool that does not drain within `timeout_s` is terminated; shutdown
        never raises for that.
        """
        if self._state is ConnectionState.SHUTTING_DOWN:
            return None
        self._set_state(ConnectionState.SHUTTING_DOWN)

        tasks = [t for t in (self._keepalive_task, self._connect_task) if t is not None]
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("db_background_task_failed error=%s", _error_text(result))
        self._keepalive_task = None
        self._connect_task = None

        await self._retire_pool(timeout_s)
        logger.info("db_shutdown_complete")
