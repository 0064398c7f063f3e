"""
Shared fixtures: an in-memory stand-in for `core.pool.ConnectionPool` and a
factory that can fail, block, or succeed on demand.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any

import pytest

from core.config import ConnectionConfig, RetryPolicy, ServiceSettings
from core.lifecycle import LifecycleManager


class FakeStatement:
    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.status = "SELECT 0"
        self.attributes: list[Any] = []
        self.error: BaseException | None = None
        self.args: tuple[Any, ...] | None = None

    async def fetch(self, *args: Any) -> list[dict[str, Any]]:
        self.args = args
        if self.error is not None:
            raise self.error
        return self.rows

    def get_statusmsg(self) -> str:
        return self.status

    def get_attributes(self) -> list[Any]:
        return self.attributes


class FakeConnection:
    def __init__(self) -> None:
        self.statement = FakeStatement()
        self.prepared: list[str] = []

    async def prepare(self, text: str) -> FakeStatement:
        self.prepared.append(text)
        return self.statement


class FakePool:
    def __init__(self) -> None:
        self.conn = FakeConnection()
        self.probe_error: BaseException | None = None
        self.probes = 0
        self.acquired = 0
        self.released = 0
        self.ended = False
        self.terminated = False

    @asynccontextmanager
    async def connection(self):
        self.acquired += 1
        try:
            yield self.conn
        finally:
            self.released += 1

    async def probe(self) -> None:
        self.probes += 1
        if self.probe_error is not None:
            raise self.probe_error

    async def end(self) -> None:
        self.ended = True

    def terminate(self) -> None:
        self.terminated = True


class FakePoolFactory:
    """
    Callable matching `ConnectionPool.create`.

    - `failures`: the first N calls raise `error`
    - `gate`: when set to an asyncio.Event, calls block until it is set
    """

    def __init__(self) -> None:
        self.failures = 0
        self.error: BaseException = ConnectionRefusedError("boom")
        self.gate: asyncio.Event | None = None
        self.calls = 0
        self.pools: list[FakePool] = []
        self.previous_ended: list[bool] = []

    async def __call__(self, config: ConnectionConfig) -> FakePool:
        self.calls += 1
        self.previous_ended.append(all(p.ended for p in self.pools))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.calls <= self.failures:
            raise self.error
        pool = FakePool()
        self.pools.append(pool)
        return pool


def attribute(name: str, oid: int, type_name: str) -> SimpleNamespace:
    return SimpleNamespace(name=name, type=SimpleNamespace(oid=oid, name=type_name))


@pytest.fixture
def db_config() -> ConnectionConfig:
    return ConnectionConfig(
        host="db.test",
        database="tenders",
        user="svc",
        password="secret",
        keepalive_interval_s=3600.0,
        statement_timeout_s=1.0,
        connect_timeout_s=1.0,
    )


@pytest.fixture
def pool_factory() -> FakePoolFactory:
    return FakePoolFactory()


@pytest.fixture
def manager(db_config: ConnectionConfig, pool_factory: FakePoolFactory) -> LifecycleManager:
    return LifecycleManager(
        db_config,
        retry=RetryPolicy(max_attempts=5, delay_s=0),
        pool_factory=pool_factory,
    )


@pytest.fixture
def settings(tmp_path) -> ServiceSettings:
    # tmp_path has no index.html, so the frontend is not mounted.
    return ServiceSettings(port=8080, app_env="test", static_dir=str(tmp_path))
