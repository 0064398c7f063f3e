"""
Health snapshot.

Pure read path over the lifecycle manager: the only side effect is the one
extra probe while connected, and a failed probe is reported in the snapshot
(and demotes the manager) rather than raised.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from core.config import ServiceSettings
from core.lifecycle import ConnectionState, LifecycleManager

from . import schemas

_DATABASE_STATUS: dict[ConnectionState, schemas.DatabaseStatus] = {
    ConnectionState.CONNECTED: "connected",
    ConnectionState.CONNECTING: "connecting",
    ConnectionState.DEGRADED: "error",
    ConnectionState.DISCONNECTED: "disconnected",
    ConnectionState.SHUTTING_DOWN: "disconnected",
}


def uptime_s(started_at: float) -> float:
    return round(max(0.0, time.monotonic() - started_at), 3)


async def health_snapshot(
    manager: LifecycleManager,
    *,
    started_at: float,
    settings: ServiceSettings,
    probe: bool = True,
) -> schemas.HealthSnapshot:
    database_error: str | None = None
    if probe and manager.state is ConnectionState.CONNECTED:
        database_error = await manager.check()

    if database_error is not None:
        database: schemas.DatabaseStatus = "error"
    else:
        database = _DATABASE_STATUS[manager.state]
        if database != "connected":
            # Why the last connect sequence gave up (or the connection dropped).
            database_error = manager.last_error

    healthy = database == "connected" or not manager.is_configured
    return schemas.HealthSnapshot(
        status="healthy" if healthy else "degraded",
        uptime=uptime_s(started_at),
        timestamp=datetime.now(timezone.utc),
        database=database,
        database_error=database_error,
        environment=schemas.HealthEnvironment(
            app_env=settings.app_env,
            port=settings.port,
            has_db_config=manager.is_configured,
        ),
    )
