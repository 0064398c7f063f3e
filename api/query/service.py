"""
Query gateway.

Runs caller-supplied parameterized SQL on the shared pool, but only while the
lifecycle manager reports CONNECTED. Connection-reset class failures are
handed back to the manager so it can reconnect; the caller still gets the
original error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import asyncpg

from core.errors import ServiceUnavailable, is_connection_reset
from core.lifecycle import ConnectionState, LifecycleManager

logger = logging.getLogger(__name__)


class QueryTextMissing(ValueError):
    pass


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict[str, Any]]
    row_count: int
    fields: list[dict[str, Any]] = field(default_factory=list)


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


def row_count_from_status(status: str | None, fetched: int) -> int:
    """
    Parse the row count out of a command tag ("INSERT 0 3", "UPDATE 2",
    "SELECT 5"). Falls back to the number of fetched rows.
    """
    if status:
        last = status.rsplit(" ", 1)[-1]
        if last.isdigit():
            return int(last)
    return fetched


def _describe_fields(statement: asyncpg.prepared_stmt.PreparedStatement) -> list[dict[str, Any]]:
    return [
        {"name": attr.name, "dataTypeID": attr.type.oid, "dataType": attr.type.name}
        for attr in statement.get_attributes()
    ]


async def run_query(
    manager: LifecycleManager,
    text: str | None,
    params: Sequence[Any] | None = None,
) -> QueryResult:
    """
    Execute `text` with positional `params` ($1, $2, ...).

    Raises:
    - QueryTextMissing (a ValueError) if `text` is empty
    - ServiceUnavailable if the database is not connected (nothing is acquired)
    - whatever the driver raised, after reporting connection resets to the manager
    """
    if not (text or "").strip():
        raise QueryTextMissing("Query text is required")

    if manager.state is not ConnectionState.CONNECTED:
        if manager.state is ConnectionState.DISCONNECTED:
            # Lazy reconnect; this request still fails fast.
            manager.request_connect(max_attempts=1)
        raise ServiceUnavailable("Database not connected")

    pool = manager.pool
    args = list(params or [])
    try:
        async with pool.connection() as conn:
            statement = await conn.prepare(text)
            records = await statement.fetch(*args)
            status = statement.get_statusmsg()
            fields = _describe_fields(statement)
    except Exception as exc:
        if is_connection_reset(exc):
            logger.warning("query_connection_reset error=%s", exc)
            manager.report_connection_lost(exc)
        raise

    rows = [_record_to_dict(r) for r in records]
    return QueryResult(rows=rows, row_count=row_count_from_status(status, len(rows)), fields=fields)
