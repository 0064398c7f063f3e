"""
Row copy from the Supabase source into the service database.

Each table is upserted on its conflict key, so re-running the job is safe.
Rows travel as JSON and `json_populate_record` lets Postgres coerce them to
the target column types (dates, uuids, booleans).

Order matters: communications reference timelines' companies, and
communication_responses reference communications.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: tuple[str, ...]
    conflict: tuple[str, ...]
    update: tuple[str, ...]


TABLES: tuple[TableSpec, ...] = (
    TableSpec(
        name="timelines",
        columns=(
            "id",
            "company_id",
            "company_name",
            "nda_received_date",
            "nda_received_completed",
            "nda_signed_date",
            "nda_signed_completed",
            "rfi_sent_date",
            "rfi_sent_completed",
            "rfi_due_date",
            "rfi_due_completed",
            "offer_received_date",
            "offer_received_completed",
            "created_at",
            "updated_at",
        ),
        conflict=("company_id",),
        update=(
            "company_name",
            "nda_received_date",
            "nda_received_completed",
            "nda_signed_date",
            "nda_signed_completed",
            "rfi_sent_date",
            "rfi_sent_completed",
            "rfi_due_date",
            "rfi_due_completed",
            "offer_received_date",
            "offer_received_completed",
        ),
    ),
    TableSpec(
        name="communications",
        columns=(
            "id",
            "company_id",
            "subject",
            "content",
            "sent_date",
            "created_by",
            "created_at",
            "updated_at",
        ),
        conflict=("id",),
        update=("subject", "content"),
    ),
    TableSpec(
        name="communication_responses",
        columns=(
            "id",
            "communication_id",
            "response",
            "responder_name",
            "created_at",
            "updated_at",
        ),
        conflict=("id",),
        update=("response",),
    ),
)


class RowSource(Protocol):
    async def fetch_all(self, table: str) -> list[dict[str, Any]]: ...


class Target(Protocol):
    async def executemany(self, command: str, args: Sequence[Sequence[Any]]) -> Any: ...


def table_by_name(name: str) -> TableSpec:
    for table in TABLES:
        if table.name == name:
            return table
    raise ValueError(f"Unknown table: {name}")


def upsert_sql(table: TableSpec) -> str:
    """
    INSERT ... ON CONFLICT DO UPDATE for one JSON-encoded row passed as $1.
    """
    cols = ", ".join(table.columns)
    assignments = [f"{c} = EXCLUDED.{c}" for c in table.update]
    assignments.append("updated_at = now()")
    return (
        f"INSERT INTO {table.name} ({cols})\n"
        f"SELECT {cols}\n"
        f"FROM json_populate_record(NULL::{table.name}, $1::json)\n"
        f"ON CONFLICT ({', '.join(table.conflict)}) DO UPDATE SET\n"
        f"  " + ",\n  ".join(assignments)
    )


def _encode_row(table: TableSpec, row: dict[str, Any]) -> str:
    # Only the columns we insert; extra source columns are dropped.
    return json.dumps({c: row.get(c) for c in table.columns})


async def migrate_table(source: RowSource, target: Target, table: TableSpec) -> int:
    logger.info("migration_table_start table=%s", table.name)
    rows = await source.fetch_all(table.name)
    if rows:
        await target.executemany(upsert_sql(table), [(_encode_row(table, r),) for r in rows])
    logger.info("migration_table_done table=%s rows=%s", table.name, len(rows))
    return len(rows)


async def migrate(
    source: RowSource,
    target: Target,
    tables: Sequence[TableSpec] = TABLES,
) -> dict[str, int]:
    """
    Copy `tables` in order. Stops at the first failing table; returns per-table row counts.
    """
    counts: dict[str, int] = {}
    for table in tables:
        counts[table.name] = await migrate_table(source, target, table)
    return counts
