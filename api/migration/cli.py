"""
`tender-migrate`: copy Supabase rows into the service database.

Runs outside the API process with its own connection; the API's lifecycle
manager is not involved.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

import asyncpg
import httpx

from core.config import ConnectionConfig, load_connection_config
from core.errors import ConfigMissing

from . import service
from .source import SourceError, SupabaseSource

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tender-migrate",
        description="Upsert timelines and communications from Supabase into Postgres.",
    )
    parser.add_argument(
        "--table",
        action="append",
        choices=[t.name for t in service.TABLES],
        help="Only migrate this table (repeatable). Default: all, in dependency order.",
    )
    return parser


async def run(config: ConnectionConfig, tables: list[service.TableSpec]) -> dict[str, int]:
    conn = await asyncpg.connect(
        host=config.host,
        port=config.port,
        database=config.database,
        user=config.user,
        password=config.password,
        ssl=config.ssl_mode,
        timeout=config.connect_timeout_s,
    )
    try:
        async with SupabaseSource.from_env() as source:
            async with conn.transaction():
                return await service.migrate(source, conn, tables)
    finally:
        await conn.close()


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    args = build_parser().parse_args(argv)
    if args.table:
        tables = [t for t in service.TABLES if t.name in set(args.table)]
    else:
        tables = list(service.TABLES)

    try:
        config = load_connection_config()
    except ConfigMissing as exc:
        logger.error("migration_config_missing missing=%s", ",".join(exc.missing))
        return 1

    logger.info("migration_start target=%s tables=%s", config.describe(), ",".join(t.name for t in tables))
    try:
        counts = asyncio.run(run(config, tables))
    except (
        SourceError,
        httpx.HTTPError,
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
        OSError,
        asyncio.TimeoutError,
    ) as exc:
        logger.error("migration_failed error=%s", exc)
        return 1
    logger.info("migration_complete counts=%s", counts)
    return 0


if __name__ == "__main__":
    sys.exit(main())
