#!/usr/bin/env python3
"""Emit deterministic SQL for the mentions table, or apply it to a database."""

from __future__ import annotations

import argparse
import asyncio

from webmentions.services.repository import SCHEMA_SQL, PostgresMentionRepository


def _quote_ident(value: str) -> str:
    escaped = value.replace('"', '""')
    return f'"{escaped}"'


def render_sql(*, schema: str | None) -> str:
    header = "-- Webmention mentions table\n-- Run in a privileged Postgres session before starting the API.\n"
    if schema:
        quoted = _quote_ident(schema)
        return f"{header}\ncreate schema if not exists {quoted};\nset search_path to {quoted};\n{SCHEMA_SQL}"
    return f"{header}{SCHEMA_SQL}"


async def apply_schema(database_url: str) -> None:
    repository = PostgresMentionRepository(database_url=database_url, min_pool_size=1, max_pool_size=1)
    try:
        await repository.ensure_schema()
    finally:
        await repository.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit or apply SQL for the webmention mentions table.")
    parser.add_argument("--schema", help="Postgres schema to create the table in")
    parser.add_argument(
        "--apply",
        metavar="DATABASE_URL",
        help="Apply the default-schema DDL to this database instead of printing it",
    )
    args = parser.parse_args()

    if args.apply:
        asyncio.run(apply_schema(args.apply))
        print("mentions schema applied")
        return

    print(render_sql(schema=args.schema))


if __name__ == "__main__":
    main()
