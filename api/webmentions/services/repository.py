from __future__ import annotations

import copy
import json
import logging
from functools import lru_cache
from typing import Any, Protocol
from urllib.parse import urlparse

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from webmentions.core.config import get_settings
from webmentions.core.urls import url_host
from webmentions.services.mention import Mention
from webmentions.services.pagination import (
    BOOLEAN_FIELDS,
    BoundedPage,
    FilterClause,
    GetPageOptions,
    OrderSpec,
    Page,
    Pagination,
    paginate,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryConflictError(RepositoryError):
    """Raised when a save would create a second mention for one source/target pair."""


class MentionRepository(Protocol):
    async def get_by_source_and_target(self, source: str, target: str) -> Mention | None: ...

    async def get_page(self, options: GetPageOptions) -> Page[Mention]: ...

    async def save(self, mention: Mention) -> None: ...


SCHEMA_SQL = """
create table if not exists mentions (
  seq bigint generated always as identity,
  id uuid primary key,
  source text not null,
  target text not null,
  source_host text,
  target_host text,
  created_at timestamptz not null,
  payload jsonb not null default '{}'::jsonb,
  resource_id text,
  resource_type text,
  source_title text,
  source_site_title text,
  source_author text,
  source_excerpt text,
  source_favicon text,
  source_featured_image text,
  verified boolean
);

create unique index if not exists mentions_source_target_key on mentions (source, target);
create index if not exists mentions_created_at_idx on mentions (created_at desc, seq asc);
create index if not exists mentions_source_host_idx on mentions (source_host);
"""

FILTER_COLUMNS = {
    "id": "id::text",
    "source": "source",
    "target": "target",
    "resource_id": "resource_id",
    "resource_type": "resource_type",
    "verified": "verified",
    "source.host": "source_host",
    "target.host": "target_host",
}
ORDER_COLUMNS = {
    "timestamp": "created_at",
    "source": "source",
    "target": "target",
    "verified": "verified",
}
MENTION_COLUMNS_SQL = """
  id::text as id,
  source,
  target,
  created_at,
  payload,
  resource_id,
  resource_type,
  source_title,
  source_site_title,
  source_author,
  source_excerpt,
  source_favicon,
  source_featured_image,
  verified
"""


class InMemoryMentionRepository:
    """Process-local store; deleted mentions are removed on save."""

    def __init__(self) -> None:
        self._mentions: dict[str, Mention] = {}

    async def get_by_source_and_target(self, source: str, target: str) -> Mention | None:
        for mention in self._mentions.values():
            if mention.source == source and mention.target == target:
                return copy.deepcopy(mention)
        return None

    async def get_page(self, options: GetPageOptions) -> Page[Mention]:
        page = paginate(self._mentions.values(), options)
        page.data = [copy.deepcopy(mention) for mention in page.data]
        return page

    async def save(self, mention: Mention) -> None:
        if mention.deleted:
            self._mentions.pop(mention.id, None)
            return
        for existing in self._mentions.values():
            if existing.id != mention.id and existing.source == mention.source and existing.target == mention.target:
                raise RepositoryConflictError(f"mention already exists for {mention.source} -> {mention.target}")
        self._mentions[mention.id] = copy.deepcopy(mention)


class PostgresMentionRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ensure_schema(self) -> None:
        pool = await self._get_pool()
        await pool.execute(SCHEMA_SQL)

    async def get_by_source_and_target(self, source: str, target: str) -> Mention | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {MENTION_COLUMNS_SQL}
            from mentions
            where source = $1 and target = $2
            """,
            source,
            target,
        )
        if row is None:
            return None
        return self._mention_row_to_entity(row)

    async def get_page(self, options: GetPageOptions) -> Page[Mention]:
        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        for clause in options.filter.clauses:
            conditions.append(self._clause_sql(clause, bind))

        where_sql = " and ".join(conditions) if conditions else "true"
        order_by_sql = self._order_sql(options.order)

        total = await pool.fetchval(f"select count(*) from mentions where {where_sql}", *params)

        paging_sql = ""
        if isinstance(options, BoundedPage):
            paging_sql = f"limit {bind(options.limit)} offset {bind(options.offset)}"

        rows = await pool.fetch(
            f"""
            select {MENTION_COLUMNS_SQL}
            from mentions
            where {where_sql}
            order by {order_by_sql}
            {paging_sql}
            """,
            *params,
        )
        return Page(
            data=[self._mention_row_to_entity(row) for row in rows],
            pagination=Pagination.for_options(options, int(total or 0)),
        )

    async def save(self, mention: Mention) -> None:
        pool = await self._get_pool()
        if mention.deleted:
            await pool.execute("delete from mentions where id = $1::uuid", mention.id)
            logger.info("deleted mention id=%s source=%s target=%s", mention.id, mention.source, mention.target)
            return

        try:
            await pool.execute(
                """
                insert into mentions (
                  id, source, target, source_host, target_host, created_at, payload,
                  resource_id, resource_type, source_title, source_site_title, source_author,
                  source_excerpt, source_favicon, source_featured_image, verified
                )
                values ($1::uuid, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10, $11, $12, $13, $14, $15, $16)
                on conflict (id) do update set
                  payload = excluded.payload,
                  resource_id = excluded.resource_id,
                  resource_type = excluded.resource_type,
                  source_title = excluded.source_title,
                  source_site_title = excluded.source_site_title,
                  source_author = excluded.source_author,
                  source_excerpt = excluded.source_excerpt,
                  source_favicon = excluded.source_favicon,
                  source_featured_image = excluded.source_featured_image,
                  verified = excluded.verified
                """,
                mention.id,
                mention.source,
                mention.target,
                url_host(mention.source),
                url_host(mention.target),
                mention.timestamp,
                json.dumps(mention.payload),
                mention.resource_id,
                mention.resource_type,
                mention.source_title,
                mention.source_site_title,
                mention.source_author,
                mention.source_excerpt,
                mention.source_favicon,
                mention.source_featured_image,
                mention.verified,
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError(
                f"mention already exists for {mention.source} -> {mention.target}"
            ) from exc

    @staticmethod
    def _clause_sql(clause: FilterClause, bind: Any) -> str:
        column = FILTER_COLUMNS[clause.key]
        values = [value for value in clause.values if value is not None]
        parts: list[str] = []
        if values:
            array_type = "boolean[]" if clause.key in BOOLEAN_FIELDS else "text[]"
            parts.append(f"coalesce({column} = any({bind(values)}::{array_type}), false)")
        if len(values) != len(clause.values):
            parts.append(f"{column} is null")
        matched = f"({' or '.join(parts)})"
        return f"not {matched}" if clause.negate else matched

    @staticmethod
    def _order_sql(order: OrderSpec) -> str:
        column = ORDER_COLUMNS[order.attribute]
        direction = "asc" if order.direction == "asc" else "desc"
        return f"{column} {direction}, seq asc"

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("WM_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _mention_row_to_entity(row: asyncpg.Record) -> Mention:
        payload = row["payload"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                payload = {}
        if not isinstance(payload, dict):
            payload = {}

        return Mention(
            id=row["id"],
            source=row["source"],
            target=row["target"],
            timestamp=row["created_at"],
            payload=payload,
            resource_id=row["resource_id"],
            resource_type=row["resource_type"],
            source_title=row["source_title"],
            source_site_title=row["source_site_title"],
            source_author=row["source_author"],
            source_excerpt=row["source_excerpt"],
            source_favicon=row["source_favicon"],
            source_featured_image=row["source_featured_image"],
            verified=row["verified"],
        )


@lru_cache
def get_repository() -> MentionRepository:
    settings = get_settings()
    if not settings.database_url:
        logger.warning("WM_DATABASE_URL not set; mentions are kept in process memory only")
        return InMemoryMentionRepository()
    return PostgresMentionRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )


def describe_database(database_url: str | None) -> str:
    if not database_url:
        return "memory"
    parsed = urlparse(database_url)
    return f"{parsed.scheme}://{parsed.hostname or 'localhost'}{parsed.path}"
