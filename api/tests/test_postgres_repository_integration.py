from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest

from webmentions.services.mention import Mention
from webmentions.services.pagination import BoundedPage, MentionFilter, OrderSpec, UnboundedPage
from webmentions.services.repository import PostgresMentionRepository, RepositoryConflictError

T = TypeVar("T")

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("WM_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require WM_DATABASE_URL or DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_reset_schema(database_url))


async def _reset_schema(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute("drop table if exists mentions")
    finally:
        await conn.close()
    repository = PostgresMentionRepository(database_url=database_url, min_pool_size=1, max_pool_size=1)
    try:
        await repository.ensure_schema()
    finally:
        await repository.close()


async def _with_repository(database_url: str, action: Any) -> Any:
    repository = PostgresMentionRepository(database_url=database_url, min_pool_size=1, max_pool_size=2)
    try:
        return await action(repository)
    finally:
        await repository.close()


def _mention(source: str, minutes: int = 0, **kwargs: Any) -> Mention:
    return Mention.create(
        source=source,
        target="https://site.example/blog/hello-world/",
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        **kwargs,
    )


def test_save_then_lookup_round_trips_all_fields(database_url: str) -> None:
    mention = _mention(
        "https://source.example/reply",
        payload={"kind": "reply", "nested": {"n": 1}},
        resource_id="post-1",
        resource_type="post",
        source_title="Reply",
        source_favicon="https://source.example/favicon.ico",
        verified=True,
    )

    async def action(repository: PostgresMentionRepository) -> Mention | None:
        await repository.save(mention)
        return await repository.get_by_source_and_target(mention.source, mention.target)

    loaded = _run(_with_repository(database_url, action))

    assert loaded == mention


def test_save_updates_existing_row_and_delete_removes_it(database_url: str) -> None:
    mention = _mention("https://source.example/reply")

    async def action(repository: PostgresMentionRepository) -> tuple[Any, Any]:
        await repository.save(mention)
        mention.set_payload({"updated": True})
        mention.verify(False)
        await repository.save(mention)
        updated = await repository.get_by_source_and_target(mention.source, mention.target)
        mention.delete()
        await repository.save(mention)
        after_delete = await repository.get_page(UnboundedPage())
        return updated, after_delete

    updated, after_delete = _run(_with_repository(database_url, action))

    assert updated.payload == {"updated": True}
    assert updated.verified is False
    assert after_delete.pagination.total == 0


def test_second_mention_for_same_pair_conflicts(database_url: str) -> None:
    async def action(repository: PostgresMentionRepository) -> None:
        await repository.save(_mention("https://source.example/reply"))
        await repository.save(_mention("https://source.example/reply"))

    with pytest.raises(RepositoryConflictError):
        _run(_with_repository(database_url, action))


def test_get_page_filters_orders_and_paginates(database_url: str) -> None:
    mentions = [
        _mention("https://a.example/1", minutes=1, verified=True),
        _mention("https://a.example/2", minutes=2),
        _mention("https://B.example/1", minutes=3, verified=False),
    ]

    async def action(repository: PostgresMentionRepository) -> dict[str, Any]:
        for mention in mentions:
            await repository.save(mention)
        return {
            "newest": await repository.get_page(BoundedPage(limit=2, page=1)),
            "second": await repository.get_page(BoundedPage(limit=2, page=2)),
            "a_hosts": await repository.get_page(
                UnboundedPage(filter=MentionFilter.parse("source.host:a.example"), order=OrderSpec.parse("created_at asc"))
            ),
            "b_host": await repository.get_page(UnboundedPage(filter=MentionFilter.parse("source.host:b.example"))),
            "not_verified_true": await repository.get_page(UnboundedPage(filter=MentionFilter.parse("verified:-true"))),
            "unverified": await repository.get_page(UnboundedPage(filter=MentionFilter.parse("verified:null"))),
        }

    pages = _run(_with_repository(database_url, action))

    assert [m.source for m in pages["newest"].data] == ["https://b.example/1", "https://a.example/2"]
    assert pages["newest"].pagination.next == 2
    assert [m.source for m in pages["second"].data] == ["https://a.example/1"]
    assert pages["second"].pagination.prev == 1
    assert [m.source for m in pages["a_hosts"].data] == ["https://a.example/1", "https://a.example/2"]
    assert pages["a_hosts"].pagination.total == 2
    assert [m.source for m in pages["b_host"].data] == ["https://b.example/1"]
    assert {m.source for m in pages["not_verified_true"].data} == {"https://a.example/2", "https://b.example/1"}
    assert [m.source for m in pages["unverified"].data] == ["https://a.example/2"]
