"""Webmention processing and mention listing.

``MentionsAPI.process_webmention`` decides, for one ``(source, target)``
pair, whether to create, update, delete or reject a mention:

* a target that is not a page of this site rejects a new mention and deletes
  an existing one;
* a source whose metadata cannot be scraped rejects a new mention and deletes
  an existing one;
* a failed verification fetch only leaves ``verified`` unset.

Collaborator calls are awaited one after another, and calls for the same pair
are serialized so two concurrent webmentions cannot both create a record.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from opentelemetry import trace

from webmentions.core.config import get_settings
from webmentions.core.urls import require_absolute_url
from webmentions.services.mention import Mention
from webmentions.services.metadata import HtmlMetadataService, MetadataService
from webmentions.services.pagination import GetPageOptions, Page
from webmentions.services.repository import MentionRepository, get_repository
from webmentions.services.resources import ResourceService, StaticResourceService, parse_resource_map
from webmentions.services.routing import RoutingService, SiteRoutingService
from webmentions.services.transport import ExternalRequest, HttpTransport
from webmentions.services.verification import SourceDocument, verify_target_in_source

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

VERIFICATION_MAX_REDIRECTS = 10


class WebmentionError(Exception):
    """Base error for webmentions rejected before a mention exists."""


class InvalidTargetError(WebmentionError):
    def __init__(self, target: str) -> None:
        super().__init__(f"{target} is not a valid URL for this site.")
        self.target = target


class KeyedLocks:
    """asyncio locks keyed by an arbitrary hashable, dropped once unused."""

    def __init__(self) -> None:
        self._locks: dict[Any, asyncio.Lock] = {}
        self._holders: dict[Any, int] = {}

    @asynccontextmanager
    async def hold(self, key: Any) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class MentionsAPI:
    def __init__(
        self,
        *,
        repository: MentionRepository,
        resource_service: ResourceService,
        routing_service: RoutingService,
        webmention_metadata: MetadataService,
        external_request: ExternalRequest,
        max_redirects: int = VERIFICATION_MAX_REDIRECTS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.resource_service = resource_service
        self.routing_service = routing_service
        self.webmention_metadata = webmention_metadata
        self.external_request = external_request
        self.max_redirects = max_redirects
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._pair_locks = KeyedLocks()

    async def list_mentions(self, options: GetPageOptions) -> Page[Mention]:
        return await self.repository.get_page(options)

    async def process_webmention(
        self,
        source: str,
        target: str,
        payload: dict[str, Any] | None = None,
    ) -> Mention:
        source = require_absolute_url(source, field="source")
        target = require_absolute_url(target, field="target")
        async with self._pair_locks.hold((source, target)):
            with tracer.start_as_current_span("webmentions.process") as span:
                span.set_attribute("webmention.source", source)
                span.set_attribute("webmention.target", target)
                mention = await self._process(source, target, payload or {})
                span.set_attribute("webmention.mention_id", mention.id)
                span.set_attribute("webmention.deleted", mention.deleted)
                return mention

    async def verify_target_in_source(self, document: SourceDocument, target: str) -> bool:
        return verify_target_in_source(document, target)

    async def _process(self, source: str, target: str, payload: dict[str, Any]) -> Mention:
        mention = await self.repository.get_by_source_and_target(source, target)
        created = mention is None
        if mention is not None:
            mention.set_payload(payload)

        target_exists = await self.routing_service.page_exists(target)
        if not target_exists:
            if mention is None:
                raise InvalidTargetError(target)
            logger.info("target no longer exists; deleting mention id=%s target=%s", mention.id, target)
            mention.delete()

        resource_info = await self.resource_service.get_by_url(target)

        try:
            metadata = await self.webmention_metadata.fetch(source)
        except Exception:
            if mention is None:
                raise
            logger.info("source metadata unavailable; deleting mention id=%s source=%s", mention.id, source, exc_info=True)
            mention.delete()
        else:
            if mention is None:
                is_post = resource_info.type == "post"
                mention = Mention.create(
                    source=source,
                    target=target,
                    timestamp=self.clock(),
                    payload=payload,
                    resource_id=resource_info.id if is_post else None,
                    resource_type=resource_info.type if is_post else None,
                )
            mention.set_source_metadata(
                source_title=metadata.title,
                source_site_title=metadata.site_title,
                source_author=metadata.author,
                source_excerpt=metadata.excerpt,
                source_favicon=metadata.favicon,
                source_featured_image=metadata.image,
            )

        verified = await self._verify_source(source, target)
        if verified is not None:
            mention.verify(verified)

        if created:
            logger.info("created mention id=%s source=%s target=%s", mention.id, source, target)
        await self.repository.save(mention)
        return mention

    async def _verify_source(self, source: str, target: str) -> bool | None:
        with tracer.start_as_current_span("webmentions.verify_source") as span:
            try:
                response = await self.external_request.request(
                    source,
                    follow_redirects=True,
                    max_redirects=self.max_redirects,
                    throw_http_errors=False,
                )
                verified = await self.verify_target_in_source(response, target)
            except Exception as exc:  # verification never fails the webmention
                span.record_exception(exc)
                logger.warning("error verifying source of webmention source=%s target=%s", source, target, exc_info=True)
                return None
            span.set_attribute("webmention.verified", verified)
            return verified


@lru_cache
def get_mentions_api() -> MentionsAPI:
    settings = get_settings()
    transport = HttpTransport(timeout_seconds=settings.fetch_timeout_seconds, user_agent=settings.user_agent)
    return MentionsAPI(
        repository=get_repository(),
        resource_service=StaticResourceService(parse_resource_map(settings.resource_map_json)),
        routing_service=SiteRoutingService(settings.site_url, transport, max_redirects=settings.max_redirects),
        webmention_metadata=HtmlMetadataService(transport, max_redirects=settings.max_redirects),
        external_request=transport,
        max_redirects=settings.max_redirects,
    )
