from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from webmentions.core.urls import require_absolute_url


@dataclass(slots=True)
class Mention:
    """One processed webmention: ``source`` asserts that it links to ``target``."""

    id: str
    source: str
    target: str
    timestamp: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    resource_id: str | None = None
    resource_type: str | None = None
    source_title: str | None = None
    source_site_title: str | None = None
    source_author: str | None = None
    source_excerpt: str | None = None
    source_favicon: str | None = None
    source_featured_image: str | None = None
    verified: bool | None = None
    deleted: bool = False

    @classmethod
    def create(
        cls,
        *,
        source: str,
        target: str,
        timestamp: datetime | None = None,
        payload: dict[str, Any] | None = None,
        resource_id: str | None = None,
        resource_type: str | None = None,
        source_title: str | None = None,
        source_site_title: str | None = None,
        source_author: str | None = None,
        source_excerpt: str | None = None,
        source_favicon: str | None = None,
        source_featured_image: str | None = None,
        verified: bool | None = None,
        id: str | None = None,
    ) -> Mention:
        created_at = timestamp or datetime.now(timezone.utc)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            id=id or str(uuid4()),
            source=require_absolute_url(source, field="source"),
            target=require_absolute_url(target, field="target"),
            timestamp=created_at,
            payload=dict(payload or {}),
            resource_id=resource_id if resource_type else None,
            resource_type=resource_type if resource_id else None,
            source_title=source_title,
            source_site_title=source_site_title,
            source_author=source_author,
            source_excerpt=source_excerpt,
            source_favicon=source_favicon,
            source_featured_image=source_featured_image,
            verified=verified,
        )

    def set_source_metadata(
        self,
        *,
        source_title: str | None,
        source_site_title: str | None,
        source_author: str | None,
        source_excerpt: str | None,
        source_favicon: str | None,
        source_featured_image: str | None,
    ) -> None:
        self.source_title = source_title
        self.source_site_title = source_site_title
        self.source_author = source_author
        self.source_excerpt = source_excerpt
        self.source_favicon = source_favicon
        self.source_featured_image = source_featured_image

    def set_payload(self, payload: dict[str, Any] | None) -> None:
        self.payload = dict(payload or {})

    def verify(self, is_verified: bool) -> None:
        self.verified = bool(is_verified)

    def delete(self) -> None:
        self.deleted = True
