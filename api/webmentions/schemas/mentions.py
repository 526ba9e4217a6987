from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from webmentions.services.mention import Mention
from webmentions.services.pagination import Page


class WebmentionRequest(BaseModel):
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class MentionOut(BaseModel):
    id: str
    source: str
    target: str
    created_at: datetime
    payload: dict[str, Any] = Field(default_factory=dict)
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
    def from_entity(cls, mention: Mention) -> "MentionOut":
        return cls(
            id=mention.id,
            source=mention.source,
            target=mention.target,
            created_at=mention.timestamp,
            payload=mention.payload,
            resource_id=mention.resource_id,
            resource_type=mention.resource_type,
            source_title=mention.source_title,
            source_site_title=mention.source_site_title,
            source_author=mention.source_author,
            source_excerpt=mention.source_excerpt,
            source_favicon=mention.source_favicon,
            source_featured_image=mention.source_featured_image,
            verified=mention.verified,
            deleted=mention.deleted,
        )


class PaginationOut(BaseModel):
    page: int
    pages: int
    limit: int | Literal["all"]
    total: int
    prev: int | None = None
    next: int | None = None


class PageMetaOut(BaseModel):
    pagination: PaginationOut


class MentionPageOut(BaseModel):
    data: list[MentionOut] = Field(default_factory=list)
    meta: PageMetaOut

    @classmethod
    def from_page(cls, page: Page[Mention]) -> "MentionPageOut":
        pagination = page.pagination
        return cls(
            data=[MentionOut.from_entity(mention) for mention in page.data],
            meta=PageMetaOut(
                pagination=PaginationOut(
                    page=pagination.page,
                    pages=pagination.pages,
                    limit=pagination.limit,
                    total=pagination.total,
                    prev=pagination.prev,
                    next=pagination.next,
                )
            ),
        )
