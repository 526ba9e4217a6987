from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from webmentions.services.transport import ExternalRequest, TransportError

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = {"", "text/html", "application/xhtml+xml"}
EXCERPT_MAX_LENGTH = 500


class MetadataFetchError(Exception):
    """Raised when a source page cannot be scraped."""


@dataclass(slots=True)
class WebmentionMetadata:
    site_title: str | None = None
    title: str | None = None
    excerpt: str | None = None
    author: str | None = None
    image: str | None = None
    favicon: str | None = None


class MetadataService(Protocol):
    async def fetch(self, url: str) -> WebmentionMetadata: ...


class HtmlMetadataService:
    """Scrapes OpenGraph, Twitter card and standard meta tags from a page."""

    def __init__(self, transport: ExternalRequest, *, max_redirects: int = 10) -> None:
        self.transport = transport
        self.max_redirects = max_redirects

    async def fetch(self, url: str) -> WebmentionMetadata:
        try:
            response = await self.transport.request(
                url,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                throw_http_errors=True,
            )
        except TransportError as exc:
            raise MetadataFetchError(f"could not fetch {url}: {exc}") from exc

        if response.content_type not in HTML_CONTENT_TYPES:
            raise MetadataFetchError(f"{url} is not an HTML page (content-type {response.content_type})")

        metadata = extract_metadata(response.body, base_url=response.url)
        logger.debug("scraped metadata for %s title=%r", url, metadata.title)
        return metadata


def extract_metadata(html: str, *, base_url: str) -> WebmentionMetadata:
    soup = BeautifulSoup(html or "", "html.parser")

    def meta(*names: str) -> str | None:
        for name in names:
            tag = soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})
            if tag is not None:
                content = _clean(tag.get("content"))
                if content:
                    return content
        return None

    title_tag = soup.find("title")
    title = meta("og:title", "twitter:title") or _clean(title_tag.get_text() if title_tag else None)
    excerpt = meta("og:description", "twitter:description", "description")
    if excerpt and len(excerpt) > EXCERPT_MAX_LENGTH:
        excerpt = excerpt[:EXCERPT_MAX_LENGTH].rstrip()

    image = meta("og:image", "og:image:url", "twitter:image", "twitter:image:src")
    return WebmentionMetadata(
        site_title=meta("og:site_name", "application-name"),
        title=title,
        excerpt=excerpt,
        author=meta("author", "article:author", "twitter:creator"),
        image=urljoin(base_url, image) if image else None,
        favicon=urljoin(base_url, _favicon_href(soup) or "/favicon.ico"),
    )


def _favicon_href(soup: BeautifulSoup) -> str | None:
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        rel_values = {value.lower() for value in (rel if isinstance(rel, list) else str(rel).split())}
        if rel_values & {"icon", "apple-touch-icon"}:
            return _clean(link.get("href"))
    return None


def _clean(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    collapsed = " ".join(value.split())
    return collapsed or None
