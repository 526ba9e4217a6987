from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import urlparse

from webmentions.core.urls import same_origin
from webmentions.services.transport import ExternalRequest, TransportError

logger = logging.getLogger(__name__)


class RoutingService(Protocol):
    async def page_exists(self, url: str) -> bool: ...


class SiteRoutingService:
    """A URL is a page of this site when it shares the site's origin and path
    prefix, and the site serves it without an error status."""

    def __init__(self, site_url: str, transport: ExternalRequest, *, max_redirects: int = 10) -> None:
        self.site_url = site_url
        self.transport = transport
        self.max_redirects = max_redirects

    def is_site_url(self, url: str) -> bool:
        if not same_origin(url, self.site_url):
            return False
        site_prefix = _path_of(self.site_url)
        return _path_of(url).startswith(site_prefix)

    async def page_exists(self, url: str) -> bool:
        if not self.is_site_url(url):
            logger.info("rejecting target outside site url=%s site=%s", url, self.site_url)
            return False
        try:
            response = await self.transport.request(
                url,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                throw_http_errors=False,
            )
        except TransportError:
            logger.warning("target page lookup failed url=%s", url, exc_info=True)
            return False
        if not same_origin(response.url, self.site_url):
            return False
        return response.status_code < 400


def _path_of(url: str) -> str:
    path = urlparse(url).path or "/"
    return path if path.endswith("/") else f"{path}/"
