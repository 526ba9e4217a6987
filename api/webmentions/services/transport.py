from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urljoin, urlparse

import httpx

REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
MAX_REDIRECT_HOPS = 10


class TransportError(Exception):
    """Raised when a page cannot be fetched."""


class FetchStatusError(TransportError):
    """Raised for HTTP error statuses when the caller asked for it."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"{url} responded with status {status_code}")
        self.url = url
        self.status_code = status_code


@dataclass(slots=True)
class FetchResponse:
    url: str
    status_code: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)
    redirect_chain: list[dict[str, object]] = field(default_factory=list)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";", maxsplit=1)[0].strip().lower()


class ExternalRequest(Protocol):
    async def request(
        self,
        url: str,
        *,
        follow_redirects: bool = True,
        max_redirects: int = MAX_REDIRECT_HOPS,
        throw_http_errors: bool = False,
    ) -> FetchResponse: ...


class HttpTransport:
    """Fetches pages with httpx, following redirects hop by hop."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        user_agent: str = "webmentions-receiver/1.0",
    ) -> None:
        self._client = client
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent

    async def request(
        self,
        url: str,
        *,
        follow_redirects: bool = True,
        max_redirects: int = MAX_REDIRECT_HOPS,
        throw_http_errors: bool = False,
    ) -> FetchResponse:
        max_hops = max(0, max_redirects) if follow_redirects else 0
        try:
            if self._client is not None:
                response = await _fetch_following_redirects(
                    client=self._client, url=url, max_hops=max_hops, user_agent=self.user_agent
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=False) as temp_client:
                    response = await _fetch_following_redirects(
                        client=temp_client, url=url, max_hops=max_hops, user_agent=self.user_agent
                    )
        except httpx.HTTPError as exc:
            raise TransportError(f"request to {url} failed: {exc}") from exc

        if throw_http_errors and response.status_code >= 400:
            raise FetchStatusError(response.url, response.status_code)
        return response


async def _fetch_following_redirects(
    *,
    client: httpx.AsyncClient,
    url: str,
    max_hops: int,
    user_agent: str,
) -> FetchResponse:
    current_url = url
    seen_urls: set[str] = set()
    redirect_chain: list[dict[str, object]] = []

    while True:
        parsed = urlparse(current_url)
        if parsed.scheme.lower() not in {"http", "https"}:
            raise TransportError(f"unsupported scheme for {current_url}")
        if current_url in seen_urls:
            raise TransportError(f"redirect loop detected at {current_url}")
        seen_urls.add(current_url)

        response = await client.get(current_url, headers={"User-Agent": user_agent})
        location = response.headers.get("location")
        if response.status_code in REDIRECT_STATUS_CODES and location and max_hops > 0:
            if len(redirect_chain) >= max_hops:
                raise TransportError(f"redirect hop limit of {max_hops} exceeded for {url}")
            next_url = urljoin(str(response.url), location)
            redirect_chain.append(
                {
                    "from_url": str(response.url),
                    "to_url": next_url,
                    "status_code": int(response.status_code),
                }
            )
            current_url = next_url
            continue

        return FetchResponse(
            url=str(response.url),
            status_code=int(response.status_code),
            body=response.text,
            headers={key.lower(): value for key, value in response.headers.items()},
            redirect_chain=redirect_chain,
        )
