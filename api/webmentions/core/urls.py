from urllib.parse import urlparse, urlsplit, urlunsplit

ALLOWED_SCHEMES = {"http", "https"}


def is_absolute_http_url(raw_url: str) -> bool:
    parsed = urlparse(raw_url.strip())
    return parsed.scheme.lower() in ALLOWED_SCHEMES and bool(parsed.netloc)


def require_absolute_url(raw_url: str, *, field: str = "url") -> str:
    """Return the canonical form of an absolute http(s) URL, or raise ValueError."""
    if not isinstance(raw_url, str) or not is_absolute_http_url(raw_url):
        raise ValueError(f"{field} must be an absolute http(s) URL")
    try:
        return canonical_url(raw_url)
    except ValueError as exc:
        raise ValueError(f"{field} must be an absolute http(s) URL") from exc


def canonical_url(raw_url: str) -> str:
    """Serialize a URL with lowercase scheme and host, no default port and ``/`` for an empty path.

    Two spellings of the same page produce the same string, so the result is
    usable as an identity key and as the exact ``href`` a linking page carries.
    """
    parts = urlsplit(raw_url.strip())
    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    if port is not None and port != _effective_port(scheme, None):
        host = f"{host}:{port}"
    userinfo, separator, _ = parts.netloc.rpartition("@")
    netloc = f"{userinfo}@{host}" if separator else host
    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))


def url_host(raw_url: str | None) -> str | None:
    if not raw_url:
        return None
    host = urlparse(raw_url).hostname
    return host.lower() if host else None


def same_origin(left: str, right: str) -> bool:
    left_parsed = urlparse(left)
    right_parsed = urlparse(right)
    return (
        left_parsed.scheme.lower() == right_parsed.scheme.lower()
        and url_host(left) == url_host(right)
        and _effective_port(left_parsed.scheme, left_parsed.port) == _effective_port(right_parsed.scheme, right_parsed.port)
    )


def _effective_port(scheme: str, port: int | None) -> int | None:
    if port is not None:
        return port
    if scheme.lower() == "http":
        return 80
    if scheme.lower() == "https":
        return 443
    return None
