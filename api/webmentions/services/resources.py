from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlparse


@dataclass(frozen=True, slots=True)
class ResourceResult:
    type: str | None = None
    id: str | None = None


class ResourceService(Protocol):
    async def get_by_url(self, url: str) -> ResourceResult: ...


class StaticResourceService:
    """Resolves target URLs to resources from a fixed path -> resource map."""

    def __init__(self, resources: dict[str, ResourceResult] | None = None) -> None:
        self._resources: dict[str, ResourceResult] = {}
        for path, resource in (resources or {}).items():
            self.register(path, resource)

    def register(self, url_or_path: str, resource: ResourceResult) -> None:
        self._resources[_resource_key(url_or_path)] = resource

    async def get_by_url(self, url: str) -> ResourceResult:
        return self._resources.get(_resource_key(url), ResourceResult())


def parse_resource_map(raw: str | None) -> dict[str, ResourceResult]:
    """Decode ``{"/path/": {"type": "post", "id": "..."}}``; bad entries are skipped."""
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(decoded, dict):
        return {}

    parsed: dict[str, ResourceResult] = {}
    for raw_path, raw_resource in decoded.items():
        if not isinstance(raw_path, str) or not raw_path.strip() or not isinstance(raw_resource, dict):
            continue
        resource_type = _as_text(raw_resource.get("type"))
        resource_id = _as_text(raw_resource.get("id"))
        if resource_type is None or resource_id is None:
            continue
        parsed[raw_path.strip()] = ResourceResult(type=resource_type, id=resource_id)
    return parsed


def _resource_key(url_or_path: str) -> str:
    path = urlparse(url_or_path.strip()).path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    return path


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None
