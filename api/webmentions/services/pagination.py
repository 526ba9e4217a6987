"""List options, filter expressions and page framing for mention listings.

Options come in two shapes so that callers cannot mix the modes up:

* ``BoundedPage`` - a numeric ``limit`` with a 1-based ``page``.
* ``UnboundedPage`` - every matching record in a single page (``limit=all``).

Filters use a small NQL subset: ``key:value`` clauses joined by ``+``, with
``key:-value`` for negation and ``key:[a,b]`` for membership.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from webmentions.core.urls import url_host
from webmentions.services.mention import Mention

T = TypeVar("T")

DEFAULT_LIMIT = 15
SortDir = Literal["asc", "desc"]


class InvalidListOptionsError(ValueError):
    """Raised when filter, order, limit or page cannot be interpreted."""


FILTER_FIELDS: dict[str, Callable[[Mention], Any]] = {
    "id": lambda mention: mention.id,
    "source": lambda mention: mention.source,
    "target": lambda mention: mention.target,
    "resource_id": lambda mention: mention.resource_id,
    "resource_type": lambda mention: mention.resource_type,
    "verified": lambda mention: mention.verified,
    "source.host": lambda mention: url_host(mention.source),
    "target.host": lambda mention: url_host(mention.target),
}
HOST_FIELDS = {"source.host", "target.host"}
BOOLEAN_FIELDS = {"verified"}

# created_at is the public name for the creation timestamp
ORDER_FIELDS = {
    "created_at": "timestamp",
    "timestamp": "timestamp",
    "source": "source",
    "target": "target",
    "verified": "verified",
}


@dataclass(frozen=True, slots=True)
class FilterClause:
    key: str
    values: tuple[Any, ...]
    negate: bool = False

    def matches(self, mention: Mention) -> bool:
        actual = FILTER_FIELDS[self.key](mention)
        if self.key in HOST_FIELDS and isinstance(actual, str):
            actual = actual.lower()
        hit = actual in self.values
        return not hit if self.negate else hit


@dataclass(frozen=True, slots=True)
class MentionFilter:
    clauses: tuple[FilterClause, ...] = ()

    @classmethod
    def parse(cls, raw: str | None) -> MentionFilter:
        if raw is None or not raw.strip():
            return cls()
        return cls(tuple(_parse_clause(chunk) for chunk in _split_outside(raw, "+")))

    def matches(self, mention: Mention) -> bool:
        return all(clause.matches(mention) for clause in self.clauses)


@dataclass(frozen=True, slots=True)
class OrderSpec:
    key: str = "created_at"
    direction: SortDir = "desc"

    @property
    def attribute(self) -> str:
        return ORDER_FIELDS[self.key]

    @classmethod
    def parse(cls, raw: str | None) -> OrderSpec:
        if raw is None or not raw.strip():
            return cls()
        parts = raw.split()
        if len(parts) > 2:
            raise InvalidListOptionsError(f"invalid order: {raw!r}")
        order_field = parts[0].lower()
        direction = parts[1].lower() if len(parts) == 2 else "asc"
        if order_field not in ORDER_FIELDS:
            raise InvalidListOptionsError(f"cannot order by {order_field!r}")
        if direction not in {"asc", "desc"}:
            raise InvalidListOptionsError(f"invalid order direction: {direction!r}")
        return cls(key=order_field, direction=direction)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class BoundedPage:
    limit: int
    page: int = 1
    filter: MentionFilter = field(default_factory=MentionFilter)
    order: OrderSpec = field(default_factory=OrderSpec)

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise InvalidListOptionsError("limit must be a positive integer")
        if self.page < 1:
            raise InvalidListOptionsError("page must be a positive integer")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True, slots=True)
class UnboundedPage:
    filter: MentionFilter = field(default_factory=MentionFilter)
    order: OrderSpec = field(default_factory=OrderSpec)


GetPageOptions = BoundedPage | UnboundedPage


@dataclass(slots=True)
class Pagination:
    page: int
    pages: int
    limit: int | Literal["all"]
    total: int
    prev: int | None
    next: int | None

    @classmethod
    def for_options(cls, options: GetPageOptions, total: int) -> Pagination:
        if isinstance(options, UnboundedPage):
            return cls(page=1, pages=1, limit="all", total=total, prev=None, next=None)
        pages = max(1, math.ceil(total / options.limit))
        return cls(
            page=options.page,
            pages=pages,
            limit=options.limit,
            total=total,
            prev=options.page - 1 if options.page > 1 else None,
            next=options.page + 1 if options.page < pages else None,
        )


@dataclass(slots=True)
class Page(Generic[T]):
    data: list[T]
    pagination: Pagination

    @property
    def meta(self) -> dict[str, Pagination]:
        return {"pagination": self.pagination}


def parse_list_options(
    *,
    limit: str | int | None = None,
    page: str | int | None = None,
    filter: str | None = None,
    order: str | None = None,
) -> GetPageOptions:
    mention_filter = MentionFilter.parse(filter)
    order_spec = OrderSpec.parse(order)
    if isinstance(limit, str) and limit.strip().lower() == "all":
        return UnboundedPage(filter=mention_filter, order=order_spec)
    return BoundedPage(
        limit=_positive_int(limit, name="limit", default=DEFAULT_LIMIT),
        page=_positive_int(page, name="page", default=1),
        filter=mention_filter,
        order=order_spec,
    )


def paginate(mentions: Iterable[Mention], options: GetPageOptions) -> Page[Mention]:
    """Filter, order and slice mentions given in insertion order."""
    matching = [mention for mention in mentions if not mention.deleted and options.filter.matches(mention)]
    ordered = sort_mentions(matching, options.order)
    total = len(ordered)
    if isinstance(options, BoundedPage):
        ordered = ordered[options.offset : options.offset + options.limit]
    return Page(data=ordered, pagination=Pagination.for_options(options, total))


def sort_mentions(mentions: Sequence[Mention], order: OrderSpec) -> list[Mention]:
    attribute = order.attribute
    # sorted() is stable even with reverse=True: ties keep insertion order.
    return sorted(
        mentions,
        key=lambda mention: _sort_key(getattr(mention, attribute)),
        reverse=order.direction == "desc",
    )


def _sort_key(value: Any) -> tuple[bool, Any]:
    if value is None:
        return (True, 0)
    return (False, value)


def _parse_clause(raw: str) -> FilterClause:
    key, separator, raw_value = raw.strip().partition(":")
    key = key.strip().lower()
    raw_value = raw_value.strip()
    if not separator or not key or not raw_value:
        raise InvalidListOptionsError(f"invalid filter clause: {raw!r}")
    if key not in FILTER_FIELDS:
        raise InvalidListOptionsError(f"cannot filter by {key!r}")

    negate = raw_value.startswith("-")
    if negate:
        raw_value = raw_value[1:].strip()

    if raw_value.startswith("[") and raw_value.endswith("]"):
        raw_items = [item for item in _split_outside(raw_value[1:-1], ",") if item.strip()]
        if not raw_items:
            raise InvalidListOptionsError(f"empty membership list in {raw!r}")
    else:
        raw_items = [raw_value]

    values = tuple(_coerce_value(key, _unquote(item.strip())) for item in raw_items)
    return FilterClause(key=key, values=values, negate=negate)


def _coerce_value(key: str, value: str) -> Any:
    if value.lower() == "null":
        return None
    if key in BOOLEAN_FIELDS:
        lowered = value.lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        raise InvalidListOptionsError(f"{key} expects true or false, got {value!r}")
    if key in HOST_FIELDS:
        return value.lower()
    return value


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _split_outside(raw: str, separator: str) -> list[str]:
    """Split on ``separator`` ignoring occurrences inside quotes or brackets."""
    parts: list[str] = []
    current: list[str] = []
    quote: str | None = None
    depth = 0
    for char in raw:
        if quote:
            if char == quote:
                quote = None
        elif char in {"'", '"'}:
            quote = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth = max(0, depth - 1)
        elif char == separator and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    if quote:
        raise InvalidListOptionsError(f"unterminated quote in {raw!r}")
    parts.append("".join(current))
    return parts


def _positive_int(value: str | int | None, *, name: str, default: int) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidListOptionsError(f"{name} must be a positive integer or 'all'") from exc
    if parsed < 1:
        raise InvalidListOptionsError(f"{name} must be a positive integer")
    return parsed
