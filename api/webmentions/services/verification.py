from __future__ import annotations

from typing import Protocol

from bs4 import BeautifulSoup


class SourceDocument(Protocol):
    body: str


def verify_target_in_source(document: SourceDocument, target: str) -> bool:
    """True when the document has an anchor whose ``href`` is exactly ``target``."""
    body = getattr(document, "body", None)
    if not body:
        return False
    soup = BeautifulSoup(body, "html.parser")
    return any(anchor.get("href") == target for anchor in soup.find_all("a", href=True))
