"""Abstract document store.

The scheduling core needs only a few operations from its storage backend:
query documents, create one, patch one, delete one.  Each patch commit is
atomic for its document; there are no multi-document transactions, so any
operation that touches several documents (or several patches of one
document) must tolerate a crash between steps.

Patch paths use a small selector syntax::

    "availability"                                  top-level field
    "slug.current"                                  nested field
    'connected_accounts[_key=="abc"].is_default'    field of an array item
    'connected_accounts[_key=="abc"]'               the array item itself
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in")

_SEGMENT = re.compile(r'^(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<attr>[A-Za-z_][A-Za-z0-9_]*)=="(?P<value>[^"]*)"\])?$')


@dataclass
class Query:
    """Selects documents of one type by a conjunction of conditions."""

    doc_type: str
    where: list[tuple[str, str, Any]] = field(default_factory=list)
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        for _, op, _ in self.where:
            if op not in OPERATORS:
                raise ValueError(f"Unsupported query operator: {op!r}")


@dataclass
class PathSegment:
    name: str
    match: Optional[tuple[str, str]] = None  # (attr, value) array-item selector


def parse_path(path: str) -> list[PathSegment]:
    """Split a patch path into segments. Raises ValueError on bad syntax."""
    segments = []
    # Split on dots that are outside a [...] selector.
    for part in re.split(r'\.(?![^\[]*\])', path):
        m = _SEGMENT.match(part)
        if not m:
            raise ValueError(f"Invalid patch path: {path!r}")
        match = (m["attr"], m["value"]) if m["attr"] else None
        segments.append(PathSegment(m["name"], match))
    return segments


class Patch:
    """Accumulates operations for one document; applied by ``commit()``.

    Operations are applied in the order they were added.
    """

    def __init__(self, store: "PersistentStore", doc_id: str) -> None:
        self._store = store
        self.doc_id = doc_id
        self.operations: list[tuple[str, Any]] = []

    def set(self, fields: dict[str, Any]) -> "Patch":
        self.operations.append(("set", dict(fields)))
        return self

    def unset(self, paths: list[str]) -> "Patch":
        self.operations.append(("unset", list(paths)))
        return self

    def append(self, array_path: str, items: list[Any]) -> "Patch":
        self.operations.append(("append", (array_path, list(items))))
        return self

    async def commit(self) -> dict[str, Any]:
        """Apply all operations atomically and return the updated document."""
        return await self._store.apply_patch(self)


class PersistentStore(ABC):
    """Abstract storage backend for host, booking and meeting-type documents."""

    @abstractmethod
    async def fetch_one(self, query: Query) -> Optional[dict[str, Any]]:
        """Return the first matching document, or None."""

    @abstractmethod
    async def fetch_many(self, query: Query) -> list[dict[str, Any]]:
        """Return all matching documents in query order."""

    @abstractmethod
    async def count(self, query: Query) -> int:
        """Return the number of matching documents."""

    @abstractmethod
    async def create(self, document: dict[str, Any]) -> str:
        """Insert a document (``_type`` required) and return its ``_id``."""

    @abstractmethod
    async def apply_patch(self, patch: Patch) -> dict[str, Any]:
        """Apply a committed patch. Raises KeyError if the document is gone."""

    @abstractmethod
    async def delete(self, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""

    def patch(self, doc_id: str) -> Patch:
        return Patch(self, doc_id)
