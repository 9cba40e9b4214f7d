"""In-memory PersistentStore for development and tests.

Documents are plain dicts.  Every read and write deep-copies, so callers can
never mutate stored state without going through a patch.
"""

from __future__ import annotations

import copy
import logging
import operator
import uuid
from typing import Any, Optional

from .base import Patch, PathSegment, PersistentStore, Query, parse_path

log = logging.getLogger("meetings.store.memory")

_COMPARE = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}

_MISSING = object()


def _lookup(doc: dict[str, Any], dotted: str) -> Any:
    value: Any = doc
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _matches(doc: dict[str, Any], query: Query) -> bool:
    if doc.get("_type") != query.doc_type:
        return False
    for path, op, expected in query.where:
        value = _lookup(doc, path)
        if value is _MISSING or value is None:
            # Missing and null fields only satisfy (in)equality against None.
            if op == "==" and expected is None:
                continue
            if op == "!=" and expected is not None:
                continue
            return False
        try:
            if not _COMPARE[op](value, expected):
                return False
        except TypeError:
            return False
    return True


def _select(container: Any, segment: PathSegment, create: bool) -> Any:
    """Resolve one segment against a dict; returns _MISSING if absent."""
    if not isinstance(container, dict):
        return _MISSING
    if segment.name not in container:
        if not create:
            return _MISSING
        container[segment.name] = [] if segment.match else {}
    value = container[segment.name]
    if segment.match is None:
        return value
    attr, wanted = segment.match
    if not isinstance(value, list):
        return _MISSING
    for item in value:
        if isinstance(item, dict) and str(item.get(attr)) == wanted:
            return item
    return _MISSING


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    segments = parse_path(path)
    container: Any = doc
    for segment in segments[:-1]:
        container = _select(container, segment, create=True)
        if container is _MISSING:
            # Selector matched nothing: nothing to set.
            return
    last = segments[-1]
    if last.match is None:
        container[last.name] = copy.deepcopy(value)
        return
    item = _select(container, last, create=False)
    if item is not _MISSING:
        item.clear()
        item.update(copy.deepcopy(value))


def _unset_path(doc: dict[str, Any], path: str) -> None:
    segments = parse_path(path)
    container: Any = doc
    for segment in segments[:-1]:
        container = _select(container, segment, create=False)
        if container is _MISSING:
            return
    last = segments[-1]
    if not isinstance(container, dict) or last.name not in container:
        return
    if last.match is None:
        del container[last.name]
        return
    attr, wanted = last.match
    container[last.name] = [
        item
        for item in container[last.name]
        if not (isinstance(item, dict) and str(item.get(attr)) == wanted)
    ]


def _append_path(doc: dict[str, Any], path: str, items: list[Any]) -> None:
    segments = parse_path(path)
    container: Any = doc
    for segment in segments[:-1]:
        container = _select(container, segment, create=True)
        if container is _MISSING:
            return
    last = segments[-1]
    target = container.setdefault(last.name, [])
    if not isinstance(target, list):
        raise ValueError(f"Cannot append to non-array path {path!r}")
    target.extend(copy.deepcopy(items))


class MemoryStore(PersistentStore):
    """Dict-backed store.

    Nothing here awaits while touching documents, so each patch is applied
    atomically with respect to other coroutines.
    """

    def __init__(self, documents: Optional[list[dict[str, Any]]] = None) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        for doc in documents or []:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", uuid.uuid4().hex)
            self._docs[doc["_id"]] = doc

    def _run(self, query: Query) -> list[dict[str, Any]]:
        found = [doc for doc in self._docs.values() if _matches(doc, query)]
        if query.order_by:
            present = [d for d in found if _lookup(d, query.order_by) not in (_MISSING, None)]
            absent = [d for d in found if _lookup(d, query.order_by) in (_MISSING, None)]
            present.sort(key=lambda d: _lookup(d, query.order_by), reverse=query.descending)
            found = present + absent
        if query.limit is not None:
            found = found[: query.limit]
        return found

    async def fetch_one(self, query: Query) -> Optional[dict[str, Any]]:
        found = self._run(query)
        return copy.deepcopy(found[0]) if found else None

    async def fetch_many(self, query: Query) -> list[dict[str, Any]]:
        return [copy.deepcopy(doc) for doc in self._run(query)]

    async def count(self, query: Query) -> int:
        return len(self._run(query))

    async def create(self, document: dict[str, Any]) -> str:
        if "_type" not in document:
            raise ValueError("Documents need a _type")
        doc = copy.deepcopy(document)
        doc_id = doc.setdefault("_id", uuid.uuid4().hex)
        if doc_id in self._docs:
            raise ValueError(f"Document {doc_id} already exists")
        self._docs[doc_id] = doc
        log.debug("Created %s %s", doc["_type"], doc_id)
        return doc_id

    async def apply_patch(self, patch: Patch) -> dict[str, Any]:
        current = self._docs.get(patch.doc_id)
        if current is None:
            raise KeyError(patch.doc_id)
        # Work on a copy so a failing operation leaves the document intact.
        doc = copy.deepcopy(current)
        for kind, payload in patch.operations:
            if kind == "set":
                for path, value in payload.items():
                    _set_path(doc, path, value)
            elif kind == "unset":
                for path in payload:
                    _unset_path(doc, path)
            elif kind == "append":
                path, items = payload
                _append_path(doc, path, items)
        self._docs[patch.doc_id] = doc
        return copy.deepcopy(doc)

    async def delete(self, doc_id: str) -> None:
        self._docs.pop(doc_id, None)
