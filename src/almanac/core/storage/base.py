"""
Abstract base class for aggregate stores.

An aggregate store is a transactional document database addressed by
slash-separated logical paths (``collection/doc/collection/doc``).  Backends
implement a handful of versioned primitives; the public API (merge with
field transforms, optimistic transactions, queries) is shared here.

Nested updates are expressed structurally, never as dotted strings::

    await store.merge(path, {"periods": {key: {"entry_count": Increment(1)}}})
"""

import asyncio
import copy
import operator
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

from almanac.core.exceptions import DocumentNotFound, InvalidPath, TransactionConflict

T = TypeVar("T")

Filter = tuple[str | Sequence[str], str, Any]
"""``(field, op, value)`` — field is a key or a sequence of nested keys."""

# ── Field transforms ────────────────────────────────────────────────


class FieldTransform(ABC):
    """A leaf value in a merge that computes the new value from the current one."""

    @abstractmethod
    def apply(self, current: Any) -> Any:
        """New field value given the current one (None when missing)."""


@dataclass(frozen=True)
class Increment(FieldTransform):
    """Add ``amount`` to a numeric field (missing or non-numeric counts as 0)."""

    amount: int | float = 1

    def apply(self, current: Any) -> Any:
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            return self.amount
        return current + self.amount


@dataclass(frozen=True)
class Minimum(FieldTransform):
    """Keep the smaller of the current value and ``value``."""

    value: int | float

    def apply(self, current: Any) -> Any:
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            return self.value
        return min(current, self.value)


@dataclass(frozen=True)
class Maximum(FieldTransform):
    """Keep the larger of the current value and ``value``."""

    value: int | float

    def apply(self, current: Any) -> Any:
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            return self.value
        return max(current, self.value)


@dataclass(frozen=True)
class Replace(FieldTransform):
    """Overwrite a field wholesale instead of deep-merging into it."""

    value: Any

    def apply(self, current: Any) -> Any:
        return copy.deepcopy(self.value)


class _DeleteField:
    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()
"""Merge sentinel that removes the key it is assigned to."""


def merge_fields(document: Mapping[str, Any] | None, fields: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``document`` with ``fields`` deep-merged in."""
    result = copy.deepcopy(dict(document)) if document else {}
    _merge_into(result, fields)
    return result


def _merge_into(target: dict[str, Any], fields: Mapping[str, Any]) -> None:
    for key, value in fields.items():
        if not isinstance(key, str) or not key:
            raise InvalidPath(f"Field names must be non-empty strings, got {key!r}")
        if value is DELETE_FIELD:
            target.pop(key, None)
        elif isinstance(value, FieldTransform):
            target[key] = value.apply(target.get(key))
        elif isinstance(value, Mapping):
            existing = target.get(key)
            if not isinstance(existing, dict):
                existing = {}
                target[key] = existing
            _merge_into(existing, value)
        else:
            target[key] = copy.deepcopy(value)


def delete_fields(document: Mapping[str, Any], fields: Iterable[Sequence[str]]) -> dict[str, Any]:
    """Return a copy of ``document`` with each nested key path removed."""
    result = copy.deepcopy(dict(document))
    for key_path in fields:
        if not key_path:
            raise InvalidPath("Field path to delete cannot be empty")
        current: Any = result
        for part in key_path[:-1]:
            current = current.get(part) if isinstance(current, dict) else None
            if current is None:
                break
        if isinstance(current, dict):
            current.pop(key_path[-1], None)
    return result


def get_field(document: Mapping[str, Any], field: str | Sequence[str]) -> Any:
    """Read a possibly nested field; returns None when any level is missing."""
    parts = (field,) if isinstance(field, str) else tuple(field)
    current: Any = document
    for part in parts:
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


# ── Paths ───────────────────────────────────────────────────────────


def split_path(path: str) -> list[str]:
    """Validate a logical path and split it into segments."""
    if not isinstance(path, str) or not path.strip("/"):
        raise InvalidPath("Path cannot be empty.")
    if "\x00" in path or "\\" in path:
        raise InvalidPath(f"Unsafe path {path!r}: null bytes and backslashes are not allowed.")
    segments = path.strip("/").split("/")
    for segment in segments:
        if not segment or segment in (".", ".."):
            raise InvalidPath(f"Unsafe path {path!r}: empty or relative segments are not allowed.")
    return segments


def document_path(path: str) -> str:
    """Normalize and validate a document path (even number of segments)."""
    segments = split_path(path)
    if len(segments) % 2 != 0:
        raise InvalidPath(f"{path!r} is a collection path, expected a document path.")
    return "/".join(segments)


def collection_path(path: str) -> str:
    """Normalize and validate a collection path (odd number of segments)."""
    segments = split_path(path)
    if len(segments) % 2 != 1:
        raise InvalidPath(f"{path!r} is a document path, expected a collection path.")
    return "/".join(segments)


# ── Queries ─────────────────────────────────────────────────────────

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}


def _matches(document: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    for field, op, expected in filters:
        compare = _OPERATORS.get(op)
        if compare is None:
            raise ValueError(f"Unsupported query operator: {op!r}")
        actual = get_field(document, field)
        if actual is None:
            return False
        try:
            if not compare(actual, expected):
                return False
        except TypeError:
            return False
    return True


# ── Transactions ────────────────────────────────────────────────────


class Transaction:
    """Read/write handle passed to a transaction body.

    Reads record the version they observed; writes are staged and only
    applied by the store at commit, all at once, if none of the documents
    read have changed in the meantime.
    """

    def __init__(self, store: "AggregateStore"):
        self._store = store
        self._reads: dict[str, int] = {}
        self._writes: dict[str, dict[str, Any] | None] = {}

    async def get(self, path: str) -> dict[str, Any] | None:
        path = document_path(path)
        if path in self._writes:
            return copy.deepcopy(self._writes[path])
        document, version = await self._store._read(path)
        self._reads.setdefault(path, version)
        return copy.deepcopy(document)

    def set(self, path: str, document: Mapping[str, Any]) -> None:
        self._writes[document_path(path)] = copy.deepcopy(dict(document))

    async def merge(self, path: str, fields: Mapping[str, Any]) -> None:
        current = await self.get(path)
        self._writes[document_path(path)] = merge_fields(current, fields)

    def delete(self, path: str) -> None:
        self._writes[document_path(path)] = None


# ── Store ───────────────────────────────────────────────────────────


class AggregateStore(ABC):
    """Abstract base class for transactional document stores.

    Subclasses implement the versioned primitives ``_read``, ``_write``,
    ``_list_documents`` and ``_list_ids``.  Every committing section runs
    under one lock, so single-document merges are atomic and transactions
    see a consistent version check.
    """

    def __init__(self, max_attempts: int = 5, **config):
        self.config = config
        self.max_attempts = max_attempts
        self._commit_lock = asyncio.Lock()

    # -- primitives ---------------------------------------------------------

    @abstractmethod
    async def _read(self, path: str) -> tuple[dict[str, Any] | None, int]:
        """Return ``(document or None, version)`` for a normalized document path."""

    @abstractmethod
    async def _write(self, path: str, document: dict[str, Any] | None, version: int) -> None:
        """Persist a document (None = deleted) with its new version."""

    @abstractmethod
    async def _list_documents(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        """Return ``(id, document)`` pairs stored directly under a collection."""

    @abstractmethod
    async def _list_ids(self, collection: str) -> list[str]:
        """Return ids of documents or sub-trees directly under a collection."""

    # -- public API ---------------------------------------------------------

    async def get(self, path: str) -> dict[str, Any] | None:
        """Read a document. Returns None when it doesn't exist."""
        document, _ = await self._read(document_path(path))
        return copy.deepcopy(document)

    async def require(self, path: str) -> dict[str, Any]:
        """Read a document. Raises DocumentNotFound when it doesn't exist."""
        document = await self.get(path)
        if document is None:
            raise DocumentNotFound(f"Document not found: {path}")
        return document

    async def set(self, path: str, document: Mapping[str, Any]) -> None:
        """Create or overwrite a document."""
        path = document_path(path)
        async with self._commit_lock:
            _, version = await self._read(path)
            await self._write(path, copy.deepcopy(dict(document)), version + 1)

    async def merge(self, path: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Upsert a document, deep-merging ``fields`` and applying field transforms.

        Returns the merged document.
        """
        path = document_path(path)
        async with self._commit_lock:
            current, version = await self._read(path)
            merged = merge_fields(current, fields)
            await self._write(path, merged, version + 1)
        return copy.deepcopy(merged)

    async def delete(self, path: str, fields: Iterable[Sequence[str]] | None = None) -> bool:
        """Delete a whole document, or only the given nested key paths.

        Returns True if the document existed.
        """
        path = document_path(path)
        async with self._commit_lock:
            current, version = await self._read(path)
            if current is None:
                return False
            updated = None if fields is None else delete_fields(current, fields)
            await self._write(path, updated, version + 1)
        return True

    async def transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        *,
        max_attempts: int | None = None,
    ) -> T:
        """Run ``fn`` as an optimistic read-modify-write transaction.

        ``fn`` may be re-run on conflict, so it must not have side effects
        outside the handle it receives.  Any exception raised by ``fn``
        aborts the attempt without committing and propagates.
        """
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            txn = Transaction(self)
            result = await fn(txn)
            if await self._commit(txn):
                return result
            logger.debug(f"Transaction conflict on {sorted(txn._reads)} (attempt {attempt}/{attempts})")
        raise TransactionConflict(f"Transaction failed after {attempts} attempts")

    async def _commit(self, txn: Transaction) -> bool:
        async with self._commit_lock:
            for path, seen_version in txn._reads.items():
                _, current_version = await self._read(path)
                if current_version != seen_version:
                    return False
            for path, document in txn._writes.items():
                _, version = await self._read(path)
                await self._write(path, document, version + 1)
        return True

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] | None = None,
        order_by: str | Sequence[str] | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return documents directly under ``collection`` matching all filters.

        Each result is a copy of the stored document with its id under ``_id``.
        Documents missing a filtered or ordered field are excluded.
        """
        collection = collection_path(collection)
        results = []
        for doc_id, document in await self._list_documents(collection):
            if filters and not _matches(document, filters):
                continue
            if order_by is not None and get_field(document, order_by) is None:
                continue
            results.append({**copy.deepcopy(document), "_id": doc_id})

        if order_by is not None:
            results.sort(key=lambda d: get_field(d, order_by), reverse=descending)
        if limit is not None:
            results = results[:limit]
        return results

    async def list_ids(self, collection: str) -> list[str]:
        """List ids of documents (or documents' sub-collections) under ``collection``."""
        return sorted(await self._list_ids(collection_path(collection)))
