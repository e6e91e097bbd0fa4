"""
In-memory aggregate store.

Keeps documents and their version counters in dicts.  Suitable for tests,
single-process deployments, and as the reference implementation of the
store contract.
"""

from typing import Any

from .base import AggregateStore


class InMemoryAggregateStore(AggregateStore):
    """Dict-backed aggregate store with optimistic transactions."""

    def __init__(self, **config):
        super().__init__(**config)
        self._documents: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, int] = {}

    async def _read(self, path: str) -> tuple[dict[str, Any] | None, int]:
        return self._documents.get(path), self._versions.get(path, 0)

    async def _write(self, path: str, document: dict[str, Any] | None, version: int) -> None:
        self._versions[path] = version
        if document is None:
            self._documents.pop(path, None)
        else:
            self._documents[path] = document

    async def _list_documents(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        prefix = collection + "/"
        return [
            (path[len(prefix) :], document)
            for path, document in self._documents.items()
            if path.startswith(prefix) and "/" not in path[len(prefix) :]
        ]

    async def _list_ids(self, collection: str) -> list[str]:
        prefix = collection + "/"
        return list({path[len(prefix) :].split("/", 1)[0] for path in self._documents if path.startswith(prefix)})

    def __len__(self) -> int:
        return len(self._documents)
