"""
Local filesystem aggregate store.

One file per document at ``<base_path>/<logical path>.json``, written
asynchronously with aiofiles.  Deleted documents leave a tombstone so their
version counter survives and concurrent transactions still detect the change.

Transactions are serialized per store instance; do not point two processes
at the same directory.
"""

import os
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from almanac.core.exceptions import InvalidPath, StoreUnavailable

from .base import AggregateStore
from .codec import CompressionType, decode_document, encode_document

_SUFFIX = ".json"


class LocalAggregateStore(AggregateStore):
    """Aggregate store persisting JSON documents under a base directory."""

    def __init__(self, base_path: str = "~/.almanac-data/aggregates", compress: bool = False, **config):
        super().__init__(**config)
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.compression = CompressionType.GZIP if compress else CompressionType.NONE

    def _get_full_path(self, path: str, suffix: str = _SUFFIX) -> Path:
        """Resolve a logical path to a file path under ``base_path``.

        Paths have already been validated by the base class; this guards
        against anything that would still escape the base directory.
        """
        full_path = (self.base_path / (path + suffix)).resolve()
        try:
            full_path.relative_to(self.base_path)
        except ValueError as e:
            raise InvalidPath(f"Unsafe path '{path}': path traversal is not allowed.") from e
        return full_path

    async def _read(self, path: str) -> tuple[dict[str, Any] | None, int]:
        file_path = self._get_full_path(path)
        if not file_path.exists():
            return None, 0
        try:
            async with aiofiles.open(file_path, "rb") as f:
                data = await f.read()
        except OSError as e:
            raise StoreUnavailable(f"Cannot read {file_path}: {e}") from e
        return decode_document(data)

    async def _write(self, path: str, document: dict[str, Any] | None, version: int) -> None:
        file_path = self._get_full_path(path)
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(encode_document(document, version, self.compression))
            await aiofiles.os.replace(tmp_path, file_path)
        except OSError as e:
            raise StoreUnavailable(f"Cannot write {file_path}: {e}") from e

    async def _list_documents(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        directory = self._get_full_path(collection, suffix="")
        if not directory.is_dir():
            return []
        documents = []
        for name in sorted(os.listdir(directory)):
            if not name.endswith(_SUFFIX):
                continue
            doc_id = name[: -len(_SUFFIX)]
            document, _ = await self._read(f"{collection}/{doc_id}")
            if document is not None:
                documents.append((doc_id, document))
        return documents

    async def _list_ids(self, collection: str) -> list[str]:
        directory = self._get_full_path(collection, suffix="")
        if not directory.is_dir():
            return []
        ids = set()
        for name in os.listdir(directory):
            if name.endswith(_SUFFIX):
                document, _ = await self._read(f"{collection}/{name[: -len(_SUFFIX)]}")
                if document is not None:
                    ids.add(name[: -len(_SUFFIX)])
            elif (directory / name).is_dir():
                ids.add(name)
        return list(ids)
