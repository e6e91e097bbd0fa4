"""
Document serialization for on-disk aggregate stores.

Documents are JSON with tagged datetimes so round-trips keep timezone-aware
``datetime`` values.  Gzip compression is optional and detected on read.
"""

import gzip
import json
from datetime import datetime
from enum import Enum
from io import BytesIO
from typing import Any

_DATETIME_TAG = "$datetime"
_GZIP_MAGIC = b"\x1f\x8b"


class CompressionType(Enum):
    """Supported compression types."""

    NONE = "none"
    GZIP = "gzip"


def compress_bytes(data: bytes, compression: CompressionType = CompressionType.GZIP) -> bytes:
    """Compress binary data."""
    if compression == CompressionType.NONE:
        return data
    if compression == CompressionType.GZIP:
        buffer = BytesIO()
        with gzip.GzipFile(fileobj=buffer, mode="wb", compresslevel=6) as gz:
            gz.write(data)
        return buffer.getvalue()
    raise ValueError(f"Unsupported compression type: {compression}")


def decompress_bytes(data: bytes) -> bytes:
    """Decompress data if it carries a gzip header, otherwise pass it through."""
    if data[:2] == _GZIP_MAGIC:
        return gzip.decompress(data)
    return data


def _default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return {_DATETIME_TAG: obj.isoformat()}
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _object_hook(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _DATETIME_TAG in obj:
        return datetime.fromisoformat(obj[_DATETIME_TAG])
    return obj


def encode_document(
    document: dict[str, Any] | None,
    version: int,
    compression: CompressionType = CompressionType.NONE,
) -> bytes:
    """Serialize a document and its version counter."""
    payload = json.dumps({"version": version, "data": document}, default=_default, sort_keys=True)
    return compress_bytes(payload.encode("utf-8"), compression)


def decode_document(data: bytes) -> tuple[dict[str, Any] | None, int]:
    """Parse bytes written by :func:`encode_document` into ``(document, version)``."""
    envelope = json.loads(decompress_bytes(data).decode("utf-8"), object_hook=_object_hook)
    return envelope.get("data"), int(envelope.get("version", 0))
