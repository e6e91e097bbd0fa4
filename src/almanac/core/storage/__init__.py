"""
Aggregate stores for almanac.

Provides a transactional document-store interface (merge with field
transforms, optimistic transactions, simple queries) with in-memory and
local-filesystem backends.
"""

from almanac.core.exceptions import (
    DocumentNotFound,
    InvalidPath,
    StoreError,
    StoreUnavailable,
    TransactionConflict,
)

from .base import (
    DELETE_FIELD,
    AggregateStore,
    FieldTransform,
    Increment,
    Maximum,
    Minimum,
    Replace,
    Transaction,
    merge_fields,
)
from .local import LocalAggregateStore
from .memory import InMemoryAggregateStore


def create_store(config) -> AggregateStore:
    """Build the store selected by a Config's ``store`` section."""
    settings = config.validated()
    max_attempts = settings.analytics.transaction_max_attempts
    if settings.store.backend == "local":
        return LocalAggregateStore(base_path=str(settings.store.path), max_attempts=max_attempts)
    return InMemoryAggregateStore(max_attempts=max_attempts)


__all__ = [
    "DELETE_FIELD",
    "AggregateStore",
    "DocumentNotFound",
    "FieldTransform",
    "InMemoryAggregateStore",
    "Increment",
    "InvalidPath",
    "LocalAggregateStore",
    "Maximum",
    "Minimum",
    "Replace",
    "StoreError",
    "StoreUnavailable",
    "Transaction",
    "TransactionConflict",
    "create_store",
    "merge_fields",
]
