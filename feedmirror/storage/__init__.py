"""Storage layer - replicated post store over independent SQL backends."""

from feedmirror.storage.errors import (
    AggregateFailure,
    ConfigError,
    QueryError,
    StorageError,
    TransportError,
)
from feedmirror.storage.models import (
    BackendDescriptor,
    BatchOutcome,
    BatchResult,
    HealthResult,
    PersistedPost,
    Post,
    StatsSnapshot,
)
from feedmirror.storage.pools import Pool, PostgresPool, QueryResult, SqlitePool, open_pool
from feedmirror.storage.registry import BackendRegistry
from feedmirror.storage.replicator import ReplicatedStore

__all__ = [
    "AggregateFailure",
    "BackendDescriptor",
    "BackendRegistry",
    "BatchOutcome",
    "BatchResult",
    "ConfigError",
    "HealthResult",
    "PersistedPost",
    "Pool",
    "Post",
    "PostgresPool",
    "QueryError",
    "QueryResult",
    "ReplicatedStore",
    "SqlitePool",
    "StatsSnapshot",
    "StorageError",
    "TransportError",
    "open_pool",
]
