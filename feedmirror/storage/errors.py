"""Exception types raised by the storage layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from feedmirror.storage.models import BatchOutcome


class StorageError(Exception):
    """Base class for storage failures."""


class TransportError(StorageError):
    """Backend unreachable: connection refused, reset, or timed out."""


class QueryError(StorageError):
    """A statement failed on a reachable backend."""


class AggregateFailure(StorageError):
    """Every backend in a write fan-out failed."""

    def __init__(self, outcomes: List["BatchOutcome"]):
        self.outcomes = outcomes
        details = "; ".join(f"{o.name}: {o.error}" for o in outcomes)
        message = "all backends failed"
        super().__init__(f"{message} ({details})" if details else message)


class ConfigError(ValueError):
    """Backend configuration is missing or invalid."""
