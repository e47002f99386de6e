"""Replicated post store: fan-out writes, primary-then-fallback reads.

Every backend in the registry is an independent replica. Writes go to all of
them concurrently and succeed if at least one backend took the whole batch;
reads ask the primary first and then each fallback in order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Set

from feedmirror.storage import schema
from feedmirror.storage.errors import AggregateFailure
from feedmirror.storage.models import (
    BackendDescriptor,
    BatchOutcome,
    BatchResult,
    HealthResult,
    PersistedPost,
    Post,
    StatsSnapshot,
    parse_ts,
)
from feedmirror.storage.registry import BackendRegistry

logger = logging.getLogger(__name__)


class ReplicatedStore:
    """Writes posts to every backend and reads them back from any.

    Usage:
        store = ReplicatedStore(registry)
        await store.write_batch(posts)
        if await store.exists(guid): ...
        await store.shutdown()
    """

    def __init__(self, registry: BackendRegistry):
        self.registry = registry
        self._schema_ready: Set[str] = set()
        self._schema_locks: Dict[str, asyncio.Lock] = {
            b.name: asyncio.Lock() for b in registry
        }
        self._closed = False

    async def __aenter__(self) -> ReplicatedStore:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # --- Writes ---

    async def write_batch(self, posts: Sequence[Post]) -> BatchResult:
        """Insert posts into every backend, skipping guids already stored.

        Raises AggregateFailure only when no backend completed the batch.
        """
        if not posts:
            return BatchResult()

        t0 = time.monotonic()
        outcomes = await asyncio.gather(
            *(self._write_backend(backend, posts) for backend in self.registry)
        )
        result = BatchResult(outcomes=list(outcomes))

        logger.info(
            "Batch of %d posts saved to %d/%d backends in %.2fs",
            len(posts), result.success_count, result.total, time.monotonic() - t0,
        )
        if result.failed:
            logger.warning(
                "Backends that missed the batch: %s (saved on: %s)",
                ", ".join(result.failed), ", ".join(result.succeeded) or "none",
            )
        if result.success_count == 0:
            raise AggregateFailure(result.outcomes)
        return result

    async def _write_backend(
        self, backend: BackendDescriptor, posts: Sequence[Post]
    ) -> BatchOutcome:
        logger.info("Saving %d posts to %s...", len(posts), backend.name)
        try:
            await self._ensure_schema(backend)
            # One statement at a time per backend, in caller order
            for post in posts:
                await backend.pool.query(schema.INSERT_POST_SQL, post.to_row())
        except Exception as e:
            logger.error("%s save failed: %s", backend.name, e)
            return BatchOutcome(name=backend.name, success=False, error=str(e))

        logger.info("%s saved %d posts", backend.name, len(posts))
        return BatchOutcome(name=backend.name, success=True)

    async def _ensure_schema(self, backend: BackendDescriptor) -> None:
        if backend.name in self._schema_ready:
            return
        async with self._schema_locks[backend.name]:
            if backend.name not in self._schema_ready:
                await schema.ensure_schema(backend)
                self._schema_ready.add(backend.name)

    # --- Reads ---

    async def exists(self, guid: str) -> bool:
        """True if any backend has the guid. Never raises."""
        row = await self._first_match(schema.GUID_EXISTS_SQL, guid)
        return row is not None

    async def fetch(self, guid: str) -> Optional[PersistedPost]:
        """Return the stored post from the first backend that has it."""
        row = await self._first_match(schema.SELECT_POST_SQL, guid)
        return PersistedPost.from_row(row) if row is not None else None

    async def _first_match(self, sql: str, guid: str) -> Optional[Dict[str, Any]]:
        # A miss on the primary is not conclusive: the primary may have
        # failed the write that a fallback accepted.
        primary = self.registry.primary
        try:
            res = await primary.pool.query(sql, (guid,))
            if res.row_count > 0:
                return res.rows[0]
        except Exception as e:
            logger.warning("Primary %s lookup of guid failed: %s", primary.name, e)

        for backend in self.registry.fallbacks:
            try:
                res = await backend.pool.query(sql, (guid,))
            except Exception as e:
                logger.warning("Fallback %s lookup of guid failed: %s", backend.name, e)
                continue
            if res.row_count > 0:
                logger.info("Found guid %s in fallback %s", guid, backend.name)
                return res.rows[0]

        return None

    # --- Health & stats ---

    async def probe_all(self) -> List[HealthResult]:
        """Round-trip a trivial query to every backend. Never raises."""
        logger.info("Probing backends: %s", ", ".join(self.registry.names))
        results = await asyncio.gather(*(self._probe(b) for b in self.registry))

        connected = sum(1 for r in results if r.connected)
        logger.info("Connection check: %d/%d backends reachable", connected, len(results))
        return list(results)

    async def _probe(self, backend: BackendDescriptor) -> HealthResult:
        try:
            await backend.pool.query(schema.PING_SQL)
        except Exception as e:
            logger.error("%s unreachable: %s", backend.name, e)
            return HealthResult(name=backend.name, connected=False, error=str(e))
        logger.info("%s connected", backend.name)
        return HealthResult(name=backend.name, connected=True)

    async def collect_stats(self) -> List[StatsSnapshot]:
        """Row count and newest created_at per backend, in registry order."""
        logger.info("Collecting stats from %d backends...", len(self.registry))
        snapshots = await asyncio.gather(*(self._stats(b) for b in self.registry))
        return list(snapshots)

    async def _stats(self, backend: BackendDescriptor) -> StatsSnapshot:
        try:
            count = await backend.pool.query(schema.COUNT_SQL)
            latest = await backend.pool.query(schema.LATEST_SQL)
            snapshot = StatsSnapshot(
                name=backend.name,
                total_posts=int(count.rows[0]["count"]),
                latest_post=parse_ts(latest.rows[0]["created_at"]) if latest.rows else None,
            )
        except Exception as e:
            logger.error("%s stats failed: %s", backend.name, e)
            return StatsSnapshot.failed(backend.name, str(e))

        logger.info("%s: %d posts", backend.name, snapshot.total_posts)
        return snapshot

    # --- Lifecycle ---

    async def shutdown(self) -> None:
        """Close every pool. Failures are logged, never raised."""
        if self._closed:
            return
        self._closed = True

        logger.info("Closing %d backend pools...", len(self.registry))
        results = await asyncio.gather(
            *(b.pool.close() for b in self.registry), return_exceptions=True
        )
        for backend, result in zip(self.registry, results):
            if isinstance(result, BaseException):
                logger.error("%s close failed: %s", backend.name, result)
            else:
                logger.info("%s closed", backend.name)
        logger.info("All backend pools closed")
