"""Persistence gateway between the in-memory tables and a storage backend.

The gateway never raises into the engine or the analyzer. Failed saves
go through the recovery policy:

1. retry up to ``max_retries`` times (SAVE_FAILED)
2. on QUOTA_EXCEEDED, drop the oldest droppable records and retry
3. otherwise enter degraded, memory-only mode with a surfaced warning

While degraded, the latest unwritten snapshot of every namespace is kept.
The gateway leaves degraded mode only once all of them have been flushed.

Dropping only affects what is written; in-memory data is never discarded.

Inside an event loop, ``start_write_behind`` turns saves into queued
snapshots written by ``asyncio.to_thread``, so mutations never wait on
disk I/O. ``drain`` waits for the queue to empty.

Loading skips corrupt records and resolves duplicate session ids by
keeping the highest revision.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from mindscreen.domain.entities import AssessmentResult, AssessmentSession
from mindscreen.domain.enums import SessionStatus, StorageErrorCode
from mindscreen.domain.exceptions import StorageError
from mindscreen.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from mindscreen.config import StorageSettings
    from mindscreen.infrastructure.storage import Record, StorageBackend, StorageQuota

logger = get_logger(__name__)

SESSIONS_NAMESPACE: Final[str] = "sessions"
RESULTS_NAMESPACE: Final[str] = "results"


@dataclass(frozen=True, slots=True)
class _PendingWrite:
    """Latest snapshot of a namespace that has not reached storage."""

    records: list[Record]
    age_key: Callable[[Record], str]
    protected: set[str]


class PersistenceGateway:
    """Recovering, non-throwing facade over a StorageBackend."""

    def __init__(
        self,
        backend: StorageBackend,
        *,
        max_retries: int = 1,
        drop_oldest_batch: int = 1,
    ) -> None:
        """Initialize the gateway.

        Args:
            backend: Storage backend to write through.
            max_retries: Extra attempts after a failed save.
            drop_oldest_batch: Records dropped per quota-recovery step.
        """
        self._backend = backend
        self._max_retries = max_retries
        self._drop_batch = max(drop_oldest_batch, 1)
        self._degraded = False
        self._warning: str | None = None
        self._dropped: dict[str, int] = {}
        self._pending: dict[str, _PendingWrite] = {}
        # Guards the recovery state above; writes may run on a worker thread.
        self._lock = threading.Lock()
        # Write-behind state, touched only on the event loop thread.
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queued: dict[str, _PendingWrite | None] = {}
        self._writer: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls, backend: StorageBackend, settings: StorageSettings
    ) -> PersistenceGateway:
        return cls(
            backend,
            max_retries=settings.max_retries,
            drop_oldest_batch=settings.drop_oldest_batch,
        )

    @property
    def degraded(self) -> bool:
        """True while running memory-only after an unrecoverable storage failure."""
        return self._degraded

    @property
    def warning(self) -> str | None:
        """Last storage warning surfaced to callers."""
        return self._warning

    @property
    def dropped_records(self) -> dict[str, int]:
        """Records left out of storage per namespace by quota recovery."""
        with self._lock:
            return dict(self._dropped)

    @property
    def pending_namespaces(self) -> list[str]:
        """Namespaces whose latest snapshot has not been written yet."""
        with self._lock:
            return sorted(self._pending)

    @property
    def write_behind(self) -> bool:
        """True while saves are queued and written off the event loop."""
        return self._loop is not None

    def is_available(self) -> bool:
        return self._backend.is_available()

    def quota(self) -> StorageQuota | None:
        try:
            return self._backend.quota()
        except (StorageError, OSError) as exc:
            logger.warning("Storage quota unavailable", error=str(exc))
            return None

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def save_sessions(self, sessions: Iterable[AssessmentSession]) -> bool:
        """Persist the full session table. Returns False when not written.

        In write-behind mode the snapshot is queued and True is returned.
        """
        snapshot = list(sessions)
        protected = {s.id for s in snapshot if s.status is SessionStatus.ACTIVE}
        records = [s.to_record() for s in snapshot]
        return self._save(
            SESSIONS_NAMESPACE,
            records,
            age_key=lambda r: str(r["lastActivityAt"]),
            protected=protected,
        )

    def save_results(self, results: Iterable[AssessmentResult]) -> bool:
        """Persist the full result table. Returns False when not written."""
        records = [r.to_record() for r in results]
        return self._save(
            RESULTS_NAMESPACE,
            records,
            age_key=lambda r: str(r["completedAt"]),
            protected=set(),
        )

    def _save(
        self,
        namespace: str,
        records: list[Record],
        *,
        age_key: Callable[[Record], str],
        protected: set[str],
    ) -> bool:
        pending = _PendingWrite(records, age_key, protected)
        if self._loop is not None:
            self._enqueue(namespace, pending)
            return True
        return self._write_locked(namespace, pending)

    def _write(self, namespace: str, pending: _PendingWrite) -> bool:
        if self._degraded:
            self._pending[namespace] = pending
            return self._try_leave_degraded()

        records = pending.records
        error: StorageError | None = None
        for attempt in range(self._max_retries + 1):
            try:
                self._backend.save(namespace, records)
            except StorageError as exc:
                error = exc
                logger.warning(
                    "Storage save failed",
                    namespace=namespace,
                    attempt=attempt + 1,
                    code=exc.code.value,
                )
                if exc.code is not StorageErrorCode.SAVE_FAILED:
                    break
            else:
                self._dropped.pop(namespace, None)
                return True

        if error is not None and error.code is StorageErrorCode.QUOTA_EXCEEDED:
            if self._save_dropping_oldest(
                namespace, records, pending.age_key, pending.protected
            ):
                return True
            self._pending[namespace] = pending
            self._enter_degraded(namespace, "storage quota exceeded; continuing in memory only")
            return False

        reason = str(error) if error else "storage unavailable"
        self._pending[namespace] = pending
        self._enter_degraded(namespace, f"{reason}; continuing in memory only")
        return False

    def _save_dropping_oldest(
        self,
        namespace: str,
        records: list[Record],
        age_key: Callable[[Record], str],
        protected: set[str],
    ) -> bool:
        droppable = sorted(
            (r for r in records if r.get("id") not in protected),
            key=age_key,
        )
        dropped_ids: set[Any] = set()
        while droppable:
            batch, droppable = droppable[: self._drop_batch], droppable[self._drop_batch :]
            dropped_ids.update(r.get("id") for r in batch)
            kept = [r for r in records if r.get("id") not in dropped_ids]
            try:
                self._backend.save(namespace, kept)
            except StorageError as exc:
                if exc.code is not StorageErrorCode.QUOTA_EXCEEDED:
                    return False
                continue
            self._dropped[namespace] = len(dropped_ids)
            logger.warning(
                "Oldest records left out of storage to fit quota",
                namespace=namespace,
                dropped=len(dropped_ids),
                kept=len(kept),
            )
            return True
        return False

    def _enter_degraded(self, namespace: str, message: str) -> None:
        self._degraded = True
        self._warning = message
        logger.error("Storage degraded to memory-only mode", namespace=namespace, reason=message)

    def _try_leave_degraded(self) -> bool:
        """Flush every pending namespace; stay degraded if any write fails."""
        if not self._backend.is_available():
            return False
        for namespace, pending in list(self._pending.items()):
            try:
                self._backend.save(namespace, pending.records)
            except StorageError as exc:
                if exc.code is not StorageErrorCode.QUOTA_EXCEEDED:
                    return False
                if not self._save_dropping_oldest(
                    namespace, pending.records, pending.age_key, pending.protected
                ):
                    return False
            else:
                self._dropped.pop(namespace, None)
            del self._pending[namespace]
        self._degraded = False
        self._warning = None
        logger.info("Storage recovered from degraded mode")
        return True

    # ------------------------------------------------------------------
    # Write-behind
    # ------------------------------------------------------------------

    def start_write_behind(self) -> None:
        """Queue saves and write them on a worker thread of the running loop.

        Queued snapshots are coalesced per namespace, so a burst of
        mutations costs one write.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        self._loop = asyncio.get_running_loop()
        logger.info("Write-behind persistence started")

    async def drain(self) -> None:
        """Wait until every queued snapshot has been handed to the backend."""
        while self._writer is not None and not self._writer.done():
            await self._writer

    async def stop_write_behind(self) -> None:
        """Drain the queue and return to synchronous writes."""
        await self.drain()
        self._loop = None
        self._writer = None
        logger.info("Write-behind persistence stopped")

    def _enqueue(self, namespace: str, pending: _PendingWrite | None) -> None:
        self._queued[namespace] = pending
        if (self._writer is None or self._writer.done()) and self._loop is not None:
            self._writer = self._loop.create_task(self._write_queued())

    async def _write_queued(self) -> None:
        while self._queued:
            namespace = next(iter(self._queued))
            pending = self._queued.pop(namespace)
            if pending is None:
                await asyncio.to_thread(self._clear_now, namespace)
            else:
                await asyncio.to_thread(self._write_locked, namespace, pending)

    def _write_locked(self, namespace: str, pending: _PendingWrite) -> bool:
        with self._lock:
            return self._write(namespace, pending)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_raw(self, namespace: str) -> list[Any]:
        try:
            return self._backend.load(namespace)
        except StorageError as exc:
            with self._lock:
                self._enter_degraded(namespace, f"{exc}; starting with empty {namespace}")
            return []

    def load_sessions(self) -> list[AssessmentSession]:
        """Load sessions, skipping corrupt records.

        Duplicate ids keep the record with the highest revision.
        """
        by_id: dict[str, AssessmentSession] = {}
        skipped = 0
        for index, raw in enumerate(self._load_raw(SESSIONS_NAMESPACE)):
            try:
                if not isinstance(raw, dict):
                    raise TypeError(f"expected object, got {type(raw).__name__}")
                session = AssessmentSession.from_record(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                skipped += 1
                logger.warning("Corrupt session record skipped", index=index, error=repr(exc))
                continue
            existing = by_id.get(session.id)
            if existing is None or session.revision >= existing.revision:
                by_id[session.id] = session
        logger.info("Sessions loaded", sessions=len(by_id), skipped=skipped)
        return list(by_id.values())

    def load_results(self) -> list[AssessmentResult]:
        """Load results, skipping corrupt records."""
        by_id: dict[str, AssessmentResult] = {}
        skipped = 0
        for index, raw in enumerate(self._load_raw(RESULTS_NAMESPACE)):
            try:
                if not isinstance(raw, dict):
                    raise TypeError(f"expected object, got {type(raw).__name__}")
                result = AssessmentResult.from_record(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                skipped += 1
                logger.warning("Corrupt result record skipped", index=index, error=repr(exc))
                continue
            by_id[result.id] = result
        logger.info("Results loaded", results=len(by_id), skipped=skipped)
        return list(by_id.values())

    def clear(self, namespace: str) -> None:
        """Remove a namespace, discarding any unwritten snapshot of it."""
        if self._loop is not None:
            self._enqueue(namespace, None)
            return
        self._clear_now(namespace)

    def _clear_now(self, namespace: str) -> None:
        with self._lock:
            self._pending.pop(namespace, None)
            try:
                self._backend.clear(namespace)
            except (StorageError, OSError) as exc:
                logger.warning("Storage clear failed", namespace=namespace, error=str(exc))
