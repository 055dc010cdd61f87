"""Tests for the recovering persistence gateway."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from mindscreen.config import StorageSettings
from mindscreen.domain.entities import AssessmentResult, AssessmentSession
from mindscreen.domain.enums import RiskLevel, SessionStatus, StorageErrorCode
from mindscreen.infrastructure.storage import InMemoryStorage
from mindscreen.services.persistence import (
    RESULTS_NAMESPACE,
    SESSIONS_NAMESPACE,
    PersistenceGateway,
)
from tests.fixtures import FlakyStorage

pytestmark = pytest.mark.unit

T0 = datetime(2026, 2, 1, 8, 0, tzinfo=UTC)


def _session(
    minutes: int = 0, status: SessionStatus = SessionStatus.PAUSED, **kwargs: object
) -> AssessmentSession:
    when = T0 + timedelta(minutes=minutes)
    return AssessmentSession(
        assessment_type_id="phq-9",
        started_at=when,
        last_activity_at=when,
        status=status,
        **kwargs,  # type: ignore[arg-type]
    )


def _result() -> AssessmentResult:
    return AssessmentResult(
        session_id="session_1",
        assessment_type_id="phq-9",
        scores={},
        interpretation="",
        recommendations=(),
        risk_level=RiskLevel.LOW,
        total_time_spent=0.0,
        answers=(),
    )


class TestSaving:
    """Saves succeed, retry, drop oldest records or degrade; they never raise."""

    def test_save_and_load(self, storage: InMemoryStorage, persistence: PersistenceGateway) -> None:
        session = _session()
        assert persistence.save_sessions([session])
        assert persistence.save_results([_result()])

        assert persistence.load_sessions() == [session]
        assert len(persistence.load_results()) == 1
        assert not persistence.degraded

    def test_transient_failure_retried(self) -> None:
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED, times=1)
        gateway = PersistenceGateway(storage, max_retries=1)

        assert gateway.save_sessions([_session()])
        assert storage.save_calls == [SESSIONS_NAMESPACE, SESSIONS_NAMESPACE]
        assert not gateway.degraded

    def test_persistent_failure_degrades(self) -> None:
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED)
        gateway = PersistenceGateway(storage, max_retries=2)

        assert not gateway.save_sessions([_session()])
        assert len(storage.save_calls) == 3
        assert gateway.degraded
        assert "memory only" in gateway.warning

    def test_not_available_is_not_retried(self) -> None:
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.NOT_AVAILABLE)
        gateway = PersistenceGateway(storage, max_retries=3)

        assert not gateway.save_results([_result()])
        assert len(storage.save_calls) == 1
        assert gateway.degraded

    def test_recovers_from_degraded(self) -> None:
        """The next save after storage comes back clears degraded mode."""
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED)
        gateway = PersistenceGateway(storage, max_retries=0)
        gateway.save_sessions([_session()])
        assert gateway.degraded

        storage.available = False
        assert not gateway.save_sessions([_session()])
        storage.recover()
        assert gateway.save_sessions([_session()])

        assert not gateway.degraded
        assert gateway.warning is None

    def test_recovery_flushes_every_pending_namespace(self) -> None:
        """A result accepted while degraded is written when sessions recover storage."""
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED)
        gateway = PersistenceGateway(storage, max_retries=0)
        result = _result()

        assert not gateway.save_results([result])
        assert not gateway.save_sessions([_session()])
        assert gateway.pending_namespaces == [RESULTS_NAMESPACE, SESSIONS_NAMESPACE]

        storage.recover()
        assert gateway.save_sessions([_session()])

        assert not gateway.degraded
        assert gateway.pending_namespaces == []
        assert [r["id"] for r in storage.inner.load(RESULTS_NAMESPACE)] == [result.id]
        assert len(storage.inner.load(SESSIONS_NAMESPACE)) == 1

    def test_stays_degraded_while_a_namespace_is_unwritten(self) -> None:
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED)
        gateway = PersistenceGateway(storage, max_retries=0)
        gateway.save_results([_result()])

        storage.fail(StorageErrorCode.SAVE_FAILED, times=1)
        assert not gateway.save_sessions([_session()])

        assert gateway.degraded
        assert RESULTS_NAMESPACE in gateway.pending_namespaces

    def test_latest_pending_snapshot_wins(self) -> None:
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED)
        gateway = PersistenceGateway(storage, max_retries=0)
        gateway.save_results([_result()])
        gateway.save_results([])

        storage.recover()
        assert gateway.save_sessions([])

        assert storage.inner.load(RESULTS_NAMESPACE) == []

    def test_clear_discards_pending_snapshot(self) -> None:
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED)
        gateway = PersistenceGateway(storage, max_retries=0)
        gateway.save_results([_result()])

        gateway.clear(RESULTS_NAMESPACE)

        assert gateway.pending_namespaces == []

    def test_quota_drops_oldest_inactive(self) -> None:
        """Oldest non-active sessions are left out; active sessions are kept."""
        old = _session(minutes=0)
        newer = _session(minutes=10)
        active = _session(minutes=-30, status=SessionStatus.ACTIVE)
        probe = InMemoryStorage()
        probe.save(SESSIONS_NAMESPACE, [s.to_record() for s in (newer, active)])
        storage = InMemoryStorage(quota_bytes=probe.quota().usage + 10)
        gateway = PersistenceGateway(storage)

        assert gateway.save_sessions([old, newer, active])

        stored_ids = {r["id"] for r in storage.load(SESSIONS_NAMESPACE)}
        assert stored_ids == {newer.id, active.id}
        assert gateway.dropped_records == {SESSIONS_NAMESPACE: 1}
        assert not gateway.degraded

    def test_quota_unrecoverable_degrades(self) -> None:
        active = _session(status=SessionStatus.ACTIVE)
        gateway = PersistenceGateway(InMemoryStorage(quota_bytes=10))

        assert not gateway.save_sessions([active])
        assert gateway.degraded
        assert "quota exceeded" in gateway.warning

    def test_from_settings(self) -> None:
        settings = StorageSettings(max_retries=0, drop_oldest_batch=3)
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED)
        gateway = PersistenceGateway.from_settings(storage, settings)

        gateway.save_sessions([])
        assert len(storage.save_calls) == 1


class TestLoading:
    """Loading skips corrupt records and resolves duplicates by revision."""

    def test_corrupt_records_skipped(self, storage: InMemoryStorage) -> None:
        good = _session()
        broken = _session().to_record()
        del broken["assessmentTypeId"]
        bad_status = _session().to_record()
        bad_status["status"] = "sleeping"
        storage.save(SESSIONS_NAMESPACE, ["junk", broken, bad_status, good.to_record()])

        assert PersistenceGateway(storage).load_sessions() == [good]

    def test_highest_revision_wins(self, storage: InMemoryStorage) -> None:
        session = _session(revision=3)
        stale = session.to_record()
        stale["revision"] = 1
        stale["currentQuestionIndex"] = 0
        fresh = session.to_record()
        fresh["currentQuestionIndex"] = 4
        storage.save(SESSIONS_NAMESPACE, [fresh, stale])

        loaded = PersistenceGateway(storage).load_sessions()

        assert len(loaded) == 1
        assert loaded[0].current_question_index == 4

    def test_corrupt_results_skipped(self, storage: InMemoryStorage) -> None:
        good = _result()
        storage.save(RESULTS_NAMESPACE, [{"id": "x"}, 5, good.to_record()])
        assert PersistenceGateway(storage).load_results() == [good]

    def test_clear(self, storage: InMemoryStorage, persistence: PersistenceGateway) -> None:
        persistence.save_results([_result()])
        persistence.clear(RESULTS_NAMESPACE)
        assert persistence.load_results() == []

    def test_quota_report(self, persistence: PersistenceGateway) -> None:
        persistence.save_sessions([_session()])
        quota = persistence.quota()
        assert quota is not None
        assert quota.usage > 0


class TestWriteBehind:
    """Saves queued on the event loop and written by a worker thread."""

    async def test_save_is_queued_until_drained(self) -> None:
        storage = FlakyStorage()
        gateway = PersistenceGateway(storage)
        gateway.start_write_behind()
        session = _session()

        assert gateway.save_sessions([session])
        assert storage.save_calls == []

        await gateway.drain()
        assert [r["id"] for r in storage.inner.load(SESSIONS_NAMESPACE)] == [session.id]

    async def test_burst_coalesced_into_one_write(self) -> None:
        storage = FlakyStorage()
        gateway = PersistenceGateway(storage)
        gateway.start_write_behind()

        for minutes in range(5):
            gateway.save_sessions([_session(minutes=minutes)])
        await gateway.drain()

        assert storage.save_calls == [SESSIONS_NAMESPACE]
        stored = storage.inner.load(SESSIONS_NAMESPACE)
        assert len(stored) == 1
        assert stored[0]["lastActivityAt"].startswith("2026-02-01T08:04")

    async def test_failures_still_degrade(self) -> None:
        storage = FlakyStorage()
        storage.fail(StorageErrorCode.SAVE_FAILED)
        gateway = PersistenceGateway(storage, max_retries=0)
        gateway.start_write_behind()

        assert gateway.save_results([_result()])
        await gateway.drain()

        assert gateway.degraded
        assert gateway.pending_namespaces == [RESULTS_NAMESPACE]

    async def test_clear_supersedes_queued_save(self) -> None:
        storage = FlakyStorage()
        gateway = PersistenceGateway(storage)
        gateway.start_write_behind()

        gateway.save_results([_result()])
        gateway.clear(RESULTS_NAMESPACE)
        await gateway.drain()

        assert storage.inner.load(RESULTS_NAMESPACE) == []

    async def test_stop_flushes_and_returns_to_sync(self) -> None:
        storage = FlakyStorage()
        gateway = PersistenceGateway(storage)
        gateway.start_write_behind()
        gateway.save_sessions([_session()])

        await gateway.stop_write_behind()

        assert not gateway.write_behind
        assert storage.save_calls == [SESSIONS_NAMESPACE]
        assert gateway.save_sessions([])
        assert storage.inner.load(SESSIONS_NAMESPACE) == []

    def test_requires_running_loop(self) -> None:
        with pytest.raises(RuntimeError):
            PersistenceGateway(InMemoryStorage()).start_write_behind()
