"""Data maintenance across the session and result tables.

Covers retention cleanup, integrity checks with repair, and a combined
export of sessions and results that can be imported elsewhere. The
engine and the analyzer stay the only mutators of their tables; this
service only calls their bulk operations.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from mindscreen.config import StorageSettings
from mindscreen.domain.entities import AssessmentSession
from mindscreen.domain.enums import SessionStatus
from mindscreen.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from mindscreen.services.analyzer import ResultsAnalyzer
    from mindscreen.services.engine import AssessmentEngine
    from mindscreen.services.question_bank import QuestionBankManager

logger = get_logger(__name__)

EXPORT_FORMAT_VERSION = "1.0"

_REQUIRED_SESSION_KEYS = ("id", "assessmentTypeId", "status")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CleanupReport:
    """What ``DataManager.cleanup_old_data`` removed."""

    cutoff: datetime
    sessions_removed: int = 0
    results_removed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "cutoff": self.cutoff.isoformat(),
            "sessionsRemoved": self.sessions_removed,
            "resultsRemoved": self.results_removed,
        }


@dataclass(frozen=True, slots=True)
class IntegrityReport:
    """Inconsistencies found between sessions, results and the catalog."""

    orphaned_results: tuple[str, ...] = ()
    """Results whose session no longer exists."""

    unknown_type_results: tuple[str, ...] = ()
    unknown_type_sessions: tuple[str, ...] = ()
    invalid_index_sessions: tuple[str, ...] = ()
    """Sessions whose question index lies outside ``[0, total]``."""

    unanalyzed_sessions: tuple[str, ...] = ()
    """Completed sessions without a result."""

    @property
    def issues(self) -> list[str]:
        found = [f"Result {rid} references a missing session" for rid in self.orphaned_results]
        found += [
            f"Result {rid} references an unknown assessment type"
            for rid in self.unknown_type_results
        ]
        found += [
            f"Session {sid} references an unknown assessment type"
            for sid in self.unknown_type_sessions
        ]
        found += [
            f"Session {sid} has an out-of-range question index"
            for sid in self.invalid_index_sessions
        ]
        found += [f"Completed session {sid} has no result" for sid in self.unanalyzed_sessions]
        return found

    @property
    def valid(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "issues": self.issues}


@dataclass(frozen=True, slots=True)
class RepairReport:
    """What ``DataManager.repair_integrity`` changed, and what it left alone."""

    indexes_repaired: int = 0
    sessions_abandoned: int = 0
    results_regenerated: int = 0
    results_removed: int = 0
    remaining: tuple[str, ...] = ()
    """Issues still present after the repair."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "indexesRepaired": self.indexes_repaired,
            "sessionsAbandoned": self.sessions_abandoned,
            "resultsRegenerated": self.results_regenerated,
            "resultsRemoved": self.results_removed,
            "remaining": list(self.remaining),
        }


@dataclass(frozen=True, slots=True)
class DataImportReport:
    """Outcome of ``DataManager.import_data``."""

    success: bool
    sessions_imported: int = 0
    results_imported: int = 0
    errors: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "sessionsImported": self.sessions_imported,
            "resultsImported": self.results_imported,
            "errors": list(self.errors),
        }


class DataManager:
    """Retention, integrity and whole-store import/export."""

    def __init__(
        self,
        engine: AssessmentEngine,
        analyzer: ResultsAnalyzer,
        question_bank: QuestionBankManager,
        settings: StorageSettings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the data manager.

        Args:
            engine: Owner of the session table.
            analyzer: Owner of the result table.
            question_bank: Catalog used to check type references.
            settings: Storage configuration (retention window).
            clock: Time source for cleanup cutoffs and export stamps.
        """
        self._engine = engine
        self._analyzer = analyzer
        self._bank = question_bank
        self._settings = settings or StorageSettings()
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def cleanup_old_data(self, retention_days: int | None = None) -> CleanupReport:
        """Delete finished sessions and results older than the retention window.

        Sessions are aged by their last activity and results by their
        completion time. Active sessions are never removed.
        """
        days = retention_days if retention_days is not None else self._settings.retention_days
        if days < 1:
            raise ValueError(f"retention_days must be at least 1, got {days}")
        cutoff = self._clock() - timedelta(days=days)

        stale_sessions = [
            s.id
            for s in self._engine.get_sessions()
            if s.status is not SessionStatus.ACTIVE and s.last_activity_at < cutoff
        ]
        stale_results = [
            r.id for r in self._analyzer.get_all_results() if r.completed_at < cutoff
        ]
        report = CleanupReport(
            cutoff=cutoff,
            sessions_removed=self._engine.delete_sessions(stale_sessions),
            results_removed=self._analyzer.delete_results(stale_results),
        )
        logger.info(
            "Old data cleaned up",
            retention_days=days,
            sessions=report.sessions_removed,
            results=report.results_removed,
        )
        return report

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def validate_integrity(self) -> IntegrityReport:
        sessions = {s.id: s for s in self._engine.get_sessions()}
        results = self._analyzer.get_all_results()
        analyzed = {r.session_id for r in results}

        invalid_index: list[str] = []
        unknown_sessions: list[str] = []
        for session in sessions.values():
            assessment_type = self._bank.get_assessment_type(session.assessment_type_id)
            if assessment_type is None:
                unknown_sessions.append(session.id)
                continue
            if not 0 <= session.current_question_index <= len(assessment_type.questions):
                invalid_index.append(session.id)

        report = IntegrityReport(
            orphaned_results=tuple(r.id for r in results if r.session_id not in sessions),
            unknown_type_results=tuple(
                r.id
                for r in results
                if self._bank.get_assessment_type(r.assessment_type_id) is None
            ),
            unknown_type_sessions=tuple(unknown_sessions),
            invalid_index_sessions=tuple(invalid_index),
            unanalyzed_sessions=tuple(
                s.id
                for s in sessions.values()
                if s.status is SessionStatus.COMPLETED
                and s.id not in analyzed
                and s.id not in unknown_sessions
            ),
        )
        if not report.valid:
            logger.warning("Data integrity issues found", issues=len(report.issues))
        return report

    def repair_integrity(self, *, drop_orphaned_results: bool = False) -> RepairReport:
        """Fix what can be fixed without losing user data.

        Out-of-range indexes are clamped, unfinished sessions of unknown
        types are abandoned, and completed sessions without a result are
        analyzed again. Orphaned results are history and are only removed
        when ``drop_orphaned_results`` is set.
        """
        found = self.validate_integrity()

        repaired = sum(
            self._engine.repair_question_index(sid) for sid in found.invalid_index_sessions
        )
        abandoned = 0
        for session_id in found.unknown_type_sessions:
            session = self._engine.get_session(session_id)
            if session is None or session.status is SessionStatus.COMPLETED:
                continue
            abandoned += self._engine.abandon_session(session_id)
        regenerated = 0
        for session_id in found.unanalyzed_sessions:
            session = self._engine.get_session(session_id)
            if session is not None and self._analyzer.analyze_session(session) is not None:
                regenerated += 1
        removed = (
            self._analyzer.delete_results(found.orphaned_results) if drop_orphaned_results else 0
        )

        report = RepairReport(
            indexes_repaired=repaired,
            sessions_abandoned=abandoned,
            results_regenerated=regenerated,
            results_removed=removed,
            remaining=tuple(self.validate_integrity().issues),
        )
        logger.info(
            "Data integrity repaired",
            indexes=repaired,
            abandoned=abandoned,
            regenerated=regenerated,
            removed=removed,
            remaining=len(report.remaining),
        )
        return report

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_all_data(self) -> str:
        """Serialize every session and result into one JSON document."""
        document = {
            "version": EXPORT_FORMAT_VERSION,
            "exportedAt": self._clock().isoformat(),
            "sessions": [s.to_record() for s in self._engine.get_sessions()],
            "results": [r.to_record() for r in self._analyzer.get_all_results()],
        }
        return json.dumps(document, ensure_ascii=False, indent=2)

    def import_data(self, payload: str) -> DataImportReport:
        """Import a document written by ``export_all_data``.

        Every session and result record is validated first; nothing is
        stored unless all of them are valid. Imported sessions that were
        active arrive paused.
        """
        try:
            document = json.loads(payload)
        except json.JSONDecodeError:
            return DataImportReport(success=False, errors=("Invalid JSON format",))
        if (
            not isinstance(document, dict)
            or not isinstance(document.get("sessions"), list)
            or not isinstance(document.get("results"), list)
        ):
            return DataImportReport(
                success=False, errors=("Invalid data format: missing sessions or results",)
            )

        sessions, errors = self._parse_sessions(document["sessions"])
        results, result_errors = self._analyzer.parse_result_records(document["results"])
        errors += result_errors
        if errors:
            logger.warning("Data import rejected", errors=len(errors))
            return DataImportReport(success=False, errors=tuple(errors))

        report = DataImportReport(
            success=True,
            sessions_imported=self._engine.import_sessions(sessions),
            results_imported=self._analyzer.add_results(results) if results else 0,
        )
        logger.info(
            "Data imported",
            version=document.get("version"),
            sessions=report.sessions_imported,
            results=report.results_imported,
        )
        return report

    @staticmethod
    def _parse_sessions(records: list[Any]) -> tuple[list[AssessmentSession], list[str]]:
        parsed: list[AssessmentSession] = []
        errors: list[str] = []
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                errors.append(f"Session #{index}: not an object")
                continue
            missing = [key for key in _REQUIRED_SESSION_KEYS if not record.get(key)]
            if missing:
                errors.append(f"Session #{index}: missing {', '.join(missing)}")
                continue
            try:
                parsed.append(AssessmentSession.from_record(record))
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                errors.append(f"Failed to import session {record.get('id')}: {exc}")
        return parsed, errors
