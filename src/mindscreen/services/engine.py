"""Assessment engine: the session state machine.

States and transitions::

    active ──pause / inactivity timeout──> paused
    paused ──resume──────────────────────> active
    active ──last answer─────────────────> completed   (analyzer invoked)
    active | paused ──abandon────────────> abandoned
    any ──delete─────────────────────────> (removed, timers cancelled)

The engine is the only mutator of sessions. Every mutating call saves
the session table explicitly; a periodic auto-save additionally accrues
active time. An inactivity timeout rolls time spent back to the last
interaction, so idle periods are never counted. Storage failures are
absorbed by the persistence gateway and never roll back an accepted
mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from mindscreen.config import EngineSettings
from mindscreen.domain.entities import AssessmentSession
from mindscreen.domain.enums import SessionErrorCode, SessionStatus
from mindscreen.domain.exceptions import SessionError
from mindscreen.domain.value_objects import AssessmentAnswer, Progress
from mindscreen.infrastructure.logging import get_logger, session_context
from mindscreen.services.answer_validation import AnswerValidator, is_blank
from mindscreen.services.persistence import SESSIONS_NAMESPACE

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from mindscreen.domain.entities import AssessmentResult, Question
    from mindscreen.domain.value_objects import AnswerValidation
    from mindscreen.infrastructure.scheduler import Scheduler, TimerHandle
    from mindscreen.infrastructure.storage import StorageQuota
    from mindscreen.services.analyzer import ResultsAnalyzer
    from mindscreen.services.persistence import PersistenceGateway
    from mindscreen.services.question_bank import QuestionBankManager

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class SubmitOutcome:
    """Result of ``AssessmentEngine.submit_answer``."""

    success: bool
    validation: AnswerValidation | None = None
    next_question: Question | None = None
    completed: bool = False
    result: AssessmentResult | None = None


@dataclass(frozen=True, slots=True)
class SessionStatistics:
    """Session counts per status."""

    total: int
    active: int
    paused: int
    completed: int
    abandoned: int
    average_completion_time: float
    """Mean time spent on completed sessions, in seconds."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSessions": self.total,
            "activeSessions": self.active,
            "pausedSessions": self.paused,
            "completedSessions": self.completed,
            "abandonedSessions": self.abandoned,
            "averageCompletionTime": self.average_completion_time,
        }


@dataclass(frozen=True, slots=True)
class HealthReport:
    """Snapshot returned by ``AssessmentEngine.perform_health_check``."""

    status: str
    storage_available: bool
    degraded: bool
    sessions: int
    active_sessions: int
    pending_timers: int
    assessment_types: int
    storage_quota: StorageQuota | None = None
    warning: str | None = None
    checked_at: datetime = field(default_factory=_utcnow)

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict[str, Any]:
        quota = self.storage_quota
        return {
            "status": self.status,
            "storageAvailable": self.storage_available,
            "degraded": self.degraded,
            "warning": self.warning,
            "sessions": self.sessions,
            "activeSessions": self.active_sessions,
            "pendingTimers": self.pending_timers,
            "assessmentTypes": self.assessment_types,
            "storageQuota": (
                {
                    "quota": quota.quota,
                    "usage": quota.usage,
                    "available": quota.available,
                    "usagePercentage": quota.usage_percentage,
                }
                if quota is not None
                else None
            ),
            "checkedAt": self.checked_at.isoformat(),
        }


class AssessmentEngine:
    """Owns session lifecycle, answer validation and session timers."""

    def __init__(
        self,
        question_bank: QuestionBankManager,
        analyzer: ResultsAnalyzer,
        persistence: PersistenceGateway,
        scheduler: Scheduler,
        settings: EngineSettings | None = None,
        *,
        validator: AnswerValidator | None = None,
        clock: Callable[[], datetime] | None = None,
        on_reminder: Callable[[AssessmentSession], None] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            question_bank: Catalog providing (presented) questions.
            analyzer: Receives sessions as they complete.
            persistence: Gateway for the ``sessions`` namespace.
            scheduler: Timer backend for inactivity, auto-save and reminders.
            settings: Engine configuration.
            validator: Answer validator.
            clock: Source of the current UTC time.
            on_reminder: Called with the session when a reminder fires.
        """
        self._bank = question_bank
        self._analyzer = analyzer
        self._persistence = persistence
        self._scheduler = scheduler
        self._settings = settings or EngineSettings()
        self._validator = validator or AnswerValidator()
        self._clock = clock or _utcnow
        self._on_reminder = on_reminder

        self._sessions: dict[str, AssessmentSession] = {}
        self._inactivity_timers: dict[str, TimerHandle] = {}
        self._reminder_timers: dict[str, TimerHandle] = {}
        # time_spent as of the last user interaction, per active session
        self._interaction_marks: dict[str, float] = {}
        self._auto_save: TimerHandle | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        """True while the periodic auto-save is scheduled."""
        return self._auto_save is not None

    def start(self) -> None:
        """Start the periodic auto-save.

        Raises:
            SessionError: ENVIRONMENT_NOT_SUPPORTED when timers cannot be scheduled.
        """
        if self._auto_save is not None:
            return
        interval = self._settings.auto_save_interval_seconds
        self._auto_save = self._schedule(
            lambda: self._scheduler.schedule_interval(interval, self._auto_save_tick, "auto-save")
        )
        logger.info("Assessment engine started", auto_save_interval_seconds=interval)

    def shutdown(self) -> None:
        """Accrue active time, flush sessions and cancel every engine timer."""
        now = self._clock()
        for session in self._sessions.values():
            self._accrue(session, now)
        self._save()
        self._scheduler.cancel(self._auto_save)
        self._auto_save = None
        for session_id in list(self._sessions):
            self._cancel_timers(session_id)
        logger.info("Assessment engine stopped", sessions=len(self._sessions))

    def _schedule(self, create: Callable[[], TimerHandle]) -> TimerHandle:
        try:
            return create()
        except RuntimeError as exc:
            raise SessionError(
                SessionErrorCode.ENVIRONMENT_NOT_SUPPORTED,
                f"timers cannot be scheduled here: {exc}",
            ) from exc

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_assessment(
        self,
        assessment_type_id: str,
        language: str | None = None,
        cultural_context: str | None = None,
    ) -> AssessmentSession:
        """Create a session at question 0 and start its inactivity timer.

        Raises:
            SessionError: ASSESSMENT_TYPE_NOT_FOUND for an unknown type,
                SESSION_ALREADY_EXISTS while another session of the type is active.
        """
        if self._bank.get_assessment_type(assessment_type_id) is None:
            raise SessionError(
                SessionErrorCode.ASSESSMENT_TYPE_NOT_FOUND,
                f"Assessment type '{assessment_type_id}' not found",
                assessment_type_id=assessment_type_id,
            )
        self._ensure_no_active_session(assessment_type_id)

        now = self._clock()
        session = AssessmentSession(
            assessment_type_id=assessment_type_id,
            language=language or self._settings.default_language,
            cultural_context=cultural_context,
            started_at=now,
            last_activity_at=now,
        )
        self._sessions[session.id] = session
        try:
            self._start_inactivity_timer(session.id)
        except SessionError:
            del self._sessions[session.id]
            raise
        self._save()

        logger.info(
            "Assessment started",
            session_id=session.id,
            assessment_type_id=assessment_type_id,
            language=session.language,
            cultural_context=cultural_context,
        )
        return session

    def resume_assessment(self, session_id: str) -> AssessmentSession:
        """Reactivate a paused session and restart its inactivity timer.

        Raises:
            SessionError: SESSION_NOT_FOUND, SESSION_ALREADY_COMPLETED (also for
                abandoned sessions) or SESSION_ALREADY_EXISTS.
        """
        session = self._require(session_id)
        if session.status.is_terminal:
            raise SessionError(
                SessionErrorCode.SESSION_ALREADY_COMPLETED,
                f"Session is {session.status.value} and cannot be resumed",
                session_id=session_id,
                assessment_type_id=session.assessment_type_id,
            )
        if session.status is SessionStatus.PAUSED:
            self._ensure_no_active_session(session.assessment_type_id, exclude=session_id)
            session.status = SessionStatus.ACTIVE

        self._scheduler.cancel(self._reminder_timers.pop(session_id, None))
        self._start_inactivity_timer(session_id)
        session.touch(self._clock())
        self._save()
        logger.info("Assessment resumed", session_id=session_id)
        return session

    def pause_assessment(self, session_id: str) -> bool:
        """Pause an active session. False for unknown or finished sessions."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        if session.status is not SessionStatus.ACTIVE:
            return session.status is SessionStatus.PAUSED

        now = self._clock()
        self._accrue(session, now)
        session.status = SessionStatus.PAUSED
        session.touch(now)
        self._scheduler.cancel(self._inactivity_timers.pop(session_id, None))
        self._save()
        logger.info("Assessment paused", session_id=session_id, reason="explicit")
        return True

    def abandon_session(self, session_id: str) -> bool:
        """Mark an active or paused session abandoned and cancel its timers.

        Completed sessions keep their status and return False.
        """
        session = self._sessions.get(session_id)
        if session is None or session.status is SessionStatus.COMPLETED:
            return False
        if session.status is SessionStatus.ABANDONED:
            return True

        now = self._clock()
        self._accrue(session, now)
        session.status = SessionStatus.ABANDONED
        session.touch(now)
        self._cancel_timers(session_id)
        self._save()
        logger.info("Assessment abandoned", session_id=session_id)
        return True

    def delete_session(self, session_id: str) -> bool:
        """Remove a session in any state and cancel all of its timers."""
        if self._sessions.pop(session_id, None) is None:
            return False
        self._cancel_timers(session_id)
        self._save()
        logger.info("Session deleted", session_id=session_id)
        return True

    def delete_sessions(self, session_ids: Iterable[str]) -> int:
        """Remove several sessions with a single save. Returns how many existed."""
        deleted = 0
        for session_id in session_ids:
            if self._sessions.pop(session_id, None) is None:
                continue
            self._cancel_timers(session_id)
            deleted += 1
        if deleted:
            self._save()
            logger.info("Sessions deleted", sessions=deleted)
        return deleted

    def repair_question_index(self, session_id: str) -> bool:
        """Clamp an out-of-range question index back into the questionnaire.

        Completed sessions may point one past the last question; any other
        session is clamped onto an answerable question.

        Returns:
            True when the index was changed.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False
        assessment_type = self._bank.get_assessment_type(session.assessment_type_id)
        if assessment_type is None or not assessment_type.questions:
            return False
        total = len(assessment_type.questions)
        upper = total if session.status is SessionStatus.COMPLETED else total - 1
        clamped = min(max(session.current_question_index, 0), upper)
        if clamped == session.current_question_index:
            return False
        logger.warning(
            "Question index repaired",
            session_id=session_id,
            index=session.current_question_index,
            repaired_index=clamped,
        )
        session.current_question_index = clamped
        session.touch(self._clock())
        self._save()
        return True

    def clear_all_sessions(self) -> None:
        for session_id in list(self._sessions):
            self._cancel_timers(session_id)
        count = len(self._sessions)
        self._sessions.clear()
        self._persistence.clear(SESSIONS_NAMESPACE)
        logger.info("All sessions cleared", sessions=count)

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    def get_current_question(self, session_id: str) -> Question | None:
        """Presented question at the session's index, None past the end."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        questions = self._questions_for(session)
        if session.current_question_index >= len(questions):
            return None
        return questions[session.current_question_index]

    def submit_answer(self, session_id: str, value: Any) -> SubmitOutcome:
        """Validate and record an answer to the current question.

        Invalid answers and non-active sessions yield ``success=False``
        without mutating anything. Answering the last question completes
        the session and returns the analyzer's result.

        Raises:
            SessionError: SESSION_NOT_FOUND for an unknown session.
        """
        session = self._require(session_id)
        with session_context(session_id, assessment_type_id=session.assessment_type_id):
            if session.status is not SessionStatus.ACTIVE:
                logger.info("Answer rejected: session not active", status=session.status.value)
                return SubmitOutcome(success=False)

            questions = self._questions_for(session)
            index = session.current_question_index
            if index >= len(questions):
                logger.warning("Answer rejected: no current question", index=index)
                return SubmitOutcome(success=False)

            question = questions[index]
            validation = self._validator.validate(question, value)
            if not validation.valid:
                return SubmitOutcome(success=False, validation=validation)

            now = self._clock()
            self._accrue(session, now)
            if is_blank(value):
                session.answers = [a for a in session.answers if a.question_id != question.id]
            else:
                session.upsert_answer(
                    AssessmentAnswer(question_id=question.id, value=value, answered_at=now)
                )
            session.current_question_index = index + 1
            session.touch(now)

            if session.current_question_index == len(questions):
                return self._complete(session, validation)

            self._start_inactivity_timer(session_id)
            self._save()
            logger.debug("Answer recorded", question_id=question.id, index=index)
            return SubmitOutcome(
                success=True,
                validation=validation,
                next_question=questions[session.current_question_index],
            )

    def _complete(
        self, session: AssessmentSession, validation: AnswerValidation
    ) -> SubmitOutcome:
        session.status = SessionStatus.COMPLETED
        self._cancel_timers(session.id)
        self._save()
        logger.info(
            "Assessment completed",
            answers=len(session.answers),
            time_spent_seconds=round(session.time_spent, 1),
        )
        result = self._analyzer.analyze_session(session)
        return SubmitOutcome(success=True, validation=validation, completed=True, result=result)

    def go_to_previous_question(self, session_id: str) -> Question | None:
        """Step back one question. None for unknown or non-active sessions."""
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            return None
        if session.current_question_index > 0:
            now = self._clock()
            self._accrue(session, now)
            session.current_question_index -= 1
            session.touch(now)
            self._start_inactivity_timer(session_id)
            self._save()
        return self.get_current_question(session_id)

    def go_to_question(self, session_id: str, index: int) -> Question | None:
        """Jump to a question for review.

        The target must lie in ``[0, total)`` and must not skip past the
        first unanswered required question.
        """
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            return None
        questions = self._questions_for(session)
        if not 0 <= index < len(questions) or index > self._frontier(session, questions):
            logger.debug("Question jump rejected", session_id=session_id, index=index)
            return None

        now = self._clock()
        self._accrue(session, now)
        session.current_question_index = index
        session.touch(now)
        self._start_inactivity_timer(session_id)
        self._save()
        return questions[index]

    @staticmethod
    def _frontier(session: AssessmentSession, questions: list[Question]) -> int:
        for position, question in enumerate(questions):
            if question.required and session.get_answer(question.id) is None:
                return position
        return len(questions) - 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_progress(self, session_id: str) -> Progress | None:
        """Progress with remaining time extrapolated from time per answered question."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        assessment_type = self._bank.get_assessment_type(session.assessment_type_id)
        total = len(assessment_type.questions) if assessment_type else 0
        current = session.current_question_index

        spent = session.time_spent
        if session.status is SessionStatus.ACTIVE:
            spent += max((self._clock() - session.last_activity_at).total_seconds(), 0.0)

        remaining = None
        if current > 0:
            remaining = round(spent / current * max(total - current, 0))
        return Progress(
            current=current,
            total=total,
            percentage=round(current / total * 100) if total else 0,
            time_spent=round(spent),
            estimated_time_remaining=remaining,
        )

    def get_session(self, session_id: str) -> AssessmentSession | None:
        return self._sessions.get(session_id)

    def get_sessions(self) -> list[AssessmentSession]:
        return list(self._sessions.values())

    def get_active_sessions(self) -> list[AssessmentSession]:
        return self._with_status(SessionStatus.ACTIVE)

    def get_paused_sessions(self) -> list[AssessmentSession]:
        return self._with_status(SessionStatus.PAUSED)

    def get_completed_sessions(self) -> list[AssessmentSession]:
        return self._with_status(SessionStatus.COMPLETED)

    def _with_status(self, status: SessionStatus) -> list[AssessmentSession]:
        return [s for s in self._sessions.values() if s.status is status]

    def get_session_statistics(self) -> SessionStatistics:
        counts = {status: 0 for status in SessionStatus}
        for session in self._sessions.values():
            counts[session.status] += 1
        completed = self.get_completed_sessions()
        average = sum(s.time_spent for s in completed) / len(completed) if completed else 0.0
        return SessionStatistics(
            total=len(self._sessions),
            active=counts[SessionStatus.ACTIVE],
            paused=counts[SessionStatus.PAUSED],
            completed=counts[SessionStatus.COMPLETED],
            abandoned=counts[SessionStatus.ABANDONED],
            average_completion_time=average,
        )

    def perform_health_check(self) -> HealthReport:
        """Report storage state, session counts and timer counts."""
        available = self._persistence.is_available()
        degraded = self._persistence.degraded
        report = HealthReport(
            status="healthy" if available and not degraded else "degraded",
            storage_available=available,
            degraded=degraded,
            sessions=len(self._sessions),
            active_sessions=len(self.get_active_sessions()),
            pending_timers=self.pending_timer_count,
            assessment_types=len(self._bank),
            storage_quota=self._persistence.quota() if available else None,
            warning=self._persistence.warning,
        )
        if not report.healthy:
            logger.warning(
                "Health check degraded", storage_available=available, warning=report.warning
            )
        return report

    @property
    def pending_timer_count(self) -> int:
        """Timers owned by this engine that can still fire."""
        auto_save = 1 if self._auto_save is not None else 0
        return len(self._inactivity_timers) + len(self._reminder_timers) + auto_save

    def has_inactivity_timer(self, session_id: str) -> bool:
        return session_id in self._inactivity_timers

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def set_reminder(self, session_id: str, delay_seconds: float) -> bool:
        """Schedule a reminder for a paused session, replacing any earlier one."""
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.PAUSED:
            return False
        self._scheduler.cancel(self._reminder_timers.pop(session_id, None))
        self._reminder_timers[session_id] = self._schedule(
            lambda: self._scheduler.schedule(
                delay_seconds, lambda: self._fire_reminder(session_id), "reminder"
            )
        )
        logger.info("Reminder set", session_id=session_id, delay_seconds=delay_seconds)
        return True

    def _fire_reminder(self, session_id: str) -> None:
        self._reminder_timers.pop(session_id, None)
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.PAUSED:
            return
        logger.info("Reminder: assessment waiting to be continued", session_id=session_id)
        if self._on_reminder is not None:
            self._on_reminder(session)

    def _start_inactivity_timer(self, session_id: str) -> None:
        """(Re)arm the timeout and remember the time spent at this interaction."""
        self._scheduler.cancel(self._inactivity_timers.pop(session_id, None))
        self._inactivity_timers[session_id] = self._schedule(
            lambda: self._scheduler.schedule(
                self._settings.session_timeout_seconds,
                lambda: self._on_inactivity(session_id),
                "inactivity",
            )
        )
        session = self._sessions.get(session_id)
        if session is not None:
            self._interaction_marks[session_id] = session.time_spent

    def _on_inactivity(self, session_id: str) -> None:
        self._inactivity_timers.pop(session_id, None)
        mark = self._interaction_marks.pop(session_id, None)
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            return
        # Auto-save ticks may have accrued the idle period; drop it again.
        if mark is not None and session.time_spent > mark:
            session.time_spent = mark
        session.status = SessionStatus.PAUSED
        session.touch(self._clock())
        self._save()
        logger.info("Assessment paused", session_id=session_id, reason="inactivity")

    def _cancel_timers(self, session_id: str) -> None:
        self._scheduler.cancel(self._inactivity_timers.pop(session_id, None))
        self._scheduler.cancel(self._reminder_timers.pop(session_id, None))
        self._interaction_marks.pop(session_id, None)

    def _auto_save_tick(self) -> None:
        now = self._clock()
        for session in self._sessions.values():
            if session.status is SessionStatus.ACTIVE:
                self._accrue(session, now)
                session.touch(now)
        self._save()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_sessions(self) -> int:
        """Reconcile the in-memory table with persisted sessions.

        Per id, the copy with the higher revision wins. Active sessions
        get fresh inactivity timers.

        Returns:
            Number of sessions held after reconciliation.
        """
        self._merge(self._persistence.load_sessions())
        logger.info("Sessions reconciled", sessions=len(self._sessions))
        return len(self._sessions)

    def import_sessions(self, sessions: Iterable[AssessmentSession]) -> int:
        """Merge sessions from an export and save the table.

        Imported sessions that were active arrive paused, so they never
        compete with live sessions of the same type.

        Returns:
            Number of sessions taken over.
        """
        incoming: list[AssessmentSession] = []
        for session in sessions:
            if session.status is SessionStatus.ACTIVE:
                session.status = SessionStatus.PAUSED
            incoming.append(session)
        merged = self._merge(incoming)
        if merged:
            self._save()
        logger.info("Sessions imported", imported=merged, offered=len(incoming))
        return merged

    def _merge(self, sessions: Iterable[AssessmentSession]) -> int:
        merged = 0
        for stored in sessions:
            current = self._sessions.get(stored.id)
            if current is not None and current.revision > stored.revision:
                continue
            self._sessions[stored.id] = stored
            merged += 1
            if self._bank.get_assessment_type(stored.assessment_type_id) is None:
                logger.warning(
                    "Loaded session references unknown assessment type",
                    session_id=stored.id,
                    assessment_type_id=stored.assessment_type_id,
                )
            if stored.status is SessionStatus.ACTIVE:
                self._start_inactivity_timer(stored.id)
            else:
                self._cancel_timers(stored.id)
        return merged

    def _save(self) -> None:
        self._persistence.save_sessions(self._sessions.values())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, session_id: str) -> AssessmentSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionError(
                SessionErrorCode.SESSION_NOT_FOUND,
                f"Session '{session_id}' not found",
                session_id=session_id,
            )
        return session

    def _ensure_no_active_session(
        self, assessment_type_id: str, exclude: str | None = None
    ) -> None:
        if not self._settings.single_active_session_per_type:
            return
        for session in self.get_active_sessions():
            if session.assessment_type_id == assessment_type_id and session.id != exclude:
                raise SessionError(
                    SessionErrorCode.SESSION_ALREADY_EXISTS,
                    f"An active session already exists for '{assessment_type_id}'",
                    session_id=session.id,
                    assessment_type_id=assessment_type_id,
                )

    def _questions_for(self, session: AssessmentSession) -> list[Question]:
        return self._bank.get_presented_questions(
            session.assessment_type_id, session.language, session.cultural_context
        )

    @staticmethod
    def _accrue(session: AssessmentSession, now: datetime) -> None:
        if session.status is not SessionStatus.ACTIVE:
            return
        elapsed = (now - session.last_activity_at).total_seconds()
        if elapsed > 0:
            session.time_spent += elapsed
        session.last_activity_at = now
