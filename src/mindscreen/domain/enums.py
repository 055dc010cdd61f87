"""Domain enumerations for mindscreen.

This module defines core enumerations used throughout the domain layer:
- QuestionType: How a question is answered (choice, scale, free text)
- AssessmentCategory: Catalog grouping of assessment types
- CalculationKind: The closed set of scoring formulas
- RiskLevel: Coarse low/medium/high classification with severity ordering
- SessionStatus: Assessment session lifecycle states
- SessionErrorCode / StorageErrorCode / ValidationErrorCode: Error taxonomy
- TrendDirection: Direction of change between two results
"""

from __future__ import annotations

from enum import StrEnum


class QuestionType(StrEnum):
    """Answer format of a question."""

    SINGLE_CHOICE = "single_choice"
    """Exactly one option, given by option id or option value."""

    MULTIPLE_CHOICE = "multiple_choice"
    """A list of option ids or option values."""

    SCALE = "scale"
    """A number between scale_min and scale_max (inclusive)."""

    TEXT = "text"
    """Free-form text."""

    @property
    def uses_options(self) -> bool:
        """Check if this question type requires an option list.

        Returns:
            True for single and multiple choice questions.
        """
        return self in (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE)


class AssessmentCategory(StrEnum):
    """Catalog category of an assessment type."""

    MENTAL_HEALTH = "mental_health"
    STRESS = "stress"
    MOOD = "mood"
    PERSONALITY = "personality"


class CalculationKind(StrEnum):
    """Scoring formula applied by a scoring rule.

    The set is closed: CUSTOM formulas are stored but never interpreted
    and fall back to SUM.
    """

    SUM = "sum"
    AVERAGE = "average"
    WEIGHTED_SUM = "weighted_sum"
    CUSTOM = "custom"


class RiskLevel(StrEnum):
    """Coarse risk classification derived from scores.

    Ordering follows clinical severity: HIGH > MEDIUM > LOW.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def severity(self) -> int:
        """Numeric severity used for ordering (0=low, 2=high).

        Returns:
            Severity rank of this level.
        """
        return _RISK_SEVERITY[self]

    @classmethod
    def most_severe(cls, levels: list[RiskLevel]) -> RiskLevel | None:
        """Return the most severe level of a collection.

        Args:
            levels: Risk levels to compare.

        Returns:
            The highest-severity level, or None when the collection is empty.
        """
        if not levels:
            return None
        return max(levels, key=lambda level: level.severity)


_RISK_SEVERITY: dict[RiskLevel, int] = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
}


class SessionStatus(StrEnum):
    """Lifecycle state of an assessment session."""

    ACTIVE = "active"
    """Accepting answers; inactivity timer running."""

    PAUSED = "paused"
    """Explicitly paused or timed out; resumable."""

    COMPLETED = "completed"
    """Every question answered; result produced. Terminal."""

    ABANDONED = "abandoned"
    """Given up by the user. Terminal for answering."""

    @property
    def is_terminal(self) -> bool:
        """Check if no further answers can ever be accepted.

        Returns:
            True for completed and abandoned sessions.
        """
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


class SessionErrorCode(StrEnum):
    """Error codes raised by the assessment engine."""

    ENVIRONMENT_NOT_SUPPORTED = "ENVIRONMENT_NOT_SUPPORTED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_ALREADY_EXISTS = "SESSION_ALREADY_EXISTS"
    SESSION_ALREADY_COMPLETED = "SESSION_ALREADY_COMPLETED"
    ASSESSMENT_TYPE_NOT_FOUND = "ASSESSMENT_TYPE_NOT_FOUND"


class StorageErrorCode(StrEnum):
    """Error codes reported by storage backends."""

    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    SAVE_FAILED = "SAVE_FAILED"
    NOT_AVAILABLE = "NOT_AVAILABLE"


class ValidationErrorCode(StrEnum):
    """Reasons an answer can be rejected."""

    REQUIRED_MISSING = "REQUIRED_MISSING"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    INVALID_OPTION = "INVALID_OPTION"
    WRONG_TYPE = "WRONG_TYPE"


class TrendDirection(StrEnum):
    """Direction of a score change relative to a prior result.

    Higher scores indicate more severe symptoms, so an increase is DECLINING.
    """

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class ChartType(StrEnum):
    """Chart kinds produced for reports."""

    BAR = "bar"
    PIE = "pie"
    RADAR = "radar"
    LINE = "line"
