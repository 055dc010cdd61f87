"""Immutable value objects for the mindscreen domain.

Value objects are immutable (frozen) dataclasses that represent domain
concepts without identity. They are equal if all their attributes are equal.

All value objects use:
- frozen=True: Makes instances immutable
- slots=True: Optimizes memory usage
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from mindscreen.domain.enums import ChartType, RiskLevel, TrendDirection, ValidationErrorCode

AnswerValue = int | float | str | tuple[int | float | str, ...]
"""An answer is a number, a string (option id or free text) or a tuple of those."""


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given.

    Args:
        value: ISO string or datetime.

    Returns:
        Timezone-aware datetime.
    """
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True, slots=True)
class QuestionOption:
    """A selectable option of a choice or scale question."""

    id: str
    """Option id, unique within its question."""

    text: str
    """Display text in the base language."""

    value: float
    """Numeric value contributed to scores when selected."""


@dataclass(frozen=True, slots=True)
class ScaleLabels:
    """Anchor labels shown at the two ends of a scale."""

    min: str
    max: str


@dataclass(frozen=True, slots=True)
class ScoreRange:
    """A closed score interval mapping to a label and risk level."""

    min: float
    max: float
    label: str
    description: str
    risk_level: RiskLevel | None = None

    def __post_init__(self) -> None:
        """Validate interval bounds.

        Raises:
            ValueError: If min is greater than max.
        """
        if self.min > self.max:
            raise ValueError(f"Range min {self.min} exceeds max {self.max}")

    def contains(self, score: float) -> bool:
        """Check if a score falls inside this closed interval.

        Args:
            score: Score to test.

        Returns:
            True if min <= score <= max.
        """
        return self.min <= score <= self.max


@dataclass(frozen=True, slots=True)
class AssessmentAnswer:
    """A single recorded answer.

    Never edited after creation; a revised answer replaces the old one.
    """

    question_id: str
    value: AnswerValue
    answered_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Freeze list values into tuples."""
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase shape."""
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {
            "questionId": self.question_id,
            "value": value,
            "answeredAt": self.answered_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> AssessmentAnswer:
        """Deserialize from the persisted camelCase shape.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If the timestamp is malformed.
        """
        return cls(
            question_id=str(record["questionId"]),
            value=record["value"],
            answered_at=parse_timestamp(record["answeredAt"]),
        )


@dataclass(frozen=True, slots=True)
class RuleScore:
    """Computed score of one scoring rule."""

    value: float
    label: str
    description: str
    risk_level: RiskLevel | None = None

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase shape."""
        return {
            "value": self.value,
            "label": self.label,
            "description": self.description,
            "riskLevel": self.risk_level.value if self.risk_level else None,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> RuleScore:
        """Deserialize from the persisted camelCase shape."""
        risk = record.get("riskLevel")
        return cls(
            value=float(record["value"]),
            label=str(record["label"]),
            description=str(record["description"]),
            risk_level=RiskLevel(risk) if risk else None,
        )


@dataclass(frozen=True, slots=True)
class AnswerValidation:
    """Structured, non-throwing outcome of validating an answer."""

    valid: bool
    code: ValidationErrorCode | None = None
    message: str | None = None
    question_id: str | None = None

    @classmethod
    def ok(cls, question_id: str | None = None) -> AnswerValidation:
        """Create a successful validation."""
        return cls(valid=True, question_id=question_id)

    @classmethod
    def fail(
        cls, code: ValidationErrorCode, message: str, question_id: str | None = None
    ) -> AnswerValidation:
        """Create a failed validation."""
        return cls(valid=False, code=code, message=message, question_id=question_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict."""
        return {
            "valid": self.valid,
            "code": self.code.value if self.code else None,
            "message": self.message,
            "questionId": self.question_id,
        }


@dataclass(frozen=True, slots=True)
class Progress:
    """Progress snapshot of a session."""

    current: int
    total: int
    percentage: int
    time_spent: int
    """Elapsed active time in whole seconds."""

    estimated_time_remaining: int | None = None
    """Extrapolated seconds left, None before the first answer."""


@dataclass(frozen=True, slots=True)
class ChartSpec:
    """Chart-ready data series for a report."""

    type: ChartType
    title: str
    description: str
    data: tuple[dict[str, Any], ...]

    def to_record(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "data": [dict(point) for point in self.data],
        }


@dataclass(frozen=True, slots=True)
class TrendComparison:
    """Comparison of a result against earlier results of the same type."""

    previous_result_ids: tuple[str, ...]
    """Earlier results, newest first."""

    trends: dict[str, TrendDirection]
    """Direction per scoring rule id relative to the most recent prior result."""

    def rules_with(self, direction: TrendDirection) -> list[str]:
        """List rule ids that moved in the given direction."""
        return [rule_id for rule_id, trend in self.trends.items() if trend is direction]

    def to_record(self) -> dict[str, Any]:
        return {
            "previousResults": list(self.previous_result_ids),
            "trends": {rule_id: trend.value for rule_id, trend in self.trends.items()},
        }


@dataclass(frozen=True, slots=True)
class ResourceSuggestion:
    """Pointer to a support resource handed to the recommendation engine."""

    type: str
    id: str
    title: str
    description: str
    relevance_score: float

    def to_record(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "relevanceScore": self.relevance_score,
        }
