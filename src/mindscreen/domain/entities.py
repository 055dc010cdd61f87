"""Core entities for the mindscreen domain.

Catalog entities (AssessmentType, Question, ScoringRule) are frozen: the
question bank hands out derived copies for localization and never edits
the canonical definition. AssessmentSession is the only mutable entity
and is owned exclusively by the assessment engine. AssessmentResult is
created once per completed session and is immutable thereafter.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from mindscreen.domain.enums import (
    AssessmentCategory,
    CalculationKind,
    QuestionType,
    RiskLevel,
    SessionStatus,
)
from mindscreen.domain.value_objects import (
    AssessmentAnswer,
    RuleScore,
    parse_timestamp,
)

if TYPE_CHECKING:
    from mindscreen.domain.value_objects import (
        AnswerValue,
        ChartSpec,
        QuestionOption,
        ResourceSuggestion,
        ScaleLabels,
        ScoreRange,
        TrendComparison,
    )


def _utcnow() -> datetime:
    return datetime.now(UTC)


def new_id(prefix: str) -> str:
    """Generate a prefixed unique identifier (e.g. ``session_3f2a...``)."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True, slots=True)
class Question:
    """A single questionnaire item."""

    id: str
    text: str
    type: QuestionType
    required: bool = True
    options: tuple[QuestionOption, ...] = ()
    scale_min: float | None = None
    scale_max: float | None = None
    scale_labels: ScaleLabels | None = None
    min_selections: int | None = None
    max_selections: int | None = None
    max_length: int | None = None

    def find_option(self, value: object) -> QuestionOption | None:
        """Find the option matching an answer by option id or option value.

        Args:
            value: An option id string or a numeric option value.

        Returns:
            The matching option or None.
        """
        for option in self.options:
            if isinstance(value, str) and option.id == value:
                return option
        if isinstance(value, bool) or not isinstance(value, int | float):
            return None
        for option in self.options:
            if option.value == value:
                return option
        return None


@dataclass(frozen=True, slots=True)
class ScoringRule:
    """Maps a subset of answers to a numeric score and a labelled range."""

    id: str
    name: str
    calculation: CalculationKind
    question_ids: tuple[str, ...]
    ranges: tuple[ScoreRange, ...]
    description: str = ""
    weights: dict[str, float] = field(default_factory=dict)
    custom_formula: str | None = None
    """Stored for round-tripping only; custom rules are scored as SUM."""

    @property
    def max_range_value(self) -> float:
        """Upper bound of the highest range (0 when no ranges exist)."""
        return max((r.max for r in self.ranges), default=0.0)


@dataclass(frozen=True, slots=True)
class AssessmentType:
    """A named questionnaire definition: questions, scoring rules and metadata."""

    id: str
    name: str
    description: str
    category: AssessmentCategory
    questions: tuple[Question, ...]
    scoring_rules: tuple[ScoringRule, ...]
    instructions: str = ""
    disclaimer: str = ""
    duration_minutes: int = 5
    version: str = "1.0"
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def question_ids(self) -> list[str]:
        """Question ids in presentation order."""
        return [q.id for q in self.questions]

    def get_question(self, question_id: str) -> Question | None:
        """Look up a question by id."""
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


@dataclass(slots=True)
class AssessmentSession:
    """One attempt at an assessment type by one user.

    Mutated only through AssessmentEngine methods.
    """

    assessment_type_id: str
    language: str = "en"
    cultural_context: str | None = None
    id: str = field(default_factory=lambda: new_id("session"))
    started_at: datetime = field(default_factory=_utcnow)
    current_question_index: int = 0
    answers: list[AssessmentAnswer] = field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    time_spent: float = 0.0
    """Accumulated active time in seconds."""

    last_activity_at: datetime = field(default_factory=_utcnow)
    revision: int = 0
    """Monotonic mutation counter; the highest revision wins on reload."""

    def get_answer(self, question_id: str) -> AssessmentAnswer | None:
        """Return the current answer for a question, if any."""
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    def upsert_answer(self, answer: AssessmentAnswer) -> None:
        """Record an answer, replacing any earlier answer for the same question."""
        self.answers = [a for a in self.answers if a.question_id != answer.question_id]
        self.answers.append(answer)

    def touch(self, now: datetime | None = None) -> None:
        """Mark activity and bump the revision counter."""
        self.last_activity_at = now or _utcnow()
        self.revision += 1

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase shape."""
        return {
            "id": self.id,
            "assessmentTypeId": self.assessment_type_id,
            "startedAt": self.started_at.isoformat(),
            "currentQuestionIndex": self.current_question_index,
            "answers": [a.to_record() for a in self.answers],
            "status": self.status.value,
            "language": self.language,
            "culturalContext": self.cultural_context,
            "timeSpent": self.time_spent,
            "lastActivityAt": self.last_activity_at.isoformat(),
            "revision": self.revision,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> AssessmentSession:
        """Deserialize from the persisted camelCase shape.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If a value is malformed.
        """
        index = int(record["currentQuestionIndex"])
        if index < 0:
            raise ValueError(f"Negative question index {index}")
        return cls(
            id=str(record["id"]),
            assessment_type_id=str(record["assessmentTypeId"]),
            started_at=parse_timestamp(record["startedAt"]),
            current_question_index=index,
            answers=[AssessmentAnswer.from_record(a) for a in record.get("answers", [])],
            status=SessionStatus(record["status"]),
            language=str(record.get("language") or "en"),
            cultural_context=record.get("culturalContext"),
            time_spent=float(record.get("timeSpent", 0.0)),
            last_activity_at=parse_timestamp(record["lastActivityAt"]),
            revision=int(record.get("revision", 0)),
        )


@dataclass(frozen=True, slots=True)
class AssessmentResult:
    """Immutable outcome of analyzing a completed session."""

    session_id: str
    assessment_type_id: str
    scores: dict[str, RuleScore]
    interpretation: str
    recommendations: tuple[str, ...]
    risk_level: RiskLevel
    total_time_spent: float
    answers: tuple[AssessmentAnswer, ...]
    language: str = "en"
    cultural_context: str | None = None
    id: str = field(default_factory=lambda: new_id("result"))
    completed_at: datetime = field(default_factory=_utcnow)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase shape."""
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "assessmentTypeId": self.assessment_type_id,
            "completedAt": self.completed_at.isoformat(),
            "scores": {rule_id: score.to_record() for rule_id, score in self.scores.items()},
            "interpretation": self.interpretation,
            "recommendations": list(self.recommendations),
            "riskLevel": self.risk_level.value,
            "language": self.language,
            "culturalContext": self.cultural_context,
            "totalTimeSpent": self.total_time_spent,
            "answers": [a.to_record() for a in self.answers],
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> AssessmentResult:
        """Deserialize from the persisted camelCase shape.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If a value is malformed.
        """
        return cls(
            id=str(record["id"]),
            session_id=str(record["sessionId"]),
            assessment_type_id=str(record["assessmentTypeId"]),
            completed_at=parse_timestamp(record["completedAt"]),
            scores={
                rule_id: RuleScore.from_record(score)
                for rule_id, score in record.get("scores", {}).items()
            },
            interpretation=str(record.get("interpretation", "")),
            recommendations=tuple(record.get("recommendations", [])),
            risk_level=RiskLevel(record.get("riskLevel") or RiskLevel.LOW),
            language=str(record.get("language") or "en"),
            cultural_context=record.get("culturalContext"),
            total_time_spent=float(record.get("totalTimeSpent", 0.0)),
            answers=tuple(AssessmentAnswer.from_record(a) for a in record.get("answers", [])),
        )


@dataclass(frozen=True, slots=True)
class AssessmentReport:
    """Result plus chart data, trends and resource pointers."""

    result: AssessmentResult
    visualizations: tuple[ChartSpec, ...]
    comparisons: TrendComparison | None
    resource_recommendations: tuple[ResourceSuggestion, ...]

    def to_record(self) -> dict[str, Any]:
        """Serialize to a JSON-safe camelCase dict."""
        return {
            "result": self.result.to_record(),
            "visualizations": [chart.to_record() for chart in self.visualizations],
            "comparisons": self.comparisons.to_record() if self.comparisons else None,
            "resourceRecommendations": [r.to_record() for r in self.resource_recommendations],
        }


def answer_values(answers: list[AssessmentAnswer]) -> dict[str, AnswerValue]:
    """Map question id to answer value."""
    return {a.question_id: a.value for a in answers}
