"""Tests for domain value objects."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime, timedelta, timezone

import pytest

from mindscreen.domain.enums import ChartType, RiskLevel, TrendDirection, ValidationErrorCode
from mindscreen.domain.value_objects import (
    AnswerValidation,
    AssessmentAnswer,
    ChartSpec,
    ResourceSuggestion,
    RuleScore,
    ScoreRange,
    TrendComparison,
    parse_timestamp,
)

pytestmark = pytest.mark.unit


class TestParseTimestamp:
    """Tests for parse_timestamp."""

    def test_naive_is_utc(self) -> None:
        assert parse_timestamp("2026-01-05T12:00:00").tzinfo is UTC

    def test_keeps_offset(self) -> None:
        parsed = parse_timestamp("2026-01-05T12:00:00+08:00")
        assert parsed.utcoffset() == timedelta(hours=8)

    def test_accepts_datetime(self) -> None:
        value = datetime(2026, 1, 5, tzinfo=timezone.utc)
        assert parse_timestamp(value) == value

    def test_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestScoreRange:
    """Tests for ScoreRange."""

    def test_contains_is_closed(self) -> None:
        """Both bounds belong to the range."""
        score_range = ScoreRange(5, 9, "Mild", "Mild symptoms")
        assert score_range.contains(5)
        assert score_range.contains(9)
        assert not score_range.contains(9.5)
        assert not score_range.contains(4.99)

    def test_min_above_max_rejected(self) -> None:
        with pytest.raises(ValueError, match="exceeds"):
            ScoreRange(10, 5, "Bad", "bad")


class TestAssessmentAnswer:
    """Tests for AssessmentAnswer."""

    def test_lists_are_frozen_to_tuples(self) -> None:
        answer = AssessmentAnswer(question_id="q", value=["a", "b"])
        assert answer.value == ("a", "b")

    def test_record_emits_lists(self) -> None:
        """Stored records use JSON lists for multiple choice values."""
        answer = AssessmentAnswer(question_id="q", value=("a", "b"))
        assert answer.to_record()["value"] == ["a", "b"]

    def test_immutable(self) -> None:
        answer = AssessmentAnswer(question_id="q", value=1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            answer.value = 2  # type: ignore[misc]


class TestRuleScore:
    """Tests for RuleScore."""

    def test_round_trip_without_risk(self) -> None:
        score = RuleScore(value=3.5, label="Unknown", description="No description available")
        restored = RuleScore.from_record(score.to_record())
        assert restored == score
        assert restored.risk_level is None

    def test_record_risk_value(self) -> None:
        score = RuleScore(value=20, label="Severe", description="d", risk_level=RiskLevel.HIGH)
        assert score.to_record()["riskLevel"] == "high"


class TestAnswerValidation:
    """Tests for AnswerValidation."""

    def test_ok(self) -> None:
        outcome = AnswerValidation.ok("q1")
        assert outcome.valid
        assert outcome.code is None

    def test_fail_to_dict(self) -> None:
        outcome = AnswerValidation.fail(ValidationErrorCode.OUT_OF_RANGE, "too big", "q1")
        assert outcome.to_dict() == {
            "valid": False,
            "code": "OUT_OF_RANGE",
            "message": "too big",
            "questionId": "q1",
        }


class TestReportValues:
    """Tests for report value objects."""

    def test_chart_record(self) -> None:
        chart = ChartSpec(
            type=ChartType.BAR, title="Scores", description="d", data=({"label": "a"},)
        )
        assert chart.to_record() == {
            "type": "bar",
            "title": "Scores",
            "description": "d",
            "data": [{"label": "a"}],
        }

    def test_trend_rules_with(self) -> None:
        comparison = TrendComparison(
            previous_result_ids=("r1",),
            trends={"a": TrendDirection.IMPROVING, "b": TrendDirection.STABLE},
        )
        assert comparison.rules_with(TrendDirection.IMPROVING) == ["a"]
        assert comparison.to_record()["trends"] == {"a": "improving", "b": "stable"}

    def test_resource_record(self) -> None:
        resource = ResourceSuggestion("article", "self-care", "Self-Care", "d", 0.7)
        assert resource.to_record()["relevanceScore"] == 0.7
