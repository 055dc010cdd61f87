"""Tests for report building blocks."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from mindscreen.domain.entities import AssessmentResult, AssessmentType
from mindscreen.domain.enums import ChartType, RiskLevel, TrendDirection
from mindscreen.domain.value_objects import RuleScore
from mindscreen.services.reporting import (
    build_visualizations,
    classify_trend,
    compare_results,
    compute_statistics,
    resource_suggestions,
)

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _result(
    value: float,
    *,
    days_ago: float = 0,
    type_id: str = "phq-9",
    risk: RiskLevel = RiskLevel.LOW,
    time_spent: float = 60.0,
) -> AssessmentResult:
    rule_id = "phq9-total" if type_id == "phq-9" else "gad7-total"
    return AssessmentResult(
        session_id=f"session_{value}_{days_ago}",
        assessment_type_id=type_id,
        scores={rule_id: RuleScore(value, "Label", "Description", risk)},
        interpretation="",
        recommendations=(),
        risk_level=risk,
        total_time_spent=time_spent,
        answers=(),
        completed_at=NOW - timedelta(days=days_ago),
    )


class TestVisualizations:
    """Chart data for a result."""

    def test_charts_for_known_type(self, phq9: AssessmentType) -> None:
        charts = build_visualizations(_result(12, risk=RiskLevel.MEDIUM), phq9)
        bar, pie, radar = charts

        assert bar.type is ChartType.BAR
        assert bar.data == ({"label": "phq9-total", "value": 12, "category": "Label"},)
        assert pie.type is ChartType.PIE
        assert {d["label"]: d["value"] for d in pie.data} == {"low": 0, "medium": 1, "high": 0}
        assert radar.type is ChartType.RADAR
        assert radar.data == ({"label": "PHQ-9 Total Score", "value": 0.444},)

    def test_radar_omitted_for_unknown_type(self) -> None:
        charts = build_visualizations(_result(12), None)
        assert [c.type for c in charts] == [ChartType.BAR, ChartType.PIE]


class TestTrends:
    """Higher scores mean more severe symptoms."""

    @pytest.mark.parametrize(
        ("current", "previous", "expected"),
        [
            (10, 15, TrendDirection.IMPROVING),
            (15, 10, TrendDirection.DECLINING),
            (10, 10.05, TrendDirection.STABLE),
            (10.2, 10, TrendDirection.DECLINING),
        ],
    )
    def test_classify(self, current: float, previous: float, expected: TrendDirection) -> None:
        assert classify_trend(current, previous, 0.1) is expected

    def test_compare_against_latest_earlier_result(self) -> None:
        current = _result(8)
        older = _result(20, days_ago=30)
        latest = _result(12, days_ago=7)
        later = _result(3, days_ago=-1)
        other_type = _result(1, days_ago=1, type_id="gad-7")

        comparison = compare_results(current, [older, current, latest, later, other_type])

        assert comparison.previous_result_ids == (latest.id, older.id)
        assert comparison.trends == {"phq9-total": TrendDirection.IMPROVING}

    def test_max_previous(self) -> None:
        current = _result(8)
        history = [_result(v, days_ago=d) for v, d in [(1, 1), (2, 2), (3, 3)]]
        comparison = compare_results(current, history, max_previous=2)
        assert len(comparison.previous_result_ids) == 2

    def test_no_history(self) -> None:
        current = _result(8)
        assert compare_results(current, [current]) is None


class TestResources:
    @pytest.mark.parametrize(
        ("risk", "first_id"),
        [
            (RiskLevel.HIGH, "crisis-hotline"),
            (RiskLevel.MEDIUM, "stress-management"),
            (RiskLevel.LOW, "mindfulness"),
        ],
    )
    def test_tier_resources(self, risk: RiskLevel, first_id: str) -> None:
        resources = resource_suggestions(risk)
        assert resources[0].id == first_id
        assert resources[0].relevance_score >= resources[1].relevance_score


class TestStatistics:
    """Aggregates over stored results."""

    def test_empty(self) -> None:
        stats = compute_statistics([], now=NOW)
        assert stats.total_results == 0
        assert stats.average_completion_time == 0.0
        assert stats.risk_level_distribution == {"low": 0, "medium": 0, "high": 0}

    def test_aggregates(self) -> None:
        results = [
            _result(5, time_spent=60),
            _result(15, days_ago=1, risk=RiskLevel.MEDIUM, time_spent=120),
            _result(20, days_ago=45, type_id="gad-7", risk=RiskLevel.HIGH, time_spent=180),
        ]
        stats = compute_statistics(results, recent_days=30, now=NOW)

        assert stats.total_results == 3
        assert stats.results_by_type == {"phq-9": 2, "gad-7": 1}
        assert stats.risk_level_distribution == {"low": 1, "medium": 1, "high": 1}
        assert stats.average_completion_time == 120.0
        assert stats.recent_activity == {"2026-03-09": 1, "2026-03-10": 1}
        assert stats.to_dict()["totalResults"] == 3
