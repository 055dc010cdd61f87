"""Report building blocks: charts, trends, resources and statistics."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Final

import numpy as np

from mindscreen.domain.enums import ChartType, RiskLevel, TrendDirection
from mindscreen.domain.value_objects import ChartSpec, ResourceSuggestion, TrendComparison
from mindscreen.services.scoring import normalized_score

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mindscreen.domain.entities import AssessmentResult, AssessmentType

RESOURCE_SUGGESTIONS: Final[dict[RiskLevel, tuple[ResourceSuggestion, ...]]] = {
    RiskLevel.HIGH: (
        ResourceSuggestion(
            type="resource",
            id="crisis-hotline",
            title="Crisis Support Hotline",
            description="Immediate support for mental health crises",
            relevance_score=1.0,
        ),
        ResourceSuggestion(
            type="article",
            id="professional-help",
            title="When to Seek Professional Help",
            description="Guide to finding and accessing mental health services",
            relevance_score=0.9,
        ),
    ),
    RiskLevel.MEDIUM: (
        ResourceSuggestion(
            type="exercise",
            id="stress-management",
            title="Stress Management Techniques",
            description="Practical exercises to manage stress and anxiety",
            relevance_score=0.8,
        ),
        ResourceSuggestion(
            type="article",
            id="self-care",
            title="Self-Care Strategies",
            description="Building healthy habits for mental wellness",
            relevance_score=0.7,
        ),
    ),
    RiskLevel.LOW: (
        ResourceSuggestion(
            type="exercise",
            id="mindfulness",
            title="Mindfulness and Meditation",
            description="Practices to maintain and enhance mental well-being",
            relevance_score=0.6,
        ),
        ResourceSuggestion(
            type="article",
            id="wellness-tips",
            title="Mental Wellness Tips",
            description="Daily practices for optimal mental health",
            relevance_score=0.5,
        ),
    ),
}


@dataclass(frozen=True, slots=True)
class AssessmentStatistics:
    """Aggregate view over all stored results."""

    total_results: int
    results_by_type: dict[str, int]
    risk_level_distribution: dict[str, int]
    average_completion_time: float
    """Mean total time spent in seconds (0 without results)."""

    recent_activity: dict[str, int]
    """Results per ISO date within the recent-activity window."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalResults": self.total_results,
            "resultsByType": dict(self.results_by_type),
            "riskLevelDistribution": dict(self.risk_level_distribution),
            "averageCompletionTime": self.average_completion_time,
            "recentActivity": dict(self.recent_activity),
        }


def build_visualizations(
    result: AssessmentResult, assessment_type: AssessmentType | None
) -> tuple[ChartSpec, ...]:
    """Chart data for a result.

    The radar chart needs range bounds, so it is omitted when the
    assessment type is no longer in the catalog.
    """
    charts = [
        ChartSpec(
            type=ChartType.BAR,
            title="Assessment Scores",
            description="Your scores across different dimensions",
            data=tuple(
                {"label": rule_id, "value": score.value, "category": score.label}
                for rule_id, score in result.scores.items()
            ),
        ),
        _risk_distribution_chart(result),
    ]
    if assessment_type is not None:
        radar = _normalized_score_chart(result, assessment_type)
        if radar is not None:
            charts.append(radar)
    return tuple(charts)


def _risk_distribution_chart(result: AssessmentResult) -> ChartSpec:
    counts = Counter(s.risk_level for s in result.scores.values() if s.risk_level is not None)
    return ChartSpec(
        type=ChartType.PIE,
        title="Risk Level Distribution",
        description="Distribution of risk levels across assessment dimensions",
        data=tuple({"label": level.value, "value": counts[level]} for level in RiskLevel),
    )


def _normalized_score_chart(
    result: AssessmentResult, assessment_type: AssessmentType
) -> ChartSpec | None:
    rules = [r for r in assessment_type.scoring_rules if r.id in result.scores]
    if not rules:
        return None
    values = np.array(
        [normalized_score(rule, result.scores[rule.id].value) for rule in rules], dtype=float
    )
    return ChartSpec(
        type=ChartType.RADAR,
        title="Score Profile",
        description="Each score as a share of its maximum",
        data=tuple(
            {"label": rule.name or rule.id, "value": round(float(value), 3)}
            for rule, value in zip(rules, values, strict=True)
        ),
    )


def classify_trend(current: float, previous: float, threshold: float) -> TrendDirection:
    """Classify a score change. Higher scores mean more severe symptoms."""
    delta = current - previous
    if abs(delta) < threshold:
        return TrendDirection.STABLE
    return TrendDirection.DECLINING if delta > 0 else TrendDirection.IMPROVING


def compare_results(
    result: AssessmentResult,
    history: Sequence[AssessmentResult],
    *,
    threshold: float = 0.1,
    max_previous: int = 5,
) -> TrendComparison | None:
    """Compare a result with earlier results of the same assessment type.

    Args:
        result: The result being reported.
        history: Candidate results (any type, any order, may include ``result``).
        threshold: Deltas with a smaller magnitude are stable.
        max_previous: Cap on listed prior results.

    Returns:
        None when no earlier result of the same type exists.
    """
    previous = sorted(
        (
            r
            for r in history
            if r.assessment_type_id == result.assessment_type_id
            and r.id != result.id
            and r.completed_at <= result.completed_at
        ),
        key=lambda r: r.completed_at,
        reverse=True,
    )[:max_previous]
    if not previous:
        return None

    latest = previous[0]
    trends = {
        rule_id: classify_trend(score.value, latest.scores[rule_id].value, threshold)
        for rule_id, score in result.scores.items()
        if rule_id in latest.scores
    }
    return TrendComparison(previous_result_ids=tuple(r.id for r in previous), trends=trends)


def resource_suggestions(risk_level: RiskLevel) -> tuple[ResourceSuggestion, ...]:
    """Support resources matching an overall risk tier."""
    return RESOURCE_SUGGESTIONS[risk_level]


def compute_statistics(
    results: Sequence[AssessmentResult],
    *,
    recent_days: int = 30,
    now: datetime | None = None,
) -> AssessmentStatistics:
    """Summarize stored results."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=recent_days)

    by_type = Counter(r.assessment_type_id for r in results)
    by_risk = Counter(r.risk_level.value for r in results)
    recent = Counter(
        r.completed_at.date().isoformat() for r in results if r.completed_at >= cutoff
    )
    times = np.array([r.total_time_spent for r in results], dtype=float)
    average = float(times.mean()) if times.size else 0.0

    return AssessmentStatistics(
        total_results=len(results),
        results_by_type=dict(by_type),
        risk_level_distribution={level.value: by_risk.get(level.value, 0) for level in RiskLevel},
        average_completion_time=average,
        recent_activity=dict(sorted(recent.items())),
    )
