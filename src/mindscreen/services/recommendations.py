"""Recommendation synthesis for scored sessions.

Recommendations are assembled in priority order, deduplicated (first
occurrence wins) and capped:

1. item alerts (e.g. any endorsement of PHQ-9 item 9)
2. boilerplate for the overall risk tier
3. assessment-specific advice keyed by score thresholds
4. pattern advice from the spread of normalized rule scores
5. general wellness advice
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import numpy as np

from mindscreen.config import AnalyzerSettings
from mindscreen.domain.enums import RiskLevel
from mindscreen.services.scoring import normalized_score, numeric_value

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from mindscreen.domain.entities import AssessmentType
    from mindscreen.domain.value_objects import RuleScore


@dataclass(frozen=True, slots=True)
class ThresholdAdvice:
    """Advice shown when a score (or item answer) reaches ``minimum``."""

    source_id: str
    """Scoring rule id, or question id for item alerts."""

    minimum: float
    message: str


RISK_TIER_MESSAGES: Final[dict[RiskLevel, tuple[str, ...]]] = {
    RiskLevel.HIGH: (
        "Consider seeking professional help from a mental health provider.",
        "Reach out to a trusted friend, family member, or counselor for support.",
        "If you are in crisis, contact a mental health hotline immediately.",
    ),
    RiskLevel.MEDIUM: (
        "Consider implementing stress management techniques in your daily routine.",
        "Regular exercise and adequate sleep can help improve your mental well-being.",
        "Consider speaking with a counselor or therapist for additional support.",
    ),
    RiskLevel.LOW: (
        "Continue maintaining healthy habits that support your mental well-being.",
        "Consider mindfulness or meditation practices to maintain your positive state.",
        "Stay connected with supportive friends and family members.",
    ),
}

# Per rule, only the highest threshold reached applies.
SCORE_ADVICE: Final[dict[str, tuple[ThresholdAdvice, ...]]] = {
    "phq-9": (
        ThresholdAdvice(
            "phq9-total",
            20,
            "Your depression score is in the severe range. Please contact a doctor or "
            "mental health professional soon for a full evaluation.",
        ),
        ThresholdAdvice(
            "phq9-total",
            15,
            "Moderately severe depression symptoms usually respond well to treatment "
            "such as therapy or medication.",
        ),
        ThresholdAdvice(
            "phq9-total",
            10,
            "Consider sharing these results with a primary care provider or counselor.",
        ),
        ThresholdAdvice(
            "phq9-total",
            5,
            "Mild symptoms often improve with a regular routine and time with others. "
            "Consider screening again in two weeks.",
        ),
    ),
    "gad-7": (
        ThresholdAdvice(
            "gad7-total",
            15,
            "Severe anxiety symptoms warrant an evaluation by a mental health professional.",
        ),
        ThresholdAdvice(
            "gad7-total",
            10,
            "Breathing exercises and progressive muscle relaxation can ease anxiety. "
            "Consider discussing these results with a healthcare provider.",
        ),
        ThresholdAdvice(
            "gad7-total",
            5,
            "Limiting caffeine and setting aside a short daily worry period can help "
            "keep anxious thoughts in check.",
        ),
    ),
    "stress-scale": (
        ThresholdAdvice(
            "stress-total",
            27,
            "Your stress level is high. Identify the stressors you can change and "
            "consider talking to a counselor about the rest.",
        ),
        ThresholdAdvice(
            "stress-total",
            14,
            "Regular breaks and protected time for rest can help lower everyday stress.",
        ),
    ),
}

ITEM_ALERTS: Final[dict[str, tuple[ThresholdAdvice, ...]]] = {
    "phq-9": (
        ThresholdAdvice(
            "phq9-9",
            1,
            "You reported thoughts of death or self-harm. If you feel unsafe, contact a "
            "crisis line or emergency services now and tell someone you trust.",
        ),
    ),
}

STABLE_PATTERN_MESSAGE: Final[str] = (
    "Your scores are similar across areas, so one overall plan is likely to help."
)
VARIABLE_PATTERN_MESSAGE: Final[str] = (
    "Your scores vary widely between areas. Focus first on the area with the highest score."
)
EXTREME_SCORE_MESSAGE: Final[str] = (
    "At least one score is near the top of its range. Prioritise support for that area."
)

WELLNESS_MESSAGES: Final[tuple[str, ...]] = (
    "Aim for regular sleep and daily physical activity.",
    "Repeat this assessment periodically to track changes over time.",
)


def dedupe(messages: Iterable[str]) -> list[str]:
    """Drop repeated messages, keeping first occurrences in order."""
    return list(dict.fromkeys(messages))


class RecommendationGenerator:
    """Builds the recommendation list of a result."""

    def __init__(self, settings: AnalyzerSettings | None = None) -> None:
        """Initialize the generator.

        Args:
            settings: Analyzer configuration (cap and pattern thresholds).
        """
        settings = settings or AnalyzerSettings()
        self._max = settings.max_recommendations
        self._stable_std = settings.stable_pattern_std
        self._variable_std = settings.variable_pattern_std
        self._extreme_ratio = settings.extreme_score_ratio

    def recommend(
        self,
        assessment_type: AssessmentType,
        scores: Mapping[str, RuleScore],
        risk_level: RiskLevel,
        answers: Mapping[str, Any],
    ) -> tuple[str, ...]:
        """Assemble, deduplicate and cap recommendations."""
        messages: list[str] = []
        messages.extend(self.item_alerts(assessment_type, answers))
        messages.extend(RISK_TIER_MESSAGES[risk_level])
        messages.extend(self.score_advice(assessment_type.id, scores))
        messages.extend(self.pattern_advice(assessment_type, scores))
        messages.extend(WELLNESS_MESSAGES)
        return tuple(dedupe(messages)[: self._max])

    @staticmethod
    def item_alerts(assessment_type: AssessmentType, answers: Mapping[str, Any]) -> list[str]:
        alerts = []
        for alert in ITEM_ALERTS.get(assessment_type.id, ()):
            if alert.source_id not in answers:
                continue
            question = assessment_type.get_question(alert.source_id)
            if numeric_value(question, answers[alert.source_id]) >= alert.minimum:
                alerts.append(alert.message)
        return alerts

    @staticmethod
    def score_advice(assessment_type_id: str, scores: Mapping[str, RuleScore]) -> list[str]:
        advice: list[str] = []
        applied: set[str] = set()
        table = sorted(
            SCORE_ADVICE.get(assessment_type_id, ()), key=lambda a: a.minimum, reverse=True
        )
        for entry in table:
            score = scores.get(entry.source_id)
            if score is None or entry.source_id in applied:
                continue
            if score.value >= entry.minimum:
                advice.append(entry.message)
                applied.add(entry.source_id)
        return advice

    def pattern_advice(
        self, assessment_type: AssessmentType, scores: Mapping[str, RuleScore]
    ) -> list[str]:
        """Advice derived from the spread of normalized rule scores."""
        ratios = [
            normalized_score(rule, scores[rule.id].value)
            for rule in assessment_type.scoring_rules
            if rule.id in scores and rule.max_range_value > 0
        ]
        if not ratios:
            return []
        normalized = np.asarray(ratios, dtype=float)
        spread = float(np.std(normalized))

        advice = []
        if normalized.size >= 2 and spread < self._stable_std:
            advice.append(STABLE_PATTERN_MESSAGE)
        elif spread > self._variable_std:
            advice.append(VARIABLE_PATTERN_MESSAGE)
        if bool(np.any(normalized >= self._extreme_ratio)):
            advice.append(EXTREME_SCORE_MESSAGE)
        return advice
