"""Scoring primitives: answer values, rule scores, ranges and risk.

Numeric value of an answer:
    - a number is itself
    - a string equal to an option id resolves to that option's value
    - a sequence sums the resolved values of its members
    - anything else (free text, unknown id) contributes 0
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

from mindscreen.domain.enums import CalculationKind, QuestionType, RiskLevel
from mindscreen.domain.value_objects import RuleScore

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from mindscreen.domain.entities import AssessmentType, Question, ScoringRule
    from mindscreen.domain.value_objects import ScoreRange

UNKNOWN_LABEL: Final[str] = "Unknown"
UNKNOWN_DESCRIPTION: Final[str] = "No description available"


def numeric_value(question: Question | None, value: Any) -> float:
    """Resolve an answer to the number it contributes to scores."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        if question is None:
            return 0.0
        for option in question.options:
            if option.id == value:
                return option.value
        return 0.0
    if isinstance(value, list | tuple):
        return sum(numeric_value(question, member) for member in value)
    return 0.0


def calculate_rule_score(
    rule: ScoringRule,
    answers: Mapping[str, Any],
    questions: Mapping[str, Question],
) -> float:
    """Compute a rule's raw score over the answered questions it consumes.

    Args:
        rule: Scoring rule.
        answers: Question id to answer value.
        questions: Question id to question (for option resolution).

    Returns:
        The score. CUSTOM rules are scored as SUM.
    """
    values = [
        (question_id, numeric_value(questions.get(question_id), answers[question_id]))
        for question_id in rule.question_ids
        if question_id in answers
    ]
    match rule.calculation:
        case CalculationKind.AVERAGE:
            return sum(v for _, v in values) / len(values) if values else 0.0
        case CalculationKind.WEIGHTED_SUM:
            return sum(v * rule.weights.get(qid, 1.0) for qid, v in values)
        case _:
            return sum(v for _, v in values)


def find_score_range(rule: ScoringRule, score: float) -> ScoreRange | None:
    """Return the single range containing ``score``, if any."""
    for score_range in rule.ranges:
        if score_range.contains(score):
            return score_range
    return None


def score_rule(
    rule: ScoringRule,
    answers: Mapping[str, Any],
    questions: Mapping[str, Question],
) -> RuleScore:
    """Score a rule and label it with its matching range."""
    value = calculate_rule_score(rule, answers, questions)
    matched = find_score_range(rule, value)
    if matched is None:
        return RuleScore(value=value, label=UNKNOWN_LABEL, description=UNKNOWN_DESCRIPTION)
    return RuleScore(
        value=value,
        label=matched.label,
        description=matched.description,
        risk_level=matched.risk_level,
    )


def aggregate_risk(scores: Iterable[RuleScore]) -> RiskLevel:
    """Most severe risk level among rule scores, LOW when none carries one."""
    levels = [s.risk_level for s in scores if s.risk_level is not None]
    return RiskLevel.most_severe(levels) or RiskLevel.LOW


def normalized_score(rule: ScoringRule, value: float) -> float:
    """Score as a fraction of the rule's highest range bound, clipped to [0, 1]."""
    upper = rule.max_range_value
    if upper <= 0:
        return 0.0
    return min(max(value / upper, 0.0), 1.0)


def _question_bounds(question: Question) -> tuple[float, float]:
    if question.type is QuestionType.TEXT:
        return 0.0, 0.0
    if question.type is QuestionType.MULTIPLE_CHOICE:
        values = [o.value for o in question.options]
        return sum(v for v in values if v < 0), sum(v for v in values if v > 0)
    candidates = [o.value for o in question.options]
    if question.scale_min is not None and question.scale_max is not None:
        candidates.extend((question.scale_min, question.scale_max))
    if not candidates:
        return 0.0, 0.0
    return min(candidates), max(candidates)


def score_domain(rule: ScoringRule, assessment_type: AssessmentType) -> tuple[float, float]:
    """Lowest and highest score reachable by a rule when every question is answered."""
    weighted = rule.calculation is CalculationKind.WEIGHTED_SUM
    bounds = []
    for question_id in rule.question_ids:
        question = assessment_type.get_question(question_id)
        if question is None:
            continue
        low, high = _question_bounds(question)
        weight = rule.weights.get(question_id, 1.0) if weighted else 1.0
        bounds.append(sorted((low * weight, high * weight)))
    if not bounds:
        return 0.0, 0.0
    low_total = sum(b[0] for b in bounds)
    high_total = sum(b[1] for b in bounds)
    if rule.calculation is CalculationKind.AVERAGE:
        return low_total / len(bounds), high_total / len(bounds)
    return low_total, high_total
