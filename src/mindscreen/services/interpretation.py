"""Narrative interpretation of computed scores.

Templates are registered per assessment type and language and may use
three placeholders per scoring rule:

    {{<rule_id>}}              range label
    {{<rule_id>_value}}        numeric score
    {{<rule_id>_description}}  range description

Lookup falls back from the requested language to the fallback language
and then to a ``default`` template. Types without any template get a
generic sentence listing each rule's label and value.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

from mindscreen.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    from mindscreen.domain.entities import AssessmentType
    from mindscreen.domain.value_objects import RuleScore

logger = get_logger(__name__)

DEFAULT_TEMPLATE_KEY: Final[str] = "default"

_PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}")

DEFAULT_TEMPLATES: Final[dict[str, dict[str, str]]] = {
    "phq-9": {
        "en": (
            "Based on your PHQ-9 assessment, your depression severity level is "
            "{{phq9-total}}. {{phq9-total_description}}. This assessment is a screening "
            "tool and should not replace professional medical advice."
        ),
        "zh": (
            "根据您的PHQ-9评估，您的抑郁严重程度为{{phq9-total}}。{{phq9-total_description}}。"
            "此评估是筛查工具，不应替代专业医疗建议。"
        ),
    },
    "gad-7": {
        "en": (
            "Your GAD-7 assessment indicates {{gad7-total}} anxiety symptoms. "
            "{{gad7-total_description}}. Consider discussing these results with a "
            "healthcare provider."
        ),
        "zh": (
            "您的GAD-7评估显示{{gad7-total}}焦虑症状。{{gad7-total_description}}。"
            "建议与医疗保健提供者讨论这些结果。"
        ),
    },
    "stress-scale": {
        "en": (
            "Your perceived stress level is {{stress-total}}. {{stress-total_description}}. "
            "Consider implementing stress management techniques in your daily routine."
        ),
        "zh": (
            "您的感知压力水平为{{stress-total}}。{{stress-total_description}}。"
            "建议在日常生活中实施压力管理技巧。"
        ),
    },
}


def format_score(value: float) -> str:
    """Render a score without a trailing ``.0`` for whole numbers."""
    return f"{value:g}"


class InterpretationGenerator:
    """Produces interpretation text from rule scores."""

    def __init__(
        self,
        templates: Mapping[str, Mapping[str, str]] | None = None,
        fallback_language: str = "en",
    ) -> None:
        source = DEFAULT_TEMPLATES if templates is None else templates
        self._templates: dict[str, dict[str, str]] = {
            type_id: dict(by_language) for type_id, by_language in source.items()
        }
        self._fallback_language = fallback_language

    def register_template(self, assessment_type_id: str, language: str, template: str) -> None:
        """Add or replace a template at runtime."""
        self._templates.setdefault(assessment_type_id, {})[language] = template
        logger.info(
            "Interpretation template registered",
            assessment_type_id=assessment_type_id,
            language=language,
        )

    def has_template(self, assessment_type_id: str) -> bool:
        return bool(self._templates.get(assessment_type_id))

    def _select_template(self, assessment_type_id: str, language: str) -> str | None:
        by_language = self._templates.get(assessment_type_id) or {}
        for key in (language, self._fallback_language, DEFAULT_TEMPLATE_KEY):
            if key in by_language:
                return by_language[key]
        return None

    def interpret(
        self,
        assessment_type: AssessmentType,
        scores: Mapping[str, RuleScore],
        language: str,
    ) -> str:
        """Render the interpretation for a scored session."""
        template = self._select_template(assessment_type.id, language)
        if template is None:
            return self.default_interpretation(assessment_type, scores)

        tokens: dict[str, str] = {}
        for rule_id, score in scores.items():
            tokens[rule_id] = score.label
            tokens[f"{rule_id}_value"] = format_score(score.value)
            tokens[f"{rule_id}_description"] = score.description
        return _PLACEHOLDER.sub(lambda m: tokens.get(m.group(1), m.group(0)), template)

    @staticmethod
    def default_interpretation(
        assessment_type: AssessmentType, scores: Mapping[str, RuleScore]
    ) -> str:
        """Generic sentence listing each rule's label and value."""
        listing = ", ".join(
            f"{rule_id}: {score.label} ({format_score(score.value)})"
            for rule_id, score in scores.items()
        )
        sentence = (
            f"Based on your responses to the {assessment_type.name}, "
            f"your results show: {listing}."
        )
        if assessment_type.disclaimer:
            sentence = f"{sentence} {assessment_type.disclaimer}"
        return sentence
