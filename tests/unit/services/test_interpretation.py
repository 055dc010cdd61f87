"""Tests for interpretation templates."""

from __future__ import annotations

import pytest

from mindscreen.domain.entities import AssessmentType
from mindscreen.domain.enums import RiskLevel
from mindscreen.domain.value_objects import RuleScore
from mindscreen.services.interpretation import InterpretationGenerator, format_score
from tests.fixtures import build_scale_assessment

pytestmark = pytest.mark.unit

MODERATE = {
    "phq9-total": RuleScore(12, "Moderate", "Moderate depression symptoms", RiskLevel.MEDIUM)
}


class TestFormatScore:
    @pytest.mark.parametrize(("value", "text"), [(12.0, "12"), (2.5, "2.5"), (0, "0")])
    def test_format(self, value: float, text: str) -> None:
        assert format_score(value) == text


class TestInterpretationGenerator:
    """Template selection and placeholder substitution."""

    def test_phq9_english(self, phq9: AssessmentType) -> None:
        text = InterpretationGenerator().interpret(phq9, MODERATE, "en")
        assert text.startswith(
            "Based on your PHQ-9 assessment, your depression severity level is Moderate."
        )
        assert "Moderate depression symptoms." in text
        assert "{{" not in text

    def test_phq9_chinese(self, phq9: AssessmentType) -> None:
        text = InterpretationGenerator().interpret(phq9, MODERATE, "zh")
        assert text.startswith("根据您的PHQ-9评估，您的抑郁严重程度为Moderate。")

    def test_unknown_language_falls_back(self, phq9: AssessmentType) -> None:
        english = InterpretationGenerator().interpret(phq9, MODERATE, "en")
        assert InterpretationGenerator().interpret(phq9, MODERATE, "fr") == english

    def test_value_placeholder(self, phq9: AssessmentType) -> None:
        generator = InterpretationGenerator(templates={})
        generator.register_template("phq-9", "en", "Score {{phq9-total_value}} of 27.")
        assert generator.interpret(phq9, MODERATE, "en") == "Score 12 of 27."

    def test_default_key_template(self, phq9: AssessmentType) -> None:
        templates = {"phq-9": {"default": "Level {{phq9-total}}"}}
        generator = InterpretationGenerator(templates=templates)
        assert generator.interpret(phq9, MODERATE, "zh") == "Level Moderate"

    def test_unknown_placeholder_left_in_place(self, phq9: AssessmentType) -> None:
        generator = InterpretationGenerator(templates={"phq-9": {"en": "{{missing}} stays"}})
        assert generator.interpret(phq9, MODERATE, "en") == "{{missing}} stays"

    def test_generic_sentence_without_template(self) -> None:
        """Types without templates list each rule's label and value."""
        assessment_type = build_scale_assessment()
        scores = {"total": RuleScore(7, "Mild", "Mild symptoms", RiskLevel.LOW)}
        generator = InterpretationGenerator()

        assert not generator.has_template("mood-scale")
        assert generator.interpret(assessment_type, scores, "en") == (
            "Based on your responses to the Mood Scale, your results show: "
            "total: Mild (7). Screening only."
        )
