"""Tests for type-specific answer validation."""

from __future__ import annotations

import math
from typing import Any

import pytest

from mindscreen.domain.entities import Question
from mindscreen.domain.enums import QuestionType, ValidationErrorCode
from mindscreen.domain.value_objects import QuestionOption
from mindscreen.services.answer_validation import AnswerValidator, is_blank
from tests.fixtures import build_scale_assessment

pytestmark = pytest.mark.unit

SINGLE = Question(
    id="mood",
    text="How is your mood?",
    type=QuestionType.SINGLE_CHOICE,
    options=(
        QuestionOption("good", "Good", 0),
        QuestionOption("low", "Low", 1),
        QuestionOption("bad", "Bad", 2),
    ),
)
MULTI = Question(
    id="triggers",
    text="What stresses you?",
    type=QuestionType.MULTIPLE_CHOICE,
    options=(
        QuestionOption("work", "Work", 1),
        QuestionOption("family", "Family", 1),
        QuestionOption("money", "Money", 1),
    ),
    min_selections=1,
    max_selections=2,
)
SCALE = build_scale_assessment().questions[0]
OPTION_SCALE = Question(
    id="energy",
    text="Energy",
    type=QuestionType.SCALE,
    options=(QuestionOption("e0", "None", 0), QuestionOption("e1", "Some", 1)),
)
TEXT = Question(id="notes", text="Anything else?", type=QuestionType.TEXT, max_length=10)
OPTIONAL_TEXT = Question(id="extra", text="Extra", type=QuestionType.TEXT, required=False)


@pytest.fixture
def validator() -> AnswerValidator:
    return AnswerValidator()


class TestIsBlank:
    @pytest.mark.parametrize("value", [None, "", "   ", [], ()])
    def test_blank(self, value: Any) -> None:
        assert is_blank(value)

    @pytest.mark.parametrize("value", [0, "x", ["a"], 0.0])
    def test_not_blank(self, value: Any) -> None:
        assert not is_blank(value)


class TestRequired:
    """Blank answers are only accepted for optional questions."""

    @pytest.mark.parametrize("value", [None, "", []])
    def test_required_missing(self, validator: AnswerValidator, value: Any) -> None:
        outcome = validator.validate(SINGLE, value)
        assert not outcome.valid
        assert outcome.code is ValidationErrorCode.REQUIRED_MISSING
        assert outcome.question_id == "mood"

    def test_optional_blank_accepted(self, validator: AnswerValidator) -> None:
        assert validator.validate(OPTIONAL_TEXT, "").valid

    def test_boolean_rejected(self, validator: AnswerValidator) -> None:
        outcome = validator.validate(SCALE, True)
        assert outcome.code is ValidationErrorCode.WRONG_TYPE


class TestSingleChoice:
    @pytest.mark.parametrize("value", ["low", 2, 0.0])
    def test_valid(self, validator: AnswerValidator, value: Any) -> None:
        """Option ids and option values are both accepted."""
        assert validator.validate(SINGLE, value).valid

    def test_unknown_option(self, validator: AnswerValidator) -> None:
        outcome = validator.validate(SINGLE, "terrible")
        assert outcome.code is ValidationErrorCode.INVALID_OPTION

    def test_list_is_wrong_type(self, validator: AnswerValidator) -> None:
        outcome = validator.validate(SINGLE, ["low"])
        assert outcome.code is ValidationErrorCode.WRONG_TYPE


class TestMultipleChoice:
    def test_valid(self, validator: AnswerValidator) -> None:
        assert validator.validate(MULTI, ["work", "money"]).valid

    def test_scalar_is_wrong_type(self, validator: AnswerValidator) -> None:
        assert validator.validate(MULTI, "work").code is ValidationErrorCode.WRONG_TYPE

    def test_unknown_member(self, validator: AnswerValidator) -> None:
        outcome = validator.validate(MULTI, ["work", "weather"])
        assert outcome.code is ValidationErrorCode.INVALID_OPTION

    def test_duplicate_members(self, validator: AnswerValidator) -> None:
        outcome = validator.validate(MULTI, ["work", "work"])
        assert outcome.code is ValidationErrorCode.INVALID_OPTION

    def test_too_many(self, validator: AnswerValidator) -> None:
        outcome = validator.validate(MULTI, ["work", "family", "money"])
        assert outcome.code is ValidationErrorCode.OUT_OF_RANGE
        assert "at most 2" in outcome.message


class TestScale:
    @pytest.mark.parametrize("value", [0, 3, 1.5])
    def test_within_bounds(self, validator: AnswerValidator, value: float) -> None:
        assert validator.validate(SCALE, value).valid

    def test_out_of_range(self, validator: AnswerValidator) -> None:
        """A 5 on a 0..3 scale is rejected."""
        outcome = validator.validate(SCALE, 5)
        assert not outcome.valid
        assert outcome.code is ValidationErrorCode.OUT_OF_RANGE

    @pytest.mark.parametrize("value", [math.nan, math.inf, "seven", [1]])
    def test_not_a_number(self, validator: AnswerValidator, value: Any) -> None:
        assert validator.validate(SCALE, value).code is ValidationErrorCode.WRONG_TYPE

    def test_option_scale(self, validator: AnswerValidator) -> None:
        """Scales without bounds accept option ids and option values only."""
        assert validator.validate(OPTION_SCALE, "e1").valid
        assert validator.validate(OPTION_SCALE, 1).valid
        assert validator.validate(OPTION_SCALE, 2).code is ValidationErrorCode.INVALID_OPTION


class TestText:
    def test_valid(self, validator: AnswerValidator) -> None:
        assert validator.validate(TEXT, "fine").valid

    def test_too_long(self, validator: AnswerValidator) -> None:
        outcome = validator.validate(TEXT, "x" * 11)
        assert outcome.code is ValidationErrorCode.OUT_OF_RANGE

    def test_number_is_wrong_type(self, validator: AnswerValidator) -> None:
        assert validator.validate(TEXT, 42).code is ValidationErrorCode.WRONG_TYPE
