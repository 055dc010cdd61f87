"""Type-specific answer validation.

Validation never raises: every outcome is an AnswerValidation so the
presentation layer can render inline feedback.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from mindscreen.domain.enums import QuestionType, ValidationErrorCode
from mindscreen.domain.value_objects import AnswerValidation
from mindscreen.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from mindscreen.domain.entities import Question

logger = get_logger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list | tuple):
        return len(value) == 0
    return False


class AnswerValidator:
    """Checks an answer against its question's type-specific rules.

    Rules:
        - required questions reject blank answers (None, "", [])
        - single_choice: a known option id or option value
        - multiple_choice: a list of distinct known option ids/values,
          honouring min/max selections
        - scale: a finite number within [scale_min, scale_max], or an option id
        - text: a string no longer than max_length
    """

    def validate(self, question: Question, value: Any) -> AnswerValidation:
        """Validate ``value`` as an answer to ``question``."""
        outcome = self._check(question, value)
        if not outcome.valid:
            logger.debug(
                "Answer rejected",
                question_id=question.id,
                code=outcome.code.value if outcome.code else None,
            )
        return outcome

    def _check(self, question: Question, value: Any) -> AnswerValidation:
        if is_blank(value):
            if question.required:
                return AnswerValidation.fail(
                    ValidationErrorCode.REQUIRED_MISSING,
                    "This question requires an answer",
                    question.id,
                )
            return AnswerValidation.ok(question.id)
        if isinstance(value, bool):
            return self._wrong_type(question, "a boolean is not a valid answer")

        match question.type:
            case QuestionType.SINGLE_CHOICE:
                return self._check_single_choice(question, value)
            case QuestionType.MULTIPLE_CHOICE:
                return self._check_multiple_choice(question, value)
            case QuestionType.SCALE:
                return self._check_scale(question, value)
            case QuestionType.TEXT:
                return self._check_text(question, value)
        return self._wrong_type(question, f"unsupported question type {question.type!r}")

    @staticmethod
    def _wrong_type(question: Question, message: str) -> AnswerValidation:
        return AnswerValidation.fail(ValidationErrorCode.WRONG_TYPE, message, question.id)

    def _check_single_choice(self, question: Question, value: Any) -> AnswerValidation:
        if not (isinstance(value, str) or _is_number(value)):
            return self._wrong_type(question, "Select exactly one option")
        if question.find_option(value) is None:
            return AnswerValidation.fail(
                ValidationErrorCode.INVALID_OPTION,
                "The selected option is not available for this question",
                question.id,
            )
        return AnswerValidation.ok(question.id)

    def _check_multiple_choice(self, question: Question, value: Any) -> AnswerValidation:
        if not isinstance(value, list | tuple):
            return self._wrong_type(question, "Select one or more options")

        selected: list[str] = []
        for member in value:
            if isinstance(member, bool) or not (isinstance(member, str) or _is_number(member)):
                return self._wrong_type(question, "Each selection must be an option")
            option = question.find_option(member)
            if option is None:
                return AnswerValidation.fail(
                    ValidationErrorCode.INVALID_OPTION,
                    "One of the selected options is not available for this question",
                    question.id,
                )
            selected.append(option.id)
        if len(selected) != len(set(selected)):
            return AnswerValidation.fail(
                ValidationErrorCode.INVALID_OPTION,
                "The same option was selected more than once",
                question.id,
            )

        if question.min_selections is not None and len(selected) < question.min_selections:
            return AnswerValidation.fail(
                ValidationErrorCode.OUT_OF_RANGE,
                f"Select at least {question.min_selections} options",
                question.id,
            )
        if question.max_selections is not None and len(selected) > question.max_selections:
            return AnswerValidation.fail(
                ValidationErrorCode.OUT_OF_RANGE,
                f"Select at most {question.max_selections} options",
                question.id,
            )
        return AnswerValidation.ok(question.id)

    def _check_scale(self, question: Question, value: Any) -> AnswerValidation:
        if isinstance(value, str):
            if question.find_option(value) is not None:
                return AnswerValidation.ok(question.id)
            return self._wrong_type(question, "Enter a number on the scale")
        if not _is_number(value) or not math.isfinite(value):
            return self._wrong_type(question, "Enter a number on the scale")

        if question.scale_min is not None and question.scale_max is not None:
            if not question.scale_min <= value <= question.scale_max:
                return AnswerValidation.fail(
                    ValidationErrorCode.OUT_OF_RANGE,
                    f"Choose a value between {question.scale_min:g} and {question.scale_max:g}",
                    question.id,
                )
            return AnswerValidation.ok(question.id)

        if question.find_option(value) is None:
            return AnswerValidation.fail(
                ValidationErrorCode.INVALID_OPTION,
                "The selected value is not on this scale",
                question.id,
            )
        return AnswerValidation.ok(question.id)

    def _check_text(self, question: Question, value: Any) -> AnswerValidation:
        if not isinstance(value, str):
            return self._wrong_type(question, "Enter a text answer")
        if question.max_length is not None and len(value) > question.max_length:
            return AnswerValidation.fail(
                ValidationErrorCode.OUT_OF_RANGE,
                f"Keep the answer to at most {question.max_length} characters",
                question.id,
            )
        return AnswerValidation.ok(question.id)
