"""Conversion between catalog records and catalog entities.

Catalog records are plain camelCase mappings (the shape of YAML catalog
files and JSON exports). Decoding splits a record into a canonical
AssessmentType plus its localization entries; encoding rebuilds the
record from the entity and the localization table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mindscreen.domain.entities import AssessmentType, Question, ScoringRule
from mindscreen.domain.enums import AssessmentCategory, CalculationKind, QuestionType, RiskLevel
from mindscreen.domain.exceptions import CatalogValidationError
from mindscreen.domain.value_objects import (
    QuestionOption,
    ScaleLabels,
    ScoreRange,
    parse_timestamp,
)
from mindscreen.services.localization import (
    CULTURE_PREFIX,
    TYPE_FIELDS,
    culture_locale,
    option_path,
    question_path,
    scale_label_path,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from mindscreen.services.localization import LocalizationTable


@dataclass(frozen=True, slots=True)
class TranslationItem:
    """A localized field extracted from a catalog record."""

    field_path: str
    locale: str
    text: str


@dataclass(frozen=True, slots=True)
class DecodedAssessmentType:
    """Result of decoding one catalog record."""

    assessment_type: AssessmentType
    translations: tuple[TranslationItem, ...]


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _decode_question(record: Mapping[str, Any]) -> Question:
    labels = record.get("scaleLabels")
    return Question(
        id=str(record["id"]),
        text=str(record.get("text", "")),
        type=QuestionType(record["type"]),
        required=bool(record.get("required", True)),
        options=tuple(
            QuestionOption(id=str(o["id"]), text=str(o["text"]), value=float(o["value"]))
            for o in record.get("options") or ()
        ),
        scale_min=_optional_float(record.get("scaleMin")),
        scale_max=_optional_float(record.get("scaleMax")),
        scale_labels=(
            ScaleLabels(min=str(labels["min"]), max=str(labels["max"])) if labels else None
        ),
        min_selections=_optional_int(record.get("minSelections")),
        max_selections=_optional_int(record.get("maxSelections")),
        max_length=_optional_int(record.get("maxLength")),
    )


def _decode_rule(record: Mapping[str, Any]) -> ScoringRule:
    return ScoringRule(
        id=str(record["id"]),
        name=str(record.get("name", record["id"])),
        description=str(record.get("description", "")),
        calculation=CalculationKind(record.get("calculation", CalculationKind.SUM)),
        question_ids=tuple(str(q) for q in record["questionIds"]),
        weights={str(k): float(v) for k, v in (record.get("weights") or {}).items()},
        custom_formula=record.get("customFormula"),
        ranges=tuple(
            ScoreRange(
                min=float(r["min"]),
                max=float(r["max"]),
                label=str(r["label"]),
                description=str(r.get("description", "")),
                risk_level=RiskLevel(r["riskLevel"]) if r.get("riskLevel") else None,
            )
            for r in record.get("ranges") or ()
        ),
    )


def _question_overrides(
    question_id: str, locale: str, overrides: Mapping[str, Any]
) -> Iterator[TranslationItem]:
    if overrides.get("text"):
        yield TranslationItem(question_path(question_id), locale, str(overrides["text"]))
    for option_id, text in (overrides.get("options") or {}).items():
        yield TranslationItem(option_path(question_id, str(option_id)), locale, str(text))
    for end, text in (overrides.get("scaleLabels") or {}).items():
        yield TranslationItem(scale_label_path(question_id, str(end)), locale, str(text))


def _override_tables(record: Mapping[str, Any]) -> Iterator[tuple[str, Mapping[str, Any]]]:
    for language, overrides in (record.get("translations") or {}).items():
        yield str(language), overrides
    for context, overrides in (record.get("culturalAdaptations") or {}).items():
        yield culture_locale(str(context)), overrides


def decode_assessment_type(record: Mapping[str, Any]) -> DecodedAssessmentType:
    """Decode a camelCase catalog record.

    Only the shape is checked here; structural rules are enforced by
    the question bank's validators.

    Raises:
        CatalogValidationError: If the record cannot be decoded.
    """
    entity_id = str(record.get("id", "<unknown>")) if isinstance(record, dict) else "<unknown>"
    try:
        questions = tuple(_decode_question(q) for q in record.get("questions") or ())
        assessment_type = AssessmentType(
            id=str(record["id"]),
            name=str(record.get("name", "")),
            description=str(record.get("description", "")),
            category=AssessmentCategory(record["category"]),
            duration_minutes=int(record.get("duration", 5)),
            instructions=str(record.get("instructions", "")),
            disclaimer=str(record.get("disclaimer", "")),
            version=str(record.get("version", "1.0")),
            questions=questions,
            scoring_rules=tuple(_decode_rule(r) for r in record.get("scoringRules") or ()),
            **{
                attr: parse_timestamp(record[key])
                for attr, key in (("created_at", "createdAt"), ("updated_at", "updatedAt"))
                if record.get(key)
            },
        )
        translations: list[TranslationItem] = []
        for locale, overrides in _override_tables(record):
            translations.extend(
                TranslationItem(name, locale, str(overrides[name]))
                for name in TYPE_FIELDS
                if overrides.get(name)
            )
        for question_record in record.get("questions") or ():
            for locale, overrides in _override_tables(question_record):
                translations.extend(
                    _question_overrides(str(question_record["id"]), locale, overrides)
                )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise CatalogValidationError(entity_id, [f"malformed record: {exc!r}"]) from exc
    return DecodedAssessmentType(assessment_type=assessment_type, translations=tuple(translations))


def encode_question(question: Question) -> dict[str, Any]:
    """Encode a question (base-language texts) as a camelCase record."""
    record: dict[str, Any] = {
        "id": question.id,
        "text": question.text,
        "type": question.type.value,
        "required": question.required,
    }
    if question.options:
        record["options"] = [
            {"id": o.id, "text": o.text, "value": o.value} for o in question.options
        ]
    optional = {
        "scaleMin": question.scale_min,
        "scaleMax": question.scale_max,
        "minSelections": question.min_selections,
        "maxSelections": question.max_selections,
        "maxLength": question.max_length,
    }
    record.update({key: value for key, value in optional.items() if value is not None})
    if question.scale_labels:
        record["scaleLabels"] = {"min": question.scale_labels.min, "max": question.scale_labels.max}
    return record


def _encode_rule(rule: ScoringRule) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "calculation": rule.calculation.value,
        "questionIds": list(rule.question_ids),
        "ranges": [
            {
                "min": r.min,
                "max": r.max,
                "label": r.label,
                "description": r.description,
                "riskLevel": r.risk_level.value if r.risk_level else None,
            }
            for r in rule.ranges
        ],
    }
    if rule.weights:
        record["weights"] = dict(rule.weights)
    if rule.custom_formula:
        record["customFormula"] = rule.custom_formula
    return record


def _override_slot(record: dict[str, Any], locale: str) -> dict[str, Any]:
    if locale.startswith(CULTURE_PREFIX):
        table = record.setdefault("culturalAdaptations", {})
        return table.setdefault(locale.removeprefix(CULTURE_PREFIX), {})
    return record.setdefault("translations", {}).setdefault(locale, {})


def encode_assessment_type(
    assessment_type: AssessmentType, table: LocalizationTable
) -> dict[str, Any]:
    """Encode an assessment type and its current localizations as a record."""
    record: dict[str, Any] = {
        "id": assessment_type.id,
        "name": assessment_type.name,
        "description": assessment_type.description,
        "category": assessment_type.category.value,
        "duration": assessment_type.duration_minutes,
        "instructions": assessment_type.instructions,
        "disclaimer": assessment_type.disclaimer,
        "version": assessment_type.version,
        "createdAt": assessment_type.created_at.isoformat(),
        "updatedAt": assessment_type.updated_at.isoformat(),
        "questions": [encode_question(q) for q in assessment_type.questions],
        "scoringRules": [_encode_rule(r) for r in assessment_type.scoring_rules],
    }
    questions = {q["id"]: q for q in record["questions"]}

    for entry in table.current_entries(assessment_type.id):
        parts = entry.field_path.split(".")
        if len(parts) == 1:
            _override_slot(record, entry.locale)[parts[0]] = entry.text
            continue
        question_record = questions.get(parts[1])
        if parts[0] != "questions" or question_record is None:
            continue
        slot = _override_slot(question_record, entry.locale)
        if parts[2] == "text":
            slot["text"] = entry.text
        elif len(parts) == 4:
            slot.setdefault(parts[2], {})[parts[3]] = entry.text
    return record
