"""Question bank: the canonical catalog of assessment types.

The manager validates and stores AssessmentType definitions, resolves
localized and culturally adapted views through the LocalizationTable,
and imports/exports the catalog as a checksummed JSON document.
Canonical entities are never mutated; every view is a derived copy.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import yaml

from mindscreen.domain.entities import AssessmentType, Question
from mindscreen.domain.enums import AssessmentCategory, QuestionType
from mindscreen.domain.exceptions import (
    CatalogError,
    CatalogImportError,
    CatalogValidationError,
)
from mindscreen.domain.value_objects import QuestionOption, ScaleLabels
from mindscreen.infrastructure.hashing import stable_json_hash
from mindscreen.infrastructure.logging import get_logger
from mindscreen.services.catalog_codec import decode_assessment_type, encode_assessment_type
from mindscreen.services.localization import (
    LocalizationTable,
    culture_locale,
    option_path,
    question_path,
    scale_label_path,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from mindscreen.services.catalog_codec import DecodedAssessmentType, TranslationItem

logger = get_logger(__name__)

CATALOG_FORMAT: Final[str] = "mindscreen-catalog"
CATALOG_FORMAT_VERSION: Final[str] = "1.0"
DEFAULT_CATALOG_RESOURCE: Final[str] = "default_catalog.yaml"
CATALOG_KEY: Final[str] = "<catalog>"


@dataclass(frozen=True, slots=True)
class CatalogImportReport:
    """Summary of a successful catalog import."""

    imported: tuple[str, ...]
    replaced: tuple[str, ...]
    checksum: str


class QuestionBankManager:
    """Owns the canonical set of assessment definitions.

    Example:
        >>> bank = QuestionBankManager()
        >>> _ = bank.load_default_catalog()
        >>> bank.get_assessment_type("phq-9").name
        'PHQ-9 Depression Assessment'
    """

    def __init__(
        self,
        localizations: LocalizationTable | None = None,
        fallback_language: str = "en",
    ) -> None:
        """Initialize an empty question bank.

        Args:
            localizations: Shared localization table (a new one if None).
            fallback_language: Language of the canonical texts.
        """
        self._types: dict[str, AssessmentType] = {}
        self._localizations = localizations if localizations is not None else LocalizationTable()
        self._fallback_language = fallback_language
        self._catalog_version: str | None = None

    @property
    def localizations(self) -> LocalizationTable:
        return self._localizations

    @property
    def fallback_language(self) -> str:
        return self._fallback_language

    @property
    def catalog_version(self) -> str | None:
        """Version tag of the last loaded catalog source."""
        return self._catalog_version

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._types

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        assessment_type: AssessmentType,
        translations: Iterable[TranslationItem] = (),
    ) -> None:
        """Validate and store an assessment type, replacing any entry with the same id.

        Raises:
            CatalogValidationError: Listing every structural problem found.
        """
        problems = self.validate_assessment_type(assessment_type)
        if problems:
            raise CatalogValidationError(assessment_type.id, problems)
        self._store(assessment_type, translations)

    def remove(self, type_id: str) -> bool:
        """Remove an assessment type and retire its translations.

        Returns False when the type was unknown.
        """
        removed = self._types.pop(type_id, None)
        if removed is None:
            return False
        retired = self._localizations.retire(type_id)
        logger.info("Assessment type removed", assessment_type_id=type_id, translations=retired)
        return True

    def _store(
        self, assessment_type: AssessmentType, translations: Iterable[TranslationItem]
    ) -> None:
        replaced = assessment_type.id in self._types
        self._types[assessment_type.id] = assessment_type
        for item in translations:
            self._localizations.put(assessment_type.id, item.field_path, item.locale, item.text)
        logger.info(
            "Assessment type registered",
            assessment_type_id=assessment_type.id,
            version=assessment_type.version,
            questions=len(assessment_type.questions),
            replaced=replaced,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_assessment_type(self, type_id: str) -> AssessmentType | None:
        return self._types.get(type_id)

    def get_assessment_types(self) -> list[AssessmentType]:
        return list(self._types.values())

    def get_assessment_types_by_category(
        self, category: AssessmentCategory
    ) -> list[AssessmentType]:
        return [t for t in self._types.values() if t.category == category]

    def get_questions_by_category(self, category: AssessmentCategory) -> list[Question]:
        return [q for t in self.get_assessment_types_by_category(category) for q in t.questions]

    def supported_languages(self, type_id: str) -> list[str]:
        """Languages with at least one translation, plus the fallback language."""
        if type_id not in self._types:
            return []
        languages = set(self._localizations.locales(type_id)) | {self._fallback_language}
        return sorted(languages)

    def supported_cultural_contexts(self, type_id: str) -> list[str]:
        return self._localizations.locales(type_id, cultural=True)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_question(self, question: Question) -> list[str]:
        """Check the structural correctness of a question.

        Returns:
            Problems found (empty when the question is valid).
        """
        problems: list[str] = []
        if not question.id or not question.id.strip():
            problems.append("question id is empty")
        elif "." in question.id:
            problems.append(f"question id '{question.id}' must not contain '.'")
        if not question.text or not question.text.strip():
            problems.append(f"question '{question.id}' has empty text")
        if not isinstance(question.type, QuestionType):
            problems.append(f"question '{question.id}' has invalid type {question.type!r}")
            return problems

        if question.type.uses_options and not question.options:
            problems.append(f"question '{question.id}' ({question.type}) has no options")

        has_bounds = question.scale_min is not None and question.scale_max is not None
        if question.type is QuestionType.SCALE and not (question.options or has_bounds):
            problems.append(f"scale question '{question.id}' needs options or scale bounds")
        if (question.scale_min is None) != (question.scale_max is None):
            problems.append(f"question '{question.id}' defines only one scale bound")
        if has_bounds and question.scale_min >= question.scale_max:  # type: ignore[operator]
            problems.append(
                f"question '{question.id}' scale_min {question.scale_min} "
                f"must be below scale_max {question.scale_max}"
            )

        option_ids = [o.id for o in question.options]
        if len(option_ids) != len(set(option_ids)):
            problems.append(f"question '{question.id}' has duplicate option ids")
        if any(not option_id for option_id in option_ids):
            problems.append(f"question '{question.id}' has an option with an empty id")

        if question.min_selections is not None and question.min_selections < 0:
            problems.append(f"question '{question.id}' min_selections is negative")
        if (
            question.min_selections is not None
            and question.max_selections is not None
            and question.min_selections > question.max_selections
        ):
            problems.append(f"question '{question.id}' min_selections exceeds max_selections")
        if question.max_length is not None and question.max_length < 1:
            problems.append(f"question '{question.id}' max_length must be positive")
        return problems

    def validate_assessment_type(self, assessment_type: AssessmentType) -> list[str]:
        """Check the structural correctness of an assessment type.

        Returns:
            Problems found (empty when the type is valid).
        """
        problems: list[str] = []
        if not assessment_type.id or not assessment_type.id.strip():
            problems.append("assessment type id is empty")
        if not assessment_type.name or not assessment_type.name.strip():
            problems.append("assessment type name is empty")
        if not isinstance(assessment_type.category, AssessmentCategory):
            problems.append(f"invalid category {assessment_type.category!r}")
        if not assessment_type.questions:
            problems.append("assessment type has no questions")
        if not assessment_type.scoring_rules:
            problems.append("assessment type has no scoring rules")

        for question in assessment_type.questions:
            problems.extend(self.validate_question(question))

        question_ids = assessment_type.question_ids
        if len(question_ids) != len(set(question_ids)):
            problems.append("duplicate question ids")

        rule_ids = [r.id for r in assessment_type.scoring_rules]
        if len(rule_ids) != len(set(rule_ids)):
            problems.append("duplicate scoring rule ids")

        known = set(question_ids)
        for rule in assessment_type.scoring_rules:
            if not rule.question_ids:
                problems.append(f"scoring rule '{rule.id}' consumes no questions")
            unknown = [q for q in rule.question_ids if q not in known]
            if unknown:
                problems.append(f"scoring rule '{rule.id}' references unknown questions {unknown}")
            stray_weights = sorted(set(rule.weights) - set(rule.question_ids))
            if stray_weights:
                problems.append(
                    f"scoring rule '{rule.id}' weights unknown questions {stray_weights}"
                )
            if not rule.ranges:
                problems.append(f"scoring rule '{rule.id}' has no ranges")
            for earlier, later in zip(rule.ranges, rule.ranges[1:], strict=False):
                if later.min <= earlier.max:
                    problems.append(
                        f"scoring rule '{rule.id}' ranges '{earlier.label}' and "
                        f"'{later.label}' overlap or are out of order"
                    )
        return problems

    # ------------------------------------------------------------------
    # Localized views
    # ------------------------------------------------------------------

    def _apply_locale(self, assessment_type: AssessmentType, locale: str) -> AssessmentType:
        table = self._localizations
        type_id = assessment_type.id

        def text_for(path: str, base: str) -> str:
            return table.get(type_id, path, locale) or base

        def localize_question(question: Question) -> Question:
            labels = question.scale_labels
            if labels is not None:
                labels = ScaleLabels(
                    min=text_for(scale_label_path(question.id, "min"), labels.min),
                    max=text_for(scale_label_path(question.id, "max"), labels.max),
                )
            return replace(
                question,
                text=text_for(question_path(question.id), question.text),
                options=tuple(
                    QuestionOption(
                        id=o.id,
                        text=text_for(option_path(question.id, o.id), o.text),
                        value=o.value,
                    )
                    for o in question.options
                ),
                scale_labels=labels,
            )

        return replace(
            assessment_type,
            name=text_for("name", assessment_type.name),
            description=text_for("description", assessment_type.description),
            instructions=text_for("instructions", assessment_type.instructions),
            disclaimer=text_for("disclaimer", assessment_type.disclaimer),
            questions=tuple(localize_question(q) for q in assessment_type.questions),
        )

    def get_localized_assessment_type(
        self, type_id: str, language: str | None = None
    ) -> AssessmentType | None:
        """Return a copy with texts substituted for ``language``.

        Fields without a translation keep their base-language text.
        """
        assessment_type = self._types.get(type_id)
        if assessment_type is None:
            return None
        if not language or language == self._fallback_language:
            return assessment_type
        return self._apply_locale(assessment_type, language)

    def get_culturally_adapted_assessment_type(
        self, type_id: str, cultural_context: str | None = None
    ) -> AssessmentType | None:
        """Return a copy with texts substituted for a cultural context."""
        assessment_type = self._types.get(type_id)
        if assessment_type is None or not cultural_context:
            return assessment_type
        return self._apply_locale(assessment_type, culture_locale(cultural_context))

    def get_presented_assessment_type(
        self,
        type_id: str,
        language: str | None = None,
        cultural_context: str | None = None,
    ) -> AssessmentType | None:
        """Localize, then apply cultural adaptation on top."""
        presented = self.get_localized_assessment_type(type_id, language)
        if presented is None or not cultural_context:
            return presented
        return self._apply_locale(presented, culture_locale(cultural_context))

    def get_presented_questions(
        self,
        type_id: str,
        language: str | None = None,
        cultural_context: str | None = None,
    ) -> list[Question]:
        presented = self.get_presented_assessment_type(type_id, language, cultural_context)
        return list(presented.questions) if presented else []

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_catalog(self) -> str:
        """Serialize the full catalog, translations included, as JSON."""
        records = [
            encode_assessment_type(t, self._localizations) for t in self._types.values()
        ]
        document = {
            "format": CATALOG_FORMAT,
            "version": CATALOG_FORMAT_VERSION,
            "catalogVersion": self._catalog_version,
            "exportedAt": datetime.now(UTC).isoformat(),
            "checksum": stable_json_hash(records),
            "assessmentTypes": records,
        }
        logger.info(
            "Catalog exported", assessment_types=len(records), checksum=document["checksum"]
        )
        return json.dumps(document, ensure_ascii=False, indent=2)

    def import_catalog(self, payload: str, *, replace: bool = False) -> CatalogImportReport:
        """Import a catalog exported by ``export_catalog``.

        Every entry is re-validated. If any entry fails, nothing is
        registered.

        Args:
            payload: JSON catalog document.
            replace: Allow overwriting assessment types that already exist.

        Raises:
            CatalogImportError: Carrying the problems of every failing entry.
        """
        try:
            document = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise CatalogImportError({CATALOG_KEY: [f"invalid JSON: {exc.msg}"]}) from exc
        return self._import_document(document, replace=replace)

    def load_default_catalog(self) -> CatalogImportReport:
        """Load the packaged default catalog."""
        source = resources.files("mindscreen.catalog").joinpath(DEFAULT_CATALOG_RESOURCE)
        document = yaml.safe_load(source.read_text(encoding="utf-8"))
        return self._import_document(document, replace=True)

    def load_catalog_file(self, path: Path) -> CatalogImportReport:
        """Load a YAML (``.yaml``/``.yml``) or JSON catalog file.

        Raises:
            CatalogError: If the file cannot be read or parsed.
            CatalogImportError: If any entry is invalid.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
            if path.suffix.lower() in (".yaml", ".yml"):
                document = yaml.safe_load(text)
            else:
                document = json.loads(text)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
            raise CatalogError(f"Cannot read catalog {path}: {exc}") from exc
        return self._import_document(document, replace=True)

    def _import_document(self, document: Any, *, replace: bool) -> CatalogImportReport:
        if not isinstance(document, dict) or not isinstance(
            document.get("assessmentTypes"), list
        ):
            raise CatalogImportError({CATALOG_KEY: ["document has no assessmentTypes list"]})

        records = document["assessmentTypes"]
        checksum = stable_json_hash(records)
        expected = document.get("checksum")
        if expected and expected != checksum:
            raise CatalogImportError(
                {CATALOG_KEY: [f"checksum mismatch: expected {expected}, got {checksum}"]}
            )

        decoded, errors = self._decode_all(records, replace=replace)
        if errors:
            logger.warning("Catalog import rejected", invalid_entries=sorted(errors))
            raise CatalogImportError(errors)

        replaced = tuple(
            d.assessment_type.id for d in decoded if d.assessment_type.id in self._types
        )
        for item in decoded:
            self._store(item.assessment_type, item.translations)
        version = document.get("catalog_version") or document.get("catalogVersion")
        if version:
            self._catalog_version = str(version)

        report = CatalogImportReport(
            imported=tuple(d.assessment_type.id for d in decoded),
            replaced=replaced,
            checksum=checksum,
        )
        logger.info(
            "Catalog imported",
            imported=len(report.imported),
            replaced=len(report.replaced),
            catalog_version=self._catalog_version,
            checksum=checksum,
        )
        return report

    def _decode_all(
        self, records: list[Mapping[str, Any]], *, replace: bool
    ) -> tuple[list[DecodedAssessmentType], dict[str, list[str]]]:
        decoded: list[DecodedAssessmentType] = []
        errors: dict[str, list[str]] = {}
        seen: set[str] = set()
        for index, record in enumerate(records):
            key = str(record.get("id") or f"#{index}") if isinstance(record, dict) else f"#{index}"
            try:
                item = decode_assessment_type(record)
            except CatalogValidationError as exc:
                errors.setdefault(key, []).extend(exc.problems)
                continue
            problems = self.validate_assessment_type(item.assessment_type)
            if key in seen:
                problems.append("duplicate assessment type id in import")
            if not replace and key in self._types:
                problems.append("assessment type already registered")
            seen.add(key)
            if problems:
                errors.setdefault(key, []).extend(problems)
            else:
                decoded.append(item)
        return decoded, errors
