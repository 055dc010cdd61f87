"""Results analyzer: turns completed sessions into immutable results.

Scoring, interpretation and recommendation synthesis are deterministic
for a given session and catalog; only the result id and completion
timestamp differ between two analyses of the same session.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mindscreen.config import AnalyzerSettings
from mindscreen.domain.entities import AssessmentReport, AssessmentResult, answer_values
from mindscreen.domain.enums import SessionStatus
from mindscreen.infrastructure.logging import get_logger
from mindscreen.services.interpretation import InterpretationGenerator
from mindscreen.services.persistence import RESULTS_NAMESPACE
from mindscreen.services.recommendations import RecommendationGenerator
from mindscreen.services.reporting import (
    AssessmentStatistics,
    build_visualizations,
    compare_results,
    compute_statistics,
    resource_suggestions,
)
from mindscreen.services.scoring import aggregate_risk, score_rule

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mindscreen.domain.entities import AssessmentSession, AssessmentType
    from mindscreen.domain.value_objects import RuleScore
    from mindscreen.services.persistence import PersistenceGateway
    from mindscreen.services.question_bank import QuestionBankManager

logger = get_logger(__name__)

_REQUIRED_RESULT_KEYS = ("id", "sessionId", "assessmentTypeId")


@dataclass(frozen=True, slots=True)
class ImportReport:
    """Outcome of ``ResultsAnalyzer.import_results``."""

    success: bool
    imported: int = 0
    errors: tuple[str, ...] = field(default_factory=tuple)


class ResultsAnalyzer:
    """Scores completed sessions and keeps the result table."""

    def __init__(
        self,
        question_bank: QuestionBankManager,
        persistence: PersistenceGateway,
        settings: AnalyzerSettings | None = None,
        interpretation: InterpretationGenerator | None = None,
        recommendations: RecommendationGenerator | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            question_bank: Catalog used to resolve assessment types.
            persistence: Gateway for the ``results`` namespace.
            settings: Analyzer configuration.
            interpretation: Interpretation generator (default templates if None).
            recommendations: Recommendation generator (built from settings if None).
        """
        self._bank = question_bank
        self._persistence = persistence
        self._settings = settings or AnalyzerSettings()
        self._interpretation = interpretation or InterpretationGenerator(
            fallback_language=question_bank.fallback_language
        )
        self._recommendations = recommendations or RecommendationGenerator(self._settings)
        self._results: dict[str, AssessmentResult] = {}

    @property
    def interpretation(self) -> InterpretationGenerator:
        return self._interpretation

    def __len__(self) -> int:
        return len(self._results)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_session(self, session: AssessmentSession) -> AssessmentResult | None:
        """Score a completed session, store and persist the result.

        Re-analyzing a session replaces its earlier result.

        Returns:
            The new result, or None if the session is not completed or its
            assessment type is unknown.
        """
        if session.status is not SessionStatus.COMPLETED:
            logger.warning(
                "Analysis skipped: session not completed",
                session_id=session.id,
                status=session.status.value,
            )
            return None
        assessment_type = self._bank.get_assessment_type(session.assessment_type_id)
        if assessment_type is None:
            logger.warning(
                "Analysis skipped: unknown assessment type",
                session_id=session.id,
                assessment_type_id=session.assessment_type_id,
            )
            return None

        result = self.evaluate(session, assessment_type)
        for stale_id in [r.id for r in self._results.values() if r.session_id == session.id]:
            del self._results[stale_id]
        self._results[result.id] = result
        self._save()

        logger.info(
            "Session analyzed",
            session_id=session.id,
            result_id=result.id,
            assessment_type_id=result.assessment_type_id,
            risk_level=result.risk_level.value,
            recommendations=len(result.recommendations),
        )
        return result

    def evaluate(
        self, session: AssessmentSession, assessment_type: AssessmentType
    ) -> AssessmentResult:
        """Build a result without storing it."""
        answers = answer_values(session.answers)
        questions = {q.id: q for q in assessment_type.questions}
        scores: dict[str, RuleScore] = {
            rule.id: score_rule(rule, answers, questions) for rule in assessment_type.scoring_rules
        }
        risk_level = aggregate_risk(scores.values())

        presented = (
            self._bank.get_presented_assessment_type(
                assessment_type.id, session.language, session.cultural_context
            )
            or assessment_type
        )
        interpretation = self._interpretation.interpret(presented, scores, session.language)
        recommendations = self._recommendations.recommend(
            assessment_type, scores, risk_level, answers
        )

        return AssessmentResult(
            session_id=session.id,
            assessment_type_id=assessment_type.id,
            scores=scores,
            interpretation=interpretation,
            recommendations=recommendations,
            risk_level=risk_level,
            total_time_spent=session.time_spent,
            answers=tuple(session.answers),
            language=session.language,
            cultural_context=session.cultural_context,
        )

    # ------------------------------------------------------------------
    # Result table
    # ------------------------------------------------------------------

    def get_result(self, result_id: str) -> AssessmentResult | None:
        return self._results.get(result_id)

    def get_result_for_session(self, session_id: str) -> AssessmentResult | None:
        for result in self._results.values():
            if result.session_id == session_id:
                return result
        return None

    def get_all_results(self) -> list[AssessmentResult]:
        """All results, newest first."""
        return sorted(self._results.values(), key=lambda r: r.completed_at, reverse=True)

    def get_results_by_assessment_type(self, assessment_type_id: str) -> list[AssessmentResult]:
        """Results of one assessment type, newest first."""
        return [r for r in self.get_all_results() if r.assessment_type_id == assessment_type_id]

    def delete_result(self, result_id: str) -> bool:
        if self._results.pop(result_id, None) is None:
            return False
        self._save()
        logger.info("Result deleted", result_id=result_id)
        return True

    def delete_results(self, result_ids: Iterable[str]) -> int:
        """Remove several results with a single save. Returns how many existed."""
        deleted = sum(self._results.pop(result_id, None) is not None for result_id in result_ids)
        if deleted:
            self._save()
            logger.info("Results deleted", results=deleted)
        return deleted

    def clear_all_results(self) -> None:
        count = len(self._results)
        self._results.clear()
        self._persistence.clear(RESULTS_NAMESPACE)
        logger.info("All results cleared", results=count)

    def load_results(self) -> int:
        """Replace the in-memory table with the persisted results.

        Returns:
            Number of results loaded.
        """
        self._results = {r.id: r for r in self._persistence.load_results()}
        return len(self._results)

    def _save(self) -> None:
        self._persistence.save_results(self._results.values())

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def generate_report(self, result_id: str) -> AssessmentReport | None:
        """Chart data, trend comparison and resource pointers for a result."""
        result = self._results.get(result_id)
        if result is None:
            return None
        assessment_type = self._bank.get_assessment_type(result.assessment_type_id)
        comparisons = compare_results(
            result,
            list(self._results.values()),
            threshold=self._settings.trend_threshold,
            max_previous=self._settings.max_previous_results,
        )
        return AssessmentReport(
            result=result,
            visualizations=build_visualizations(result, assessment_type),
            comparisons=comparisons,
            resource_recommendations=resource_suggestions(result.risk_level),
        )

    def get_assessment_statistics(self) -> AssessmentStatistics:
        return compute_statistics(
            list(self._results.values()), recent_days=self._settings.recent_activity_days
        )

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_results(self) -> str:
        """Serialize every result as a JSON list of records."""
        records = [r.to_record() for r in self.get_all_results()]
        return json.dumps(records, ensure_ascii=False, indent=2)

    def import_results(self, payload: str) -> ImportReport:
        """Import results exported by ``export_results``.

        Every record is validated first; nothing is stored unless all
        records are valid.
        """
        try:
            records = json.loads(payload)
        except json.JSONDecodeError:
            return ImportReport(success=False, errors=("Invalid JSON format",))
        if not isinstance(records, list):
            return ImportReport(success=False, errors=("Expected a list of results",))

        parsed, errors = self.parse_result_records(records)
        if errors:
            logger.warning("Result import rejected", errors=len(errors))
            return ImportReport(success=False, errors=tuple(errors))
        return ImportReport(success=True, imported=self.add_results(parsed))

    @classmethod
    def parse_result_records(
        cls, records: list[Any]
    ) -> tuple[list[AssessmentResult], list[str]]:
        """Parse exported result records, collecting one error per bad record."""
        parsed: list[AssessmentResult] = []
        errors: list[str] = []
        for index, record in enumerate(records):
            problem = cls._check_record(record)
            if problem:
                errors.append(f"Result #{index}: {problem}")
                continue
            try:
                parsed.append(AssessmentResult.from_record(record))
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                errors.append(f"Failed to import result {record.get('id')}: {exc}")
        return parsed, errors

    def add_results(self, results: Iterable[AssessmentResult]) -> int:
        """Store already-validated results, replacing equal ids, with one save."""
        added = 0
        for result in results:
            self._results[result.id] = result
            added += 1
        self._save()
        logger.info("Results imported", imported=added)
        return added

    @staticmethod
    def _check_record(record: Any) -> str | None:
        if not isinstance(record, dict):
            return "not an object"
        missing = [key for key in _REQUIRED_RESULT_KEYS if not record.get(key)]
        if missing:
            return f"missing {', '.join(missing)}"
        return None
