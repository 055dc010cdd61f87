"""Business logic services.

This module provides the question bank, the session engine, the results
analyzer and the building blocks they share.

Public API:
- QuestionBankManager: Catalog of assessment types with localized views
- LocalizationTable: Append-only translation and cultural adaptation store
- AnswerValidator: Type-specific answer checks
- PersistenceGateway: Recovering facade over a storage backend
- AssessmentEngine: Session state machine with timers
- ResultsAnalyzer: Scoring, interpretation, recommendations and reports
- DataManager: Retention cleanup, integrity repair and whole-store export
- InterpretationGenerator: Template-based interpretation text
- RecommendationGenerator: Recommendation synthesis
"""

from mindscreen.services.analyzer import ImportReport, ResultsAnalyzer
from mindscreen.services.answer_validation import AnswerValidator
from mindscreen.services.data_manager import (
    CleanupReport,
    DataImportReport,
    DataManager,
    IntegrityReport,
    RepairReport,
)
from mindscreen.services.engine import (
    AssessmentEngine,
    HealthReport,
    SessionStatistics,
    SubmitOutcome,
)
from mindscreen.services.interpretation import InterpretationGenerator
from mindscreen.services.localization import LocalizationTable
from mindscreen.services.persistence import PersistenceGateway
from mindscreen.services.question_bank import CatalogImportReport, QuestionBankManager
from mindscreen.services.recommendations import RecommendationGenerator
from mindscreen.services.reporting import AssessmentStatistics

__all__ = [
    "AnswerValidator",
    "AssessmentEngine",
    "AssessmentStatistics",
    "CatalogImportReport",
    "CleanupReport",
    "DataImportReport",
    "DataManager",
    "HealthReport",
    "ImportReport",
    "IntegrityReport",
    "InterpretationGenerator",
    "LocalizationTable",
    "PersistenceGateway",
    "QuestionBankManager",
    "RecommendationGenerator",
    "RepairReport",
    "ResultsAnalyzer",
    "SessionStatistics",
    "SubmitOutcome",
]
