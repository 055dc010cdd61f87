"""Domain models and entities for questionnaire-based self-assessment.

This module provides the core domain layer for mindscreen, containing
pure Python objects with no external dependencies.

Modules:
    enums: Domain enumerations (QuestionType, RiskLevel, SessionStatus, etc.)
    value_objects: Immutable value types (AssessmentAnswer, RuleScore, etc.)
    entities: Core business entities (AssessmentType, AssessmentSession, etc.)
    exceptions: Domain-specific exceptions

Example:
    >>> from mindscreen.domain import RiskLevel
    >>> RiskLevel.most_severe([RiskLevel.LOW, RiskLevel.HIGH])
    <RiskLevel.HIGH: 'high'>
"""

from mindscreen.domain.entities import (
    AssessmentReport,
    AssessmentResult,
    AssessmentSession,
    AssessmentType,
    Question,
    ScoringRule,
)
from mindscreen.domain.enums import (
    AssessmentCategory,
    CalculationKind,
    ChartType,
    QuestionType,
    RiskLevel,
    SessionErrorCode,
    SessionStatus,
    StorageErrorCode,
    TrendDirection,
    ValidationErrorCode,
)
from mindscreen.domain.exceptions import (
    CatalogError,
    CatalogImportError,
    CatalogValidationError,
    DomainError,
    SessionError,
    StorageError,
)
from mindscreen.domain.value_objects import (
    AnswerValidation,
    AssessmentAnswer,
    ChartSpec,
    Progress,
    QuestionOption,
    ResourceSuggestion,
    RuleScore,
    ScaleLabels,
    ScoreRange,
    TrendComparison,
)

__all__ = [
    "AnswerValidation",
    "AssessmentAnswer",
    "AssessmentCategory",
    "AssessmentReport",
    "AssessmentResult",
    "AssessmentSession",
    "AssessmentType",
    "CalculationKind",
    "CatalogError",
    "CatalogImportError",
    "CatalogValidationError",
    "ChartSpec",
    "ChartType",
    "DomainError",
    "Progress",
    "Question",
    "QuestionOption",
    "QuestionType",
    "ResourceSuggestion",
    "RiskLevel",
    "RuleScore",
    "ScaleLabels",
    "ScoreRange",
    "ScoringRule",
    "SessionError",
    "SessionErrorCode",
    "SessionStatus",
    "StorageError",
    "StorageErrorCode",
    "TrendComparison",
    "TrendDirection",
    "ValidationErrorCode",
]
