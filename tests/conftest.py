"""Shared pytest fixtures and configuration."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

# Set TESTING mode BEFORE any app imports to prevent .env file loading.
os.environ["TESTING"] = "1"

# Clear environment variables BEFORE any imports that might use Pydantic Settings
# This runs at conftest import time, before test collection
_ENV_VARS_TO_CLEAR = [
    "ENGINE_SESSION_TIMEOUT_SECONDS",
    "ENGINE_AUTO_SAVE_INTERVAL_SECONDS",
    "ENGINE_DEFAULT_LANGUAGE",
    "ENGINE_SINGLE_ACTIVE_SESSION_PER_TYPE",
    "ANALYZER_MAX_RECOMMENDATIONS",
    "ANALYZER_TREND_THRESHOLD",
    "ANALYZER_MAX_PREVIOUS_RESULTS",
    "ANALYZER_STABLE_PATTERN_STD",
    "ANALYZER_VARIABLE_PATTERN_STD",
    "ANALYZER_EXTREME_SCORE_RATIO",
    "ANALYZER_RECENT_ACTIVITY_DAYS",
    "STORAGE_BACKEND",
    "STORAGE_DATA_DIR",
    "STORAGE_QUOTA_BYTES",
    "STORAGE_MAX_RETRIES",
    "STORAGE_DROP_OLDEST_BATCH",
    "STORAGE_RETENTION_DAYS",
    "STORAGE_CLEANUP_ON_START",
    "CATALOG_SOURCE",
    "CATALOG_FALLBACK_LANGUAGE",
    "API_HOST",
    "API_PORT",
    "API_RELOAD",
    "API_CORS_ORIGINS",
    "LOG_FORMAT",
    "LOG_LEVEL",
    "LOG_INCLUDE_TIMESTAMP",
    "LOG_INCLUDE_CALLER",
]

for _var in _ENV_VARS_TO_CLEAR:
    os.environ.pop(_var, None)

from mindscreen.config import AnalyzerSettings, EngineSettings  # noqa: E402
from mindscreen.infrastructure.storage import InMemoryStorage  # noqa: E402
from mindscreen.services.analyzer import ResultsAnalyzer  # noqa: E402
from mindscreen.services.engine import AssessmentEngine  # noqa: E402
from mindscreen.services.persistence import PersistenceGateway  # noqa: E402
from mindscreen.services.question_bank import QuestionBankManager  # noqa: E402
from tests.fixtures import ManualScheduler  # noqa: E402

if TYPE_CHECKING:
    from mindscreen.domain.entities import AssessmentType


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear environment variables that might be set by .env file.

    This ensures tests use code defaults, not local developer overrides.
    Also clears any cached settings to force re-read of defaults.
    """
    for var in _ENV_VARS_TO_CLEAR:
        monkeypatch.delenv(var, raising=False)

    from mindscreen.config import get_settings  # noqa: PLC0415

    get_settings.cache_clear()


@pytest.fixture
def question_bank() -> QuestionBankManager:
    """Question bank loaded with the packaged catalog."""
    bank = QuestionBankManager()
    bank.load_default_catalog()
    return bank


@pytest.fixture
def phq9(question_bank: QuestionBankManager) -> AssessmentType:
    assessment_type = question_bank.get_assessment_type("phq-9")
    assert assessment_type is not None
    return assessment_type


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def persistence(storage: InMemoryStorage) -> PersistenceGateway:
    return PersistenceGateway(storage)


@pytest.fixture
def analyzer(
    question_bank: QuestionBankManager, persistence: PersistenceGateway
) -> ResultsAnalyzer:
    return ResultsAnalyzer(question_bank, persistence, AnalyzerSettings())


@pytest.fixture
def engine(
    question_bank: QuestionBankManager,
    analyzer: ResultsAnalyzer,
    persistence: PersistenceGateway,
    scheduler: ManualScheduler,
) -> AssessmentEngine:
    """Engine on a virtual clock; timers fire only via ``scheduler.advance``."""
    return AssessmentEngine(
        question_bank,
        analyzer,
        persistence,
        scheduler,
        EngineSettings(),
        clock=scheduler.now,
    )
