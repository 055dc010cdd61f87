"""Application context: explicit wiring of the assessment core.

One AppContext is created at startup and passed to consumers (HTTP
adapter, CLI, tests). ``close()`` flushes sessions and cancels timers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from mindscreen.config import Settings, StorageBackendKind, get_settings
from mindscreen.infrastructure.logging import get_logger
from mindscreen.infrastructure.scheduler import AsyncioScheduler
from mindscreen.infrastructure.storage import InMemoryStorage, JsonFileStorage
from mindscreen.services.analyzer import ResultsAnalyzer
from mindscreen.services.data_manager import DataManager
from mindscreen.services.engine import AssessmentEngine
from mindscreen.services.persistence import PersistenceGateway
from mindscreen.services.question_bank import QuestionBankManager

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from mindscreen.config import StorageSettings
    from mindscreen.domain.entities import AssessmentSession
    from mindscreen.infrastructure.scheduler import Scheduler
    from mindscreen.infrastructure.storage import StorageBackend

logger = get_logger(__name__)


@dataclass(slots=True)
class AppContext:
    """Every long-lived service of the assessment core."""

    settings: Settings
    question_bank: QuestionBankManager
    persistence: PersistenceGateway
    analyzer: ResultsAnalyzer
    engine: AssessmentEngine
    data_manager: DataManager
    scheduler: Scheduler

    def close(self) -> None:
        """Flush sessions and cancel every engine timer."""
        self.engine.shutdown()
        logger.info("Application context closed")


def create_storage(settings: StorageSettings) -> StorageBackend:
    """Create the storage backend selected by ``settings.backend``."""
    if settings.backend == StorageBackendKind.JSON_FILE:
        return JsonFileStorage(settings.data_dir, quota_bytes=settings.quota_bytes)
    if settings.backend == StorageBackendKind.MEMORY:
        return InMemoryStorage(quota_bytes=settings.quota_bytes)

    msg = f"Unsupported storage backend: {settings.backend}"
    raise ValueError(msg)


def create_question_bank(settings: Settings) -> QuestionBankManager:
    """Build the question bank and load the configured catalog source.

    Raises:
        CatalogError: If the configured catalog cannot be loaded.
    """
    bank = QuestionBankManager(fallback_language=settings.catalog.fallback_language)
    if settings.catalog.source is None:
        bank.load_default_catalog()
    else:
        bank.load_catalog_file(settings.catalog.source)
    return bank


def create_app_context(
    settings: Settings | None = None,
    *,
    scheduler: Scheduler | None = None,
    storage: StorageBackend | None = None,
    question_bank: QuestionBankManager | None = None,
    clock: Callable[[], datetime] | None = None,
    on_reminder: Callable[[AssessmentSession], None] | None = None,
) -> AppContext:
    """Wire the question bank, persistence, analyzer and engine.

    Persisted results and sessions are loaded before returning, and data
    past the retention window is removed when
    ``settings.storage.cleanup_on_start`` is set. The engine's auto-save
    is not started; call ``context.engine.start()`` from inside the event
    loop that drives the scheduler.

    Args:
        settings: Application settings (cached settings if None).
        scheduler: Timer backend (an AsyncioScheduler if None).
        storage: Storage backend override (built from settings if None).
        question_bank: Pre-built question bank (catalog from settings if None).
        clock: Time source for the engine and data maintenance.
        on_reminder: Reminder callback for the engine.
    """
    settings = settings or get_settings()
    scheduler = scheduler or AsyncioScheduler()
    bank = question_bank or create_question_bank(settings)
    backend = storage if storage is not None else create_storage(settings.storage)
    persistence = PersistenceGateway.from_settings(backend, settings.storage)

    analyzer = ResultsAnalyzer(bank, persistence, settings.analyzer)
    engine = AssessmentEngine(
        bank,
        analyzer,
        persistence,
        scheduler,
        settings.engine,
        clock=clock,
        on_reminder=on_reminder,
    )

    data_manager = DataManager(engine, analyzer, bank, settings.storage, clock=clock)

    results = analyzer.load_results()
    sessions = engine.load_sessions()
    if settings.storage.cleanup_on_start:
        data_manager.cleanup_old_data()
    logger.info(
        "Application context created",
        storage_backend=type(backend).__name__,
        assessment_types=len(bank),
        catalog_version=bank.catalog_version,
        results=results,
        sessions=sessions,
    )
    return AppContext(
        settings=settings,
        question_bank=bank,
        persistence=persistence,
        analyzer=analyzer,
        engine=engine,
        data_manager=data_manager,
        scheduler=scheduler,
    )
