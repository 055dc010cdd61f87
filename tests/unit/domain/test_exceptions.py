"""Tests for domain exceptions.

Tests verify exception hierarchy and message formatting.
"""

from __future__ import annotations

import pytest

from mindscreen.domain.enums import SessionErrorCode, StorageErrorCode
from mindscreen.domain.exceptions import (
    CatalogError,
    CatalogImportError,
    CatalogValidationError,
    DomainError,
    SessionError,
    StorageError,
)

pytestmark = pytest.mark.unit


class TestExceptionHierarchy:
    """Tests for exception class hierarchy."""

    @pytest.mark.parametrize("error_type", [SessionError, StorageError, CatalogError])
    def test_inherits_domain_error(self, error_type: type[Exception]) -> None:
        assert issubclass(error_type, DomainError)

    @pytest.mark.parametrize("error_type", [CatalogValidationError, CatalogImportError])
    def test_catalog_errors(self, error_type: type[Exception]) -> None:
        assert issubclass(error_type, CatalogError)


class TestSessionError:
    """Tests for SessionError."""

    def test_carries_code_and_context(self) -> None:
        """The session id lets callers resume the conflicting session."""
        error = SessionError(
            SessionErrorCode.SESSION_ALREADY_EXISTS,
            "already active",
            session_id="session_1",
            assessment_type_id="phq-9",
        )
        assert error.code is SessionErrorCode.SESSION_ALREADY_EXISTS
        assert error.session_id == "session_1"
        assert error.assessment_type_id == "phq-9"
        assert str(error) == "SESSION_ALREADY_EXISTS: already active"


class TestStorageError:
    """Tests for StorageError."""

    @pytest.mark.parametrize(
        ("code", "recoverable"),
        [
            (StorageErrorCode.QUOTA_EXCEEDED, True),
            (StorageErrorCode.SAVE_FAILED, True),
            (StorageErrorCode.NOT_AVAILABLE, False),
        ],
    )
    def test_recoverable(self, code: StorageErrorCode, recoverable: bool) -> None:
        assert StorageError(code, "boom").recoverable is recoverable


class TestCatalogErrors:
    """Tests for catalog error formatting."""

    def test_validation_error_lists_problems(self) -> None:
        error = CatalogValidationError("phq-9", ["no questions", "no scoring rules"])
        assert error.entity_id == "phq-9"
        assert "no questions; no scoring rules" in str(error)

    def test_import_error_copies_errors(self) -> None:
        """Problems are copied into plain lists keyed by entry id."""
        error = CatalogImportError({"a": ("x",), "b": ["y", "z"]})
        assert error.errors == {"a": ["x"], "b": ["y", "z"]}
        assert "2 invalid" in str(error)
