"""Domain-specific exceptions for mindscreen.

This module defines a hierarchical exception system for domain errors:

    DomainError (base)
    ├── SessionError
    ├── StorageError
    └── CatalogError
        ├── CatalogValidationError
        └── CatalogImportError

Answer validation failures are deliberately absent: they are returned as
AnswerValidation values so callers can render inline feedback.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mindscreen.domain.enums import SessionErrorCode, StorageErrorCode

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class DomainError(Exception):
    """Base class for domain errors.

    All domain-specific exceptions should inherit from this class
    to allow for catching all domain errors with a single except clause.
    """


class SessionError(DomainError):
    """Raised by the assessment engine for session and environment problems.

    Carries the session id (when known) so callers can recover, for
    example by resuming the already-active session.
    """

    def __init__(
        self,
        code: SessionErrorCode,
        message: str,
        *,
        session_id: str | None = None,
        assessment_type_id: str | None = None,
    ) -> None:
        """Initialize with an error code and context.

        Args:
            code: The SessionErrorCode describing the failure.
            message: Human-readable description.
            session_id: Affected session, if any.
            assessment_type_id: Affected assessment type, if any.
        """
        self.code = code
        self.session_id = session_id
        self.assessment_type_id = assessment_type_id
        super().__init__(f"{code.value}: {message}")


class StorageError(DomainError):
    """Raised by storage backends when persistence fails.

    The persistence gateway catches these and applies recovery; they
    never reach engine callers.
    """

    def __init__(self, code: StorageErrorCode, message: str) -> None:
        """Initialize with an error code and message.

        Args:
            code: The StorageErrorCode describing the failure.
            message: Description of what went wrong.
        """
        self.code = code
        super().__init__(f"{code.value}: {message}")

    @property
    def recoverable(self) -> bool:
        """Check if a retry or cleanup could make the save succeed.

        Returns:
            False when storage is not available at all.
        """
        return self.code is not StorageErrorCode.NOT_AVAILABLE


class CatalogError(DomainError):
    """Errors related to the question bank catalog."""


class CatalogValidationError(CatalogError):
    """Raised when an assessment type fails structural validation."""

    def __init__(self, entity_id: str, problems: Sequence[str]) -> None:
        """Initialize with the offending entity and its problems.

        Args:
            entity_id: Id of the assessment type (or question) that failed.
            problems: Every validation problem found.
        """
        self.entity_id = entity_id
        self.problems = list(problems)
        super().__init__(f"Invalid catalog entry '{entity_id}': {'; '.join(self.problems)}")


class CatalogImportError(CatalogError):
    """Raised when a catalog import is rejected.

    Imports are all-or-nothing, so a single invalid entry rejects the
    whole batch. ``errors`` maps entry ids to their problems.
    """

    def __init__(self, errors: Mapping[str, Sequence[str]]) -> None:
        """Initialize with per-entry problems.

        Args:
            errors: Mapping of entry id to list of problems.
        """
        self.errors = {key: list(value) for key, value in errors.items()}
        super().__init__(f"Catalog import rejected: {len(self.errors)} invalid entr(y/ies)")
