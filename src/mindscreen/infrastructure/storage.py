"""Storage backends for sessions and results.

A backend stores JSON-compatible record lists under a namespace
(``sessions``, ``results``). Saves replace the whole namespace. Backends
raise StorageError; recovery is the persistence gateway's job.
"""

from __future__ import annotations

import json
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from mindscreen.domain.enums import StorageErrorCode
from mindscreen.domain.exceptions import StorageError
from mindscreen.infrastructure.logging import get_logger

logger = get_logger(__name__)

Record = dict[str, Any]


@dataclass(frozen=True, slots=True)
class StorageQuota:
    """Snapshot of storage capacity in bytes.

    Attributes:
        quota: Total capacity (None when unbounded).
        usage: Bytes currently used across all namespaces.
    """

    quota: int | None
    usage: int

    @property
    def available(self) -> int | None:
        if self.quota is None:
            return None
        return max(self.quota - self.usage, 0)

    @property
    def usage_percentage(self) -> float:
        if not self.quota:
            return 0.0
        return round(100.0 * self.usage / self.quota, 2)


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for namespace-oriented record storage."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether the backend can be written to."""
        ...

    @abstractmethod
    def save(self, namespace: str, records: list[Record]) -> None:
        """Replace the contents of a namespace.

        Raises:
            StorageError: QUOTA_EXCEEDED, SAVE_FAILED or NOT_AVAILABLE.
        """
        ...

    @abstractmethod
    def load(self, namespace: str) -> list[Any]:
        """Return the raw stored items (possibly malformed) of a namespace."""
        ...

    @abstractmethod
    def clear(self, namespace: str) -> None:
        """Remove a namespace."""
        ...

    @abstractmethod
    def quota(self) -> StorageQuota:
        """Report capacity and usage."""
        ...


class InMemoryStorage:
    """Process-local backend, optionally bounded by a byte quota."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._quota_bytes = quota_bytes
        self._namespaces: dict[str, str] = {}

    def is_available(self) -> bool:
        return True

    def save(self, namespace: str, records: list[Record]) -> None:
        try:
            payload = json.dumps(records, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(StorageErrorCode.SAVE_FAILED, str(exc)) from exc
        usage = self._usage_without(namespace) + len(payload.encode("utf-8"))
        if self._quota_bytes is not None and usage > self._quota_bytes:
            raise StorageError(
                StorageErrorCode.QUOTA_EXCEEDED,
                f"{usage} bytes exceeds quota of {self._quota_bytes}",
            )
        self._namespaces[namespace] = payload

    def load(self, namespace: str) -> list[Any]:
        payload = self._namespaces.get(namespace)
        if payload is None:
            return []
        loaded = json.loads(payload)
        return loaded if isinstance(loaded, list) else []

    def clear(self, namespace: str) -> None:
        self._namespaces.pop(namespace, None)

    def quota(self) -> StorageQuota:
        return StorageQuota(quota=self._quota_bytes, usage=self._usage_without(None))

    def _usage_without(self, namespace: str | None) -> int:
        return sum(
            len(payload.encode("utf-8"))
            for name, payload in self._namespaces.items()
            if name != namespace
        )


class JsonFileStorage:
    """One JSON file per namespace under a directory.

    Writes go to a temporary sibling first and are moved into place with
    ``Path.replace`` so a crash never leaves a half-written namespace.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path, quota_bytes: int | None = None) -> None:
        self._directory = Path(directory)
        self._quota_bytes = quota_bytes

    @property
    def directory(self) -> Path:
        return self._directory

    def is_available(self) -> bool:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return self._directory.is_dir()

    def save(self, namespace: str, records: list[Record]) -> None:
        if not self.is_available():
            raise StorageError(
                StorageErrorCode.NOT_AVAILABLE,
                f"Storage directory unavailable: {self._directory}",
            )
        try:
            payload = json.dumps(records, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as exc:
            raise StorageError(StorageErrorCode.SAVE_FAILED, str(exc)) from exc

        encoded = payload.encode("utf-8")
        usage = self._usage_without(namespace) + len(encoded)
        if self._quota_bytes is not None and usage > self._quota_bytes:
            raise StorageError(
                StorageErrorCode.QUOTA_EXCEEDED,
                f"{usage} bytes exceeds quota of {self._quota_bytes}",
            )

        path = self._path(namespace)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_bytes(encoded)
            tmp_path.replace(path)
        except OSError as exc:
            raise StorageError(StorageErrorCode.SAVE_FAILED, str(exc)) from exc

        logger.debug(
            "Namespace saved",
            namespace=namespace,
            records=len(records),
            bytes=len(encoded),
        )

    def load(self, namespace: str) -> list[Any]:
        path = self._path(namespace)
        if not path.is_file():
            return []
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(
                "Unreadable namespace file ignored",
                namespace=namespace,
                path=str(path),
                error=str(exc),
            )
            return []
        if not isinstance(loaded, list):
            logger.warning("Namespace file is not a list", namespace=namespace, path=str(path))
            return []
        return loaded

    def clear(self, namespace: str) -> None:
        self._path(namespace).unlink(missing_ok=True)

    def quota(self) -> StorageQuota:
        return StorageQuota(quota=self._quota_bytes, usage=self._usage_without(None))

    def _path(self, namespace: str) -> Path:
        if not namespace or not namespace.replace("_", "").replace("-", "").isalnum():
            raise ValueError(f"Invalid namespace: {namespace!r}")
        return self._directory / f"{namespace}{self.SUFFIX}"

    def _usage_without(self, namespace: str | None) -> int:
        if not self._directory.is_dir():
            return 0
        skip = self._path(namespace).name if namespace else None
        return sum(
            path.stat().st_size
            for path in self._directory.glob(f"*{self.SUFFIX}")
            if path.name != skip
        )
