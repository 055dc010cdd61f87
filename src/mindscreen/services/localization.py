"""Versioned, append-only localization table.

Translated and culturally adapted texts live outside the catalog
entities. Each entry is keyed by ``(entity_id, field_path, locale)``;
writing the same key again appends a new revision and the latest
revision wins on lookup.

Field paths:
    ``name`` / ``description`` / ``instructions`` / ``disclaimer``
        Assessment-type level fields.
    ``questions.<qid>.text``
        Question text.
    ``questions.<qid>.options.<option_id>``
        Option text.
    ``questions.<qid>.scaleLabels.min`` / ``.max``
        Scale anchor labels.

Cultural contexts share the table under a ``culture:`` locale prefix.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

CULTURE_PREFIX: Final[str] = "culture:"

TYPE_FIELDS: Final[tuple[str, ...]] = ("name", "description", "instructions", "disclaimer")


def culture_locale(cultural_context: str) -> str:
    """Locale key used for a cultural context."""
    return f"{CULTURE_PREFIX}{cultural_context}"


def question_path(question_id: str, field_name: str = "text") -> str:
    return f"questions.{question_id}.{field_name}"


def option_path(question_id: str, option_id: str) -> str:
    return f"questions.{question_id}.options.{option_id}"


def scale_label_path(question_id: str, end: str) -> str:
    return f"questions.{question_id}.scaleLabels.{end}"


@dataclass(frozen=True, slots=True)
class LocalizationEntry:
    """One revision of one localized field."""

    entity_id: str
    field_path: str
    locale: str
    text: str
    revision: int

    @property
    def is_cultural(self) -> bool:
        return self.locale.startswith(CULTURE_PREFIX)


class LocalizationTable:
    """Append-only store of localized field values.

    Example:
        >>> table = LocalizationTable()
        >>> _ = table.put("phq-9", "name", "zh", "PHQ-9 抑郁症评估")
        >>> table.get("phq-9", "name", "zh")
        'PHQ-9 抑郁症评估'
    """

    def __init__(self) -> None:
        self._entries: list[LocalizationEntry] = []
        self._latest: dict[tuple[str, str, str], LocalizationEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def revision(self) -> int:
        """Revision of the most recent entry (0 when empty)."""
        return len(self._entries)

    def put(self, entity_id: str, field_path: str, locale: str, text: str) -> LocalizationEntry:
        """Append a new revision for a localized field.

        Raises:
            ValueError: If any key part or the text is empty.
        """
        if not entity_id or not field_path or not locale:
            raise ValueError("entity_id, field_path and locale are required")
        if not text:
            raise ValueError(f"Empty text for {entity_id}/{field_path}/{locale}")
        entry = LocalizationEntry(
            entity_id=entity_id,
            field_path=field_path,
            locale=locale,
            text=text,
            revision=len(self._entries) + 1,
        )
        self._entries.append(entry)
        self._latest[(entity_id, field_path, locale)] = entry
        return entry

    def get(self, entity_id: str, field_path: str, locale: str) -> str | None:
        """Latest text for a key, or None."""
        entry = self._latest.get((entity_id, field_path, locale))
        return entry.text if entry else None

    def retire(self, entity_id: str) -> int:
        """Stop serving every entry of an entity. History is kept.

        Returns:
            Number of keys retired.
        """
        keys = [key for key in self._latest if key[0] == entity_id]
        for key in keys:
            del self._latest[key]
        return len(keys)

    def history(self, entity_id: str, field_path: str, locale: str) -> list[LocalizationEntry]:
        """Every revision of one key, oldest first."""
        key = (entity_id, field_path, locale)
        return [e for e in self._entries if (e.entity_id, e.field_path, e.locale) == key]

    def current_entries(self, entity_id: str) -> list[LocalizationEntry]:
        """Latest revision of every key of an entity, in first-write order."""
        return [
            entry
            for key, entry in self._latest.items()
            if key[0] == entity_id
        ]

    def locales(self, entity_id: str, *, cultural: bool = False) -> list[str]:
        """Sorted languages (or cultural contexts) with entries for an entity."""
        found: set[str] = set()
        for entity, _path, locale in self._latest:
            if entity != entity_id:
                continue
            if locale.startswith(CULTURE_PREFIX):
                if cultural:
                    found.add(locale.removeprefix(CULTURE_PREFIX))
            elif not cultural:
                found.add(locale)
        return sorted(found)
