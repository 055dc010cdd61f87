"""Stable hashing helpers for catalog checksums and privacy-safe logs.

Short SHA-256 prefixes identify catalog exports and correlate stored
payloads in logs without writing answer content.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Final

HASH_PREFIX_LENGTH: Final[int] = 12


def stable_text_hash(text: str) -> str:
    """Return a stable short hash for a text payload (no raw text)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:HASH_PREFIX_LENGTH]


def stable_json_hash(payload: Any) -> str:
    """Return a stable short hash of a JSON-serializable value.

    Keys are sorted so dict ordering does not change the hash.
    """
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return stable_text_hash(canonical)
