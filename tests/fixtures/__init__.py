"""Test fixtures module.

This module contains test doubles and fixtures that are test-only artifacts.
These MUST NOT be imported from production code (src/).
"""

from __future__ import annotations

from tests.fixtures.catalog import build_scale_assessment, phq9_answer_ids
from tests.fixtures.scheduler import FailingScheduler, ManualScheduler
from tests.fixtures.storage import FlakyStorage

__all__ = [
    "FailingScheduler",
    "FlakyStorage",
    "ManualScheduler",
    "build_scale_assessment",
    "phq9_answer_ids",
]
