"""Timer scheduling abstraction.

The engine never touches an event loop directly: inactivity timeouts,
auto-save and reminders go through a Scheduler. Production code uses
AsyncioScheduler; tests drive a virtual clock.
"""

from __future__ import annotations

import asyncio
import itertools
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from mindscreen.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger(__name__)

_handle_ids = itertools.count(1)


@dataclass(frozen=True, slots=True)
class TimerHandle:
    """Opaque reference to a scheduled callback.

    Attributes:
        id: Unique handle id.
        label: Short description used in logs (e.g. ``inactivity``).
    """

    label: str
    id: int = field(default_factory=lambda: next(_handle_ids))


@runtime_checkable
class Scheduler(Protocol):
    """Protocol for one-shot and periodic timers.

    Cancelling an unknown, fired or already cancelled handle is a no-op.
    """

    @abstractmethod
    def schedule(
        self, delay_seconds: float, callback: Callable[[], None], label: str = "timer"
    ) -> TimerHandle:
        """Run ``callback`` once after ``delay_seconds``."""
        ...

    @abstractmethod
    def schedule_interval(
        self, interval_seconds: float, callback: Callable[[], None], label: str = "interval"
    ) -> TimerHandle:
        """Run ``callback`` every ``interval_seconds`` until cancelled."""
        ...

    @abstractmethod
    def cancel(self, handle: TimerHandle | None) -> None:
        """Cancel a pending timer."""
        ...

    @abstractmethod
    def cancel_all(self) -> None:
        """Cancel every pending timer."""
        ...

    @property
    @abstractmethod
    def pending_count(self) -> int:
        """Number of timers that can still fire."""
        ...


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later``.

    Callbacks run on the event loop thread. Exceptions raised by a
    callback are logged and do not stop periodic timers.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._timers: dict[int, asyncio.TimerHandle] = {}

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def pending_count(self) -> int:
        return len(self._timers)

    def schedule(
        self, delay_seconds: float, callback: Callable[[], None], label: str = "timer"
    ) -> TimerHandle:
        handle = TimerHandle(label=label)

        def fire() -> None:
            self._timers.pop(handle.id, None)
            self._run(handle, callback)

        self._timers[handle.id] = self.loop.call_later(max(delay_seconds, 0.0), fire)
        return handle

    def schedule_interval(
        self, interval_seconds: float, callback: Callable[[], None], label: str = "interval"
    ) -> TimerHandle:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        handle = TimerHandle(label=label)

        def fire() -> None:
            if handle.id not in self._timers:
                return
            self._timers[handle.id] = self.loop.call_later(interval_seconds, fire)
            self._run(handle, callback)

        self._timers[handle.id] = self.loop.call_later(interval_seconds, fire)
        return handle

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is None:
            return
        timer = self._timers.pop(handle.id, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    @staticmethod
    def _run(handle: TimerHandle, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Timer callback failed", timer=handle.label, timer_id=handle.id)
