"""Timer backends for the board runtime."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Protocol, Tuple


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerBackend(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioTimers:
    """Schedules callbacks on the running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback)


class ManualTimerHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """
    Virtual clock for tests.

    Nothing fires until ``advance`` moves time forward; callbacks then run in
    due order, including ones scheduled by earlier callbacks within the window.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self._heap: List[Tuple[float, int, ManualTimerHandle]] = []
        self._sequence = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimerHandle:
        handle = ManualTimerHandle(self.now + max(0.0, delay), callback)
        heapq.heappush(self._heap, (handle.when, next(self._sequence), handle))
        return handle

    def pending(self) -> List[ManualTimerHandle]:
        return sorted(
            (entry[2] for entry in self._heap if not entry[2].cancelled),
            key=lambda handle: handle.when,
        )

    def advance(self, seconds: float) -> None:
        deadline = self.now + seconds
        while self._heap and self._heap[0][0] <= deadline:
            when, _, handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            self.now = when
            handle.callback()
        self.now = deadline
