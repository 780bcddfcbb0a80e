"""Timer queues for the virtual and the real timeline.

:class:`TimerQueue` is a priority queue of :class:`VirtualTimer`
entries ordered by fire time, then by insertion order.  It never looks
at a clock; the controller pops due entries and decides what "now" is.

:class:`RealTimer` is the counterpart used when a facility is not
virtualized: it hands the callback to the running asyncio event loop.

Callbacks may be plain functions or return awaitables.
"""

from __future__ import annotations

import asyncio
import heapq
import inspect
import itertools
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

TimerCallback = Callable[..., Awaitable[Any] | Any]


@runtime_checkable
class TimerHandle(Protocol):
    """Handle returned by every scheduling call."""

    def cancel(self) -> None:
        """Prevent the callback from firing (again)."""
        ...

    def cancelled(self) -> bool:
        """Return ``True`` once :meth:`cancel` has been called."""
        ...


# ---------------------------------------------------------------------------
# Virtual timeline
# ---------------------------------------------------------------------------


class VirtualTimer:
    """One entry of a :class:`TimerQueue`.

    ``interval`` is ``None`` for one-shot timers.  Interval timers are
    pushed back onto the queue by the controller each time they fire.
    """

    __slots__ = ("args", "callback", "fire_at", "interval", "_cancelled")

    def __init__(
        self,
        fire_at: int | float,
        callback: TimerCallback,
        args: tuple[Any, ...],
        interval: int | float | None = None,
    ) -> None:
        self.fire_at = fire_at
        self.callback = callback
        self.args = args
        self.interval = interval
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        name = getattr(self.callback, "__qualname__", repr(self.callback))
        state = " cancelled" if self._cancelled else ""
        return (
            f"<VirtualTimer {name} at={self.fire_at} "
            f"interval={self.interval}{state}>"
        )


class TimerQueue:
    """Min-heap of virtual timers keyed by ``(fire_at, sequence)``.

    Cancelled entries are dropped lazily when they reach the top of the
    heap, so :meth:`VirtualTimer.cancel` is O(1).
    """

    def __init__(self) -> None:
        self._heap: list[tuple[int | float, int, VirtualTimer]] = []
        self._sequence = itertools.count()
        self._revision = 0

    def __len__(self) -> int:
        return sum(1 for _, _, timer in self._heap if not timer.cancelled())

    @property
    def revision(self) -> int:
        """Number of pushes so far; changes whenever a timer is queued."""
        return self._revision

    def push(self, timer: VirtualTimer) -> VirtualTimer:
        """Queue *timer*; entries with equal fire times keep push order."""
        self._revision += 1
        heapq.heappush(self._heap, (timer.fire_at, next(self._sequence), timer))
        return timer

    def schedule(
        self,
        fire_at: int | float,
        callback: TimerCallback,
        args: tuple[Any, ...] = (),
        *,
        interval: int | float | None = None,
    ) -> VirtualTimer:
        """Create and queue a timer firing at *fire_at* epoch ms."""
        return self.push(VirtualTimer(fire_at, callback, args, interval))

    def next_fire_at(self) -> int | float | None:
        """Fire time of the earliest live timer, or ``None`` when empty."""
        self._drop_cancelled()
        return self._heap[0][0] if self._heap else None

    def pop_due(self, until: int | float) -> VirtualTimer | None:
        """Pop the earliest live timer firing at or before *until*."""
        self._drop_cancelled()
        if not self._heap or self._heap[0][0] > until:
            return None
        return heapq.heappop(self._heap)[2]

    def pop_next(self) -> VirtualTimer | None:
        """Pop the earliest live timer regardless of its fire time."""
        self._drop_cancelled()
        if not self._heap:
            return None
        return heapq.heappop(self._heap)[2]

    def clear(self) -> list[VirtualTimer]:
        """Empty the queue, returning the live timers that were discarded."""
        discarded = [timer for _, _, timer in self._heap if not timer.cancelled()]
        self._heap.clear()
        return discarded

    def _drop_cancelled(self) -> None:
        while self._heap and self._heap[0][2].cancelled():
            heapq.heappop(self._heap)


# ---------------------------------------------------------------------------
# Real timeline
# ---------------------------------------------------------------------------


class RealTimer:
    """Timer delegated to the running asyncio event loop.

    Delays are in milliseconds.  Awaitables returned by the callback are
    wrapped in tasks and held in *background* until they finish so they
    are not garbage-collected mid-flight.  The owning controller passes
    its own set; a standalone timer keeps one of its own.
    """

    def __init__(
        self,
        delay: int | float,
        callback: TimerCallback,
        args: tuple[Any, ...] = (),
        *,
        interval: int | float | None = None,
        background: set[asyncio.Future[Any]] | None = None,
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._background = set() if background is None else background
        self._callback = callback
        self._args = args
        self._interval = interval
        self._cancelled = False
        self._handle = self._loop.call_later(max(delay, 0) / 1000, self._run)

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        if self._interval is not None:
            self._handle = self._loop.call_later(
                max(self._interval, 1) / 1000, self._run
            )
        result = self._callback(*self._args)
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._background.add(future)
            future.add_done_callback(self._background.discard)
