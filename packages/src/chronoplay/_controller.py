"""Virtual clock controller.

:class:`TimeController` owns one simulated timeline.  It has two
states — *uninstalled* (initial and terminal) and *installed* — and a
single instance is meant to be shared by reference between the test,
the replay layer and the :class:`~chronoplay.TimestampVirtualizer`.

While installed:

* ``controller.clock`` (a :class:`~chronoplay.ClockPort`) reports
  virtual wall time and virtual monotonic time.
* Timers scheduled through the controller (``call_later``,
  ``call_at``, ``call_every``, ``call_soon``, ``sleep``) are queued on
  the virtual timeline and only fire from :meth:`~TimeController.advance`,
  :meth:`~TimeController.tick` or :meth:`~TimeController.flush`.

Facilities not listed in ``to_fake``, and every facility while
uninstalled, use real time: scheduling goes to the running asyncio
event loop and the consumer clock reads the system clock.

Draining is cooperative and single-task.  ``advance`` pops due timers
one at a time in ``(fire_at, insertion)`` order, awaits any awaitable
a callback returns, then keeps yielding to the event loop until the
tasks it woke stop touching the queue.  Timers scheduled by firing
timers, or by tasks they resumed, run within the same call when they
fall inside the window.

Example::

    controller = TimeController()
    controller.install("2025-01-15T10:00:00.000Z")

    fired = []
    controller.call_later("5 seconds", fired.append, "done")

    await controller.advance("4 seconds")
    assert fired == []
    await controller.advance(1000)
    assert fired == ["done"]

    controller.uninstall()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from chronoplay._clock import ClockPort, SystemClock
from chronoplay._duration import DurationLike, parse_duration
from chronoplay._errors import (
    ClockAlreadyInstalledError,
    ClockNotInstalledError,
    DurationFormatError,
    TimerLoopError,
)
from chronoplay._instant import InstantLike, from_epoch_ms, to_epoch_ms
from chronoplay._settings import DEFAULT_LOOP_LIMIT, DEFAULT_TO_FAKE, FakeTarget
from chronoplay._timers import (
    RealTimer,
    TimerCallback,
    TimerHandle,
    TimerQueue,
    VirtualTimer,
)

if TYPE_CHECKING:
    from chronoplay._settings import Settings

logger = logging.getLogger(__name__)

_SETTLE_QUIET_YIELDS = 20
_SETTLE_MAX_YIELDS = 10_000


class TimeController:
    """Installable virtual clock with a deterministic timer queue.

    Args:
        to_fake: Facilities to virtualize while installed.  Defaults to
            wall time, timeouts, intervals and monotonic time.
        loop_limit: Maximum number of timers :meth:`flush` fires before
            raising :class:`~chronoplay.TimerLoopError`.
        system_clock: Real clock used for facilities that are not
            virtualized.  Defaults to :class:`~chronoplay.SystemClock`.
    """

    def __init__(
        self,
        *,
        to_fake: Iterable[FakeTarget | str] | None = None,
        loop_limit: int = DEFAULT_LOOP_LIMIT,
        system_clock: ClockPort | None = None,
    ) -> None:
        targets = DEFAULT_TO_FAKE if to_fake is None else to_fake
        self._to_fake = frozenset(FakeTarget(target) for target in targets)
        self._loop_limit = loop_limit
        self._system_clock = system_clock or SystemClock()
        self._installed = False
        self._base_ms: int | float = 0
        self._now_ms: int | float = 0
        self._queue = TimerQueue()
        self._sleepers: set[asyncio.Future[None]] = set()
        self._background: set[asyncio.Future[Any]] = set()
        self._clock = ControlledClock(self)

    @classmethod
    def from_settings(cls, settings: Settings) -> TimeController:
        """Build a controller from :class:`~chronoplay.Settings`."""
        return cls(to_fake=settings.to_fake, loop_limit=settings.loop_limit)

    # -- lifecycle -----------------------------------------------------------

    def install(self, base: InstantLike) -> None:
        """Start the virtual timeline at *base*.

        Args:
            base: A datetime, ISO-8601 string or epoch milliseconds.

        Raises:
            ClockAlreadyInstalledError: The controller is already
                installed; call :meth:`uninstall` first.
        """
        if self._installed:
            raise ClockAlreadyInstalledError()

        base_ms = to_epoch_ms(base)
        self._base_ms = base_ms
        self._now_ms = base_ms
        self._installed = True
        logger.info(
            "Virtual clock installed at %r (faking: %s)",
            base,
            ", ".join(sorted(self._to_fake)),
        )

    def uninstall(self) -> None:
        """Return to real time, discarding every pending virtual timer.

        Pending :meth:`sleep` calls are cancelled.  A no-op when the
        controller is not installed.
        """
        if not self._installed:
            return

        discarded = self._queue.clear()
        self._installed = False
        for future in list(self._sleepers):
            future.cancel()
        self._sleepers.clear()
        logger.info(
            "Virtual clock uninstalled after %d ms (%d pending timer(s) discarded)",
            self._now_ms - self._base_ms,
            len(discarded),
        )

    @property
    def is_installed(self) -> bool:
        """``True`` between :meth:`install` and :meth:`uninstall`."""
        return self._installed

    @property
    def to_fake(self) -> frozenset[FakeTarget]:
        """Facilities virtualized while installed."""
        return self._to_fake

    @property
    def loop_limit(self) -> int:
        return self._loop_limit

    @property
    def base_time_ms(self) -> int | float:
        """Epoch milliseconds the timeline was installed at."""
        self._require_installed("base_time_ms")
        return self._base_ms

    @property
    def clock(self) -> ControlledClock:
        """Consumer-facing :class:`~chronoplay.ClockPort`.

        Reports virtual time for faked facilities while installed and
        real time otherwise.
        """
        return self._clock

    @property
    def pending_timers(self) -> int:
        """Number of live timers waiting on the virtual timeline."""
        return len(self._queue)

    def context(self) -> TimeContext:
        """Return a :class:`TimeContext` bound to this controller.

        Raises:
            ClockNotInstalledError: The controller is not installed.
        """
        self._require_installed("context")
        return TimeContext(self)

    # -- queries -------------------------------------------------------------

    def now(self) -> datetime:
        """Current virtual time as an aware UTC datetime."""
        self._require_installed("now")
        return from_epoch_ms(self._now_ms)

    def now_ms(self) -> int | float:
        """Current virtual time as epoch milliseconds."""
        self._require_installed("now_ms")
        return self._now_ms

    def elapsed(self) -> int | float:
        """Milliseconds of virtual time since :meth:`install`."""
        self._require_installed("elapsed")
        return self._now_ms - self._base_ms

    # -- moving time ---------------------------------------------------------

    async def advance(self, duration: DurationLike) -> None:
        """Move virtual time forward, firing every timer that falls due.

        Timers fire in non-decreasing fire-time order; the current time
        observed by each callback is its own fire time.  Timers
        scheduled by callbacks fire too when they fall inside the
        window.  Returns once time has reached ``now + duration`` and
        the whole cascade has settled.

        Args:
            duration: Milliseconds, or a string such as ``"1 hour"``.

        Raises:
            ClockNotInstalledError: The controller is not installed.
            DurationFormatError: *duration* cannot be parsed, or is
                negative.
            Exception: The first exception raised by a timer callback,
                after every due timer has run.  Several failures are
                raised together as an :class:`ExceptionGroup`.
        """
        self._require_installed("advance")
        ms = parse_duration(duration)
        if ms < 0:
            raise DurationFormatError(
                duration, f"Negative durations are not supported: {duration!r}"
            )

        target = self._now_ms + ms
        logger.debug("Advancing virtual clock by %s ms to %s", ms, target)
        errors: list[Exception] = []

        while self._installed:
            await self._settle()
            timer = self._queue.pop_due(target)
            if timer is None:
                break
            await self._fire(timer, errors)

        if self._installed:
            self._now_ms = max(self._now_ms, target)
        _raise_collected(errors)

    async def tick(self, duration: DurationLike) -> None:
        """Alias of :meth:`advance`."""
        await self.advance(duration)

    async def flush(self) -> None:
        """Fire every pending timer regardless of its delay.

        Virtual time jumps to each timer's fire time in turn.  Timers
        scheduled while flushing are fired as well, until the queue is
        empty.

        Raises:
            ClockNotInstalledError: The controller is not installed.
            TimerLoopError: More than ``loop_limit`` timers fired and
                the queue is still not empty.  Callback failures seen
                so far are chained as its ``__cause__``.
        """
        self._require_installed("flush")
        errors: list[Exception] = []
        fired = 0

        while self._installed:
            await self._settle()
            timer = self._queue.pop_next()
            if timer is None:
                break
            if fired >= self._loop_limit:
                # Put it back untouched so the pending count is accurate.
                self._queue.push(timer)
                raise TimerLoopError(
                    self._loop_limit, len(self._queue)
                ) from _collected(errors)
            await self._fire(timer, errors)
            fired += 1

        logger.debug("Flushed %d timer(s)", fired)
        _raise_collected(errors)

    # -- timer surface -------------------------------------------------------

    def call_later(
        self, delay: DurationLike, callback: TimerCallback, *args: Any
    ) -> TimerHandle:
        """Run ``callback(*args)`` once, *delay* from now."""
        ms = parse_duration(delay)
        if not self._fakes(FakeTarget.TIMEOUT):
            return RealTimer(ms, callback, args, background=self._background)
        return self._queue.schedule(self._now_ms + max(ms, 0), callback, args)

    def call_at(
        self, when: InstantLike, callback: TimerCallback, *args: Any
    ) -> TimerHandle:
        """Run ``callback(*args)`` once at the absolute instant *when*.

        Instants already in the past fire on the next advance.
        """
        when_ms = to_epoch_ms(when)
        if not self._fakes(FakeTarget.TIMEOUT):
            return RealTimer(
                when_ms - self._system_clock.now_ms(),
                callback,
                args,
                background=self._background,
            )
        return self._queue.schedule(max(when_ms, self._now_ms), callback, args)

    def call_every(
        self, interval: DurationLike, callback: TimerCallback, *args: Any
    ) -> TimerHandle:
        """Run ``callback(*args)`` every *interval* until cancelled.

        A zero interval is treated as one millisecond so that draining
        always moves time forward.
        """
        ms = max(parse_duration(interval), 1)
        if not self._fakes(FakeTarget.INTERVAL):
            return RealTimer(
                ms, callback, args, interval=ms, background=self._background
            )
        return self._queue.schedule(self._now_ms + ms, callback, args, interval=ms)

    def call_soon(self, callback: TimerCallback, *args: Any) -> TimerHandle:
        """Run ``callback(*args)`` at the current time, on the next drain."""
        if not self._fakes(FakeTarget.IMMEDIATE):
            return RealTimer(0, callback, args, background=self._background)
        return self._queue.schedule(self._now_ms, callback, args)

    @staticmethod
    def cancel(handle: TimerHandle | None) -> None:
        """Cancel *handle*; ``None`` and already-fired handles are ignored."""
        if handle is not None:
            handle.cancel()

    async def sleep(self, delay: DurationLike) -> None:
        """Suspend the calling task for *delay* of (virtual) time.

        While timeouts are virtualized the task resumes only when some
        other task advances the clock past the wake-up time.  If the
        controller is uninstalled first, the sleep is cancelled.
        """
        ms = parse_duration(delay)
        if not self._fakes(FakeTarget.TIMEOUT):
            await asyncio.sleep(max(ms, 0) / 1000)
            return

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._sleepers.add(future)
        timer = self._queue.schedule(self._now_ms + max(ms, 0), _wake, (future,))
        try:
            await future
        finally:
            self._sleepers.discard(future)
            timer.cancel()

    # -- internals -----------------------------------------------------------

    def _fakes(self, target: FakeTarget) -> bool:
        return self._installed and target in self._to_fake

    def _require_installed(self, operation: str) -> None:
        if not self._installed:
            raise ClockNotInstalledError(operation)

    async def _fire(self, timer: VirtualTimer, errors: list[Exception]) -> None:
        self._now_ms = max(self._now_ms, timer.fire_at)
        if timer.interval is not None:
            # Re-queue before running so the callback can cancel itself.
            timer.fire_at += timer.interval
            self._queue.push(timer)

        try:
            result = timer.callback(*timer.args)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.debug("Timer %r raised %r", timer, exc)
            errors.append(exc)

    async def _settle(self) -> None:
        """Yield to the event loop until woken tasks stop scheduling timers.

        Settled means ``_SETTLE_QUIET_YIELDS`` consecutive yields left the
        queue unchanged.  Gives up after ``_SETTLE_MAX_YIELDS`` yields so
        a task that reschedules forever cannot hang the drain.
        """
        quiet = 0
        state = self._queue_state()
        for _ in range(_SETTLE_MAX_YIELDS):
            await asyncio.sleep(0)
            current = self._queue_state()
            if current == state:
                quiet += 1
                if quiet >= _SETTLE_QUIET_YIELDS:
                    return
            else:
                quiet = 0
                state = current
        logger.debug(
            "Event loop still scheduling after %d yields", _SETTLE_MAX_YIELDS
        )

    def _queue_state(self) -> tuple[int, int | float | None]:
        return self._queue.revision, self._queue.next_fire_at()


def _wake(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


def _collected(errors: list[Exception]) -> Exception | None:
    if len(errors) == 1:
        return errors[0]
    if errors:
        return ExceptionGroup("Multiple timer callbacks failed", errors)
    return None


def _raise_collected(errors: list[Exception]) -> None:
    error = _collected(errors)
    if error is not None:
        raise error


# ---------------------------------------------------------------------------
# Consumer clock
# ---------------------------------------------------------------------------


class ControlledClock:
    """:class:`~chronoplay.ClockPort` that follows a :class:`TimeController`.

    Wall time is virtual when ``datetime`` is faked and the controller
    is installed; monotonic time is virtual when ``monotonic`` is faked.
    Virtual monotonic time starts at zero on install.  Everything else
    reads the controller's system clock.
    """

    def __init__(self, controller: TimeController) -> None:
        self._controller = controller

    def now(self) -> datetime:
        return from_epoch_ms(self.now_ms())

    def now_ms(self) -> int | float:
        controller = self._controller
        if controller._fakes(FakeTarget.DATETIME):
            return controller._now_ms
        return controller._system_clock.now_ms()

    def monotonic(self) -> float:
        controller = self._controller
        if controller._fakes(FakeTarget.MONOTONIC):
            return (controller._now_ms - controller._base_ms) / 1000
        return controller._system_clock.monotonic()


# ---------------------------------------------------------------------------
# Test-facing context
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TimeContext:
    """Narrow time-control handle handed to a test body.

    Exposes only the operations a test needs to observe and move
    virtual time.  Every call goes through the bound controller, so
    using the context after ``uninstall()`` raises
    :class:`~chronoplay.ClockNotInstalledError`.
    """

    controller: TimeController

    def now(self) -> datetime:
        return self.controller.now()

    def now_ms(self) -> int | float:
        return self.controller.now_ms()

    def elapsed(self) -> int | float:
        return self.controller.elapsed()

    async def advance(self, duration: DurationLike) -> None:
        await self.controller.advance(duration)

    async def tick(self, duration: DurationLike) -> None:
        await self.controller.tick(duration)

    async def flush(self) -> None:
        await self.controller.flush()
