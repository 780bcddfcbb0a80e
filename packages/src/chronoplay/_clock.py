"""Clock port and real-time system adapter.

Provides :class:`ClockPort` (Protocol) and :class:`SystemClock`.  Code
that needs "the current time" depends on ``ClockPort`` and receives
either ``SystemClock`` or the consumer clock of an installed
:class:`~chronoplay.TimeController`, which reports virtual time.

A clock exposes two readings:

* **wall time** — ``now()`` / ``now_ms()``, an absolute UTC instant.
* **monotonic time** — ``monotonic()``, seconds from an arbitrary
  epoch.  Only the *difference* between two calls is meaningful
  (PEP 418).
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockPort(Protocol):
    """Source of wall and monotonic time.

    The default implementation wraps ``datetime.now(UTC)`` and
    ``time.monotonic()``.  Tests inject the consumer clock of an
    installed controller for reproducible timing.
    """

    def now(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""
        ...

    def now_ms(self) -> int | float:
        """Return the current instant as epoch milliseconds."""
        ...

    def monotonic(self) -> float:
        """Return monotonic time in seconds.

        Returns:
            A float representing seconds from an arbitrary epoch.
            Only the *difference* between two calls is meaningful.
        """
        ...


class SystemClock:
    """Production clock reading the real system time.

    Satisfies :class:`ClockPort` via structural subtyping — no
    base-class inheritance required (PEP 544).

    Usage::

        clock = SystemClock()
        start = clock.monotonic()
        # ... some work ...
        elapsed = clock.monotonic() - start
    """

    def now(self) -> datetime:
        """Return the current UTC instant."""
        return datetime.now(UTC)

    def now_ms(self) -> int:
        """Return the current instant as epoch milliseconds."""
        return time.time_ns() // 1_000_000

    def monotonic(self) -> float:
        """Return monotonic time in seconds."""
        return time.monotonic()
