"""Exception taxonomy for chronoplay.

Three families of failure exist:

* **Programmer misuse** — installing an already-installed clock, or
  querying a clock that is not installed.  Fatal to the calling test;
  never retried.
* **Input format** — an unparseable duration string, an unknown unit,
  or a recording entry without a usable capture instant.  Fatal to the
  call that triggered them; the offending text is echoed in the message.
* **Best-effort degradation** — a response body that is not valid JSON
  during exclusion-aware rewriting.  This is *not* an error: the
  virtualizer falls back to plain pattern substitution and no exception
  is defined for it.

Every exception derives from :class:`ChronoplayError`, and additionally
from the builtin that best describes it (``RuntimeError`` for misuse,
``ValueError`` for bad input) so callers that do not know about this
package still catch them sensibly.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ChronoplayError(Exception):
    """Base class for every error raised by chronoplay."""


# ---------------------------------------------------------------------------
# Clock lifecycle
# ---------------------------------------------------------------------------


class ClockError(ChronoplayError):
    """Misuse of the virtual clock controller."""


class ClockAlreadyInstalledError(ClockError, RuntimeError):
    """``install()`` was called while the controller was already installed."""

    def __init__(self) -> None:
        super().__init__(
            "TimeController already installed. Call uninstall() first."
        )


class ClockNotInstalledError(ClockError, RuntimeError):
    """A clock query or advance was made while the controller was uninstalled."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"TimeController not installed; cannot call {operation}(). "
            "Call install() first."
        )


class TimerLoopError(ClockError):
    """``flush()`` fired more timers than the configured loop limit.

    Almost always caused by a callback that keeps rescheduling itself
    (an infinite chain of zero-delay timers, or an interval that is never
    cancelled).
    """

    def __init__(self, loop_limit: int, pending: int) -> None:
        self.loop_limit = loop_limit
        self.pending = pending
        super().__init__(
            f"Aborting after running {loop_limit} timers, assuming an "
            f"infinite loop ({pending} timer(s) still pending)"
        )


# ---------------------------------------------------------------------------
# Input format
# ---------------------------------------------------------------------------


class DurationFormatError(ChronoplayError, ValueError):
    """A duration string did not match ``<digits><unit>``."""

    def __init__(self, value: object, message: str | None = None) -> None:
        self.value = value
        super().__init__(
            message
            or (
                f'Invalid duration format: "{value}". Use formats like '
                '"1 hour", "5 minutes", "30 seconds", or milliseconds.'
            )
        )


class UnknownDurationUnitError(DurationFormatError):
    """A duration string had digits but an unrecognised unit token."""

    def __init__(self, value: str, unit: str) -> None:
        self.unit = unit
        super().__init__(
            value,
            f'Unknown duration unit: "{unit}" in "{value}". '
            "Supported: ms, s, m, h, d and variations.",
        )


class RecordingFormatError(ChronoplayError, ValueError):
    """A recorded interaction lacks a usable capture instant or body."""
