"""Human-readable duration parsing.

Converts ``"1 hour"``, ``"30m"`` or ``"500 ms"`` into an integer
millisecond count.  Numbers are passed through untouched so callers may
write either ``advance(5000)`` or ``advance("5 seconds")``.

All durations in chronoplay are in **milliseconds**.
"""

from __future__ import annotations

import re
from typing import Final

from chronoplay._errors import DurationFormatError, UnknownDurationUnitError

DurationLike = int | float | str
"""Milliseconds, or a string such as ``"1 hour"``."""

_SECOND: Final = 1_000
_MINUTE: Final = 60 * _SECOND
_HOUR: Final = 60 * _MINUTE
_DAY: Final = 24 * _HOUR

UNITS: Final[dict[str, int]] = {
    "ms": 1,
    "millisecond": 1,
    "milliseconds": 1,
    "s": _SECOND,
    "sec": _SECOND,
    "second": _SECOND,
    "seconds": _SECOND,
    "m": _MINUTE,
    "min": _MINUTE,
    "minute": _MINUTE,
    "minutes": _MINUTE,
    "h": _HOUR,
    "hr": _HOUR,
    "hour": _HOUR,
    "hours": _HOUR,
    "d": _DAY,
    "day": _DAY,
    "days": _DAY,
}
"""Recognised unit tokens (lower-case) and their millisecond factor."""

_DURATION_RE: Final = re.compile(r"([0-9]+)\s*(\w+)", re.ASCII)


def parse_duration(value: DurationLike) -> int | float:
    """Parse *value* into milliseconds.

    Numeric input is returned unchanged, without any sign or magnitude
    check.  String input must match ``<digits><optional whitespace><unit>``
    in full; the unit is matched case-insensitively against :data:`UNITS`.

    Args:
        value: Milliseconds, or a duration string.

    Returns:
        The duration in milliseconds.  Always an ``int`` for string input.

    Raises:
        DurationFormatError: *value* is not a number and does not have
            the ``<digits><unit>`` shape.
        UnknownDurationUnitError: The shape matched but the unit is not
            recognised.  Subclass of :class:`DurationFormatError`.

    Example::

        parse_duration("1 hour")      # 3600000
        parse_duration("30m")         # 1800000
        parse_duration(500)           # 500
    """
    if isinstance(value, bool):
        raise DurationFormatError(value)
    if isinstance(value, int | float):
        return value
    if not isinstance(value, str):
        raise DurationFormatError(value)

    match = _DURATION_RE.fullmatch(value)
    if match is None:
        raise DurationFormatError(value)

    digits, unit = match.groups()
    multiplier = UNITS.get(unit.lower())
    if multiplier is None:
        raise UnknownDurationUnitError(value, unit)

    return int(digits) * multiplier
