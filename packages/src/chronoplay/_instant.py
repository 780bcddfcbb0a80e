"""Conversions between instants and epoch milliseconds.

The virtual clock keeps time as integer milliseconds since the Unix
epoch.  Callers hand in instants as :class:`~datetime.datetime` values,
ISO-8601 strings, or epoch-millisecond numbers; this module normalises
all three and renders the canonical UTC form used in response bodies::

    2025-01-15T10:00:00.000Z

No timezone math happens here beyond normalising to UTC.  Naive
datetimes are taken to be UTC already.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Final

InstantLike = datetime | str | int | float
"""A datetime, an ISO-8601 string, or epoch milliseconds."""

_EPOCH: Final = datetime(1970, 1, 1, tzinfo=UTC)

TIMESTAMP_PATTERN: Final = (
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}(?:\.[0-9]{3})?Z"
)
"""Canonical ISO-8601 UTC timestamp, millisecond fraction optional."""

_TIMESTAMP_RE: Final = re.compile(TIMESTAMP_PATTERN)


def to_epoch_ms(instant: InstantLike) -> int | float:
    """Normalise *instant* to milliseconds since the Unix epoch.

    Args:
        instant: A :class:`datetime` (naive means UTC), an ISO-8601
            string (``Z`` suffix accepted), or an epoch-millisecond
            number which is returned unchanged.

    Raises:
        ValueError: *instant* is a string that is not ISO-8601.
        TypeError: *instant* is none of the accepted types.
    """
    if isinstance(instant, bool):
        raise TypeError(f"Expected datetime, ISO string or epoch ms, got {instant!r}")
    if isinstance(instant, int | float):
        return instant
    if isinstance(instant, str):
        instant = datetime.fromisoformat(instant.strip())
    if not isinstance(instant, datetime):
        raise TypeError(f"Expected datetime, ISO string or epoch ms, got {instant!r}")

    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    # timedelta // timedelta is exact integer arithmetic.
    return (instant - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(ms: int | float) -> datetime:
    """Return the aware UTC :class:`datetime` for *ms* epoch milliseconds."""
    return _EPOCH + timedelta(milliseconds=ms)


def format_timestamp(ms: int | float) -> str:
    """Render *ms* in canonical form, always with three fractional digits.

    Raises:
        OverflowError: The instant is outside the years 1-9999.
    """
    moment = from_epoch_ms(ms)
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
        f".{moment.microsecond // 1000:03d}Z"
    )


def parse_timestamp(text: str) -> int | None:
    """Return epoch milliseconds for a canonical timestamp, else ``None``.

    ``None`` is returned when *text* does not have the canonical shape,
    or has it but names an impossible calendar instant (month 13,
    February 30th and the like).
    """
    if _TIMESTAMP_RE.fullmatch(text) is None:
        return None
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def shift_timestamp(text: str, delta_ms: int | float) -> str:
    """Return canonical timestamp *text* moved by *delta_ms*.

    Unparseable instants, and results outside the representable year
    range, come back unchanged.
    """
    ms = parse_timestamp(text)
    if ms is None:
        return text
    try:
        return format_timestamp(ms + delta_ms)
    except OverflowError:
        return text
