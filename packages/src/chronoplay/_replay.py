"""Adapter between recorded interactions and the virtualizer.

The replay layer owns the recording format; this module only reads the
two fields the core needs from each entry of an HTTP Archive (HAR) log:

* ``startedDateTime`` — the instant the request was originally made.
* ``response.content.text`` — the raw response body.

Everything else in the entry is passed through untouched.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from chronoplay._errors import RecordingFormatError
from chronoplay._instant import to_epoch_ms

if TYPE_CHECKING:
    from chronoplay._virtualizer import TimestampVirtualizer


@dataclass(frozen=True, slots=True)
class CapturedInteraction:
    """Read-only view of one recorded interaction.

    Ephemeral: built per replayed call and not retained by the core.
    """

    captured_at_ms: int | float
    body: str

    @classmethod
    def from_har_entry(cls, entry: Mapping[str, Any]) -> CapturedInteraction:
        """Extract the capture instant and response body of a HAR entry.

        A missing body is treated as empty.

        Raises:
            RecordingFormatError: ``startedDateTime`` is missing or is not
                an ISO-8601 instant.
        """
        return cls(
            captured_at_ms=_captured_at(entry),
            body=_response_text(entry) or "",
        )


def recording_start(entries: Iterable[Mapping[str, Any]]) -> int | float:
    """Earliest capture instant of *entries*, in epoch milliseconds.

    This is the natural base time for
    :meth:`~chronoplay.TimeController.install` when replaying a whole
    recording.

    Raises:
        RecordingFormatError: *entries* is empty, or an entry has no
            usable ``startedDateTime``.
    """
    instants = [_captured_at(entry) for entry in entries]
    if not instants:
        raise RecordingFormatError("Recording has no entries")
    return min(instants)


def replay_har_entry(
    entry: Mapping[str, Any], virtualizer: TimestampVirtualizer
) -> dict[str, Any]:
    """Return a copy of *entry* with its response body rewritten.

    The input mapping is never mutated.  Entries without a response body
    are copied as-is.
    """
    replayed = copy.deepcopy(dict(entry))
    text = _response_text(replayed)
    if text is None:
        return replayed

    rewritten = virtualizer.rewrite(text, _captured_at(replayed))
    replayed["response"]["content"]["text"] = rewritten
    return replayed


def _captured_at(entry: Mapping[str, Any]) -> int | float:
    started = entry.get("startedDateTime")
    if not isinstance(started, str):
        raise RecordingFormatError(
            f"Recorded entry has no startedDateTime: {started!r}"
        )
    try:
        return to_epoch_ms(started)
    except ValueError as exc:
        raise RecordingFormatError(
            f"Recorded entry has an invalid startedDateTime: {started!r}"
        ) from exc


def _response_text(entry: Mapping[str, Any]) -> str | None:
    response = entry.get("response")
    if not isinstance(response, Mapping):
        return None
    content = response.get("content")
    if not isinstance(content, Mapping):
        return None
    text = content.get("text")
    return text if isinstance(text, str) else None
