"""Response timestamp virtualization.

A replayed response carries the timestamps of the moment it was
recorded.  When a test installs the virtual clock and moves it forward,
those timestamps drift out of step with "now": an ``expiresAt`` that
was one hour ahead at capture time may already be in the past.

:class:`TimestampVirtualizer` shifts every canonical ISO-8601 UTC
timestamp in a response body by::

    delta = virtual_now - captured_at

so that the body keeps the same *relative* relationship to the current
virtual time that it had to the capture time.

Two strategies exist:

* **Text** (no exclusions configured) — a single regex substitution over
  the raw body.  The body need not be valid JSON.
* **Structured** (exclusions configured) — the body is parsed as JSON
  and walked; values under excluded keys are left alone.  If the body
  does not parse, the text strategy is used instead.

A zero delta returns the input object itself, so a replay with no time
elapsed is byte-for-byte identical to the recording.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Final

from chronoplay._instant import (
    TIMESTAMP_PATTERN,
    InstantLike,
    shift_timestamp,
    to_epoch_ms,
)

if TYPE_CHECKING:
    from chronoplay._controller import TimeController
    from chronoplay._replay import CapturedInteraction
    from chronoplay._settings import Settings

logger = logging.getLogger(__name__)

_TIMESTAMP_RE: Final = re.compile(TIMESTAMP_PATTERN)

JsonValue = (
    None | bool | int | float | str | list["JsonValue"] | dict[str, "JsonValue"]
)


# ---------------------------------------------------------------------------
# Pure rewriting functions
# ---------------------------------------------------------------------------


def shift_text(body: str, delta_ms: int | float) -> str:
    """Shift every canonical timestamp substring of *body* by *delta_ms*."""
    return _TIMESTAMP_RE.sub(
        lambda match: shift_timestamp(match.group(0), delta_ms), body
    )


def shift_document(
    value: JsonValue,
    delta_ms: int | float,
    exclude_keys: frozenset[str],
) -> JsonValue:
    """Return a copy of a decoded JSON *value* with timestamps shifted.

    Object entries whose key is in *exclude_keys* are copied verbatim,
    whatever their type.  Array items have no key of their own, so an
    exclusion only ever applies to the direct value of an object entry.
    """
    match value:
        case str():
            return shift_timestamp(value, delta_ms)
        case list():
            return [shift_document(item, delta_ms, exclude_keys) for item in value]
        case dict():
            return {
                key: (
                    item
                    if key in exclude_keys
                    else shift_document(item, delta_ms, exclude_keys)
                )
                for key, item in value.items()
            }
        case _:
            # null, booleans and numbers never hold timestamps.
            return value


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TimestampVirtualizer:
    """Rewrites replayed response bodies against a :class:`TimeController`.

    Args:
        controller: The controller whose virtual "now" is the target.
        enabled: When ``False``, :meth:`rewrite` returns bodies unchanged.
        exclude_keys: JSON object keys whose values are never shifted.
            A non-empty collection switches to the structured strategy.

    Example::

        virtualizer = TimestampVirtualizer(controller, exclude_keys=["birthDate"])
        body = virtualizer.rewrite(entry_body, captured_at="2025-01-15T10:00:00Z")
    """

    def __init__(
        self,
        controller: TimeController,
        *,
        enabled: bool = True,
        exclude_keys: Iterable[str] = (),
    ) -> None:
        self._controller = controller
        self._enabled = enabled
        self._exclude_keys: tuple[str, ...] = tuple(exclude_keys)
        self._exclude_set = frozenset(self._exclude_keys)

    @classmethod
    def from_settings(
        cls, controller: TimeController, settings: Settings
    ) -> TimestampVirtualizer:
        """Build a virtualizer from ``settings.transform``."""
        return cls(
            controller,
            enabled=settings.transform.enabled,
            exclude_keys=settings.transform.exclude_keys,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def exclude_keys(self) -> tuple[str, ...]:
        return self._exclude_keys

    def delta_ms(self, captured_at: InstantLike) -> int | float:
        """Milliseconds between *captured_at* and the current virtual time."""
        return self._controller.now_ms() - to_epoch_ms(captured_at)

    def rewrite(self, body: str, captured_at: InstantLike) -> str:
        """Shift the timestamps in *body* from *captured_at* to virtual now.

        Returns *body* itself when the controller is not installed, the
        virtualizer is disabled, or no virtual time separates the capture
        instant from now.  Never raises for malformed bodies.

        Args:
            body: Raw response text.
            captured_at: The instant the interaction was recorded.
        """
        if not self._enabled or not self._controller.is_installed:
            return body

        delta = self.delta_ms(captured_at)
        if delta == 0:
            return body

        if self._exclude_set:
            try:
                document = json.loads(body)
                shifted = shift_document(document, delta, self._exclude_set)
                # NaN and infinities have no JSON spelling.
                return json.dumps(
                    shifted,
                    separators=(",", ":"),
                    ensure_ascii=False,
                    allow_nan=False,
                )
            except (ValueError, RecursionError):
                logger.debug("Body is not JSON; shifting timestamps as plain text")

        return shift_text(body, delta)

    def rewrite_interaction(self, interaction: CapturedInteraction) -> str:
        """Rewrite the body of a :class:`~chronoplay.CapturedInteraction`."""
        return self.rewrite(interaction.body, interaction.captured_at_ms)

