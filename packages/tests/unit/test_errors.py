"""Tests for chronoplay._errors — exception taxonomy.

Test Techniques Used:
    - Specification-based Testing: Message text and carried attributes
    - Hierarchy Testing: Every error is a ChronoplayError and the
      builtin that best describes it
"""

from __future__ import annotations

import pytest

from chronoplay._errors import (
    ChronoplayError,
    ClockAlreadyInstalledError,
    ClockError,
    ClockNotInstalledError,
    DurationFormatError,
    RecordingFormatError,
    TimerLoopError,
    UnknownDurationUnitError,
)


class TestHierarchy:
    """Technique: Hierarchy Testing."""

    @pytest.mark.parametrize(
        ("error", "bases"),
        [
            (ClockAlreadyInstalledError(), (ClockError, RuntimeError)),
            (ClockNotInstalledError("now"), (ClockError, RuntimeError)),
            (TimerLoopError(10, 1), (ClockError,)),
            (DurationFormatError("x"), (ValueError,)),
            (UnknownDurationUnitError("2x", "x"), (DurationFormatError, ValueError)),
            (RecordingFormatError("bad"), (ValueError,)),
        ],
        ids=[
            "already-installed",
            "not-installed",
            "timer-loop",
            "duration-format",
            "unknown-unit",
            "recording-format",
        ],
    )
    def test_bases(self, error: Exception, bases: tuple[type, ...]) -> None:
        assert isinstance(error, ChronoplayError)
        for base in bases:
            assert isinstance(error, base)

    def test_timer_loop_is_not_value_error(self) -> None:
        assert not isinstance(TimerLoopError(10, 1), ValueError)


class TestMessages:
    """Technique: Specification-based Testing — message text."""

    def test_already_installed(self) -> None:
        assert "already installed" in str(ClockAlreadyInstalledError())

    def test_not_installed_names_operation(self) -> None:
        error = ClockNotInstalledError("advance")
        assert error.operation == "advance"
        assert "advance()" in str(error)
        assert "install()" in str(error)

    def test_timer_loop_carries_counts(self) -> None:
        error = TimerLoopError(1000, 3)
        assert (error.loop_limit, error.pending) == (1000, 3)
        assert "1000 timers" in str(error)
        assert "3 timer(s) still pending" in str(error)

    def test_duration_format_echoes_input(self) -> None:
        error = DurationFormatError("soon")
        assert error.value == "soon"
        assert 'Invalid duration format: "soon"' in str(error)

    def test_duration_format_custom_message(self) -> None:
        assert str(DurationFormatError(-1, "negative")) == "negative"

    def test_unknown_unit_echoes_unit_and_input(self) -> None:
        error = UnknownDurationUnitError("2 fortnights", "fortnights")
        assert error.unit == "fortnights"
        assert error.value == "2 fortnights"
        assert 'Unknown duration unit: "fortnights" in "2 fortnights"' in str(error)
