"""chronoplay.

Deterministic virtual time for tests that replay recorded HTTP
interactions: an installable virtual clock with a timer queue, and a
virtualizer that keeps timestamps in replayed responses consistent with
the clock.
"""

from importlib.metadata import PackageNotFoundError, version

from chronoplay._clock import ClockPort, SystemClock
from chronoplay._controller import ControlledClock, TimeContext, TimeController
from chronoplay._duration import DurationLike, parse_duration
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
from chronoplay._instant import InstantLike, format_timestamp, to_epoch_ms
from chronoplay._logging import JsonFormatter, VirtualTimeFilter, configure_logging
from chronoplay._replay import CapturedInteraction, recording_start, replay_har_entry
from chronoplay._settings import (
    FakeTarget,
    LoggingSettings,
    Settings,
    TransformSettings,
)
from chronoplay._timers import TimerHandle
from chronoplay._virtualizer import TimestampVirtualizer, shift_document, shift_text

try:
    __version__ = version("chronoplay")
except PackageNotFoundError:
    # Last resort fallback for source checkouts without metadata
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Clock
    "ClockPort",
    "ControlledClock",
    "SystemClock",
    "TimeContext",
    "TimeController",
    "TimerHandle",
    # Durations and instants
    "DurationLike",
    "InstantLike",
    "format_timestamp",
    "parse_duration",
    "to_epoch_ms",
    # Virtualization
    "CapturedInteraction",
    "TimestampVirtualizer",
    "recording_start",
    "replay_har_entry",
    "shift_document",
    "shift_text",
    # Errors
    "ChronoplayError",
    "ClockAlreadyInstalledError",
    "ClockError",
    "ClockNotInstalledError",
    "DurationFormatError",
    "RecordingFormatError",
    "TimerLoopError",
    "UnknownDurationUnitError",
    # Logging
    "JsonFormatter",
    "VirtualTimeFilter",
    "configure_logging",
    # Settings
    "FakeTarget",
    "LoggingSettings",
    "Settings",
    "TransformSettings",
]
