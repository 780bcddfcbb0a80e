"""Time-control configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Every variable carries the ``CHRONOPLAY_`` prefix and nested
models use ``__`` as the delimiter, e.g.
``CHRONOPLAY_TRANSFORM__ENABLED=false``.

The schema covers three concerns:

* **Transform** — whether replayed response bodies have their
  timestamps shifted, and which JSON keys are left alone.
* **Virtualization** — which time facilities the controller takes
  over while installed, and the runaway-timer guard for ``flush()``.
* **Logging** — level, format, optional file sink, rotation.

All durations are in **milliseconds**.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FakeTarget(StrEnum):
    """Time facilities a :class:`~chronoplay.TimeController` can virtualize.

    A facility that is not listed in ``Settings.to_fake`` keeps using
    real time even while the controller is installed.
    """

    DATETIME = "datetime"
    """Wall-clock reads through the controller's consumer clock."""

    TIMEOUT = "timeout"
    """``call_later`` / ``call_at`` / ``sleep`` and their cancellation."""

    INTERVAL = "interval"
    """``call_every`` and its cancellation."""

    IMMEDIATE = "immediate"
    """``call_soon``."""

    MONOTONIC = "monotonic"
    """High-resolution reads through the consumer clock."""


DEFAULT_TO_FAKE: tuple[FakeTarget, ...] = (
    FakeTarget.DATETIME,
    FakeTarget.TIMEOUT,
    FakeTarget.INTERVAL,
    FakeTarget.MONOTONIC,
)

DEFAULT_LOOP_LIMIT = 1000

# -------------------------------------------------------------------
# Sub-models (BaseModel, NOT BaseSettings — nested via composition)
# -------------------------------------------------------------------


class TransformSettings(BaseModel):
    """Response timestamp transformation.

    Environment variables (with ``__`` nesting)::

        CHRONOPLAY_TRANSFORM__ENABLED=true
        CHRONOPLAY_TRANSFORM__EXCLUDE_KEYS='["birthDate", "historicalDate"]'
    """

    enabled: bool = Field(
        default=True,
        description="Whether to shift timestamps in replayed responses.",
    )
    exclude_keys: list[str] = Field(
        default_factory=list,
        description=(
            "JSON object keys whose values are never shifted. "
            "When non-empty, bodies are parsed as JSON and walked; "
            "when empty, every timestamp in the raw text is shifted."
        ),
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"text"`` (default) — human-readable timestamped lines, the
      usual choice inside a test run.
    - ``"json"`` — one JSON object per line, carrying the virtual
      time next to the real one.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="text",
        description=(
            "Log output format. "
            "'json' emits structured JSON lines; "
            "'text' emits human-readable timestamped lines."
        ),
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description=(
            "Maximum log file size in megabytes before rotation. "
            "Only applies when ``file`` is set."
        ),
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for chronoplay.

    Example ``.env``::

        CHRONOPLAY_TRANSFORM__ENABLED=true
        CHRONOPLAY_TRANSFORM__EXCLUDE_KEYS='["birthDate"]'
        CHRONOPLAY_TO_FAKE='["datetime", "timeout"]'
        CHRONOPLAY_LOOP_LIMIT=5000
        CHRONOPLAY_LOGGING__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="CHRONOPLAY_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    transform: TransformSettings = Field(
        default_factory=TransformSettings,
        description="Response timestamp transformation.",
    )
    to_fake: list[FakeTarget] = Field(
        default_factory=lambda: list(DEFAULT_TO_FAKE),
        description="Time facilities to virtualize while installed.",
    )
    loop_limit: Annotated[int, Field(ge=1)] = Field(
        default=DEFAULT_LOOP_LIMIT,
        description=(
            "Maximum number of timers ``flush()`` fires before it "
            "assumes an infinite timer chain and raises."
        ),
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
