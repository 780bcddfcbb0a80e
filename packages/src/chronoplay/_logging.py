"""Log formatting and configuration with virtual-time awareness.

During a replayed test two clocks matter: the real one (when did this
line get written?) and the virtual one (what time did the code under
test believe it was?).  :class:`VirtualTimeFilter` stamps every record
with the current virtual time of a :class:`~chronoplay.TimeController`,
and :class:`JsonFormatter` emits both on a single JSON line.

Records logged while no controller is installed carry
``virtual_time=None``, which the JSON output omits.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any

from chronoplay._instant import format_timestamp

if TYPE_CHECKING:
    from chronoplay._controller import TimeController
    from chronoplay._settings import LoggingSettings

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_MEGABYTE = 1024 * 1024


class VirtualTimeFilter(logging.Filter):
    """Attach ``record.virtual_time`` from a controller.

    Never drops records.  The attribute is the canonical ISO timestamp
    of the controller's virtual now, or ``None`` when uninstalled.
    """

    def __init__(self, controller: TimeController) -> None:
        super().__init__()
        self._controller = controller

    def filter(self, record: logging.LogRecord) -> bool:
        record.virtual_time = None
        if self._controller.is_installed:
            try:
                record.virtual_time = format_timestamp(self._controller.now_ms())
            except OverflowError:
                record.virtual_time = str(self._controller.now_ms())
        return True


class JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects (NDJSON).

    Each record produces a JSON object with these fields:

    - ``timestamp`` — real time, ISO 8601 UTC
    - ``virtual_time`` — virtual time (only present when a
      :class:`VirtualTimeFilter` stamped one)
    - ``level`` — Python log level name
    - ``logger`` — dotted logger name
    - ``message`` — the formatted log message
    - ``service`` — name of the emitting tool or test suite
    - ``exception`` — formatted traceback (only present when
      an exception is logged)

    Args:
        service: Name included in every log line.
    """

    def __init__(self, *, service: str = "") -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
        }

        virtual_time = getattr(record, "virtual_time", None)
        if virtual_time is not None:
            entry["virtual_time"] = virtual_time

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


def configure_logging(
    settings: LoggingSettings,
    *,
    service: str = "chronoplay",
    controller: TimeController | None = None,
) -> None:
    """Configure the root logger from settings.

    Clears any existing handlers on the root logger, then installs a
    ``stderr`` stream handler and, when ``settings.file`` is set, a
    size-rotated file handler.  When *controller* is given, every
    handler also gets a :class:`VirtualTimeFilter` bound to it.

    Args:
        settings: Logging configuration (level, format, file).
        service: Name passed to :class:`JsonFormatter`.
        controller: Controller whose virtual time is stamped on records.
    """
    root = logging.getLogger()

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    if settings.format == "json":
        formatter: logging.Formatter = JsonFormatter(service=service)
    else:
        formatter = logging.Formatter(_TEXT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file is not None:
        handlers.append(
            RotatingFileHandler(
                settings.file,
                maxBytes=settings.max_file_size_mb * _MEGABYTE,
                backupCount=settings.backup_count,
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        if controller is not None:
            handler.addFilter(VirtualTimeFilter(controller))
        root.addHandler(handler)

    root.setLevel(settings.level)
