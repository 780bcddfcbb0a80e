"""Developer CLI for chronoplay (Typer-based).

Two commands help when writing or debugging replayed tests:

* ``chronoplay duration "90 minutes"`` prints the millisecond value
  the clock would advance by.
* ``chronoplay rewrite body.json --captured-at ... --advance "1 hour"``
  prints a recorded body as a replay would see it after that much
  virtual time.

Global options (``--version``, ``--log-level``, ``--log-format``,
``--env-file``) are parsed once and shared by every command.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, get_args

import typer
from pydantic import ValidationError

from chronoplay._controller import TimeController
from chronoplay._duration import DurationLike, parse_duration
from chronoplay._errors import ChronoplayError
from chronoplay._logging import configure_logging
from chronoplay._settings import LoggingSettings, Settings
from chronoplay._virtualizer import TimestampVirtualizer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_INPUT_ERROR = 1

# ---------------------------------------------------------------------------
# Allowed values (extracted from LoggingSettings Literal types)
# ---------------------------------------------------------------------------

_VALID_LOG_LEVELS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["level"].annotation,
)
_VALID_LOG_FORMATS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["format"].annotation,
)


def _duration_arg(text: str) -> DurationLike:
    """Bare digits on the command line mean milliseconds."""
    return int(text) if text.isdecimal() else text


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(EXIT_INPUT_ERROR)


def build_cli(version: str = "0.0.0+unknown") -> typer.Typer:
    """Construct the ``chronoplay`` Typer application.

    Args:
        version: Version string printed by ``--version``.

    Returns:
        A configured :class:`typer.Typer` ready to invoke.
    """
    cli = typer.Typer(
        help="chronoplay — virtual time for replayed HTTP tests.",
    )

    # -- global options -----------------------------------------------------

    @cli.callback(invoke_without_command=True)
    def main(
        ctx: typer.Context,
        version_flag: Annotated[
            bool | None,
            typer.Option(
                "--version",
                is_eager=True,
                help="Show version and exit.",
            ),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option("--log-level", help="Override log level."),
        ] = None,
        log_format: Annotated[
            str | None,
            typer.Option("--log-format", help="Override log format."),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="Path to .env file."),
        ] = ".env",
    ) -> None:
        if version_flag:
            typer.echo(f"chronoplay v{version}")
            raise typer.Exit()

        if log_level is not None and log_level.upper() not in _VALID_LOG_LEVELS:
            raise typer.BadParameter(
                f"Invalid log level '{log_level}'. "
                f"Choose from: {', '.join(_VALID_LOG_LEVELS)}",
                param_hint="'--log-level'",
            )

        if log_format is not None and log_format.lower() not in _VALID_LOG_FORMATS:
            raise typer.BadParameter(
                f"Invalid log format '{log_format}'. "
                f"Choose from: {', '.join(_VALID_LOG_FORMATS)}",
                param_hint="'--log-format'",
            )

        try:
            settings = Settings(_env_file=env_file)  # type: ignore[call-arg]
        except ValidationError as exc:
            raise _fail(f"Configuration error: {exc}") from exc

        if log_level is not None:
            settings.logging = settings.logging.model_copy(
                update={"level": log_level.upper()},
            )

        if log_format is not None:
            settings.logging = settings.logging.model_copy(
                update={"format": log_format.lower()},
            )

        ctx.obj = settings

        if ctx.invoked_subcommand is None:
            typer.echo(ctx.get_help())

    # -- duration -----------------------------------------------------------

    @cli.command()
    def duration(
        ctx: typer.Context,
        value: Annotated[
            str,
            typer.Argument(help='Duration such as "1 hour", "30m" or "500".'),
        ],
    ) -> None:
        """Print a duration in milliseconds."""
        settings: Settings = ctx.obj
        configure_logging(settings.logging)

        try:
            ms = parse_duration(_duration_arg(value))
        except ChronoplayError as exc:
            raise _fail(str(exc)) from exc

        typer.echo(str(ms))

    # -- rewrite ------------------------------------------------------------

    @cli.command()
    def rewrite(
        ctx: typer.Context,
        body_file: Annotated[
            typer.FileText,
            typer.Argument(help="Recorded response body ('-' for stdin)."),
        ],
        captured_at: Annotated[
            str,
            typer.Option(
                "--captured-at",
                help="ISO-8601 instant the body was recorded at.",
            ),
        ],
        at: Annotated[
            str | None,
            typer.Option(
                "--at",
                help="Install the virtual clock here (default: --captured-at).",
            ),
        ] = None,
        advance: Annotated[
            str | None,
            typer.Option("--advance", help="Advance virtual time before replay."),
        ] = None,
        exclude: Annotated[
            list[str] | None,
            typer.Option(
                "--exclude",
                help="JSON key to leave untouched (repeatable).",
            ),
        ] = None,
        disable: Annotated[
            bool,
            typer.Option("--disable", help="Turn timestamp rewriting off."),
        ] = False,
    ) -> None:
        """Print a recorded body as replay would serve it."""
        settings: Settings = ctx.obj
        controller = TimeController.from_settings(settings)
        configure_logging(settings.logging, controller=controller)

        body = body_file.read()
        virtualizer = TimestampVirtualizer(
            controller,
            enabled=settings.transform.enabled and not disable,
            exclude_keys=exclude or settings.transform.exclude_keys,
        )

        try:
            controller.install(at or captured_at)
            if advance is not None:
                asyncio.run(controller.advance(_duration_arg(advance)))
            result = virtualizer.rewrite(body, captured_at)
        except (ChronoplayError, ValueError) as exc:
            raise _fail(str(exc)) from exc
        finally:
            controller.uninstall()

        logger.debug("Rewrote %d character body", len(body))
        typer.echo(result, nl=False)

    return cli


def main() -> None:
    """Console-script entry point."""
    from chronoplay import __version__

    build_cli(__version__)()
