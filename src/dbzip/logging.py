"""Logging configuration for dbzip."""

import logging
from enum import IntEnum
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    stream: TextIO | None = None,
    debug: bool = False,
    log_file: Path | None = None,
) -> Console:
    """Configure logging based on CLI options.

    Args:
        verbosity: Number of -v flags (0=normal, 1+=debug)
        quiet: Only warnings and errors (takes precedence over debug/verbosity)
        no_color: Disable colored output
        stream: Output stream for logs (stderr when None)
        debug: Enable debug logging (ignored if quiet is set)
        log_file: Also append plain-text records to this file

    Returns:
        Configured Rich console for output

    Note:
        Flag precedence: quiet > debug > verbosity. Progress lines from the
        backup tool are logged at DEBUG, so they show up with -v.
    """
    if quiet:
        level = LogLevel.QUIET
    elif debug or verbosity >= 1:
        level = LogLevel.VERBOSE
    else:
        level = LogLevel.NORMAL

    console = Console(
        file=stream,
        stderr=True,
        force_terminal=not no_color,
        no_color=no_color,
    )

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            show_time=debug or verbosity >= 2,
            show_path=debug or verbosity >= 2,
        )
    ]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=handlers,
        force=True,
    )

    return console
