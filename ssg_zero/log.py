"""Logging setup for the ssg-zero CLI.

Modules log through ``logging.getLogger(__name__)``; this module installs the
sink for the ``ssg_zero`` logger tree. Lines are written with click.echo and
prefixed with the time since logging was set up::

    00:01.042 INFO  Rendering site/index.md to output/index.html
"""

from __future__ import annotations

import logging
import time

import click

_LEVEL_COLORS = {
    "DEBUG": "bright_black",
    "INFO": "cyan",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red",
}


def elapsed(start: float, now: float | None = None) -> str:
    """Format the time since start as ``MM:SS.mmm``.

    Minutes keep counting past an hour instead of wrapping.

    Examples:
        >>> elapsed(0.0, 61.5)
        '01:01.500'
    """
    runtime = (time.monotonic() if now is None else now) - start
    millis = int(runtime * 1000)
    minutes, millis = divmod(millis, 60_000)
    seconds, millis = divmod(millis, 1000)
    return f"{minutes:02d}:{seconds:02d}.{millis:03d}"


class ElapsedFormatter(logging.Formatter):
    """Formatter that prefixes records with the elapsed run time and level."""

    def __init__(self, start: float | None = None, color: bool = True):
        super().__init__()
        self.start = time.monotonic() if start is None else start
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<5}"
        if self.color:
            level = click.style(level, fg=_LEVEL_COLORS.get(record.levelname))
        line = f"{elapsed(self.start)} {level} {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ClickEchoHandler(logging.Handler):
    """Write records through click.echo, errors and warnings to stderr."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            click.echo(message, err=record.levelno >= logging.WARNING)
        except Exception:
            self.handleError(record)


def setup_logging(verbose: bool = False, color: bool | None = None) -> logging.Logger:
    """Install the click sink on the ``ssg_zero`` logger and return it.

    Calling it again replaces the previous sink instead of stacking handlers.
    """
    logger = logging.getLogger("ssg_zero")
    for handler in list(logger.handlers):
        if isinstance(handler, ClickEchoHandler):
            logger.removeHandler(handler)
    handler = ClickEchoHandler()
    handler.setFormatter(ElapsedFormatter(color=True if color is None else color))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger
