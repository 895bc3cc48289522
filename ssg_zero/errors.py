"""Error types for ssg-zero.

All errors raised deliberately by ssg-zero derive from SsgZeroError so callers
can catch them as a group. Filesystem errors are not wrapped: they surface as
the OSError subclasses Python raises, and error_code/is_not_found give a
uniform way to inspect them.

Key classes:
- NotInitializedError: ChangeWatcher iterated before init().
- EmptyQueueError: TaskQueue pulled with nothing in flight or buffered.
- StreamEncodingError: Non-binary chunk fed to a StreamInjector.
- BuildError: Rendering a source file failed.
"""

from __future__ import annotations

import errno
from pathlib import Path


class SsgZeroError(Exception):
    """Base class for ssg-zero errors."""


class NotInitializedError(SsgZeroError):
    """Raised when a watcher is used before init() completed."""


class EmptyQueueError(SsgZeroError):
    """Raised when pulling from a queue with no pending work."""


class StreamEncodingError(SsgZeroError, TypeError):
    """Raised when a stream transform receives a chunk that is not bytes."""


class BuildError(SsgZeroError):
    """Error during a build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: BaseException | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


def error_code(exc: BaseException) -> str | None:
    """Return the POSIX code name (e.g. ``"ENOENT"``) carried by an exception.

    Exceptions that carry no errno, or an errno unknown to the platform,
    return None. Exceptions chained via ``__cause__`` are inspected too, so a
    wrapped OSError keeps its code.

    Examples:
        >>> error_code(FileNotFoundError(errno.ENOENT, "gone"))
        'ENOENT'

        >>> error_code(ValueError("nope")) is None
        True
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        code = getattr(current, "errno", None)
        if isinstance(code, int):
            return errno.errorcode.get(code)
        current = current.__cause__
    return None


def is_not_found(exc: BaseException) -> bool:
    """Check whether an exception means "the path does not exist"."""
    if isinstance(exc, FileNotFoundError):
        return True
    return error_code(exc) == "ENOENT"


def describe_error(exc: BaseException) -> str:
    """Format an exception into a short, user-facing message."""
    error_type = type(exc).__name__
    message = str(exc)
    code = error_code(exc)
    if code and code not in message:
        return f"{error_type} [{code}]: {message}"
    return f"{error_type}: {message}"
