"""Polling change watcher.

ChangeWatcher snapshots the modification time of every regular file under a
root directory once per generation and diffs consecutive snapshots into
create, change and delete events. The dev workflow consumes these events to
rebuild pages.

No OS change notification is used. Detection latency is bounded by the poll
interval, and two edits within the same millisecond (or edits that keep the
mtime) look like no change at all.

Key classes:
- ChangeWatcher: init() then iterate watch().
- WatchEvent: One create/change/delete for a file path.
- FileFingerprint: (path, mtime in milliseconds).
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import NotInitializedError, is_not_found

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 500


class WatchEventType(str, Enum):
    CREATE = "create"
    CHANGE = "change"
    DELETE = "delete"


@dataclass(frozen=True)
class WatchEvent:
    """A change to one file, found by diffing two snapshots."""

    type: WatchEventType
    file_path: str


@dataclass(frozen=True)
class FileFingerprint:
    """Cheap "possibly changed" signal for a file: its mtime in milliseconds."""

    path: str
    stamp: int


Snapshot = Mapping[str, FileFingerprint]


def iter_files(root: str | os.PathLike[str]) -> Iterator[str]:
    """Yield regular files under root, depth first in sorted order.

    Subdirectories that vanish mid-walk are skipped; the root itself must exist.
    """
    root = os.fspath(root)
    pending = [root]
    while pending:
        directory = pending.pop()
        try:
            with os.scandir(directory) as entries:
                children = sorted(entries, key=lambda entry: entry.name)
        except OSError as exc:
            if directory != root and is_not_found(exc):
                continue
            raise
        subdirs = []
        for entry in children:
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(entry.path)
            elif entry.is_file(follow_symlinks=False):
                yield entry.path
        pending.extend(reversed(subdirs))


def _fingerprint(path: str) -> FileFingerprint | None:
    try:
        stat = os.stat(path)
    except OSError as exc:
        # Deleted between listing and stat: absent this generation.
        if is_not_found(exc):
            return None
        raise
    return FileFingerprint(path, stat.st_mtime_ns // 1_000_000)


def take_snapshot(root: str) -> dict[str, FileFingerprint]:
    """Fingerprint every regular file under root."""
    snapshot: dict[str, FileFingerprint] = {}
    for path in iter_files(root):
        fingerprint = _fingerprint(path)
        if fingerprint is not None:
            snapshot[path] = fingerprint
    return snapshot


def diff_snapshots(
    previous: Snapshot, current: Snapshot, disable_delete: bool = False
) -> list[WatchEvent]:
    """Compare two snapshots: creates and changes first, then deletes."""
    events = []
    for path, fingerprint in current.items():
        before = previous.get(path)
        if before is None:
            events.append(WatchEvent(WatchEventType.CREATE, path))
        elif before != fingerprint:
            events.append(WatchEvent(WatchEventType.CHANGE, path))
    if not disable_delete:
        for path in previous:
            if path not in current:
                events.append(WatchEvent(WatchEventType.DELETE, path))
    return events


class ChangeWatcher:
    """Polls a directory tree and reports file changes.

    Attributes:
        root: Directory being watched.
        poll_interval_ms: Target time between generation starts.
        disable_delete: Drop deletions silently instead of reporting them.
    """

    def __init__(
        self,
        root: str | Path,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        disable_delete: bool = False,
    ):
        self.root = str(root)
        self.poll_interval_ms = poll_interval_ms
        self.disable_delete = disable_delete
        self._snapshot: Snapshot = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def snapshot(self) -> Snapshot:
        """The snapshot retained from the last generation."""
        return self._snapshot

    async def init(self) -> None:
        """Capture the initial snapshot. Required before watch()."""
        self._snapshot = await asyncio.to_thread(take_snapshot, self.root)
        self._initialized = True
        logger.debug("Watching %d files under %s", len(self._snapshot), self.root)

    async def poll(self) -> list[WatchEvent]:
        """Run one generation and return its events."""
        if not self._initialized:
            raise NotInitializedError("Can not watch before initialization")
        current = await asyncio.to_thread(take_snapshot, self.root)
        events = diff_snapshots(self._snapshot, current, self.disable_delete)
        self._snapshot = current
        return events

    async def watch(self) -> AsyncIterator[WatchEvent]:
        """Yield events forever, one generation every ``poll_interval_ms``.

        Stop by leaving the loop. The watcher must be re-initialized
        before it can be watched again.
        """
        if not self._initialized:
            raise NotInitializedError("Can not watch before initialization")
        try:
            while True:
                started = time.monotonic()
                for event in await self.poll():
                    yield event
                elapsed_ms = (time.monotonic() - started) * 1000
                await asyncio.sleep(max(self.poll_interval_ms - elapsed_ms, 0) / 1000)
        finally:
            self._initialized = False


async def watch(
    root: str | Path,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    disable_delete: bool = False,
) -> AsyncIterator[WatchEvent]:
    """Initialize a ChangeWatcher on root and yield its events."""
    watcher = ChangeWatcher(root, poll_interval_ms, disable_delete)
    await watcher.init()
    async for event in watcher.watch():
        yield event
