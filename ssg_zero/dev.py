"""Development workflow for ssg-zero.

DevServer builds the site, serves the output with the live reload script
injected into HTML, and polls the input directory for changes:
- create/change events re-render the affected file,
- delete events remove its output,
- changes to layouts and partials (paths under ``_``) rebuild the whole site.

Rebuilds go through a TaskQueue so several files render in parallel while the
watcher keeps polling. The browser notices rebuilt pages through conditional
requests and reloads itself.

If watching fails the reload loop ends, but the server keeps serving the last
build until Ctrl-C.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from .build import Site, load_config
from .errors import BuildError, describe_error
from .server import DEFAULT_PORT, HOT_RELOAD_SCRIPT, FileServer, attach_logging
from .task_queue import TaskQueue
from .watcher import ChangeWatcher, WatchEvent, WatchEventType

logger = logging.getLogger(__name__)


class DevServer:
    """Watch, rebuild and serve a project.

    Attributes:
        project_root: Root directory of the project.
        config: Site configuration.
        site: Build driver for the project.
        file_server: Server for the output directory.
        watcher: Poller for the input directory.
    """

    def __init__(
        self,
        project_root: Path,
        port: int | None = None,
        config: dict[str, Any] | None = None,
    ):
        self.project_root = project_root
        self.config = config if config is not None else load_config(project_root)
        self.site = Site(project_root, self.config)
        self.port = int(port if port is not None else self.config.get("port", DEFAULT_PORT))
        self.file_server = FileServer(
            self.site.output_dir, port=self.port, inject_script=HOT_RELOAD_SCRIPT
        )
        self.watcher = ChangeWatcher(
            self.site.input_dir,
            poll_interval_ms=int(self.config.get("poll_interval_ms", 500)),
            disable_delete=bool(self.config.get("disable_delete", False)),
        )
        # Different files rebuild in parallel; events for one file apply one at
        # a time, in the order they were seen, under that path's lock.
        self._path_locks: dict[str, asyncio.Lock] = {}
        self._queue: TaskQueue[WatchEvent, WatchEvent] = TaskQueue(
            self._apply, self.site.concurrency, lifo=False
        )
        self._drainer: asyncio.Task | None = None

    def start(self) -> None:  # pragma: no cover - integration path
        try:
            asyncio.run(self.run())
        except KeyboardInterrupt:
            logger.info("Stopping dev server")

    async def run(self) -> None:
        """Build, serve and rebuild on change until cancelled."""
        await self.site.build(clean=True)
        attach_logging(self.file_server)
        self.file_server.serve()
        try:
            await self.watch()
            # Keep serving the last build after the reload loop ended.
            await asyncio.Event().wait()
        finally:
            self.file_server.stop()

    async def watch(self) -> None:
        """Feed watcher events into the rebuild queue until watching fails."""
        try:
            await self.watcher.init()
            async for event in self.watcher.watch():
                self.handle_event(event)
        except OSError as exc:
            logger.error(
                "Watching %s failed, live reload stopped: %s",
                self.site.input_dir,
                describe_error(exc),
            )

    def handle_event(self, event: WatchEvent) -> None:
        """Queue one watcher event and make sure something is pulling results."""
        logger.debug("%s %s", event.type.value, event.file_path)
        self._queue.push(event)
        if self._drainer is None or self._drainer.done():
            self._drainer = asyncio.create_task(self.drain())

    async def drain(self) -> None:
        """Pull rebuild results until the queue is empty, logging failures."""
        while len(self._queue):
            try:
                event = await self._queue.pull()
            except (BuildError, OSError) as exc:
                logger.error("Rebuild failed: %s", exc)
                continue
            logger.info("Rebuilt after %s of %s", event.type.value, event.file_path)

    async def _apply(self, event: WatchEvent) -> WatchEvent:
        lock = self._path_locks.setdefault(event.file_path, asyncio.Lock())
        async with lock:
            await self._rebuild(event)
        return event

    async def _rebuild(self, event: WatchEvent) -> None:
        path = Path(event.file_path)
        if not self.site.is_source(path):
            logger.info("%s changed; rebuilding site", path)
            await self.site.build()
        elif event.type is WatchEventType.DELETE:
            await asyncio.to_thread(self.site.remove, path)
        elif path.exists():
            await asyncio.to_thread(self.site.build_file, path)
