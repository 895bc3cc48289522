"""Static file server for ssg-zero.

Serves the build output directory over HTTP with the behaviour a live
authoring loop needs:
- Only GET and HEAD are allowed (405 otherwise).
- Extensions map to MIME types through the MIME table (415 when unknown),
  and the Accept header is honoured (406 on mismatch).
- Conditional GET via If-Modified-Since / Last-Modified (304, or 400 when the
  header is not a date).
- Files are streamed in chunks; HTML can have a live reload script injected
  after ``</body>`` on the fly.
- Every request produces one ServerEvent for the "file:done" listeners;
  unexpected failures are answered with 500 and reported to "error" listeners.

Key classes:
- FileServer: Owns the listening socket, listeners and per-request ids.
- ServerEvent: What happened to one request.
- _FileRequestHandler: Request handler bound to a FileServer.
"""

from __future__ import annotations

import functools
import itertools
import logging
import os
import posixpath
import stat
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlsplit

from .errors import is_not_found
from .http_date import parse_http_date, to_http_date
from .injector import StreamInjector
from .mime import MIME_TYPES, MimeInfo, lookup

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6942
CHUNK_SIZE = 64 * 1024
INJECT_AFTER = b"</body>"

EVENT_DONE = "file:done"
EVENT_ERROR = "error"

# Polls the current page with HEAD; any 200 after the first answer means the
# page was rebuilt.
HOT_RELOAD_SCRIPT = """<script>
(() => {
  let since = null;
  const poll = () => {
    const headers = { accept: 'text/html' };
    if (since !== null) headers['If-Modified-Since'] = since;
    fetch(window.location.href, { method: 'HEAD', headers, cache: 'no-store' })
      .then((response) => {
        if (response.status === 200 && since !== null) {
          window.location.reload();
          return;
        }
        if (response.status === 200 || response.status === 304) {
          since = since ?? response.headers.get('Last-Modified');
          setTimeout(poll, 100);
          return;
        }
        console.error(`unexpected status code ${response.status}`, response);
      })
      .catch((error) => console.error(error));
  };
  poll();
})();
</script>
"""


@dataclass
class ServerEvent:
    """Record of one request, emitted once when handling completes.

    Attributes:
        id: Per-server request counter.
        route: URL path as requested.
        status: Response status code (0 until a response was started).
        file_path: File the route resolved to, when resolution got that far.
        bytes: Bytes read from the file for a streamed body.
    """

    id: int
    route: str
    status: int = 0
    file_path: str | None = None
    bytes: int | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "route": self.route, "status": self.status}
        if self.file_path is not None:
            data["file_path"] = self.file_path
        if self.bytes is not None:
            data["bytes"] = self.bytes
        return data


def accepts(header: str | None, mime_type: str) -> bool:
    """Check an Accept header against a MIME type.

    Matches ``*/*``, ``type/*`` and the exact type; parameters are ignored and
    a missing header accepts everything.

    Examples:
        >>> accepts("text/html,application/xhtml+xml;q=0.9", "text/html")
        True

        >>> accepts("image/*", "text/css")
        False
    """
    if not header or not header.strip():
        return True
    major = mime_type.split("/", 1)[0]
    for item in header.split(","):
        media = item.split(";", 1)[0].strip().lower()
        if media in ("*/*", "*", mime_type) or media == f"{major}/*":
            return True
    return False


Listener = Callable[..., None]


class FileServer:
    """HTTP server for a directory of built files.

    Attributes:
        files_root: Directory being served.
        host: Interface to bind.
        inject_script: Bytes inserted after ``</body>`` in HTML, or None.
        mime_table: Extension to MimeInfo mapping.
    """

    def __init__(
        self,
        files_root: str | Path,
        port: int = DEFAULT_PORT,
        host: str = "localhost",
        inject_script: str | bytes | None = None,
        mime_table: Mapping[str, MimeInfo] = MIME_TYPES,
    ):
        self.files_root = Path(files_root)
        self.host = host
        self._requested_port = port
        if isinstance(inject_script, str):
            inject_script = inject_script.encode("utf-8")
        self.inject_script = inject_script
        self.mime_table = mime_table
        self._listeners: dict[str, list[Listener]] = {EVENT_DONE: [], EVENT_ERROR: []}
        self._ids = itertools.count()
        self._ids_lock = threading.Lock()
        self._httpd: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """Bound port once serving (resolves port 0), else the configured one."""
        if self._httpd is not None:
            return self._httpd.server_address[1]
        return self._requested_port

    @property
    def base_url(self) -> str:
        port = "" if self.port == 80 else f":{self.port}"
        return f"http://{self.host}{port}/"

    @property
    def serving(self) -> bool:
        return self._httpd is not None

    def on(self, name: str, listener: Listener) -> Listener:
        """Register a listener for "file:done" (event) or "error" (exc, event)."""
        if name not in self._listeners:
            raise ValueError(f"Unknown server event {name!r}")
        self._listeners[name].append(listener)
        return listener

    def off(self, name: str, listener: Listener) -> None:
        self._listeners.get(name, []).remove(listener)

    def serve(self) -> None:
        """Start listening on a background thread. Does nothing if already serving."""
        if self._httpd is not None:
            return
        handler = functools.partial(_FileRequestHandler, file_server=self)
        httpd = ThreadingHTTPServer((self.host, self._requested_port), handler)
        self._httpd = httpd
        self._thread = threading.Thread(
            target=httpd.serve_forever, name="ssg-zero-http", daemon=True
        )
        self._thread.start()
        logger.info("Serving files from %s on %s", self.files_root, self.base_url)

    def serve_forever(self) -> None:  # pragma: no cover - integration path
        """Serve until interrupted with Ctrl-C."""
        self.serve()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(timeout=1)
        except KeyboardInterrupt:
            logger.info("Stopping server")
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop listening and wait for the server thread. Safe to call twice."""
        httpd, thread = self._httpd, self._thread
        if httpd is None:
            return
        httpd.shutdown()
        httpd.server_close()
        if thread is not None:
            thread.join()
        self._httpd = None
        self._thread = None

    def resolve(self, url_path: str) -> Path | None:
        """Map a decoded URL path to a file path under files_root.

        Returns None for anything that would leave the root: ``..`` segments,
        backslashes, NUL bytes, or symlinks pointing outside.
        """
        parts = [part for part in url_path.split("/") if part and part != "."]
        for part in parts:
            if part == ".." or "\\" in part or "\0" in part:
                return None
        candidate = self.files_root.joinpath(*parts)
        try:
            root = self.files_root.resolve()
            resolved = candidate.resolve()
        except (OSError, RuntimeError):
            return None
        if resolved != root and root not in resolved.parents:
            return None
        return candidate

    def new_event(self, route: str) -> ServerEvent:
        with self._ids_lock:
            request_id = next(self._ids)
        return ServerEvent(id=request_id, route=route)

    def emit_done(self, event: ServerEvent) -> None:
        self._emit(EVENT_DONE, event)

    def emit_error(self, error: BaseException, event: ServerEvent) -> None:
        if not self._listeners[EVENT_ERROR]:
            logger.error(
                "Request %s for %s failed", event.id, event.route, exc_info=error
            )
        self._emit(EVENT_ERROR, error, event)

    def _emit(self, name: str, *args: Any) -> None:
        for listener in list(self._listeners[name]):
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener for %r failed", name)


class _FileRequestHandler(BaseHTTPRequestHandler):
    """Serve one connection for a FileServer.

    The per-request ServerEvent is passed explicitly through the handling
    methods; nothing request-specific lives on the FileServer.
    """

    server_version = "ssg-zero"

    def __init__(self, *args, file_server: FileServer, **kwargs):
        self.file_server = file_server
        self._headers_sent = False
        super().__init__(*args, **kwargs)

    def do_GET(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        self._handle(send_body=True)

    def do_HEAD(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        self._handle(send_body=False)

    def _method_not_allowed(self) -> None:
        self._handle(send_body=False, allowed=False)

    def __getattr__(self, name: str) -> Any:
        # handle_one_request looks up do_<METHOD>; any verb but GET and HEAD
        # gets a 405 instead of the default 501.
        if name.startswith("do_"):
            return self._method_not_allowed
        raise AttributeError(name)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)

    def _handle(self, send_body: bool, allowed: bool = True) -> None:
        event = self.file_server.new_event(urlsplit(self.path).path)
        self._headers_sent = False
        try:
            if allowed:
                self._serve(event, send_body)
            else:
                self._reply(event, HTTPStatus.METHOD_NOT_ALLOWED, {"Allow": "GET, HEAD"})
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Client went away while serving %s", event.route)
            self.close_connection = True
        except Exception as exc:
            event.status = int(HTTPStatus.INTERNAL_SERVER_ERROR)
            self.close_connection = True
            if not self._headers_sent:
                self._reply_quietly(event, HTTPStatus.INTERNAL_SERVER_ERROR)
            self.file_server.emit_error(exc, event)
        finally:
            self.file_server.emit_done(event)

    def _serve(self, event: ServerEvent, send_body: bool) -> None:
        route = unquote(event.route)
        extension = posixpath.splitext(route)[1]
        if route.endswith("/"):
            relative = route + "index.html"
            extension = ".html"
        elif not extension:
            self._reply(
                event, HTTPStatus.MOVED_PERMANENTLY, {"Location": event.route + "/"}
            )
            return
        else:
            relative = route

        info = lookup(extension, self.file_server.mime_table)
        if info is None:
            self._reply(event, HTTPStatus.UNSUPPORTED_MEDIA_TYPE)
            return
        if not accepts(self.headers.get("Accept"), info.mime_type):
            self._reply(event, HTTPStatus.NOT_ACCEPTABLE, {"Accept": info.mime_type})
            return

        path = self.file_server.resolve(relative)
        if path is None:
            self._reply(event, HTTPStatus.NOT_FOUND)
            return
        event.file_path = str(path)

        try:
            handle = path.open("rb")
        except (IsADirectoryError, NotADirectoryError):
            self._reply(event, HTTPStatus.NOT_FOUND)
            return
        except OSError as exc:
            if not is_not_found(exc):
                raise
            self._reply(event, HTTPStatus.NOT_FOUND)
            return

        with handle:
            file_stat = os.fstat(handle.fileno())
            if not stat.S_ISREG(file_stat.st_mode):
                self._reply(event, HTTPStatus.NOT_FOUND)
                return
            last_modified = to_http_date(file_stat.st_mtime)

            since_header = self.headers.get("If-Modified-Since")
            if since_header is not None:
                try:
                    since = parse_http_date(since_header)
                except ValueError:
                    self._reply(event, HTTPStatus.BAD_REQUEST)
                    return
                # HTTP dates have whole seconds; compare at that resolution.
                if int(file_stat.st_mtime) <= since.timestamp():
                    self._reply(
                        event, HTTPStatus.NOT_MODIFIED, {"Last-Modified": last_modified}
                    )
                    return

            injector = None
            if self.file_server.inject_script and info.mime_type == "text/html":
                injector = StreamInjector(INJECT_AFTER, self.file_server.inject_script)
            headers = {"Content-Type": info.mime_type, "Last-Modified": last_modified}
            if injector is None:
                headers["Content-Length"] = str(file_stat.st_size)
            self._reply(event, HTTPStatus.OK, headers, body_follows=True)
            if send_body:
                self._stream(event, handle, file_stat.st_size, injector)

    def _stream(
        self,
        event: ServerEvent,
        handle,
        size: int,
        injector: StreamInjector | None,
    ) -> None:
        event.bytes = 0
        remaining = size
        while remaining > 0:
            chunk = handle.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            event.bytes += len(chunk)
            if injector is not None:
                chunk = injector.feed(chunk)
            if chunk:
                self.wfile.write(chunk)
        if injector is not None:
            tail = injector.flush()
            if tail:
                self.wfile.write(tail)

    def _reply(
        self,
        event: ServerEvent,
        status: HTTPStatus,
        headers: dict[str, str] | None = None,
        body_follows: bool = False,
    ) -> None:
        headers = dict(headers or {})
        if not body_follows and status != HTTPStatus.NOT_MODIFIED:
            headers.setdefault("Content-Length", "0")
        event.status = int(status)
        self.send_response(status)
        for key, value in headers.items():
            self.send_header(key, value)
        self.send_header("Cache-Control", "no-cache")
        self.end_headers()
        self._headers_sent = True

    def _reply_quietly(self, event: ServerEvent, status: HTTPStatus) -> None:
        try:
            self._reply(event, status)
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Client went away before %s could be sent", int(status))


def attach_logging(file_server: FileServer, log: logging.Logger = logger) -> None:
    """Forward a server's "file:done" and "error" signals to a logger."""

    def on_done(event: ServerEvent) -> None:
        log.info(
            "#%d %s %d %s %s",
            event.id,
            event.route,
            event.status,
            event.file_path or "-",
            "-" if event.bytes is None else f"{event.bytes}B",
        )

    def on_error(error: BaseException, event: ServerEvent) -> None:
        log.error("Request #%d for %s failed", event.id, event.route, exc_info=error)

    file_server.on(EVENT_DONE, on_done)
    file_server.on(EVENT_ERROR, on_error)
