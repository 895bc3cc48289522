"""MIME type table for the file server.

Only extensions listed here are served; anything else is answered with
415 Unsupported Media Type. ``encoding`` records whether a type is text
(``utf-8``) or opaque bytes (``binary``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True)
class MimeInfo:
    mime_type: str
    encoding: str = "binary"


def _text(mime_type: str) -> MimeInfo:
    return MimeInfo(mime_type, "utf-8")


def _binary(mime_type: str) -> MimeInfo:
    return MimeInfo(mime_type, "binary")


MIME_TYPES: Mapping[str, MimeInfo] = MappingProxyType(
    {
        ".aac": _binary("audio/aac"),
        ".avif": _binary("image/avif"),
        ".bin": _binary("application/octet-stream"),
        ".bmp": _binary("image/bmp"),
        ".css": _text("text/css"),
        ".csv": _text("text/csv"),
        ".eot": _binary("application/vnd.ms-fontobject"),
        ".epub": _binary("application/epub+zip"),
        ".gif": _binary("image/gif"),
        ".gz": _binary("application/gzip"),
        ".htm": _text("text/html"),
        ".html": _text("text/html"),
        ".ico": _binary("image/vnd.microsoft.icon"),
        ".ics": _text("text/calendar"),
        ".jpeg": _binary("image/jpeg"),
        ".jpg": _binary("image/jpeg"),
        ".js": _text("text/javascript"),
        ".json": _text("application/json"),
        ".jsonld": _text("application/ld+json"),
        ".md": _text("text/markdown"),
        ".mjs": _text("text/javascript"),
        ".mp3": _binary("audio/mpeg"),
        ".mp4": _binary("video/mp4"),
        ".mpeg": _binary("video/mpeg"),
        ".oga": _binary("audio/ogg"),
        ".ogv": _binary("video/ogg"),
        ".otf": _binary("font/otf"),
        ".pdf": _binary("application/pdf"),
        ".png": _binary("image/png"),
        ".rss": _text("application/rss+xml"),
        ".svg": _text("image/svg+xml"),
        ".tar": _binary("application/x-tar"),
        ".tif": _binary("image/tiff"),
        ".tiff": _binary("image/tiff"),
        ".ttf": _binary("font/ttf"),
        ".txt": _text("text/plain"),
        ".wasm": _binary("application/wasm"),
        ".wav": _binary("audio/wav"),
        ".weba": _binary("audio/webm"),
        ".webm": _binary("video/webm"),
        ".webmanifest": _text("application/manifest+json"),
        ".webp": _binary("image/webp"),
        ".woff": _binary("font/woff"),
        ".woff2": _binary("font/woff2"),
        ".xhtml": _text("application/xhtml+xml"),
        ".xml": _text("application/xml"),
        ".zip": _binary("application/zip"),
    }
)


def lookup(extension: str, table: Mapping[str, MimeInfo] = MIME_TYPES) -> MimeInfo | None:
    """Return the MimeInfo for an extension (with leading dot), or None."""
    return table.get(extension.lower())
