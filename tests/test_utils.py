import errno
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ssg_zero.errors import (
    BuildError,
    describe_error,
    error_code,
    is_not_found,
)
from ssg_zero.frontmatter import FrontmatterError, parse_frontmatter
from ssg_zero.http_date import parse_http_date, to_http_date
from ssg_zero.log import ClickEchoHandler, ElapsedFormatter, elapsed, setup_logging
from ssg_zero.mime import MIME_TYPES, lookup


@pytest.mark.parametrize(
    "moment,expected",
    [
        (datetime(2022, 2, 11, 9, 17, 12, tzinfo=timezone.utc), "Fri, 11 Feb 2022 09:17:12 GMT"),
        (datetime(2000, 1, 1), "Sat, 01 Jan 2000 00:00:00 GMT"),
        (0, "Thu, 01 Jan 1970 00:00:00 GMT"),
        (1654084800.999, "Wed, 01 Jun 2022 12:00:00 GMT"),
        (
            datetime(2022, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2))),
            "Wed, 01 Jun 2022 12:00:00 GMT",
        ),
    ],
)
def test_to_http_date(moment, expected):
    assert to_http_date(moment) == expected


def test_parse_http_date():
    parsed = parse_http_date("Wed, 01 Jun 2022 12:00:00 GMT")
    assert parsed == datetime(2022, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert parsed.timestamp() == 1654084800
    # Round trip at whole-second resolution
    assert to_http_date(parse_http_date(to_http_date(1654084800))) == to_http_date(1654084800)

    for bad in ["", "yesterday", "Wed, 99 Foo 2022"]:
        with pytest.raises(ValueError):
            parse_http_date(bad)


def test_error_helpers():
    missing = FileNotFoundError(errno.ENOENT, "No such file or directory", "x")
    assert error_code(missing) == "ENOENT"
    assert is_not_found(missing)
    assert describe_error(missing) == (
        "FileNotFoundError [ENOENT]: [Errno 2] No such file or directory: 'x'"
    )

    denied = PermissionError(errno.EACCES, "Permission denied")
    assert error_code(denied) == "EACCES"
    assert not is_not_found(denied)

    # Codes survive wrapping
    wrapped = RuntimeError("render failed")
    wrapped.__cause__ = missing
    assert error_code(wrapped) == "ENOENT"
    assert is_not_found(wrapped)

    plain = ValueError("nope")
    assert error_code(plain) is None
    assert describe_error(plain) == "ValueError: nope"


def test_build_error_keeps_context():
    original = KeyError("title")
    error = BuildError(Path("site/index.md"), "missing title", original)
    assert error.source_path == Path("site/index.md")
    assert error.original_error is original
    assert str(error) == f"{Path('site/index.md')}: missing title"


def test_mime_table():
    assert lookup(".html").mime_type == "text/html"
    assert lookup(".HTML").encoding == "utf-8"
    assert lookup(".png").encoding == "binary"
    assert lookup(".aiff") is None
    for extension, info in MIME_TYPES.items():
        assert extension.startswith(".")
        assert info.encoding in ("utf-8", "binary")
        major, _, minor = info.mime_type.partition("/")
        assert major and minor


def test_parse_frontmatter():
    data, rest = parse_frontmatter("---\ntitle: Hi\ntags: [a, b]\n---\nBody\n")
    assert data == {"title": "Hi", "tags": ["a", "b"]}
    assert rest == "Body\n"

    # No block, or a block not at the start
    assert parse_frontmatter("Body") == ({}, "Body")
    assert parse_frontmatter("Intro\n---\na: 1\n---\n") == ({}, "Intro\n---\na: 1\n---\n")

    # Empty blocks and CRLF line endings
    assert parse_frontmatter("---\n---\nBody") == ({}, "Body")
    assert parse_frontmatter("---\r\ntitle: Hi\r\n---\r\nBody") == ({"title": "Hi"}, "Body")

    with pytest.raises(FrontmatterError):
        parse_frontmatter("---\n- a\n- b\n---\n")
    with pytest.raises(FrontmatterError):
        parse_frontmatter("---\ntitle: [unclosed\n---\n")


def test_elapsed():
    assert elapsed(0.0, 0.0) == "00:00.000"
    assert elapsed(10.0, 11.25) == "00:01.250"
    assert elapsed(0.0, 61.5) == "01:01.500"
    assert elapsed(0.0, 3725.5) == "62:05.500"


def test_elapsed_formatter():
    record = logging.LogRecord("ssg_zero.test", logging.INFO, __file__, 1, "hello %s", ("you",), None)
    line = ElapsedFormatter(color=False).format(record)
    time_part, level, message = line.split(" ", 2)
    assert len(time_part) == len("00:00.000")
    assert level == "INFO"
    assert message.strip() == "hello you"


def test_setup_logging_replaces_handler():
    logger = setup_logging(verbose=True)
    setup_logging(verbose=False)
    handlers = [h for h in logger.handlers if isinstance(h, ClickEchoHandler)]
    assert len(handlers) == 1
    assert logger.level == logging.INFO
