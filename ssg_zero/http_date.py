"""HTTP-date helpers.

HTTP dates (RFC 9110, the RFC 1123 fixed-length format) have one second of
resolution and are always expressed in GMT, e.g. ``Fri, 11 Feb 2022 09:17:12 GMT``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime


def to_http_date(moment: datetime | float) -> str:
    """Format a datetime or POSIX timestamp as an HTTP-date.

    Naive datetimes are taken to be UTC. Sub-second precision is dropped.

    Examples:
        >>> to_http_date(datetime(2022, 2, 11, 9, 17, 12, tzinfo=timezone.utc))
        'Fri, 11 Feb 2022 09:17:12 GMT'

        >>> to_http_date(0)
        'Thu, 01 Jan 1970 00:00:00 GMT'
    """
    if isinstance(moment, datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        moment = moment.astimezone(timezone.utc)
    else:
        moment = datetime.fromtimestamp(moment, tz=timezone.utc)
    return format_datetime(moment.replace(microsecond=0), usegmt=True)


def parse_http_date(value: str) -> datetime:
    """Parse an HTTP-date header value into an aware UTC datetime.

    Raises:
        ValueError: If the value is not a date at all.
    """
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, IndexError) as exc:
        raise ValueError(f"Invalid HTTP date: {value!r}") from exc
    if parsed is None:
        raise ValueError(f"Invalid HTTP date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
