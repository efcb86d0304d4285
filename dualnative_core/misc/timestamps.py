"""
Helpers for the ISO-8601 timestamps used by catalog entries and HTTP dates
"""

import datetime
import email.utils
from typing import Optional, Union


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)


def to_iso(moment: datetime.datetime) -> str:
    """
    Format a datetime as fixed-width ISO-8601 string with a UTC offset

    Naive datetimes are assumed to be UTC already. The fixed width
    makes plain string comparison of two results chronological.
    """

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc).replace(microsecond=0).isoformat()


def utc_now_iso() -> str:
    return to_iso(utc_now())


def parse_timestamp(value: Union[str, int, float, datetime.datetime, None]) -> Optional[datetime.datetime]:
    """
    Parse a timestamp in one of the accepted formats, returning None if that's not possible

    Accepted are datetime objects, UNIX timestamps, ISO-8601
    strings (with ``Z`` or an offset) and RFC 2822 HTTP dates.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime.datetime):
        moment = value
    elif isinstance(value, (int, float)):
        try:
            moment = datetime.datetime.fromtimestamp(value, datetime.timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            moment = datetime.datetime.fromisoformat(text.replace("Z", "+00:00").replace("z", "+00:00"))
        except ValueError:
            try:
                moment = email.utils.parsedate_to_datetime(text)
            except (TypeError, ValueError, IndexError):
                return None
            if moment is None:
                return None
    else:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment


def normalize(value: Union[str, int, float, datetime.datetime, None]) -> Optional[str]:
    moment = parse_timestamp(value)
    return moment and to_iso(moment)


def http_date(value: Union[str, int, float, datetime.datetime, None]) -> Optional[str]:
    """
    Convert a timestamp to the IMF-fixdate format of HTTP headers like ``Last-Modified``
    """

    moment = parse_timestamp(value)
    if moment is None:
        return None
    return email.utils.format_datetime(moment.astimezone(datetime.timezone.utc), usegmt=True)
