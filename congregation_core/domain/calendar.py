# congregation_core/domain/calendar.py
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Union

from dateutil import parser as date_parser
from dateutil import tz

from congregation_core.errors import ValidationError

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")

DateLike = Union[date, datetime, str, None]


def parse_month(value: str) -> str:
    """Normalise a month key to YYYY-MM; raises ValidationError otherwise."""
    m = _MONTH_RE.match(str(value or "").strip())
    if not m or not (1 <= int(m.group(2)) <= 12):
        raise ValidationError(f"Month must look like YYYY-MM: {value!r}")
    return f"{m.group(1)}-{m.group(2)}"


def parse_date(value: DateLike) -> Optional[date]:
    """Accepts date, datetime or an ISO-ish string. Empty input gives None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date_parser.isoparse(text).date()
    except ValueError:
        try:
            return date_parser.parse(text).date()
        except (ValueError, OverflowError):
            raise ValidationError(f"Unrecognised date: {value!r}") from None


def month_of(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def same_day(a: DateLike, b: DateLike) -> bool:
    da, db = parse_date(a), parse_date(b)
    return da is not None and da == db


def now_in(tz_name: str) -> datetime:
    return datetime.now(tz=tz.gettz(tz_name))


def current_month(tz_name: str) -> str:
    return month_of(now_in(tz_name).date())


def month_label(month: str) -> str:
    """2025-03 -> March 2025"""
    y, mo = parse_month(month).split("-")
    return date(int(y), int(mo), 1).strftime("%B %Y")
