"""Completion key encoding.

Key grammar::

    completion:<period>:<taskId>:<datePart>

where ``datePart`` is the label of the period bucket containing the date:

- daily:   ``YYYY-MM-DD``
- weekly:  ISO week, ``YYYY-Www``
- monthly: ``YYYY-MM``

All labels are zero-padded so keys sharing a ``completion:<period>:<taskId>:``
prefix sort chronologically. Task ids never contain the delimiter; that is
enforced when tasks are validated, and decoding relies on it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from completion_tracker.tracking.errors import MalformedKey
from completion_tracker.tracking.models import KEY_DELIMITER, Period

KEY_PREFIX = "completion"

_DAILY_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_WEEKLY_RE = re.compile(r"(\d{4})-W(\d{2})")
_MONTHLY_RE = re.compile(r"(\d{4})-(\d{2})")


@dataclass(frozen=True, slots=True)
class ParsedKey:
    period: Period
    task_id: str
    date_part: str
    as_date: date

    @property
    def key(self) -> str:
        return KEY_DELIMITER.join((KEY_PREFIX, self.period.value, self.task_id, self.date_part))


def to_day(value: date | datetime) -> date:
    """Calendar day of ``value``; aware datetimes are converted to UTC first."""

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    return value


def date_part(period: Period, day: date | datetime) -> str:
    d = to_day(day)
    if period is Period.DAILY:
        return d.isoformat()
    if period is Period.WEEKLY:
        iso_year, iso_week, _ = d.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    return f"{d.year:04d}-{d.month:02d}"


def bucket_start(period: Period, day: date | datetime) -> date:
    """First day of the bucket containing ``day``."""

    d = to_day(day)
    if period is Period.DAILY:
        return d
    if period is Period.WEEKLY:
        iso_year, iso_week, _ = d.isocalendar()
        return date.fromisocalendar(iso_year, iso_week, 1)
    return d.replace(day=1)


def bucket_end(period: Period, day: date | datetime) -> date:
    """First day after the bucket containing ``day`` (exclusive end)."""

    start = bucket_start(period, day)
    if period is Period.DAILY:
        return start + timedelta(days=1)
    if period is Period.WEEKLY:
        return start + timedelta(days=7)
    if start.month == 12:
        return date(start.year + 1, 1, 1)
    return date(start.year, start.month + 1, 1)


def encode(period: Period | str, task_id: str, day: date | datetime) -> str:
    p = Period(period)
    return KEY_DELIMITER.join((KEY_PREFIX, p.value, task_id, date_part(p, day)))


def decode(key: str) -> ParsedKey:
    parts = key.split(KEY_DELIMITER)
    if len(parts) != 4:
        raise MalformedKey(key, f"expected 4 segments, got {len(parts)}")

    prefix, period_raw, task_id, part = parts
    if prefix != KEY_PREFIX:
        raise MalformedKey(key, f"expected prefix {KEY_PREFIX!r}")
    try:
        period = Period(period_raw)
    except ValueError:
        raise MalformedKey(key, f"unknown period {period_raw!r}") from None
    if not task_id:
        raise MalformedKey(key, "empty task id")

    return ParsedKey(
        period=period,
        task_id=task_id,
        date_part=part,
        as_date=_parse_date_part(key, period, part),
    )


def _parse_date_part(key: str, period: Period, part: str) -> date:
    try:
        if period is Period.DAILY:
            m = _DAILY_RE.fullmatch(part)
            if m:
                return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        elif period is Period.WEEKLY:
            m = _WEEKLY_RE.fullmatch(part)
            if m:
                return date.fromisocalendar(int(m.group(1)), int(m.group(2)), 1)
        else:
            m = _MONTHLY_RE.fullmatch(part)
            if m:
                return date(int(m.group(1)), int(m.group(2)), 1)
    except ValueError as e:
        raise MalformedKey(key, f"invalid {period.value} date label {part!r}: {e}") from None
    raise MalformedKey(key, f"date label {part!r} does not match the {period.value} format")
