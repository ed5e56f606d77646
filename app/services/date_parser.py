"""Natural-language date and time parsing for tool arguments.

Supported date inputs::

    2026-06-15                 ISO passthrough
    today / tomorrow / yesterday
    next saturday              always strictly after the reference day
    in 3 days / in 2 weeks / in 1 month
    June 15 / June 15th / June 15, 2027
    6/15 / 6/15/27 / 06-15-2027   month first

Both functions return ``None`` instead of raising on anything they cannot read.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
MONTH_NAMES = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NEXT_DAY_RE = re.compile(r"^next\s+(" + "|".join(DAY_NAMES) + r")$")
_IN_TIME_RE = re.compile(r"^in\s+(\d+)\s+(days?|weeks?|months?)$")
_MONTH_DAY_RE = re.compile(
    r"^(" + "|".join(MONTH_NAMES) + r")\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s*(\d{4}))?$"
)
_NUMERIC_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})(?:[/\-](\d{2,4}))?$")
_TIME_24H_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_TIME_12H_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$")


def _to_date(reference: Union[date, datetime, None]) -> date:
    if reference is None:
        return date.today()
    if isinstance(reference, datetime):
        return reference.date()
    return reference


def _add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _parse_relative(trimmed: str, ref: date) -> Optional[date]:
    if trimmed == "today":
        return ref
    if trimmed == "tomorrow":
        return ref + timedelta(days=1)
    if trimmed == "yesterday":
        return ref - timedelta(days=1)

    match = _NEXT_DAY_RE.match(trimmed)
    if match:
        target = DAY_NAMES.index(match.group(1))
        days_ahead = target - ref.weekday()
        if days_ahead <= 0:
            days_ahead += 7
        return ref + timedelta(days=days_ahead)

    match = _IN_TIME_RE.match(trimmed)
    if match:
        amount = int(match.group(1))
        unit = match.group(2)
        if unit.startswith("day"):
            return ref + timedelta(days=amount)
        if unit.startswith("week"):
            return ref + timedelta(weeks=amount)
        return _add_months(ref, amount)
    return None


def parse_natural_date(text: Optional[str], reference_date: Union[date, datetime, None] = None) -> Optional[str]:
    if not isinstance(text, str):
        return None
    trimmed = text.strip().lower()
    if not trimmed:
        return None
    ref = _to_date(reference_date)

    if _ISO_RE.match(trimmed):
        try:
            return date.fromisoformat(trimmed).isoformat()
        except ValueError:
            return None

    try:
        relative = _parse_relative(trimmed, ref)
    except (OverflowError, ValueError):
        # offset lands outside the representable calendar
        return None
    if relative is not None:
        return relative.isoformat()

    match = _MONTH_DAY_RE.match(trimmed)
    if match:
        month = MONTH_NAMES.index(match.group(1)) + 1
        day = int(match.group(2))
        explicit_year = match.group(3)
        year = int(explicit_year) if explicit_year else ref.year
        try:
            result = date(year, month, day)
        except ValueError:
            return None
        if not explicit_year and result < ref:
            try:
                result = date(year + 1, month, day)
            except ValueError:
                # Feb 29 with no leap day next year
                return None
        return result.isoformat()

    match = _NUMERIC_RE.match(trimmed)
    if match:
        month = int(match.group(1))
        day = int(match.group(2))
        year = int(match.group(3)) if match.group(3) else ref.year
        if year < 100:
            year += 2000
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None

    return None


def parse_time(text: Optional[str]) -> Optional[str]:
    if not isinstance(text, str):
        return None
    trimmed = text.strip().lower()

    match = _TIME_24H_RE.match(trimmed)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"

    match = _TIME_12H_RE.match(trimmed)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2)) if match.group(2) else 0
        if hours < 1 or hours > 12 or minutes > 59:
            return None
        is_pm = match.group(3) == "pm"
        if is_pm and hours != 12:
            hours += 12
        elif not is_pm and hours == 12:
            hours = 0
        return f"{hours:02d}:{minutes:02d}"

    return None
