"""Presentational helpers: time labels, pie angles, ISO week dates.

Nothing here talks to the backend or keeps state.
"""
from __future__ import annotations

import html
import math
import re
from datetime import date, datetime
from typing import Any, List, Optional, Tuple

from dateutil import tz
from dateutil.relativedelta import MO, relativedelta

DEFAULT_TIMEZONE = "Asia/Tokyo"
MAX_STUDY_MINUTES = 720
MINUTE_STEP = 10
GROUP_COUNT = 200
GROUP_PREFIX = "グループ"

_WEEK_ID = re.compile(r"^(\d{4})-W(\d{2})$")
_SPACES = re.compile(r"[ 　]")


def _unit(value: int, singular: str) -> str:
    return f"{value} {singular}" if value == 1 else f"{value} {singular}s"


def minutes_label(minutes: int) -> str:
    """``90`` -> ``"1 hour 30 minutes"``; a zero unit is left out."""

    hours, rest = divmod(int(minutes), 60)
    if hours == 0:
        return _unit(rest, "minute")
    if rest == 0:
        return _unit(hours, "hour")
    return f"{_unit(hours, 'hour')} {_unit(rest, 'minute')}"


def minute_options(
    step: int = MINUTE_STEP,
    limit: int = MAX_STUDY_MINUTES,
    current: Optional[int] = None,
) -> List[Tuple[int, str]]:
    """Dropdown choices on the *step* grid, plus *current* when a stored value is off it."""

    values = list(range(0, limit + 1, step))
    if isinstance(current, int) and not isinstance(current, bool) and 0 <= current <= limit and current not in values:
        values.append(current)
        values.sort()
    return [(minutes, minutes_label(minutes)) for minutes in values]


def hours_to_hm(hours: float) -> Tuple[int, int]:
    """Split fractional *hours* into whole hours and minutes, rounding half up."""

    try:
        value = float(hours)
    except (TypeError, ValueError):
        value = 0.0
    if not math.isfinite(value):
        value = 0.0
    total = int(math.floor(value * 60 + 0.5))
    return divmod(total, 60)


def hours_label(hours: float) -> str:
    h, m = hours_to_hm(hours)
    return f"{_unit(h, 'hour')} {_unit(m, 'minute')}"


def pie_boundaries(achieved: float, not_achieved: float, unreported: float) -> Tuple[float, float]:
    """Cumulative angles (degrees) ending the achieved and not-achieved slices.

    The unreported slice fills the remainder up to 360.
    """

    a = max(0.0, float(achieved or 0))
    n = max(0.0, float(not_achieved or 0))
    u = max(0.0, float(unreported or 0))
    total = (a + n + u) or 1.0
    first = a / total * 360
    second = (a + n) / total * 360
    return first, second


def week_monday(week_id: str) -> Optional[date]:
    """Monday of ISO week ``YYYY-Www``; week 1 contains January 4th."""

    match = _WEEK_ID.match(str(week_id or "").strip())
    if not match:
        return None
    year, week = int(match.group(1)), int(match.group(2))
    if not 1 <= week <= 53:
        return None
    first_monday = date(year, 1, 4) + relativedelta(weekday=MO(-1))
    return first_monday + relativedelta(weeks=week - 1)


def week_label(week_id: str) -> str:
    monday = week_monday(week_id)
    if monday is None:
        return week_id
    return f"Week of {monday.month}/{monday.day}"


def today_in(tz_name: str = DEFAULT_TIMEZONE) -> str:
    zone = tz.gettz(tz_name) or tz.gettz(DEFAULT_TIMEZONE)
    return datetime.now(zone).date().isoformat()


def group_options(count: int = GROUP_COUNT) -> List[str]:
    return [f"{GROUP_PREFIX}{i}" for i in range(1, count + 1)]


def escape_html(text: Any, empty: str = "") -> str:
    """Backend text made safe for ``unsafe_allow_html`` markup; *empty* when there is none."""

    if text is None or text == "":
        return empty
    return html.escape(str(text))


def has_any_space(text: Optional[str]) -> bool:
    """True when *text* contains an ASCII or ideographic (full-width) space."""

    return bool(_SPACES.search(text or ""))
