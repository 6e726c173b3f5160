"""
Prescription Duration
Parsing of "<N> <unit>" duration strings and the active-window check
"""

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union


logger = logging.getLogger(__name__)


DURATION_PATTERN = re.compile(r"(\d+)\s*(\w+)")


class DurationUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class Duration:
    """A parsed prescription duration"""
    quantity: int
    unit: DurationUnit

    def add_to(self, start: date) -> date:
        if self.unit == DurationUnit.DAY:
            return start + timedelta(days=self.quantity)
        if self.unit == DurationUnit.WEEK:
            return start + timedelta(days=7 * self.quantity)
        return add_months(start, self.quantity)


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def parse_duration(text: Optional[str]) -> Optional[Duration]:
    """
    Parse a duration such as "7 days", "2 weeks" or "1 month".

    Returns None when the text is missing, does not match, names an unknown
    unit or has a non-positive quantity.
    """
    if not text:
        return None

    match = DURATION_PATTERN.search(text)
    if not match:
        return None

    quantity = int(match.group(1))
    unit_text = match.group(2).lower()
    if quantity <= 0:
        return None

    for unit in DurationUnit:
        if unit.value in unit_text:
            return Duration(quantity=quantity, unit=unit)
    return None


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def end_date(start: Union[date, datetime], duration: Duration) -> date:
    """Last day (inclusive) of a prescription's active window"""
    return duration.add_to(_as_date(start))


def is_active(
    prescription_date: Optional[Union[date, datetime]],
    duration_text: Optional[str],
    on_date: Union[date, datetime]
) -> bool:
    """
    Whether a medicine is still being taken on ``on_date``.

    Missing data or an unparsable duration fails open: the medicine is
    treated as active.
    """
    if not prescription_date or not duration_text:
        return True

    duration = parse_duration(duration_text)
    if duration is None:
        logger.debug(f"Unparsable duration {duration_text!r}, treating as active")
        return True

    return _as_date(on_date) <= end_date(prescription_date, duration)
