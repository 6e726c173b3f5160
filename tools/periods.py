"""
Dose Periods
Time-of-day classification shared by the request checks, the sweeper and the
reminder dispatcher.

Boundary hours (server local time):

    05:00  morning starts
    12:00  morning ends, afternoon starts
    18:00  afternoon ends, evening starts
    22:00  evening doses are considered over

Hours before 05:00 still belong to the evening period.
"""

from datetime import date, datetime, timedelta
from typing import List

from models import Period


MORNING_START_HOUR = 5
MORNING_END_HOUR = 12
AFTERNOON_END_HOUR = 18
EVENING_END_HOUR = 22

# Minutes after a boundary hour at which the scheduled sweep fires
SWEEP_TRANSITION_MINUTE = 5
# Regular interval for the scheduled sweep between boundaries
SWEEP_INTERVAL_MINUTES = 15

PERIOD_ORDER: List[Period] = [Period.MORNING, Period.AFTERNOON, Period.EVENING]


def period_for(hour: int) -> Period:
    """Return the dose period an hour of the day falls into"""
    if not 0 <= hour <= 23:
        raise ValueError(f"Hour out of range: {hour}")
    if MORNING_START_HOUR <= hour < MORNING_END_HOUR:
        return Period.MORNING
    if MORNING_END_HOUR <= hour < AFTERNOON_END_HOUR:
        return Period.AFTERNOON
    return Period.EVENING


def previous_periods(period: Period) -> List[Period]:
    """Periods strictly earlier than ``period`` on the same day"""
    return PERIOD_ORDER[:PERIOD_ORDER.index(Period(period))]


def sweep_periods_for_hour(hour: int) -> List[Period]:
    """
    Periods the scheduled sweep may close at a given hour.

    Morning doses close at noon, afternoon doses at 18:00 and evening doses
    at 22:00. Nothing is closed between 05:00 and noon.
    """
    if MORNING_END_HOUR <= hour < AFTERNOON_END_HOUR:
        return [Period.MORNING]
    if AFTERNOON_END_HOUR <= hour < EVENING_END_HOUR:
        return [Period.MORNING, Period.AFTERNOON]
    if hour >= EVENING_END_HOUR or hour < MORNING_START_HOUR:
        return list(PERIOD_ORDER)
    return []


def is_sweep_checkpoint(now: datetime) -> bool:
    """True at HH:05 after a boundary hour, or on every quarter hour"""
    at_transition = (
        now.hour in (MORNING_END_HOUR, AFTERNOON_END_HOUR, EVENING_END_HOUR)
        and now.minute == SWEEP_TRANSITION_MINUTE
    )
    return at_transition or now.minute % SWEEP_INTERVAL_MINUTES == 0


def parse_period(value) -> Period:
    """Parse a period name case-insensitively; raises ValueError"""
    if isinstance(value, Period):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid period: {value!r}")
    return Period(value.strip().lower())


def dose_day(now: datetime) -> date:
    """
    Calendar day whose doses are being closed at ``now``.

    Before 05:00 the previous day's evening is still the latest period, so
    the previous day is returned.
    """
    if now.hour < MORNING_START_HOUR:
        return now.date() - timedelta(days=1)
    return now.date()


def missable_periods(now: datetime) -> List[Period]:
    """
    Periods of ``dose_day(now)`` that lie strictly before the current period.
    In the early hours every period of the previous day has passed.
    """
    if now.hour < MORNING_START_HOUR:
        return list(PERIOD_ORDER)
    return previous_periods(period_for(now.hour))
