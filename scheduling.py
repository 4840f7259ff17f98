"""Deterministic per-job schedule hours and the windows due at a given hour."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from models import ParsingFrequency

HOURS_PER_DAY = 24


def schedule_hour_for(seed: str) -> int:
    """
    Spread jobs over the day: 32-bit ``h = h * 31 + ord(c)`` string hash, mod 24.

    The same seed always yields the same hour, across processes and restarts.
    """
    h = 0
    for char in seed:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    return h % HOURS_PER_DAY


def job_seed(work_id, job_id) -> str:
    return f"{work_id}-{job_id}"


@dataclass(frozen=True)
class DueWindow:
    """
    Jobs selected at one tick: a frequency plus either an hour
    (jobs with ``schedule_hour`` set) or the legacy marker (jobs without one).
    """
    frequency: ParsingFrequency
    schedule_hour: Optional[int] = None
    legacy: bool = False


def due_windows(
        now: datetime,
        weekly_weekday: int = 6,
        legacy_daily_hours: Iterable[int] = (0, 6, 12, 18),
) -> List[DueWindow]:
    """
    Windows that are due at ``now`` (evaluated in UTC).

    Hourly windows match jobs whose ``schedule_hour`` equals the current
    hour: daily every day, weekly only on ``weekly_weekday`` (Monday=0),
    monthly only on the 1st. Legacy windows match jobs with no hour:
    daily at ``legacy_daily_hours``, weekly at 00 on ``weekly_weekday``,
    monthly at 00 on the 1st.
    """
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)

    hour = now.hour
    is_weekly_day = now.weekday() == weekly_weekday
    is_first_of_month = now.day == 1

    windows = [DueWindow(ParsingFrequency.DAILY, schedule_hour=hour)]
    if is_weekly_day:
        windows.append(DueWindow(ParsingFrequency.WEEKLY, schedule_hour=hour))
    if is_first_of_month:
        windows.append(DueWindow(ParsingFrequency.MONTHLY, schedule_hour=hour))

    if hour in set(legacy_daily_hours):
        windows.append(DueWindow(ParsingFrequency.DAILY, legacy=True))
    if hour == 0 and is_weekly_day:
        windows.append(DueWindow(ParsingFrequency.WEEKLY, legacy=True))
    if hour == 0 and is_first_of_month:
        windows.append(DueWindow(ParsingFrequency.MONTHLY, legacy=True))

    return windows
