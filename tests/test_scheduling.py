from datetime import datetime, timedelta, timezone

from models import ParsingFrequency
from scheduling import DueWindow, due_windows, job_seed, schedule_hour_for

DAILY = ParsingFrequency.DAILY
WEEKLY = ParsingFrequency.WEEKLY
MONTHLY = ParsingFrequency.MONTHLY


def test_schedule_hour_known_value():
    # h = ((49 * 31 + 45) * 31 + 49) = 48533; 48533 % 24 == 5
    assert schedule_hour_for("1-1") == 5


def test_schedule_hour_is_deterministic_and_in_range():
    seeds = [job_seed(work_id, job_id) for work_id in range(1, 40) for job_id in range(1, 5)]

    first = [schedule_hour_for(seed) for seed in seeds]
    second = [schedule_hour_for(seed) for seed in seeds]

    assert first == second
    assert all(0 <= hour < 24 for hour in first)


def test_schedule_hour_wraps_long_seeds_to_32_bits():
    seed = job_seed("6650f0c2a1b2c3d4e5f60718", "6650f0c2a1b2c3d4e5f60719")

    h = 0
    for char in seed:
        h = (h * 31 + ord(char)) % 2 ** 32

    assert schedule_hour_for(seed) == h % 24


def test_midweek_hour_only_runs_daily_jobs():
    # Wednesday 13:00 UTC
    now = datetime(2024, 6, 5, 13, tzinfo=timezone.utc)

    assert due_windows(now) == [DueWindow(DAILY, schedule_hour=13)]


def test_sunday_midnight_includes_weekly_and_legacy_windows():
    now = datetime(2024, 6, 2, 0, tzinfo=timezone.utc)

    assert due_windows(now) == [
        DueWindow(DAILY, schedule_hour=0),
        DueWindow(WEEKLY, schedule_hour=0),
        DueWindow(DAILY, legacy=True),
        DueWindow(WEEKLY, legacy=True),
    ]


def test_first_of_month_outside_midnight():
    # Saturday June 1st, 06:00
    now = datetime(2024, 6, 1, 6, tzinfo=timezone.utc)

    assert due_windows(now) == [
        DueWindow(DAILY, schedule_hour=6),
        DueWindow(MONTHLY, schedule_hour=6),
        DueWindow(DAILY, legacy=True),
    ]


def test_legacy_daily_hours_are_configurable():
    now = datetime(2024, 6, 5, 6, tzinfo=timezone.utc)

    windows = due_windows(now, legacy_daily_hours=(3,))

    assert DueWindow(DAILY, legacy=True) not in windows


def test_windows_are_evaluated_in_utc():
    # 02:00 at UTC+3 on Sunday June 2nd is Saturday June 1st 23:00 UTC
    now = datetime(2024, 6, 2, 2, tzinfo=timezone(timedelta(hours=3)))

    assert due_windows(now) == [
        DueWindow(DAILY, schedule_hour=23),
        DueWindow(MONTHLY, schedule_hour=23),
    ]
