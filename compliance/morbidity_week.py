# compliance/morbidity_week.py
# PHO Surveillance Reporting Portal - morbidity week calendar
# Morbidity weeks run Sunday to Saturday. Week 1 of a year is the week that
# contains January 4th, so the first days of January can belong to the last
# week of the previous year and the last days of December to week 1 of the next.

import logging
from typing import Any, Iterator, Optional, Tuple

import pandas as pd

from config import app_config

logger = logging.getLogger(__name__)

ONE_WEEK = pd.Timedelta(days=7)


# --- I. Clock & Normalization Helpers ---
def local_now() -> pd.Timestamp:
    """Current wall-clock time in the reporting timezone, as a naive Timestamp."""
    return pd.Timestamp.now(tz=app_config.REPORTING_TIMEZONE).tz_localize(None)


def to_local_midnight(date_value: Any = None) -> pd.Timestamp:
    """
    Truncates any date-like value to local midnight.
    None means "now". tz-aware values are converted to the reporting timezone first.
    Raises ValueError when the value cannot be read as a date.
    """
    if date_value is None:
        return local_now().normalize()
    try:
        ts = pd.Timestamp(date_value)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Cannot interpret {date_value!r} as a date: {e}") from e
    if pd.isna(ts):
        raise ValueError(f"Cannot interpret {date_value!r} as a date.")
    if ts.tzinfo is not None:
        ts = ts.tz_convert(app_config.REPORTING_TIMEZONE).tz_localize(None)
    return ts.normalize()


def _start_of_week(ts: pd.Timestamp) -> pd.Timestamp:
    # pandas: Monday=0 ... Sunday=6; shift so Sunday is day 0
    return ts - pd.Timedelta(days=(ts.dayofweek + 1) % 7)


def _weeks_between(earlier: pd.Timestamp, later: pd.Timestamp) -> int:
    return int(round((later - earlier) / ONE_WEEK))


def first_day_of_week_one(year: int) -> pd.Timestamp:
    """The Sunday on or before January 4th of `year`."""
    return _start_of_week(pd.Timestamp(year=int(year), month=1, day=4))


def weeks_in_year(year: int) -> int:
    """Number of morbidity weeks (52 or 53) in `year`."""
    return _weeks_between(first_day_of_week_one(year), first_day_of_week_one(int(year) + 1))


# --- II. Date -> Week ---
def morbidity_week_and_year(date_value: Any = None) -> Tuple[int, int]:
    """
    Returns (week, effective_year) for a date.

    The effective year differs from the calendar year only around New Year:
    late-December dates whose week contains the next January 4th are week 1
    of the next year.
    """
    start_of_week = _start_of_week(to_local_midnight(date_value))
    year = start_of_week.year
    week = _weeks_between(first_day_of_week_one(year), start_of_week) + 1

    if week > 52:
        if start_of_week >= first_day_of_week_one(year + 1):
            return 1, year + 1

    if week < 1:
        prev_year_week = _weeks_between(first_day_of_week_one(year - 1), start_of_week) + 1
        return prev_year_week, year - 1

    return week, year


def morbidity_week(date_value: Any = None) -> int:
    """Morbidity week number (1-53) of a date; defaults to today."""
    week, _ = morbidity_week_and_year(date_value)
    return week


def effective_week_year(week: int, year: int, reference_date: Any = None) -> Tuple[int, int]:
    """
    Resolves a stored (week, year) pair to (week, effective_year).

    Uploads record the calendar year of the upload, so week 1 filed in late
    December belongs to the next year and week 52/53 filed in early January
    to the previous one. Without a reference date, a week the stored year
    does not have is moved to the previous year when that year has it.
    """
    week_num, year_num = int(week), int(year)
    if reference_date is not None and not pd.isna(reference_date):
        month = to_local_midnight(reference_date).month
        if week_num == 1 and month == 12:
            return week_num, year_num + 1
        if week_num >= 52 and month == 1:
            return week_num, year_num - 1
        return week_num, year_num
    if week_num > weeks_in_year(year_num) and week_num <= weeks_in_year(year_num - 1):
        logger.debug(f"Week {week_num} does not exist in {year_num}; assigning it to {year_num - 1}.")
        return week_num, year_num - 1
    return week_num, year_num


# --- III. Week -> Dates ---
def morbidity_week_dates(week: int, year: int) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """
    First (Sunday) and last (Saturday) day of a morbidity week, both at midnight.
    Raises ValueError for weeks outside 1..weeks_in_year(year).
    """
    try:
        week_num = int(week)
        year_num = int(year)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Week and year must be integers, got week={week!r}, year={year!r}.") from e
    last_week = weeks_in_year(year_num)
    if not 1 <= week_num <= last_week:
        raise ValueError(f"Morbidity week {week_num} is out of range for {year_num} (1-{last_week}).")

    start_date = first_day_of_week_one(year_num) + (week_num - 1) * ONE_WEEK
    end_date = start_date + pd.Timedelta(days=6)
    return start_date, end_date


def recent_morbidity_weeks(count: Optional[int] = None, today: Any = None) -> Iterator[int]:
    """
    Yields week numbers counting down from the current week.
    Stops at week 1; never wraps into the previous year's numbering.
    """
    count = app_config.DEFAULT_RECENT_WEEKS_COUNT if count is None else count
    current_week = morbidity_week(today)
    for offset in range(max(int(count), 0)):
        week = current_week - offset
        if week <= 0:
            return
        yield week
