# compliance/report_periods.py
# PHO Surveillance Reporting Portal - report windows & report generation
# Turns a report-type selection into an inclusive [start, end] window and a title,
# then filters approved submissions into that window for per-facility counts.

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Union

import pandas as pd

from config import app_config
from compliance.compliance_aggregation import get_required_facilities
from compliance.morbidity_week import morbidity_week_dates, weeks_in_year
from compliance.submission_records import (
    Facility,
    FacilityLike,
    Program,
    ProgramLike,
    ReviewState,
    UserLike,
    as_program,
    load_facilities,
    load_users,
    program_mask,
)

logger = logging.getLogger(__name__)

# Windows end on the last representable instant of their final day.
END_OF_DAY = pd.Timedelta(days=1) - pd.Timedelta(1, unit='ns')


class ReportPeriodError(ValueError):
    """Base error for report window resolution."""


class InvalidReportType(ReportPeriodError):
    """Unknown or missing report type."""


class InvalidReportPeriod(ReportPeriodError):
    """Missing or out-of-range year, week, month or quarter."""


class ReportType(str, Enum):
    WEEKLY_SUMMARY = "Weekly Summary"
    MONTHLY_SUMMARY = "Monthly Summary"
    QUARTERLY_SUMMARY = "Quarterly Summary"
    ANNUAL_SUMMARY = "Annual Summary"


@dataclass(frozen=True)
class ReportPeriod:
    report_type: ReportType
    start_date: pd.Timestamp
    end_date: pd.Timestamp
    title: str

    def contains(self, value: Any) -> bool:
        ts = pd.Timestamp(value)
        return self.start_date <= ts <= self.end_date


def parse_report_type(report_type: Union[str, ReportType, None]) -> ReportType:
    """Accepts canonical names, CamelCase identifiers and the older UI labels."""
    if isinstance(report_type, ReportType):
        return report_type
    text = "" if report_type is None else str(report_type).strip()
    if not text:
        raise InvalidReportType("No report type selected.")
    for candidate in ReportType:
        if text.lower() == candidate.value.lower():
            return candidate
    alias = app_config.REPORT_TYPE_ALIASES.get(text.lower()) or app_config.REPORT_TYPE_ALIASES.get(text.lower().replace(' ', ''))
    if alias:
        return ReportType(alias)
    raise InvalidReportType(f"Invalid report type selected: '{text}'.")


def _require_int(name: str, value: Any, low: int, high: int) -> int:
    if value is None:
        raise InvalidReportPeriod(f"A {name} is required for this report type.")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidReportPeriod(f"Invalid {name}: {value!r}.") from e
    if number != value and not (isinstance(value, str) and value.strip() == str(number)):
        raise InvalidReportPeriod(f"Invalid {name}: {value!r}.")
    if not low <= number <= high:
        raise InvalidReportPeriod(f"{name.capitalize()} {number} is out of range ({low}-{high}).")
    return number


def resolve_report_period(
    report_type: Union[str, ReportType, None],
    year: Any,
    week: Any = None,
    month: Any = None,
    quarter: Any = None,
    program_name: Optional[str] = None
) -> ReportPeriod:
    """
    Inclusive window and display title for a report.

    Weekly    -> the morbidity week (Sunday 00:00 to Saturday end of day)
    Monthly   -> first to last day of the month
    Quarterly -> three months starting at month (quarter - 1) * 3 + 1
    Annual    -> 1 January to 31 December

    Raises InvalidReportType / InvalidReportPeriod; never returns a partial result.
    """
    rt = parse_report_type(report_type)
    year_num = _require_int("year", year, app_config.MIN_REPORT_YEAR, app_config.MAX_REPORT_YEAR)
    label = program_name or app_config.DEFAULT_REPORT_PROGRAM_LABEL

    if rt is ReportType.WEEKLY_SUMMARY:
        week_num = _require_int("week", week, 1, weeks_in_year(year_num))
        start_date, last_day = morbidity_week_dates(week_num, year_num)
        title = f"{label} Report - Morbidity Week {week_num}, {year_num}"
    elif rt is ReportType.MONTHLY_SUMMARY:
        month_num = _require_int("month", month, 1, 12)
        start_date = pd.Timestamp(year=year_num, month=month_num, day=1)
        last_day = start_date + pd.offsets.MonthEnd(1)
        title = f"{label} Report - {start_date:%B} {year_num}"
    elif rt is ReportType.QUARTERLY_SUMMARY:
        quarter_num = _require_int("quarter", quarter, 1, 4)
        start_date = pd.Timestamp(year=year_num, month=(quarter_num - 1) * 3 + 1, day=1)
        last_day = start_date + pd.DateOffset(months=3) - pd.Timedelta(days=1)
        title = f"Quarterly {label} Report - Q{quarter_num} {year_num}"
    else:
        start_date = pd.Timestamp(year=year_num, month=1, day=1)
        last_day = pd.Timestamp(year=year_num, month=12, day=31)
        title = f"Annual {label} Report - {year_num}"

    return ReportPeriod(report_type=rt, start_date=start_date.normalize(), end_date=last_day.normalize() + END_OF_DAY, title=title)


def _as_filter_program(program: Union[ProgramLike, str]) -> Program:
    if isinstance(program, str):
        return Program(id=program, name="")
    return as_program(program)


def filter_submissions(
    submissions_df: pd.DataFrame,
    program: Union[ProgramLike, str],
    period: ReportPeriod,
    approved_only: bool = True,
    source_context: str = "ComplianceCore"
) -> pd.DataFrame:
    """
    Submissions for a program whose server timestamp (or submission date when the
    timestamp is missing) falls inside the period window.
    """
    if not isinstance(submissions_df, pd.DataFrame) or submissions_df.empty:
        logger.debug(f"({source_context}) filter_submissions: no submissions supplied.")
        return pd.DataFrame(columns=getattr(submissions_df, 'columns', []))

    program = _as_filter_program(program)
    event_time = submissions_df['timestamp'].fillna(submissions_df['submission_date'])
    mask = program_mask(submissions_df, program) & event_time.between(period.start_date, period.end_date)
    if approved_only:
        mask &= submissions_df['review_status'] == ReviewState.APPROVED.value
    return submissions_df[mask.fillna(False).astype(bool)]


# --- Report Generation ---
@dataclass(frozen=True)
class ProgramReport:
    title: str
    period: ReportPeriod
    facility_rows: pd.DataFrame # facility_name, submissions_count, total_cases
    total_cases: int
    reporting_facilities: int
    total_facilities: int


def _facilities_from_users(users: Iterable[UserLike]) -> list:
    seen = {}
    for user in load_users(users):
        if not (user.facility_id or user.facility_name):
            continue
        key = user.facility_id or user.facility_name
        seen.setdefault(key, Facility(id=user.facility_id or "", name=user.facility_name or user.facility_id))
    return list(seen.values())


def generate_program_report(
    program: ProgramLike,
    period: ReportPeriod,
    users: Iterable[UserLike],
    submissions_df: pd.DataFrame,
    facilities: Optional[Iterable[FacilityLike]] = None,
    source_context: str = "ComplianceCore"
) -> ProgramReport:
    """
    Approved submissions per facility for a program within `period`.
    Every required facility appears, with zero counts when it filed nothing;
    facilities that filed without being required are appended.
    """
    program = as_program(program)
    user_list = load_users(users)
    facility_list = load_facilities(facilities) if facilities is not None else _facilities_from_users(user_list)
    required = get_required_facilities(program, facility_list, user_list, reporting_roles_only=False,
                                       source_context=source_context)
    required_labels = [f.name or f.id for f in required]

    matched = filter_submissions(submissions_df, program, period, approved_only=True, source_context=source_context)
    if matched.empty:
        counts = pd.DataFrame(columns=['submissions_count', 'total_cases'])
    else:
        counts = (
            matched.assign(facility_label=matched['facility_name'].fillna(matched['facility_id']))
            .groupby('facility_label', sort=False)
            .agg(submissions_count=('case_count', 'size'), total_cases=('case_count', 'sum'))
        )

    ordered_labels = list(dict.fromkeys(required_labels + list(counts.index)))
    facility_rows = (
        counts.reindex(ordered_labels, fill_value=0)
        .rename_axis('facility_name')
        .reset_index()
        .astype({'facility_name': object, 'submissions_count': int, 'total_cases': int})
    )

    total_cases = int(facility_rows['total_cases'].sum()) if not facility_rows.empty else 0
    reporting = int((facility_rows['submissions_count'] > 0).sum()) if not facility_rows.empty else 0
    logger.info(f"({source_context}) {period.title}: {reporting}/{len(facility_rows)} facilities reporting, {total_cases} cases.")
    return ProgramReport(
        title=period.title,
        period=period,
        facility_rows=facility_rows,
        total_cases=total_cases,
        reporting_facilities=reporting,
        total_facilities=len(facility_rows),
    )
