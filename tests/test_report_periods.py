# tests/test_report_periods.py
# Pytest tests for compliance.report_periods

import pytest
import pandas as pd

from compliance.report_periods import (
    END_OF_DAY,
    InvalidReportPeriod,
    InvalidReportType,
    ReportPeriodError,
    ReportType,
    filter_submissions,
    generate_program_report,
    parse_report_type,
    resolve_report_period,
)
from compliance.submission_records import empty_submissions_df


# --- Report types ---

@pytest.mark.parametrize("raw, expected", [
    ("Weekly Summary", ReportType.WEEKLY_SUMMARY),
    ("weekly summary", ReportType.WEEKLY_SUMMARY),
    ("WeeklySummary", ReportType.WEEKLY_SUMMARY),
    ("Morbidity Week", ReportType.WEEKLY_SUMMARY),
    ("Morbidity Month", ReportType.MONTHLY_SUMMARY),
    ("Quarterly", ReportType.QUARTERLY_SUMMARY),
    ("Morbidity Year", ReportType.ANNUAL_SUMMARY),
    (ReportType.ANNUAL_SUMMARY, ReportType.ANNUAL_SUMMARY),
])
def test_parse_report_type(raw, expected):
    assert parse_report_type(raw) is expected


@pytest.mark.parametrize("raw", [None, "", "Daily Summary"])
def test_parse_report_type_rejects_unknown(raw):
    with pytest.raises(InvalidReportType):
        parse_report_type(raw)


# --- Windows ---

def test_weekly_window_is_sunday_to_saturday_end_of_day():
    period = resolve_report_period("Weekly Summary", 2025, week=1, program_name="PIDSR")
    assert period.start_date == pd.Timestamp("2024-12-29")
    assert period.end_date == pd.Timestamp("2025-01-04 23:59:59.999999999")
    assert period.title == "PIDSR Report - Morbidity Week 1, 2025"


def test_monthly_window_handles_leap_february():
    period = resolve_report_period("Monthly Summary", 2024, month=2, program_name="TB DOTS")
    assert period.start_date == pd.Timestamp("2024-02-01")
    assert period.end_date == pd.Timestamp("2024-02-29") + END_OF_DAY
    assert period.title == "TB DOTS Report - February 2024"


def test_quarterly_q4_window():
    period = resolve_report_period("Quarterly Summary", 2024, quarter=4)
    assert period.start_date == pd.Timestamp("2024-10-01")
    assert period.end_date.normalize() == pd.Timestamp("2024-12-31")
    assert period.title == "Quarterly Surveillance Report - Q4 2024"


def test_annual_window():
    period = resolve_report_period("Annual Summary", "2023", program_name="EPI")
    assert (period.start_date, period.end_date) == (pd.Timestamp("2023-01-01"), pd.Timestamp("2023-12-31") + END_OF_DAY)
    assert period.title == "Annual EPI Report - 2023"


def test_windows_contain_their_boundaries():
    period = resolve_report_period("Monthly Summary", 2024, month=6)
    assert period.contains("2024-06-01 00:00")
    assert period.contains("2024-06-30 23:59:59.999")
    assert not period.contains("2024-07-01 00:00")
    assert not period.contains("2024-05-31 23:59:59")


def test_quarters_tile_the_year():
    windows = [resolve_report_period("Quarterly Summary", 2024, quarter=q) for q in range(1, 5)]
    assert windows[0].start_date == pd.Timestamp("2024-01-01")
    assert windows[-1].end_date == pd.Timestamp("2024-12-31") + END_OF_DAY
    for earlier, later in zip(windows, windows[1:]):
        assert later.start_date - earlier.end_date == pd.Timedelta(1, unit='ns')


def test_consecutive_weeks_tile():
    for week in range(1, 52):
        this_week = resolve_report_period("Weekly Summary", 2024, week=week)
        next_week = resolve_report_period("Weekly Summary", 2024, week=week + 1)
        assert next_week.start_date - this_week.end_date == pd.Timedelta(1, unit='ns')


@pytest.mark.parametrize("kwargs", [
    {'report_type': "Weekly Summary", 'year': 2024},
    {'report_type': "Weekly Summary", 'year': 2024, 'week': 0},
    {'report_type': "Weekly Summary", 'year': 2024, 'week': 54},
    {'report_type': "Weekly Summary", 'year': 2024, 'week': 53}, # 2024 has 52 weeks
    {'report_type': "Monthly Summary", 'year': 2024, 'month': 13},
    {'report_type': "Monthly Summary", 'year': 2024, 'month': 2.5},
    {'report_type': "Quarterly Summary", 'year': 2024, 'quarter': 5},
    {'report_type': "Quarterly Summary", 'year': 2024},
    {'report_type': "Annual Summary", 'year': None},
    {'report_type': "Annual Summary", 'year': "next"},
])
def test_invalid_periods_raise(kwargs):
    with pytest.raises(InvalidReportPeriod):
        resolve_report_period(**kwargs)


def test_errors_share_a_value_error_base():
    with pytest.raises(ValueError):
        resolve_report_period("Fortnightly", 2024)
    assert issubclass(InvalidReportType, ReportPeriodError)
    assert issubclass(InvalidReportPeriod, ReportPeriodError)


# --- Filtering & report ---

def test_filter_submissions_approved_in_window(sample_submissions_df):
    june = resolve_report_period("Monthly Summary", 2024, month=6)
    matched = filter_submissions(sample_submissions_df, 'prog-tb', june)
    # s9 has an unreadable client date but its server timestamp is in June
    assert sorted(matched['submission_id']) == ['s1', 's9']

    everything = filter_submissions(sample_submissions_df, 'prog-tb', june, approved_only=False)
    assert sorted(everything['submission_id']) == ['s1', 's6', 's9']
    assert filter_submissions(empty_submissions_df(), 'prog-tb', june).empty


def test_filter_submissions_matches_composite_group(sample_submissions_df, sample_programs):
    week_24 = resolve_report_period("Weekly Summary", 2024, week=24)
    matched = filter_submissions(sample_submissions_df, sample_programs['prog-pidsr'], week_24)
    assert matched['submission_id'].tolist() == ['s2']


def test_generate_program_report(sample_programs, sample_users, sample_submissions_df, sample_facilities):
    june = resolve_report_period("Monthly Summary", 2024, month=6, program_name="TB DOTS")
    report = generate_program_report(sample_programs['prog-tb'], june, sample_users, sample_submissions_df,
                                     facilities=list(sample_facilities.values()))
    assert report.title == "TB DOTS Report - June 2024"
    rows = report.facility_rows.set_index('facility_name')
    assert list(rows.index) == ['Bacolod RHU', 'Silay District Hospital', 'Talisay RHU']
    assert rows.loc['Bacolod RHU', 'submissions_count'] == 2
    assert rows.loc['Bacolod RHU', 'total_cases'] == 5
    assert rows.loc['Talisay RHU', 'submissions_count'] == 0
    assert (report.total_cases, report.reporting_facilities, report.total_facilities) == (5, 1, 3)


def test_report_facilities_default_to_user_references(sample_programs, sample_users, sample_submissions_df):
    april = resolve_report_period("Monthly Summary", 2024, month=4)
    report = generate_program_report(sample_programs['prog-tb'], april, sample_users, sample_submissions_df)
    rows = report.facility_rows.set_index('facility_name')
    assert rows.loc['Silay District Hospital', 'total_cases'] == 7
    # Without a facility list, unknown references still appear but the PHO does not
    assert 'Unknown Health Center' in rows.index
    assert 'Provincial Health Office' not in rows.index


def test_report_with_no_submissions_lists_required_facilities_with_zeros(sample_programs, sample_users, sample_facilities):
    week = resolve_report_period("Weekly Summary", 2024, week=10)
    report = generate_program_report(sample_programs['prog-pidsr'], week, sample_users, empty_submissions_df(),
                                     facilities=list(sample_facilities.values()))
    assert report.facility_rows['facility_name'].tolist() == ['Bacolod RHU', 'Talisay RHU']
    assert report.total_cases == 0
    assert report.reporting_facilities == 0


def test_week_53_resolves_only_in_53_week_years():
    week_53 = resolve_report_period("Weekly Summary", 2025, week=53)
    next_week_1 = resolve_report_period("Weekly Summary", 2026, week=1)
    assert week_53.start_date == pd.Timestamp("2025-12-28")
    assert next_week_1.start_date - week_53.end_date == pd.Timedelta(1, unit='ns')


def test_report_lists_facilities_of_any_assigned_role(sample_programs):
    users = [{'id': 'a1', 'role': 'Facility Admin', 'facilityName': 'Murcia RHU', 'assignedPrograms': ['prog-tb']}]
    june = resolve_report_period("Monthly Summary", 2024, month=6)
    report = generate_program_report(sample_programs['prog-tb'], june, users, empty_submissions_df())
    assert report.facility_rows['facility_name'].tolist() == ['Murcia RHU']
    assert report.facility_rows['submissions_count'].tolist() == [0]
    assert report.total_facilities == 1


def test_empty_report_keeps_text_facility_column(sample_programs):
    june = resolve_report_period("Monthly Summary", 2024, month=6)
    report = generate_program_report(sample_programs['prog-tb'], june, [], empty_submissions_df())
    assert report.facility_rows.empty
    assert list(report.facility_rows.columns) == ['facility_name', 'submissions_count', 'total_cases']
    assert report.facility_rows['facility_name'].dtype == object
    assert (report.total_cases, report.reporting_facilities, report.total_facilities) == (0, 0, 0)
