# compliance/compliance_aggregation.py
# PHO Surveillance Reporting Portal - facility & program compliance roll-ups
# Everything here is recomputed from the full submission frame on each call.
# Expected scale is low hundreds of facilities and low thousands of submissions,
# so O(facilities x submissions) passes are acceptable and no counters are cached.

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from config import app_config
from compliance.compliance_rules import ComplianceStatus, get_status_for_program, resolve_today
from compliance.morbidity_week import effective_week_year, morbidity_week_and_year
from compliance.submission_records import (
    Facility,
    FacilityLike,
    Program,
    ProgramLike,
    ReviewState,
    User,
    UserLike,
    as_facility,
    as_program,
    facility_lookup,
    facility_mask,
    load_facilities,
    load_programs,
    load_users,
    program_mask,
    resolve_user_facility,
    user_belongs_to_facility,
)

logger = logging.getLogger(__name__)


# --- I. Reporting Periods ---
@dataclass(frozen=True)
class ReportingPeriod:
    period_type: str # Weekly | Monthly | Quarterly | Annually
    year: int
    week: Optional[int] = None
    month: Optional[int] = None
    quarter: Optional[int] = None

    @property
    def key(self) -> Tuple[int, Optional[int]]:
        if self.period_type == "Weekly":
            return self.year, self.week
        if self.period_type == "Monthly":
            return self.year, self.month
        if self.period_type == "Quarterly":
            return self.year, self.quarter
        return self.year, None

    @property
    def label(self) -> str:
        if self.period_type == "Weekly":
            return f"Morbidity Week {self.week}, {self.year}"
        if self.period_type == "Monthly":
            return f"{pd.Timestamp(year=self.year, month=self.month, day=1):%B} {self.year}"
        if self.period_type == "Quarterly":
            return f"Q{self.quarter} {self.year}"
        return str(self.year)


def get_current_reporting_period(program: ProgramLike, today: Any = None) -> ReportingPeriod:
    """The period a program's facilities are expected to cover as of `today`."""
    program = as_program(program)
    now = resolve_today(today)
    period_type = program.period_type
    if period_type == "Weekly":
        week, year = morbidity_week_and_year(now)
        return ReportingPeriod(period_type, year, week=week)
    if period_type == "Monthly":
        return ReportingPeriod(period_type, now.year, month=now.month)
    if period_type == "Quarterly":
        return ReportingPeriod(period_type, now.year, quarter=now.quarter)
    if period_type == "Annually":
        return ReportingPeriod(period_type, now.year)
    logger.warning(f"Program '{program.name}' has unknown period type '{period_type}'; using {app_config.DEFAULT_PERIOD_TYPE}.")
    return ReportingPeriod(app_config.DEFAULT_PERIOD_TYPE, now.year, month=now.month)


def _row_period_key(row: pd.Series, period_type: str) -> Optional[Tuple[int, Optional[int]]]:
    # Explicit period fields win; otherwise fall back to the submission date.
    submission_date = row['submission_date']
    has_date = pd.notna(submission_date)
    stored_year = row['submission_year'] if pd.notna(row['submission_year']) else None

    if period_type == "Weekly":
        if pd.notna(row['morbidity_week']):
            # Stored years are calendar years of the upload, not effective morbidity years.
            if stored_year is None and not has_date:
                return None
            base_year = int(stored_year) if stored_year is not None else submission_date.year
            week, year = effective_week_year(row['morbidity_week'], base_year, submission_date if has_date else None)
            return year, week
        if not has_date:
            return None
        week, year = morbidity_week_and_year(submission_date)
        return year, week

    if period_type in ("Monthly", "Quarterly"):
        if pd.notna(row['submission_month']) and (stored_year is not None or has_date):
            year = int(stored_year) if stored_year is not None else submission_date.year
            month = int(row['submission_month'])
        elif has_date:
            year, month = submission_date.year, submission_date.month
        else:
            return None
        return (year, month) if period_type == "Monthly" else (year, (month - 1) // 3 + 1)

    if stored_year is not None:
        return int(stored_year), None
    return (submission_date.year, None) if has_date else None


def submission_period_mask(submissions_df: pd.DataFrame, period: ReportingPeriod) -> pd.Series:
    """Rows whose covered period equals `period`."""
    if submissions_df.empty:
        return pd.Series(False, index=submissions_df.index, dtype=bool)
    keys = submissions_df.apply(lambda row: _row_period_key(row, period.period_type), axis=1)
    return keys.map(lambda k: k == period.key).astype(bool)


# --- II. Facility Roll-up ---
def get_facility_users(facility: FacilityLike, users: Iterable[UserLike]) -> List[User]:
    facility = as_facility(facility)
    return [u for u in load_users(users) if user_belongs_to_facility(u, facility)]


def get_required_programs(facility: FacilityLike, programs: Iterable[ProgramLike], users: Iterable[UserLike]) -> List[Program]:
    """Active programs assigned to any user of the facility, in program order."""
    assigned_ids = {pid for user in get_facility_users(facility, users) for pid in user.assigned_programs}
    return [p for p in load_programs(programs) if p.active and p.id in assigned_ids]


def get_overall_facility_status(
    facility: FacilityLike,
    programs: Iterable[ProgramLike],
    submissions_df: pd.DataFrame,
    users: Iterable[UserLike],
    today: Any = None,
    source_context: str = "ComplianceCore"
) -> ComplianceStatus:
    """
    Worst-case status across a facility's required programs:
    any OVERDUE -> OVERDUE; any PENDING / PENDING_CONFIRMATION -> PENDING; all SUBMITTED -> SUBMITTED.
    """
    facility = as_facility(facility)
    user_list = load_users(users)
    if not get_facility_users(facility, user_list):
        return ComplianceStatus.NO_USER

    required_programs = get_required_programs(facility, programs, user_list)
    if not required_programs:
        return ComplianceStatus.NOT_APPLICABLE

    today_ts = resolve_today(today)
    statuses = [
        get_status_for_program(facility, p, submissions_df, today=today_ts, source_context=source_context).status
        for p in required_programs
    ]
    logger.debug(f"({source_context}) Facility '{facility.name}' program statuses: {[s.value for s in statuses]}")

    if ComplianceStatus.OVERDUE in statuses:
        return ComplianceStatus.OVERDUE
    if ComplianceStatus.PENDING in statuses or ComplianceStatus.PENDING_CONFIRMATION in statuses:
        return ComplianceStatus.PENDING
    if all(s is ComplianceStatus.SUBMITTED for s in statuses):
        return ComplianceStatus.SUBMITTED
    return ComplianceStatus.PENDING


# --- III. Program Compliance ---
@dataclass(frozen=True)
class ProgramCompliance:
    program_id: str
    program_name: str
    submitted_count: int
    pending_count: int
    total_facilities: int
    compliance_rate: float
    period: Optional[ReportingPeriod] = None
    submitted_facility_ids: Tuple[str, ...] = field(default_factory=tuple)


def _facility_key(facility: Facility) -> str:
    return f"id:{facility.id}" if facility.id else f"name:{facility.name}"


def get_required_facilities(
    program: ProgramLike,
    facilities: Iterable[FacilityLike],
    users: Iterable[UserLike],
    reporting_roles_only: bool = True,
    source_context: str = "ComplianceCore"
) -> List[Facility]:
    """
    Facilities required to report for a program: those with a reporting-role user assigned to it
    (any role when `reporting_roles_only` is False, as program reports list them).
    Counted once per facility however many of its users carry the assignment.
    The PHO itself and facilities missing from `facilities` are never required.
    """
    program = as_program(program)
    lookup = facility_lookup(load_facilities(facilities))
    required: Dict[str, Facility] = {}
    for user in load_users(users):
        if program.id not in user.assigned_programs:
            continue
        if reporting_roles_only and user.role not in app_config.REPORTING_USER_ROLES:
            continue
        facility = resolve_user_facility(user, lookup)
        if facility is None:
            logger.debug(f"({source_context}) User '{user.id}' references unknown facility "
                         f"'{user.facility_id or user.facility_name}'; not counted for '{program.name}'.")
            continue
        if facility.name == app_config.PHO_FACILITY_NAME:
            continue
        required.setdefault(_facility_key(facility), facility)
    return list(required.values())


def get_period_submissions(
    program: ProgramLike,
    submissions_df: pd.DataFrame,
    period: ReportingPeriod,
    review_state: Optional[str] = None
) -> pd.DataFrame:
    """Submissions filed for a program (composite group included) covering `period`."""
    if not isinstance(submissions_df, pd.DataFrame) or submissions_df.empty:
        return pd.DataFrame(columns=getattr(submissions_df, 'columns', []))
    program = as_program(program)
    candidates = submissions_df[program_mask(submissions_df, program)]
    if review_state is not None:
        candidates = candidates[candidates['review_status'] == review_state]
    return candidates[submission_period_mask(candidates, period)]


def _facilities_with_rows(facilities: List[Facility], rows: pd.DataFrame) -> List[Facility]:
    if rows.empty:
        return []
    ids = set(rows['facility_id'].dropna())
    names = set(rows['facility_name'].dropna())
    return [f for f in facilities if (f.id and f.id in ids) or (f.name and f.name in names)]


def get_program_compliance_counts(
    program: ProgramLike,
    facilities: Iterable[FacilityLike],
    users: Iterable[UserLike],
    submissions_df: pd.DataFrame,
    today: Any = None,
    period: Optional[ReportingPeriod] = None,
    source_context: str = "ComplianceCore"
) -> ProgramCompliance:
    """
    Submitted vs pending facility counts for a program in its current period.
    A facility is submitted once any approved submission for the program (or, for a
    composite program, any approved sub-report of its group) covers the period.
    submitted_count + pending_count == total_facilities always holds.
    """
    program = as_program(program)
    period = period or get_current_reporting_period(program, today)
    required = get_required_facilities(program, facilities, users, source_context=source_context)

    approved_rows = get_period_submissions(program, submissions_df, period, review_state=ReviewState.APPROVED.value)
    submitted = _facilities_with_rows(required, approved_rows)

    total = len(required)
    submitted_count = len(submitted)
    rate = round(submitted_count / total * 100, 1) if total > 0 else 0.0
    logger.debug(f"({source_context}) '{program.name}' {period.label}: {submitted_count}/{total} facilities submitted.")
    return ProgramCompliance(
        program_id=program.id,
        program_name=program.name,
        submitted_count=submitted_count,
        pending_count=total - submitted_count,
        total_facilities=total,
        compliance_rate=rate,
        period=period,
        submitted_facility_ids=tuple(_facility_key(f) for f in submitted),
    )


def get_compliance_by_facility_type(
    program: ProgramLike,
    facilities: Iterable[FacilityLike],
    users: Iterable[UserLike],
    submissions_df: pd.DataFrame,
    today: Any = None,
    source_context: str = "ComplianceCore"
) -> pd.DataFrame:
    """Submitted / pending facility counts per facility type for one program."""
    columns = ['facility_type', 'total', 'submitted', 'pending']
    facility_list = load_facilities(facilities)
    user_list = load_users(users)
    compliance = get_program_compliance_counts(program, facility_list, user_list, submissions_df, today=today, source_context=source_context)
    required = get_required_facilities(program, facility_list, user_list, source_context=source_context)
    if not required:
        return pd.DataFrame(columns=columns)

    submitted_keys = set(compliance.submitted_facility_ids)
    type_df = pd.DataFrame({
        'facility_type': [f.type or app_config.UNCATEGORIZED_FACILITY_TYPE for f in required],
        'submitted': [int(_facility_key(f) in submitted_keys) for f in required],
    })
    by_type = type_df.groupby('facility_type', sort=False).agg(total=('submitted', 'size'), submitted=('submitted', 'sum')).reset_index()
    by_type['pending'] = by_type['total'] - by_type['submitted']
    return by_type[columns]


def get_programs_compliance_summary(
    programs: Iterable[ProgramLike],
    facilities: Iterable[FacilityLike],
    users: Iterable[UserLike],
    submissions_df: pd.DataFrame,
    today: Any = None,
    program_ids: Optional[Iterable[str]] = None,
    source_context: str = "ComplianceCore"
) -> pd.DataFrame:
    """One compliance row per active program, optionally limited to `program_ids`."""
    columns = ['program_id', 'program_name', 'period', 'submitted', 'pending', 'total', 'compliance_rate']
    wanted = set(program_ids) if program_ids is not None else None
    facility_list, user_list = load_facilities(facilities), load_users(users)
    today_ts = resolve_today(today)

    rows = []
    for program in load_programs(programs):
        if not program.active or (wanted is not None and program.id not in wanted):
            continue
        c = get_program_compliance_counts(program, facility_list, user_list, submissions_df, today=today_ts, source_context=source_context)
        rows.append({
            'program_id': c.program_id, 'program_name': c.program_name, 'period': c.period.label if c.period else None,
            'submitted': c.submitted_count, 'pending': c.pending_count, 'total': c.total_facilities,
            'compliance_rate': c.compliance_rate,
        })
    return pd.DataFrame(rows, columns=columns)


def get_facility_period_stats(
    facility: FacilityLike,
    programs: Iterable[ProgramLike],
    users: Iterable[UserLike],
    submissions_df: pd.DataFrame,
    today: Any = None,
    source_context: str = "ComplianceCore"
) -> Dict[str, int]:
    """
    Current-period picture for one facility: submission counts by review state
    (per file, so a composite batch counts each sub-report) and how many required
    programs have nothing filed yet.
    """
    stats = {"approved": 0, "rejected": 0, "pending": 0, "not_submitted": 0, "total": 0}
    facility = as_facility(facility)
    required_programs = get_required_programs(facility, programs, users)
    stats["total"] = len(required_programs)
    if not required_programs:
        logger.debug(f"({source_context}) Facility '{facility.name}' has no required programs.")
        return stats
    if not isinstance(submissions_df, pd.DataFrame) or submissions_df.empty:
        stats["not_submitted"] = len(required_programs)
        return stats

    facility_rows = submissions_df[facility_mask(submissions_df, facility)]
    today_ts = resolve_today(today)
    period_rows = []
    programs_with_submissions = 0
    for program in required_programs:
        rows = get_period_submissions(program, facility_rows, get_current_reporting_period(program, today_ts))
        if not rows.empty:
            programs_with_submissions += 1
            period_rows.append(rows)

    if period_rows:
        combined = pd.concat(period_rows)
        combined = combined[~combined.index.duplicated(keep='first')]
        counts = combined['review_status'].value_counts()
        for state in (ReviewState.APPROVED, ReviewState.REJECTED, ReviewState.PENDING):
            stats[state.value] = int(counts.get(state.value, 0))
    stats["not_submitted"] = len(required_programs) - programs_with_submissions
    return stats


# --- IV. Upload Batches & Moderation ---
def group_submission_batches(submissions_df: pd.DataFrame, source_context: str = "ComplianceCore") -> pd.DataFrame:
    """
    One row per upload session. Composite uploads share a batch_id; any other
    submission is its own batch. Batch status: rejected if any item is rejected,
    pending if any item still awaits review, else approved.
    """
    columns = ['batch_key', 'program_id', 'program_name', 'facility_id', 'facility_name', 'latest_timestamp',
               'items', 'zero_case_items', 'approved', 'pending', 'rejected', 'batch_status']
    if not isinstance(submissions_df, pd.DataFrame) or submissions_df.empty:
        logger.debug(f"({source_context}) No submissions to group into batches.")
        return pd.DataFrame(columns=columns)

    work_df = submissions_df.copy()
    row_keys = pd.Series(work_df.index.astype(str), index=work_df.index)
    fallback_keys = work_df['submission_id'].where(work_df['submission_id'].notna(), row_keys)
    work_df['batch_key'] = work_df['batch_id'].where(work_df['batch_id'].notna(), fallback_keys)
    for state in ReviewState:
        work_df[state.value] = (work_df['review_status'] == state.value).astype(int)

    batches = work_df.groupby('batch_key', sort=False).agg(
        program_id=('program_id', 'first'),
        program_name=('program_name', 'first'),
        facility_id=('facility_id', 'first'),
        facility_name=('facility_name', 'first'),
        latest_timestamp=('timestamp', 'max'),
        items=('review_status', 'size'),
        zero_case_items=('is_zero_case', 'sum'),
        approved=(ReviewState.APPROVED.value, 'sum'),
        pending=(ReviewState.PENDING.value, 'sum'),
        rejected=(ReviewState.REJECTED.value, 'sum'),
    ).reset_index()

    batches['batch_status'] = ReviewState.APPROVED.value
    batches.loc[batches['pending'] > 0, 'batch_status'] = ReviewState.PENDING.value
    batches.loc[batches['rejected'] > 0, 'batch_status'] = ReviewState.REJECTED.value
    batches['zero_case_items'] = batches['zero_case_items'].astype(int)
    batches = batches.sort_values('latest_timestamp', ascending=False, kind='mergesort', na_position='last')
    return batches[columns].reset_index(drop=True)


def get_deletion_requests(submissions_df: pd.DataFrame) -> pd.DataFrame:
    """Submissions flagged for moderated deletion."""
    if not isinstance(submissions_df, pd.DataFrame) or submissions_df.empty:
        return pd.DataFrame(columns=getattr(submissions_df, 'columns', []))
    return submissions_df[submissions_df['has_deletion_request']]
