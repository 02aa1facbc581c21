# compliance/submission_records.py
# PHO Surveillance Reporting Portal - record ingestion
# Turns documents fetched from the external store (camelCase mappings) into:
#   1. A normalized submissions DataFrame with snake_case columns and one canonical review state.
#   2. Frozen Program / Facility / User records with structural fields resolved at load time.
# Nothing downstream branches on raw status strings or program display names.

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from config import app_config

logger = logging.getLogger(__name__)


class ReviewState(str, Enum):
    PENDING = app_config.REVIEW_STATE_PENDING
    APPROVED = app_config.REVIEW_STATE_APPROVED
    REJECTED = app_config.REVIEW_STATE_REJECTED


# Store field -> DataFrame column. Fields not listed here go through _clean_column_names.
SUBMISSION_FIELD_MAP = {
    'id': 'submission_id',
    'facilityId': 'facility_id',
    'facilityName': 'facility_name',
    'programId': 'program_id',
    'programName': 'program_name',
    'batchId': 'batch_id',
    'diseaseName': 'disease_name',
    'timestamp': 'timestamp',
    'submissionDate': 'submission_date',
    'morbidityWeek': 'morbidity_week',
    'submissionMonth': 'submission_month',
    'submissionYear': 'submission_year',
    'status': 'status',
    'confirmed': 'confirmed',
    'isZeroCase': 'is_zero_case',
    'deletionRequest': 'deletion_request',
    'rejectionReason': 'rejection_reason',
    'fileURL': 'file_url',
    'fileName': 'file_name',
    'userId': 'user_id',
    'userName': 'user_name',
    'data': 'data',
}

SUBMISSION_COLUMNS = [
    'submission_id', 'facility_id', 'facility_name', 'program_id', 'program_name',
    'batch_id', 'disease_name', 'timestamp', 'submission_date', 'morbidity_week',
    'submission_month', 'submission_year', 'status', 'review_status', 'confirmed',
    'is_zero_case', 'has_deletion_request', 'rejection_reason', 'file_url', 'file_name',
    'case_count',
]

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')


# --- I. Core Helper Functions ---
def _clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Standardizes column names: camelCase to snake_case, lower case, spaces/hyphens to underscores."""
    if not isinstance(df, pd.DataFrame):
        logger.error(f"_clean_column_names expects a pandas DataFrame, got {type(df)}.")
        return df if df is not None else pd.DataFrame()
    df.columns = [
        _CAMEL_BOUNDARY.sub('_', str(col)).lower().replace(' ', '_').replace('-', '_')
        for col in df.columns
    ]
    return df


def _convert_to_numeric(series: pd.Series, default_value: Any = np.nan) -> pd.Series:
    """Safely converts a pandas Series to numeric, coercing errors to default_value."""
    return pd.to_numeric(series, errors='coerce').fillna(default_value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', '1', 'y')
    if _is_missing(value):
        return False
    return bool(value)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() in app_config.COMMON_NA_VALUES
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError): # dicts, lists
        return False


def coerce_timestamp(value: Any) -> pd.Timestamp:
    """
    Converts a stored date/time value to a naive local Timestamp, or NaT.
    Accepts ISO strings, datetime/date objects, epoch-style mappings
    ({'seconds': ..., 'nanoseconds': ...}) and objects exposing to_datetime().
    """
    if _is_missing(value):
        return pd.NaT
    if isinstance(value, Mapping):
        seconds = value.get('seconds', value.get('_seconds'))
        if seconds is None:
            return pd.NaT
        nanos = value.get('nanoseconds', value.get('_nanoseconds', 0)) or 0
        value = pd.Timestamp(int(seconds) * 10**9 + int(nanos), unit='ns', tz='UTC')
    elif hasattr(value, 'to_datetime') and not isinstance(value, pd.Timestamp):
        value = value.to_datetime()
    ts = pd.to_datetime(value, errors='coerce')
    if pd.isna(ts):
        return pd.NaT
    if ts.tzinfo is not None:
        ts = ts.tz_convert(app_config.REPORTING_TIMEZONE).tz_localize(None)
    return ts


def normalize_review_status(status: Any, confirmed: Any = False) -> str:
    """
    Maps either status vocabulary onto the canonical review state.

    Current schema: pending | approved | rejected.
    Legacy schema:  'Pending Confirmation' | 'Submitted' | 'Rejected' | 'Overdue' plus a `confirmed` flag.
    A legacy record counts as approved only once it is confirmed; 'Overdue' is a derived
    display label, not a review outcome.
    """
    status_text = "" if _is_missing(status) else str(status).strip()
    lowered = status_text.lower()
    if lowered == ReviewState.REJECTED.value:
        return ReviewState.REJECTED.value
    if lowered == ReviewState.APPROVED.value or _to_bool(confirmed):
        return ReviewState.APPROVED.value
    if status_text and status_text not in app_config.LEGACY_STATUS_VALUES and lowered not in app_config.CURRENT_STATUS_VALUES:
        logger.warning(f"Unrecognized submission status '{status_text}'; treating as pending review.")
    return ReviewState.PENDING.value


def _extract_case_count(data_value: Any) -> int:
    if isinstance(data_value, Mapping):
        cases = data_value.get('cases')
        if isinstance(cases, (int, float, np.integer, np.floating)) and not isinstance(cases, bool) and not np.isnan(cases):
            return int(cases)
    return 0


def _clean_text(series: pd.Series) -> pd.Series:
    cleaned = series.astype(object).where(series.notna(), None)
    return cleaned.map(lambda v: None if _is_missing(v) else str(v).strip())


# --- II. Submissions ---
def empty_submissions_df() -> pd.DataFrame:
    """Empty frame with the full normalized submission schema."""
    df = pd.DataFrame({col: pd.Series(dtype=object) for col in SUBMISSION_COLUMNS})
    for col in ['timestamp', 'submission_date']:
        df[col] = pd.Series(dtype='datetime64[ns]')
    for col in ['morbidity_week', 'submission_month', 'submission_year']:
        df[col] = pd.Series(dtype='Int64')
    for col in ['confirmed', 'is_zero_case', 'has_deletion_request']:
        df[col] = pd.Series(dtype=bool)
    df['case_count'] = pd.Series(dtype='int64')
    return df


def prepare_submissions_df(raw_df: pd.DataFrame, source_context: str = "ComplianceCore") -> pd.DataFrame:
    """
    Normalizes a raw submissions frame (store field names or snake_case) to the
    canonical schema. Rows with unreadable dates keep NaT and are skipped later by
    every date-based calculation; rows with no facility or no program are dropped.
    """
    if not isinstance(raw_df, pd.DataFrame):
        logger.error(f"({source_context}) prepare_submissions_df expects a DataFrame, got {type(raw_df)}.")
        return empty_submissions_df()
    if raw_df.empty:
        return empty_submissions_df()

    df = raw_df.rename(columns=SUBMISSION_FIELD_MAP).copy()
    df = _clean_column_names(df)

    # A missing client date falls back to the server timestamp; an unreadable one stays NaT.
    raw_submission_dates = df['submission_date'] if 'submission_date' in df.columns else pd.Series([None] * len(df), index=df.index)
    df['timestamp'] = df['timestamp'].map(coerce_timestamp) if 'timestamp' in df.columns else pd.NaT
    df['timestamp'] = pd.to_datetime(df['timestamp'], errors='coerce')
    parsed_dates = pd.to_datetime(raw_submission_dates.map(coerce_timestamp), errors='coerce')
    date_absent = raw_submission_dates.map(_is_missing).astype(bool)
    df['submission_date'] = parsed_dates.where(~date_absent, df['timestamp'])

    malformed = int((~date_absent & parsed_dates.isna()).sum())
    if malformed:
        logger.warning(f"({source_context}) {malformed} submission(s) have unreadable submission dates; excluded from date-based calculations.")

    for col in ['morbidity_week', 'submission_month', 'submission_year']:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors='coerce').round().astype('Int64')
        else:
            df[col] = pd.Series([pd.NA] * len(df), index=df.index, dtype='Int64')

    string_like_cols = ['submission_id', 'facility_id', 'facility_name', 'program_id', 'program_name',
                        'batch_id', 'disease_name', 'status', 'rejection_reason', 'file_url', 'file_name']
    for col in string_like_cols:
        if col in df.columns:
            df[col] = _clean_text(df[col])
        else:
            df[col] = None

    known_diseases = {d.lower() for d in app_config.PIDSR_DISEASES}
    unknown_diseases = df['disease_name'].dropna().loc[lambda s: ~s.str.lower().isin(known_diseases)].unique()
    if len(unknown_diseases):
        logger.warning(f"({source_context}) Unrecognized disease names in sub-reports: {sorted(unknown_diseases)}.")

    df['confirmed'] = df['confirmed'].map(_to_bool) if 'confirmed' in df.columns else False
    df['is_zero_case'] = df['is_zero_case'].map(_to_bool) if 'is_zero_case' in df.columns else False
    df['has_deletion_request'] = (
        df['deletion_request'].map(lambda v: not _is_missing(v) and bool(v)) if 'deletion_request' in df.columns else False
    )
    df['case_count'] = df['data'].map(_extract_case_count) if 'data' in df.columns else 0
    df['case_count'] = _convert_to_numeric(df['case_count'], 0).astype('int64')

    df['review_status'] = [normalize_review_status(s, c) for s, c in zip(df['status'], df['confirmed'])]
    df['confirmed'] = (df['review_status'] == ReviewState.APPROVED.value).astype(bool)
    df['is_zero_case'] = df['is_zero_case'].astype(bool)
    df['has_deletion_request'] = df['has_deletion_request'].astype(bool)

    orphaned = (df['facility_id'].isna() & df['facility_name'].isna()) | (df['program_id'].isna() & df['program_name'].isna())
    if orphaned.any():
        logger.warning(f"({source_context}) Dropping {int(orphaned.sum())} submission(s) without a facility or program reference.")
        df = df[~orphaned]

    extra_cols = [c for c in df.columns if c not in SUBMISSION_COLUMNS and c not in ('deletion_request', 'data')]
    df = df[SUBMISSION_COLUMNS + extra_cols].reset_index(drop=True)
    logger.debug(f"({source_context}) Prepared {len(df)} submission records.")
    return df


def load_submission_records(records: Optional[Iterable[Mapping[str, Any]]], source_context: str = "ComplianceCore") -> pd.DataFrame:
    """Builds the normalized submissions DataFrame from store documents."""
    record_list = list(records) if records is not None else []
    if not record_list:
        logger.info(f"({source_context}) No submission records supplied.")
        return empty_submissions_df()
    return prepare_submissions_df(pd.DataFrame.from_records(record_list), source_context=source_context)


def load_submissions_csv(file_path: str, source_context: str = "ComplianceCore") -> pd.DataFrame:
    """Loads a submissions export (CSV) and normalizes it. Returns an empty frame on failure."""
    logger.info(f"({source_context}) Attempting to load submissions from: {file_path}")
    if not os.path.exists(file_path):
        logger.error(f"({source_context}) Submissions file not found: {file_path}")
        return empty_submissions_df()
    try:
        raw_df = pd.read_csv(file_path, low_memory=False)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        logger.error(f"({source_context}) Could not read submissions from {file_path}: {e}")
        return empty_submissions_df()
    logger.info(f"({source_context}) Loaded {len(raw_df)} raw submission rows from {file_path}.")
    return prepare_submissions_df(raw_df, source_context=source_context)


# --- III. Programs, Facilities, Users ---
def _infer_composite_group_key(program_name: Optional[str]) -> Optional[str]:
    name_upper = (program_name or "").upper()
    for marker in app_config.COMPOSITE_PROGRAM_MARKERS:
        if marker.upper() in name_upper:
            return marker
    return None


@dataclass(frozen=True)
class Program:
    id: str
    name: str
    frequency: str = "Monthly"
    report_types: Tuple[str, ...] = ()
    active: bool = True
    period_type: str = app_config.DEFAULT_PERIOD_TYPE
    composite_group_key: Optional[str] = None

    @property
    def is_composite(self) -> bool:
        return bool(self.composite_group_key)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Program":
        """Builds a Program from a store document. Legacy documents get period type and composite key inferred here, once."""
        name = str(record.get('name') or "").strip()
        frequency = str(record.get('frequency') or app_config.DEFAULT_PERIOD_TYPE).strip()
        composite_key = record.get('compositeGroupKey', record.get('composite_group_key'))
        if _is_missing(composite_key):
            composite_key = _infer_composite_group_key(name)

        period_type = record.get('periodType', record.get('period_type'))
        if _is_missing(period_type):
            if composite_key:
                period_type = app_config.COMPOSITE_PROGRAM_PERIOD_TYPE
            elif frequency in app_config.PROGRAM_FREQUENCIES:
                period_type = frequency
            else:
                period_type = app_config.DEFAULT_PERIOD_TYPE

        report_types = record.get('reportTypes', record.get('report_types')) or ()
        active = record.get('active', True)
        return cls(
            id=str(record.get('id') or "").strip(),
            name=name,
            frequency=frequency,
            report_types=tuple(report_types),
            active=True if active is None else _to_bool(active),
            period_type=str(period_type),
            composite_group_key=composite_key,
        )


@dataclass(frozen=True)
class Facility:
    id: str
    name: str
    type: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Facility":
        facility_type = record.get('type')
        return cls(
            id=str(record.get('id') or "").strip(),
            name=str(record.get('name') or "").strip(),
            type=None if _is_missing(facility_type) else str(facility_type).strip(),
        )


@dataclass(frozen=True)
class User:
    id: str
    role: Optional[str] = None
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    assigned_programs: Tuple[str, ...] = ()
    name: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "User":
        def _opt(key: str) -> Optional[str]:
            value = record.get(key)
            return None if _is_missing(value) else str(value).strip()

        return cls(
            id=str(record.get('id') or record.get('uid') or "").strip(),
            role=_opt('role'),
            facility_id=_opt('facilityId'),
            facility_name=_opt('facilityName'),
            assigned_programs=tuple(str(p) for p in (record.get('assignedPrograms') or ())),
            name=_opt('name'),
        )


ProgramLike = Union[Program, Mapping[str, Any]]
FacilityLike = Union[Facility, Mapping[str, Any]]
UserLike = Union[User, Mapping[str, Any]]


def as_program(program: ProgramLike) -> Program:
    return program if isinstance(program, Program) else Program.from_record(program)


def as_facility(facility: FacilityLike) -> Facility:
    return facility if isinstance(facility, Facility) else Facility.from_record(facility)


def as_user(user: UserLike) -> User:
    return user if isinstance(user, User) else User.from_record(user)


def load_programs(records: Optional[Iterable[ProgramLike]]) -> List[Program]:
    return [as_program(r) for r in (records or [])]


def load_facilities(records: Optional[Iterable[FacilityLike]]) -> List[Facility]:
    return [as_facility(r) for r in (records or [])]


def load_users(records: Optional[Iterable[UserLike]]) -> List[User]:
    return [as_user(r) for r in (records or [])]


# --- IV. Matching ---
def user_belongs_to_facility(user: User, facility: Facility) -> bool:
    if user.facility_id and facility.id:
        return user.facility_id == facility.id
    return bool(user.facility_name) and user.facility_name == facility.name


def facility_mask(submissions_df: pd.DataFrame, facility: Facility) -> pd.Series:
    """Rows belonging to `facility`, matched by id or by name."""
    by_id = submissions_df['facility_id'].eq(facility.id) if facility.id else False
    by_name = submissions_df['facility_name'].eq(facility.name) if facility.name else False
    return pd.Series(by_id | by_name, index=submissions_df.index, dtype=bool)


def program_mask(submissions_df: pd.DataFrame, program: Program) -> pd.Series:
    """Rows belonging to `program`: same id, same name, or filed under its composite group key."""
    mask = pd.Series(False, index=submissions_df.index)
    if program.id:
        mask |= submissions_df['program_id'].eq(program.id)
    if program.name:
        mask |= submissions_df['program_name'].eq(program.name)
    if program.composite_group_key:
        mask |= submissions_df['program_id'].eq(program.composite_group_key)
    return mask.fillna(False).astype(bool)


def facility_lookup(facilities: Iterable[Facility]) -> Dict[str, Facility]:
    """Facilities keyed by both id and name, for resolving user references."""
    lookup: Dict[str, Facility] = {}
    for facility in facilities:
        if facility.name:
            lookup.setdefault(f"name:{facility.name}", facility)
        if facility.id:
            lookup[f"id:{facility.id}"] = facility
    return lookup


def resolve_user_facility(user: User, lookup: Mapping[str, Facility]) -> Optional[Facility]:
    if user.facility_id and f"id:{user.facility_id}" in lookup:
        return lookup[f"id:{user.facility_id}"]
    if user.facility_name and f"name:{user.facility_name}" in lookup:
        return lookup[f"name:{user.facility_name}"]
    return None
