# compliance/compliance_rules.py
# PHO Surveillance Reporting Portal - per-program compliance classification
# Classifies one (facility, program) pairing from its most recent submission.
# Pure: the only inputs are the submission history, the program's frequency and "today".

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import pandas as pd

from config import app_config
from compliance.morbidity_week import local_now
from compliance.submission_records import (
    FacilityLike,
    ProgramLike,
    ReviewState,
    as_facility,
    as_program,
    coerce_timestamp,
    facility_mask,
    program_mask,
)

logger = logging.getLogger(__name__)


class ComplianceStatus(str, Enum):
    PENDING = "Pending"
    REJECTED = "Rejected"
    PENDING_CONFIRMATION = "Pending Confirmation"
    SUBMITTED = "Submitted"
    OVERDUE = "Overdue"
    # Facility roll-up only
    NO_USER = "No User"
    NOT_APPLICABLE = "N/A"


@dataclass(frozen=True)
class ProgramStatus:
    """Outcome of classifying one facility/program pair. Review details are filled for PENDING_CONFIRMATION."""
    status: ComplianceStatus
    submission_id: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    submission_date: Optional[pd.Timestamp] = None
    days_since_submission: Optional[int] = None

    @property
    def is_actionable(self) -> bool:
        return self.status is ComplianceStatus.PENDING_CONFIRMATION


def deadline_days_for(frequency: Optional[str]) -> int:
    """Allowed age in days of the latest confirmed submission for a program frequency."""
    return app_config.DEADLINE_DAYS_BY_FREQUENCY.get(frequency, app_config.DEFAULT_DEADLINE_DAYS)


def resolve_today(today: Any = None) -> pd.Timestamp:
    """`today` as a naive local Timestamp; the wall clock when None."""
    if today is None:
        return local_now()
    resolved = coerce_timestamp(today)
    if pd.isna(resolved):
        raise ValueError(f"Cannot interpret today={today!r} as a date.")
    return resolved


def days_since(submission_date: pd.Timestamp, today: pd.Timestamp) -> int:
    """Whole days elapsed, fractions truncated."""
    return int((today - submission_date) / pd.Timedelta(days=1))


def latest_submission(
    facility: FacilityLike,
    program: ProgramLike,
    submissions_df: pd.DataFrame,
    source_context: str = "ComplianceCore"
) -> Optional[pd.Series]:
    """
    Most recent submission (by submission_date) for a facility/program pair, or None.
    Rows without a readable submission_date never win.
    """
    if not isinstance(submissions_df, pd.DataFrame) or submissions_df.empty:
        return None
    facility, program = as_facility(facility), as_program(program)

    pair_df = submissions_df[facility_mask(submissions_df, facility) & program_mask(submissions_df, program)]
    pair_df = pair_df[pair_df['submission_date'].notna()]
    if pair_df.empty:
        logger.debug(f"({source_context}) No dated submissions for facility '{facility.name}' / program '{program.name}'.")
        return None
    # Stable sort keeps store order among equal dates.
    return pair_df.sort_values('submission_date', ascending=False, kind='mergesort').iloc[0]


def get_status_for_program(
    facility: FacilityLike,
    program: ProgramLike,
    submissions_df: pd.DataFrame,
    today: Any = None,
    source_context: str = "ComplianceCore"
) -> ProgramStatus:
    """
    Compliance status of one facility for one program.

    1. No submission               -> PENDING
    2. Latest submission rejected  -> REJECTED
    3. Latest not yet approved     -> PENDING_CONFIRMATION (carries the submission for review)
    4. Approved: SUBMITTED while its age is within the frequency deadline, else OVERDUE.
    """
    program = as_program(program)
    last = latest_submission(facility, program, submissions_df, source_context=source_context)
    if last is None:
        return ProgramStatus(status=ComplianceStatus.PENDING)

    if last['review_status'] == ReviewState.REJECTED.value:
        return ProgramStatus(status=ComplianceStatus.REJECTED, submission_id=last['submission_id'],
                             submission_date=last['submission_date'])

    if last['review_status'] != ReviewState.APPROVED.value:
        return ProgramStatus(
            status=ComplianceStatus.PENDING_CONFIRMATION,
            submission_id=last['submission_id'],
            file_url=last['file_url'],
            file_name=last['file_name'],
            submission_date=last['submission_date'],
        )

    elapsed_days = days_since(last['submission_date'], resolve_today(today))
    status = ComplianceStatus.SUBMITTED if elapsed_days <= deadline_days_for(program.frequency) else ComplianceStatus.OVERDUE
    return ProgramStatus(status=status, submission_id=last['submission_id'],
                         submission_date=last['submission_date'], days_since_submission=elapsed_days)


def get_pending_review_queue(submissions_df: pd.DataFrame, source_context: str = "ComplianceCore") -> pd.DataFrame:
    """Submissions awaiting PHO review (neither approved nor rejected), newest first."""
    if not isinstance(submissions_df, pd.DataFrame) or submissions_df.empty:
        logger.debug(f"({source_context}) Review queue: no submissions supplied.")
        return submissions_df.iloc[0:0] if isinstance(submissions_df, pd.DataFrame) else pd.DataFrame()
    queue = submissions_df[submissions_df['review_status'] == ReviewState.PENDING.value]
    return queue.sort_values('timestamp', ascending=False, kind='mergesort', na_position='last')
