# config/app_config.py
# PHO Surveillance Reporting Portal - compliance core configuration

import os

# --- I. Core System Configuration ---
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

APP_NAME = "PHO Surveillance Reporting Portal"
APP_VERSION = "1.4.0"
ORGANIZATION_NAME = "Provincial Health Office"

# Local wall clock used for "today" and for truncating tz-aware timestamps to midnight.
# Facilities and the PHO share one timezone; override per deployment.
REPORTING_TIMEZONE = os.getenv("SURVEILLANCE_TIMEZONE", "Asia/Manila")

# --- II. Programs & Reporting Frequencies ---
PROGRAM_FREQUENCIES = ["Weekly", "Monthly", "Quarterly", "Annually"]

# Allowed staleness (days) of the latest confirmed submission before a program turns Overdue.
DEADLINE_DAYS_BY_FREQUENCY = {
    "Weekly": 7,
    "Monthly": 30,
    "Quarterly": 90,
}
DEFAULT_DEADLINE_DAYS = 30 # Anything not listed above, including "Annually"

# Period used to decide whether a program was reported "this period".
# Programs without an explicit period type fall back to their frequency.
DEFAULT_PERIOD_TYPE = "Monthly"

# Composite programs: one upload session holds many per-disease sub-reports.
# Legacy program records without a composite key get one inferred from these markers at load time.
COMPOSITE_PROGRAM_MARKERS = ["PIDSR"]
COMPOSITE_PROGRAM_PERIOD_TYPE = "Weekly"

PIDSR_DISEASES = [
    "Acute bloody diarrhea", "Acute flaccid paralysis", "Acute meningitis encephalitis",
    "Acute viral hepatitis", "Chikungunya viral disease", "Cholera", "Dengue", "Diphtheria",
    "Hand, foot & mouth disease", "Influenza like illness", "Leptospirosis", "Measles",
    "Meningococcal disease", "Neonatal tetanus", "Non-neonatal tetanus", "Pertussis",
    "Rabies", "Rotavirus", "Severe acute respiratory infection", "Typhoid and paratyphoid fever",
]

# --- III. Report Generation ---
REPORT_TYPES = ["Weekly Summary", "Monthly Summary", "Quarterly Summary", "Annual Summary"]
# Older program records and UI selections used these labels.
REPORT_TYPE_ALIASES = {
    "morbidity week": "Weekly Summary",
    "weeklysummary": "Weekly Summary",
    "weekly": "Weekly Summary",
    "morbidity month": "Monthly Summary",
    "monthlysummary": "Monthly Summary",
    "monthly": "Monthly Summary",
    "quarterly": "Quarterly Summary",
    "quarterlysummary": "Quarterly Summary",
    "annual": "Annual Summary",
    "annually": "Annual Summary",
    "annualsummary": "Annual Summary",
    "morbidity year": "Annual Summary",
}
DEFAULT_REPORT_PROGRAM_LABEL = "Surveillance"
DEFAULT_RECENT_WEEKS_COUNT = 52
MIN_REPORT_YEAR = 1900
MAX_REPORT_YEAR = 2200 # pandas Timestamps end in 2262

# --- IV. Users, Roles & Facilities ---
REPORTING_USER_ROLES = ["Facility User"] # Roles whose assigned programs make a facility "required"
PHO_FACILITY_NAME = "Provincial Health Office" # Never counted as a reporting facility
UNCATEGORIZED_FACILITY_TYPE = "Uncategorized"

# --- V. Submission Status Vocabularies ---
# Canonical review states. Everything ingested is mapped onto these.
REVIEW_STATE_PENDING = "pending"
REVIEW_STATE_APPROVED = "approved"
REVIEW_STATE_REJECTED = "rejected"

# Older documents carry display labels plus a separate `confirmed` flag.
LEGACY_STATUS_VALUES = ["Pending Confirmation", "Submitted", "Rejected", "Overdue"]
CURRENT_STATUS_VALUES = ["pending", "approved", "rejected"]

COMMON_NA_VALUES = ['', 'nan', 'None', 'N/A', '#N/A', 'null', 'NaT']

# --- VI. Logging ---
LOG_LEVEL = os.getenv("SURVEILLANCE_LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# --- End of Configuration ---
