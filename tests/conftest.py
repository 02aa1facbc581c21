# tests/conftest.py
# Shared fixtures for the compliance core tests.
# Reference "today" is Wednesday 2024-06-12 12:00, i.e. Morbidity Week 24 of 2024 (June 9-15).

import pytest
import pandas as pd

from config import app_config
from compliance.log_setup import configure_logging
from compliance.submission_records import (
    load_facilities,
    load_programs,
    load_submission_records,
    load_users,
)

configure_logging("DEBUG")


@pytest.fixture(autouse=True)
def manila_timezone(monkeypatch):
    # Keep results independent of SURVEILLANCE_TIMEZONE in the test environment.
    monkeypatch.setattr(app_config, "REPORTING_TIMEZONE", "Asia/Manila")


@pytest.fixture(scope="session")
def today():
    return pd.Timestamp("2024-06-12 12:00")


@pytest.fixture(scope="session")
def sample_facility_records():
    return [
        {'id': 'fac-1', 'name': 'Bacolod RHU', 'type': 'RHU'},
        {'id': 'fac-2', 'name': 'Silay District Hospital', 'type': 'Hospital'},
        {'id': 'fac-3', 'name': 'Talisay RHU', 'type': 'RHU'},
        {'id': 'fac-4', 'name': 'Himamaylan Clinic', 'type': None},
        {'id': 'fac-5', 'name': 'Valladolid RHU', 'type': 'RHU'},
        {'id': 'fac-pho', 'name': 'Provincial Health Office', 'type': 'PHO'},
    ]


@pytest.fixture(scope="session")
def sample_program_records():
    return [
        {'id': 'prog-tb', 'name': 'TB DOTS', 'frequency': 'Monthly',
         'reportTypes': ['Monthly Summary', 'Annual Summary'], 'active': True},
        {'id': 'prog-pidsr', 'name': 'PIDSR', 'frequency': 'Weekly',
         'reportTypes': ['Weekly Summary'], 'active': True},
        {'id': 'prog-epi', 'name': 'EPI Immunization', 'frequency': 'Quarterly',
         'reportTypes': ['Quarterly Summary'], 'active': True},
        {'id': 'prog-old', 'name': 'Leprosy Control', 'frequency': 'Monthly', 'active': False},
    ]


@pytest.fixture(scope="session")
def sample_user_records():
    return [
        {'id': 'u1', 'role': 'Facility User', 'facilityId': 'fac-1', 'facilityName': 'Bacolod RHU',
         'assignedPrograms': ['prog-tb', 'prog-pidsr']},
        # Second user of the same facility: must not double count fac-1
        {'id': 'u2', 'role': 'Facility User', 'facilityId': 'fac-1', 'facilityName': 'Bacolod RHU',
         'assignedPrograms': ['prog-tb']},
        {'id': 'u3', 'role': 'Facility User', 'facilityId': 'fac-2', 'facilityName': 'Silay District Hospital',
         'assignedPrograms': ['prog-tb', 'prog-epi']},
        {'id': 'u4', 'role': 'Facility User', 'facilityId': 'fac-3', 'facilityName': 'Talisay RHU',
         'assignedPrograms': ['prog-tb', 'prog-pidsr']},
        {'id': 'u5', 'role': 'PHO Admin', 'facilityId': 'fac-pho', 'facilityName': 'Provincial Health Office',
         'assignedPrograms': ['prog-tb', 'prog-pidsr', 'prog-epi']},
        {'id': 'u6', 'role': 'Facility User', 'facilityId': 'fac-pho', 'facilityName': 'Provincial Health Office',
         'assignedPrograms': ['prog-tb']},
        {'id': 'u7', 'role': 'Facility User', 'facilityId': 'fac-99', 'facilityName': 'Unknown Health Center',
         'assignedPrograms': ['prog-tb']},
        {'id': 'u8', 'role': 'Facility User', 'facilityId': 'fac-5', 'facilityName': 'Valladolid RHU',
         'assignedPrograms': ['prog-old']},
    ]


@pytest.fixture(scope="session")
def sample_submission_records():
    return [
        {'id': 's1', 'facilityId': 'fac-1', 'facilityName': 'Bacolod RHU', 'programId': 'prog-tb',
         'programName': 'TB DOTS', 'status': 'approved', 'submissionDate': '2024-06-03',
         'timestamp': '2024-06-03T09:00:00', 'submissionMonth': 6, 'submissionYear': 2024,
         'data': {'cases': 4}},
        {'id': 's2', 'batchId': 'pidsr-fac-1-1718006700000', 'facilityId': 'fac-1', 'facilityName': 'Bacolod RHU',
         'programId': 'PIDSR', 'programName': 'PIDSR Program', 'diseaseName': 'Dengue', 'status': 'approved',
         'timestamp': '2024-06-10T08:05:00', 'morbidityWeek': 24, 'submissionMonth': 6, 'submissionYear': 2024,
         'isZeroCase': False, 'data': {'cases': 2}},
        {'id': 's3', 'batchId': 'pidsr-fac-1-1718006700000', 'facilityId': 'fac-1', 'facilityName': 'Bacolod RHU',
         'programId': 'PIDSR', 'programName': 'PIDSR Program', 'diseaseName': 'Measles', 'status': 'pending',
         'timestamp': '2024-06-10T08:00:00', 'morbidityWeek': 24, 'submissionMonth': 6, 'submissionYear': 2024,
         'isZeroCase': True, 'fileName': 'Zero Case Report'},
        # Legacy schema: display status plus confirmed flag, no period fields
        {'id': 's4', 'facilityId': 'fac-2', 'facilityName': 'Silay District Hospital', 'programId': 'prog-tb',
         'programName': 'TB DOTS', 'status': 'Submitted', 'confirmed': True, 'submissionDate': '2024-04-20',
         'timestamp': '2024-04-20T10:00:00', 'data': {'cases': 7}},
        {'id': 's5', 'facilityId': 'fac-2', 'facilityName': 'Silay District Hospital', 'programId': 'prog-epi',
         'programName': 'EPI Immunization', 'status': 'Pending Confirmation', 'confirmed': False,
         'submissionDate': '2024-06-01', 'timestamp': '2024-06-01T10:00:00',
         'fileURL': 'https://files.example.org/epi-q2.xlsx', 'fileName': 'epi-q2.xlsx'},
        {'id': 's6', 'facilityId': 'fac-3', 'facilityName': 'Talisay RHU', 'programId': 'prog-tb',
         'programName': 'TB DOTS', 'status': 'rejected', 'submissionDate': '2024-06-05',
         'timestamp': '2024-06-05T11:00:00', 'submissionMonth': 6, 'submissionYear': 2024,
         'rejectionReason': 'Wrong template'},
        {'id': 's7', 'facilityId': 'fac-3', 'facilityName': 'Talisay RHU', 'programId': 'prog-tb',
         'programName': 'TB DOTS', 'status': 'approved', 'submissionDate': '2024-05-02',
         'timestamp': '2024-05-02T11:00:00', 'submissionMonth': 5, 'submissionYear': 2024,
         'data': {'cases': 3}},
        {'id': 's8', 'batchId': 'pidsr-fac-3-1717400000000', 'facilityId': 'fac-3', 'facilityName': 'Talisay RHU',
         'programId': 'PIDSR', 'programName': 'PIDSR Program', 'diseaseName': 'Dengue', 'status': 'approved',
         'timestamp': '2024-06-03T07:30:00', 'morbidityWeek': 23, 'submissionMonth': 6, 'submissionYear': 2024,
         'data': {'cases': 1}},
        # Unreadable client date; valid server timestamp; flagged for deletion
        {'id': 's9', 'facilityId': 'fac-1', 'facilityName': 'Bacolod RHU', 'programId': 'prog-tb',
         'programName': 'TB DOTS', 'status': 'approved', 'submissionDate': 'not-a-date',
         'timestamp': '2024-06-04T10:00:00', 'data': {'cases': 1},
         'deletionRequest': {'requestedBy': 'u1', 'reason': 'Duplicate upload'}},
    ]


@pytest.fixture(scope="session")
def sample_submissions_df(sample_submission_records):
    return load_submission_records(sample_submission_records, source_context="Tests")


@pytest.fixture(scope="session")
def sample_programs(sample_program_records):
    return {p.id: p for p in load_programs(sample_program_records)}


@pytest.fixture(scope="session")
def sample_facilities(sample_facility_records):
    return {f.id: f for f in load_facilities(sample_facility_records)}


@pytest.fixture(scope="session")
def sample_users(sample_user_records):
    return load_users(sample_user_records)


@pytest.fixture
def make_submissions():
    """Factory: builds a normalized submissions frame from a few store-shaped dicts."""
    def _make(*records):
        return load_submission_records(list(records), source_context="Tests")
    return _make
