"""Shared pytest fixtures."""

from datetime import date, datetime, time, timezone

import pytest

from adherence_tracker import config
from adherence_tracker.reminders.database import connection, init_database
from adherence_tracker.reminders.database.prescription_repository import (
    MedicationSchedule,
    Prescription,
    PrescriptionRepository,
    ScheduleType,
)
from adherence_tracker.reminders.database.reminder_repository import ReminderRepository
from adherence_tracker.service import ReminderService
from adherence_tracker.timezone_window import combine_local

CREATED_AT = datetime(2025, 11, 30, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def temp_database(tmp_path, monkeypatch):
    """Point the repositories at a fresh SQLite file for every test."""
    db_path = tmp_path / "adherence_test.db"
    monkeypatch.setattr(connection, "DB_PATH", db_path)
    monkeypatch.setattr(config, "GRACE_PERIOD_MINUTES", 5)
    monkeypatch.setattr(config, "MISSED_AFTER_MINUTES", 120)
    init_database()
    yield db_path


@pytest.fixture
def prescriptions():
    return PrescriptionRepository()


@pytest.fixture
def reminders():
    return ReminderRepository()


@pytest.fixture
def service(prescriptions, reminders):
    return ReminderService(prescriptions, reminders)


@pytest.fixture
def add_prescription(prescriptions):
    """Create a prescription with one schedule; returns the prescription."""
    def _add(
        patient_id="p-test",
        schedule_type=ScheduleType.DAILY,
        local_time=time(8, 0),
        days_of_week=None,
        interval_hours=None,
        start_date=date(2025, 12, 1),
        end_date=None,
        medication="Metformin",
        prescribed_by="dr-test",
        anchor_date=None,
    ):
        medication_row = prescriptions.find_or_create_medication(medication, "500 mg")
        prescription = prescriptions.create(
            Prescription(
                id="",
                patient_id=patient_id,
                medication_id=medication_row.id,
                prescribed_by=prescribed_by,
                start_date=start_date,
                end_date=end_date,
            ),
            now=CREATED_AT,
        )
        prescriptions.add_schedule(
            MedicationSchedule(
                id="",
                prescription_id=prescription.id,
                schedule_type=schedule_type,
                scheduled_time=combine_local(anchor_date or start_date, local_time),
                days_of_week=days_of_week or [],
                interval_hours=interval_hours,
            )
        )
        return prescription

    return _add
