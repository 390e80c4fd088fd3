"""Seed the database with mock prescriptions, schedules and a week of reminder history."""

from datetime import date, datetime, time, timedelta, timezone

from adherence_tracker.generator import ReminderGenerator
from adherence_tracker.reminders.database import PrescriptionRepository, ReminderRepository, init_database
from adherence_tracker.reminders.database.prescription_repository import (
    MedicationSchedule,
    Prescription,
    ScheduleType,
)
from adherence_tracker.service import ReminderService
from adherence_tracker.state_machine import PENDING_STATUSES
from adherence_tracker.timezone_window import combine_local, day_bounds, today

# Reference day used to anchor scheduled_time values; only the time of day matters
ANCHOR = date(2025, 1, 6)

MOCK_MEDICATIONS = [
    # (prescription id, patient id, caregiver id, medication, dosage, custom dosage, instructions)
    ("rx-001", "p-001", "dr-001", "Metformin", "500 mg", None, "Take with meals"),
    ("rx-002", "p-001", "dr-001", "Lisinopril", "10 mg", None, "Morning, before breakfast"),
    ("rx-003", "p-001", "tu-001", "Vitamin D3", "1000 IU", "2000 IU", None),
    ("rx-004", "p-002", "dr-002", "Amoxicillin", "500 mg", None, "Finish the full course"),
    ("rx-005", "p-002", "dr-002", "Levothyroxine", "50 mcg", None, "Empty stomach"),
]

MOCK_SCHEDULES = [
    # (schedule id, prescription id, type, local time, days of week, interval hours)
    ("sch-001", "rx-001", ScheduleType.DAILY, time(8, 0), [], None),
    ("sch-002", "rx-001", ScheduleType.DAILY, time(20, 0), [], None),
    ("sch-003", "rx-002", ScheduleType.DAILY, time(7, 30), [], None),
    ("sch-004", "rx-003", ScheduleType.WEEKLY, time(9, 0), [1, 3, 5], None),
    ("sch-005", "rx-004", ScheduleType.INTERVAL, time(6, 0), [], 8),
    ("sch-006", "rx-005", ScheduleType.MONTHLY, time(7, 0), [], None),
]

HISTORY_DAYS = 7


def seed_database():
    """Initialize and seed the database with mock data."""
    print("Initializing database...")
    init_database()

    prescriptions = PrescriptionRepository()
    reminders = ReminderRepository()
    now = datetime.now(timezone.utc)
    start_date = today(now) - timedelta(days=HISTORY_DAYS)

    # Seed prescriptions
    print("Creating mock prescriptions...")
    for rx_id, patient_id, caregiver_id, name, dosage, custom_dosage, instructions in MOCK_MEDICATIONS:
        if prescriptions.get_by_id(rx_id):
            print(f"  Skipping {name} for {patient_id} (already exists)")
            continue
        medication = prescriptions.find_or_create_medication(name, dosage)
        prescriptions.create(
            Prescription(
                id=rx_id,
                patient_id=patient_id,
                medication_id=medication.id,
                prescribed_by=caregiver_id,
                start_date=start_date,
                custom_dosage=custom_dosage,
                instructions=instructions,
                is_chronic=name != "Amoxicillin",
            ),
            now=now,
        )
        print(f"  Created {name} for {patient_id}")

    # Seed schedules
    print("Creating schedules...")
    for schedule_id, rx_id, schedule_type, local_time, days, interval in MOCK_SCHEDULES:
        if any(s.id == schedule_id for s in prescriptions.find_schedules(rx_id, active_only=False)):
            print(f"  Skipping {schedule_id} (already exists)")
            continue
        prescriptions.add_schedule(
            MedicationSchedule(
                id=schedule_id,
                prescription_id=rx_id,
                schedule_type=schedule_type,
                scheduled_time=combine_local(start_date if schedule_type != ScheduleType.MONTHLY else ANCHOR, local_time),
                days_of_week=days,
                interval_hours=interval,
            )
        )
        print(f"  Created {schedule_type.value} schedule {schedule_id}")

    # Materialize history and record most past doses as taken
    print("Generating reminders...")
    created = ReminderGenerator(prescriptions, reminders).ensure_reminders_for_range(start_date, HISTORY_DAYS, now=now)

    service = ReminderService(prescriptions, reminders)
    history_start, _ = day_bounds(start_date)
    confirmed = 0
    for patient_id in sorted({row[1] for row in MOCK_MEDICATIONS}):
        past = reminders.list_in_window(patient_id, history_start, now - timedelta(hours=1))
        for index, reminder in enumerate(past):
            if index % 4 == 3 or reminder.status not in PENDING_STATUSES:
                continue
            service.confirm_reminder(patient_id, reminder.id, now=now)
            confirmed += 1

    print("\nDatabase seeded successfully!")
    print(f"  - {len(MOCK_MEDICATIONS)} prescriptions")
    print(f"  - {len(MOCK_SCHEDULES)} schedules")
    print(f"  - {created} reminders generated")
    print(f"  - {confirmed} reminders confirmed")


if __name__ == "__main__":
    seed_database()
