"""Tests for lazy, idempotent reminder generation."""

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timezone
from unittest.mock import patch

from adherence_tracker.generator import ReminderGenerator
from adherence_tracker.reminders.database import get_connection
from adherence_tracker.reminders.database.prescription_repository import ScheduleType
from adherence_tracker.timezone_window import day_bounds

DAY = date(2025, 12, 5)


def row_count(prescription_id):
    conn = get_connection()
    total = conn.execute(
        "SELECT COUNT(*) FROM medication_reminders WHERE prescription_id = ?", (prescription_id,)
    ).fetchone()[0]
    conn.close()
    return total


class TestEnsureRemindersForDate:
    def test_creates_one_per_occurrence(self, add_prescription, prescriptions, reminders):
        created = add_prescription(schedule_type=ScheduleType.INTERVAL, local_time=time(6, 0), interval_hours=8)
        generator = ReminderGenerator(prescriptions, reminders)

        assert generator.ensure_reminders_for_date(DAY) == 3
        assert row_count(created.id) == 3

    def test_second_call_creates_nothing(self, add_prescription, prescriptions, reminders):
        created = add_prescription()
        generator = ReminderGenerator(prescriptions, reminders)

        assert generator.ensure_reminders_for_date(DAY) == 1
        assert generator.ensure_reminders_for_date(DAY) == 0
        assert row_count(created.id) == 1

    def test_concurrent_calls_converge(self, add_prescription, prescriptions, reminders):
        first = add_prescription(medication="A")
        second = add_prescription(medication="B", schedule_type=ScheduleType.INTERVAL, interval_hours=6)
        generator = ReminderGenerator(prescriptions, reminders)

        with ThreadPoolExecutor(max_workers=4) as pool:
            totals = list(pool.map(lambda _: generator.ensure_reminders_for_date(DAY), range(6)))

        assert sum(totals) == 1 + 4
        assert row_count(first.id) == 1
        assert row_count(second.id) == 4

    def test_scoped_to_patient(self, add_prescription, prescriptions, reminders):
        mine = add_prescription(patient_id="p-001")
        theirs = add_prescription(patient_id="p-002")

        ReminderGenerator(prescriptions, reminders).ensure_reminders_for_date(DAY, "p-001")

        assert row_count(mine.id) == 1
        assert row_count(theirs.id) == 0

    def test_skips_inactive_and_out_of_window(self, add_prescription, prescriptions, reminders):
        ended = add_prescription(medication="A", end_date=date(2025, 12, 4))
        future = add_prescription(medication="B", start_date=date(2025, 12, 6))
        deleted = add_prescription(medication="C")
        prescriptions.soft_delete(deleted.id, datetime(2025, 12, 2, tzinfo=timezone.utc))

        assert ReminderGenerator(prescriptions, reminders).ensure_reminders_for_date(DAY) == 0
        assert row_count(ended.id) == row_count(future.id) == row_count(deleted.id) == 0

    def test_generated_reminders_fall_in_day_window(self, add_prescription, prescriptions, reminders):
        add_prescription(local_time=time(0, 15))
        add_prescription(local_time=time(23, 45), medication="B")

        ReminderGenerator(prescriptions, reminders).ensure_reminders_for_date(DAY)

        start, end = day_bounds(DAY)
        found = reminders.list_in_window("p-test", start, end)
        assert len(found) == 2
        assert all(start <= r.scheduled_for <= end for r in found)

    def test_one_bad_prescription_does_not_block_others(self, add_prescription, prescriptions, reminders, caplog):
        broken = add_prescription(medication="A", schedule_type=ScheduleType.WEEKLY, days_of_week=[5])
        healthy = add_prescription(medication="B")
        # Corrupt the stored rule so it fails validation on expansion
        conn = get_connection()
        conn.execute("UPDATE medication_schedules SET days_of_week = NULL WHERE prescription_id = ?", (broken.id,))
        conn.commit()
        conn.close()

        with caplog.at_level(logging.ERROR, logger="adherence_tracker.generator"):
            created = ReminderGenerator(prescriptions, reminders).ensure_reminders_for_date(DAY)

        assert created == 1
        assert row_count(healthy.id) == 1
        assert row_count(broken.id) == 0
        assert broken.id in caplog.text

    def test_repository_failure_is_isolated(self, add_prescription, prescriptions, reminders):
        failing = add_prescription(medication="A")
        healthy = add_prescription(medication="B")
        find_schedules = prescriptions.find_schedules

        def flaky(prescription_id, active_only=True):
            if prescription_id == failing.id:
                raise sqlite3.OperationalError("disk I/O error")
            return find_schedules(prescription_id, active_only)

        with patch.object(prescriptions, "find_schedules", side_effect=flaky):
            created = ReminderGenerator(prescriptions, reminders).ensure_reminders_for_date(DAY)

        assert created == 1
        assert row_count(healthy.id) == 1


class TestEnsureRemindersForRange:
    def test_range_includes_both_ends(self, add_prescription, prescriptions, reminders):
        created = add_prescription()

        total = ReminderGenerator(prescriptions, reminders).ensure_reminders_for_range(DAY, 3)

        assert total == 4
        assert row_count(created.id) == 4
