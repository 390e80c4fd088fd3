"""Tests for ReminderService patient and caregiver operations."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from adherence_tracker.errors import InvalidState, NotFound, ValidationFailure
from adherence_tracker.reminders.database.prescription_repository import ScheduleType
from adherence_tracker.state_machine import ConfirmationType, ReminderStatus


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


# Local 14:00 on 2025-12-05
SLOT = utc(2025, 12, 5, 13, 0)


@pytest.fixture
def afternoon_dose(add_prescription, service):
    """A daily 14:00 prescription and its reminder for 2025-12-05."""
    add_prescription(local_time=time(14, 0))
    day = service.get_medications_by_date("p-test", "2025-12-05", now=utc(2025, 12, 5, 8, 0))
    return day.medications[0]


class TestMedicationsByDate:
    def test_generates_on_first_read(self, add_prescription, service):
        add_prescription()

        day = service.get_medications_by_date("p-test", "2025-12-05", now=utc(2025, 12, 5, 6, 0))

        assert day.total == 1
        assert day.taken == 0
        assert day.adherence_rate == 0
        assert day.medications[0].scheduled_for == utc(2025, 12, 5, 7, 0)
        assert day.medications[0].status == "scheduled"
        assert day.medications[0].medication_name == "Metformin"

    def test_empty_day_rate_is_zero(self, service):
        day = service.get_medications_by_date("p-test", "2025-12-05", now=utc(2025, 12, 5, 6, 0))

        assert day.total == 0
        assert day.adherence_rate == 0

    def test_empty_day_is_fully_adherent_on_dashboard(self, service):
        dashboard = service.get_dashboard("p-test", now=utc(2025, 12, 5, 6, 0))

        assert dashboard.total_medications_today == 0
        assert dashboard.adherence_rate == 100

    def test_prescription_added_after_first_read_appears(self, add_prescription, service):
        add_prescription(medication="Morning")
        first = service.get_medications_by_date("p-test", "2025-12-05", now=utc(2025, 12, 5, 6, 0))
        add_prescription(medication="Evening", local_time=time(20, 0))

        second = service.get_medications_by_date("p-test", "2025-12-05", now=utc(2025, 12, 5, 6, 5))

        assert first.total == 1
        assert second.total == 2
        assert [m.medication_name for m in second.medications] == ["Morning", "Evening"]

    def test_old_unconfirmed_dose_reads_as_missed(self, afternoon_dose, service):
        day = service.get_medications_by_date("p-test", "2025-12-05", now=SLOT + timedelta(hours=3))

        assert day.medications[0].status == "missed"

    @pytest.mark.parametrize("value", ["05-12-2025", "2025/12/05", "2025-13-01"])
    def test_bad_date(self, service, value):
        with pytest.raises(ValidationFailure):
            service.get_medications_by_date("p-test", value)


class TestConfirm:
    def test_ten_minutes_early_is_rejected(self, afternoon_dose, service, reminders):
        with pytest.raises(InvalidState, match="more than 5 minutes early"):
            service.confirm_reminder("p-test", afternoon_dose.reminder_id, now=utc(2025, 12, 5, 12, 50))

        assert reminders.get_confirmations(afternoon_dose.reminder_id) == []

    def test_within_grace_is_accepted(self, afternoon_dose, service, reminders):
        confirmation = service.confirm_reminder("p-test", afternoon_dose.reminder_id, now=utc(2025, 12, 5, 12, 56))

        assert confirmation.confirmation_type == ConfirmationType.PATIENT
        assert confirmation.confirmed_by == "p-test"
        stored = reminders.get_by_id(afternoon_dose.reminder_id)
        assert stored.status == ReminderStatus.MANUAL_CONFIRM
        assert stored.confirmed_at == utc(2025, 12, 5, 12, 56)

    def test_reconfirm_is_rejected(self, afternoon_dose, service, reminders):
        service.confirm_reminder("p-test", afternoon_dose.reminder_id, now=SLOT)

        with pytest.raises(InvalidState, match="already been marked as taken"):
            service.confirm_reminder("p-test", afternoon_dose.reminder_id, now=SLOT + timedelta(minutes=1))

        assert len(reminders.get_confirmations(afternoon_dose.reminder_id)) == 1

    def test_other_patients_reminder_is_not_found(self, afternoon_dose, service):
        with pytest.raises(NotFound):
            service.confirm_reminder("p-other", afternoon_dose.reminder_id, now=SLOT)

    def test_caregiver_confirm(self, afternoon_dose, service, reminders):
        confirmation = service.caregiver_confirm("cg-001", "p-test", afternoon_dose.reminder_id, now=SLOT)

        assert confirmation.confirmation_type == ConfirmationType.TUTEUR_MANUAL
        assert confirmation.confirmed_by == "cg-001"
        assert reminders.get_by_id(afternoon_dose.reminder_id).status == ReminderStatus.MANUAL_CONFIRM

    def test_caregiver_is_held_to_grace_period(self, afternoon_dose, service):
        with pytest.raises(InvalidState):
            service.caregiver_confirm("cg-001", "p-test", afternoon_dose.reminder_id, now=SLOT - timedelta(hours=1))

    def test_batch_confirm_reports_each_outcome(self, afternoon_dose, service):
        results = service.confirm_reminders(
            "p-test", ["", afternoon_dose.reminder_id, "missing", afternoon_dose.reminder_id], now=SLOT
        )

        assert [r.reminder_id for r in results] == [afternoon_dose.reminder_id, "missing", afternoon_dose.reminder_id]
        assert results[0].success is True
        assert results[1].success is False
        assert results[1].error == "Reminder not found"
        assert results[2].success is False
        assert "already" in results[2].error

    def test_batch_confirm_accepts_single_id(self, afternoon_dose, service):
        results = service.confirm_reminders("p-test", afternoon_dose.reminder_id, now=SLOT)

        assert len(results) == 1 and results[0].success

    def test_batch_confirm_empty(self, service):
        assert service.confirm_reminders("p-test", [], now=SLOT) == []
        assert service.confirm_reminders("p-test", None, now=SLOT) == []


class TestSnooze:
    def test_snooze_keeps_original_slot(self, afternoon_dose, service, reminders):
        until = service.snooze_reminder("p-test", afternoon_dose.reminder_id, 15, now=SLOT)

        assert until == SLOT + timedelta(minutes=15)
        stored = reminders.get_by_id(afternoon_dose.reminder_id)
        assert stored.snoozed_until == until
        assert stored.scheduled_for == SLOT
        assert stored.status == ReminderStatus.SCHEDULED

    def test_snoozed_then_confirmed_counts_for_original_slot(self, afternoon_dose, service, reminders):
        service.snooze_reminder("p-test", afternoon_dose.reminder_id, 15, now=SLOT)
        service.confirm_reminder("p-test", afternoon_dose.reminder_id, now=SLOT + timedelta(minutes=20))

        stored = reminders.get_by_id(afternoon_dose.reminder_id)
        assert stored.scheduled_for == SLOT
        assert stored.confirmed_at == SLOT + timedelta(minutes=20)

        report = service.get_adherence_history("p-test", 30, now=SLOT + timedelta(hours=1))
        assert report.taken == 1
        assert report.rate == 100

    def test_snooze_resets_sent(self, afternoon_dose, service, reminders):
        assert service.mark_sent("p-test", afternoon_dose.reminder_id, now=SLOT) is True
        assert reminders.get_by_id(afternoon_dose.reminder_id).status == ReminderStatus.SENT

        service.snooze_reminder("p-test", afternoon_dose.reminder_id, 5, now=SLOT)

        assert reminders.get_by_id(afternoon_dose.reminder_id).status == ReminderStatus.SCHEDULED

    @pytest.mark.parametrize("minutes", [0, 61])
    def test_duration_bounds(self, afternoon_dose, service, minutes):
        with pytest.raises(ValidationFailure):
            service.snooze_reminder("p-test", afternoon_dose.reminder_id, minutes, now=SLOT)

    def test_cannot_snooze_taken_dose(self, afternoon_dose, service):
        service.confirm_reminder("p-test", afternoon_dose.reminder_id, now=SLOT)

        with pytest.raises(InvalidState):
            service.snooze_reminder("p-test", afternoon_dose.reminder_id, 5, now=SLOT)

    def test_cannot_snooze_missed_dose(self, afternoon_dose, service):
        with pytest.raises(InvalidState, match="missed"):
            service.snooze_reminder("p-test", afternoon_dose.reminder_id, 5, now=SLOT + timedelta(hours=3))

    def test_snoozes_cannot_be_chained_past_missed_deadline(self, afternoon_dose, service, reminders):
        service.snooze_reminder("p-test", afternoon_dose.reminder_id, 10, now=SLOT + timedelta(minutes=115))

        with pytest.raises(InvalidState, match="missed"):
            service.snooze_reminder("p-test", afternoon_dose.reminder_id, 10, now=SLOT + timedelta(minutes=121))

        stored = reminders.get_by_id(afternoon_dose.reminder_id)
        assert stored.snoozed_until == SLOT + timedelta(minutes=125)

    def test_mark_sent_only_from_scheduled(self, afternoon_dose, service):
        assert service.mark_sent("p-test", afternoon_dose.reminder_id, now=SLOT) is True
        assert service.mark_sent("p-test", afternoon_dose.reminder_id, now=SLOT) is False


class TestDashboard:
    def test_overdue_and_next(self, add_prescription, service):
        add_prescription(local_time=time(8, 0), medication="Morning")
        add_prescription(local_time=time(20, 0), medication="Evening")
        now = utc(2025, 12, 5, 9, 0)

        dashboard = service.get_dashboard("p-test", now=now)

        assert dashboard.total_medications_today == 2
        assert dashboard.taken_today == 0
        assert dashboard.adherence_rate == 0
        assert [m.medication_name for m in dashboard.overdue_medications] == ["Morning"]
        assert dashboard.overdue_medications[0].minutes_overdue == 120
        assert dashboard.next_medications[0].medication_name == "Evening"
        assert dashboard.next_medications[0].minutes_until == 600

    def test_snoozed_dose_is_not_overdue(self, afternoon_dose, service):
        service.snooze_reminder("p-test", afternoon_dose.reminder_id, 30, now=SLOT + timedelta(minutes=1))

        assert service.get_overdue_medications("p-test", now=SLOT + timedelta(minutes=10)) == []
        assert len(service.get_overdue_medications("p-test", now=SLOT + timedelta(minutes=40))) == 1


class TestSweep:
    def test_sweep_persists_missed(self, afternoon_dose, service, reminders):
        assert service.sweep_missed(now=SLOT + timedelta(hours=1), patient_id="p-test") == 0
        assert service.sweep_missed(now=SLOT + timedelta(hours=3), patient_id="p-test") == 1
        assert reminders.get_by_id(afternoon_dose.reminder_id).status == ReminderStatus.MISSED

        with pytest.raises(InvalidState, match="missed"):
            service.confirm_reminder("p-test", afternoon_dose.reminder_id, now=SLOT + timedelta(hours=4))


class TestPrescriptionLifecycle:
    def test_create_prescription_with_schedules(self, service, prescriptions):
        prescription = service.create_prescription("dr-001", {
            "patient_id": "p-001",
            "medication_name": "Amoxicillin",
            "medication_dosage": "500 mg",
            "start_date": "2025-12-01",
            "end_date": "2025-12-07",
            "schedules": [
                {"schedule_type": "interval", "scheduled_time": "2025-12-01T05:00:00Z", "interval_hours": 8},
            ],
        }, now=utc(2025, 11, 30, 9, 0))

        assert prescription.prescribed_by == "dr-001"
        assert prescription.medication_name == "Amoxicillin"
        assert prescriptions.find_schedules(prescription.id)[0].interval_hours == 8

        day = service.get_medications_by_date("p-001", "2025-12-03", now=utc(2025, 12, 3, 0, 0))
        assert day.total == 3

    def test_weekly_without_days_is_rejected(self, service, prescriptions):
        with pytest.raises(ValidationFailure, match="at least one day"):
            service.create_prescription("dr-001", {
                "patient_id": "p-001",
                "medication_name": "Aspirin",
                "schedules": [{"schedule_type": "weekly", "scheduled_time": "2025-12-01T07:00:00Z"}],
            })

        assert prescriptions.find_active_prescriptions("p-001") == []

    def test_end_before_start_is_rejected(self, service):
        with pytest.raises(ValidationFailure, match="End date"):
            service.create_prescription("dr-001", {
                "patient_id": "p-001",
                "medication_name": "Aspirin",
                "start_date": "2025-12-05",
                "end_date": "2025-12-01",
            })

    def test_missing_fields(self, service):
        with pytest.raises(ValidationFailure, match="medication_name"):
            service.create_prescription("dr-001", {"patient_id": "p-001"})

    def test_delete_cancels_pending_reminders(self, add_prescription, service, reminders):
        prescription = add_prescription(prescribed_by="dr-001")
        service.get_medications_by_date("p-test", "2025-12-05", now=utc(2025, 12, 5, 6, 0))
        service.get_medications_by_date("p-test", "2025-12-06", now=utc(2025, 12, 5, 6, 0))

        cancelled = service.delete_prescription("dr-001", prescription.id, now=utc(2025, 12, 5, 6, 30))

        assert cancelled == 2
        day = service.get_medications_by_date("p-test", "2025-12-05", now=utc(2025, 12, 5, 6, 45))
        assert day.total == 0
        found = reminders.find_reminder(prescription.id, utc(2025, 12, 5, 7, 0))
        assert found.status == ReminderStatus.CANCELLED

    def test_only_prescriber_can_delete(self, add_prescription, service):
        prescription = add_prescription(prescribed_by="dr-001")

        with pytest.raises(NotFound):
            service.delete_prescription("dr-002", prescription.id)

    def test_delete_twice(self, add_prescription, service):
        prescription = add_prescription(prescribed_by="dr-001")
        service.delete_prescription("dr-001", prescription.id, now=utc(2025, 12, 5, 6, 0))

        with pytest.raises(NotFound):
            service.delete_prescription("dr-001", prescription.id, now=utc(2025, 12, 5, 7, 0))

    def test_deactivate(self, add_prescription, service, prescriptions):
        prescription = add_prescription(prescribed_by="dr-001")
        service.get_medications_by_date("p-test", "2025-12-05", now=utc(2025, 12, 5, 6, 0))

        assert service.deactivate_prescription("dr-001", prescription.id, now=utc(2025, 12, 5, 6, 30)) == 1
        assert prescriptions.get_by_id(prescription.id).is_active is False

        with pytest.raises(InvalidState):
            service.deactivate_prescription("dr-001", prescription.id)


class TestHistory:
    def test_window_must_be_positive(self, service):
        with pytest.raises(ValidationFailure):
            service.get_adherence_history("p-test", 0)
