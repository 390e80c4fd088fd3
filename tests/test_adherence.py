"""Tests for adherence statistics."""

from datetime import date, datetime, time, timezone

import pytest

from adherence_tracker.adherence import AdherenceAggregator, adherence_rate, daily_rate
from adherence_tracker.generator import ReminderGenerator
from adherence_tracker.timezone_window import day_bounds

NOW = datetime(2025, 12, 10, 12, 0, tzinfo=timezone.utc)


def history(service, patient_id="p-test"):
    """Materialize 2025-12-01 through 2025-12-10 and return the reminders, oldest first."""
    ReminderGenerator(service.prescriptions, service.reminders).ensure_reminders_for_range(
        date(2025, 12, 1), 9, patient_id, NOW
    )
    start, _ = day_bounds(date(2025, 12, 1))
    return service.reminders.list_in_window(patient_id, start, NOW)


class TestRates:
    @pytest.mark.parametrize("taken,total,expected", [
        (7, 10, 70),
        (1, 8, 13),
        (5, 8, 63),
        (2, 3, 67),
        (1, 3, 33),
        (10, 10, 100),
    ])
    def test_rounded_half_up(self, taken, total, expected):
        assert adherence_rate(taken, total) == expected

    def test_empty_window_is_zero(self):
        assert adherence_rate(0, 0) == 0

    def test_empty_day_is_hundred(self):
        assert daily_rate(0, 0) == 100
        assert daily_rate(1, 2) == 50


class TestComputeAdherence:
    def test_seven_of_ten(self, add_prescription, service):
        add_prescription()
        reminders = history(service)
        assert len(reminders) == 10
        for reminder in reminders[:7]:
            service.confirm_reminder("p-test", reminder.id, now=NOW)

        report = AdherenceAggregator(service.reminders).compute_adherence("p-test", 30, now=NOW)

        assert report.total == 10
        assert report.taken == 7
        assert report.missed == 3
        assert report.pending == 0
        assert report.rate == 70

    def test_breakdowns(self, add_prescription, service):
        add_prescription()
        reminders = history(service)
        for reminder in reminders[:7]:
            service.confirm_reminder("p-test", reminder.id, now=NOW)

        report = AdherenceAggregator(service.reminders).compute_adherence("p-test", 30, now=NOW)

        assert len(report.per_medication) == 1
        assert report.per_medication[0].medication_name == "Metformin"
        assert report.per_medication[0].rate == 70

        # 2025-12-01 is the Monday of ISO week 49
        assert [(w.week, w.taken, w.total, w.rate) for w in report.per_week] == [
            (49, 7, 7, 100),
            (50, 0, 3, 0),
        ]
        assert report.per_week[0].week_start == date(2025, 12, 1)

        assert len(report.per_day) == 31
        assert report.per_day[0].day == date(2025, 11, 10)
        assert report.per_day[0].rate == 100
        assert report.per_day[-1].day == date(2025, 12, 10)
        assert report.per_day[-1].rate == 0

    def test_recent_dose_counts_as_pending(self, add_prescription, service):
        add_prescription(local_time=time(12, 30))
        history(service)

        report = AdherenceAggregator(service.reminders).compute_adherence("p-test", 1, now=NOW)

        # 2025-12-10 11:30Z is half an hour old
        assert report.total == 1
        assert report.pending == 1
        assert report.missed == 0

    def test_future_reminders_are_excluded(self, add_prescription, service):
        add_prescription(local_time=time(20, 0))
        history(service)

        report = AdherenceAggregator(service.reminders).compute_adherence("p-test", 1, now=NOW)

        assert report.total == 1

    def test_deleted_prescription_is_excluded(self, add_prescription, service, prescriptions):
        add_prescription(medication="Kept")
        dropped = add_prescription(medication="Dropped")
        history(service)
        prescriptions.soft_delete(dropped.id, NOW)

        report = AdherenceAggregator(service.reminders).compute_adherence("p-test", 30, now=NOW)

        assert report.total == 10
        assert [m.medication_name for m in report.per_medication] == ["Kept"]

    def test_no_reminders(self, service):
        report = AdherenceAggregator(service.reminders).compute_adherence("p-test", 7, now=NOW)

        assert report.rate == 0
        assert report.total == 0
        assert report.per_medication == []
        assert report.per_week == []
        assert all(d.rate == 100 for d in report.per_day)


class TestDaySummary:
    def test_counts_taken_for_the_day(self, add_prescription, service):
        add_prescription()
        reminders = history(service)
        service.confirm_reminder("p-test", reminders[-1].id, now=NOW)

        summary = AdherenceAggregator(service.reminders).day_summary("p-test", date(2025, 12, 10))

        assert (summary.total, summary.taken, summary.rate) == (1, 1, 100)

    def test_empty_day(self, service):
        summary = AdherenceAggregator(service.reminders).day_summary("p-test", date(2025, 12, 10))

        assert (summary.total, summary.taken, summary.rate) == (0, 0, 100)

