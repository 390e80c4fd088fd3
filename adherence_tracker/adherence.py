"""Adherence statistics computed from materialized reminder state."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from adherence_tracker.reminders.database.reminder_repository import ReminderRepository
from adherence_tracker.state_machine import TAKEN_STATUSES, ReminderStatus, effective_status
from adherence_tracker.timezone_window import day_bounds, local_date, to_utc, utc_now


def adherence_rate(taken: int, total: int, empty: int = 0) -> int:
    """Percentage taken, rounded half up. `empty` is returned when total is 0."""
    if total <= 0:
        return empty
    return (200 * taken + total) // (2 * total)


def daily_rate(taken: int, total: int) -> int:
    """A day with nothing scheduled counts as fully adherent."""
    return adherence_rate(taken, total, empty=100)


@dataclass
class MedicationAdherence:
    medication_id: str
    medication_name: str
    total: int = 0
    taken: int = 0
    rate: int = 0


@dataclass
class WeeklyAdherence:
    year: int
    week: int
    week_start: date
    total: int = 0
    taken: int = 0
    rate: int = 0


@dataclass
class DailyAdherence:
    day: date
    total: int = 0
    taken: int = 0
    rate: int = 100


@dataclass
class AdherenceReport:
    window_days: int
    rate: int = 0
    total: int = 0
    taken: int = 0
    missed: int = 0
    pending: int = 0
    per_medication: list[MedicationAdherence] = field(default_factory=list)
    per_week: list[WeeklyAdherence] = field(default_factory=list)
    per_day: list[DailyAdherence] = field(default_factory=list)


@dataclass
class DaySummary:
    day: date
    total: int
    taken: int
    rate: int


class AdherenceAggregator:
    """Read-only projections over a patient's reminders.

    Only reminders of active, non-deleted prescriptions are counted, and
    cancelled reminders are left out of every total.
    """

    def __init__(self, reminders: ReminderRepository | None = None):
        self.reminders = reminders or ReminderRepository()

    def compute_adherence(
        self,
        patient_id: str,
        window_days: int = 30,
        now: datetime | None = None,
    ) -> AdherenceReport:
        """Adherence over reminders scheduled in the trailing window_days up to now."""
        now = to_utc(now or utc_now())
        start = now - timedelta(days=window_days)
        report = AdherenceReport(window_days=window_days)

        medications: dict[str, MedicationAdherence] = {}
        weeks: dict[tuple[int, int], WeeklyAdherence] = {}
        days: dict[date, DailyAdherence] = {}

        first_day = local_date(start)
        for offset in range((local_date(now) - first_day).days + 1):
            day = first_day + timedelta(days=offset)
            days[day] = DailyAdherence(day=day)

        for reminder in self.reminders.list_in_window(patient_id, start, now):
            status = effective_status(
                reminder.status, reminder.scheduled_for, reminder.snoozed_until, now
            )
            taken = status in TAKEN_STATUSES

            report.total += 1
            if taken:
                report.taken += 1
            elif status == ReminderStatus.MISSED:
                report.missed += 1
            else:
                report.pending += 1

            medication = medications.setdefault(
                reminder.medication_id,
                MedicationAdherence(
                    medication_id=reminder.medication_id,
                    medication_name=reminder.medication_name,
                ),
            )
            day = local_date(reminder.scheduled_for)
            iso_year, iso_week, iso_weekday = day.isocalendar()
            week = weeks.setdefault(
                (iso_year, iso_week),
                WeeklyAdherence(
                    year=iso_year,
                    week=iso_week,
                    week_start=day - timedelta(days=iso_weekday - 1),
                ),
            )
            daily = days.setdefault(day, DailyAdherence(day=day))

            for bucket in (medication, week, daily):
                bucket.total += 1
                if taken:
                    bucket.taken += 1

        report.rate = adherence_rate(report.taken, report.total)
        for medication in medications.values():
            medication.rate = adherence_rate(medication.taken, medication.total)
        for week in weeks.values():
            week.rate = adherence_rate(week.taken, week.total)
        for daily in days.values():
            daily.rate = daily_rate(daily.taken, daily.total)

        report.per_medication = sorted(medications.values(), key=lambda m: m.medication_name or "")
        report.per_week = [weeks[key] for key in sorted(weeks)]
        report.per_day = [days[key] for key in sorted(days)]
        return report

    def day_summary(self, patient_id: str, on_date: date) -> DaySummary:
        """Totals for one local calendar day, using the daily convention."""
        start, end = day_bounds(on_date)
        active = [s for s in ReminderStatus if s != ReminderStatus.CANCELLED]
        total = self.reminders.count_reminders(patient_id, start, end, active)
        taken = self.reminders.count_reminders(patient_id, start, end, TAKEN_STATUSES)
        return DaySummary(day=on_date, total=total, taken=taken, rate=daily_rate(taken, total))
