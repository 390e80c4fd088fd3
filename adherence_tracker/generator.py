"""Materialize reminder occurrences for a date from active prescriptions."""

import logging
from datetime import date, datetime, timedelta

from adherence_tracker.recurrence import occurrences_for_date
from adherence_tracker.reminders.database.prescription_repository import PrescriptionRepository
from adherence_tracker.reminders.database.reminder_repository import ReminderRepository

logger = logging.getLogger(__name__)


class ReminderGenerator:
    """Idempotent, lazily-invoked reminder materialization.

    Uniqueness of (prescription_id, scheduled_for) is enforced by the storage
    layer, so concurrent calls for the same date converge on one row per slot.
    """

    def __init__(
        self,
        prescriptions: PrescriptionRepository | None = None,
        reminders: ReminderRepository | None = None,
    ):
        self.prescriptions = prescriptions or PrescriptionRepository()
        self.reminders = reminders or ReminderRepository()

    def ensure_reminders_for_date(
        self,
        on_date: date,
        patient_id: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Create any missing occurrences for on_date. Returns the number created.

        A failure on one prescription is logged and does not stop the others.
        """
        created = 0
        for prescription in self.prescriptions.find_active_prescriptions(patient_id, on_date):
            try:
                created += self._generate_for_prescription(prescription, on_date, now)
            except Exception:
                logger.exception(
                    "Failed to generate reminders for prescription %s on %s",
                    prescription.id, on_date.isoformat(),
                )

        logger.debug("Generated %d reminders for %s (patient=%s)", created, on_date, patient_id)
        return created

    def ensure_reminders_for_range(
        self,
        start_date: date,
        days: int,
        patient_id: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Materialize start_date and the following days (inclusive of both ends)."""
        created = 0
        for offset in range(days + 1):
            created += self.ensure_reminders_for_date(start_date + timedelta(days=offset), patient_id, now)
        return created

    def _generate_for_prescription(self, prescription, on_date: date, now: datetime | None) -> int:
        created = 0
        for schedule in self.prescriptions.find_schedules(prescription.id):
            for instant in occurrences_for_date(schedule, on_date, prescription):
                if self.reminders.insert_reminder(
                    prescription_id=prescription.id,
                    patient_id=prescription.patient_id,
                    scheduled_for=instant,
                    now=now,
                ):
                    created += 1
        return created
