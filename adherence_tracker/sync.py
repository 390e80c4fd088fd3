"""Change sets for offline-capable clients."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from adherence_tracker import config
from adherence_tracker.generator import ReminderGenerator
from adherence_tracker.reminders.database.prescription_repository import PrescriptionRepository
from adherence_tracker.reminders.database.reminder_repository import MedicationReminder, ReminderRepository
from adherence_tracker.timezone_window import local_date, to_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    has_updates: bool
    last_modified: datetime | None = None
    reminders: list[MedicationReminder] = field(default_factory=list)
    deleted_prescription_ids: list[str] = field(default_factory=list)


class SyncReconciler:
    """Coarse sync: clients always re-pull the whole upcoming window.

    Deletions are reported separately so clients can purge prescriptions
    they cached before the checkpoint.
    """

    def __init__(
        self,
        prescriptions: PrescriptionRepository | None = None,
        reminders: ReminderRepository | None = None,
        generator: ReminderGenerator | None = None,
    ):
        self.prescriptions = prescriptions or PrescriptionRepository()
        self.reminders = reminders or ReminderRepository()
        self.generator = generator or ReminderGenerator(self.prescriptions, self.reminders)

    def check_for_updates(self, patient_id: str, last_sync: datetime | None = None) -> tuple[bool, datetime | None]:
        """(has_updates, last_modified). A missing checkpoint always has updates."""
        last_modified = self.prescriptions.last_modified(patient_id)
        if last_sync is None:
            return True, last_modified
        return bool(last_modified and last_modified > to_utc(last_sync)), last_modified

    def changes_since(
        self,
        patient_id: str,
        last_sync: datetime | None = None,
        days_ahead: int | None = None,
        now: datetime | None = None,
    ) -> SyncResult:
        now = to_utc(now or utc_now())
        if days_ahead is None:
            days_ahead = config.SYNC_HORIZON_DAYS
        horizon = now + timedelta(days=days_ahead)

        self.generator.ensure_reminders_for_range(local_date(now), days_ahead, patient_id, now)

        has_updates, last_modified = self.check_for_updates(patient_id, last_sync)
        deleted = []
        if last_sync is not None:
            deleted = self.prescriptions.deleted_since(patient_id, to_utc(last_sync))
            has_updates = has_updates or bool(deleted)

        reminders = self.reminders.list_upcoming(patient_id, now, horizon)
        logger.info(
            "Sync for patient %s: %d upcoming reminders, %d deleted prescriptions",
            patient_id, len(reminders), len(deleted),
        )
        return SyncResult(
            has_updates=has_updates,
            last_modified=last_modified,
            reminders=reminders,
            deleted_prescription_ids=deleted,
        )
