"""Patient and caregiver operations over the reminder core.

These are the request/response contracts an HTTP layer would call. Every
lookup is scoped to the calling patient; a reminder that exists but belongs
to someone else is reported as NotFound.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from adherence_tracker import config
from adherence_tracker.adherence import AdherenceAggregator, AdherenceReport, adherence_rate
from adherence_tracker.errors import InvalidState, NotFound, ValidationFailure
from adherence_tracker.generator import ReminderGenerator
from adherence_tracker.reminders.database.prescription_repository import (
    MedicationSchedule,
    Prescription,
    PrescriptionRepository,
)
from adherence_tracker.reminders.database.reminder_repository import (
    MedicationConfirmation,
    MedicationReminder,
    ReminderRepository,
)
from adherence_tracker.schemas import (
    ConfirmRequest,
    DateQuery,
    PrescriptionRequest,
    SnoozeRequest,
    UpcomingQuery,
    parse_request,
)
from adherence_tracker.state_machine import (
    PENDING_STATUSES,
    TAKEN_STATUSES,
    ConfirmationType,
    ReminderStatus,
    check_confirmable,
    check_snoozable,
    display_status,
    effective_status,
    snooze_until,
)
from adherence_tracker.sync import SyncReconciler, SyncResult
from adherence_tracker.timezone_window import (
    day_bounds,
    format_instant,
    to_utc,
    today,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class MedicationView:
    reminder_id: str
    prescription_id: str
    medication_name: str
    dosage: str
    scheduled_for: datetime
    status: str
    confirmed_at: datetime | None = None
    snoozed_until: datetime | None = None
    voice_message_id: str | None = None


@dataclass
class DayMedications:
    medications: list[MedicationView] = field(default_factory=list)
    total: int = 0
    taken: int = 0
    adherence_rate: int = 0


@dataclass
class OverdueMedication:
    reminder_id: str
    prescription_id: str
    medication_name: str
    dosage: str
    scheduled_for: datetime
    minutes_overdue: int


@dataclass
class NextMedication:
    reminder_id: str
    prescription_id: str
    medication_name: str
    dosage: str
    scheduled_for: datetime
    minutes_until: int


@dataclass
class Dashboard:
    overdue_medications: list[OverdueMedication]
    next_medications: list[NextMedication]
    total_medications_today: int
    taken_today: int
    adherence_rate: int


@dataclass
class ConfirmResult:
    reminder_id: str
    success: bool
    error: str | None = None


class ReminderService:
    """Facade wiring the generator, state machine, aggregator and sync."""

    def __init__(
        self,
        prescriptions: PrescriptionRepository | None = None,
        reminders: ReminderRepository | None = None,
    ):
        self.prescriptions = prescriptions or PrescriptionRepository()
        self.reminders = reminders or ReminderRepository()
        self.generator = ReminderGenerator(self.prescriptions, self.reminders)
        self.aggregator = AdherenceAggregator(self.reminders)
        self.sync = SyncReconciler(self.prescriptions, self.reminders, self.generator)

    # Patient reads

    def get_medications_by_date(self, patient_id: str, date_str: str, now: datetime | None = None) -> DayMedications:
        """Reminders for one local calendar day, generating any that are missing.

        An empty day reports a rate of 0; only the dashboard counts it as fully adherent.
        """
        now = to_utc(now or utc_now())
        on_date = parse_request(DateQuery, {"date": date_str}).calendar_date
        start, end = day_bounds(on_date)

        # Insert-or-ignore, so prescriptions added after the day was first read still show up
        self.generator.ensure_reminders_for_date(on_date, patient_id, now)

        reminders = self.reminders.list_in_window(patient_id, start, end)
        medications = [self._to_view(reminder, now) for reminder in reminders]
        taken = sum(1 for r in reminders if r.status in TAKEN_STATUSES)
        return DayMedications(
            medications=medications,
            total=len(medications),
            taken=taken,
            adherence_rate=adherence_rate(taken, len(medications)),
        )

    def get_overdue_medications(self, patient_id: str, now: datetime | None = None) -> list[OverdueMedication]:
        now = to_utc(now or utc_now())
        return [
            OverdueMedication(
                reminder_id=r.id,
                prescription_id=r.prescription_id,
                medication_name=r.medication_name,
                dosage=r.dosage,
                scheduled_for=r.scheduled_for,
                minutes_overdue=int((now - r.scheduled_for).total_seconds() // 60),
            )
            for r in self.reminders.list_overdue(patient_id, now)
        ]

    def get_next_medications(self, patient_id: str, limit: int = 5, now: datetime | None = None) -> list[NextMedication]:
        now = to_utc(now or utc_now())
        horizon = now + timedelta(days=config.SYNC_HORIZON_DAYS)
        upcoming = self.reminders.list_upcoming(patient_id, now, horizon, limit=limit)
        return [
            NextMedication(
                reminder_id=r.id,
                prescription_id=r.prescription_id,
                medication_name=r.medication_name,
                dosage=r.dosage,
                scheduled_for=r.scheduled_for,
                minutes_until=int((r.scheduled_for - now).total_seconds() // 60),
            )
            for r in upcoming
        ]

    def get_dashboard(self, patient_id: str, now: datetime | None = None) -> Dashboard:
        now = to_utc(now or utc_now())
        on_date = today(now)
        self.generator.ensure_reminders_for_date(on_date, patient_id, now)
        summary = self.aggregator.day_summary(patient_id, on_date)
        return Dashboard(
            overdue_medications=self.get_overdue_medications(patient_id, now),
            next_medications=self.get_next_medications(patient_id, 5, now),
            total_medications_today=summary.total,
            taken_today=summary.taken,
            adherence_rate=summary.rate,
        )

    def get_upcoming_reminders(
        self,
        patient_id: str,
        days_ahead: int = config.SYNC_HORIZON_DAYS,
        last_sync: datetime | None = None,
        now: datetime | None = None,
    ) -> SyncResult:
        query = parse_request(UpcomingQuery, {"days": days_ahead, "last_sync": last_sync})
        return self.sync.changes_since(patient_id, query.last_sync, query.days, now)

    def check_for_updates(self, patient_id: str, last_sync: datetime | None = None) -> tuple[bool, datetime | None]:
        return self.sync.check_for_updates(patient_id, last_sync)

    def get_adherence_history(self, patient_id: str, window_days: int = 30, now: datetime | None = None) -> AdherenceReport:
        if window_days < 1:
            raise ValidationFailure("Window must be at least one day")
        return self.aggregator.compute_adherence(patient_id, window_days, now)

    # State changes

    def confirm_reminder(self, patient_id: str, reminder_id: str, now: datetime | None = None) -> MedicationConfirmation:
        """Patient marks a dose as taken."""
        return self._confirm(patient_id, reminder_id, patient_id, ConfirmationType.PATIENT, now)

    def confirm_reminders(self, patient_id: str, reminder_ids, now: datetime | None = None) -> list[ConfirmResult]:
        """Confirm several reminders, reporting each outcome independently."""
        request = parse_request(ConfirmRequest, {"reminder_ids": reminder_ids})
        results = []
        for reminder_id in request.reminder_ids:
            try:
                self.confirm_reminder(patient_id, reminder_id, now)
                results.append(ConfirmResult(reminder_id=reminder_id, success=True))
            except (NotFound, InvalidState) as e:
                results.append(ConfirmResult(reminder_id=reminder_id, success=False, error=str(e)))
        return results

    def caregiver_confirm(
        self,
        caregiver_id: str,
        patient_id: str,
        reminder_id: str,
        now: datetime | None = None,
    ) -> MedicationConfirmation:
        """Caregiver records a dose on the patient's behalf."""
        return self._confirm(patient_id, reminder_id, caregiver_id, ConfirmationType.TUTEUR_MANUAL, now)

    def snooze_reminder(
        self,
        patient_id: str,
        reminder_id: str,
        minutes: int = config.DEFAULT_SNOOZE_MINUTES,
        now: datetime | None = None,
    ) -> datetime:
        """Push a pending reminder back. scheduled_for is left untouched."""
        now = to_utc(now or utc_now())
        request = parse_request(SnoozeRequest, {"reminder_id": reminder_id, "snooze_duration_minutes": minutes})
        reminder = self._get_reminder(patient_id, request.reminder_id)
        check_snoozable(self._snooze_status(reminder, now))

        until = snooze_until(now, request.snooze_duration_minutes)
        if not self.reminders.update_reminder_status(
            reminder.id, PENDING_STATUSES, ReminderStatus.SCHEDULED, {"snoozed_until": until}, now
        ):
            current = self._get_reminder(patient_id, reminder.id)
            check_snoozable(self._snooze_status(current, now))
            raise InvalidState("Reminder was updated by another request, please retry.")

        logger.info("Reminder %s snoozed until %s", reminder.id, format_instant(until))
        return until

    def mark_sent(self, patient_id: str, reminder_id: str, now: datetime | None = None) -> bool:
        """Record that the reminder was surfaced to the patient. False if it was not scheduled."""
        reminder = self._get_reminder(patient_id, reminder_id)
        return self.reminders.update_reminder_status(
            reminder.id, {ReminderStatus.SCHEDULED}, ReminderStatus.SENT, now=now
        )

    def sweep_missed(self, now: datetime | None = None, patient_id: str | None = None) -> int:
        """Persist MISSED for pending reminders older than the missed threshold."""
        now = to_utc(now or utc_now())
        cutoff = now - timedelta(minutes=config.MISSED_AFTER_MINUTES)
        swept = self.reminders.sweep_missed(cutoff, now, patient_id)
        if swept:
            logger.info("Marked %d reminders as missed", swept)
        return swept

    # Caregiver prescription lifecycle

    def create_prescription(self, caregiver_id: str, data: dict, now: datetime | None = None) -> Prescription:
        """Create a prescription with its schedules."""
        now = to_utc(now or utc_now())
        request = parse_request(PrescriptionRequest, data)
        start_date = request.start_date or today(now)
        if request.end_date and request.end_date < start_date:
            raise ValidationFailure("End date cannot be before start date")

        schedules = [
            MedicationSchedule(
                id="",
                prescription_id="",
                schedule_type=item.schedule_type,
                scheduled_time=to_utc(item.scheduled_time),
                days_of_week=item.days_of_week,
                interval_hours=item.interval_hours,
            )
            for item in request.schedules
        ]
        for schedule in schedules:
            schedule.validate()

        medication = self.prescriptions.find_or_create_medication(
            request.medication_name, request.medication_dosage
        )
        prescription = self.prescriptions.create(
            Prescription(
                id="",
                patient_id=request.patient_id,
                medication_id=medication.id,
                prescribed_by=caregiver_id,
                start_date=start_date,
                end_date=request.end_date,
                custom_dosage=request.custom_dosage,
                instructions=request.instructions,
                is_chronic=request.is_chronic,
            ),
            now=now,
        )
        for schedule in schedules:
            schedule.prescription_id = prescription.id
            self.prescriptions.add_schedule(schedule)

        prescription.medication_name = medication.name
        prescription.medication_dosage = medication.dosage
        logger.info("Prescription %s created for patient %s", prescription.id, prescription.patient_id)
        return prescription

    def delete_prescription(self, caregiver_id: str, prescription_id: str, now: datetime | None = None) -> int:
        """Soft-delete a prescription and cancel its pending reminders. Returns the number cancelled."""
        now = to_utc(now or utc_now())
        prescription = self._get_prescription(caregiver_id, prescription_id)
        if not self.prescriptions.soft_delete(prescription.id, now):
            raise NotFound("Prescription not found")
        cancelled = self.reminders.cancel_pending_for_prescription(prescription.id, now)
        logger.info("Prescription %s deleted, %d reminders cancelled", prescription.id, cancelled)
        return cancelled

    def deactivate_prescription(self, caregiver_id: str, prescription_id: str, now: datetime | None = None) -> int:
        """Deactivate a prescription and cancel its pending reminders. Returns the number cancelled."""
        now = to_utc(now or utc_now())
        prescription = self._get_prescription(caregiver_id, prescription_id)
        if not self.prescriptions.deactivate(prescription.id, now):
            raise InvalidState("Prescription is already inactive")
        cancelled = self.reminders.cancel_pending_for_prescription(prescription.id, now)
        logger.info("Prescription %s deactivated, %d reminders cancelled", prescription.id, cancelled)
        return cancelled

    # Private helpers

    def _confirm(
        self,
        patient_id: str,
        reminder_id: str,
        confirmed_by: str,
        confirmation_type: ConfirmationType,
        now: datetime | None,
    ) -> MedicationConfirmation:
        now = to_utc(now or utc_now())
        reminder = self._get_reminder(patient_id, reminder_id)
        check_confirmable(reminder.status, reminder.scheduled_for, now)

        confirmation = self.reminders.confirm(
            reminder.id, patient_id, confirmed_by, confirmation_type, now,
            config.GRACE_PERIOD_MINUTES,
        )
        if confirmation is None:
            # Lost a race; report the state that beat us
            current = self._get_reminder(patient_id, reminder.id)
            check_confirmable(current.status, current.scheduled_for, now)
            raise InvalidState("Reminder was updated by another request, please retry.")

        logger.info(
            "Medication marked as taken: reminder %s by %s (%s)",
            reminder.id, confirmed_by, confirmation_type.value,
        )
        return confirmation

    def _get_reminder(self, patient_id: str, reminder_id: str) -> MedicationReminder:
        reminder = self.reminders.get_for_patient(reminder_id, patient_id)
        if reminder is None:
            raise NotFound("Reminder not found")
        return reminder

    def _get_prescription(self, caregiver_id: str, prescription_id: str) -> Prescription:
        prescription = self.prescriptions.get_by_id(prescription_id)
        if prescription is None or prescription.prescribed_by != caregiver_id or prescription.deleted_at:
            raise NotFound("Prescription not found")
        return prescription

    def _snooze_status(self, reminder: MedicationReminder, now: datetime) -> ReminderStatus:
        # A running snooze does not extend the missed deadline
        return effective_status(reminder.status, reminder.scheduled_for, None, now)

    def _to_view(self, reminder: MedicationReminder, now: datetime) -> MedicationView:
        status = effective_status(reminder.status, reminder.scheduled_for, reminder.snoozed_until, now)
        return MedicationView(
            reminder_id=reminder.id,
            prescription_id=reminder.prescription_id,
            medication_name=reminder.medication_name,
            dosage=reminder.dosage,
            scheduled_for=reminder.scheduled_for,
            status=display_status(status),
            confirmed_at=reminder.confirmed_at,
            snoozed_until=reminder.snoozed_until,
            voice_message_id=reminder.voice_message_id,
        )
