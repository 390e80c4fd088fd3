"""Reminder occurrence repository with conditional state updates and confirmation audit."""

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from adherence_tracker.state_machine import PENDING_STATUSES, ConfirmationType, ReminderStatus
from adherence_tracker.timezone_window import format_instant, parse_instant, utc_now

from .connection import get_connection


@dataclass
class MedicationReminder:
    id: str
    prescription_id: str
    patient_id: str
    scheduled_for: datetime
    status: ReminderStatus = ReminderStatus.SCHEDULED
    confirmed_at: datetime | None = None
    confirmed_by: str | None = None
    snoozed_until: datetime | None = None
    voice_message_id: str | None = None
    updated_at: datetime | None = None
    # Joined from prescriptions / medications
    medication_id: str | None = None
    medication_name: str | None = None
    dosage: str | None = None


@dataclass
class MedicationConfirmation:
    id: str
    reminder_id: str
    confirmed_by: str
    confirmation_type: ConfirmationType
    confirmed_at: datetime


def _status_params(statuses) -> tuple[str, list[str]]:
    values = [s.value for s in statuses]
    return ", ".join("?" for _ in values), values


class ReminderRepository:
    """Repository for reminder occurrences.

    Every state change is a conditional UPDATE guarded on the current status,
    so two concurrent writers on the same reminder cannot both succeed.
    """

    # Fields that can be set alongside a status change
    REMINDER_FIELDS = ["confirmed_at", "confirmed_by", "snoozed_until", "voice_message_id"]

    def insert_reminder(
        self,
        prescription_id: str,
        patient_id: str,
        scheduled_for: datetime,
        voice_message_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Insert an occurrence unless one exists for (prescription_id, scheduled_for).

        Returns True if a row was created.
        """
        stamp = format_instant(now or utc_now())
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR IGNORE INTO medication_reminders (
                id, prescription_id, patient_id, scheduled_for, status,
                voice_message_id, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            str(uuid.uuid4()), prescription_id, patient_id, format_instant(scheduled_for),
            ReminderStatus.SCHEDULED.value, voice_message_id, stamp, stamp,
        ))
        created = cursor.rowcount == 1
        conn.commit()
        conn.close()
        return created

    def find_reminder(self, prescription_id: str, instant: datetime) -> MedicationReminder | None:
        """Find the occurrence of a prescription at an exact instant."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            self._SELECT + " WHERE r.prescription_id = ? AND r.scheduled_for = ?",
            (prescription_id, format_instant(instant)),
        )
        row = cursor.fetchone()
        conn.close()
        return self._row_to_reminder(row) if row else None

    def get_by_id(self, reminder_id: str) -> MedicationReminder | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(self._SELECT + " WHERE r.id = ?", (reminder_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_reminder(row) if row else None

    def get_for_patient(self, reminder_id: str, patient_id: str) -> MedicationReminder | None:
        """Get a reminder only if it belongs to the patient."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            self._SELECT + " WHERE r.id = ? AND r.patient_id = ?",
            (reminder_id, patient_id),
        )
        row = cursor.fetchone()
        conn.close()
        return self._row_to_reminder(row) if row else None

    def update_reminder_status(
        self,
        reminder_id: str,
        expected_statuses,
        new_status: ReminderStatus,
        fields: dict | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Set the status only if the current status is one of expected_statuses.

        Returns False when the guard did not match (missing row or lost race).
        """
        values = {}
        for name, value in (fields or {}).items():
            if name not in self.REMINDER_FIELDS:
                raise ValueError(f"Unknown reminder field: {name}")
            values[name] = format_instant(value) if isinstance(value, datetime) else value

        set_clause = "status = ?, updated_at = ?"
        params = [new_status.value, format_instant(now or utc_now())]
        for name, value in values.items():
            set_clause += f", {name} = ?"
            params.append(value)

        placeholders, status_values = _status_params(expected_statuses)
        params.append(reminder_id)
        params.extend(status_values)

        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            f"UPDATE medication_reminders SET {set_clause} WHERE id = ? AND status IN ({placeholders})",
            params,
        )
        changed = cursor.rowcount == 1
        conn.commit()
        conn.close()
        return changed

    def confirm(
        self,
        reminder_id: str,
        patient_id: str,
        confirmed_by: str,
        confirmation_type: ConfirmationType,
        now: datetime,
        grace_minutes: int,
    ) -> MedicationConfirmation | None:
        """Confirm a pending reminder and append its audit row in one transaction.

        The grace period is part of the UPDATE guard so the time check and the
        write cannot be separated by another request. Returns None when the
        guard did not match.
        """
        stamp = format_instant(now)
        latest_slot = format_instant(now + timedelta(minutes=grace_minutes))
        placeholders, status_values = _status_params(PENDING_STATUSES)

        conn = get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(
                f"""UPDATE medication_reminders
                    SET status = ?, confirmed_at = ?, confirmed_by = ?, updated_at = ?
                    WHERE id = ? AND patient_id = ? AND scheduled_for <= ?
                      AND status IN ({placeholders})""",
                [ReminderStatus.MANUAL_CONFIRM.value, stamp, confirmed_by, stamp,
                 reminder_id, patient_id, latest_slot, *status_values],
            )
            if cursor.rowcount != 1:
                conn.rollback()
                return None

            confirmation = MedicationConfirmation(
                id=str(uuid.uuid4()),
                reminder_id=reminder_id,
                confirmed_by=confirmed_by,
                confirmation_type=confirmation_type,
                confirmed_at=parse_instant(stamp),
            )
            self.insert_confirmation(confirmation, cursor=cursor)
            conn.commit()
            return confirmation
        except sqlite3.IntegrityError:
            conn.rollback()
            return None
        finally:
            conn.close()

    def insert_confirmation(self, confirmation: MedicationConfirmation, cursor=None) -> None:
        """Append a confirmation audit row. Uses the caller's transaction when given a cursor."""
        params = (
            confirmation.id, confirmation.reminder_id, confirmation.confirmed_by,
            confirmation.confirmation_type.value, format_instant(confirmation.confirmed_at),
        )
        sql = """
            INSERT INTO medication_confirmations (id, reminder_id, confirmed_by, confirmation_type, confirmed_at)
            VALUES (?, ?, ?, ?, ?)
        """
        if cursor is not None:
            cursor.execute(sql, params)
            return

        conn = get_connection()
        conn.execute(sql, params)
        conn.commit()
        conn.close()

    def get_confirmations(self, reminder_id: str) -> list[MedicationConfirmation]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM medication_confirmations WHERE reminder_id = ? ORDER BY confirmed_at",
            (reminder_id,),
        )
        rows = cursor.fetchall()
        conn.close()
        return [
            MedicationConfirmation(
                id=row["id"],
                reminder_id=row["reminder_id"],
                confirmed_by=row["confirmed_by"],
                confirmation_type=ConfirmationType(row["confirmation_type"]),
                confirmed_at=parse_instant(row["confirmed_at"]),
            )
            for row in rows
        ]

    def count_reminders(
        self,
        patient_id: str,
        start: datetime,
        end: datetime,
        statuses=None,
    ) -> int:
        """Count reminders of active prescriptions scheduled in [start, end]."""
        query = """
            SELECT COUNT(*) AS total FROM medication_reminders r
            JOIN prescriptions p ON p.id = r.prescription_id
            WHERE r.patient_id = ? AND r.scheduled_for >= ? AND r.scheduled_for <= ?
              AND p.is_active = 1 AND p.deleted_at IS NULL
        """
        params = [patient_id, format_instant(start), format_instant(end)]
        if statuses:
            placeholders, status_values = _status_params(statuses)
            query += f" AND r.status IN ({placeholders})"
            params.extend(status_values)

        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(query, params)
        total = cursor.fetchone()["total"]
        conn.close()
        return total

    def list_in_window(
        self,
        patient_id: str,
        start: datetime,
        end: datetime,
        include_cancelled: bool = False,
    ) -> list[MedicationReminder]:
        """Reminders of active prescriptions scheduled in [start, end], oldest first."""
        query = self._SELECT + self._ACTIVE_WINDOW
        params = [patient_id, format_instant(start), format_instant(end)]
        if not include_cancelled:
            query += " AND r.status != ?"
            params.append(ReminderStatus.CANCELLED.value)
        query += " ORDER BY r.scheduled_for"

        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_reminder(row) for row in rows]

    def list_upcoming(
        self,
        patient_id: str,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[MedicationReminder]:
        """Pending reminders of active prescriptions in [start, end], soonest first."""
        placeholders, status_values = _status_params(PENDING_STATUSES)
        query = self._SELECT + self._ACTIVE_WINDOW + f" AND r.status IN ({placeholders})"
        query += " ORDER BY r.scheduled_for"
        params = [patient_id, format_instant(start), format_instant(end), *status_values]
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_reminder(row) for row in rows]

    def list_overdue(self, patient_id: str, now: datetime) -> list[MedicationReminder]:
        """Pending reminders past their slot whose snooze has expired, newest first."""
        stamp = format_instant(now)
        placeholders, status_values = _status_params(PENDING_STATUSES)
        query = self._SELECT + f"""
            WHERE r.patient_id = ? AND r.scheduled_for < ?
              AND r.status IN ({placeholders})
              AND (r.snoozed_until IS NULL OR r.snoozed_until <= ?)
              AND p.is_active = 1 AND p.deleted_at IS NULL
            ORDER BY r.scheduled_for DESC
        """
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(query, [patient_id, stamp, *status_values, stamp])
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_reminder(row) for row in rows]

    def cancel_pending_for_prescription(self, prescription_id: str, now: datetime | None = None) -> int:
        """Cancel every pending reminder of a prescription. Returns the number cancelled."""
        placeholders, status_values = _status_params(PENDING_STATUSES)
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            f"""UPDATE medication_reminders SET status = ?, updated_at = ?
                WHERE prescription_id = ? AND status IN ({placeholders})""",
            [ReminderStatus.CANCELLED.value, format_instant(now or utc_now()),
             prescription_id, *status_values],
        )
        cancelled = cursor.rowcount
        conn.commit()
        conn.close()
        return cancelled

    def sweep_missed(self, cutoff: datetime, now: datetime, patient_id: str | None = None) -> int:
        """Persist MISSED for pending reminders scheduled at or before cutoff.

        Reminders with a snooze still running are left alone.
        """
        stamp = format_instant(now)
        placeholders, status_values = _status_params(PENDING_STATUSES)
        query = f"""
            UPDATE medication_reminders SET status = ?, updated_at = ?
            WHERE scheduled_for <= ? AND status IN ({placeholders})
              AND (snoozed_until IS NULL OR snoozed_until <= ?)
        """
        params = [ReminderStatus.MISSED.value, stamp, format_instant(cutoff), *status_values, stamp]
        if patient_id:
            query += " AND patient_id = ?"
            params.append(patient_id)

        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(query, params)
        swept = cursor.rowcount
        conn.commit()
        conn.close()
        return swept

    # Private helpers

    _SELECT = """
        SELECT r.*, p.medication_id AS medication_id, m.name AS medication_name,
               COALESCE(p.custom_dosage, m.dosage) AS dosage
        FROM medication_reminders r
        JOIN prescriptions p ON p.id = r.prescription_id
        JOIN medications m ON m.id = p.medication_id
    """

    _ACTIVE_WINDOW = """
        WHERE r.patient_id = ? AND r.scheduled_for >= ? AND r.scheduled_for <= ?
          AND p.is_active = 1 AND p.deleted_at IS NULL
    """

    def _row_to_reminder(self, row) -> MedicationReminder:
        """Convert a database row to a MedicationReminder object."""
        return MedicationReminder(
            id=row["id"],
            prescription_id=row["prescription_id"],
            patient_id=row["patient_id"],
            scheduled_for=parse_instant(row["scheduled_for"]),
            status=ReminderStatus(row["status"]),
            confirmed_at=parse_instant(row["confirmed_at"]),
            confirmed_by=row["confirmed_by"],
            snoozed_until=parse_instant(row["snoozed_until"]),
            voice_message_id=row["voice_message_id"],
            updated_at=parse_instant(row["updated_at"]),
            medication_id=row["medication_id"],
            medication_name=row["medication_name"],
            dosage=row["dosage"] or "Not specified",
        )
