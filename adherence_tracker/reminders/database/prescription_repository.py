"""Prescription and schedule repository."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from adherence_tracker.errors import ValidationFailure
from adherence_tracker.timezone_window import format_instant, parse_instant, utc_now

from .connection import get_connection


class ScheduleType(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    INTERVAL = "interval"
    MONTHLY = "monthly"
    CUSTOM = "custom"


@dataclass
class Medication:
    id: str
    name: str
    dosage: str | None = None


@dataclass
class Prescription:
    id: str
    patient_id: str
    medication_id: str
    prescribed_by: str
    start_date: date
    end_date: date | None = None
    custom_dosage: str | None = None
    instructions: str | None = None
    is_chronic: bool = False
    is_active: bool = True
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # Joined from medications
    medication_name: str | None = None
    medication_dosage: str | None = None

    def is_active_on(self, on_date: date) -> bool:
        """Active, not deleted, and on_date within [start_date, end_date]."""
        if not self.is_active or self.deleted_at is not None:
            return False
        if on_date < self.start_date:
            return False
        return self.end_date is None or on_date <= self.end_date

    @property
    def dosage(self) -> str:
        return self.custom_dosage or self.medication_dosage or "Not specified"


@dataclass
class MedicationSchedule:
    id: str
    prescription_id: str
    schedule_type: ScheduleType
    scheduled_time: datetime
    days_of_week: list[int] = field(default_factory=list)
    interval_hours: int | None = None
    is_active: bool = True

    def validate(self) -> None:
        """Each schedule type has exactly one interpretation."""
        if self.schedule_type in (ScheduleType.WEEKLY, ScheduleType.CUSTOM):
            if not self.days_of_week:
                raise ValidationFailure(
                    f"A {self.schedule_type.value} schedule needs at least one day of week"
                )
            if any(day < 1 or day > 7 for day in self.days_of_week):
                raise ValidationFailure("Days of week must be between 1 (Monday) and 7 (Sunday)")
        if self.schedule_type == ScheduleType.INTERVAL:
            if not self.interval_hours or self.interval_hours <= 0:
                raise ValidationFailure("An interval schedule needs interval_hours > 0")


class PrescriptionRepository:
    """Repository for prescriptions, their schedules and the medication catalog."""

    def find_or_create_medication(self, name: str, dosage: str | None = None) -> Medication:
        """Return the catalog entry with this name, creating it if needed."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM medications WHERE name = ?", (name,))
        row = cursor.fetchone()
        if row:
            conn.close()
            return Medication(id=row["id"], name=row["name"], dosage=row["dosage"])

        medication = Medication(id=str(uuid.uuid4()), name=name, dosage=dosage)
        cursor.execute(
            "INSERT INTO medications (id, name, dosage) VALUES (?, ?, ?)",
            (medication.id, medication.name, medication.dosage),
        )
        conn.commit()
        conn.close()
        return medication

    def create(self, prescription: Prescription, now: datetime | None = None) -> Prescription:
        """Create a new prescription."""
        conn = get_connection()
        cursor = conn.cursor()

        prescription.id = prescription.id or str(uuid.uuid4())
        stamp = format_instant(now or utc_now())

        cursor.execute("""
            INSERT INTO prescriptions (
                id, patient_id, medication_id, prescribed_by, custom_dosage, instructions,
                start_date, end_date, is_chronic, is_active, deleted_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            prescription.id, prescription.patient_id, prescription.medication_id,
            prescription.prescribed_by, prescription.custom_dosage, prescription.instructions,
            prescription.start_date.isoformat(),
            prescription.end_date.isoformat() if prescription.end_date else None,
            int(prescription.is_chronic), int(prescription.is_active),
            format_instant(prescription.deleted_at) if prescription.deleted_at else None,
            stamp, stamp,
        ))

        conn.commit()
        conn.close()

        prescription.created_at = parse_instant(stamp)
        prescription.updated_at = parse_instant(stamp)
        return prescription

    def add_schedule(self, schedule: MedicationSchedule) -> MedicationSchedule:
        """Attach a validated recurrence rule to a prescription."""
        schedule.validate()
        schedule.id = schedule.id or str(uuid.uuid4())

        conn = get_connection()
        conn.execute("""
            INSERT INTO medication_schedules (
                id, prescription_id, schedule_type, scheduled_time, days_of_week,
                interval_hours, is_active, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            schedule.id, schedule.prescription_id, schedule.schedule_type.value,
            format_instant(schedule.scheduled_time),
            json.dumps(sorted(schedule.days_of_week)) if schedule.days_of_week else None,
            schedule.interval_hours, int(schedule.is_active),
            format_instant(utc_now()),
        ))
        conn.commit()
        conn.close()
        return schedule

    def get_by_id(self, prescription_id: str) -> Prescription | None:
        """Get a prescription by ID, including deleted ones."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(self._SELECT + " WHERE p.id = ?", (prescription_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_prescription(row) if row else None

    def find_active_prescriptions(
        self,
        patient_id: str | None = None,
        on_date: date | None = None,
    ) -> list[Prescription]:
        """Active, non-deleted prescriptions, optionally scoped to a patient and date."""
        conn = get_connection()
        cursor = conn.cursor()

        query = self._SELECT + " WHERE p.is_active = 1 AND p.deleted_at IS NULL"
        params = []

        if patient_id:
            query += " AND p.patient_id = ?"
            params.append(patient_id)

        if on_date:
            query += " AND p.start_date <= ? AND (p.end_date IS NULL OR p.end_date >= ?)"
            params.extend([on_date.isoformat(), on_date.isoformat()])

        query += " ORDER BY p.created_at"

        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_prescription(row) for row in rows]

    def find_schedules(self, prescription_id: str, active_only: bool = True) -> list[MedicationSchedule]:
        """Get the recurrence rules of a prescription."""
        conn = get_connection()
        cursor = conn.cursor()

        query = "SELECT * FROM medication_schedules WHERE prescription_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY scheduled_time"

        cursor.execute(query, (prescription_id,))
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_schedule(row) for row in rows]

    def soft_delete(self, prescription_id: str, now: datetime | None = None) -> bool:
        """Mark a prescription deleted. Returns False if missing or already deleted."""
        stamp = format_instant(now or utc_now())
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            """UPDATE prescriptions SET deleted_at = ?, updated_at = ?
               WHERE id = ? AND deleted_at IS NULL""",
            (stamp, stamp, prescription_id),
        )
        changed = cursor.rowcount == 1
        conn.commit()
        conn.close()
        return changed

    def deactivate(self, prescription_id: str, now: datetime | None = None) -> bool:
        """Set is_active = 0. Returns False if missing or already inactive."""
        stamp = format_instant(now or utc_now())
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE prescriptions SET is_active = 0, updated_at = ? WHERE id = ? AND is_active = 1",
            (stamp, prescription_id),
        )
        changed = cursor.rowcount == 1
        conn.commit()
        conn.close()
        return changed

    def deleted_since(self, patient_id: str, since: datetime) -> list[str]:
        """IDs of the patient's prescriptions soft-deleted at or after `since`."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            """SELECT id FROM prescriptions
               WHERE patient_id = ? AND deleted_at IS NOT NULL AND deleted_at >= ?
               ORDER BY deleted_at""",
            (patient_id, format_instant(since)),
        )
        rows = cursor.fetchall()
        conn.close()
        return [row["id"] for row in rows]

    def last_modified(self, patient_id: str) -> datetime | None:
        """Most recent updated_at among the patient's active prescriptions."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT MAX(updated_at) AS last_modified FROM prescriptions WHERE patient_id = ? AND is_active = 1",
            (patient_id,),
        )
        row = cursor.fetchone()
        conn.close()
        return parse_instant(row["last_modified"]) if row and row["last_modified"] else None

    # Private helpers

    _SELECT = """
        SELECT p.*, m.name AS medication_name, m.dosage AS medication_dosage
        FROM prescriptions p
        JOIN medications m ON m.id = p.medication_id
    """

    def _row_to_prescription(self, row) -> Prescription:
        """Convert a database row to a Prescription object."""
        return Prescription(
            id=row["id"],
            patient_id=row["patient_id"],
            medication_id=row["medication_id"],
            prescribed_by=row["prescribed_by"],
            start_date=date.fromisoformat(row["start_date"]),
            end_date=date.fromisoformat(row["end_date"]) if row["end_date"] else None,
            custom_dosage=row["custom_dosage"],
            instructions=row["instructions"],
            is_chronic=bool(row["is_chronic"]),
            is_active=bool(row["is_active"]),
            deleted_at=parse_instant(row["deleted_at"]),
            created_at=parse_instant(row["created_at"]),
            updated_at=parse_instant(row["updated_at"]),
            medication_name=row["medication_name"],
            medication_dosage=row["medication_dosage"],
        )

    def _row_to_schedule(self, row) -> MedicationSchedule:
        """Convert a database row to a MedicationSchedule object."""
        return MedicationSchedule(
            id=row["id"],
            prescription_id=row["prescription_id"],
            schedule_type=ScheduleType(row["schedule_type"]),
            scheduled_time=parse_instant(row["scheduled_time"]),
            days_of_week=json.loads(row["days_of_week"]) if row["days_of_week"] else [],
            interval_hours=row["interval_hours"],
            is_active=bool(row["is_active"]),
        )
