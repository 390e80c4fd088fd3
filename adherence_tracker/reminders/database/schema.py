"""
Medication Reminder Database Schema
Supports prescriptions, recurrence schedules, reminder occurrences and
confirmation audit records.

All instants are UTC ISO-8601 strings with millisecond precision
(e.g. 2025-12-04T23:00:00.000+00:00) so string order is time order.
"""

SCHEMA = """
-- =============================================================================
-- 1. MEDICATIONS - Catalog entries referenced by prescriptions
-- =============================================================================
CREATE TABLE IF NOT EXISTS medications (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    dosage TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_medications_name ON medications(name);


-- =============================================================================
-- 2. PRESCRIPTIONS - A patient's medication order (soft-deleted, never removed)
-- =============================================================================
CREATE TABLE IF NOT EXISTS prescriptions (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    medication_id TEXT NOT NULL,
    prescribed_by TEXT NOT NULL,

    custom_dosage TEXT,
    instructions TEXT,

    -- Local calendar dates (YYYY-MM-DD); end_date NULL = indefinite
    start_date TEXT NOT NULL,
    end_date TEXT,

    is_chronic INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1,
    deleted_at TEXT,

    created_at TEXT,
    updated_at TEXT,

    FOREIGN KEY (medication_id) REFERENCES medications(id)
);

CREATE INDEX IF NOT EXISTS idx_prescriptions_patient ON prescriptions(patient_id);
CREATE INDEX IF NOT EXISTS idx_prescriptions_deleted ON prescriptions(deleted_at);


-- =============================================================================
-- 3. MEDICATION_SCHEDULES - Recurrence rules attached to a prescription
-- =============================================================================
CREATE TABLE IF NOT EXISTS medication_schedules (
    id TEXT PRIMARY KEY,
    prescription_id TEXT NOT NULL,

    -- daily, weekly, interval, monthly, custom
    schedule_type TEXT NOT NULL DEFAULT 'daily',
    scheduled_time TEXT NOT NULL,
    days_of_week TEXT,      -- JSON array: [1, 3, 5] (Monday=1)
    interval_hours INTEGER,

    is_active INTEGER DEFAULT 1,
    created_at TEXT,

    FOREIGN KEY (prescription_id) REFERENCES prescriptions(id)
);

CREATE INDEX IF NOT EXISTS idx_schedules_prescription ON medication_schedules(prescription_id);


-- =============================================================================
-- 4. MEDICATION_REMINDERS - One concrete occurrence and its lifecycle state
-- =============================================================================
-- Status: scheduled, sent, confirmed, manual_confirm, missed, cancelled
CREATE TABLE IF NOT EXISTS medication_reminders (
    id TEXT PRIMARY KEY,
    prescription_id TEXT NOT NULL,
    patient_id TEXT NOT NULL,

    scheduled_for TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'scheduled',

    confirmed_at TEXT,
    confirmed_by TEXT,
    snoozed_until TEXT,
    voice_message_id TEXT,

    created_at TEXT,
    updated_at TEXT,

    UNIQUE (prescription_id, scheduled_for),
    FOREIGN KEY (prescription_id) REFERENCES prescriptions(id)
);

CREATE INDEX IF NOT EXISTS idx_reminders_patient_time ON medication_reminders(patient_id, scheduled_for);
CREATE INDEX IF NOT EXISTS idx_reminders_status ON medication_reminders(status);


-- =============================================================================
-- 5. MEDICATION_CONFIRMATIONS - Append-only confirmation audit trail
-- =============================================================================
CREATE TABLE IF NOT EXISTS medication_confirmations (
    id TEXT PRIMARY KEY,
    reminder_id TEXT NOT NULL UNIQUE,
    confirmed_by TEXT NOT NULL,
    -- patient, tuteur_manual
    confirmation_type TEXT NOT NULL,
    confirmed_at TEXT NOT NULL,

    FOREIGN KEY (reminder_id) REFERENCES medication_reminders(id)
);
"""
