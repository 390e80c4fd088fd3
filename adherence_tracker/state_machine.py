"""State machine for a single reminder occurrence."""

import math
from datetime import datetime, timedelta
from enum import Enum

from adherence_tracker import config
from adherence_tracker.errors import InvalidState, ValidationFailure
from adherence_tracker.timezone_window import to_utc


class ReminderStatus(Enum):
    """States of a reminder occurrence."""
    SCHEDULED = "scheduled"
    SENT = "sent"
    CONFIRMED = "confirmed"
    MANUAL_CONFIRM = "manual_confirm"
    MISSED = "missed"
    CANCELLED = "cancelled"


class ConfirmationType(Enum):
    """Who recorded a confirmation."""
    PATIENT = "patient"
    TUTEUR_MANUAL = "tuteur_manual"


PENDING_STATUSES = frozenset({ReminderStatus.SCHEDULED, ReminderStatus.SENT})
TAKEN_STATUSES = frozenset({ReminderStatus.CONFIRMED, ReminderStatus.MANUAL_CONFIRM})
TERMINAL_STATUSES = TAKEN_STATUSES | {ReminderStatus.MISSED, ReminderStatus.CANCELLED}

# Allowed targets from each state. Pending -> SCHEDULED is the snooze self-loop.
TRANSITIONS = {
    ReminderStatus.SCHEDULED: {
        ReminderStatus.SCHEDULED,
        ReminderStatus.SENT,
        ReminderStatus.CONFIRMED,
        ReminderStatus.MANUAL_CONFIRM,
        ReminderStatus.MISSED,
        ReminderStatus.CANCELLED,
    },
    ReminderStatus.SENT: {
        ReminderStatus.SCHEDULED,
        ReminderStatus.SENT,
        ReminderStatus.CONFIRMED,
        ReminderStatus.MANUAL_CONFIRM,
        ReminderStatus.MISSED,
        ReminderStatus.CANCELLED,
    },
    ReminderStatus.CONFIRMED: set(),
    ReminderStatus.MANUAL_CONFIRM: set(),
    ReminderStatus.MISSED: set(),
    ReminderStatus.CANCELLED: set(),
}


def can_transition(current: ReminderStatus, target: ReminderStatus) -> bool:
    return target in TRANSITIONS[current]


def earliest_confirmation(scheduled_for: datetime, grace_minutes: int | None = None) -> datetime:
    """First instant at which a dose may be marked as taken."""
    if grace_minutes is None:
        grace_minutes = config.GRACE_PERIOD_MINUTES
    return to_utc(scheduled_for) - timedelta(minutes=grace_minutes)


def format_wait(minutes: int) -> str:
    """Format a wait as '1h 5min' or '7min'."""
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}min"
    return f"{mins}min"


def check_confirmable(
    status: ReminderStatus,
    scheduled_for: datetime,
    now: datetime,
    grace_minutes: int | None = None,
) -> None:
    """Raise InvalidState unless a confirmation may be applied right now."""
    if grace_minutes is None:
        grace_minutes = config.GRACE_PERIOD_MINUTES
    if status in TAKEN_STATUSES:
        raise InvalidState("This medication has already been marked as taken.")
    if status not in PENDING_STATUSES:
        raise InvalidState(f"Cannot confirm a reminder that is {status.value}.")

    earliest = earliest_confirmation(scheduled_for, grace_minutes)
    now = to_utc(now)
    if now < earliest:
        wait = math.ceil((earliest - now).total_seconds() / 60)
        raise InvalidState(
            f"Cannot confirm more than {grace_minutes} minutes early. "
            f"Try again in {format_wait(wait)}."
        )


def validate_snooze_minutes(minutes) -> int:
    """Snooze durations are whole minutes between 1 and 60."""
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise ValidationFailure("Snooze duration must be a whole number of minutes")
    if not config.MIN_SNOOZE_MINUTES <= minutes <= config.MAX_SNOOZE_MINUTES:
        raise ValidationFailure(
            f"Snooze duration must be between {config.MIN_SNOOZE_MINUTES} "
            f"and {config.MAX_SNOOZE_MINUTES} minutes"
        )
    return minutes


def check_snoozable(status: ReminderStatus) -> None:
    if status not in PENDING_STATUSES:
        raise InvalidState(f"Cannot snooze a reminder that is {status.value}.")


def snooze_until(now: datetime, minutes: int) -> datetime:
    return to_utc(now) + timedelta(minutes=validate_snooze_minutes(minutes))


def is_snoozed(snoozed_until: datetime | None, now: datetime) -> bool:
    return snoozed_until is not None and to_utc(snoozed_until) > to_utc(now)


def is_overdue(
    status: ReminderStatus,
    scheduled_for: datetime,
    snoozed_until: datetime | None,
    now: datetime,
) -> bool:
    """Pending, past its slot and not currently snoozed."""
    return (
        status in PENDING_STATUSES
        and to_utc(scheduled_for) < to_utc(now)
        and not is_snoozed(snoozed_until, now)
    )


def effective_status(
    status: ReminderStatus,
    scheduled_for: datetime,
    snoozed_until: datetime | None,
    now: datetime,
    missed_after_minutes: int | None = None,
) -> ReminderStatus:
    """Status as reported at query time.

    A pending reminder whose slot is older than the missed threshold reads as
    MISSED even before the sweep persists it, unless a snooze is still running.
    """
    if status not in PENDING_STATUSES:
        return status
    if missed_after_minutes is None:
        missed_after_minutes = config.MISSED_AFTER_MINUTES
    cutoff = to_utc(scheduled_for) + timedelta(minutes=missed_after_minutes)
    if cutoff <= to_utc(now) and not is_snoozed(snoozed_until, now):
        return ReminderStatus.MISSED
    return status


def display_status(status: ReminderStatus) -> str:
    """Client-facing label: taken, missed, pending, scheduled or cancelled."""
    if status in TAKEN_STATUSES:
        return "taken"
    if status == ReminderStatus.MISSED:
        return "missed"
    if status == ReminderStatus.SENT:
        return "pending"
    if status == ReminderStatus.SCHEDULED:
        return "scheduled"
    return status.value
