"""Expand a schedule's recurrence rule into concrete instants for one calendar day."""

import math
from datetime import date, datetime, timedelta

from adherence_tracker.reminders.database.prescription_repository import (
    MedicationSchedule,
    Prescription,
    ScheduleType,
)
from adherence_tracker.timezone_window import REFERENCE_TZ, combine_local, day_bounds, to_utc


def local_time_of_day(schedule: MedicationSchedule):
    """Wall-clock time of the schedule in the reference timezone."""
    return to_utc(schedule.scheduled_time).astimezone(REFERENCE_TZ).time()


def occurrences_for_date(
    schedule: MedicationSchedule,
    on_date: date,
    prescription: Prescription | None = None,
) -> list[datetime]:
    """Return the UTC instants at which the schedule fires on a local calendar date.

    Returns [] when the schedule is inactive or on_date lies outside the
    prescription's active window. Raises ValidationFailure for malformed rules.
    """
    if not schedule.is_active:
        return []
    if prescription is not None and not prescription.is_active_on(on_date):
        return []

    schedule.validate()
    kind = schedule.schedule_type

    if kind == ScheduleType.INTERVAL:
        return _interval_occurrences(schedule, on_date)

    time_of_day = local_time_of_day(schedule)

    if kind == ScheduleType.DAILY:
        return [combine_local(on_date, time_of_day)]

    if kind in (ScheduleType.WEEKLY, ScheduleType.CUSTOM):
        if on_date.isoweekday() in schedule.days_of_week:
            return [combine_local(on_date, time_of_day)]
        return []

    if kind == ScheduleType.MONTHLY:
        anchor = to_utc(schedule.scheduled_time).astimezone(REFERENCE_TZ).date()
        # Months without the anchor day get no dose
        if on_date.day == anchor.day:
            return [combine_local(on_date, time_of_day)]
        return []

    return []


def _interval_occurrences(schedule: MedicationSchedule, on_date: date) -> list[datetime]:
    """Every interval_hours from scheduled_time, restricted to the day's window."""
    anchor = to_utc(schedule.scheduled_time)
    step = timedelta(hours=schedule.interval_hours)
    start, end = day_bounds(on_date)

    if end < anchor:
        return []

    # First step index landing at or after the window start
    first = max(0, math.ceil((start - anchor) / step))
    occurrences = []
    instant = anchor + first * step
    while instant <= end:
        occurrences.append(instant)
        instant += step
    return occurrences
