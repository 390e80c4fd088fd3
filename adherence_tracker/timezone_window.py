"""Calendar-day windows in the fixed reference timezone.

All day bucketing uses UTC+1 (Africa/Tunis, no DST) regardless of the host
or client locale. Nothing here reads the process timezone.
"""

import re
from datetime import date, datetime, timedelta, timezone

from adherence_tracker.errors import ValidationFailure

REFERENCE_OFFSET = timedelta(hours=1)
REFERENCE_TZ = timezone(REFERENCE_OFFSET, "Africa/Tunis")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def day_bounds(calendar_date: date) -> tuple[datetime, datetime]:
    """Return (start_utc, end_utc) covering local midnight to midnight.

    For 2025-12-05 this is 2025-12-04T23:00:00.000Z to 2025-12-05T22:59:59.999Z.
    """
    local_midnight = datetime(
        calendar_date.year, calendar_date.month, calendar_date.day, tzinfo=REFERENCE_TZ
    )
    start_utc = local_midnight.astimezone(timezone.utc)
    end_utc = start_utc + timedelta(days=1) - timedelta(milliseconds=1)
    return start_utc, end_utc


def local_date(instant: datetime) -> date:
    """Calendar date of an instant in the reference timezone."""
    return to_utc(instant).astimezone(REFERENCE_TZ).date()


def today(now: datetime | None = None) -> date:
    return local_date(now or utc_now())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(instant: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def combine_local(calendar_date: date, time_of_day) -> datetime:
    """UTC instant of a local wall-clock time on a local calendar date."""
    local = datetime.combine(calendar_date, time_of_day).replace(tzinfo=REFERENCE_TZ)
    return local.astimezone(timezone.utc)


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD calendar date."""
    if not value or not _DATE_RE.match(value.strip()):
        raise ValidationFailure("Date must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationFailure(f"Invalid calendar date: {value}")


def format_instant(instant: datetime) -> str:
    """Storage form: UTC ISO-8601 with millisecond precision."""
    return to_utc(instant).isoformat(timespec="milliseconds")


def parse_instant(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return to_utc(parsed)
