"""Request models validated with Pydantic."""

import re
from datetime import date, datetime

from pydantic import BaseModel, Field, ValidationError, field_validator

from adherence_tracker import config
from adherence_tracker.errors import ValidationFailure
from adherence_tracker.reminders.database.prescription_repository import ScheduleType


class DateQuery(BaseModel):
    """Calendar date in the reference timezone, YYYY-MM-DD."""

    date: str = Field(..., description="Local calendar date")

    @field_validator("date")
    @classmethod
    def check_format(cls, v):
        if not re.match(r"^\d{4}-\d{2}-\d{2}$", v.strip()):
            raise ValueError("Date must be in YYYY-MM-DD format")
        date.fromisoformat(v.strip())
        return v.strip()

    @property
    def calendar_date(self):
        return date.fromisoformat(self.date)


class ConfirmRequest(BaseModel):
    """One or many reminder IDs. Blank IDs are dropped; an empty list is a no-op."""

    reminder_ids: list[str] = Field(default_factory=list)

    @field_validator("reminder_ids", mode="before")
    @classmethod
    def normalize_ids(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [item.strip() for item in v if isinstance(item, str) and item.strip()]


class SnoozeRequest(BaseModel):
    reminder_id: str = Field(..., min_length=1, description="Reminder to snooze")
    snooze_duration_minutes: int = Field(
        config.DEFAULT_SNOOZE_MINUTES,
        ge=config.MIN_SNOOZE_MINUTES,
        le=config.MAX_SNOOZE_MINUTES,
    )


class UpcomingQuery(BaseModel):
    days: int = Field(config.SYNC_HORIZON_DAYS, ge=1, le=365)
    last_sync: datetime | None = None


class ScheduleRequest(BaseModel):
    schedule_type: ScheduleType = ScheduleType.DAILY
    scheduled_time: datetime
    days_of_week: list[int] = Field(default_factory=list)
    interval_hours: int | None = Field(None, gt=0)

    @field_validator("days_of_week")
    @classmethod
    def check_days(cls, v):
        for day in v:
            if day < 1 or day > 7:
                raise ValueError("Days of week must be between 1 (Monday) and 7 (Sunday)")
        return sorted(set(v))


class PrescriptionRequest(BaseModel):
    patient_id: str = Field(..., min_length=1)
    medication_name: str = Field(..., min_length=1)
    medication_dosage: str | None = None
    custom_dosage: str | None = None
    instructions: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_chronic: bool = False
    schedules: list[ScheduleRequest] = Field(default_factory=list)


def parse_request(model: type[BaseModel], data: dict):
    """Validate data against model, raising ValidationFailure with a readable message."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid request")
        raise ValidationFailure(f"{location}: {message}" if location else message)
