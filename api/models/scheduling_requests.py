"""Pydantic models for scheduling request bodies and responses."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from database.models import ServiceType, TimeBlockType
from scheduling.schemas import RecurrencePattern, TimeSlot
from shared.business_calendar import get_business_tz


def assume_business_tz(value: datetime | None) -> datetime | None:
    # Offset-less datetimes are read as business-local wall-clock time
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=get_business_tz())
    return value


class AppointmentRequest(BaseModel):
    """Body of POST /appointments and PUT /appointments/{id}."""

    pet_id: UUID
    groomer_id: UUID
    service_type: ServiceType
    start_time: datetime

    @field_validator("start_time")
    @classmethod
    def ensure_business_tz(cls, v: datetime) -> datetime:
        return assume_business_tz(v)


class CompleteServiceRequest(BaseModel):
    notes: str | None = Field(None, max_length=2000)
    photos: list[str] = Field(default_factory=list)


class SetPricingRequest(BaseModel):
    amount: Decimal = Field(..., max_digits=10, decimal_places=2)
    reason: str | None = Field(None, max_length=500)


class CreateTimeBlockRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    block_type: TimeBlockType = TimeBlockType.UNAVAILABLE
    reason: str | None = None
    recurrence: RecurrencePattern | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def ensure_business_tz(cls, v: datetime) -> datetime:
        return assume_business_tz(v)


class UpdateTimeBlockRequest(BaseModel):
    start_time: datetime | None = None
    end_time: datetime | None = None
    block_type: TimeBlockType | None = None
    reason: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def ensure_business_tz(cls, v: datetime | None) -> datetime | None:
        return assume_business_tz(v)


class AvailabilityResponse(BaseModel):
    groomer_id: UUID
    date: date
    duration_minutes: int
    slots: list[TimeSlot]
