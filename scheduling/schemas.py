"""
Public records returned by the scheduling core.

References are always resolved: an AppointmentRecord embeds pet, owner and
groomer summaries, never bare ids. Bare ids stay in the storage models.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models import (
    AppointmentStatus,
    PricingStatus,
    ServiceType,
    TimeBlockType,
    UserRole,
)


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    role: UserRole


class PetSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    species: str
    breed: Optional[str] = None


class PriceEntry(BaseModel):
    """One entry of an appointment's append-only price history."""

    amount: Decimal
    timestamp: datetime
    reason: Optional[str] = None
    set_by: UUID


class AppointmentRecord(BaseModel):
    """Fully resolved appointment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    pet: PetSummary
    owner: UserSummary
    groomer: UserSummary
    service_type: ServiceType
    duration_minutes: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    groomer_acknowledged: bool
    auto_completed: bool
    pricing_status: PricingStatus
    total_cost: Optional[Decimal] = None
    price_history: list[PriceEntry] = Field(default_factory=list)
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    actual_duration: Optional[int] = None
    notes: Optional[str] = None
    photos: list[str] = Field(default_factory=list)
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TimeBlockRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    groomer_id: UUID
    start_time: datetime
    end_time: datetime
    block_type: TimeBlockType
    reason: Optional[str] = None
    is_recurring: bool
    recurring_pattern: Optional[dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class TimeSlot(BaseModel):
    """A bookable [start, end) window, in UTC."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


class RecurrencePattern(BaseModel):
    """
    Recurrence request for a time block.

    Weekdays use 0=Sunday ... 6=Saturday. Occurrences are generated from the
    day after the base block through end_date inclusive.
    """

    frequency: Literal["weekly"] = "weekly"
    days_of_week: list[int] = Field(..., min_length=1)
    end_date: date

    @field_validator("days_of_week")
    @classmethod
    def check_weekdays(cls, v: list[int]) -> list[int]:
        invalid = [d for d in v if not 0 <= d <= 6]
        if invalid:
            raise ValueError(f"days_of_week must be between 0 (Sunday) and 6 (Saturday): {invalid}")
        return sorted(set(v))


class GroomerSchedule(BaseModel):
    """A groomer's day: bookings, blocks and what is still free."""

    groomer: UserSummary
    day: date
    is_business_day: bool
    appointments: list[AppointmentRecord]
    time_blocks: list[TimeBlockRecord]
    available_slots: list[TimeSlot]
