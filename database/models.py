"""
SQLAlchemy ORM models for the scheduling database.

This module defines the tables:
- users: Owners and groomers (reference rows, managed by the accounts subsystem)
- pets: Pets owned by owners (reference rows, managed by the pets subsystem)
- appointments: Grooming bookings and their lifecycle state
- time_blocks: Groomer-declared unavailability

All models use:
- UUID primary keys (auto-generated)
- Timezone-aware timestamps normalized to UTC
- JSON (JSONB on PostgreSQL) for price history and recurrence metadata

On PostgreSQL the scheduling tables also carry exclusion constraints that make
overlapping bookings impossible at the storage layer (see _EXCLUSION_DDL).
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    Uuid,
    event,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """
    Timestamp column that always hands back aware UTC datetimes.

    PostgreSQL stores TIMESTAMP WITH TIME ZONE natively; backends without
    timezone support get naive UTC values which are re-tagged on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(UTC)
        if dialect.name != "postgresql":
            value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


JSONType = JSON().with_variant(JSONB, "postgresql")


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class UserRole(str, PyEnum):
    """Role of an account."""

    OWNER = "owner"
    GROOMER = "groomer"


class ServiceType(str, PyEnum):
    """Grooming package. Determines the appointment duration."""

    BASIC = "basic"
    FULL = "full"


# Closed mapping, never supplied by callers
SERVICE_DURATIONS: dict[ServiceType, int] = {
    ServiceType.BASIC: 60,
    ServiceType.FULL: 120,
}


class AppointmentStatus(str, PyEnum):
    """Appointment lifecycle status."""

    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    def __str__(self):
        return self.value


# Statuses that hold a place on the groomer's calendar
OCCUPYING_STATUSES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
)


class PricingStatus(str, PyEnum):
    """Whether the groomer has priced the appointment yet."""

    PENDING = "pending"
    SET = "set"


class TimeBlockType(str, PyEnum):
    """Kind of groomer unavailability."""

    UNAVAILABLE = "unavailable"
    BREAK = "break"
    LUNCH = "lunch"
    PERSONAL = "personal"
    MAINTENANCE = "maintenance"


def _enum_column(enum_cls: type[PyEnum], name: str) -> SQLEnum:
    # values_callable stores .value ("in_progress") instead of .name ("IN_PROGRESS")
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda x: [e.value for e in x],
    )


# ============================================================================
# Reference Models
# ============================================================================


class User(Base):
    """
    User model - Owners and groomers.

    Owned by the accounts subsystem; scheduling only reads role and contact data.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[UserRole] = mapped_column(_enum_column(UserRole, "user_role"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"


class Pet(Base):
    """Pet model - Pets that can be booked in, each owned by one owner."""

    __tablename__ = "pets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    species: Mapped[str] = mapped_column(String(20), nullable=False)
    breed: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    owner: Mapped["User"] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Pet(id={self.id}, name='{self.name}', owner_id={self.owner_id})>"


# ============================================================================
# Scheduling Models
# ============================================================================


class Appointment(Base):
    """
    Appointment model - Grooming bookings with lifecycle state.

    Tracks the scheduled interval, the actual service times, and an
    append-only price history. Rows are never deleted; cancellation is a
    terminal status.
    """

    __tablename__ = "appointments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # References
    pet_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("pets.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    owner_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    groomer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    # Service
    service_type: Mapped[ServiceType] = mapped_column(
        _enum_column(ServiceType, "service_type"), nullable=False
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Scheduling
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # Status tracking
    status: Mapped[AppointmentStatus] = mapped_column(
        _enum_column(AppointmentStatus, "appointment_status"),
        default=AppointmentStatus.CONFIRMED,
        nullable=False,
        index=True,
    )
    groomer_acknowledged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    auto_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Pricing
    pricing_status: Mapped[PricingStatus] = mapped_column(
        _enum_column(PricingStatus, "pricing_status"),
        default=PricingStatus.PENDING,
        nullable=False,
    )
    total_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    price_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, default=list, nullable=False
    )

    # Actual service times
    actual_start_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    actual_end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    actual_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Completion record
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    photos: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships (always loaded; public records embed them)
    pet: Mapped["Pet"] = relationship("Pet", lazy="selectin")
    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id], lazy="selectin")
    groomer: Mapped["User"] = relationship("User", foreign_keys=[groomer_id], lazy="selectin")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_appointment_end_after_start"),
        CheckConstraint("duration_minutes > 0", name="check_appointment_duration_positive"),
        # Composite index for overlap queries per groomer
        Index("idx_appointments_groomer_time", "groomer_id", "start_time", "end_time"),
    )

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, groomer_id={self.groomer_id}, status='{self.status.value}')>"


class TimeBlock(Base):
    """
    TimeBlock model - Groomer-declared unavailability.

    Recurring requests are materialized as one row per occurrence;
    recurring_pattern is kept for display only.
    """

    __tablename__ = "time_blocks"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    groomer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    block_type: Mapped[TimeBlockType] = mapped_column(
        _enum_column(TimeBlockType, "time_block_type"),
        default=TimeBlockType.UNAVAILABLE,
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_pattern: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_time_block_end_after_start"),
        Index("idx_time_blocks_groomer_time", "groomer_id", "start_time", "end_time"),
    )

    def __repr__(self) -> str:
        return f"<TimeBlock(id={self.id}, groomer_id={self.groomer_id}, type='{self.block_type.value}')>"


# ============================================================================
# Storage-level overlap protection (PostgreSQL only)
# ============================================================================

_BTREE_GIST_DDL = DDL("CREATE EXTENSION IF NOT EXISTS btree_gist")

_EXCLUSION_DDL = {
    Appointment.__table__: DDL(
        "ALTER TABLE appointments ADD CONSTRAINT excl_appointments_groomer_overlap "
        "EXCLUDE USING gist (groomer_id WITH =, tstzrange(start_time, end_time, '[)') WITH &&) "
        "WHERE (status IN ('confirmed', 'in_progress'))"
    ),
    TimeBlock.__table__: DDL(
        "ALTER TABLE time_blocks ADD CONSTRAINT excl_time_blocks_groomer_overlap "
        "EXCLUDE USING gist (groomer_id WITH =, tstzrange(start_time, end_time, '[)') WITH &&)"
    ),
}

event.listen(Base.metadata, "before_create", _BTREE_GIST_DDL.execute_if(dialect="postgresql"))
for _table, _ddl in _EXCLUSION_DDL.items():
    event.listen(_table, "after_create", _ddl.execute_if(dialect="postgresql"))
