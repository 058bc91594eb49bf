"""
Slot Generator - bookable windows for a groomer on a given date.

Algorithm:
1. Closed day -> [] (not an error)
2. Take the business window of the date
3. Enumerate whole-hour starts across the window, keeping a candidate only
   if the whole service fits before closing
4. Convert candidates from business-local time to UTC
5. Drop candidates conflicting with confirmed/in-progress appointments
6. Drop candidates conflicting with time blocks
7. Drop candidates whose start is not strictly after now
8. Return in chronological order (enumeration order)

Starts are hour-aligned only; half-hour starts are never offered.

Usage:
    from scheduling.services.availability_service import get_available_slots

    slots = await get_available_slots(
        groomer_id=uuid,
        target_date=date(2024, 1, 1),
        duration_minutes=60,
    )
"""

import logging
from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import OCCUPYING_STATUSES, SERVICE_DURATIONS, Appointment, ServiceType, TimeBlock
from scheduling.errors import ValidationError
from scheduling.schemas import (
    AppointmentRecord,
    GroomerSchedule,
    TimeBlockRecord,
    TimeSlot,
    UserSummary,
)
from scheduling.services.directory_service import get_groomer
from scheduling.transactions.unit_of_work import sweep_past_due
from scheduling.validators.conflict_detector import has_conflict
from shared.business_calendar import (
    day_bounds_utc,
    get_business_hours,
    is_business_day,
    local_datetime,
    to_business_date,
)

logger = logging.getLogger(__name__)

ALLOWED_DURATIONS = frozenset(SERVICE_DURATIONS.values())
SLOT_STEP = timedelta(hours=1)


def validate_duration(duration_minutes: int) -> int:
    """
    Check a requested duration against the service packages.

    Raises:
        ValidationError: Duration is not 60 or 120
    """
    if duration_minutes not in ALLOWED_DURATIONS:
        raise ValidationError(
            f"Duration must be one of {sorted(ALLOWED_DURATIONS)} minutes",
            error_code="INVALID_DURATION",
            details={"duration_minutes": duration_minutes},
        )
    return duration_minutes


def generate_candidate_slots(target_date: date, duration_minutes: int) -> list[TimeSlot]:
    """
    Hour-aligned candidate slots inside the business window of a date, in UTC.

    Example:
        >>> slots = generate_candidate_slots(date(2024, 1, 1), 120)  # Monday 11-20
        >>> len(slots)  # 11:00 ... 18:00 local
        8
    """
    hours = get_business_hours(target_date)
    if hours is None:
        return []

    duration = timedelta(minutes=duration_minutes)
    window_start = local_datetime(target_date, hours.start_hour)
    window_end = local_datetime(target_date, hours.end_hour)

    slots = []
    current = window_start
    while current + duration <= window_end:
        slots.append(
            TimeSlot(start=current.astimezone(UTC), end=(current + duration).astimezone(UTC))
        )
        current += SLOT_STEP
    return slots


def filter_available_slots(
    groomer_id: UUID,
    candidates: Iterable[TimeSlot],
    appointments: Iterable[Any],
    time_blocks: Iterable[Any],
    now: datetime,
) -> list[TimeSlot]:
    """Drop candidates that conflict with the groomer's calendar or are not in the future."""
    appointments = list(appointments)
    time_blocks = list(time_blocks)
    return [
        slot
        for slot in candidates
        if not has_conflict(groomer_id, slot.start, slot.end, appointments)
        and not has_conflict(groomer_id, slot.start, slot.end, time_blocks)
        and slot.start > now
    ]


async def _fetch_day_records(
    session: AsyncSession,
    groomer_id: UUID,
    target_date: date,
    occupying_only: bool = True,
) -> tuple[list[Appointment], list[TimeBlock]]:
    day_start, day_end = day_bounds_utc(target_date)

    appt_stmt = (
        select(Appointment)
        .where(Appointment.groomer_id == groomer_id)
        .where(Appointment.start_time < day_end)
        .where(Appointment.end_time > day_start)
        .order_by(Appointment.start_time)
    )
    if occupying_only:
        appt_stmt = appt_stmt.where(Appointment.status.in_(OCCUPYING_STATUSES))

    block_stmt = (
        select(TimeBlock)
        .where(TimeBlock.groomer_id == groomer_id)
        .where(TimeBlock.start_time < day_end)
        .where(TimeBlock.end_time > day_start)
        .order_by(TimeBlock.start_time)
    )

    appointments = list((await session.execute(appt_stmt)).scalars().all())
    time_blocks = list((await session.execute(block_stmt)).scalars().all())
    return appointments, time_blocks


async def get_available_slots(
    groomer_id: UUID,
    target_date: date | datetime,
    duration_minutes: int,
    now: Optional[datetime] = None,
) -> list[TimeSlot]:
    """
    Get all bookable slots for a groomer on a date.

    Args:
        groomer_id: Groomer UUID
        target_date: Business date (datetimes are normalized to the business timezone)
        duration_minutes: 60 (basic) or 120 (full)
        now: Reference instant (defaults to the current time)

    Returns:
        Slots in chronological order; [] on closed days

    Raises:
        ValidationError: Unsupported duration
        NotFoundError: Groomer does not exist
    """
    validate_duration(duration_minutes)
    check_date = to_business_date(target_date)
    if now is None:
        now = datetime.now(UTC)

    async with get_async_session() as session:
        await get_groomer(session, groomer_id)

        if not is_business_day(check_date):
            logger.info(f"No slots available on {check_date}: business closed")
            return []

        appointments, time_blocks = await _fetch_day_records(session, groomer_id, check_date)

    candidates = generate_candidate_slots(check_date, duration_minutes)
    slots = filter_available_slots(groomer_id, candidates, appointments, time_blocks, now)

    logger.info(
        f"Found {len(slots)}/{len(candidates)} available slots on {check_date}",
        extra={"groomer_id": groomer_id},
    )
    return slots


async def get_groomer_schedule(
    groomer_id: UUID,
    target_date: date | datetime,
    now: Optional[datetime] = None,
) -> GroomerSchedule:
    """
    A groomer's day view: every appointment touching the date (past-due ones
    swept to completed), time blocks, and the free basic-service slots.

    Raises:
        NotFoundError: Groomer does not exist
    """
    check_date = to_business_date(target_date)
    if now is None:
        now = datetime.now(UTC)

    async with get_async_session() as session:
        groomer = await get_groomer(session, groomer_id)
        appointments, time_blocks = await _fetch_day_records(
            session, groomer_id, check_date, occupying_only=False
        )
        await sweep_past_due(session, appointments, now)

        appointment_records = [AppointmentRecord.model_validate(a) for a in appointments]
        block_records = [TimeBlockRecord.model_validate(b) for b in time_blocks]
        groomer_summary = UserSummary.model_validate(groomer)

    candidates = generate_candidate_slots(check_date, SERVICE_DURATIONS[ServiceType.BASIC])
    slots = filter_available_slots(groomer_id, candidates, appointments, time_blocks, now)

    return GroomerSchedule(
        groomer=groomer_summary,
        day=check_date,
        is_business_day=is_business_day(check_date),
        appointments=appointment_records,
        time_blocks=block_records,
        available_slots=slots,
    )
