"""
Conflict Detector - overlap checks for a groomer's calendar.

Two intervals [s, e) and [s2, e2) conflict iff s < e2 and e > s2 (half-open
overlap: covers containment in either direction and partial overlap on either
edge, while back-to-back intervals do not conflict).

Only records that occupy the calendar count:
- appointments in CONFIRMED or IN_PROGRESS
- every time block

A slot is free only when neither the appointment set nor the time-block set
conflicts with it.

The pure helpers work on any records exposing id / groomer_id / start_time /
end_time (and status for appointments). The async helpers run the same
predicate as SQL, with row locks, inside the caller's transaction.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import OCCUPYING_STATUSES, Appointment, TimeBlock
from scheduling.errors import ConflictError

logger = logging.getLogger(__name__)


def intervals_overlap(
    start_time: datetime,
    end_time: datetime,
    other_start: datetime,
    other_end: datetime,
) -> bool:
    """Half-open interval intersection test."""
    return start_time < other_end and end_time > other_start


def occupies_calendar(record: Any) -> bool:
    """
    Check whether a record blocks the groomer's calendar.

    Records without a status (time blocks) always occupy.
    """
    status = getattr(record, "status", None)
    return status is None or status in OCCUPYING_STATUSES


def find_conflict(
    subject_id: UUID,
    start_time: datetime,
    end_time: datetime,
    records: Iterable[Any],
    exclude_id: Optional[UUID] = None,
) -> Optional[Any]:
    """
    Return the first record that conflicts with [start_time, end_time), if any.

    Args:
        subject_id: Groomer whose calendar is checked
        start_time: Candidate start (timezone-aware)
        end_time: Candidate end (timezone-aware)
        records: Appointments or time blocks
        exclude_id: Record to ignore (the one being updated)
    """
    for record in records:
        if record.groomer_id != subject_id:
            continue
        if exclude_id is not None and record.id == exclude_id:
            continue
        if not occupies_calendar(record):
            continue
        if intervals_overlap(start_time, end_time, record.start_time, record.end_time):
            return record
    return None


def has_conflict(
    subject_id: UUID,
    start_time: datetime,
    end_time: datetime,
    records: Iterable[Any],
    exclude_id: Optional[UUID] = None,
) -> bool:
    """
    Check if [start_time, end_time) overlaps any occupying record of the subject.

    Example:
        >>> has_conflict(groomer_id, two_pm, three_pm, [appt_2pm_to_3pm])
        True
        >>> has_conflict(groomer_id, three_pm, four_pm, [appt_2pm_to_3pm])
        False
    """
    return find_conflict(subject_id, start_time, end_time, records, exclude_id) is not None


async def find_conflicting_appointment(
    session: AsyncSession,
    groomer_id: UUID,
    start_time: datetime,
    end_time: datetime,
    exclude_id: Optional[UUID] = None,
    lock: bool = True,
) -> Optional[Appointment]:
    """
    Query the first occupying appointment overlapping the interval.

    With lock=True the matching rows are locked (SELECT ... FOR UPDATE) so a
    concurrent booking in the same transaction window waits for us.
    """
    stmt = (
        select(Appointment)
        .where(Appointment.groomer_id == groomer_id)
        .where(Appointment.status.in_(OCCUPYING_STATUSES))
        .where(Appointment.start_time < end_time)
        .where(Appointment.end_time > start_time)
        .order_by(Appointment.start_time)
    )
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    if lock:
        stmt = stmt.with_for_update()

    result = await session.execute(stmt)
    return result.scalars().first()


async def find_conflicting_time_block(
    session: AsyncSession,
    groomer_id: UUID,
    start_time: datetime,
    end_time: datetime,
    exclude_id: Optional[UUID] = None,
    lock: bool = True,
) -> Optional[TimeBlock]:
    """Query the first time block overlapping the interval."""
    stmt = (
        select(TimeBlock)
        .where(TimeBlock.groomer_id == groomer_id)
        .where(TimeBlock.start_time < end_time)
        .where(TimeBlock.end_time > start_time)
        .order_by(TimeBlock.start_time)
    )
    if exclude_id is not None:
        stmt = stmt.where(TimeBlock.id != exclude_id)
    if lock:
        stmt = stmt.with_for_update()

    result = await session.execute(stmt)
    return result.scalars().first()


async def ensure_interval_free(
    session: AsyncSession,
    groomer_id: UUID,
    start_time: datetime,
    end_time: datetime,
    exclude_appointment_id: Optional[UUID] = None,
    exclude_time_block_id: Optional[UUID] = None,
) -> None:
    """
    Raise ConflictError unless both the appointment and time-block sets are free.

    Must be called inside the transaction that performs the write.

    Raises:
        ConflictError: error_code SLOT_TAKEN (appointment) or TIME_BLOCKED (time block)
    """
    appointment = await find_conflicting_appointment(
        session, groomer_id, start_time, end_time, exclude_id=exclude_appointment_id
    )
    if appointment is not None:
        logger.warning(
            f"Slot conflict detected: {start_time.isoformat()} - {end_time.isoformat()}",
            extra={"groomer_id": groomer_id, "appointment_id": appointment.id},
        )
        raise ConflictError(
            "This time slot is no longer available. Please choose another time.",
            error_code="SLOT_TAKEN",
            details={
                "conflicting_appointment_id": str(appointment.id),
                "conflict_start": appointment.start_time.isoformat(),
                "conflict_end": appointment.end_time.isoformat(),
            },
        )

    block = await find_conflicting_time_block(
        session, groomer_id, start_time, end_time, exclude_id=exclude_time_block_id
    )
    if block is not None:
        logger.warning(
            f"Time block conflict detected: {start_time.isoformat()} - {end_time.isoformat()}",
            extra={"groomer_id": groomer_id, "time_block_id": block.id},
        )
        raise ConflictError(
            "The groomer is unavailable at this time.",
            error_code="TIME_BLOCKED",
            details={
                "conflicting_time_block_id": str(block.id),
                "conflict_start": block.start_time.isoformat(),
                "conflict_end": block.end_time.isoformat(),
            },
        )
