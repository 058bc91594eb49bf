"""
Transaction helpers shared by the scheduling services.

- commit_or_conflict: commit, turning overlap constraint violations and
  serialization failures into ConflictError
- load_appointment_for_update: sweep, then re-read under SERIALIZABLE with a
  row lock
- sweep_past_due: the read-time auto-complete as a conditional UPDATE
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import begin_serializable
from database.models import OCCUPYING_STATUSES, Appointment
from scheduling.errors import ConflictError, NotFoundError
from scheduling.fsm.appointment_fsm import auto_complete_values, is_past_due

logger = logging.getLogger(__name__)

# PostgreSQL serialization_failure / deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})

OVERLAP_CONSTRAINTS = frozenset(
    {"excl_appointments_groomer_overlap", "excl_time_blocks_groomer_overlap"}
)


def _sqlstate(error: DBAPIError) -> Optional[str]:
    orig = error.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


def is_serialization_failure(error: DBAPIError) -> bool:
    return _sqlstate(error) in RETRYABLE_SQLSTATES


def is_overlap_violation(error: IntegrityError) -> bool:
    """True when the violated constraint is one of the groomer overlap exclusions."""
    orig = error.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if getattr(candidate, "constraint_name", None) in OVERLAP_CONSTRAINTS:
            return True
    return any(name in str(orig) for name in OVERLAP_CONSTRAINTS)


async def commit_or_conflict(session: AsyncSession, **log_context: Any) -> None:
    """
    Commit the current transaction.

    Raises:
        ConflictError: the storage layer rejected an overlapping write, or a
            concurrent transaction made ours unserializable
        IntegrityError / DBAPIError: any other storage failure, after rollback
    """
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if not is_overlap_violation(e):
            logger.error(f"Integrity error on commit: {e.orig}", extra=log_context, exc_info=True)
            raise
        logger.warning(f"Overlap rejected by storage constraint: {e.orig}", extra=log_context)
        raise ConflictError(
            "This time slot is no longer available. Please choose another time.",
            error_code="SLOT_TAKEN",
            details={"reason": "constraint_violation"},
        ) from e
    except DBAPIError as e:
        await session.rollback()
        if not is_serialization_failure(e):
            logger.error(f"Database error on commit: {e}", extra=log_context, exc_info=True)
            raise
        logger.warning("Serialization failure on commit", extra=log_context)
        raise ConflictError(
            "This time slot was booked concurrently. Please choose another time.",
            error_code="CONCURRENT_UPDATE",
            details={"reason": "serialization_failure"},
        ) from e


async def get_appointment_or_404(
    session: AsyncSession,
    appointment_id: UUID,
    lock: bool = False,
) -> Appointment:
    """
    Load an appointment, always refreshing any copy already in the session.

    Raises:
        NotFoundError: No such appointment
    """
    stmt = (
        select(Appointment)
        .where(Appointment.id == appointment_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()

    appointment = (await session.execute(stmt)).scalar_one_or_none()
    if appointment is None:
        raise NotFoundError(
            "Appointment not found",
            error_code="APPOINTMENT_NOT_FOUND",
            details={"appointment_id": str(appointment_id)},
        )
    return appointment


async def sweep_past_due(
    session: AsyncSession,
    appointments: Iterable[Appointment],
    now: datetime,
) -> int:
    """
    Complete every past-due appointment among those loaded.

    Each write is conditional on the row still being confirmed/in_progress,
    so a concurrent sweep (or a cancel/no-show that got there first) turns
    it into a no-op. Past-due instances are refreshed in place afterwards.

    Returns:
        Number of rows this call actually updated
    """
    past_due = [a for a in appointments if is_past_due(a, now)]
    if not past_due:
        return 0

    swept = 0
    for appointment in past_due:
        result = await session.execute(
            update(Appointment)
            .where(Appointment.id == appointment.id)
            .where(Appointment.status.in_(OCCUPYING_STATUSES))
            .values(**auto_complete_values(appointment, now))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            swept += 1
            logger.info(
                "Appointment auto-completed after scheduled end",
                extra={"appointment_id": appointment.id, "groomer_id": appointment.groomer_id},
            )
        else:
            logger.debug(
                "Past-due appointment already settled by another writer",
                extra={"appointment_id": appointment.id},
            )

    await session.commit()
    await session.execute(
        select(Appointment)
        .where(Appointment.id.in_([a.id for a in past_due]))
        .execution_options(populate_existing=True)
    )
    return swept


async def load_appointment_for_update(
    session: AsyncSession,
    appointment_id: UUID,
    now: datetime,
) -> Appointment:
    """
    Fetch an appointment for a state change.

    Runs the sweep first in its own short transaction, then opens a
    SERIALIZABLE transaction and re-reads the row with FOR UPDATE.
    """
    appointment = await get_appointment_or_404(session, appointment_id)
    await sweep_past_due(session, [appointment], now)
    await session.commit()

    await begin_serializable(session)
    return await get_appointment_or_404(session, appointment_id, lock=True)


def appointment_event_payload(appointment: Appointment) -> dict[str, Any]:
    """Payload of booking.* events."""
    return {
        "appointment_id": str(appointment.id),
        "pet_id": str(appointment.pet_id),
        "owner_id": str(appointment.owner_id),
        "groomer_id": str(appointment.groomer_id),
        "service_type": appointment.service_type.value,
        "start_time": appointment.start_time.isoformat(),
        "end_time": appointment.end_time.isoformat(),
        "status": appointment.status.value,
    }
