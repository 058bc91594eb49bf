"""
Appointment Service - reads and lifecycle actions on existing appointments.

Reads (get_appointment, list_appointments) run the auto-complete sweep before
returning, so callers must tolerate a status changing between two reads.

Owner actions: cancel_appointment (creation and rescheduling live in
scheduling.transactions.booking_transaction).
Groomer actions: acknowledge_appointment, start_service, complete_service,
set_pricing, mark_no_show.

Every action loads the appointment under a row lock, checks the caller, lets
AppointmentLifecycle validate and apply the transition, then commits.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select

from database.connection import get_async_session
from database.models import OCCUPYING_STATUSES, Appointment, AppointmentStatus, User, UserRole
from scheduling.errors import AuthorizationError
from scheduling.events import BookingEvent, publish
from scheduling.fsm.appointment_fsm import AppointmentLifecycle
from scheduling.schemas import AppointmentRecord
from scheduling.services.directory_service import (
    get_actor,
    get_user,
    require_appointment_owner,
    require_assigned_groomer,
)
from scheduling.transactions.unit_of_work import (
    appointment_event_payload,
    commit_or_conflict,
    get_appointment_or_404,
    load_appointment_for_update,
    sweep_past_due,
)

logger = logging.getLogger(__name__)


def _party_column(user: User):
    return Appointment.owner_id if user.role == UserRole.OWNER else Appointment.groomer_id


def _require_party(appointment: Appointment, user: User) -> None:
    if user.id not in (appointment.owner_id, appointment.groomer_id):
        logger.warning(
            "Caller is not a party to appointment",
            extra={"actor_id": user.id, "appointment_id": appointment.id},
        )
        raise AuthorizationError(
            "You do not have access to this appointment",
            error_code="NOT_APPOINTMENT_PARTY",
            details={"appointment_id": str(appointment.id)},
        )


# ============================================================================
# Reads
# ============================================================================


async def get_appointment(
    actor_id: UUID,
    appointment_id: UUID,
    now: Optional[datetime] = None,
) -> AppointmentRecord:
    """
    Fetch one appointment visible to the caller (its owner or assigned groomer).

    A past-due confirmed/in-progress appointment is completed and persisted
    before being returned.

    Raises:
        NotFoundError: caller or appointment missing
        AuthorizationError: caller is neither owner nor assigned groomer
    """
    if now is None:
        now = datetime.now(UTC)

    async with get_async_session() as session:
        user = await get_user(session, actor_id)
        appointment = await get_appointment_or_404(session, appointment_id)
        _require_party(appointment, user)

        await sweep_past_due(session, [appointment], now)
        return AppointmentRecord.model_validate(appointment)


async def list_appointments(
    actor_id: UUID,
    status: Optional[AppointmentStatus] = None,
    now: Optional[datetime] = None,
) -> list[AppointmentRecord]:
    """
    List the caller's appointments, soonest first.

    Owners see the appointments they booked; groomers see the ones assigned
    to them. The sweep runs before the status filter is applied, so a
    past-due booking never shows up as confirmed.

    Raises:
        NotFoundError: caller missing
    """
    if now is None:
        now = datetime.now(UTC)

    async with get_async_session() as session:
        user = await get_user(session, actor_id)
        party = _party_column(user)

        past_due_stmt = (
            select(Appointment)
            .where(party == actor_id)
            .where(Appointment.status.in_(OCCUPYING_STATUSES))
            .where(Appointment.end_time < now)
        )
        past_due = list((await session.execute(past_due_stmt)).scalars().all())
        await sweep_past_due(session, past_due, now)

        stmt = (
            select(Appointment)
            .where(party == actor_id)
            .order_by(Appointment.start_time)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(Appointment.status == AppointmentStatus(status))

        appointments = (await session.execute(stmt)).scalars().all()
        return [AppointmentRecord.model_validate(a) for a in appointments]


# ============================================================================
# Actions
# ============================================================================


async def _apply_action(
    actor_id: UUID,
    appointment_id: UUID,
    role: UserRole,
    action: Callable[[AppointmentLifecycle, datetime], object],
    now: Optional[datetime],
    action_name: str,
) -> tuple[AppointmentRecord, Appointment]:
    """Load under lock, check the caller, apply one lifecycle action and commit."""
    if now is None:
        now = datetime.now(UTC)
    log_context = {"actor_id": actor_id, "appointment_id": appointment_id}

    async with get_async_session() as session:
        appointment = await load_appointment_for_update(session, appointment_id, now)
        await get_actor(session, actor_id, role)
        if role == UserRole.OWNER:
            require_appointment_owner(appointment, actor_id)
        else:
            require_assigned_groomer(appointment, actor_id)

        action(AppointmentLifecycle(appointment), now)
        await commit_or_conflict(session, **log_context)

        appointment = await get_appointment_or_404(session, appointment_id)
        record = AppointmentRecord.model_validate(appointment)

    logger.info(f"Appointment {action_name} applied", extra=log_context)
    return record, appointment


async def cancel_appointment(
    actor_id: UUID,
    appointment_id: UUID,
    now: Optional[datetime] = None,
) -> AppointmentRecord:
    """
    Cancel an appointment (owner only, more than the cutoff ahead of start).

    The row is kept with status cancelled and cancelled_at set.

    Raises:
        AuthorizationError: caller is not the owner who booked it
        PolicyViolationError: inside the modification cutoff or not cancellable
    """
    record, appointment = await _apply_action(
        actor_id,
        appointment_id,
        UserRole.OWNER,
        lambda lifecycle, ts: lifecycle.cancel(ts),
        now,
        "cancel",
    )
    await publish(BookingEvent.CANCELLED, appointment_event_payload(appointment))
    return record


async def acknowledge_appointment(
    actor_id: UUID,
    appointment_id: UUID,
    now: Optional[datetime] = None,
) -> AppointmentRecord:
    """Mark an appointment as seen by its groomer. Idempotent."""
    record, _ = await _apply_action(
        actor_id,
        appointment_id,
        UserRole.GROOMER,
        lambda lifecycle, ts: lifecycle.acknowledge(ts),
        now,
        "acknowledge",
    )
    return record


async def start_service(
    actor_id: UUID,
    appointment_id: UUID,
    now: Optional[datetime] = None,
) -> AppointmentRecord:
    """
    confirmed -> in_progress. Requires a prior acknowledge.

    Raises:
        PolicyViolationError: not acknowledged, or not confirmed
    """
    record, _ = await _apply_action(
        actor_id,
        appointment_id,
        UserRole.GROOMER,
        lambda lifecycle, ts: lifecycle.start(ts),
        now,
        "start",
    )
    return record


async def complete_service(
    actor_id: UUID,
    appointment_id: UUID,
    notes: Optional[str] = None,
    photos: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> AppointmentRecord:
    """
    in_progress -> completed, recording actual end time and duration.

    Raises:
        PolicyViolationError: service not in progress
    """
    record, _ = await _apply_action(
        actor_id,
        appointment_id,
        UserRole.GROOMER,
        lambda lifecycle, ts: lifecycle.complete(ts, notes=notes, photos=photos),
        now,
        "complete",
    )
    return record


async def set_pricing(
    actor_id: UUID,
    appointment_id: UUID,
    amount: Decimal,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AppointmentRecord:
    """
    Record a price. Appends to price_history; total_cost follows the latest entry.

    Raises:
        ValidationError: negative amount
        PolicyViolationError: appointment cancelled or no-show
    """
    record, _ = await _apply_action(
        actor_id,
        appointment_id,
        UserRole.GROOMER,
        lambda lifecycle, ts: lifecycle.set_price(Decimal(amount), reason, actor_id, ts),
        now,
        "pricing",
    )
    return record


async def mark_no_show(
    actor_id: UUID,
    appointment_id: UUID,
    now: Optional[datetime] = None,
) -> AppointmentRecord:
    """confirmed/in_progress -> no_show (terminal)."""
    record, _ = await _apply_action(
        actor_id,
        appointment_id,
        UserRole.GROOMER,
        lambda lifecycle, ts: lifecycle.mark_no_show(ts),
        now,
        "no-show",
    )
    return record
