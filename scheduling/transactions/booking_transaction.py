"""
Booking Transaction Handler.

Creates and reschedules appointments:
- Business rule validation (service type, future start, business hours)
- Reference checks (owner role, pet ownership, groomer existence)
- Conflict check with row locks inside a SERIALIZABLE transaction
- booking.* event published AFTER commit (fire-and-forget)

The storage layer backs the conflict check with exclusion constraints on
PostgreSQL, so two racing bookings for the same slot cannot both commit; the
loser gets a ConflictError.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Optional
from uuid import UUID

from database.connection import begin_serializable, get_async_session
from database.models import Appointment, AppointmentStatus, PricingStatus, ServiceType, UserRole
from scheduling.errors import PolicyViolationError, ValidationError
from scheduling.events import BookingEvent, publish
from scheduling.fsm.appointment_fsm import AppointmentLifecycle, duration_for
from scheduling.schemas import AppointmentRecord
from scheduling.services.directory_service import (
    get_actor,
    get_groomer,
    get_owned_pet,
    require_appointment_owner,
)
from scheduling.transactions.unit_of_work import (
    appointment_event_payload,
    commit_or_conflict,
    get_appointment_or_404,
    load_appointment_for_update,
)
from scheduling.validators.conflict_detector import ensure_interval_free
from shared.business_calendar import DAY_NAMES, day_of_week, is_business_day, is_within_business_hours

logger = logging.getLogger(__name__)


def validate_start_time(start_time: datetime) -> datetime:
    """
    Reject naive datetimes; callers must say which instant they mean.

    Raises:
        ValidationError: start_time has no timezone
    """
    if start_time.tzinfo is None or start_time.utcoffset() is None:
        raise ValidationError(
            "start_time must include a timezone offset",
            error_code="INVALID_START_TIME",
            details={"start_time": start_time.isoformat()},
        )
    return start_time.astimezone(UTC)


def validate_booking_window(start_time: datetime, end_time: datetime, now: datetime) -> None:
    """
    Check that a booking interval is in the future and inside opening hours.

    Raises:
        PolicyViolationError: START_IN_PAST, BUSINESS_CLOSED or OUTSIDE_BUSINESS_HOURS
    """
    if start_time <= now:
        raise PolicyViolationError(
            "Appointments must start in the future",
            error_code="START_IN_PAST",
            details={"start_time": start_time.isoformat()},
        )

    if not is_business_day(start_time):
        raise PolicyViolationError(
            f"We are closed on {DAY_NAMES[day_of_week(start_time)]}s",
            error_code="BUSINESS_CLOSED",
            details={"start_time": start_time.isoformat()},
        )

    if not is_within_business_hours(start_time, end_time):
        raise PolicyViolationError(
            "Appointment must start and finish within business hours",
            error_code="OUTSIDE_BUSINESS_HOURS",
            details={"start_time": start_time.isoformat(), "end_time": end_time.isoformat()},
        )


class BookingTransaction:
    """
    Atomic transaction handler for creating and rescheduling appointments.

    Flow of both operations:
    1. Validate input and business rules
    2. Check roles and ownership
    3. Check the interval against appointments and time blocks (row locked)
    4. Write and commit (SERIALIZABLE)
    5. Publish the booking event

    Every rejection is raised before anything is written.
    """

    @staticmethod
    async def create(
        actor_id: UUID,
        pet_id: UUID,
        groomer_id: UUID,
        service_type: ServiceType | str,
        start_time: datetime,
        now: Optional[datetime] = None,
    ) -> AppointmentRecord:
        """
        Book a new appointment.

        Args:
            actor_id: Calling owner
            pet_id: Pet to groom (must belong to the caller)
            groomer_id: Groomer to book
            service_type: "basic" (60 min) or "full" (120 min)
            start_time: Appointment start (timezone-aware)
            now: Reference instant (defaults to the current time)

        Returns:
            The confirmed appointment

        Raises:
            ValidationError: bad service type or naive start_time
            AuthorizationError: caller is not an owner, or not the pet's owner
            NotFoundError: pet or groomer missing
            PolicyViolationError: start in the past or outside business hours
            ConflictError: interval overlaps an appointment or time block
        """
        if now is None:
            now = datetime.now(UTC)
        duration = duration_for(service_type)
        start_time = validate_start_time(start_time)
        end_time = start_time + timedelta(minutes=duration)

        log_context = {"actor_id": actor_id, "groomer_id": groomer_id}
        logger.info(f"Starting booking transaction for {start_time.isoformat()}", extra=log_context)

        async with get_async_session() as session:
            await begin_serializable(session)

            await get_actor(session, actor_id, UserRole.OWNER)
            await get_owned_pet(session, pet_id, actor_id)
            await get_groomer(session, groomer_id)
            validate_booking_window(start_time, end_time, now)

            await ensure_interval_free(session, groomer_id, start_time, end_time)

            appointment = Appointment(
                pet_id=pet_id,
                owner_id=actor_id,
                groomer_id=groomer_id,
                service_type=ServiceType(service_type),
                duration_minutes=duration,
                start_time=start_time,
                end_time=end_time,
                status=AppointmentStatus.CONFIRMED,
                groomer_acknowledged=False,
                auto_completed=False,
                pricing_status=PricingStatus.PENDING,
                price_history=[],
                photos=[],
                created_at=now,
                updated_at=now,
            )
            session.add(appointment)
            await commit_or_conflict(session, **log_context)

            appointment = await get_appointment_or_404(session, appointment.id)
            record = AppointmentRecord.model_validate(appointment)
            payload = appointment_event_payload(appointment)

        logger.info(
            "Appointment committed",
            extra={**log_context, "appointment_id": record.id},
        )
        await publish(BookingEvent.CREATED, payload)
        return record

    @staticmethod
    async def reschedule(
        actor_id: UUID,
        appointment_id: UUID,
        pet_id: UUID,
        groomer_id: UUID,
        service_type: ServiceType | str,
        start_time: datetime,
        now: Optional[datetime] = None,
    ) -> AppointmentRecord:
        """
        Move an appointment (possibly to another pet, groomer or package).

        The appointment's own interval is excluded from the conflict check and
        the status is reset to confirmed.

        Raises:
            ValidationError: bad service type or naive start_time
            AuthorizationError: caller does not own the appointment or pet
            NotFoundError: appointment, pet or groomer missing
            PolicyViolationError: inside the modification cutoff, closed
                appointment, start in the past or outside business hours
            ConflictError: new interval overlaps another booking or time block
        """
        if now is None:
            now = datetime.now(UTC)
        duration = duration_for(service_type)
        start_time = validate_start_time(start_time)
        end_time = start_time + timedelta(minutes=duration)

        log_context = {"actor_id": actor_id, "appointment_id": appointment_id, "groomer_id": groomer_id}

        async with get_async_session() as session:
            appointment = await load_appointment_for_update(session, appointment_id, now)
            await get_actor(session, actor_id, UserRole.OWNER)
            require_appointment_owner(appointment, actor_id)

            lifecycle = AppointmentLifecycle(appointment)
            lifecycle.check_reschedule(now)

            await get_owned_pet(session, pet_id, actor_id)
            await get_groomer(session, groomer_id)
            validate_booking_window(start_time, end_time, now)

            await ensure_interval_free(
                session, groomer_id, start_time, end_time, exclude_appointment_id=appointment_id
            )

            previous_start = appointment.start_time
            lifecycle.reschedule(
                pet_id=pet_id,
                groomer_id=groomer_id,
                service_type=ServiceType(service_type),
                start_time=start_time,
                now=now,
            )
            await commit_or_conflict(session, **log_context)

            appointment = await get_appointment_or_404(session, appointment_id)
            record = AppointmentRecord.model_validate(appointment)
            payload = {
                **appointment_event_payload(appointment),
                "previous_start_time": previous_start.isoformat(),
            }

        logger.info(
            f"Appointment rescheduled from {previous_start.isoformat()} to {start_time.isoformat()}",
            extra=log_context,
        )
        await publish(BookingEvent.RESCHEDULED, payload)
        return record
