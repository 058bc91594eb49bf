"""
Integration tests for BookingTransaction (create / reschedule).

Runs against an in-memory SQLite database. The reference instant is fixed at
Monday 2024-01-01 09:00 Singapore time; bookings go to Monday 2024-01-08.
"""

from datetime import UTC, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from database.connection import get_async_session
from database.models import OCCUPYING_STATUSES, Appointment, AppointmentStatus, ServiceType
from scheduling.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from scheduling.events import BookingEvent, subscribe
from scheduling.services.appointment_service import cancel_appointment, get_appointment
from scheduling.transactions import BookingTransaction
from scheduling.validators.conflict_detector import intervals_overlap
from booking_support import NEXT_MONDAY, NOW, local


async def book(owner, groomer, pet, hour, service_type=ServiceType.BASIC, day=NEXT_MONDAY):
    return await BookingTransaction.create(
        actor_id=owner.id,
        pet_id=pet.id,
        groomer_id=groomer.id,
        service_type=service_type,
        start_time=local(day, hour),
        now=NOW,
    )


class TestCreate:
    async def test_basic_booking(self, owner, groomer, pet):
        """Basic service ends 60 minutes after start and starts confirmed."""
        record = await book(owner, groomer, pet, 14)

        assert record.status == AppointmentStatus.CONFIRMED
        assert record.start_time == local(NEXT_MONDAY, 14).astimezone(UTC)
        assert record.end_time - record.start_time == timedelta(minutes=60)
        assert record.duration_minutes == 60
        assert record.groomer_acknowledged is False
        assert record.pet.id == pet.id
        assert record.owner.id == owner.id
        assert record.groomer.id == groomer.id

    async def test_full_booking_is_two_hours(self, owner, groomer, pet):
        record = await book(owner, groomer, pet, 11, ServiceType.FULL)
        assert record.end_time - record.start_time == timedelta(minutes=120)

    async def test_overlapping_booking_rejected(self, owner, groomer, pet):
        await book(owner, groomer, pet, 14)
        with pytest.raises(ConflictError) as exc_info:
            await book(owner, groomer, pet, 13, ServiceType.FULL)
        assert exc_info.value.error_code == "SLOT_TAKEN"

    async def test_back_to_back_allowed(self, owner, groomer, pet):
        await book(owner, groomer, pet, 14)
        record = await book(owner, groomer, pet, 15)
        assert record.status == AppointmentStatus.CONFIRMED

    async def test_other_groomer_same_slot_allowed(self, owner, groomer, other_groomer, pet):
        await book(owner, groomer, pet, 14)
        record = await book(owner, other_groomer, pet, 14)
        assert record.groomer.id == other_groomer.id

    async def test_cancelled_booking_frees_slot(self, owner, groomer, pet, insert_appointment):
        await insert_appointment(local(NEXT_MONDAY, 14), status=AppointmentStatus.CANCELLED)
        record = await book(owner, groomer, pet, 14)
        assert record.status == AppointmentStatus.CONFIRMED

    async def test_time_block_rejects_booking(self, owner, groomer, pet, insert_time_block):
        await insert_time_block(local(NEXT_MONDAY, 13), local(NEXT_MONDAY, 15))
        with pytest.raises(ConflictError) as exc_info:
            await book(owner, groomer, pet, 14)
        assert exc_info.value.error_code == "TIME_BLOCKED"

    async def test_pet_of_another_owner_rejected(self, other_owner, groomer, pet):
        with pytest.raises(AuthorizationError) as exc_info:
            await book(other_owner, groomer, pet, 14)
        assert exc_info.value.error_code == "NOT_PET_OWNER"

    async def test_groomer_cannot_book(self, groomer, other_groomer, pet):
        with pytest.raises(AuthorizationError) as exc_info:
            await book(groomer, other_groomer, pet, 14)
        assert exc_info.value.error_code == "WRONG_ROLE"

    async def test_booking_an_owner_as_groomer(self, owner, other_owner, pet):
        with pytest.raises(NotFoundError) as exc_info:
            await book(owner, other_owner, pet, 14)
        assert exc_info.value.error_code == "GROOMER_NOT_FOUND"

    async def test_closed_day_rejected(self, owner, groomer, pet):
        wednesday = NEXT_MONDAY + timedelta(days=2)
        with pytest.raises(PolicyViolationError) as exc_info:
            await book(owner, groomer, pet, 14, day=wednesday)
        assert exc_info.value.error_code == "BUSINESS_CLOSED"

    async def test_running_past_closing_rejected(self, owner, groomer, pet):
        """A full service at 19:00 would finish at 21:00, after the 20:00 close."""
        with pytest.raises(PolicyViolationError) as exc_info:
            await book(owner, groomer, pet, 19, ServiceType.FULL)
        assert exc_info.value.error_code == "OUTSIDE_BUSINESS_HOURS"

    async def test_past_start_rejected(self, owner, groomer, pet):
        with pytest.raises(PolicyViolationError) as exc_info:
            await book(owner, groomer, pet, 14, day=NEXT_MONDAY - timedelta(days=14))
        assert exc_info.value.error_code == "START_IN_PAST"

    async def test_naive_start_rejected(self, owner, groomer, pet):
        with pytest.raises(ValidationError) as exc_info:
            await BookingTransaction.create(
                actor_id=owner.id,
                pet_id=pet.id,
                groomer_id=groomer.id,
                service_type=ServiceType.BASIC,
                start_time=local(NEXT_MONDAY, 14).replace(tzinfo=None),
                now=NOW,
            )
        assert exc_info.value.error_code == "INVALID_START_TIME"

    async def test_invalid_service_type(self, owner, groomer, pet):
        with pytest.raises(ValidationError) as exc_info:
            await book(owner, groomer, pet, 14, "spa")
        assert exc_info.value.error_code == "INVALID_SERVICE_TYPE"

    async def test_created_event_published(self, owner, groomer, pet):
        received = []

        async def on_created(payload):
            received.append(payload)

        subscribe(BookingEvent.CREATED, on_created)
        record = await book(owner, groomer, pet, 14)

        assert len(received) == 1
        assert received[0]["appointment_id"] == str(record.id)
        assert received[0]["status"] == "confirmed"

    async def test_failing_subscriber_keeps_booking(self, owner, groomer, pet):
        async def broken(payload):
            raise RuntimeError("mail server down")

        subscribe(BookingEvent.CREATED, broken)
        record = await book(owner, groomer, pet, 14)

        fetched = await get_appointment(owner.id, record.id, now=NOW)
        assert fetched.status == AppointmentStatus.CONFIRMED


class TestReschedule:
    async def test_move_to_free_slot(self, owner, groomer, pet):
        record = await book(owner, groomer, pet, 14)
        moved = await BookingTransaction.reschedule(
            actor_id=owner.id,
            appointment_id=record.id,
            pet_id=pet.id,
            groomer_id=groomer.id,
            service_type=ServiceType.FULL,
            start_time=local(NEXT_MONDAY, 16),
            now=NOW,
        )
        assert moved.id == record.id
        assert moved.start_time == local(NEXT_MONDAY, 16).astimezone(UTC)
        assert moved.duration_minutes == 120

    async def test_overlap_with_own_interval_allowed(self, owner, groomer, pet):
        """Shifting by 30 minutes overlaps only the appointment being moved."""
        record = await book(owner, groomer, pet, 14)
        moved = await BookingTransaction.reschedule(
            actor_id=owner.id,
            appointment_id=record.id,
            pet_id=pet.id,
            groomer_id=groomer.id,
            service_type=ServiceType.BASIC,
            start_time=local(NEXT_MONDAY, 14, 30),
            now=NOW,
        )
        assert moved.start_time == local(NEXT_MONDAY, 14, 30).astimezone(UTC)

    async def test_overlap_with_other_booking_rejected(self, owner, groomer, pet):
        first = await book(owner, groomer, pet, 14)
        await book(owner, groomer, pet, 16)
        with pytest.raises(ConflictError):
            await BookingTransaction.reschedule(
                actor_id=owner.id,
                appointment_id=first.id,
                pet_id=pet.id,
                groomer_id=groomer.id,
                service_type=ServiceType.BASIC,
                start_time=local(NEXT_MONDAY, 16),
                now=NOW,
            )

    async def test_inside_cutoff_rejected(self, owner, groomer, pet, insert_appointment):
        soon = await insert_appointment(NOW + timedelta(hours=2))
        with pytest.raises(PolicyViolationError) as exc_info:
            await BookingTransaction.reschedule(
                actor_id=owner.id,
                appointment_id=soon.id,
                pet_id=pet.id,
                groomer_id=groomer.id,
                service_type=ServiceType.BASIC,
                start_time=local(NEXT_MONDAY, 14),
                now=NOW,
            )
        assert exc_info.value.error_code == "MODIFICATION_CUTOFF"

    async def test_sweep_completed_returns_to_confirmed(self, owner, groomer, pet, insert_appointment):
        """A past-due booking is swept to completed, then moved back to confirmed."""
        missed = await insert_appointment(NOW - timedelta(hours=3))
        moved = await BookingTransaction.reschedule(
            actor_id=owner.id,
            appointment_id=missed.id,
            pet_id=pet.id,
            groomer_id=groomer.id,
            service_type=ServiceType.BASIC,
            start_time=local(NEXT_MONDAY, 11),
            now=NOW,
        )
        assert moved.status == AppointmentStatus.CONFIRMED
        assert moved.auto_completed is False

    async def test_cancelled_cannot_be_rescheduled(self, owner, groomer, pet, insert_appointment):
        cancelled = await insert_appointment(
            local(NEXT_MONDAY, 12), status=AppointmentStatus.CANCELLED
        )
        with pytest.raises(PolicyViolationError) as exc_info:
            await BookingTransaction.reschedule(
                actor_id=owner.id,
                appointment_id=cancelled.id,
                pet_id=pet.id,
                groomer_id=groomer.id,
                service_type=ServiceType.BASIC,
                start_time=local(NEXT_MONDAY, 14),
                now=NOW,
            )
        assert exc_info.value.error_code == "INVALID_TRANSITION"

    async def test_only_owner_may_reschedule(self, owner, other_owner, groomer, pet):
        record = await book(owner, groomer, pet, 14)
        with pytest.raises(AuthorizationError) as exc_info:
            await BookingTransaction.reschedule(
                actor_id=other_owner.id,
                appointment_id=record.id,
                pet_id=pet.id,
                groomer_id=groomer.id,
                service_type=ServiceType.BASIC,
                start_time=local(NEXT_MONDAY, 16),
                now=NOW,
            )
        assert exc_info.value.error_code == "NOT_APPOINTMENT_OWNER"

    async def test_rescheduled_event_carries_previous_start(self, owner, groomer, pet):
        received = []

        async def on_rescheduled(payload):
            received.append(payload)

        subscribe(BookingEvent.RESCHEDULED, on_rescheduled)
        record = await book(owner, groomer, pet, 14)
        await BookingTransaction.reschedule(
            actor_id=owner.id,
            appointment_id=record.id,
            pet_id=pet.id,
            groomer_id=groomer.id,
            service_type=ServiceType.BASIC,
            start_time=local(NEXT_MONDAY, 17),
            now=NOW,
        )
        assert received[0]["previous_start_time"] == record.start_time.isoformat()
        assert received[0]["start_time"] == local(NEXT_MONDAY, 17).astimezone(UTC).isoformat()

    async def test_unknown_appointment(self, owner, groomer, pet):
        with pytest.raises(NotFoundError) as exc_info:
            await BookingTransaction.reschedule(
                actor_id=owner.id,
                appointment_id=uuid4(),
                pet_id=pet.id,
                groomer_id=groomer.id,
                service_type=ServiceType.BASIC,
                start_time=local(NEXT_MONDAY, 14),
                now=NOW,
            )
        assert exc_info.value.error_code == "APPOINTMENT_NOT_FOUND"


class TestNoOverlapInvariant:
    async def test_mixed_mutations_leave_no_overlap(self, owner, groomer, other_groomer, pet):
        """After books, reschedules and cancels on two groomers, no occupying pair overlaps."""
        groomers = [groomer, other_groomer]
        booked = []
        for groomer_user in groomers:
            for hour, service_type in ((11, ServiceType.FULL), (13, ServiceType.BASIC), (15, ServiceType.FULL)):
                booked.append(await book(owner, groomer_user, pet, hour, service_type))

        attempts = [
            # Overlapping starts on either groomer
            (groomer, 12, ServiceType.BASIC),
            (groomer, 14, ServiceType.FULL),
            (other_groomer, 16, ServiceType.BASIC),
            # Free hours
            (groomer, 17, ServiceType.BASIC),
            (other_groomer, 18, ServiceType.FULL),
        ]
        for groomer_user, hour, service_type in attempts:
            try:
                booked.append(await book(owner, groomer_user, pet, hour, service_type))
            except ConflictError:
                pass

        moves = [
            (booked[1], groomer, 18),        # free on groomer
            (booked[2], groomer, 13),        # freed by the previous move
            (booked[3], groomer, 11),        # taken by a full service
            (booked[4], groomer, 19),        # free on groomer
        ]
        for record, target, hour in moves:
            try:
                await BookingTransaction.reschedule(
                    actor_id=owner.id,
                    appointment_id=record.id,
                    pet_id=pet.id,
                    groomer_id=target.id,
                    service_type=record.service_type,
                    start_time=local(NEXT_MONDAY, hour),
                    now=NOW,
                )
            except (ConflictError, PolicyViolationError):
                pass

        await cancel_appointment(owner.id, booked[0].id, now=NOW)
        booked.append(await book(owner, groomer, pet, 11))

        async with get_async_session() as session:
            rows = (
                await session.execute(
                    select(Appointment).where(Appointment.status.in_(OCCUPYING_STATUSES))
                )
            ).scalars().all()

        assert rows
        for i, first in enumerate(rows):
            for second in rows[i + 1:]:
                if first.groomer_id != second.groomer_id:
                    continue
                assert not intervals_overlap(
                    first.start_time, first.end_time, second.start_time, second.end_time
                ), f"{first.id} overlaps {second.id}"
