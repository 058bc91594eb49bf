"""
Appointment API Endpoints

Provides REST endpoints for:
- POST /appointments - Book (owner)
- GET /appointments - List the caller's appointments
- GET /appointments/{id} - Fetch one appointment
- PUT /appointments/{id} - Reschedule (owner)
- DELETE /appointments/{id} - Cancel (owner)
- PATCH /appointments/{id}/acknowledge|pricing|start|complete|no-show - Groomer actions

Every read runs the auto-complete sweep, so statuses may change between calls.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from api.dependencies import CurrentUserId
from api.models.scheduling_requests import (
    AppointmentRequest,
    CompleteServiceRequest,
    SetPricingRequest,
)
from database.models import AppointmentStatus
from scheduling.schemas import AppointmentRecord
from scheduling.services import appointment_service
from scheduling.transactions import BookingTransaction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", response_model=AppointmentRecord, status_code=status.HTTP_201_CREATED)
async def create_appointment(user_id: CurrentUserId, request: AppointmentRequest):
    return await BookingTransaction.create(
        actor_id=user_id,
        pet_id=request.pet_id,
        groomer_id=request.groomer_id,
        service_type=request.service_type,
        start_time=request.start_time,
    )


@router.get("", response_model=list[AppointmentRecord])
async def list_appointments(
    user_id: CurrentUserId,
    appointment_status: Annotated[AppointmentStatus | None, Query(alias="status")] = None,
):
    """List appointments booked by (owner) or assigned to (groomer) the caller."""
    return await appointment_service.list_appointments(user_id, status=appointment_status)


@router.get("/{appointment_id}", response_model=AppointmentRecord)
async def get_appointment(user_id: CurrentUserId, appointment_id: UUID):
    return await appointment_service.get_appointment(user_id, appointment_id)


@router.put("/{appointment_id}", response_model=AppointmentRecord)
async def reschedule_appointment(
    user_id: CurrentUserId,
    appointment_id: UUID,
    request: AppointmentRequest,
):
    """Move an appointment. Rejected within 24 hours of its start."""
    return await BookingTransaction.reschedule(
        actor_id=user_id,
        appointment_id=appointment_id,
        pet_id=request.pet_id,
        groomer_id=request.groomer_id,
        service_type=request.service_type,
        start_time=request.start_time,
    )


@router.delete("/{appointment_id}", response_model=AppointmentRecord)
async def cancel_appointment(user_id: CurrentUserId, appointment_id: UUID):
    """Cancel an appointment. The record is kept with status cancelled."""
    return await appointment_service.cancel_appointment(user_id, appointment_id)


@router.patch("/{appointment_id}/acknowledge", response_model=AppointmentRecord)
async def acknowledge_appointment(user_id: CurrentUserId, appointment_id: UUID):
    return await appointment_service.acknowledge_appointment(user_id, appointment_id)


@router.patch("/{appointment_id}/pricing", response_model=AppointmentRecord)
async def set_pricing(user_id: CurrentUserId, appointment_id: UUID, request: SetPricingRequest):
    return await appointment_service.set_pricing(
        user_id, appointment_id, amount=request.amount, reason=request.reason
    )


@router.patch("/{appointment_id}/start", response_model=AppointmentRecord)
async def start_service(user_id: CurrentUserId, appointment_id: UUID):
    return await appointment_service.start_service(user_id, appointment_id)


@router.patch("/{appointment_id}/complete", response_model=AppointmentRecord)
async def complete_service(
    user_id: CurrentUserId,
    appointment_id: UUID,
    request: CompleteServiceRequest | None = None,
):
    request = request or CompleteServiceRequest()
    return await appointment_service.complete_service(
        user_id, appointment_id, notes=request.notes, photos=request.photos
    )


@router.patch("/{appointment_id}/no-show", response_model=AppointmentRecord)
async def mark_no_show(user_id: CurrentUserId, appointment_id: UUID):
    return await appointment_service.mark_no_show(user_id, appointment_id)
