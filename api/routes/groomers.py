"""
Groomer directory and calendar endpoints.

- GET /groomers
- GET /groomers/{id}
- GET /groomers/{id}/availability?date=YYYY-MM-DD&duration=60|120
- GET /groomers/{id}/schedule?date=YYYY-MM-DD
"""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from api.dependencies import CurrentUserId
from api.models.scheduling_requests import AvailabilityResponse
from scheduling.schemas import GroomerSchedule, UserSummary
from scheduling.services.availability_service import get_available_slots, get_groomer_schedule
from scheduling.services.directory_service import get_groomer_profile, list_groomers

router = APIRouter(prefix="/groomers", tags=["groomers"])


@router.get("", response_model=list[UserSummary])
async def get_groomers(user_id: CurrentUserId):
    return await list_groomers()


@router.get("/{groomer_id}", response_model=UserSummary)
async def get_groomer_detail(user_id: CurrentUserId, groomer_id: UUID):
    """Groomer profile. Unknown ids and non-groomer users are 404."""
    return await get_groomer_profile(groomer_id)


@router.get("/{groomer_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    user_id: CurrentUserId,
    groomer_id: UUID,
    target_date: Annotated[date, Query(alias="date")],
    duration: int = 60,
):
    """Bookable slots. Closed days return an empty list."""
    slots = await get_available_slots(groomer_id, target_date, duration)
    return AvailabilityResponse(
        groomer_id=groomer_id,
        date=target_date,
        duration_minutes=duration,
        slots=slots,
    )


@router.get("/{groomer_id}/schedule", response_model=GroomerSchedule)
async def get_schedule(
    user_id: CurrentUserId,
    groomer_id: UUID,
    target_date: Annotated[date, Query(alias="date")],
):
    return await get_groomer_schedule(groomer_id, target_date)
