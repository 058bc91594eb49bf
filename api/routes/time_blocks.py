"""
Time block endpoints (groomer unavailability).

- POST /time-blocks - Create, optionally recurring (201, list of created blocks)
- GET /time-blocks - List a groomer's blocks (defaults to the caller)
- PUT /time-blocks/{id} - Update (owning groomer)
- DELETE /time-blocks/{id} - Hard delete (owning groomer)
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, status

from api.dependencies import CurrentUserId
from api.models.scheduling_requests import (
    CreateTimeBlockRequest,
    UpdateTimeBlockRequest,
    assume_business_tz,
)
from scheduling.schemas import TimeBlockRecord
from scheduling.services import time_block_service

router = APIRouter(prefix="/time-blocks", tags=["time-blocks"])


@router.post("", response_model=list[TimeBlockRecord], status_code=status.HTTP_201_CREATED)
async def create_time_block(user_id: CurrentUserId, request: CreateTimeBlockRequest):
    """
    Create a time block for the calling groomer.

    With a recurrence, one extra block is created per matching weekday up to
    recurrence.end_date. If an occurrence conflicts, the response is 409 and
    details.created_ids lists the blocks that were kept.
    """
    return await time_block_service.create_time_block(
        actor_id=user_id,
        start_time=request.start_time,
        end_time=request.end_time,
        block_type=request.block_type,
        reason=request.reason,
        recurrence=request.recurrence,
    )


@router.get("", response_model=list[TimeBlockRecord])
async def list_time_blocks(
    user_id: CurrentUserId,
    groomer_id: UUID | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
):
    """Blocks overlapping the optional start/end window. Offset-less bounds are business-local."""
    return await time_block_service.list_time_blocks(
        groomer_id or user_id,
        start=assume_business_tz(start),
        end=assume_business_tz(end),
    )


@router.put("/{time_block_id}", response_model=TimeBlockRecord)
async def update_time_block(
    user_id: CurrentUserId,
    time_block_id: UUID,
    request: UpdateTimeBlockRequest,
):
    return await time_block_service.update_time_block(
        actor_id=user_id,
        time_block_id=time_block_id,
        start_time=request.start_time,
        end_time=request.end_time,
        block_type=request.block_type,
        reason=request.reason,
    )


@router.delete("/{time_block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_time_block(user_id: CurrentUserId, time_block_id: UUID):
    await time_block_service.delete_time_block(user_id, time_block_id)
