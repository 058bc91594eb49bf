"""
Time Block Manager - groomer-declared unavailability.

- create_time_block: one block, optionally expanded weekly into one row per
  occurrence. Every row is conflict-checked against appointments and other
  blocks and committed in its own transaction; a failure part-way through
  raises RecurrenceExpansionError carrying the rows already created.
- update_time_block: re-validated against the calendar, excluding itself
- delete_time_block: hard delete
- list_time_blocks: a groomer's blocks, optionally limited to a range

Only the groomer who owns a block may change or delete it.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import begin_serializable, get_async_session
from database.models import TimeBlock, TimeBlockType, UserRole
from scheduling.errors import (
    AuthorizationError,
    NotFoundError,
    RecurrenceExpansionError,
    SchedulingError,
    ValidationError,
)
from scheduling.schemas import RecurrencePattern, TimeBlockRecord
from scheduling.services.directory_service import get_actor, get_groomer
from scheduling.services.recurrence_service import expand_occurrences
from scheduling.transactions.unit_of_work import commit_or_conflict
from scheduling.validators.conflict_detector import ensure_interval_free
from shared.business_calendar import to_business_date

logger = logging.getLogger(__name__)


def _require_aware(name: str, value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(
            f"{name} must include a timezone offset",
            error_code="INVALID_TIME_RANGE",
            details={name: value.isoformat()},
        )
    return value.astimezone(UTC)


def _validate_range(start_time: datetime, end_time: datetime) -> tuple[datetime, datetime]:
    start_time = _require_aware("start_time", start_time)
    end_time = _require_aware("end_time", end_time)
    if start_time >= end_time:
        raise ValidationError(
            "end_time must be after start_time",
            error_code="INVALID_TIME_RANGE",
            details={"start_time": start_time.isoformat(), "end_time": end_time.isoformat()},
        )
    return start_time, end_time


def _parse_block_type(block_type: TimeBlockType | str) -> TimeBlockType:
    try:
        return TimeBlockType(block_type)
    except ValueError:
        raise ValidationError(
            f"Invalid block_type: {block_type}",
            error_code="INVALID_BLOCK_TYPE",
            details={"allowed": [t.value for t in TimeBlockType]},
        ) from None


async def _get_block_or_404(session: AsyncSession, time_block_id: UUID) -> TimeBlock:
    result = await session.execute(
        select(TimeBlock)
        .where(TimeBlock.id == time_block_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    block = result.scalar_one_or_none()
    if block is None:
        raise NotFoundError(
            "Time block not found",
            error_code="TIME_BLOCK_NOT_FOUND",
            details={"time_block_id": str(time_block_id)},
        )
    return block


def _require_block_owner(block: TimeBlock, actor_id: UUID) -> None:
    if block.groomer_id != actor_id:
        logger.warning(
            "Caller does not own time block",
            extra={"actor_id": actor_id, "time_block_id": block.id},
        )
        raise AuthorizationError(
            "You can only modify your own time blocks",
            error_code="NOT_TIME_BLOCK_OWNER",
            details={"time_block_id": str(block.id)},
        )


async def _insert_block(
    session: AsyncSession,
    groomer_id: UUID,
    start_time: datetime,
    end_time: datetime,
    block_type: TimeBlockType,
    reason: Optional[str],
    pattern: Optional[dict[str, Any]],
    now: datetime,
) -> TimeBlockRecord:
    """Conflict-check and commit one block in its own SERIALIZABLE transaction."""
    await begin_serializable(session)
    await ensure_interval_free(session, groomer_id, start_time, end_time)

    block = TimeBlock(
        groomer_id=groomer_id,
        start_time=start_time,
        end_time=end_time,
        block_type=block_type,
        reason=reason,
        is_recurring=pattern is not None,
        recurring_pattern=pattern,
        created_at=now,
        updated_at=now,
    )
    session.add(block)
    await commit_or_conflict(session, groomer_id=groomer_id)
    return TimeBlockRecord.model_validate(block)


async def create_time_block(
    actor_id: UUID,
    start_time: datetime,
    end_time: datetime,
    block_type: TimeBlockType | str = TimeBlockType.UNAVAILABLE,
    reason: Optional[str] = None,
    recurrence: Optional[RecurrencePattern] = None,
    now: Optional[datetime] = None,
) -> list[TimeBlockRecord]:
    """
    Block time on the calling groomer's calendar.

    Args:
        actor_id: Calling groomer (owner of the new blocks)
        start_time: Block start (timezone-aware)
        end_time: Block end (timezone-aware)
        block_type: Kind of unavailability
        reason: Optional free text
        recurrence: Weekly repetition; occurrences from the day after the
            base block through recurrence.end_date

    Returns:
        Created blocks, base block first

    Raises:
        ValidationError: bad range, block type or recurrence end date
        AuthorizationError: caller is not a groomer
        ConflictError: base block overlaps an appointment or another block
        RecurrenceExpansionError: an occurrence could not be created; the
            blocks committed before it remain and are listed on the error
    """
    if now is None:
        now = datetime.now(UTC)
    start_time, end_time = _validate_range(start_time, end_time)
    block_type = _parse_block_type(block_type)

    occurrences = expand_occurrences(start_time, end_time, recurrence) if recurrence else []
    pattern = recurrence.model_dump(mode="json") if recurrence else None

    async with get_async_session() as session:
        await get_actor(session, actor_id, UserRole.GROOMER)
        await session.commit()

        created = [
            await _insert_block(
                session, actor_id, start_time, end_time, block_type, reason, pattern, now
            )
        ]
        logger.info(
            f"Time block created: {start_time.isoformat()} - {end_time.isoformat()}",
            extra={"groomer_id": actor_id, "time_block_id": created[0].id},
        )

        for occurrence_start, occurrence_end in occurrences:
            try:
                created.append(
                    await _insert_block(
                        session,
                        actor_id,
                        occurrence_start,
                        occurrence_end,
                        block_type,
                        reason,
                        pattern,
                        now,
                    )
                )
            except SchedulingError as e:
                await session.rollback()
                failed_date = to_business_date(occurrence_start)
                logger.warning(
                    f"Recurring time block expansion stopped at {failed_date}: {e.message}",
                    extra={"groomer_id": actor_id},
                )
                raise RecurrenceExpansionError(
                    f"Created {len(created)} time blocks, but the occurrence on "
                    f"{failed_date.isoformat()} could not be created: {e.message}",
                    created=created,
                    failed_date=failed_date,
                    cause=e,
                ) from e

    if occurrences:
        logger.info(
            f"Recurring time block expanded into {len(created)} rows",
            extra={"groomer_id": actor_id},
        )
    return created


async def update_time_block(
    actor_id: UUID,
    time_block_id: UUID,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    block_type: Optional[TimeBlockType | str] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TimeBlockRecord:
    """
    Change a time block. Omitted fields keep their value.

    Raises:
        NotFoundError: block missing
        AuthorizationError: caller does not own the block
        ValidationError: resulting range is empty or inverted
        ConflictError: new range overlaps an appointment or another block
    """
    if now is None:
        now = datetime.now(UTC)
    log_context = {"actor_id": actor_id, "time_block_id": time_block_id}

    async with get_async_session() as session:
        await begin_serializable(session)
        await get_actor(session, actor_id, UserRole.GROOMER)
        block = await _get_block_or_404(session, time_block_id)
        _require_block_owner(block, actor_id)

        new_start, new_end = _validate_range(
            start_time if start_time is not None else block.start_time,
            end_time if end_time is not None else block.end_time,
        )
        new_type = _parse_block_type(block_type) if block_type is not None else block.block_type

        await ensure_interval_free(
            session, block.groomer_id, new_start, new_end, exclude_time_block_id=block.id
        )

        block.start_time = new_start
        block.end_time = new_end
        block.block_type = new_type
        if reason is not None:
            block.reason = reason
        block.updated_at = now
        await commit_or_conflict(session, **log_context)

        logger.info("Time block updated", extra=log_context)
        return TimeBlockRecord.model_validate(block)


async def delete_time_block(actor_id: UUID, time_block_id: UUID) -> None:
    """
    Permanently remove a time block.

    Raises:
        NotFoundError: block missing
        AuthorizationError: caller does not own the block
    """
    async with get_async_session() as session:
        await get_actor(session, actor_id, UserRole.GROOMER)
        block = await _get_block_or_404(session, time_block_id)
        _require_block_owner(block, actor_id)

        await session.delete(block)
        await session.commit()

    logger.info("Time block deleted", extra={"actor_id": actor_id, "time_block_id": time_block_id})


async def list_time_blocks(
    groomer_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[TimeBlockRecord]:
    """
    A groomer's time blocks in chronological order.

    Args:
        groomer_id: Groomer whose blocks to list
        start: Only blocks ending after this instant
        end: Only blocks starting before this instant

    Raises:
        NotFoundError: groomer missing
    """
    async with get_async_session() as session:
        await get_groomer(session, groomer_id)

        stmt = select(TimeBlock).where(TimeBlock.groomer_id == groomer_id)
        if start is not None:
            stmt = stmt.where(TimeBlock.end_time > _require_aware("start", start))
        if end is not None:
            stmt = stmt.where(TimeBlock.start_time < _require_aware("end", end))
        stmt = stmt.order_by(TimeBlock.start_time)

        blocks = (await session.execute(stmt)).scalars().all()
        return [TimeBlockRecord.model_validate(b) for b in blocks]
