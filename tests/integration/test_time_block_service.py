"""
Integration tests for the time block manager.

Tests cover:
- Single block create / update / delete / list
- Conflicts with appointments and other blocks (nothing written on rejection)
- Weekly recurrence expansion, including closed days
- Partial expansion failure reporting
"""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from database.models import TimeBlockType
from scheduling.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RecurrenceExpansionError,
    ValidationError,
)
from scheduling.schemas import RecurrencePattern
from scheduling.services import (
    create_time_block,
    delete_time_block,
    list_time_blocks,
    update_time_block,
)
from booking_support import NEXT_MONDAY, NOW, local
from shared.business_calendar import to_business_date

WEDNESDAY = NEXT_MONDAY + timedelta(days=2)


class TestCreateTimeBlock:
    async def test_single_block(self, groomer):
        blocks = await create_time_block(
            groomer.id,
            local(NEXT_MONDAY, 12),
            local(NEXT_MONDAY, 13),
            block_type=TimeBlockType.LUNCH,
            reason="Lunch",
            now=NOW,
        )
        assert len(blocks) == 1
        assert blocks[0].groomer_id == groomer.id
        assert blocks[0].block_type == TimeBlockType.LUNCH
        assert blocks[0].is_recurring is False

    async def test_overlapping_appointment_rejected_and_nothing_written(
        self, groomer, insert_appointment
    ):
        await insert_appointment(local(NEXT_MONDAY, 14))

        with pytest.raises(ConflictError) as exc_info:
            await create_time_block(
                groomer.id, local(NEXT_MONDAY, 13, 30), local(NEXT_MONDAY, 14, 30), now=NOW
            )
        assert exc_info.value.error_code == "SLOT_TAKEN"
        assert await list_time_blocks(groomer.id) == []

    async def test_overlapping_block_rejected(self, groomer, insert_time_block):
        await insert_time_block(local(NEXT_MONDAY, 12), local(NEXT_MONDAY, 13))
        with pytest.raises(ConflictError) as exc_info:
            await create_time_block(
                groomer.id, local(NEXT_MONDAY, 12, 30), local(NEXT_MONDAY, 14), now=NOW
            )
        assert exc_info.value.error_code == "TIME_BLOCKED"

    async def test_adjacent_block_allowed(self, groomer, insert_time_block):
        await insert_time_block(local(NEXT_MONDAY, 12), local(NEXT_MONDAY, 13))
        blocks = await create_time_block(
            groomer.id, local(NEXT_MONDAY, 13), local(NEXT_MONDAY, 14), now=NOW
        )
        assert len(blocks) == 1

    async def test_closed_day_allowed(self, groomer):
        blocks = await create_time_block(groomer.id, local(WEDNESDAY, 9), local(WEDNESDAY, 17), now=NOW)
        assert to_business_date(blocks[0].start_time) == WEDNESDAY

    async def test_inverted_range_rejected(self, groomer):
        with pytest.raises(ValidationError) as exc_info:
            await create_time_block(groomer.id, local(NEXT_MONDAY, 13), local(NEXT_MONDAY, 13), now=NOW)
        assert exc_info.value.error_code == "INVALID_TIME_RANGE"

    async def test_unknown_block_type(self, groomer):
        with pytest.raises(ValidationError) as exc_info:
            await create_time_block(
                groomer.id, local(NEXT_MONDAY, 12), local(NEXT_MONDAY, 13), block_type="vacation", now=NOW
            )
        assert exc_info.value.error_code == "INVALID_BLOCK_TYPE"

    async def test_owner_cannot_create(self, owner):
        with pytest.raises(AuthorizationError):
            await create_time_block(owner.id, local(NEXT_MONDAY, 12), local(NEXT_MONDAY, 13), now=NOW)


class TestRecurringTimeBlocks:
    async def test_mondays_and_wednesdays(self, groomer):
        """Mon/Wed 12:00-13:00 from Monday 2024-01-08 through 2024-01-22 gives 5 rows."""
        blocks = await create_time_block(
            groomer.id,
            local(NEXT_MONDAY, 12),
            local(NEXT_MONDAY, 13),
            block_type=TimeBlockType.BREAK,
            recurrence=RecurrencePattern(days_of_week=[1, 3], end_date=date(2024, 1, 22)),
            now=NOW,
        )

        assert [to_business_date(b.start_time) for b in blocks] == [
            date(2024, 1, 8),
            date(2024, 1, 10),
            date(2024, 1, 15),
            date(2024, 1, 17),
            date(2024, 1, 22),
        ]
        assert all(b.is_recurring for b in blocks)
        assert blocks[0].recurring_pattern["days_of_week"] == [1, 3]
        assert len(await list_time_blocks(groomer.id)) == 5

    async def test_partial_failure_reports_created_rows(self, groomer, insert_appointment):
        await insert_appointment(local(date(2024, 1, 15), 12))

        with pytest.raises(RecurrenceExpansionError) as exc_info:
            await create_time_block(
                groomer.id,
                local(NEXT_MONDAY, 12),
                local(NEXT_MONDAY, 13),
                recurrence=RecurrencePattern(days_of_week=[1, 3], end_date=date(2024, 1, 22)),
                now=NOW,
            )

        error = exc_info.value
        assert error.failed_date == date(2024, 1, 15)
        assert len(error.created) == 2
        assert error.cause.error_code == "SLOT_TAKEN"
        assert error.status_code == 409
        assert len(await list_time_blocks(groomer.id)) == 2

    async def test_base_conflict_is_plain_conflict(self, groomer, insert_appointment):
        await insert_appointment(local(NEXT_MONDAY, 12))
        with pytest.raises(ConflictError) as exc_info:
            await create_time_block(
                groomer.id,
                local(NEXT_MONDAY, 12),
                local(NEXT_MONDAY, 13),
                recurrence=RecurrencePattern(days_of_week=[1], end_date=date(2024, 1, 22)),
                now=NOW,
            )
        assert not isinstance(exc_info.value, RecurrenceExpansionError)
        assert await list_time_blocks(groomer.id) == []


class TestUpdateAndDelete:
    @pytest.fixture
    async def block(self, groomer):
        blocks = await create_time_block(groomer.id, local(NEXT_MONDAY, 12), local(NEXT_MONDAY, 13), now=NOW)
        return blocks[0]

    async def test_update_range(self, groomer, block):
        updated = await update_time_block(
            groomer.id, block.id, end_time=local(NEXT_MONDAY, 13, 30), reason="Long lunch", now=NOW
        )
        assert updated.end_time == local(NEXT_MONDAY, 13, 30)
        assert updated.start_time == block.start_time
        assert updated.reason == "Long lunch"

    async def test_update_overlapping_itself_allowed(self, groomer, block):
        updated = await update_time_block(
            groomer.id, block.id, start_time=local(NEXT_MONDAY, 12, 30), end_time=local(NEXT_MONDAY, 13, 30), now=NOW
        )
        assert updated.start_time == local(NEXT_MONDAY, 12, 30)

    async def test_update_into_appointment_rejected(self, groomer, block, insert_appointment):
        await insert_appointment(local(NEXT_MONDAY, 14))
        with pytest.raises(ConflictError):
            await update_time_block(groomer.id, block.id, end_time=local(NEXT_MONDAY, 14, 30), now=NOW)

    async def test_update_inverted_range_rejected(self, groomer, block):
        with pytest.raises(ValidationError):
            await update_time_block(groomer.id, block.id, end_time=local(NEXT_MONDAY, 11), now=NOW)

    async def test_other_groomer_cannot_update(self, other_groomer, block):
        with pytest.raises(AuthorizationError) as exc_info:
            await update_time_block(other_groomer.id, block.id, reason="mine now", now=NOW)
        assert exc_info.value.error_code == "NOT_TIME_BLOCK_OWNER"

    async def test_delete(self, groomer, block):
        await delete_time_block(groomer.id, block.id)
        assert await list_time_blocks(groomer.id) == []

    async def test_delete_unknown(self, groomer):
        with pytest.raises(NotFoundError) as exc_info:
            await delete_time_block(groomer.id, uuid4())
        assert exc_info.value.error_code == "TIME_BLOCK_NOT_FOUND"

    async def test_other_groomer_cannot_delete(self, other_groomer, groomer, block):
        with pytest.raises(AuthorizationError):
            await delete_time_block(other_groomer.id, block.id)
        assert len(await list_time_blocks(groomer.id)) == 1


class TestListTimeBlocks:
    async def test_range_filter(self, groomer, insert_time_block):
        await insert_time_block(local(NEXT_MONDAY, 12), local(NEXT_MONDAY, 13))
        await insert_time_block(local(NEXT_MONDAY + timedelta(days=1), 12), local(NEXT_MONDAY + timedelta(days=1), 13))

        blocks = await list_time_blocks(
            groomer.id, start=local(NEXT_MONDAY, 0), end=local(NEXT_MONDAY, 23, 59)
        )
        assert len(blocks) == 1

    async def test_chronological(self, groomer, insert_time_block):
        await insert_time_block(local(NEXT_MONDAY, 15), local(NEXT_MONDAY, 16))
        await insert_time_block(local(NEXT_MONDAY, 12), local(NEXT_MONDAY, 13))
        blocks = await list_time_blocks(groomer.id)
        assert blocks[0].start_time < blocks[1].start_time

    async def test_unknown_groomer(self, owner):
        with pytest.raises(NotFoundError):
            await list_time_blocks(owner.id)
