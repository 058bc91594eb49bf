"""
Fixtures for service and API tests.

Every test gets a fresh schema in the in-memory database; the engine is
disposed afterwards so no connection outlives the test's event loop.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import pytest

from database.connection import drop_models, engine, get_async_session, init_models
from database.models import (
    SERVICE_DURATIONS,
    Appointment,
    AppointmentStatus,
    Pet,
    PricingStatus,
    ServiceType,
    TimeBlock,
    TimeBlockType,
    User,
    UserRole,
)


@pytest.fixture(autouse=True)
async def database():
    """Create all tables before the test, drop them after."""
    await init_models()
    yield
    await drop_models()
    await engine.dispose()


async def _add(instance: Any) -> Any:
    async with get_async_session() as session:
        session.add(instance)
        await session.commit()
    return instance


@pytest.fixture
def make_user() -> Callable:
    async def _make(role: UserRole, name: str = "User") -> User:
        return await _add(
            User(id=uuid4(), name=name, email=f"{uuid4().hex[:10]}@example.com", role=role)
        )

    return _make


@pytest.fixture
async def owner(make_user) -> User:
    return await make_user(UserRole.OWNER, "Olivia Owner")


@pytest.fixture
async def other_owner(make_user) -> User:
    return await make_user(UserRole.OWNER, "Oscar Owner")


@pytest.fixture
async def groomer(make_user) -> User:
    return await make_user(UserRole.GROOMER, "Gina Groomer")


@pytest.fixture
async def other_groomer(make_user) -> User:
    return await make_user(UserRole.GROOMER, "Gus Groomer")


@pytest.fixture
async def pet(owner) -> Pet:
    return await _add(Pet(id=uuid4(), owner_id=owner.id, name="Biscuit", species="dog", breed="Corgi"))


@pytest.fixture
def insert_appointment(owner, groomer, pet) -> Callable:
    """
    Write an appointment row directly, bypassing booking rules.

    Used to set up past or near-term appointments that the booking flow
    would refuse to create.
    """

    async def _insert(
        start_time: datetime,
        service_type: ServiceType = ServiceType.BASIC,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        **overrides: Any,
    ) -> Appointment:
        duration = SERVICE_DURATIONS[service_type]
        fields = {
            "id": uuid4(),
            "pet_id": pet.id,
            "owner_id": owner.id,
            "groomer_id": groomer.id,
            "service_type": service_type,
            "duration_minutes": duration,
            "start_time": start_time,
            "end_time": start_time + timedelta(minutes=duration),
            "status": status,
            "groomer_acknowledged": False,
            "auto_completed": False,
            "pricing_status": PricingStatus.PENDING,
            "price_history": [],
            "photos": [],
        }
        fields.update(overrides)
        return await _add(Appointment(**fields))

    return _insert


@pytest.fixture
def insert_time_block(groomer) -> Callable:
    async def _insert(start_time: datetime, end_time: datetime, groomer_id: UUID | None = None) -> TimeBlock:
        return await _add(
            TimeBlock(
                id=uuid4(),
                groomer_id=groomer_id or groomer.id,
                start_time=start_time,
                end_time=end_time,
                block_type=TimeBlockType.PERSONAL,
                is_recurring=False,
            )
        )

    return _insert

