"""
Reference lookups for users and pets.

Users and pets are owned by other subsystems; scheduling only resolves them
to check roles and ownership. The session-taking helpers run inside the
caller's session so the lookups share the booking transaction.
list_groomers and get_groomer_profile open their own session for the
read-only groomer directory.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import Appointment, Pet, User, UserRole
from scheduling.errors import AuthorizationError, NotFoundError
from scheduling.schemas import UserSummary

logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, user_id: UUID) -> User:
    """
    Load a user by id.

    Raises:
        NotFoundError: No such user
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(
            "User not found",
            error_code="USER_NOT_FOUND",
            details={"user_id": str(user_id)},
        )
    return user


def require_role(user: User, role: UserRole) -> User:
    """
    Check that a user holds a role.

    Raises:
        AuthorizationError: Role mismatch
    """
    if user.role != role:
        logger.warning(
            f"Role check failed: expected {role.value}, got {user.role.value}",
            extra={"actor_id": user.id},
        )
        raise AuthorizationError(
            f"Only {role.value}s can perform this action",
            error_code="WRONG_ROLE",
            details={"required_role": role.value},
        )
    return user


async def get_actor(session: AsyncSession, actor_id: UUID, role: UserRole) -> User:
    """Load the calling user and check their role."""
    return require_role(await get_user(session, actor_id), role)


async def get_groomer(session: AsyncSession, groomer_id: UUID) -> User:
    """
    Load a groomer.

    Raises:
        NotFoundError: No user with this id, or the user is not a groomer
    """
    result = await session.execute(
        select(User).where(User.id == groomer_id).where(User.role == UserRole.GROOMER)
    )
    groomer = result.scalar_one_or_none()
    if groomer is None:
        raise NotFoundError(
            "Groomer not found",
            error_code="GROOMER_NOT_FOUND",
            details={"groomer_id": str(groomer_id)},
        )
    return groomer


async def list_groomers() -> list[UserSummary]:
    """All groomers, ordered by name."""
    async with get_async_session() as session:
        result = await session.execute(
            select(User).where(User.role == UserRole.GROOMER).order_by(User.name, User.id)
        )
        groomers = [UserSummary.model_validate(user) for user in result.scalars().all()]

    logger.debug(f"Listed {len(groomers)} groomers")
    return groomers


async def get_groomer_profile(groomer_id: UUID) -> UserSummary:
    """
    Public profile of one groomer.

    Raises:
        NotFoundError: No user with this id, or the user is not a groomer
    """
    async with get_async_session() as session:
        groomer = await get_groomer(session, groomer_id)
        return UserSummary.model_validate(groomer)


async def get_owned_pet(session: AsyncSession, pet_id: UUID, owner_id: UUID) -> Pet:
    """
    Load a pet and check it belongs to owner_id.

    Raises:
        NotFoundError: No such pet
        AuthorizationError: Pet belongs to someone else
    """
    result = await session.execute(select(Pet).where(Pet.id == pet_id))
    pet = result.scalar_one_or_none()
    if pet is None:
        raise NotFoundError(
            "Pet not found",
            error_code="PET_NOT_FOUND",
            details={"pet_id": str(pet_id)},
        )
    if pet.owner_id != owner_id:
        logger.warning(
            f"Pet {pet_id} does not belong to caller",
            extra={"actor_id": owner_id},
        )
        raise AuthorizationError(
            "You can only book appointments for your own pets",
            error_code="NOT_PET_OWNER",
            details={"pet_id": str(pet_id)},
        )
    return pet


def require_appointment_owner(appointment: Appointment, actor_id: UUID) -> Appointment:
    """
    Raises:
        AuthorizationError: the caller did not book this appointment
    """
    if appointment.owner_id != actor_id:
        logger.warning(
            "Caller does not own appointment",
            extra={"actor_id": actor_id, "appointment_id": appointment.id},
        )
        raise AuthorizationError(
            "You can only modify your own appointments",
            error_code="NOT_APPOINTMENT_OWNER",
            details={"appointment_id": str(appointment.id)},
        )
    return appointment


def require_assigned_groomer(appointment: Appointment, actor_id: UUID) -> Appointment:
    """
    Raises:
        AuthorizationError: the caller is not the groomer assigned to this appointment
    """
    if appointment.groomer_id != actor_id:
        logger.warning(
            "Caller is not the assigned groomer",
            extra={"actor_id": actor_id, "appointment_id": appointment.id},
        )
        raise AuthorizationError(
            "Only the assigned groomer can perform this action",
            error_code="NOT_ASSIGNED_GROOMER",
            details={"appointment_id": str(appointment.id)},
        )
    return appointment
