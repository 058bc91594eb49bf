"""
Request dependencies shared by the scheduling routes.

Authentication is handled upstream; requests reach this service with the
authenticated user's id in the X-User-Id header.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> UUID:
    """Dependency returning the caller's user id."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        ) from None


CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
