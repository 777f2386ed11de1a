"""
User API Endpoints.

Syncs users from the identity provider and returns the caller's profile.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field

from relay.api.deps import get_user_service
from relay.services.user import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["Users"])


class SyncUserRequest(BaseModel):
    """User sync request."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    email: str = Field(..., min_length=3)
    name: Optional[str] = None


@router.post("/sync", summary="Sync a user from the identity provider")
async def sync_user(
    request: SyncUserRequest,
    users: UserService = Depends(get_user_service),
) -> dict:
    """Create or update the application's copy of a user."""
    try:
        user = await users.upsert_user(request.user_id, request.email, request.name)
    except Exception as e:
        logger.exception(f"Error syncing user: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync user",
        )

    return {
        "message": "User synced successfully",
        "user": {key: user[key] for key in ("id", "email", "name", "tier")},
    }


@router.get("/me", summary="Get the current user's profile")
async def get_me(
    x_user_id: Optional[str] = Header(default=None, alias="x-user-id"),
    users: UserService = Depends(get_user_service),
) -> dict:
    """Return the profile of the user named in the x-user-id header."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    user = await users.get_user(x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return {"user": jsonable_encoder(user)}
