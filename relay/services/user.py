"""
User data access.

Resolves subscription tiers for the dispatcher and keeps user records in
sync with the identity provider.
"""

import logging
from datetime import datetime, timezone
from typing import AsyncContextManager, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from relay.infra.database import get_db_context
from relay.models.database import User, UserTier

logger = logging.getLogger(__name__)

SessionContext = Callable[[], AsyncContextManager[AsyncSession]]


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "tier": user.tier,
        "createdAt": user.created_at,
        "updatedAt": user.updated_at,
    }


class UserService:
    """User lookups and upserts."""

    def __init__(self, session_context: SessionContext = get_db_context):
        self._session = session_context

    async def lookup_user_tier(self, user_id: str) -> str:
        """Return the user's tier, "free" when the user is unknown."""
        async with self._session() as db:
            user = await db.get(User, user_id)
        return user.tier if user is not None and user.tier else UserTier.FREE.value

    async def get_user(self, user_id: str) -> Optional[dict]:
        async with self._session() as db:
            user = await db.get(User, user_id)
            return _user_to_dict(user) if user is not None else None

    async def upsert_user(self, user_id: str, email: str, name: Optional[str] = None) -> dict:
        """Create the user, or update email/name if it already exists."""
        async with self._session() as db:
            user = await db.get(User, user_id)
            if user is None:
                user = User(id=user_id, email=email, name=name or "User", tier=UserTier.FREE.value)
                db.add(user)
                logger.info(f"Created user {user_id}")
            else:
                user.email = email
                if name:
                    user.name = name
                user.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
            await db.flush()
            await db.refresh(user)
            return _user_to_dict(user)
