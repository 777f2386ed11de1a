"""
Conversation data access.

Stores conversations and their messages, and returns plain dicts so no
ORM state leaks into prompts or API responses.
"""

import logging
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from relay.infra.database import get_db_context
from relay.models.database import Conversation, Message

logger = logging.getLogger(__name__)

SessionContext = Callable[[], AsyncContextManager[AsyncSession]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "conversationId": message.conversation_id,
        "role": message.role,
        "content": message.content,
        "agentType": message.agent_type,
        "reasoning": message.reasoning,
        "metadata": message.message_metadata or {},
        "createdAt": message.created_at,
    }


def _conversation_to_dict(conversation: Conversation) -> dict:
    return {
        "id": conversation.id,
        "userId": conversation.user_id,
        "title": conversation.title,
        "createdAt": conversation.created_at,
        "updatedAt": conversation.updated_at,
    }


class ConversationService:
    """Conversation and message persistence."""

    def __init__(self, session_context: SessionContext = get_db_context):
        self._session = session_context

    async def create_conversation(self, user_id: str, title: Optional[str] = None) -> dict:
        async with self._session() as db:
            conversation = Conversation(user_id=user_id, title=title or "New Conversation")
            db.add(conversation)
            await db.flush()
            await db.refresh(conversation)
            return _conversation_to_dict(conversation)

    async def get_conversation(self, conversation_id: str) -> Optional[dict]:
        """Get a conversation with its messages (oldest first) and owner."""
        async with self._session() as db:
            result = await db.execute(
                select(Conversation)
                .where(Conversation.id == conversation_id)
                .options(selectinload(Conversation.messages), selectinload(Conversation.user))
            )
            conversation = result.scalar_one_or_none()
            if conversation is None:
                return None

            data = _conversation_to_dict(conversation)
            data["messages"] = [_message_to_dict(m) for m in conversation.messages]
            user = conversation.user
            data["user"] = {
                "id": user.id,
                "email": user.email,
                "name": user.name,
                "tier": user.tier,
            } if user is not None else None
            return data

    async def list_user_conversations(self, user_id: str, limit: int = 20) -> list[dict]:
        """List a user's conversations, most recently updated first."""
        async with self._session() as db:
            result = await db.execute(
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .order_by(Conversation.updated_at.desc())
                .limit(limit)
                .options(selectinload(Conversation.messages))
            )
            conversations = []
            for conversation in result.scalars().all():
                data = _conversation_to_dict(conversation)
                latest = conversation.messages[-1:] if conversation.messages else []
                data["messages"] = [_message_to_dict(m) for m in latest]
                conversations.append(data)
            return conversations

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation. Returns False if it did not exist."""
        async with self._session() as db:
            conversation = await db.get(Conversation, conversation_id)
            if conversation is None:
                return False
            await db.delete(conversation)
            return True

    async def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        agent_type: Optional[str] = None,
        reasoning: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Append a message and touch the conversation's updated_at."""
        async with self._session() as db:
            message = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                agent_type=agent_type,
                reasoning=reasoning,
                message_metadata=metadata or {},
            )
            db.add(message)

            conversation = await db.get(Conversation, conversation_id)
            if conversation is not None:
                conversation.updated_at = _utcnow()

            await db.flush()
            await db.refresh(message)
            return _message_to_dict(message)

    async def get_conversation_history(self, conversation_id: str, limit: int = 10) -> list[dict]:
        """Get the last ``limit`` messages of a conversation, oldest first."""
        async with self._session() as db:
            result = await db.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.created_at.desc())
                .limit(limit)
            )
            messages = list(result.scalars().all())

        messages.reverse()
        return [
            {
                "id": m.id,
                "role": m.role,
                "content": m.content,
                "agentType": m.agent_type,
                "reasoning": m.reasoning,
                "createdAt": m.created_at,
            }
            for m in messages
        ]
