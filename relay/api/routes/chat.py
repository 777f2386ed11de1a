"""
Chat API Endpoints.

Handles customer messages and conversation management.

Messages are routed through the AgentService; with ``stream=true`` the
answer is returned as newline-delimited JSON events.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from relay.config import settings
from relay.api.deps import get_agent_service, get_conversation_service
from relay.core.agent.dispatch import AgentService, OrchestrationResult
from relay.core.agent.streaming import stream_ndjson
from relay.core.agent.types import RequestContext
from relay.services.conversation import ConversationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


class SendMessageRequest(BaseModel):
    """Chat message request."""

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(
        default=None,
        alias="conversationId",
        description="Existing conversation ID. A new conversation is created when omitted.",
    )
    user_id: str = Field(
        ...,
        alias="userId",
        min_length=1,
        description="Caller's user ID",
    )
    message: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="Customer's message",
        examples=["Where is my order #8829?"],
    )
    stream: bool = Field(
        default=False,
        description="Stream the answer as NDJSON events",
    )


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


@router.post(
    "/messages",
    status_code=status.HTTP_200_OK,
    summary="Send a chat message",
    description="Send a message and get the routed agent's answer.",
    responses={
        200: {"description": "Answer, or an NDJSON event stream when stream=true"},
        422: {"model": ErrorResponse, "description": "Invalid request"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)
async def send_message(
    request: SendMessageRequest,
    service: AgentService = Depends(get_agent_service),
    conversations: ConversationService = Depends(get_conversation_service),
):
    """
    Process a chat message.

    - Creates the conversation if needed
    - Loads recent history for routing and context
    - Stores the user message, routing decision and answer
    """
    try:
        conversation_id = request.conversation_id
        if not conversation_id:
            conversation = await conversations.create_conversation(request.user_id)
            conversation_id = conversation["id"]

        history = await conversations.get_conversation_history(
            conversation_id, settings.history_limit
        )
        await conversations.add_message(conversation_id, "user", request.message)

    except Exception as e:
        logger.exception(f"Error preparing conversation: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process message",
        )

    if request.stream:
        context = RequestContext(
            user_id=request.user_id,
            conversation_id=conversation_id,
            conversation_history=history,
        )

        async def store_response(content: str, result: OrchestrationResult) -> None:
            await conversations.add_message(
                conversation_id,
                "assistant",
                content,
                agent_type=result.handler_type.value,
                reasoning=result.reasoning,
                metadata=jsonable_encoder(result.metadata),
            )

        return StreamingResponse(
            stream_ndjson(service, request.message, context, on_complete=store_response),
            media_type="application/x-ndjson",
        )

    result = await service.classify_and_respond(
        query=request.message,
        user_id=request.user_id,
        conversation_id=conversation_id,
        history=history,
    )

    try:
        await conversations.add_message(
            conversation_id,
            "system",
            result.reasoning,
            agent_type="router",
            metadata={"confidence": result.confidence},
        )
        assistant_message = await conversations.add_message(
            conversation_id,
            "assistant",
            result.response or "",
            agent_type=result.handler_type.value,
            reasoning=result.response_reasoning,
            metadata=jsonable_encoder(result.metadata),
        )
    except Exception as e:
        logger.exception(f"Error storing response: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store response",
        )

    return jsonable_encoder({
        "conversationId": conversation_id,
        "message": assistant_message,
        "routing": {
            "agentType": result.handler_type.value,
            "reasoning": result.reasoning,
            "confidence": result.confidence,
        },
        "metadata": result.metadata,
    })


@router.get(
    "/conversations/{conversation_id}",
    summary="Get a conversation",
    responses={404: {"model": ErrorResponse, "description": "Conversation not found"}},
)
async def get_conversation(
    conversation_id: str,
    conversations: ConversationService = Depends(get_conversation_service),
) -> dict:
    """Get a conversation with its messages."""
    conversation = await conversations.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    return jsonable_encoder(conversation)


@router.get(
    "/conversations",
    summary="List a user's conversations",
)
async def list_conversations(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    conversations: ConversationService = Depends(get_conversation_service),
) -> dict:
    """List conversations for a user, most recent first."""
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="userId is required",
        )

    items = await conversations.list_user_conversations(user_id)
    return jsonable_encoder({"conversations": items, "total": len(items)})


@router.delete(
    "/conversations/{conversation_id}",
    summary="Delete a conversation",
    responses={404: {"model": ErrorResponse, "description": "Conversation not found"}},
)
async def delete_conversation(
    conversation_id: str,
    conversations: ConversationService = Depends(get_conversation_service),
) -> dict:
    """Delete a conversation and its messages."""
    if not await conversations.delete_conversation(conversation_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    return {"message": "Conversation deleted successfully"}
