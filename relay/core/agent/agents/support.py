"""
Support Agent for the Relay multi-agent architecture.

Handles general support questions, account issues, troubleshooting and
how-to questions. Can look up earlier conversation history.
"""

from typing import TYPE_CHECKING

from relay.core.agent.base import AgentConfig
from relay.core.agent.tool_bridge import ToolSpec, result_limit
from relay.core.agent.types import HandlerType, ToolExecutionError

if TYPE_CHECKING:
    from relay.services.conversation import ConversationService


SUPPORT_SYSTEM_PROMPT = """You are a helpful Support Agent for a customer service platform called Relay.

Your responsibilities:
- Answer general support questions
- Help with account-related issues
- Provide troubleshooting guidance
- Assist with FAQ-type queries
- Guide users on how to use the platform

Be friendly, professional, and concise. Always aim to solve the customer's problem efficiently.
If you need information from conversation history, use the available tools."""


def support_reasoning(query: str) -> str:
    """Explain how a support query is being handled."""
    lowered = query.lower()
    has_question = "?" in query or "how" in lowered
    is_issue = "issue" in lowered or "problem" in lowered

    if has_question:
        return "Identified as a support question. Searching knowledge base and providing step-by-step guidance."
    if is_issue:
        return "Detected troubleshooting request. Analyzing issue and providing solution steps."
    return "Processing general support inquiry. Providing relevant assistance and resources."


def build_support_config(conversations: "ConversationService") -> AgentConfig:
    """Build the support agent configuration."""

    async def query_conversation_history(params: dict) -> list[dict]:
        # Declared without parameter metadata, so the model sees the default
        # schema (userId, limit, ...). conversationId is honoured if sent.
        limit = result_limit(params)
        conversation_id = params.get("conversationId")
        if conversation_id:
            return await conversations.get_conversation_history(conversation_id, limit)
        user_id = params.get("userId")
        if not user_id:
            raise ToolExecutionError("A userId or conversationId is required")
        return await conversations.list_user_conversations(user_id, limit)

    return AgentConfig(
        type=HandlerType.SUPPORT,
        name="Support Agent",
        description="Handles general support inquiries, FAQs, and troubleshooting",
        system_prompt=SUPPORT_SYSTEM_PROMPT,
        tools=(
            ToolSpec(
                name="query_conversation_history",
                description="Retrieves past conversations to provide context",
                executor=query_conversation_history,
            ),
        ),
        reasoning=support_reasoning,
        icon="HelpCircle",
    )
