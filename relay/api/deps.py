"""
Request dependencies.

The agent service and data services are created once in the application
lifespan and stored on ``app.state``; routes receive them through these
dependencies.
"""

from fastapi import Request

from relay.core.agent.dispatch import AgentService
from relay.services.conversation import ConversationService
from relay.services.user import UserService


def get_agent_service(request: Request) -> AgentService:
    return request.app.state.agent_service


def get_conversation_service(request: Request) -> ConversationService:
    return request.app.state.conversation_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service
