"""
Shared types for the Relay agent layer.

Contains the handler enum, per-request context, the router decision,
the metrics record and the exception taxonomy used across the router,
agents and dispatcher.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class HandlerType(str, Enum):
    """Domain agents a query can be routed to."""

    SUPPORT = "support"
    ORDER = "order"
    BILLING = "billing"


class ToolExecutionError(Exception):
    """Raised by a tool executor when a lookup fails.

    Never leaves the tool bridge: it is converted into ``{"error": message}``
    and handed back to the model.
    """
    pass


class ClassificationError(Exception):
    """Raised when the engine call made by the router fails."""
    pass


class HandlerNotFoundError(LookupError):
    """Raised when an unknown agent type is requested."""

    def __init__(self, handler_type: str):
        self.handler_type = handler_type
        super().__init__(f"Agent type '{handler_type}' not found")


class SanitizationError(Exception):
    """Raised when request context cannot be rendered for a prompt."""
    pass


class ToolSchemaError(ValueError):
    """Raised when a tool declaration is invalid."""
    pass


@dataclass
class RequestContext:
    """
    Context for a single request.

    Built fresh for each incoming message and never persisted by the
    agent layer.

    Attributes:
        user_id: Caller's user ID (may be empty for anonymous callers)
        conversation_id: Conversation the message belongs to
        conversation_history: Previous messages, oldest first. Each item
            carries at least ``role`` and ``content``.
        user_tier: Subscription tier resolved by the dispatcher
    """

    user_id: Optional[str]
    conversation_id: str
    conversation_history: list[Any] = field(default_factory=list)
    user_tier: str = "free"

    def recent_turns(self, count: int = 3) -> list[tuple[str, str]]:
        """Return the last ``count`` history entries as (role, content) pairs."""
        turns = []
        for item in self.conversation_history[-count:]:
            if isinstance(item, dict):
                turns.append((str(item.get("role", "")), str(item.get("content", ""))))
            else:
                turns.append((str(getattr(item, "role", "")), str(getattr(item, "content", ""))))
        return turns

    def to_dict(self) -> dict:
        """Convert to the dict shown to the model as context."""
        return {
            "userId": self.user_id,
            "conversationId": self.conversation_id,
            "conversationHistory": self.conversation_history,
            "userTier": self.user_tier,
        }


@dataclass(frozen=True)
class RoutingDecision:
    """
    Result from the message router.

    Attributes:
        handler_type: Agent that should answer the query
        reasoning: Templated explanation, for observability only
        confidence: Keyword-based confidence in [0.5, 0.95] (0.6 on
            router failure)
    """

    handler_type: HandlerType
    reasoning: str
    confidence: float

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "agentType": self.handler_type.value,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class MetricsRecord:
    """One row of agent metrics, written once at the end of a request."""

    handler_type: str
    session_id: str
    intent: str
    confidence: float
    response_time_ms: int
    successful: bool
    error_message: Optional[str] = None
