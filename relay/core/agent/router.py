"""
Message Router for the Relay multi-agent architecture.

Asks Claude which agent should answer a customer query, then scores the
choice with a deterministic keyword heuristic so confidence stays
reproducible regardless of how the model phrased its answer.
"""

import logging
import math
import time
from typing import Optional

from relay.config import settings
from relay.infra.claude import ClaudeClient
from relay.core.agent.types import (
    ClassificationError,
    HandlerType,
    RequestContext,
    RoutingDecision,
)

logger = logging.getLogger(__name__)


ROUTER_SYSTEM_PROMPT = """You are a Router Agent responsible for analyzing customer support queries and determining which specialized agent should handle them.

Available agents:
- Support Agent: Handles general support inquiries, FAQs, troubleshooting, account questions, PASSWORD RESETS, login issues, setup help, technical problems, how-to questions
- Order Agent: Handles order status, tracking, modifications, cancellations, delivery issues, shipping questions (look for order numbers like #1234 or INV-*)
- Billing Agent: Handles payment issues, refunds, invoices, subscription queries, pricing questions, payment method changes, billing disputes

Analyze the user's query and respond with ONLY the agent type that should handle it.
Respond with exactly one of: support, order, billing

Key routing rules:
- Password/login/account access issues → support
- Order numbers (#1234) or tracking → order
- Invoice numbers (INV-*) or payment issues → billing
- General questions or how-to → support

If the query is ambiguous or could fit multiple categories, choose the most relevant one."""

# Substrings counted (case-insensitively) when scoring a routing choice
ROUTING_KEYWORDS: dict[HandlerType, tuple[str, ...]] = {
    HandlerType.ORDER: ("order", "track", "delivery", "shipped", "package", "shipping", "#"),
    HandlerType.BILLING: (
        "payment", "invoice", "refund", "charge", "subscription",
        "billing", "price", "paid", "inv-",
    ),
    HandlerType.SUPPORT: (
        "help", "how", "issue", "problem", "account", "setup", "question",
        "password", "reset", "login", "access", "sign in", "authenticate",
    ),
}

CONFIDENCE_FLOOR = 0.5
CONFIDENCE_CEILING = 0.95
CONFIDENCE_SCALE = 0.45

HISTORY_TURNS = 3

DEFAULT_DECISION = RoutingDecision(
    handler_type=HandlerType.SUPPORT,
    reasoning="Routing to support agent for general inquiry assistance",
    confidence=0.6,
)

_HANDLER_NAMES = {
    HandlerType.ORDER: "Order",
    HandlerType.BILLING: "Billing",
    HandlerType.SUPPORT: "Support",
}


def build_router_prompt(query: str, context: RequestContext) -> str:
    """Build the user prompt: the query plus the last few history turns."""
    turns = context.recent_turns(HISTORY_TURNS)
    history = "\n".join(f"{role}: {content}" for role, content in turns) if turns else "None"

    return f"""Query: "{query}"

Previous conversation context: {history}

Which agent should handle this? Respond with only: support, order, or billing"""


def parse_handler_type(reply: Optional[str]) -> HandlerType:
    """Map the model's reply to a handler, defaulting to support."""
    cleaned = (reply or "").strip().lower()
    try:
        return HandlerType(cleaned)
    except ValueError:
        return HandlerType.SUPPORT


def routing_reasoning(handler_type: HandlerType) -> str:
    """Templated routing explanation (observability only)."""
    return f"Routing to {_HANDLER_NAMES.get(handler_type, 'Support')} agent for specialized handling."


def calculate_confidence(query: str, handler_type: HandlerType) -> float:
    """
    Score a routing choice from keyword hits.

    confidence = min(0.95, 0.5 + hits / word_count * 0.45), rounded half
    up to two decimals. Depends only on the query and the handler.
    """
    query_lower = query.lower()
    matches = sum(1 for keyword in ROUTING_KEYWORDS[handler_type] if keyword in query_lower)
    word_count = max(1, len(query.split()))

    confidence = min(
        CONFIDENCE_CEILING,
        CONFIDENCE_FLOOR + (matches / word_count) * CONFIDENCE_SCALE,
    )
    return math.floor(confidence * 100 + 0.5) / 100


class MessageRouter:
    """
    Routes customer queries to the support, order or billing agent.

    Never raises: any engine failure produces DEFAULT_DECISION.
    """

    def __init__(self, claude_client: Optional[ClaudeClient] = None):
        """
        Initialize the router.

        Args:
            claude_client: Claude client instance. If None, uses singleton.
        """
        self._client = claude_client
        self._model = settings.router_model

    def _get_client(self) -> ClaudeClient:
        """Get Claude client, creating if necessary."""
        if self._client is None:
            self._client = ClaudeClient.get_instance()
        return self._client

    async def classify(self, query: str, context: RequestContext) -> RoutingDecision:
        """
        Decide which agent should answer a query.

        Args:
            query: Customer's message
            context: Request context (history is used for routing)

        Returns:
            RoutingDecision with handler, reasoning and confidence
        """
        start_time = time.time()

        try:
            reply = await self._ask_engine(query, context)
        except ClassificationError as e:
            logger.error(f"[Router] Error routing query: {e}")
            return DEFAULT_DECISION

        handler_type = parse_handler_type(reply)
        if handler_type.value != (reply or "").strip().lower():
            logger.warning(f"[Router] Unexpected reply {reply!r}, defaulting to support")

        decision = RoutingDecision(
            handler_type=handler_type,
            reasoning=routing_reasoning(handler_type),
            confidence=calculate_confidence(query, handler_type),
        )

        logger.info(
            f"Routed query to agent={decision.handler_type.value}, "
            f"confidence={decision.confidence:.2f}, "
            f"time={(time.time() - start_time) * 1000:.0f}ms"
        )
        return decision

    async def _ask_engine(self, query: str, context: RequestContext) -> str:
        try:
            response = await self._get_client().generate(
                prompt=build_router_prompt(query, context),
                system_prompt=ROUTER_SYSTEM_PROMPT,
                model=self._model,
                temperature=settings.router_temperature,
                max_tokens=settings.router_max_tokens,
                max_retries=settings.router_max_retries,
            )
        except Exception as e:
            raise ClassificationError(str(e)) from e
        return response.content

    def capabilities(self) -> dict:
        """Describe the router itself."""
        return {
            "name": "Router Agent",
            "type": "router",
            "description": "Analyzes queries and routes to appropriate specialized agents",
            "tools": [],
        }
