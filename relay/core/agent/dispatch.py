"""
Dispatcher for the Relay multi-agent architecture.

AgentService sequences router -> agent for each customer message,
resolves the caller's tier, times the request and records metrics.
It is the one place where remaining failures become a user-visible
fallback answer: callers always get a well-formed result.
"""

import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Mapping, Optional, Protocol

from relay.config import settings
from relay.infra.claude import ClaudeClient
from relay.core.agent.base import Agent, AgentResponse
from relay.core.agent.router import MessageRouter
from relay.core.agent.types import (
    HandlerNotFoundError,
    HandlerType,
    MetricsRecord,
    RequestContext,
)

logger = logging.getLogger(__name__)


FALLBACK_MESSAGE = (
    "I apologize, but I'm experiencing technical difficulties processing your request "
    "at the moment. Please try again in a few moments, or rephrase your question."
)
FALLBACK_ROUTING_REASONING = "Service temporarily unavailable, defaulting to support agent"
FALLBACK_RESPONSE_REASONING = "Error occurred while processing the request"
FALLBACK_CONFIDENCE = 0.5


class UserTierLookup(Protocol):
    async def lookup_user_tier(self, user_id: str) -> str: ...


class MetricsSink(Protocol):
    async def append_metrics(self, record: MetricsRecord) -> None: ...


@dataclass
class OrchestrationResult:
    """
    Result of processing one customer message.

    Exactly one of ``response`` / ``response_stream`` is set. The fallback
    result always carries ``response`` and ``metadata["error"]``.
    """

    handler_type: HandlerType
    reasoning: str
    confidence: float
    response: Optional[str] = None
    response_stream: Optional[AsyncIterator[str]] = None
    response_reasoning: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_streaming(self) -> bool:
        return self.response_stream is not None

    @property
    def error(self) -> Optional[str]:
        return self.metadata.get("error")

    def to_dict(self) -> dict:
        """Convert to dictionary for non-streaming API responses."""
        return {
            "agentType": self.handler_type.value,
            "routing": {
                "reasoning": self.reasoning,
                "confidence": self.confidence,
            },
            "response": self.response,
            "reasoning": self.response_reasoning,
            "metadata": dict(self.metadata),
        }


class AgentService:
    """
    Orchestrates routing and response for customer messages.

    Lifecycle: created once at process start with its router, agents and
    collaborators, then shared by all requests. It holds no per-request
    state.

    Flow:
    1. Route the query (never raises)
    2. Resolve the user's tier (defaults to "free")
    3. Ask the chosen agent to respond (streaming or not)
    4. Record metrics (best effort)
    5. On any failure, return the fallback result instead of raising
    """

    def __init__(
        self,
        router: MessageRouter,
        agents: Mapping[HandlerType, Agent],
        users: Optional[UserTierLookup] = None,
        metrics: Optional[MetricsSink] = None,
        model_name: Optional[str] = None,
    ):
        """
        Initialize the service.

        Args:
            router: Message router
            agents: One agent per handler type
            users: Collaborator resolving a user's tier
            metrics: Collaborator storing metrics records
            model_name: Reported as ``metadata.model``
        """
        self._router = router
        self._agents = dict(agents)
        self._users = users
        self._metrics = metrics
        self._model_name = model_name or settings.agent_model

    # === Main Processing ===

    async def process(
        self,
        query: str,
        context: RequestContext,
        streaming: bool = False,
    ) -> OrchestrationResult:
        """
        Process a customer message.

        For streaming requests the first fragment is pulled here, so an
        engine that fails on open still gets the fallback result. Timing
        stops at that first fragment; the metrics record is written once
        the returned stream ends.

        Args:
            query: Customer's message
            context: Request context
            streaming: Return a fragment stream instead of final text

        Returns:
            OrchestrationResult (fallback result on failure)
        """
        start_time = time.time()

        try:
            # 1. Route
            decision = await self._router.classify(query, context)
            logger.info(
                f"[Router] Query routed to {decision.handler_type.value} agent "
                f"(confidence: {decision.confidence})"
            )

            # 2. Enrich context
            agent = self.get_agent(decision.handler_type)
            enriched = replace(
                context,
                user_tier=await self._resolve_user_tier(context.user_id),
            )

            # 3. Delegate
            response = await agent.respond(query, enriched, streaming=streaming)
            first_fragment = None
            if not isinstance(response, AgentResponse):
                # Engine failures on open take the fallback path below
                first_fragment = await self._open_stream(response)

            # 4. Metrics
            response_time_ms = self._elapsed_ms(start_time)
            record = MetricsRecord(
                handler_type=decision.handler_type.value,
                session_id=context.conversation_id,
                intent=decision.handler_type.value,
                confidence=decision.confidence,
                response_time_ms=response_time_ms,
                successful=True,
            )

            result = OrchestrationResult(
                handler_type=decision.handler_type,
                reasoning=decision.reasoning,
                confidence=decision.confidence,
                metadata={
                    "responseTimeMs": response_time_ms,
                    "model": self._model_name,
                },
            )
            if isinstance(response, AgentResponse):
                await self._record_metrics(record)
                result.response = response.content
                result.response_reasoning = response.reasoning
            else:
                result.response_stream = self._metered_stream(first_fragment, response, record)
            return result

        except Exception as e:
            response_time_ms = self._elapsed_ms(start_time)
            error_message = str(e) or type(e).__name__
            logger.error(f"[Agent Service] Error: {error_message}")
            logger.error(f"[Agent Service] Query: {query}")

            await self._record_metrics(MetricsRecord(
                handler_type="router",
                session_id=context.conversation_id,
                intent="unknown",
                confidence=0.0,
                response_time_ms=response_time_ms,
                successful=False,
                error_message=error_message,
            ))

            return OrchestrationResult(
                handler_type=HandlerType.SUPPORT,
                reasoning=FALLBACK_ROUTING_REASONING,
                confidence=FALLBACK_CONFIDENCE,
                response=FALLBACK_MESSAGE,
                response_reasoning=FALLBACK_RESPONSE_REASONING,
                metadata={
                    "responseTimeMs": response_time_ms,
                    "model": self._model_name,
                    "error": error_message,
                },
            )

    async def classify_and_respond(
        self,
        query: str,
        user_id: Optional[str],
        conversation_id: str,
        history: Optional[list] = None,
        streaming: bool = False,
    ) -> OrchestrationResult:
        """Boundary entry point used by the API layer."""
        context = RequestContext(
            user_id=user_id,
            conversation_id=conversation_id,
            conversation_history=list(history or []),
        )
        return await self.process(query, context, streaming=streaming)

    # === Agent Registry ===

    def get_agent(self, handler_type: HandlerType) -> Agent:
        """Get the agent for a handler type."""
        agent = self._agents.get(handler_type)
        if agent is None:
            raise HandlerNotFoundError(getattr(handler_type, "value", str(handler_type)))
        return agent

    def list_handlers(self) -> list[dict]:
        """List the available agents."""
        return [self._agents[t].summary() for t in HandlerType if t in self._agents]

    def get_handler_capabilities(self, handler_type: str) -> dict:
        """
        Describe an agent and its tools.

        Raises:
            HandlerNotFoundError: If the type is unknown
        """
        if handler_type == "router":
            return self._router.capabilities()
        try:
            parsed = HandlerType(handler_type)
        except ValueError:
            raise HandlerNotFoundError(handler_type) from None
        return self.get_agent(parsed).capabilities()

    # === Collaborators ===

    async def _resolve_user_tier(self, user_id: Optional[str]) -> str:
        if not user_id or self._users is None:
            return "free"
        try:
            return await self._users.lookup_user_tier(user_id) or "free"
        except Exception as e:
            logger.warning(f"User tier lookup failed for {user_id}, using free: {e}")
            return "free"

    async def _record_metrics(self, record: MetricsRecord) -> None:
        if self._metrics is None:
            return
        try:
            await self._metrics.append_metrics(record)
        except Exception as e:
            logger.error(f"Failed to log agent metrics: {e}")

    @staticmethod
    async def _open_stream(stream: AsyncIterator[str]) -> Optional[str]:
        """Pull the first fragment; None when the stream is empty."""
        try:
            return await stream.__anext__()
        except StopAsyncIteration:
            return None

    async def _metered_stream(
        self,
        first_fragment: Optional[str],
        stream: AsyncIterator[str],
        record: MetricsRecord,
    ) -> AsyncIterator[str]:
        """
        Re-chain an opened fragment stream and write its metrics record
        once it ends: successful when drained, failed when the engine
        errors or the consumer closes it early.
        """
        async with aclosing(stream):
            try:
                if first_fragment is not None:
                    yield first_fragment
                    async for fragment in stream:
                        yield fragment
            except GeneratorExit:
                await self._record_metrics(replace(
                    record,
                    successful=False,
                    error_message="Stream closed before completion",
                ))
                raise
            except Exception as e:
                error_message = str(e) or type(e).__name__
                logger.error(f"[Agent Service] Stream error: {error_message}")
                await self._record_metrics(replace(
                    record,
                    successful=False,
                    error_message=error_message,
                ))
                raise
            else:
                await self._record_metrics(record)

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)


def build_agent_service(
    claude_client: Optional[ClaudeClient] = None,
    conversations: Any = None,
    orders: Any = None,
    payments: Any = None,
    users: Optional[UserTierLookup] = None,
    metrics: Optional[MetricsSink] = None,
) -> AgentService:
    """
    Wire router, agents and collaborators into an AgentService.

    Called once at application startup. Collaborators not supplied are
    created with their default database sessions.
    """
    from relay.core.agent.agents.billing import build_billing_config
    from relay.core.agent.agents.order import build_order_config
    from relay.core.agent.agents.support import build_support_config
    from relay.services.conversation import ConversationService
    from relay.services.metrics import MetricsService
    from relay.services.order import OrderService
    from relay.services.payment import PaymentService
    from relay.services.user import UserService

    conversations = conversations or ConversationService()
    configs = (
        build_support_config(conversations),
        build_order_config(orders or OrderService()),
        build_billing_config(payments or PaymentService()),
    )

    return AgentService(
        router=MessageRouter(claude_client=claude_client),
        agents={config.type: Agent(config, claude_client=claude_client) for config in configs},
        users=users or UserService(),
        metrics=metrics or MetricsService(),
    )
