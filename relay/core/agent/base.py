"""
Agent for the Relay multi-agent architecture.

A single Agent class serves every domain. What differs between the
support, order and billing agents (prompt, tools, reasoning heuristic)
is carried by an AgentConfig value built once at startup.
"""

import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Union

from relay.config import settings
from relay.infra.claude import ClaudeClient
from relay.core.agent.sanitizer import render_context_safe
from relay.core.agent.tool_bridge import ToolSpec, ToolTable, bridge_tools
from relay.core.agent.types import HandlerType, RequestContext

logger = logging.getLogger(__name__)


# Appended to every agent prompt after the rendered context
RESPONSE_GUIDELINES = """When you need to fetch specific information about orders, invoices, or user data, use the available tools by calling them directly. The system will execute the tools and provide you with the results.

Provide clear, helpful responses in plain text format. Be conversational and professional. Never output code or technical tool syntax - just have a natural conversation."""


def default_reasoning(name: str) -> Callable[[str], str]:
    """Reasoning heuristic used when an agent does not define its own."""

    def _reasoning(query: str) -> str:
        return f"{name} analyzed the query and generated a response based on available context and tools."

    return _reasoning


@dataclass(frozen=True)
class AgentConfig:
    """
    Immutable description of one domain agent.

    Attributes:
        type: Handler type this agent answers for
        name: Display name (e.g. "Order Agent")
        description: One-line description for listings
        system_prompt: Domain system prompt
        tools: Tools the model may call while answering
        reasoning: Maps the raw query to an explanation string. Used for
            observability only and never changes the answer.
        icon: Icon name shown by clients in agent listings
    """

    type: HandlerType
    name: str
    description: str
    system_prompt: str
    tools: tuple[ToolSpec, ...] = ()
    reasoning: Optional[Callable[[str], str]] = None
    icon: str = "HelpCircle"


@dataclass
class AgentResponse:
    """Non-streaming agent answer."""

    content: str
    reasoning: str


class Agent:
    """
    Domain agent.

    Stateless per request: the config and bridged tool table are shared
    read-only by all concurrent requests.
    """

    def __init__(
        self,
        config: AgentConfig,
        claude_client: Optional[ClaudeClient] = None,
        model: Optional[str] = None,
    ):
        """
        Initialize the agent.

        Args:
            config: Agent configuration
            claude_client: Claude client instance. If None, uses singleton.
            model: Model to use. Defaults to settings.agent_model.
        """
        self.config = config
        self._client = claude_client
        self._model = model or settings.agent_model
        self._tools: ToolTable = bridge_tools(config.tools)
        self._reasoning = config.reasoning or default_reasoning(config.name)

    @property
    def type(self) -> HandlerType:
        return self.config.type

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def tools(self) -> ToolTable:
        return self._tools

    def _get_client(self) -> ClaudeClient:
        """Get Claude client, creating if necessary."""
        if self._client is None:
            self._client = ClaudeClient.get_instance()
        return self._client

    def build_system_prompt(self, context: RequestContext) -> str:
        """Compose domain prompt, rendered context and response guidelines."""
        context_block = render_context_safe(context.to_dict())
        return (
            f"{self.config.system_prompt}\n\n"
            f"Available context:\n{context_block}\n\n"
            f"{RESPONSE_GUIDELINES}"
        )

    def reasoning_for(self, query: str) -> str:
        """Explain, for observability, how this agent reads the query."""
        return self._reasoning(query)

    async def respond(
        self,
        query: str,
        context: RequestContext,
        streaming: bool = False,
    ) -> Union[AgentResponse, AsyncIterator[str]]:
        """
        Answer a query.

        Args:
            query: Customer's message
            context: Request context
            streaming: Return text fragments instead of a final answer

        Returns:
            AgentResponse, or a single-use async iterator of text fragments
            when streaming. The caller concatenates fragments itself.

        Raises:
            ClaudeClientError: If the engine call fails. Agents never
                substitute a fallback answer.
        """
        system_prompt = self.build_system_prompt(context)

        try:
            client = self._get_client()

            if streaming:
                stream = client.stream(
                    prompt=query,
                    system_prompt=system_prompt,
                    model=self._model,
                    tools=self._tools,
                    temperature=settings.agent_temperature,
                    max_tokens=settings.agent_max_tokens,
                    max_retries=settings.agent_max_retries,
                    max_tool_rounds=settings.stream_max_tool_rounds,
                )
                return self._guard_stream(stream, query, context)

            response = await client.generate(
                prompt=query,
                system_prompt=system_prompt,
                model=self._model,
                tools=self._tools,
                temperature=settings.agent_temperature,
                max_tokens=settings.agent_max_tokens,
                max_retries=settings.agent_max_retries,
                max_tool_rounds=settings.agent_max_tool_rounds,
            )

        except Exception as e:
            self._log_failure(e, query, context)
            raise

        return AgentResponse(
            content=response.content or "",
            reasoning=self.reasoning_for(query),
        )

    async def _guard_stream(
        self,
        stream: AsyncIterator[str],
        query: str,
        context: RequestContext,
    ) -> AsyncIterator[str]:
        """Relay fragments, logging engine failures with agent identity."""
        try:
            async with aclosing(stream) as fragments:
                async for fragment in fragments:
                    yield fragment
        except Exception as e:
            self._log_failure(e, query, context)
            raise

    def _log_failure(self, error: Exception, query: str, context: RequestContext) -> None:
        # Key names only: context values may hold customer data
        logger.error(f"[{self.name}] Error processing query: {error}")
        logger.error(f"[{self.name}] Query: {query}")
        logger.error(f"[{self.name}] Context keys: {list(context.to_dict().keys())}")

    def capabilities(self) -> dict:
        """Describe the agent and its tools."""
        return {
            "name": self.config.name,
            "type": self.config.type.value,
            "description": self.config.description,
            "tools": [
                {"name": tool.name, "description": tool.description}
                for tool in self.config.tools
            ],
        }

    def summary(self) -> dict:
        """Short listing entry for the agent."""
        return {
            "type": self.config.type.value,
            "name": self.config.name,
            "description": self.config.description,
            "icon": self.config.icon,
        }
