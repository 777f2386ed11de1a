"""
Agent Module - Relay Multi-Agent Architecture

This module contains the routing and tool orchestration layer:
- Router: Picks the agent for a query, with keyword-based confidence
- Agent: Config-driven domain agent (support, order, billing)
- Tool Bridge: Tool declarations in Anthropic format with isolated execution
- Sanitizer: JSON-safe rendering of request context
- Dispatch: Main orchestrator (AgentService)
- Streaming: Ordered NDJSON event protocol
"""

from relay.core.agent.types import (
    ClassificationError,
    HandlerNotFoundError,
    HandlerType,
    MetricsRecord,
    RequestContext,
    RoutingDecision,
    SanitizationError,
    ToolExecutionError,
    ToolSchemaError,
)
from relay.core.agent.sanitizer import sanitize, render_context
from relay.core.agent.tool_bridge import ParamKind, ToolParam, ToolSpec, ToolTable, bridge_tools
from relay.core.agent.base import Agent, AgentConfig, AgentResponse
from relay.core.agent.router import MessageRouter
from relay.core.agent.dispatch import AgentService, OrchestrationResult, build_agent_service
from relay.core.agent.streaming import StreamEvent, stream_events, stream_ndjson

__all__ = [
    # Types
    "ClassificationError",
    "HandlerNotFoundError",
    "HandlerType",
    "MetricsRecord",
    "RequestContext",
    "RoutingDecision",
    "SanitizationError",
    "ToolExecutionError",
    "ToolSchemaError",
    # Sanitizer
    "sanitize",
    "render_context",
    # Tool Bridge
    "ParamKind",
    "ToolParam",
    "ToolSpec",
    "ToolTable",
    "bridge_tools",
    # Agent
    "Agent",
    "AgentConfig",
    "AgentResponse",
    # Router
    "MessageRouter",
    # Dispatch
    "AgentService",
    "OrchestrationResult",
    "build_agent_service",
    # Streaming
    "StreamEvent",
    "stream_events",
    "stream_ndjson",
]
