"""
Streaming protocol for agent responses.

A streaming request produces, in order:
    status(typing) -> routing -> status(responding) -> chunk* -> done

Events are written as newline-delimited JSON, one object per line.
"""

import json
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from relay.core.agent.dispatch import FALLBACK_MESSAGE, AgentService, OrchestrationResult
from relay.core.agent.types import RequestContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusEvent:
    stage: str
    handler_type: str

    def to_wire(self) -> dict:
        return {"type": "status", "status": self.stage, "agent": self.handler_type}


@dataclass(frozen=True)
class RoutingEvent:
    handler_type: str
    reasoning: str
    confidence: float

    def to_wire(self) -> dict:
        return {
            "type": "routing",
            "agentType": self.handler_type,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ChunkEvent:
    text: str

    def to_wire(self) -> dict:
        return {"type": "chunk", "content": self.text}


@dataclass(frozen=True)
class DoneEvent:
    message_id: str

    def to_wire(self) -> dict:
        return {"type": "done", "messageId": self.message_id}


StreamEvent = Union[StatusEvent, RoutingEvent, ChunkEvent, DoneEvent]

# Called with the full response text once the fragments are drained
CompletionHook = Callable[[str, OrchestrationResult], Awaitable[None]]


def encode_event(event: StreamEvent) -> str:
    """Encode one event as an NDJSON line."""
    return json.dumps(event.to_wire()) + "\n"


async def stream_events(
    service: AgentService,
    query: str,
    context: RequestContext,
    on_complete: Optional[CompletionHook] = None,
) -> AsyncIterator[StreamEvent]:
    """
    Run a streaming request and yield its events in emission order.

    A consumer that stops reading (closes this generator) closes the
    fragment stream too, which cancels the engine request. If the engine
    fails mid-stream, the apology text is sent as a final chunk so the
    sequence still ends with ``done``.

    Args:
        service: Agent service
        query: Customer's message
        context: Request context
        on_complete: Persists the full text; failures are logged only

    Yields:
        StreamEvent values
    """
    yield StatusEvent(stage="typing", handler_type="router")

    result = await service.process(query, context, streaming=True)

    yield RoutingEvent(
        handler_type=result.handler_type.value,
        reasoning=result.reasoning,
        confidence=result.confidence,
    )
    yield StatusEvent(stage="responding", handler_type=result.handler_type.value)

    parts: list[str] = []
    if result.response_stream is not None:
        try:
            async with aclosing(result.response_stream) as fragments:
                async for fragment in fragments:
                    if not fragment:
                        continue
                    parts.append(fragment)
                    yield ChunkEvent(text=fragment)
        except Exception as e:
            logger.error(f"Response stream failed for conversation {context.conversation_id}: {e}")
            result.metadata["error"] = str(e)
            parts.append(FALLBACK_MESSAGE)
            yield ChunkEvent(text=FALLBACK_MESSAGE)
    elif result.response:
        parts.append(result.response)
        yield ChunkEvent(text=result.response)

    if on_complete is not None:
        try:
            await on_complete("".join(parts), result)
        except Exception as e:
            logger.error(f"Failed to store streamed response: {e}")

    yield DoneEvent(message_id=context.conversation_id)


async def stream_ndjson(
    service: AgentService,
    query: str,
    context: RequestContext,
    on_complete: Optional[CompletionHook] = None,
) -> AsyncIterator[str]:
    """Same as stream_events, encoded as NDJSON lines."""
    async with aclosing(stream_events(service, query, context, on_complete)) as events:
        async for event in events:
            yield encode_event(event)
