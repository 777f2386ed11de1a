"""
Claude API Client

Manages Anthropic API connections with async support, bounded retries,
per-call timeouts, tool-call rounds and streaming for the agent layer.
"""

import asyncio
import json
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Optional

from anthropic import AsyncAnthropic, APIError, RateLimitError, APIConnectionError

from relay.config import settings

if TYPE_CHECKING:
    from relay.core.agent.tool_bridge import ToolTable

logger = logging.getLogger(__name__)


class ClaudeClientError(Exception):
    """Raised when Claude API call fails."""
    pass


@dataclass
class ClaudeResponse:
    """Response from Claude API."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    stop_reason: str
    latency_ms: float
    tool_rounds: int = 0


class ClaudeClient:
    """
    Async Claude API client wrapper.

    Features:
    - Async API calls with a per-request timeout
    - Retries with exponential backoff on rate limits and connection errors
    - Sequential tool-call rounds through a ToolTable
    - Streaming text deltas
    """

    _instance: Optional["ClaudeClient"] = None

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key (defaults to settings)
            timeout: Per-request timeout in seconds (defaults to settings)
        """
        self.api_key = api_key or settings.anthropic_api_key
        if not self.api_key:
            raise ValueError("Anthropic API key is required")

        # Retries are handled here so the bound is explicit per call
        self._client = AsyncAnthropic(
            api_key=self.api_key,
            timeout=timeout or settings.engine_timeout_seconds,
            max_retries=0,
        )
        self._default_model = settings.agent_model

        logger.info(f"ClaudeClient initialized with model={self._default_model}")

    @classmethod
    def get_instance(cls) -> "ClaudeClient":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)."""
        cls._instance = None

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        tools: Optional["ToolTable"] = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        max_retries: int = 2,
        max_tool_rounds: int = 0,
    ) -> ClaudeResponse:
        """
        Generate a response from Claude.

        When tools are given and the model stops to call them, the calls
        are executed through the tool table and the results sent back,
        for at most ``max_tool_rounds`` rounds.

        Args:
            prompt: User message
            system_prompt: System prompt (optional)
            model: Model to use (defaults to the agent model)
            tools: Bridged tools the model may call
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature
            max_retries: Retries per API call on transient errors
            max_tool_rounds: Maximum sequential tool-call rounds

        Returns:
            ClaudeResponse with the final text

        Raises:
            ClaudeClientError: If an API call fails after retries
        """
        model = model or self._default_model
        start_time = time.time()

        messages: list[dict] = [{"role": "user", "content": prompt}]
        kwargs = self._build_kwargs(model, system_prompt, tools, max_tokens, temperature)

        try:
            response = await self._call_with_retry(
                lambda: self._client.messages.create(messages=messages, **kwargs),
                max_retries=max_retries,
            )
            input_tokens = response.usage.input_tokens
            output_tokens = response.usage.output_tokens
            rounds = 0

            while tools and response.stop_reason == "tool_use" and rounds < max_tool_rounds:
                tool_uses = [b for b in response.content if getattr(b, "type", None) == "tool_use"]
                if not tool_uses:
                    break

                tool_results = await self._run_tools(tools, tool_uses)
                messages.append({
                    "role": "assistant",
                    "content": self._serialize_content_blocks(response.content),
                })
                messages.append({"role": "user", "content": tool_results})
                rounds += 1

                response = await self._call_with_retry(
                    lambda: self._client.messages.create(messages=messages, **kwargs),
                    max_retries=max_retries,
                )
                input_tokens += response.usage.input_tokens
                output_tokens += response.usage.output_tokens

        except ClaudeClientError:
            raise
        except Exception as e:
            raise ClaudeClientError(f"Claude API call failed: {e}") from e

        return ClaudeResponse(
            content=self._extract_text(response.content),
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            stop_reason=response.stop_reason,
            latency_ms=(time.time() - start_time) * 1000,
            tool_rounds=rounds,
        )

    async def stream(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        tools: Optional["ToolTable"] = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        max_retries: int = 2,
        max_tool_rounds: int = 0,
    ) -> AsyncIterator[str]:
        """
        Stream text deltas from Claude.

        Single pass and forward only. Closing the generator (``aclose()``)
        closes the underlying HTTP stream, which is how a consumer that
        stops reading cancels the request. Retries only cover opening a
        stream, never a stream that has already produced text.

        Yields:
            Text fragments in the order the model produces them

        Raises:
            ClaudeClientError: If an API call fails
        """
        model = model or self._default_model
        messages: list[dict] = [{"role": "user", "content": prompt}]
        kwargs = self._build_kwargs(model, system_prompt, tools, max_tokens, temperature)
        rounds = 0

        while True:
            try:
                async with AsyncExitStack() as stack:
                    stream = await self._call_with_retry(
                        lambda: stack.enter_async_context(
                            self._client.messages.stream(messages=messages, **kwargs)
                        ),
                        max_retries=max_retries,
                    )
                    async for text in stream.text_stream:
                        yield text
                    final = await stream.get_final_message()
            except ClaudeClientError:
                raise
            except Exception as e:
                raise ClaudeClientError(f"Claude stream failed: {e}") from e

            if not tools or final.stop_reason != "tool_use" or rounds >= max_tool_rounds:
                return

            tool_uses = [b for b in final.content if getattr(b, "type", None) == "tool_use"]
            if not tool_uses:
                return

            tool_results = await self._run_tools(tools, tool_uses)
            messages.append({
                "role": "assistant",
                "content": self._serialize_content_blocks(final.content),
            })
            messages.append({"role": "user", "content": tool_results})
            rounds += 1

    def _build_kwargs(
        self,
        model: str,
        system: Optional[str],
        tools: Optional["ToolTable"],
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools.definitions
        return kwargs

    async def _call_with_retry(
        self,
        call: Callable[[], Awaitable[Any]],
        max_retries: int = 2,
    ) -> Any:
        """Call API with exponential backoff retry."""
        last_error: Optional[Exception] = None

        for attempt in range(max_retries + 1):
            try:
                return await call()

            except RateLimitError as e:
                last_error = e
                wait_time = 2 ** attempt
                logger.warning(f"Rate limited, waiting {wait_time}s (attempt {attempt + 1})")

            except APIConnectionError as e:
                last_error = e
                wait_time = 2 ** attempt
                logger.warning(f"Connection error, retrying in {wait_time}s (attempt {attempt + 1})")

            except APIError as e:
                logger.error(f"API error: {e}")
                raise ClaudeClientError(f"Claude API call failed: {e}") from e

            if attempt < max_retries:
                await asyncio.sleep(wait_time)

        raise ClaudeClientError(f"Max retries exceeded: {last_error}") from last_error

    async def _run_tools(self, tools: "ToolTable", tool_uses: list) -> list[dict]:
        """Execute tool_use blocks in order and build tool_result blocks."""
        results = []
        for tool_use in tool_uses:
            result = await tools.execute(tool_use.name, tool_use.input)
            results.append({
                "type": "tool_result",
                "tool_use_id": tool_use.id,
                "content": result if isinstance(result, str) else json.dumps(result, default=str),
            })
        return results

    def _serialize_content_blocks(self, content: list) -> list[dict]:
        """
        Serialize Anthropic content blocks to dicts.

        The SDK returns objects, but follow-up calls need plain dicts.
        """
        serialized = []
        for block in content:
            if isinstance(block, dict):
                serialized.append(block)
            elif getattr(block, "type", None) == "text":
                serialized.append({"type": "text", "text": block.text})
            elif getattr(block, "type", None) == "tool_use":
                serialized.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": block.input,
                })
        return serialized

    def _extract_text(self, content: list) -> str:
        """Join the text blocks of a response."""
        return "".join(
            block.text for block in content or [] if getattr(block, "type", None) == "text"
        )

    async def close(self) -> None:
        """Close the client."""
        await self._client.close()
