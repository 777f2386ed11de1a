"""Tests for the Claude client wrapper (tool rounds, retries, streaming)."""

import json
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from anthropic import APIConnectionError, RateLimitError

from relay.core.agent.tool_bridge import ParamKind, ToolParam, ToolSpec, bridge_tools
from relay.infra.claude import ClaudeClient, ClaudeClientError


def _text(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


def _tool_use(tool_id: str, name: str, tool_input: dict) -> SimpleNamespace:
    return SimpleNamespace(type="tool_use", id=tool_id, name=name, input=tool_input)


def _message(content: list, stop_reason: str = "end_turn") -> SimpleNamespace:
    return SimpleNamespace(
        content=content,
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


def _request() -> httpx.Request:
    return httpx.Request("POST", "https://api.anthropic.com/v1/messages")


class FakeStream:
    """Stands in for the SDK's MessageStream context manager."""

    def __init__(self, parts: list[str], final: SimpleNamespace):
        self._parts = parts
        self._final = final
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    @property
    def text_stream(self):
        async def parts():
            for part in self._parts:
                yield part
        return parts()

    async def get_final_message(self):
        return self._final


@pytest.fixture
def orders():
    service = AsyncMock()
    service.get_order_by_number.return_value = {"orderNumber": "#8829", "status": "shipped"}
    return service


@pytest.fixture
def tools(orders):
    async def fetch_order_details(params: dict) -> dict:
        return await orders.get_order_by_number(params["orderNumber"])

    return bridge_tools([
        ToolSpec(
            name="fetch_order_details",
            description="Fetch an order",
            executor=fetch_order_details,
            parameters=(ToolParam("orderNumber", ParamKind.STRING, "Order number", required=True),),
        ),
    ])


@pytest.fixture
def client():
    client = ClaudeClient(api_key="test-key")
    client._client = MagicMock()
    client._client.messages.create = AsyncMock()
    return client


class TestGenerate:
    """Test non-streaming generation."""

    def test_requires_api_key(self):
        with patch("relay.infra.claude.settings") as mock_settings:
            mock_settings.anthropic_api_key = ""
            with pytest.raises(ValueError):
                ClaudeClient()

    @pytest.mark.asyncio
    async def test_plain_response(self, client):
        client._client.messages.create.return_value = _message([_text("Hello")])

        response = await client.generate("Hi", system_prompt="Be nice", max_tokens=50)

        assert response.content == "Hello"
        assert response.tool_rounds == 0
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be nice"
        assert kwargs["max_tokens"] == 50
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_tool_round(self, client, tools, orders):
        client._client.messages.create.side_effect = [
            _message(
                [_text("Let me check."), _tool_use("tu_1", "fetch_order_details", {"orderNumber": "#8829"})],
                stop_reason="tool_use",
            ),
            _message([_text("Your order has shipped.")]),
        ]

        response = await client.generate("Where is #8829?", tools=tools, max_tool_rounds=5)

        assert response.content == "Your order has shipped."
        assert response.tool_rounds == 1
        assert response.input_tokens == 20
        orders.get_order_by_number.assert_awaited_once_with("#8829")

        second_call = client._client.messages.create.call_args_list[1].kwargs
        assert second_call["tools"] == tools.definitions
        tool_result = second_call["messages"][-1]["content"][0]
        assert tool_result["type"] == "tool_result"
        assert tool_result["tool_use_id"] == "tu_1"
        assert json.loads(tool_result["content"]) == {"orderNumber": "#8829", "status": "shipped"}
        assert second_call["messages"][1]["content"][1] == {
            "type": "tool_use",
            "id": "tu_1",
            "name": "fetch_order_details",
            "input": {"orderNumber": "#8829"},
        }

    @pytest.mark.asyncio
    async def test_tool_failure_goes_back_to_model(self, client, tools, orders):
        orders.get_order_by_number.side_effect = RuntimeError("Order #1 not found")
        client._client.messages.create.side_effect = [
            _message([_tool_use("tu_1", "fetch_order_details", {"orderNumber": "#1"})], stop_reason="tool_use"),
            _message([_text("I couldn't find that order.")]),
        ]

        response = await client.generate("Where is #1?", tools=tools, max_tool_rounds=5)

        assert response.content == "I couldn't find that order."
        tool_result = client._client.messages.create.call_args_list[1].kwargs["messages"][-1]["content"][0]
        assert json.loads(tool_result["content"]) == {"error": "Order #1 not found"}

    @pytest.mark.asyncio
    async def test_tool_rounds_bounded(self, client, tools):
        looping = _message(
            [_tool_use("tu_1", "fetch_order_details", {"orderNumber": "#8829"})],
            stop_reason="tool_use",
        )
        client._client.messages.create.return_value = looping

        response = await client.generate("loop", tools=tools, max_tool_rounds=2)

        assert response.tool_rounds == 2
        assert client._client.messages.create.await_count == 3
        assert response.content == ""

    @pytest.mark.asyncio
    async def test_retries_rate_limit(self, client):
        rate_limited = RateLimitError(
            "rate limited",
            response=httpx.Response(429, request=_request()),
            body=None,
        )
        client._client.messages.create.side_effect = [rate_limited, _message([_text("ok")])]

        with patch("relay.infra.claude.asyncio.sleep", new=AsyncMock()) as sleep:
            response = await client.generate("Hi", max_retries=2)

        assert response.content == "ok"
        sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, client):
        client._client.messages.create.side_effect = APIConnectionError(request=_request())

        with patch("relay.infra.claude.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ClaudeClientError, match="Max retries exceeded"):
                await client.generate("Hi", max_retries=2)

        assert client._client.messages.create.await_count == 3

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, client):
        client._client.messages.create.side_effect = RuntimeError("boom")

        with pytest.raises(ClaudeClientError):
            await client.generate("Hi")


class TestStream:
    """Test streaming generation."""

    @pytest.mark.asyncio
    async def test_stream_text(self, client):
        fake = FakeStream(["Hel", "lo"], _message([_text("Hello")]))
        client._client.messages.stream = MagicMock(return_value=fake)

        parts = [part async for part in client.stream("Hi")]

        assert parts == ["Hel", "lo"]
        assert fake.closed

    @pytest.mark.asyncio
    async def test_stream_runs_tool_round(self, client, tools, orders):
        first = FakeStream(
            ["Checking. "],
            _message(
                [_text("Checking. "), _tool_use("tu_1", "fetch_order_details", {"orderNumber": "#8829"})],
                stop_reason="tool_use",
            ),
        )
        second = FakeStream(["Shipped."], _message([_text("Shipped.")]))
        client._client.messages.stream = MagicMock(side_effect=[first, second])

        parts = [part async for part in client.stream("Where?", tools=tools, max_tool_rounds=1)]

        assert parts == ["Checking. ", "Shipped."]
        orders.get_order_by_number.assert_awaited_once_with("#8829")

    @pytest.mark.asyncio
    async def test_aclose_closes_stream(self, client):
        fake = FakeStream(["a", "b", "c"], _message([_text("abc")]))
        client._client.messages.stream = MagicMock(return_value=fake)

        stream = client.stream("Hi")
        assert await stream.__anext__() == "a"
        await stream.aclose()

        assert fake.closed

    @pytest.mark.asyncio
    async def test_stream_failure_wrapped(self, client):
        client._client.messages.stream = MagicMock(side_effect=RuntimeError("boom"))

        with pytest.raises(ClaudeClientError):
            async for _ in client.stream("Hi"):
                pass
