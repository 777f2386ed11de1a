"""Tests for the tool bridge."""

import pytest

from relay.core.agent.tool_bridge import (
    DEFAULT_PARAMETERS,
    MAX_RESULT_LIMIT,
    ParamKind,
    ToolParam,
    ToolSpec,
    ToolTable,
    bridge_tools,
    result_limit,
)
from relay.core.agent.types import ToolExecutionError, ToolSchemaError


async def _echo(params: dict) -> dict:
    return {"echo": params}


class TestToolDeclarations:
    """Test schema generation and validation."""

    def test_param_kind_coerced_from_string(self):
        param = ToolParam("limit", "number", "Limit results")

        assert param.kind is ParamKind.NUMBER

    def test_unsupported_kind_rejected(self):
        with pytest.raises(ToolSchemaError):
            ToolParam("when", "date", "A date")

    def test_duplicate_parameters_rejected(self):
        with pytest.raises(ToolSchemaError):
            ToolSpec(
                name="lookup",
                description="Lookup",
                executor=_echo,
                parameters=(
                    ToolParam("orderNumber", ParamKind.STRING, "Order"),
                    ToolParam("orderNumber", ParamKind.STRING, "Order again"),
                ),
            )

    def test_anthropic_format(self):
        spec = ToolSpec(
            name="fetch_order_details",
            description="Fetch an order",
            executor=_echo,
            parameters=(
                ToolParam("orderNumber", ParamKind.STRING, "Order number", required=True),
                ToolParam("limit", ParamKind.NUMBER, "Limit"),
            ),
        )

        assert spec.to_anthropic() == {
            "name": "fetch_order_details",
            "description": "Fetch an order",
            "input_schema": {
                "type": "object",
                "properties": {
                    "orderNumber": {"type": "string", "description": "Order number"},
                    "limit": {"type": "number", "description": "Limit"},
                },
                "required": ["orderNumber"],
            },
        }

    def test_missing_parameters_use_default_schema(self):
        spec = ToolSpec(name="history", description="History", executor=_echo)

        schema = spec.input_schema()

        assert list(schema["properties"]) == [p.name for p in DEFAULT_PARAMETERS]
        assert schema["properties"]["limit"]["type"] == "number"
        assert "required" not in schema

    def test_empty_parameters_means_no_inputs(self):
        spec = ToolSpec(name="ping", description="Ping", executor=_echo, parameters=())

        assert spec.input_schema() == {"type": "object", "properties": {}}

    def test_duplicate_tool_names_rejected(self):
        spec = ToolSpec(name="same", description="x", executor=_echo)

        with pytest.raises(ToolSchemaError):
            ToolTable([spec, spec])

    def test_definitions_preserve_order(self):
        table = bridge_tools([
            ToolSpec(name="b", description="b", executor=_echo),
            ToolSpec(name="a", description="a", executor=_echo),
        ])

        assert [d["name"] for d in table.definitions] == ["b", "a"]
        assert table.names == ["b", "a"]
        assert len(table) == 2
        assert "a" in table


class TestToolExecution:
    """Test tool call execution."""

    @pytest.mark.asyncio
    async def test_async_executor(self):
        table = bridge_tools([ToolSpec(name="echo", description="Echo", executor=_echo)])

        result = await table.execute("echo", {"orderNumber": "#8829"})

        assert result == {"echo": {"orderNumber": "#8829"}}

    @pytest.mark.asyncio
    async def test_sync_executor(self):
        table = bridge_tools([
            ToolSpec(name="count", description="Count", executor=lambda params: len(params)),
        ])

        assert await table.execute("count", {"a": 1, "b": 2}) == 2

    @pytest.mark.asyncio
    async def test_unknown_tool_returns_error(self):
        table = bridge_tools([])

        result = await table.execute("drop_tables", {})

        assert result == {"error": "Unknown tool: drop_tables"}

    @pytest.mark.asyncio
    async def test_executor_failure_returns_error(self):
        async def failing(params: dict) -> dict:
            raise ToolExecutionError("Order #1 not found")

        table = bridge_tools([ToolSpec(name="lookup", description="Lookup", executor=failing)])

        result = await table.execute("lookup", {})

        assert result == {"error": "Order #1 not found"}

    @pytest.mark.asyncio
    async def test_failure_without_message(self):
        def failing(params: dict) -> dict:
            raise RuntimeError()

        table = bridge_tools([ToolSpec(name="lookup", description="Lookup", executor=failing)])

        assert await table.execute("lookup", None) == {"error": "Tool execution failed"}


class TestResultLimit:
    """Test the clamped limit read from tool calls."""

    def test_default(self):
        assert result_limit({}) == 10
        assert result_limit({"limit": None}) == 10

    def test_within_bounds(self):
        assert result_limit({"limit": 5}) == 5
        assert result_limit({"limit": "20"}) == 20

    def test_clamped_to_maximum(self):
        assert result_limit({"limit": 10000}) == MAX_RESULT_LIMIT

    def test_clamped_to_one(self):
        assert result_limit({"limit": -3}) == 1
