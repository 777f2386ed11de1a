"""
Tool Bridge for domain agents.

Converts declarative ToolSpec definitions into Anthropic tool_use format
and executes tool calls requested by the model. Tool failures never
escape the bridge: they come back to the model as ``{"error": message}``.
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from relay.core.agent.types import ToolSchemaError

logger = logging.getLogger(__name__)


class ParamKind(str, Enum):
    """Supported tool parameter kinds."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


ToolExecutor = Callable[[dict[str, Any]], Union[Awaitable[Any], Any]]


@dataclass(frozen=True)
class ToolParam:
    """A single named tool parameter."""

    name: str
    kind: ParamKind
    description: str
    required: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ToolSchemaError("Tool parameter name must not be empty")
        try:
            kind = ParamKind(self.kind)
        except ValueError:
            raise ToolSchemaError(
                f"Unsupported kind '{self.kind}' for parameter '{self.name}'"
            ) from None
        object.__setattr__(self, "kind", kind)

    def to_schema(self) -> dict:
        """Return the JSON Schema property for this parameter."""
        return {"type": self.kind.value, "description": self.description}


# Used for tools declared without per-parameter metadata
DEFAULT_PARAMETERS: tuple[ToolParam, ...] = (
    ToolParam("orderNumber", ParamKind.STRING, "Order number"),
    ToolParam("invoiceNumber", ParamKind.STRING, "Invoice number"),
    ToolParam("userId", ParamKind.STRING, "User ID"),
    ToolParam("limit", ParamKind.NUMBER, "Limit results"),
)


# Upper bound on rows a tool call may pull into the prompt
MAX_RESULT_LIMIT = 50


def result_limit(params: dict[str, Any], default: int = 10) -> int:
    """Read a tool call's ``limit`` param, clamped to 1..MAX_RESULT_LIMIT."""
    return max(1, min(int(params.get("limit") or default), MAX_RESULT_LIMIT))


@dataclass(frozen=True)
class ToolSpec:
    """
    Declarative tool definition.

    Attributes:
        name: Tool name, unique within an agent
        description: What the tool does, written for the model
        executor: Callable(params) -> result. May be sync or async.
        parameters: Ordered parameter declarations. None means the tool
            has no per-parameter metadata and gets DEFAULT_PARAMETERS.
    """

    name: str
    description: str
    executor: ToolExecutor
    parameters: Optional[tuple[ToolParam, ...]] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ToolSchemaError("Tool name must not be empty")
        if self.parameters is None:
            return

        params = tuple(self.parameters)
        names = [p.name for p in params]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ToolSchemaError(
                f"Tool '{self.name}' declares duplicate parameters: {', '.join(duplicates)}"
            )
        object.__setattr__(self, "parameters", params)

    def input_schema(self) -> dict:
        """Build the JSON Schema object for the tool input."""
        params = DEFAULT_PARAMETERS if self.parameters is None else self.parameters
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in params},
        }
        required = [p.name for p in params if p.required]
        if required:
            schema["required"] = required
        return schema

    def to_anthropic(self) -> dict:
        """Return the tool definition in Anthropic tool_use format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }


class ToolTable:
    """
    Bridged tool set for one agent.

    Built once per agent and shared read-only across requests.
    """

    def __init__(self, tools: Sequence[ToolSpec] = ()):
        self._tools: dict[str, ToolSpec] = {}
        for spec in tools:
            if spec.name in self._tools:
                raise ToolSchemaError(f"Tool already registered: {spec.name}")
            self._tools[spec.name] = spec
        self._definitions = [spec.to_anthropic() for spec in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def definitions(self) -> list[dict]:
        """Tool definitions to pass as ``tools=`` to the engine."""
        return [dict(d) for d in self._definitions]

    async def execute(self, name: str, tool_input: Optional[dict] = None) -> Any:
        """
        Execute a tool call.

        Args:
            name: Tool name requested by the model
            tool_input: Tool input parameters

        Returns:
            The executor's result unchanged, or ``{"error": message}`` if
            the tool is unknown or its executor raised.
        """
        spec = self._tools.get(name)
        if spec is None:
            logger.warning(f"Model requested unknown tool: {name}")
            return {"error": f"Unknown tool: {name}"}

        logger.info(f"Executing tool: {name}")
        try:
            result = spec.executor(dict(tool_input or {}))
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            logger.error(f"Tool {name} execution error: {e}")
            return {"error": str(e) or "Tool execution failed"}


def bridge_tools(tools: Sequence[ToolSpec]) -> ToolTable:
    """Bridge an agent's tool declarations into an executable tool table."""
    return ToolTable(tools)
