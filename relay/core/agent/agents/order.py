"""
Order Agent for the Relay multi-agent architecture.

Handles order status, tracking, delivery and modification questions
using order lookup tools.
"""

import re
from typing import TYPE_CHECKING

from relay.core.agent.base import AgentConfig
from relay.core.agent.tool_bridge import ParamKind, ToolParam, ToolSpec, result_limit
from relay.core.agent.types import HandlerType

if TYPE_CHECKING:
    from relay.services.order import OrderService


ORDER_SYSTEM_PROMPT = """You are an Order Management Agent specialized in handling order-related queries.

Your responsibilities:
- Check order status and tracking information
- Provide delivery estimates
- Handle order modifications
- Process cancellation requests
- Resolve shipping issues

Important guidelines:
- Always provide specific details when available (order numbers, tracking numbers, dates).
- Be empathetic when dealing with delayed or problematic orders.
- If order information is not found in the system, politely inform the user and suggest they verify the order number or check their confirmation email.
- Never mention technical details like "tools", "system", or "database" - just provide helpful responses.
- If data is unavailable, offer alternative solutions like checking their email confirmation or account history."""

ORDER_NUMBER_PATTERN = re.compile(r"#\d+")


def order_reasoning(query: str) -> str:
    """Explain how an order query is being handled."""
    lowered = query.lower()
    has_order_number = bool(ORDER_NUMBER_PATTERN.search(query))
    is_tracking = "track" in lowered or "where" in lowered
    is_delay = "delay" in lowered or "late" in lowered

    if has_order_number and is_tracking:
        return "Order number detected. Fetching tracking information and current delivery status from logistics system."
    if is_delay:
        return "Identified delivery concern. Checking order status and providing updated timeline with explanation."
    if has_order_number:
        return "Order number found. Retrieving complete order details including items, status, and delivery information."
    return "Processing order-related inquiry. Accessing order management system for relevant information."


def build_order_config(orders: "OrderService") -> AgentConfig:
    """Build the order agent configuration."""

    async def fetch_order_details(params: dict) -> dict:
        return await orders.get_order_by_number(params["orderNumber"])

    async def check_delivery_status(params: dict) -> dict:
        return await orders.get_delivery_status(params["orderNumber"])

    async def get_user_orders(params: dict) -> list[dict]:
        return await orders.get_user_orders(params["userId"], result_limit(params))

    return AgentConfig(
        type=HandlerType.ORDER,
        name="Order Agent",
        description="Handles order status, tracking, and modifications",
        system_prompt=ORDER_SYSTEM_PROMPT,
        tools=(
            ToolSpec(
                name="fetch_order_details",
                description="Fetches detailed information about a specific order including items, status, and shipping details",
                executor=fetch_order_details,
                parameters=(
                    ToolParam("orderNumber", ParamKind.STRING, "The order number (e.g., ORD-2026-1001)", required=True),
                ),
            ),
            ToolSpec(
                name="check_delivery_status",
                description="Checks the current delivery status, tracking information, and location of an order",
                executor=check_delivery_status,
                parameters=(
                    ToolParam("orderNumber", ParamKind.STRING, "The order number to track (e.g., ORD-2026-1001)", required=True),
                ),
            ),
            ToolSpec(
                name="get_user_orders",
                description="Retrieves all orders for a specific user with pagination support",
                executor=get_user_orders,
                parameters=(
                    ToolParam("userId", ParamKind.STRING, "The user ID to fetch orders for", required=True),
                    ToolParam("limit", ParamKind.NUMBER, "Maximum number of orders to return (default: 10)"),
                ),
            ),
        ),
        reasoning=order_reasoning,
        icon="Package",
    )
