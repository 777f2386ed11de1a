"""
Order data access used by the order agent's tools.
"""

from typing import AsyncContextManager, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.core.agent.types import ToolExecutionError
from relay.infra.database import get_db_context
from relay.models.database import Order, OrderStatus

SessionContext = Callable[[], AsyncContextManager[AsyncSession]]

STATUS_LOCATIONS = {
    OrderStatus.PENDING.value: "Warehouse - Processing Center",
    OrderStatus.PROCESSING.value: "Warehouse - Packing Area",
    OrderStatus.SHIPPED.value: "In Transit - Regional Hub",
    OrderStatus.DELIVERED.value: "Delivered to Customer",
    OrderStatus.CANCELLED.value: "N/A",
}


def status_message(order: Order) -> str:
    messages = {
        OrderStatus.PENDING.value: "Order is being prepared",
        OrderStatus.PROCESSING.value: "Order is being packed",
        OrderStatus.SHIPPED.value: f"Package is in transit with {order.carrier or 'courier'}",
        OrderStatus.DELIVERED.value: "Package has been delivered",
        OrderStatus.CANCELLED.value: "Order has been cancelled",
    }
    return messages.get(order.status, "Status unknown")


class OrderService:
    """Read-only order lookups."""

    def __init__(self, session_context: SessionContext = get_db_context):
        self._session = session_context

    async def _get_by_number(self, db: AsyncSession, order_number: str) -> Order:
        result = await db.execute(select(Order).where(Order.order_number == order_number))
        order = result.scalar_one_or_none()
        if order is None:
            raise ToolExecutionError(f"Order {order_number} not found")
        return order

    async def get_order_by_number(self, order_number: str) -> dict:
        async with self._session() as db:
            order = await self._get_by_number(db, order_number)
            return {
                "orderNumber": order.order_number,
                "status": order.status,
                "items": order.items,
                "totalAmount": float(order.total_amount),
                "shippingAddress": order.shipping_address,
                "trackingNumber": order.tracking_number,
                "carrier": order.carrier,
                "estimatedDelivery": order.estimated_delivery,
                "actualDelivery": order.actual_delivery,
                "createdAt": order.created_at,
            }

    async def get_delivery_status(self, order_number: str) -> dict:
        """Tracking summary with a simulated current location."""
        async with self._session() as db:
            order = await self._get_by_number(db, order_number)
            return {
                "orderNumber": order.order_number,
                "status": order.status,
                "statusMessage": status_message(order),
                "trackingNumber": order.tracking_number,
                "carrier": order.carrier,
                "currentLocation": STATUS_LOCATIONS.get(order.status, "Unknown"),
                "estimatedDelivery": order.estimated_delivery,
                "actualDelivery": order.actual_delivery,
                "lastUpdated": order.updated_at,
            }

    async def get_user_orders(self, user_id: str, limit: int = 10) -> list[dict]:
        async with self._session() as db:
            result = await db.execute(
                select(Order)
                .where(Order.user_id == user_id)
                .order_by(Order.created_at.desc())
                .limit(limit)
            )
            return [
                {
                    "id": order.id,
                    "orderNumber": order.order_number,
                    "status": order.status,
                    "items": order.items,
                    "totalAmount": float(order.total_amount),
                    "createdAt": order.created_at,
                    "updatedAt": order.updated_at,
                }
                for order in result.scalars().all()
            ]
