"""
Payment and invoice data access used by the billing agent's tools.
"""

from decimal import Decimal
from typing import AsyncContextManager, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.core.agent.types import ToolExecutionError
from relay.infra.database import get_db_context
from relay.models.database import Payment, PaymentStatus

SessionContext = Callable[[], AsyncContextManager[AsyncSession]]


def _amount(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


class PaymentService:
    """Read-only invoice, refund and payment lookups."""

    def __init__(self, session_context: SessionContext = get_db_context):
        self._session = session_context

    async def get_invoice_by_number(self, invoice_number: str) -> dict:
        async with self._session() as db:
            result = await db.execute(
                select(Payment).where(Payment.invoice_number == invoice_number)
            )
            payment = result.scalar_one_or_none()
            if payment is None:
                raise ToolExecutionError(f"Invoice {invoice_number} not found")

            return {
                "invoiceNumber": payment.invoice_number,
                "amount": _amount(payment.amount),
                "status": payment.status,
                "paymentMethod": payment.payment_method,
                "transactionId": payment.transaction_id,
                "description": payment.description,
                "invoiceDate": payment.invoice_date,
                "dueDate": payment.due_date,
                "paidDate": payment.paid_date,
                "refundAmount": _amount(payment.refund_amount),
                "refundDate": payment.refund_date,
                "refundReason": payment.refund_reason,
            }

    async def get_refund_status(
        self,
        invoice_number: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[dict]:
        """
        Refunds for one invoice, or a user's refunded payments.

        Only payments with a refund amount are returned.
        """
        if not invoice_number and not user_id:
            raise ToolExecutionError("An invoice number or user ID is required")

        query = select(Payment)
        if invoice_number:
            query = query.where(Payment.invoice_number == invoice_number)
        else:
            query = query.where(
                Payment.user_id == user_id,
                Payment.status == PaymentStatus.REFUNDED.value,
            )

        async with self._session() as db:
            result = await db.execute(query.order_by(Payment.updated_at.desc()).limit(10))
            return [
                {
                    "invoiceNumber": p.invoice_number,
                    "originalAmount": _amount(p.amount),
                    "refundAmount": _amount(p.refund_amount),
                    "refundDate": p.refund_date,
                    "refundReason": p.refund_reason,
                    "status": p.status,
                }
                for p in result.scalars().all()
                if p.refund_amount is not None
            ]

    async def get_user_payments(self, user_id: str, limit: int = 10) -> list[dict]:
        async with self._session() as db:
            result = await db.execute(
                select(Payment)
                .where(Payment.user_id == user_id)
                .order_by(Payment.created_at.desc())
                .limit(limit)
            )
            return [
                {
                    "id": p.id,
                    "invoiceNumber": p.invoice_number,
                    "amount": _amount(p.amount),
                    "status": p.status,
                    "paymentMethod": p.payment_method,
                    "invoiceDate": p.invoice_date,
                    "dueDate": p.due_date,
                    "paidDate": p.paid_date,
                    "createdAt": p.created_at,
                }
                for p in result.scalars().all()
            ]
