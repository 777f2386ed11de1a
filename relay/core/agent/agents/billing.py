"""
Billing Agent for the Relay multi-agent architecture.

Handles payments, refunds, invoices and subscription questions using
payment lookup tools.
"""

import re
from typing import TYPE_CHECKING

from relay.core.agent.base import AgentConfig
from relay.core.agent.tool_bridge import ParamKind, ToolParam, ToolSpec, result_limit
from relay.core.agent.types import HandlerType

if TYPE_CHECKING:
    from relay.services.payment import PaymentService


BILLING_SYSTEM_PROMPT = """You are a Billing Agent specialized in handling payment and financial queries.

Your responsibilities:
- Process refund requests
- Provide invoice information
- Resolve payment issues
- Handle subscription queries
- Explain charges and fees

Important guidelines:
- Be precise with financial information. Always verify amounts and dates.
- Show empathy when dealing with billing disputes or financial concerns.
- If invoice or payment information is not found in the system, politely inform the user and suggest they verify the invoice/payment number or contact their account manager.
- Never mention technical details like "tools", "system", or "database" - just provide helpful responses.
- If data is unavailable, offer alternative solutions like checking their email confirmation or account history."""

INVOICE_NUMBER_PATTERN = re.compile(r"INV-\d+", re.IGNORECASE)


def billing_reasoning(query: str) -> str:
    """Explain how a billing query is being handled."""
    lowered = query.lower()
    has_invoice = bool(INVOICE_NUMBER_PATTERN.search(query)) or "invoice" in lowered
    is_refund = "refund" in lowered
    is_charge = "charge" in lowered or "payment" in lowered

    if has_invoice and is_refund:
        return "Invoice number detected with refund request. Checking payment records and refund eligibility."
    if is_refund:
        return "Refund inquiry identified. Accessing transaction history and processing refund status check."
    if has_invoice:
        return "Invoice reference found. Retrieving complete invoice details including amounts, dates, and payment status."
    if is_charge:
        return "Payment inquiry detected. Analyzing billing records to provide detailed charge information."
    return "Processing billing inquiry. Accessing payment system for relevant financial information."


def build_billing_config(payments: "PaymentService") -> AgentConfig:
    """Build the billing agent configuration."""

    async def get_invoice_details(params: dict) -> dict:
        return await payments.get_invoice_by_number(params["invoiceNumber"])

    async def check_refund_status(params: dict) -> list[dict]:
        return await payments.get_refund_status(
            invoice_number=params.get("invoiceNumber"),
            user_id=params.get("userId"),
        )

    async def get_payment_history(params: dict) -> list[dict]:
        return await payments.get_user_payments(params["userId"], result_limit(params))

    return AgentConfig(
        type=HandlerType.BILLING,
        name="Billing Agent",
        description="Handles payment issues, refunds, and invoices",
        system_prompt=BILLING_SYSTEM_PROMPT,
        tools=(
            ToolSpec(
                name="get_invoice_details",
                description="Retrieves detailed information about an invoice including amount, status, and items",
                executor=get_invoice_details,
                parameters=(
                    ToolParam("invoiceNumber", ParamKind.STRING, "The invoice number (e.g., INV-2026-1001)", required=True),
                ),
            ),
            ToolSpec(
                name="check_refund_status",
                description="Checks the status of a refund request for an invoice or user",
                executor=check_refund_status,
                parameters=(
                    ToolParam("invoiceNumber", ParamKind.STRING, "The invoice number to check refund status for (e.g., INV-2026-1001)"),
                    ToolParam("userId", ParamKind.STRING, "The user ID to check refund status for (if no invoice number provided)"),
                ),
            ),
            ToolSpec(
                name="get_payment_history",
                description="Retrieves payment history for a user with pagination support",
                executor=get_payment_history,
                parameters=(
                    ToolParam("userId", ParamKind.STRING, "The user ID to fetch payment history for", required=True),
                    ToolParam("limit", ParamKind.NUMBER, "Maximum number of payments to return (default: 10)"),
                ),
            ),
        ),
        reasoning=billing_reasoning,
        icon="CreditCard",
    )
