"""
Agent metrics sink.

Best effort: a failure to store a record is logged and never reaches the
request that produced it.
"""

import logging
from typing import AsyncContextManager, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from relay.core.agent.types import MetricsRecord
from relay.infra.database import get_db_context
from relay.models.database import AgentMetric

logger = logging.getLogger(__name__)

SessionContext = Callable[[], AsyncContextManager[AsyncSession]]


class MetricsService:
    """Append-only storage for per-request agent metrics."""

    def __init__(self, session_context: SessionContext = get_db_context):
        self._session = session_context

    async def append_metrics(self, record: MetricsRecord) -> None:
        try:
            async with self._session() as db:
                db.add(AgentMetric(
                    agent_type=record.handler_type,
                    session_id=record.session_id,
                    intent=record.intent,
                    confidence=record.confidence,
                    response_time=record.response_time_ms,
                    successful=record.successful,
                    error_message=record.error_message,
                    metric_metadata={},
                ))
        except Exception as e:
            logger.error(f"Failed to log agent metrics: {e}")
