"""
Agents API Endpoints.

Lists the available agents and describes each agent's tools.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from relay.api.deps import get_agent_service
from relay.core.agent.dispatch import AgentService
from relay.core.agent.types import HandlerNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["Agents"])


@router.get(
    "",
    summary="List agents",
    description="List the agents a query can be routed to.",
)
async def list_agents(service: AgentService = Depends(get_agent_service)) -> dict:
    """List available agents."""
    agents = service.list_handlers()
    return {"agents": agents, "total": len(agents)}


@router.get(
    "/{agent_type}/capabilities",
    summary="Get agent capabilities",
    description="Describe an agent and the tools it can call.",
    responses={404: {"description": "Agent type not found"}},
)
async def get_capabilities(
    agent_type: str,
    service: AgentService = Depends(get_agent_service),
):
    """Get an agent's capabilities."""
    try:
        capabilities = service.get_handler_capabilities(agent_type)
    except HandlerNotFoundError as e:
        logger.info(f"Capabilities requested for unknown agent: {agent_type}")
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(e)})

    return {"agentType": agent_type, "capabilities": capabilities}
