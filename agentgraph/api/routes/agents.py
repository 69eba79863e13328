"""
Agent API Routes.

Endpoints for listing the agents that agent nodes can reference.
"""

from fastapi import APIRouter, HTTPException

from agentgraph.agents.registry import agent_registry
from agentgraph.api.schemas import AgentInfo, AgentListResponse, ErrorResponse


router = APIRouter(prefix="/agents", tags=["Agents"])


@router.get("", response_model=AgentListResponse)
async def list_agents() -> AgentListResponse:
    """List all registered agents."""
    agents = [AgentInfo(**a) for a in agent_registry.list_agents()]
    return AgentListResponse(agents=agents, total=len(agents))


@router.get(
    "/{agent_id}",
    response_model=AgentInfo,
    responses={404: {"model": ErrorResponse}},
)
async def get_agent(agent_id: str) -> AgentInfo:
    """Get information about a specific agent."""
    agent = agent_registry.get(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail=f"Agent '{agent_id}' not found")
    return AgentInfo(**agent.to_dict())
