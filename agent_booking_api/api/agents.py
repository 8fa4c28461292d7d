"""Agent catalog and availability endpoints."""

import logging

from fastapi import APIRouter, Depends

from ..core import CoreServices
from ..models import (
    Agent,
    AgentAvailabilityResponse,
    AgentInfo,
    AgentListResponse,
    AgentUpsertRequest,
)
from .deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["agents"])


def _to_info(core: CoreServices, agent: Agent) -> AgentInfo:
    policy = core.catalog.policy_from(agent, agent.agent_id)
    return AgentInfo(
        agent_id=agent.agent_id,
        display_name=agent.display_name,
        access_type=agent.access_type,
        points_cost=policy.points_cost,
        session_duration_minutes=policy.duration_minutes,
        is_active=agent.is_active,
        description=agent.description,
    )


@router.get("", response_model=AgentListResponse)
async def list_agents(core: CoreServices = Depends(get_services)) -> AgentListResponse:
    """List catalogued agents with their effective cost and duration."""
    agents = await core.catalog.list()
    return AgentListResponse(agents=[_to_info(core, a) for a in agents], total=len(agents))


@router.put("/{agent_id}", response_model=AgentInfo)
async def upsert_agent(
    agent_id: str,
    body: AgentUpsertRequest,
    core: CoreServices = Depends(get_services),
) -> AgentInfo:
    """Register an agent or update its catalog entry."""
    agent = await core.catalog.upsert(agent_id, **body.model_dump())
    return _to_info(core, agent)


@router.get("/{agent_id}/availability", response_model=AgentAvailabilityResponse)
async def get_availability(
    agent_id: str,
    core: CoreServices = Depends(get_services),
) -> AgentAvailabilityResponse:
    """Active session summary and queue snapshot for an agent."""
    return await core.lifecycle.get_agent_availability(agent_id)
