"""Agent catalog and effective booking policy."""

import logging
from datetime import UTC, datetime

from ..config import Settings
from ..models import AccessType, Agent, AgentPolicy
from ..storage import AGENTS, DuplicateRecordError, RecordStore

logger = logging.getLogger(__name__)


class AgentCatalog:
    """Optional registry of bookable agents.

    Agents do not have to be catalogued to be booked: an unknown agent id
    gets the service-wide default policy.
    """

    def __init__(self, store: RecordStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def get(self, agent_id: str) -> Agent | None:
        row = await self.store.find_by_id(AGENTS, agent_id)
        return Agent(**row) if row else None

    async def list(self, include_inactive: bool = True) -> list[Agent]:
        where = None if include_inactive else {"is_active": True}
        rows = await self.store.find_where(AGENTS, where, order_by=[("agent_id", "asc")])
        return [Agent(**row) for row in rows]

    async def upsert(
        self,
        agent_id: str,
        display_name: str,
        access_type: AccessType | str = AccessType.PREMIUM,
        points_cost: int | None = None,
        session_duration_minutes: float | None = None,
        is_active: bool = True,
        description: str | None = None,
    ) -> Agent:
        """Register an agent or update its catalog entry."""
        fields = {
            "display_name": display_name,
            "access_type": AccessType(access_type).value,
            "points_cost": points_cost,
            "session_duration_minutes": session_duration_minutes,
            "is_active": is_active,
            "description": description,
        }

        updated = await self.store.update(AGENTS, agent_id, fields)
        if not updated:
            try:
                now = datetime.now(UTC)
                await self.store.create(
                    AGENTS, {"agent_id": agent_id, **fields, "created_at": now, "updated_at": now}
                )
                logger.info(f"Registered agent {agent_id}")
            except DuplicateRecordError:
                await self.store.update(AGENTS, agent_id, fields)
        else:
            logger.info(f"Updated agent {agent_id}")

        agent = await self.get(agent_id)
        if agent is None:
            raise RuntimeError(f"Agent {agent_id} vanished after upsert")
        return agent

    def is_free(self, agent: Agent | None, agent_id: str) -> bool:
        if agent_id == self.settings.free_agent_id:
            return True
        return agent is not None and agent.access_type == AccessType.FREE.value

    async def policy_for(self, agent_id: str) -> AgentPolicy:
        """Effective cost, duration and availability for booking an agent."""
        agent = await self.get(agent_id)
        return self.policy_from(agent, agent_id)

    def policy_from(self, agent: Agent | None, agent_id: str) -> AgentPolicy:
        free_tier = self.is_free(agent, agent_id)

        cost = self.settings.private_session_cost
        duration = self.settings.session_duration_minutes
        if agent is not None:
            if agent.points_cost is not None:
                cost = agent.points_cost
            if agent.session_duration_minutes is not None:
                duration = agent.session_duration_minutes

        return AgentPolicy(
            agent_id=agent_id,
            points_cost=0 if free_tier else cost,
            duration_minutes=duration,
            free_tier=free_tier,
            available=agent.is_active if agent is not None else True,
        )
