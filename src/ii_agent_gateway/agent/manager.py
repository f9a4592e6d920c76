"""
Agent manager - registry of AgentInstance objects in multi-agent mode.
"""

from pathlib import Path
from typing import Any

import structlog

from ..config import GatewayConfig, Settings, get_settings
from ..remote.base import AgentDirectory, AgentPlatform
from .instance import AgentInstance

logger = structlog.get_logger()


class AgentManager:
    """Creates, looks up and heals the agent instances of a gateway."""

    def __init__(
        self,
        config: GatewayConfig,
        platform: AgentPlatform | None,
        directory: AgentDirectory | None = None,
        settings: Settings | None = None,
        state_root: Path | None = None,
    ):
        if not config.agents.entries:
            raise ValueError("At least one agent must be configured")

        self.config = config
        self.settings = settings or get_settings()
        self.directory = directory
        self._agents: dict[str, AgentInstance] = {}

        self.default_agent_id = (config.default_agent or config.agents.entries[0]).id

        default_model = config.agents.defaults.model
        for agent_config in config.agents.entries:
            resolved = agent_config.model_copy(update={
                "name": agent_config.name or agent_config.id,
                "model": agent_config.model or default_model,
            })
            self._agents[agent_config.id] = AgentInstance(
                resolved,
                platform,
                directory=directory,
                settings=self.settings,
                state_root=state_root,
            )

        logger.info(
            "Agent manager initialized",
            agents=len(self._agents),
            default=self.default_agent_id,
        )

    def get_agent(self, agent_id: str) -> AgentInstance | None:
        """Get an agent instance by config id."""
        return self._agents.get(agent_id)

    @property
    def default_agent(self) -> AgentInstance:
        return self._agents[self.default_agent_id]

    def list_agent_ids(self) -> list[str]:
        return list(self._agents)

    @property
    def agents(self) -> list[AgentInstance]:
        return list(self._agents.values())

    def list_agents(self) -> list[dict[str, Any]]:
        """List all agents with their identity info."""
        return [
            {
                "config_id": agent.config_id,
                "name": agent.name,
                "workspace": str(agent.workspace),
                "agent_id": agent.agent_id,
                "is_default": agent.config_id == self.default_agent_id,
            }
            for agent in self._agents.values()
        ]

    def get_status(self) -> dict[str, Any]:
        return {
            "total_agents": len(self._agents),
            "default_agent_id": self.default_agent_id,
            "agents": self.list_agents(),
        }

    async def verify_agents(self) -> None:
        """Clear stored identities that no longer exist on the server."""
        if self.directory is None:
            return

        for config_id, agent in self._agents.items():
            if not agent.agent_id:
                continue
            try:
                exists = await self.directory.agent_exists(agent.agent_id)
            except Exception as e:
                logger.error(
                    "Could not verify agent",
                    agent=config_id,
                    letta_id=agent.agent_id,
                    error=str(e),
                )
                continue
            if not exists:
                logger.warning(
                    "Agent not found on server, clearing",
                    agent=config_id,
                    letta_id=agent.agent_id,
                )
                agent.reset()

    async def discover_agents_by_name(self) -> None:
        """Adopt existing server agents by name for instances with no identity.

        Useful for container deploys where local state was not persisted.
        """
        if self.directory is None:
            return

        for config_id, agent in self._agents.items():
            if agent.agent_id:
                continue
            logger.info("Searching for existing agent", agent=config_id, name=agent.name)
            try:
                found = await self.directory.find_agent_by_name(agent.name)
            except Exception as e:
                logger.error("Agent lookup failed", agent=config_id, error=str(e))
                continue
            if found:
                logger.info("Found existing agent", agent=config_id, letta_id=found)
                agent.set_agent_id(found)
