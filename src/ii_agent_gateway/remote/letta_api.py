"""
Letta REST API client for agent identity housekeeping.
"""

from typing import Any

import httpx
import structlog

from .base import AgentDirectory

logger = structlog.get_logger()


class LettaAPIError(RuntimeError):
    """The Letta server returned an unexpected response."""


class LettaAPI(AgentDirectory):
    """Agent lookup, existence checks and renames against a Letta server."""

    def __init__(
        self,
        base_url: str = "https://api.letta.com",
        api_key: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def get_agent(self, agent_id: str) -> dict[str, Any] | None:
        """Fetch an agent, or None when it does not exist."""
        async with self._client() as client:
            response = await client.get(f"/v1/agents/{agent_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return response.json()

    async def agent_exists(self, agent_id: str) -> bool:
        return await self.get_agent(agent_id) is not None

    async def list_agents(self, name: str | None = None) -> list[dict[str, Any]]:
        """List agents, optionally filtered by exact name."""
        params = {"name": name} if name else None
        async with self._client() as client:
            response = await client.get("/v1/agents/", params=params)
        self._raise_for_status(response)
        return response.json()

    async def find_agent_by_name(self, name: str) -> str | None:
        for agent in await self.list_agents(name=name):
            if agent.get("name") == name:
                return agent.get("id")
        return None

    async def update_agent_name(self, agent_id: str, name: str) -> None:
        async with self._client() as client:
            response = await client.patch(f"/v1/agents/{agent_id}", json={"name": name})
        self._raise_for_status(response)
        logger.info("Agent renamed", agent_id=agent_id, name=name)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise LettaAPIError(
                f"Letta API {e.request.method} {e.request.url.path} "
                f"failed with {response.status_code}"
            ) from e
