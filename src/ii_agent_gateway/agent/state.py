"""
Persisted per-agent state.

Each agent instance owns one JSON document at
``<data_dir>/agents/<config_id>/state.json``.
"""

from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LastMessageTarget(BaseModel):
    """Where the agent was last talked to (used for heartbeats)."""

    channel: str
    chat_id: str
    account_id: str = "default"
    message_id: str | None = None
    updated_at: str = Field(default_factory=utc_now)


class AgentState(BaseModel):
    """Remote identity and conversation state of one agent.

    ``conversation_id`` and ``conversations`` are only meaningful while
    ``agent_id`` is set.
    """

    agent_id: str | None = None
    conversation_id: str | None = None
    conversations: dict[str, str] = Field(default_factory=dict)
    base_url: str | None = None
    created_at: str | None = None
    last_used_at: str | None = None
    last_message_target: LastMessageTarget | None = None


class StateStore:
    """Best-effort JSON persistence for an AgentState.

    Read and write failures are logged and treated as "not found" /
    "not saved"; they never raise.
    """

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def for_agent(cls, root: Path, config_id: str) -> "StateStore":
        return cls(root / config_id / "state.json")

    def load(self) -> AgentState:
        """Load state from disk, or an empty state."""
        try:
            if self.path.exists():
                return AgentState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Failed to load agent state", path=str(self.path), error=str(e))
        return AgentState()

    def save(self, state: AgentState) -> bool:
        """Write state to disk. Returns False when the write failed."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
            return True
        except OSError as e:
            logger.error("Failed to save agent state", path=str(self.path), error=str(e))
            return False
