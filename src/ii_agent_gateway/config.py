"""
Configuration management for II-Agent-Gateway

Uses pydantic-settings for environment variable parsing and validation,
and pydantic models for the multi-agent gateway config (agents, bindings,
channels).
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .channels.base import ChannelType

ConversationMode = Literal["shared", "per-channel", "per-chat"]

CHANNEL_TYPES = tuple(channel.value for channel in ChannelType)

DEFAULT_MODEL = "zai/glm-4.7"
DEFAULT_AGENT_NAME = "LettaBot"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "II-Agent-Gateway"
    debug: bool = False
    log_level: str = "INFO"

    # Storage
    data_dir: str = Field(default="~/.ii-agent-gateway", description="Root for per-agent state")
    config_file: str = Field(default="gateway.json", description="Multi-agent gateway config (JSON)")

    # Letta server
    letta_base_url: str = Field(default="https://api.letta.com", description="Letta server URL")
    letta_api_key: str = Field(default="", description="Letta API key (cloud mode)")

    # Conversation routing
    conversation_mode: ConversationMode = "shared"
    heartbeat_conversation: str = Field(
        default="last-active",
        description='"dedicated", "last-active" or a channel name',
    )
    conversation_overrides: str = Field(
        default="",
        description="Comma-separated channels that keep their own conversation in shared mode",
    )

    # Session
    session_timeout_seconds: float = Field(default=30.0, description="Bound on initialize/send")
    stream_update_interval_ms: int = Field(default=500, description="Min interval between streamed edits")
    typing_interval_seconds: float = Field(default=4.0, description="Typing indicator refresh interval")
    allowed_tools: str = Field(
        default="Bash,Read,Edit,Write,Glob,Grep,Task,web_search,conversation_search",
        description="Comma-separated tools the remote agent may use",
    )

    # Heartbeat settings
    enable_heartbeat: bool = False
    heartbeat_interval_minutes: int = Field(default=60, description="Heartbeat interval")

    @field_validator("conversation_overrides", "allowed_tools", mode="before")
    @classmethod
    def strip_csv(cls, v: str) -> str:
        return v.strip() if v else ""

    @property
    def conversation_overrides_set(self) -> set[str]:
        """Get the override channels, lowercased."""
        if not self.conversation_overrides:
            return set()
        return {c.strip().lower() for c in self.conversation_overrides.split(",") if c.strip()}

    @property
    def allowed_tools_list(self) -> list[str]:
        """Get list of allowed tools."""
        if not self.allowed_tools:
            return []
        return [t.strip() for t in self.allowed_tools.split(",") if t.strip()]

    @property
    def state_root(self) -> Path:
        """Directory holding one state folder per agent."""
        return Path(self.data_dir).expanduser() / "agents"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# =============================================================================
# Multi-agent gateway config
# =============================================================================


class PeerMatch(BaseModel):
    """Peer qualifier of a binding."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["dm", "group"]
    id: str


class BindingMatch(BaseModel):
    """Match pattern of a binding. Channel is always required."""

    model_config = ConfigDict(frozen=True)

    channel: str
    account_id: str | None = None
    peer: PeerMatch | None = None


class AgentBinding(BaseModel):
    """Declarative rule mapping a match pattern to an agent id."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    match: BindingMatch


class AgentConfig(BaseModel):
    """Static per-agent identity and resources."""

    id: str
    name: str = ""
    workspace: str = ""
    model: str | None = None
    default: bool = False


class AgentDefaults(BaseModel):
    model: str | None = None


class AgentsSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    defaults: AgentDefaults = Field(default_factory=AgentDefaults)
    entries: list[AgentConfig] = Field(default_factory=list, alias="list")


class LegacyAgent(BaseModel):
    """Single-agent form used by older configs."""

    id: str | None = None
    name: str = DEFAULT_AGENT_NAME
    model: str = DEFAULT_MODEL


class ChannelConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    accounts: dict[str, Any] = Field(default_factory=dict)


class GatewayConfig(BaseModel):
    """Multi-agent gateway configuration."""

    agent: LegacyAgent | None = None
    agents: AgentsSection = Field(default_factory=AgentsSection)
    bindings: list[AgentBinding] = Field(default_factory=list)
    channels: dict[str, ChannelConfig] = Field(default_factory=dict)

    @property
    def default_agent(self) -> AgentConfig | None:
        """First agent flagged default, else the first declared."""
        for agent in self.agents.entries:
            if agent.default:
                return agent
        return self.agents.entries[0] if self.agents.entries else None


def load_gateway_config(path: str | Path) -> GatewayConfig:
    """Load a gateway config from a JSON file."""
    raw = Path(path).expanduser().read_text(encoding="utf-8")
    return GatewayConfig.model_validate(json.loads(raw))


def _resolve_workspace(workspace: str, agent_id: str, data_dir: Path) -> str:
    if not workspace:
        return str(data_dir / f"workspace-{agent_id}")
    return str(Path(workspace).expanduser())


def normalize_config(config: GatewayConfig, data_dir: str | Path = "~/.ii-agent-gateway") -> GatewayConfig:
    """Normalize a config to the multi-agent form.

    1. Converts a legacy single ``agent`` entry into ``agents.list``
    2. Fills in models and workspaces, and makes sure one agent is default
    3. Adds implicit bindings to the default agent for enabled channels
       (or channel accounts) that have no binding of their own
    """
    root = Path(data_dir).expanduser()

    if config.agents.entries:
        default_model = config.agents.defaults.model or (
            config.agent.model if config.agent else DEFAULT_MODEL
        )
        agents = [
            agent.model_copy(update={
                "name": agent.name or agent.id,
                "workspace": _resolve_workspace(agent.workspace, agent.id, root),
                "model": agent.model or default_model,
            })
            for agent in config.agents.entries
        ]
        if not any(a.default for a in agents):
            agents[0] = agents[0].model_copy(update={"default": True})
        bindings = list(config.bindings)
    else:
        legacy = config.agent or LegacyAgent()
        default_model = legacy.model
        agents = [AgentConfig(
            id=legacy.id or "main",
            name=legacy.name,
            default=True,
            workspace=str(root / "workspace"),
            model=legacy.model,
        )]
        bindings = []

    default_agent = next(a for a in agents if a.default)
    bindings = _add_implicit_bindings(config, default_agent.id, bindings)

    return GatewayConfig(
        agents=AgentsSection(defaults=AgentDefaults(model=default_model), entries=agents),
        bindings=bindings,
        channels=config.channels,
    )


def _add_implicit_bindings(
    config: GatewayConfig,
    default_agent_id: str,
    existing: list[AgentBinding],
) -> list[AgentBinding]:
    bindings = list(existing)

    def has_binding(channel: str, account_id: str | None = None) -> bool:
        for b in bindings:
            if b.match.channel != channel:
                continue
            if account_id and b.match.account_id and b.match.account_id != account_id:
                continue
            if not b.match.account_id and not b.match.peer:
                return True
            if b.match.account_id == account_id:
                return True
        return False

    for channel in CHANNEL_TYPES:
        channel_config = config.channels.get(channel)
        if channel_config is None or not channel_config.enabled:
            continue

        if channel_config.accounts:
            for account_id in channel_config.accounts:
                if not has_binding(channel, account_id):
                    bindings.append(AgentBinding(
                        agent_id=default_agent_id,
                        match=BindingMatch(channel=channel, account_id=account_id),
                    ))
        elif not has_binding(channel):
            bindings.append(AgentBinding(
                agent_id=default_agent_id,
                match=BindingMatch(channel=channel),
            ))

    return bindings


def enabled_channel_accounts(config: GatewayConfig) -> list[tuple[str, str]]:
    """Get (channel, account_id) pairs for every enabled channel."""
    result: list[tuple[str, str]] = []
    for channel in CHANNEL_TYPES:
        channel_config = config.channels.get(channel)
        if channel_config is None or not channel_config.enabled:
            continue
        if channel_config.accounts:
            result.extend((channel, account_id) for account_id in channel_config.accounts)
        else:
            result.append((channel, "default"))
    return result


def validate_config(config: GatewayConfig) -> list[str]:
    """Validate a config and return a list of error messages."""
    errors: list[str] = []

    if config.agents.entries:
        ids: set[str] = set()
        for agent in config.agents.entries:
            if not agent.id:
                errors.append('Agent config missing required "id" field')
            elif agent.id in ids:
                errors.append(f"Duplicate agent ID: {agent.id}")
            else:
                ids.add(agent.id)

            if not agent.workspace:
                errors.append(f'Agent "{agent.id}" missing required "workspace" field')

        for binding in config.bindings:
            if binding.agent_id not in ids:
                errors.append(f"Binding references unknown agent: {binding.agent_id}")
            if not binding.match.channel:
                errors.append(
                    f'Binding for agent "{binding.agent_id}" missing required "match.channel" field'
                )

    if not any(ch.enabled for ch in config.channels.values()):
        errors.append(
            "No channels enabled. Enable at least one channel "
            "(telegram, slack, discord, whatsapp, or signal)"
        )

    return errors
