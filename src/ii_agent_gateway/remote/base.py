"""
Base classes for the remote agent platform.

The platform owns agents (long-lived identities with memory) and their
conversations. A Session is a live handle on one conversation exchange.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator


@dataclass
class AssistantChunk:
    """A piece of assistant reply text."""

    content: str
    type: str = "assistant"


@dataclass
class ToolCallEvent:
    """The agent invoked a tool. Not relayed to channels."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    type: str = "tool_call"


@dataclass
class ReasoningEvent:
    """Agent reasoning text. Not relayed to channels."""

    content: str
    type: str = "reasoning"


@dataclass
class ResultEvent:
    """Terminal stream event carrying the session's resolved identifiers."""

    success: bool = True
    agent_id: str | None = None
    conversation_id: str | None = None
    error: str | None = None
    type: str = "result"


StreamEvent = AssistantChunk | ToolCallEvent | ReasoningEvent | ResultEvent


@dataclass
class SessionOptions:
    """Options for creating or resuming a session.

    ``agent_id`` is always passed explicitly so concurrent instances never
    share an implicit "current agent".
    """

    agent_id: str | None = None
    cwd: str = ""
    allowed_tools: list[str] = field(default_factory=list)
    permission_mode: str = "bypassPermissions"


@dataclass
class AgentOptions:
    """Options for creating a new remote agent."""

    model: str | None = None
    memory: list[dict[str, str]] = field(default_factory=list)
    system_prompt: str = ""
    cwd: str = ""
    allowed_tools: list[str] = field(default_factory=list)
    memfs: bool = True


class Session(ABC):
    """A live handle to a remote conversational exchange."""

    @property
    @abstractmethod
    def agent_id(self) -> str | None:
        """Agent this session belongs to, once known."""
        pass

    @property
    @abstractmethod
    def conversation_id(self) -> str | None:
        """Conversation this session talks in, once known."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Establish the session with the platform."""
        pass

    @abstractmethod
    async def send(self, text: str) -> None:
        """Send a message into the conversation."""
        pass

    @abstractmethod
    def stream(self) -> AsyncIterator[StreamEvent]:
        """Stream reply events until a ResultEvent."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the session."""
        pass


class AgentPlatform(ABC):
    """Factory for remote agents and sessions."""

    @abstractmethod
    async def create_agent(self, options: AgentOptions) -> str:
        """Create a new remote agent and return its id."""
        pass

    @abstractmethod
    def create_session(self, handle: str, options: SessionOptions) -> Session:
        """Open a new conversation against an agent id."""
        pass

    @abstractmethod
    def resume_session(self, handle: str, options: SessionOptions) -> Session:
        """Resume a conversation id, or an agent's default conversation."""
        pass


class AgentDirectory(ABC):
    """Lookup and housekeeping of remote agent identities."""

    @abstractmethod
    async def agent_exists(self, agent_id: str) -> bool:
        pass

    @abstractmethod
    async def find_agent_by_name(self, name: str) -> str | None:
        """Return the id of an agent with this name, if any."""
        pass

    @abstractmethod
    async def update_agent_name(self, agent_id: str, name: str) -> None:
        pass
