"""
Remote agent platform interfaces.

- AgentPlatform / Session: creating agents and streaming conversations
- AgentDirectory: existence checks, lookup by name, renames
- LettaAPI: AgentDirectory over the Letta REST API
"""

from .base import (
    AgentDirectory,
    AgentOptions,
    AgentPlatform,
    AssistantChunk,
    ReasoningEvent,
    ResultEvent,
    Session,
    SessionOptions,
    StreamEvent,
    ToolCallEvent,
)
from .letta_api import LettaAPI, LettaAPIError

__all__ = [
    "AgentDirectory",
    "AgentOptions",
    "AgentPlatform",
    "AssistantChunk",
    "ReasoningEvent",
    "ResultEvent",
    "Session",
    "SessionOptions",
    "StreamEvent",
    "ToolCallEvent",
    "LettaAPI",
    "LettaAPIError",
]
