"""
Agent module - per-agent session orchestration.

Includes:
- AgentInstance: persisted identity, serialized queue, session recovery
- AgentManager: registry of instances, identity verification/discovery
- Conversation keys: which stored conversation a channel or trigger uses
"""

from .conversation import resolve_conversation_key, resolve_heartbeat_conversation_key
from .instance import AgentInstance, QueueEntry
from .manager import AgentManager
from .state import AgentState, LastMessageTarget, StateStore
from .timeout import SessionTimeoutError, run_with_timeout
from .triggers import NotifyTarget, OutputMode, TriggerContext, TriggerType

__all__ = [
    "AgentInstance",
    "AgentManager",
    "AgentState",
    "LastMessageTarget",
    "NotifyTarget",
    "OutputMode",
    "QueueEntry",
    "SessionTimeoutError",
    "StateStore",
    "TriggerContext",
    "TriggerType",
    "resolve_conversation_key",
    "resolve_heartbeat_conversation_key",
    "run_with_timeout",
]
