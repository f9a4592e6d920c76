"""
Conversation keys.

An agent keeps one remote conversation per key. ``shared`` is the agent's
main conversation; any other key (a channel name, ``heartbeat``) selects a
conversation of its own.
"""

from collections.abc import Collection

SHARED_KEY = "shared"
HEARTBEAT_KEY = "heartbeat"


def _normalize(overrides: Collection[str]) -> set[str]:
    return {o.lower() for o in overrides}


def resolve_conversation_key(
    channel: str,
    mode: str | None,
    overrides: Collection[str] = (),
) -> str:
    """Map an inbound channel to its conversation key.

    In ``per-channel``/``per-chat`` mode every channel has its own key. In
    ``shared`` mode (the default) only override channels do.
    """
    normalized = channel.lower()
    if mode in ("per-channel", "per-chat"):
        return normalized
    if normalized in _normalize(overrides):
        return normalized
    return SHARED_KEY


def resolve_heartbeat_conversation_key(
    mode: str | None,
    heartbeat_setting: str | None,
    overrides: Collection[str] = (),
    last_active_channel: str | None = None,
) -> str:
    """Map a heartbeat trigger to its conversation key.

    ``heartbeat_setting`` is ``dedicated``, ``last-active`` or a literal
    channel name.
    """
    if mode in ("per-channel", "per-chat"):
        if heartbeat_setting == "dedicated":
            return HEARTBEAT_KEY
        if heartbeat_setting == "last-active":
            return last_active_channel.lower() if last_active_channel else SHARED_KEY
        return heartbeat_setting or SHARED_KEY

    if (
        heartbeat_setting == "last-active"
        and last_active_channel
        and last_active_channel.lower() in _normalize(overrides)
    ):
        return last_active_channel.lower()
    return SHARED_KEY
