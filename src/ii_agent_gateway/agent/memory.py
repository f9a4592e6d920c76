"""
Memory bootstrap for newly created remote agents.

A new agent starts with a ``persona`` block (from the workspace SOUL.md
when present) and a ``human`` block (from USER.md when present).
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful assistant with persistent memory, reachable over several chat platforms.

Each user message arrives wrapped in a <system-reminder> block describing the channel, chat and sender.
That block is metadata for you; do not repeat it back.

Guidelines:
1. Be helpful, accurate, and concise
2. Keep your memory blocks up to date with what you learn about the user
3. Format replies for chat: short paragraphs, light Markdown
4. If you're unsure, say so"""

DEFAULT_PERSONA = """My name is {name}. I am a helpful assistant with long-term memory.
I am warm and direct, I adapt to the complexity of the question, and I am honest about what I don't know."""

DEFAULT_HUMAN = """Nothing is known about the user yet.
I will learn their name, preferences and ongoing projects as we talk."""


def _read_optional(path: Path) -> str:
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.error(f"Error reading {path}: {e}")
    return ""


def load_memory_blocks(agent_name: str, workspace: str | Path | None = None) -> list[dict[str, str]]:
    """Build the initial memory blocks for a new agent.

    Args:
        agent_name: Display name of the agent
        workspace: Agent workspace that may hold SOUL.md / USER.md

    Returns:
        Blocks as ``{"label": ..., "value": ...}`` dicts
    """
    persona = human = ""
    if workspace:
        root = Path(workspace).expanduser()
        persona = _read_optional(root / "SOUL.md")
        human = _read_optional(root / "USER.md")

    return [
        {"label": "persona", "value": persona or DEFAULT_PERSONA.format(name=agent_name)},
        {"label": "human", "value": human or DEFAULT_HUMAN},
    ]
