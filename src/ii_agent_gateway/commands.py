"""
Slash command parsing shared by all channels.
"""

from dataclasses import dataclass

COMMANDS = ("status", "reset", "help")

HELP_TEXT = """II-Agent-Gateway - AI assistant with persistent memory

Commands:
/status - Show current status
/reset - Start a new conversation (keeps agent memory)
/help - Show this message

Just send a message to get started!"""


@dataclass(frozen=True)
class ParsedCommand:
    command: str
    args: str = ""


def parse_command(text: str | None) -> ParsedCommand | None:
    """Parse a slash command. Returns None for plain text or unknown commands."""
    if not text or not text.startswith("/"):
        return None
    parts = text[1:].split()
    if not parts:
        return None
    # Telegram appends the bot name in groups: /status@my_bot
    command = parts[0].split("@", 1)[0].lower()
    if command not in COMMANDS:
        return None
    return ParsedCommand(command=command, args=" ".join(parts[1:]))
