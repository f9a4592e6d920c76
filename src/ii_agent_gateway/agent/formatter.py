"""
Message envelope formatter.

Wraps inbound text with a <system-reminder> block of metadata so the agent
knows where a message came from and who sent it.
"""

import re
from datetime import datetime

from ..channels.base import ChannelType, InboundAttachment, InboundMessage

SYSTEM_REMINDER_OPEN = "<system-reminder>"
SYSTEM_REMINDER_CLOSE = "</system-reminder>"

CHANNEL_DISPLAY_NAMES = {
    ChannelType.TELEGRAM: "Telegram",
    ChannelType.SLACK: "Slack",
    ChannelType.DISCORD: "Discord",
    ChannelType.WHATSAPP: "WhatsApp",
    ChannelType.SIGNAL: "Signal",
}


def format_phone_number(phone: str) -> str:
    """Format a phone number nicely: +15551234567 -> +1 (555) 123-4567."""
    has_plus = phone.startswith("+")
    digits = re.sub(r"\D", "", phone)

    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"+1 ({digits[0:3]}) {digits[3:6]}-{digits[6:]}"
    return f"+{digits}" if has_plus else digits


def format_channel_name(channel: str) -> str:
    """Platform display name; unknown channels are capitalized."""
    return CHANNEL_DISPLAY_NAMES.get(channel.lower(), channel.capitalize())


def format_sender(msg: InboundMessage) -> str:
    """Format the sender identifier based on channel conventions."""
    if msg.user_name.strip():
        return msg.user_name.strip()

    if msg.channel in ("slack", "discord"):
        return f"@{msg.user_handle or msg.user_id}"
    if msg.channel in ("whatsapp", "signal"):
        if re.fullmatch(r"\+?\d{10,}", re.sub(r"[^\d+]", "", msg.user_id)):
            return format_phone_number(msg.user_id)
        return msg.user_id
    if msg.channel == "telegram" and msg.user_handle:
        return f"@{msg.user_handle}"
    return msg.user_id


def format_timestamp(ts: datetime) -> str:
    # e.g. "Wednesday, Jan 28, 4:30 PM UTC"
    hour = ts.strftime("%I").lstrip("0") or "12"
    zone = ts.tzname() or ""
    return f"{ts:%A, %b} {ts.day}, {hour}:{ts:%M %p} {zone}".rstrip()


def format_bytes(size: int | None) -> str | None:
    if not size or size < 0:
        return None
    if size < 1024:
        return f"{size} B"
    if size < 1024 ** 2:
        return f"{size / 1024:.1f} KB"
    if size < 1024 ** 3:
        return f"{size / 1024 ** 2:.1f} MB"
    return f"{size / 1024 ** 3:.1f} GB"


def _attachment_line(attachment: InboundAttachment) -> str:
    name = attachment.name or attachment.id or "attachment"
    details = [d for d in (attachment.mime_type, format_bytes(attachment.size)) if d]
    detail_text = f" ({', '.join(details)})" if details else ""
    if attachment.local_path:
        return f"  - {name}{detail_text} saved to {attachment.local_path}"
    if attachment.url:
        return f"  - {name}{detail_text} {attachment.url}"
    return f"  - {name}{detail_text}"


def _metadata_lines(msg: InboundMessage) -> list[str]:
    lines = [
        f"- **Channel**: {format_channel_name(msg.channel)}",
        f"- **Chat ID**: {msg.chat_id}",
    ]
    if msg.message_id:
        lines.append(f"- **Message ID**: {msg.message_id}")
    lines.append(f"- **Sender**: {format_sender(msg)}")
    lines.append(f"- **Timestamp**: {format_timestamp(msg.timestamp)}")
    return lines


def _chat_context_lines(msg: InboundMessage) -> list[str]:
    lines: list[str] = []

    if msg.is_group:
        lines.append("- **Type**: Group chat")
        group = msg.group_name.strip()
        if group:
            if msg.channel in ("slack", "discord") and not group.startswith("#"):
                group = f"#{group}"
            lines.append(f"- **Group**: {group}")
        if msg.was_mentioned:
            lines.append("- **Mentioned**: yes")
    else:
        lines.append("- **Type**: Direct message")

    if msg.reaction is not None:
        r = msg.reaction
        lines.append(f"- **Reaction**: {r.action} {r.emoji} on message {r.message_id}")

    if msg.attachments:
        lines.append("- **Attachments**:")
        lines.extend(_attachment_line(a) for a in msg.attachments)

    return lines


def format_message_envelope(msg: InboundMessage) -> str:
    """Format an inbound message for the agent.

    Example output::

        <system-reminder>
        ## Message Metadata
        - **Channel**: Telegram
        - **Chat ID**: 123456789
        - **Sender**: Sarah
        - **Timestamp**: Wednesday, Jan 28, 4:30 PM UTC

        ## Chat Context
        - **Type**: Direct message
        </system-reminder>

        Hello!
    """
    sections = [
        "## Message Metadata\n" + "\n".join(_metadata_lines(msg)),
        "## Chat Context\n" + "\n".join(_chat_context_lines(msg)),
    ]
    reminder = f"{SYSTEM_REMINDER_OPEN}\n" + "\n\n".join(sections) + f"\n{SYSTEM_REMINDER_CLOSE}"

    body = msg.text.strip()
    return f"{reminder}\n\n{body}" if body else reminder
