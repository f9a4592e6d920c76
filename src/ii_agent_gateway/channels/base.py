"""
Base channel abstraction for multi-platform messaging.

Channel adapters translate a platform's wire format into InboundMessage,
call the installed ``on_message`` hook once per logical inbound event, and
send/edit replies on behalf of the agents.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable


class ChannelType(str, Enum):
    """Supported messaging channel types."""
    TELEGRAM = "telegram"
    SLACK = "slack"
    DISCORD = "discord"
    WHATSAPP = "whatsapp"
    SIGNAL = "signal"


@dataclass
class InboundAttachment:
    """File, image or media attached to an inbound message."""

    id: str = ""
    name: str = ""
    mime_type: str = ""
    size: int | None = None
    url: str = ""
    local_path: str = ""
    kind: str = "file"  # image | file | audio | video


@dataclass
class InboundReaction:
    """A reaction added to (or removed from) a message."""

    emoji: str
    message_id: str
    action: str = "added"


@dataclass
class InboundMessage:
    """Platform-agnostic inbound message.

    This is the canonical message format that flows from adapters through
    the gateway to the agents.
    """

    # Core fields
    channel: str
    chat_id: str
    user_id: str
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Sender info
    user_name: str = ""
    user_handle: str = ""

    # Message metadata
    message_id: str = ""
    account_id: str = ""
    thread_id: str = ""

    # Group context
    is_group: bool = False
    group_name: str = ""
    was_mentioned: bool = False

    # Rich content
    attachments: list[InboundAttachment] = field(default_factory=list)
    reaction: InboundReaction | None = None

    # Platform-specific raw data
    raw_data: dict[str, Any] = field(default_factory=dict)

    @property
    def has_attachments(self) -> bool:
        """Check if message has any attachments."""
        return bool(self.attachments)


@dataclass
class OutboundMessage:
    """Message being sent back to a channel."""

    chat_id: str
    text: str
    reply_to_message_id: str = ""
    thread_id: str = ""
    parse_mode: str = ""


@dataclass
class SendResult:
    """Result of a send: the platform id of the created message."""

    message_id: str


MessageHandler = Callable[[InboundMessage], Awaitable[None]]


class ChannelAdapter(ABC):
    """Abstract base class for messaging channel adapters.

    To add a new messaging platform:
    1. Create a subclass of ChannelAdapter
    2. Implement all abstract methods
    3. Register it with the Gateway

    Adapters are responsible for:
    - Converting platform-native messages to InboundMessage
    - Calling ``on_message`` once per logical inbound event
    - Converting OutboundMessage to platform-native format
    - Managing platform connections (webhooks, polling, websockets)
    """

    def __init__(self, account_id: str = "default"):
        self.account_id = account_id
        self.on_message: MessageHandler | None = None

    @property
    @abstractmethod
    def channel_id(self) -> str:
        """Channel identifier, e.g. ``telegram``."""
        ...

    @property
    def name(self) -> str:
        """Human-readable adapter name."""
        return f"{self.channel_id}:{self.account_id}"

    @abstractmethod
    async def start(self) -> None:
        """Connect to the messaging platform and begin receiving."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect from the messaging platform."""
        ...

    @abstractmethod
    async def send_message(self, message: OutboundMessage) -> SendResult:
        """Send a message. Returns the platform message id."""
        ...

    @abstractmethod
    async def send_typing_indicator(self, chat_id: str) -> None:
        """Show a typing/processing indicator in the chat."""
        ...

    async def edit_message(self, chat_id: str, message_id: str, text: str) -> None:
        """Edit a previously sent message. Override if platform supports it."""
        raise NotImplementedError(f"{self.name} does not support message editing")

    def supports_editing(self) -> bool:
        """Whether replies can be streamed by editing one message in place."""
        return True

    async def dispatch(self, message: InboundMessage) -> None:
        """Hand an inbound message to the installed hook."""
        if self.on_message is None:
            raise RuntimeError(f"{self.name} has no message handler installed")
        await self.on_message(message)
