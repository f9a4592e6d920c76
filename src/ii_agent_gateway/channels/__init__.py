"""
Multi-channel abstraction layer.

This module provides a unified interface for messaging across platforms
(Telegram, Slack, Discord, WhatsApp, Signal).
"""

from .base import (
    ChannelAdapter,
    ChannelType,
    InboundAttachment,
    InboundMessage,
    InboundReaction,
    OutboundMessage,
    SendResult,
)

__all__ = [
    "ChannelAdapter",
    "ChannelType",
    "InboundAttachment",
    "InboundMessage",
    "InboundReaction",
    "OutboundMessage",
    "SendResult",
]
