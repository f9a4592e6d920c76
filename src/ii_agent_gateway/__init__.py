"""
II-Agent-Gateway - multi-channel chat gateway for persistent Letta agents.
"""

from .agent import AgentInstance, AgentManager
from .channels import ChannelAdapter, InboundMessage, OutboundMessage, SendResult
from .config import GatewayConfig, Settings, get_settings
from .gateway import Gateway
from .routing import MessageRouter, RoutingContext, RoutingResult

__version__ = "0.1.0"

__all__ = [
    "AgentInstance",
    "AgentManager",
    "ChannelAdapter",
    "Gateway",
    "GatewayConfig",
    "InboundMessage",
    "MessageRouter",
    "OutboundMessage",
    "RoutingContext",
    "RoutingResult",
    "SendResult",
    "Settings",
    "get_settings",
]
