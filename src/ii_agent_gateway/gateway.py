"""
Gateway - routing layer between channel adapters and agents.

Adapters report inbound messages here; the gateway builds a routing context,
asks the router which agent owns the message and hands it to that agent's
instance.
"""

from pathlib import Path
from typing import Any

import structlog

from .agent.instance import AgentInstance
from .agent.manager import AgentManager
from .channels.base import ChannelAdapter, InboundMessage, OutboundMessage
from .commands import HELP_TEXT, ParsedCommand, parse_command
from .config import GatewayConfig, Settings, get_settings
from .remote.base import AgentDirectory, AgentPlatform
from .routing.router import MessageRouter, RoutingContext

logger = structlog.get_logger()


class Gateway:
    """Holds channel adapters and routes their messages to agents."""

    def __init__(
        self,
        config: GatewayConfig,
        platform: AgentPlatform,
        directory: AgentDirectory | None = None,
        settings: Settings | None = None,
        state_root: Path | None = None,
    ):
        self.config = config
        self.settings = settings or get_settings()
        self.agent_manager = AgentManager(
            config,
            platform,
            directory=directory,
            settings=self.settings,
            state_root=state_root,
        )
        self.router = MessageRouter(config.bindings, self.agent_manager.default_agent_id)
        self._channels: dict[str, ChannelAdapter] = {}

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def register_channel(self, adapter: ChannelAdapter) -> None:
        """Register an adapter and install its inbound message hook."""
        key = f"{adapter.channel_id}:{adapter.account_id}"
        self._channels[key] = adapter

        async def on_message(msg: InboundMessage) -> None:
            await self.handle_message(msg, adapter)

        adapter.on_message = on_message
        logger.info("Registered channel", channel=adapter.name, key=key)

    def get_channel(self, channel_id: str, account_id: str = "default") -> ChannelAdapter | None:
        return self._channels.get(f"{channel_id}:{account_id}")

    @property
    def channels(self) -> list[ChannelAdapter]:
        return list(self._channels.values())

    async def start(self) -> None:
        """Verify stored agents, then start every adapter."""
        await self.agent_manager.verify_agents()

        for adapter in self._channels.values():
            try:
                await adapter.start()
                logger.info("Started channel", channel=adapter.name)
            except Exception as e:
                logger.error("Failed to start channel", channel=adapter.name, error=str(e))

    async def stop(self) -> None:
        """Stop every adapter; one failing does not stop the others."""
        for adapter in self._channels.values():
            try:
                await adapter.stop()
            except Exception as e:
                logger.error("Error stopping channel", channel=adapter.name, error=str(e))

    async def deliver(self, channel: str, chat_id: str, text: str, account_id: str = "default") -> bool:
        """Send text to a chat through its adapter. Returns False if no adapter."""
        adapter = self.get_channel(channel, account_id)
        if adapter is None:
            logger.warning("No adapter for delivery", channel=channel, account_id=account_id)
            return False
        await adapter.send_message(OutboundMessage(chat_id=chat_id, text=text))
        return True

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def routing_context(self, msg: InboundMessage, adapter: ChannelAdapter) -> RoutingContext:
        return RoutingContext(
            channel=msg.channel,
            account_id=msg.account_id or adapter.account_id,
            peer_id=msg.chat_id,
            peer_kind="group" if msg.is_group else "dm",
        )

    async def handle_message(self, msg: InboundMessage, adapter: ChannelAdapter) -> None:
        """Route an inbound message to its agent and wait for it to be handled."""
        ctx = self.routing_context(msg, adapter)
        result = self.router.route(ctx)
        logger.info(
            "Routing message",
            channel=msg.channel,
            chat_id=msg.chat_id,
            route=self.router.describe_route(ctx),
        )

        agent = self.agent_manager.get_agent(result.agent_id)
        if agent is None:
            logger.error("Agent not found", agent=result.agent_id)
            await adapter.send_message(OutboundMessage(
                chat_id=msg.chat_id,
                text=f'Error: Agent "{result.agent_id}" not found',
                thread_id=msg.thread_id,
            ))
            return

        command = parse_command(msg.text)
        if command is not None:
            await self._handle_command(command, agent, msg, adapter)
            return

        try:
            await agent.process_message(msg, adapter)
        except Exception as e:
            # already reported to the chat by the agent
            logger.error("Message handling failed", agent=result.agent_id, error=str(e))

    async def _handle_command(
        self,
        command: ParsedCommand,
        agent: AgentInstance,
        msg: InboundMessage,
        adapter: ChannelAdapter,
    ) -> None:
        if command.command == "help":
            text = HELP_TEXT
        elif command.command == "reset":
            await agent.reset_conversation()
            text = "Conversation reset. The agent keeps its memory."
        else:
            status = agent.status()
            text = "\n".join([
                f"*Status* ({agent.name})",
                f"Agent ID: {status['agent_id'] or '(not created yet)'}",
                f"Conversation: {status['conversation_id'] or '(default)'}",
                f"Model: {agent.model or '(server default)'}",
                f"Channels: {', '.join(self._channels) or '(none)'}",
            ])

        await adapter.send_message(OutboundMessage(
            chat_id=msg.chat_id,
            text=text,
            thread_id=msg.thread_id,
        ))

    def get_status(self) -> dict[str, Any]:
        return {
            "channels": list(self._channels),
            "agents": self.agent_manager.get_status(),
            "bindings": len(self.config.bindings),
        }
