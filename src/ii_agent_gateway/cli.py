"""
Command-line interface for II-Agent-Gateway.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog
from pydantic import ValidationError

from .agent.manager import AgentManager
from .config import (
    GatewayConfig,
    Settings,
    enabled_channel_accounts,
    get_settings,
    load_gateway_config,
    normalize_config,
    validate_config,
)
from .remote.letta_api import LettaAPI
from .routing.router import MessageRouter, RoutingContext

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="ii-gateway",
        description="II-Agent-Gateway - route chat channels to persistent Letta agents",
    )
    parser.add_argument("--config", dest="config_path", help="Gateway config file (JSON)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    subparsers.add_parser("agents", help="List configured agents and their stored identities")

    route_parser = subparsers.add_parser("route", help="Show which agent a message would reach")
    route_parser.add_argument("channel", help="Channel type, e.g. telegram")
    route_parser.add_argument("--account", default="default", help="Channel account id")
    route_parser.add_argument("--peer", default=None, help="Chat / peer id")
    route_parser.add_argument("--group", action="store_true", help="Peer is a group chat")

    reset_parser = subparsers.add_parser("reset", help="Forget an agent's stored identity")
    reset_parser.add_argument("agent", help="Configured agent id")

    subparsers.add_parser("verify", help="Verify stored identities against the Letta server")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(message)s")

    try:
        config = load_config(settings, args.config_path)
    except (OSError, ValueError, ValidationError) as e:
        print(f"❌ Could not load gateway config: {e}")
        sys.exit(1)

    if args.command == "config":
        show_config(settings, config, args.check)
    elif args.command == "agents":
        list_agents(settings, config)
    elif args.command == "route":
        show_route(config, args.channel, args.account, args.peer, args.group)
    elif args.command == "reset":
        if not reset_agent(settings, config, args.agent):
            sys.exit(1)
    elif args.command == "verify":
        asyncio.run(verify_agents(settings, config))
    else:
        parser.print_help()


def load_config(settings: Settings, path: str | None = None) -> GatewayConfig:
    """Load and normalize the gateway config; a missing file means the legacy defaults."""
    config_path = Path(path or Path(settings.data_dir).expanduser() / settings.config_file).expanduser()
    if config_path.exists():
        raw = load_gateway_config(config_path)
    else:
        logger.info("No gateway config found, using defaults", path=str(config_path))
        raw = GatewayConfig()
    return normalize_config(raw, settings.data_dir)


def show_config(settings: Settings, config: GatewayConfig, check: bool) -> None:
    """Show current configuration."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== II-Agent-Gateway Configuration ===\n")

    print("Letta:")
    print(f"  Base URL: {settings.letta_base_url}")
    print(f"  API Key: {mask(settings.letta_api_key)}")

    print("\nConversations:")
    print(f"  Mode: {settings.conversation_mode}")
    print(f"  Heartbeat: {settings.heartbeat_conversation}")
    print(f"  Overrides: {settings.conversation_overrides or '(none)'}")

    print("\nAgents:")
    for agent in config.agents.entries:
        marker = " (default)" if agent.default else ""
        print(f"  {agent.id}{marker}: {agent.name} [{agent.model}]")
        print(f"    workspace: {agent.workspace}")

    print("\nChannels:")
    accounts = enabled_channel_accounts(config)
    for channel, account_id in accounts:
        print(f"  {channel}:{account_id}")
    if not accounts:
        print("  (none enabled)")

    print("\nBindings:")
    for binding in config.bindings:
        match = binding.match
        parts = [f"channel={match.channel}"]
        if match.account_id:
            parts.append(f"account={match.account_id}")
        if match.peer:
            parts.append(f"peer={match.peer.kind}:{match.peer.id}")
        print(f"  {', '.join(parts)} -> {binding.agent_id}")

    print("\nStorage:")
    print(f"  Data dir: {settings.data_dir}")

    if check:
        print("\n=== Configuration Check ===\n")
        errors = validate_config(config)
        warnings = []

        if settings.letta_base_url.startswith("https://api.letta.com") and not settings.letta_api_key:
            warnings.append("LETTA_API_KEY is not set - Letta Cloud requires one")

        if errors:
            print("❌ Errors:")
            for e in errors:
                print(f"   - {e}")

        if warnings:
            print("⚠️  Warnings:")
            for w in warnings:
                print(f"   - {w}")

        if not errors and not warnings:
            print("✅ Configuration looks good!")
        elif not errors:
            print("\n✅ Configuration is valid (with warnings)")
        else:
            print("\n❌ Configuration has errors - fix them before starting")


def list_agents(settings: Settings, config: GatewayConfig) -> None:
    """Print every configured agent with its stored remote identity."""
    manager = AgentManager(config, None, settings=settings)

    print(f"\n{'Config ID':<16} {'Name':<20} {'Letta Agent ID':<40} {'Default':<8}")
    print("-" * 86)
    for info in manager.list_agents():
        default = "yes" if info["is_default"] else ""
        print(f"{info['config_id']:<16} {info['name']:<20} {info['agent_id'] or '(new)':<40} {default:<8}")


def show_route(
    config: GatewayConfig,
    channel: str,
    account_id: str,
    peer_id: str | None,
    is_group: bool,
) -> None:
    """Print which agent a message with the given coordinates reaches."""
    default = config.default_agent
    router = MessageRouter(config.bindings, default.id if default else "main")
    ctx = RoutingContext(
        channel=channel,
        account_id=account_id,
        peer_id=peer_id,
        peer_kind=("group" if is_group else "dm") if peer_id else None,
    )
    print(router.describe_route(ctx))


def reset_agent(settings: Settings, config: GatewayConfig, agent_id: str) -> bool:
    """Clear an agent's stored identity. Returns False for an unknown agent."""
    manager = AgentManager(config, None, settings=settings)
    agent = manager.get_agent(agent_id)
    if agent is None:
        print(f"❌ Unknown agent: {agent_id}")
        return False
    agent.reset()
    print(f"✅ Reset {agent_id}; the next message creates a new agent")
    return True


async def verify_agents(settings: Settings, config: GatewayConfig) -> None:
    """Drop stale identities, then adopt server agents by name where none is stored."""
    directory = LettaAPI(settings.letta_base_url, settings.letta_api_key)
    manager = AgentManager(config, None, directory=directory, settings=settings)

    await manager.verify_agents()
    await manager.discover_agents_by_name()

    for info in manager.list_agents():
        print(f"  {info['config_id']}: {info['agent_id'] or '(none)'}")


if __name__ == "__main__":
    main()
