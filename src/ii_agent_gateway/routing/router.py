"""
Message router.

Routes incoming messages to the correct agent based on bindings.
Priority: peer match > account match > channel match > default agent.
"""

from dataclasses import dataclass
from typing import Literal

from ..config import AgentBinding

PeerKind = Literal["dm", "group"]
MatchLevel = Literal["peer", "account", "channel", "default"]


@dataclass(frozen=True)
class RoutingContext:
    """Channel/account/peer facts extracted from one inbound message."""

    channel: str
    account_id: str | None = None
    peer_id: str | None = None
    peer_kind: PeerKind | None = None


@dataclass(frozen=True)
class RoutingResult:
    """Outcome of one routing decision."""

    agent_id: str
    matched_binding: AgentBinding | None
    match_level: MatchLevel


def specificity_score(binding: AgentBinding) -> int:
    """Score used to order bindings, most specific first."""
    score = 1  # channel is always required
    if binding.match.peer is not None:
        score += 100
    if binding.match.account_id:
        score += 10
    return score


class MessageRouter:
    """Matches bindings against a routing context to find the target agent."""

    def __init__(self, bindings: list[AgentBinding], default_agent_id: str):
        # sorted() is stable, so equal scores keep declaration order
        self.bindings = sorted(bindings, key=specificity_score, reverse=True)
        self.default_agent_id = default_agent_id

    def route(self, ctx: RoutingContext) -> RoutingResult:
        """Route a message to an agent. Every context yields a result."""
        for binding in self.bindings:
            level = self._match_level(binding, ctx)
            if level is not None:
                return RoutingResult(
                    agent_id=binding.agent_id,
                    matched_binding=binding,
                    match_level=level,
                )

        return RoutingResult(
            agent_id=self.default_agent_id,
            matched_binding=None,
            match_level="default",
        )

    @staticmethod
    def _match_level(binding: AgentBinding, ctx: RoutingContext) -> MatchLevel | None:
        match = binding.match
        if match.channel != ctx.channel:
            return None

        if match.peer is not None:
            if not ctx.peer_id or not ctx.peer_kind:
                return None
            if match.peer.kind != ctx.peer_kind or match.peer.id != ctx.peer_id:
                return None
            if match.account_id and match.account_id != ctx.account_id:
                return None
            return "peer"

        if match.account_id:
            if match.account_id != ctx.account_id:
                return None
            return "account"

        return "channel"

    def bindings_for_agent(self, agent_id: str) -> list[AgentBinding]:
        """Get all bindings that target an agent."""
        return [b for b in self.bindings if b.agent_id == agent_id]

    def routed_agent_ids(self) -> list[str]:
        """Get every agent id reachable through routing, default included."""
        ids = dict.fromkeys(b.agent_id for b in self.bindings)
        ids.setdefault(self.default_agent_id)
        return list(ids)

    def describe_route(self, ctx: RoutingContext) -> str:
        """Describe the routing decision for a context (logs, CLI)."""
        result = self.route(ctx)
        if result.matched_binding is None:
            return f"-> {result.agent_id} (default agent)"

        match = result.matched_binding.match
        parts = [f"channel={match.channel}"]
        if match.account_id:
            parts.append(f"account={match.account_id}")
        if match.peer is not None:
            parts.append(f"peer={match.peer.kind}:{match.peer.id}")
        return f"-> {result.agent_id} (matched: {', '.join(parts)})"
