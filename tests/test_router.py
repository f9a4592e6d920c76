"""
Tests for binding-based message routing.
"""

from ii_agent_gateway.config import AgentBinding, BindingMatch, PeerMatch
from ii_agent_gateway.routing.router import MessageRouter, RoutingContext, specificity_score


def binding(agent_id, channel, account_id=None, peer=None):
    return AgentBinding(
        agent_id=agent_id,
        match=BindingMatch(
            channel=channel,
            account_id=account_id,
            peer=PeerMatch(kind=peer[0], id=peer[1]) if peer else None,
        ),
    )


def test_specificity_scores():
    """Test that peer beats account beats channel."""
    assert specificity_score(binding("a", "telegram", "acc", ("group", "g1"))) == 111
    assert specificity_score(binding("a", "telegram", peer=("dm", "u1"))) == 101
    assert specificity_score(binding("a", "telegram", "acc")) == 11
    assert specificity_score(binding("a", "telegram")) == 1


def test_peer_binding_wins_over_channel_binding():
    """Test that a peer binding wins even when declared last."""
    router = MessageRouter(
        [binding("work", "telegram"), binding("family", "telegram", peer=("group", "g1"))],
        default_agent_id="main",
    )

    result = router.route(RoutingContext(channel="telegram", peer_id="g1", peer_kind="group"))

    assert result.agent_id == "family"
    assert result.match_level == "peer"


def test_channel_binding_for_other_peer():
    """Test that other chats on the channel fall to the channel binding."""
    router = MessageRouter(
        [binding("work", "telegram"), binding("family", "telegram", peer=("group", "g1"))],
        default_agent_id="main",
    )

    result = router.route(RoutingContext(channel="telegram", peer_id="g2", peer_kind="group"))

    assert result.agent_id == "work"
    assert result.match_level == "channel"


def test_no_match_routes_to_default():
    """Test that an unmatched context goes to the default agent."""
    router = MessageRouter([binding("work", "slack")], default_agent_id="main")

    result = router.route(RoutingContext(channel="discord"))

    assert result.agent_id == "main"
    assert result.matched_binding is None
    assert result.match_level == "default"


def test_empty_bindings_route_to_default():
    """Test that routing with no bindings always yields the default."""
    router = MessageRouter([], default_agent_id="main")

    assert router.route(RoutingContext(channel="telegram")).agent_id == "main"


def test_account_binding():
    """Test account-qualified bindings."""
    router = MessageRouter(
        [binding("main", "telegram"), binding("support", "telegram", "support-bot")],
        default_agent_id="main",
    )

    support = router.route(RoutingContext(channel="telegram", account_id="support-bot"))
    other = router.route(RoutingContext(channel="telegram", account_id="personal"))

    assert support.agent_id == "support"
    assert support.match_level == "account"
    assert other.agent_id == "main"
    assert other.match_level == "channel"


def test_peer_binding_requires_matching_kind():
    """Test that a peer binding needs both id and kind to match."""
    router = MessageRouter([binding("family", "telegram", peer=("group", "g1"))], default_agent_id="main")

    assert router.route(RoutingContext(channel="telegram", peer_id="g1", peer_kind="dm")).agent_id == "main"
    assert router.route(RoutingContext(channel="telegram", peer_id="g1")).agent_id == "main"


def test_peer_binding_with_account():
    """Test that a peer binding with an account must match the account too."""
    router = MessageRouter(
        [binding("family", "telegram", "home", ("group", "g1"))],
        default_agent_id="main",
    )

    home = RoutingContext(channel="telegram", account_id="home", peer_id="g1", peer_kind="group")
    work = RoutingContext(channel="telegram", account_id="work", peer_id="g1", peer_kind="group")

    assert router.route(home).agent_id == "family"
    assert router.route(work).agent_id == "main"


def test_ties_keep_declaration_order():
    """Test that equally specific bindings are tried in declaration order."""
    router = MessageRouter(
        [binding("first", "telegram"), binding("second", "telegram")],
        default_agent_id="main",
    )

    assert router.route(RoutingContext(channel="telegram")).agent_id == "first"


def test_routed_agent_ids():
    """Test listing reachable agents."""
    router = MessageRouter(
        [binding("work", "slack"), binding("family", "telegram", peer=("group", "g1")), binding("work", "discord")],
        default_agent_id="main",
    )

    assert router.routed_agent_ids() == ["family", "work", "main"]
    assert len(router.bindings_for_agent("work")) == 2


def test_describe_route():
    """Test human-readable routing descriptions."""
    router = MessageRouter([binding("family", "telegram", "home", ("group", "g1"))], default_agent_id="main")

    matched = router.describe_route(
        RoutingContext(channel="telegram", account_id="home", peer_id="g1", peer_kind="group")
    )
    unmatched = router.describe_route(RoutingContext(channel="slack"))

    assert matched == "-> family (matched: channel=telegram, account=home, peer=group:g1)"
    assert unmatched == "-> main (default agent)"
