"""
Shared fakes for the gateway tests: an in-memory agent platform and a
recording channel adapter.
"""

import asyncio
from typing import Callable

import pytest

from ii_agent_gateway.channels.base import ChannelAdapter, InboundMessage, OutboundMessage, SendResult
from ii_agent_gateway.config import Settings
from ii_agent_gateway.remote.base import (
    AgentOptions,
    AgentPlatform,
    AssistantChunk,
    ResultEvent,
    Session,
    SessionOptions,
)


class FakeSession(Session):
    """Session that records its calls on the owning platform."""

    def __init__(self, platform, kind, handle, agent_id, conversation_id, options, failure=None):
        self.platform = platform
        self.kind = kind
        self.handle = handle
        self.options = options
        self.failure = failure
        self.closed = False
        self._agent_id = agent_id
        self._conversation_id = conversation_id

    @property
    def agent_id(self):
        return self._agent_id

    @property
    def conversation_id(self):
        return self._conversation_id

    async def initialize(self):
        self.platform.calls.append(("initialize", self.handle))
        if self.failure == "initialize":
            raise RuntimeError("conversation not found")
        if self.failure == "hang":
            await asyncio.sleep(10)

    async def send(self, text):
        self.platform.calls.append(("send", self.handle, text))
        if self.failure == "send":
            raise RuntimeError("conversation not found")
        if self.platform.send_gate is not None:
            await self.platform.send_gate.wait()

    async def stream(self):
        for chunk in self.platform.chunks:
            if self.platform.stream_delay:
                await asyncio.sleep(self.platform.stream_delay)
            yield AssistantChunk(content=chunk)
            if self.platform.stream_error is not None:
                raise self.platform.stream_error
        yield ResultEvent(agent_id=self._agent_id, conversation_id=self._conversation_id)

    async def close(self):
        self.platform.calls.append(("close", self.handle))
        self.closed = True


class FakePlatform(AgentPlatform):
    """In-memory agent platform.

    ``failing`` maps a session handle to the operation that fails on it
    ("initialize", "send" or "hang").
    """

    def __init__(self, chunks=None):
        self.chunks = chunks or ["Hello!"]
        self.calls: list[tuple] = []
        self.sessions: list[FakeSession] = []
        self.created_agents: list[AgentOptions] = []
        self.failing: dict[str, str] = {}
        self.conversation_agents: dict[str, str] = {}
        self.fail_create: Exception | None = None
        self.send_gate: asyncio.Event | None = None
        self.stream_delay = 0.0
        self.stream_error: Exception | None = None
        self._counter = 0

    @property
    def sends(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "send"]

    async def create_agent(self, options: AgentOptions) -> str:
        if self.fail_create is not None:
            raise self.fail_create
        self.created_agents.append(options)
        return f"agent-{len(self.created_agents)}"

    def create_session(self, handle: str, options: SessionOptions) -> Session:
        self._counter += 1
        conversation_id = f"conv-{self._counter}"
        self.conversation_agents[conversation_id] = handle
        return self._session("create", handle, handle, conversation_id, options)

    def resume_session(self, handle: str, options: SessionOptions) -> Session:
        if handle in self.conversation_agents:
            agent_id, conversation_id = self.conversation_agents[handle], handle
        else:
            agent_id, conversation_id = handle, f"{handle}-default"
            self.conversation_agents[conversation_id] = handle
        return self._session("resume", handle, agent_id, conversation_id, options)

    def _session(self, kind, handle, agent_id, conversation_id, options) -> FakeSession:
        session = FakeSession(
            self, kind, handle, agent_id, conversation_id, options, self.failing.get(handle)
        )
        self.sessions.append(session)
        return session


class FakeAdapter(ChannelAdapter):
    """Channel adapter that records everything sent through it."""

    def __init__(self, channel: str = "telegram", account_id: str = "default", editable: bool = True):
        super().__init__(account_id)
        self._channel = channel
        self.editable = editable
        self.sent: list[OutboundMessage] = []
        self.edits: list[tuple[str, str, str]] = []
        self.typing: list[str] = []
        self.fail_sends = 0
        self.fail_start = False
        self.fail_stop = False
        self.started = False
        self.stopped = False

    @property
    def channel_id(self) -> str:
        return self._channel

    async def start(self) -> None:
        if self.fail_start:
            raise RuntimeError("connection refused")
        self.started = True

    async def stop(self) -> None:
        if self.fail_stop:
            raise RuntimeError("already closed")
        self.stopped = True

    async def send_message(self, message: OutboundMessage) -> SendResult:
        if self.fail_sends:
            self.fail_sends -= 1
            raise RuntimeError("network error")
        self.sent.append(message)
        return SendResult(message_id=f"m{len(self.sent)}")

    async def edit_message(self, chat_id: str, message_id: str, text: str) -> None:
        self.edits.append((chat_id, message_id, text))

    async def send_typing_indicator(self, chat_id: str) -> None:
        self.typing.append(chat_id)

    def supports_editing(self) -> bool:
        return self.editable


def make_message(text: str = "hi", channel: str = "telegram", chat_id: str = "chat-1", **kwargs) -> InboundMessage:
    return InboundMessage(channel=channel, chat_id=chat_id, user_id="user-1", text=text, **kwargs)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll until ``predicate`` holds."""

    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def settings(tmp_path):
    return Settings(_env_file=None, data_dir=str(tmp_path / "data"))


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def adapter():
    return FakeAdapter()
