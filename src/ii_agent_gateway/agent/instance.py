"""
Agent instance - one configured agent in multi-agent mode.

Each instance owns:
1. Its persisted remote identity / conversation state (state.json)
2. A FIFO work queue drained one entry at a time, so at most one message
   per agent talks to the remote platform at any moment
3. Session selection and recovery: resume the stored conversation, else the
   agent's default conversation, else create a new agent; when resuming
   fails, open a fresh conversation on the same agent and retry once
"""

import asyncio
import contextlib
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable

import structlog

from ..channels.base import ChannelAdapter, InboundMessage, OutboundMessage
from ..config import AgentConfig, Settings, get_settings
from ..remote.base import (
    AgentDirectory,
    AgentOptions,
    AgentPlatform,
    AssistantChunk,
    ResultEvent,
    Session,
    SessionOptions,
)
from .conversation import SHARED_KEY, resolve_conversation_key, resolve_heartbeat_conversation_key
from .formatter import format_message_envelope
from .memory import SYSTEM_PROMPT, load_memory_blocks
from .state import AgentState, LastMessageTarget, StateStore, utc_now
from .timeout import run_with_timeout
from .triggers import TriggerContext, TriggerType

logger = structlog.get_logger()


@dataclass
class QueueEntry:
    """A unit of work waiting for the agent.

    Inbound chat messages carry ``message`` and ``adapter``; out-of-band
    sends (cron, heartbeat) carry ``text`` and ``trigger`` instead. State
    changes requested from outside a turn carry ``action``.
    """

    message: InboundMessage | None
    adapter: ChannelAdapter | None
    completion: asyncio.Future
    text: str = ""
    trigger: TriggerContext | None = None
    action: Callable[[], None] | None = None


@dataclass
class _ActiveSession:
    session: Session
    # True while the session resumes a stored or default conversation
    recoverable: bool


class _ReplyStream:
    """Delivers one streamed reply to a chat, editing in place when possible."""

    def __init__(
        self,
        adapter: ChannelAdapter,
        msg: InboundMessage,
        agent: str,
        update_interval: float,
        typing_interval: float,
    ):
        self.adapter = adapter
        self.msg = msg
        self.agent = agent
        self.update_interval = update_interval
        self.typing_interval = typing_interval
        self.message_id: str | None = None
        self._can_edit = adapter.supports_editing()
        self._last_update = time.monotonic()

    def _outbound(self, text: str) -> OutboundMessage:
        return OutboundMessage(chat_id=self.msg.chat_id, text=text, thread_id=self.msg.thread_id)

    @contextlib.asynccontextmanager
    async def typing(self) -> AsyncIterator[None]:
        """Refresh the typing indicator until the block exits."""

        async def keepalive() -> None:
            while True:
                await asyncio.sleep(self.typing_interval)
                try:
                    await self.adapter.send_typing_indicator(self.msg.chat_id)
                except Exception as e:
                    logger.debug("Typing indicator failed", agent=self.agent, error=str(e))

        task = asyncio.create_task(keepalive())
        try:
            yield
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def update(self, text: str) -> None:
        """Push partial text, at most once per update interval."""
        if not self._can_edit or not text:
            return
        if time.monotonic() - self._last_update < self.update_interval:
            return

        try:
            if self.message_id:
                await self.adapter.edit_message(self.msg.chat_id, self.message_id, text)
            else:
                result = await self.adapter.send_message(self._outbound(text))
                self.message_id = result.message_id
        except Exception as e:
            logger.debug("Streaming update failed", agent=self.agent, error=str(e))
        self._last_update = time.monotonic()

    async def finish(self, text: str) -> None:
        """Deliver the final reply text."""
        if not text.strip():
            return

        try:
            if self.message_id:
                await self.adapter.edit_message(self.msg.chat_id, self.message_id, text)
            else:
                await self.adapter.send_message(self._outbound(text))
            return
        except Exception as e:
            logger.error("Error sending response", agent=self.agent, error=str(e))

        if self.message_id is None:
            try:
                await self.adapter.send_message(self._outbound(text))
            except Exception as e:
                logger.error("Retry of response delivery failed", agent=self.agent, error=str(e))


class AgentInstance:
    """A single agent: persisted identity, session lifecycle, serialized queue."""

    def __init__(
        self,
        config: AgentConfig,
        platform: AgentPlatform | None,
        directory: AgentDirectory | None = None,
        settings: Settings | None = None,
        state_root: Path | None = None,
    ):
        self.settings = settings or get_settings()
        self.config_id = config.id
        self.name = config.name or config.id
        self.model = config.model
        self.workspace = Path(
            config.workspace or Path(self.settings.data_dir) / f"workspace-{config.id}"
        ).expanduser()

        self._platform = platform
        self._directory = directory
        self._store = StateStore.for_agent(state_root or self.settings.state_root, config.id)
        self._state = self._store.load()

        self._queue: deque[QueueEntry] = deque()
        self._processing = False
        self._drain_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

        try:
            self.workspace.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create workspace", agent=self.config_id, error=str(e))

        logger.info(
            "Agent initialized",
            agent=self.config_id,
            letta_id=self._state.agent_id or "(new)",
        )

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def agent_id(self) -> str | None:
        """Remote agent identity, if one has been established."""
        return self._state.agent_id

    @property
    def conversation_id(self) -> str | None:
        return self._state.conversation_id

    @property
    def conversations(self) -> dict[str, str]:
        return dict(self._state.conversations)

    @property
    def last_message_target(self) -> LastMessageTarget | None:
        return self._state.last_message_target

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    def status(self) -> dict[str, Any]:
        return {
            "config_id": self.config_id,
            "name": self.name,
            "workspace": str(self.workspace),
            "agent_id": self._state.agent_id,
            "conversation_id": self._state.conversation_id,
            "queue_depth": self.queue_depth,
            "processing": self._processing,
        }

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def process_message(self, msg: InboundMessage, adapter: ChannelAdapter) -> asyncio.Future:
        """Queue an inbound message.

        Returns a future that resolves once the message has been fully
        handled (reply delivered), or raises the error that stopped it.
        """
        loop = asyncio.get_running_loop()
        return self._enqueue(QueueEntry(message=msg, adapter=adapter, completion=loop.create_future()))

    def send_to_agent(self, text: str, trigger: TriggerContext | None = None) -> asyncio.Future:
        """Queue out-of-band text (cron, heartbeat, webhook).

        Returns a future with the accumulated reply text. Nothing is sent to
        any channel.
        """
        loop = asyncio.get_running_loop()
        return self._enqueue(QueueEntry(
            message=None,
            adapter=None,
            completion=loop.create_future(),
            text=text,
            trigger=trigger,
        ))

    def reset(self) -> None:
        """Forget the remote agent entirely; the next message creates a new one."""
        self._state = AgentState()
        self._save_state()
        logger.info("Agent reset", agent=self.config_id)

    def reset_conversation(self) -> asyncio.Future:
        """Drop stored conversations but keep the agent and its memory.

        The reset is queued behind any turn already waiting or running, so a
        turn in flight cannot write its conversation back afterwards.
        """
        loop = asyncio.get_running_loop()
        return self._enqueue(QueueEntry(
            message=None,
            adapter=None,
            completion=loop.create_future(),
            action=self._clear_conversations,
        ))

    def _clear_conversations(self) -> None:
        self._state.conversation_id = None
        self._state.conversations = {}
        self._save_state()
        logger.info("Conversation reset", agent=self.config_id)

    def set_agent_id(self, agent_id: str) -> None:
        """Bind an agent that already exists on the remote platform."""
        self._state.agent_id = agent_id
        self._save_state()
        logger.info("Agent ID set", agent=self.config_id, letta_id=agent_id)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def _enqueue(self, entry: QueueEntry) -> asyncio.Future:
        self._queue.append(entry)
        if not self._processing:
            self._processing = True
            self._drain_task = asyncio.create_task(self._drain())
        return entry.completion

    async def _drain(self) -> None:
        """Process queued entries strictly one at a time, in arrival order."""
        try:
            while self._queue:
                entry = self._queue.popleft()
                try:
                    if entry.action is not None:
                        entry.action()
                        result = None
                    elif entry.message is not None and entry.adapter is not None:
                        await self._handle_message(entry.message, entry.adapter)
                        result = None
                    else:
                        result = await self._handle_agent_send(entry.text, entry.trigger)
                except Exception as e:
                    if not entry.completion.done():
                        entry.completion.set_exception(e)
                else:
                    if not entry.completion.done():
                        entry.completion.set_result(result)
        finally:
            self._processing = False

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_message(self, msg: InboundMessage, adapter: ChannelAdapter) -> None:
        logger.info(
            "Message received",
            agent=self.config_id,
            channel=msg.channel,
            user_id=msg.user_id,
            preview=msg.text[:50],
        )

        self._state.last_message_target = LastMessageTarget(
            channel=msg.channel,
            chat_id=msg.chat_id,
            account_id=msg.account_id or adapter.account_id,
            message_id=msg.message_id or None,
        )
        self._save_state()

        try:
            await adapter.send_typing_indicator(msg.chat_id)
        except Exception as e:
            logger.debug("Typing indicator failed", agent=self.config_id, error=str(e))

        key = resolve_conversation_key(
            msg.channel,
            self.settings.conversation_mode,
            self.settings.conversation_overrides_set,
        )
        reply = _ReplyStream(
            adapter,
            msg,
            agent=self.config_id,
            update_interval=self.settings.stream_update_interval_ms / 1000,
            typing_interval=self.settings.typing_interval_seconds,
        )

        try:
            response = await self._run_turn(key, format_message_envelope(msg), reply)
        except Exception as e:
            logger.error("Error processing message", agent=self.config_id, error=str(e))
            await self._report_error(adapter, msg, e)
            raise

        await reply.finish(response)

    async def _handle_agent_send(self, text: str, trigger: TriggerContext | None) -> str:
        key = self._trigger_key(trigger)
        logger.info(
            "Sending to agent",
            agent=self.config_id,
            trigger=trigger.type.value if trigger else "direct",
            conversation_key=key,
        )
        return await self._run_turn(key, text, None)

    def _trigger_key(self, trigger: TriggerContext | None) -> str:
        mode = self.settings.conversation_mode
        overrides = self.settings.conversation_overrides_set
        if trigger is None:
            return SHARED_KEY
        if trigger.type == TriggerType.HEARTBEAT:
            last = self._state.last_message_target
            return resolve_heartbeat_conversation_key(
                mode,
                self.settings.heartbeat_conversation,
                overrides,
                last.channel if last else None,
            )
        if trigger.source_channel:
            return resolve_conversation_key(trigger.source_channel, mode, overrides)
        return SHARED_KEY

    async def _report_error(self, adapter: ChannelAdapter, msg: InboundMessage, error: Exception) -> None:
        text = f"Error: {error}" if str(error) else "Error: Unknown error"
        try:
            await adapter.send_message(OutboundMessage(
                chat_id=msg.chat_id,
                text=text,
                thread_id=msg.thread_id,
            ))
        except Exception as e:
            logger.error("Failed to report error to channel", agent=self.config_id, error=str(e))

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _run_turn(self, key: str, text: str, reply: _ReplyStream | None) -> str:
        """Open a session, send ``text`` and collect the reply. Always closes the session."""
        active = await self._open_session(key)
        try:
            await self._initialize(active)
            await self._send(active, text)
            if reply is None:
                return await self._collect(active.session, key, None)
            async with reply.typing():
                return await self._collect(active.session, key, reply.update)
        finally:
            await self._close(active.session)

    def _session_options(self, agent_id: str | None) -> SessionOptions:
        return SessionOptions(
            agent_id=agent_id,
            cwd=str(self.workspace),
            allowed_tools=self.settings.allowed_tools_list,
        )

    def _stored_conversation(self, key: str) -> str | None:
        if key == SHARED_KEY:
            return self._state.conversation_id
        return self._state.conversations.get(key)

    async def _open_session(self, key: str) -> _ActiveSession:
        if self._platform is None:
            raise RuntimeError(f"Agent {self.config_id} has no remote platform configured")
        agent_id = self._state.agent_id
        if agent_id is not None:
            options = self._session_options(agent_id)
            conversation_id = self._stored_conversation(key)
            if conversation_id:
                return _ActiveSession(self._platform.resume_session(conversation_id, options), True)
            if key == SHARED_KEY:
                return _ActiveSession(self._platform.resume_session(agent_id, options), True)
            return _ActiveSession(self._platform.create_session(agent_id, options), False)

        new_agent_id = await self._platform.create_agent(AgentOptions(
            model=self.model,
            memory=load_memory_blocks(self.name, self.workspace),
            system_prompt=SYSTEM_PROMPT,
            cwd=str(self.workspace),
            allowed_tools=self.settings.allowed_tools_list,
        ))
        logger.info("Created remote agent", agent=self.config_id, letta_id=new_agent_id)
        return _ActiveSession(
            self._platform.resume_session(new_agent_id, self._session_options(new_agent_id)),
            False,
        )

    async def _timed(self, operation: Callable[[], Awaitable[None]], label: str) -> None:
        await run_with_timeout(operation(), label, self.settings.session_timeout_seconds)

    async def _recover(self, active: _ActiveSession, error: Exception) -> None:
        """Replace a stale session with a fresh conversation on the same agent."""
        agent_id = self._state.agent_id
        if not active.recoverable or agent_id is None:
            raise error

        logger.warning(
            "Conversation missing, creating new session",
            agent=self.config_id,
            error=str(error),
        )
        await self._close(active.session)
        active.session = self._platform.create_session(agent_id, self._session_options(agent_id))
        active.recoverable = False
        await self._timed(active.session.initialize, "Session initialize")

    async def _initialize(self, active: _ActiveSession) -> None:
        try:
            await self._timed(active.session.initialize, "Session initialize")
        except Exception as e:
            await self._recover(active, e)

    async def _send(self, active: _ActiveSession, text: str) -> None:
        try:
            await self._timed(lambda: active.session.send(text), "Session send")
        except Exception as e:
            await self._recover(active, e)
            await self._timed(lambda: active.session.send(text), "Session send")

    async def _collect(
        self,
        session: Session,
        key: str,
        on_text: Callable[[str], Awaitable[None]] | None,
    ) -> str:
        response = ""
        async for event in session.stream():
            if isinstance(event, AssistantChunk):
                response += event.content
                if on_text is not None:
                    await on_text(response)
            elif isinstance(event, ResultEvent):
                self._handle_session_result(session, event, key)
                break
        return response

    async def _close(self, session: Session) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning("Error closing session", agent=self.config_id, error=str(e))

    def _handle_session_result(self, session: Session, event: ResultEvent, key: str) -> None:
        """Persist identifiers learned from a finished turn."""
        agent_id = event.agent_id or session.agent_id
        conversation_id = event.conversation_id or session.conversation_id
        previous = self._state.agent_id
        now = utc_now()

        if agent_id and agent_id != previous:
            if previous is not None:
                # conversations belong to the old agent
                self._state.conversation_id = None
                self._state.conversations = {}
            self._state.agent_id = agent_id
            self._state.base_url = self.settings.letta_base_url
            if not self._state.created_at:
                self._state.created_at = now

        if agent_id:
            self._state.last_used_at = now

        if conversation_id:
            if key == SHARED_KEY:
                self._state.conversation_id = conversation_id
            else:
                self._state.conversations[key] = conversation_id

        self._save_state()

        if previous is None and agent_id:
            self._request_display_name(agent_id)

    def _request_display_name(self, agent_id: str) -> None:
        if self._directory is None:
            return
        task = asyncio.create_task(self._directory.update_agent_name(agent_id, self.name))
        self._background.add(task)
        task.add_done_callback(self._on_rename_done)

    def _on_rename_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "Failed to set agent display name",
                agent=self.config_id,
                error=str(task.exception()),
            )

    def _save_state(self) -> None:
        self._store.save(self._state)
