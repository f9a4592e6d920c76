"""
Trigger context: why an agent is being invoked when it is not a direct
inbound chat message.
"""

from dataclasses import dataclass
from enum import Enum


class TriggerType(str, Enum):
    """What caused the agent to run."""
    USER_MESSAGE = "user_message"
    HEARTBEAT = "heartbeat"
    CRON = "cron"
    WEBHOOK = "webhook"
    FEED = "feed"


class OutputMode(str, Enum):
    """Whether assistant text is auto-delivered."""
    RESPONSIVE = "responsive"
    SILENT = "silent"


@dataclass(frozen=True)
class NotifyTarget:
    channel: str
    chat_id: str
    account_id: str = "default"


@dataclass
class TriggerContext:
    """Context about what triggered the agent."""

    type: TriggerType
    output_mode: OutputMode = OutputMode.RESPONSIVE

    # Source info (for user messages)
    source_channel: str = ""
    source_chat_id: str = ""
    source_user_id: str = ""

    # Cron/job info
    job_id: str = ""
    job_name: str = ""

    # For jobs with explicit delivery targets
    notify_target: NotifyTarget | None = None

    @property
    def is_silent(self) -> bool:
        return self.output_mode == OutputMode.SILENT
