"""
Scheduler - cron jobs and heartbeats that invoke agents proactively.

Supports:
- Cron expressions for recurring jobs
- Heartbeats on a fixed interval
- Delivery of replies to an explicit notify target, or for heartbeats to
  the chat the agent last talked in
- Persistence of jobs to disk
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from croniter import croniter

from ..agent.triggers import NotifyTarget, OutputMode, TriggerContext, TriggerType
from ..config import Settings, get_settings

if TYPE_CHECKING:
    from ..gateway import Gateway

logger = logging.getLogger(__name__)

HEARTBEAT_MESSAGE = """[Heartbeat] This is a scheduled check-in, not a user message.
Review your memory and pending tasks. If there is something worth telling the user,
use your messaging tools to reach them; otherwise do nothing."""


@dataclass
class ScheduledJob:
    """A scheduled invocation of one agent."""
    id: str
    name: str
    agent_id: str
    message: str
    cron_expression: str
    trigger_type: TriggerType = TriggerType.CRON
    output_mode: OutputMode = OutputMode.RESPONSIVE
    notify_target: Optional[NotifyTarget] = None
    enabled: bool = True
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    def __post_init__(self):
        if not self.next_run:
            self.next_run = self._calculate_next_run()

    def _calculate_next_run(self) -> Optional[datetime]:
        """Calculate the next run time based on the cron expression."""
        try:
            return croniter(self.cron_expression, datetime.now()).get_next(datetime)
        except (ValueError, KeyError) as e:
            logger.error(f"Invalid cron expression for {self.name}: {e}")
            return None

    def should_run(self, now: Optional[datetime] = None) -> bool:
        """Check if the job is due."""
        if not self.enabled or not self.next_run:
            return False
        return (now or datetime.now()) >= self.next_run

    def mark_completed(self):
        """Record a run and schedule the next one."""
        self.last_run = datetime.now()
        self.next_run = self._calculate_next_run()

    def trigger_context(self) -> TriggerContext:
        return TriggerContext(
            type=self.trigger_type,
            output_mode=self.output_mode,
            job_id=self.id,
            job_name=self.name,
            notify_target=self.notify_target,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for persistence."""
        target = self.notify_target
        return {
            "id": self.id,
            "name": self.name,
            "agent_id": self.agent_id,
            "message": self.message,
            "cron_expression": self.cron_expression,
            "trigger_type": self.trigger_type.value,
            "output_mode": self.output_mode.value,
            "notify_target": (
                {"channel": target.channel, "chat_id": target.chat_id, "account_id": target.account_id}
                if target else None
            ),
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduledJob":
        """Create from dictionary."""
        target = data.get("notify_target")
        return cls(
            id=data["id"],
            name=data["name"],
            agent_id=data["agent_id"],
            message=data["message"],
            cron_expression=data["cron_expression"],
            trigger_type=TriggerType(data.get("trigger_type", "cron")),
            output_mode=OutputMode(data.get("output_mode", "responsive")),
            notify_target=NotifyTarget(**target) if target else None,
            enabled=data.get("enabled", True),
            last_run=datetime.fromisoformat(data["last_run"]) if data.get("last_run") else None,
        )


class JobScheduler:
    """
    Runs scheduled jobs against the gateway's agents.

    Each due job is sent to its agent with send_to_agent, so it queues
    behind (and never overlaps) the agent's chat messages. Due jobs run as
    separate tasks, so a busy agent only delays its own jobs.
    """

    def __init__(
        self,
        gateway: "Gateway",
        settings: Optional[Settings] = None,
        poll_interval: float = 30.0,
    ):
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.poll_interval = poll_interval
        self.jobs_file = Path(self.settings.data_dir).expanduser() / "jobs.json"
        self.jobs: dict[str, ScheduledJob] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._job_tasks: dict[str, asyncio.Task] = {}

        self._load_jobs()

    def _load_jobs(self):
        """Load jobs from disk."""
        if not self.jobs_file.exists():
            return
        try:
            data = json.loads(self.jobs_file.read_text())
            for job_data in data.get("jobs", []):
                job = ScheduledJob.from_dict(job_data)
                self.jobs[job.id] = job
            logger.info(f"Loaded {len(self.jobs)} scheduled jobs")
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Error loading jobs: {e}")

    def _save_jobs(self):
        """Save jobs to disk."""
        try:
            self.jobs_file.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "jobs": [job.to_dict() for job in self.jobs.values()],
                "updated_at": datetime.now().isoformat(),
            }
            self.jobs_file.write_text(json.dumps(data, indent=2))
        except OSError as e:
            logger.error(f"Error saving jobs: {e}")

    def add_job(
        self,
        name: str,
        agent_id: str,
        message: str,
        cron_expression: str,
        notify_target: Optional[NotifyTarget] = None,
    ) -> ScheduledJob:
        """Add a recurring cron job."""
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression}")
        job = ScheduledJob(
            id=str(uuid.uuid4())[:8],
            name=name,
            agent_id=agent_id,
            message=message,
            cron_expression=cron_expression,
            notify_target=notify_target,
        )
        self.jobs[job.id] = job
        self._save_jobs()
        logger.info(f"Added cron job: {name} ({cron_expression}) -> {agent_id}")
        return job

    def add_heartbeat(
        self,
        agent_id: str,
        interval_minutes: Optional[int] = None,
        message: str = HEARTBEAT_MESSAGE,
    ) -> ScheduledJob:
        """Add (or replace) the heartbeat of an agent. Heartbeats are silent."""
        minutes = interval_minutes or self.settings.heartbeat_interval_minutes
        if minutes < 60:
            cron_expr = f"*/{minutes} * * * *"
        else:
            cron_expr = f"0 */{max(1, minutes // 60)} * * *"

        job = ScheduledJob(
            id=f"heartbeat-{agent_id}",
            name=f"Heartbeat ({agent_id})",
            agent_id=agent_id,
            message=message,
            cron_expression=cron_expr,
            trigger_type=TriggerType.HEARTBEAT,
            output_mode=OutputMode.SILENT,
        )
        self.jobs[job.id] = job
        self._save_jobs()
        logger.info(f"Added heartbeat for {agent_id} every {minutes} minutes")
        return job

    def remove_job(self, job_id: str) -> bool:
        """Remove a job by ID."""
        if job_id in self.jobs:
            del self.jobs[job_id]
            self._save_jobs()
            logger.info(f"Removed job: {job_id}")
            return True
        return False

    def list_jobs(self, enabled_only: bool = False) -> list[ScheduledJob]:
        """List jobs, soonest first."""
        jobs = list(self.jobs.values())
        if enabled_only:
            jobs = [j for j in jobs if j.enabled]
        return sorted(jobs, key=lambda j: j.next_run or datetime.max)

    def get_due_jobs(self, now: Optional[datetime] = None) -> list[ScheduledJob]:
        """Get all jobs that are due to run."""
        return [job for job in self.jobs.values() if job.should_run(now)]

    async def run_job(self, job: ScheduledJob) -> Optional[str]:
        """Send a job to its agent and deliver the reply where appropriate."""
        agent = self.gateway.agent_manager.get_agent(job.agent_id)
        if agent is None:
            logger.error(f"Job {job.name} targets unknown agent {job.agent_id}")
            return None

        context = job.trigger_context()
        response = await agent.send_to_agent(job.message, context)

        if context.is_silent or not response.strip():
            return response

        target = self._delivery_target(job, agent.last_message_target)
        if target is None:
            logger.warning(f"No delivery target for job {job.name}; reply dropped")
            return response

        await self.gateway.deliver(target.channel, target.chat_id, response, target.account_id)
        return response

    @staticmethod
    def _delivery_target(job: ScheduledJob, last_target: Any) -> Optional[NotifyTarget]:
        if job.notify_target is not None:
            return job.notify_target
        if job.trigger_type == TriggerType.HEARTBEAT and last_target is not None:
            return NotifyTarget(
                channel=last_target.channel,
                chat_id=last_target.chat_id,
                account_id=last_target.account_id,
            )
        return None

    def run_due_jobs(self, now: Optional[datetime] = None) -> list[asyncio.Task]:
        """Start every due job in its own task and return the started tasks."""
        due = self.get_due_jobs(now)
        started = []
        for job in due:
            job.mark_completed()
            if job.id in self._job_tasks:
                logger.warning(f"Job {job.name} is still running; skipping this run")
                continue
            logger.info(f"Running scheduled job: {job.name}")
            task = asyncio.create_task(self._execute(job))
            self._job_tasks[job.id] = task
            task.add_done_callback(lambda _, job_id=job.id: self._job_tasks.pop(job_id, None))
            started.append(task)
        if due:
            self._save_jobs()
        return started

    async def _execute(self, job: ScheduledJob) -> Optional[str]:
        try:
            return await self.run_job(job)
        except Exception as e:
            logger.error(f"Error running job {job.name}: {e}")
            return None

    async def _run_loop(self):
        """Main scheduler loop."""
        while self._running:
            try:
                self.run_due_jobs()
                await asyncio.sleep(self.poll_interval)

            except asyncio.CancelledError:
                break

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        if self.settings.enable_heartbeat:
            for agent_id in self.gateway.agent_manager.list_agent_ids():
                if f"heartbeat-{agent_id}" not in self.jobs:
                    self.add_heartbeat(agent_id)

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        self._running = False
        if self._task:
            self._task.cancel()
        for task in list(self._job_tasks.values()):
            task.cancel()
        logger.info("Scheduler stopped")
