"""
Tests for the job scheduler.
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from ii_agent_gateway.agent.state import LastMessageTarget
from ii_agent_gateway.agent.triggers import NotifyTarget, OutputMode, TriggerType
from ii_agent_gateway.config import Settings
from ii_agent_gateway.scheduler.scheduler import HEARTBEAT_MESSAGE, JobScheduler, ScheduledJob


def make_gateway(reply="Daily report", last_target=None, agent_ids=("main",)):
    agent = MagicMock()
    agent.send_to_agent = AsyncMock(return_value=reply)
    agent.last_message_target = last_target

    gateway = MagicMock()
    gateway.agent_manager.get_agent.side_effect = lambda agent_id: agent if agent_id in agent_ids else None
    gateway.agent_manager.list_agent_ids.return_value = list(agent_ids)
    gateway.deliver = AsyncMock(return_value=True)
    return gateway, agent


def test_scheduled_job_next_run():
    """Test that a job computes its next run."""
    job = ScheduledJob(id="j1", name="Morning", agent_id="main", message="hi", cron_expression="0 9 * * *")

    assert job.next_run is not None
    assert job.next_run > datetime.now()
    assert not job.should_run()
    assert job.should_run(job.next_run + timedelta(seconds=1))


def test_disabled_job_never_runs():
    """Test that disabled jobs are not due."""
    job = ScheduledJob(
        id="j1", name="Off", agent_id="main", message="hi", cron_expression="* * * * *", enabled=False,
    )

    assert not job.should_run(datetime.now() + timedelta(days=1))


def test_add_job_rejects_invalid_cron(settings):
    """Test cron validation."""
    gateway, _ = make_gateway()
    scheduler = JobScheduler(gateway, settings=settings)

    with pytest.raises(ValueError):
        scheduler.add_job("Bad", "main", "hi", "not a cron")


def test_add_heartbeat(settings):
    """Test heartbeat cron expressions and silence."""
    gateway, _ = make_gateway()
    scheduler = JobScheduler(gateway, settings=settings)

    short = scheduler.add_heartbeat("main", 30)
    assert short.id == "heartbeat-main"
    assert short.cron_expression == "*/30 * * * *"
    assert short.trigger_type == TriggerType.HEARTBEAT
    assert short.output_mode == OutputMode.SILENT
    assert short.message == HEARTBEAT_MESSAGE

    long = scheduler.add_heartbeat("main", 120)
    assert long.cron_expression == "0 */2 * * *"
    assert len(scheduler.jobs) == 1


def test_jobs_persist(settings):
    """Test that jobs are saved and loaded."""
    gateway, _ = make_gateway()
    scheduler = JobScheduler(gateway, settings=settings)
    job = scheduler.add_job(
        "Standup", "main", "Summarize my day", "0 17 * * 1-5",
        notify_target=NotifyTarget(channel="slack", chat_id="C1", account_id="work"),
    )

    reloaded = JobScheduler(gateway, settings=settings)

    assert reloaded.jobs[job.id].name == "Standup"
    assert reloaded.jobs[job.id].notify_target == NotifyTarget(channel="slack", chat_id="C1", account_id="work")
    assert reloaded.remove_job(job.id)
    assert not reloaded.remove_job(job.id)


def test_list_and_due_jobs(settings):
    """Test listing and due detection."""
    gateway, _ = make_gateway()
    scheduler = JobScheduler(gateway, settings=settings)
    job = scheduler.add_job("Every minute", "main", "tick", "* * * * *")

    assert scheduler.list_jobs() == [job]
    assert scheduler.get_due_jobs() == []
    assert scheduler.get_due_jobs(job.next_run) == [job]


@pytest.mark.asyncio
async def test_run_job_delivers_to_notify_target(settings):
    """Test that a responsive job's reply goes to its target."""
    gateway, agent = make_gateway()
    scheduler = JobScheduler(gateway, settings=settings)
    job = scheduler.add_job(
        "Report", "main", "Send the report", "0 9 * * *",
        notify_target=NotifyTarget(channel="telegram", chat_id="chat-9"),
    )

    response = await scheduler.run_job(job)

    assert response == "Daily report"
    context = agent.send_to_agent.await_args.args[1]
    assert context.type == TriggerType.CRON
    assert context.job_id == job.id
    gateway.deliver.assert_awaited_once_with("telegram", "chat-9", "Daily report", "default")


@pytest.mark.asyncio
async def test_silent_heartbeat_is_not_delivered(settings):
    """Test that heartbeat replies are not auto-delivered."""
    gateway, agent = make_gateway(last_target=LastMessageTarget(channel="telegram", chat_id="42"))
    scheduler = JobScheduler(gateway, settings=settings)

    await scheduler.run_job(scheduler.add_heartbeat("main", 30))

    agent.send_to_agent.assert_awaited_once()
    gateway.deliver.assert_not_awaited()


@pytest.mark.asyncio
async def test_responsive_heartbeat_goes_to_last_chat(settings):
    """Test that a responsive heartbeat replies where the agent was last used."""
    gateway, _ = make_gateway(reply="Still here", last_target=LastMessageTarget(channel="telegram", chat_id="42"))
    scheduler = JobScheduler(gateway, settings=settings)
    job = scheduler.add_heartbeat("main", 30)
    job.output_mode = OutputMode.RESPONSIVE

    await scheduler.run_job(job)

    gateway.deliver.assert_awaited_once_with("telegram", "42", "Still here", "default")


@pytest.mark.asyncio
async def test_responsive_heartbeat_uses_last_account(settings):
    """Test that a heartbeat reply goes out on the account the chat came in on."""
    gateway, _ = make_gateway(
        reply="Still here",
        last_target=LastMessageTarget(channel="telegram", chat_id="42", account_id="work"),
    )
    scheduler = JobScheduler(gateway, settings=settings)
    job = scheduler.add_heartbeat("main", 30)
    job.output_mode = OutputMode.RESPONSIVE

    await scheduler.run_job(job)

    gateway.deliver.assert_awaited_once_with("telegram", "42", "Still here", "work")


@pytest.mark.asyncio
async def test_busy_agent_does_not_delay_other_jobs(settings):
    """Test that due jobs run side by side, so one busy agent holds up only its own job."""
    release = asyncio.Event()

    async def slow_send(text, context):
        await release.wait()
        return "late"

    busy = MagicMock(last_message_target=None)
    busy.send_to_agent = AsyncMock(side_effect=slow_send)
    idle = MagicMock(last_message_target=None)
    idle.send_to_agent = AsyncMock(return_value="on time")
    agents = {"busy": busy, "idle": idle}

    gateway = MagicMock()
    gateway.agent_manager.get_agent.side_effect = agents.get
    gateway.deliver = AsyncMock(return_value=True)
    scheduler = JobScheduler(gateway, settings=settings)
    target = NotifyTarget(channel="telegram", chat_id="42")
    slow = scheduler.add_job("Slow", "busy", "hi", "* * * * *", notify_target=target)
    fast = scheduler.add_job("Fast", "idle", "hi", "* * * * *", notify_target=target)

    slow_task, fast_task = scheduler.run_due_jobs(max(slow.next_run, fast.next_run))
    assert await asyncio.wait_for(fast_task, 1.0) == "on time"
    assert not slow_task.done()

    # the slow job is still running, so only the fast one starts again
    again = scheduler.run_due_jobs(max(slow.next_run, fast.next_run))
    assert len(again) == 1
    await asyncio.wait_for(again[0], 1.0)

    release.set()
    assert await asyncio.wait_for(slow_task, 1.0) == "late"
    assert gateway.deliver.await_count == 3
    gateway.deliver.assert_awaited_with("telegram", "42", "late", "default")


@pytest.mark.asyncio
async def test_failing_job_is_logged_and_rescheduled(settings):
    """Test that an agent error is contained and the job stays scheduled."""
    gateway, agent = make_gateway()
    agent.send_to_agent.side_effect = RuntimeError("agent offline")
    scheduler = JobScheduler(gateway, settings=settings)
    job = scheduler.add_job("Report", "main", "hi", "* * * * *")

    (task,) = scheduler.run_due_jobs(job.next_run)

    assert await task is None
    assert job.last_run is not None
    assert job.next_run is not None
    gateway.deliver.assert_not_awaited()


@pytest.mark.asyncio
async def test_job_without_target_is_not_delivered(settings):
    """Test that a cron reply with nowhere to go is dropped."""
    gateway, _ = make_gateway()
    scheduler = JobScheduler(gateway, settings=settings)

    await scheduler.run_job(scheduler.add_job("Note", "main", "hi", "0 9 * * *"))

    gateway.deliver.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_job_unknown_agent(settings):
    """Test that jobs for unknown agents are skipped."""
    gateway, _ = make_gateway()
    scheduler = JobScheduler(gateway, settings=settings)

    assert await scheduler.run_job(scheduler.add_job("Lost", "ghost", "hi", "0 9 * * *")) is None


@pytest.mark.asyncio
async def test_start_adds_heartbeats(tmp_path):
    """Test that enabling heartbeats schedules one per agent."""
    settings = Settings(_env_file=None, data_dir=str(tmp_path), enable_heartbeat=True)
    gateway, _ = make_gateway(agent_ids=("main", "work"))
    scheduler = JobScheduler(gateway, settings=settings, poll_interval=60)

    scheduler.start()
    scheduler.stop()

    assert set(scheduler.jobs) == {"heartbeat-main", "heartbeat-work"}
