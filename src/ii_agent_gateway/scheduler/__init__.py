"""
Scheduled (cron / heartbeat) agent invocations.
"""

from .scheduler import HEARTBEAT_MESSAGE, JobScheduler, ScheduledJob

__all__ = ["HEARTBEAT_MESSAGE", "JobScheduler", "ScheduledJob"]
