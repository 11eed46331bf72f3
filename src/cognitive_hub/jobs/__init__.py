"""Durable job queue, workers and the cron scheduler."""

from cognitive_hub.jobs.models import (
    EnqueueOptions,
    FailureKind,
    JobDetails,
    JobEventView,
    JobState,
    JobView,
    QueueName,
)
from cognitive_hub.jobs.queue import JobQueue
from cognitive_hub.jobs.scheduler import CronRule, Scheduler, default_rules
from cognitive_hub.jobs.worker import QueueWorker, WorkerRunSummary

__all__ = [
    "CronRule",
    "EnqueueOptions",
    "FailureKind",
    "JobDetails",
    "JobEventView",
    "JobQueue",
    "JobState",
    "JobView",
    "QueueName",
    "QueueWorker",
    "Scheduler",
    "WorkerRunSummary",
    "default_rules",
]
