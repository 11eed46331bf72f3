"""Domain models for the durable job queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class QueueName(str, Enum):
    """Closed set of queues served by this process family."""

    EMBEDDING = "embedding"
    INGESTION = "ingestion"
    INSIGHT = "insight"


class JobState(str, Enum):
    """Durable job lifecycle states."""

    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    DEAD = "dead"


class FailureKind(str, Enum):
    """Normalized failure classes used by retry policy."""

    VALIDATION = "validation"
    CAPABILITY = "capability"
    TOOL_TRANSIENT = "tool_transient"
    TOOL_PERMANENT = "tool_permanent"
    AGENT_ERROR = "agent_error"
    HANDLER_ERROR = "handler_error"
    LEASE_EXPIRED = "lease_expired"


@dataclass(slots=True)
class EnqueueOptions:
    """Optional enqueue settings; unset values fall back to queue defaults."""

    name: str | None = None
    delay_seconds: float = 0
    max_attempts: int | None = None
    repeat: str | None = None
    dedup_key: str | None = None
    job_id: str | None = None


@dataclass(slots=True)
class JobView:
    """Readable job view for CLI and worker logic."""

    job_id: str
    queue: QueueName
    name: str
    payload: dict[str, Any]
    state: JobState
    attempts: int
    max_attempts: int
    run_after: datetime
    enqueued_at: datetime
    updated_at: datetime
    lease_expires_at: datetime | None = None
    worker_id: str | None = None
    dedup_key: str | None = None
    schedule_id: str | None = None
    result: dict[str, Any] | None = None
    failure_kind: FailureKind | None = None
    last_error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


@dataclass(slots=True)
class JobEventView:
    """Job event entry for audit trail."""

    event_id: int
    job_id: str
    event_type: str
    state_from: JobState | None
    state_to: JobState | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class JobDetails:
    """Job details with event stream."""

    job: JobView
    events: list[JobEventView]


@dataclass(slots=True)
class ScheduleView:
    schedule_id: str
    queue: QueueName
    name: str
    cron: str
    payload: dict[str, Any]
    max_attempts: int
