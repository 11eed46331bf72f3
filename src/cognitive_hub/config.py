"""Runtime configuration for queue, workers, scheduler, and agents."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path

from croniter import croniter

DEFAULT_INSIGHT_CRON = "0 2 * * *"
DEFAULT_EMBEDDING_CHECK_CRON = "0 3 * * 0"


@dataclass(slots=True)
class QueueSettings:
    """Durable queue and retry policy settings."""

    default_max_attempts: int = 3
    lease_seconds: int = 300
    retry_base_seconds: int = 30
    retry_max_seconds: int = 900
    busy_timeout_ms: int = 5_000
    completed_retention_days: int = 7


@dataclass(slots=True)
class WorkerSettings:
    """Worker process settings."""

    worker_id: str = field(default_factory=lambda: f"{socket.gethostname()}-{os.getpid()}")
    poll_interval_seconds: float = 2.0
    concurrency: int = 1
    graceful_shutdown_seconds: int = 30


@dataclass(slots=True)
class SchedulerSettings:
    """Recurring job rules."""

    insight_cron: str = DEFAULT_INSIGHT_CRON
    embedding_check_cron: str = DEFAULT_EMBEDDING_CHECK_CRON
    tick_seconds: float = 30.0


@dataclass(slots=True)
class AgentSettings:
    """Agent and built-in tool settings."""

    region: str = "us"
    embedding_model_id: str = "hash-embed-v1"
    embedding_dimensions: int = 32
    default_max_results: int = 10
    chunk_max_chars: int = 400


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    db_path: Path = Path(".cognitive_hub.db")
    queue: QueueSettings = field(default_factory=QueueSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    agents: AgentSettings = field(default_factory=AgentSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        worker_defaults = WorkerSettings()
        return cls(
            db_path=db_path or Path(os.getenv("COGNITIVE_HUB_DB_PATH", ".cognitive_hub.db")),
            queue=QueueSettings(
                default_max_attempts=int(os.getenv("COGNITIVE_HUB_QUEUE_MAX_ATTEMPTS", "3")),
                lease_seconds=int(os.getenv("COGNITIVE_HUB_QUEUE_LEASE_SECONDS", "300")),
                retry_base_seconds=int(os.getenv("COGNITIVE_HUB_QUEUE_RETRY_BASE_SECONDS", "30")),
                retry_max_seconds=int(os.getenv("COGNITIVE_HUB_QUEUE_RETRY_MAX_SECONDS", "900")),
                busy_timeout_ms=int(os.getenv("COGNITIVE_HUB_SQLITE_BUSY_TIMEOUT_MS", "5000")),
                completed_retention_days=int(
                    os.getenv("COGNITIVE_HUB_QUEUE_COMPLETED_RETENTION_DAYS", "7"),
                ),
            ),
            worker=WorkerSettings(
                worker_id=os.getenv("COGNITIVE_HUB_WORKER_ID", worker_defaults.worker_id),
                poll_interval_seconds=float(
                    os.getenv("COGNITIVE_HUB_WORKER_POLL_INTERVAL_SECONDS", "2.0"),
                ),
                concurrency=int(os.getenv("COGNITIVE_HUB_WORKER_CONCURRENCY", "1")),
                graceful_shutdown_seconds=int(
                    os.getenv("COGNITIVE_HUB_WORKER_GRACEFUL_SHUTDOWN_SECONDS", "30"),
                ),
            ),
            scheduler=SchedulerSettings(
                insight_cron=os.getenv(
                    "COGNITIVE_HUB_SCHEDULER_INSIGHT_CRON",
                    DEFAULT_INSIGHT_CRON,
                ),
                embedding_check_cron=os.getenv(
                    "COGNITIVE_HUB_SCHEDULER_EMBEDDING_CHECK_CRON",
                    DEFAULT_EMBEDDING_CHECK_CRON,
                ),
                tick_seconds=float(os.getenv("COGNITIVE_HUB_SCHEDULER_TICK_SECONDS", "30")),
            ),
            agents=AgentSettings(
                region=os.getenv("COGNITIVE_HUB_REGION", "us"),
                embedding_model_id=os.getenv("COGNITIVE_HUB_EMBEDDING_MODEL_ID", "hash-embed-v1"),
                embedding_dimensions=int(os.getenv("COGNITIVE_HUB_EMBEDDING_DIMENSIONS", "32")),
                default_max_results=int(os.getenv("COGNITIVE_HUB_DEFAULT_MAX_RESULTS", "10")),
                chunk_max_chars=int(os.getenv("COGNITIVE_HUB_CHUNK_MAX_CHARS", "400")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any setting is out of range."""

        if self.queue.default_max_attempts < 1:
            raise ValueError("COGNITIVE_HUB_QUEUE_MAX_ATTEMPTS must be >= 1.")
        if self.queue.lease_seconds <= 0:
            raise ValueError("COGNITIVE_HUB_QUEUE_LEASE_SECONDS must be > 0.")
        if self.queue.retry_base_seconds < 0 or self.queue.retry_max_seconds < 0:
            raise ValueError("Retry backoff seconds must be >= 0.")
        if self.queue.completed_retention_days < 0:
            raise ValueError("COGNITIVE_HUB_QUEUE_COMPLETED_RETENTION_DAYS must be >= 0.")
        if self.worker.concurrency < 1:
            raise ValueError("COGNITIVE_HUB_WORKER_CONCURRENCY must be >= 1.")
        if self.worker.poll_interval_seconds < 0:
            raise ValueError("COGNITIVE_HUB_WORKER_POLL_INTERVAL_SECONDS must be >= 0.")
        if self.scheduler.tick_seconds <= 0:
            raise ValueError("COGNITIVE_HUB_SCHEDULER_TICK_SECONDS must be > 0.")
        for name, expression in (
            ("COGNITIVE_HUB_SCHEDULER_INSIGHT_CRON", self.scheduler.insight_cron),
            ("COGNITIVE_HUB_SCHEDULER_EMBEDDING_CHECK_CRON", self.scheduler.embedding_check_cron),
        ):
            validate_cron(name, expression)
        if self.agents.region not in {"us", "cn"}:
            raise ValueError(
                f"Invalid COGNITIVE_HUB_REGION: {self.agents.region!r}. Expected 'us' or 'cn'.",
            )
        if self.agents.embedding_dimensions <= 0:
            raise ValueError("COGNITIVE_HUB_EMBEDDING_DIMENSIONS must be a positive integer.")
        if self.agents.default_max_results <= 0:
            raise ValueError("COGNITIVE_HUB_DEFAULT_MAX_RESULTS must be a positive integer.")
        if self.agents.chunk_max_chars <= 0:
            raise ValueError("COGNITIVE_HUB_CHUNK_MAX_CHARS must be a positive integer.")


def validate_cron(name: str, expression: str) -> None:
    if len(expression.split()) != 5 or not croniter.is_valid(expression):
        raise ValueError(
            f"Invalid {name}: {expression!r}. Expected five-field cron syntax.",
        )
