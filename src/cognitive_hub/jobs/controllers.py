"""Controllers for job queue, worker, scheduler and tool CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from cognitive_hub.config import Settings
from cognitive_hub.errors import PayloadValidationError
from cognitive_hub.jobs.handlers import build_handlers
from cognitive_hub.jobs.models import EnqueueOptions, JobState, QueueName
from cognitive_hub.jobs.queue import JobQueue
from cognitive_hub.jobs.scheduler import Scheduler, default_rules
from cognitive_hub.jobs.worker import QueueWorker
from cognitive_hub.storage.common import utc_now
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools import build_default_registry


@dataclass(slots=True)
class JobsEnqueueCommand:
    """CLI input for job enqueue."""

    db_path: Path | None
    queue: str
    payload_json: str
    name: str | None = None
    delay_seconds: float = 0
    max_attempts: int | None = None
    repeat: str | None = None
    dedup_key: str | None = None


@dataclass(slots=True)
class JobsListCommand:
    """CLI input for job listing."""

    db_path: Path | None
    queue: str | None
    state: str | None
    limit: int


@dataclass(slots=True)
class JobCommand:
    """CLI input for inspect/retry operations on one job."""

    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class JobsPruneCommand:
    """CLI input for completed-job pruning; `days=None` uses the configured retention."""

    db_path: Path | None
    days: int | None


@dataclass(slots=True)
class JobsStatsCommand:
    db_path: Path | None


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    queue: str
    once: bool
    max_jobs: int | None = None
    concurrency: int | None = None
    max_idle_polls: int | None = None


@dataclass(slots=True)
class SchedulerCommand:
    """CLI input for scheduler execution."""

    db_path: Path | None
    once: bool
    max_ticks: int | None = None


@dataclass(slots=True)
class ToolsCommand:
    db_path: Path | None
    capability: str | None = None
    category: str | None = None


class JobsCliController:
    """Coordinates queue, worker, scheduler and inspection CLI operations."""

    def enqueue(self, command: JobsEnqueueCommand) -> list[str]:
        settings = _settings(command.db_path)
        payload = _parse_payload_json(command.payload_json)
        with _queue(settings) as queue:
            job_id = queue.enqueue(
                command.queue,
                payload,
                EnqueueOptions(
                    name=command.name,
                    delay_seconds=command.delay_seconds,
                    max_attempts=command.max_attempts,
                    repeat=command.repeat,
                    dedup_key=command.dedup_key,
                ),
            )
            job = queue.get_job(job_id)

        lines = [f"Job enqueued: job_id={job_id} queue={command.queue}"]
        if job is not None:
            lines.append(
                f"  name={job.name} state={job.state.value} "
                f"max_attempts={job.max_attempts} run_after={job.run_after.isoformat()}",
            )
        return lines

    def list_jobs(self, command: JobsListCommand) -> list[str]:
        settings = _settings(command.db_path)
        state = JobState(command.state.strip().lower()) if command.state else None
        with _queue(settings) as queue:
            jobs = queue.list_jobs(queue=command.queue, state=state, limit=command.limit)

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.job_id} queue={job.queue.value} name={job.name} "
                f"state={job.state.value} attempts={job.attempts}/{job.max_attempts} "
                f"run_after={job.run_after.isoformat()}",
            )
        return lines

    def inspect_job(self, command: JobCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _queue(settings) as queue:
            details = queue.get_job_details(command.job_id)
        if details is None:
            return [f"Job not found: {command.job_id}"]

        job = details.job
        lines = [
            f"Job: {job.job_id}",
            f"Queue: {job.queue.value}",
            f"Name: {job.name}",
            f"State: {job.state.value}",
            f"Attempts: {job.attempts}/{job.max_attempts}",
            f"Payload: {json.dumps(job.payload, ensure_ascii=False, sort_keys=True)}",
            f"Dedup key: {job.dedup_key or '-'}",
            f"Schedule: {job.schedule_id or '-'}",
            f"Worker: {job.worker_id or '-'}",
            f"Failure kind: {job.failure_kind.value if job.failure_kind else '-'}",
            f"Error: {job.last_error or '-'}",
            "Result: "
            + (json.dumps(job.result, ensure_ascii=False, sort_keys=True) if job.result else "-"),
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.state_from.value if event.state_from else '-'} -> "
                f"{event.state_to.value if event.state_to else '-'}",
            )
        return lines

    def retry_job(self, command: JobCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _queue(settings) as queue:
            queue.retry_dead(command.job_id)
        return [f"Job re-queued: {command.job_id}"]

    def prune(self, command: JobsPruneCommand) -> list[str]:
        settings = _settings(command.db_path)
        days = (
            command.days
            if command.days is not None
            else settings.queue.completed_retention_days
        )
        cutoff = utc_now() - timedelta(days=days)
        with _queue(settings) as queue:
            purged = queue.purge_completed(older_than=cutoff)
        return [f"Pruned completed jobs: {purged} (finished before {cutoff.isoformat()})"]

    def stats(self, command: JobsStatsCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _queue(settings) as queue:
            counts = queue.count_by_state()
            schedules = queue.list_schedules()

        lines = ["Queue states:"]
        for queue_name, by_state in counts.items():
            rendered = " ".join(f"{state.value}={count}" for state, count in by_state.items())
            lines.append(f"  {queue_name.value}: {rendered}")
        lines.append(f"Repeat schedules: {len(schedules)}")
        for schedule in schedules:
            lines.append(
                f"  {schedule.schedule_id} queue={schedule.queue.value} "
                f"name={schedule.name} cron={schedule.cron!r}",
            )
        return lines

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = _settings(command.db_path)
        queue_name = QueueName(command.queue)
        with _queue(settings) as queue, _store(settings) as store:
            registry = build_default_registry(store, settings.agents)
            handlers = build_handlers(
                queue=queue,
                store=store,
                registry=registry,
                settings=settings.agents,
            )
            worker = QueueWorker(
                queue=queue,
                queue_name=queue_name,
                handler=handlers[queue_name],
                worker_id=settings.worker.worker_id,
                poll_interval_seconds=settings.worker.poll_interval_seconds,
                concurrency=command.concurrency or settings.worker.concurrency,
                retry_base_seconds=settings.queue.retry_base_seconds,
                retry_max_seconds=settings.queue.retry_max_seconds,
                graceful_shutdown_seconds=settings.worker.graceful_shutdown_seconds,
            )
            summary = (
                worker.run_once()
                if command.once
                else worker.run_loop(
                    max_jobs=command.max_jobs,
                    max_idle_polls=command.max_idle_polls,
                )
            )

        return [
            f"Worker summary ({queue_name.value}): "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} retried={summary.retried} "
            f"idle_polls={summary.idle_polls}",
        ]

    def run_scheduler(self, command: SchedulerCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _queue(settings) as queue:
            scheduler = Scheduler(
                queue,
                default_rules(settings.scheduler),
                tick_seconds=settings.scheduler.tick_seconds,
            )
            if command.once:
                enqueued = len(scheduler.tick())
            else:
                enqueued = scheduler.run(max_ticks=command.max_ticks)
        return [f"Scheduler enqueued {enqueued} job(s)"]

    def list_tools(self, command: ToolsCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _store(settings, migrate=False) as store:
            registry = build_default_registry(store, settings.agents)
            if command.capability or command.category:
                tools = registry.find_tools(
                    capability=command.capability,
                    category=command.category,
                )
                manifests = [tool.manifest for tool in tools]
            else:
                manifests = list(registry.get_all_tool_manifests_for_llm())

        lines = [f"Tools: {len(manifests)}"]
        for manifest in manifests:
            lines.append(
                f"  {manifest.name} v{manifest.version} "
                f"capabilities={','.join(sorted(manifest.capabilities))} "
                f"categories={','.join(manifest.categories)} - {manifest.description}",
            )
        return lines


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _parse_payload_json(raw: str) -> dict[str, object]:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise PayloadValidationError(f"--payload is not valid JSON: {error}") from error
    if not isinstance(payload, dict):
        raise PayloadValidationError("--payload must be a JSON object.")
    return payload


@contextmanager
def _queue(settings: Settings) -> Iterator[JobQueue]:
    queue = JobQueue(settings.db_path, settings=settings.queue)
    queue.init_schema()
    try:
        yield queue
    finally:
        queue.close()


@contextmanager
def _store(settings: Settings, *, migrate: bool = True) -> Iterator[ContentStore]:
    store = ContentStore(settings.db_path, busy_timeout_ms=settings.queue.busy_timeout_ms)
    if migrate:
        store.init_schema()
    try:
        yield store
    finally:
        store.close()
