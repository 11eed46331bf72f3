"""Queue worker that claims jobs and dispatches them to handlers."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, NamedTuple

from cognitive_hub.errors import ToolExecutionError
from cognitive_hub.jobs.failure_classifier import classify_failure
from cognitive_hub.jobs.models import JobView, QueueName
from cognitive_hub.jobs.queue import JobQueue
from cognitive_hub.jobs.signals import sleep_with_stop, stop_signal_handlers
from cognitive_hub.storage.common import utc_now

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobView], Mapping[str, Any] | None]
EventCallback = Callable[[dict[str, Any]], None]

WORKER_EVENTS = ("completed", "failed")


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.retried += other.retried
        self.idle_polls += other.idle_polls


class RetryOutcome(NamedTuple):
    retried: bool
    failed: bool


class QueueWorker:
    """Consumes one queue and runs each claimed job through its handler."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        queue: JobQueue,
        queue_name: QueueName | str,
        handler: JobHandler,
        worker_id: str,
        poll_interval_seconds: float = 2.0,
        concurrency: int = 1,
        retry_base_seconds: int = 30,
        retry_max_seconds: int = 900,
        graceful_shutdown_seconds: int = 30,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}.")
        self.queue = queue
        self.queue_name = QueueName(queue_name)
        self.handler = handler
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds
        self.concurrency = concurrency
        self.retry_base_seconds = retry_base_seconds
        self.retry_max_seconds = retry_max_seconds
        self.graceful_shutdown_seconds = graceful_shutdown_seconds
        self._random = random.Random()  # noqa: S311
        self._listeners: dict[str, list[EventCallback]] = {name: [] for name in WORKER_EVENTS}
        self._stop_requested = False

    def on(self, event: str, callback: EventCallback) -> None:
        """Subscribe to `completed` ({job_id}) or `failed` ({job_id, error}) events."""

        if event not in self._listeners:
            raise ValueError(f"Unknown worker event {event!r}; expected one of {WORKER_EVENTS}.")
        self._listeners[event].append(callback)

    def request_stop(self) -> None:
        self._request_stop(signal_name="api")

    def run_once(self) -> WorkerRunSummary:
        """Process at most one job from the queue."""

        summary = WorkerRunSummary()
        job = self._claim_job()
        if job is None:
            summary.idle_polls = 1
            return summary
        return self._process(job)

    def run_loop(
        self,
        *,
        max_jobs: int | None = None,
        max_idle_polls: int | None = None,
    ) -> WorkerRunSummary:
        """Run worker loop until stopped, idle or max_jobs reached.

        Args:
            max_jobs: Stop after processing this many jobs (None = unlimited).
            max_idle_polls: Exit after this many consecutive empty polls
                (None = keep polling until a stop signal).
        """

        with stop_signal_handlers(lambda name: self._request_stop(signal_name=name)):
            if self.concurrency == 1:
                return self._run_sequential(max_jobs=max_jobs, max_idle_polls=max_idle_polls)
            return self._run_pooled(max_jobs=max_jobs, max_idle_polls=max_idle_polls)

    def _run_sequential(
        self,
        *,
        max_jobs: int | None,
        max_idle_polls: int | None,
    ) -> WorkerRunSummary:
        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        while True:
            if self._stop_requested:
                return aggregate
            if max_jobs is not None and aggregate.processed >= max_jobs:
                return aggregate

            summary = self.run_once()
            aggregate.add(summary)

            if summary.processed == 0:
                consecutive_idle += 1
                if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                    return aggregate
                self._sleep_with_stop(self.poll_interval_seconds)
                continue
            consecutive_idle = 0

    def _run_pooled(  # noqa: C901
        self,
        *,
        max_jobs: int | None,
        max_idle_polls: int | None,
    ) -> WorkerRunSummary:
        aggregate = WorkerRunSummary()
        in_flight: set[Future[WorkerRunSummary]] = set()
        consecutive_idle = 0
        executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix=f"{self.queue_name.value}-worker",
        )

        def _collect_done() -> None:
            for future in [item for item in in_flight if item.done()]:
                in_flight.discard(future)
                aggregate.add(future.result())

        def _has_budget() -> bool:
            return max_jobs is None or aggregate.processed + len(in_flight) < max_jobs

        try:
            while True:
                _collect_done()
                if self._stop_requested:
                    break
                if not _has_budget() and not in_flight:
                    break

                claimed = 0
                while len(in_flight) < self.concurrency and _has_budget():
                    job = self._claim_job()
                    if job is None:
                        break
                    in_flight.add(executor.submit(self._process, job))
                    claimed += 1

                if claimed:
                    consecutive_idle = 0
                elif not in_flight:
                    aggregate.idle_polls += 1
                    consecutive_idle += 1
                    if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                        break
                    self._sleep_with_stop(self.poll_interval_seconds)
                    continue

                if in_flight:
                    wait(
                        in_flight,
                        timeout=max(self.poll_interval_seconds, 0.1),
                        return_when=FIRST_COMPLETED,
                    )
        finally:
            self._drain(in_flight, aggregate)
            executor.shutdown(wait=False, cancel_futures=True)
        return aggregate

    def _drain(
        self,
        in_flight: set[Future[WorkerRunSummary]],
        aggregate: WorkerRunSummary,
    ) -> None:
        if not in_flight:
            return
        logger.info(
            "Waiting up to %ss for %s in-flight job(s)",
            self.graceful_shutdown_seconds,
            len(in_flight),
        )
        done, pending = wait(in_flight, timeout=self.graceful_shutdown_seconds)
        for future in done:
            aggregate.add(future.result())
        if pending:
            logger.warning(
                "%s job(s) still running after graceful shutdown; their leases will expire",
                len(pending),
            )

    def _claim_job(self) -> JobView | None:
        if self._stop_requested:
            return None
        return self.queue.claim_next(self.queue_name, worker_id=self.worker_id)

    def _process(self, job: JobView) -> WorkerRunSummary:
        summary = WorkerRunSummary(processed=1)
        logger.debug(
            "Processing job %s (%s) attempt %s/%s",
            job.job_id,
            job.name,
            job.attempts,
            job.max_attempts,
        )
        try:
            result = self.handler(job)
        except Exception as error:  # noqa: BLE001
            outcome = self._handle_retry_or_fail(job=job, error=error)
            summary.retried = int(outcome.retried)
            summary.failed = int(outcome.failed)
            return summary

        acked = self.queue.complete(
            job_id=job.job_id,
            worker_id=self.worker_id,
            attempt=job.attempts,
            result=dict(result) if result is not None else None,
        )
        if not acked:
            logger.warning("Job %s lease was lost before completion; ack skipped", job.job_id)
            return summary
        summary.succeeded = 1
        logger.info("Job %s completed on %s", job.job_id, self.queue_name.value)
        self._emit("completed", {"job_id": job.job_id})
        return summary

    def _handle_retry_or_fail(self, *, job: JobView, error: Exception) -> RetryOutcome:
        classification = classify_failure(error)
        message = f"{type(error).__name__}: {error}"
        details = classification.to_event_details()
        if isinstance(error, ToolExecutionError):
            details["tool_error"] = error.to_details()

        retries_left = job.attempts < job.max_attempts
        if retries_left and classification.retryable:
            delay_seconds = self._compute_retry_delay(retry_number=job.attempts)
            retried = self.queue.schedule_retry(
                job_id=job.job_id,
                worker_id=self.worker_id,
                attempt=job.attempts,
                run_after=utc_now() + timedelta(seconds=delay_seconds),
                failure_kind=classification.kind,
                error=message,
                details=details,
            )
            outcome = RetryOutcome(retried=retried, failed=False)
            logger.warning(
                "Job %s failed on attempt %s/%s (%s); retry in %.1fs",
                job.job_id,
                job.attempts,
                job.max_attempts,
                classification.kind.value,
                delay_seconds,
            )
        else:
            failed = self.queue.fail(
                job_id=job.job_id,
                worker_id=self.worker_id,
                attempt=job.attempts,
                failure_kind=classification.kind,
                error=message,
                details=details,
            )
            outcome = RetryOutcome(retried=False, failed=failed)
            logger.error(
                "Job %s moved to dead after attempt %s/%s (%s): %s",
                job.job_id,
                job.attempts,
                job.max_attempts,
                classification.kind.value,
                message,
            )
        self._emit("failed", {"job_id": job.job_id, "error": message})
        return outcome

    def _compute_retry_delay(self, *, retry_number: int) -> float:
        max_delay = min(
            self.retry_max_seconds,
            self.retry_base_seconds * (2 ** max(retry_number - 1, 0)),
        )
        return self._random.uniform(0, max_delay)

    def _emit(self, event: str, data: dict[str, Any]) -> None:
        for callback in self._listeners[event]:
            try:
                callback(data)
            except Exception:  # noqa: BLE001
                logger.exception("Worker %s listener failed for job %s", event, data["job_id"])

    def _sleep_with_stop(self, seconds: float) -> None:
        sleep_with_stop(seconds, lambda: self._stop_requested)

    def _request_stop(self, *, signal_name: str) -> None:
        if not self._stop_requested:
            logger.info("Worker %s stopping (%s)", self.worker_id, signal_name)
        self._stop_requested = True
