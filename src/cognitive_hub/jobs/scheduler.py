"""Cron-driven producer of recurring maintenance jobs."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from croniter import croniter

from cognitive_hub.agents.embedding import MODEL_UPDATE_CHECK
from cognitive_hub.config import SchedulerSettings, validate_cron
from cognitive_hub.jobs.contracts import DAILY_INSIGHTS
from cognitive_hub.jobs.models import EnqueueOptions, QueueName
from cognitive_hub.jobs.queue import JobQueue
from cognitive_hub.jobs.signals import sleep_with_stop, stop_signal_handlers
from cognitive_hub.storage.common import to_utc_aware_datetime, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CronRule:
    """Enqueue `{type: job_name, timestamp}` on `queue` at every `cron` fire time."""

    name: str
    cron: str
    queue: QueueName
    job_name: str

    def fire_times(self, *, after: datetime, until: datetime) -> list[datetime]:
        """Fire times in the half-open window `(after, until]`."""

        iterator = croniter(self.cron, after)
        fires: list[datetime] = []
        while True:
            fire_at = iterator.get_next(datetime)
            if fire_at > until:
                return fires
            fires.append(fire_at)


def default_rules(settings: SchedulerSettings | None = None) -> list[CronRule]:
    settings = settings or SchedulerSettings()
    return [
        CronRule(
            name=DAILY_INSIGHTS,
            cron=settings.insight_cron,
            queue=QueueName.INSIGHT,
            job_name=DAILY_INSIGHTS,
        ),
        CronRule(
            name=MODEL_UPDATE_CHECK,
            cron=settings.embedding_check_cron,
            queue=QueueName.EMBEDDING,
            job_name=MODEL_UPDATE_CHECK,
        ),
    ]


class Scheduler:
    """Stateless apart from the last tick; replicas are safe to run side by side.

    Each fire time is enqueued with `dedup_key=f"{rule}@{fire_time}"`, so two
    schedulers observing the same trigger produce a single job.
    """

    def __init__(
        self,
        queue: JobQueue,
        rules: Sequence[CronRule],
        *,
        clock: Callable[[], datetime] = utc_now,
        tick_seconds: float = 30.0,
    ) -> None:
        names = [rule.name for rule in rules]
        if len(names) != len(set(names)):
            raise ValueError(f"Scheduler rule names must be unique, got {names}.")
        for rule in rules:
            validate_cron(f"cron for rule {rule.name!r}", rule.cron)
        if tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be > 0, got {tick_seconds}.")
        self.queue = queue
        self.rules = list(rules)
        self.tick_seconds = tick_seconds
        self._clock = clock
        self._last_tick: datetime | None = None
        self._stop_requested = False

    def tick(self, now: datetime | None = None) -> list[str]:
        """Enqueue every fire time since the previous tick; return the job ids.

        The first tick looks back one `tick_seconds` interval so a trigger that
        fell just before start-up is not lost.
        """

        now = to_utc_aware_datetime(now or self._clock())
        after = self._last_tick or now - timedelta(seconds=self.tick_seconds)
        job_ids: list[str] = []
        for rule in self.rules:
            for fire_at in rule.fire_times(after=after, until=now):
                timestamp = fire_at.isoformat()
                job_id = self.queue.enqueue(
                    rule.queue,
                    {"type": rule.job_name, "timestamp": timestamp},
                    EnqueueOptions(name=rule.job_name, dedup_key=f"{rule.name}@{timestamp}"),
                )
                logger.info("Rule %s fired at %s -> job %s", rule.name, timestamp, job_id)
                job_ids.append(job_id)
        self._last_tick = max(now, self._last_tick) if self._last_tick else now
        return job_ids

    def run(self, *, max_ticks: int | None = None) -> int:
        """Tick every `tick_seconds` until SIGINT/SIGTERM or `max_ticks`; return jobs enqueued."""

        ticks = 0
        enqueued = 0
        with stop_signal_handlers(self._request_stop):
            while not self._stop_requested:
                enqueued += len(self.tick())
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                sleep_with_stop(self.tick_seconds, lambda: self._stop_requested)
        return enqueued

    def request_stop(self) -> None:
        self._request_stop("api")

    def _request_stop(self, signal_name: str) -> None:
        if not self._stop_requested:
            logger.info("Scheduler stopping (%s)", signal_name)
        self._stop_requested = True
