from __future__ import annotations

from datetime import UTC, datetime

import allure
import pytest

from cognitive_hub.config import SchedulerSettings
from cognitive_hub.jobs.models import QueueName
from cognitive_hub.jobs.queue import JobQueue
from cognitive_hub.jobs.scheduler import CronRule, Scheduler, default_rules

pytestmark = [
    allure.epic("Job Runtime"),
    allure.feature("Cron Scheduler"),
]


def _at(day: int, hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, second, tzinfo=UTC)


def test_default_rules_cover_daily_insights_and_weekly_model_check() -> None:
    rules = {rule.name: rule for rule in default_rules()}

    assert rules["daily-insights"] == CronRule(
        name="daily-insights",
        cron="0 2 * * *",
        queue=QueueName.INSIGHT,
        job_name="daily-insights",
    )
    assert rules["model-update-check"].cron == "0 3 * * 0"
    assert rules["model-update-check"].queue == QueueName.EMBEDDING


def test_default_rules_follow_settings() -> None:
    rules = default_rules(SchedulerSettings(insight_cron="15 4 * * *"))
    assert rules[0].cron == "15 4 * * *"


def test_fire_times_window_is_half_open() -> None:
    rule = default_rules()[0]
    assert rule.fire_times(after=_at(19, 2, 0), until=_at(20, 2, 0)) == [_at(20, 2, 0)]
    assert rule.fire_times(after=_at(19, 1, 0), until=_at(19, 1, 59)) == []


def test_daily_insights_enqueued_at_two_am(queue: JobQueue) -> None:
    scheduler = Scheduler(queue, default_rules(), tick_seconds=30)

    assert scheduler.tick(_at(19, 1, 59, 50)) == []
    [job_id] = scheduler.tick(_at(19, 2, 0, 20))

    job = queue.get_job(job_id)
    assert job is not None
    assert job.queue == QueueName.INSIGHT
    assert job.name == "daily-insights"
    assert job.payload == {"type": "daily-insights", "timestamp": "2026-10-19T02:00:00+00:00"}
    assert job.dedup_key == "daily-insights@2026-10-19T02:00:00+00:00"


def test_model_update_check_enqueued_sunday_three_am(queue: JobQueue) -> None:
    scheduler = Scheduler(queue, default_rules(), tick_seconds=30)

    [job_id] = scheduler.tick(_at(18, 3, 0, 10))

    job = queue.get_job(job_id)
    assert job is not None
    assert job.queue == QueueName.EMBEDDING
    assert job.payload == {
        "type": "model-update-check",
        "timestamp": "2026-10-18T03:00:00+00:00",
    }
    # Monday has no model check.
    assert Scheduler(queue, default_rules()).tick(_at(19, 3, 0, 10)) == []


def test_replicas_produce_one_job_per_fire_time(queue: JobQueue) -> None:
    first = Scheduler(queue, default_rules())
    second = Scheduler(queue, default_rules())

    assert first.tick(_at(19, 2, 0, 10)) == second.tick(_at(19, 2, 0, 15))
    assert len(queue.list_jobs(queue="insight")) == 1


def test_tick_catches_up_missed_fire_times(queue: JobQueue) -> None:
    scheduler = Scheduler(queue, default_rules())
    scheduler.tick(_at(19, 1, 0))

    job_ids = scheduler.tick(_at(21, 2, 30))

    assert len(job_ids) == 3
    timestamps = sorted(job.payload["timestamp"] for job in queue.list_jobs(queue="insight"))
    assert timestamps == [
        "2026-10-19T02:00:00+00:00",
        "2026-10-20T02:00:00+00:00",
        "2026-10-21T02:00:00+00:00",
    ]


def test_run_ticks_until_max_ticks(queue: JobQueue) -> None:
    scheduler = Scheduler(queue, default_rules(), clock=lambda: _at(19, 2, 0, 5))
    assert scheduler.run(max_ticks=1) == 1


def test_scheduler_rejects_bad_configuration(queue: JobQueue) -> None:
    rule = default_rules()[0]
    with pytest.raises(ValueError, match="must be unique"):
        Scheduler(queue, [rule, rule])
    with pytest.raises(ValueError, match="Invalid cron for rule 'broken'"):
        Scheduler(
            queue,
            [CronRule(name="broken", cron="daily", queue=QueueName.INSIGHT, job_name="x")],
        )
    with pytest.raises(ValueError, match="tick_seconds must be > 0"):
        Scheduler(queue, default_rules(), tick_seconds=0)
