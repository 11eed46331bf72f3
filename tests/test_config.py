from __future__ import annotations

from pathlib import Path

import allure
import pytest

from cognitive_hub.config import (
    DEFAULT_EMBEDDING_CHECK_CRON,
    DEFAULT_INSIGHT_CRON,
    AgentSettings,
    QueueSettings,
    SchedulerSettings,
    Settings,
    WorkerSettings,
    validate_cron,
)

pytestmark = [
    allure.epic("Job Runtime"),
    allure.feature("Configuration"),
]


def test_defaults_are_valid() -> None:
    settings = Settings()
    settings.validate()

    assert settings.queue.default_max_attempts == 3
    assert settings.scheduler.insight_cron == DEFAULT_INSIGHT_CRON == "0 2 * * *"
    assert settings.scheduler.embedding_check_cron == DEFAULT_EMBEDDING_CHECK_CRON == "0 3 * * 0"
    assert settings.agents.region == "us"


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COGNITIVE_HUB_DB_PATH", "/tmp/hub.db")
    monkeypatch.setenv("COGNITIVE_HUB_QUEUE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("COGNITIVE_HUB_QUEUE_LEASE_SECONDS", "90")
    monkeypatch.setenv("COGNITIVE_HUB_WORKER_ID", "worker-a")
    monkeypatch.setenv("COGNITIVE_HUB_WORKER_CONCURRENCY", "4")
    monkeypatch.setenv("COGNITIVE_HUB_SCHEDULER_INSIGHT_CRON", "30 1 * * *")
    monkeypatch.setenv("COGNITIVE_HUB_REGION", "cn")
    monkeypatch.setenv("COGNITIVE_HUB_EMBEDDING_DIMENSIONS", "64")

    settings = Settings.from_env()

    assert settings.db_path == Path("/tmp/hub.db")
    assert settings.queue.default_max_attempts == 5
    assert settings.queue.lease_seconds == 90
    assert settings.worker.worker_id == "worker-a"
    assert settings.worker.concurrency == 4
    assert settings.scheduler.insight_cron == "30 1 * * *"
    assert settings.agents.region == "cn"
    assert settings.agents.embedding_dimensions == 64
    settings.validate()


def test_explicit_db_path_wins_over_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("COGNITIVE_HUB_DB_PATH", "/tmp/ignored.db")
    settings = Settings.from_env(db_path=tmp_path / "explicit.db")
    assert settings.db_path == tmp_path / "explicit.db"


def test_worker_id_defaults_to_host_and_pid() -> None:
    assert "-" in WorkerSettings().worker_id


def test_validate_rejects_zero_max_attempts() -> None:
    settings = Settings(queue=QueueSettings(default_max_attempts=0))
    with pytest.raises(ValueError, match="QUEUE_MAX_ATTEMPTS must be >= 1"):
        settings.validate()


def test_validate_rejects_non_positive_lease() -> None:
    settings = Settings(queue=QueueSettings(lease_seconds=0))
    with pytest.raises(ValueError, match="LEASE_SECONDS"):
        settings.validate()


def test_validate_rejects_zero_concurrency() -> None:
    settings = Settings(worker=WorkerSettings(worker_id="w", concurrency=0))
    with pytest.raises(ValueError, match="WORKER_CONCURRENCY"):
        settings.validate()


def test_validate_rejects_unknown_region() -> None:
    settings = Settings(agents=AgentSettings(region="eu"))
    with pytest.raises(ValueError, match="Invalid COGNITIVE_HUB_REGION"):
        settings.validate()


def test_validate_rejects_malformed_scheduler_cron() -> None:
    settings = Settings(scheduler=SchedulerSettings(insight_cron="every day"))
    with pytest.raises(ValueError, match="SCHEDULER_INSIGHT_CRON"):
        settings.validate()


@pytest.mark.parametrize("expression", ["", "* * * *", "0 2 * * * *", "61 2 * * *"])
def test_validate_cron_requires_five_valid_fields(expression: str) -> None:
    with pytest.raises(ValueError, match="five-field cron syntax"):
        validate_cron("repeat", expression)


def test_validate_cron_accepts_standard_expressions() -> None:
    validate_cron("repeat", "*/5 * * * *")
    validate_cron("repeat", "0 3 * * 0")
