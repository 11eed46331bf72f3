from __future__ import annotations

import re
from pathlib import Path

import allure
from click.testing import CliRunner

from cognitive_hub import __version__
from cognitive_hub.main import cognitive_hub
from cognitive_hub.storage.content_store import ContentStore

pytestmark = [
    allure.epic("Job Runtime"),
    allure.feature("CLI Operations"),
]

_JOB_ID = re.compile(r"job_id=(\S+)")


def _seed_batch(db_path: Path) -> None:
    store = ContentStore(db_path)
    store.init_schema()
    store.upsert_content_item(
        content_type="media_text",
        content_id="doc-1",
        text="Release notes for the new scheduler.",
        user_id="alice",
        batch_id="batch-1",
    )
    store.close()


def _enqueue(runner: CliRunner, db_path: Path, *args: str) -> str:
    result = runner.invoke(cognitive_hub, ["jobs", "enqueue", "--db-path", str(db_path), *args])
    assert result.exit_code == 0, result.output
    match = _JOB_ID.search(result.output)
    assert match is not None, result.output
    return match.group(1)


def test_version_option() -> None:
    result = CliRunner().invoke(cognitive_hub, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_enqueue_worker_inspect_and_stats(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    _seed_batch(db_path)
    runner = CliRunner()

    job_id = _enqueue(
        runner,
        db_path,
        "--queue",
        "ingestion",
        "--payload",
        '{"batch_id": "batch-1"}',
    )

    listed = runner.invoke(cognitive_hub, ["jobs", "list", "--db-path", str(db_path)])
    assert listed.exit_code == 0, listed.output
    assert "Jobs: 1" in listed.output
    assert job_id in listed.output

    worker = runner.invoke(
        cognitive_hub,
        ["worker", "--db-path", str(db_path), "--queue", "ingestion", "--once"],
    )
    assert worker.exit_code == 0, worker.output
    assert "processed=1 succeeded=1 failed=0" in worker.output

    inspected = runner.invoke(
        cognitive_hub,
        ["jobs", "inspect", "--db-path", str(db_path), "--job-id", job_id],
    )
    assert inspected.exit_code == 0, inspected.output
    assert f"Job: {job_id}" in inspected.output
    assert "State: completed" in inspected.output
    assert "Events: 3" in inspected.output

    stats = runner.invoke(cognitive_hub, ["jobs", "stats", "--db-path", str(db_path)])
    assert stats.exit_code == 0, stats.output
    assert "ingestion: queued=0 in_flight=0 completed=1 dead=0" in stats.output
    assert "embedding: queued=1 in_flight=0 completed=0 dead=0" in stats.output
    assert "Repeat schedules: 0" in stats.output


def test_enqueue_rejects_invalid_payloads(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    not_json = runner.invoke(
        cognitive_hub,
        ["jobs", "enqueue", "--db-path", str(db_path), "--queue", "ingestion", "--payload", "{"],
    )
    wrong_shape = runner.invoke(
        cognitive_hub,
        [
            "jobs",
            "enqueue",
            "--db-path",
            str(db_path),
            "--queue",
            "embedding",
            "--payload",
            '{"content_type": "video", "content_id": "a"}',
        ],
    )

    assert not_json.exit_code == 1
    assert "not valid JSON" in not_json.output
    assert wrong_shape.exit_code == 1
    assert "Unsupported content_type" in wrong_shape.output


def test_repeat_enqueue_registers_schedule(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    _enqueue(
        runner,
        db_path,
        "--queue",
        "insight",
        "--payload",
        '{"user_id": "alice"}',
        "--name",
        "nightly",
        "--repeat",
        "0 2 * * *",
    )

    stats = runner.invoke(cognitive_hub, ["jobs", "stats", "--db-path", str(db_path)])
    assert "Repeat schedules: 1" in stats.output
    assert "name=nightly cron='0 2 * * *'" in stats.output


def test_retry_rejects_jobs_that_are_not_dead(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()
    job_id = _enqueue(runner, db_path, "--queue", "ingestion", "--payload", '{"batch_id": "b"}')

    result = runner.invoke(
        cognitive_hub,
        ["jobs", "retry", "--db-path", str(db_path), "--job-id", job_id],
    )

    assert result.exit_code == 1
    assert "Only dead jobs" in result.output


def test_failed_job_is_dead_lettered_and_can_be_retried(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()
    job_id = _enqueue(
        runner,
        db_path,
        "--queue",
        "embedding",
        "--payload",
        '{"content_type": "chunk", "content_id": "ghost"}',
    )

    worker = runner.invoke(
        cognitive_hub,
        ["worker", "--db-path", str(db_path), "--queue", "embedding", "--once"],
    )
    assert "failed=1" in worker.output

    dead = runner.invoke(
        cognitive_hub,
        ["jobs", "list", "--db-path", str(db_path), "--state", "dead"],
    )
    assert job_id in dead.output

    retried = runner.invoke(
        cognitive_hub,
        ["jobs", "retry", "--db-path", str(db_path), "--job-id", job_id],
    )
    assert retried.exit_code == 0, retried.output
    assert f"Job re-queued: {job_id}" in retried.output


def test_inspect_unknown_job(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        cognitive_hub,
        ["jobs", "inspect", "--db-path", str(tmp_path / "cli.db"), "--job-id", "nope"],
    )
    assert result.exit_code == 0
    assert "Job not found: nope" in result.output


def test_prune_removes_completed_jobs(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    _seed_batch(db_path)
    runner = CliRunner()
    _enqueue(runner, db_path, "--queue", "ingestion", "--payload", '{"batch_id": "batch-1"}')
    runner.invoke(
        cognitive_hub,
        ["worker", "--db-path", str(db_path), "--queue", "ingestion", "--once"],
    )

    result = runner.invoke(
        cognitive_hub,
        ["jobs", "prune", "--db-path", str(db_path), "--days", "0"],
    )

    assert result.exit_code == 0, result.output
    assert "Pruned completed jobs: 1" in result.output


def test_tools_lists_manifests(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    everything = runner.invoke(cognitive_hub, ["tools", "--db-path", str(db_path)])
    searchers = runner.invoke(
        cognitive_hub,
        ["tools", "--db-path", str(db_path), "--capability", "vector_search"],
    )

    assert everything.exit_code == 0, everything.output
    assert "Tools: 16" in everything.output
    assert "Tools: 1" in searchers.output
    assert "vector-search v1.0.0" in searchers.output


def test_scheduler_once_reports_enqueued_count(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        cognitive_hub,
        ["scheduler", "--db-path", str(tmp_path / "cli.db"), "--once"],
    )
    assert result.exit_code == 0, result.output
    assert result.output.startswith("Scheduler enqueued ")
