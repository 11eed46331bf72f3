"""CLI entrypoint for cognitive-hub."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click
from rich.logging import RichHandler

from cognitive_hub import __version__
from cognitive_hub.jobs.controllers import (
    JobCommand,
    JobsCliController,
    JobsEnqueueCommand,
    JobsListCommand,
    JobsPruneCommand,
    JobsStatsCommand,
    SchedulerCommand,
    ToolsCommand,
    WorkerCommand,
)
from cognitive_hub.jobs.models import JobState, QueueName

click.rich_click.USE_MARKDOWN = True
JOBS_CONTROLLER = JobsCliController()

QUEUE_CHOICES = [queue.value for queue in QueueName]
STATE_CHOICES = [state.value for state in JobState]


@click.group()
@click.version_option(version=__version__, prog_name="cognitive-hub")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Root logger level.",
)
def cognitive_hub(log_level: str) -> None:
    """Job queue, agent workers and scheduler CLI."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


@cognitive_hub.group()
def jobs() -> None:
    """Job queue commands."""


@jobs.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--queue", "queue_name", type=click.Choice(QUEUE_CHOICES), required=True)
@click.option("--payload", "payload_json", default="{}", show_default=True, help="JSON object.")
@click.option("--name", default=None, help="Job name; defaults to the queue name.")
@click.option(
    "--delay-seconds",
    type=click.FloatRange(min=0),
    default=0,
    show_default=True,
    help="Earliest start, relative to now.",
)
@click.option(
    "--max-attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Delivery attempts before the job goes dead; defaults to the queue setting.",
)
@click.option("--repeat", default=None, help="Five-field cron expression for a repeating job.")
@click.option("--dedup-key", default=None, help="Enqueue at most one job per key.")
def jobs_enqueue(  # noqa: PLR0913
    db_path: Path | None,
    queue_name: str,
    payload_json: str,
    name: str | None,
    delay_seconds: float,
    max_attempts: int | None,
    repeat: str | None,
    dedup_key: str | None,
) -> None:
    """Validate a payload and put one job on a queue."""

    _run(
        lambda: JOBS_CONTROLLER.enqueue(
            JobsEnqueueCommand(
                db_path=db_path,
                queue=queue_name,
                payload_json=payload_json,
                name=name,
                delay_seconds=delay_seconds,
                max_attempts=max_attempts,
                repeat=repeat,
                dedup_key=dedup_key,
            ),
        ),
    )


@jobs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--queue", "queue_name", type=click.Choice(QUEUE_CHOICES), default=None)
@click.option(
    "--state",
    type=click.Choice(STATE_CHOICES, case_sensitive=False),
    default=None,
    help="Optional state filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max jobs to print.",
)
def jobs_list(db_path: Path | None, queue_name: str | None, state: str | None, limit: int) -> None:
    """List recent jobs."""

    _run(
        lambda: JOBS_CONTROLLER.list_jobs(
            JobsListCommand(db_path=db_path, queue=queue_name, state=state, limit=limit),
        ),
    )


@jobs.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_inspect(db_path: Path | None, job_id: str) -> None:
    """Inspect one job with its event history."""

    _run(lambda: JOBS_CONTROLLER.inspect_job(JobCommand(db_path=db_path, job_id=job_id)))


@jobs.command("retry")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_retry(db_path: Path | None, job_id: str) -> None:
    """Manually re-queue a dead job."""

    _run(lambda: JOBS_CONTROLLER.retry_job(JobCommand(db_path=db_path, job_id=job_id)))


@jobs.command("prune")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--days",
    type=click.IntRange(min=0),
    default=None,
    help="Delete completed jobs older than this; defaults to the retention setting.",
)
def jobs_prune(db_path: Path | None, days: int | None) -> None:
    """Delete old completed jobs. Dead jobs are kept."""

    _run(lambda: JOBS_CONTROLLER.prune(JobsPruneCommand(db_path=db_path, days=days)))


@jobs.command("stats")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def jobs_stats(db_path: Path | None) -> None:
    """Show job counts per queue and state."""

    _run(lambda: JOBS_CONTROLLER.stats(JobsStatsCommand(db_path=db_path)))


@cognitive_hub.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--queue", "queue_name", type=click.Choice(QUEUE_CHOICES), required=True)
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Run one claim-execute cycle or keep polling until stopped.",
)
@click.option(
    "--max-jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for processed jobs in loop mode.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=None,
    help="Exit the loop after this many consecutive empty polls.",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Jobs in flight at once; defaults to the worker setting.",
)
def worker(  # noqa: PLR0913
    db_path: Path | None,
    queue_name: str,
    once: bool,
    max_jobs: int | None,
    max_idle_polls: int | None,
    concurrency: int | None,
) -> None:
    """Run a worker for one queue."""

    _run(
        lambda: JOBS_CONTROLLER.run_worker(
            WorkerCommand(
                db_path=db_path,
                queue=queue_name,
                once=once,
                max_jobs=max_jobs,
                concurrency=concurrency,
                max_idle_polls=max_idle_polls,
            ),
        ),
    )


@cognitive_hub.command("scheduler")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Run a single tick or keep ticking until stopped.",
)
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for ticks in loop mode.",
)
def scheduler(db_path: Path | None, once: bool, max_ticks: int | None) -> None:
    """Enqueue recurring maintenance jobs on their cron schedule."""

    _run(
        lambda: JOBS_CONTROLLER.run_scheduler(
            SchedulerCommand(db_path=db_path, once=once, max_ticks=max_ticks),
        ),
    )


@cognitive_hub.command("tools")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--capability", default=None, help="Only tools declaring this capability.")
@click.option("--category", default=None, help="Only tools in this category.")
def tools(db_path: Path | None, capability: str | None, category: str | None) -> None:
    """List registered tool manifests."""

    _run(
        lambda: JOBS_CONTROLLER.list_tools(
            ToolsCommand(db_path=db_path, capability=capability, category=category),
        ),
    )


def _run(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except (ValueError, RuntimeError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    cognitive_hub()
