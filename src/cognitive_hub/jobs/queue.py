"""Durable job queue backed by SQLModel + SQLite."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

from croniter import croniter
from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from cognitive_hub.config import QueueSettings, validate_cron
from cognitive_hub.jobs.contracts import decode_payload, encode_payload
from cognitive_hub.jobs.models import (
    EnqueueOptions,
    FailureKind,
    JobDetails,
    JobEventView,
    JobState,
    JobView,
    QueueName,
    ScheduleView,
)
from cognitive_hub.storage.alembic_runner import upgrade_head
from cognitive_hub.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from cognitive_hub.storage.sqlmodel_models import Job, JobEvent, JobSchedule

logger = logging.getLogger(__name__)


class JobQueue:
    """Queue persistence facade: enqueue, leased claims and guarded transitions.

    Delivery is at-least-once. A claimed job is owned by one worker until its
    lease expires; every transition is guarded by state, worker id and attempt
    so a worker that lost its lease can no longer ack or fail the job.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        settings: QueueSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db_path = db_path
        self.settings = settings or QueueSettings()
        self._clock = clock
        self.engine = build_sqlite_engine(
            db_path=db_path,
            busy_timeout_ms=self.settings.busy_timeout_ms,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def enqueue(
        self,
        queue: QueueName | str,
        payload: Mapping[str, Any],
        options: EnqueueOptions | None = None,
    ) -> str:
        """Validate and persist a job; return its id (existing id on dedup hit)."""

        queue = _to_queue_name(queue)
        options = options or EnqueueOptions()
        payload_json = encode_payload(queue, payload)
        max_attempts = (
            options.max_attempts
            if options.max_attempts is not None
            else self.settings.default_max_attempts
        )
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}.")
        if options.delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {options.delay_seconds}.")
        name = options.name or queue.value

        if options.repeat is not None:
            if options.delay_seconds or options.dedup_key or options.job_id:
                raise ValueError(
                    "repeat cannot be combined with delay_seconds, dedup_key or job_id.",
                )
            return self._enqueue_repeating(
                queue=queue,
                name=name,
                payload_json=payload_json,
                max_attempts=max_attempts,
                cron=options.repeat,
            )

        now = self._clock()
        return self._insert_job(
            queue=queue,
            name=name,
            payload_json=payload_json,
            max_attempts=max_attempts,
            run_after=now + timedelta(seconds=options.delay_seconds),
            dedup_key=options.dedup_key,
            job_id=options.job_id,
        )

    def claim_next(self, queue: QueueName | str, *, worker_id: str) -> JobView | None:
        """Atomically claim the oldest ready job of `queue` under a fresh lease."""

        queue = _to_queue_name(queue)
        self.recover_expired_leases(queue)
        while True:
            now = self._clock()
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(Job)
                    .where(
                        Job.queue == queue.value,
                        Job.state == JobState.QUEUED.value,
                        Job.run_after <= to_db_datetime(now),
                    )
                    .order_by(col(Job.run_after).asc(), col(Job.enqueued_at).asc())
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                result = session.exec(
                    sa_update(Job)
                    .where(
                        col(Job.job_id) == candidate.job_id,
                        col(Job.state) == JobState.QUEUED.value,
                        col(Job.attempts) == candidate.attempts,
                    )
                    .values(
                        state=JobState.IN_FLIGHT.value,
                        attempts=candidate.attempts + 1,
                        lease_expires_at=to_db_datetime(
                            now + timedelta(seconds=self.settings.lease_seconds),
                        ),
                        worker_id=worker_id,
                        started_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue

                claimed = session.exec(select(Job).where(Job.job_id == candidate.job_id)).one()
                self._add_event(
                    session=session,
                    job_id=claimed.job_id,
                    event_type="claimed",
                    state_from=JobState.QUEUED,
                    state_to=JobState.IN_FLIGHT,
                    details={"worker_id": worker_id, "attempt": claimed.attempts},
                )
                session.commit()
                view = _to_job_view(claimed)

            if view.schedule_id is not None:
                self._enqueue_occurrence(schedule_id=view.schedule_id, after=now)
            return view

    def recover_expired_leases(self, queue: QueueName | str | None = None) -> int:
        """Requeue in-flight jobs whose lease ran out; dead-letter exhausted ones."""

        now = self._clock()
        recovered = 0
        with Session(self.engine) as session:
            statement = select(Job).where(
                Job.state == JobState.IN_FLIGHT.value,
                col(Job.lease_expires_at) < to_db_datetime(now),
            )
            if queue is not None:
                statement = statement.where(Job.queue == _to_queue_name(queue).value)
            for row in session.exec(statement).all():
                job_id, attempts, holder = row.job_id, row.attempts, row.worker_id
                exhausted = attempts >= row.max_attempts
                target = JobState.DEAD if exhausted else JobState.QUEUED
                error = f"Lease expired while held by worker {holder}."
                values: dict[str, Any] = {
                    "state": target.value,
                    "lease_expires_at": None,
                    "worker_id": None,
                    "failure_kind": FailureKind.LEASE_EXPIRED.value,
                    "last_error": error,
                    "updated_at": to_db_datetime(now),
                }
                if exhausted:
                    values["finished_at"] = to_db_datetime(now)
                else:
                    values["run_after"] = to_db_datetime(now)
                    values["started_at"] = None
                result = session.exec(
                    sa_update(Job)
                    .where(
                        col(Job.job_id) == job_id,
                        col(Job.state) == JobState.IN_FLIGHT.value,
                        col(Job.attempts) == attempts,
                    )
                    .values(**values),
                )
                if result.rowcount != 1:
                    continue
                recovered += 1
                self._add_event(
                    session=session,
                    job_id=job_id,
                    event_type="lease_expired",
                    state_from=JobState.IN_FLIGHT,
                    state_to=target,
                    details={"worker_id": holder, "attempt": attempts},
                )
            session.commit()
        if recovered:
            logger.warning("Recovered %s job(s) with expired leases", recovered)
        return recovered

    def complete(
        self,
        *,
        job_id: str,
        worker_id: str,
        attempt: int,
        result: Mapping[str, Any] | None = None,
    ) -> bool:
        """Mark a leased job as completed; False when the lease is no longer held."""

        now = self._clock()
        with Session(self.engine) as session:
            outcome = session.exec(
                sa_update(Job)
                .where(*_lease_guard(job_id=job_id, worker_id=worker_id, attempt=attempt))
                .values(
                    state=JobState.COMPLETED.value,
                    result_json=_dump_json(result) if result is not None else None,
                    lease_expires_at=None,
                    finished_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if outcome.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="completed",
                state_from=JobState.IN_FLIGHT,
                state_to=JobState.COMPLETED,
                details={"worker_id": worker_id, "attempt": attempt},
            )
            session.commit()
            return True

    def fail(  # noqa: PLR0913
        self,
        *,
        job_id: str,
        worker_id: str,
        attempt: int,
        failure_kind: FailureKind,
        error: str,
        details: Mapping[str, object] | None = None,
    ) -> bool:
        """Move a leased job to the dead state."""

        now = self._clock()
        with Session(self.engine) as session:
            outcome = session.exec(
                sa_update(Job)
                .where(*_lease_guard(job_id=job_id, worker_id=worker_id, attempt=attempt))
                .values(
                    state=JobState.DEAD.value,
                    failure_kind=failure_kind.value,
                    last_error=error,
                    lease_expires_at=None,
                    finished_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if outcome.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="dead_lettered",
                state_from=JobState.IN_FLIGHT,
                state_to=JobState.DEAD,
                details={
                    **(details or {}),
                    "failure_kind": failure_kind.value,
                    "error": error,
                    "attempt": attempt,
                },
            )
            session.commit()
            return True

    def schedule_retry(  # noqa: PLR0913
        self,
        *,
        job_id: str,
        worker_id: str,
        attempt: int,
        run_after: datetime,
        failure_kind: FailureKind,
        error: str,
        details: Mapping[str, object] | None = None,
    ) -> bool:
        """Requeue a leased job for automatic retry at `run_after`."""

        now = self._clock()
        with Session(self.engine) as session:
            outcome = session.exec(
                sa_update(Job)
                .where(*_lease_guard(job_id=job_id, worker_id=worker_id, attempt=attempt))
                .values(
                    state=JobState.QUEUED.value,
                    run_after=to_db_datetime(run_after),
                    failure_kind=failure_kind.value,
                    last_error=error,
                    lease_expires_at=None,
                    worker_id=None,
                    started_at=None,
                    updated_at=to_db_datetime(now),
                ),
            )
            if outcome.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="retry_scheduled",
                state_from=JobState.IN_FLIGHT,
                state_to=JobState.QUEUED,
                details={
                    **(details or {}),
                    "run_after": to_utc_aware_datetime(run_after).isoformat(),
                    "failure_kind": failure_kind.value,
                    "attempt": attempt,
                },
            )
            session.commit()
            return True

    def retry_dead(self, job_id: str) -> None:
        """Manual operator retry for a dead job; resets its attempt counter."""

        now = self._clock()
        with Session(self.engine) as session:
            row = session.exec(select(Job).where(Job.job_id == job_id)).one_or_none()
            if row is None:
                raise RuntimeError(f"Job not found: {job_id}")
            if row.state != JobState.DEAD.value:
                raise RuntimeError(f"Only dead jobs can be retried manually, got {row.state}.")
            previous_attempts = row.attempts

            result = session.exec(
                sa_update(Job)
                .where(col(Job.job_id) == job_id, col(Job.state) == JobState.DEAD.value)
                .values(
                    state=JobState.QUEUED.value,
                    attempts=0,
                    run_after=to_db_datetime(now),
                    failure_kind=None,
                    last_error=None,
                    result_json=None,
                    worker_id=None,
                    lease_expires_at=None,
                    started_at=None,
                    finished_at=None,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise RuntimeError(
                    "Job state changed concurrently while retrying; "
                    f"please retry command (job_id={job_id}).",
                )
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="manual_retry",
                state_from=JobState.DEAD,
                state_to=JobState.QUEUED,
                details={"previous_attempts": previous_attempts},
            )
            session.commit()

    def get_job(self, job_id: str) -> JobView | None:
        with Session(self.engine) as session:
            row = session.exec(select(Job).where(Job.job_id == job_id)).one_or_none()
            return _to_job_view(row) if row is not None else None

    def list_jobs(
        self,
        *,
        queue: QueueName | str | None = None,
        state: JobState | None = None,
        limit: int = 50,
    ) -> list[JobView]:
        """List recent jobs, optionally filtered by queue and state."""

        with Session(self.engine) as session:
            statement = select(Job).order_by(col(Job.enqueued_at).desc()).limit(limit)
            if queue is not None:
                statement = statement.where(Job.queue == _to_queue_name(queue).value)
            if state is not None:
                statement = statement.where(Job.state == state.value)
            rows = session.exec(statement).all()
        return [_to_job_view(row) for row in rows]

    def get_job_details(self, job_id: str) -> JobDetails | None:
        """Return job details with event stream."""

        with Session(self.engine) as session:
            job = session.exec(select(Job).where(Job.job_id == job_id)).one_or_none()
            if job is None:
                return None
            event_rows = session.exec(
                select(JobEvent)
                .where(JobEvent.job_id == job_id)
                .order_by(col(JobEvent.created_at).asc(), col(JobEvent.id).asc()),
            ).all()
            view = _to_job_view(job)

        events: list[JobEventView] = []
        for row in event_rows:
            details = {}
            if row.details_json:
                parsed = json.loads(row.details_json)
                if isinstance(parsed, dict):
                    details = parsed
            events.append(
                JobEventView(
                    event_id=row.id or 0,
                    job_id=row.job_id,
                    event_type=row.event_type,
                    state_from=JobState(row.state_from) if row.state_from is not None else None,
                    state_to=JobState(row.state_to) if row.state_to is not None else None,
                    created_at=to_utc_aware_datetime(row.created_at),
                    details=details,
                ),
            )
        return JobDetails(job=view, events=events)

    def count_by_state(self) -> dict[QueueName, dict[JobState, int]]:
        """Job counts per queue and state, zero-filled."""

        counts = {queue: {state: 0 for state in JobState} for queue in QueueName}
        with Session(self.engine) as session:
            rows = session.exec(
                select(Job.queue, Job.state, func.count()).group_by(
                    col(Job.queue),
                    col(Job.state),
                ),
            ).all()
        for queue, state, count in rows:
            counts[QueueName(queue)][JobState(state)] = count
        return counts

    def purge_completed(self, *, older_than: datetime) -> int:
        """Delete completed jobs finished before `older_than`; dead jobs are kept."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(Job).where(
                    col(Job.state) == JobState.COMPLETED.value,
                    col(Job.finished_at) < to_db_datetime(older_than),
                ),
            )
            session.commit()
        purged = result.rowcount or 0
        if purged:
            logger.info("Purged %s completed job(s) finished before %s", purged, older_than)
        return purged

    def list_schedules(self) -> list[ScheduleView]:
        with Session(self.engine) as session:
            rows = session.exec(select(JobSchedule).order_by(col(JobSchedule.created_at))).all()
        return [
            ScheduleView(
                schedule_id=row.schedule_id,
                queue=QueueName(row.queue),
                name=row.name,
                cron=row.cron,
                payload=decode_payload(row.payload_json),
                max_attempts=row.max_attempts,
            )
            for row in rows
        ]

    def _enqueue_repeating(
        self,
        *,
        queue: QueueName,
        name: str,
        payload_json: str,
        max_attempts: int,
        cron: str,
    ) -> str:
        validate_cron("repeat", cron)
        digest = hashlib.sha256(f"{queue.value}|{name}|{cron}|{payload_json}".encode())
        schedule_id = f"sch_{digest.hexdigest()[:16]}"
        now = self._clock()
        with Session(self.engine) as session:
            row = session.get(JobSchedule, schedule_id)
            if row is None:
                row = JobSchedule(
                    schedule_id=schedule_id,
                    queue=queue.value,
                    name=name,
                    cron=cron,
                    payload_json=payload_json,
                    max_attempts=max_attempts,
                    created_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                )
            else:
                row.max_attempts = max_attempts
                row.updated_at = to_db_datetime(now)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
        logger.info("Registered repeat schedule %s (%s) on %s", schedule_id, cron, queue.value)
        return self._enqueue_occurrence(schedule_id=schedule_id, after=now)

    def _enqueue_occurrence(self, *, schedule_id: str, after: datetime) -> str:
        with Session(self.engine) as session:
            schedule = session.get(JobSchedule, schedule_id)
            if schedule is None:
                raise RuntimeError(f"Schedule not found: {schedule_id}")
            queue = QueueName(schedule.queue)
            name = schedule.name
            cron = schedule.cron
            payload_json = schedule.payload_json
            max_attempts = schedule.max_attempts

        fire_at = croniter(cron, to_utc_aware_datetime(after)).get_next(datetime)
        return self._insert_job(
            queue=queue,
            name=name,
            payload_json=payload_json,
            max_attempts=max_attempts,
            run_after=fire_at,
            dedup_key=f"schedule:{schedule_id}@{fire_at.isoformat()}",
            schedule_id=schedule_id,
        )

    def _insert_job(  # noqa: PLR0913
        self,
        *,
        queue: QueueName,
        name: str,
        payload_json: str,
        max_attempts: int,
        run_after: datetime,
        dedup_key: str | None = None,
        job_id: str | None = None,
        schedule_id: str | None = None,
    ) -> str:
        job_id = job_id or str(uuid4())
        now = self._clock()
        with Session(self.engine) as session:
            existing = _find_existing(session, job_id=job_id, dedup_key=dedup_key)
            if existing is not None:
                logger.debug("Enqueue deduplicated onto existing job %s", existing)
                return existing

            session.add(
                Job(
                    job_id=job_id,
                    queue=queue.value,
                    name=name,
                    payload_json=payload_json,
                    state=JobState.QUEUED.value,
                    attempts=0,
                    max_attempts=max_attempts,
                    run_after=to_db_datetime(run_after),
                    dedup_key=dedup_key,
                    schedule_id=schedule_id,
                    enqueued_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            try:
                session.flush()
                self._add_event(
                    session=session,
                    job_id=job_id,
                    event_type="enqueued",
                    state_from=None,
                    state_to=JobState.QUEUED,
                    details={
                        "queue": queue.value,
                        "name": name,
                        "max_attempts": max_attempts,
                        "run_after": to_utc_aware_datetime(run_after).isoformat(),
                        "dedup_key": dedup_key,
                        "schedule_id": schedule_id,
                    },
                )
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = _find_existing(session, job_id=job_id, dedup_key=dedup_key)
                if existing is None:
                    raise
                return existing
        logger.info("Enqueued job %s on %s (%s)", job_id, queue.value, name)
        return job_id

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        job_id: str,
        event_type: str,
        state_from: JobState | None,
        state_to: JobState | None,
        details: Mapping[str, object],
    ) -> None:
        compact = {key: value for key, value in details.items() if value is not None}
        session.add(
            JobEvent(
                job_id=job_id,
                event_type=event_type,
                state_from=state_from.value if state_from is not None else None,
                state_to=state_to.value if state_to is not None else None,
                details_json=_dump_json(compact) if compact else None,
                created_at=to_db_datetime(self._clock()),
            ),
        )


def _to_queue_name(queue: QueueName | str) -> QueueName:
    try:
        return QueueName(queue)
    except ValueError:
        allowed = ", ".join(item.value for item in QueueName)
        raise ValueError(f"Unknown queue {queue!r}; expected one of: {allowed}.") from None


def _lease_guard(*, job_id: str, worker_id: str, attempt: int) -> tuple[Any, ...]:
    return (
        col(Job.job_id) == job_id,
        col(Job.state) == JobState.IN_FLIGHT.value,
        col(Job.worker_id) == worker_id,
        col(Job.attempts) == attempt,
    )


def _find_existing(session: Session, *, job_id: str, dedup_key: str | None) -> str | None:
    row = session.get(Job, job_id)
    if row is not None:
        return row.job_id
    if dedup_key is None:
        return None
    row = session.exec(select(Job).where(Job.dedup_key == dedup_key)).one_or_none()
    return row.job_id if row is not None else None


def _dump_json(value: Mapping[str, Any]) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def _optional_datetime(value: datetime | None) -> datetime | None:
    return to_utc_aware_datetime(value) if value is not None else None


def _to_job_view(row: Job) -> JobView:
    return JobView(
        job_id=row.job_id,
        queue=QueueName(row.queue),
        name=row.name,
        payload=decode_payload(row.payload_json),
        state=JobState(row.state),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        run_after=to_utc_aware_datetime(row.run_after),
        enqueued_at=to_utc_aware_datetime(row.enqueued_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        lease_expires_at=_optional_datetime(row.lease_expires_at),
        worker_id=row.worker_id,
        dedup_key=row.dedup_key,
        schedule_id=row.schedule_id,
        result=json.loads(row.result_json) if row.result_json else None,
        failure_kind=FailureKind(row.failure_kind) if row.failure_kind is not None else None,
        last_error=row.last_error,
        started_at=_optional_datetime(row.started_at),
        finished_at=_optional_datetime(row.finished_at),
    )
