"""SQLModel ORM tables for the job queue and the content store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, LargeBinary, Text
from sqlmodel import Field, SQLModel

DEFAULT_USER_ID = "default_user"


class JobSchedule(SQLModel, table=True):
    __tablename__ = "job_schedules"  # type: ignore[bad-override]

    schedule_id: str = Field(primary_key=True)
    queue: str = Field(index=True)
    name: str
    cron: str
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    max_attempts: int = Field(default=3)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Job(SQLModel, table=True):
    __tablename__ = "jobs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_jobs_claim", "queue", "state", "run_after"),)

    job_id: str = Field(primary_key=True)
    queue: str = Field(index=True)
    name: str
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    state: str = Field(index=True)
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=3)
    run_after: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    lease_expires_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    worker_id: str | None = Field(default=None, index=True)
    dedup_key: str | None = Field(default=None, unique=True)
    schedule_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("job_schedules.schedule_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    result_json: str | None = Field(default=None, sa_column=Column(Text))
    failure_kind: str | None = Field(default=None, index=True)
    last_error: str | None = Field(default=None, sa_column=Column(Text))
    enqueued_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class JobEvent(SQLModel, table=True):
    __tablename__ = "job_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_job_events_job_time", "job_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            ForeignKey("jobs.job_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    state_from: str | None = None
    state_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ContentItem(SQLModel, table=True):
    __tablename__ = "content_items"  # type: ignore[bad-override]

    content_type: str = Field(primary_key=True)
    content_id: str = Field(primary_key=True)
    user_id: str = Field(default=DEFAULT_USER_ID, index=True)
    batch_id: str | None = Field(default=None, index=True)
    text: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ContentEmbedding(SQLModel, table=True):
    __tablename__ = "embeddings"  # type: ignore[bad-override]

    content_type: str = Field(primary_key=True)
    content_id: str = Field(primary_key=True)
    user_id: str = Field(default=DEFAULT_USER_ID, index=True)
    model_id: str = Field(index=True)
    dimensions: int
    vector_blob: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ConceptLink(SQLModel, table=True):
    __tablename__ = "concept_links"  # type: ignore[bad-override]

    user_id: str = Field(primary_key=True)
    source_concept: str = Field(primary_key=True)
    target_concept: str = Field(primary_key=True)
    relation: str = Field(primary_key=True)
    confidence: float = 0.0
    status: str = Field(default="proposed", index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Insight(SQLModel, table=True):
    __tablename__ = "insights"  # type: ignore[bad-override]

    insight_id: str = Field(primary_key=True)
    content_key: str = Field(unique=True)
    user_id: str = Field(index=True)
    insight_type: str = Field(index=True)
    title: str
    summary: str = Field(sa_column=Column(Text, nullable=False))
    raw_json: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class IngestionBatch(SQLModel, table=True):
    __tablename__ = "ingestion_batches"  # type: ignore[bad-override]

    batch_id: str = Field(primary_key=True)
    user_id: str = Field(default=DEFAULT_USER_ID, index=True)
    status: str = Field(default="pending", index=True)
    item_count: int = 0
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    processed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class OntologyChange(SQLModel, table=True):
    __tablename__ = "ontology_changes"  # type: ignore[bad-override]

    change_key: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    kind: str = Field(index=True)
    details_json: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
