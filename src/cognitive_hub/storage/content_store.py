"""SQLModel-backed content store shared by agents and built-in tools."""

from __future__ import annotations

import json
import logging
import struct
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from cognitive_hub.storage.alembic_runner import upgrade_head
from cognitive_hub.storage.common import build_sqlite_engine, to_utc_aware_datetime, utc_now
from cognitive_hub.storage.sqlmodel_models import (
    DEFAULT_USER_ID,
    ConceptLink,
    ContentEmbedding,
    ContentItem,
    IngestionBatch,
    Insight,
    OntologyChange,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ContentRecord:
    """One piece of content addressed by `(content_type, content_id)`."""

    content_type: str
    content_id: str
    user_id: str
    text: str
    batch_id: str | None = None

    @property
    def item_id(self) -> str:
        return f"{self.content_type}:{self.content_id}"


@dataclass(slots=True)
class EmbeddingRecord:
    content_type: str
    content_id: str
    user_id: str
    model_id: str
    vector: list[float]

    @property
    def item_id(self) -> str:
        return f"{self.content_type}:{self.content_id}"


@dataclass(slots=True)
class ConceptLinkRecord:
    user_id: str
    source_concept: str
    target_concept: str
    relation: str
    confidence: float
    status: str


@dataclass(slots=True)
class InsightRecord:
    insight_id: str
    user_id: str
    insight_type: str
    title: str
    summary: str
    raw: dict[str, object]
    created_at: datetime


@dataclass(slots=True)
class BatchRecord:
    batch_id: str
    user_id: str
    status: str
    item_count: int
    processed_at: datetime | None


class ContentStore:
    """Persistence facade for the domain tables written by agents.

    Every write is an upsert keyed by content identity, so replaying a job
    after a crash converges to the same rows instead of duplicating them.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    # content items

    def upsert_content_item(  # noqa: PLR0913
        self,
        *,
        content_type: str,
        content_id: str,
        text: str,
        user_id: str = DEFAULT_USER_ID,
        batch_id: str | None = None,
    ) -> ContentRecord:
        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(ContentItem, (content_type, content_id))
            if row is None:
                row = ContentItem(
                    content_type=content_type,
                    content_id=content_id,
                    user_id=user_id,
                    batch_id=batch_id,
                    text=text,
                    created_at=now,
                    updated_at=now,
                )
            else:
                row.text = text
                row.user_id = user_id
                if batch_id is not None:
                    row.batch_id = batch_id
                row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_content_record(row)

    def get_content_item(self, *, content_type: str, content_id: str) -> ContentRecord | None:
        with Session(self.engine) as session:
            row = session.get(ContentItem, (content_type, content_id))
            return _to_content_record(row) if row is not None else None

    def list_content_items(
        self,
        *,
        user_id: str | None = None,
        batch_id: str | None = None,
        content_type: str | None = None,
    ) -> list[ContentRecord]:
        with Session(self.engine) as session:
            statement = select(ContentItem).order_by(
                col(ContentItem.content_type).asc(),
                col(ContentItem.content_id).asc(),
            )
            if user_id is not None:
                statement = statement.where(ContentItem.user_id == user_id)
            if batch_id is not None:
                statement = statement.where(ContentItem.batch_id == batch_id)
            if content_type is not None:
                statement = statement.where(ContentItem.content_type == content_type)
            rows = session.exec(statement).all()
        return [_to_content_record(row) for row in rows]

    def list_user_ids(self) -> list[str]:
        """Users that own at least one content item."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(ContentItem.user_id).distinct().order_by(col(ContentItem.user_id).asc()),
            ).all()
        return list(rows)

    # ingestion batches

    def upsert_batch(self, *, batch_id: str, user_id: str = DEFAULT_USER_ID) -> BatchRecord:
        with Session(self.engine) as session:
            row = session.get(IngestionBatch, batch_id)
            if row is None:
                row = IngestionBatch(batch_id=batch_id, user_id=user_id, created_at=utc_now())
                session.add(row)
                session.commit()
                session.refresh(row)
            return _to_batch_record(row)

    def get_batch(self, *, batch_id: str) -> BatchRecord | None:
        with Session(self.engine) as session:
            row = session.get(IngestionBatch, batch_id)
            return _to_batch_record(row) if row is not None else None

    def mark_batch_processed(self, *, batch_id: str, item_count: int) -> None:
        with Session(self.engine) as session:
            row = session.get(IngestionBatch, batch_id)
            if row is None:
                raise RuntimeError(f"Batch not found: {batch_id}")
            row.status = "processed"
            row.item_count = item_count
            row.processed_at = utc_now()
            session.add(row)
            session.commit()

    # embeddings

    def upsert_embedding(  # noqa: PLR0913
        self,
        *,
        content_type: str,
        content_id: str,
        model_id: str,
        vector: list[float],
        user_id: str = DEFAULT_USER_ID,
    ) -> None:
        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(ContentEmbedding, (content_type, content_id))
            if row is None:
                row = ContentEmbedding(
                    content_type=content_type,
                    content_id=content_id,
                    user_id=user_id,
                    model_id=model_id,
                    dimensions=len(vector),
                    vector_blob=_pack_vector(vector),
                    updated_at=now,
                )
            else:
                row.user_id = user_id
                row.model_id = model_id
                row.dimensions = len(vector)
                row.vector_blob = _pack_vector(vector)
                row.updated_at = now
            session.add(row)
            session.commit()

    def list_embeddings(
        self,
        *,
        user_id: str | None = None,
        model_id: str | None = None,
    ) -> list[EmbeddingRecord]:
        with Session(self.engine) as session:
            statement = select(ContentEmbedding)
            if user_id is not None:
                statement = statement.where(ContentEmbedding.user_id == user_id)
            if model_id is not None:
                statement = statement.where(ContentEmbedding.model_id == model_id)
            rows = session.exec(statement).all()
        return [
            EmbeddingRecord(
                content_type=row.content_type,
                content_id=row.content_id,
                user_id=row.user_id,
                model_id=row.model_id,
                vector=_unpack_vector(row.vector_blob, row.dimensions),
            )
            for row in rows
        ]

    def list_stale_content(self, *, model_id: str) -> list[ContentRecord]:
        """Content without an embedding from `model_id`."""

        with Session(self.engine) as session:
            fresh = {
                (content_type, content_id)
                for content_type, content_id in session.exec(
                    select(ContentEmbedding.content_type, ContentEmbedding.content_id).where(
                        ContentEmbedding.model_id == model_id,
                    ),
                ).all()
            }
            rows = session.exec(
                select(ContentItem).order_by(
                    col(ContentItem.content_type).asc(),
                    col(ContentItem.content_id).asc(),
                ),
            ).all()
        return [
            _to_content_record(row)
            for row in rows
            if (row.content_type, row.content_id) not in fresh
        ]

    # ontology

    def upsert_concept_link(  # noqa: PLR0913
        self,
        *,
        user_id: str,
        source_concept: str,
        target_concept: str,
        relation: str,
        confidence: float,
        status: str = "proposed",
    ) -> ConceptLinkRecord:
        now = utc_now()
        key = (user_id, source_concept, target_concept, relation)
        with Session(self.engine) as session:
            row = session.get(ConceptLink, key)
            if row is None:
                row = ConceptLink(
                    user_id=user_id,
                    source_concept=source_concept,
                    target_concept=target_concept,
                    relation=relation,
                    confidence=confidence,
                    status=status,
                    created_at=now,
                    updated_at=now,
                )
            else:
                row.confidence = confidence
                row.status = status
                row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_link_record(row)

    def list_concept_links(
        self,
        *,
        user_id: str,
        concepts: list[str] | None = None,
        include_rejected: bool = False,
    ) -> list[ConceptLinkRecord]:
        """Links touching any of `concepts` (all of the user's links when omitted)."""

        with Session(self.engine) as session:
            statement = select(ConceptLink).where(ConceptLink.user_id == user_id)
            if concepts is not None:
                statement = statement.where(
                    or_(
                        col(ConceptLink.source_concept).in_(concepts),
                        col(ConceptLink.target_concept).in_(concepts),
                    ),
                )
            if not include_rejected:
                statement = statement.where(ConceptLink.status != "rejected")
            rows = session.exec(
                statement.order_by(
                    col(ConceptLink.source_concept).asc(),
                    col(ConceptLink.target_concept).asc(),
                ),
            ).all()
        return [_to_link_record(row) for row in rows]

    def record_ontology_change(
        self,
        *,
        change_key: str,
        user_id: str,
        kind: str,
        details: dict[str, object],
    ) -> bool:
        """Record a schema/ontology change once; return False if already recorded."""

        with Session(self.engine) as session:
            if session.get(OntologyChange, change_key) is not None:
                return False
            session.add(
                OntologyChange(
                    change_key=change_key,
                    user_id=user_id,
                    kind=kind,
                    details_json=json.dumps(details, ensure_ascii=False, sort_keys=True),
                    created_at=utc_now(),
                ),
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

    # insights

    def upsert_insight(  # noqa: PLR0913
        self,
        *,
        content_key: str,
        user_id: str,
        insight_type: str,
        title: str,
        summary: str,
        raw: dict[str, object],
    ) -> InsightRecord:
        """Store an insight once per content key; replays return the stored row."""

        now = utc_now()
        with Session(self.engine) as session:
            existing = session.exec(
                select(Insight).where(Insight.content_key == content_key),
            ).one_or_none()
            if existing is not None:
                return _to_insight_record(existing)
            row = Insight(
                insight_id=str(uuid4()),
                content_key=content_key,
                user_id=user_id,
                insight_type=insight_type,
                title=title,
                summary=summary,
                raw_json=json.dumps(raw, ensure_ascii=False, sort_keys=True),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # A concurrent replay won the unique content_key race.
                session.rollback()
                winner = session.exec(
                    select(Insight).where(Insight.content_key == content_key),
                ).one()
                logger.info("Insight %s already stored by a concurrent writer", content_key)
                return _to_insight_record(winner)
            session.refresh(row)
            return _to_insight_record(row)

    def get_insight(self, *, insight_id: str) -> InsightRecord | None:
        with Session(self.engine) as session:
            row = session.get(Insight, insight_id)
            return _to_insight_record(row) if row is not None else None

    def list_insights(self, *, user_id: str | None = None) -> list[InsightRecord]:
        with Session(self.engine) as session:
            statement = select(Insight).order_by(col(Insight.created_at).asc())
            if user_id is not None:
                statement = statement.where(Insight.user_id == user_id)
            rows = session.exec(statement).all()
        return [_to_insight_record(row) for row in rows]


def _pack_vector(vector: list[float]) -> bytes:
    return struct.pack(f"{len(vector)}f", *vector)


def _unpack_vector(blob: bytes, dim: int) -> list[float]:
    unpacked = struct.unpack(f"{dim}f", blob)
    return list(unpacked)


def _to_content_record(row: ContentItem) -> ContentRecord:
    return ContentRecord(
        content_type=row.content_type,
        content_id=row.content_id,
        user_id=row.user_id,
        text=row.text,
        batch_id=row.batch_id,
    )


def _to_link_record(row: ConceptLink) -> ConceptLinkRecord:
    return ConceptLinkRecord(
        user_id=row.user_id,
        source_concept=row.source_concept,
        target_concept=row.target_concept,
        relation=row.relation,
        confidence=row.confidence,
        status=row.status,
    )


def _to_insight_record(row: Insight) -> InsightRecord:
    raw = json.loads(row.raw_json) if row.raw_json else {}
    return InsightRecord(
        insight_id=row.insight_id,
        user_id=row.user_id,
        insight_type=row.insight_type,
        title=row.title,
        summary=row.summary,
        raw=raw if isinstance(raw, dict) else {},
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_batch_record(row: IngestionBatch) -> BatchRecord:
    return BatchRecord(
        batch_id=row.batch_id,
        user_id=row.user_id,
        status=row.status,
        item_count=row.item_count,
        processed_at=(
            to_utc_aware_datetime(row.processed_at) if row.processed_at is not None else None
        ),
    )
