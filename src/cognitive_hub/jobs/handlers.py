"""Per-queue job handlers: map a claimed job to an agent run."""

from __future__ import annotations

import logging
from typing import Any

from cognitive_hub.agents.base import AgentInput, BaseAgent
from cognitive_hub.agents.embedding import EmbeddingIndexer
from cognitive_hub.agents.ingestion import IngestionAnalyst
from cognitive_hub.agents.insight import InsightEngine, InsightType
from cognitive_hub.config import AgentSettings
from cognitive_hub.errors import AgentProcessingError
from cognitive_hub.jobs.contracts import (
    ContentType,
    InsightJobPayload,
    ModelUpdateCheckPayload,
    parse_embedding_payload,
    parse_ingestion_payload,
    parse_insight_payload,
)
from cognitive_hub.jobs.models import EnqueueOptions, JobView, QueueName
from cognitive_hub.jobs.queue import JobQueue
from cognitive_hub.jobs.worker import JobHandler
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.storage.sqlmodel_models import DEFAULT_USER_ID
from cognitive_hub.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

PROCESSED = "processed"


class JobHandlers:
    """Holds one agent per queue; handlers return the job result to persist.

    Follow-up jobs (chunk embeddings after ingestion, re-embeds after a model
    check) are enqueued with deterministic dedup keys so a replayed job never
    fans out twice.
    """

    def __init__(
        self,
        *,
        queue: JobQueue,
        store: ContentStore,
        registry: ToolRegistry,
        settings: AgentSettings,
    ) -> None:
        self.queue = queue
        self.store = store
        self.region = settings.region
        self.indexer = EmbeddingIndexer(registry, store, model_id=settings.embedding_model_id)
        self.analyst = IngestionAnalyst(registry, store)
        self.insight_engine = InsightEngine(registry, store)

    def for_queue(self, queue_name: QueueName | str) -> JobHandler:
        match QueueName(queue_name):
            case QueueName.EMBEDDING:
                return self.handle_embedding
            case QueueName.INGESTION:
                return self.handle_ingestion
            case QueueName.INSIGHT:
                return self.handle_insight

    def handle_embedding(self, job: JobView) -> dict[str, Any]:
        payload = parse_embedding_payload(job.payload)
        if isinstance(payload, ModelUpdateCheckPayload):
            result = self._run(self.indexer, job, dict(job.payload))
            enqueued = [
                self.queue.enqueue(
                    QueueName.EMBEDDING,
                    {"content_type": item["content_type"], "content_id": item["content_id"]},
                    EnqueueOptions(
                        name="reembed",
                        dedup_key=(
                            f"reembed:{result['model_id']}:{item['content_type']}:"
                            f"{item['content_id']}@{payload.timestamp}"
                        ),
                    ),
                )
                for item in result["stale_items"]
                if item["content_type"] in _EMBEDDABLE_TYPES
            ]
            logger.info(
                "Model update check found %s stale item(s); enqueued %s re-embed job(s)",
                len(result["stale_items"]),
                len(enqueued),
            )
            return {
                "status": PROCESSED,
                "model_id": result["model_id"],
                "stale_count": len(result["stale_items"]),
                "enqueued_job_ids": enqueued,
            }

        result = self._run(
            self.indexer,
            job,
            {"content_type": payload.content_type.value, "content_id": payload.content_id},
        )
        return {"status": PROCESSED, **result}

    def handle_ingestion(self, job: JobView) -> dict[str, Any]:
        payload = parse_ingestion_payload(job.payload)
        result = self._run(self.analyst, job, {"batch_id": payload.batch_id})
        enqueued: list[str] = []
        for chunk_id in result["chunk_ids"]:
            content_type, _, content_id = chunk_id.partition(":")
            enqueued.append(
                self.queue.enqueue(
                    QueueName.EMBEDDING,
                    {"content_type": content_type, "content_id": content_id},
                    EnqueueOptions(
                        name="embed-chunk",
                        dedup_key=f"ingest:{payload.batch_id}:{chunk_id}",
                    ),
                ),
            )
        return {"status": PROCESSED, **result, "embedding_job_ids": enqueued}

    def handle_insight(self, job: JobView) -> dict[str, Any]:
        payload = parse_insight_payload(job.payload)
        if payload.user_id is not None:
            result = self._run_insight(
                job,
                user_id=payload.user_id,
                insight_type=payload.insight_type or InsightType.SUMMARY_GENERATION,
                payload=payload,
            )
            return {"status": PROCESSED, "insights": [result]}

        insight_types = (
            [payload.insight_type] if payload.insight_type is not None else list(InsightType)
        )
        insights = [
            self._run_insight(job, user_id=user_id, insight_type=insight_type, payload=payload)
            for user_id in self.store.list_user_ids()
            for insight_type in insight_types
        ]
        logger.info("Insight sweep %s produced %s insight(s)", job.job_id, len(insights))
        return {"status": PROCESSED, "insights": insights}

    def _run_insight(
        self,
        job: JobView,
        *,
        user_id: str,
        insight_type: InsightType,
        payload: InsightJobPayload,
    ) -> dict[str, Any]:
        agent_payload: dict[str, Any] = {"user_id": user_id, "insight_type": insight_type.value}
        if payload.topic is not None:
            agent_payload["topic"] = payload.topic
        if payload.data_ids is not None:
            agent_payload["data_ids"] = payload.data_ids
        result = self._run(self.insight_engine, job, agent_payload, user_id=user_id)
        return {
            "user_id": user_id,
            "insight_type": insight_type.value,
            "insight_id": result["insight_id"],
            "title": result["title"],
        }

    def _run(
        self,
        agent: BaseAgent,
        job: JobView,
        payload: dict[str, Any],
        *,
        user_id: str = DEFAULT_USER_ID,
    ) -> dict[str, Any]:
        output = agent.process(
            AgentInput(
                request_id=job.job_id,
                user_id=user_id,
                payload=payload,
                region=self.region,
            ),
        )
        if output.error is not None:
            raise AgentProcessingError(
                code=output.error.code,
                message=output.error.message,
                retryable=output.error.retryable,
            )
        return output.result or {}


_EMBEDDABLE_TYPES = frozenset(item.value for item in ContentType)


def build_handlers(
    *,
    queue: JobQueue,
    store: ContentStore,
    registry: ToolRegistry,
    settings: AgentSettings,
) -> dict[QueueName, JobHandler]:
    """Handler per queue name, sharing one agent set."""

    handlers = JobHandlers(queue=queue, store=store, registry=registry, settings=settings)
    return {queue_name: handlers.for_queue(queue_name) for queue_name in QueueName}
