from __future__ import annotations

import allure

from cognitive_hub.agents import (
    EmbeddingIndexer,
    IngestionAnalyst,
    InsightEngine,
    OntologySteward,
    RetrievalPlanner,
)
from cognitive_hub.agents.base import AgentInput, AgentStatus
from cognitive_hub.agents.embedding import MODEL_UPDATE_CHECK
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools.registry import ToolRegistry

pytestmark = [
    allure.epic("Agents & Tools"),
    allure.feature("Agent Workflows"),
]

MODEL_ID = "hash-embed-v1"


def _input(payload: dict[str, object], *, user_id: str = "alice") -> AgentInput:
    return AgentInput(request_id="req-1", user_id=user_id, payload=payload)


def _seed_documents(store: ContentStore) -> None:
    store.upsert_content_item(
        content_type="media_text",
        content_id="doc-1",
        text="Vector search with embeddings.",
        user_id="alice",
        batch_id="batch-1",
    )
    store.upsert_content_item(
        content_type="media_text",
        content_id="doc-2",
        text="Gardening tips for tomatoes. Water them early.",
        user_id="alice",
        batch_id="batch-1",
    )


def test_embedding_indexer_embeds_one_item(registry: ToolRegistry, store: ContentStore) -> None:
    _seed_documents(store)
    indexer = EmbeddingIndexer(registry, store, model_id=MODEL_ID)

    output = indexer.process(_input({"content_type": "media_text", "content_id": "doc-1"}))

    assert output.status is AgentStatus.SUCCESS
    assert output.result == {
        "content_type": "media_text",
        "content_id": "doc-1",
        "model_id": MODEL_ID,
        "dimensions": 32,
    }
    assert output.metadata.tool_calls == ["content-fetch", "text-embedding", "embedding-upsert"]
    [embedding] = store.list_embeddings(model_id=MODEL_ID)
    assert embedding.user_id == "alice"


def test_embedding_indexer_missing_content_is_permanent(registry: ToolRegistry) -> None:
    indexer = EmbeddingIndexer(registry, model_id=MODEL_ID)

    output = indexer.process(_input({"content_type": "chunk", "content_id": "ghost"}))

    assert output.error is not None
    assert output.error.code == "tool_execution_failed"
    assert output.error.tool_name == "content-fetch"
    assert output.error.retryable is False


def test_embedding_indexer_model_update_check_lists_stale_items(
    registry: ToolRegistry,
    store: ContentStore,
) -> None:
    _seed_documents(store)
    indexer = EmbeddingIndexer(registry, store, model_id=MODEL_ID)
    indexer.process(_input({"content_type": "media_text", "content_id": "doc-1"}))

    output = indexer.process(
        _input({"type": MODEL_UPDATE_CHECK, "timestamp": "2026-10-18T03:00:00+00:00"}),
    )

    assert output.result == {
        "model_id": MODEL_ID,
        "stale_items": [{"content_type": "media_text", "content_id": "doc-2"}],
    }


def test_ingestion_analyst_chunks_batch_and_is_replay_safe(
    registry: ToolRegistry,
    store: ContentStore,
) -> None:
    _seed_documents(store)
    analyst = IngestionAnalyst(registry, store)

    first = analyst.process(_input({"batch_id": "batch-1"}))
    replay = analyst.process(_input({"batch_id": "batch-1"}))

    assert first.result == {
        "batch_id": "batch-1",
        "chunk_ids": ["chunk:doc-1-0", "chunk:doc-2-0"],
        "item_count": 2,
    }
    assert replay.result == first.result
    chunks = store.list_content_items(content_type="chunk")
    assert [chunk.item_id for chunk in chunks] == ["chunk:doc-1-0", "chunk:doc-2-0"]
    assert chunks[1].text == "Gardening tips for tomatoes. Water them early."
    batch = store.get_batch(batch_id="batch-1")
    assert batch is not None
    assert batch.status == "processed"
    assert batch.item_count == 2


def test_ingestion_analyst_requires_batch_id(registry: ToolRegistry) -> None:
    output = IngestionAnalyst(registry).process(_input({}))
    assert output.error is not None
    assert output.error.code == "invalid_payload"


def test_retrieval_planner_merges_vector_and_graph_hits(
    registry: ToolRegistry,
    store: ContentStore,
) -> None:
    _seed_documents(store)
    indexer = EmbeddingIndexer(registry, store, model_id=MODEL_ID)
    for content_id in ("doc-1", "doc-2"):
        indexer.process(_input({"content_type": "media_text", "content_id": content_id}))
    store.upsert_content_item(
        content_type="concept",
        content_id="vectors",
        text="Embeddings and vectors",
        user_id="alice",
    )
    planner = RetrievalPlanner(registry, store)

    output = planner.process(_input({"query": "embeddings search", "user_id": "alice"}))

    assert output.status is AgentStatus.SUCCESS
    assert output.result is not None
    retrieved = output.result["retrieved_item_ids"]
    assert retrieved[0] == "media_text:doc-1"
    assert "concept:vectors" in retrieved
    assert len(retrieved) == len(set(retrieved))
    assert output.result["retrieval_summary"].startswith(
        f'Retrieved {len(retrieved)} item(s) for query "embeddings search"',
    )
    assert output.metadata.tool_calls == ["text-embedding", "vector-search", "graph-search"]


def test_retrieval_planner_honours_limits_and_content_types(
    registry: ToolRegistry,
    store: ContentStore,
) -> None:
    _seed_documents(store)
    EmbeddingIndexer(registry, store, model_id=MODEL_ID).process(
        _input({"content_type": "media_text", "content_id": "doc-1"}),
    )
    store.upsert_content_item(
        content_type="concept",
        content_id="vectors",
        text="Embeddings and vectors",
        user_id="alice",
    )
    planner = RetrievalPlanner(registry, store)

    capped = planner.process(
        _input({"query": "embeddings search", "user_id": "alice", "max_results": 1}),
    )
    concepts_only = planner.process(
        _input(
            {
                "query": "embeddings search",
                "user_id": "alice",
                "retrieval_constraints": {"content_types": ["concept"]},
            },
        ),
    )

    assert capped.result is not None
    assert capped.result["retrieved_item_ids"] == ["media_text:doc-1"]
    assert concepts_only.result is not None
    assert concepts_only.result["retrieved_item_ids"] == ["concept:vectors"]


def test_retrieval_planner_requires_query(registry: ToolRegistry) -> None:
    output = RetrievalPlanner(registry).process(_input({"user_id": "alice"}))
    assert output.error is not None
    assert output.error.code == "invalid_payload"


def test_retrieval_planner_rejects_malformed_content_types(registry: ToolRegistry) -> None:
    output = RetrievalPlanner(registry).process(
        _input(
            {
                "query": "volcanoes",
                "user_id": "u1",
                "retrieval_constraints": {"content_types": 5},
            },
        ),
    )

    assert output.request_id == "req-1"
    assert output.result is None
    assert output.error is not None
    assert output.error.code == "invalid_payload"
    assert "content_types must be a list of strings" in output.error.message
    assert output.metadata.tool_calls == []


def test_ontology_steward_links_and_validates_concepts(
    registry: ToolRegistry,
    store: ContentStore,
) -> None:
    for concept in ("ml", "ai", "poetry"):
        store.upsert_content_item(
            content_type="concept",
            content_id=concept,
            text=concept,
            user_id="alice",
        )
    steward = OntologySteward(registry, store)

    proposed = steward.process(
        _input(
            {
                "action": "propose_link",
                "user_id": "alice",
                "data": {"source_concept": "ml", "target_concept": "ai", "confidence": 0.9},
            },
        ),
    )
    linked = steward.process(
        _input({"action": "validate_concept", "user_id": "alice", "data": {"concept_id": "ml"}}),
    )
    isolated = steward.process(
        _input(
            {"action": "validate_concept", "user_id": "alice", "data": {"concept_id": "poetry"}},
        ),
    )
    missing = steward.process(
        _input({"action": "validate_concept", "user_id": "alice", "data": {"concept_id": "x"}}),
    )

    assert proposed.result == {
        "result_summary": "Proposed link ml-[related_to]->ai.",
        "updated_entity_ids": ["ml-[related_to]->ai"],
        "validation_status": "proposed",
    }
    assert linked.result is not None
    assert linked.result["validation_status"] == "valid"
    assert linked.result["result_summary"] == "Concept ml is valid (1 link(s))."
    assert isolated.result is not None
    assert isolated.result["validation_status"] == "isolated"
    assert missing.result is not None
    assert missing.result["validation_status"] == "not_found"


def test_ontology_steward_schema_changes_apply_once(registry: ToolRegistry) -> None:
    steward = OntologySteward(registry)
    payload = {
        "action": "evolve_schema",
        "user_id": "alice",
        "data": {"kind": "add_relation", "name": "cites"},
    }

    first = steward.process(_input(payload))
    second = steward.process(_input(payload))

    assert first.result is not None
    assert second.result is not None
    assert first.result["validation_status"] == "applied"
    assert second.result["validation_status"] == "already_applied"
    assert first.result["updated_entity_ids"] == second.result["updated_entity_ids"]


def test_ontology_steward_unknown_action_is_a_noop(registry: ToolRegistry) -> None:
    output = OntologySteward(registry).process(_input({"action": "merge_everything"}))

    assert output.status is AgentStatus.SUCCESS
    assert output.result is not None
    assert output.result["validation_status"] == "unknown_action"
    assert output.result["updated_entity_ids"] == []
    assert output.metadata.tool_calls == []


def test_ontology_steward_requires_data_object(registry: ToolRegistry) -> None:
    output = OntologySteward(registry).process(
        _input({"action": "propose_link", "user_id": "alice", "data": "ml->ai"}),
    )
    assert output.error is not None
    assert output.error.code == "invalid_payload"


def test_insight_engine_stores_one_insight_per_input_identity(
    registry: ToolRegistry,
    store: ContentStore,
) -> None:
    _seed_documents(store)
    engine = InsightEngine(registry, store)
    payload = {"user_id": "alice", "insight_type": "summary_generation"}

    first = engine.process(_input(payload))
    replay = engine.process(_input(payload))

    assert first.result is not None
    assert replay.result is not None
    assert first.result["insight_id"] == replay.result["insight_id"]
    assert first.result["title"] == "Summary of 2 items"
    assert first.result["raw_insight_data"]["item_ids"] == [
        "media_text:doc-1",
        "media_text:doc-2",
    ]
    assert len(store.list_insights(user_id="alice")) == 1


def test_insight_engine_filters_by_topic_and_data_ids(
    registry: ToolRegistry,
    store: ContentStore,
) -> None:
    _seed_documents(store)
    engine = InsightEngine(registry, store)

    by_topic = engine.process(
        _input({"user_id": "alice", "insight_type": "pattern_detection", "topic": "tomatoes"}),
    )
    by_ids = engine.process(
        _input(
            {
                "user_id": "alice",
                "insight_type": "anomaly_detection",
                "data_ids": ["media_text:doc-1", "media_text:gone"],
            },
        ),
    )

    assert by_topic.result is not None
    assert by_topic.result["raw_insight_data"]["item_ids"] == ["media_text:doc-2"]
    assert by_topic.result["title"] == "tomatoes: Recurring patterns"
    assert by_ids.result is not None
    assert by_ids.result["raw_insight_data"]["missing_ids"] == ["media_text:gone"]


def test_insight_engine_unknown_insight_type_is_a_noop(
    registry: ToolRegistry,
    store: ContentStore,
) -> None:
    output = InsightEngine(registry, store).process(
        _input({"user_id": "alice", "insight_type": "horoscope"}),
    )

    assert output.status is AgentStatus.SUCCESS
    assert output.result is not None
    assert output.result["validation_status"] == "unknown_insight_type"
    assert output.result["insight_id"] is None
    assert "horoscope" in output.result["summary"]
    assert output.metadata.tool_calls == []
    assert store.list_insights(user_id="alice") == []
