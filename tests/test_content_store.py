from __future__ import annotations

import allure
import pytest

from cognitive_hub.storage.content_store import ContentStore

pytestmark = [
    allure.epic("Storage"),
    allure.feature("Content Store"),
]


def test_upsert_content_item_is_keyed_by_type_and_id(store: ContentStore) -> None:
    first = store.upsert_content_item(
        content_type="media_text",
        content_id="doc-1",
        text="first",
        user_id="alice",
        batch_id="batch-1",
    )
    second = store.upsert_content_item(
        content_type="media_text",
        content_id="doc-1",
        text="second",
        user_id="alice",
    )

    assert first.item_id == second.item_id == "media_text:doc-1"
    items = store.list_content_items(user_id="alice")
    assert len(items) == 1
    assert items[0].text == "second"
    # batch membership survives an update without batch_id
    assert items[0].batch_id == "batch-1"


def test_list_user_ids_is_sorted_and_distinct(store: ContentStore) -> None:
    for user_id, content_id in (("bob", "1"), ("alice", "2"), ("bob", "3")):
        store.upsert_content_item(
            content_type="media_text",
            content_id=content_id,
            text="x",
            user_id=user_id,
        )
    assert store.list_user_ids() == ["alice", "bob"]


def test_embeddings_round_trip_and_stale_detection(store: ContentStore) -> None:
    store.upsert_content_item(content_type="chunk", content_id="a-0", text="alpha")
    store.upsert_content_item(content_type="chunk", content_id="b-0", text="beta")
    store.upsert_embedding(
        content_type="chunk",
        content_id="a-0",
        model_id="model-v1",
        vector=[0.5, -0.25, 1.0],
    )

    [record] = store.list_embeddings(model_id="model-v1")
    assert record.item_id == "chunk:a-0"
    assert record.vector == pytest.approx([0.5, -0.25, 1.0])

    stale_v1 = store.list_stale_content(model_id="model-v1")
    stale_v2 = store.list_stale_content(model_id="model-v2")
    assert [item.item_id for item in stale_v1] == ["chunk:b-0"]
    assert [item.item_id for item in stale_v2] == ["chunk:a-0", "chunk:b-0"]


def test_concept_links_filter_rejected_and_by_concept(store: ContentStore) -> None:
    store.upsert_concept_link(
        user_id="alice",
        source_concept="ml",
        target_concept="ai",
        relation="part_of",
        confidence=0.9,
    )
    store.upsert_concept_link(
        user_id="alice",
        source_concept="ml",
        target_concept="stats",
        relation="related_to",
        confidence=0.2,
        status="rejected",
    )
    store.upsert_concept_link(
        user_id="alice",
        source_concept="cooking",
        target_concept="food",
        relation="related_to",
        confidence=0.5,
    )

    linked = store.list_concept_links(user_id="alice", concepts=["ml"])
    assert [(link.source_concept, link.target_concept) for link in linked] == [("ml", "ai")]
    everything = store.list_concept_links(user_id="alice", include_rejected=True)
    assert len(everything) == 3
    assert store.list_concept_links(user_id="bob") == []


def test_record_ontology_change_applies_once(store: ContentStore) -> None:
    kwargs = {"change_key": "k1", "user_id": "alice", "kind": "add_relation", "details": {}}
    assert store.record_ontology_change(**kwargs) is True
    assert store.record_ontology_change(**kwargs) is False


def test_upsert_insight_returns_stored_row_on_replay(store: ContentStore) -> None:
    first = store.upsert_insight(
        content_key="key-1",
        user_id="alice",
        insight_type="summary_generation",
        title="Summary",
        summary="One",
        raw={"findings": []},
    )
    replay = store.upsert_insight(
        content_key="key-1",
        user_id="alice",
        insight_type="summary_generation",
        title="Different title",
        summary="Two",
        raw={},
    )

    assert replay.insight_id == first.insight_id
    assert replay.title == "Summary"
    assert len(store.list_insights(user_id="alice")) == 1
    assert store.get_insight(insight_id=first.insight_id) is not None


def test_batch_lifecycle(store: ContentStore) -> None:
    store.upsert_batch(batch_id="batch-1", user_id="alice")
    store.mark_batch_processed(batch_id="batch-1", item_count=4)

    batch = store.get_batch(batch_id="batch-1")
    assert batch is not None
    assert batch.status == "processed"
    assert batch.item_count == 4
    assert batch.processed_at is not None

    with pytest.raises(RuntimeError, match="Batch not found"):
        store.mark_batch_processed(batch_id="missing", item_count=1)
