import sqlite3
from pathlib import Path

import allure

from cognitive_hub.jobs.queue import JobQueue
from cognitive_hub.storage.content_store import ContentStore

pytestmark = [
    allure.epic("Storage"),
    allure.feature("Schema Migrations"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    db_path = tmp_path / "migrations.db"
    store = ContentStore(db_path)
    store.init_schema()
    store.close()

    connection = sqlite3.connect(db_path)
    try:
        row = connection.execute("SELECT version_num FROM alembic_version LIMIT 1").fetchone()
        assert row is not None
        assert str(row[0]) == "20261019_0001"

        tables = connection.execute(
            """
            SELECT name
            FROM sqlite_master
            WHERE type = 'table' AND name != 'alembic_version'
            ORDER BY name
            """
        ).fetchall()
        assert [str(name) for (name,) in tables] == [
            "concept_links",
            "content_items",
            "embeddings",
            "ingestion_batches",
            "insights",
            "job_events",
            "job_schedules",
            "jobs",
            "ontology_changes",
        ]
    finally:
        connection.close()


def test_queue_and_store_share_one_migrated_database(tmp_path: Path) -> None:
    db_path = tmp_path / "shared.db"
    queue = JobQueue(db_path)
    queue.init_schema()
    store = ContentStore(db_path)
    store.init_schema()

    job_id = queue.enqueue("ingestion", {"batch_id": "batch-1"})
    store.upsert_content_item(content_type="media_text", content_id="doc-1", text="hello")

    assert queue.get_job(job_id) is not None
    assert store.get_content_item(content_type="media_text", content_id="doc-1") is not None
    queue.close()
    store.close()
