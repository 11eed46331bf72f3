"""Content store tools: fetch, upsert, chunk, and batch bookkeeping."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from cognitive_hub.errors import PermanentToolError
from cognitive_hub.storage.content_store import ContentRecord, ContentStore
from cognitive_hub.storage.sqlmodel_models import DEFAULT_USER_ID
from cognitive_hub.tools.base import Tool, ToolContext, ToolManifest

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def split_item_id(item_id: str) -> tuple[str, str]:
    """Split `content_type:content_id`; the id part may itself contain colons."""

    content_type, separator, content_id = item_id.partition(":")
    if not separator or not content_type or not content_id:
        raise PermanentToolError(f"Malformed item id: {item_id!r}")
    return content_type, content_id


class ContentFetchTool(Tool):
    manifest = ToolManifest(
        name="content-fetch",
        version="1.0.0",
        description="Load content items by id, batch, or owner.",
        capabilities=frozenset({"content_read"}),
        categories=("data_retrieval",),
        input_schema={
            "item_ids": "optional list of content_type:content_id",
            "batch_id": "optional ingestion batch id",
            "user_id": "optional owner filter",
            "content_type": "optional content type filter",
            "require_all": "optional bool; fail permanently when an item id is missing",
        },
        output_schema={"items": "list of {id, content_type, content_id, user_id, text}"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if errors:
            return errors
        if not any(key in payload for key in ("item_ids", "batch_id", "user_id")):
            return ["One of item_ids, batch_id or user_id is required."]
        item_ids = payload.get("item_ids")
        if item_ids is not None and (
            not isinstance(item_ids, list) or not all(isinstance(v, str) for v in item_ids)
        ):
            return ["item_ids must be a list of strings."]
        return []

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        item_ids = payload.get("item_ids")
        if item_ids is None:
            records = self.store.list_content_items(
                user_id=payload.get("user_id"),
                batch_id=payload.get("batch_id"),
                content_type=payload.get("content_type"),
            )
            return {"items": [_item_dict(record) for record in records], "missing_ids": []}

        items: list[dict[str, Any]] = []
        missing: list[str] = []
        for item_id in item_ids:
            content_type, content_id = split_item_id(item_id)
            record = self.store.get_content_item(
                content_type=content_type,
                content_id=content_id,
            )
            if record is None:
                missing.append(item_id)
            else:
                items.append(_item_dict(record))
        if missing and payload.get("require_all"):
            raise PermanentToolError(f"Content not found: {', '.join(missing)}")
        return {"items": items, "missing_ids": missing}


class ContentUpsertTool(Tool):
    manifest = ToolManifest(
        name="content-upsert",
        version="1.0.0",
        description="Insert or update content items keyed by (content_type, content_id).",
        capabilities=frozenset({"content_write"}),
        categories=("data_storage",),
        input_schema={"items": "list of {content_type, content_id, text, user_id?, batch_id?}"},
        output_schema={"item_ids": "list of content_type:content_id"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if errors:
            return errors
        items = payload["items"]
        if not isinstance(items, list):
            return ["items must be a list."]
        for index, item in enumerate(items):
            if not isinstance(item, Mapping):
                return [f"items[{index}] must be an object."]
            for key in ("content_type", "content_id", "text"):
                if not isinstance(item.get(key), str):
                    errors.append(f"items[{index}].{key} must be a string.")
        return errors

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        item_ids: list[str] = []
        for item in payload["items"]:
            record = self.store.upsert_content_item(
                content_type=item["content_type"],
                content_id=item["content_id"],
                text=item["text"],
                user_id=item.get("user_id") or context.user_id or DEFAULT_USER_ID,
                batch_id=item.get("batch_id"),
            )
            item_ids.append(record.item_id)
        return {"item_ids": item_ids}


class TextChunkingTool(Tool):
    manifest = ToolManifest(
        name="text-chunking",
        version="1.0.0",
        description="Split text into sentence-aligned chunks of bounded size.",
        capabilities=frozenset({"text_chunking"}),
        categories=("text_processing",),
        input_schema={"text": "text to split", "max_chars": "optional positive int"},
        output_schema={"chunks": "list of chunk texts"},
    )

    def __init__(self, default_max_chars: int = 400) -> None:
        self.default_max_chars = default_max_chars

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if errors:
            return errors
        if not isinstance(payload["text"], str):
            errors.append("text must be a string.")
        max_chars = payload.get("max_chars")
        if max_chars is not None and (not isinstance(max_chars, int) or max_chars <= 0):
            errors.append("max_chars must be a positive integer.")
        return errors

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        max_chars = payload.get("max_chars") or self.default_max_chars
        return {"chunks": chunk_text(payload["text"], max_chars=max_chars)}


class BatchStatusTool(Tool):
    manifest = ToolManifest(
        name="batch-status",
        version="1.0.0",
        description="Register an ingestion batch and record that it was processed.",
        capabilities=frozenset({"batch_tracking"}),
        categories=("data_storage",),
        input_schema={"batch_id": "ingestion batch id", "item_count": "number of source items"},
        output_schema={"batch_id": "batch id", "status": "batch status"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        batch_id = str(payload["batch_id"])
        self.store.upsert_batch(batch_id=batch_id, user_id=context.user_id or DEFAULT_USER_ID)
        self.store.mark_batch_processed(batch_id=batch_id, item_count=int(payload["item_count"]))
        return {"batch_id": batch_id, "status": "processed"}


def chunk_text(text: str, *, max_chars: int) -> list[str]:
    """Greedy sentence packing; sentences longer than `max_chars` are split on words."""

    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_BOUNDARY.split(text.strip()):
        for piece in _split_long(sentence.strip(), max_chars):
            if not piece:
                continue
            candidate = f"{current} {piece}" if current else piece
            if len(candidate) <= max_chars:
                current = candidate
                continue
            if current:
                chunks.append(current)
            current = piece
    if current:
        chunks.append(current)
    return chunks


def _split_long(sentence: str, max_chars: int) -> list[str]:
    if len(sentence) <= max_chars:
        return [sentence]
    pieces: list[str] = []
    current = ""
    for word in sentence.split():
        while len(word) > max_chars:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(word[:max_chars])
            word = word[max_chars:]
        if not word:
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
        else:
            pieces.append(current)
            current = word
    if current:
        pieces.append(current)
    return pieces


def _item_dict(record: ContentRecord) -> dict[str, Any]:
    return {
        "id": record.item_id,
        "content_type": record.content_type,
        "content_id": record.content_id,
        "user_id": record.user_id,
        "text": record.text,
    }
