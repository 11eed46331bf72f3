"""Embedding tools: deterministic hashed embeddings and cosine vector search."""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Mapping
from typing import Any

from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.storage.sqlmodel_models import DEFAULT_USER_ID
from cognitive_hub.tools.base import Tool, ToolContext, ToolManifest

_TOKEN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    return [token.lower() for token in _TOKEN.findall(text)]


def hashed_embedding(text: str, *, dimensions: int) -> list[float]:
    """Signed feature hashing of lowercase tokens, L2-normalized."""

    vector = [0.0] * dimensions
    for token in tokenize(text):
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        bucket = int.from_bytes(digest[:4], "big") % dimensions
        sign = 1.0 if digest[4] & 1 else -1.0
        vector[bucket] += sign
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return vector
    return [value / norm for value in vector]


def cosine_similarity(left: list[float], right: list[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right, strict=True))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0 or right_norm == 0:
        return 0.0
    return dot / (left_norm * right_norm)


class TextEmbeddingTool(Tool):
    manifest = ToolManifest(
        name="text-embedding",
        version="1.0.0",
        description="Embed text into a fixed-size vector.",
        capabilities=frozenset({"text_embedding"}),
        categories=("embedding",),
        input_schema={"text": "text to embed"},
        output_schema={"vector": "list of floats", "model_id": "embedding model id"},
    )

    def __init__(self, *, model_id: str, dimensions: int) -> None:
        self.model_id = model_id
        self.dimensions = dimensions

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if not errors and not isinstance(payload["text"], str):
            errors.append("text must be a string.")
        return errors

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        return {
            "vector": hashed_embedding(payload["text"], dimensions=self.dimensions),
            "model_id": self.model_id,
            "dimensions": self.dimensions,
            "metadata": {"model_used": self.model_id},
        }


class EmbeddingUpsertTool(Tool):
    manifest = ToolManifest(
        name="embedding-upsert",
        version="1.0.0",
        description="Store the embedding of one content item, replacing any previous one.",
        capabilities=frozenset({"vector_write"}),
        categories=("embedding", "data_storage"),
        input_schema={
            "content_type": "content type",
            "content_id": "content id",
            "vector": "list of floats",
            "model_id": "embedding model id",
            "user_id": "optional owner",
        },
        output_schema={"item_id": "content_type:content_id"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if errors:
            return errors
        vector = payload["vector"]
        if not isinstance(vector, list) or not vector:
            errors.append("vector must be a non-empty list of numbers.")
        elif not all(isinstance(value, int | float) for value in vector):
            errors.append("vector must contain only numbers.")
        return errors

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        self.store.upsert_embedding(
            content_type=payload["content_type"],
            content_id=payload["content_id"],
            model_id=payload["model_id"],
            vector=[float(value) for value in payload["vector"]],
            user_id=payload.get("user_id") or context.user_id or DEFAULT_USER_ID,
        )
        return {"item_id": f"{payload['content_type']}:{payload['content_id']}"}


class VectorSearchTool(Tool):
    manifest = ToolManifest(
        name="vector-search",
        version="1.0.0",
        description="Cosine similarity search over stored embeddings.",
        capabilities=frozenset({"vector_search"}),
        categories=("data_retrieval", "vector_search"),
        input_schema={
            "query_vector": "list of floats",
            "top_k": "max results",
            "user_id": "optional owner filter",
            "content_types": "optional list of content types",
            "min_score": "optional similarity floor",
        },
        output_schema={"results": "list of {id, score}"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if errors:
            return errors
        if not isinstance(payload["query_vector"], list):
            errors.append("query_vector must be a list of numbers.")
        top_k = payload["top_k"]
        if not isinstance(top_k, int) or top_k < 0:
            errors.append("top_k must be a non-negative integer.")
        return errors

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        query_vector = [float(value) for value in payload["query_vector"]]
        content_types = payload.get("content_types")
        min_score = float(payload.get("min_score", 0.0))
        scored: list[tuple[float, str]] = []
        for record in self.store.list_embeddings(user_id=payload.get("user_id")):
            if len(record.vector) != len(query_vector):
                continue
            if content_types and record.content_type not in content_types:
                continue
            score = cosine_similarity(query_vector, record.vector)
            if score > min_score:
                scored.append((score, record.item_id))
        scored.sort(key=lambda pair: (-pair[0], pair[1]))
        return {
            "results": [
                {"id": item_id, "score": round(score, 6)}
                for score, item_id in scored[: payload["top_k"]]
            ],
        }


class StaleEmbeddingsTool(Tool):
    manifest = ToolManifest(
        name="stale-embeddings",
        version="1.0.0",
        description="List content items without an embedding from the current model.",
        capabilities=frozenset({"embedding_maintenance"}),
        categories=("embedding",),
        input_schema={"model_id": "current embedding model id"},
        output_schema={"items": "list of {content_type, content_id}"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        records = self.store.list_stale_content(model_id=str(payload["model_id"]))
        return {
            "items": [
                {"content_type": record.content_type, "content_id": record.content_id}
                for record in records
            ],
        }
