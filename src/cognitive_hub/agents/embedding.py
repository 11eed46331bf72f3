"""EmbeddingIndexer: embeds content items and reports stale embeddings."""

from __future__ import annotations

from typing import Any

from cognitive_hub.agents.base import AgentInput, BaseAgent, require_str
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools.base import ToolContext
from cognitive_hub.tools.registry import ToolRegistry

MODEL_UPDATE_CHECK = "model-update-check"


class EmbeddingIndexer(BaseAgent):
    name = "EmbeddingIndexer"
    tool_names = ("content-fetch", "text-embedding", "embedding-upsert", "stale-embeddings")

    def __init__(
        self,
        registry: ToolRegistry,
        store: ContentStore | None = None,
        *,
        model_id: str,
    ) -> None:
        super().__init__(registry, store)
        self.model_id = model_id

    def handle(self, agent_input: AgentInput, context: ToolContext) -> dict[str, Any]:
        payload = agent_input.payload
        if payload.get("type") == MODEL_UPDATE_CHECK:
            return self._check_model(context)

        content_type = require_str(payload, "content_type")
        content_id = require_str(payload, "content_id")
        fetched = self.execute_tool(
            "content-fetch",
            {"item_ids": [f"{content_type}:{content_id}"], "require_all": True},
            context,
        )
        item = fetched["items"][0]
        embedding = self.execute_tool("text-embedding", {"text": item["text"]}, context)
        self.execute_tool(
            "embedding-upsert",
            {
                "content_type": content_type,
                "content_id": content_id,
                "vector": embedding["vector"],
                "model_id": embedding["model_id"],
                "user_id": item["user_id"],
            },
            context,
        )
        self.log("Embedded content", {"content_type": content_type, "content_id": content_id})
        return {
            "content_type": content_type,
            "content_id": content_id,
            "model_id": embedding["model_id"],
            "dimensions": len(embedding["vector"]),
        }

    def _check_model(self, context: ToolContext) -> dict[str, Any]:
        stale = self.execute_tool(
            "stale-embeddings",
            {"model_id": self.model_id},
            context,
        )["items"]
        self.log("Model update check", {"model_id": self.model_id, "stale_items": len(stale)})
        return {"model_id": self.model_id, "stale_items": stale}
