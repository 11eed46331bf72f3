"""IngestionAnalyst: splits the items of an ingestion batch into chunks."""

from __future__ import annotations

from typing import Any

from cognitive_hub.agents.base import AgentInput, BaseAgent, require_str
from cognitive_hub.tools.base import ToolContext

CHUNK = "chunk"


class IngestionAnalyst(BaseAgent):
    name = "IngestionAnalyst"
    tool_names = ("content-fetch", "text-chunking", "content-upsert", "batch-status")

    def handle(self, agent_input: AgentInput, context: ToolContext) -> dict[str, Any]:
        batch_id = require_str(agent_input.payload, "batch_id")
        fetched = self.execute_tool("content-fetch", {"batch_id": batch_id}, context)
        sources = [item for item in fetched["items"] if item["content_type"] != CHUNK]
        self.log("Processing batch", {"batch_id": batch_id, "items": len(sources)})

        chunk_ids: list[str] = []
        for source in sources:
            chunked = self.execute_tool("text-chunking", {"text": source["text"]}, context)
            chunks = chunked["chunks"]
            if not chunks:
                continue
            # Chunk ids derive from the source id so a replay overwrites, never appends.
            upserted = self.execute_tool(
                "content-upsert",
                {
                    "items": [
                        {
                            "content_type": CHUNK,
                            "content_id": f"{source['content_id']}-{index}",
                            "text": text,
                            "user_id": source["user_id"],
                            "batch_id": batch_id,
                        }
                        for index, text in enumerate(chunks)
                    ],
                },
                context,
            )
            chunk_ids.extend(upserted["item_ids"])

        self.execute_tool(
            "batch-status",
            {"batch_id": batch_id, "item_count": len(sources)},
            context,
        )
        return {"batch_id": batch_id, "chunk_ids": chunk_ids, "item_count": len(sources)}
