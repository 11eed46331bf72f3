"""RetrievalPlanner: merges vector and graph candidates for a query."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cognitive_hub.agents.base import (
    AgentInput,
    BaseAgent,
    optional_positive_int,
    require_str,
)
from cognitive_hub.errors import PayloadValidationError
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools.base import ToolContext
from cognitive_hub.tools.registry import ToolRegistry

DEFAULT_MAX_RESULTS = 10


@dataclass(slots=True)
class RetrievalRequest:
    query: str
    user_id: str
    max_results: int
    retrieval_constraints: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        default_max_results: int,
    ) -> RetrievalRequest:
        constraints = payload.get("retrieval_constraints") or {}
        if not isinstance(constraints, Mapping):
            raise PayloadValidationError("retrieval_constraints must be an object.")
        content_types = constraints.get("content_types")
        if content_types is not None and (
            not isinstance(content_types, list)
            or not all(isinstance(item, str) for item in content_types)
        ):
            raise PayloadValidationError(
                "retrieval_constraints.content_types must be a list of strings.",
            )
        return cls(
            query=require_str(payload, "query"),
            user_id=require_str(payload, "user_id"),
            max_results=optional_positive_int(payload, "max_results") or default_max_results,
            retrieval_constraints=dict(constraints),
        )


class RetrievalPlanner(BaseAgent):
    """Embeds the query, runs vector and graph search, and merges the ids.

    Merge order is vector hits first, then graph hits, duplicates dropped; no
    scoring across the two sources until a ranking tool is composed in.
    """

    name = "RetrievalPlanner"
    tool_names = ("text-embedding", "vector-search", "graph-search")

    def __init__(
        self,
        registry: ToolRegistry,
        store: ContentStore | None = None,
        *,
        default_max_results: int = DEFAULT_MAX_RESULTS,
    ) -> None:
        super().__init__(registry, store)
        self.default_max_results = default_max_results

    def handle(self, agent_input: AgentInput, context: ToolContext) -> dict[str, Any]:
        request = RetrievalRequest.from_payload(
            agent_input.payload,
            default_max_results=self.default_max_results,
        )
        self.log(
            "Planning retrieval",
            {"query": request.query, "max_results": request.max_results},
        )
        content_types = request.retrieval_constraints.get("content_types")

        embedding = self.execute_tool("text-embedding", {"text": request.query}, context)
        vector_payload: dict[str, Any] = {
            "query_vector": embedding["vector"],
            "top_k": request.max_results,
            "user_id": request.user_id,
        }
        if content_types:
            vector_payload["content_types"] = list(content_types)
        if "min_score" in request.retrieval_constraints:
            vector_payload["min_score"] = request.retrieval_constraints["min_score"]
        vector_hits = self.execute_tool("vector-search", vector_payload, context)["results"]

        graph_hits = self.execute_tool(
            "graph-search",
            {"query": request.query, "user_id": request.user_id, "limit": request.max_results},
            context,
        )["results"]
        if content_types:
            graph_hits = [
                hit for hit in graph_hits if hit["id"].partition(":")[0] in content_types
            ]

        merged: list[str] = []
        for hit in [*vector_hits, *graph_hits]:
            if hit["id"] not in merged:
                merged.append(hit["id"])
        retrieved = merged[: request.max_results]
        summary = (
            f'Retrieved {len(retrieved)} item(s) for query "{request.query}" '
            f"({len(vector_hits)} vector, {len(graph_hits)} graph candidates)."
        )
        return {"retrieved_item_ids": retrieved, "retrieval_summary": summary}
