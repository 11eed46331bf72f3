"""Concept graph tools: graph search, link proposals, concept checks, schema changes."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from cognitive_hub.errors import PermanentToolError
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools.base import Tool, ToolContext, ToolManifest
from cognitive_hub.tools.embedding import tokenize

CONCEPT = "concept"
_MIN_TERM_LENGTH = 3


def link_id(source_concept: str, relation: str, target_concept: str) -> str:
    return f"{source_concept}-[{relation}]->{target_concept}"


class GraphSearchTool(Tool):
    manifest = ToolManifest(
        name="graph-search",
        version="1.0.0",
        description="Match concepts by query terms and expand one hop along concept links.",
        capabilities=frozenset({"graph_search"}),
        categories=("data_retrieval", "knowledge_graph"),
        input_schema={
            "query": "free text",
            "user_id": "owner of the concept graph",
            "limit": "max results",
        },
        output_schema={"results": "list of {id, via}"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        user_id = str(payload["user_id"])
        limit = int(payload["limit"])
        terms = {term for term in tokenize(str(payload["query"])) if len(term) >= _MIN_TERM_LENGTH}
        if not terms or limit <= 0:
            return {"results": []}

        seeds = [
            record.content_id
            for record in self.store.list_content_items(user_id=user_id, content_type=CONCEPT)
            if terms & set(tokenize(record.text))
        ]
        results: list[dict[str, Any]] = [
            {"id": f"{CONCEPT}:{concept}", "via": "match"} for concept in seeds
        ]
        seen = set(seeds)
        if seeds:
            for link in self.store.list_concept_links(user_id=user_id, concepts=seeds):
                for neighbour in (link.source_concept, link.target_concept):
                    if neighbour not in seen:
                        seen.add(neighbour)
                        results.append({"id": f"{CONCEPT}:{neighbour}", "via": link.relation})
        return {"results": results[:limit]}


class ConceptLinkTool(Tool):
    manifest = ToolManifest(
        name="concept-link",
        version="1.0.0",
        description="Propose (upsert) a typed link between two concepts.",
        capabilities=frozenset({"ontology_write"}),
        categories=("knowledge_graph",),
        input_schema={
            "user_id": "owner",
            "source_concept": "concept id",
            "target_concept": "concept id",
            "relation": "optional relation label",
            "confidence": "optional float in [0, 1]",
        },
        output_schema={"link_id": "stable link id", "status": "link status"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if errors:
            return errors
        if payload["source_concept"] == payload["target_concept"]:
            errors.append("A concept cannot be linked to itself.")
        confidence = payload.get("confidence", 0.5)
        if not isinstance(confidence, int | float) or not 0 <= confidence <= 1:
            errors.append("confidence must be a number in [0, 1].")
        return errors

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        relation = str(payload.get("relation") or "related_to")
        link = self.store.upsert_concept_link(
            user_id=str(payload["user_id"]),
            source_concept=str(payload["source_concept"]),
            target_concept=str(payload["target_concept"]),
            relation=relation,
            confidence=float(payload.get("confidence", 0.5)),
        )
        return {
            "link_id": link_id(link.source_concept, link.relation, link.target_concept),
            "status": link.status,
        }


class ConceptValidateTool(Tool):
    manifest = ToolManifest(
        name="concept-validate",
        version="1.0.0",
        description="Check that a concept exists and is connected to the graph.",
        capabilities=frozenset({"ontology_read"}),
        categories=("knowledge_graph",),
        input_schema={"user_id": "owner", "concept_id": "concept id"},
        output_schema={
            "concept_id": "concept id",
            "validation_status": "valid|isolated|not_found",
        },
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        concept_id = str(payload["concept_id"])
        record = self.store.get_content_item(content_type=CONCEPT, content_id=concept_id)
        if record is None or record.user_id != payload["user_id"]:
            return {"concept_id": concept_id, "validation_status": "not_found", "link_count": 0}
        links = self.store.list_concept_links(user_id=record.user_id, concepts=[concept_id])
        return {
            "concept_id": concept_id,
            "validation_status": "valid" if links else "isolated",
            "link_count": len(links),
        }


class SchemaEvolveTool(Tool):
    manifest = ToolManifest(
        name="schema-evolve",
        version="1.0.0",
        description="Record an ontology schema change exactly once.",
        capabilities=frozenset({"ontology_write"}),
        categories=("knowledge_graph",),
        input_schema={"user_id": "owner", "change": "object with at least `kind`"},
        output_schema={"change_key": "content hash of the change", "applied": "bool"},
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if errors:
            return errors
        change = payload["change"]
        if not isinstance(change, Mapping) or not isinstance(change.get("kind"), str):
            errors.append("change must be an object with a string `kind`.")
        return errors

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        change = dict(payload["change"])
        user_id = str(payload["user_id"])
        try:
            canonical = json.dumps(
                {"user_id": user_id, "change": change},
                sort_keys=True,
                ensure_ascii=False,
            )
        except TypeError as error:
            raise PermanentToolError(f"Change is not JSON serializable: {error}") from error
        change_key = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:24]
        applied = self.store.record_ontology_change(
            change_key=change_key,
            user_id=user_id,
            kind=change["kind"],
            details=change,
        )
        return {"change_key": change_key, "applied": applied}
