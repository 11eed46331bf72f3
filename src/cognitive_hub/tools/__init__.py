"""Tool contract, registry, and the built-in tool set."""

from __future__ import annotations

from cognitive_hub.config import AgentSettings
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools.base import Tool, ToolContext, ToolManifest, ToolOutcome
from cognitive_hub.tools.content import (
    BatchStatusTool,
    ContentFetchTool,
    ContentUpsertTool,
    TextChunkingTool,
)
from cognitive_hub.tools.embedding import (
    EmbeddingUpsertTool,
    StaleEmbeddingsTool,
    TextEmbeddingTool,
    VectorSearchTool,
)
from cognitive_hub.tools.graph import (
    ConceptLinkTool,
    ConceptValidateTool,
    GraphSearchTool,
    SchemaEvolveTool,
)
from cognitive_hub.tools.insight import (
    AnomalyDetectionTool,
    InsightStoreTool,
    PatternDetectionTool,
    SummaryGenerationTool,
)
from cognitive_hub.tools.registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolContext",
    "ToolManifest",
    "ToolOutcome",
    "ToolRegistry",
    "build_default_registry",
]


def build_default_registry(store: ContentStore, settings: AgentSettings) -> ToolRegistry:
    """Register every built-in tool once; call at process start-up."""

    registry = ToolRegistry()
    for tool in (
        ContentFetchTool(store),
        ContentUpsertTool(store),
        TextChunkingTool(default_max_chars=settings.chunk_max_chars),
        BatchStatusTool(store),
        TextEmbeddingTool(
            model_id=settings.embedding_model_id,
            dimensions=settings.embedding_dimensions,
        ),
        EmbeddingUpsertTool(store),
        VectorSearchTool(store),
        StaleEmbeddingsTool(store),
        GraphSearchTool(store),
        ConceptLinkTool(store),
        ConceptValidateTool(store),
        SchemaEvolveTool(store),
        PatternDetectionTool(),
        SummaryGenerationTool(),
        AnomalyDetectionTool(),
        InsightStoreTool(store),
    ):
        registry.register(tool)
    return registry
