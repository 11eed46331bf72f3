"""Agents: stateless processing units composing registry tools."""

from cognitive_hub.agents.base import (
    AgentInput,
    AgentMetadata,
    AgentOutput,
    AgentStatus,
    BaseAgent,
    ErrorInfo,
)
from cognitive_hub.agents.embedding import EmbeddingIndexer
from cognitive_hub.agents.ingestion import IngestionAnalyst
from cognitive_hub.agents.insight import InsightEngine, InsightType
from cognitive_hub.agents.ontology import OntologyAction, OntologySteward
from cognitive_hub.agents.retrieval import RetrievalPlanner

__all__ = [
    "AgentInput",
    "AgentMetadata",
    "AgentOutput",
    "AgentStatus",
    "BaseAgent",
    "EmbeddingIndexer",
    "ErrorInfo",
    "IngestionAnalyst",
    "InsightEngine",
    "InsightType",
    "OntologyAction",
    "OntologySteward",
    "RetrievalPlanner",
]
