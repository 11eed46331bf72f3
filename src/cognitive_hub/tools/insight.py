"""Insight analysis tools and the insight persistence tool."""

from __future__ import annotations

import hashlib
import json
import statistics
from collections import Counter
from collections.abc import Mapping
from typing import Any

from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools.base import Tool, ToolContext, ToolManifest
from cognitive_hub.tools.embedding import tokenize

_STOPWORDS = frozenset(
    {
        "the", "and", "for", "that", "with", "this", "from", "are", "was", "were",
        "have", "has", "had", "but", "not", "you", "your", "they", "their", "its",
        "into", "about", "over", "than", "then", "there", "been", "will", "would",
    },
)  # fmt: skip
_ANALYSIS_OUTPUT = {
    "title": "short title",
    "summary": "one paragraph summary",
    "findings": "list of analysis findings",
}
_ANALYSIS_INPUT = {
    "items": "list of {id, text}",
    "topic": "optional topic label",
}
_SUMMARY_SENTENCES = 3
_ANOMALY_Z_SCORE = 2.0
_MIN_PATTERN_ITEMS = 2


class _AnalysisTool(Tool):
    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        errors = super().validate_input(payload)
        if errors:
            return errors
        items = payload["items"]
        if not isinstance(items, list):
            return ["items must be a list."]
        for index, item in enumerate(items):
            if not isinstance(item, Mapping) or not isinstance(item.get("text"), str):
                errors.append(f"items[{index}] must be an object with string `text`.")
        return errors


def _terms(text: str) -> list[str]:
    return [term for term in tokenize(text) if len(term) > 2 and term not in _STOPWORDS]


def _topic_prefix(payload: Mapping[str, Any]) -> str:
    topic = payload.get("topic")
    return f"{topic}: " if topic else ""


class PatternDetectionTool(_AnalysisTool):
    manifest = ToolManifest(
        name="pattern-detection",
        version="1.0.0",
        description="Find terms that recur across several items.",
        capabilities=frozenset({"pattern_detection"}),
        categories=("insight",),
        input_schema=_ANALYSIS_INPUT,
        output_schema=_ANALYSIS_OUTPUT,
    )

    def __init__(self, max_patterns: int = 5) -> None:
        self.max_patterns = max_patterns

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        occurrences: dict[str, set[str]] = {}
        for item in payload["items"]:
            for term in set(_terms(item["text"])):
                occurrences.setdefault(term, set()).add(str(item.get("id", "")))
        recurring = sorted(
            (
                (term, ids)
                for term, ids in occurrences.items()
                if len(ids) >= _MIN_PATTERN_ITEMS
            ),
            key=lambda pair: (-len(pair[1]), pair[0]),
        )[: self.max_patterns]
        findings = [
            {"term": term, "count": len(ids), "item_ids": sorted(ids)} for term, ids in recurring
        ]
        if findings:
            summary = "Recurring themes: " + ", ".join(
                f"{finding['term']} ({finding['count']} items)" for finding in findings
            )
        else:
            summary = "No recurring themes found."
        return {
            "title": f"{_topic_prefix(payload)}Recurring patterns",
            "summary": summary,
            "findings": findings,
        }


class SummaryGenerationTool(_AnalysisTool):
    manifest = ToolManifest(
        name="summary-generation",
        version="1.0.0",
        description="Extractive summary built from the leading sentences of each item.",
        capabilities=frozenset({"summary_generation"}),
        categories=("insight",),
        input_schema=_ANALYSIS_INPUT,
        output_schema=_ANALYSIS_OUTPUT,
    )

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        leads: list[str] = []
        for item in payload["items"]:
            sentence = item["text"].strip().split(". ")[0].strip()
            if sentence:
                leads.append(sentence.rstrip(".") + ".")
        counts = Counter(term for item in payload["items"] for term in _terms(item["text"]))
        key_terms = [term for term, _ in counts.most_common(5)]
        summary = " ".join(leads[:_SUMMARY_SENTENCES]) or "Nothing to summarize."
        return {
            "title": f"{_topic_prefix(payload)}Summary of {len(payload['items'])} items",
            "summary": summary,
            "findings": [{"key_terms": key_terms, "item_count": len(payload["items"])}],
        }


class AnomalyDetectionTool(_AnalysisTool):
    manifest = ToolManifest(
        name="anomaly-detection",
        version="1.0.0",
        description="Flag items whose length or vocabulary deviates from the rest.",
        capabilities=frozenset({"anomaly_detection"}),
        categories=("insight",),
        input_schema=_ANALYSIS_INPUT,
        output_schema=_ANALYSIS_OUTPUT,
    )

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        items = payload["items"]
        findings: list[dict[str, Any]] = []
        lengths = [len(item["text"]) for item in items]
        if len(lengths) >= 3:  # noqa: PLR2004
            mean = statistics.fmean(lengths)
            stdev = statistics.pstdev(lengths)
            for item, length in zip(items, lengths, strict=True):
                if stdev > 0 and abs(length - mean) / stdev >= _ANOMALY_Z_SCORE:
                    findings.append(
                        {
                            "item_id": item.get("id"),
                            "reason": "length_outlier",
                            "score": round(abs(length - mean) / stdev, 3),
                        },
                    )
        if len(items) >= 2:  # noqa: PLR2004
            vocabularies = [set(_terms(item["text"])) for item in items]
            for index, item in enumerate(items):
                others = set().union(*(v for i, v in enumerate(vocabularies) if i != index))
                if vocabularies[index] and not vocabularies[index] & others:
                    findings.append(
                        {"item_id": item.get("id"), "reason": "isolated_vocabulary", "score": 1.0},
                    )
        summary = (
            f"{len(findings)} anomalous item(s) detected."
            if findings
            else "No anomalies detected."
        )
        return {
            "title": f"{_topic_prefix(payload)}Anomaly scan",
            "summary": summary,
            "findings": findings,
        }


class InsightStoreTool(Tool):
    manifest = ToolManifest(
        name="insight-store",
        version="1.0.0",
        description="Persist an insight once per content identity and return its id.",
        capabilities=frozenset({"insight_write"}),
        categories=("insight", "data_storage"),
        input_schema={
            "user_id": "owner",
            "insight_type": "insight type",
            "identity": "object identifying the insight inputs",
            "title": "title",
            "summary": "summary",
            "raw_insight_data": "analysis output",
        },
        output_schema={
            "insight_id": "stable insight id",
            "title": "stored title",
            "summary": "stored summary",
            "raw_insight_data": "stored analysis output",
        },
    )

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        identity = json.dumps(payload["identity"], sort_keys=True, ensure_ascii=False)
        content_key = hashlib.sha256(identity.encode("utf-8")).hexdigest()
        record = self.store.upsert_insight(
            content_key=content_key,
            user_id=str(payload["user_id"]),
            insight_type=str(payload["insight_type"]),
            title=str(payload["title"]),
            summary=str(payload["summary"]),
            raw=dict(payload["raw_insight_data"]),
        )
        return {
            "insight_id": record.insight_id,
            "title": record.title,
            "summary": record.summary,
            "raw_insight_data": record.raw,
        }
