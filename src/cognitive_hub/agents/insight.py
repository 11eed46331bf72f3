"""InsightEngine: runs one analysis over a user's content and stores the insight."""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any

from cognitive_hub.agents.base import (
    AgentInput,
    BaseAgent,
    optional_str,
    optional_str_list,
    require_str,
)
from cognitive_hub.tools.base import ToolContext
from cognitive_hub.tools.embedding import tokenize

UNKNOWN_INSIGHT_TYPE = "unknown_insight_type"


class InsightType(str, Enum):
    PATTERN_DETECTION = "pattern_detection"
    SUMMARY_GENERATION = "summary_generation"
    ANOMALY_DETECTION = "anomaly_detection"


_ANALYSIS_TOOL = {
    InsightType.PATTERN_DETECTION: "pattern-detection",
    InsightType.SUMMARY_GENERATION: "summary-generation",
    InsightType.ANOMALY_DETECTION: "anomaly-detection",
}


class InsightEngine(BaseAgent):
    """Insight ids are uuid4 values minted by the store on first write.

    A replay with the same inputs (same user, type, topic and item contents)
    maps to the same content key and gets the already stored insight back.
    """

    name = "InsightEngine"
    tool_names = (
        "content-fetch",
        "pattern-detection",
        "summary-generation",
        "anomaly-detection",
        "insight-store",
    )

    def handle(self, agent_input: AgentInput, context: ToolContext) -> dict[str, Any]:
        payload = agent_input.payload
        user_id = require_str(payload, "user_id")
        raw_type = require_str(payload, "insight_type")
        try:
            insight_type = InsightType(raw_type)
        except ValueError:
            self.log("Unknown insight type", {"insight_type": raw_type})
            allowed = ", ".join(item.value for item in InsightType)
            return {
                "insight_id": None,
                "title": "No insight generated",
                "summary": f"Unknown insight_type {raw_type!r}; expected one of: {allowed}.",
                "raw_insight_data": {},
                "validation_status": UNKNOWN_INSIGHT_TYPE,
            }
        topic = optional_str(payload, "topic")
        data_ids = optional_str_list(payload, "data_ids")

        if data_ids is not None:
            fetched = self.execute_tool("content-fetch", {"item_ids": data_ids}, context)
        else:
            fetched = self.execute_tool("content-fetch", {"user_id": user_id}, context)
        items = fetched["items"]
        if topic and data_ids is None:
            topic_terms = set(tokenize(topic))
            items = [item for item in items if topic_terms & set(tokenize(item["text"]))]
        self.log(
            "Generating insight",
            {"insight_type": insight_type.value, "items": len(items), "topic": topic},
        )

        analysis_input: dict[str, Any] = {
            "items": [{"id": item["id"], "text": item["text"]} for item in items],
        }
        if topic:
            analysis_input["topic"] = topic
        analysis = self.execute_tool(_ANALYSIS_TOOL[insight_type], analysis_input, context)

        identity = {
            "user_id": user_id,
            "insight_type": insight_type.value,
            "topic": topic,
            "items": [
                [item["id"], hashlib.sha1(item["text"].encode("utf-8")).hexdigest()]  # noqa: S324
                for item in sorted(items, key=lambda entry: entry["id"])
            ],
        }
        stored = self.execute_tool(
            "insight-store",
            {
                "user_id": user_id,
                "insight_type": insight_type.value,
                "identity": identity,
                "title": analysis["title"],
                "summary": analysis["summary"],
                "raw_insight_data": {
                    "findings": analysis["findings"],
                    "item_ids": [item["id"] for item in items],
                    "missing_ids": fetched.get("missing_ids", []),
                    "topic": topic,
                },
            },
            context,
        )
        return {
            "insight_id": stored["insight_id"],
            "title": stored["title"],
            "summary": stored["summary"],
            "raw_insight_data": stored["raw_insight_data"],
        }
