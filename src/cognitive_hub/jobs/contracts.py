"""Wire contracts for job payloads, one shape per queue."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cognitive_hub.agents.embedding import MODEL_UPDATE_CHECK
from cognitive_hub.agents.insight import InsightType
from cognitive_hub.errors import PayloadValidationError
from cognitive_hub.jobs.models import QueueName

DAILY_INSIGHTS = "daily-insights"


class ContentType(str, Enum):
    CHUNK = "chunk"
    CONCEPT = "concept"
    MEDIA_TEXT = "media_text"
    MEDIA_VISUAL = "media_visual"


@dataclass(slots=True)
class EmbeddingJobPayload:
    content_type: ContentType
    content_id: str


@dataclass(slots=True)
class ModelUpdateCheckPayload:
    """Maintenance payload the scheduler puts on the embedding queue."""

    timestamp: str
    type: str = MODEL_UPDATE_CHECK


@dataclass(slots=True)
class IngestionJobPayload:
    batch_id: str


@dataclass(slots=True)
class InsightJobPayload:
    """Insight payload; every field is optional and unknown fields are kept in `extra`."""

    type: str | None = None
    timestamp: str | None = None
    user_id: str | None = None
    insight_type: InsightType | None = None
    topic: str | None = None
    data_ids: list[str] | None = None
    extra: dict[str, Any] = field(default_factory=dict)


JobPayload = (
    EmbeddingJobPayload | ModelUpdateCheckPayload | IngestionJobPayload | InsightJobPayload
)

_INSIGHT_STR_FIELDS = ("type", "timestamp", "user_id", "topic")


def parse_payload(queue: QueueName, raw: Mapping[str, Any]) -> JobPayload:
    """Validate `raw` against the queue's payload shape."""

    if not isinstance(raw, Mapping):
        raise PayloadValidationError(f"{queue.value} payload must be an object.")
    match queue:
        case QueueName.EMBEDDING:
            return parse_embedding_payload(raw)
        case QueueName.INGESTION:
            return parse_ingestion_payload(raw)
        case QueueName.INSIGHT:
            return parse_insight_payload(raw)


def encode_payload(queue: QueueName, raw: Mapping[str, Any]) -> str:
    """Validate and serialize a payload for persistence.

    Only plain JSON values are accepted (dicts with string keys, lists, strings,
    numbers, booleans, null), so decoding the stored text gives back a payload
    equal to `raw`.
    """

    parse_payload(queue, raw)
    payload = dict(raw)
    try:
        encoded = json.dumps(payload, ensure_ascii=False, sort_keys=True, allow_nan=False)
    except (TypeError, ValueError) as error:
        raise PayloadValidationError(
            f"{queue.value} payload is not JSON-encodable: {error}",
        ) from error
    if json.loads(encoded) != payload:
        raise PayloadValidationError(
            f"{queue.value} payload must contain only JSON types "
            "(objects with string keys, lists, strings, numbers, booleans, null).",
        )
    return encoded


def decode_payload(payload_json: str) -> dict[str, Any]:
    payload = json.loads(payload_json)
    if not isinstance(payload, dict):
        raise TypeError("Persisted job payload must be a JSON object")
    return payload


def parse_embedding_payload(
    raw: Mapping[str, Any],
) -> EmbeddingJobPayload | ModelUpdateCheckPayload:
    queue = QueueName.EMBEDDING
    if "type" in raw:
        _reject_unknown(queue, raw, {"type", "timestamp"})
        if raw["type"] != MODEL_UPDATE_CHECK:
            raise PayloadValidationError(
                f"Unsupported embedding job type {raw['type']!r}; "
                f"expected {MODEL_UPDATE_CHECK!r}.",
            )
        return ModelUpdateCheckPayload(timestamp=_require_str(queue, raw, "timestamp"))

    _reject_unknown(queue, raw, {"content_type", "content_id"})
    content_type = _require_str(queue, raw, "content_type")
    try:
        parsed_type = ContentType(content_type)
    except ValueError:
        allowed = ", ".join(item.value for item in ContentType)
        raise PayloadValidationError(
            f"Unsupported content_type {content_type!r}; expected one of: {allowed}.",
        ) from None
    return EmbeddingJobPayload(
        content_type=parsed_type,
        content_id=_require_str(queue, raw, "content_id"),
    )


def parse_ingestion_payload(raw: Mapping[str, Any]) -> IngestionJobPayload:
    _reject_unknown(QueueName.INGESTION, raw, {"batch_id"})
    return IngestionJobPayload(batch_id=_require_str(QueueName.INGESTION, raw, "batch_id"))


def parse_insight_payload(raw: Mapping[str, Any]) -> InsightJobPayload:
    for key in _INSIGHT_STR_FIELDS:
        value = raw.get(key)
        if value is not None and not isinstance(value, str):
            raise PayloadValidationError(f"insight payload field {key!r} must be a string.")

    insight_type: InsightType | None = None
    if raw.get("insight_type") is not None:
        try:
            insight_type = InsightType(raw["insight_type"])
        except ValueError:
            allowed = ", ".join(item.value for item in InsightType)
            raise PayloadValidationError(
                f"Unsupported insight_type {raw['insight_type']!r}; expected one of: {allowed}.",
            ) from None

    data_ids = raw.get("data_ids")
    if data_ids is not None and (
        not isinstance(data_ids, list) or not all(isinstance(item, str) for item in data_ids)
    ):
        raise PayloadValidationError("insight payload field 'data_ids' must be a list of strings.")

    known = {*_INSIGHT_STR_FIELDS, "insight_type", "data_ids"}
    return InsightJobPayload(
        type=raw.get("type"),
        timestamp=raw.get("timestamp"),
        user_id=raw.get("user_id"),
        insight_type=insight_type,
        topic=raw.get("topic"),
        data_ids=list(data_ids) if data_ids is not None else None,
        extra={key: value for key, value in raw.items() if key not in known},
    )


def _require_str(queue: QueueName, raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise PayloadValidationError(
            f"{queue.value} payload field {key!r} must be a non-empty string.",
        )
    return value


def _reject_unknown(queue: QueueName, raw: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise PayloadValidationError(
            f"{queue.value} payload has unexpected field(s): {', '.join(unknown)}.",
        )

