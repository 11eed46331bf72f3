"""Deterministic handler failure classification for worker retry policy."""

from __future__ import annotations

from dataclasses import dataclass

from cognitive_hub.errors import (
    AgentProcessingError,
    CapabilityError,
    PayloadValidationError,
    ToolExecutionError,
)
from cognitive_hub.jobs.models import FailureKind

FAILURE_CLASSIFIER_VERSION = 1


@dataclass(slots=True)
class FailureClassification:
    """Normalized failure classification result."""

    kind: FailureKind
    retryable: bool
    reason_code: str
    matched_rule: str

    def to_event_details(self) -> dict[str, object]:
        """Serialize classifier diagnostics for job events."""

        return {
            "classifier_version": FAILURE_CLASSIFIER_VERSION,
            "failure_kind": self.kind.value,
            "retryable": self.retryable,
            "reason_code": self.reason_code,
            "matched_rule": self.matched_rule,
        }


def classify_failure(error: BaseException) -> FailureClassification:
    """Map a handler exception to a failure kind and retry decision."""

    if isinstance(error, CapabilityError):
        return FailureClassification(
            kind=FailureKind.CAPABILITY,
            retryable=False,
            reason_code=type(error).__name__,
            matched_rule="capability_error",
        )
    if isinstance(error, PayloadValidationError):
        return FailureClassification(
            kind=FailureKind.VALIDATION,
            retryable=False,
            reason_code="invalid_payload",
            matched_rule="payload_validation",
        )
    if isinstance(error, ToolExecutionError):
        if error.permanent:
            return FailureClassification(
                kind=FailureKind.TOOL_PERMANENT,
                retryable=False,
                reason_code=error.tool_name,
                matched_rule="tool_permanent",
            )
        return FailureClassification(
            kind=FailureKind.TOOL_TRANSIENT,
            retryable=True,
            reason_code=error.tool_name,
            matched_rule="tool_transient",
        )
    if isinstance(error, AgentProcessingError):
        return FailureClassification(
            kind=FailureKind.AGENT_ERROR,
            retryable=error.retryable,
            reason_code=error.code,
            matched_rule="agent_error_retryable" if error.retryable else "agent_error_final",
        )
    return FailureClassification(
        kind=FailureKind.HANDLER_ERROR,
        retryable=True,
        reason_code=type(error).__name__,
        matched_rule="fallback_handler_error",
    )
