from __future__ import annotations

import allure

from cognitive_hub.errors import (
    AgentProcessingError,
    PayloadValidationError,
    ToolExecutionError,
    ToolNotAvailableForAgent,
    ToolNotFoundError,
)
from cognitive_hub.jobs.failure_classifier import (
    FAILURE_CLASSIFIER_VERSION,
    classify_failure,
)
from cognitive_hub.jobs.models import FailureKind

pytestmark = [
    allure.epic("Job Runtime"),
    allure.feature("Retry Policy"),
]


def test_classifier_version_is_stable() -> None:
    assert FAILURE_CLASSIFIER_VERSION == 1


def test_capability_errors_are_never_retried() -> None:
    for error in (ToolNotFoundError("missing"), ToolNotAvailableForAgent("x", "Agent")):
        classified = classify_failure(error)
        assert classified.kind == FailureKind.CAPABILITY
        assert classified.retryable is False
        assert classified.reason_code == type(error).__name__


def test_payload_validation_is_permanent() -> None:
    classified = classify_failure(PayloadValidationError("batch_id missing"))
    assert classified.kind == FailureKind.VALIDATION
    assert classified.retryable is False
    assert classified.reason_code == "invalid_payload"


def test_tool_errors_follow_their_permanent_flag() -> None:
    transient = classify_failure(ToolExecutionError("timeout", tool_name="vector-search"))
    permanent = classify_failure(
        ToolExecutionError("bad input", tool_name="vector-search", permanent=True),
    )

    assert transient.kind == FailureKind.TOOL_TRANSIENT
    assert transient.retryable is True
    assert transient.reason_code == "vector-search"
    assert permanent.kind == FailureKind.TOOL_PERMANENT
    assert permanent.retryable is False


def test_agent_errors_carry_the_envelope_retry_decision() -> None:
    retryable = classify_failure(
        AgentProcessingError(code="tool_execution_failed", message="boom", retryable=True),
    )
    final = classify_failure(
        AgentProcessingError(code="invalid_payload", message="nope", retryable=False),
    )

    assert retryable.kind == FailureKind.AGENT_ERROR
    assert retryable.retryable is True
    assert retryable.matched_rule == "agent_error_retryable"
    assert final.retryable is False
    assert final.reason_code == "invalid_payload"
    assert final.matched_rule == "agent_error_final"


def test_unknown_exceptions_fall_back_to_retryable_handler_error() -> None:
    classified = classify_failure(ConnectionResetError("peer reset"))

    assert classified.kind == FailureKind.HANDLER_ERROR
    assert classified.retryable is True
    assert classified.reason_code == "ConnectionResetError"
    assert classified.matched_rule == "fallback_handler_error"
    assert classified.to_event_details() == {
        "classifier_version": FAILURE_CLASSIFIER_VERSION,
        "failure_kind": "handler_error",
        "retryable": True,
        "reason_code": "ConnectionResetError",
        "matched_rule": "fallback_handler_error",
    }
