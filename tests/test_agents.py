from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import allure
import pytest

from cognitive_hub.agents.base import (
    AgentInput,
    AgentMetadata,
    AgentOutput,
    AgentStatus,
    BaseAgent,
    ErrorInfo,
    optional_positive_int,
    require_str,
)
from cognitive_hub.errors import (
    PayloadValidationError,
    PermanentToolError,
    ToolNotAvailableForAgent,
    ToolNotFoundError,
)
from cognitive_hub.tools.base import Tool, ToolContext, ToolManifest
from cognitive_hub.tools.registry import ToolRegistry

pytestmark = [
    allure.epic("Agents & Tools"),
    allure.feature("Agent Envelope"),
]


class _UpperTool(Tool):
    manifest = ToolManifest(
        name="upper",
        version="1.0.0",
        description="Uppercase text.",
        capabilities=frozenset({"text"}),
        input_schema={"text": "text"},
        output_schema={"text": "uppercased text"},
    )

    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        if payload["text"] == "explode":
            raise ConnectionError("backend unavailable")
        if payload["text"] == "forbidden":
            raise PermanentToolError("refusing forbidden text")
        return {"text": str(payload["text"]).upper(), "region": context.region}


class _SecretTool(_UpperTool):
    manifest = ToolManifest(
        name="secret",
        version="1.0.0",
        description="Not granted to the test agent.",
        capabilities=frozenset({"text"}),
    )


class _ShoutAgent(BaseAgent):
    name = "Shout"
    tool_names = ("upper",)

    def handle(self, agent_input: AgentInput, context: ToolContext) -> dict[str, Any]:
        text = require_str(agent_input.payload, "text")
        if agent_input.payload.get("volume") is not None:
            text = text * len(agent_input.payload["volume"])
        if agent_input.payload.get("sneaky"):
            self.execute_tool("secret", {"text": text}, context)
        output = self.execute_tool("upper", {"text": text}, context)
        return {"shouted": output["text"], "region": output["region"]}


def _registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(_UpperTool())
    registry.register(_SecretTool())
    return registry


def _input(payload: Mapping[str, Any], *, region: str = "us") -> AgentInput:
    return AgentInput(request_id="req-1", user_id="alice", payload=payload, region=region)


def test_successful_output_carries_result_and_metadata() -> None:
    agent = _ShoutAgent(_registry())

    output = agent.process(_input({"text": "hi"}, region="cn"))

    assert output.status is AgentStatus.SUCCESS
    assert output.request_id == "req-1"
    assert output.result == {"shouted": "HI", "region": "cn"}
    assert output.error is None
    assert output.metadata.processed_in_region == "cn"
    assert output.metadata.tool_calls == ["upper"]
    assert output.metadata.processing_time_ms >= 0


def test_agent_registers_only_declared_tools() -> None:
    agent = _ShoutAgent(_registry())
    assert agent.registered_tool_names == ["upper"]


def test_calling_an_unregistered_tool_is_a_capability_error() -> None:
    agent = _ShoutAgent(_registry())

    with pytest.raises(ToolNotAvailableForAgent, match='not registered for agent "Shout"'):
        agent.process(_input({"text": "hi", "sneaky": True}))


def test_declaring_a_tool_missing_from_registry_fails_at_construction() -> None:
    with pytest.raises(ToolNotFoundError):
        _ShoutAgent(ToolRegistry())


def test_transient_tool_failure_becomes_retryable_error_envelope() -> None:
    agent = _ShoutAgent(_registry())

    output = agent.process(_input({"text": "explode"}))

    assert output.status is AgentStatus.ERROR
    assert output.result is None
    assert output.error is not None
    assert output.error.code == "tool_execution_failed"
    assert output.error.tool_name == "upper"
    assert output.error.retryable is True
    assert "backend unavailable" in output.error.message
    assert output.metadata.tool_calls == ["upper"]


def test_permanent_tool_failure_is_not_retryable() -> None:
    output = _ShoutAgent(_registry()).process(_input({"text": "forbidden"}))

    assert output.error is not None
    assert output.error.retryable is False


def test_payload_errors_become_invalid_payload_envelope() -> None:
    output = _ShoutAgent(_registry()).process(_input({"text": ""}))

    assert output.status is AgentStatus.ERROR
    assert output.error is not None
    assert output.error.code == "invalid_payload"
    assert output.error.retryable is False
    assert output.metadata.tool_calls == []


def test_unexpected_agent_failure_still_returns_an_error_envelope() -> None:
    output = _ShoutAgent(_registry()).process(_input({"text": "hi", "volume": 11}))

    assert output.request_id == "req-1"
    assert output.status is AgentStatus.ERROR
    assert output.result is None
    assert output.error is not None
    assert output.error.code == "agent_processing_failed"
    assert output.error.message.startswith("TypeError:")
    assert output.error.retryable is False


def test_agent_output_enforces_result_xor_error() -> None:
    metadata = AgentMetadata(processing_time_ms=0, processed_in_region="us")
    with pytest.raises(ValueError, match="requires a result"):
        AgentOutput(request_id="r", status=AgentStatus.SUCCESS, metadata=metadata)
    with pytest.raises(ValueError, match="requires an error"):
        AgentOutput(
            request_id="r",
            status=AgentStatus.ERROR,
            metadata=metadata,
            result={},
            error=ErrorInfo(code="x", message="y"),
        )


def test_payload_helpers_reject_wrong_types() -> None:
    with pytest.raises(PayloadValidationError, match="'query' must be a non-empty string"):
        require_str({"query": 3}, "query")
    with pytest.raises(PayloadValidationError, match="positive integer"):
        optional_positive_int({"max_results": True}, "max_results")
    assert optional_positive_int({}, "max_results") is None
