"""Agent envelope types and the base class every agent extends."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cognitive_hub.errors import (
    CapabilityError,
    PayloadValidationError,
    ToolExecutionError,
    ToolNotAvailableForAgent,
)
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools.base import Tool, ToolContext
from cognitive_hub.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

_TOOL_CALLS: ContextVar[list[str] | None] = ContextVar("agent_tool_calls", default=None)


class AgentStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True)
class AgentInput:
    """Request envelope handed to `BaseAgent.process`."""

    request_id: str
    user_id: str
    payload: Mapping[str, Any]
    region: str = "us"

    def tool_context(self) -> ToolContext:
        return ToolContext(request_id=self.request_id, user_id=self.user_id, region=self.region)


@dataclass(slots=True)
class ErrorInfo:
    code: str
    message: str
    tool_name: str | None = None
    retryable: bool = False


@dataclass(slots=True)
class AgentMetadata:
    processing_time_ms: int
    processed_in_region: str
    tool_calls: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AgentOutput:
    """Response envelope; exactly one of `result`/`error` is set."""

    request_id: str
    status: AgentStatus
    metadata: AgentMetadata
    result: dict[str, Any] | None = None
    error: ErrorInfo | None = None

    def __post_init__(self) -> None:
        if self.status is AgentStatus.SUCCESS and (self.result is None or self.error is not None):
            raise ValueError("Successful agent output requires a result and no error.")
        if self.status is AgentStatus.ERROR and (self.error is None or self.result is not None):
            raise ValueError("Failed agent output requires an error and no result.")


class BaseAgent(ABC):
    """Stateless processing unit composing a curated set of registry tools.

    Subclasses implement `handle`; `process` wraps it into the output envelope,
    measuring time, recording tool calls and turning failures into `ErrorInfo`.
    Unexpected exceptions become a non-retryable `agent_processing_failed`
    error. Capability errors are configuration bugs and propagate unchanged.
    """

    name: str = "Base"
    tool_names: tuple[str, ...] = ()

    def __init__(self, registry: ToolRegistry, store: ContentStore | None = None) -> None:
        self.registry = registry
        self.store = store
        self._tools: dict[str, Tool] = {}
        for tool_name in self.tool_names:
            self.register_tool(tool_name)

    @property
    def registered_tool_names(self) -> list[str]:
        return list(self._tools)

    def register_tool(self, tool: Tool | str) -> None:
        """Allow this agent to call `tool`; it must already be in the registry."""

        tool_name = tool if isinstance(tool, str) else tool.manifest.name
        self._tools[tool_name] = self.registry.get_tool(tool_name)

    def execute_tool(
        self,
        name: str,
        payload: Mapping[str, Any],
        context: ToolContext | None = None,
    ) -> dict[str, Any]:
        if name not in self._tools:
            raise ToolNotAvailableForAgent(name, self.name)
        calls = _TOOL_CALLS.get()
        if calls is not None:
            calls.append(name)
        return self.registry.execute_tool(name, payload, context)

    def log(self, message: str, data: Mapping[str, Any] | None = None) -> None:
        logger.info(
            "[%s Agent]: %s",
            self.name,
            message,
            extra={"agent": self.name, "data": dict(data) if data else None},
        )

    def process(self, agent_input: AgentInput, context: ToolContext | None = None) -> AgentOutput:
        started = time.perf_counter()
        token = _TOOL_CALLS.set([])
        result: dict[str, Any] | None = None
        error: ErrorInfo | None = None
        try:
            result = self.handle(agent_input, context or agent_input.tool_context())
        except ToolExecutionError as failure:
            self.log("Tool execution failed", failure.to_details())
            error = ErrorInfo(
                code="tool_execution_failed",
                message=str(failure),
                tool_name=failure.tool_name,
                retryable=not failure.permanent,
            )
        except PayloadValidationError as failure:
            self.log("Invalid payload", {"error": str(failure)})
            error = ErrorInfo(code="invalid_payload", message=str(failure), retryable=False)
        except CapabilityError:
            raise
        except Exception as failure:
            logger.exception("[%s Agent]: unexpected failure", self.name)
            error = ErrorInfo(
                code="agent_processing_failed",
                message=f"{type(failure).__name__}: {failure}",
                retryable=False,
            )
        finally:
            tool_calls = _TOOL_CALLS.get() or []
            _TOOL_CALLS.reset(token)

        metadata = AgentMetadata(
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            processed_in_region=agent_input.region,
            tool_calls=list(tool_calls),
        )
        if error is not None:
            return AgentOutput(
                request_id=agent_input.request_id,
                status=AgentStatus.ERROR,
                error=error,
                metadata=metadata,
            )
        return AgentOutput(
            request_id=agent_input.request_id,
            status=AgentStatus.SUCCESS,
            result=result,
            metadata=metadata,
        )

    @abstractmethod
    def handle(self, agent_input: AgentInput, context: ToolContext) -> dict[str, Any]:
        """Agent-specific logic; return the result mapping."""


def require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise PayloadValidationError(f"Payload field {key!r} must be a non-empty string.")
    return value


def optional_str(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise PayloadValidationError(f"Payload field {key!r} must be a string.")
    return value


def optional_positive_int(payload: Mapping[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise PayloadValidationError(f"Payload field {key!r} must be a positive integer.")
    return value


def optional_str_list(payload: Mapping[str, Any], key: str) -> list[str] | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise PayloadValidationError(f"Payload field {key!r} must be a list of strings.")
    return list(value)
