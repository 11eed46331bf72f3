"""Error taxonomy shared by tools, agents, and the job runtime."""

from __future__ import annotations

from typing import Any


class CapabilityError(RuntimeError):
    """Programming/configuration error around tool capabilities; never retried."""


class DuplicateToolError(CapabilityError):
    """A tool with the same manifest name is already registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f'Tool "{tool_name}" is already registered.')
        self.tool_name = tool_name


class ToolNotFoundError(CapabilityError):
    """The registry has no tool with the requested name."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f'Tool "{tool_name}" not found in registry.')
        self.tool_name = tool_name


class ToolNotAvailableForAgent(CapabilityError):
    """The tool exists but the agent did not register it for itself."""

    def __init__(self, tool_name: str, agent_name: str) -> None:
        super().__init__(f'Tool "{tool_name}" is not registered for agent "{agent_name}".')
        self.tool_name = tool_name
        self.agent_name = agent_name


class PermanentToolError(RuntimeError):
    """Raised by tool internals when retrying the same input cannot succeed."""


class ToolExecutionError(RuntimeError):
    """Normalized tool failure with enough context to retry or diagnose."""

    def __init__(
        self,
        message: str,
        *,
        tool_name: str,
        input_snapshot: Any = None,
        cause: BaseException | None = None,
        permanent: bool = False,
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.input_snapshot = input_snapshot
        self.cause = cause
        self.permanent = permanent

    def to_details(self) -> dict[str, object]:
        """Serialize for job events and error envelopes."""

        return {
            "message": str(self),
            "tool_name": self.tool_name,
            "cause": repr(self.cause) if self.cause is not None else None,
            "permanent": self.permanent,
        }


class PayloadValidationError(ValueError):
    """Job or agent payload is missing fields or has the wrong shape."""


class AgentProcessingError(RuntimeError):
    """Agent returned an error envelope while handling a job."""

    def __init__(self, *, code: str, message: str, retryable: bool) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.retryable = retryable
