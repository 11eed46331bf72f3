"""Tool contract: manifest, validation hooks, and execution."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cognitive_hub.errors import ToolExecutionError

REGIONS: tuple[str, ...] = ("us", "cn")


@dataclass(frozen=True, slots=True)
class ToolManifest:
    """Discovery metadata for one tool.

    `input_schema`/`output_schema` are field -> description hints for planners;
    the authoritative checks live in `Tool.validate_input`/`Tool.validate_output`.
    """

    name: str
    version: str
    description: str
    capabilities: frozenset[str]
    categories: tuple[str, ...] = ()
    available_regions: tuple[str, ...] = REGIONS
    input_schema: Mapping[str, str] = field(default_factory=dict)
    output_schema: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "capabilities": sorted(self.capabilities),
            "categories": list(self.categories),
            "available_regions": list(self.available_regions),
            "input_schema": dict(self.input_schema),
            "output_schema": dict(self.output_schema),
        }


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Caller context propagated from the agent envelope into tools."""

    request_id: str | None = None
    user_id: str | None = None
    region: str = "us"


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    """Either a tool output or the normalized failure; never both."""

    value: dict[str, Any] | None = None
    error: ToolExecutionError | None = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.error is None):
            raise ValueError("ToolOutcome requires exactly one of value/error.")

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        return self.value if self.value is not None else {}


class Tool(ABC):
    """One named unit of computation behind a uniform interface."""

    manifest: ToolManifest

    def validate_input(self, payload: Mapping[str, Any]) -> list[str]:
        """Return validation errors for `payload` (empty list means valid)."""

        return _missing_fields(payload, self.manifest.input_schema)

    def validate_output(self, output: Mapping[str, Any]) -> list[str]:
        return _missing_fields(output, self.manifest.output_schema)

    @abstractmethod
    def execute(self, payload: Mapping[str, Any], context: ToolContext) -> dict[str, Any]:
        """Run the computation; raise `PermanentToolError` when retrying cannot help."""


def _missing_fields(data: Mapping[str, Any], schema: Mapping[str, str]) -> list[str]:
    if not isinstance(data, Mapping):
        return [f"Expected an object, got {type(data).__name__}."]
    return [
        f"Missing required field: {name}"
        for name, description in schema.items()
        if not description.startswith("optional") and name not in data
    ]
