"""Process-wide tool registry with uniform execution and error wrapping."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Mapping
from typing import Any

from cognitive_hub.errors import (
    CapabilityError,
    DuplicateToolError,
    PermanentToolError,
    ToolExecutionError,
    ToolNotFoundError,
)
from cognitive_hub.tools.base import Tool, ToolContext, ToolManifest, ToolOutcome

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Holds all tools of one process, keyed by manifest name.

    Built once at start-up and passed explicitly to agents and workers; there
    is no module-level instance.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def register(self, tool: Tool) -> None:
        name = tool.manifest.name
        if name in self._tools:
            raise DuplicateToolError(name)
        self._tools[name] = tool
        logger.debug("Registered tool %s v%s", name, tool.manifest.version)

    def get_tool(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    def execute_tool(
        self,
        name: str,
        payload: Mapping[str, Any],
        context: ToolContext | None = None,
    ) -> dict[str, Any]:
        """Validate, execute and validate again; failures surface as `ToolExecutionError`."""

        tool = self.get_tool(name)
        context = context or ToolContext()
        started = time.perf_counter()
        try:
            input_errors = tool.validate_input(payload)
            if input_errors:
                raise PermanentToolError(f"Invalid input: {'; '.join(input_errors)}")
            output = tool.execute(payload, context)
            output_errors = tool.validate_output(output)
            if output_errors:
                raise PermanentToolError(f"Invalid output: {'; '.join(output_errors)}")
        except CapabilityError:
            raise
        except ToolExecutionError:
            raise
        except PermanentToolError as error:
            raise ToolExecutionError(
                f'Tool "{name}" failed: {error}',
                tool_name=name,
                input_snapshot=_snapshot(payload),
                cause=error,
                permanent=True,
            ) from error
        except Exception as error:  # noqa: BLE001
            raise ToolExecutionError(
                f'Tool "{name}" failed: {error}',
                tool_name=name,
                input_snapshot=_snapshot(payload),
                cause=error,
            ) from error

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        metadata = dict(output.get("metadata") or {})
        metadata["processing_time_ms"] = elapsed_ms
        logger.debug("Tool %s finished in %d ms", name, elapsed_ms)
        return {**output, "metadata": metadata}

    def run_tool(
        self,
        name: str,
        payload: Mapping[str, Any],
        context: ToolContext | None = None,
    ) -> ToolOutcome:
        """Result-typed variant of `execute_tool`; capability errors still raise."""

        try:
            return ToolOutcome(value=self.execute_tool(name, payload, context))
        except ToolExecutionError as error:
            return ToolOutcome(error=error)

    def get_all_tool_manifests_for_llm(self) -> Iterator[ToolManifest]:
        """Iterate a snapshot of manifests in registration order."""

        tools = list(self._tools.values())
        return (tool.manifest for tool in tools)

    def find_tools(
        self,
        *,
        name: str | None = None,
        capability: str | None = None,
        category: str | None = None,
        region: str | None = None,
        min_version: str | None = None,
    ) -> list[Tool]:
        """Tools matching every given criterion, in registration order.

        `min_version` compares dotted numeric versions; a manifest whose version
        cannot be parsed is kept and a warning is logged.
        """

        return [
            tool
            for tool in self._tools.values()
            if (name is None or tool.manifest.name == name)
            and (capability is None or capability in tool.manifest.capabilities)
            and (category is None or category in tool.manifest.categories)
            and (region is None or region in tool.manifest.available_regions)
            and (min_version is None or _meets_min_version(tool.manifest, min_version))
        ]


def _meets_min_version(manifest: ToolManifest, min_version: str) -> bool:
    actual = _version_key(manifest.version)
    required = _version_key(min_version)
    if actual is None or required is None:
        logger.warning(
            "Skipping version check for tool %s: cannot compare %r with %r",
            manifest.name,
            manifest.version,
            min_version,
        )
        return True
    width = max(len(actual), len(required))
    return actual + (0,) * (width - len(actual)) >= required + (0,) * (width - len(required))


def _version_key(version: str) -> tuple[int, ...] | None:
    parts = version.strip().split(".")
    if not all(part.isdigit() for part in parts):
        return None
    return tuple(int(part) for part in parts)


def _snapshot(payload: object) -> object:
    return dict(payload) if isinstance(payload, Mapping) else payload
