"""OntologySteward: curates concept links and schema changes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from cognitive_hub.agents.base import AgentInput, BaseAgent, require_str
from cognitive_hub.errors import PayloadValidationError
from cognitive_hub.tools.base import ToolContext

UNKNOWN_ACTION = "unknown_action"


class OntologyAction(str, Enum):
    PROPOSE_LINK = "propose_link"
    VALIDATE_CONCEPT = "validate_concept"
    EVOLVE_SCHEMA = "evolve_schema"


class OntologySteward(BaseAgent):
    name = "OntologySteward"
    tool_names = ("concept-link", "concept-validate", "schema-evolve")

    def handle(self, agent_input: AgentInput, context: ToolContext) -> dict[str, Any]:
        payload = agent_input.payload
        raw_action = require_str(payload, "action")
        try:
            action = OntologyAction(raw_action)
        except ValueError:
            self.log("Unknown action", {"action": raw_action})
            return {
                "result_summary": f"Unknown action {raw_action!r}; no changes made.",
                "updated_entity_ids": [],
                "validation_status": UNKNOWN_ACTION,
            }

        user_id = require_str(payload, "user_id")
        data = payload.get("data")
        if not isinstance(data, Mapping):
            raise PayloadValidationError("Payload field 'data' must be an object.")
        self.log("Handling action", {"action": action.value, "user_id": user_id})

        match action:
            case OntologyAction.PROPOSE_LINK:
                return self._propose_link(user_id, data, context)
            case OntologyAction.VALIDATE_CONCEPT:
                return self._validate_concept(user_id, data, context)
            case OntologyAction.EVOLVE_SCHEMA:
                return self._evolve_schema(user_id, data, context)

    def _propose_link(
        self,
        user_id: str,
        data: Mapping[str, Any],
        context: ToolContext,
    ) -> dict[str, Any]:
        link_payload: dict[str, Any] = {
            "user_id": user_id,
            "source_concept": require_str(data, "source_concept"),
            "target_concept": require_str(data, "target_concept"),
        }
        for optional in ("relation", "confidence"):
            if optional in data:
                link_payload[optional] = data[optional]
        output = self.execute_tool("concept-link", link_payload, context)
        return {
            "result_summary": f"Proposed link {output['link_id']}.",
            "updated_entity_ids": [output["link_id"]],
            "validation_status": output["status"],
        }

    def _validate_concept(
        self,
        user_id: str,
        data: Mapping[str, Any],
        context: ToolContext,
    ) -> dict[str, Any]:
        concept_id = require_str(data, "concept_id")
        output = self.execute_tool(
            "concept-validate",
            {"user_id": user_id, "concept_id": concept_id},
            context,
        )
        return {
            "result_summary": (
                f"Concept {concept_id} is {output['validation_status']} "
                f"({output.get('link_count', 0)} link(s))."
            ),
            "updated_entity_ids": [],
            "validation_status": output["validation_status"],
        }

    def _evolve_schema(
        self,
        user_id: str,
        data: Mapping[str, Any],
        context: ToolContext,
    ) -> dict[str, Any]:
        require_str(data, "kind")
        output = self.execute_tool(
            "schema-evolve",
            {"user_id": user_id, "change": dict(data)},
            context,
        )
        status = "applied" if output["applied"] else "already_applied"
        return {
            "result_summary": f"Schema change {data['kind']} {status.replace('_', ' ')}.",
            "updated_entity_ids": [output["change_key"]],
            "validation_status": status,
        }
