from __future__ import annotations

import copy
import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Tuple

from agent_orchestrator.models import Role, coerce_bool
from agent_orchestrator.validation.schemas import BOOLEAN_FIELDS, SchemaValidator

logger = logging.getLogger(__name__)

SAFE_DEFAULT_URL = "https://www.google.com"

PLANNER_DEFAULTS: Dict[str, Any] = {
    "observation": "AI response received but incomplete",
    "done": False,
    "challenges": "",
    "next_steps": "Continue with task execution",
    "final_answer": "",
    "reasoning": "Processing user request",
    "web_task": True,
}

NAVIGATOR_STATE_DEFAULTS: Dict[str, str] = {
    "evaluation_previous_goal": "Unknown - processing request",
    "memory": "Received AI response",
    "next_goal": "Continue task execution",
}

ACTION_PARAM_DEFAULTS: Dict[str, Any] = {
    "url": SAFE_DEFAULT_URL,
    "index": 1,
    "text": "",
    "success": True,
}

PASSTHROUGH_FIELDS: Dict[Role, FrozenSet[str]] = {
    Role.PLANNER: frozenset(),
    Role.NAVIGATOR: frozenset(),
}


def default_navigation(intent: str = "Navigate to requested website") -> Dict[str, Dict[str, Any]]:
    return {"go_to_url": {"intent": intent, "url": SAFE_DEFAULT_URL}}


def _covers(invalid: Iterable[Tuple[str, ...]], prefix: Tuple[str, ...]) -> bool:
    return any(path[: len(prefix)] == prefix for path in invalid)


class Repairer:
    """Turns a partially valid record into one that satisfies the role schema.

    The result starts from a fixed skeleton and keeps every input field that
    is valid on its own, so a correct field is never replaced by a default.
    """

    def __init__(
        self,
        validator: SchemaValidator,
        passthrough_fields: Mapping[Role, Iterable[str]] | None = None,
    ) -> None:
        self.validator = validator
        source = passthrough_fields if passthrough_fields is not None else PASSTHROUGH_FIELDS
        self.passthrough_fields: Dict[Role, FrozenSet[str]] = {
            Role.parse(role): frozenset(names) for role, names in source.items()
        }

    def default_output(self, role: Role | str) -> Dict[str, Any]:
        role = Role.parse(role)
        if role is Role.NAVIGATOR:
            return {"current_state": dict(NAVIGATOR_STATE_DEFAULTS), "action": [default_navigation()]}
        return dict(PLANNER_DEFAULTS)

    def repair(self, record: Any, role: Role | str) -> Dict[str, Any]:
        role = Role.parse(role)
        if role is Role.UNKNOWN:
            role = Role.PLANNER
        if not isinstance(record, dict):
            logger.info("[repair] %s record is %s, using defaults", role.value, type(record).__name__)
            return self.default_output(role)
        if role is Role.NAVIGATOR:
            repaired = self._repair_navigator(record)
        else:
            repaired = self._repair_planner(record)
        for name in self.passthrough_fields.get(role, frozenset()):
            if name in record and name not in repaired:
                repaired[name] = copy.deepcopy(record[name])
        return repaired

    def _repair_planner(self, record: Dict[str, Any]) -> Dict[str, Any]:
        invalid = self.validator.invalid_paths(record, Role.PLANNER)
        repaired = self.default_output(Role.PLANNER)
        kept: List[str] = []
        for name in PLANNER_DEFAULTS:
            if name in record and not _covers(invalid, (name,)):
                value = record[name]
                repaired[name] = coerce_bool(value) if name in BOOLEAN_FIELDS[Role.PLANNER] else value
                kept.append(name)
        logger.info("[repair] planner kept fields: %s", ", ".join(kept) or "none")
        return repaired

    def _repair_navigator(self, record: Dict[str, Any]) -> Dict[str, Any]:
        invalid = self.validator.invalid_paths(record, Role.NAVIGATOR)
        state = dict(NAVIGATOR_STATE_DEFAULTS)
        source_state = record.get("current_state")
        if isinstance(source_state, dict):
            for name in NAVIGATOR_STATE_DEFAULTS:
                if name in source_state and not _covers(invalid, ("current_state", name)):
                    state[name] = source_state[name]
        actions = record.get("action")
        if isinstance(actions, list) and actions:
            fixed, errors = self.repair_actions(actions)
            if errors:
                logger.info("[repair] navigator actions fixed: %s", "; ".join(errors))
        else:
            fixed = [default_navigation()]
        return {"current_state": state, "action": fixed}

    def is_valid_action(self, action: Any) -> bool:
        if not isinstance(action, dict) or len(action) != 1:
            return False
        action_type, params = next(iter(action.items()))
        if not isinstance(params, dict):
            return False
        return not self.validator.invalid_action_params(action_type, params)

    def repair_actions(self, actions: List[Any]) -> Tuple[List[Dict[str, Any]], List[str]]:
        """Enforce one-key action objects and the per-type parameter contracts."""
        fixed: List[Dict[str, Any]] = []
        errors: List[str] = []
        for position, action in enumerate(actions):
            if not isinstance(action, dict) or not action:
                errors.append(f"action.{position}: not an action object")
                fixed.append(default_navigation("Fixed invalid action"))
                continue
            if len(action) != 1:
                errors.append(f"action.{position}: expected one action type, got {sorted(action)}")
                fixed.append(default_navigation("Fixed multi-key action"))
                continue
            if self.is_valid_action(action):
                fixed.append(action)
                continue
            action_type, params = next(iter(action.items()))
            errors.extend(f"action.{position}.{err}" for err in self.validator.action_errors(action_type, params))
            fixed.append({action_type: self._fix_params(action_type, params)})
        return fixed, errors

    def _fix_params(self, action_type: str, params: Any) -> Dict[str, Any]:
        source = params if isinstance(params, dict) else {}
        bad = self.validator.invalid_action_params(action_type, source)
        fixed = {name: copy.deepcopy(value) for name, value in source.items() if name not in bad}
        intent = source.get("intent")
        fixed["intent"] = intent if isinstance(intent, str) and intent else f"Execute {action_type} action"
        for name in bad:
            fixed[name] = ACTION_PARAM_DEFAULTS.get(name, "")
        return fixed

    def emergency_output(self, role: Role | str, raw_text: str) -> Dict[str, Any]:
        snippet = (raw_text or "")[:100]
        if Role.parse(role) is Role.PLANNER:
            return {
                "observation": f"Monitor emergency fallback - original response: {snippet}",
                "done": False,
                "challenges": "JSON monitoring system crashed",
                "next_steps": "Continue with emergency procedures",
                "final_answer": "",
                "reasoning": "Emergency fallback due to monitor failure",
                "web_task": True,
            }
        return {
            "current_state": {
                "evaluation_previous_goal": "Monitor emergency fallback",
                "memory": f"Monitor crashed, original response: {snippet}",
                "next_goal": "Execute emergency action",
            },
            "action": [default_navigation("Emergency navigation to safe page")],
        }
