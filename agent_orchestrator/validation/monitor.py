from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from agent_orchestrator.models import Role, ValidationResult
from agent_orchestrator.validation.parsers import extract_record
from agent_orchestrator.validation.repair import Repairer
from agent_orchestrator.validation.roles import classify_role
from agent_orchestrator.validation.schemas import SchemaValidator

logger = logging.getLogger(__name__)

_PLANNER_REQUIRED = ("observation", "done", "challenges", "next_steps", "final_answer", "reasoning", "web_task")
_PLANNER_BOOLEANS = ("done", "web_task")
_PLANNER_STRINGS = ("observation", "challenges", "next_steps", "reasoning")


@dataclass
class MonitorCounters:
    total: int = 0
    succeeded: int = 0
    corrected: int = 0
    failed: int = 0


class JsonMonitor:
    """Runs extract, classify, validate and repair for every model response.

    ``resolve`` never raises. Each enabled call bumps ``total`` and exactly one
    of ``succeeded``, ``corrected`` or ``failed``.
    """

    def __init__(
        self,
        validator: SchemaValidator | None = None,
        repairer: Repairer | None = None,
        enabled: bool = True,
    ) -> None:
        self.validator = validator or SchemaValidator()
        self.repairer = repairer or Repairer(self.validator)
        self.enabled = enabled
        self.counters = MonitorCounters()

    def set_monitoring(self, enabled: bool) -> None:
        self.enabled = bool(enabled)
        logger.info("[monitor] monitoring %s", "enabled" if self.enabled else "disabled")

    def resolve(
        self,
        raw_text: str,
        role_hint: Role | str | None = None,
        context: str | None = None,
    ) -> ValidationResult:
        if not self.enabled:
            return ValidationResult(
                is_valid=True,
                role=Role.UNKNOWN,
                original_response=raw_text,
                validated_data={"bypass": True},
            )

        self.counters.total += 1
        response_id = f"R{self.counters.total:04d}"
        try:
            result, outcome = self._run_pipeline(raw_text, role_hint, context, response_id)
            self._perform_additional_checks(result)
        except Exception as exc:
            self.counters.failed += 1
            role = Role.parse(role_hint)
            if role is Role.UNKNOWN:
                role = Role.NAVIGATOR
            logger.error("[monitor] %s crashed: %s", response_id, exc)
            emergency = self.repairer.emergency_output(role, raw_text)
            return ValidationResult(
                is_valid=True,
                role=role,
                errors=[f"monitor failure: {exc}"],
                original_response=raw_text,
                validated_data=emergency,
                corrected_response=emergency,
                response_id=response_id,
            )

        setattr(self.counters, outcome, getattr(self.counters, outcome) + 1)
        logger.info("[monitor] %s %s role=%s", response_id, outcome, result.role.value)
        logger.debug("[monitor] statistics %s", self.statistics())
        return result

    def _run_pipeline(
        self,
        raw_text: str,
        role_hint: Role | str | None,
        context: str | None,
        response_id: str,
    ) -> Tuple[ValidationResult, str]:
        role = classify_role(raw_text, role_hint, context)
        extraction = extract_record(raw_text)
        if not extraction.success:
            skeleton = self.repairer.default_output(role)
            logger.warning("[monitor] %s no JSON recovered, using %s defaults", response_id, role.value)
            return (
                ValidationResult(
                    is_valid=True,
                    role=role,
                    errors=list(extraction.errors),
                    original_response=raw_text,
                    validated_data=skeleton,
                    corrected_response=skeleton,
                    response_id=response_id,
                ),
                "corrected",
            )

        parsed = extraction.data
        check = self.validator.validate(parsed, role)
        if check.success:
            return (
                ValidationResult(
                    is_valid=True,
                    role=role,
                    original_response=raw_text,
                    parsed_json=parsed,
                    validated_data=parsed,
                    response_id=response_id,
                ),
                "succeeded",
            )

        repaired = self.repairer.repair(parsed, role)
        logger.warning("[monitor] %s repaired %d schema errors", response_id, len(check.errors))
        return (
            ValidationResult(
                is_valid=True,
                role=role,
                errors=check.errors,
                original_response=raw_text,
                parsed_json=parsed,
                validated_data=repaired,
                corrected_response=repaired,
                response_id=response_id,
            ),
            "corrected",
        )

    def _perform_additional_checks(self, result: ValidationResult) -> None:
        data = result.output
        if not isinstance(data, dict):
            return
        findings: List[str] = []
        if result.role is Role.NAVIGATOR:
            findings.extend(self._audit_navigator(data))
        elif result.role is Role.PLANNER:
            findings.extend(self._audit_planner(data))
        findings.extend(self._audit_common(data))
        for finding in findings:
            logger.debug("[monitor] %s audit: %s", result.response_id, finding)

    def _audit_navigator(self, data: Dict[str, Any]) -> List[str]:
        findings: List[str] = []
        state = data.get("current_state")
        if not isinstance(state, dict):
            findings.append("current_state missing or not an object")
        else:
            for name in ("evaluation_previous_goal", "memory", "next_goal"):
                if not isinstance(state.get(name), str):
                    findings.append(f"current_state.{name} missing or not a string")
        actions = data.get("action")
        if not isinstance(actions, list):
            findings.append("action missing or not a list")
            return findings
        if not actions:
            findings.append("action list is empty")
        for position, action in enumerate(actions):
            if not isinstance(action, dict) or len(action) != 1:
                findings.append(f"action.{position} is not a single-key object")
                continue
            action_type, params = next(iter(action.items()))
            if isinstance(params, dict) and "intent" not in params:
                findings.append(f"action.{position} {action_type} has no intent")
        return findings

    def _audit_planner(self, data: Dict[str, Any]) -> List[str]:
        findings = [f"{name} missing" for name in _PLANNER_REQUIRED if name not in data]
        findings.extend(
            f"{name} is not a boolean" for name in _PLANNER_BOOLEANS if name in data and not isinstance(data[name], bool)
        )
        findings.extend(
            f"{name} is not a string" for name in _PLANNER_STRINGS if name in data and not isinstance(data[name], str)
        )
        return findings

    def _audit_common(self, data: Dict[str, Any]) -> List[str]:
        findings: List[str] = []
        try:
            json.dumps(data)
        except (TypeError, ValueError) as exc:
            findings.append(f"record is not JSON serializable: {exc}")
        for name, value in data.items():
            if value is None:
                findings.append(f"{name} is null")
            elif value == "":
                findings.append(f"{name} is an empty string")
        return findings

    def statistics(self) -> Dict[str, Any]:
        total = self.counters.total

        def rate(count: int) -> float:
            return round(count / total * 100, 2) if total else 0.0

        return {
            "total_responses": total,
            "success_count": self.counters.succeeded,
            "correction_count": self.counters.corrected,
            "failure_count": self.counters.failed,
            "success_rate": rate(self.counters.succeeded),
            "correction_rate": rate(self.counters.corrected),
            "failure_rate": rate(self.counters.failed),
        }

    def reset_statistics(self) -> None:
        self.counters = MonitorCounters()
        logger.info("[monitor] statistics reset")
