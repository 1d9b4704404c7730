from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Set, Tuple

from jsonschema import Draft7Validator, ValidationError

from agent_orchestrator.models import Role, coerce_bool
from agent_orchestrator.utils.io import read_json

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas"
BOOLEAN_FIELDS: Dict[Role, Tuple[str, ...]] = {
    Role.PLANNER: ("done", "web_task"),
    Role.NAVIGATOR: (),
}
_REQUIRED_RE = re.compile(r"'([^']+)' is a required property")

FieldPath = Tuple[str, ...]


@dataclass
class SchemaCheck:
    success: bool
    errors: List[str] = field(default_factory=list)
    data: Dict[str, Any] | None = None


@lru_cache(maxsize=None)
def _load_schema_file(path: str) -> Dict[str, Any]:
    return read_json(Path(path))


def load_schema(name: str, schema_dir: Path | None = None) -> Dict[str, Any]:
    base = Path(schema_dir) if schema_dir else SCHEMA_DIR
    return copy.deepcopy(_load_schema_file(str(base / f"{name}.schema.json")))


def _error_parts(error: ValidationError) -> FieldPath:
    parts = [str(part) for part in error.absolute_path]
    if error.validator == "required":
        match = _REQUIRED_RE.search(error.message)
        if match:
            parts.append(match.group(1))
    return tuple(parts)


def _format_error(error: ValidationError) -> str:
    path = ".".join(_error_parts(error)) or "<root>"
    return f"{path}: {error.message}"


class SchemaValidator:
    """Checks planner and navigator records against their JSON schemas."""

    def __init__(self, schema_dir: Path | None = None) -> None:
        self._schemas: Dict[Role, Dict[str, Any]] = {
            Role.PLANNER: load_schema("planner", schema_dir),
            Role.NAVIGATOR: load_schema("navigator", schema_dir),
        }
        self._validators = {role: Draft7Validator(schema) for role, schema in self._schemas.items()}
        contracts = load_schema("actions", schema_dir)
        self._action_validators = {
            name: Draft7Validator(contract)
            for name, contract in contracts.items()
            if isinstance(contract, dict) and not name.startswith("$")
        }

    def schema_for(self, role: Role) -> Dict[str, Any]:
        return copy.deepcopy(self._schemas[Role.parse(role)])

    def structured_schema(self, role: Role) -> Dict[str, Any]:
        """Schema sent to providers with native structured output; flags are plain booleans."""
        role = Role.parse(role)
        schema = self.schema_for(role)
        schema.pop("$schema", None)
        for name in BOOLEAN_FIELDS.get(role, ()):
            schema["properties"][name] = {"type": "boolean"}
        return schema

    def schema_name(self, role: Role) -> str:
        return f"{Role.parse(role).value}_output"

    def _errors(self, record: Any, role: Role) -> List[ValidationError]:
        validator = self._validators[role]
        return sorted(validator.iter_errors(record), key=lambda err: [str(p) for p in err.absolute_path])

    def validate(self, record: Any, role: Role | str) -> SchemaCheck:
        role = Role.parse(role)
        if role not in self._validators:
            return SchemaCheck(success=False, errors=["<root>: cannot validate a record for an unknown role"])
        if not isinstance(record, dict):
            return SchemaCheck(success=False, errors=[f"<root>: expected an object, got {type(record).__name__}"])
        errors = [_format_error(err) for err in self._errors(record, role)]
        if errors:
            logger.debug("[validator] %s record rejected: %s", role.value, "; ".join(errors))
            return SchemaCheck(success=False, errors=errors)
        data = copy.deepcopy(record)
        for name in BOOLEAN_FIELDS[role]:
            data[name] = coerce_bool(data[name])
        return SchemaCheck(success=True, data=data)

    def invalid_paths(self, record: Dict[str, Any], role: Role | str) -> Set[FieldPath]:
        role = Role.parse(role)
        return {_error_parts(err) for err in self._errors(record, role)}

    def knows_action(self, action_type: str) -> bool:
        return action_type in self._action_validators

    def invalid_action_params(self, action_type: str, params: Dict[str, Any]) -> Set[str]:
        """Names of contract parameters that are missing or mistyped for ``action_type``."""
        validator = self._action_validators.get(action_type)
        if validator is None:
            return set()
        invalid: Set[str] = set()
        for err in validator.iter_errors(params):
            parts = _error_parts(err)
            if parts:
                invalid.add(parts[0])
        return invalid

    def action_errors(self, action_type: str, params: Any) -> List[str]:
        if not isinstance(params, dict):
            return [f"{action_type}: parameters must be an object"]
        validator = self._action_validators.get(action_type)
        if validator is None:
            return []
        return [f"{action_type}.{_format_error(err)}" for err in validator.iter_errors(params)]
