from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List


class Role(str, Enum):
    PLANNER = "planner"
    NAVIGATOR = "navigator"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: "Role | str | None") -> "Role":
        if isinstance(value, Role):
            return value
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class RunStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.CANCELLED, RunStatus.COMPLETED, RunStatus.FAILED)


def coerce_bool(value: Any) -> Any:
    """Map "true"/"false" strings (any case) onto booleans; leave anything else alone."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return value


@dataclass
class PlannerOutput:
    observation: str
    done: bool
    challenges: str
    next_steps: str
    final_answer: str | None
    reasoning: str
    web_task: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannerOutput":
        return cls(
            observation=str(data.get("observation", "")),
            done=bool(coerce_bool(data.get("done", False))),
            challenges=str(data.get("challenges", "")),
            next_steps=str(data.get("next_steps", "")),
            final_answer=data.get("final_answer"),
            reasoning=str(data.get("reasoning", "")),
            web_task=bool(coerce_bool(data.get("web_task", True))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def signature(self) -> str:
        return self.next_steps or self.observation


@dataclass
class AgentBrain:
    evaluation_previous_goal: str
    memory: str
    next_goal: str


@dataclass
class NavigatorOutput:
    current_state: AgentBrain
    action: List[Dict[str, Dict[str, Any]]]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NavigatorOutput":
        state = data.get("current_state") or {}
        return cls(
            current_state=AgentBrain(
                evaluation_previous_goal=str(state.get("evaluation_previous_goal", "")),
                memory=str(state.get("memory", "")),
                next_goal=str(state.get("next_goal", "")),
            ),
            action=list(data.get("action") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"current_state": asdict(self.current_state), "action": list(self.action)}

    @property
    def action_types(self) -> List[str]:
        return [next(iter(item)) for item in self.action if isinstance(item, dict) and item]


@dataclass
class ValidationResult:
    is_valid: bool
    role: Role
    errors: List[str] = field(default_factory=list)
    original_response: str = ""
    parsed_json: Dict[str, Any] | None = None
    validated_data: Dict[str, Any] | None = None
    corrected_response: Dict[str, Any] | None = None
    response_id: str = ""

    @property
    def output(self) -> Dict[str, Any] | None:
        if self.corrected_response is not None:
            return self.corrected_response
        return self.validated_data


@dataclass
class ActionResult:
    is_done: bool = False
    success: bool = True
    extracted_content: str | None = None
    error: str | None = None
    include_in_memory: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionResult":
        return cls(
            is_done=bool(data.get("is_done", False)),
            success=bool(data.get("success", True)),
            extracted_content=data.get("extracted_content"),
            error=data.get("error"),
            include_in_memory=bool(data.get("include_in_memory", False)),
        )


@dataclass
class AgentOutput:
    role: Role
    result: Any = None
    error: str | None = None
    done: bool = False


@dataclass
class TaskRun:
    id: str
    steps: List[Any] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    consecutive_failures: int = 0
    last_planner_signature: str | None = None
    repetition_count: int = 0
    step_index: int = 0
    navigator_calls: int = 0
    planner_calls: int = 0
    final_answer: str | None = None
    message: str = ""

    def finish(self, status: RunStatus, message: str) -> None:
        self.status = status
        self.message = message
