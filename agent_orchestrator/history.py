from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

from agent_orchestrator.models import ActionResult
from agent_orchestrator.utils.io import read_json, write_json
from agent_orchestrator.utils.time import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass
class AgentStepRecord:
    step_number: int
    role: str
    model_output: Dict[str, Any] | None = None
    results: List[ActionResult] = field(default_factory=list)
    state: str | None = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_number": self.step_number,
            "role": self.role,
            "model_output": self.model_output,
            "results": [result.to_dict() for result in self.results],
            "state": self.state,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentStepRecord":
        return cls(
            step_number=int(data.get("step_number", 0)),
            role=str(data.get("role", "")),
            model_output=data.get("model_output"),
            results=[ActionResult.from_dict(item) for item in data.get("results", [])],
            state=data.get("state"),
            timestamp=str(data.get("timestamp", "")),
        )


@dataclass
class AgentStepHistory:
    history: List[AgentStepRecord] = field(default_factory=list)

    def add(self, record: AgentStepRecord) -> None:
        self.history.append(record)

    def actions(self) -> List[Dict[str, Any]]:
        """Every recorded navigator action, in execution order."""
        collected: List[Dict[str, Any]] = []
        for record in self.history:
            output = record.model_output or {}
            for action in output.get("action") or []:
                if isinstance(action, dict):
                    collected.append(action)
        return collected

    def __len__(self) -> int:
        return len(self.history)

    def to_dict(self) -> Dict[str, Any]:
        return {"history": [record.to_dict() for record in self.history]}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentStepHistory":
        return cls(history=[AgentStepRecord.from_dict(item) for item in data.get("history", [])])

    @classmethod
    def from_json(cls, text: str) -> "AgentStepHistory":
        return cls.from_dict(json.loads(text))


class HistoryStore:
    """Run histories on disk, one ``<run_id>/history.json`` per run."""

    def __init__(self, base_dir: Path | str = "runs") -> None:
        self.base_dir = Path(base_dir)

    def path_for(self, run_id: str) -> Path:
        return self.base_dir / run_id / "history.json"

    def store(self, run_id: str, task: str, history: AgentStepHistory) -> Path:
        path = self.path_for(run_id)
        write_json(path, {"run_id": run_id, "task": task, "stored_at": utc_now_iso(), **history.to_dict()})
        logger.info("[history] stored %d steps for %s", len(history), run_id)
        return path

    def load(self, run_id: str) -> Tuple[str, AgentStepHistory] | None:
        path = self.path_for(run_id)
        if not path.exists():
            return None
        payload = read_json(path)
        return str(payload.get("task", "")), AgentStepHistory.from_dict(payload)
