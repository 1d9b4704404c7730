from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from agent_orchestrator.events import AgentEvent
from agent_orchestrator.models import TaskRun
from agent_orchestrator.utils.io import write_text
from agent_orchestrator.utils.time import format_epoch

ACTOR_NAMES = {
    "system": "System",
    "user": "User",
    "planner": "Planner",
    "navigator": "Navigator",
}


def format_transcript(events: List[AgentEvent], title: str | None = None) -> str:
    header = f"=== Run transcript: {title} ===" if title else "=== Run transcript ==="
    if not events:
        return f"{header}\n\nNo events recorded\n"
    lines = []
    for event in events:
        actor = ACTOR_NAMES.get(event.actor.value, event.actor.value)
        lines.append(f"[{format_epoch(event.timestamp)}] {actor}: {event.state.value} {event.message}".rstrip())
    return header + "\n\n" + "\n\n".join(lines) + "\n"


def write_transcript(path: Path, events: List[AgentEvent], title: str | None = None) -> None:
    write_text(path, format_transcript(events, title))


def write_run_summary(path: Path, task: str, run: TaskRun, statistics: Dict[str, Any]) -> None:
    lines: List[str] = [
        "# Run Summary",
        "",
        f"- run_id: {run.id}",
        f"- task: {task}",
        f"- status: {run.status.value}",
        f"- message: {run.message or 'none'}",
        f"- final_answer: {run.final_answer or 'none'}",
        f"- cycles: {run.step_index + 1}",
        f"- planner_calls: {run.planner_calls}",
        f"- navigator_calls: {run.navigator_calls}",
        f"- consecutive_failures: {run.consecutive_failures}",
        f"- repetition_count: {run.repetition_count}",
        f"- recorded_steps: {len(run.steps)}",
        "",
        "## Response Monitor",
    ]
    lines.extend(f"- {key}: {value}" for key, value in statistics.items())
    write_text(path, "\n".join(lines) + "\n")
