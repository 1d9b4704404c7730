from __future__ import annotations

import json
from pathlib import Path

from agent_orchestrator.models import Role
from agent_orchestrator.utils.io import read_text
from agent_orchestrator.validation.repair import PLANNER_DEFAULTS, default_navigation

PROMPT_DIR = Path(__file__).resolve().parent / "prompts"


def load_prompt(role: Role, prompt_dir: Path | None = None) -> str:
    base = Path(prompt_dir) if prompt_dir else PROMPT_DIR
    return read_text(base / f"{Role.parse(role).value}.md")


def manual_json_instructions(role: Role) -> str:
    if Role.parse(role) is Role.PLANNER:
        keys = ", ".join(PLANNER_DEFAULTS)
        return (
            "\n\nIMPORTANT: answer with ONLY the JSON object, no prose and no markdown. "
            f"It must contain exactly these keys: {keys}. "
            "`done` and `web_task` are JSON booleans."
        )
    example = '{"current_state": {"evaluation_previous_goal": "...", "memory": "...", "next_goal": "..."}, "action": [%s]}'
    return (
        "\n\nIMPORTANT: answer with ONLY the JSON object, no prose and no markdown, shaped like: "
        + example % json.dumps(default_navigation())
    )


def system_prompt(role: Role, max_actions: int = 10, manual_json: bool = False) -> str:
    prompt = load_prompt(role).replace("{max_actions}", str(max_actions))
    if manual_json:
        prompt += manual_json_instructions(role)
    return prompt
