from __future__ import annotations

import logging
from typing import Tuple

from agent_orchestrator.models import Role

logger = logging.getLogger(__name__)

NAVIGATOR_KEYWORDS: Tuple[str, ...] = (
    "current_state",
    "action",
    "evaluation_previous_goal",
    "memory",
    "next_goal",
    "click_element",
    "go_to_url",
    "input_text",
    "navigate",
    "browser",
)

PLANNER_KEYWORDS: Tuple[str, ...] = (
    "observation",
    "challenges",
    "next_steps",
    "final_answer",
    "reasoning",
    "web_task",
)


def keyword_scores(raw_text: str) -> Tuple[int, int]:
    lowered = (raw_text or "").lower()
    navigator = sum(1 for keyword in NAVIGATOR_KEYWORDS if keyword in lowered)
    planner = sum(1 for keyword in PLANNER_KEYWORDS if keyword in lowered)
    return navigator, planner


def classify_role(raw_text: str, role_hint: Role | str | None = None, context: str | None = None) -> Role:
    hint = Role.parse(role_hint)
    if hint is not Role.UNKNOWN:
        return hint
    navigator, planner = keyword_scores(raw_text)
    role = Role.NAVIGATOR if navigator > planner else Role.PLANNER
    logger.debug(
        "[roles] navigator=%d planner=%d -> %s%s",
        navigator,
        planner,
        role.value,
        f" ({context})" if context else "",
    )
    return role
