from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from agent_orchestrator.errors import HostConflictError, URLNotAllowedError
from agent_orchestrator.models import ActionResult

logger = logging.getLogger(__name__)


class HostEnvironment(Protocol):
    def acquire(self, owner: str) -> None:
        raise NotImplementedError

    def fingerprint(self) -> Any:
        raise NotImplementedError

    def describe_state(self) -> str:
        raise NotImplementedError

    def execute_action(self, action: Dict[str, Dict[str, Any]]) -> ActionResult:
        raise NotImplementedError

    def release(self) -> None:
        raise NotImplementedError


@dataclass
class SimulatedEnvironment(HostEnvironment):
    """In-memory browser stand-in: a current URL, a visit log and typed text."""

    start_url: str = "about:blank"
    allowed_prefixes: List[str] = field(default_factory=list)
    denied_prefixes: List[str] = field(default_factory=list)
    current_url: str = ""
    visited: List[str] = field(default_factory=list)
    inputs: Dict[int, str] = field(default_factory=dict)
    clicks: List[int] = field(default_factory=list)
    executed: List[Dict[str, Dict[str, Any]]] = field(default_factory=list)
    released: bool = False
    locked_by: str | None = None

    def __post_init__(self) -> None:
        if not self.current_url:
            self.current_url = self.start_url

    def acquire(self, owner: str) -> None:
        if self.locked_by and self.locked_by != owner:
            raise HostConflictError(f"Environment is already controlled by {self.locked_by}")
        self.locked_by = owner
        self.released = False

    def fingerprint(self) -> str:
        return self.current_url

    def describe_state(self) -> str:
        lines = [f"Current url: {self.current_url}"]
        if self.visited:
            lines.append("Visited: " + ", ".join(self.visited[-5:]))
        if self.inputs:
            lines.append("Filled fields: " + ", ".join(f"[{index}]" for index in sorted(self.inputs)))
        return "\n".join(lines)

    def _check_url(self, url: str) -> None:
        if any(url.startswith(prefix) for prefix in self.denied_prefixes):
            raise URLNotAllowedError(f"URL not allowed: {url}")
        if self.allowed_prefixes and not any(url.startswith(prefix) for prefix in self.allowed_prefixes):
            raise URLNotAllowedError(f"URL not allowed: {url}")

    def execute_action(self, action: Dict[str, Dict[str, Any]]) -> ActionResult:
        action_type, params = next(iter(action.items()))
        self.executed.append(action)
        if action_type == "go_to_url":
            self._check_url(params["url"])
            self.current_url = params["url"]
            self.visited.append(self.current_url)
            return ActionResult(extracted_content=f"Navigated to {self.current_url}", include_in_memory=True)
        if action_type == "click_element":
            self.clicks.append(int(params["index"]))
            return ActionResult(extracted_content=f"Clicked element {params['index']}", include_in_memory=True)
        if action_type == "input_text":
            self.inputs[int(params["index"])] = params["text"]
            return ActionResult(extracted_content=f"Typed into element {params['index']}", include_in_memory=True)
        if action_type == "done":
            return ActionResult(
                is_done=True,
                success=bool(params.get("success", True)),
                extracted_content=params.get("text", ""),
                include_in_memory=True,
            )
        return ActionResult(success=False, error=f"Unsupported action: {action_type}")

    def release(self) -> None:
        self.released = True
        self.locked_by = None
        logger.debug("[environment] released session at %s", self.current_url)

