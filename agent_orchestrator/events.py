from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class Actor(str, Enum):
    SYSTEM = "system"
    USER = "user"
    PLANNER = "planner"
    NAVIGATOR = "navigator"


class ExecutionState(str, Enum):
    TASK_START = "task.start"
    TASK_OK = "task.ok"
    TASK_FAIL = "task.fail"
    TASK_CANCEL = "task.cancel"
    TASK_PAUSE = "task.pause"
    STEP_START = "step.start"
    STEP_OK = "step.ok"
    STEP_FAIL = "step.fail"


@dataclass
class EventData:
    task_id: str
    step: int
    max_steps: int
    details: str = ""


@dataclass
class AgentEvent:
    actor: Actor
    state: ExecutionState
    data: EventData
    timestamp: float = field(default_factory=time.time)

    @property
    def message(self) -> str:
        return self.data.details

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["actor"] = self.actor.value
        payload["state"] = self.state.value
        return payload


EventCallback = Callable[[AgentEvent], None]


class EventManager:
    """Fan-out of lifecycle events; a failing subscriber never reaches the emitter."""

    def __init__(self) -> None:
        self._subscribers: List[EventCallback] = []

    def subscribe(self, callback: EventCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def clear(self) -> None:
        self._subscribers.clear()

    def emit(self, event: AgentEvent) -> None:
        logger.debug("[events] %s %s %s", event.actor.value, event.state.value, event.data.details)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as exc:
                logger.error("[events] subscriber failed on %s: %s", event.state.value, exc)


class EventRecorder:
    """Subscriber that keeps every event, used for transcripts and tests."""

    def __init__(self) -> None:
        self.events: List[AgentEvent] = []

    def __call__(self, event: AgentEvent) -> None:
        self.events.append(event)

    def states(self) -> List[ExecutionState]:
        return [event.state for event in self.events]
