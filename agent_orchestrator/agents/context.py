from __future__ import annotations

import threading
from typing import List

from agent_orchestrator.config import AgentOptions
from agent_orchestrator.environment import HostEnvironment
from agent_orchestrator.events import Actor, AgentEvent, EventData, EventManager, ExecutionState
from agent_orchestrator.history import AgentStepHistory
from agent_orchestrator.messages import MessageHistory
from agent_orchestrator.models import ActionResult


class AgentContext:
    """State shared by the executor and both role agents for one run."""

    def __init__(
        self,
        task_id: str,
        environment: HostEnvironment,
        event_manager: EventManager,
        options: AgentOptions | None = None,
        message_history: MessageHistory | None = None,
    ) -> None:
        self.task_id = task_id
        self.environment = environment
        self.event_manager = event_manager
        self.options = options or AgentOptions()
        self.message_history = message_history or MessageHistory()
        self.cancel_event = threading.Event()
        self.pause_event = threading.Event()
        self.n_steps = 0
        self.action_results: List[ActionResult] = []
        self.step_history = AgentStepHistory()
        self.final_answer: str | None = None

    @property
    def stopped(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def paused(self) -> bool:
        return self.pause_event.is_set()

    def pause(self) -> None:
        self.pause_event.set()

    def resume(self) -> None:
        self.pause_event.clear()

    def stop(self) -> None:
        self.cancel_event.set()
        self.pause_event.clear()

    def emit_event(self, actor: Actor, state: ExecutionState, details: str = "") -> None:
        data = EventData(
            task_id=self.task_id,
            step=self.n_steps,
            max_steps=self.options.max_steps,
            details=details or "",
        )
        self.event_manager.emit(AgentEvent(actor=actor, state=state, data=data))
