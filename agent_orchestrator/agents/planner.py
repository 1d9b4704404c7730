from __future__ import annotations

import logging

from agent_orchestrator.agents.base import BaseAgent
from agent_orchestrator.errors import FATAL_STEP_ERRORS
from agent_orchestrator.events import Actor, ExecutionState
from agent_orchestrator.models import AgentOutput, PlannerOutput, Role

logger = logging.getLogger(__name__)


class PlannerAgent(BaseAgent):
    role = Role.PLANNER

    def execute(self) -> AgentOutput:
        self.context.emit_event(Actor.PLANNER, ExecutionState.STEP_START, "Planning...")
        try:
            history = self.context.message_history.get_messages()
            messages = [self.system_message()] + history[1:]
            record = self.invoke(messages)
            plan = PlannerOutput.from_dict(record)
        except FATAL_STEP_ERRORS:
            raise
        except Exception as exc:
            logger.error("[planner] planning failed: %s", exc)
            self.context.emit_event(Actor.PLANNER, ExecutionState.STEP_FAIL, f"Planning failed: {exc}")
            return AgentOutput(role=self.role, error=str(exc))

        message = plan.final_answer if plan.done else plan.next_steps
        self.context.emit_event(Actor.PLANNER, ExecutionState.STEP_OK, message or "")
        logger.info("[planner] done=%s next_steps=%s", plan.done, plan.next_steps)
        return AgentOutput(role=self.role, result=plan, done=plan.done)
