from __future__ import annotations

import logging
from typing import Any, Dict, List

from agent_orchestrator.adapters.llm_base import check_cancelled
from agent_orchestrator.agents.base import BaseAgent
from agent_orchestrator.errors import FATAL_STEP_ERRORS, StepExecutionError
from agent_orchestrator.events import Actor, ExecutionState
from agent_orchestrator.history import AgentStepRecord
from agent_orchestrator.models import ActionResult, AgentOutput, NavigatorOutput, Role

logger = logging.getLogger(__name__)


class NavigatorAgent(BaseAgent):
    role = Role.NAVIGATOR

    def execute(self) -> AgentOutput:
        self.context.emit_event(Actor.NAVIGATOR, ExecutionState.STEP_START, "Navigating...")
        history = self.context.message_history
        environment = self.context.environment
        try:
            state = environment.describe_state()
            history.add_state_message(state)
            messages = [self.system_message()] + history.get_messages()[1:]
            record = self._enforce_contracts(self.invoke(messages))
            history.remove_last_state_message()
            history.add_model_output(record)
            output = NavigatorOutput.from_dict(record)
            logger.info("[navigator] step %d actions: %s", self.context.n_steps, ", ".join(output.action_types))
            results = self.do_actions(output.action)
            self.context.action_results = results
            self.context.step_history.add(
                AgentStepRecord(
                    step_number=self.context.n_steps,
                    role=self.role.value,
                    model_output=record,
                    results=results,
                    state=str(environment.fingerprint()),
                )
            )
        except FATAL_STEP_ERRORS:
            history.remove_last_state_message()
            raise
        except Exception as exc:
            history.remove_last_state_message()
            logger.error("[navigator] step failed: %s", exc)
            self.context.emit_event(Actor.NAVIGATOR, ExecutionState.STEP_FAIL, f"Navigation failed: {exc}")
            return AgentOutput(role=self.role, error=str(exc))

        failed = next((result for result in results if result.error), None)
        if failed is not None:
            self.context.emit_event(Actor.NAVIGATOR, ExecutionState.STEP_FAIL, failed.error or "")
            return AgentOutput(role=self.role, result=output, error=failed.error)
        done = any(result.is_done for result in results)
        self.context.emit_event(Actor.NAVIGATOR, ExecutionState.STEP_OK, output.current_state.next_goal)
        return AgentOutput(role=self.role, result=output, done=done)

    def _enforce_contracts(self, record: Dict[str, Any]) -> Dict[str, Any]:
        repairer = self.monitor.repairer
        if not self.validator.validate(record, self.role).success:
            record = repairer.repair(record, self.role)
        actions, errors = repairer.repair_actions(record["action"])
        if errors:
            logger.warning("[navigator] fixed %d action problems: %s", len(errors), "; ".join(errors))
        return {**record, "action": actions}

    def do_actions(self, actions: List[Dict[str, Dict[str, Any]]]) -> List[ActionResult]:
        limit = self.context.options.max_actions_per_step
        if len(actions) > limit:
            logger.warning("[navigator] %d actions requested, running the first %d", len(actions), limit)
        results: List[ActionResult] = []
        for action in actions[:limit]:
            check_cancelled(self.context.cancel_event)
            try:
                result = self.context.environment.execute_action(action)
            except FATAL_STEP_ERRORS:
                raise
            except Exception as exc:
                raise StepExecutionError(f"Action {next(iter(action))} failed: {exc}") from exc
            results.append(result)
            if result.is_done or result.error:
                break
        return results
