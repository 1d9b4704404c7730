from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from agent_orchestrator.adapters.llm_base import LLMAdapter
from agent_orchestrator.agents.context import AgentContext
from agent_orchestrator.agents.navigator import NavigatorAgent
from agent_orchestrator.agents.planner import PlannerAgent
from agent_orchestrator.config import Settings
from agent_orchestrator.environment import HostEnvironment
from agent_orchestrator.errors import (
    FATAL_STEP_ERRORS,
    HostConflictError,
    RequestCancelledError,
    StepExecutionError,
    URLNotAllowedError,
)
from agent_orchestrator.events import Actor, EventCallback, EventManager, ExecutionState
from agent_orchestrator.history import HistoryStore
from agent_orchestrator.messages import wrap_untrusted_content
from agent_orchestrator.models import ActionResult, PlannerOutput, RunStatus, TaskRun
from agent_orchestrator.validation.monitor import JsonMonitor

logger = logging.getLogger(__name__)

LOOP_STOP_OUTPUT = PlannerOutput(
    observation="Detected repetitive behavior - completing task to prevent infinite loop",
    done=True,
    challenges="System detected potential infinite loop",
    next_steps="Task completed due to loop prevention",
    final_answer="Task stopped to prevent infinite execution loop",
    reasoning="Loop detection mechanism activated",
    web_task=True,
)


class Executor:
    """Drives one task: planner and navigator calls until a terminal state.

    Every cycle runs a stop check, an optional planning step and one
    navigator step. ``execute`` always returns the finished ``TaskRun`` and
    never raises for model or environment failures.
    """

    def __init__(
        self,
        task: str,
        task_id: str,
        environment: HostEnvironment,
        navigator_llm: LLMAdapter,
        planner_llm: LLMAdapter | None = None,
        settings: Settings | None = None,
        event_manager: EventManager | None = None,
        monitor: JsonMonitor | None = None,
        history_store: HistoryStore | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.options = self.settings.options
        self.tasks: List[str] = [task]
        self.event_manager = event_manager or EventManager()
        self.context = AgentContext(task_id, environment, self.event_manager, self.options)
        self.monitor = monitor or JsonMonitor()
        self.navigator = NavigatorAgent(navigator_llm, self.context, self.monitor, self.settings.capabilities)
        self.planner = PlannerAgent(planner_llm or navigator_llm, self.context, self.monitor, self.settings.capabilities)
        self.history_store = history_store or HistoryStore(self.options.history_dir)
        self.run = self._new_run()
        self.context.message_history.init_task_messages(self.navigator.system_message().content, task)

    def _new_run(self) -> TaskRun:
        return TaskRun(id=self.context.task_id, steps=self.context.step_history.history)

    def subscribe_execution_events(self, callback: EventCallback) -> None:
        self.event_manager.subscribe(callback)

    def clear_execution_events(self) -> None:
        self.event_manager.clear()

    def add_follow_up_task(self, task: str) -> None:
        self.tasks.append(task)
        self.context.message_history.add_new_task(task)
        self.context.action_results = [result for result in self.context.action_results if result.include_in_memory]
        self.context.cancel_event.clear()
        self.context.pause_event.clear()
        self.context.final_answer = None
        self.run = self._new_run()
        logger.info("[executor] follow-up task added to %s", self.context.task_id)

    def pause(self) -> None:
        self.context.pause()

    def resume(self) -> None:
        self.context.resume()

    def cancel(self) -> None:
        self.context.stop()

    def execute(self) -> TaskRun:
        run = self.run
        context = self.context
        logger.info("[executor] task %s: %s", context.task_id, self.tasks[-1])
        context.emit_event(Actor.SYSTEM, ExecutionState.TASK_START, context.task_id)
        acquired = False
        try:
            context.environment.acquire(context.task_id)
            acquired = True
            self._loop(run)
        except RequestCancelledError:
            run.finish(RunStatus.CANCELLED, "Task cancelled")
        except FATAL_STEP_ERRORS as exc:
            run.finish(RunStatus.FAILED, f"Task failed: {exc}")
        except Exception as exc:
            logger.exception("[executor] unexpected failure")
            run.finish(RunStatus.FAILED, f"Task failed: {exc}")
        finally:
            self._finish(run, acquired)
        return run

    def _loop(self, run: TaskRun) -> None:
        navigator_done = False
        for step in range(self.options.max_steps):
            run.step_index = step
            if self._should_stop(run):
                return
            if step % self.options.planning_interval == 0 or navigator_done:
                navigator_done = False
                self._run_planner(run)
                if run.status.is_terminal:
                    return
            navigator_done = self._navigate(run)
            if run.status.is_terminal:
                return
        run.finish(RunStatus.FAILED, "Task failed: max steps exceeded")

    def _should_stop(self, run: TaskRun) -> bool:
        context = self.context
        if context.stopped:
            run.finish(RunStatus.CANCELLED, "Task cancelled")
            return True
        if context.paused:
            run.status = RunStatus.PAUSED
            context.emit_event(Actor.SYSTEM, ExecutionState.TASK_PAUSE, "Task paused")
            while context.paused and not context.stopped:
                context.cancel_event.wait(self.options.pause_poll_seconds)
            if context.stopped:
                run.finish(RunStatus.CANCELLED, "Task cancelled")
                return True
            run.status = RunStatus.RUNNING
            logger.info("[executor] task %s resumed", context.task_id)
        if run.consecutive_failures >= self.options.max_failures:
            run.finish(RunStatus.FAILED, "Task failed: max failures reached")
            return True
        return False

    def _run_planner(self, run: TaskRun) -> PlannerOutput | None:
        run.planner_calls += 1
        output = self.planner.execute()
        if output.error or output.result is None:
            logger.warning("[executor] planner produced no plan: %s", output.error)
            return None
        plan: PlannerOutput = output.result
        signature = plan.signature
        if run.last_planner_signature and signature == run.last_planner_signature:
            run.repetition_count += 1
            logger.warning("[executor] planner repeated itself (%d)", run.repetition_count)
            if run.repetition_count + 1 >= self.settings.options.repetition_threshold:
                logger.error("[executor] repetition limit reached, completing task")
                self._complete(run, LOOP_STOP_OUTPUT)
                return LOOP_STOP_OUTPUT
        else:
            run.repetition_count = 0
            run.last_planner_signature = signature
        stored = plan.to_dict()
        stored["observation"] = wrap_untrusted_content(plan.observation)
        self.context.message_history.add_plan(json.dumps(stored, ensure_ascii=False))
        if plan.done:
            self._complete(run, plan)
        return plan

    def _complete(self, run: TaskRun, plan: PlannerOutput) -> None:
        run.final_answer = plan.final_answer
        self.context.final_answer = plan.final_answer
        run.finish(RunStatus.COMPLETED, plan.final_answer or self.context.task_id)

    def _navigate(self, run: TaskRun) -> bool:
        context = self.context
        try:
            before = context.environment.fingerprint()
            if context.stopped:
                return False
            run.navigator_calls += 1
            output = self.navigator.execute()
            context.n_steps += 1
            after = context.environment.fingerprint()
            if before != after:
                if run.repetition_count:
                    logger.info("[executor] state changed, clearing repetition count")
                run.repetition_count = 0
            else:
                logger.debug("[executor] state unchanged after step %d", context.n_steps)
            if output.error:
                raise StepExecutionError(output.error)
            run.consecutive_failures = 0
            return output.done
        except FATAL_STEP_ERRORS:
            raise
        except Exception as exc:
            run.consecutive_failures += 1
            logger.error(
                "[executor] step failed (%d/%d): %s",
                run.consecutive_failures,
                self.options.max_failures,
                exc,
            )
            if run.consecutive_failures >= self.options.max_failures:
                run.finish(RunStatus.FAILED, f"Task failed: max failures reached ({exc})")
            return False

    def _finish(self, run: TaskRun, acquired: bool) -> None:
        context = self.context
        if run.status is RunStatus.COMPLETED:
            context.emit_event(Actor.SYSTEM, ExecutionState.TASK_OK, run.message)
        elif run.status is RunStatus.CANCELLED:
            context.emit_event(Actor.SYSTEM, ExecutionState.TASK_CANCEL, run.message)
        else:
            if not run.status.is_terminal:
                run.finish(RunStatus.FAILED, run.message or "Task failed")
            context.emit_event(Actor.SYSTEM, ExecutionState.TASK_FAIL, run.message)
        logger.info("[executor] task %s finished: %s (%s)", context.task_id, run.status.value, run.message)
        if acquired:
            self._release()
        if self.options.replay_historical_tasks:
            try:
                self.history_store.store(context.task_id, self.tasks[0], context.step_history)
            except OSError as exc:
                logger.error("[executor] failed to store history: %s", exc)

    def replay_history(
        self,
        run_id: str,
        max_retries: int = 3,
        skip_failures: bool = True,
        delay_between_actions: float = 2.0,
    ) -> List[ActionResult]:
        """Re-run the actions recorded for ``run_id`` against the environment."""
        context = self.context
        results: List[ActionResult] = []
        acquired = False
        context.emit_event(Actor.SYSTEM, ExecutionState.TASK_START, context.task_id)
        try:
            loaded = self.history_store.load(run_id)
            if loaded is None:
                raise ValueError(f"History not found for {run_id}")
            task, history = loaded
            actions = history.actions()
            if not actions:
                raise ValueError(f"History for {run_id} is empty")
            logger.info("[executor] replaying %d actions of %s: %s", len(actions), run_id, task)
            context.environment.acquire(context.task_id)
            acquired = True
            for action in actions:
                if context.stopped:
                    break
                results.append(self._replay_action(action, max_retries, skip_failures, delay_between_actions))
                if delay_between_actions and context.cancel_event.wait(delay_between_actions):
                    break
            if context.stopped:
                context.emit_event(Actor.SYSTEM, ExecutionState.TASK_CANCEL, "Replay cancelled")
            else:
                context.emit_event(Actor.SYSTEM, ExecutionState.TASK_OK, "Replay completed")
        except Exception as exc:
            logger.error("[executor] replay failed: %s", exc)
            context.emit_event(Actor.SYSTEM, ExecutionState.TASK_FAIL, f"Replay failed: {exc}")
        finally:
            if acquired:
                self._release()
        return results

    def _release(self) -> None:
        try:
            self.context.environment.release()
        except Exception as exc:
            logger.error("[executor] failed to release environment: %s", exc)

    def _replay_action(
        self,
        action: Dict[str, Any],
        max_retries: int,
        skip_failures: bool,
        delay: float,
    ) -> ActionResult:
        action_type = next(iter(action))
        for attempt in range(1, max_retries + 1):
            try:
                result = self.context.environment.execute_action(action)
                if result.error:
                    raise StepExecutionError(result.error)
                return result
            except (URLNotAllowedError, HostConflictError):
                raise
            except Exception as exc:
                logger.warning("[executor] replay %s attempt %d/%d failed: %s", action_type, attempt, max_retries, exc)
                if attempt == max_retries:
                    if skip_failures:
                        return ActionResult(success=False, error=str(exc))
                    raise
                if delay:
                    self.context.cancel_event.wait(delay)
        return ActionResult(success=False, error=f"{action_type} was not attempted")
