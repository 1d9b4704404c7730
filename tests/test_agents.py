"""Role agents and the structured/manual invocation paths."""

import json
import threading

import pytest

from agent_orchestrator.adapters.llm_base import ChatMessage
from agent_orchestrator.adapters.mock_adapter import MockAdapter
from agent_orchestrator.agents.base import BaseAgent
from agent_orchestrator.agents.context import AgentContext
from agent_orchestrator.agents.navigator import NavigatorAgent
from agent_orchestrator.agents.planner import PlannerAgent
from agent_orchestrator.config import AgentOptions, ProviderCapabilities
from agent_orchestrator.environment import SimulatedEnvironment
from agent_orchestrator.errors import (
    ChatModelAuthError,
    ChatModelForbiddenError,
    InvocationError,
    RequestCancelledError,
    URLNotAllowedError,
)
from agent_orchestrator.events import EventManager, EventRecorder, ExecutionState
from agent_orchestrator.models import Role
from agent_orchestrator.validation.repair import SAFE_DEFAULT_URL


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class PlannerProbe(BaseAgent):
    role = Role.PLANNER


FLAKY = ProviderCapabilities(
    manual_providers=frozenset(),
    manual_models=frozenset(),
    unreliable_structured_providers=frozenset({"flaky"}),
)


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def context(recorder):
    events = EventManager()
    events.subscribe(recorder)
    return AgentContext("task-1", SimulatedEnvironment(), events, AgentOptions(max_actions_per_step=2))


MESSAGES = [ChatMessage("system", "planner_output"), ChatMessage("user", "task")]


def test_structured_path_returns_parsed_record(context, monitor, planner_record):
    llm = MockAdapter(responses=[planner_record], provider="openai")
    agent = PlannerProbe(llm, context, monitor)
    assert agent.uses_structured_path
    assert agent.invoke(MESSAGES) == planner_record
    assert llm.structured_calls == 1
    assert monitor.counters.total == 0


def test_manual_only_models_skip_structured_output(context, monitor, planner_record):
    llm = MockAdapter(responses=["<think>hmm</think>" + json.dumps(planner_record)], model_name="deepseek-reasoner")
    agent = PlannerProbe(llm, context, monitor)
    assert not agent.uses_structured_path
    assert agent.invoke(MESSAGES) == planner_record
    assert llm.structured_calls == 0
    assert monitor.counters.succeeded == 1


def test_manual_path_merges_messages_for_reasoning_models(context, monitor, planner_record):
    llm = MockAdapter(responses=[planner_record], model_name="deepseek-r1")
    agent = PlannerProbe(llm, context, monitor)
    agent.invoke([ChatMessage("system", "s"), ChatMessage("user", "a"), ChatMessage("user", "b")])
    assert [message.content for message in llm.calls[0]] == ["s", "ab"]


def test_allow_listed_provider_downgrades_once(context, monitor, planner_record):
    llm = MockAdapter(responses=["not json", "Sure: " + json.dumps(planner_record)], provider="flaky")
    agent = PlannerProbe(llm, context, monitor, FLAKY)
    assert agent.uses_structured_path
    assert agent.invoke(MESSAGES) == planner_record
    assert not agent.uses_structured_path
    assert llm.structured_calls == 1
    assert len(llm.calls) == 2


def test_other_providers_raise_invocation_error(context, monitor):
    llm = MockAdapter(responses=["not json"], provider="openai")
    agent = PlannerProbe(llm, context, monitor)
    with pytest.raises(InvocationError):
        agent.invoke(MESSAGES)
    assert agent.uses_structured_path


@pytest.mark.parametrize(
    "error, expected",
    [
        (StatusError("unauthorized", 401), ChatModelAuthError),
        (StatusError("forbidden", 403), ChatModelForbiddenError),
        (RequestCancelledError("stop"), RequestCancelledError),
    ],
)
def test_fatal_errors_propagate_on_both_paths(context, monitor, error, expected):
    structured = PlannerProbe(MockAdapter(responses=[error], provider="flaky"), context, monitor, FLAKY)
    with pytest.raises(expected):
        structured.invoke(MESSAGES)
    assert structured.uses_structured_path
    manual = PlannerProbe(MockAdapter(responses=[error], provider="g4f"), context, monitor)
    with pytest.raises(expected):
        manual.invoke(MESSAGES)


def test_cancelled_context_stops_before_calling(context, monitor):
    llm = MockAdapter(provider="openai")
    agent = PlannerProbe(llm, context, monitor)
    context.stop()
    with pytest.raises(RequestCancelledError):
        agent.invoke(MESSAGES)
    assert llm.calls == []


def test_manual_system_prompt_carries_json_template(context, monitor):
    agent = PlannerProbe(MockAdapter(provider="g4f"), context, monitor)
    assert "answer with ONLY the JSON object" in agent.system_message().content


def test_planner_execute_emits_events(context, monitor, recorder, planner_record):
    record = dict(planner_record, done=True, final_answer="42")
    agent = PlannerAgent(MockAdapter(responses=[record], provider="openai"), context, monitor)
    output = agent.execute()
    assert output.done
    assert output.result.final_answer == "42"
    assert output.result.observation == record["observation"]
    assert recorder.states() == [ExecutionState.STEP_START, ExecutionState.STEP_OK]
    assert recorder.events[-1].message == "42"


def test_planner_failure_is_reported_not_raised(context, monitor, recorder):
    agent = PlannerAgent(MockAdapter(responses=["oops"], provider="openai"), context, monitor)
    output = agent.execute()
    assert output.error
    assert recorder.events[-1].state is ExecutionState.STEP_FAIL
    assert recorder.events[-1].message.startswith("Planning failed:")


def test_navigator_runs_repaired_actions(context, monitor, recorder):
    record = {
        "current_state": {"evaluation_previous_goal": "", "memory": "", "next_goal": "open"},
        "action": [{"go_to_url": {"intent": "Open"}}],
    }
    agent = NavigatorAgent(MockAdapter(responses=[record], provider="openai"), context, monitor)
    output = agent.execute()
    assert output.error is None
    assert context.environment.current_url == SAFE_DEFAULT_URL
    assert len(context.step_history) == 1
    assert context.step_history.history[0].state == SAFE_DEFAULT_URL
    assert recorder.states()[-1] is ExecutionState.STEP_OK


def test_navigator_stops_after_done_and_caps_actions(context, monitor):
    record = {
        "current_state": {"evaluation_previous_goal": "", "memory": "", "next_goal": ""},
        "action": [
            {"click_element": {"index": 1}},
            {"done": {"text": "finished", "success": True}},
            {"click_element": {"index": 2}},
        ],
    }
    agent = NavigatorAgent(MockAdapter(responses=[record], provider="openai"), context, monitor)
    output = agent.execute()
    assert output.done
    assert context.environment.clicks == [1]
    assert output.result.action_types == ["click_element", "done", "click_element"]
    assert len(context.action_results) == 2


def test_navigator_state_message_is_removed_after_step(context, monitor, navigator_record):
    context.message_history.init_task_messages("system", "task")
    agent = NavigatorAgent(MockAdapter(responses=[navigator_record], provider="openai"), context, monitor)
    agent.execute()
    contents = [message.content for message in context.message_history.get_messages()]
    assert not any("Current url" in content for content in contents)
    assert json.loads(contents[-1]) == navigator_record


def test_navigator_url_policy_is_fatal(monitor):
    environment = SimulatedEnvironment(denied_prefixes=["https://blocked"])
    context = AgentContext("task-1", environment, EventManager())
    record = {
        "current_state": {"evaluation_previous_goal": "", "memory": "", "next_goal": ""},
        "action": [{"go_to_url": {"url": "https://blocked.example"}}],
    }
    agent = NavigatorAgent(MockAdapter(responses=[record], provider="openai"), context, monitor)
    with pytest.raises(URLNotAllowedError):
        agent.execute()


def test_cancel_event_is_passed_to_adapter(context, monitor, planner_record):
    seen = {}

    class Capturing(MockAdapter):
        def complete_structured(self, messages, schema_name, schema, cancel=None):
            seen["cancel"] = cancel
            seen["schema_name"] = schema_name
            return super().complete_structured(messages, schema_name, schema, cancel)

    agent = PlannerProbe(Capturing(responses=[planner_record], provider="openai"), context, monitor)
    agent.invoke(MESSAGES)
    assert isinstance(seen["cancel"], threading.Event)
    assert seen["schema_name"] == "planner_output"
