import os

import pytest

from agent_orchestrator.adapters.mock_adapter import MockAdapter
from agent_orchestrator.config import AgentOptions, Settings
from agent_orchestrator.environment import SimulatedEnvironment
from agent_orchestrator.events import EventManager, EventRecorder
from agent_orchestrator.executor import Executor
from agent_orchestrator.history import HistoryStore
from agent_orchestrator.validation.monitor import JsonMonitor
from agent_orchestrator.validation.repair import Repairer
from agent_orchestrator.validation.schemas import SchemaValidator


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    """Keep ORCH_* settings from the developer shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("ORCH_"):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def validator():
    return SchemaValidator()


@pytest.fixture
def repairer(validator):
    return Repairer(validator)


@pytest.fixture
def monitor(validator, repairer):
    return JsonMonitor(validator, repairer)


@pytest.fixture
def planner_record():
    return {
        "observation": "The search page is open",
        "done": False,
        "challenges": "",
        "next_steps": "Type the query",
        "final_answer": None,
        "reasoning": "The query has not been entered",
        "web_task": True,
    }


@pytest.fixture
def navigator_record():
    return {
        "current_state": {
            "evaluation_previous_goal": "Success",
            "memory": "Search page open",
            "next_goal": "Type the query",
        },
        "action": [{"input_text": {"intent": "Enter the query", "index": 2, "text": "python"}}],
    }


@pytest.fixture
def environment():
    return SimulatedEnvironment()


@pytest.fixture
def make_executor(tmp_path, environment):
    """Build an executor on mock models; returns (executor, recorder)."""

    def _make(
        planner_responses=None,
        navigator_responses=None,
        scenario="default",
        provider="mock",
        history=False,
        **option_overrides,
    ):
        options = AgentOptions(
            pause_poll_seconds=0.01,
            history_dir=str(tmp_path / "runs"),
            replay_historical_tasks=history,
            **option_overrides,
        )
        settings = Settings(options=options)
        events = EventManager()
        recorder = EventRecorder()
        events.subscribe(recorder)
        executor = Executor(
            task="Open the start page",
            task_id="task-1",
            environment=environment,
            navigator_llm=MockAdapter(
                scenario=scenario, responses=list(navigator_responses or []), provider=provider
            ),
            planner_llm=MockAdapter(scenario=scenario, responses=list(planner_responses or []), provider=provider),
            settings=settings,
            event_manager=events,
            history_store=HistoryStore(tmp_path / "runs"),
        )
        return executor, recorder

    return _make
