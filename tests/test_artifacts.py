from agent_orchestrator.artifacts.writers import format_transcript, write_run_summary, write_transcript
from agent_orchestrator.events import Actor, AgentEvent, EventData, ExecutionState
from agent_orchestrator.models import RunStatus, TaskRun


def _event(actor, state, details):
    return AgentEvent(actor, state, EventData("t", 0, 10, details), timestamp=0.0)


def test_transcript_format(tmp_path):
    events = [
        _event(Actor.SYSTEM, ExecutionState.TASK_START, "t"),
        _event(Actor.PLANNER, ExecutionState.STEP_OK, "open the page"),
    ]
    text = format_transcript(events, title="demo")
    assert text.startswith("=== Run transcript: demo ===\n\n")
    assert "[1970-01-01 00:00:00] System: task.start t" in text
    assert "[1970-01-01 00:00:00] Planner: step.ok open the page" in text
    path = tmp_path / "out" / "transcript.md"
    write_transcript(path, events)
    assert path.read_text(encoding="utf-8").startswith("=== Run transcript ===")


def test_empty_transcript():
    assert "No events recorded" in format_transcript([])


def test_run_summary(tmp_path):
    run = TaskRun(id="r1", status=RunStatus.COMPLETED, final_answer="42", message="42", navigator_calls=2)
    path = tmp_path / "run_summary.md"
    write_run_summary(path, "answer", run, {"total_responses": 3})
    text = path.read_text(encoding="utf-8")
    assert "- status: completed" in text
    assert "- navigator_calls: 2" in text
    assert "- total_responses: 3" in text
