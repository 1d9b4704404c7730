"""Response monitor: pipeline outcomes, counters and crash handling."""

import json
from unittest.mock import patch

from agent_orchestrator.models import Role
from agent_orchestrator.validation.repair import SAFE_DEFAULT_URL


def test_fenced_planner_response(monitor):
    text = (
        'Sure! ```json\n{"observation":"ok","done":true,"challenges":"","next_steps":"",'
        '"final_answer":"x","reasoning":"y","web_task":true}\n```'
    )
    result = monitor.resolve(text)
    assert result.is_valid
    assert result.role is Role.PLANNER
    assert result.corrected_response is None
    assert result.output["done"] is True
    assert monitor.statistics()["success_count"] == 1


def test_plain_prose_navigator_falls_back_to_safe_navigation(monitor):
    result = monitor.resolve("I will navigate to the page and click the first link.")
    assert result.role is Role.NAVIGATOR
    assert result.is_valid
    assert result.errors
    actions = result.output["action"]
    assert actions == [{"go_to_url": {"intent": "Navigate to requested website", "url": SAFE_DEFAULT_URL}}]
    assert monitor.counters.corrected == 1


def test_invalid_record_is_repaired(monitor, navigator_record):
    record = dict(navigator_record, current_state={"memory": "kept"})
    result = monitor.resolve(json.dumps(record), role_hint=Role.NAVIGATOR)
    assert result.corrected_response is not None
    assert result.parsed_json == record
    assert result.output["current_state"]["memory"] == "kept"
    assert result.output["action"] == navigator_record["action"]


def test_counters_move_once_per_call(monitor, planner_record):
    monitor.resolve(json.dumps(planner_record), role_hint=Role.PLANNER)
    monitor.resolve("plain text", role_hint=Role.PLANNER)
    monitor.resolve('{"observation": 1}', role_hint=Role.PLANNER)
    stats = monitor.statistics()
    assert stats["total_responses"] == 3
    assert stats["success_count"] == 1
    assert stats["correction_count"] == 2
    assert stats["failure_count"] == 0
    assert stats["success_rate"] == 33.33


def test_response_ids(monitor, planner_record):
    first = monitor.resolve(json.dumps(planner_record))
    second = monitor.resolve(json.dumps(planner_record))
    assert (first.response_id, second.response_id) == ("R0001", "R0002")


def test_disabled_monitor_bypasses(monitor):
    monitor.set_monitoring(False)
    result = monitor.resolve("anything")
    assert result.role is Role.UNKNOWN
    assert result.validated_data == {"bypass": True}
    assert monitor.counters.total == 0
    monitor.set_monitoring(True)
    monitor.resolve("anything")
    assert monitor.counters.total == 1


def test_crash_returns_emergency_output(monitor, validator):
    with patch("agent_orchestrator.validation.monitor.extract_record", side_effect=RuntimeError("boom")):
        result = monitor.resolve("whatever", role_hint=Role.PLANNER)
    assert result.is_valid
    assert result.role is Role.PLANNER
    assert validator.validate(result.output, Role.PLANNER).success
    assert monitor.counters.failed == 1
    assert monitor.counters.corrected == 0


def test_crash_without_hint_defaults_to_navigator(monitor):
    with patch.object(monitor, "_perform_additional_checks", side_effect=ValueError("audit bug")):
        result = monitor.resolve('{"observation": "x", "done": false}')
    assert result.role is Role.NAVIGATOR
    assert "Monitor crashed" in result.output["current_state"]["memory"]
    assert monitor.counters.failed == 1
    assert monitor.counters.succeeded == 0
    assert monitor.counters.corrected == 0


def test_reset_statistics(monitor):
    monitor.resolve("text")
    monitor.reset_statistics()
    assert monitor.statistics()["total_responses"] == 0
    assert monitor.statistics()["success_rate"] == 0.0


def test_pipeline_is_total_for_odd_inputs(monitor, validator):
    samples = ["", "{", "}{", "null", "[{}]", "```json\n{bad}\n```", "<|python_tag|>{", '{"action": "x"}']
    for text in samples:
        for hint in (Role.PLANNER, Role.NAVIGATOR):
            result = monitor.resolve(text, role_hint=hint)
            assert validator.validate(result.output, hint).success, (text, hint)


def test_deeply_nested_response_gets_the_repair_skeleton(monitor):
    text = '{"observation": ' + "[" * 100000 + "]" * 100000 + "}"
    result = monitor.resolve(text, role_hint=Role.PLANNER)
    assert result.role is Role.PLANNER
    assert result.is_valid
    assert monitor.counters.corrected == 1
    assert monitor.counters.failed == 0
