import copy

from agent_orchestrator.models import Role
from agent_orchestrator.validation.repair import (
    NAVIGATOR_STATE_DEFAULTS,
    PLANNER_DEFAULTS,
    SAFE_DEFAULT_URL,
    Repairer,
)


def test_empty_planner_gets_full_skeleton(repairer, validator):
    repaired = repairer.repair({}, Role.PLANNER)
    assert repaired == PLANNER_DEFAULTS
    assert validator.validate(repaired, Role.PLANNER).success


def test_valid_planner_fields_survive(repairer):
    repaired = repairer.repair({"observation": "seen", "done": "True", "next_steps": 42}, Role.PLANNER)
    assert repaired["observation"] == "seen"
    assert repaired["done"] is True
    assert repaired["next_steps"] == PLANNER_DEFAULTS["next_steps"]
    assert repaired["reasoning"] == PLANNER_DEFAULTS["reasoning"]


def test_repair_of_valid_record_is_identity(repairer, planner_record, navigator_record):
    assert repairer.repair(copy.deepcopy(planner_record), Role.PLANNER) == planner_record
    assert repairer.repair(copy.deepcopy(navigator_record), Role.NAVIGATOR) == navigator_record


def test_extra_fields_are_dropped_unless_allowed(validator, planner_record):
    record = dict(planner_record, debug="x", plan_id="p-1")
    assert "debug" not in Repairer(validator).repair(record, Role.PLANNER)
    allowing = Repairer(validator, passthrough_fields={Role.PLANNER: ["plan_id"]})
    repaired = allowing.repair(dict(record, done="nope"), Role.PLANNER)
    assert repaired["plan_id"] == "p-1"
    assert "debug" not in repaired


def test_navigator_without_actions_gets_safe_navigation(repairer, validator):
    repaired = repairer.repair({"current_state": {"memory": "kept"}}, Role.NAVIGATOR)
    assert repaired["current_state"] == dict(NAVIGATOR_STATE_DEFAULTS, memory="kept")
    assert repaired["action"] == [
        {"go_to_url": {"intent": "Navigate to requested website", "url": SAFE_DEFAULT_URL}}
    ]
    assert validator.validate(repaired, Role.NAVIGATOR).success


def test_non_object_record(repairer):
    repaired = repairer.repair(["not", "a", "record"], Role.NAVIGATOR)
    assert repaired == repairer.default_output(Role.NAVIGATOR)


def test_unknown_role_repairs_as_planner(repairer):
    assert repairer.repair({}, Role.UNKNOWN) == PLANNER_DEFAULTS


def test_action_parameters_are_defaulted(repairer):
    actions = [
        {"go_to_url": {"intent": "Open docs", "url": ""}},
        {"click_element": {"index": "3", "note": "keep me"}},
        {"input_text": {"index": 4}},
        {"done": {"text": "finished"}},
    ]
    fixed, errors = repairer.repair_actions(actions)
    assert fixed == [
        {"go_to_url": {"intent": "Open docs", "url": SAFE_DEFAULT_URL}},
        {"click_element": {"note": "keep me", "intent": "Execute click_element action", "index": 1}},
        {"input_text": {"index": 4, "intent": "Execute input_text action", "text": ""}},
        {"done": {"text": "finished", "intent": "Execute done action", "success": True}},
    ]
    assert len(errors) == 4


def test_malformed_actions_are_replaced(repairer):
    fixed, errors = repairer.repair_actions(["go", {}, {"go_to_url": {"url": "a"}, "done": {}}])
    assert [action["go_to_url"]["intent"] for action in fixed] == [
        "Fixed invalid action",
        "Fixed invalid action",
        "Fixed multi-key action",
    ]
    assert all(action["go_to_url"]["url"] == SAFE_DEFAULT_URL for action in fixed)
    assert len(errors) == 3


def test_unknown_action_types_pass_through(repairer):
    actions = [{"scroll_down": {"amount": 300}}]
    fixed, errors = repairer.repair_actions(actions)
    assert fixed == actions
    assert errors == []
    fixed, _ = repairer.repair_actions([{"scroll_down": "fast"}])
    assert fixed == [{"scroll_down": {"intent": "Execute scroll_down action"}}]


def test_every_repaired_action_has_one_key(repairer):
    record = {"action": [1, None, {"a": {}, "b": {}}, {"done": {"success": "yes"}}, {"go_to_url": {"url": "x"}}]}
    repaired = repairer.repair(record, Role.NAVIGATOR)
    assert all(isinstance(action, dict) and len(action) == 1 for action in repaired["action"])


def test_emergency_outputs_validate(repairer, validator):
    planner = repairer.emergency_output(Role.PLANNER, "x" * 500)
    assert validator.validate(planner, Role.PLANNER).success
    assert planner["observation"].endswith("x" * 100)
    navigator = repairer.emergency_output(Role.NAVIGATOR, "oops")
    assert validator.validate(navigator, Role.NAVIGATOR).success
    assert navigator["action"][0]["go_to_url"]["intent"] == "Emergency navigation to safe page"
