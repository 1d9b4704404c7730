import copy

from agent_orchestrator.models import Role


def test_valid_planner_record(validator, planner_record):
    check = validator.validate(planner_record, Role.PLANNER)
    assert check.success
    assert check.errors == []
    assert check.data == planner_record


def test_boolean_strings_are_coerced(validator, planner_record):
    record = dict(planner_record, done="TRUE", web_task="false")
    check = validator.validate(record, Role.PLANNER)
    assert check.success
    assert check.data["done"] is True
    assert check.data["web_task"] is False
    assert record["done"] == "TRUE"


def test_bad_boolean_string_is_rejected(validator, planner_record):
    check = validator.validate(dict(planner_record, done="yes"), Role.PLANNER)
    assert not check.success
    assert any(error.startswith("done:") for error in check.errors)


def test_missing_fields_report_paths(validator, planner_record):
    record = dict(planner_record)
    del record["reasoning"]
    check = validator.validate(record, Role.PLANNER)
    assert check.errors == ["reasoning: 'reasoning' is a required property"]


def test_final_answer_may_be_null(validator, planner_record):
    assert validator.validate(dict(planner_record, final_answer=None), Role.PLANNER).success
    assert not validator.validate(dict(planner_record, final_answer=3), Role.PLANNER).success


def test_navigator_nested_errors(validator, navigator_record):
    record = copy.deepcopy(navigator_record)
    record["current_state"]["memory"] = 5
    check = validator.validate(record, Role.NAVIGATOR)
    assert not check.success
    assert check.errors[0].startswith("current_state.memory:")


def test_navigator_action_must_be_a_list(validator, navigator_record):
    record = dict(navigator_record, action={"go_to_url": {"url": "x"}})
    assert not validator.validate(record, Role.NAVIGATOR).success


def test_action_parameters_are_not_checked_here(validator, navigator_record):
    record = dict(navigator_record, action=[{"go_to_url": {"intent": "no url"}}])
    assert validator.validate(record, Role.NAVIGATOR).success


def test_non_object_and_unknown_role(validator, planner_record):
    assert validator.validate("text", Role.PLANNER).errors == ["<root>: expected an object, got str"]
    assert not validator.validate(planner_record, Role.UNKNOWN).success


def test_structured_schema_uses_plain_booleans(validator):
    schema = validator.structured_schema(Role.PLANNER)
    assert schema["properties"]["done"] == {"type": "boolean"}
    assert "$schema" not in schema
    assert "anyOf" in validator.schema_for(Role.PLANNER)["properties"]["done"]
    assert validator.schema_name(Role.NAVIGATOR) == "navigator_output"


def test_action_contracts(validator):
    assert validator.invalid_action_params("go_to_url", {"url": ""}) == {"url"}
    assert validator.invalid_action_params("done", {"text": "t"}) == {"success"}
    assert validator.invalid_action_params("click_element", {"index": True}) == {"index"}
    assert validator.invalid_action_params("input_text", {"index": 1.5, "text": "a"}) == set()
    assert validator.invalid_action_params("scroll_down", {}) == set()
    assert validator.knows_action("go_to_url")
    assert not validator.knows_action("scroll_down")
