from __future__ import annotations

import json

import pytest

from xlcopilot.actions.models import Action
from xlcopilot.actions.normalize import (
    coerce_actions,
    merge_payload_extras,
    unwrap_action_list,
)


def test_coerce_actions_accepts_dicts_and_json_strings() -> None:
    actions = coerce_actions(
        [
            {"type": "values", "target": "A1", "data": "[[1]]"},
            '{"type": "formula", "target": "B1:B3", "data": "=A1*2"}',
        ]
    )
    assert actions == [
        Action(kind="values", target="A1", payload="[[1]]"),
        Action(kind="formula", target="B1:B3", payload="=A1*2"),
    ]


def test_coerce_actions_unwraps_batch_object() -> None:
    actions = coerce_actions({"actions": [{"type": "sort", "target": "A1:B5"}]})
    assert [action.kind for action in actions] == ["sort"]


def test_unwrap_rejects_non_list() -> None:
    with pytest.raises(ValueError, match='"actions" list'):
        unwrap_action_list({"items": []})


def test_kind_aliases_are_resolved() -> None:
    (action,) = coerce_actions([{"type": "dropdown", "target": "C2", "data": "{}"}])
    assert action.kind == "validation"


def test_unknown_kind_is_kept_for_dispatch_to_reject() -> None:
    (action,) = coerce_actions([{"type": "explode", "target": "A1"}])
    assert action.kind == "explode"


def test_non_string_data_is_json_encoded() -> None:
    (action,) = coerce_actions([{"type": "values", "target": "A1:B1", "data": [[1, 2]]}])
    assert json.loads(action.payload) == [[1, 2]]


def test_top_level_extras_merge_under_data() -> None:
    (action,) = coerce_actions(
        [
            {
                "type": "chart",
                "target": "A1:B5",
                "chartType": "line",
                "title": "Outer",
                "data": {"title": "Inner"},
            }
        ]
    )
    assert json.loads(action.payload) == {"chartType": "line", "title": "Inner"}


def test_extras_without_data_become_payload() -> None:
    (action,) = coerce_actions(
        [{"type": "autofill", "target": "A2:A10", "source": "A1"}]
    )
    assert json.loads(action.payload) == {"source": "A1"}


def test_extras_are_ignored_for_non_object_data() -> None:
    merged = merge_payload_extras("=A1+1", {"title": "x"}, index=0)
    assert merged == "=A1+1"
    merged = merge_payload_extras('{"a": 1}', {"a": 2, "b": 3}, index=0)
    assert merged == {"a": 1, "b": 3}


@pytest.mark.parametrize(
    ("item", "reason"),
    [
        (42, "item must be an object or JSON string"),
        ("", "empty string"),
        ("{not json", "invalid JSON"),
        ("[1, 2]", "JSON value must be an object"),
        ({"target": "A1"}, "missing 'type'"),
        ({"type": "values", "target": 5}, "'target' must be a string"),
    ],
)
def test_invalid_items_report_index(item: object, reason: str) -> None:
    with pytest.raises(ValueError, match=r"actions\[1\]") as excinfo:
        coerce_actions([{"type": "values", "target": "A1", "data": "1"}, item])
    assert reason in str(excinfo.value)
    assert "Use object form like" in str(excinfo.value)
