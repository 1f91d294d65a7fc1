from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from xlcopilot.actions.dispatch import dispatch
from xlcopilot.actions.errors import HostApiError, InvalidPayloadError
from xlcopilot.actions.models import Action

if TYPE_CHECKING:
    from conftest import FakeGridStore


def _action(kind: str, target: str, data: object = "") -> Action:
    payload = data if isinstance(data, str) else json.dumps(data)
    return Action(kind=kind, target=target, data=payload)


@pytest.mark.anyio
async def test_values_broadcast_single_value(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("values", "A1:B2", "0"))
    assert fake_store.get("A1:B2") == [[0, 0], [0, 0]]


@pytest.mark.anyio
async def test_formula_on_other_sheet(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("formula", "Data!C2:D2", "=A2+$B$1"))
    assert fake_store.get("Data!C2:D2") == [["=A2+$B$1", "=B2+$B$1"]]


@pytest.mark.anyio
async def test_sort_keeps_header_and_puts_blanks_last(fake_store: FakeGridStore) -> None:
    fake_store.set(
        "A1:B4", [["Name", "Score"], ["b", 3], ["a", ""], ["c", 1]]
    )
    message = await dispatch(fake_store, _action("sort", "A1:B4", "column:1"))
    assert fake_store.get("A1:B4") == [
        ["Name", "Score"],
        ["c", 1],
        ["b", 3],
        ["a", ""],
    ]
    assert message == "Sorted by column 1 (ascending)."


@pytest.mark.anyio
async def test_sort_descending_without_headers(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:A3", [[2], [10], [1]])
    await dispatch(
        fake_store,
        _action("sort", "A1:A3", {"ascending": False, "hasHeaders": False}),
    )
    assert fake_store.get("A1:A3") == [[10], [2], [1]]


@pytest.mark.anyio
async def test_sort_column_outside_target(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError, match="outside target") as excinfo:
        await dispatch(fake_store, _action("sort", "A1:B4", {"column": 5}))
    assert excinfo.value.detail.failed_field == "column"


@pytest.mark.anyio
async def test_autofill_shifts_formulas_from_source(fake_store: FakeGridStore) -> None:
    fake_store.set("A1", [["=B1*2"]])
    await dispatch(fake_store, _action("autofill", "A2:A4", {"source": "A1"}))
    assert fake_store.get("A2:A4") == [["=B2*2"], ["=B3*2"], ["=B4*2"]]


@pytest.mark.anyio
async def test_autofill_tiles_constants(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:A2", [["Mon"], ["Tue"]])
    await dispatch(fake_store, _action("autofill", "A3:A6", {"source": "A1:A2"}))
    assert fake_store.get("A3:A6") == [["Mon"], ["Tue"], ["Mon"], ["Tue"]]


@pytest.mark.anyio
async def test_copy_values_copies_plain_values(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B1", [[5, "x"]])
    await dispatch(fake_store, _action("copyValues", "C3", {"source": "A1:B1"}))
    assert fake_store.get("C3:D3") == [[5, "x"]]


@pytest.mark.anyio
async def test_copy_values_rejects_uncomputed_formulas(
    fake_store: FakeGridStore,
) -> None:
    fake_store.set("A1:B1", [[5, "=A1*2"]])
    with pytest.raises(HostApiError, match="no computed value at B1") as excinfo:
        await dispatch(fake_store, _action("copyValues", "C3", {"source": "A1:B1"}))
    assert excinfo.value.detail.hint is not None
    assert "write_range" not in [name for name, _ in fake_store.calls]
    assert fake_store.get("C3:D3") == [["", ""]]


@pytest.mark.anyio
async def test_remove_duplicates_compacts_rows(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B4", [[1, "x"], [1, "x"], [2, "y"], [1, "z"]])
    message = await dispatch(
        fake_store, _action("removeDuplicates", "A1:B4", {"columns": [0]})
    )
    assert message == "Removed 2 duplicate row(s)."
    assert fake_store.get("A1:B4") == [[1, "x"], [2, "y"], ["", ""], ["", ""]]


@pytest.mark.anyio
async def test_find_replace_skips_formulas(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:C1", [["Hello World", "=A1", "world peace"]])
    message = await dispatch(
        fake_store,
        _action("findReplace", "A1:C1", {"search": "world", "replaceWith": "there"}),
    )
    assert fake_store.get("A1:C1") == [["Hello there", "=A1", "there peace"]]
    assert message == "Replaced text in 2 cell(s)."


@pytest.mark.anyio
async def test_find_replace_entire_cell_and_case(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B1", [["Yes", "yes sir"]])
    await dispatch(
        fake_store,
        _action(
            "findReplace",
            "A1:B1",
            {"find": "yes", "replace": "No", "matchCase": True, "matchEntireCell": True},
        ),
    )
    assert fake_store.get("A1:B1") == [["Yes", "yes sir"]]
    assert ("write_range", "A1:B1") not in fake_store.calls


@pytest.mark.anyio
async def test_text_to_columns_writes_next_to_source(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:A2", [["a,b"], ["c"]])
    await dispatch(fake_store, _action("textToColumns", "A1:A2"))
    assert fake_store.get("B1:C2") == [["a", "b"], ["c", ""]]


@pytest.mark.anyio
async def test_text_to_columns_refuses_to_overwrite(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B1", [["a;b", "keep"]])
    with pytest.raises(InvalidPayloadError, match="forceOverwrite") as excinfo:
        await dispatch(
            fake_store, _action("textToColumns", "A1", {"separator": ";"})
        )
    assert excinfo.value.detail.failed_field == "destination"
    assert fake_store.get("B1") == [["keep"]]


@pytest.mark.anyio
async def test_text_to_columns_requires_one_column(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError, match="single-column range"):
        await dispatch(fake_store, _action("textToColumns", "A1:B2"))


@pytest.mark.anyio
async def test_validation_from_explicit_list(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("dropdown", "C2:C9", {"list": ["Yes", "No"]}))
    (command,) = fake_store.commands
    assert command.op == "set_validation_list"
    assert command.address == "C2:C9"
    assert command.options == {"items": ["Yes", "No"]}


@pytest.mark.anyio
async def test_validation_from_source_dedupes(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:A4", [["x"], ["y"], [""], ["x"]])
    message = await dispatch(fake_store, _action("validation", "C1", {"source": "A1:A4"}))
    assert fake_store.commands[0].options == {"items": ["x", "y"]}
    assert message == "Dropdown with 2 item(s)."


@pytest.mark.anyio
async def test_filter_resets_then_applies_criteria(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("filter", "A1:C5", {"column": 1, "values": ["a"]}))
    clear, apply = fake_store.commands
    assert clear.op == "clear_autofilter"
    assert clear.options == {"criteria_only": True}
    assert apply.op == "apply_autofilter"
    assert apply.options == {"criteria": {1: ["a"]}}


@pytest.mark.anyio
async def test_format_and_conditional_format(fake_store: FakeGridStore) -> None:
    await dispatch(
        fake_store,
        _action("format", "A1:B2", {"bold": True, "fill": "ffff00", "align": "center"}),
    )
    await dispatch(
        fake_store,
        _action(
            "conditionalFormat",
            "B2:B10",
            {"rules": [{"operator": "GreaterThan", "value": 100, "fill": "#FF0000"}]},
        ),
    )
    assert fake_store.ops() == [
        "set_format",
        "clear_conditional_formats",
        "add_conditional_format",
    ]
    assert fake_store.commands[0].options == {
        "bold": True,
        "fill": "#FFFF00",
        "align": "center",
    }
    rule = fake_store.commands[2].options
    assert rule["operator"] == "GreaterThan"
    assert rule["value"] == 100
