from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from xlcopilot.actions.dispatch import dispatch
from xlcopilot.actions.errors import InvalidPayloadError
from xlcopilot.actions.models import Action

if TYPE_CHECKING:
    from conftest import FakeGridStore

SALES_ROWS = [
    ["East", 5],
    ["West", 3],
    ["East", 2],
    ["West", 4],
    ["East", 1],
    ["West", 6],
    ["East", 2],
    ["West", 1],
    ["East", 3],
    ["West", 2],
    ["East", 1],
    ["West", 1],
]


def _chart(kind: str, target: str, data: dict[str, object] | None = None) -> Action:
    return Action(kind=kind, target=target, data=json.dumps(data or {}))


@pytest.mark.anyio
async def test_small_range_is_charted_directly(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B4", [["Month", "Sales"], ["Jan", 1], ["Feb", 2], ["Mar", 3]])
    message = await dispatch(fake_store, _chart("chart", "A1:B4"))
    assert message is None
    (command,) = fake_store.commands
    assert command.op == "add_chart"
    assert command.address == "A1:B4"
    assert command.options == {
        "chart_type": "column",
        "title": "Chart",
        "anchor": "H2",
        "legend_position": "bottom",
    }
    assert not [name for name, _ in fake_store.calls if name == "write_range"]


@pytest.mark.anyio
async def test_chart_type_text_is_normalized(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B3", [["Kind", "Share"], ["a", 1], ["b", 2]])
    await dispatch(
        fake_store,
        _chart("createChart", "A1:B3", {"type": "Pie Chart", "position": "d4"}),
    )
    options = fake_store.commands[0].options
    assert options["chart_type"] == "pie"
    assert options["anchor"] == "D4"
    assert options["legend_position"] == "right"


@pytest.mark.anyio
async def test_repeated_categories_are_aggregated(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B13", [["Region", "Sales"], *SALES_ROWS])
    message = await dispatch(fake_store, _chart("chart", "A1:B13", {"title": "By region"}))
    assert fake_store.get("A16:B18") == [
        ["Region", "Sales"],
        ["West", 17],
        ["East", 14],
    ]
    assert message == "Aggregated 2 categories into A16:B18."
    command = fake_store.commands[0]
    assert command.address == "A16:B18"
    assert command.options["title"] == "By region"


@pytest.mark.anyio
async def test_unique_categories_are_not_aggregated(fake_store: FakeGridStore) -> None:
    rows = [[f"Item {index}", index * 3 % 7] for index in range(12)]
    fake_store.set("A1:B13", [["Item", "Qty"], *rows])
    message = await dispatch(fake_store, _chart("chart", "A1:B13"))
    assert message is None
    assert fake_store.commands[0].address == "A1:B13"


@pytest.mark.anyio
async def test_pivot_chart_groups_and_averages(fake_store: FakeGridStore) -> None:
    fake_store.set(
        "A1:C6",
        [
            ["Region", "Product", "Sales"],
            ["East", "A", 10],
            ["West", "B", 5],
            ["East", "B", 20],
            ["West", "A", 1],
            ["North", "A", 7],
        ],
    )
    message = await dispatch(
        fake_store,
        _chart(
            "pivotChart",
            "A1:C6",
            {"groupBy": "region", "aggregate": "sales", "function": "Average"},
        ),
    )
    assert fake_store.get("A9:B12") == [
        ["region", "sales"],
        ["East", 15],
        ["North", 7],
        ["West", 3],
    ]
    assert message == "Summarized 3 group(s) at A9:B12."
    options = fake_store.commands[0].options
    assert options["title"] == "Pivot Chart"


@pytest.mark.anyio
async def test_pivot_chart_counts_without_aggregate(fake_store: FakeGridStore) -> None:
    fake_store.set(
        "A1:B5",
        [["Team", "Owner"], ["Red", "ann"], ["Blue", "bo"], ["Red", "cy"], ["", "x"]],
    )
    await dispatch(fake_store, _chart("pivotChart", "A1:B5", {"groupBy": "Team"}))
    assert fake_store.get("A8:B10") == [["Team", "Value"], ["Red", 2], ["Blue", 1]]


@pytest.mark.anyio
async def test_pivot_chart_unknown_group_column(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B2", [["Team", "Score"], ["Red", 1]])
    with pytest.raises(InvalidPayloadError, match='Column "Region" not found') as excinfo:
        await dispatch(
            fake_store, _chart("pivotChart", "A1:B2", {"groupBy": "Region"})
        )
    assert excinfo.value.detail.failed_field == "groupBy"
    assert fake_store.commands == []
