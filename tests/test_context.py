from __future__ import annotations

from typing import TYPE_CHECKING

import anyio
import pytest

from xlcopilot.actions.models import Action
from xlcopilot.context import ExecutionContext

if TYPE_CHECKING:
    from conftest import FakeGridStore


@pytest.mark.anyio
async def test_apply_runs_only_selected_actions(fake_store: FakeGridStore) -> None:
    context = ExecutionContext(fake_store)
    preview = context.propose(
        [
            Action(kind="values", target="A1", data="1"),
            Action(kind="values", target="A2", data="2"),
            Action(kind="values", target="A3", data="3"),
        ]
    )
    preview.toggle(1)
    result = await context.apply()
    assert result.summary() == "2/2 changes applied"
    assert fake_store.get("A1:A3") == [[1], [""], [3]]
    assert context.preview.actions == []
    assert len(context.history) == 2


@pytest.mark.anyio
async def test_undo_walks_back_newest_first(fake_store: FakeGridStore) -> None:
    fake_store.set("B1", [["start"]])
    context = ExecutionContext(fake_store)
    await context.run([Action(kind="values", target="B1", data='"one"')])
    await context.run([Action(kind="values", target="B1", data='"two"')])
    assert fake_store.get("B1") == [["two"]]

    first = await context.undo()
    assert first.status == "undone"
    assert fake_store.get("B1") == [["one"]]
    second = await context.undo()
    assert second.status == "undone"
    assert fake_store.get("B1") == [["start"]]
    third = await context.undo()
    assert third.status == "empty"
    assert third.message == "Nothing to undo"


@pytest.mark.anyio
async def test_history_capacity_is_configurable(fake_store: FakeGridStore) -> None:
    context = ExecutionContext(fake_store, max_history_entries=2)
    for row in range(1, 5):
        await context.run([Action(kind="values", target=f"A{row}", data=str(row))])
    assert [entry.target for entry in context.history.entries] == ["A4", "A3"]


@pytest.mark.anyio
async def test_concurrent_runs_are_serialized(fake_store: FakeGridStore) -> None:
    context = ExecutionContext(fake_store)

    async def write(row: int) -> None:
        await context.run([Action(kind="values", target=f"C{row}", data=str(row))])

    async with anyio.create_task_group() as group:
        for row in range(1, 6):
            group.start_soon(write, row)

    assert len(context.history) == 5
    calls = [name for name, _ in fake_store.calls]
    assert calls == ["read_range", "write_range"] * 5


def test_dismiss_clears_preview(fake_store: FakeGridStore) -> None:
    context = ExecutionContext(fake_store)
    context.propose([Action(kind="values", target="A1", data="1")])
    context.dismiss()
    assert context.preview.actions == []
    assert context.preview.selected == []
