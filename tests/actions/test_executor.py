from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from xlcopilot.actions.executor import capture_snapshot, execute_batch
from xlcopilot.actions.errors import UndoCaptureError
from xlcopilot.actions.models import Action
from xlcopilot.history import HistoryStack
from xlcopilot.shared.a1 import parse_range

if TYPE_CHECKING:
    from conftest import FakeGridStore


@pytest.mark.anyio
async def test_partial_batch_reports_two_of_three(fake_store: FakeGridStore) -> None:
    history = HistoryStack()
    actions = [
        Action(kind="values", target="A1:B1", data="[[1, 2]]"),
        Action(kind="explode", target="A1"),
        Action(kind="formula", target="C1:C3", data="=A1*2"),
    ]
    result = await execute_batch(fake_store, actions, history=history)
    assert result.total == 3
    assert result.success_count == 2
    assert result.failed_count == 1
    assert [outcome.status for outcome in result.outcomes] == [
        "applied",
        "failed",
        "applied",
    ]
    assert result.first_error is not None
    assert result.first_error.index == 1
    assert result.summary() == (
        "2/3 changes applied; error: Unsupported action type: explode"
    )
    assert fake_store.get("C1:C3") == [["=A1*2"], ["=A2*2"], ["=A3*2"]]


@pytest.mark.anyio
async def test_undoable_actions_push_history(fake_store: FakeGridStore) -> None:
    fake_store.set("A1", [["old"]])
    history = HistoryStack()
    result = await execute_batch(
        fake_store,
        [
            Action(kind="values", target="A1", data='"new"'),
            Action(kind="format", target="A1", data='{"bold": true}'),
        ],
        history=history,
    )
    assert [outcome.undoable for outcome in result.outcomes] == [True, False]
    assert len(history) == 1
    entry = history.latest()
    assert entry is not None
    assert entry.kind == "values"
    assert entry.snapshot.formulas == [["old"]]


@pytest.mark.anyio
async def test_copy_snapshots_destination_extent(fake_store: FakeGridStore) -> None:
    fake_store.set("A1:B2", [[1, 2], [3, "=A1+B1"]])
    history = HistoryStack()
    await execute_batch(
        fake_store,
        [Action(kind="copy", target="D5", data='{"source": "A1:B2"}')],
        history=history,
    )
    entry = history.latest()
    assert entry is not None
    assert entry.snapshot.address == "D5:E6"
    assert fake_store.get("D5:E6") == [[1, 2], [3, "=D5+E5"]]


@pytest.mark.anyio
async def test_capture_failure_still_applies(fake_store: FakeGridStore) -> None:
    fake_store.read_failures.add("A1")
    history = HistoryStack()
    result = await execute_batch(
        fake_store, [Action(kind="values", target="A1", data="5")], history=history
    )
    (outcome,) = result.outcomes
    assert outcome.status == "applied"
    assert not outcome.undoable
    assert history.is_empty()
    assert fake_store.get("A1") == [[5]]


@pytest.mark.anyio
async def test_failed_action_records_no_history(fake_store: FakeGridStore) -> None:
    fake_store.write_failures.add("A1:A2")
    history = HistoryStack()
    result = await execute_batch(
        fake_store, [Action(kind="values", target="A1:A2", data="[[1], [2]]")], history=history
    )
    (outcome,) = result.outcomes
    assert outcome.status == "failed"
    assert outcome.error is not None
    assert outcome.error.error_code == "host_api_failure"
    assert history.is_empty()


@pytest.mark.anyio
async def test_capture_snapshot_wraps_store_errors(fake_store: FakeGridStore) -> None:
    fake_store.read_failures.add("B2:C3")
    with pytest.raises(UndoCaptureError, match="Could not capture B2:C3"):
        await capture_snapshot(
            fake_store, Action(kind="values", target="B2:C3"), parse_range("B2:C3")
        )
