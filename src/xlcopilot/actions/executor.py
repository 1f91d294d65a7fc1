from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import TYPE_CHECKING

from xlcopilot.shared.a1 import CellRange, split_sheet_qualifier
from xlcopilot.store.base import GridStore

from .dispatch import PreparedAction, prepare_action, run_prepared
from .errors import ActionError, UndoCaptureError
from .models import (
    Action,
    ActionOutcome,
    BatchResult,
    HistoryEntry,
    RangeSnapshot,
)
from .specs import ActionSpec
from .types import ActionKind

if TYPE_CHECKING:
    from xlcopilot.history import HistoryStack

logger = logging.getLogger(__name__)


async def execute_batch(
    store: GridStore,
    actions: Sequence[Action],
    *,
    history: HistoryStack,
    specs: dict[ActionKind, ActionSpec] | None = None,
) -> BatchResult:
    """Run actions one by one, recording undo entries for undoable kinds.

    A failing action is recorded in its outcome and the batch continues.
    """
    outcomes: list[ActionOutcome] = []
    for index, action in enumerate(actions):
        outcomes.append(
            await _execute_one(store, action, index=index, history=history, specs=specs)
        )
    result = BatchResult.from_outcomes(outcomes)
    logger.info("Batch finished: %s", result.summary())
    return result


async def _execute_one(
    store: GridStore,
    action: Action,
    *,
    index: int,
    history: HistoryStack,
    specs: dict[ActionKind, ActionSpec] | None,
) -> ActionOutcome:
    try:
        prepared = prepare_action(action, specs=specs)
        snapshot = await _capture_for_undo(store, prepared)
        message = await run_prepared(store, prepared)
    except ActionError as exc:
        detail = exc.detail.model_copy(update={"index": index})
        logger.warning(
            "actions[%d] %s failed (%s): %s",
            index,
            action.kind,
            detail.error_code,
            detail.message,
        )
        return ActionOutcome(
            index=index,
            kind=action.kind,
            target=action.target,
            status="failed",
            message=detail.message,
            error=detail,
        )
    if snapshot is not None:
        history.add(HistoryEntry.from_action(action, snapshot))
    return ActionOutcome(
        index=index,
        kind=action.kind,
        target=action.target,
        status="applied",
        message=message,
        undoable=snapshot is not None,
    )


async def _capture_for_undo(
    store: GridStore, prepared: PreparedAction
) -> RangeSnapshot | None:
    """Snapshot the extent an undoable action will write; None when skipped."""
    spec = prepared.spec
    target = prepared.target_range
    if not spec.undo_capable or target is None:
        return None
    extent = target
    if spec.undo_extent is not None:
        extent = spec.undo_extent(target, prepared.payload)
    try:
        return await capture_snapshot(store, prepared.action, extent)
    except UndoCaptureError as exc:
        logger.warning(
            "Undo snapshot skipped for %s %s: %s",
            prepared.action.kind,
            prepared.action.target,
            exc,
        )
        return None


async def capture_snapshot(
    store: GridStore, action: Action, extent: CellRange
) -> RangeSnapshot:
    """Read the values and formulas of ``extent`` before a mutation.

    The snapshot keeps the sheet-qualified address the store reports so an
    undo lands on the captured sheet whatever sheet is active later.

    Raises:
        UndoCaptureError: If the store cannot read the range.
    """
    try:
        snapshot = await store.read_range(extent.address)
    except Exception as exc:
        raise UndoCaptureError.from_action(
            action, f"Could not capture {extent.address}: {exc}"
        ) from exc
    sheet, _ = split_sheet_qualifier(snapshot.address)
    if sheet is None:
        snapshot = snapshot.model_copy(update={"address": extent.address})
    return snapshot
