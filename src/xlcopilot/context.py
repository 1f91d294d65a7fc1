from __future__ import annotations

from collections.abc import Sequence
import logging

import anyio

from xlcopilot.actions.executor import execute_batch
from xlcopilot.actions.models import Action, BatchResult, UndoResult
from xlcopilot.actions.specs import ActionSpec
from xlcopilot.actions.types import ActionKind
from xlcopilot.history import DEFAULT_MAX_ENTRIES, HistoryStack
from xlcopilot.preview import PreviewState
from xlcopilot.store.base import GridStore

logger = logging.getLogger(__name__)


class ExecutionContext:
    """Session state for one workbook: store, undo history and preview.

    Apply and undo share a lock so concurrent callers on the same event loop
    see the history in a consistent order.
    """

    def __init__(
        self,
        store: GridStore,
        *,
        max_history_entries: int = DEFAULT_MAX_ENTRIES,
        specs: dict[ActionKind, ActionSpec] | None = None,
    ) -> None:
        self.store = store
        self.specs = specs
        self.history = HistoryStack(max_history_entries)
        self.preview = PreviewState()
        self._lock = anyio.Lock()

    def propose(self, actions: Sequence[Action]) -> PreviewState:
        """Replace the pending preview with a new, fully selected set."""
        self.preview = PreviewState.from_actions(actions)
        return self.preview

    def dismiss(self) -> None:
        self.preview = PreviewState()

    async def apply(self) -> BatchResult:
        """Run the selected preview actions and discard the preview."""
        actions = self.preview.selected_actions()
        self.dismiss()
        return await self.run(actions)

    async def run(self, actions: Sequence[Action]) -> BatchResult:
        async with self._lock:
            return await execute_batch(
                self.store, actions, history=self.history, specs=self.specs
            )

    async def undo(self) -> UndoResult:
        async with self._lock:
            return await self.history.undo(self.store)
