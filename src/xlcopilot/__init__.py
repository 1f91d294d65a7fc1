"""Spreadsheet action execution engine."""

from __future__ import annotations

from .actions import Action, BatchResult, UndoResult
from .actions.executor import execute_batch
from .actions.normalize import coerce_actions
from .context import ExecutionContext
from .history import HistoryStack
from .preview import PreviewState
from .store import GridCommand, GridStore, OpenpyxlGridStore

__all__ = [
    "Action",
    "BatchResult",
    "ExecutionContext",
    "GridCommand",
    "GridStore",
    "HistoryStack",
    "OpenpyxlGridStore",
    "PreviewState",
    "UndoResult",
    "coerce_actions",
    "execute_batch",
]
