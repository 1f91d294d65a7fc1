from __future__ import annotations

from .errors import (
    ActionError,
    HostApiError,
    InvalidPayloadError,
    InvalidTargetError,
    UndoCaptureError,
    UnsupportedActionError,
)
from .models import (
    Action,
    ActionErrorDetail,
    ActionOutcome,
    BatchResult,
    HistoryEntry,
    RangeSnapshot,
    UndoResult,
)
from .types import ActionCategory, ActionKind

__all__ = [
    "Action",
    "ActionCategory",
    "ActionError",
    "ActionErrorDetail",
    "ActionKind",
    "ActionOutcome",
    "BatchResult",
    "HistoryEntry",
    "HostApiError",
    "InvalidPayloadError",
    "InvalidTargetError",
    "RangeSnapshot",
    "UndoCaptureError",
    "UndoResult",
    "UnsupportedActionError",
]
