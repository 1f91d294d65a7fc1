from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any, TypeAlias
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .types import ActionErrorCode, ActionStatus, UndoStatus

Grid: TypeAlias = list[list[Any]]


class Action(BaseModel):
    """One mutation request emitted by the natural-language layer.

    The request contract uses ``type``/``data``; both names are accepted.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: str = Field(alias="type")
    target: str = ""
    payload: str = Field(default="", alias="data")

    @field_validator("kind", mode="before")
    @classmethod
    def _validate_kind(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("target", mode="before")
    @classmethod
    def _validate_target(cls, value: object) -> object:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("payload", mode="before")
    @classmethod
    def _validate_payload(cls, value: object) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False)


class RangeSnapshot(BaseModel):
    """Values and formulas of a range captured before a mutation."""

    model_config = ConfigDict(frozen=True)

    address: str
    values: Grid = Field(default_factory=list)
    formulas: Grid = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.formulas)

    @property
    def column_count(self) -> int:
        return len(self.formulas[0]) if self.formulas else 0


class HistoryEntry(BaseModel):
    """Undo record for one applied action."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    kind: str
    target: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    snapshot: RangeSnapshot

    @classmethod
    def from_action(cls, action: Action, snapshot: RangeSnapshot) -> HistoryEntry:
        return cls(kind=action.kind, target=action.target, snapshot=snapshot)

    def describe(self) -> str:
        """Label plus target, e.g. ``Values A1:B2``."""
        from .specs import get_label

        label = get_label(self.kind)
        return f"{label} {self.target}" if self.target else label


class ActionErrorDetail(BaseModel):
    """Structured error details for action failures."""

    error_code: ActionErrorCode
    kind: str
    target: str
    message: str
    index: int | None = None
    hint: str | None = None
    failed_field: str | None = None
    expected_fields: list[str] = Field(default_factory=list)
    raw_host_message: str | None = None


class ActionOutcome(BaseModel):
    """Result of one action within a batch."""

    index: int
    kind: str
    target: str
    status: ActionStatus
    message: str | None = None
    undoable: bool = False
    error: ActionErrorDetail | None = None


class BatchResult(BaseModel):
    """Aggregate result of an executed batch."""

    total: int
    success_count: int
    outcomes: list[ActionOutcome] = Field(default_factory=list)
    first_error: ActionErrorDetail | None = None

    @classmethod
    def from_outcomes(cls, outcomes: list[ActionOutcome]) -> BatchResult:
        errors = [outcome.error for outcome in outcomes if outcome.error is not None]
        return cls(
            total=len(outcomes),
            success_count=sum(1 for outcome in outcomes if outcome.status == "applied"),
            outcomes=outcomes,
            first_error=errors[0] if errors else None,
        )

    @property
    def failed_count(self) -> int:
        return self.total - self.success_count

    def summary(self) -> str:
        """Return the user-facing line, e.g. ``2/3 changes applied; error: ...``."""
        text = f"{self.success_count}/{self.total} changes applied"
        if self.first_error is not None:
            text = f"{text}; error: {self.first_error.message}"
        return text


class UndoResult(BaseModel):
    """Outcome of a single undo request."""

    status: UndoStatus
    message: str
    entry: HistoryEntry | None = None
