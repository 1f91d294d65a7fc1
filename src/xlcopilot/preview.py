"""Selection state for proposed actions awaiting confirmation."""

from __future__ import annotations

from collections.abc import Sequence
import json
from typing import Any

from pydantic import BaseModel, Field, model_validator

from xlcopilot.actions.models import Action
from xlcopilot.actions.specs import get_label

_FORMAT_PARTS: tuple[tuple[str, str], ...] = (
    ("fill", "Fill"),
    ("fontColor", "Color"),
    ("fontSize", "Size"),
    ("numberFormat", "Format"),
    ("align", "Align"),
)


class PreviewState(BaseModel):
    """Proposed actions with a per-action selection flag."""

    actions: list[Action] = Field(default_factory=list)
    selected: list[bool] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_lengths(self) -> PreviewState:
        if len(self.actions) != len(self.selected):
            raise ValueError("selected must have one flag per action.")
        return self

    @classmethod
    def from_actions(
        cls, actions: Sequence[Action], selected: bool = True
    ) -> PreviewState:
        return cls(actions=list(actions), selected=[selected] * len(actions))

    def toggle(self, index: int) -> bool:
        """Flip one selection flag and return the new value.

        Raises:
            IndexError: If ``index`` is out of range.
        """
        self.selected[index] = not self.selected[index]
        return self.selected[index]

    def set_selected(self, index: int, flag: bool) -> None:
        self.selected[index] = flag

    def select_all(self, flag: bool = True) -> None:
        self.selected = [flag] * len(self.actions)

    def selected_actions(self) -> list[Action]:
        """Selected actions in their original order."""
        return [
            action for action, flag in zip(self.actions, self.selected) if flag
        ]

    def has_selection(self) -> bool:
        return any(self.selected)

    @property
    def selected_count(self) -> int:
        return sum(self.selected)

    def summaries(self) -> list[str]:
        return [summarize_action(action) for action in self.actions]


def summarize_action(action: Action) -> str:
    label = get_label(action.kind)
    return f"{label} {action.target}" if action.target else label


def describe_action(action: Action) -> str:
    """Detail text shown when a proposed action is expanded."""
    if action.kind == "formula":
        return action.payload or "No formula"
    if action.kind == "values":
        try:
            return json.dumps(json.loads(action.payload), indent=2, ensure_ascii=False)
        except json.JSONDecodeError:
            return action.payload or "No values"
    if action.kind == "format":
        return _describe_format(action.payload)
    return action.payload or "No details"


def _describe_format(payload: str) -> str:
    try:
        parsed: Any = json.loads(payload)
    except json.JSONDecodeError:
        return payload or "No format data"
    if not isinstance(parsed, dict):
        return payload
    parts: list[str] = []
    if parsed.get("bold"):
        parts.append("Bold")
    if parsed.get("italic"):
        parts.append("Italic")
    if parsed.get("border"):
        parts.append("Border")
    for key, label in _FORMAT_PARTS:
        if parsed.get(key):
            parts.append(f"{label}: {parsed[key]}")
    return ", ".join(parts) or "No formatting"
