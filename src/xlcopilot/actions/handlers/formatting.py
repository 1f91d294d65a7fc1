from __future__ import annotations

from xlcopilot.actions.payloads import (
    ConditionalFormatPayload,
    EmptyPayload,
    FormatPayload,
)
from xlcopilot.shared.a1 import CellRange
from xlcopilot.store.base import GridStore

from .common import submit_on_range


async def apply_format(
    store: GridStore, target: CellRange, payload: FormatPayload
) -> str | None:
    """Apply font, fill, number format, border and alignment options."""
    options = payload.model_dump(exclude_none=True)
    await submit_on_range(store, "set_format", target, **options)
    return "Formatted: " + ", ".join(sorted(payload.model_fields_set)) + "."


async def apply_conditional_format(
    store: GridStore, target: CellRange, payload: ConditionalFormatPayload
) -> str | None:
    """Replace the target's conditional formats with cell-value rules."""
    await submit_on_range(store, "clear_conditional_formats", target)
    for rule in payload.rules:
        await submit_on_range(
            store,
            "add_conditional_format",
            target,
            **rule.model_dump(exclude_none=True),
        )
    return f"Applied {len(payload.rules)} conditional format rule(s)."


async def clear_conditional_format(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "clear_conditional_formats", target)
    return None
