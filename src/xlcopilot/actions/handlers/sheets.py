from __future__ import annotations

import logging

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.payloads import (
    CreateViewPayload,
    EmptyPayload,
    HideSheetPayload,
    MoveSheetPayload,
    RenameSheetPayload,
    SheetPayload,
    ZoomPayload,
)
from xlcopilot.shared.a1 import CellAddress, CellRange
from xlcopilot.store.base import GridStore

from .common import sheet_from_target, submit, submit_on_range

logger = logging.getLogger(__name__)


async def create_sheet(
    store: GridStore, target: str, payload: SheetPayload
) -> str | None:
    """Add a worksheet named by the target, optionally seeded with values."""
    name = target.strip()
    if not name:
        raise PayloadValueError("Sheet name is required.", failed_field="target")
    await submit(store, "add_sheet", name=name)
    values = payload.values
    if values and values[0]:
        width = max(len(row) for row in values)
        padded = [[*row, *([""] * (width - len(row)))] for row in values]
        block = CellRange(
            sheet=name,
            anchor=CellAddress(column=0, row=0),
            row_count=len(padded),
            column_count=width,
        )
        await store.write_range(block.address, values=padded)
        logger.debug("Seeded sheet %s with %dx%d values", name, len(padded), width)
    return f"Created sheet {name}."


async def rename_sheet(
    store: GridStore, target: str, payload: RenameSheetPayload
) -> str | None:
    sheet = sheet_from_target(target)
    await submit(store, "rename_sheet", sheet=sheet, name=payload.new_name)
    return f"Renamed {sheet or 'active sheet'} to {payload.new_name}."


async def move_sheet(
    store: GridStore, target: str, payload: MoveSheetPayload
) -> str | None:
    await submit(
        store, "move_sheet", sheet=sheet_from_target(target), position=payload.position
    )
    return None


async def hide_sheet(
    store: GridStore, target: str, payload: HideSheetPayload
) -> str | None:
    state = "veryHidden" if payload.very_hidden else "hidden"
    await submit(
        store, "set_sheet_visibility", sheet=sheet_from_target(target), state=state
    )
    return None


async def unhide_sheet(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    await submit(
        store, "set_sheet_visibility", sheet=sheet_from_target(target), state="visible"
    )
    return None


async def freeze_panes(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    """Freeze rows above and columns left of the target's top-left cell."""
    await submit_on_range(store, "freeze_panes", target.resize(1, 1))
    return None


async def unfreeze_pane(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    await submit(store, "unfreeze_panes", sheet=sheet_from_target(target))
    return None


async def set_zoom(
    store: GridStore, target: str, payload: ZoomPayload
) -> str | None:
    await submit(store, "set_zoom", sheet=sheet_from_target(target), scale=payload.scale)
    return None


async def split_pane(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "split_panes", target.resize(1, 1))
    return None


async def create_view(
    store: GridStore, target: str, payload: CreateViewPayload
) -> str | None:
    """Create a named sheet view; the target is the view name."""
    name = target.strip()
    if not name:
        raise PayloadValueError("View name is required.", failed_field="target")
    await submit(store, "create_view", name=name, temporary=payload.temporary)
    return None
