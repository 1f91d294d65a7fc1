"""Named ranges and protection handlers."""

from __future__ import annotations

from typing import cast

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.payloads import (
    CreateNamedRangePayload,
    EmptyPayload,
    PasswordPayload,
    ProtectWorksheetPayload,
    UpdateNamedRangePayload,
)
from xlcopilot.shared.a1 import CellRange
from xlcopilot.store.base import GridStore

from .common import sheet_from_target, submit, submit_on_range


def _require_named_range(target: str) -> str:
    name = target.strip()
    if not name:
        raise PayloadValueError("Named range is required as target.", failed_field="target")
    return name


async def create_named_range(
    store: GridStore, target: CellRange, payload: CreateNamedRangePayload
) -> str | None:
    await submit_on_range(
        store,
        "add_named_range",
        target,
        name=payload.name,
        comment=payload.comment,
    )
    return f"{payload.name}={target.address}"


async def delete_named_range(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    await submit(store, "delete_named_range", name=_require_named_range(target))
    return None


async def update_named_range(
    store: GridStore, target: str, payload: UpdateNamedRangePayload
) -> str | None:
    name = _require_named_range(target)
    await submit(
        store,
        "update_named_range",
        name=name,
        new_range=payload.new_range,
        comment=payload.comment,
    )
    return None


async def list_named_ranges(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    """Return ``name=ref`` pairs, one per line."""
    pairs = cast(list[tuple[str, str]], await submit(store, "list_named_ranges"))
    if not pairs:
        return "No named ranges."
    return "\n".join(f"{name}={ref}" for name, ref in pairs)


async def protect_worksheet(
    store: GridStore, target: str, payload: ProtectWorksheetPayload
) -> str | None:
    await submit(
        store,
        "protect_sheet",
        sheet=sheet_from_target(target),
        **payload.model_dump(exclude_none=True),
    )
    return None


async def unprotect_worksheet(
    store: GridStore, target: str, payload: PasswordPayload
) -> str | None:
    await submit(
        store,
        "unprotect_sheet",
        sheet=sheet_from_target(target),
        password=payload.password,
    )
    return None


async def protect_range(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    """Lock cells; locking takes effect once the sheet is protected."""
    await submit_on_range(store, "set_cells_locked", target, locked=True)
    return None


async def unprotect_range(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "set_cells_locked", target, locked=False)
    return None


async def protect_workbook(
    store: GridStore, target: str, payload: PasswordPayload
) -> str | None:
    await submit(store, "protect_workbook", password=payload.password)
    return None


async def unprotect_workbook(
    store: GridStore, target: str, payload: PasswordPayload
) -> str | None:
    await submit(store, "unprotect_workbook", password=payload.password)
    return None
