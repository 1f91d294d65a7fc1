from __future__ import annotations

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.payloads import (
    EmptyPayload,
    HeaderFooterPayload,
    PageBreaksPayload,
    PageMarginsPayload,
    PageOrientationPayload,
    PageSetupPayload,
)
from xlcopilot.shared.a1 import CellRange
from xlcopilot.store.base import GridStore

from .common import sheet_from_target, submit, submit_on_range


def _require_options(options: dict[str, object], kind: str) -> dict[str, object]:
    if not options:
        raise PayloadValueError(f"{kind} requires at least one option.")
    return options


async def set_page_setup(
    store: GridStore, target: str, payload: PageSetupPayload
) -> str | None:
    options = _require_options(payload.model_dump(exclude_none=True), "setPageSetup")
    await submit(store, "set_page_setup", sheet=sheet_from_target(target), **options)
    return None


async def set_page_margins(
    store: GridStore, target: str, payload: PageMarginsPayload
) -> str | None:
    """Set margins in inches."""
    options = _require_options(payload.model_dump(exclude_none=True), "setPageMargins")
    await submit(store, "set_page_margins", sheet=sheet_from_target(target), **options)
    return None


async def set_page_orientation(
    store: GridStore, target: str, payload: PageOrientationPayload
) -> str | None:
    await submit(
        store,
        "set_page_setup",
        sheet=sheet_from_target(target),
        orientation=payload.orientation,
    )
    return None


async def set_print_area(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "set_print_area", target)
    return None


async def set_header_footer(
    store: GridStore, target: str, payload: HeaderFooterPayload
) -> str | None:
    options = _require_options(payload.model_dump(exclude_none=True), "setHeaderFooter")
    await submit(store, "set_header_footer", sheet=sheet_from_target(target), **options)
    return None


async def set_page_breaks(
    store: GridStore, target: str, payload: PageBreaksPayload
) -> str | None:
    await submit(
        store,
        "add_page_breaks",
        sheet=sheet_from_target(target),
        rows=payload.rows,
        columns=payload.columns,
    )
    return f"Added {len(payload.rows) + len(payload.columns)} page break(s)."
