from __future__ import annotations

from typing import Any

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.models import Grid
from xlcopilot.shared.a1 import CellRange, parse_range
from xlcopilot.store.base import GridCommand, GridOp, GridStore


def is_blank(value: object) -> bool:
    """Return True for empty cell content."""
    return value is None or value == ""


def sheet_from_target(target: str) -> str | None:
    """Sheet name for sheet-scoped kinds; empty text means the active sheet."""
    candidate = target.strip()
    return candidate or None


def require_name(explicit: str | None, target: str, *, field_name: str) -> str:
    """Resolve an object name from the payload or, failing that, the target."""
    name = (explicit or "").strip() or target.strip()
    if not name:
        raise PayloadValueError(
            f"{field_name} is required (set it in the payload or as target).",
            failed_field=field_name,
        )
    return name


def range_on_sheet(address: str, sheet: str | None) -> CellRange:
    """Parse an address, defaulting its sheet to the given one."""
    parsed = parse_range(address)
    if parsed.sheet is None and sheet is not None:
        return parsed.model_copy(update={"sheet": sheet})
    return parsed


def cell_text(value: object) -> str:
    """Render a cell value the way it keys and splits as text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def blank_grid(row_count: int, column_count: int) -> Grid:
    return [["" for _ in range(column_count)] for _ in range(row_count)]


def display_values(values: Grid, formulas: Grid) -> Grid:
    """Prefer computed values; fall back to formula text for uncomputed cells."""
    merged: Grid = []
    for value_row, formula_row in zip(values, formulas):
        merged.append(
            [
                formula if value is None else value
                for value, formula in zip(value_row, formula_row)
            ]
        )
    return merged


async def submit(
    store: GridStore,
    op: GridOp,
    *,
    sheet: str | None = None,
    address: str | None = None,
    name: str | None = None,
    **options: Any,
) -> object:
    """Build and submit one grid command; None options are dropped."""
    command = GridCommand(
        op=op,
        sheet=sheet,
        address=address,
        name=name,
        options={key: value for key, value in options.items() if value is not None},
    )
    return await store.submit(command)


async def submit_on_range(
    store: GridStore, op: GridOp, target: CellRange, **options: Any
) -> object:
    """Submit a command addressed at a parsed range."""
    return await submit(
        store, op, sheet=target.sheet, address=target.local_address, **options
    )
