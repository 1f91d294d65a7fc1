"""Handlers that rewrite cell contents through read/write of 2-D blocks."""

from __future__ import annotations

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.models import Grid
from xlcopilot.actions.payloads import (
    FormulaPayload,
    SortPayload,
    SourcePayload,
    ValuesPayload,
)
from xlcopilot.shared.a1 import CellAddress, CellRange
from xlcopilot.shared.formula import (
    FormulaSyntaxError,
    distribute_formula,
    shift_formula,
)
from xlcopilot.store.base import GridStore

from .common import display_values, is_blank, range_on_sheet


async def apply_formula(
    store: GridStore, target: CellRange, payload: FormulaPayload
) -> str | None:
    """Distribute one formula over the target, shifting relative references."""
    try:
        formulas = distribute_formula(
            payload.formula, target.row_count, target.column_count
        )
    except FormulaSyntaxError as exc:
        raise PayloadValueError(str(exc), failed_field="formula") from exc
    await store.write_range(target.address, formulas=formulas)
    return None


async def apply_values(
    store: GridStore, target: CellRange, payload: ValuesPayload
) -> str | None:
    """Write a 2-D block; a single value is broadcast over the target."""
    values = payload.values
    row_count = len(values)
    column_count = len(values[0])
    if row_count == 1 and column_count == 1:
        values = [
            [values[0][0] for _ in range(target.column_count)]
            for _ in range(target.row_count)
        ]
    elif (row_count, column_count) != (target.row_count, target.column_count):
        raise PayloadValueError(
            f"values shape {row_count}x{column_count} does not match target "
            f"{target.address} ({target.row_count}x{target.column_count}).",
            failed_field="values",
        )
    await store.write_range(target.address, values=values)
    return None


async def apply_sort(
    store: GridStore, target: CellRange, payload: SortPayload
) -> str | None:
    """Sort target rows by one column offset; blanks always sort last."""
    if payload.column >= target.column_count:
        raise PayloadValueError(
            f"sort column {payload.column} is outside target {target.address} "
            f"({target.column_count} columns).",
            failed_field="column",
        )
    snapshot = await store.read_range(target.address)
    keys = display_values(snapshot.values, snapshot.formulas)
    rows = list(zip(keys, snapshot.formulas))
    header_count = 1 if payload.has_headers and len(rows) > 1 else 0
    header, rows = rows[:header_count], rows[header_count:]
    filled = [row for row in rows if not is_blank(row[0][payload.column])]
    blanks = [row for row in rows if is_blank(row[0][payload.column])]
    filled.sort(
        key=lambda row: _sort_key(row[0][payload.column]),
        reverse=not payload.ascending,
    )
    ordered = [formulas for _, formulas in [*header, *filled, *blanks]]
    await store.write_range(target.address, formulas=ordered)
    direction = "ascending" if payload.ascending else "descending"
    return f"Sorted by column {payload.column} ({direction})."


def _sort_key(value: object) -> tuple[int, float, str]:
    """Order numbers before text before booleans, as Excel does."""
    if isinstance(value, bool):
        return (2, float(value), "")
    if isinstance(value, (int, float)):
        return (0, float(value), "")
    return (1, 0.0, str(value).lower())


async def apply_autofill(
    store: GridStore, target: CellRange, payload: SourcePayload
) -> str | None:
    """Repeat the source pattern over the target.

    Constants are tiled; formulas are shifted relative to the source cell
    they were copied from.
    """
    source = range_on_sheet(payload.source, target.sheet)
    snapshot = await store.read_range(source.address)
    formulas: Grid = []
    for row_offset in range(target.row_count):
        row: list[object] = []
        for column_offset in range(target.column_count):
            source_row = row_offset % source.row_count
            source_column = column_offset % source.column_count
            content = snapshot.formulas[source_row][source_column]
            origin = CellAddress(
                column=source.anchor.column + source_column,
                row=source.anchor.row + source_row,
            )
            row.append(
                _shift_content(
                    content,
                    target.anchor.row + row_offset - origin.row,
                    target.anchor.column + column_offset - origin.column,
                )
            )
        formulas.append(row)
    await store.write_range(target.address, formulas=formulas)
    return None


def copy_extent(target: CellRange, payload: SourcePayload) -> CellRange:
    """Block written by copy kinds: the target anchor resized to the source."""
    source = range_on_sheet(payload.source, target.sheet)
    return target.resize(source.row_count, source.column_count)


async def apply_copy(
    store: GridStore, target: CellRange, payload: SourcePayload
) -> str | None:
    """Copy formulas from the source; relative references follow the move."""
    source = range_on_sheet(payload.source, target.sheet)
    destination = copy_extent(target, payload)
    snapshot = await store.read_range(source.address)
    row_shift = destination.anchor.row - source.anchor.row
    column_shift = destination.anchor.column - source.anchor.column
    formulas = [
        [_shift_content(content, row_shift, column_shift) for content in row]
        for row in snapshot.formulas
    ]
    await store.write_range(destination.address, formulas=formulas)
    return f"Copied {source.address} to {destination.address}."


async def apply_copy_values(
    store: GridStore, target: CellRange, payload: SourcePayload
) -> str | None:
    """Copy computed values from the source, dropping formulas.

    Formula cells whose value the store cannot compute fail the action rather
    than blank the destination.
    """
    source = range_on_sheet(payload.source, target.sheet)
    destination = copy_extent(target, payload)
    snapshot = await store.read_range(source.address)
    for row_offset, row in enumerate(snapshot.values):
        for column_offset, value in enumerate(row):
            content = snapshot.formulas[row_offset][column_offset]
            if value is None and isinstance(content, str) and content.startswith("="):
                cell = CellAddress(
                    column=source.anchor.column + column_offset,
                    row=source.anchor.row + row_offset,
                )
                raise ValueError(
                    f"Source {source.address} has no computed value at {cell.label}; "
                    "recalculate the workbook or use copy instead."
                )
    await store.write_range(destination.address, values=snapshot.values)
    return f"Copied values from {source.address} to {destination.address}."


def _shift_content(content: object, row_offset: int, column_offset: int) -> object:
    if isinstance(content, str) and content.startswith("="):
        return shift_formula(content, row_offset, column_offset)
    return content
