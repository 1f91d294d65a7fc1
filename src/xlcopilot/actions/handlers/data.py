"""Data-shaping handlers: filters, dedupe, find/replace, splits, merges."""

from __future__ import annotations

import logging
import re

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.models import Grid
from xlcopilot.actions.payloads import (
    EmptyPayload,
    FilterPayload,
    FindReplacePayload,
    MergePayload,
    RemoveDuplicatesPayload,
    TextToColumnsPayload,
    ValidationPayload,
)
from xlcopilot.shared.a1 import CellRange
from xlcopilot.store.base import GridStore

from .common import (
    blank_grid,
    cell_text,
    display_values,
    is_blank,
    range_on_sheet,
    sheet_from_target,
    submit,
    submit_on_range,
)

logger = logging.getLogger(__name__)

_LIST_FORMULA_LIMIT = 255


async def apply_validation(
    store: GridStore, target: CellRange, payload: ValidationPayload
) -> str | None:
    """Attach a dropdown list built from a source range or explicit values."""
    items: list[str] = []
    if payload.source is not None:
        source = range_on_sheet(payload.source, target.sheet)
        snapshot = await store.read_range(source.address)
        for row in display_values(snapshot.values, snapshot.formulas):
            for value in row:
                if is_blank(value):
                    continue
                text = cell_text(value)
                if text not in items:
                    items.append(text)
    else:
        items = [item for item in payload.values or [] if item]
    if not items:
        raise PayloadValueError(
            "Validation source contains no values.", failed_field="source"
        )
    joined = ",".join(items)
    if len(joined) > _LIST_FORMULA_LIMIT:
        raise PayloadValueError(
            f"Validation list is {len(joined)} characters; Excel allows "
            f"{_LIST_FORMULA_LIMIT}. Use a shorter list.",
            failed_field="values",
        )
    await submit_on_range(store, "set_validation_list", target, items=items)
    return f"Dropdown with {len(items)} item(s)."


async def apply_filter(
    store: GridStore, target: CellRange, payload: FilterPayload
) -> str | None:
    """Reset criteria, apply an autofilter, then filter one column if asked."""
    criteria: dict[int, list[str]] | None = None
    if payload.column is not None and payload.values:
        if payload.column >= target.column_count:
            raise PayloadValueError(
                f"filter column {payload.column} is outside target "
                f"{target.address}.",
                failed_field="column",
            )
        criteria = {payload.column: list(payload.values)}
    await submit(store, "clear_autofilter", sheet=target.sheet, criteria_only=True)
    await submit_on_range(store, "apply_autofilter", target, criteria=criteria)
    return None


async def clear_filter(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    """Clear filter criteria on the sheet; no filter is not an error."""
    await submit(
        store,
        "clear_autofilter",
        sheet=sheet_from_target(target),
        criteria_only=True,
    )
    return None


async def remove_duplicates(
    store: GridStore, target: CellRange, payload: RemoveDuplicatesPayload
) -> str | None:
    """Keep the first occurrence of each key; compact the block in place."""
    columns = payload.columns or list(range(target.column_count))
    if any(column >= target.column_count for column in columns):
        raise PayloadValueError(
            f"removeDuplicates columns must be below {target.column_count}.",
            failed_field="columns",
        )
    snapshot = await store.read_range(target.address)
    keys = display_values(snapshot.values, snapshot.formulas)
    seen: set[str] = set()
    unique_rows: Grid = []
    for key_row, row in zip(keys, snapshot.formulas):
        key = "|".join(cell_text(key_row[column]) for column in columns)
        if key in seen:
            continue
        seen.add(key)
        unique_rows.append(list(row))
    removed = target.row_count - len(unique_rows)
    padding = blank_grid(removed, target.column_count)
    await store.write_range(target.address, formulas=[*unique_rows, *padding])
    logger.debug("Removed %d duplicate rows from %s", removed, target.address)
    return f"Removed {removed} duplicate row(s)."


async def find_replace(
    store: GridStore, target: CellRange, payload: FindReplacePayload
) -> str | None:
    """Replace text in constant cells; formulas are left untouched."""
    flags = 0 if payload.match_case else re.IGNORECASE
    pattern = re.compile(re.escape(payload.find), flags)
    snapshot = await store.read_range(target.address)
    replaced = 0
    formulas: Grid = []
    for row in snapshot.formulas:
        new_row: list[object] = []
        for content in row:
            if not isinstance(content, str) or content.startswith("="):
                new_row.append(content)
                continue
            if payload.match_entire_cell:
                if pattern.fullmatch(content):
                    new_row.append(payload.replace)
                    replaced += 1
                else:
                    new_row.append(content)
                continue
            updated, count = pattern.subn(lambda _: payload.replace, content)
            replaced += 1 if count else 0
            new_row.append(updated)
        formulas.append(new_row)
    if replaced:
        await store.write_range(target.address, formulas=formulas)
    return f"Replaced text in {replaced} cell(s)."


async def text_to_columns(
    store: GridStore, target: CellRange, payload: TextToColumnsPayload
) -> str | None:
    """Split a single text column by a delimiter into adjacent columns."""
    if target.column_count != 1:
        raise PayloadValueError(
            "Text to columns requires a single-column range. "
            f"Got {target.column_count} columns.",
            failed_field="target",
        )
    snapshot = await store.read_range(target.address)
    source_values = display_values(snapshot.values, snapshot.formulas)
    parts = [cell_text(row[0]).split(payload.delimiter) for row in source_values]
    width = max(len(row) for row in parts)
    padded: Grid = [[*row, *([""] * (width - len(row)))] for row in parts]
    if payload.destination is not None:
        anchor = range_on_sheet(payload.destination, target.sheet)
    else:
        anchor = target.offset(0, 1)
    destination = anchor.resize(len(padded), width)
    existing = await store.read_range(destination.address)
    occupied = sum(
        1
        for row in display_values(existing.values, existing.formulas)
        for value in row
        if not is_blank(value)
    )
    if occupied and not payload.force_overwrite:
        raise PayloadValueError(
            f"Destination range contains {occupied} non-empty cell(s). "
            'Set "forceOverwrite": true to overwrite existing data, or choose a '
            "different destination.",
            failed_field="destination",
        )
    if occupied:
        logger.warning(
            "Overwriting %d non-empty cell(s) in %s", occupied, destination.address
        )
    await store.write_range(destination.address, values=padded)
    return f"Split {len(padded)} cell(s) into {width} column(s) at {destination.address}."


async def merge_cells(
    store: GridStore, target: CellRange, payload: MergePayload
) -> str | None:
    """Merge the target; only the top-left value survives."""
    if target.is_single_cell:
        raise PayloadValueError(
            "Cannot merge a single cell. Range must contain at least 2 cells.",
            failed_field="target",
        )
    if payload.across and target.row_count > 1:
        for row_offset in range(target.row_count):
            row = target.offset(row_offset, 0).resize(1, target.column_count)
            await submit_on_range(store, "merge_cells", row)
        return f"Merged {target.row_count} row(s) across."
    await submit_on_range(store, "merge_cells", target)
    return None


async def unmerge_cells(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    result = await submit_on_range(store, "unmerge_cells", target)
    if isinstance(result, int):
        return f"Unmerged {result} range(s)."
    return None
