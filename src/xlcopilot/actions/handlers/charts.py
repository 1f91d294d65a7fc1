"""Chart handlers with category aggregation for repetitive data."""

from __future__ import annotations

import logging
import re

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.models import Grid
from xlcopilot.actions.payloads import ChartPayload, PivotChartPayload
from xlcopilot.shared.a1 import CellAddress, CellRange
from xlcopilot.store.base import GridStore

from .common import cell_text, display_values, is_blank, submit

logger = logging.getLogger(__name__)

_AGGREGATION_MIN_ROWS = 10
_CATEGORY_SAMPLE_ROWS = 5
_VALUE_SAMPLE_ROWS = 9
_ID_HEADER_PATTERN = re.compile(r"id|no|number")


async def create_chart(
    store: GridStore, target: CellRange, payload: ChartPayload
) -> str | None:
    """Chart the target, aggregating by category when categories repeat."""
    snapshot = await store.read_range(target.address)
    values = display_values(snapshot.values, snapshot.formulas)
    chart_range = target
    note: str | None = None
    if target.row_count > _AGGREGATION_MIN_ROWS and target.column_count >= 2:
        category_column = _detect_category_column(values)
        if category_column is not None:
            value_column = _detect_value_column(values, skip=category_column)
            block = _aggregate_by_category(values, category_column, value_column)
            chart_range = await _write_summary_block(store, target, block)
            note = f"Aggregated {len(block) - 1} categories into {chart_range.address}."
            logger.debug("Aggregated chart data for %s", target.address)
    await _add_chart(store, chart_range, payload)
    return note


async def create_pivot_chart(
    store: GridStore, target: CellRange, payload: PivotChartPayload
) -> str | None:
    """Group by one header, aggregate another, write the summary and chart it."""
    snapshot = await store.read_range(target.address)
    values = display_values(snapshot.values, snapshot.formulas)
    headers = [cell_text(value) for value in values[0]]
    group_index = _match_header(headers, payload.group_by)
    if group_index is None:
        raise PayloadValueError(
            f'Column "{payload.group_by}" not found. Available: {", ".join(headers)}',
            failed_field="groupBy",
        )
    aggregate_index = (
        _match_header(headers, payload.aggregate) if payload.aggregate else None
    )
    groups: dict[str, list[float]] = {}
    counts: dict[str, int] = {}
    for row in values[1:]:
        key = cell_text(row[group_index]).strip()
        if not key:
            continue
        counts[key] = counts.get(key, 0) + 1
        numbers = groups.setdefault(key, [])
        if aggregate_index is not None:
            number = _as_number(row[aggregate_index])
            if number is not None:
                numbers.append(number)
    summary: Grid = [
        [key, _aggregate(payload.aggregate_func, groups[key], counts[key])]
        for key in counts
    ]
    summary.sort(key=lambda row: row[1], reverse=True)
    block: Grid = [[payload.group_by, payload.aggregate or "Value"], *summary]
    chart_range = await _write_summary_block(store, target, block)
    await _add_chart(store, chart_range, payload)
    return f"Summarized {len(summary)} group(s) at {chart_range.address}."


def _aggregate(function: str, numbers: list[float], count: int) -> float:
    """Apply the aggregate; groups without numbers fall back to their count."""
    if function == "count" or not numbers:
        return count
    if function == "avg":
        return sum(numbers) / len(numbers)
    if function == "max":
        return max(numbers)
    if function == "min":
        return min(numbers)
    return sum(numbers)


def _match_header(headers: list[str], search: str) -> int | None:
    """Case-insensitive header match with substring fallback either way."""
    term = search.strip().lower()
    for index, header in enumerate(headers):
        candidate = header.strip().lower()
        if candidate == term or term in candidate or (candidate and candidate in term):
            return index
    return None


def _detect_category_column(values: Grid) -> int | None:
    sample_rows = values[1 : 1 + _CATEGORY_SAMPLE_ROWS]
    for column in range(len(values[0])):
        sample = [row[column] for row in sample_rows]
        has_text = any(isinstance(value, str) and value for value in sample)
        texts = [cell_text(value) for value in sample]
        if has_text and len(set(texts)) < len(texts):
            return column
    return None


def _detect_value_column(values: Grid, *, skip: int) -> int | None:
    """First numeric column that does not look like an ID or a sequence."""
    sample_rows = values[1 : 1 + _VALUE_SAMPLE_ROWS]
    for column in range(len(values[0])):
        if column == skip:
            continue
        numbers = [_as_number(row[column]) for row in sample_rows]
        if any(number is None for number in numbers):
            continue
        header = cell_text(values[0][column]).lower()
        present = [number for number in numbers if number is not None]
        is_sequential = len(present) > 3 and all(
            later > earlier for earlier, later in zip(present, present[1:])
        )
        if _ID_HEADER_PATTERN.search(header) or is_sequential:
            continue
        return column
    return None


def _aggregate_by_category(
    values: Grid, category_column: int, value_column: int | None
) -> Grid:
    totals: dict[str, float] = {}
    for row in values[1:]:
        key = cell_text(row[category_column]).strip()
        if not key:
            continue
        if value_column is None:
            totals[key] = totals.get(key, 0) + 1
            continue
        number = _as_number(row[value_column])
        totals[key] = totals.get(key, 0) + (number or 0)
    rows: Grid = [[key, total] for key, total in totals.items()]
    rows.sort(key=lambda row: row[1], reverse=True)
    header_category = cell_text(values[0][category_column]) or "Category"
    header_value = (
        cell_text(values[0][value_column]) if value_column is not None else "Count"
    )
    return [[header_category, header_value], *rows]


async def _write_summary_block(
    store: GridStore, source: CellRange, block: Grid
) -> CellRange:
    """Write a two-column block two rows below the source data."""
    anchor = CellAddress(
        column=source.anchor.column,
        row=source.anchor.row + source.row_count + 2,
    )
    destination = CellRange(
        sheet=source.sheet, anchor=anchor, row_count=len(block), column_count=2
    )
    await store.write_range(destination.address, values=block)
    return destination


async def _add_chart(
    store: GridStore, data_range: CellRange, payload: ChartPayload
) -> None:
    legend = "right" if payload.chart_type in {"pie", "doughnut"} else "bottom"
    await submit(
        store,
        "add_chart",
        sheet=data_range.sheet,
        address=data_range.local_address,
        chart_type=payload.chart_type,
        title=payload.title,
        anchor=payload.position,
        legend_position=legend,
    )


def _as_number(value: object) -> float | None:
    if isinstance(value, bool) or is_blank(value):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?", str(value))
    return float(match.group(0)) if match else None
