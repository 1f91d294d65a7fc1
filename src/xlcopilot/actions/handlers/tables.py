from __future__ import annotations

import logging
import re
from typing import Final, cast

from xlcopilot.actions.payloads import (
    AddTableColumnPayload,
    AddTableRowPayload,
    CreateTablePayload,
    ResizeTablePayload,
    StyleTablePayload,
    TableNamePayload,
    ToggleTotalsPayload,
)
from xlcopilot.shared.a1 import CellRange
from xlcopilot.store.base import GridStore

from .common import require_name, submit, submit_on_range

logger = logging.getLogger(__name__)

DEFAULT_TABLE_STYLE: Final = "TableStyleMedium2"
_TABLE_STYLE_PATTERN = re.compile(
    r"^TableStyle(?:Light(?:[1-9]|1[0-9]|2[01])"
    r"|Medium(?:[1-9]|1[0-9]|2[0-8])"
    r"|Dark(?:[1-9]|1[01]))$"
)
TOTALS_FUNCTIONS: Final[frozenset[str]] = frozenset(
    {"sum", "average", "count", "countnumbers", "max", "min", "stddev", "var", "none"}
)


def resolve_table_style(style: str) -> str:
    """Return a known table style, falling back to the default with a warning."""
    if _TABLE_STYLE_PATTERN.match(style):
        return style
    logger.warning(
        "Invalid table style %r. Valid styles: TableStyleLight1-21, "
        "TableStyleMedium1-28, TableStyleDark1-11. Using %s.",
        style,
        DEFAULT_TABLE_STYLE,
    )
    return DEFAULT_TABLE_STYLE


async def describe_table(store: GridStore, table_name: str) -> dict[str, object]:
    """Return ``{"name", "sheet", "ref", "columns"}`` for a table."""
    result = await submit(store, "describe_table", name=table_name)
    return cast(dict[str, object], result)


async def create_table(
    store: GridStore, target: CellRange, payload: CreateTablePayload
) -> str | None:
    style = resolve_table_style(payload.style)
    created = await submit_on_range(
        store,
        "add_table",
        target,
        table_name=payload.table_name,
        style=style,
        has_headers=payload.has_headers,
    )
    table_name = created if isinstance(created, str) else payload.table_name
    return f'Created table "{table_name}" at {target.address} with style {style}.'


async def style_table(
    store: GridStore, target: str, payload: StyleTablePayload
) -> str | None:
    table_name = require_name(payload.table_name, target, field_name="tableName")
    style = resolve_table_style(payload.style)
    await submit(
        store,
        "style_table",
        name=table_name,
        style=style,
        highlight_first_column=payload.highlight_first_column,
        highlight_last_column=payload.highlight_last_column,
        show_banded_rows=payload.show_banded_rows,
        show_banded_columns=payload.show_banded_columns,
    )
    return None


def _position_index(position: str | int) -> int | None:
    """``start`` is 0, ``end`` is None (append), integers pass through."""
    if position == "start":
        return 0
    if isinstance(position, int):
        return position
    return None


async def add_table_row(
    store: GridStore, target: str, payload: AddTableRowPayload
) -> str | None:
    table_name = require_name(payload.table_name, target, field_name="tableName")
    await submit(
        store,
        "add_table_row",
        name=table_name,
        index=_position_index(payload.position),
        values=payload.values,
    )
    return None


async def add_table_column(
    store: GridStore, target: str, payload: AddTableColumnPayload
) -> str | None:
    table_name = require_name(payload.table_name, target, field_name="tableName")
    await submit(
        store,
        "add_table_column",
        name=table_name,
        index=_position_index(payload.position),
        column_name=payload.column_name,
        values=payload.values,
    )
    return f'Added column "{payload.column_name}" to table "{table_name}".'


async def resize_table(
    store: GridStore, target: str, payload: ResizeTablePayload
) -> str | None:
    table_name = require_name(payload.table_name, target, field_name="tableName")
    previous = await describe_table(store, table_name)
    await submit(store, "resize_table", name=table_name, new_range=payload.new_range)
    return f'Resized table "{table_name}" from {previous["ref"]} to {payload.new_range}.'


async def convert_to_range(
    store: GridStore, target: str, payload: TableNamePayload
) -> str | None:
    table_name = require_name(payload.table_name, target, field_name="tableName")
    await submit(store, "convert_table_to_range", name=table_name)
    return None


async def toggle_table_totals(
    store: GridStore, target: str, payload: ToggleTotalsPayload
) -> str | None:
    """Show or hide the totals row; invalid per-column configs are skipped."""
    table_name = require_name(payload.table_name, target, field_name="tableName")
    info = await describe_table(store, table_name)
    column_count = len(cast(list[str], info["columns"]))
    functions: dict[int, str] = {}
    if payload.show:
        for config in payload.totals:
            function = re.sub(r"\s", "", config.function.lower())
            if function == "avg":
                function = "average"
            if config.column_index >= column_count:
                logger.warning(
                    "Skipping totals config: columnIndex %d exceeds table column "
                    "count %d",
                    config.column_index,
                    column_count,
                )
                continue
            if function not in TOTALS_FUNCTIONS:
                logger.warning(
                    "Skipping invalid totals function %r for column %d",
                    config.function,
                    config.column_index,
                )
                continue
            functions[config.column_index] = function
    await submit(
        store,
        "set_table_totals",
        name=table_name,
        show=payload.show,
        functions=functions,
    )
    if functions:
        applied = ", ".join(
            f"column {index}: {name}" for index, name in sorted(functions.items())
        )
        return f"Totals {applied}."
    return None
