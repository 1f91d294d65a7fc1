"""PivotTable and slicer handlers.

Pivot and slicer objects are resolved by name across all sheets by the
store; handlers normalize options and validate what can be checked
up front.
"""

from __future__ import annotations

import logging
import re
from typing import Final, cast

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.payloads import (
    AddPivotFieldPayload,
    ConfigureSlicerPayload,
    ConnectSlicerToPivotPayload,
    ConnectSlicerToTablePayload,
    CreatePivotTablePayload,
    CreateSlicerPayload,
    PivotLayoutPayload,
    PivotNamePayload,
    RefreshPivotPayload,
    SlicerNamePayload,
)
from xlcopilot.shared.a1 import InvalidAddressError, parse_range, split_sheet_qualifier
from xlcopilot.store.base import GridStore

from .common import require_name, submit
from .tables import describe_table

logger = logging.getLogger(__name__)

PIVOT_FUNCTIONS: Final[dict[str, str]] = {
    "sum": "sum",
    "count": "count",
    "average": "average",
    "avg": "average",
    "max": "max",
    "min": "min",
    "countnumbers": "countNumbers",
    "stddev": "standardDeviation",
    "stdev": "standardDeviation",
    "standarddeviation": "standardDeviation",
    "var": "variance",
    "variance": "variance",
}
DEFAULT_SLICER_STYLE: Final = "SlicerStyleLight1"
_SLICER_STYLE_PATTERN = re.compile(r"^SlicerStyle(?:Light|Dark)[1-6]$")
_SLICER_SORT_TYPES: Final[dict[str, str]] = {
    "datasourceorder": "DataSourceOrder",
    "ascending": "Ascending",
    "descending": "Descending",
}
_LAYOUTS: Final = ("compact", "outline", "tabular")


def _pivot_function(name: str) -> str:
    """Map aggregation aliases; unknown names fall back to sum."""
    key = name.lower().replace("_", "").replace(" ", "")
    if key in PIVOT_FUNCTIONS:
        return PIVOT_FUNCTIONS[key]
    logger.warning(
        "Unknown aggregation %r; using Sum. Supported: Sum, Count, Average, "
        "Max, Min, CountNumbers, StdDev, Var",
        name,
    )
    return "sum"


async def create_pivot_table(
    store: GridStore, target: str, payload: CreatePivotTablePayload
) -> str | None:
    """Create a PivotTable from a table name or range at ``destination``."""
    if not target:
        raise PayloadValueError(
            "Source table name or range is required as target.", failed_field="target"
        )
    destination_sheet, destination_cell = split_sheet_qualifier(payload.destination)
    try:
        source = parse_range(target)
        source_sheet, source_address = source.sheet, source.local_address
    except InvalidAddressError:
        info = await describe_table(store, target)
        source_sheet = cast(str, info["sheet"])
        source_address = cast(str, info["ref"])
    layout = (payload.layout or "").strip().lower() or None
    if layout is not None and layout not in _LAYOUTS:
        logger.warning("Ignoring unknown pivot layout %r", payload.layout)
        layout = None
    await submit(
        store,
        "add_pivot_table",
        sheet=source_sheet,
        address=source_address,
        name=payload.name,
        destination_sheet=destination_sheet,
        destination=destination_cell,
        layout=layout,
    )
    return f'Created PivotTable "{payload.name}" at {payload.destination}.'


async def add_pivot_field(
    store: GridStore, target: str, payload: AddPivotFieldPayload
) -> str | None:
    pivot_name = require_name(payload.pivot_name, target, field_name="pivotName")
    function = _pivot_function(payload.function) if payload.area == "data" else None
    await submit(
        store,
        "add_pivot_field",
        name=pivot_name,
        field=payload.field,
        area=payload.area,
        function=function,
    )
    return f'Added field "{payload.field}" to {payload.area} area.'


async def configure_pivot_layout(
    store: GridStore, target: str, payload: PivotLayoutPayload
) -> str | None:
    pivot_name = require_name(payload.pivot_name, target, field_name="pivotName")
    await submit(
        store,
        "set_pivot_layout",
        name=pivot_name,
        layout=payload.layout,
        show_row_headers=payload.show_row_headers,
        show_column_headers=payload.show_column_headers,
    )
    return None


async def refresh_pivot_table(
    store: GridStore, target: str, payload: RefreshPivotPayload
) -> str | None:
    """Refresh one PivotTable, or every one when ``refreshAll`` is set."""
    if payload.refresh_all:
        await submit(store, "refresh_pivot_tables")
        return "Refreshed all PivotTables."
    pivot_name = require_name(payload.pivot_name, target, field_name="pivotName")
    await submit(store, "refresh_pivot_tables", name=pivot_name)
    return None


async def delete_pivot_table(
    store: GridStore, target: str, payload: PivotNamePayload
) -> str | None:
    pivot_name = require_name(payload.pivot_name, target, field_name="pivotName")
    await submit(store, "delete_pivot_table", name=pivot_name)
    return None


def _slicer_style(style: str | None) -> str | None:
    if style is None or _SLICER_STYLE_PATTERN.match(style):
        return style
    logger.warning("Invalid slicer style %r; valid: SlicerStyleLight1-6, Dark1-6", style)
    return None


async def _ensure_table_field(store: GridStore, table_name: str, field: str) -> None:
    info = await describe_table(store, table_name)
    columns = cast(list[str], info["columns"])
    if field not in columns:
        raise PayloadValueError(
            f'Field "{field}" not found in table "{table_name}". '
            f"Available columns: {', '.join(columns)}",
            failed_field="field",
        )


async def create_slicer(
    store: GridStore, target: str, payload: CreateSlicerPayload
) -> str | None:
    """Add a slicer for a table column or a PivotTable field."""
    source_name = require_name(payload.source_name, target, field_name="sourceName")
    if payload.source_type == "table":
        await _ensure_table_field(store, source_name, payload.field)
    selected = payload.selected_items
    if selected and not payload.multi_select:
        selected = selected[:1]
    created = await submit(
        store,
        "add_slicer",
        name=payload.slicer_name,
        source_type=payload.source_type,
        source_name=source_name,
        field=payload.field,
        position=payload.position.model_dump(),
        style=_slicer_style(payload.style) or DEFAULT_SLICER_STYLE,
        selected_items=selected or None,
    )
    display = created if isinstance(created, str) else payload.slicer_name
    return f'Created slicer "{display or payload.field}".'


async def configure_slicer(
    store: GridStore, target: str, payload: ConfigureSlicerPayload
) -> str | None:
    slicer_name = require_name(payload.slicer_name, target, field_name="slicerName")
    sort_by: str | None = None
    if payload.sort_by:
        sort_by = _SLICER_SORT_TYPES.get(re.sub(r"\s", "", payload.sort_by.lower()))
        if sort_by is None:
            logger.warning("Ignoring unknown slicer sortBy %r", payload.sort_by)
    selected = payload.selected_items
    if selected and payload.multi_select is False:
        selected = selected[:1]
    options = {
        "caption": payload.caption,
        "style": _slicer_style(payload.style),
        "sort_by": sort_by,
        "width": payload.width,
        "height": payload.height,
        "left": payload.left,
        "top": payload.top,
        "selected_items": selected or None,
    }
    await submit(store, "update_slicer", name=slicer_name, **options)
    updated = [key for key, value in options.items() if value is not None]
    return "Updated: " + (", ".join(updated) or "nothing") + "."


async def _reconnect_slicer(
    store: GridStore,
    slicer_name: str,
    *,
    source_type: str,
    source_name: str,
    field: str,
) -> None:
    """Recreate a slicer on a new source, keeping its caption, style and geometry."""
    existing = cast(
        dict[str, object], await submit(store, "describe_slicer", name=slicer_name)
    )
    await submit(store, "delete_slicer", name=slicer_name)
    position = {key: existing[key] for key in ("left", "top", "width", "height")}
    await submit(
        store,
        "add_slicer",
        name=slicer_name,
        source_type=source_type,
        source_name=source_name,
        field=field,
        position=position,
        style=existing.get("style"),
        caption=existing.get("caption"),
    )


async def connect_slicer_to_table(
    store: GridStore, target: str, payload: ConnectSlicerToTablePayload
) -> str | None:
    slicer_name = require_name(payload.slicer_name, target, field_name="slicerName")
    await _ensure_table_field(store, payload.table_name, payload.field)
    await _reconnect_slicer(
        store,
        slicer_name,
        source_type="table",
        source_name=payload.table_name,
        field=payload.field,
    )
    return f'Connected slicer "{slicer_name}" to table "{payload.table_name}".'


async def connect_slicer_to_pivot(
    store: GridStore, target: str, payload: ConnectSlicerToPivotPayload
) -> str | None:
    slicer_name = require_name(payload.slicer_name, target, field_name="slicerName")
    await _reconnect_slicer(
        store,
        slicer_name,
        source_type="pivot",
        source_name=payload.pivot_name,
        field=payload.field,
    )
    return f'Connected slicer "{slicer_name}" to PivotTable "{payload.pivot_name}".'


async def delete_slicer(
    store: GridStore, target: str, payload: SlicerNamePayload
) -> str | None:
    slicer_name = require_name(payload.slicer_name, target, field_name="slicerName")
    await submit(store, "delete_slicer", name=slicer_name)
    return None
