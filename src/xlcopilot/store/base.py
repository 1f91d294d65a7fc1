from __future__ import annotations

from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from xlcopilot.actions.models import Grid, RangeSnapshot

GridOp = Literal[
    # sheets and views
    "add_sheet",
    "rename_sheet",
    "move_sheet",
    "set_sheet_visibility",
    "freeze_panes",
    "unfreeze_panes",
    "set_zoom",
    "split_panes",
    "create_view",
    # rows and columns
    "insert_rows",
    "insert_columns",
    "delete_rows",
    "delete_columns",
    # cells, formats, filters
    "merge_cells",
    "unmerge_cells",
    "set_format",
    "add_conditional_format",
    "clear_conditional_formats",
    "set_validation_list",
    "apply_autofilter",
    "clear_autofilter",
    # charts
    "add_chart",
    # tables
    "add_table",
    "style_table",
    "describe_table",
    "add_table_row",
    "add_table_column",
    "resize_table",
    "convert_table_to_range",
    "set_table_totals",
    # pivots and slicers
    "add_pivot_table",
    "add_pivot_field",
    "set_pivot_layout",
    "refresh_pivot_tables",
    "delete_pivot_table",
    "add_slicer",
    "update_slicer",
    "describe_slicer",
    "delete_slicer",
    # named ranges
    "add_named_range",
    "update_named_range",
    "delete_named_range",
    "list_named_ranges",
    # protection
    "protect_sheet",
    "unprotect_sheet",
    "set_cells_locked",
    "protect_workbook",
    "unprotect_workbook",
    # shapes
    "add_shape",
    "add_image",
    "add_text_box",
    "format_shape",
    "delete_shape",
    "group_shapes",
    "ungroup_shapes",
    "arrange_shape",
    # comments and notes
    "add_comment",
    "edit_comment",
    "delete_comment",
    "reply_to_comment",
    "resolve_comment",
    "add_note",
    "edit_note",
    "delete_note",
    # sparklines
    "add_sparkline",
    "update_sparkline",
    "delete_sparkline",
    # page layout
    "set_page_setup",
    "set_page_margins",
    "set_print_area",
    "set_header_footer",
    "add_page_breaks",
    # data types
    "insert_data_type",
    "refresh_data_types",
    # hyperlinks
    "set_hyperlink",
    "edit_hyperlink",
    "remove_hyperlink",
]


class GridCommand(BaseModel):
    """One host primitive queued to a grid store.

    ``sheet`` is None for the active sheet. ``address`` is a local A1 address
    (or row/column span for structure ops). ``name`` carries the logical
    object name (table, pivot, slicer, shape, defined name) when relevant.
    """

    op: GridOp
    sheet: str | None = None
    address: str | None = None
    name: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class GridStore(Protocol):
    """Asynchronous collaborator that owns the workbook."""

    async def read_range(self, address: str) -> RangeSnapshot:
        """Read values and formulas of an A1 range (optionally sheet-qualified).

        The returned snapshot address names the sheet that was read.
        """

    async def write_range(
        self,
        address: str,
        *,
        values: Grid | None = None,
        formulas: Grid | None = None,
    ) -> None:
        """Write a 2-D block whose shape matches the range."""

    async def submit(self, command: GridCommand) -> object:
        """Apply one host primitive and return its result, if any."""


__all__ = ["GridCommand", "GridOp", "GridStore"]
