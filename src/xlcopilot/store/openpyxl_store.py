"""Grid store backed by an in-memory openpyxl workbook."""

from __future__ import annotations

from collections.abc import Callable
from copy import copy
from io import BytesIO
import logging
from pathlib import Path
from typing import Any, Final

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import Cell, MergedCell
from openpyxl.chart import (
    AreaChart,
    BarChart,
    DoughnutChart,
    LineChart,
    PieChart,
    RadarChart,
    Reference,
    ScatterChart,
    Series,
)
from openpyxl.comments import Comment
from openpyxl.drawing.image import Image
from openpyxl.formatting.rule import CellIsRule
from openpyxl.formatting.formatting import ConditionalFormattingList
from openpyxl.styles import Font, PatternFill, Protection, Side
from openpyxl.utils.cell import absolute_coordinate
from openpyxl.utils.protection import hash_password
from openpyxl.workbook.defined_name import DefinedName
from openpyxl.workbook.protection import WorkbookProtection
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.worksheet.formula import ArrayFormula
from openpyxl.worksheet.pagebreak import Break
from openpyxl.worksheet.protection import SheetProtection
from openpyxl.worksheet.table import Table, TableColumn, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from xlcopilot.actions.models import Grid, RangeSnapshot
from xlcopilot.shared.a1 import (
    CellAddress,
    CellRange,
    InvalidAddressError,
    parse_range,
    quote_sheet_name,
    ranges_overlap,
)

from .base import GridCommand, GridOp

logger = logging.getLogger(__name__)

_CF_OPERATORS: Final[dict[str, str]] = {
    "GreaterThan": "greaterThan",
    "LessThan": "lessThan",
    "EqualTo": "equal",
    "NotEqualTo": "notEqual",
    "GreaterThanOrEqual": "greaterThanOrEqual",
    "LessThanOrEqual": "lessThanOrEqual",
    "Between": "between",
    "NotBetween": "notBetween",
}
# SUBTOTAL codes that ignore filtered rows, keyed by totals function.
_SUBTOTAL_CODES: Final[dict[str, int]] = {
    "sum": 109,
    "average": 101,
    "count": 103,
    "countnumbers": 102,
    "max": 104,
    "min": 105,
    "stddev": 107,
    "var": 110,
}
_TOTALS_ROW_FUNCTIONS: Final[dict[str, str]] = {
    "countnumbers": "countNums",
    "stddev": "stdDev",
}
_HEADER_FOOTER_SECTIONS: Final[dict[str, tuple[str, str]]] = {
    "header_left": ("oddHeader", "left"),
    "header_center": ("oddHeader", "center"),
    "header_right": ("oddHeader", "right"),
    "footer_left": ("oddFooter", "left"),
    "footer_center": ("oddFooter", "center"),
    "footer_right": ("oddFooter", "right"),
}
_DEFAULT_COMMENT_AUTHOR: Final = "xlcopilot"


class OpenpyxlGridStore:
    """``GridStore`` implementation over an openpyxl ``Workbook``.

    Primitives openpyxl cannot express (pivots, slicers, sparklines, drawing
    shapes, threaded comments, linked data types, sheet views) raise
    ``ValueError`` so the dispatcher reports them as host failures.
    """

    def __init__(
        self,
        workbook: Workbook,
        *,
        active_sheet: str | None = None,
        path: Path | None = None,
    ) -> None:
        self.workbook = workbook
        self.active_sheet = active_sheet
        self.path = path
        if active_sheet is not None:
            self._sheet(active_sheet)
        self._ops: dict[GridOp, Callable[[GridCommand], object]] = {
            "add_sheet": self._add_sheet,
            "rename_sheet": self._rename_sheet,
            "move_sheet": self._move_sheet,
            "set_sheet_visibility": self._set_sheet_visibility,
            "freeze_panes": self._freeze_panes,
            "unfreeze_panes": self._unfreeze_panes,
            "set_zoom": self._set_zoom,
            "insert_rows": self._insert_rows,
            "insert_columns": self._insert_columns,
            "delete_rows": self._delete_rows,
            "delete_columns": self._delete_columns,
            "merge_cells": self._merge_cells,
            "unmerge_cells": self._unmerge_cells,
            "set_format": self._set_format,
            "add_conditional_format": self._add_conditional_format,
            "clear_conditional_formats": self._clear_conditional_formats,
            "set_validation_list": self._set_validation_list,
            "apply_autofilter": self._apply_autofilter,
            "clear_autofilter": self._clear_autofilter,
            "add_chart": self._add_chart,
            "add_table": self._add_table,
            "style_table": self._style_table,
            "describe_table": self._describe_table,
            "add_table_row": self._add_table_row,
            "add_table_column": self._add_table_column,
            "resize_table": self._resize_table,
            "convert_table_to_range": self._convert_table_to_range,
            "set_table_totals": self._set_table_totals,
            "add_named_range": self._add_named_range,
            "update_named_range": self._update_named_range,
            "delete_named_range": self._delete_named_range,
            "list_named_ranges": self._list_named_ranges,
            "protect_sheet": self._protect_sheet,
            "unprotect_sheet": self._unprotect_sheet,
            "set_cells_locked": self._set_cells_locked,
            "protect_workbook": self._protect_workbook,
            "unprotect_workbook": self._unprotect_workbook,
            "add_image": self._add_image,
            "add_comment": self._add_comment,
            "add_note": self._add_comment,
            "edit_comment": self._edit_comment,
            "edit_note": self._edit_comment,
            "delete_comment": self._delete_comment,
            "delete_note": self._delete_comment,
            "set_page_setup": self._set_page_setup,
            "set_page_margins": self._set_page_margins,
            "set_print_area": self._set_print_area,
            "set_header_footer": self._set_header_footer,
            "add_page_breaks": self._add_page_breaks,
            "set_hyperlink": self._set_hyperlink,
            "edit_hyperlink": self._edit_hyperlink,
            "remove_hyperlink": self._remove_hyperlink,
        }

    @classmethod
    def from_path(
        cls, path: Path | str, *, active_sheet: str | None = None
    ) -> OpenpyxlGridStore:
        """Load a workbook from disk, keeping formulas (not cached values)."""
        file_path = Path(path)
        return cls(load_workbook(file_path), active_sheet=active_sheet, path=file_path)

    def save(self, path: Path | str | None = None) -> Path:
        """Save to ``path`` or back to the file the store was loaded from."""
        destination = Path(path) if path is not None else self.path
        if destination is None:
            raise ValueError("save requires a path for workbooks not loaded from disk.")
        self.workbook.save(destination)
        logger.info("Saved workbook to %s", destination)
        return destination

    # --- GridStore ------------------------------------------------------------

    async def read_range(self, address: str) -> RangeSnapshot:
        target = parse_range(address)
        sheet = self._sheet(target.sheet)
        values: Grid = []
        formulas: Grid = []
        for row in self._cells(sheet, target):
            value_row: list[Any] = []
            formula_row: list[Any] = []
            for cell in row:
                value, formula = _read_cell(cell)
                value_row.append(value)
                formula_row.append(formula)
            values.append(value_row)
            formulas.append(formula_row)
        qualified = target.model_copy(update={"sheet": sheet.title})
        return RangeSnapshot(
            address=qualified.address, values=values, formulas=formulas
        )

    async def write_range(
        self,
        address: str,
        *,
        values: Grid | None = None,
        formulas: Grid | None = None,
    ) -> None:
        grid = formulas if formulas is not None else values
        if grid is None:
            raise ValueError("write_range requires values or formulas.")
        target = parse_range(address)
        if len(grid) != target.row_count or any(
            len(row) != target.column_count for row in grid
        ):
            raise ValueError(
                f"Data shape does not match range {target.address} "
                f"({target.row_count}x{target.column_count})."
            )
        sheet = self._sheet(target.sheet)
        for cell_row, data_row in zip(self._cells(sheet, target), grid):
            for cell, content in zip(cell_row, data_row):
                cell.value = None if content == "" else content

    async def submit(self, command: GridCommand) -> object:
        handler = self._ops.get(command.op)
        if handler is None:
            raise ValueError(f"{command.op} is not supported by the openpyxl grid store.")
        return handler(command)

    # --- lookup helpers -------------------------------------------------------

    def _sheet(self, name: str | None) -> Worksheet:
        """Resolve a sheet by name; None means the active sheet."""
        resolved = name or self.active_sheet
        if resolved is None:
            active = self.workbook.active
            if not isinstance(active, Worksheet):
                raise ValueError("Workbook has no active worksheet.")
            return active
        if resolved not in self.workbook.sheetnames:
            raise ValueError(f"Sheet not found: {resolved}")
        return self.workbook[resolved]

    def _range(self, command: GridCommand) -> tuple[Worksheet, CellRange]:
        if command.address is None:
            raise ValueError(f"{command.op} requires an address.")
        target = parse_range(command.address)
        return self._sheet(command.sheet or target.sheet), target

    def _cells(self, sheet: Worksheet, target: CellRange) -> list[list[Cell | MergedCell]]:
        return [
            list(row)
            for row in sheet.iter_rows(
                min_row=target.anchor.row + 1,
                max_row=target.end.row + 1,
                min_col=target.anchor.column + 1,
                max_col=target.end.column + 1,
            )
        ]

    def _find_table(self, name: str | None) -> tuple[Worksheet, Table]:
        if not name:
            raise ValueError("Table name is required.")
        for sheet in self.workbook.worksheets:
            for table in sheet.tables.values():
                if table.displayName.lower() == name.lower():
                    return sheet, table
        raise ValueError(f"Table not found: {name}")

    # --- sheets and views -----------------------------------------------------

    def _add_sheet(self, command: GridCommand) -> str:
        name = _require(command.name, "add_sheet", "name")
        if name in self.workbook.sheetnames:
            raise ValueError(f"Sheet already exists: {name}")
        self.workbook.create_sheet(title=name)
        return name

    def _rename_sheet(self, command: GridCommand) -> str:
        sheet = self._sheet(command.sheet)
        new_name = _require(command.name, "rename_sheet", "name")
        if new_name != sheet.title and new_name in self.workbook.sheetnames:
            raise ValueError(f"Sheet already exists: {new_name}")
        if self.active_sheet == sheet.title:
            self.active_sheet = new_name
        sheet.title = new_name
        return new_name

    def _move_sheet(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        position = int(command.options["position"])
        last = len(self.workbook.sheetnames) - 1
        if not 0 <= position <= last:
            raise ValueError(f"position must be between 0 and {last}.")
        self.workbook.move_sheet(sheet, offset=position - self.workbook.index(sheet))

    def _set_sheet_visibility(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        state = str(command.options.get("state", "visible"))
        if state != "visible":
            visible = [
                ws for ws in self.workbook.worksheets if ws.sheet_state == "visible"
            ]
            if visible == [sheet]:
                raise ValueError("A workbook must keep at least one visible sheet.")
        sheet.sheet_state = state

    def _freeze_panes(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        sheet.freeze_panes = target.anchor.label

    def _unfreeze_panes(self, command: GridCommand) -> None:
        self._sheet(command.sheet).freeze_panes = None

    def _set_zoom(self, command: GridCommand) -> None:
        self._sheet(command.sheet).sheet_view.zoomScale = int(command.options["scale"])

    # --- rows and columns -----------------------------------------------------

    def _insert_rows(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        sheet.insert_rows(int(command.options["index"]) + 1, int(command.options["amount"]))

    def _insert_columns(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        sheet.insert_cols(int(command.options["index"]) + 1, int(command.options["amount"]))

    def _delete_rows(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        sheet.delete_rows(int(command.options["index"]) + 1, int(command.options["amount"]))

    def _delete_columns(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        sheet.delete_cols(int(command.options["index"]) + 1, int(command.options["amount"]))

    # --- cells, formats, filters ----------------------------------------------

    def _merge_cells(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        overlapped = _intersecting_merged_ranges(sheet, target)
        if overlapped:
            raise ValueError(
                "merge_cells range overlaps existing merged ranges: "
                + ", ".join(overlapped)
                + "."
            )
        sheet.merge_cells(target.local_address)

    def _unmerge_cells(self, command: GridCommand) -> int:
        sheet, target = self._range(command)
        merged = _intersecting_merged_ranges(sheet, target)
        for range_ref in merged:
            sheet.unmerge_cells(range_ref)
        return len(merged)

    def _set_format(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        options = command.options
        fill = options.get("fill")
        font_color = options.get("font_color")
        for row in self._cells(sheet, target):
            for cell in row:
                if isinstance(cell, MergedCell):
                    continue
                font = copy(cell.font)
                if "bold" in options:
                    font.bold = bool(options["bold"])
                if "italic" in options:
                    font.italic = bool(options["italic"])
                if "font_size" in options:
                    font.size = float(options["font_size"])
                if font_color is not None:
                    font.color = _argb(str(font_color))
                cell.font = font
                if fill is not None:
                    argb = _argb(str(fill))
                    cell.fill = PatternFill(
                        fill_type="solid", start_color=argb, end_color=argb
                    )
                if "number_format" in options:
                    cell.number_format = str(options["number_format"])
                if options.get("border"):
                    _set_grid_border(cell)
                if "align" in options:
                    alignment = copy(cell.alignment)
                    alignment.horizontal = str(options["align"])
                    cell.alignment = alignment

    def _add_conditional_format(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        options = command.options
        operator = _CF_OPERATORS[str(options["operator"])]
        formula = [_cf_operand(options["value"])]
        if "value2" in options:
            formula.append(_cf_operand(options["value2"]))
        fill_argb = _argb(str(options.get("fill", "#FFFF00")))
        font = (
            Font(color=_argb(str(options["font_color"])))
            if "font_color" in options
            else None
        )
        rule = CellIsRule(
            operator=operator,
            formula=formula,
            fill=PatternFill(fill_type="solid", start_color=fill_argb, end_color=fill_argb),
            font=font,
        )
        sheet.conditional_formatting.add(target.local_address, rule)

    def _clear_conditional_formats(self, command: GridCommand) -> int:
        """Drop conditional formats whose ranges intersect the target."""
        sheet, target = self._range(command)
        kept = ConditionalFormattingList()
        removed = 0
        for formatting in sheet.conditional_formatting:
            sqref = str(formatting.sqref)
            if any(
                ranges_overlap(target, _local_range(part)) for part in sqref.split()
            ):
                removed += len(formatting.rules)
                continue
            for rule in formatting.rules:
                kept.add(sqref, rule)
        sheet.conditional_formatting = kept
        return removed

    def _set_validation_list(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        items = [str(item) for item in command.options.get("items", [])]
        validation = DataValidation(
            type="list",
            formula1='"' + ",".join(items) + '"',
            allow_blank=True,
            showDropDown=False,
        )
        validation.add(target.local_address)
        sheet.add_data_validation(validation)

    def _apply_autofilter(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        sheet.auto_filter.ref = target.local_address
        criteria: dict[Any, list[Any]] = command.options.get("criteria", {})
        for column, values in criteria.items():
            sheet.auto_filter.add_filter_column(int(column), [str(v) for v in values])

    def _clear_autofilter(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        sheet.auto_filter.filterColumn = []
        if not command.options.get("criteria_only"):
            sheet.auto_filter.ref = None

    # --- charts ---------------------------------------------------------------

    def _add_chart(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        options = command.options
        chart_type = str(options.get("chart_type", "column"))
        chart = _build_chart(sheet, target, chart_type)
        chart.title = str(options.get("title", "Chart"))
        if chart.legend is not None:
            legend = str(options.get("legend_position", "bottom"))
            chart.legend.position = "r" if legend == "right" else "b"
        sheet.add_chart(chart, str(options.get("anchor", "H2")))

    # --- tables ---------------------------------------------------------------

    def _add_table(self, command: GridCommand) -> str:
        sheet, target = self._range(command)
        options = command.options
        if options.get("has_headers") is False:
            raise ValueError(
                "add_table without headers is not supported by the openpyxl grid store."
            )
        if target.row_count < 2:
            raise ValueError("add_table requires a header row and at least one data row.")
        _ensure_range_not_intersects_existing_tables(sheet, target)
        table_name = options.get("table_name") or self._next_table_name()
        self._ensure_table_name_available(str(table_name))
        headers = self._cells(sheet, target)[0]
        for index, cell in enumerate(headers):
            if cell.value is None or cell.value == "":
                cell.value = f"Column{index + 1}"
            elif not isinstance(cell.value, str):
                cell.value = str(cell.value)
        table = Table(displayName=str(table_name), ref=target.local_address)
        table.tableStyleInfo = TableStyleInfo(
            name=str(options.get("style", "TableStyleMedium2")),
            showFirstColumn=False,
            showLastColumn=False,
            showRowStripes=True,
            showColumnStripes=False,
        )
        sheet.add_table(table)
        return str(table_name)

    def _style_table(self, command: GridCommand) -> None:
        _, table = self._find_table(command.name)
        options = command.options
        info = table.tableStyleInfo or TableStyleInfo(showRowStripes=True)
        if "style" in options:
            info.name = str(options["style"])
        if "highlight_first_column" in options:
            info.showFirstColumn = bool(options["highlight_first_column"])
        if "highlight_last_column" in options:
            info.showLastColumn = bool(options["highlight_last_column"])
        if "show_banded_rows" in options:
            info.showRowStripes = bool(options["show_banded_rows"])
        if "show_banded_columns" in options:
            info.showColumnStripes = bool(options["show_banded_columns"])
        table.tableStyleInfo = info

    def _describe_table(self, command: GridCommand) -> dict[str, object]:
        sheet, table = self._find_table(command.name)
        bounds = _local_range(table.ref)
        return {
            "name": table.displayName,
            "sheet": sheet.title,
            "ref": table.ref,
            "columns": self._header_names(sheet, bounds),
        }

    def _header_names(self, sheet: Worksheet, bounds: CellRange) -> list[str]:
        header_row = self._cells(sheet, bounds.resize(1, bounds.column_count))[0]
        return ["" if cell.value is None else str(cell.value) for cell in header_row]

    def _add_table_row(self, command: GridCommand) -> None:
        sheet, table = self._find_table(command.name)
        bounds = _local_range(table.ref)
        totals = 1 if table.totalsRowCount else 0
        data_rows = bounds.row_count - 1 - totals
        rows: Grid = command.options.get("values") or [[None] * bounds.column_count]
        index = command.options.get("index")
        position = data_rows if index is None else int(index)
        if not 0 <= position <= data_rows:
            raise ValueError(f"Row index {position} is outside the table (0-{data_rows}).")
        sheet_row = bounds.anchor.row + 1 + position
        sheet.insert_rows(sheet_row + 1, len(rows))
        block = CellRange(
            anchor=CellAddress(column=bounds.anchor.column, row=sheet_row),
            row_count=len(rows),
            column_count=bounds.column_count,
        )
        for cell_row, data_row in zip(self._cells(sheet, block), rows):
            padded = [*data_row, *([None] * bounds.column_count)][: bounds.column_count]
            for cell, value in zip(cell_row, padded):
                cell.value = None if value == "" else value
        _set_table_ref(table, bounds.resize(bounds.row_count + len(rows), bounds.column_count))

    def _add_table_column(self, command: GridCommand) -> None:
        sheet, table = self._find_table(command.name)
        bounds = _local_range(table.ref)
        options = command.options
        column_name = str(options.get("column_name", "NewColumn"))
        if column_name in self._header_names(sheet, bounds):
            raise ValueError(f'Column "{column_name}" already exists in {table.displayName}.')
        index = options.get("index")
        position = bounds.column_count if index is None else int(index)
        if not 0 <= position <= bounds.column_count:
            raise ValueError(
                f"Column index {position} is outside the table (0-{bounds.column_count})."
            )
        sheet_column = bounds.anchor.column + position
        sheet.insert_cols(sheet_column + 1)
        values: list[Any] = list(options.get("values") or [])
        column = [column_name, *values][: bounds.row_count]
        for offset, value in enumerate(column):
            sheet.cell(row=bounds.anchor.row + 1 + offset, column=sheet_column + 1).value = (
                None if value == "" else value
            )
        _set_table_ref(table, bounds.resize(bounds.row_count, bounds.column_count + 1))

    def _resize_table(self, command: GridCommand) -> None:
        sheet, table = self._find_table(command.name)
        new_range = parse_range(str(command.options["new_range"]))
        if new_range.sheet is not None and new_range.sheet != sheet.title:
            raise ValueError("resize_table cannot move a table to another sheet.")
        current = _local_range(table.ref)
        if new_range.anchor.row != current.anchor.row:
            raise ValueError("The header row must stay in the same row when resizing.")
        for name, ref in _collect_table_ranges(sheet):
            if name != table.displayName and ranges_overlap(new_range, _local_range(ref)):
                raise ValueError(
                    f"resize_table range intersects existing table '{name}' ({ref})."
                )
        _set_table_ref(table, new_range)

    def _convert_table_to_range(self, command: GridCommand) -> None:
        sheet, table = self._find_table(command.name)
        del sheet.tables[table.displayName]

    def _set_table_totals(self, command: GridCommand) -> None:
        """Show or hide the totals row with SUBTOTAL formulas per column."""
        sheet, table = self._find_table(command.name)
        bounds = _local_range(table.ref)
        _sync_table_columns(sheet, table, bounds)
        shown = bool(table.totalsRowCount)
        if not command.options.get("show", True):
            if shown:
                totals_row = bounds.offset(bounds.row_count - 1, 0).resize(
                    1, bounds.column_count
                )
                for cell in self._cells(sheet, totals_row)[0]:
                    cell.value = None
                _set_table_ref(table, bounds.resize(bounds.row_count - 1, bounds.column_count))
                table.totalsRowCount = None
                table.totalsRowShown = False
                for column in table.tableColumns:
                    column.totalsRowFunction = None
            return
        if not shown:
            bounds = bounds.resize(bounds.row_count + 1, bounds.column_count)
            _set_table_ref(table, bounds)
            _sync_table_columns(sheet, table, bounds)
            table.totalsRowCount = 1
        functions: dict[Any, str] = command.options.get("functions", {})
        totals_row = bounds.anchor.row + bounds.row_count
        for raw_index, function in functions.items():
            index = int(raw_index)
            column = table.tableColumns[index]
            cell = sheet.cell(row=totals_row, column=bounds.anchor.column + index + 1)
            if function == "none":
                column.totalsRowFunction = None
                cell.value = None
                continue
            column.totalsRowFunction = _TOTALS_ROW_FUNCTIONS.get(function, function)
            cell.value = (
                f"=SUBTOTAL({_SUBTOTAL_CODES[function]},"
                f"{table.displayName}[{column.name}])"
            )

    def _next_table_name(self) -> str:
        """Generate next available table name like Table1, Table2, ..."""
        existing = self._table_names()
        for index in range(1, 10_000):
            candidate = f"Table{index}"
            if candidate.lower() not in existing:
                return candidate
        raise RuntimeError("Failed to generate unique table name.")

    def _ensure_table_name_available(self, table_name: str) -> None:
        if table_name.lower() in self._table_names():
            raise ValueError(f"Table name already exists: {table_name}")

    def _table_names(self) -> set[str]:
        return {
            name.lower()
            for sheet in self.workbook.worksheets
            for name, _ in _collect_table_ranges(sheet)
        }

    # --- named ranges ---------------------------------------------------------

    def _add_named_range(self, command: GridCommand) -> str:
        sheet, target = self._range(command)
        name = _require(command.name, "add_named_range", "name")
        if name in self.workbook.defined_names:
            raise ValueError(f"Named range already exists: {name}")
        defined = DefinedName(name, attr_text=_absolute_ref(sheet.title, target))
        comment = command.options.get("comment")
        if comment is not None:
            defined.comment = str(comment)
        self.workbook.defined_names[name] = defined
        return defined.attr_text

    def _update_named_range(self, command: GridCommand) -> None:
        defined = self._defined_name(command.name)
        new_range = command.options.get("new_range")
        if new_range is not None:
            target = parse_range(str(new_range))
            sheet_name = target.sheet or _defined_name_sheet(defined)
            sheet = self._sheet(sheet_name)
            defined.attr_text = _absolute_ref(sheet.title, target)
        if "comment" in command.options:
            defined.comment = str(command.options["comment"])

    def _delete_named_range(self, command: GridCommand) -> None:
        defined = self._defined_name(command.name)
        del self.workbook.defined_names[defined.name]

    def _list_named_ranges(self, command: GridCommand) -> list[tuple[str, str]]:
        return [
            (name, str(defined.attr_text))
            for name, defined in self.workbook.defined_names.items()
        ]

    def _defined_name(self, name: str | None) -> DefinedName:
        if name and name in self.workbook.defined_names:
            return self.workbook.defined_names[name]
        raise ValueError(f"Named range not found: {name}")

    # --- protection -----------------------------------------------------------

    def _protect_sheet(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        options = command.options
        protection = SheetProtection(
            sheet=True,
            formatCells=not options.get("allow_format_cells", False),
            insertRows=not options.get("allow_insert_rows", False),
            deleteRows=not options.get("allow_delete_rows", False),
            sort=not options.get("allow_sort", False),
            autoFilter=not options.get("allow_auto_filter", False),
        )
        password = options.get("password")
        if password:
            protection.password = str(password)
        sheet.protection = protection

    def _unprotect_sheet(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        _check_password(
            sheet.protection.password,
            command.options.get("password"),
            f"sheet {sheet.title}",
        )
        sheet.protection = SheetProtection()

    def _set_cells_locked(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        locked = bool(command.options.get("locked", True))
        for row in self._cells(sheet, target):
            for cell in row:
                if isinstance(cell, MergedCell):
                    continue
                cell.protection = Protection(locked=locked, hidden=cell.protection.hidden)

    def _protect_workbook(self, command: GridCommand) -> None:
        security = WorkbookProtection(lockStructure=True)
        password = command.options.get("password")
        if password:
            security.set_workbook_password(str(password))
        self.workbook.security = security

    def _unprotect_workbook(self, command: GridCommand) -> None:
        security = self.workbook.security
        if security is None:
            return
        _check_password(
            security.workbookPassword, command.options.get("password"), "workbook"
        )
        self.workbook.security = None

    # --- images and comments --------------------------------------------------

    def _add_image(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        image = Image(BytesIO(command.options["data"]))
        if "width" in command.options:
            image.width = float(command.options["width"])
        if "height" in command.options:
            image.height = float(command.options["height"])
        sheet.add_image(image, target.anchor.label)

    def _add_comment(self, command: GridCommand) -> None:
        cell = self._anchor_cell(command)
        author = str(command.options.get("author") or _DEFAULT_COMMENT_AUTHOR)
        cell.comment = Comment(str(command.options["text"]), author)

    def _edit_comment(self, command: GridCommand) -> None:
        cell = self._anchor_cell(command)
        if cell.comment is None:
            raise ValueError(f"No comment at {cell.coordinate}.")
        author = str(command.options.get("author") or cell.comment.author)
        cell.comment = Comment(str(command.options["text"]), author)

    def _delete_comment(self, command: GridCommand) -> None:
        cell = self._anchor_cell(command)
        if cell.comment is None:
            raise ValueError(f"No comment at {cell.coordinate}.")
        cell.comment = None

    def _anchor_cell(self, command: GridCommand) -> Cell:
        sheet, target = self._range(command)
        cell = sheet.cell(row=target.anchor.row + 1, column=target.anchor.column + 1)
        if isinstance(cell, MergedCell):
            raise ValueError(f"{target.anchor.label} is inside a merged range (read-only).")
        return cell

    # --- page layout ----------------------------------------------------------

    def _set_page_setup(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        options = command.options
        if "paper_size" in options:
            sheet.page_setup.paperSize = int(options["paper_size"])
        if "orientation" in options:
            sheet.page_setup.orientation = str(options["orientation"])
        if "scale" in options:
            sheet.page_setup.scale = int(options["scale"])
        if "fit_to_width" in options or "fit_to_height" in options:
            sheet.sheet_properties.pageSetUpPr.fitToPage = True
            if "fit_to_width" in options:
                sheet.page_setup.fitToWidth = int(options["fit_to_width"])
            if "fit_to_height" in options:
                sheet.page_setup.fitToHeight = int(options["fit_to_height"])
        if "center_horizontally" in options:
            sheet.print_options.horizontalCentered = bool(options["center_horizontally"])
        if "center_vertically" in options:
            sheet.print_options.verticalCentered = bool(options["center_vertically"])

    def _set_page_margins(self, command: GridCommand) -> None:
        margins = self._sheet(command.sheet).page_margins
        for side in ("top", "bottom", "left", "right", "header", "footer"):
            if side in command.options:
                setattr(margins, side, float(command.options[side]))

    def _set_print_area(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        sheet.print_area = target.local_address

    def _set_header_footer(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        for key, (part, section) in _HEADER_FOOTER_SECTIONS.items():
            if key in command.options:
                getattr(getattr(sheet, part), section).text = str(command.options[key])

    def _add_page_breaks(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        for row in command.options.get("rows", []):
            sheet.row_breaks.append(Break(id=int(row)))
        for column in command.options.get("columns", []):
            sheet.col_breaks.append(Break(id=int(column)))

    # --- hyperlinks -----------------------------------------------------------

    def _set_hyperlink(self, command: GridCommand) -> None:
        cell = self._anchor_cell(command)
        options = command.options
        cell.hyperlink = str(options["link"])
        if "tooltip" in options:
            cell.hyperlink.tooltip = str(options["tooltip"])
        text = options.get("text")
        if text is not None:
            cell.value = str(text)
        elif cell.value is None:
            cell.value = str(options["link"])

    def _edit_hyperlink(self, command: GridCommand) -> None:
        cell = self._anchor_cell(command)
        if cell.hyperlink is None:
            raise ValueError(f"No hyperlink at {cell.coordinate}.")
        tooltip = command.options.get("tooltip", cell.hyperlink.tooltip)
        cell.hyperlink = str(command.options["link"])
        if tooltip is not None:
            cell.hyperlink.tooltip = str(tooltip)
        if "text" in command.options:
            cell.value = str(command.options["text"])

    def _remove_hyperlink(self, command: GridCommand) -> int:
        sheet, target = self._range(command)
        removed = 0
        for row in self._cells(sheet, target):
            for cell in row:
                if isinstance(cell, Cell) and cell.hyperlink is not None:
                    cell.hyperlink = None
                    removed += 1
        return removed


def _require(value: str | None, op: str, field: str) -> str:
    if not value:
        raise ValueError(f"{op} requires {field}.")
    return value


def _read_cell(cell: Cell | MergedCell) -> tuple[Any, Any]:
    """Return ``(value, formula)``; formula cells have no cached value here."""
    value = cell.value
    if value is None:
        return "", ""
    if isinstance(value, ArrayFormula):
        return None, value.text
    if cell.data_type == "f" or (isinstance(value, str) and value.startswith("=")):
        return None, str(value)
    return value, value


def _local_range(ref: str) -> CellRange:
    return parse_range(ref).model_copy(update={"sheet": None})


def _argb(color: str) -> str:
    """``#RRGGBB``/``#AARRGGBB`` to openpyxl's aRGB form."""
    text = color.lstrip("#").upper()
    return text if len(text) == 8 else f"FF{text}"


def _cf_operand(value: object) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    text = str(value)
    if text.startswith("="):
        return text[1:]
    try:
        float(text)
    except ValueError:
        return '"' + text.replace('"', '""') + '"'
    return text


def _set_grid_border(cell: Cell) -> None:
    """Set thin black border on all sides."""
    side = Side(style="thin", color="FF000000")
    border = copy(cell.border)
    border.top = side
    border.right = side
    border.bottom = side
    border.left = side
    cell.border = border


def _absolute_ref(sheet_title: str, target: CellRange) -> str:
    return f"{quote_sheet_name(sheet_title)}!{absolute_coordinate(target.local_address)}"


def _defined_name_sheet(defined: DefinedName) -> str | None:
    try:
        return parse_range(str(defined.attr_text)).sheet
    except InvalidAddressError:
        return None


def _check_password(stored: str | None, supplied: object, subject: str) -> None:
    if not stored:
        return
    if not supplied or hash_password(str(supplied)) != stored:
        raise ValueError(f"Incorrect password for {subject}.")


def _build_chart(sheet: Worksheet, target: CellRange, chart_type: str) -> Any:
    """Build an openpyxl chart whose first column holds categories."""
    min_row = target.anchor.row + 1
    max_row = target.end.row + 1
    first_column = target.anchor.column + 1
    last_column = target.end.column + 1
    has_categories = target.column_count >= 2
    value_column = first_column + 1 if has_categories else first_column
    if chart_type == "scatter":
        chart = ScatterChart()
        x_values = Reference(
            sheet, min_col=first_column, min_row=min_row + 1, max_row=max_row
        )
        for column in range(value_column, last_column + 1):
            y_values = Reference(sheet, min_col=column, min_row=min_row, max_row=max_row)
            chart.series.append(Series(y_values, x_values, title_from_data=True))
        return chart
    chart = _chart_for_type(chart_type)
    data = Reference(
        sheet,
        min_col=value_column,
        max_col=last_column,
        min_row=min_row,
        max_row=max_row,
    )
    chart.add_data(data, titles_from_data=True)
    if has_categories:
        chart.set_categories(
            Reference(sheet, min_col=first_column, min_row=min_row + 1, max_row=max_row)
        )
    return chart


def _chart_for_type(chart_type: str) -> Any:
    if chart_type in {"column", "bar"}:
        chart = BarChart()
        chart.type = "col" if chart_type == "column" else "bar"
        return chart
    factories: dict[str, Callable[[], Any]] = {
        "line": LineChart,
        "pie": PieChart,
        "area": AreaChart,
        "doughnut": DoughnutChart,
        "radar": RadarChart,
    }
    factory = factories.get(chart_type)
    if factory is None:
        raise ValueError(f"Unsupported chart type: {chart_type}")
    return factory()


def _collect_table_ranges(sheet: Worksheet) -> list[tuple[str, str]]:
    """Collect (table_name, range_ref) pairs from worksheet tables."""
    return [(table.displayName, table.ref) for table in sheet.tables.values()]


def _ensure_range_not_intersects_existing_tables(
    sheet: Worksheet, target: CellRange
) -> None:
    """Raise ValueError if range intersects with existing table ranges."""
    for table_name, existing_ref in _collect_table_ranges(sheet):
        if ranges_overlap(target, _local_range(existing_ref)):
            raise ValueError(
                f"add_table range intersects existing table '{table_name}' ({existing_ref})."
            )


def _set_table_ref(table: Table, bounds: CellRange) -> None:
    """Point a table at new bounds; column metadata is rebuilt on save."""
    table.ref = bounds.local_address
    if table.autoFilter is not None:
        table.autoFilter.ref = bounds.local_address
    table.tableColumns = []


def _sync_table_columns(sheet: Worksheet, table: Table, bounds: CellRange) -> None:
    """Build table column metadata from the header row, keeping totals functions."""
    previous = {column.name: column.totalsRowFunction for column in table.tableColumns}
    columns: list[TableColumn] = []
    for offset in range(bounds.column_count):
        header = sheet.cell(
            row=bounds.anchor.row + 1, column=bounds.anchor.column + offset + 1
        ).value
        name = f"Column{offset + 1}" if header is None else str(header)
        columns.append(
            TableColumn(
                id=offset + 1, name=name, totalsRowFunction=previous.get(name)
            )
        )
    table.tableColumns = columns


def _merged_range_strings(sheet: Worksheet) -> list[str]:
    """Return normalized merged range strings from worksheet."""
    return [str(item) for item in sheet.merged_cells.ranges]


def _intersecting_merged_ranges(sheet: Worksheet, scope: CellRange) -> list[str]:
    """Return merged ranges that intersect the scope."""
    return [
        merged
        for merged in _merged_range_strings(sheet)
        if ranges_overlap(scope, _local_range(merged))
    ]
