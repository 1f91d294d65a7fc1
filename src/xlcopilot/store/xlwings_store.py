"""Grid store that drives a live Excel workbook through xlwings (COM)."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
import logging
from pathlib import Path
from typing import Any, Final

import xlwings as xw

from xlcopilot.actions.models import Grid, RangeSnapshot
from xlcopilot.shared.a1 import CellRange, column_index_to_label, parse_range

from .base import GridCommand, GridOp

logger = logging.getLogger(__name__)

# Excel COM ChartType ids.
CHART_TYPE_TO_COM_ID: Final[dict[str, int]] = {
    "line": 4,
    "column": 51,
    "bar": 57,
    "area": 1,
    "pie": 5,
    "doughnut": -4120,
    "scatter": -4169,
    "radar": -4151,
}
_SHAPE_TYPE_TO_COM_ID: Final[dict[str, int]] = {
    "rectangle": 1,
    "oval": 9,
    "ellipse": 9,
    "triangle": 7,
    "diamond": 4,
    "roundedrectangle": 5,
    "rightarrow": 33,
    "leftarrow": 34,
}
_VISIBILITY_TO_COM: Final[dict[str, int]] = {
    "visible": -1,
    "hidden": 0,
    "veryHidden": 2,
}
_ALIGN_TO_COM: Final[dict[str, int]] = {
    "left": -4131,
    "center": -4108,
    "right": -4152,
}
_PIVOT_AREA_TO_COM: Final[dict[str, int]] = {
    "row": 1,
    "column": 2,
    "filter": 3,
    "data": 4,
}
_PIVOT_FUNCTION_TO_COM: Final[dict[str, int]] = {
    "sum": -4157,
    "count": -4112,
    "average": -4106,
    "max": -4136,
    "min": -4139,
    "countNumbers": -4113,
    "standardDeviation": -4155,
    "variance": -4164,
}
_PIVOT_LAYOUT_TO_COM: Final[dict[str, int]] = {
    "compact": 0,
    "tabular": 1,
    "outline": 2,
}
_Z_ORDER_TO_COM: Final[dict[str, int]] = {
    "bringToFront": 0,
    "sendToBack": 1,
    "bringForward": 2,
    "sendBackward": 3,
}
# xlEdgeLeft..xlEdgeRight, xlInsideVertical, xlInsideHorizontal
_BORDER_EDGES: Final[tuple[int, ...]] = (7, 8, 9, 10, 11, 12)
_DEFAULT_CHART_WIDTH: Final = 360.0
_DEFAULT_CHART_HEIGHT: Final = 220.0


def _close_workbook_safely(workbook: xw.Book) -> None:
    """Close workbook and ignore cleanup failures."""
    try:
        workbook.close()
    except Exception:
        return


def _quit_app_safely(app: xw.App) -> None:
    """Quit xlwings app and fallback to force-kill on failure."""
    try:
        app.quit()
    except Exception:
        try:
            app.kill()
        except Exception:
            return


@contextmanager
def open_xlwings_store(
    file_path: Path, *, active_sheet: str | None = None
) -> Iterator[XlwingsGridStore]:
    """Open a workbook in a dedicated hidden Excel instance.

    The workbook is closed without saving on exit; call ``store.save`` first.
    """
    app = xw.App(add_book=False, visible=False)
    app.display_alerts = False
    app.screen_updating = False
    workbook = app.books.open(str(file_path))
    logger.info("Opened %s in a hidden Excel instance", file_path)
    try:
        yield XlwingsGridStore(workbook, active_sheet=active_sheet)
    finally:
        _close_workbook_safely(workbook)
        _quit_app_safely(app)


class XlwingsGridStore:
    """``GridStore`` implementation over an open xlwings ``Book``.

    Covers cells, sheets, structure, merges, formats, charts, tables,
    pivots, named ranges, shapes, print area and hyperlinks. Other
    primitives raise ``ValueError``.
    """

    def __init__(self, workbook: xw.Book, *, active_sheet: str | None = None) -> None:
        self.workbook = workbook
        self.active_sheet = active_sheet
        self._ops: dict[GridOp, Callable[[GridCommand], object]] = {
            "add_sheet": self._add_sheet,
            "rename_sheet": self._rename_sheet,
            "move_sheet": self._move_sheet,
            "set_sheet_visibility": self._set_sheet_visibility,
            "freeze_panes": self._freeze_panes,
            "unfreeze_panes": self._unfreeze_panes,
            "split_panes": self._split_panes,
            "set_zoom": self._set_zoom,
            "insert_rows": self._insert_rows,
            "insert_columns": self._insert_columns,
            "delete_rows": self._delete_rows,
            "delete_columns": self._delete_columns,
            "merge_cells": self._merge_cells,
            "unmerge_cells": self._unmerge_cells,
            "set_format": self._set_format,
            "add_chart": self._add_chart,
            "add_table": self._add_table,
            "describe_table": self._describe_table,
            "convert_table_to_range": self._convert_table_to_range,
            "add_pivot_table": self._add_pivot_table,
            "add_pivot_field": self._add_pivot_field,
            "set_pivot_layout": self._set_pivot_layout,
            "refresh_pivot_tables": self._refresh_pivot_tables,
            "delete_pivot_table": self._delete_pivot_table,
            "add_named_range": self._add_named_range,
            "delete_named_range": self._delete_named_range,
            "list_named_ranges": self._list_named_ranges,
            "add_shape": self._add_shape,
            "add_text_box": self._add_text_box,
            "format_shape": self._format_shape,
            "delete_shape": self._delete_shape,
            "arrange_shape": self._arrange_shape,
            "set_print_area": self._set_print_area,
            "set_hyperlink": self._set_hyperlink,
            "remove_hyperlink": self._remove_hyperlink,
        }

    def save(self, path: Path | str | None = None) -> None:
        if path is None:
            self.workbook.save()
        else:
            self.workbook.save(str(path))

    # --- GridStore ------------------------------------------------------------

    async def read_range(self, address: str) -> RangeSnapshot:
        target = parse_range(address)
        sheet = self._sheet(target.sheet)
        rng = sheet.range(target.local_address)
        values = rng.options(ndim=2).value
        formulas = _as_grid(rng.formula, target)
        return RangeSnapshot(
            address=target.model_copy(update={"sheet": sheet.name}).address,
            values=[["" if v is None else v for v in row] for row in values],
            formulas=formulas,
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
        rng = self._sheet(target.sheet).range(target.local_address)
        if formulas is not None:
            rng.formula = [list(row) for row in grid]
        else:
            rng.value = [[None if v == "" else v for v in row] for row in grid]

    async def submit(self, command: GridCommand) -> object:
        handler = self._ops.get(command.op)
        if handler is None:
            raise ValueError(f"{command.op} is not supported by the xlwings grid store.")
        return handler(command)

    # --- lookup helpers -------------------------------------------------------

    def _sheet(self, name: str | None) -> xw.Sheet:
        resolved = name or self.active_sheet
        if resolved is None:
            return self.workbook.sheets.active
        names = [sheet.name for sheet in self.workbook.sheets]
        if resolved not in names:
            raise ValueError(f"Sheet not found: {resolved}")
        return self.workbook.sheets[resolved]

    def _range(self, command: GridCommand) -> tuple[xw.Sheet, CellRange]:
        if command.address is None:
            raise ValueError(f"{command.op} requires an address.")
        target = parse_range(command.address)
        return self._sheet(command.sheet or target.sheet), target

    def _window(self, sheet: xw.Sheet) -> Any:
        sheet.activate()
        return self.workbook.app.api.ActiveWindow

    def _find_table(self, name: str | None) -> tuple[xw.Sheet, Any]:
        for sheet in self.workbook.sheets:
            for table in sheet.tables:
                if name and table.name.lower() == name.lower():
                    return sheet, table
        raise ValueError(f"Table not found: {name}")

    def _find_pivot(self, name: str | None) -> Any:
        for sheet in self.workbook.sheets:
            pivots = sheet.api.PivotTables()
            for index in range(1, int(pivots.Count) + 1):
                pivot = pivots.Item(index)
                if name and str(pivot.Name).lower() == name.lower():
                    return pivot
        raise ValueError(f"PivotTable not found: {name}")

    def _find_shape(self, name: str | None) -> tuple[xw.Sheet, xw.Shape]:
        for sheet in self.workbook.sheets:
            for shape in sheet.shapes:
                if name and shape.name == name:
                    return sheet, shape
        raise ValueError(f"Shape not found: {name}")

    # --- sheets and views -----------------------------------------------------

    def _add_sheet(self, command: GridCommand) -> str:
        name = command.name
        if not name:
            raise ValueError("add_sheet requires name.")
        if name in [sheet.name for sheet in self.workbook.sheets]:
            raise ValueError(f"Sheet already exists: {name}")
        self.workbook.sheets.add(name=name, after=self.workbook.sheets[-1])
        return name

    def _rename_sheet(self, command: GridCommand) -> str:
        sheet = self._sheet(command.sheet)
        if not command.name:
            raise ValueError("rename_sheet requires name.")
        if self.active_sheet == sheet.name:
            self.active_sheet = command.name
        sheet.name = command.name
        return command.name

    def _move_sheet(self, command: GridCommand) -> None:
        sheet = self._sheet(command.sheet)
        position = int(command.options["position"])
        count = len(self.workbook.sheets)
        if not 0 <= position < count:
            raise ValueError(f"position must be between 0 and {count - 1}.")
        if position == count - 1:
            sheet.api.Move(After=self.workbook.sheets[-1].api)
        else:
            sheet.api.Move(Before=self.workbook.sheets[position].api)

    def _set_sheet_visibility(self, command: GridCommand) -> None:
        state = str(command.options.get("state", "visible"))
        self._sheet(command.sheet).api.Visible = _VISIBILITY_TO_COM[state]

    def _freeze_panes(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        window = self._window(sheet)
        window.FreezePanes = False
        window.SplitRow = target.anchor.row
        window.SplitColumn = target.anchor.column
        window.FreezePanes = True

    def _unfreeze_panes(self, command: GridCommand) -> None:
        window = self._window(self._sheet(command.sheet))
        window.FreezePanes = False
        window.SplitRow = 0
        window.SplitColumn = 0

    def _split_panes(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        window = self._window(sheet)
        window.FreezePanes = False
        window.SplitRow = target.anchor.row
        window.SplitColumn = target.anchor.column

    def _set_zoom(self, command: GridCommand) -> None:
        window = self._window(self._sheet(command.sheet))
        window.Zoom = int(command.options["scale"])

    # --- rows and columns -----------------------------------------------------

    def _row_span(self, command: GridCommand) -> Any:
        start = int(command.options["index"]) + 1
        end = start + int(command.options["amount"]) - 1
        return self._sheet(command.sheet).api.Rows(f"{start}:{end}")

    def _column_span(self, command: GridCommand) -> Any:
        start = int(command.options["index"])
        end = start + int(command.options["amount"]) - 1
        return self._sheet(command.sheet).api.Columns(
            f"{column_index_to_label(start)}:{column_index_to_label(end)}"
        )

    def _insert_rows(self, command: GridCommand) -> None:
        self._row_span(command).Insert()

    def _insert_columns(self, command: GridCommand) -> None:
        self._column_span(command).Insert()

    def _delete_rows(self, command: GridCommand) -> None:
        self._row_span(command).Delete()

    def _delete_columns(self, command: GridCommand) -> None:
        self._column_span(command).Delete()

    # --- cells and formats ----------------------------------------------------

    def _merge_cells(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        rng = sheet.range(target.local_address)
        if rng.merge_cells is not False:
            raise ValueError(
                f"merge_cells range overlaps existing merged ranges: {target.local_address}."
            )
        rng.merge()

    def _unmerge_cells(self, command: GridCommand) -> int:
        sheet, target = self._range(command)
        rng = sheet.range(target.local_address)
        if rng.merge_cells is False:
            return 0
        rng.unmerge()
        return 1

    def _set_format(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        rng = sheet.range(target.local_address)
        options = command.options
        if "bold" in options:
            rng.font.bold = bool(options["bold"])
        if "italic" in options:
            rng.font.italic = bool(options["italic"])
        if "font_size" in options:
            rng.font.size = float(options["font_size"])
        if "font_color" in options:
            rng.font.color = str(options["font_color"])
        if "fill" in options:
            rng.color = str(options["fill"])
        if "number_format" in options:
            rng.number_format = str(options["number_format"])
        if options.get("border"):
            for edge in _BORDER_EDGES:
                rng.api.Borders(edge).LineStyle = 1
        if "align" in options:
            rng.api.HorizontalAlignment = _ALIGN_TO_COM[str(options["align"])]

    # --- charts and tables ----------------------------------------------------

    def _add_chart(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        options = command.options
        chart_type = str(options.get("chart_type", "column"))
        chart_type_id = CHART_TYPE_TO_COM_ID.get(chart_type)
        if chart_type_id is None:
            raise ValueError(f"Unsupported chart type: {chart_type}")
        anchor = sheet.range(str(options.get("anchor", "H2")))
        chart_object = sheet.api.ChartObjects().Add(
            anchor.left, anchor.top, _DEFAULT_CHART_WIDTH, _DEFAULT_CHART_HEIGHT
        )
        chart = chart_object.Chart
        chart.ChartType = chart_type_id
        chart.SetSourceData(sheet.range(target.local_address).api)
        chart.HasTitle = True
        chart.ChartTitle.Text = str(options.get("title", "Chart"))
        chart.HasLegend = True
        # xlLegendPositionRight / xlLegendPositionBottom
        chart.Legend.Position = -4152 if options.get("legend_position") == "right" else -4107

    def _add_table(self, command: GridCommand) -> str:
        sheet, target = self._range(command)
        options = command.options
        table = sheet.tables.add(
            source=sheet.range(target.local_address),
            name=options.get("table_name"),
            table_style_name=str(options.get("style", "TableStyleMedium2")),
            has_headers=bool(options.get("has_headers", True)),
        )
        return str(table.name)

    def _describe_table(self, command: GridCommand) -> dict[str, object]:
        sheet, table = self._find_table(command.name)
        header = table.header_row_range.value
        return {
            "name": table.name,
            "sheet": sheet.name,
            "ref": table.range.address.replace("$", ""),
            "columns": [str(v) for v in (header if isinstance(header, list) else [header])],
        }

    def _convert_table_to_range(self, command: GridCommand) -> None:
        _, table = self._find_table(command.name)
        table.api.Unlist()

    # --- pivots ---------------------------------------------------------------

    def _add_pivot_table(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        options = command.options
        destination_sheet = self._sheet(options.get("destination_sheet") or sheet.name)
        destination = destination_sheet.range(str(options["destination"]))
        # xlDatabase
        cache = self.workbook.api.PivotCaches().Create(
            SourceType=1, SourceData=sheet.range(target.local_address).api
        )
        pivot = cache.CreatePivotTable(
            TableDestination=destination.api, TableName=command.name
        )
        layout = options.get("layout")
        if layout is not None:
            pivot.RowAxisLayout(_PIVOT_LAYOUT_TO_COM[str(layout)])

    def _add_pivot_field(self, command: GridCommand) -> None:
        pivot = self._find_pivot(command.name)
        options = command.options
        field = pivot.PivotFields(str(options["field"]))
        area = str(options.get("area", "row"))
        field.Orientation = _PIVOT_AREA_TO_COM[area]
        if area == "data" and "function" in options:
            data_field = pivot.DataFields(pivot.DataFields().Count)
            data_field.Function = _PIVOT_FUNCTION_TO_COM[str(options["function"])]

    def _set_pivot_layout(self, command: GridCommand) -> None:
        pivot = self._find_pivot(command.name)
        options = command.options
        if "layout" in options:
            pivot.RowAxisLayout(_PIVOT_LAYOUT_TO_COM[str(options["layout"])])
        if "show_row_headers" in options:
            pivot.ShowTableStyleRowHeaders = bool(options["show_row_headers"])
        if "show_column_headers" in options:
            pivot.ShowTableStyleColumnHeaders = bool(options["show_column_headers"])

    def _refresh_pivot_tables(self, command: GridCommand) -> None:
        if command.name:
            self._find_pivot(command.name).RefreshTable()
            return
        self.workbook.api.RefreshAll()

    def _delete_pivot_table(self, command: GridCommand) -> None:
        self._find_pivot(command.name).TableRange2.Clear()

    # --- named ranges ---------------------------------------------------------

    def _add_named_range(self, command: GridCommand) -> str:
        sheet, target = self._range(command)
        if not command.name:
            raise ValueError("add_named_range requires name.")
        rng = sheet.range(target.local_address)
        self.workbook.names.add(command.name, f"={rng.get_address(include_sheetname=True)}")
        comment = command.options.get("comment")
        if comment is not None:
            self.workbook.names[command.name].api.Comment = str(comment)
        return rng.get_address(include_sheetname=True)

    def _delete_named_range(self, command: GridCommand) -> None:
        names = {name.name: name for name in self.workbook.names}
        if command.name not in names:
            raise ValueError(f"Named range not found: {command.name}")
        names[command.name].delete()

    def _list_named_ranges(self, command: GridCommand) -> list[tuple[str, str]]:
        return [(name.name, str(name.refers_to).lstrip("=")) for name in self.workbook.names]

    # --- shapes ---------------------------------------------------------------

    def _add_shape(self, command: GridCommand) -> str:
        sheet, target = self._range(command)
        options = command.options
        shape_key = str(options.get("shape_type", "rectangle")).replace("_", "").lower()
        shape_id = _SHAPE_TYPE_TO_COM_ID.get(shape_key)
        if shape_id is None:
            raise ValueError(f"Unsupported shape type: {options.get('shape_type')}")
        anchor = sheet.range(target.anchor.label)
        shape = sheet.api.Shapes.AddShape(
            shape_id,
            anchor.left,
            anchor.top,
            float(options.get("width", 100)),
            float(options.get("height", 60)),
        )
        if command.name:
            shape.Name = command.name
        if "fill" in options:
            shape.Fill.ForeColor.RGB = _com_rgb(str(options["fill"]))
        if "text" in options:
            shape.TextFrame2.TextRange.Text = str(options["text"])
        return str(shape.Name)

    def _add_text_box(self, command: GridCommand) -> str:
        sheet, target = self._range(command)
        options = command.options
        anchor = sheet.range(target.anchor.label)
        # msoTextOrientationHorizontal
        shape = sheet.api.Shapes.AddTextbox(
            1,
            anchor.left,
            anchor.top,
            float(options.get("width", 100)),
            float(options.get("height", 60)),
        )
        shape.TextFrame2.TextRange.Text = str(options["text"])
        if command.name:
            shape.Name = command.name
        return str(shape.Name)

    def _format_shape(self, command: GridCommand) -> None:
        _, shape = self._find_shape(command.name)
        options = command.options
        for key in ("left", "top", "width", "height"):
            if key in options:
                setattr(shape, key, float(options[key]))
        if "fill" in options:
            shape.api.Fill.ForeColor.RGB = _com_rgb(str(options["fill"]))
        if "line_color" in options:
            shape.api.Line.ForeColor.RGB = _com_rgb(str(options["line_color"]))
        if "text" in options:
            shape.api.TextFrame2.TextRange.Text = str(options["text"])

    def _delete_shape(self, command: GridCommand) -> None:
        _, shape = self._find_shape(command.name)
        shape.delete()

    def _arrange_shape(self, command: GridCommand) -> None:
        _, shape = self._find_shape(command.name)
        shape.api.ZOrder(_Z_ORDER_TO_COM[str(command.options["order"])])

    # --- print area and hyperlinks --------------------------------------------

    def _set_print_area(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        sheet.page_setup.print_area = target.local_address

    def _set_hyperlink(self, command: GridCommand) -> None:
        sheet, target = self._range(command)
        options = command.options
        cell = sheet.range(target.anchor.label)
        cell.add_hyperlink(
            str(options["link"]),
            text_to_display=options.get("text"),
            screen_tip=options.get("tooltip"),
        )

    def _remove_hyperlink(self, command: GridCommand) -> int:
        sheet, target = self._range(command)
        links = sheet.range(target.local_address).api.Hyperlinks
        count = int(links.Count)
        if count:
            links.Delete()
        return count


def _as_grid(raw: Any, target: CellRange) -> Grid:
    """Normalize xlwings' scalar/tuple range results to a 2-D list."""
    if target.is_single_cell:
        return [[raw]]
    return [list(row) for row in raw]


def _com_rgb(color: str) -> int:
    """``#RRGGBB`` to the BGR integer COM expects."""
    text = color.lstrip("#")[-6:]
    red, green, blue = (int(text[i : i + 2], 16) for i in (0, 2, 4))
    return red + (green << 8) + (blue << 16)
