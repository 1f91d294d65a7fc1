from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Final, TypeAlias, cast

from pydantic import BaseModel, ConfigDict, Field, model_validator

from xlcopilot.shared.a1 import CellRange

from . import payloads as p
from .handlers import (
    cells,
    charts,
    comments,
    data,
    formatting,
    page_layout,
    pivots,
    sheets,
    shapes,
    structure,
    tables,
    workbook,
)
from .types import ActionCategory, ActionKind, TargetMode

ActionHandler: TypeAlias = Callable[[Any, Any, Any], Awaitable[str | None]]
UndoExtent: TypeAlias = Callable[[CellRange, Any], CellRange]


class ActionSpec(BaseModel):
    """Catalog entry describing how one action kind is validated and run."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ActionKind
    label: str
    category: ActionCategory
    target_mode: TargetMode
    handler: ActionHandler
    payload_model: type[p.ActionPayload] = p.EmptyPayload
    undo_capable: bool = False
    target_required: bool = True
    payload_aliases: dict[str, str] = Field(default_factory=dict)
    kind_aliases: tuple[str, ...] = ()
    undo_extent: UndoExtent | None = None

    @model_validator(mode="after")
    def _validate_undo(self) -> ActionSpec:
        if self.undo_capable and self.target_mode != "range_address":
            raise ValueError(f"{self.kind}: only range-address kinds can be undone.")
        if self.undo_extent is not None and not self.undo_capable:
            raise ValueError(f"{self.kind}: undo_extent requires undo_capable.")
        return self


def _range(
    kind: ActionKind,
    label: str,
    category: ActionCategory,
    handler: ActionHandler,
    payload_model: type[p.ActionPayload] = p.EmptyPayload,
    **extra: Any,
) -> ActionSpec:
    return ActionSpec(
        kind=kind,
        label=label,
        category=category,
        target_mode="range_address",
        handler=handler,
        payload_model=payload_model,
        **extra,
    )


def _logical(
    kind: ActionKind,
    label: str,
    category: ActionCategory,
    handler: ActionHandler,
    payload_model: type[p.ActionPayload] = p.EmptyPayload,
    **extra: Any,
) -> ActionSpec:
    return ActionSpec(
        kind=kind,
        label=label,
        category=category,
        target_mode="logical_name",
        handler=handler,
        payload_model=payload_model,
        **extra,
    )


def _copy_extent(target: CellRange, payload: Any) -> CellRange:
    return cells.copy_extent(target, cast(p.SourcePayload, payload))


_SPEC_LIST: Final[tuple[ActionSpec, ...]] = (
    # basic
    _range("formula", "Formula", "basic", cells.apply_formula, p.FormulaPayload, undo_capable=True),
    _range(
        "values",
        "Values",
        "basic",
        cells.apply_values,
        p.ValuesPayload,
        undo_capable=True,
        kind_aliases=("setValues",),
    ),
    _range(
        "format",
        "Format",
        "basic",
        formatting.apply_format,
        p.FormatPayload,
        payload_aliases={"color": "fontColor", "size": "fontSize"},
    ),
    _range(
        "validation",
        "Dropdown",
        "basic",
        data.apply_validation,
        p.ValidationPayload,
        payload_aliases={"list": "values", "options": "values"},
        kind_aliases=("dropdown",),
    ),
    _range(
        "sort",
        "Sort",
        "basic",
        cells.apply_sort,
        p.SortPayload,
        undo_capable=True,
        payload_aliases={"columnIndex": "column"},
    ),
    _range(
        "autofill", "Autofill", "basic", cells.apply_autofill, p.SourcePayload, undo_capable=True
    ),
    # formatting
    _range(
        "conditionalFormat",
        "Conditional Format",
        "formatting",
        formatting.apply_conditional_format,
        p.ConditionalFormatPayload,
        kind_aliases=("conditionalFormatting",),
    ),
    _range(
        "clearFormat",
        "Clear Format",
        "formatting",
        formatting.clear_conditional_format,
        kind_aliases=("clearConditionalFormat",),
    ),
    # charts
    _range(
        "chart",
        "Chart",
        "charts",
        charts.create_chart,
        p.ChartPayload,
        payload_aliases={"type": "chartType"},
        kind_aliases=("createChart",),
    ),
    _range(
        "pivotChart",
        "Pivot Chart",
        "charts",
        charts.create_pivot_chart,
        p.PivotChartPayload,
        payload_aliases={"type": "chartType", "function": "aggregateFunc"},
    ),
    # data
    _range(
        "copy",
        "Copy",
        "data",
        cells.apply_copy,
        p.SourcePayload,
        undo_capable=True,
        undo_extent=_copy_extent,
    ),
    _range(
        "copyValues",
        "Copy Values",
        "data",
        cells.apply_copy_values,
        p.SourcePayload,
        undo_capable=True,
        undo_extent=_copy_extent,
    ),
    _range("filter", "Filter", "data", data.apply_filter, p.FilterPayload),
    _logical(
        "clearFilter", "Clear Filter", "data", data.clear_filter, target_required=False
    ),
    _range(
        "removeDuplicates",
        "Remove Duplicates",
        "data",
        data.remove_duplicates,
        p.RemoveDuplicatesPayload,
        undo_capable=True,
    ),
    _range(
        "findReplace",
        "Find & Replace",
        "data",
        data.find_replace,
        p.FindReplacePayload,
        undo_capable=True,
        payload_aliases={"search": "find", "replaceWith": "replace"},
        kind_aliases=("findAndReplace",),
    ),
    _range(
        "textToColumns",
        "Text to Columns",
        "data",
        data.text_to_columns,
        p.TextToColumnsPayload,
        payload_aliases={"separator": "delimiter"},
    ),
    _range(
        "mergeCells",
        "Merge Cells",
        "data",
        data.merge_cells,
        p.MergePayload,
        kind_aliases=("merge",),
    ),
    _range(
        "unmergeCells",
        "Unmerge Cells",
        "data",
        data.unmerge_cells,
        kind_aliases=("unmerge",),
    ),
    # sheets
    _logical(
        "sheet",
        "Create Sheet",
        "sheets",
        sheets.create_sheet,
        p.SheetPayload,
        kind_aliases=("createSheet", "addSheet"),
    ),
    # tables
    _range(
        "createTable",
        "Create Table",
        "tables",
        tables.create_table,
        p.CreateTablePayload,
        payload_aliases={"name": "tableName"},
    ),
    _logical("styleTable", "Style Table", "tables", tables.style_table, p.StyleTablePayload),
    _logical(
        "addTableRow", "Add Table Row", "tables", tables.add_table_row, p.AddTableRowPayload
    ),
    _logical(
        "addTableColumn",
        "Add Table Column",
        "tables",
        tables.add_table_column,
        p.AddTableColumnPayload,
        payload_aliases={"name": "columnName"},
    ),
    _logical(
        "resizeTable",
        "Resize Table",
        "tables",
        tables.resize_table,
        p.ResizeTablePayload,
        payload_aliases={"range": "newRange"},
    ),
    _logical(
        "convertToRange",
        "Convert to Range",
        "tables",
        tables.convert_to_range,
        p.TableNamePayload,
    ),
    _logical(
        "toggleTableTotals",
        "Toggle Totals",
        "tables",
        tables.toggle_table_totals,
        p.ToggleTotalsPayload,
    ),
    # structure
    _logical(
        "insertRows",
        "Insert Rows",
        "structure",
        structure.insert_rows,
        p.InsertPayload,
        kind_aliases=("insertRow",),
    ),
    _logical(
        "insertColumns",
        "Insert Columns",
        "structure",
        structure.insert_columns,
        p.InsertPayload,
        kind_aliases=("insertColumn",),
    ),
    _logical(
        "deleteRows",
        "Delete Rows",
        "structure",
        structure.delete_rows,
        kind_aliases=("deleteRow",),
    ),
    _logical(
        "deleteColumns",
        "Delete Columns",
        "structure",
        structure.delete_columns,
        kind_aliases=("deleteColumn",),
    ),
    # pivots
    _logical(
        "createPivotTable",
        "Create PivotTable",
        "pivots",
        pivots.create_pivot_table,
        p.CreatePivotTablePayload,
        payload_aliases={"pivotName": "name"},
    ),
    _logical(
        "addPivotField",
        "Add Pivot Field",
        "pivots",
        pivots.add_pivot_field,
        p.AddPivotFieldPayload,
        payload_aliases={"fieldName": "field", "summarizeBy": "function"},
    ),
    _logical(
        "configurePivotLayout",
        "Configure Pivot",
        "pivots",
        pivots.configure_pivot_layout,
        p.PivotLayoutPayload,
        payload_aliases={"layoutType": "layout"},
    ),
    _logical(
        "refreshPivotTable",
        "Refresh PivotTable",
        "pivots",
        pivots.refresh_pivot_table,
        p.RefreshPivotPayload,
        target_required=False,
    ),
    _logical(
        "deletePivotTable",
        "Delete PivotTable",
        "pivots",
        pivots.delete_pivot_table,
        p.PivotNamePayload,
    ),
    # slicers
    _logical(
        "createSlicer",
        "Create Slicer",
        "slicers",
        pivots.create_slicer,
        p.CreateSlicerPayload,
        payload_aliases={"name": "slicerName", "fieldName": "field"},
    ),
    _logical(
        "configureSlicer",
        "Configure Slicer",
        "slicers",
        pivots.configure_slicer,
        p.ConfigureSlicerPayload,
    ),
    _logical(
        "connectSlicerToTable",
        "Connect Slicer to Table",
        "slicers",
        pivots.connect_slicer_to_table,
        p.ConnectSlicerToTablePayload,
    ),
    _logical(
        "connectSlicerToPivot",
        "Connect Slicer to Pivot",
        "slicers",
        pivots.connect_slicer_to_pivot,
        p.ConnectSlicerToPivotPayload,
    ),
    _logical(
        "deleteSlicer",
        "Delete Slicer",
        "slicers",
        pivots.delete_slicer,
        p.SlicerNamePayload,
    ),
    # named ranges
    _range(
        "createNamedRange",
        "Create Named Range",
        "names",
        workbook.create_named_range,
        p.CreateNamedRangePayload,
        payload_aliases={"rangeName": "name"},
    ),
    _logical(
        "deleteNamedRange", "Delete Named Range", "names", workbook.delete_named_range
    ),
    _logical(
        "updateNamedRange",
        "Update Named Range",
        "names",
        workbook.update_named_range,
        p.UpdateNamedRangePayload,
        payload_aliases={"range": "newRange", "refersTo": "newRange"},
    ),
    _logical(
        "listNamedRanges",
        "List Named Ranges",
        "names",
        workbook.list_named_ranges,
        target_required=False,
    ),
    # protection
    _logical(
        "protectWorksheet",
        "Protect Sheet",
        "protection",
        workbook.protect_worksheet,
        p.ProtectWorksheetPayload,
        kind_aliases=("protectSheet",),
    ),
    _logical(
        "unprotectWorksheet",
        "Unprotect Sheet",
        "protection",
        workbook.unprotect_worksheet,
        p.PasswordPayload,
        kind_aliases=("unprotectSheet",),
    ),
    _range("protectRange", "Protect Range", "protection", workbook.protect_range),
    _range("unprotectRange", "Unprotect Range", "protection", workbook.unprotect_range),
    _logical(
        "protectWorkbook",
        "Protect Workbook",
        "protection",
        workbook.protect_workbook,
        p.PasswordPayload,
        target_required=False,
    ),
    _logical(
        "unprotectWorkbook",
        "Unprotect Workbook",
        "protection",
        workbook.unprotect_workbook,
        p.PasswordPayload,
        target_required=False,
    ),
    # shapes
    _range(
        "insertShape",
        "Insert Shape",
        "shapes",
        shapes.insert_shape,
        p.InsertShapePayload,
        payload_aliases={"type": "shapeType"},
    ),
    _range(
        "insertImage",
        "Insert Image",
        "shapes",
        shapes.insert_image,
        p.InsertImagePayload,
        payload_aliases={"base64": "image", "imageBase64": "image"},
    ),
    _range(
        "insertTextBox",
        "Insert Text Box",
        "shapes",
        shapes.insert_text_box,
        p.InsertTextBoxPayload,
    ),
    _logical(
        "formatShape",
        "Format Shape",
        "shapes",
        shapes.format_shape,
        p.FormatShapePayload,
        payload_aliases={"fillColor": "fill"},
    ),
    _logical("deleteShape", "Delete Shape", "shapes", shapes.delete_shape),
    _logical(
        "groupShapes",
        "Group Shapes",
        "shapes",
        shapes.group_shapes,
        p.GroupShapesPayload,
        payload_aliases={"shapeNames": "shapes"},
    ),
    _logical(
        "arrangeShapes",
        "Arrange Shapes",
        "shapes",
        shapes.arrange_shapes,
        p.ArrangeShapePayload,
        payload_aliases={"action": "order"},
    ),
    _logical("ungroupShapes", "Ungroup Shapes", "shapes", shapes.ungroup_shapes),
    # comments
    _range("addComment", "Add Comment", "comments", comments.add_comment, p.CommentPayload),
    _range("addNote", "Add Note", "comments", comments.add_note, p.CommentPayload),
    _range(
        "editComment", "Edit Comment", "comments", comments.edit_comment, p.CommentPayload
    ),
    _range("editNote", "Edit Note", "comments", comments.edit_note, p.CommentPayload),
    _range("deleteComment", "Delete Comment", "comments", comments.delete_comment),
    _range("deleteNote", "Delete Note", "comments", comments.delete_note),
    _range(
        "replyToComment",
        "Reply to Comment",
        "comments",
        comments.reply_to_comment,
        p.CommentPayload,
    ),
    _range(
        "resolveComment",
        "Resolve Comment",
        "comments",
        comments.resolve_comment,
        p.ResolveCommentPayload,
    ),
    # sparklines
    _range(
        "createSparkline",
        "Create Sparkline",
        "sparklines",
        comments.create_sparkline,
        p.CreateSparklinePayload,
        payload_aliases={"source": "sourceData", "dataRange": "sourceData"},
    ),
    _range(
        "configureSparkline",
        "Configure Sparkline",
        "sparklines",
        comments.configure_sparkline,
        p.ConfigureSparklinePayload,
    ),
    _range(
        "deleteSparkline", "Delete Sparkline", "sparklines", comments.delete_sparkline
    ),
    # worksheet
    _logical(
        "renameSheet",
        "Rename Sheet",
        "worksheet",
        sheets.rename_sheet,
        p.RenameSheetPayload,
        payload_aliases={"name": "newName"},
    ),
    _logical(
        "moveSheet",
        "Move Sheet",
        "worksheet",
        sheets.move_sheet,
        p.MoveSheetPayload,
        payload_aliases={"index": "position"},
    ),
    _logical("hideSheet", "Hide Sheet", "worksheet", sheets.hide_sheet, p.HideSheetPayload),
    _logical("unhideSheet", "Unhide Sheet", "worksheet", sheets.unhide_sheet),
    _range(
        "freezePanes",
        "Freeze Panes",
        "worksheet",
        sheets.freeze_panes,
        kind_aliases=("freezePane",),
    ),
    _logical(
        "unfreezePane",
        "Unfreeze Panes",
        "worksheet",
        sheets.unfreeze_pane,
        target_required=False,
        kind_aliases=("unfreezePanes",),
    ),
    _logical(
        "setZoom",
        "Set Zoom",
        "worksheet",
        sheets.set_zoom,
        p.ZoomPayload,
        payload_aliases={"zoom": "scale", "level": "scale"},
    ),
    _range(
        "splitPane",
        "Split Panes",
        "worksheet",
        sheets.split_pane,
        kind_aliases=("splitPanes",),
    ),
    _logical(
        "createView", "Create View", "worksheet", sheets.create_view, p.CreateViewPayload
    ),
    # page layout
    _logical(
        "setPageSetup",
        "Page Setup",
        "page_layout",
        page_layout.set_page_setup,
        p.PageSetupPayload,
    ),
    _logical(
        "setPageMargins",
        "Set Margins",
        "page_layout",
        page_layout.set_page_margins,
        p.PageMarginsPayload,
    ),
    _logical(
        "setPageOrientation",
        "Set Orientation",
        "page_layout",
        page_layout.set_page_orientation,
        p.PageOrientationPayload,
    ),
    _range(
        "setPrintArea", "Set Print Area", "page_layout", page_layout.set_print_area
    ),
    _logical(
        "setHeaderFooter",
        "Set Header/Footer",
        "page_layout",
        page_layout.set_header_footer,
        p.HeaderFooterPayload,
    ),
    _logical(
        "setPageBreaks",
        "Set Page Breaks",
        "page_layout",
        page_layout.set_page_breaks,
        p.PageBreaksPayload,
    ),
    # data types
    _range(
        "insertDataType",
        "Insert Entity",
        "data_types",
        comments.insert_data_type,
        p.InsertDataTypePayload,
        payload_aliases={"type": "dataType"},
        kind_aliases=("insertEntity",),
    ),
    _range(
        "refreshDataType",
        "Refresh Entity",
        "data_types",
        comments.refresh_data_type,
        kind_aliases=("refreshEntity",),
    ),
    # hyperlinks
    _range(
        "addHyperlink",
        "Add Hyperlink",
        "hyperlinks",
        comments.add_hyperlink,
        p.HyperlinkPayload,
        payload_aliases={"url": "address", "displayText": "text"},
    ),
    _range(
        "removeHyperlink", "Remove Hyperlink", "hyperlinks", comments.remove_hyperlink
    ),
    _range(
        "editHyperlink",
        "Edit Hyperlink",
        "hyperlinks",
        comments.edit_hyperlink,
        p.HyperlinkPayload,
        payload_aliases={"url": "address", "displayText": "text"},
    ),
)

ACTION_SPECS: Final[dict[ActionKind, ActionSpec]] = {
    spec.kind: spec for spec in _SPEC_LIST
}
_KIND_ALIASES: Final[dict[str, ActionKind]] = {
    alias: spec.kind for spec in _SPEC_LIST for alias in spec.kind_aliases
}


def resolve_kind(
    kind: str, specs: dict[ActionKind, ActionSpec] | None = None
) -> ActionKind | None:
    """Return the canonical kind for a name or alias, or None when unknown."""
    catalog = ACTION_SPECS if specs is None else specs
    if kind in catalog:
        return cast(ActionKind, kind)
    if specs is None:
        return _KIND_ALIASES.get(kind)
    for spec in catalog.values():
        if kind in spec.kind_aliases:
            return spec.kind
    return None


def get_action_spec(
    kind: str, specs: dict[ActionKind, ActionSpec] | None = None
) -> ActionSpec | None:
    """Look up a spec by canonical kind or alias."""
    catalog = ACTION_SPECS if specs is None else specs
    canonical = resolve_kind(kind, catalog)
    return None if canonical is None else catalog[canonical]


def get_label(kind: str) -> str:
    """Human-readable label for a kind; unknown kinds label themselves."""
    spec = get_action_spec(kind)
    return kind if spec is None else spec.label


__all__ = [
    "ACTION_SPECS",
    "ActionHandler",
    "ActionSpec",
    "UndoExtent",
    "get_action_spec",
    "get_label",
    "resolve_kind",
]
