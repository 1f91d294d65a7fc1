from __future__ import annotations

from typing import Literal

ActionKind = Literal[
    # basic
    "formula",
    "values",
    "format",
    "validation",
    "sort",
    "autofill",
    # formatting
    "conditionalFormat",
    "clearFormat",
    # charts
    "chart",
    "pivotChart",
    # data
    "copy",
    "copyValues",
    "filter",
    "clearFilter",
    "removeDuplicates",
    "findReplace",
    "textToColumns",
    "mergeCells",
    "unmergeCells",
    # sheets
    "sheet",
    # tables
    "createTable",
    "styleTable",
    "addTableRow",
    "addTableColumn",
    "resizeTable",
    "convertToRange",
    "toggleTableTotals",
    # structure
    "insertRows",
    "insertColumns",
    "deleteRows",
    "deleteColumns",
    # pivots
    "createPivotTable",
    "addPivotField",
    "configurePivotLayout",
    "refreshPivotTable",
    "deletePivotTable",
    # slicers
    "createSlicer",
    "configureSlicer",
    "connectSlicerToTable",
    "connectSlicerToPivot",
    "deleteSlicer",
    # named ranges
    "createNamedRange",
    "deleteNamedRange",
    "updateNamedRange",
    "listNamedRanges",
    # protection
    "protectWorksheet",
    "unprotectWorksheet",
    "protectRange",
    "unprotectRange",
    "protectWorkbook",
    "unprotectWorkbook",
    # shapes
    "insertShape",
    "insertImage",
    "insertTextBox",
    "formatShape",
    "deleteShape",
    "groupShapes",
    "arrangeShapes",
    "ungroupShapes",
    # comments
    "addComment",
    "addNote",
    "editComment",
    "editNote",
    "deleteComment",
    "deleteNote",
    "replyToComment",
    "resolveComment",
    # sparklines
    "createSparkline",
    "configureSparkline",
    "deleteSparkline",
    # worksheet
    "renameSheet",
    "moveSheet",
    "hideSheet",
    "unhideSheet",
    "freezePanes",
    "unfreezePane",
    "setZoom",
    "splitPane",
    "createView",
    # page layout
    "setPageSetup",
    "setPageMargins",
    "setPageOrientation",
    "setPrintArea",
    "setHeaderFooter",
    "setPageBreaks",
    # data types
    "insertDataType",
    "refreshDataType",
    # hyperlinks
    "addHyperlink",
    "removeHyperlink",
    "editHyperlink",
]
ActionCategory = Literal[
    "basic",
    "formatting",
    "charts",
    "data",
    "sheets",
    "tables",
    "structure",
    "pivots",
    "slicers",
    "names",
    "protection",
    "shapes",
    "comments",
    "sparklines",
    "worksheet",
    "page_layout",
    "data_types",
    "hyperlinks",
]
TargetMode = Literal["range_address", "logical_name"]
ActionStatus = Literal["applied", "failed"]
UndoStatus = Literal["undone", "empty", "failed"]
ActionErrorCode = Literal[
    "invalid_target",
    "unsupported_action",
    "invalid_payload",
    "host_api_failure",
    "undo_capture_failure",
]

ChartType = Literal[
    "column", "bar", "line", "pie", "area", "scatter", "doughnut", "radar"
]
AggregateFunction = Literal["sum", "count", "avg", "max", "min"]
HorizontalAlignType = Literal[
    "general",
    "left",
    "center",
    "right",
    "fill",
    "justify",
    "centerContinuous",
    "distributed",
]
PivotArea = Literal["row", "column", "data", "filter"]
PivotLayout = Literal["compact", "outline", "tabular"]
SlicerSourceType = Literal["table", "pivot"]
SparklineType = Literal["line", "column", "winLoss"]
ShapeOrder = Literal["bringToFront", "sendToBack", "bringForward", "sendBackward"]
PageOrientation = Literal["portrait", "landscape"]
