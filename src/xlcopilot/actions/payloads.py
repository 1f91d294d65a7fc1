from __future__ import annotations

import json
import re
from typing import Any, Literal, TypeAlias, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from xlcopilot.shared.a1 import InvalidAddressError, parse_cell, parse_range

from .types import (
    AggregateFunction,
    ChartType,
    HorizontalAlignType,
    PageOrientation,
    ShapeOrder,
    SlicerSourceType,
    SparklineType,
)

CellScalar: TypeAlias = str | int | float | bool | None
PayloadT = TypeVar("PayloadT", bound="ActionPayload")

_HEX_COLOR_PATTERN = re.compile(r"^#?(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")
_SORT_SHORTHAND_PATTERN = re.compile(r"^\s*\w+\s*:")

ConditionalOperator = Literal[
    "GreaterThan",
    "LessThan",
    "EqualTo",
    "NotEqualTo",
    "GreaterThanOrEqual",
    "LessThanOrEqual",
    "Between",
    "NotBetween",
]


def normalize_hex_color(value: str, *, field_name: str) -> str:
    """Normalize HEX input into ``#RRGGBB`` or ``#AARRGGBB`` form.

    Raises:
        ValueError: If the value is not valid HEX color text.
    """
    text = value.strip().upper()
    if not _HEX_COLOR_PATTERN.match(text):
        raise ValueError(
            f"Invalid {field_name} format. Use 'RRGGBB', 'AARRGGBB', "
            "'#RRGGBB', or '#AARRGGBB'."
        )
    return text if text.startswith("#") else f"#{text}"


def _require_address(value: str, field_name: str) -> str:
    try:
        return parse_range(value).address
    except InvalidAddressError as exc:
        raise ValueError(f"{field_name} must be an A1 range: {exc}") from exc


def _validate_address(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    return _require_address(value, field_name)


class ActionPayload(BaseModel):
    """Base schema for action payloads (camelCase JSON keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    @classmethod
    def load_data(cls, data: str) -> Any:
        """Decode raw payload text; empty text is an empty object."""
        text = data.strip()
        if not text:
            return {}
        return json.loads(text)

    @classmethod
    def from_data(
        cls: type[PayloadT], data: str, aliases: dict[str, str] | None = None
    ) -> PayloadT:
        """Parse payload text into this schema.

        Raises:
            ValueError: On malformed JSON or alias conflicts.
            pydantic.ValidationError: On schema mismatch.
        """
        raw = cls.load_data(data)
        if isinstance(raw, dict) and aliases:
            raw = _apply_aliases(raw, aliases)
        return cls.model_validate(raw)


def _apply_aliases(raw: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    normalized = dict(raw)
    for alias, canonical in aliases.items():
        if alias not in normalized:
            continue
        alias_value = normalized.pop(alias)
        if canonical in normalized and normalized[canonical] != alias_value:
            raise ValueError(f"conflicting fields: '{canonical}' and alias '{alias}'")
        normalized[canonical] = alias_value
    return normalized


class EmptyPayload(ActionPayload):
    """Payload for kinds that take no options."""


# --- basic -----------------------------------------------------------------


class FormulaPayload(ActionPayload):
    formula: str = Field(min_length=1)

    @classmethod
    def load_data(cls, data: str) -> Any:
        return {"formula": data.strip()}


class ValuesPayload(ActionPayload):
    """2-D values; a scalar becomes ``[[v]]`` and a flat list one row."""

    values: list[list[CellScalar]] = Field(min_length=1)

    @classmethod
    def load_data(cls, data: str) -> Any:
        text = data.strip()
        try:
            parsed: Any = json.loads(text) if text else ""
        except json.JSONDecodeError:
            parsed = data
        if isinstance(parsed, dict):
            return parsed
        if not isinstance(parsed, list):
            return {"values": [[parsed]]}
        if parsed and not isinstance(parsed[0], list):
            return {"values": [parsed]}
        return {"values": parsed}

    @field_validator("values")
    @classmethod
    def _validate_rectangular(
        cls, value: list[list[CellScalar]]
    ) -> list[list[CellScalar]]:
        widths = {len(row) for row in value}
        if 0 in widths:
            raise ValueError("values rows must not be empty.")
        if len(widths) > 1:
            raise ValueError("values rows must all have the same length.")
        return value


class FormatPayload(ActionPayload):
    bold: bool | None = None
    italic: bool | None = None
    fill: str | None = None
    font_color: str | None = None
    font_size: float | None = Field(default=None, gt=0)
    number_format: str | None = None
    border: bool | None = None
    align: HorizontalAlignType | None = None

    @field_validator("fill", "font_color")
    @classmethod
    def _validate_color(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_hex_color(value, field_name="color")

    @model_validator(mode="after")
    def _require_one_field(self) -> FormatPayload:
        if not self.model_fields_set:
            raise ValueError(
                "format requires at least one of bold, italic, fill, fontColor, "
                "fontSize, numberFormat, border, align."
            )
        return self


class ValidationPayload(ActionPayload):
    """List validation from a source range or from explicit values."""

    source: str | None = None
    values: list[str] | None = None

    @field_validator("source")
    @classmethod
    def _validate_source(cls, value: str | None) -> str | None:
        return _validate_address(value, "source")

    @model_validator(mode="after")
    def _require_source_or_values(self) -> ValidationPayload:
        if self.source is None and not self.values:
            raise ValueError("validation requires source or values.")
        return self


class SortPayload(ActionPayload):
    column: int = Field(default=0, ge=0)
    ascending: bool = True
    has_headers: bool = True

    @classmethod
    def load_data(cls, data: str) -> Any:
        text = data.strip()
        if text and not text.startswith("{") and _SORT_SHORTHAND_PATTERN.match(text):
            return _parse_sort_shorthand(text)
        return super().load_data(data)


def _parse_sort_shorthand(text: str) -> dict[str, Any]:
    """Parse ``column:1,ascending:false`` style options."""
    parsed: dict[str, Any] = {}
    for part in text.split(","):
        key, _, value = (chunk.strip() for chunk in part.partition(":"))
        if key == "column":
            parsed["column"] = int(value) if value.isdigit() else 0
        elif key == "ascending":
            parsed["ascending"] = value.lower() != "false"
        elif key == "hasHeaders":
            parsed["hasHeaders"] = value.lower() == "true"
    return parsed


class SourcePayload(ActionPayload):
    """Payload naming a source range (autofill, copy, copyValues)."""

    source: str

    @field_validator("source")
    @classmethod
    def _validate_source(cls, value: str) -> str:
        return _require_address(value, "source")


# --- formatting ------------------------------------------------------------


class ConditionalFormatRule(ActionPayload):
    type: Literal["cellValue"] = "cellValue"
    operator: ConditionalOperator
    value: str | float
    value2: str | float | None = None
    fill: str = "#FFFF00"
    font_color: str | None = None

    @field_validator("fill", "font_color")
    @classmethod
    def _validate_color(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_hex_color(value, field_name="color")

    @model_validator(mode="after")
    def _require_second_value(self) -> ConditionalFormatRule:
        if self.operator in {"Between", "NotBetween"} and self.value2 is None:
            raise ValueError(f"{self.operator} requires value2.")
        return self


class ConditionalFormatPayload(ActionPayload):
    rules: list[ConditionalFormatRule] = Field(min_length=1)

    @classmethod
    def load_data(cls, data: str) -> Any:
        parsed = super().load_data(data)
        if isinstance(parsed, list):
            return {"rules": parsed}
        if isinstance(parsed, dict) and "rules" not in parsed:
            return {"rules": [parsed]}
        return parsed


# --- charts ----------------------------------------------------------------


class ChartPayload(ActionPayload):
    chart_type: ChartType = "column"
    title: str = "Chart"
    position: str = "H2"

    @field_validator("chart_type", mode="before")
    @classmethod
    def _normalize_chart_type(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        lowered = value.strip().lower()
        for chart_type, needles in _CHART_TYPE_NEEDLES:
            if any(needle in lowered for needle in needles):
                return chart_type
        return lowered

    @field_validator("position")
    @classmethod
    def _validate_position(cls, value: str) -> str:
        return parse_cell(value).label


_CHART_TYPE_NEEDLES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("line", ("line",)),
    ("pie", ("pie",)),
    ("doughnut", ("doughnut", "donut")),
    ("bar", ("bar",)),
    ("area", ("area",)),
    ("scatter", ("scatter", "xy")),
    ("radar", ("radar", "spider")),
    ("column", ("column",)),
)


class PivotChartPayload(ChartPayload):
    title: str = "Pivot Chart"
    group_by: str = Field(min_length=1)
    aggregate: str | None = None
    aggregate_func: AggregateFunction = "sum"

    @field_validator("aggregate_func", mode="before")
    @classmethod
    def _normalize_func(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return "avg" if lowered == "average" else lowered
        return value


# --- data ------------------------------------------------------------------


class FilterPayload(ActionPayload):
    column: int | None = Field(default=None, ge=0)
    values: list[str] | None = None


class RemoveDuplicatesPayload(ActionPayload):
    columns: list[int] = Field(default_factory=list)

    @field_validator("columns")
    @classmethod
    def _validate_columns(cls, value: list[int]) -> list[int]:
        if any(column < 0 for column in value):
            raise ValueError("columns must be non-negative offsets.")
        return value


class FindReplacePayload(ActionPayload):
    find: str = Field(min_length=1)
    replace: str = ""
    match_case: bool = False
    match_entire_cell: bool = False


class TextToColumnsPayload(ActionPayload):
    delimiter: str = Field(default=",", min_length=1)
    destination: str | None = None
    force_overwrite: bool = False

    @field_validator("destination")
    @classmethod
    def _validate_destination(cls, value: str | None) -> str | None:
        return _validate_address(value, "destination")


class MergePayload(ActionPayload):
    across: bool = False


class SheetPayload(ActionPayload):
    """Optional initial values for a new sheet."""

    values: list[list[CellScalar]] | None = None

    @classmethod
    def load_data(cls, data: str) -> Any:
        parsed = super().load_data(data)
        if isinstance(parsed, list):
            return {"values": parsed}
        return parsed


# --- tables ----------------------------------------------------------------


class CreateTablePayload(ActionPayload):
    table_name: str | None = None
    style: str = "TableStyleMedium2"
    has_headers: bool = True


class StyleTablePayload(ActionPayload):
    table_name: str | None = None
    style: str = "TableStyleMedium2"
    highlight_first_column: bool | None = None
    highlight_last_column: bool | None = None
    show_banded_rows: bool | None = None
    show_banded_columns: bool | None = None


class AddTableRowPayload(ActionPayload):
    table_name: str | None = None
    position: Literal["start", "end"] | int = "end"
    values: list[list[CellScalar]] | None = None

    @field_validator("values", mode="before")
    @classmethod
    def _wrap_flat_row(cls, value: object) -> object:
        if isinstance(value, list) and value and not isinstance(value[0], list):
            return [value]
        return value


class AddTableColumnPayload(ActionPayload):
    table_name: str | None = None
    column_name: str = "NewColumn"
    position: Literal["start", "end"] | int = "end"
    values: list[CellScalar] | None = None

    @field_validator("values", mode="before")
    @classmethod
    def _flatten_column(cls, value: object) -> object:
        if isinstance(value, list) and value and isinstance(value[0], list):
            return [row[0] if row else None for row in value]
        return value


class ResizeTablePayload(ActionPayload):
    table_name: str | None = None
    new_range: str

    @field_validator("new_range")
    @classmethod
    def _validate_new_range(cls, value: str) -> str:
        return _require_address(value, "newRange")


class TableNamePayload(ActionPayload):
    table_name: str | None = None


class TotalsConfig(ActionPayload):
    column_index: int = Field(ge=0)
    function: str


class ToggleTotalsPayload(ActionPayload):
    table_name: str | None = None
    show: bool = True
    totals: list[TotalsConfig] = Field(default_factory=list)


# --- structure -------------------------------------------------------------


class InsertPayload(ActionPayload):
    count: int = 1

    @field_validator("count", mode="before")
    @classmethod
    def _fallback_count(cls, value: object) -> object:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            return 1
        return value


# --- pivots and slicers ----------------------------------------------------


class CreatePivotTablePayload(ActionPayload):
    name: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    layout: str | None = None


class AddPivotFieldPayload(ActionPayload):
    pivot_name: str | None = None
    field: str = Field(min_length=1)
    area: Literal["row", "column", "data", "filter"]
    function: str = "Sum"

    @field_validator("area", mode="before")
    @classmethod
    def _normalize_area(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        lowered = value.strip().lower()
        if lowered in {"value", "values"}:
            return "data"
        return lowered


class PivotLayoutPayload(ActionPayload):
    pivot_name: str | None = None
    layout: Literal["compact", "outline", "tabular"]
    show_row_headers: bool | None = None
    show_column_headers: bool | None = None

    @field_validator("layout", mode="before")
    @classmethod
    def _normalize_layout(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class RefreshPivotPayload(ActionPayload):
    pivot_name: str | None = None
    refresh_all: bool = False


class PivotNamePayload(ActionPayload):
    pivot_name: str | None = None


class SlicerPosition(ActionPayload):
    left: float = 100
    top: float = 100
    width: float = Field(default=200, gt=0)
    height: float = Field(default=200, gt=0)


class CreateSlicerPayload(ActionPayload):
    slicer_name: str | None = None
    source_type: SlicerSourceType
    source_name: str | None = None
    field: str = Field(min_length=1)
    position: SlicerPosition = Field(default_factory=SlicerPosition)
    style: str = "SlicerStyleLight1"
    selected_items: list[str] | None = None
    multi_select: bool = True

    @field_validator("source_type", mode="before")
    @classmethod
    def _normalize_source_type(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class ConfigureSlicerPayload(ActionPayload):
    slicer_name: str | None = None
    caption: str | None = None
    style: str | None = None
    sort_by: str | None = None
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)
    left: float | None = None
    top: float | None = None
    selected_items: list[str] | None = None
    multi_select: bool | None = None


class ConnectSlicerToTablePayload(ActionPayload):
    slicer_name: str | None = None
    table_name: str = Field(min_length=1)
    field: str = Field(min_length=1)


class ConnectSlicerToPivotPayload(ActionPayload):
    slicer_name: str | None = None
    pivot_name: str = Field(min_length=1)
    field: str = Field(min_length=1)


class SlicerNamePayload(ActionPayload):
    slicer_name: str | None = None


# --- named ranges ----------------------------------------------------------


class CreateNamedRangePayload(ActionPayload):
    name: str = Field(min_length=1)
    comment: str | None = None


class UpdateNamedRangePayload(ActionPayload):
    new_range: str | None = None
    comment: str | None = None

    @field_validator("new_range")
    @classmethod
    def _validate_new_range(cls, value: str | None) -> str | None:
        return _validate_address(value, "newRange")

    @model_validator(mode="after")
    def _require_change(self) -> UpdateNamedRangePayload:
        if self.new_range is None and self.comment is None:
            raise ValueError("updateNamedRange requires newRange or comment.")
        return self


# --- protection ------------------------------------------------------------


class PasswordPayload(ActionPayload):
    password: str | None = None


class ProtectWorksheetPayload(PasswordPayload):
    allow_format_cells: bool = False
    allow_insert_rows: bool = False
    allow_delete_rows: bool = False
    allow_sort: bool = False
    allow_auto_filter: bool = False


# --- shapes ----------------------------------------------------------------


class InsertShapePayload(ActionPayload):
    shape_type: str = "rectangle"
    name: str | None = None
    width: float = Field(default=100, gt=0)
    height: float = Field(default=60, gt=0)
    fill: str | None = None
    text: str | None = None

    @field_validator("fill")
    @classmethod
    def _validate_fill(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_hex_color(value, field_name="fill")


class InsertImagePayload(ActionPayload):
    image: str = Field(min_length=1, description="Base64-encoded PNG or JPEG.")
    name: str | None = None
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)


class InsertTextBoxPayload(ActionPayload):
    text: str = Field(min_length=1)
    name: str | None = None
    width: float = Field(default=100, gt=0)
    height: float = Field(default=60, gt=0)


class FormatShapePayload(ActionPayload):
    fill: str | None = None
    line_color: str | None = None
    text: str | None = None
    left: float | None = None
    top: float | None = None
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)

    @field_validator("fill", "line_color")
    @classmethod
    def _validate_color(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_hex_color(value, field_name="color")


class GroupShapesPayload(ActionPayload):
    shapes: list[str] = Field(min_length=2)


class ArrangeShapePayload(ActionPayload):
    order: ShapeOrder


# --- comments --------------------------------------------------------------


class CommentPayload(ActionPayload):
    text: str = Field(min_length=1)
    author: str | None = None


class ResolveCommentPayload(ActionPayload):
    resolved: bool = True


# --- sparklines ------------------------------------------------------------


class CreateSparklinePayload(ActionPayload):
    source_data: str
    type: SparklineType = "line"
    color: str | None = None

    @field_validator("source_data")
    @classmethod
    def _validate_source_data(cls, value: str) -> str:
        return _require_address(value, "sourceData")


class ConfigureSparklinePayload(ActionPayload):
    type: SparklineType | None = None
    color: str | None = None
    show_markers: bool | None = None
    show_high_point: bool | None = None
    show_low_point: bool | None = None


# --- worksheet -------------------------------------------------------------


class RenameSheetPayload(ActionPayload):
    new_name: str = Field(min_length=1, max_length=31)

    @field_validator("new_name")
    @classmethod
    def _validate_new_name(cls, value: str) -> str:
        if any(char in value for char in "[]:*?/\\"):
            raise ValueError("Sheet names cannot contain []:*?/\\ characters.")
        return value


class MoveSheetPayload(ActionPayload):
    position: int = Field(ge=0)


class HideSheetPayload(ActionPayload):
    very_hidden: bool = False


class ZoomPayload(ActionPayload):
    scale: int = Field(ge=10, le=400)


class CreateViewPayload(ActionPayload):
    temporary: bool = False


# --- page layout -----------------------------------------------------------


class PageSetupPayload(ActionPayload):
    paper_size: int | None = Field(default=None, ge=1)
    orientation: PageOrientation | None = None
    fit_to_width: int | None = Field(default=None, ge=0)
    fit_to_height: int | None = Field(default=None, ge=0)
    scale: int | None = Field(default=None, ge=10, le=400)
    center_horizontally: bool | None = None
    center_vertically: bool | None = None


class PageMarginsPayload(ActionPayload):
    top: float | None = Field(default=None, ge=0)
    bottom: float | None = Field(default=None, ge=0)
    left: float | None = Field(default=None, ge=0)
    right: float | None = Field(default=None, ge=0)
    header: float | None = Field(default=None, ge=0)
    footer: float | None = Field(default=None, ge=0)


class PageOrientationPayload(ActionPayload):
    orientation: PageOrientation

    @field_validator("orientation", mode="before")
    @classmethod
    def _normalize_orientation(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class HeaderFooterPayload(ActionPayload):
    header_left: str | None = None
    header_center: str | None = None
    header_right: str | None = None
    footer_left: str | None = None
    footer_center: str | None = None
    footer_right: str | None = None


class PageBreaksPayload(ActionPayload):
    rows: list[int] = Field(default_factory=list)
    columns: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_breaks(self) -> PageBreaksPayload:
        if not self.rows and not self.columns:
            raise ValueError("setPageBreaks requires rows or columns.")
        if any(value < 1 for value in [*self.rows, *self.columns]):
            raise ValueError("Page breaks are 1-based row/column numbers.")
        return self


# --- data types and hyperlinks ---------------------------------------------


class InsertDataTypePayload(ActionPayload):
    data_type: str = Field(min_length=1)
    text: str = Field(min_length=1)


class HyperlinkPayload(ActionPayload):
    address: str = Field(min_length=1)
    text: str | None = None
    tooltip: str | None = None
