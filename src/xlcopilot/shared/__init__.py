from __future__ import annotations

from .a1 import (
    AbsoluteMarkers,
    CellAddress,
    CellRange,
    InvalidAddressError,
    column_index_to_label,
    column_label_to_index,
    detect_absolute_markers,
    parse_cell,
    parse_column_span,
    parse_range,
    parse_row_span,
    quote_sheet_name,
    ranges_overlap,
    split_sheet_qualifier,
)
from .formula import (
    FormulaSyntaxError,
    distribute_formula,
    shift_formula,
    tokenize_formula,
)

__all__ = [
    "AbsoluteMarkers",
    "CellAddress",
    "CellRange",
    "FormulaSyntaxError",
    "InvalidAddressError",
    "column_index_to_label",
    "column_label_to_index",
    "detect_absolute_markers",
    "distribute_formula",
    "parse_cell",
    "parse_column_span",
    "parse_range",
    "parse_row_span",
    "quote_sheet_name",
    "ranges_overlap",
    "shift_formula",
    "split_sheet_qualifier",
    "tokenize_formula",
]
