from __future__ import annotations

from collections.abc import Iterator
import re

from pydantic import BaseModel, ConfigDict, Field

MAX_COLUMN_INDEX = 16383
MAX_ROW_INDEX = 1048575

_CELL_PATTERN = re.compile(r"^\$?([A-Za-z]{1,3})\$?([1-9][0-9]*)$")
_COLUMN_LABEL_PATTERN = re.compile(r"^[A-Za-z]{1,3}$")
_MARKER_PATTERN = re.compile(r"^(\$?)([A-Za-z]{1,3})(\$?)([0-9]+)$")
_ROW_SPAN_PATTERN = re.compile(r"^(\d+)(?::(\d+))?$")
_COLUMN_SPAN_PATTERN = re.compile(r"^([A-Za-z]+)(?::([A-Za-z]+))?$")
_BARE_SHEET_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


class InvalidAddressError(ValueError):
    """Raised when an A1 address, column label, or span cannot be parsed."""


class CellAddress(BaseModel):
    """Zero-based cell coordinate."""

    model_config = ConfigDict(frozen=True)

    column: int = Field(ge=0)
    row: int = Field(ge=0)

    @property
    def label(self) -> str:
        """Return the A1 label, e.g. ``B3`` for (1, 2)."""
        return f"{column_index_to_label(self.column)}{self.row + 1}"


class AbsoluteMarkers(BaseModel):
    """Per-axis ``$`` markers of a single cell reference."""

    model_config = ConfigDict(frozen=True)

    column_absolute: bool = False
    row_absolute: bool = False


class CellRange(BaseModel):
    """Rectangular block anchored at its top-left cell."""

    model_config = ConfigDict(frozen=True)

    sheet: str | None = None
    anchor: CellAddress
    row_count: int = Field(default=1, ge=1)
    column_count: int = Field(default=1, ge=1)

    @property
    def end(self) -> CellAddress:
        """Bottom-right cell of the range."""
        return CellAddress(
            column=self.anchor.column + self.column_count - 1,
            row=self.anchor.row + self.row_count - 1,
        )

    @property
    def is_single_cell(self) -> bool:
        return self.row_count == 1 and self.column_count == 1

    @property
    def local_address(self) -> str:
        """Address without the sheet qualifier."""
        if self.is_single_cell:
            return self.anchor.label
        return f"{self.anchor.label}:{self.end.label}"

    @property
    def address(self) -> str:
        """Address with the sheet qualifier when one is set."""
        if self.sheet is None:
            return self.local_address
        return f"{quote_sheet_name(self.sheet)}!{self.local_address}"

    def resize(self, row_count: int, column_count: int) -> CellRange:
        """Return a range with the same anchor and a new extent."""
        return self.model_copy(
            update={"row_count": row_count, "column_count": column_count}
        )

    def offset(self, rows: int, columns: int) -> CellRange:
        """Return a range shifted by the given number of rows and columns."""
        return self.model_copy(
            update={
                "anchor": CellAddress(
                    column=self.anchor.column + columns,
                    row=self.anchor.row + rows,
                )
            }
        )

    def cells(self) -> Iterator[CellAddress]:
        """Iterate cells row by row."""
        for row in range(self.anchor.row, self.anchor.row + self.row_count):
            for column in range(
                self.anchor.column, self.anchor.column + self.column_count
            ):
                yield CellAddress(column=column, row=row)


def column_index_to_label(index: int) -> str:
    """Convert 0-based column index to Excel-style column label (0 -> A)."""
    if index < 0:
        raise InvalidAddressError(f"Column index must be non-negative: {index}")
    chunks: list[str] = []
    current = index + 1
    while current > 0:
        current -= 1
        chunks.append(chr(ord("A") + (current % 26)))
        current //= 26
    return "".join(reversed(chunks))


def column_label_to_index(label: str) -> int:
    """Convert Excel-style column label (A/AA) to 0-based index."""
    normalized = label.strip().upper()
    if not _COLUMN_LABEL_PATTERN.match(normalized):
        raise InvalidAddressError(f"Invalid column label: {label}")
    index = 0
    for char in normalized:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def quote_sheet_name(sheet: str) -> str:
    """Quote a sheet name for use in an address when Excel requires it."""
    if _BARE_SHEET_NAME_PATTERN.match(sheet) and not _CELL_PATTERN.match(sheet):
        return sheet
    escaped = sheet.replace("'", "''")
    return f"'{escaped}'"


def split_sheet_qualifier(address: str) -> tuple[str | None, str]:
    """Split ``Sheet!A1`` into (sheet, local part).

    Quoted sheet names (``'My Sheet'!A1``) are unquoted and ``''`` escapes are
    collapsed.

    Raises:
        InvalidAddressError: If the qualifier is empty or badly quoted.
    """
    text = address.strip()
    if "!" not in text:
        return None, text
    sheet, local = text.rsplit("!", maxsplit=1)
    sheet = sheet.strip()
    if sheet.startswith("'"):
        if len(sheet) < 3 or not sheet.endswith("'"):
            raise InvalidAddressError(f"Invalid sheet qualifier: {address}")
        sheet = sheet[1:-1].replace("''", "'")
    if not sheet:
        raise InvalidAddressError(f"Empty sheet qualifier: {address}")
    return sheet, local.strip()


def parse_cell(value: str) -> CellAddress:
    """Parse a single A1 cell (``$`` markers are ignored)."""
    match = _CELL_PATTERN.match(value.strip())
    if match is None:
        raise InvalidAddressError(f"Invalid cell reference: {value}")
    column = column_label_to_index(match.group(1))
    row = int(match.group(2)) - 1
    if column > MAX_COLUMN_INDEX or row > MAX_ROW_INDEX:
        raise InvalidAddressError(f"Cell reference is outside the grid: {value}")
    return CellAddress(column=column, row=row)


def parse_range(address: str) -> CellRange:
    """Parse ``A1``, ``A1:D10`` or ``Sheet2!A1:B5`` into a normalized range.

    Reversed corners (``D10:A1``) are normalized, not rejected.

    Raises:
        InvalidAddressError: If the address is malformed.
    """
    if not address or not address.strip():
        raise InvalidAddressError("Address is empty.")
    sheet, local = split_sheet_qualifier(address)
    parts = local.split(":")
    if len(parts) > 2:
        raise InvalidAddressError(f"Invalid range reference: {address}")
    start = parse_cell(parts[0])
    end = parse_cell(parts[1]) if len(parts) == 2 else start
    min_column, max_column = sorted((start.column, end.column))
    min_row, max_row = sorted((start.row, end.row))
    return CellRange(
        sheet=sheet,
        anchor=CellAddress(column=min_column, row=min_row),
        row_count=max_row - min_row + 1,
        column_count=max_column - min_column + 1,
    )


def detect_absolute_markers(token: str) -> AbsoluteMarkers:
    """Return independent column/row ``$`` markers of a reference like ``B$5``."""
    _, local = split_sheet_qualifier(token)
    match = _MARKER_PATTERN.match(local)
    if match is None:
        raise InvalidAddressError(f"Invalid cell reference: {token}")
    return AbsoluteMarkers(
        column_absolute=match.group(1) == "$",
        row_absolute=match.group(3) == "$",
    )


def parse_row_span(value: str) -> tuple[str | None, int, int]:
    """Parse ``5`` or ``Sheet1!5:7`` into (sheet, 0-based start row, row count)."""
    sheet, local = split_sheet_qualifier(value)
    match = _ROW_SPAN_PATTERN.match(local)
    if match is None:
        raise InvalidAddressError(
            f"Invalid row reference: {value}. Use '5' or '5:10'."
        )
    first = int(match.group(1))
    last = int(match.group(2) or first)
    first, last = sorted((first, last))
    if first < 1 or last - 1 > MAX_ROW_INDEX:
        raise InvalidAddressError(f"Row reference is outside the grid: {value}")
    return sheet, first - 1, last - first + 1


def parse_column_span(value: str) -> tuple[str | None, int, int]:
    """Parse ``C`` or ``Sheet1!C:E`` into (sheet, 0-based start column, count)."""
    sheet, local = split_sheet_qualifier(value)
    match = _COLUMN_SPAN_PATTERN.match(local)
    if match is None:
        raise InvalidAddressError(
            f"Invalid column reference: {value}. Use 'C' or 'C:E'."
        )
    first = column_label_to_index(match.group(1))
    last = column_label_to_index(match.group(2) or match.group(1))
    first, last = sorted((first, last))
    if last > MAX_COLUMN_INDEX:
        raise InvalidAddressError(f"Column reference is outside the grid: {value}")
    return sheet, first, last - first + 1


def ranges_overlap(left: CellRange, right: CellRange) -> bool:
    """Return True if two ranges on the same sheet share at least one cell."""
    return not (
        left.end.column < right.anchor.column
        or right.end.column < left.anchor.column
        or left.end.row < right.anchor.row
        or right.end.row < left.anchor.row
    )
