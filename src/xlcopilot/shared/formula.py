from __future__ import annotations

import re
from typing import TypeAlias

from openpyxl.formula.tokenizer import Token, Tokenizer, TokenizerError
from pydantic import BaseModel, ConfigDict

from .a1 import (
    MAX_COLUMN_INDEX,
    MAX_ROW_INDEX,
    column_index_to_label,
    column_label_to_index,
)

_CELL_PART_PATTERN = re.compile(r"^(\$?)([A-Za-z]{1,3})(\$?)([1-9][0-9]*)$")
_COLUMN_PART_PATTERN = re.compile(r"^(\$?)([A-Za-z]{1,3})$")
_ROW_PART_PATTERN = re.compile(r"^(\$?)([1-9][0-9]*)$")
_REF_ERROR = "#REF!"


class FormulaSyntaxError(ValueError):
    """Raised when a formula cannot be tokenized."""


class ReferencePart(BaseModel):
    """One endpoint of a reference (``B$5``, ``$C`` or ``7``).

    ``column`` is None for row spans, ``row`` is None for column spans.
    """

    model_config = ConfigDict(frozen=True)

    column: int | None = None
    row: int | None = None
    column_absolute: bool = False
    row_absolute: bool = False

    def render(self, row_offset: int, column_offset: int) -> str | None:
        """Render the shifted part, or None when it falls off the grid."""
        chunks: list[str] = []
        if self.column is not None:
            column = self.column
            if not self.column_absolute:
                column += column_offset
            if column < 0 or column > MAX_COLUMN_INDEX:
                return None
            marker = "$" if self.column_absolute else ""
            chunks.append(marker + column_index_to_label(column))
        if self.row is not None:
            row = self.row
            if not self.row_absolute:
                row += row_offset
            if row < 0 or row > MAX_ROW_INDEX:
                return None
            marker = "$" if self.row_absolute else ""
            chunks.append(f"{marker}{row + 1}")
        return "".join(chunks)


class TextToken(BaseModel):
    """Formula text copied verbatim."""

    model_config = ConfigDict(frozen=True)

    text: str

    def render(self, row_offset: int, column_offset: int) -> str:
        return self.text


class ReferenceToken(BaseModel):
    """A cell, cell range, column span, or row span reference."""

    model_config = ConfigDict(frozen=True)

    sheet_prefix: str = ""
    start: ReferencePart
    end: ReferencePart | None = None

    def render(self, row_offset: int, column_offset: int) -> str:
        start = self.start.render(row_offset, column_offset)
        if start is None:
            return f"{self.sheet_prefix}{_REF_ERROR}"
        if self.end is None:
            return f"{self.sheet_prefix}{start}"
        end = self.end.render(row_offset, column_offset)
        if end is None:
            return f"{self.sheet_prefix}{_REF_ERROR}"
        return f"{self.sheet_prefix}{start}:{end}"


FormulaToken: TypeAlias = TextToken | ReferenceToken


def tokenize_formula(formula: str) -> list[FormulaToken]:
    """Split a formula into verbatim text and reference tokens.

    Constants (text not starting with ``=``) produce a single text token.
    String literals, function names, defined names and structured references
    stay inside text tokens.

    Raises:
        FormulaSyntaxError: If the formula cannot be tokenized.
    """
    if not formula.startswith("="):
        return [TextToken(text=formula)]
    try:
        items = Tokenizer(formula).items
    except TokenizerError as exc:
        raise FormulaSyntaxError(f"Cannot parse formula {formula!r}: {exc}") from exc
    tokens: list[FormulaToken] = []
    cursor = 0
    for item in items:
        if item.type == Token.WSPACE:
            continue
        start = formula.find(item.value, cursor)
        if start < 0:
            raise FormulaSyntaxError(f"Cannot locate {item.value!r} in {formula!r}.")
        reference = None
        if item.type == Token.OPERAND and item.subtype == Token.RANGE:
            reference = _parse_reference(item.value)
        if reference is not None:
            if start > cursor:
                tokens.append(TextToken(text=formula[cursor:start]))
            tokens.append(reference)
        cursor = start + len(item.value)
    if cursor < len(formula):
        tokens.append(TextToken(text=formula[cursor:]))
    return tokens


def render_formula(
    tokens: list[FormulaToken], row_offset: int, column_offset: int
) -> str:
    """Reassemble tokens with relative axes shifted by the given offsets."""
    return "".join(token.render(row_offset, column_offset) for token in tokens)


def shift_formula(formula: str, row_offset: int, column_offset: int) -> str:
    """Translate a formula as if copied down/right by the given offsets."""
    if row_offset == 0 and column_offset == 0:
        return formula
    tokens = tokenize_formula(formula)
    if not _has_references(tokens):
        return formula
    return render_formula(tokens, row_offset, column_offset)


def distribute_formula(
    formula: str, row_count: int, column_count: int
) -> list[list[str]]:
    """Expand one anchor formula into a ``row_count`` x ``column_count`` grid.

    Cell (0, 0) is the formula unchanged. Cell (r, c) has every relative column
    shifted by ``c`` and every relative row shifted by ``r``; ``$`` axes stay.

    Args:
        formula: Anchor formula, e.g. ``=B$5+C5``.
        row_count: Destination rows (>= 1).
        column_count: Destination columns (>= 1).

    Returns:
        Row-major grid of formula strings.
    """
    if row_count < 1 or column_count < 1:
        raise ValueError("Formula grid size must be at least 1x1.")
    if row_count == 1 and column_count == 1:
        return [[formula]]
    tokens = tokenize_formula(formula)
    if not _has_references(tokens):
        return [[formula] * column_count for _ in range(row_count)]
    grid = [
        [render_formula(tokens, row, column) for column in range(column_count)]
        for row in range(row_count)
    ]
    grid[0][0] = formula
    return grid


def _has_references(tokens: list[FormulaToken]) -> bool:
    return any(isinstance(token, ReferenceToken) for token in tokens)


def _parse_reference(value: str) -> ReferenceToken | None:
    """Parse a RANGE operand; None keeps it as verbatim text."""
    sheet_prefix = ""
    local = value
    if "!" in value:
        head, local = value.rsplit("!", maxsplit=1)
        if ":" in head:
            return None
        sheet_prefix = f"{head}!"
    parts = local.split(":")
    if len(parts) == 1:
        start = _parse_part(parts[0])
        if start is None or start.column is None or start.row is None:
            return None
        return ReferenceToken(sheet_prefix=sheet_prefix, start=start)
    if len(parts) != 2:
        return None
    start = _parse_part(parts[0])
    end = _parse_part(parts[1])
    if start is None or end is None:
        return None
    if (start.column is None) != (end.column is None) or (start.row is None) != (
        end.row is None
    ):
        return None
    return ReferenceToken(sheet_prefix=sheet_prefix, start=start, end=end)


def _parse_part(text: str) -> ReferencePart | None:
    match = _CELL_PART_PATTERN.match(text)
    if match is not None:
        column = column_label_to_index(match.group(2))
        row = int(match.group(4)) - 1
        if column > MAX_COLUMN_INDEX or row > MAX_ROW_INDEX:
            return None
        return ReferencePart(
            column=column,
            row=row,
            column_absolute=match.group(1) == "$",
            row_absolute=match.group(3) == "$",
        )
    match = _COLUMN_PART_PATTERN.match(text)
    if match is not None:
        column = column_label_to_index(match.group(2))
        if column > MAX_COLUMN_INDEX:
            return None
        return ReferencePart(column=column, column_absolute=match.group(1) == "$")
    match = _ROW_PART_PATTERN.match(text)
    if match is not None:
        row = int(match.group(2)) - 1
        if row > MAX_ROW_INDEX:
            return None
        return ReferencePart(row=row, row_absolute=match.group(1) == "$")
    return None
