from __future__ import annotations

import pytest

from xlcopilot.shared.a1 import (
    MAX_COLUMN_INDEX,
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


def test_column_roundtrip_over_whole_grid() -> None:
    for index in range(MAX_COLUMN_INDEX + 1):
        assert column_label_to_index(column_index_to_label(index)) == index


def test_column_label_boundaries() -> None:
    assert column_index_to_label(0) == "A"
    assert column_index_to_label(25) == "Z"
    assert column_index_to_label(26) == "AA"
    assert column_index_to_label(701) == "ZZ"
    assert column_index_to_label(702) == "AAA"
    assert column_index_to_label(MAX_COLUMN_INDEX) == "XFD"
    assert column_label_to_index("xfd") == MAX_COLUMN_INDEX


def test_column_label_rejects_invalid() -> None:
    with pytest.raises(InvalidAddressError, match="Invalid column label"):
        column_label_to_index("A1")
    with pytest.raises(InvalidAddressError, match="non-negative"):
        column_index_to_label(-1)


def test_parse_cell_ignores_markers() -> None:
    assert parse_cell("$B$3") == CellAddress(column=1, row=2)
    assert parse_cell("b3").label == "B3"


def test_parse_cell_rejects_invalid() -> None:
    with pytest.raises(InvalidAddressError, match="Invalid cell reference"):
        parse_cell("1A")
    with pytest.raises(InvalidAddressError, match="outside the grid"):
        parse_cell("A1048577")


def test_parse_range_single_cell() -> None:
    target = parse_range("C7")
    assert target.sheet is None
    assert target.is_single_cell
    assert target.address == "C7"


def test_parse_range_normalizes_reversed_corners() -> None:
    target = parse_range("D10:A1")
    assert target.anchor == CellAddress(column=0, row=0)
    assert target.row_count == 10
    assert target.column_count == 4
    assert target.local_address == "A1:D10"


def test_parse_range_with_sheet_qualifier() -> None:
    target = parse_range("'My Sheet'!B2:C3")
    assert target.sheet == "My Sheet"
    assert target.address == "'My Sheet'!B2:C3"
    assert parse_range("Sheet2!A1").address == "Sheet2!A1"


def test_parse_range_rejects_malformed() -> None:
    with pytest.raises(InvalidAddressError, match="empty"):
        parse_range("  ")
    with pytest.raises(InvalidAddressError, match="Invalid range reference"):
        parse_range("A1:B2:C3")
    with pytest.raises(InvalidAddressError, match="Invalid sheet qualifier"):
        parse_range("'Bad!A1")


def test_split_sheet_qualifier_unescapes_quotes() -> None:
    assert split_sheet_qualifier("'Bob''s'!A1") == ("Bob's", "A1")
    assert split_sheet_qualifier("A1") == (None, "A1")


def test_quote_sheet_name() -> None:
    assert quote_sheet_name("Sheet1") == "Sheet1"
    assert quote_sheet_name("My Sheet") == "'My Sheet'"
    assert quote_sheet_name("Bob's") == "'Bob''s'"
    assert quote_sheet_name("AB12") == "'AB12'"


def test_range_resize_and_offset() -> None:
    target = parse_range("B2")
    assert target.resize(3, 2).local_address == "B2:C4"
    assert target.offset(1, 2).local_address == "D3"
    assert [cell.label for cell in parse_range("A1:B2").cells()] == [
        "A1",
        "B1",
        "A2",
        "B2",
    ]


def test_detect_absolute_markers_per_axis() -> None:
    markers = detect_absolute_markers("B$5")
    assert not markers.column_absolute
    assert markers.row_absolute
    markers = detect_absolute_markers("Sheet1!$C7")
    assert markers.column_absolute
    assert not markers.row_absolute


def test_row_and_column_spans() -> None:
    assert parse_row_span("5") == (None, 4, 1)
    assert parse_row_span("Data!7:5") == ("Data", 4, 3)
    assert parse_column_span("C:E") == (None, 2, 3)
    with pytest.raises(InvalidAddressError, match="Invalid row reference"):
        parse_row_span("A:B")
    with pytest.raises(InvalidAddressError, match="Invalid column reference"):
        parse_column_span("5:7")


def test_ranges_overlap() -> None:
    block = CellRange(anchor=CellAddress(column=0, row=0), row_count=3, column_count=3)
    assert ranges_overlap(block, parse_range("C3:D4"))
    assert not ranges_overlap(block, parse_range("D1:E2"))
    assert not ranges_overlap(block, parse_range("A4"))
