from __future__ import annotations

import base64
import json
import logging
from typing import TYPE_CHECKING

import pytest

from xlcopilot.actions.dispatch import dispatch
from xlcopilot.actions.errors import (
    HostApiError,
    InvalidPayloadError,
    InvalidTargetError,
)
from xlcopilot.actions.models import Action

if TYPE_CHECKING:
    from conftest import FakeGridStore

SALES_TABLE = {
    "name": "Sales",
    "sheet": "Sheet1",
    "ref": "A1:C5",
    "columns": ["Region", "Product", "Amount"],
}


def _action(kind: str, target: str = "", data: object = None) -> Action:
    payload = "" if data is None else json.dumps(data)
    return Action(kind=kind, target=target, data=payload)


# --- tables ----------------------------------------------------------------


@pytest.mark.anyio
async def test_create_table_falls_back_to_default_style(
    fake_store: FakeGridStore, caplog: pytest.LogCaptureFixture
) -> None:
    fake_store.results["add_table"] = "Sales"
    with caplog.at_level(logging.WARNING):
        message = await dispatch(
            fake_store, _action("createTable", "A1:C5", {"name": "Sales", "style": "Fancy"})
        )
    assert message == 'Created table "Sales" at A1:C5 with style TableStyleMedium2.'
    assert fake_store.commands[0].options == {
        "table_name": "Sales",
        "style": "TableStyleMedium2",
        "has_headers": True,
    }
    assert "Invalid table style" in caplog.text


@pytest.mark.anyio
async def test_toggle_totals_skips_bad_configs(fake_store: FakeGridStore) -> None:
    fake_store.results["describe_table"] = SALES_TABLE
    message = await dispatch(
        fake_store,
        _action(
            "toggleTableTotals",
            "Sales",
            {
                "totals": [
                    {"columnIndex": 2, "function": "Avg"},
                    {"columnIndex": 7, "function": "sum"},
                    {"columnIndex": 1, "function": "median"},
                ]
            },
        ),
    )
    assert fake_store.ops() == ["describe_table", "set_table_totals"]
    totals = fake_store.commands[1]
    assert totals.name == "Sales"
    assert totals.options == {"show": True, "functions": {2: "average"}}
    assert message == "Totals column 2: average."


@pytest.mark.anyio
async def test_resize_table_reports_previous_ref(fake_store: FakeGridStore) -> None:
    fake_store.results["describe_table"] = SALES_TABLE
    message = await dispatch(fake_store, _action("resizeTable", "Sales", {"range": "a1:d9"}))
    assert message == 'Resized table "Sales" from A1:C5 to A1:D9.'
    assert fake_store.commands[1].options == {"new_range": "A1:D9"}


@pytest.mark.anyio
async def test_add_table_row_wraps_flat_values(fake_store: FakeGridStore) -> None:
    await dispatch(
        fake_store,
        _action("addTableRow", "Sales", {"values": ["East", "Pen", 4], "position": "start"}),
    )
    command = fake_store.commands[0]
    assert command.name == "Sales"
    assert command.options == {"index": 0, "values": [["East", "Pen", 4]]}


@pytest.mark.anyio
async def test_payload_table_name_wins_over_target(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("convertToRange", "Ignored", {"tableName": "Sales"}))
    assert fake_store.commands[0].name == "Sales"


# --- structure and sheets ----------------------------------------------------


@pytest.mark.anyio
async def test_insert_rows_repeats_span(fake_store: FakeGridStore) -> None:
    message = await dispatch(fake_store, _action("insertRow", "5:7", {"count": 2}))
    command = fake_store.commands[0]
    assert (command.op, command.sheet, command.address) == ("insert_rows", None, "5")
    assert command.options == {"index": 4, "amount": 6}
    assert message == "Inserted 6 row(s) at row 5."


@pytest.mark.anyio
async def test_insert_columns_on_named_sheet(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("insertColumns", "Data!C:E", {"count": 0}))
    command = fake_store.commands[0]
    assert (command.sheet, command.address) == ("Data", "C")
    assert command.options == {"index": 2, "amount": 3}


@pytest.mark.anyio
async def test_delete_rows_rejects_cell_address(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidTargetError, match='Use format "10:15"'):
        await dispatch(fake_store, _action("deleteRows", "A1:B2"))
    assert fake_store.commands == []


@pytest.mark.anyio
async def test_create_sheet_seeds_values(fake_store: FakeGridStore) -> None:
    message = await dispatch(fake_store, _action("sheet", "Summary", [["a", "b"], ["c"]]))
    assert fake_store.ops() == ["add_sheet"]
    assert fake_store.get("Summary!A1:B2") == [["a", "b"], ["c", ""]]
    assert message == "Created sheet Summary."


@pytest.mark.anyio
async def test_rename_sheet_validates_name(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("renameSheet", "Old", {"name": "New"}))
    command = fake_store.commands[0]
    assert (command.sheet, command.name) == ("Old", "New")
    with pytest.raises(InvalidPayloadError, match="cannot contain"):
        await dispatch(fake_store, _action("renameSheet", "Old", {"newName": "a/b"}))


@pytest.mark.anyio
async def test_sheet_view_actions(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("hideSheet", "Raw", {"veryHidden": True}))
    await dispatch(fake_store, _action("freezePanes", "B2:D9"))
    await dispatch(fake_store, _action("unfreezePane"))
    await dispatch(fake_store, _action("setZoom", "Raw", {"zoom": 150}))
    hide, freeze, unfreeze, zoom = fake_store.commands
    assert hide.options == {"state": "veryHidden"}
    assert freeze.address == "B2"
    assert unfreeze.sheet is None
    assert zoom.options == {"scale": 150}


@pytest.mark.anyio
async def test_zoom_out_of_range(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError) as excinfo:
        await dispatch(fake_store, _action("setZoom", "Raw", {"scale": 5}))
    assert excinfo.value.detail.failed_field == "scale"


# --- merges ------------------------------------------------------------------


@pytest.mark.anyio
async def test_merge_across_merges_each_row(fake_store: FakeGridStore) -> None:
    message = await dispatch(fake_store, _action("mergeCells", "A1:C2", {"across": True}))
    assert [command.address for command in fake_store.commands] == ["A1:C1", "A2:C2"]
    assert message == "Merged 2 row(s) across."


@pytest.mark.anyio
async def test_merge_single_cell_is_rejected(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError, match="single cell"):
        await dispatch(fake_store, _action("merge", "B2"))


@pytest.mark.anyio
async def test_unmerge_reports_count(fake_store: FakeGridStore) -> None:
    fake_store.results["unmerge_cells"] = 2
    assert await dispatch(fake_store, _action("unmerge", "A1:D9")) == "Unmerged 2 range(s)."


# --- names and protection ----------------------------------------------------


@pytest.mark.anyio
async def test_named_ranges(fake_store: FakeGridStore) -> None:
    message = await dispatch(
        fake_store, _action("createNamedRange", "Data!A1:B5", {"rangeName": "Totals"})
    )
    command = fake_store.commands[0]
    assert (command.sheet, command.address, command.name) == ("Data", "A1:B5", "Totals")
    assert message == "Totals=Data!A1:B5"

    fake_store.results["list_named_ranges"] = [("Totals", "Data!$A$1:$B$5")]
    listed = await dispatch(fake_store, _action("listNamedRanges"))
    assert listed == "Totals=Data!$A$1:$B$5"


@pytest.mark.anyio
async def test_list_named_ranges_when_empty(fake_store: FakeGridStore) -> None:
    fake_store.results["list_named_ranges"] = []
    assert await dispatch(fake_store, _action("listNamedRanges")) == "No named ranges."


@pytest.mark.anyio
async def test_update_named_range_requires_change(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError, match="newRange or comment"):
        await dispatch(fake_store, _action("updateNamedRange", "Totals", {}))


@pytest.mark.anyio
async def test_protect_sheet_passes_permissions(fake_store: FakeGridStore) -> None:
    await dispatch(
        fake_store,
        _action("protectSheet", "Sheet1", {"password": "pw", "allowSort": True}),
    )
    await dispatch(fake_store, _action("protectWorkbook"))
    sheet, book = fake_store.commands
    assert sheet.sheet == "Sheet1"
    assert sheet.options == {
        "password": "pw",
        "allow_format_cells": False,
        "allow_insert_rows": False,
        "allow_delete_rows": False,
        "allow_sort": True,
        "allow_auto_filter": False,
    }
    assert book.op == "protect_workbook"
    assert book.options == {}


@pytest.mark.anyio
async def test_range_lock_flags(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("protectRange", "A1:B2"))
    await dispatch(fake_store, _action("unprotectRange", "A1:B2"))
    assert [command.options for command in fake_store.commands] == [
        {"locked": True},
        {"locked": False},
    ]


# --- pivots and slicers -------------------------------------------------------


@pytest.mark.anyio
async def test_create_pivot_from_table_name(fake_store: FakeGridStore) -> None:
    fake_store.results["describe_table"] = SALES_TABLE
    message = await dispatch(
        fake_store,
        _action("createPivotTable", "Sales", {"pivotName": "ByRegion", "destination": "Report!A3"}),
    )
    describe, create = fake_store.commands
    assert describe.name == "Sales"
    assert (create.sheet, create.address, create.name) == ("Sheet1", "A1:C5", "ByRegion")
    assert create.options == {"destination_sheet": "Report", "destination": "A3"}
    assert message == 'Created PivotTable "ByRegion" at Report!A3.'


@pytest.mark.anyio
async def test_add_pivot_field_maps_functions(fake_store: FakeGridStore) -> None:
    await dispatch(
        fake_store,
        _action(
            "addPivotField",
            "ByRegion",
            {"fieldName": "Amount", "area": "Values", "summarizeBy": "Avg"},
        ),
    )
    await dispatch(
        fake_store, _action("addPivotField", "ByRegion", {"field": "Region", "area": "row"})
    )
    data_field, row_field = fake_store.commands
    assert data_field.options == {"field": "Amount", "area": "data", "function": "average"}
    assert row_field.options == {"field": "Region", "area": "row"}


@pytest.mark.anyio
async def test_refresh_all_pivots_needs_no_target(fake_store: FakeGridStore) -> None:
    message = await dispatch(fake_store, _action("refreshPivotTable", "", {"refreshAll": True}))
    assert message == "Refreshed all PivotTables."
    assert fake_store.commands[0].name is None


@pytest.mark.anyio
async def test_table_slicer_requires_known_field(fake_store: FakeGridStore) -> None:
    fake_store.results["describe_table"] = SALES_TABLE
    with pytest.raises(InvalidPayloadError, match='Field "Year" not found') as excinfo:
        await dispatch(
            fake_store,
            _action("createSlicer", "Sales", {"sourceType": "Table", "field": "Year"}),
        )
    assert excinfo.value.detail.failed_field == "field"
    assert fake_store.ops() == ["describe_table"]


@pytest.mark.anyio
async def test_connect_slicer_recreates_it(fake_store: FakeGridStore) -> None:
    fake_store.results["describe_slicer"] = {
        "left": 10,
        "top": 20,
        "width": 150,
        "height": 180,
        "style": "SlicerStyleLight2",
        "caption": "Region",
    }
    await dispatch(
        fake_store,
        _action(
            "connectSlicerToPivot",
            "RegionSlicer",
            {"pivotName": "ByRegion", "field": "Region"},
        ),
    )
    assert fake_store.ops() == ["describe_slicer", "delete_slicer", "add_slicer"]
    added = fake_store.commands[2]
    assert added.name == "RegionSlicer"
    assert added.options["position"] == {"left": 10, "top": 20, "width": 150, "height": 180}
    assert added.options["source_type"] == "pivot"


# --- shapes, comments, links, page layout ------------------------------------


@pytest.mark.anyio
async def test_insert_image_decodes_data_url(fake_store: FakeGridStore) -> None:
    encoded = base64.b64encode(b"\x89PNG fake").decode("ascii")
    await dispatch(
        fake_store,
        _action("insertImage", "C3:E9", {"base64": f"data:image/png;base64,{encoded}"}),
    )
    command = fake_store.commands[0]
    assert command.address == "C3"
    assert command.options == {"data": b"\x89PNG fake"}


@pytest.mark.anyio
async def test_insert_image_rejects_bad_base64(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError) as excinfo:
        await dispatch(fake_store, _action("insertImage", "C3", {"image": "not base64!"}))
    assert excinfo.value.detail.failed_field == "image"


@pytest.mark.anyio
async def test_shape_actions(fake_store: FakeGridStore) -> None:
    fake_store.results["add_shape"] = "Rectangle 1"
    message = await dispatch(
        fake_store, _action("insertShape", "B2", {"type": "oval", "fill": "00ff00"})
    )
    await dispatch(fake_store, _action("arrangeShapes", "Rectangle 1", {"action": "bringToFront"}))
    shape, arrange = fake_store.commands
    assert shape.options == {
        "shape_type": "oval",
        "width": 100,
        "height": 60,
        "fill": "#00FF00",
    }
    assert message == 'Inserted shape "Rectangle 1".'
    assert (arrange.name, arrange.options) == ("Rectangle 1", {"order": "bringToFront"})


@pytest.mark.anyio
async def test_format_shape_requires_a_property(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError, match="at least one property"):
        await dispatch(fake_store, _action("formatShape", "Rectangle 1", {}))


@pytest.mark.anyio
async def test_comment_and_hyperlink_use_top_left_cell(fake_store: FakeGridStore) -> None:
    await dispatch(fake_store, _action("addComment", "B2:C4", {"text": "check"}))
    await dispatch(
        fake_store,
        _action("addHyperlink", "D1:D3", {"url": "https://example.com", "displayText": "Site"}),
    )
    comment, link = fake_store.commands
    assert (comment.address, comment.options) == ("B2", {"text": "check"})
    assert link.address == "D1"
    assert link.options == {"link": "https://example.com", "text": "Site"}


@pytest.mark.anyio
async def test_page_layout_actions(fake_store: FakeGridStore) -> None:
    message = await dispatch(
        fake_store, _action("setPageBreaks", "Report", {"rows": [20, 40], "columns": [5]})
    )
    await dispatch(
        fake_store, _action("setPageOrientation", "Report", {"orientation": "Landscape"})
    )
    breaks, orientation = fake_store.commands
    assert message == "Added 3 page break(s)."
    assert breaks.options == {"rows": [20, 40], "columns": [5]}
    assert (orientation.op, orientation.options) == (
        "set_page_setup",
        {"orientation": "landscape"},
    )


@pytest.mark.anyio
async def test_page_setup_requires_an_option(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError, match="requires at least one option"):
        await dispatch(fake_store, _action("setPageSetup", "Report", {}))


# --- store failures ----------------------------------------------------------


@pytest.mark.anyio
async def test_store_rejection_becomes_host_error(fake_store: FakeGridStore) -> None:
    fake_store.failures["add_sheet"] = ValueError("Sheet already exists: Summary")
    with pytest.raises(HostApiError) as excinfo:
        await dispatch(fake_store, _action("createSheet", "Summary"))
    detail = excinfo.value.detail
    assert detail.error_code == "host_api_failure"
    assert detail.message == "Sheet already exists: Summary"
    assert detail.hint == "Choose a name that is not in use."
