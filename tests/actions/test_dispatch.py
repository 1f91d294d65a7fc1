from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from xlcopilot.actions.dispatch import dispatch, prepare_action, run_prepared
from xlcopilot.actions.errors import (
    HostApiError,
    InvalidPayloadError,
    InvalidTargetError,
    UnsupportedActionError,
)
from xlcopilot.actions.models import Action
from xlcopilot.actions.payloads import FormatPayload
from xlcopilot.shared.a1 import CellRange

if TYPE_CHECKING:
    from conftest import FakeGridStore


@pytest.mark.anyio
async def test_unknown_kind_makes_no_store_calls(fake_store: FakeGridStore) -> None:
    with pytest.raises(UnsupportedActionError, match="Unsupported action type: explode") as excinfo:
        await dispatch(fake_store, Action(kind="explode", target="A1"))
    assert excinfo.value.detail.error_code == "unsupported_action"
    assert fake_store.calls == []


def test_prepare_parses_range_target() -> None:
    prepared = prepare_action(Action(kind="values", target="Sheet2!B2:C3", data="[[1,2],[3,4]]"))
    assert isinstance(prepared.target, CellRange)
    assert prepared.target_range is not None
    assert prepared.target_range.sheet == "Sheet2"


def test_prepare_keeps_logical_target() -> None:
    prepared = prepare_action(Action(kind="renameSheet", target="Data", data='{"newName": "Raw"}'))
    assert prepared.target == "Data"
    assert prepared.target_range is None


def test_prepare_applies_payload_aliases() -> None:
    prepared = prepare_action(
        Action(kind="format", target="A1", data='{"color": "ff0000", "size": 12}')
    )
    assert isinstance(prepared.payload, FormatPayload)
    assert prepared.payload.font_color == "#FF0000"
    assert prepared.payload.font_size == 12


def test_missing_required_target() -> None:
    with pytest.raises(InvalidTargetError, match="values requires a target"):
        prepare_action(Action(kind="values", target="", data="1"))


def test_optional_target_may_be_empty() -> None:
    prepared = prepare_action(Action(kind="clearFilter"))
    assert prepared.target == ""


def test_malformed_target() -> None:
    with pytest.raises(InvalidTargetError) as excinfo:
        prepare_action(Action(kind="values", target="A1:B2:C3", data="1"))
    assert excinfo.value.detail.hint is not None


def test_payload_schema_error_names_field() -> None:
    with pytest.raises(InvalidPayloadError, match="Invalid format payload") as excinfo:
        prepare_action(Action(kind="format", target="A1", data='{"fontSize": -3}'))
    detail = excinfo.value.detail
    assert detail.failed_field == "fontSize"
    assert "bold" in detail.expected_fields
    assert "fontColor" in detail.expected_fields


def test_payload_json_error() -> None:
    with pytest.raises(InvalidPayloadError, match="Invalid sort payload"):
        prepare_action(Action(kind="sort", target="A1:B4", data="{bad"))


def test_payload_alias_conflict() -> None:
    with pytest.raises(InvalidPayloadError, match="conflicting fields"):
        prepare_action(
            Action(
                kind="format",
                target="A1",
                data='{"color": "#FF0000", "fontColor": "#00FF00"}',
            )
        )


@pytest.mark.anyio
async def test_store_failure_becomes_host_error(fake_store: FakeGridStore) -> None:
    fake_store.failures["set_format"] = ValueError("Sheet not found: Missing")
    prepared = prepare_action(Action(kind="format", target="Missing!A1", data='{"bold": true}'))
    with pytest.raises(HostApiError, match="Sheet not found: Missing") as excinfo:
        await run_prepared(fake_store, prepared)
    assert excinfo.value.detail.error_code == "host_api_failure"


@pytest.mark.anyio
async def test_handler_payload_problem_becomes_payload_error(fake_store: FakeGridStore) -> None:
    with pytest.raises(InvalidPayloadError, match="does not match target") as excinfo:
        await dispatch(fake_store, Action(kind="values", target="A1:B2", data="[[1, 2, 3]]"))
    assert excinfo.value.detail.failed_field == "values"
    assert fake_store.calls == []


@pytest.mark.anyio
async def test_dispatch_runs_handler(fake_store: FakeGridStore) -> None:
    message = await dispatch(
        fake_store, Action(kind="format", target="B2:C3", data='{"bold": true}')
    )
    (command,) = fake_store.commands
    assert command.op == "set_format"
    assert command.address == "B2:C3"
    assert command.options == {"bold": True}
    assert message == "Formatted: bold."


def test_required_source_address_is_validated() -> None:
    with pytest.raises(InvalidPayloadError, match="source must be an A1 range") as excinfo:
        prepare_action(Action(kind="copy", target="D1", data='{"source": "not a range"}'))
    assert excinfo.value.detail.failed_field == "source"
    prepared = prepare_action(
        Action(kind="copy", target="D1", data='{"source": "data!a1:b2"}')
    )
    assert prepared.payload.source == "data!A1:B2"
