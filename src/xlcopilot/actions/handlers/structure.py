from __future__ import annotations

from xlcopilot.actions.errors import TargetValueError
from xlcopilot.actions.payloads import EmptyPayload, InsertPayload
from xlcopilot.shared.a1 import (
    InvalidAddressError,
    column_index_to_label,
    parse_column_span,
    parse_row_span,
)
from xlcopilot.store.base import GridStore

from .common import submit


def _rows(target: str, example: str) -> tuple[str | None, int, int]:
    try:
        return parse_row_span(target)
    except InvalidAddressError as exc:
        raise TargetValueError(
            f'Invalid row range "{target}". Use format "{example}".'
        ) from exc


def _columns(target: str, example: str) -> tuple[str | None, int, int]:
    try:
        return parse_column_span(target)
    except InvalidAddressError as exc:
        raise TargetValueError(
            f'Invalid column range "{target}". Use format "{example}".'
        ) from exc


async def insert_rows(
    store: GridStore, target: str, payload: InsertPayload
) -> str | None:
    """Insert the spanned rows ``count`` times, shifting cells down."""
    sheet, start, span = _rows(target, "5:7")
    amount = span * payload.count
    await submit(
        store, "insert_rows", sheet=sheet, address=str(start + 1), index=start, amount=amount
    )
    return f"Inserted {amount} row(s) at row {start + 1}."


async def insert_columns(
    store: GridStore, target: str, payload: InsertPayload
) -> str | None:
    """Insert the spanned columns ``count`` times, shifting cells right."""
    sheet, start, span = _columns(target, "C:E")
    amount = span * payload.count
    label = column_index_to_label(start)
    await submit(
        store, "insert_columns", sheet=sheet, address=label, index=start, amount=amount
    )
    return f"Inserted {amount} column(s) at column {label}."


async def delete_rows(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    sheet, start, span = _rows(target, "10:15")
    await submit(
        store, "delete_rows", sheet=sheet, address=str(start + 1), index=start, amount=span
    )
    return f"Deleted {span} row(s)."


async def delete_columns(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    sheet, start, span = _columns(target, "D:F")
    label = column_index_to_label(start)
    await submit(
        store, "delete_columns", sheet=sheet, address=label, index=start, amount=span
    )
    return f"Deleted {span} column(s)."
