"""Comments, notes, sparklines, linked data types and hyperlinks."""

from __future__ import annotations

from xlcopilot.actions.payloads import (
    CommentPayload,
    ConfigureSparklinePayload,
    CreateSparklinePayload,
    EmptyPayload,
    HyperlinkPayload,
    InsertDataTypePayload,
    ResolveCommentPayload,
)
from xlcopilot.shared.a1 import CellRange
from xlcopilot.store.base import GridOp, GridStore

from .common import submit_on_range


async def _comment(
    store: GridStore, op: GridOp, target: CellRange, payload: CommentPayload
) -> str | None:
    await submit_on_range(
        store, op, target.resize(1, 1), text=payload.text, author=payload.author
    )
    return None


async def add_comment(
    store: GridStore, target: CellRange, payload: CommentPayload
) -> str | None:
    return await _comment(store, "add_comment", target, payload)


async def add_note(
    store: GridStore, target: CellRange, payload: CommentPayload
) -> str | None:
    return await _comment(store, "add_note", target, payload)


async def edit_comment(
    store: GridStore, target: CellRange, payload: CommentPayload
) -> str | None:
    return await _comment(store, "edit_comment", target, payload)


async def edit_note(
    store: GridStore, target: CellRange, payload: CommentPayload
) -> str | None:
    return await _comment(store, "edit_note", target, payload)


async def delete_comment(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "delete_comment", target.resize(1, 1))
    return None


async def delete_note(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "delete_note", target.resize(1, 1))
    return None


async def reply_to_comment(
    store: GridStore, target: CellRange, payload: CommentPayload
) -> str | None:
    return await _comment(store, "reply_to_comment", target, payload)


async def resolve_comment(
    store: GridStore, target: CellRange, payload: ResolveCommentPayload
) -> str | None:
    await submit_on_range(
        store, "resolve_comment", target.resize(1, 1), resolved=payload.resolved
    )
    return None


async def create_sparkline(
    store: GridStore, target: CellRange, payload: CreateSparklinePayload
) -> str | None:
    """Place sparklines in the target, one per row of ``sourceData``."""
    await submit_on_range(
        store,
        "add_sparkline",
        target,
        source_data=payload.source_data,
        type=payload.type,
        color=payload.color,
    )
    return None


async def configure_sparkline(
    store: GridStore, target: CellRange, payload: ConfigureSparklinePayload
) -> str | None:
    await submit_on_range(
        store, "update_sparkline", target, **payload.model_dump(exclude_none=True)
    )
    return None


async def delete_sparkline(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "delete_sparkline", target)
    return None


async def insert_data_type(
    store: GridStore, target: CellRange, payload: InsertDataTypePayload
) -> str | None:
    await submit_on_range(
        store,
        "insert_data_type",
        target.resize(1, 1),
        data_type=payload.data_type,
        text=payload.text,
    )
    return None


async def refresh_data_type(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "refresh_data_types", target)
    return None


async def add_hyperlink(
    store: GridStore, target: CellRange, payload: HyperlinkPayload
) -> str | None:
    await submit_on_range(
        store,
        "set_hyperlink",
        target.resize(1, 1),
        link=payload.address,
        text=payload.text,
        tooltip=payload.tooltip,
    )
    return None


async def edit_hyperlink(
    store: GridStore, target: CellRange, payload: HyperlinkPayload
) -> str | None:
    """Change an existing link; the store rejects cells without one."""
    await submit_on_range(
        store,
        "edit_hyperlink",
        target.resize(1, 1),
        link=payload.address,
        text=payload.text,
        tooltip=payload.tooltip,
    )
    return None


async def remove_hyperlink(
    store: GridStore, target: CellRange, payload: EmptyPayload
) -> str | None:
    await submit_on_range(store, "remove_hyperlink", target)
    return None
