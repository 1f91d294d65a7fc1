from __future__ import annotations

import base64
import binascii

from xlcopilot.actions.errors import PayloadValueError
from xlcopilot.actions.payloads import (
    ArrangeShapePayload,
    EmptyPayload,
    FormatShapePayload,
    GroupShapesPayload,
    InsertImagePayload,
    InsertShapePayload,
    InsertTextBoxPayload,
)
from xlcopilot.shared.a1 import CellRange
from xlcopilot.store.base import GridStore

from .common import require_name, submit, submit_on_range


async def insert_shape(
    store: GridStore, target: CellRange, payload: InsertShapePayload
) -> str | None:
    created = await submit_on_range(
        store, "add_shape", target.resize(1, 1), **payload.model_dump(exclude_none=True)
    )
    return f'Inserted shape "{created}".' if isinstance(created, str) else None


async def insert_image(
    store: GridStore, target: CellRange, payload: InsertImagePayload
) -> str | None:
    """Anchor a base64-encoded image at the target's top-left cell."""
    encoded = payload.image
    if encoded.startswith("data:"):
        encoded = encoded.split(",", 1)[-1]
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadValueError(
            "image must be base64-encoded PNG or JPEG data.", failed_field="image"
        ) from exc
    await submit_on_range(
        store,
        "add_image",
        target.resize(1, 1),
        data=data,
        name=payload.name,
        width=payload.width,
        height=payload.height,
    )
    return None


async def insert_text_box(
    store: GridStore, target: CellRange, payload: InsertTextBoxPayload
) -> str | None:
    await submit_on_range(
        store,
        "add_text_box",
        target.resize(1, 1),
        **payload.model_dump(exclude_none=True),
    )
    return None


async def format_shape(
    store: GridStore, target: str, payload: FormatShapePayload
) -> str | None:
    name = require_name(None, target, field_name="target")
    options = payload.model_dump(exclude_none=True)
    if not options:
        raise PayloadValueError("formatShape requires at least one property.")
    await submit(store, "format_shape", name=name, **options)
    return None


async def delete_shape(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    await submit(store, "delete_shape", name=require_name(None, target, field_name="target"))
    return None


async def group_shapes(
    store: GridStore, target: str, payload: GroupShapesPayload
) -> str | None:
    """Group shapes; the target names the new group."""
    await submit(
        store, "group_shapes", name=target.strip() or None, shapes=payload.shapes
    )
    return None


async def arrange_shapes(
    store: GridStore, target: str, payload: ArrangeShapePayload
) -> str | None:
    name = require_name(None, target, field_name="target")
    await submit(store, "arrange_shape", name=name, order=payload.order)
    return None


async def ungroup_shapes(
    store: GridStore, target: str, payload: EmptyPayload
) -> str | None:
    await submit(store, "ungroup_shapes", name=require_name(None, target, field_name="target"))
    return None
