from __future__ import annotations

import json
import logging
from typing import Any, cast

from .models import Action
from .specs import ACTION_SPECS, ActionSpec, resolve_kind
from .types import ActionKind

logger = logging.getLogger(__name__)

_ACTION_KEYS = frozenset({"type", "kind", "target", "data", "payload"})


def coerce_actions(
    actions_data: object, *, specs: dict[ActionKind, ActionSpec] | None = None
) -> list[Action]:
    """Normalize NL-layer action requests into ``Action`` models.

    Accepts a list of dicts or JSON strings, or an object with an ``actions``
    list (the batch file shape).

    Raises:
        ValueError: If an item is not an object or cannot be parsed.
    """
    items = unwrap_action_list(actions_data)
    normalized: list[Action] = []
    for index, raw_action in enumerate(items):
        if isinstance(raw_action, str):
            parsed = parse_action_json(raw_action, index=index)
        elif isinstance(raw_action, dict):
            parsed = dict(raw_action)
        else:
            raise ValueError(
                build_action_error_message(index, "item must be an object or JSON string")
            )
        normalized.append(normalize_action(parsed, index=index, specs=specs))
    return normalized


def unwrap_action_list(data: object) -> list[object]:
    """Return the action list from a bare list or an ``{"actions": [...]}`` object."""
    if isinstance(data, dict):
        data = data.get("actions")
    if not isinstance(data, list):
        raise ValueError(
            'Action batch must be a JSON list or an object with an "actions" list.'
        )
    return cast(list[object], data)


def normalize_action(
    action_data: dict[str, Any],
    *,
    index: int,
    specs: dict[ActionKind, ActionSpec] | None = None,
) -> Action:
    """Resolve kind aliases and fold top-level extras into the payload."""
    raw_kind = action_data.get("type", action_data.get("kind"))
    if not isinstance(raw_kind, str) or not raw_kind.strip():
        raise ValueError(build_action_error_message(index, "missing 'type'"))
    kind = raw_kind.strip()
    canonical = resolve_kind(kind, ACTION_SPECS if specs is None else specs)
    if canonical is not None and canonical != kind:
        logger.debug("actions[%d]: resolved kind alias %s -> %s", index, kind, canonical)
        kind = canonical
    target = action_data.get("target")
    if target is not None and not isinstance(target, str):
        raise ValueError(build_action_error_message(index, "'target' must be a string"))
    payload = action_data.get("data", action_data.get("payload"))
    extras = {
        key: value for key, value in action_data.items() if key not in _ACTION_KEYS
    }
    if extras:
        payload = merge_payload_extras(payload, extras, index=index)
    return Action(kind=kind, target=target or "", payload=payload)


def merge_payload_extras(
    payload: object, extras: dict[str, Any], *, index: int
) -> object:
    """Merge top-level request keys under the payload; payload keys win."""
    if payload is None or payload == "":
        return extras
    if isinstance(payload, dict):
        return {**extras, **payload}
    if isinstance(payload, str):
        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, dict):
            return {**extras, **decoded}
    logger.debug(
        "actions[%d]: ignoring top-level keys %s for non-object data",
        index,
        sorted(extras),
    )
    return payload


def parse_action_json(raw_action: str, *, index: int) -> dict[str, Any]:
    """Parse a JSON string action into object form."""
    text = raw_action.strip()
    if not text:
        raise ValueError(build_action_error_message(index, "empty string"))
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(build_action_error_message(index, "invalid JSON")) from exc
    if not isinstance(parsed, dict):
        raise ValueError(build_action_error_message(index, "JSON value must be an object"))
    return cast(dict[str, Any], parsed)


def build_action_error_message(index: int, reason: str) -> str:
    """Build a consistent validation message for invalid action requests."""
    example = '{"type":"values","target":"A1:B1","data":"[[1,2]]"}'
    return (
        f"Invalid action at actions[{index}]: {reason}. "
        f"Use object form like {example}."
    )
