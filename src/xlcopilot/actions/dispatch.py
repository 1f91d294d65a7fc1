from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, ValidationError

from xlcopilot.shared.a1 import CellRange, InvalidAddressError, parse_range
from xlcopilot.shared.formula import FormulaSyntaxError
from xlcopilot.store.base import GridStore

from .errors import (
    ActionError,
    HostApiError,
    InvalidPayloadError,
    InvalidTargetError,
    PayloadValueError,
    TargetValueError,
    UnsupportedActionError,
)
from .models import Action
from .payloads import ActionPayload
from .specs import ActionSpec, get_action_spec
from .types import ActionKind

logger = logging.getLogger(__name__)


class PreparedAction(BaseModel):
    """Action whose kind, target and payload have been validated."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    action: Action
    spec: ActionSpec
    target: CellRange | str
    payload: ActionPayload

    @property
    def target_range(self) -> CellRange | None:
        return self.target if isinstance(self.target, CellRange) else None


def prepare_action(
    action: Action, *, specs: dict[ActionKind, ActionSpec] | None = None
) -> PreparedAction:
    """Look up the kind, resolve the target and parse the payload.

    No grid-store calls are made.

    Raises:
        UnsupportedActionError: Unknown kind.
        InvalidTargetError: Malformed or missing target.
        InvalidPayloadError: Payload does not match the kind's schema.
    """
    spec = get_action_spec(action.kind, specs)
    if spec is None:
        raise UnsupportedActionError.from_action(
            action,
            f"Unsupported action type: {action.kind}",
            hint="Use one of the catalog kinds, e.g. values, formula, format.",
        )
    target = _resolve_target(action, spec)
    payload = _parse_payload(action, spec)
    return PreparedAction(action=action, spec=spec, target=target, payload=payload)


def _resolve_target(action: Action, spec: ActionSpec) -> CellRange | str:
    if not action.target and spec.target_required:
        raise InvalidTargetError.from_action(
            action,
            f"{action.kind} requires a target.",
            hint="Set target to an A1 range or an object name.",
        )
    if spec.target_mode == "logical_name":
        return action.target
    try:
        return parse_range(action.target)
    except InvalidAddressError as exc:
        raise InvalidTargetError.from_action(
            action,
            str(exc),
            hint="Use an A1 address like A1, A1:D10 or 'My Sheet'!B2.",
        ) from exc


def _parse_payload(action: Action, spec: ActionSpec) -> ActionPayload:
    model = spec.payload_model
    try:
        return model.from_data(action.payload, spec.payload_aliases)
    except ValidationError as exc:
        failed_field, message = _summarize_validation_error(exc)
        raise InvalidPayloadError.from_action(
            action,
            f"Invalid {action.kind} payload: {message}",
            failed_field=failed_field,
            expected_fields=_expected_fields(model),
        ) from exc
    except ValueError as exc:
        raise InvalidPayloadError.from_action(
            action,
            f"Invalid {action.kind} payload: {exc}",
            expected_fields=_expected_fields(model),
        ) from exc


def _summarize_validation_error(exc: ValidationError) -> tuple[str | None, str]:
    """Return the first failing field path and a one-line message."""
    errors = exc.errors()
    if not errors:
        return None, str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = str(first.get("msg", "invalid value"))
    if not location:
        return None, message
    return location, f"{location}: {message}"


def _expected_fields(model: type[ActionPayload]) -> list[str]:
    return [field.alias or name for name, field in model.model_fields.items()]


async def run_prepared(store: GridStore, prepared: PreparedAction) -> str | None:
    """Invoke the handler and normalize its failures into ``ActionError``."""
    action = prepared.action
    logger.debug("dispatch %s -> %s", action.kind, action.target or "<active>")
    try:
        return await prepared.spec.handler(store, prepared.target, prepared.payload)
    except ActionError:
        raise
    except PayloadValueError as exc:
        raise InvalidPayloadError.from_action(
            action, str(exc), failed_field=exc.failed_field
        ) from exc
    except FormulaSyntaxError as exc:
        raise InvalidPayloadError.from_action(action, str(exc)) from exc
    except (TargetValueError, InvalidAddressError) as exc:
        raise InvalidTargetError.from_action(action, str(exc)) from exc
    except Exception as exc:
        raise HostApiError.from_exception(action, exc) from exc


async def dispatch(
    store: GridStore,
    action: Action,
    *,
    specs: dict[ActionKind, ActionSpec] | None = None,
) -> str | None:
    """Validate one action and run it against the store."""
    return await run_prepared(store, prepare_action(action, specs=specs))

