from __future__ import annotations

from typing import ClassVar

from .models import Action, ActionErrorDetail
from .types import ActionErrorCode


class ActionError(ValueError):
    """Action failure with structured detail."""

    error_code: ClassVar[ActionErrorCode] = "host_api_failure"

    def __init__(self, detail: ActionErrorDetail) -> None:
        super().__init__(detail.message)
        self.detail = detail

    @classmethod
    def from_action(
        cls,
        action: Action,
        message: str,
        *,
        hint: str | None = None,
        failed_field: str | None = None,
        expected_fields: list[str] | None = None,
    ) -> ActionError:
        """Build an error of this class for the given action."""
        detail = ActionErrorDetail(
            error_code=cls.error_code,
            kind=action.kind,
            target=action.target,
            message=message,
            hint=hint,
            failed_field=failed_field,
            expected_fields=list(expected_fields or []),
        )
        return cls(detail)


class InvalidTargetError(ActionError):
    """Target string fails address parsing, or is empty when required."""

    error_code: ClassVar[ActionErrorCode] = "invalid_target"


class UnsupportedActionError(ActionError):
    """Action kind is not in the catalog."""

    error_code: ClassVar[ActionErrorCode] = "unsupported_action"


class InvalidPayloadError(ActionError):
    """Payload does not match the schema of its action kind."""

    error_code: ClassVar[ActionErrorCode] = "invalid_payload"


class HostApiError(ActionError):
    """The grid store rejected an operation."""

    error_code: ClassVar[ActionErrorCode] = "host_api_failure"

    @classmethod
    def from_exception(cls, action: Action, exc: Exception) -> HostApiError:
        """Wrap a grid-store exception, attaching a hint for known failures."""
        message = str(exc) or exc.__class__.__name__
        error = cls.from_action(action, message, hint=_host_error_hint(message))
        error.detail.raw_host_message = _extract_raw_com_message(exc)
        return error


class UndoCaptureError(ActionError):
    """Snapshot capture failed; the action runs without an undo entry."""

    error_code: ClassVar[ActionErrorCode] = "undo_capture_failure"


class PayloadValueError(ValueError):
    """Raised by handlers for payload problems the schema cannot express."""

    def __init__(self, message: str, *, failed_field: str | None = None) -> None:
        super().__init__(message)
        self.failed_field = failed_field


class TargetValueError(ValueError):
    """Raised by handlers when a logical target cannot be resolved."""


def _host_error_hint(message: str) -> str | None:
    """Classify known grid-store messages into a short hint."""
    lowered = message.lower()
    matchers: tuple[tuple[str, str], ...] = (
        ("intersects existing table", "Pick a range that does not overlap a table."),
        ("overlaps existing merged", "Unmerge the cells first or pick another range."),
        ("read-only", "The range contains merged cells; unmerge them first."),
        ("already exists", "Choose a name that is not in use."),
        ("sheet not found", "Check the sheet name in the target."),
        ("table not found", "Check the table name in the target or payload."),
        ("named range not found", "Check the name; list named ranges first."),
        ("not supported by", "Run this action against Excel (com backend)."),
        ("does not match", "Make the payload shape match the target range."),
        ("password", "Provide the password used to protect it."),
        (
            "no computed value",
            "Recalculate the workbook in Excel, or use copy to keep formulas.",
        ),
    )
    for needle, hint in matchers:
        if needle in lowered:
            return hint
    return None


def _extract_raw_com_message(exc: Exception) -> str | None:
    """Extract raw COM exception text when applicable."""
    class_name = exc.__class__.__name__.lower()
    message = str(exc)
    if "com_error" in class_name:
        return message
    if "hresult" in message.lower() or "-2147" in message:
        return message
    return None
