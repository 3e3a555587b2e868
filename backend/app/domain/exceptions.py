from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base class for every business-rule failure raised by the core.

    ``context`` carries structured ids and states so the boundary layer can
    log them and build an error payload without parsing the message.
    """

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})


class NotFound(DomainException):
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            f"{resource} with ID {resource_id} not found",
            {"resource": resource, "resource_id": resource_id, **(context or {})},
        )
        self.resource = resource
        self.resource_id = resource_id


class InvalidStateTransition(DomainException):
    code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        message: str,
        *,
        current_state: Any,
        attempted_action: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        state_value = getattr(current_state, "value", current_state)
        super().__init__(
            message,
            {"current_state": state_value, "attempted_action": attempted_action, **(context or {})},
        )
        self.current_state = current_state
        self.attempted_action = attempted_action


class ValidationFailure(DomainException):
    code = "VALIDATION_FAILED"

    def __init__(self, message: str, *, field: Optional[str] = None, context: Optional[Dict[str, Any]] = None) -> None:
        payload = dict(context or {})
        if field is not None:
            payload["field"] = field
        super().__init__(message, payload)
        self.field = field


class Expired(DomainException):
    code = "EXPIRED"

    def __init__(self, message: str, *, expired_at: datetime, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, {"expired_at": expired_at.isoformat(), **(context or {})})
        self.expired_at = expired_at


class PermissionDenied(DomainException):
    code = "PERMISSION_DENIED"


class Conflict(DomainException):
    code = "CONFLICT"
