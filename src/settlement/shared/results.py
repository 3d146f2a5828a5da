"""Typed operation results.

Public operations return ``Ok(value)`` or ``Err(kind, message, details)``
instead of letting exceptions escape to callers. ``capture`` runs a callable
(usually ``current_domain.process``) and maps the domain exceptions onto
error kinds.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from settlement.shared.errors import BusinessRuleViolation, ConcurrentModification, GatewayFailure

logger = structlog.get_logger(__name__)


class ErrorKind(Enum):
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    GATEWAY_FAILURE = "gateway_failure"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Ok:
    value: Any = None

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self):
        return self.value


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    details: dict = field(default_factory=dict)
    code: str | None = None

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self):
        raise ValueError(f"Called unwrap on Err({self.kind.value}): {self.message}")


Result = Ok | Err


def _first_message(messages: dict) -> str:
    for key, values in messages.items():
        if isinstance(values, (list, tuple)) and values:
            return f"{key}: {values[0]}"
        return f"{key}: {values}"
    return "Invalid request"


def from_exception(exc: Exception) -> Err:
    """Map a domain exception onto an ``Err``. Unknown exceptions propagate."""
    if isinstance(exc, BusinessRuleViolation):
        return Err(ErrorKind.BUSINESS_RULE, _first_message(exc.messages), dict(exc.messages), exc.code)
    if isinstance(exc, ValidationError):
        return Err(ErrorKind.VALIDATION, _first_message(exc.messages), dict(exc.messages))
    if isinstance(exc, ConcurrentModification):
        return Err(
            ErrorKind.CONCURRENT_MODIFICATION,
            str(exc),
            {
                "entity": exc.entity,
                "id": exc.identifier,
                "expected_version": exc.expected_version,
                "actual_version": exc.actual_version,
            },
        )
    if isinstance(exc, ExpectedVersionError):
        return Err(ErrorKind.CONCURRENT_MODIFICATION, str(exc))
    if isinstance(exc, GatewayFailure):
        return Err(ErrorKind.GATEWAY_FAILURE, exc.reason, {"gateway": exc.gateway})
    if isinstance(exc, ObjectNotFoundError):
        return Err(ErrorKind.NOT_FOUND, str(exc))
    raise exc


def capture(operation: Callable[[], Any]) -> Ok | Err:
    """Run ``operation`` and wrap its outcome in a result."""
    try:
        return Ok(operation())
    except (
        ValidationError,
        ConcurrentModification,
        ExpectedVersionError,
        GatewayFailure,
        ObjectNotFoundError,
    ) as exc:
        err = from_exception(exc)
        logger.info("Operation rejected", kind=err.kind.value, reason=err.message)
        return err


def raise_for(err: Err):
    """Re-raise an ``Err`` inside a command handler so the unit of work rolls back."""
    if err.kind == ErrorKind.NOT_FOUND:
        raise ObjectNotFoundError(err.message)
    if err.kind == ErrorKind.BUSINESS_RULE:
        raise BusinessRuleViolation({_error_field(err): [err.message]}, code=err.code or "business_rule")
    if err.kind == ErrorKind.GATEWAY_FAILURE:
        raise GatewayFailure(err.details.get("gateway", "gateway"), err.message)
    raise ValidationError({_error_field(err): [err.message]})


def _error_field(err: Err) -> str:
    if "coupon_code" in err.details:
        return "coupon_code"
    return next(iter(err.details), "request") if err.details else "request"
