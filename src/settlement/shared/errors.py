"""Domain exceptions raised inside aggregates and command handlers.

Raising rolls back the command's unit of work. The public facades convert
these into ``Err`` values (see ``settlement.shared.results``).
"""

from protean.exceptions import ValidationError


class BusinessRuleViolation(ValidationError):
    """A well-formed request that breaks a business rule.

    Examples: coupon usage limit reached, insufficient vendor balance, an
    order transition that is not an edge of the state machine.
    """

    def __init__(self, messages: dict, code: str = "business_rule"):
        super().__init__(messages)
        self.code = code


class ConcurrentModification(Exception):
    """The caller's view of an aggregate is stale."""

    def __init__(self, entity: str, identifier, expected_version, actual_version):
        self.entity = entity
        self.identifier = str(identifier)
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"{entity} {identifier} is at version {actual_version}, expected {expected_version}"
        )


class GatewayFailure(Exception):
    """An external payment path returned an error or timed out."""

    def __init__(self, gateway: str, reason: str):
        self.gateway = gateway
        self.reason = reason
        super().__init__(f"{gateway}: {reason}")
