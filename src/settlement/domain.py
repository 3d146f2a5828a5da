"""Settlement bounded context: Orders, Payments, Ledger, Refunds and Payouts.

Turns a service booking into money that moves between a customer, the
platform and a vendor. Orders, coupons, ledger transactions, refund requests,
payouts and vendor balances are standard CQRS aggregates persisted in one
unit of work per command.
"""

from protean.domain import Domain

from settlement.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
settlement = Domain(name="settlement")
