"""Result values returned by the payment command handlers."""

from dataclasses import dataclass

from settlement.gateway.port import ClientAction


@dataclass(frozen=True)
class TransactionResult:
    transaction_id: str
    order_id: str
    external_reference: str | None
    status: str
    amount: float
    commission_amount: float = 0.0
    vendor_amount: float = 0.0
    failure_reason: str | None = None
    replayed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    @classmethod
    def of(cls, txn, replayed: bool = False) -> "TransactionResult":
        return cls(
            transaction_id=str(txn.id),
            order_id=str(txn.order_id),
            external_reference=txn.external_reference,
            status=txn.status,
            amount=txn.amount,
            commission_amount=txn.commission_amount or 0.0,
            vendor_amount=txn.vendor_amount or 0.0,
            failure_reason=txn.failure_reason,
            replayed=replayed,
        )


@dataclass(frozen=True)
class PaymentInitiation:
    transaction: TransactionResult
    action: ClientAction | None = None
