"""Payout batching: vendor withdrawal commands, handler and facade.

A vendor asks for part of their available balance; an admin approves (which
posts the payout to the ledger), rejects, and later marks it paid once the
money has left the platform.
"""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from settlement.config import get_settings
from settlement.domain import logger, settlement
from settlement.ledger.ledger import TransactionLedger
from settlement.payout.payout import Payout, PayoutStatus
from settlement.shared.errors import BusinessRuleViolation
from settlement.shared.money import quantize, to_decimal
from settlement.shared.results import Err, ErrorKind, capture

INSUFFICIENT_BALANCE_REASON = "insufficient balance"


@settlement.command(part_of="Payout")
class RequestPayout:
    vendor_id = Identifier(required=True)
    amount = Float(required=True)
    destination = Text(required=True)  # JSON-encoded PayoutDestination
    notes = Text()


@settlement.command(part_of="Payout")
class ApprovePayout:
    payout_id = Identifier(required=True)
    admin_id = Identifier(required=True)


@settlement.command(part_of="Payout")
class RejectPayout:
    payout_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@settlement.command(part_of="Payout")
class MarkPayoutPaid:
    payout_id = Identifier(required=True)
    payout_reference = String(required=True, max_length=255)


@settlement.command_handler(part_of=Payout)
class PayoutHandler:
    @handle(RequestPayout)
    def request_payout(self, command):
        amount = quantize(command.amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Payout amount must be positive"]})

        minimum = quantize(get_settings().minimum_payout_amount)
        if amount < minimum:
            raise BusinessRuleViolation(
                {"amount": [f"Payout amount must be at least {minimum}"]},
                code="below_minimum",
            )

        available = TransactionLedger().vendor_available_balance(command.vendor_id)
        if amount > available:
            raise BusinessRuleViolation(
                {"amount": [f"Payout {amount} exceeds available balance {available}"]},
                code="insufficient_balance",
            )

        payout = Payout.request(
            vendor_id=command.vendor_id,
            amount=float(amount),
            destination=json.loads(command.destination),
            currency=get_settings().currency,
            notes=command.notes,
        )
        current_domain.repository_for(Payout).add(payout)
        logger.info("Payout requested", payout_id=str(payout.id), vendor_id=str(command.vendor_id), amount=payout.amount)
        return str(payout.id)

    @handle(ApprovePayout)
    def approve_payout(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        if payout.status != PayoutStatus.PENDING.value:
            raise BusinessRuleViolation(
                {"status": [f"Cannot approve a payout that is {payout.status}"]},
                code="invalid_transition",
            )

        ledger = TransactionLedger()
        available = ledger.vendor_available_balance(payout.vendor_id)
        if to_decimal(payout.amount) > available:
            # The balance moved since the request; close the payout instead of failing the command.
            payout.reject(INSUFFICIENT_BALANCE_REASON, command.admin_id)
            repo.add(payout)
            logger.warning(
                "Payout rejected on approval",
                payout_id=str(payout.id),
                vendor_id=str(payout.vendor_id),
                amount=payout.amount,
                available=str(available),
            )
            return str(payout.id)

        payout_txn = ledger.post_payout(
            payout.vendor_id,
            payout.amount,
            payout_id=payout.id,
            payout_method=payout.destination.method,
        )
        payout.approve(command.admin_id, payout_txn.id)
        repo.add(payout)
        logger.info("Payout approved", payout_id=str(payout.id), transaction_id=str(payout_txn.id))
        return str(payout.id)

    @handle(RejectPayout)
    def reject_payout(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.reject(command.reason, command.admin_id)
        repo.add(payout)
        logger.info("Payout rejected", payout_id=str(payout.id), reason=command.reason)
        return str(payout.id)

    @handle(MarkPayoutPaid)
    def mark_payout_paid(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.mark_paid(command.payout_reference)
        repo.add(payout)
        logger.info("Payout paid", payout_id=str(payout.id), payout_reference=command.payout_reference)
        return str(payout.id)


class PayoutBatcher:
    def request(self, vendor_id, amount, destination: dict, notes=None):
        return self._run(
            lambda: RequestPayout(
                vendor_id=vendor_id,
                amount=amount,
                destination=json.dumps(destination),
                notes=notes,
            )
        )

    def approve(self, payout_id, admin_id):
        result = self._run(lambda: ApprovePayout(payout_id=payout_id, admin_id=admin_id), payout_id)
        if result.is_ok and result.value.status == PayoutStatus.REJECTED.value:
            return Err(
                ErrorKind.BUSINESS_RULE,
                f"Payout {payout_id} exceeds the vendor's available balance",
                {"amount": [INSUFFICIENT_BALANCE_REASON], "payout_id": str(payout_id)},
                code="insufficient_balance",
            )
        return result

    def reject(self, payout_id, admin_id, reason):
        return self._run(lambda: RejectPayout(payout_id=payout_id, admin_id=admin_id, reason=reason), payout_id)

    def mark_paid(self, payout_id, payout_reference):
        return self._run(
            lambda: MarkPayoutPaid(payout_id=payout_id, payout_reference=payout_reference),
            payout_id,
        )

    def payouts_for_vendor(self, vendor_id) -> list[Payout]:
        rows = current_domain.repository_for(Payout)._dao.query.filter(vendor_id=str(vendor_id)).all().items
        return sorted(rows, key=lambda p: p.requested_at)

    def pending(self) -> list[Payout]:
        return current_domain.repository_for(Payout)._dao.query.filter(status=PayoutStatus.PENDING.value).all().items

    @staticmethod
    def _run(build_command, payout_id=None):
        def run():
            result = current_domain.process(build_command(), asynchronous=False)
            return current_domain.repository_for(Payout).get(payout_id or result)

        return capture(run)
