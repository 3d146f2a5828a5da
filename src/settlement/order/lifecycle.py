"""OrderLifecycleManager: result-returning facade over the order commands.

Every method returns ``Ok(order)`` with the freshly stored order, or an
``Err`` describing why nothing changed.
"""

from protean.utils.globals import current_domain

from settlement.order.cancellation import CancelOrder
from settlement.order.coupons import ApplyCouponToOrder
from settlement.order.creation import CreateOrder
from settlement.order.order import SETTLED_PAYMENT_STATES, Order
from settlement.order.rescheduling import RescheduleOrder
from settlement.order.transitions import AcceptOrder, CompleteOrder, RejectOrder, StartOrder
from settlement.shared.results import capture


class OrderLifecycleManager:
    def create_order(
        self,
        customer_id,
        service_id,
        vendor_id,
        scheduled_at,
        address: dict,
        scheduled_slot=None,
        coupon_code=None,
        notes=None,
    ):
        def run():
            command = CreateOrder(
                customer_id=customer_id,
                service_id=service_id,
                vendor_id=vendor_id,
                scheduled_at=scheduled_at,
                scheduled_slot=scheduled_slot,
                street=address.get("street"),
                city=address.get("city"),
                state=address.get("state"),
                postal_code=address.get("postal_code"),
                country=address.get("country"),
                coupon_code=coupon_code,
                notes=notes,
            )
            order_id = current_domain.process(command, asynchronous=False)
            return current_domain.repository_for(Order).get(order_id)

        return capture(run)

    def accept(self, order_id, expected_version):
        return self._transition(AcceptOrder, order_id, expected_version)

    def reject(self, order_id, expected_version, reason):
        return self._transition(RejectOrder, order_id, expected_version, reason=reason)

    def start(self, order_id, expected_version):
        return self._transition(StartOrder, order_id, expected_version)

    def complete(self, order_id, expected_version):
        return self._transition(CompleteOrder, order_id, expected_version)

    def cancel(self, order_id, expected_version, reason, cancelled_by):
        return self._transition(CancelOrder, order_id, expected_version, reason=reason, cancelled_by=cancelled_by)

    def reschedule(self, order_id, expected_version, scheduled_at, rescheduled_by, scheduled_slot=None, reason=None):
        return self._transition(
            RescheduleOrder,
            order_id,
            expected_version,
            scheduled_at=scheduled_at,
            rescheduled_by=rescheduled_by,
            scheduled_slot=scheduled_slot,
            reason=reason,
        )

    def apply_coupon(self, order_id, expected_version, coupon_code):
        return self._transition(ApplyCouponToOrder, order_id, expected_version, coupon_code=coupon_code)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_order(self, order_id):
        return capture(lambda: current_domain.repository_for(Order).get(order_id))

    def orders_for_customer(self, customer_id) -> list[Order]:
        return self._orders(customer_id=str(customer_id))

    def orders_for_vendor(self, vendor_id) -> list[Order]:
        return self._orders(vendor_id=str(vendor_id))

    def paid_orders_for_customer(self, customer_id) -> list[Order]:
        settled = {s.value for s in SETTLED_PAYMENT_STATES}
        return [o for o in self.orders_for_customer(customer_id) if o.payment_status in settled]

    def _orders(self, **criteria) -> list[Order]:
        orders = current_domain.repository_for(Order)._dao.query.filter(**criteria).all().items
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def _transition(self, command_cls, order_id, expected_version, **fields):
        def run():
            command = command_cls(order_id=order_id, expected_version=expected_version, **fields)
            current_domain.process(command, asynchronous=False)
            return current_domain.repository_for(Order).get(order_id)

        return capture(run)
