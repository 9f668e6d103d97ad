"""Order lifecycle: fulfillment, cancellation, refund and payment commands and handler.

Cancelling an order puts its reserved stock back on sale in the same unit of
work that marks it cancelled.
"""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.inventory.oracle import get_inventory_oracle
from checkout.order.order import MerchantOrder, PaymentStatus


@checkout.command(part_of="MerchantOrder")
class FulfillOrder:
    order_id = Identifier(required=True)


@checkout.command(part_of="MerchantOrder")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@checkout.command(part_of="MerchantOrder")
class RefundOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@checkout.command(part_of="MerchantOrder")
class RecordPayment:
    """Gateway callback: the payment session was paid."""

    payment_session_id = String(required=True, max_length=255)
    payment_reference = String(max_length=255)


@checkout.command_handler(part_of=MerchantOrder)
class OrderLifecycleHandler:
    @handle(FulfillOrder)
    def fulfill_order(self, command):
        repo = current_domain.repository_for(MerchantOrder)
        order = repo.get(command.order_id)
        order.fulfill()
        repo.add(order)

    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(MerchantOrder)
        order = repo.get(command.order_id)
        order.cancel(reason=command.reason)

        oracle = get_inventory_oracle()
        for item in order.items:
            oracle.release(item.stock_key, item.quantity, str(order.id))

        repo.add(order)

    @handle(RefundOrder)
    def refund_order(self, command):
        repo = current_domain.repository_for(MerchantOrder)
        order = repo.get(command.order_id)
        order.refund(reason=command.reason)
        repo.add(order)

    @handle(RecordPayment)
    def record_payment(self, command):
        repo = current_domain.repository_for(MerchantOrder)
        orders = repo._dao.query.filter(payment_session_id=command.payment_session_id).all().items
        if not orders:
            raise ValidationError({"payment_session_id": ["No orders belong to this payment session"]})

        paid = []
        for order in orders:
            if order.payment_status == PaymentStatus.PAID.value:
                continue
            order.mark_paid(payment_reference=command.payment_reference)
            repo.add(order)
            paid.append(str(order.id))
        return paid
