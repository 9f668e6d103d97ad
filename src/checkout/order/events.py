"""Domain events for the MerchantOrder aggregate.

``OrderPlaced`` is the placement audit record: besides the totals it carries
the promotion allocations and the shipping selection the order was priced
with, as JSON.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from checkout.domain import checkout


@checkout.event(part_of="MerchantOrder")
class OrderPlaced:
    """A merchant's share of a checkout was committed as an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    checkout_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    customer_id = Identifier()
    customer_email = String()
    currency = String(default="USD")
    subtotal = Float(required=True)
    discount_amount = Float()
    shipping_amount = Float()
    tax_amount = Float()
    total_amount = Float(required=True)
    item_count = Integer()
    items = Text(required=True, sanitize=False)  # JSON: list of line item dicts
    allocations = Text(sanitize=False)  # JSON: allocations on this order's lines
    shipping_selection = Text(sanitize=False)  # JSON: service, price, estimate
    placed_at = DateTime(required=True)


@checkout.event(part_of="MerchantOrder")
class OrderWorkflowStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    hold_reason = String()
    changed_at = DateTime(required=True)


@checkout.event(part_of="MerchantOrder")
class OrderFulfilled:
    __version__ = 1

    order_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    fulfilled_at = DateTime(required=True)


@checkout.event(part_of="MerchantOrder")
class OrderCancelled:
    """An open order was cancelled; its reserved stock goes back on sale."""

    __version__ = 1

    order_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    reason = String()
    items = Text(sanitize=False)  # JSON: stock keys and quantities to release
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="MerchantOrder")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String()
    refunded_at = DateTime(required=True)


@checkout.event(part_of="MerchantOrder")
class OrderPaid:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_reference = String()
    amount = Float(required=True)
    paid_at = DateTime(required=True)


@checkout.event(part_of="MerchantOrder")
class PaymentSessionStarted:
    __version__ = 1

    order_id = Identifier(required=True)
    session_id = String(required=True)
    checkout_id = Identifier(required=True)
    started_at = DateTime(required=True)
