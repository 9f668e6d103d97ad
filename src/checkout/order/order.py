"""MerchantOrder aggregate: one merchant's share of a checkout.

A checkout spanning several merchants produces one order per merchant, all
sharing a ``checkout_id``. Four independent status dimensions describe an
order:

    payment_status      Pending → Paid → Refunded
    fulfillment_status  Unfulfilled → Fulfilled
    status              Open → Cancelled
    workflow_status     Normal | In_Progress | On_Hold   (merchant-side flag)

The workflow flag is bookkeeping for the merchant. It never changes payment,
fulfillment, inventory or settlement; its only effect is that an order On_Hold
cannot be fulfilled. Every transition appends a timeline entry recording the
previous and new value.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from checkout.domain import checkout
from checkout.order.events import (
    OrderCancelled,
    OrderFulfilled,
    OrderPaid,
    OrderPlaced,
    OrderRefunded,
    OrderWorkflowStatusChanged,
    PaymentSessionStarted,
)
from checkout.shared.money import to_money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    REFUNDED = "Refunded"


class FulfillmentStatus(Enum):
    UNFULFILLED = "Unfulfilled"
    FULFILLED = "Fulfilled"


class OrderStatus(Enum):
    OPEN = "Open"
    CANCELLED = "Cancelled"


class WorkflowStatus(Enum):
    NORMAL = "Normal"
    IN_PROGRESS = "In_Progress"
    ON_HOLD = "On_Hold"


class TimelineEvent(Enum):
    PLACED = "Placed"
    WORKFLOW_STATUS_CHANGED = "Workflow_Status_Changed"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"
    PAID = "Paid"
    PAYMENT_SESSION_STARTED = "Payment_Session_Started"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@checkout.value_object(part_of="MerchantOrder")
class PostalAddress:
    """Where the order ships (or is billed). Captured at checkout and never edited."""

    recipient = String(max_length=255)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=2)
    phone = String(max_length=30)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="MerchantOrder")
class OrderLineItem:
    """A cart line as committed: price, discount and promotion are locked in."""

    cart_line_id = String(required=True, max_length=100)
    listing_id = Identifier(required=True)
    variant_id = Identifier()
    stock_key = String(required=True, max_length=100)
    sku = String(max_length=100)
    title = String(max_length=255)
    options = Text(sanitize=False)  # JSON: ordered [name, value] pairs
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    subtotal = Float(required=True, min_value=0.0)
    discount_amount = Float(default=0.0, min_value=0.0)
    promotion_id = Identifier()


@checkout.entity(part_of="MerchantOrder")
class OrderTimelineEntry:
    event = String(required=True, choices=TimelineEvent)
    attribute = String(max_length=50)
    previous_value = String(max_length=50)
    new_value = String(max_length=50)
    note = Text(sanitize=False)
    occurred_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class MerchantOrder:
    order_number = String(required=True, max_length=30)
    checkout_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    customer_id = Identifier()
    customer_email = String(max_length=254)
    currency = String(max_length=3, default="USD")
    items = HasMany(OrderLineItem)
    shipping_address = ValueObject(PostalAddress)
    billing_address = ValueObject(PostalAddress)
    subtotal = Float(default=0.0)
    discount_amount = Float(default=0.0)
    shipping_amount = Float(default=0.0)
    tax_amount = Float(default=0.0)
    total_amount = Float(default=0.0)
    shipping_service = String(max_length=100)
    shipping_estimated_days = Integer()
    promotion_ids = Text()  # JSON array
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    fulfillment_status = String(choices=FulfillmentStatus, default=FulfillmentStatus.UNFULFILLED.value)
    status = String(choices=OrderStatus, default=OrderStatus.OPEN.value)
    workflow_status = String(choices=WorkflowStatus, default=WorkflowStatus.NORMAL.value)
    hold_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)
    payment_session_id = String(max_length=255)
    payment_session_url = String(max_length=500)
    payment_reference = String(max_length=255)
    notes = Text()
    timeline = HasMany(OrderTimelineEntry)
    placed_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def hold_reason_only_while_on_hold(self):
        on_hold = self.workflow_status == WorkflowStatus.ON_HOLD.value
        if on_hold and not self.hold_reason:
            raise ValidationError({"hold_reason": ["A hold reason is required to put an order on hold"]})
        if not on_hold and self.hold_reason:
            raise ValidationError({"hold_reason": ["Only orders on hold carry a hold reason"]})

    @invariant.post
    def total_must_balance(self):
        expected = (
            to_money(self.subtotal)
            - to_money(self.discount_amount)
            + to_money(self.shipping_amount)
            + to_money(self.tax_amount)
        )
        if to_money(self.total_amount) != expected:
            raise ValidationError({"total_amount": ["Total must equal subtotal - discount + shipping + tax"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number,
        checkout_id,
        merchant_id,
        customer,
        items,
        shipping_address,
        billing_address=None,
        shipping_amount=0,
        tax_amount=0,
        currency="USD",
        shipping_selection=None,
        notes=None,
    ):
        """Build an order from its priced line items.

        ``items`` are dicts with the OrderLineItem fields. Amounts may be
        Decimals; they are stored as floats rounded to cents.
        """
        now = datetime.now(UTC)

        subtotal = to_money(sum((to_money(item["subtotal"]) for item in items), to_money(0)))
        discount = to_money(sum((to_money(item.get("discount_amount")) for item in items), to_money(0)))
        shipping = to_money(shipping_amount)
        tax = to_money(tax_amount)
        total = subtotal - discount + shipping + tax

        promotion_ids = sorted({str(item["promotion_id"]) for item in items if item.get("promotion_id")})
        line_items = [
            OrderLineItem(
                cart_line_id=item["cart_line_id"],
                listing_id=item["listing_id"],
                variant_id=item.get("variant_id"),
                stock_key=item["stock_key"],
                sku=item.get("sku"),
                title=item.get("title"),
                options=json.dumps(item.get("options") or []),
                quantity=item["quantity"],
                unit_price=float(to_money(item["unit_price"])),
                subtotal=float(to_money(item["subtotal"])),
                discount_amount=float(to_money(item.get("discount_amount"))),
                promotion_id=item.get("promotion_id"),
            )
            for item in items
        ]

        order = cls(
            order_number=order_number,
            checkout_id=checkout_id,
            merchant_id=merchant_id,
            customer_id=customer.id,
            customer_email=customer.email,
            currency=currency,
            shipping_address=PostalAddress(**shipping_address),
            billing_address=PostalAddress(**(billing_address or shipping_address)),
            subtotal=float(subtotal),
            discount_amount=float(discount),
            shipping_amount=float(shipping),
            tax_amount=float(tax),
            total_amount=float(total),
            shipping_service=shipping_selection.service_name if shipping_selection else None,
            shipping_estimated_days=shipping_selection.estimated_days if shipping_selection else None,
            promotion_ids=json.dumps(promotion_ids),
            notes=notes,
            placed_at=now,
            updated_at=now,
        )
        order.add_items(line_items)

        allocations = [
            {
                "cart_line_id": item["cart_line_id"],
                "promotion_id": str(item["promotion_id"]),
                "amount": str(to_money(item["discount_amount"])),
            }
            for item in items
            if item.get("promotion_id")
        ]
        selection = None
        if shipping_selection is not None:
            selection = {
                "service_name": shipping_selection.service_name,
                "price_minor": shipping_selection.per_merchant_price.get(str(merchant_id)),
                "currency": shipping_selection.currency,
                "estimated_days": shipping_selection.estimated_days,
            }

        order.add_timeline(
            OrderTimelineEntry(
                event=TimelineEvent.PLACED.value,
                attribute="status",
                new_value=OrderStatus.OPEN.value,
                note=json.dumps({"allocations": allocations, "shipping_selection": selection}),
                occurred_at=now,
            )
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                checkout_id=str(checkout_id),
                merchant_id=str(merchant_id),
                customer_id=customer.id,
                customer_email=customer.email,
                currency=currency,
                subtotal=float(subtotal),
                discount_amount=float(discount),
                shipping_amount=float(shipping),
                tax_amount=float(tax),
                total_amount=float(total),
                item_count=sum(item["quantity"] for item in items),
                items=json.dumps(
                    [
                        {
                            "cart_line_id": item["cart_line_id"],
                            "stock_key": item["stock_key"],
                            "quantity": item["quantity"],
                            "subtotal": str(to_money(item["subtotal"])),
                        }
                        for item in items
                    ]
                ),
                allocations=json.dumps(allocations),
                shipping_selection=json.dumps(selection),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED.value

    @property
    def is_on_hold(self) -> bool:
        return self.workflow_status == WorkflowStatus.ON_HOLD.value

    def placement_audit(self) -> dict:
        """The allocations and shipping selection recorded when the order was placed."""
        entry = next(e for e in self.timeline if e.event == TimelineEvent.PLACED.value)
        return json.loads(entry.note)

    def _record(self, event, attribute=None, previous=None, new=None, note=None, at=None):
        self.add_timeline(
            OrderTimelineEntry(
                event=event.value,
                attribute=attribute,
                previous_value=previous,
                new_value=new,
                note=note,
                occurred_at=at or datetime.now(UTC),
            )
        )

    def _assert_open(self, action):
        if self.is_cancelled:
            raise ValidationError({"status": [f"Cannot {action} a cancelled order"]})

    # -------------------------------------------------------------------
    # Merchant workflow flag
    # -------------------------------------------------------------------
    def update_workflow_status(self, workflow_status, hold_reason=None):
        try:
            target = WorkflowStatus(workflow_status)
        except ValueError:
            raise ValidationError({"workflow_status": [f"Unknown workflow status: {workflow_status}"]}) from None

        hold_reason = (hold_reason or "").strip() or None
        if target == WorkflowStatus.ON_HOLD and not hold_reason:
            raise ValidationError({"hold_reason": ["A hold reason is required to put an order on hold"]})
        if target != WorkflowStatus.ON_HOLD:
            hold_reason = None

        previous = self.workflow_status
        if previous == target.value and self.hold_reason == hold_reason:
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            self.workflow_status = target.value
            self.hold_reason = hold_reason
            self.updated_at = now

        self._record(
            TimelineEvent.WORKFLOW_STATUS_CHANGED,
            attribute="workflow_status",
            previous=previous,
            new=target.value,
            note=hold_reason,
            at=now,
        )
        self.raise_(
            OrderWorkflowStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=target.value,
                hold_reason=hold_reason,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def fulfill(self):
        self._assert_open("fulfill")
        if self.is_on_hold:
            raise ValidationError({"workflow_status": ["Orders on hold cannot be fulfilled"]})
        if self.fulfillment_status == FulfillmentStatus.FULFILLED.value:
            raise ValidationError({"fulfillment_status": ["Order is already fulfilled"]})

        now = datetime.now(UTC)
        self.fulfillment_status = FulfillmentStatus.FULFILLED.value
        self.updated_at = now
        self._record(
            TimelineEvent.FULFILLED,
            attribute="fulfillment_status",
            previous=FulfillmentStatus.UNFULFILLED.value,
            new=FulfillmentStatus.FULFILLED.value,
            at=now,
        )
        self.raise_(OrderFulfilled(order_id=str(self.id), merchant_id=str(self.merchant_id), fulfilled_at=now))

    def cancel(self, reason=None):
        """Cancel an open, unfulfilled order. Allowed while on hold."""
        self._assert_open("cancel")
        if self.fulfillment_status == FulfillmentStatus.FULFILLED.value:
            raise ValidationError({"status": ["Fulfilled orders cannot be cancelled"]})

        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.updated_at = now
        self._record(
            TimelineEvent.CANCELLED,
            attribute="status",
            previous=OrderStatus.OPEN.value,
            new=OrderStatus.CANCELLED.value,
            note=reason,
            at=now,
        )
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                merchant_id=str(self.merchant_id),
                reason=reason,
                items=json.dumps([{"stock_key": i.stock_key, "quantity": i.quantity} for i in self.items]),
                cancelled_at=now,
            )
        )

    def refund(self, reason=None):
        """Refund a paid order in full. Allowed while on hold and after cancellation."""
        if self.payment_status != PaymentStatus.PAID.value:
            raise ValidationError({"payment_status": [f"Cannot refund an order whose payment is {self.payment_status}"]})

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.REFUNDED.value
        self.updated_at = now
        self._record(
            TimelineEvent.REFUNDED,
            attribute="payment_status",
            previous=PaymentStatus.PAID.value,
            new=PaymentStatus.REFUNDED.value,
            note=reason,
            at=now,
        )
        self.raise_(
            OrderRefunded(order_id=str(self.id), amount=self.total_amount, reason=reason, refunded_at=now)
        )

    def mark_paid(self, payment_reference=None):
        """Record the gateway callback. Payments for cancelled orders are recorded too, so they can be refunded."""
        if self.payment_status != PaymentStatus.PENDING.value:
            raise ValidationError({"payment_status": [f"Payment is already {self.payment_status}"]})

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.payment_reference = payment_reference
        self.updated_at = now
        self._record(
            TimelineEvent.PAID,
            attribute="payment_status",
            previous=PaymentStatus.PENDING.value,
            new=PaymentStatus.PAID.value,
            note=payment_reference,
            at=now,
        )
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                payment_reference=payment_reference,
                amount=self.total_amount,
                paid_at=now,
            )
        )

    def attach_payment_session(self, session_id, redirect_url=None):
        self._assert_open("start payment for")
        if self.payment_status != PaymentStatus.PENDING.value:
            raise ValidationError({"payment_status": ["Only orders awaiting payment can start a payment session"]})
        if self.payment_session_id == session_id:
            return

        now = datetime.now(UTC)
        self.payment_session_id = session_id
        self.payment_session_url = redirect_url
        self.updated_at = now
        self._record(TimelineEvent.PAYMENT_SESSION_STARTED, note=session_id, at=now)
        self.raise_(
            PaymentSessionStarted(
                order_id=str(self.id),
                session_id=session_id,
                checkout_id=str(self.checkout_id),
                started_at=now,
            )
        )
