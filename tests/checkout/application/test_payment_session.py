"""Application tests for the payment step of checkout: sessions, callbacks and refunds."""

import json

import pytest
from checkout.errors import ServiceUnavailable
from checkout.gateway import get_gateway
from checkout.inventory.stocking import SetStockLevel
from checkout.order.lifecycle import CancelOrder, RecordPayment, RefundOrder
from checkout.order.order import MerchantOrder, PaymentStatus
from checkout.order.payment import StartPaymentSession, idempotency_key
from checkout.order.placement import PlaceOrders
from protean import current_domain
from protean.exceptions import ValidationError


def _place_checkout(checkout_id="chk-001", merchant_ids=("mer-001", "mer-002")):
    lines = []
    for index, merchant_id in enumerate(merchant_ids):
        stock_key = f"lst-{checkout_id}-{index}"
        current_domain.process(
            SetStockLevel(stock_key=stock_key, location_id="default", available=10), asynchronous=False
        )
        lines.append(
            {
                "id": f"{checkout_id}-{index}",
                "listing_id": stock_key,
                "merchant_id": merchant_id,
                "quantity": 1,
                "unit_price": "20.00",
            }
        )
    return current_domain.process(
        PlaceOrders(
            checkout_id=checkout_id,
            lines=json.dumps(lines),
            shipping_selection=json.dumps(
                {
                    "service_name": "Standard",
                    "per_merchant_price": {m: 500 for m in merchant_ids},
                    "currency": "USD",
                }
            ),
            customer=json.dumps({"email": "guest@example.com"}),
            shipping_address=json.dumps({"street": "1 Main St", "city": "Springfield", "country": "US"}),
        ),
        asynchronous=False,
    )


def _start(order_ids):
    return current_domain.process(StartPaymentSession(order_ids=json.dumps(order_ids)), asynchronous=False)


def _order(order_id):
    return current_domain.repository_for(MerchantOrder).get(order_id)


class TestStartPaymentSession:
    def test_one_session_for_all_orders(self):
        order_ids = _place_checkout()

        session = _start(order_ids)

        assert session.session_id.startswith("fake_cs_")
        assert str(session.amount) == "50.00"
        assert session.currency == "USD"
        assert set(session.order_ids) == set(order_ids)
        for order_id in order_ids:
            assert _order(order_id).payment_session_id == session.session_id

    def test_gateway_receives_idempotency_key(self):
        order_ids = _place_checkout()
        _start(order_ids)

        call = get_gateway().calls[0]
        assert call["idempotency_key"] == idempotency_key(order_ids)
        assert call["amount"] == 50.0
        assert call["metadata"]["checkout_id"] == "chk-001"

    def test_retry_returns_recorded_session(self):
        order_ids = _place_checkout()
        first = _start(order_ids)
        second = _start(list(reversed(order_ids)))

        assert second.session_id == first.session_id
        assert len(get_gateway().calls) == 1

    def test_gateway_failure_leaves_orders_untouched(self):
        order_ids = _place_checkout()
        get_gateway().configure(should_succeed=False, failure_reason="Card network down")

        with pytest.raises(ServiceUnavailable) as exc:
            _start(order_ids)

        assert "Card network down" in exc.value.message
        assert exc.value.retryable
        assert _order(order_ids[0]).payment_session_id is None

    def test_failed_session_can_be_retried(self):
        order_ids = _place_checkout()
        get_gateway().configure(should_succeed=False)
        with pytest.raises(ServiceUnavailable):
            _start(order_ids)

        get_gateway().configure(should_succeed=True)
        assert _start(order_ids).session_id

    def test_orders_from_different_checkouts_rejected(self):
        first = _place_checkout("chk-001", ("mer-001",))
        second = _place_checkout("chk-002", ("mer-002",))

        with pytest.raises(ValidationError):
            _start(first + second)

    def test_cancelled_order_cannot_start_payment(self):
        order_ids = _place_checkout(merchant_ids=("mer-001",))
        current_domain.process(CancelOrder(order_id=order_ids[0]), asynchronous=False)

        with pytest.raises(ValidationError):
            _start(order_ids)

    def test_idempotency_key_ignores_order(self):
        assert idempotency_key(["b", "a"]) == idempotency_key(["a", "b"])
        assert idempotency_key(["a"]) != idempotency_key(["a", "b"])


class TestPaymentCallback:
    def test_record_payment_marks_every_order_paid(self):
        order_ids = _place_checkout()
        session = _start(order_ids)

        paid = current_domain.process(
            RecordPayment(payment_session_id=session.session_id, payment_reference="pi_123"),
            asynchronous=False,
        )

        assert set(paid) == set(order_ids)
        for order_id in order_ids:
            order = _order(order_id)
            assert order.payment_status == PaymentStatus.PAID.value
            assert order.payment_reference == "pi_123"

    def test_duplicate_callback_is_harmless(self):
        order_ids = _place_checkout()
        session = _start(order_ids)
        for expected in (set(order_ids), set()):
            paid = current_domain.process(
                RecordPayment(payment_session_id=session.session_id, payment_reference="pi_123"),
                asynchronous=False,
            )
            assert set(paid) == expected

    def test_unknown_session(self):
        with pytest.raises(ValidationError):
            current_domain.process(RecordPayment(payment_session_id="cs_unknown"), asynchronous=False)

    def test_refund_after_payment(self):
        order_ids = _place_checkout(merchant_ids=("mer-001",))
        session = _start(order_ids)
        current_domain.process(RecordPayment(payment_session_id=session.session_id), asynchronous=False)

        current_domain.process(RefundOrder(order_id=order_ids[0], reason="Damaged"), asynchronous=False)

        assert _order(order_ids[0]).payment_status == PaymentStatus.REFUNDED.value

    def test_refund_before_payment_rejected(self):
        order_ids = _place_checkout(merchant_ids=("mer-001",))
        with pytest.raises(ValidationError):
            current_domain.process(RefundOrder(order_id=order_ids[0]), asynchronous=False)
