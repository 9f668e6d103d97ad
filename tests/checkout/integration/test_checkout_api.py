"""Integration tests for the checkout API via TestClient.

Shipping answers come from profiles created through the API, which is what the
default adapters read.
"""

import pytest
from checkout.api import (
    checkout_router,
    order_router,
    payment_router,
    register_checkout_error_handlers,
    shipping_router,
    stock_router,
)
from checkout.gateway import get_gateway
from checkout.order.order import MerchantOrder, PaymentStatus
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(checkout_router)
    app.include_router(order_router)
    app.include_router(payment_router)
    app.include_router(shipping_router)
    app.include_router(stock_router)
    register_exception_handlers(app)
    register_checkout_error_handlers(app)
    return TestClient(app)


def _profile(client, merchant_id, countries=("US",), first=500, additional=100):
    """Helper: a default profile shipping Standard to the given countries."""
    response = client.post(
        "/shipping-profiles",
        json={"merchant_id": merchant_id, "name": f"{merchant_id} shipping", "is_default": True},
    )
    assert response.status_code == 201
    profile_id = response.json()["id"]

    for country in countries:
        destination = client.post(f"/shipping-profiles/{profile_id}/destinations", json={"country_code": country})
        assert destination.status_code == 201
        rate = client.post(
            f"/shipping-profiles/{profile_id}/rates",
            json={
                "destination_id": destination.json()["id"],
                "service_name": "Standard",
                "first_item_price_minor": first,
                "additional_item_price_minor": additional,
                "transit_days_min": 3,
                "transit_days_max": 5,
            },
        )
        assert rate.status_code == 201
    return profile_id


def _stock(client, stock_key, available):
    response = client.put("/stock-levels", json={"stock_key": stock_key, "available": available})
    assert response.status_code == 200


def _line(line_id, merchant_id, listing_id, quantity=1, unit_price=20.0):
    return {
        "id": line_id,
        "listing_id": listing_id,
        "merchant_id": merchant_id,
        "quantity": quantity,
        "unit_price": unit_price,
        "title": f"Item {line_id}",
    }


def _cart(*lines, **extra):
    body = {
        "lines": list(lines),
        "customer": {"id": "cust-api-001", "email": "shopper@example.com"},
    }
    body.update(extra)
    return body


ADDRESS = {"street": "1 Market St", "city": "Springfield", "country": "US"}


class TestShippabilityAPI:
    def test_cart_that_ships(self, client):
        _profile(client, "mer-a")

        response = client.post(
            "/checkout/shippability",
            json=_cart(_line("line-1", "mer-a", "lst-1"), destination_country="US"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["shippable"] is True
        assert data["blocked_lines"] == []

    def test_blocked_lines_are_listed(self, client):
        _profile(client, "mer-a")

        response = client.post(
            "/checkout/shippability",
            json=_cart(_line("line-1", "mer-a", "lst-1"), destination_country="FR"),
        )

        data = response.json()
        assert data["shippable"] is False
        assert data["retryable"] is False
        assert [line["cart_line_id"] for line in data["blocked_lines"]] == ["line-1"]

    def test_empty_cart_is_rejected(self, client):
        response = client.post("/checkout/shippability", json=_cart(destination_country="US"))
        assert response.status_code == 422


class TestShippingOptionsAPI:
    def test_options_for_two_merchants(self, client):
        _profile(client, "mer-a", first=500)
        _profile(client, "mer-b", first=700)

        response = client.post(
            "/checkout/shipping-options",
            json=_cart(
                _line("line-1", "mer-a", "lst-1", quantity=2),
                _line("line-2", "mer-b", "lst-2"),
                destination_country="US",
            ),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Ok"
        assert data["default"] == "Standard"
        standard = data["candidates"][0]
        assert standard["per_merchant_price"] == {"mer-a": 600, "mer-b": 700}
        assert standard["total_minor"] == 1300


class TestPromotionsAPI:
    def test_no_promotions(self, client):
        response = client.post("/checkout/promotions", json=_cart(_line("line-1", "mer-a", "lst-1")))

        assert response.status_code == 200
        data = response.json()
        assert data["allocations"] == []
        assert data["total_amount"] == "0.00"

    def test_unknown_code_is_reported(self, client):
        response = client.post(
            "/checkout/promotions",
            json=_cart(_line("line-1", "mer-a", "lst-1"), code="NOPE"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["code_status"] == "Code_Not_Found"
        assert data["message"] == "Discount code not found or expired"


class TestPlaceOrdersAPI:
    def test_orders_are_created_per_merchant(self, client):
        _profile(client, "mer-a")
        _profile(client, "mer-b")
        _stock(client, "lst-1", 5)
        _stock(client, "lst-2", 5)

        response = client.post(
            "/checkout/orders",
            json=_cart(
                _line("line-1", "mer-a", "lst-1", quantity=2),
                _line("line-2", "mer-b", "lst-2"),
                shipping_address=ADDRESS,
            ),
        )

        assert response.status_code == 201
        data = response.json()
        assert len(data["order_ids"]) == 2
        assert data["discount_total"] == "0.00"
        assert data["shipping"]["service_name"] == "Standard"

        stock = client.get("/stock-levels/lst-1")
        assert stock.json() == {"stock_key": "lst-1", "available": 3}

    def test_unshippable_cart_returns_422(self, client):
        _profile(client, "mer-a", countries=("US",))
        _stock(client, "lst-1", 5)

        response = client.post(
            "/checkout/orders",
            json=_cart(
                _line("line-1", "mer-a", "lst-1"),
                shipping_address={**ADDRESS, "country": "DE"},
            ),
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "unshippable"
        assert error["details"]["destination_country"] == "DE"
        assert error["retryable"] is False
        assert current_domain.repository_for(MerchantOrder)._dao.query.all().total == 0

    def test_insufficient_stock_returns_409(self, client):
        _profile(client, "mer-a")
        _stock(client, "lst-1", 1)

        response = client.post(
            "/checkout/orders",
            json=_cart(
                _line("line-1", "mer-a", "lst-1", quantity=3),
                shipping_address=ADDRESS,
            ),
        )

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "insufficient_stock"
        assert error["details"]["requested"] == 3
        assert error["details"]["available"] == 1
        assert client.get("/stock-levels/lst-1").json()["available"] == 1

    def test_unknown_service_returns_422(self, client):
        _profile(client, "mer-a")
        _stock(client, "lst-1", 5)

        response = client.post(
            "/checkout/orders",
            json=_cart(
                _line("line-1", "mer-a", "lst-1"),
                shipping_address=ADDRESS,
                service_name="Overnight",
            ),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "no_valid_shipping_option"

    def test_missing_address_is_rejected(self, client):
        response = client.post("/checkout/orders", json=_cart(_line("line-1", "mer-a", "lst-1")))
        assert response.status_code == 422


class TestPaymentAPI:
    def _checkout(self, client):
        _profile(client, "mer-a")
        _stock(client, "lst-1", 5)
        response = client.post(
            "/checkout/orders",
            json=_cart(_line("line-1", "mer-a", "lst-1"), shipping_address=ADDRESS),
        )
        assert response.status_code == 201
        return response.json()["order_ids"]

    def test_payment_session_covers_the_checkout(self, client):
        order_ids = self._checkout(client)

        response = client.post("/checkout/payment-session", json={"order_ids": order_ids})

        assert response.status_code == 200
        data = response.json()
        assert data["amount"] == "25.00"
        assert data["currency"] == "USD"
        assert data["session_id"].startswith("fake_cs_")
        assert data["order_ids"] == order_ids

    def test_callback_marks_orders_paid(self, client):
        order_ids = self._checkout(client)
        session = client.post("/checkout/payment-session", json={"order_ids": order_ids}).json()

        response = client.post(
            "/payments/callback",
            json={"payment_session_id": session["session_id"], "payment_reference": "ch_001"},
            headers={"X-Signature": "test-signature"},
        )

        assert response.status_code == 200
        order = current_domain.repository_for(MerchantOrder).get(order_ids[0])
        assert order.payment_status == PaymentStatus.PAID.value

    def test_callback_with_bad_signature_is_rejected(self, client):
        order_ids = self._checkout(client)
        session = client.post("/checkout/payment-session", json={"order_ids": order_ids}).json()

        response = client.post(
            "/payments/callback",
            json={"payment_session_id": session["session_id"]},
            headers={"X-Signature": "forged"},
        )

        assert response.status_code == 401
        order = current_domain.repository_for(MerchantOrder).get(order_ids[0])
        assert order.payment_status == PaymentStatus.PENDING.value

    def test_gateway_failure_keeps_orders(self, client):
        order_ids = self._checkout(client)
        get_gateway().configure(should_succeed=False)

        response = client.post("/checkout/payment-session", json={"order_ids": order_ids})

        assert response.status_code == 503
        assert response.json()["error"]["retryable"] is True
        assert current_domain.repository_for(MerchantOrder).get(order_ids[0]) is not None


class TestOrderAPI:
    def _order_id(self, client):
        _profile(client, "mer-a")
        _stock(client, "lst-1", 5)
        response = client.post(
            "/checkout/orders",
            json=_cart(_line("line-1", "mer-a", "lst-1", quantity=2), shipping_address=ADDRESS),
        )
        return response.json()["order_ids"][0]

    def test_get_order(self, client):
        order_id = self._order_id(client)

        response = client.get(f"/orders/{order_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["merchant_id"] == "mer-a"
        assert data["subtotal"] == 40.0
        assert data["shipping_amount"] == 6.0
        assert data["total_amount"] == 46.0
        assert data["items"][0]["quantity"] == 2

    def test_get_unknown_order_returns_404(self, client):
        response = client.get("/orders/does-not-exist")
        assert response.status_code == 404

    def test_workflow_status_update(self, client):
        order_id = self._order_id(client)

        response = client.put(
            f"/orders/{order_id}/workflow-status",
            json={"workflow_status": "On_Hold", "hold_reason": "Address check"},
        )

        assert response.status_code == 200
        data = client.get(f"/orders/{order_id}").json()
        assert data["workflow_status"] == "On_Hold"
        assert data["hold_reason"] == "Address check"
        assert data["timeline"][-1]["new_value"] == "On_Hold"

    def test_hold_without_reason_returns_400(self, client):
        order_id = self._order_id(client)

        response = client.put(f"/orders/{order_id}/workflow-status", json={"workflow_status": "On_Hold"})

        assert response.status_code == 400

    def test_cancel_releases_stock(self, client):
        order_id = self._order_id(client)
        assert client.get("/stock-levels/lst-1").json()["available"] == 3

        response = client.post(f"/orders/{order_id}/cancel", json={"reason": "Changed mind"})

        assert response.status_code == 200
        assert client.get("/stock-levels/lst-1").json()["available"] == 5
