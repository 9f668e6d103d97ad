"""Integration tests for the promotion, shipping profile and stock level endpoints."""

import pytest
from checkout.api import promotion_router, register_checkout_error_handlers, shipping_router, stock_router
from checkout.promotion.rule import PromotionRule
from checkout.shipping.profile import ListingShipping, ShippingProfile
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(promotion_router)
    app.include_router(shipping_router)
    app.include_router(stock_router)
    register_exception_handlers(app)
    register_checkout_error_handlers(app)
    return TestClient(app)


def _create_promotion(client, **overrides):
    body = {"name": "Spring Sale", "value_type": "Percentage", "value": 10.0}
    body.update(overrides)
    response = client.post("/promotions", json=body)
    assert response.status_code == 201
    return response.json()["promotion_id"]


class TestPromotionAPI:
    def test_create_promotion(self, client):
        promotion_id = _create_promotion(client, code="spring10", target_product_ids=["lst-1"])

        rule = current_domain.repository_for(PromotionRule).get(promotion_id)
        assert rule.name == "Spring Sale"
        assert rule.code == "SPRING10"
        assert rule.is_active is True

    def test_duplicate_code_is_rejected(self, client):
        _create_promotion(client, code="ONCE")

        response = client.post(
            "/promotions",
            json={"name": "Again", "value_type": "Percentage", "value": 5.0, "code": "once"},
        )

        assert response.status_code == 400

    def test_percentage_over_100_is_rejected(self, client):
        response = client.post("/promotions", json={"name": "Too much", "value_type": "Percentage", "value": 150.0})
        assert response.status_code == 400

    def test_deactivate_promotion(self, client):
        promotion_id = _create_promotion(client)

        response = client.put(f"/promotions/{promotion_id}/active", json={"is_active": False})

        assert response.status_code == 200
        assert current_domain.repository_for(PromotionRule).get(promotion_id).is_active is False

    def test_duplicate_promotion(self, client):
        promotion_id = _create_promotion(client, code="COPYME")

        response = client.post(f"/promotions/{promotion_id}/duplicate")

        assert response.status_code == 201
        copy_id = response.json()["promotion_id"]
        assert copy_id != promotion_id
        copy = current_domain.repository_for(PromotionRule).get(copy_id)
        assert copy.code is None
        assert copy.is_active is False
        assert copy.value == 10.0

    def test_unknown_promotion_returns_404(self, client):
        response = client.put("/promotions/missing/active", json={"is_active": True})
        assert response.status_code == 404


class TestShippingProfileAPI:
    def _profile_id(self, client, merchant_id="mer-a", **overrides):
        body = {"merchant_id": merchant_id, "name": "Domestic", "is_default": True}
        body.update(overrides)
        response = client.post("/shipping-profiles", json=body)
        assert response.status_code == 201
        return response.json()["id"]

    def test_build_profile(self, client):
        profile_id = self._profile_id(client)

        destination = client.post(f"/shipping-profiles/{profile_id}/destinations", json={"country_code": "us"})
        catch_all = client.post(
            f"/shipping-profiles/{profile_id}/destinations",
            json={"everywhere_else": True},
        )
        rate = client.post(
            f"/shipping-profiles/{profile_id}/rates",
            json={
                "destination_id": destination.json()["id"],
                "service_name": "Standard",
                "first_item_price_minor": 500,
            },
        )

        assert destination.status_code == 201
        assert catch_all.status_code == 201
        assert rate.status_code == 201
        profile = current_domain.repository_for(ShippingProfile).get(profile_id)
        assert profile.ships_to("US")
        assert profile.ships_to("JP")
        assert [r.service_name for r in profile.rates_for("US")] == ["Standard"]
        assert profile.rates_for("JP") == []

    def test_invalid_country_is_rejected(self, client):
        profile_id = self._profile_id(client)

        response = client.post(f"/shipping-profiles/{profile_id}/destinations", json={"country_code": "USA"})

        assert response.status_code == 400

    def test_rate_for_unknown_destination_is_rejected(self, client):
        profile_id = self._profile_id(client)

        response = client.post(
            f"/shipping-profiles/{profile_id}/rates",
            json={"destination_id": "nowhere", "service_name": "Standard"},
        )

        assert response.status_code == 400

    def test_assign_listing(self, client):
        profile_id = self._profile_id(client, is_default=False)

        response = client.put(f"/shipping-profiles/{profile_id}/listings/lst-1", json={"merchant_id": "mer-a"})

        assert response.status_code == 200
        assignment = current_domain.repository_for(ListingShipping).get("lst-1")
        assert str(assignment.profile_id) == profile_id

    def test_assign_listing_to_another_merchants_profile(self, client):
        profile_id = self._profile_id(client, merchant_id="mer-b")

        response = client.put(f"/shipping-profiles/{profile_id}/listings/lst-1", json={"merchant_id": "mer-a"})

        assert response.status_code == 400


class TestStockLevelAPI:
    def test_set_and_read_stock(self, client):
        response = client.put("/stock-levels", json={"stock_key": "var-001", "available": 7})

        assert response.status_code == 200
        assert client.get("/stock-levels/var-001").json() == {"stock_key": "var-001", "available": 7}

    def test_stock_is_summed_across_locations(self, client):
        client.put("/stock-levels", json={"stock_key": "var-001", "location_id": "east", "available": 3})
        client.put("/stock-levels", json={"stock_key": "var-001", "location_id": "west", "available": 4})

        assert client.get("/stock-levels/var-001").json()["available"] == 7

    def test_updating_a_location_replaces_its_quantity(self, client):
        first = client.put("/stock-levels", json={"stock_key": "var-001", "available": 3})
        second = client.put("/stock-levels", json={"stock_key": "var-001", "available": 9, "reason": "Recount"})

        assert first.json()["id"] == second.json()["id"]
        assert client.get("/stock-levels/var-001").json()["available"] == 9

    def test_unknown_key_has_no_stock(self, client):
        assert client.get("/stock-levels/nothing-here").json()["available"] == 0

    def test_negative_stock_is_rejected(self, client):
        response = client.put("/stock-levels", json={"stock_key": "var-001", "available": -1})
        assert response.status_code == 422
