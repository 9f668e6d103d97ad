"""Shared BDD fixtures and step definitions for checkout settlement."""

from decimal import Decimal

import pytest
from checkout.carrier.fake_adapter import FakeCarrierRates, FakeShippingCatalog
from checkout.cart.lines import CartLine
from checkout.errors import CheckoutError
from checkout.inventory.stocking import SetStockLevel
from checkout.order.order import MerchantOrder
from checkout.promotion.rule import PromotionRule
from checkout.settlement.service import CheckoutSettlement
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured checkout and validation errors."""
    return {"exc": None}


@pytest.fixture()
def cart_lines():
    return []


@pytest.fixture()
def catalog():
    return FakeShippingCatalog()


@pytest.fixture()
def rates():
    return FakeCarrierRates()


@pytest.fixture()
def settlement(catalog, rates):
    return CheckoutSettlement(catalog=catalog, rates=rates, timeout=1.0)


def _set_stock(stock_key, available):
    current_domain.process(
        SetStockLevel(stock_key=stock_key, location_id="default", available=available), asynchronous=False
    )


def _store_rule(**kwargs):
    rule = PromotionRule.create(**kwargs)
    current_domain.repository_for(PromotionRule).add(rule)
    return rule


def _stored_orders():
    return current_domain.repository_for(MerchantOrder)._dao.query.all().items


# ---------------------------------------------------------------------------
# Given steps: cart
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a cart line "{line_id}" from merchant "{merchant_id}" priced {price}'))
def cart_line(cart_lines, line_id, merchant_id, price):
    cart_lines.append(
        CartLine(
            id=line_id,
            listing_id=f"lst-{line_id}",
            merchant_id=merchant_id,
            quantity=1,
            unit_price=Decimal(price),
        )
    )
    _set_stock(f"lst-{line_id}", 10)


@given(parsers.cfparse('an automatic {percent:d} percent promotion "{name}"'))
def automatic_percentage(percent, name):
    _store_rule(name=name, value_type="Percentage", value=float(percent))


@given(parsers.cfparse('an automatic fixed {amount} promotion "{name}"'))
def automatic_fixed(amount, name):
    _store_rule(name=name, value_type="Fixed", value=float(amount), currency="USD")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the action fails with a validation error")
def action_fails_with_validation_error(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse('checkout fails with "{code}"'))
def checkout_fails_with(error, code):
    assert isinstance(error["exc"], CheckoutError), f"Expected a checkout error, got {error['exc']!r}"
    assert error["exc"].code == code


@then("no orders are created")
def no_orders_created():
    assert _stored_orders() == []
