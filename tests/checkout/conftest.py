import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def checkout_bed():
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset_adapters(monkeypatch):
    """Every test starts from the default adapters and settings."""
    from checkout.carrier import reset_shipping_adapters
    from checkout.gateway import reset_gateway
    from checkout.inventory.oracle import reset_inventory_oracle

    monkeypatch.delenv("CHECKOUT_LOOKUP_TIMEOUT_SECONDS", raising=False)
    monkeypatch.delenv("CHECKOUT_ORDER_NUMBER_PREFIX", raising=False)
    reset_shipping_adapters()
    reset_gateway()
    reset_inventory_oracle()
    yield
    reset_shipping_adapters()
    reset_gateway()
    reset_inventory_oracle()
