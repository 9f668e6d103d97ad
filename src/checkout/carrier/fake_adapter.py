"""Fake shipping adapters: deterministic catalog and carrier rates for testing and development.

Configurable per merchant and per listing, with an optional artificial delay
so callers can exercise their lookup timeouts.
"""

import asyncio

from checkout.carrier.port import CarrierRatePort, CarrierRateQuote, ShippingCatalogPort


class FakeShippingCatalog(ShippingCatalogPort):
    """Ships every listing everywhere unless told otherwise."""

    def __init__(self):
        self.blocked: dict[str, set[str]] = {}
        self.delay = 0.0
        self.calls: list[dict] = []

    def configure(self, blocked: dict[str, set[str]] | None = None, delay: float = 0.0):
        """``blocked`` maps listing id to the country codes it cannot ship to."""
        self.blocked = {listing: set(countries) for listing, countries in (blocked or {}).items()}
        self.delay = delay

    async def is_shippable(self, listing_id, destination_country, merchant_id=None):
        self.calls.append({"method": "is_shippable", "listing_id": listing_id, "country": destination_country})
        if self.delay:
            await asyncio.sleep(self.delay)
        return destination_country not in self.blocked.get(listing_id, set())

    async def get_shipping_profile(self, merchant_id):
        return None


class FakeCarrierRates(CarrierRatePort):
    """Returns the quotes configured for each merchant; merchants without any get none."""

    def __init__(self):
        self.quotes: dict[str, list[CarrierRateQuote]] = {}
        self.delay = 0.0
        self.slow_merchants: set[str] = set()
        self.calls: list[dict] = []

    def configure(self, quotes=None, delay: float = 0.0, slow_merchants=None):
        self.quotes = {merchant: list(items) for merchant, items in (quotes or {}).items()}
        self.delay = delay
        self.slow_merchants = set(slow_merchants or [])

    async def get_rates(self, merchant_id, destination_country, item_count=1, listing_ids=None):
        self.calls.append(
            {
                "method": "get_rates",
                "merchant_id": merchant_id,
                "country": destination_country,
                "item_count": item_count,
                "listing_ids": list(listing_ids or []),
            }
        )
        if self.delay and (not self.slow_merchants or merchant_id in self.slow_merchants):
            await asyncio.sleep(self.delay)
        return list(self.quotes.get(merchant_id, []))
