"""Shipping ports: abstract interfaces for shipping availability and carrier rates.

Settlement programs against these ports; adapters are swapped via
configuration. Every method is a coroutine so callers can fan lookups out
concurrently and bound each one with a timeout.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CarrierRateQuote:
    """One merchant's price for one carrier service to a destination. Never persisted."""

    merchant_id: str
    service_name: str
    price_minor: int
    currency: str
    estimated_days: int | None = None


class ShippingCatalogPort(ABC):
    """Abstract interface for shipping availability lookups."""

    @abstractmethod
    async def is_shippable(self, listing_id: str, destination_country: str, merchant_id: str | None = None) -> bool:
        """Whether the listing's shipping configuration covers the destination."""
        ...

    @abstractmethod
    async def get_shipping_profile(self, merchant_id: str):
        """The merchant's default shipping profile, or None."""
        ...


class CarrierRatePort(ABC):
    """Abstract interface for carrier rate lookups."""

    @abstractmethod
    async def get_rates(
        self,
        merchant_id: str,
        destination_country: str,
        item_count: int = 1,
        listing_ids: list[str] | None = None,
    ) -> list[CarrierRateQuote]:
        """Every service the merchant can ship to the destination, priced for ``item_count`` items.

        ``listing_ids`` are the listings in the merchant's partition of the cart;
        a service is quoted only when it covers all of them.
        """
        ...
