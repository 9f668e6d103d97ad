"""Shipping adapter abstraction: pluggable availability and carrier rate lookups.

Provides get_/set_/reset_ accessors for both ports. Profile-backed adapters
are used by default; set SHIPPING_CATALOG_ADAPTER or CARRIER_RATES_ADAPTER to
"fake" for the deterministic in-memory adapters.
"""

import os

from checkout.carrier.port import CarrierRatePort, ShippingCatalogPort

_catalog_instance: ShippingCatalogPort | None = None
_rates_instance: CarrierRatePort | None = None


def get_shipping_catalog() -> ShippingCatalogPort:
    """Return the configured shipping catalog adapter (singleton)."""
    global _catalog_instance
    if _catalog_instance is None:
        adapter = os.environ.get("SHIPPING_CATALOG_ADAPTER", "profile")
        if adapter == "profile":
            from checkout.carrier.profile_adapter import ProfileShippingCatalog

            _catalog_instance = ProfileShippingCatalog()
        elif adapter == "fake":
            from checkout.carrier.fake_adapter import FakeShippingCatalog

            _catalog_instance = FakeShippingCatalog()
        else:
            raise ValueError(f"Unknown shipping catalog adapter: {adapter}")
    return _catalog_instance


def set_shipping_catalog(catalog: ShippingCatalogPort) -> None:
    global _catalog_instance
    _catalog_instance = catalog


def get_carrier_rates() -> CarrierRatePort:
    """Return the configured carrier rate adapter (singleton)."""
    global _rates_instance
    if _rates_instance is None:
        adapter = os.environ.get("CARRIER_RATES_ADAPTER", "profile")
        if adapter == "profile":
            from checkout.carrier.profile_adapter import ProfileCarrierRates

            _rates_instance = ProfileCarrierRates()
        elif adapter == "fake":
            from checkout.carrier.fake_adapter import FakeCarrierRates

            _rates_instance = FakeCarrierRates()
        else:
            raise ValueError(f"Unknown carrier rates adapter: {adapter}")
    return _rates_instance


def set_carrier_rates(rates: CarrierRatePort) -> None:
    global _rates_instance
    _rates_instance = rates


def reset_shipping_adapters() -> None:
    """Reset both singletons (useful for testing)."""
    global _catalog_instance, _rates_instance
    _catalog_instance = None
    _rates_instance = None
