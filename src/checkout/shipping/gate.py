"""Shippability Gate: every line must reach the destination before checkout goes further.

Each distinct listing and merchant pair in the cart is checked once against
its shipping configuration (its own profile, else its merchant's default). A single
unshippable line blocks the whole checkout; the report names every blocked
line so the shopper can remove them and try again. A lookup that times out or
fails is reported as a retryable block, never as "ships".
"""

import asyncio
from dataclasses import dataclass

import structlog

from checkout.cart.lines import CartLine, validate_cart
from checkout.carrier import get_shipping_catalog
from checkout.carrier.port import ShippingCatalogPort
from checkout.errors import ServiceUnavailable, Unshippable
from checkout.settings import get_settings
from checkout.shipping.profile import normalize_country

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BlockedLine:
    cart_line_id: str
    listing_id: str
    merchant_id: str
    reason: str
    retryable: bool = False

    def to_dict(self) -> dict:
        return {
            "cart_line_id": self.cart_line_id,
            "listing_id": self.listing_id,
            "merchant_id": self.merchant_id,
            "reason": self.reason,
            "retryable": self.retryable,
        }


@dataclass(frozen=True)
class ShippabilityReport:
    destination_country: str
    blocked: tuple[BlockedLine, ...] = ()

    @property
    def shippable(self) -> bool:
        return not self.blocked

    @property
    def retryable(self) -> bool:
        """Blocked only by lookups that could not complete."""
        return bool(self.blocked) and all(line.retryable for line in self.blocked)

    def raise_for_blocked(self) -> None:
        if self.shippable:
            return
        if self.retryable:
            raise ServiceUnavailable(
                "Shipping availability could not be confirmed, please try again",
                {
                    "destination_country": self.destination_country,
                    "lines": [line.to_dict() for line in self.blocked],
                },
            )
        raise Unshippable(self.destination_country, [line.to_dict() for line in self.blocked])


async def check_shippability(
    lines: list[CartLine],
    destination_country: str,
    catalog: ShippingCatalogPort | None = None,
    timeout: float | None = None,
) -> ShippabilityReport:
    validate_cart(lines)
    country = normalize_country(destination_country)
    catalog = catalog or get_shipping_catalog()
    timeout = timeout if timeout is not None else get_settings().lookup_timeout_seconds

    listings = list(dict.fromkeys((line.listing_id, line.merchant_id) for line in lines))

    async def _lookup(listing_id, merchant_id):
        return await asyncio.wait_for(catalog.is_shippable(listing_id, country, merchant_id), timeout)

    results = await asyncio.gather(*(_lookup(*key) for key in listings), return_exceptions=True)

    verdicts = {}
    for (listing_id, merchant_id), result in zip(listings, results):
        if isinstance(result, TimeoutError):
            logger.warning("Shipping availability lookup timed out", listing_id=listing_id, country=country)
            verdicts[(listing_id, merchant_id)] = ("Shipping availability could not be confirmed in time", True)
        elif isinstance(result, Exception):
            logger.error(
                "Shipping availability lookup failed", listing_id=listing_id, country=country, error=str(result)
            )
            verdicts[(listing_id, merchant_id)] = ("Shipping availability could not be confirmed", True)
        elif isinstance(result, BaseException):
            raise result
        elif not result:
            verdicts[(listing_id, merchant_id)] = (f"Shipping not available to {country}", False)

    blocked = []
    for line in lines:
        verdict = verdicts.get((line.listing_id, line.merchant_id))
        if verdict is None:
            continue
        reason, retryable = verdict
        blocked.append(
            BlockedLine(
                cart_line_id=line.id,
                listing_id=line.listing_id,
                merchant_id=line.merchant_id,
                reason=reason,
                retryable=retryable,
            )
        )
    blocked = tuple(blocked)

    if blocked:
        logger.info(
            "Checkout blocked by shippability",
            country=country,
            blocked_lines=[line.cart_line_id for line in blocked],
        )
    return ShippabilityReport(destination_country=country, blocked=blocked)
