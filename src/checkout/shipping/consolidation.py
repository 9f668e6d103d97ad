"""Shipping Rate Consolidator: one set of carrier services valid for the whole cart.

Each merchant ships its own partition of the cart, so a consolidated option is
a carrier service name that every contributing merchant quotes, in one
currency. Its total is the sum of the merchants' prices and its estimate is
the slowest merchant's estimate. A merchant that quotes nothing for the
destination makes the cart unshippable, which is reported separately from a
cart whose merchants simply have no service in common.

Default option: lowest total, then shortest estimate (unknown estimates last),
then service name.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

import structlog

from checkout.cart.lines import CartLine, group_by_merchant, validate_cart
from checkout.carrier import get_carrier_rates
from checkout.carrier.port import CarrierRatePort, CarrierRateQuote
from checkout.errors import NoValidShippingOption, ServiceUnavailable, Unshippable
from checkout.settings import get_settings
from checkout.shared.money import from_minor
from checkout.shipping.profile import normalize_country

logger = structlog.get_logger(__name__)


class ShippingStatus(Enum):
    OK = "Ok"
    UNSHIPPABLE = "Unshippable"
    NO_VALID_OPTION = "No_Valid_Option"
    RATES_UNAVAILABLE = "Rates_Unavailable"


@dataclass(frozen=True)
class ShippingSelection:
    service_name: str
    per_merchant_price: dict[str, int]
    currency: str
    estimated_days: int | None = None

    @property
    def total_minor(self) -> int:
        return sum(self.per_merchant_price.values())

    @property
    def total(self) -> Decimal:
        return from_minor(self.total_minor)

    def amount_for(self, merchant_id: str) -> Decimal:
        return from_minor(self.per_merchant_price[merchant_id])

    def covers(self, merchant_ids) -> bool:
        """Valid for a cart only when it prices exactly the merchants in it."""
        return set(self.per_merchant_price) == set(merchant_ids)

    def to_dict(self) -> dict:
        return {
            "service_name": self.service_name,
            "per_merchant_price": dict(self.per_merchant_price),
            "currency": self.currency,
            "estimated_days": self.estimated_days,
            "total_minor": self.total_minor,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ShippingSelection":
        return cls(
            service_name=data["service_name"],
            per_merchant_price={str(k): int(v) for k, v in data["per_merchant_price"].items()},
            currency=str(data["currency"]).upper(),
            estimated_days=data.get("estimated_days"),
        )


@dataclass(frozen=True)
class ShippingOptions:
    status: ShippingStatus
    candidates: tuple[ShippingSelection, ...] = ()
    destination_country: str | None = None
    unquoted_merchants: tuple[str, ...] = ()
    unavailable_merchants: tuple[str, ...] = ()
    blocked_lines: tuple[dict, ...] = ()
    message: str | None = None

    @property
    def default(self) -> ShippingSelection | None:
        return self.candidates[0] if self.candidates else None

    @property
    def retryable(self) -> bool:
        return self.status == ShippingStatus.RATES_UNAVAILABLE

    def select(self, service_name: str | None = None) -> ShippingSelection:
        """Return the named candidate, or the default when no name is given."""
        if self.status == ShippingStatus.RATES_UNAVAILABLE:
            raise ServiceUnavailable(
                self.message or "Shipping rates are temporarily unavailable",
                {"merchants": list(self.unavailable_merchants)},
            )
        if self.status == ShippingStatus.UNSHIPPABLE:
            raise Unshippable(self.destination_country, list(self.blocked_lines))
        if self.status == ShippingStatus.NO_VALID_OPTION:
            raise NoValidShippingOption(self.message or "No shipping service is offered by every merchant in the cart")

        if service_name is None:
            return self.default
        for candidate in self.candidates:
            if candidate.service_name == service_name:
                return candidate
        raise NoValidShippingOption(
            f"'{service_name}' is not offered by every merchant in the cart",
            {"service_name": service_name, "available": [c.service_name for c in self.candidates]},
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "destination_country": self.destination_country,
            "candidates": [c.to_dict() for c in self.candidates],
            "default": self.default.service_name if self.default else None,
            "unquoted_merchants": list(self.unquoted_merchants),
            "unavailable_merchants": list(self.unavailable_merchants),
            "blocked_lines": list(self.blocked_lines),
            "message": self.message,
        }


def _cheapest_by_service(quotes: list[CarrierRateQuote]) -> dict[str, CarrierRateQuote]:
    best: dict[str, CarrierRateQuote] = {}
    for quote in quotes:
        current = best.get(quote.service_name)
        if current is None or quote.price_minor < current.price_minor:
            best[quote.service_name] = quote
    return best


def _sort_key(selection: ShippingSelection):
    days = selection.estimated_days
    return (selection.total_minor, days is None, days or 0, selection.service_name)


def consolidate(
    merchant_ids: list[str],
    quotes_by_merchant: dict[str, list[CarrierRateQuote]],
    destination_country: str | None = None,
    lines_by_merchant: dict[str, list[CartLine]] | None = None,
    unavailable_merchants=(),
    currency: str | None = None,
) -> ShippingOptions:
    """Build the consolidated options from every merchant's quotes. Pure.

    With ``currency`` set, only options priced in the cart's currency qualify.
    """
    merchant_ids = list(dict.fromkeys(merchant_ids))
    unavailable = tuple(m for m in merchant_ids if m in set(unavailable_merchants))

    if unavailable:
        return ShippingOptions(
            status=ShippingStatus.RATES_UNAVAILABLE,
            destination_country=destination_country,
            unavailable_merchants=unavailable,
            message="Shipping rates are temporarily unavailable, please try again",
        )

    unquoted = tuple(m for m in merchant_ids if not quotes_by_merchant.get(m))
    if unquoted:
        blocked = []
        for merchant_id in unquoted:
            for line in (lines_by_merchant or {}).get(merchant_id, []):
                blocked.append(
                    {
                        "cart_line_id": line.id,
                        "listing_id": line.listing_id,
                        "merchant_id": merchant_id,
                        "reason": f"No shipping rates to {destination_country}",
                    }
                )
            if not (lines_by_merchant or {}).get(merchant_id):
                blocked.append(
                    {
                        "cart_line_id": None,
                        "merchant_id": merchant_id,
                        "reason": f"No shipping rates to {destination_country}",
                    }
                )
        return ShippingOptions(
            status=ShippingStatus.UNSHIPPABLE,
            destination_country=destination_country,
            unquoted_merchants=unquoted,
            blocked_lines=tuple(blocked),
            message="Some merchants in your cart do not ship to this destination",
        )

    def _usable(quotes):
        if currency is None:
            return quotes
        return [quote for quote in quotes if quote.currency.upper() == currency.upper()]

    offers = {
        merchant_id: _cheapest_by_service(_usable(quotes_by_merchant[merchant_id])) for merchant_id in merchant_ids
    }
    common = set.intersection(*(set(services) for services in offers.values())) if offers else set()

    candidates = []
    for service_name in common:
        quotes = [offers[merchant_id][service_name] for merchant_id in merchant_ids]
        currencies = {quote.currency.upper() for quote in quotes}
        if len(currencies) != 1:
            continue

        days = [quote.estimated_days for quote in quotes]
        candidates.append(
            ShippingSelection(
                service_name=service_name,
                per_merchant_price={quote.merchant_id: quote.price_minor for quote in quotes},
                currency=currencies.pop(),
                estimated_days=None if any(d is None for d in days) else max(days),
            )
        )

    if not candidates:
        return ShippingOptions(
            status=ShippingStatus.NO_VALID_OPTION,
            destination_country=destination_country,
            message="No shipping service is offered by every merchant in the cart",
        )

    return ShippingOptions(
        status=ShippingStatus.OK,
        candidates=tuple(sorted(candidates, key=_sort_key)),
        destination_country=destination_country,
    )


async def fetch_shipping_options(
    lines: list[CartLine],
    destination_country: str,
    rates: CarrierRatePort | None = None,
    timeout: float | None = None,
) -> ShippingOptions:
    """Query every merchant's rates concurrently, each bounded by the lookup timeout."""
    currency = validate_cart(lines)
    country = normalize_country(destination_country)
    rates = rates or get_carrier_rates()
    timeout = timeout if timeout is not None else get_settings().lookup_timeout_seconds

    partitions = group_by_merchant(lines)
    merchant_ids = list(partitions)

    async def _lookup(merchant_id):
        partition = partitions[merchant_id]
        item_count = sum(line.quantity for line in partition)
        listing_ids = list(dict.fromkeys(line.listing_id for line in partition))
        return await asyncio.wait_for(rates.get_rates(merchant_id, country, item_count, listing_ids), timeout)

    results = await asyncio.gather(*(_lookup(m) for m in merchant_ids), return_exceptions=True)

    quotes_by_merchant = {}
    unavailable = []
    for merchant_id, result in zip(merchant_ids, results):
        if isinstance(result, TimeoutError):
            logger.warning("Carrier rate lookup timed out", merchant_id=merchant_id, country=country, timeout=timeout)
            unavailable.append(merchant_id)
        elif isinstance(result, Exception):
            logger.error(
                "Carrier rate lookup failed", merchant_id=merchant_id, country=country, error=str(result)
            )
            unavailable.append(merchant_id)
        elif isinstance(result, BaseException):
            raise result
        else:
            quotes_by_merchant[merchant_id] = list(result)

    options = consolidate(
        merchant_ids,
        quotes_by_merchant,
        destination_country=country,
        lines_by_merchant=partitions,
        unavailable_merchants=unavailable,
        currency=currency,
    )
    logger.info(
        "Shipping options consolidated",
        country=country,
        merchant_count=len(merchant_ids),
        status=options.status.value,
        candidate_count=len(options.candidates),
    )
    return options
