"""ShippingProfile aggregate: where a merchant ships and what each service costs.

A profile lists destinations (explicit countries, or a single "everywhere
else" catch-all) and per-destination rates for named carrier services. A
listing either has a profile of its own (``ListingShipping``) or falls back to
its merchant's default profile.

Destination matching for a country:
    1. An explicit, non-excluded entry for the country ships.
    2. An explicit excluded entry never ships, even with a catch-all present.
    3. Otherwise a non-excluded "everywhere else" entry ships.
"""

import re
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String

from checkout.domain import checkout
from checkout.shipping.events import (
    ListingShippingAssigned,
    ShippingDestinationAdded,
    ShippingProfileCreated,
    ShippingRateAdded,
)

_COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")


class DestinationKind(Enum):
    COUNTRY = "Country"
    EVERYWHERE_ELSE = "Everywhere_Else"


def normalize_country(country):
    code = str(country or "").strip().upper()
    if not _COUNTRY_CODE.match(code):
        raise ValidationError({"country_code": [f"Invalid country code: {country!r}"]})
    return code


@checkout.entity(part_of="ShippingProfile")
class ShippingDestination:
    kind = String(choices=DestinationKind, default=DestinationKind.COUNTRY.value)
    country_code = String(max_length=2)
    is_excluded = Boolean(default=False)


@checkout.entity(part_of="ShippingProfile")
class ShippingRate:
    """Price of one carrier service to one destination, in minor currency units."""

    destination_id = Identifier(required=True)
    service_name = String(required=True, max_length=100)
    first_item_price_minor = Integer(default=0, min_value=0)
    additional_item_price_minor = Integer(default=0, min_value=0)
    is_free = Boolean(default=False)
    transit_days_min = Integer(min_value=0)
    transit_days_max = Integer(min_value=0)
    sort_order = Integer(default=0)

    def price_for(self, item_count):
        if self.is_free:
            return 0
        extra_items = max(item_count - 1, 0)
        return self.first_item_price_minor + extra_items * self.additional_item_price_minor

    @property
    def estimated_days(self):
        return self.transit_days_max if self.transit_days_max is not None else self.transit_days_min


@checkout.aggregate
class ShippingProfile:
    merchant_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    is_default = Boolean(default=False)
    currency = String(max_length=3, default="USD")
    origin_country = String(max_length=2)
    destinations = HasMany(ShippingDestination)
    rates = HasMany(ShippingRate)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, merchant_id, name, is_default=False, currency="USD", origin_country=None):
        now = datetime.now(UTC)
        profile = cls(
            merchant_id=merchant_id,
            name=name,
            is_default=is_default,
            currency=(currency or "USD").upper(),
            origin_country=normalize_country(origin_country) if origin_country else None,
            created_at=now,
            updated_at=now,
        )
        profile.raise_(
            ShippingProfileCreated(
                profile_id=str(profile.id),
                merchant_id=str(merchant_id),
                name=name,
                is_default=bool(is_default),
                created_at=now,
            )
        )
        return profile

    # -------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------
    def add_destination(self, country_code=None, everywhere_else=False, is_excluded=False):
        if everywhere_else:
            if any(d.kind == DestinationKind.EVERYWHERE_ELSE.value for d in self.destinations):
                raise ValidationError({"destinations": ["Profile already has an 'everywhere else' destination"]})
            destination = ShippingDestination(
                kind=DestinationKind.EVERYWHERE_ELSE.value,
                is_excluded=is_excluded,
            )
        else:
            country_code = normalize_country(country_code)
            if self._country_entry(country_code) is not None:
                raise ValidationError({"destinations": [f"Profile already lists {country_code}"]})
            destination = ShippingDestination(
                kind=DestinationKind.COUNTRY.value,
                country_code=country_code,
                is_excluded=is_excluded,
            )

        self.add_destinations(destination)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            ShippingDestinationAdded(
                profile_id=str(self.id),
                destination_id=str(destination.id),
                kind=destination.kind,
                country_code=destination.country_code,
                is_excluded=bool(destination.is_excluded),
            )
        )
        return str(destination.id)

    def add_rate(
        self,
        destination_id,
        service_name,
        first_item_price_minor=0,
        additional_item_price_minor=0,
        is_free=False,
        transit_days_min=None,
        transit_days_max=None,
        sort_order=0,
    ):
        if not any(str(d.id) == str(destination_id) for d in self.destinations):
            raise ValidationError({"destination_id": ["Destination not found in profile"]})
        if any(
            str(r.destination_id) == str(destination_id) and r.service_name == service_name for r in self.rates
        ):
            raise ValidationError({"service_name": [f"Destination already has a '{service_name}' rate"]})
        if transit_days_min is not None and transit_days_max is not None and transit_days_max < transit_days_min:
            raise ValidationError({"transit_days_max": ["Maximum transit days cannot be below the minimum"]})

        rate = ShippingRate(
            destination_id=destination_id,
            service_name=service_name,
            first_item_price_minor=first_item_price_minor,
            additional_item_price_minor=additional_item_price_minor,
            is_free=is_free,
            transit_days_min=transit_days_min,
            transit_days_max=transit_days_max,
            sort_order=sort_order,
        )
        self.add_rates(rate)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            ShippingRateAdded(
                profile_id=str(self.id),
                rate_id=str(rate.id),
                destination_id=str(destination_id),
                service_name=service_name,
                first_item_price_minor=first_item_price_minor,
                additional_item_price_minor=additional_item_price_minor,
                is_free=bool(is_free),
            )
        )
        return str(rate.id)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def _country_entry(self, country_code):
        return next(
            (
                d
                for d in self.destinations
                if d.kind == DestinationKind.COUNTRY.value and d.country_code == country_code
            ),
            None,
        )

    def destination_for(self, country):
        """The destination entry that covers ``country``, or None when the profile does not ship there."""
        country = normalize_country(country)
        entry = self._country_entry(country)
        if entry is not None:
            return None if entry.is_excluded else entry

        catch_all = next((d for d in self.destinations if d.kind == DestinationKind.EVERYWHERE_ELSE.value), None)
        if catch_all is not None and not catch_all.is_excluded:
            return catch_all
        return None

    def ships_to(self, country):
        return self.destination_for(country) is not None

    def rates_for(self, country):
        destination = self.destination_for(country)
        if destination is None:
            return []
        rates = [r for r in self.rates if str(r.destination_id) == str(destination.id)]
        return sorted(rates, key=lambda r: (r.sort_order, r.service_name))


@checkout.aggregate
class ListingShipping:
    """Pins a listing to a specific shipping profile of its merchant."""

    listing_id = Identifier(identifier=True)
    merchant_id = Identifier(required=True)
    profile_id = Identifier(required=True)
    assigned_at = DateTime()

    @classmethod
    def assign(cls, listing_id, merchant_id, profile_id):
        now = datetime.now(UTC)
        assignment = cls(
            listing_id=listing_id,
            merchant_id=merchant_id,
            profile_id=profile_id,
            assigned_at=now,
        )
        assignment.raise_(
            ListingShippingAssigned(
                listing_id=str(listing_id),
                merchant_id=str(merchant_id),
                profile_id=str(profile_id),
                assigned_at=now,
            )
        )
        return assignment

    def reassign(self, profile_id):
        now = datetime.now(UTC)
        self.profile_id = profile_id
        self.assigned_at = now
        self.raise_(
            ListingShippingAssigned(
                listing_id=str(self.listing_id),
                merchant_id=str(self.merchant_id),
                profile_id=str(profile_id),
                assigned_at=now,
            )
        )
