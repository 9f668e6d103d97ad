"""Domain events for shipping profiles and listing assignments."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="ShippingProfile")
class ShippingProfileCreated:
    __version__ = 1

    profile_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    name = String(required=True)
    is_default = Boolean(required=True)
    created_at = DateTime(required=True)


@checkout.event(part_of="ShippingProfile")
class ShippingDestinationAdded:
    __version__ = 1

    profile_id = Identifier(required=True)
    destination_id = Identifier(required=True)
    kind = String(required=True)
    country_code = String()
    is_excluded = Boolean(required=True)


@checkout.event(part_of="ShippingProfile")
class ShippingRateAdded:
    __version__ = 1

    profile_id = Identifier(required=True)
    rate_id = Identifier(required=True)
    destination_id = Identifier(required=True)
    service_name = String(required=True)
    first_item_price_minor = Integer(required=True)
    additional_item_price_minor = Integer(required=True)
    is_free = Boolean(required=True)


@checkout.event(part_of="ListingShipping")
class ListingShippingAssigned:
    __version__ = 1

    listing_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    profile_id = Identifier(required=True)
    assigned_at = DateTime(required=True)
