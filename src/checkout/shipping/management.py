"""Shipping profile management: commands and handler."""

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.shipping.profile import ListingShipping, ShippingProfile


@checkout.command(part_of="ShippingProfile")
class CreateShippingProfile:
    merchant_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    is_default = Boolean(default=False)
    currency = String(max_length=3, default="USD")
    origin_country = String(max_length=2)


@checkout.command(part_of="ShippingProfile")
class AddShippingDestination:
    profile_id = Identifier(required=True)
    country_code = String(max_length=2)
    everywhere_else = Boolean(default=False)
    is_excluded = Boolean(default=False)


@checkout.command(part_of="ShippingProfile")
class AddShippingRate:
    profile_id = Identifier(required=True)
    destination_id = Identifier(required=True)
    service_name = String(required=True, max_length=100)
    first_item_price_minor = Integer(default=0, min_value=0)
    additional_item_price_minor = Integer(default=0, min_value=0)
    is_free = Boolean(default=False)
    transit_days_min = Integer(min_value=0)
    transit_days_max = Integer(min_value=0)
    sort_order = Integer(default=0)


@checkout.command(part_of="ListingShipping")
class AssignListingShipping:
    listing_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    profile_id = Identifier(required=True)


@checkout.command_handler(part_of=ShippingProfile)
class ShippingProfileHandler:
    @handle(CreateShippingProfile)
    def create_shipping_profile(self, command):
        repo = current_domain.repository_for(ShippingProfile)

        if command.is_default:
            # A merchant has at most one default profile
            for existing in repo._dao.query.filter(merchant_id=str(command.merchant_id), is_default=True).all().items:
                existing.is_default = False
                repo.add(existing)

        profile = ShippingProfile.create(
            merchant_id=command.merchant_id,
            name=command.name,
            is_default=bool(command.is_default),
            currency=command.currency,
            origin_country=command.origin_country,
        )
        repo.add(profile)
        return str(profile.id)

    @handle(AddShippingDestination)
    def add_shipping_destination(self, command):
        repo = current_domain.repository_for(ShippingProfile)
        profile = repo.get(command.profile_id)
        destination_id = profile.add_destination(
            country_code=command.country_code,
            everywhere_else=bool(command.everywhere_else),
            is_excluded=bool(command.is_excluded),
        )
        repo.add(profile)
        return destination_id

    @handle(AddShippingRate)
    def add_shipping_rate(self, command):
        repo = current_domain.repository_for(ShippingProfile)
        profile = repo.get(command.profile_id)
        rate_id = profile.add_rate(
            destination_id=command.destination_id,
            service_name=command.service_name,
            first_item_price_minor=command.first_item_price_minor or 0,
            additional_item_price_minor=command.additional_item_price_minor or 0,
            is_free=bool(command.is_free),
            transit_days_min=command.transit_days_min,
            transit_days_max=command.transit_days_max,
            sort_order=command.sort_order or 0,
        )
        repo.add(profile)
        return rate_id


@checkout.command_handler(part_of=ListingShipping)
class ListingShippingHandler:
    @handle(AssignListingShipping)
    def assign_listing_shipping(self, command):
        profile = current_domain.repository_for(ShippingProfile).get(command.profile_id)
        if str(profile.merchant_id) != str(command.merchant_id):
            raise ValidationError({"profile_id": ["Profile belongs to another merchant"]})

        repo = current_domain.repository_for(ListingShipping)
        try:
            assignment = repo.get(command.listing_id)
        except ObjectNotFoundError:
            assignment = ListingShipping.assign(
                listing_id=command.listing_id,
                merchant_id=command.merchant_id,
                profile_id=command.profile_id,
            )
        else:
            assignment.reassign(command.profile_id)

        repo.add(assignment)
        return str(assignment.listing_id)
