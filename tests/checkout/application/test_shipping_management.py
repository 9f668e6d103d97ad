"""Application tests for shipping profile commands."""

import pytest
from checkout.shipping.management import (
    AddShippingDestination,
    AddShippingRate,
    AssignListingShipping,
    CreateShippingProfile,
)
from checkout.shipping.profile import ListingShipping, ShippingProfile
from protean import current_domain
from protean.exceptions import ValidationError


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _profile(profile_id):
    return current_domain.repository_for(ShippingProfile).get(profile_id)


class TestShippingProfileCommands:
    def test_build_profile(self):
        profile_id = _process(CreateShippingProfile(merchant_id="mer-001", name="Domestic", is_default=True))
        destination_id = _process(AddShippingDestination(profile_id=profile_id, country_code="US"))
        _process(
            AddShippingRate(
                profile_id=profile_id,
                destination_id=destination_id,
                service_name="Standard",
                first_item_price_minor=500,
                additional_item_price_minor=100,
            )
        )

        profile = _profile(profile_id)
        assert profile.ships_to("US")
        assert profile.rates_for("US")[0].price_for(2) == 600

    def test_new_default_replaces_old(self):
        first = _process(CreateShippingProfile(merchant_id="mer-001", name="Old", is_default=True))
        second = _process(CreateShippingProfile(merchant_id="mer-001", name="New", is_default=True))

        assert _profile(first).is_default is False
        assert _profile(second).is_default is True

    def test_other_merchants_defaults_untouched(self):
        first = _process(CreateShippingProfile(merchant_id="mer-001", name="Mine", is_default=True))
        _process(CreateShippingProfile(merchant_id="mer-002", name="Theirs", is_default=True))
        assert _profile(first).is_default is True


class TestListingShippingCommands:
    def test_assign_and_reassign(self):
        first = _process(CreateShippingProfile(merchant_id="mer-001", name="Small parcels"))
        second = _process(CreateShippingProfile(merchant_id="mer-001", name="Freight"))

        _process(AssignListingShipping(listing_id="lst-001", merchant_id="mer-001", profile_id=first))
        _process(AssignListingShipping(listing_id="lst-001", merchant_id="mer-001", profile_id=second))

        assignment = current_domain.repository_for(ListingShipping).get("lst-001")
        assert assignment.profile_id == second

    def test_profile_of_another_merchant_rejected(self):
        profile_id = _process(CreateShippingProfile(merchant_id="mer-002", name="Theirs"))
        with pytest.raises(ValidationError):
            _process(AssignListingShipping(listing_id="lst-001", merchant_id="mer-001", profile_id=profile_id))
