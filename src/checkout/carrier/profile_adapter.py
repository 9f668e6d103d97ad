"""Profile-backed shipping adapters: answer shipping lookups from ShippingProfile aggregates."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from checkout.carrier.port import CarrierRatePort, CarrierRateQuote, ShippingCatalogPort
from checkout.shipping.profile import ListingShipping, ShippingProfile


def default_profile(merchant_id):
    repo = current_domain.repository_for(ShippingProfile)
    profiles = repo._dao.query.filter(merchant_id=str(merchant_id), is_default=True).all().items
    if not profiles:
        return None
    return repo.get(profiles[0].id)


def profile_for_listing(listing_id, merchant_id=None):
    """The listing's own profile if it has one, otherwise its merchant's default."""
    try:
        assignment = current_domain.repository_for(ListingShipping).get(listing_id)
    except ObjectNotFoundError:
        assignment = None

    if assignment is not None:
        return current_domain.repository_for(ShippingProfile).get(assignment.profile_id)
    if merchant_id is None:
        return None
    return default_profile(merchant_id)


class ProfileShippingCatalog(ShippingCatalogPort):
    async def is_shippable(self, listing_id, destination_country, merchant_id=None):
        profile = profile_for_listing(listing_id, merchant_id)
        return profile is not None and profile.ships_to(destination_country)

    async def get_shipping_profile(self, merchant_id):
        return default_profile(merchant_id)


class ProfileCarrierRates(CarrierRatePort):
    """Quotes from the profiles behind the merchant's listings.

    Without listing ids the merchant's default profile answers. When the
    listings sit on more than one profile, a service is quoted only if every
    profile offers it in one currency, at the highest of their prices.
    """

    async def get_rates(self, merchant_id, destination_country, item_count=1, listing_ids=None):
        profiles = _profiles_for(merchant_id, listing_ids)
        if not profiles:
            return []

        offers = []
        for profile in profiles:
            offers.append({rate.service_name: (profile, rate) for rate in profile.rates_for(destination_country)})

        quotes = []
        for service_name in offers[0]:
            matches = [offer.get(service_name) for offer in offers]
            if any(match is None for match in matches):
                continue
            if len({profile.currency for profile, _ in matches}) != 1:
                continue

            days = [rate.estimated_days for _, rate in matches]
            quotes.append(
                CarrierRateQuote(
                    merchant_id=str(merchant_id),
                    service_name=service_name,
                    price_minor=max(rate.price_for(item_count) for _, rate in matches),
                    currency=matches[0][0].currency,
                    estimated_days=None if any(d is None for d in days) else max(days),
                )
            )
        return quotes


def _profiles_for(merchant_id, listing_ids):
    """Distinct profiles covering the listings; empty when any listing has none."""
    if not listing_ids:
        profile = default_profile(merchant_id)
        return [profile] if profile is not None else []

    profiles = {}
    for listing_id in dict.fromkeys(listing_ids):
        profile = profile_for_listing(listing_id, merchant_id)
        if profile is None:
            return []
        profiles.setdefault(str(profile.id), profile)
    return list(profiles.values())
