"""Domain events for the PromotionRule aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="PromotionRule")
class PromotionRuleCreated:
    """A merchant or the platform defined a new promotion."""

    __version__ = 1

    promotion_id = Identifier(required=True)
    name = String(required=True)
    code = String()
    value_type = String(required=True)
    value = Float(required=True)
    owner_type = String(required=True)
    owner_id = Identifier()
    created_at = DateTime(required=True)


@checkout.event(part_of="PromotionRule")
class PromotionActivationChanged:
    """A promotion was switched on or off."""

    __version__ = 1

    promotion_id = Identifier(required=True)
    is_active = Boolean(required=True)
    changed_at = DateTime(required=True)


@checkout.event(part_of="PromotionRule")
class PromotionRedeemed:
    """A placed checkout used the promotion on at least one line."""

    __version__ = 1

    promotion_id = Identifier(required=True)
    checkout_id = Identifier(required=True)
    usage_count = Integer(required=True)
    usage_limit = Integer()
    redeemed_at = DateTime(required=True)
