"""Promotion management: commands and handler."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.promotion.rule import PromotionOwner, PromotionRule, normalize_code


@checkout.command(part_of="PromotionRule")
class CreatePromotionRule:
    name = String(required=True, max_length=255)
    value_type = String(required=True, max_length=20)
    value = Float(required=True, min_value=0.0)
    code = String(max_length=50)
    currency = String(max_length=3)
    eligible_customers = Text()  # JSON: list of customer ids / emails
    target_product_ids = Text()  # JSON: list of listing ids
    min_purchase_amount = Float(min_value=0.0)
    min_purchase_quantity = Integer(min_value=1)
    usage_limit = Integer(min_value=1)
    starts_at = DateTime()
    ends_at = DateTime()
    is_active = Boolean(default=True)
    owner_type = String(max_length=20, default=PromotionOwner.PLATFORM.value)
    owner_id = Identifier()


@checkout.command(part_of="PromotionRule")
class SetPromotionActive:
    promotion_id = Identifier(required=True)
    is_active = Boolean(required=True)


@checkout.command(part_of="PromotionRule")
class DuplicatePromotionRule:
    promotion_id = Identifier(required=True)


def _load_list(value):
    if not value:
        return []
    return json.loads(value) if isinstance(value, str) else list(value)


@checkout.command_handler(part_of=PromotionRule)
class PromotionManagementHandler:
    @handle(CreatePromotionRule)
    def create_promotion_rule(self, command):
        repo = current_domain.repository_for(PromotionRule)

        code = normalize_code(command.code)
        if code and repo.find_by_code(code) is not None:
            raise ValidationError({"code": [f"Promotion code {code} is already in use"]})

        rule = PromotionRule.create(
            name=command.name,
            value_type=command.value_type,
            value=command.value,
            code=code,
            currency=command.currency,
            eligible_customers=_load_list(command.eligible_customers),
            target_product_ids=_load_list(command.target_product_ids),
            min_purchase_amount=command.min_purchase_amount,
            min_purchase_quantity=command.min_purchase_quantity,
            usage_limit=command.usage_limit,
            starts_at=command.starts_at,
            ends_at=command.ends_at,
            is_active=command.is_active if command.is_active is not None else True,
            owner_type=command.owner_type or PromotionOwner.PLATFORM.value,
            owner_id=command.owner_id,
        )
        repo.add(rule)
        return str(rule.id)

    @handle(SetPromotionActive)
    def set_promotion_active(self, command):
        repo = current_domain.repository_for(PromotionRule)
        rule = repo.get(command.promotion_id)
        rule.set_active(command.is_active)
        repo.add(rule)

    @handle(DuplicatePromotionRule)
    def duplicate_promotion_rule(self, command):
        repo = current_domain.repository_for(PromotionRule)
        copy = repo.get(command.promotion_id).duplicate()
        repo.add(copy)
        return str(copy.id)
