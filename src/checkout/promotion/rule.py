"""PromotionRule aggregate: a discount definition with scope, eligibility and value semantics.

Rules without a code apply automatically to every cart they qualify for.
Coded rules only take part once the customer enters the code. A rule owned by
a merchant never discounts another merchant's lines.

``usage_count`` changes in exactly one place: ``redeem()``, called by the
order assembler inside the transaction that places the orders.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from checkout.domain import checkout
from checkout.promotion.events import PromotionActivationChanged, PromotionRedeemed, PromotionRuleCreated


class PromotionValueType(Enum):
    PERCENTAGE = "Percentage"
    FIXED = "Fixed"


class CustomerEligibility(Enum):
    ALL = "All"
    SPECIFIC = "Specific"


class TargetScope(Enum):
    ALL_PRODUCTS = "All_Products"
    SPECIFIC_PRODUCTS = "Specific_Products"


class PromotionOwner(Enum):
    PLATFORM = "Platform"
    MERCHANT = "Merchant"


def normalize_code(code):
    if code is None:
        return None
    code = str(code).strip().upper()
    return code or None


def _aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@checkout.aggregate
class PromotionRule:
    name = String(required=True, max_length=255)
    code = String(max_length=50)
    value_type = String(choices=PromotionValueType, required=True)
    value = Float(required=True, min_value=0.0)
    currency = String(max_length=3)
    customer_eligibility = String(choices=CustomerEligibility, default=CustomerEligibility.ALL.value)
    eligible_customers = Text()  # JSON array of customer ids and/or emails
    target_scope = String(choices=TargetScope, default=TargetScope.ALL_PRODUCTS.value)
    target_product_ids = Text()  # JSON array of listing ids
    min_purchase_amount = Float(min_value=0.0)
    min_purchase_quantity = Integer(min_value=1)
    usage_limit = Integer(min_value=1)
    usage_count = Integer(default=0, min_value=0)
    starts_at = DateTime()
    ends_at = DateTime()
    is_active = Boolean(default=True)
    owner_type = String(choices=PromotionOwner, default=PromotionOwner.PLATFORM.value)
    owner_id = Identifier()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def percentage_cannot_exceed_one_hundred(self):
        if self.value_type == PromotionValueType.PERCENTAGE.value and self.value > 100:
            raise ValidationError({"value": ["Percentage discounts cannot exceed 100"]})

    @invariant.post
    def active_window_must_be_ordered(self):
        if self.starts_at and self.ends_at and _aware(self.ends_at) <= _aware(self.starts_at):
            raise ValidationError({"ends_at": ["Promotion must end after it starts"]})

    @invariant.post
    def merchant_promotions_must_name_their_merchant(self):
        if self.owner_type == PromotionOwner.MERCHANT.value and not self.owner_id:
            raise ValidationError({"owner_id": ["Merchant promotions must name the owning merchant"]})

    @invariant.post
    def specific_scopes_must_list_members(self):
        if self.customer_eligibility == CustomerEligibility.SPECIFIC.value and not self.customers:
            raise ValidationError({"eligible_customers": ["List at least one eligible customer"]})
        if self.target_scope == TargetScope.SPECIFIC_PRODUCTS.value and not self.product_ids:
            raise ValidationError({"target_product_ids": ["List at least one targeted product"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        name,
        value_type,
        value,
        code=None,
        currency=None,
        eligible_customers=None,
        target_product_ids=None,
        min_purchase_amount=None,
        min_purchase_quantity=None,
        usage_limit=None,
        starts_at=None,
        ends_at=None,
        is_active=True,
        owner_type=PromotionOwner.PLATFORM.value,
        owner_id=None,
        created_at=None,
    ):
        now = created_at or datetime.now(UTC)
        customers = sorted({str(c).strip().lower() for c in eligible_customers or [] if str(c).strip()})
        products = sorted({str(p) for p in target_product_ids or []})

        rule = cls(
            name=name,
            code=normalize_code(code),
            value_type=value_type,
            value=value,
            currency=currency.upper() if currency else None,
            customer_eligibility=(CustomerEligibility.SPECIFIC if customers else CustomerEligibility.ALL).value,
            eligible_customers=json.dumps(customers),
            target_scope=(TargetScope.SPECIFIC_PRODUCTS if products else TargetScope.ALL_PRODUCTS).value,
            target_product_ids=json.dumps(products),
            min_purchase_amount=min_purchase_amount,
            min_purchase_quantity=min_purchase_quantity,
            usage_limit=usage_limit,
            usage_count=0,
            starts_at=_aware(starts_at),
            ends_at=_aware(ends_at),
            is_active=is_active,
            owner_type=owner_type,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        rule.raise_(
            PromotionRuleCreated(
                promotion_id=str(rule.id),
                name=rule.name,
                code=rule.code,
                value_type=rule.value_type,
                value=rule.value,
                owner_type=rule.owner_type,
                owner_id=rule.owner_id,
                created_at=now,
            )
        )
        return rule

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def customers(self) -> set[str]:
        return set(json.loads(self.eligible_customers)) if self.eligible_customers else set()

    @property
    def product_ids(self) -> set[str]:
        return set(json.loads(self.target_product_ids)) if self.target_product_ids else set()

    @property
    def is_coded(self) -> bool:
        return bool(self.code)

    @property
    def is_merchant_owned(self) -> bool:
        return self.owner_type == PromotionOwner.MERCHANT.value

    def has_remaining_uses(self) -> bool:
        return self.usage_limit is None or self.usage_count < self.usage_limit

    def inactive_reason(self, now=None):
        """Why the rule cannot be used right now, or None when it is live."""
        now = now or datetime.now(UTC)
        if not self.is_active:
            return "This promotion is not active"
        if self.starts_at and now < _aware(self.starts_at):
            return "This promotion has not started yet"
        if self.ends_at and now >= _aware(self.ends_at):
            return "This promotion has expired"
        if not self.has_remaining_uses():
            return "This promotion has reached its usage limit"
        return None

    def is_within_window(self, now=None) -> bool:
        now = now or datetime.now(UTC)
        if self.starts_at and now < _aware(self.starts_at):
            return False
        return not (self.ends_at and now >= _aware(self.ends_at))

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def set_active(self, is_active):
        if bool(is_active) == bool(self.is_active):
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            self.is_active = bool(is_active)
            self.updated_at = now

        self.raise_(
            PromotionActivationChanged(
                promotion_id=str(self.id),
                is_active=self.is_active,
                changed_at=now,
            )
        )

    def redeem(self, checkout_id):
        """Count one use of the rule, re-checking the usage limit first."""
        if not self.has_remaining_uses():
            raise ValidationError({"usage_count": [f"Promotion '{self.name}' has reached its usage limit"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.usage_count = self.usage_count + 1
            self.updated_at = now

        self.raise_(
            PromotionRedeemed(
                promotion_id=str(self.id),
                checkout_id=str(checkout_id),
                usage_count=self.usage_count,
                usage_limit=self.usage_limit,
                redeemed_at=now,
            )
        )

    def duplicate(self):
        """Copy the rule's terms into a new, inactive, code-less rule with fresh usage."""
        return PromotionRule.create(
            name=f"{self.name} (copy)",
            value_type=self.value_type,
            value=self.value,
            code=None,
            currency=self.currency,
            eligible_customers=sorted(self.customers),
            target_product_ids=sorted(self.product_ids),
            min_purchase_amount=self.min_purchase_amount,
            min_purchase_quantity=self.min_purchase_quantity,
            usage_limit=self.usage_limit,
            starts_at=self.starts_at,
            ends_at=self.ends_at,
            is_active=False,
            owner_type=self.owner_type,
            owner_id=self.owner_id,
        )
