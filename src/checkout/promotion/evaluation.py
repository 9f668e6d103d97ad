"""Promotion Evaluator: per-rule eligibility and candidate per-line allocations.

Evaluation is a pure function of a rule, the cart lines and the customer. A
rule that cannot apply is not an error: the result says so, with a reason the
storefront can show as is and, for unmet minimums, the exact shortfall.

Allocation happens over the eligible lines only:

- Percentage: each line gets ``value% × line subtotal`` rounded half-up to cents.
- Fixed: ``min(value, eligible subtotal)`` is split in proportion to line
  subtotals. Lines are taken smallest subtotal first (ties by line id); every
  share but the last is rounded down, and the last line, the largest, takes
  the remainder capped at its own subtotal. The shares never add up to more
  than ``value``.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from checkout.cart.lines import CartLine, Customer
from checkout.promotion.rule import CustomerEligibility, PromotionRule, PromotionValueType, TargetScope
from checkout.shared.money import ZERO, floor_money, format_money, to_money


class EvaluationFailure:
    INACTIVE = "inactive"
    REQUIRES_CODE = "requires_code"
    CURRENCY = "currency"
    CUSTOMER = "customer"
    SCOPE = "scope"
    MINIMUM = "minimum"


@dataclass(frozen=True)
class LineAllocation:
    cart_line_id: str
    promotion_id: str
    amount: Decimal

    def to_dict(self) -> dict:
        return {
            "cart_line_id": self.cart_line_id,
            "promotion_id": self.promotion_id,
            "amount": str(self.amount),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineAllocation":
        return cls(
            cart_line_id=str(data["cart_line_id"]),
            promotion_id=str(data["promotion_id"]),
            amount=to_money(data["amount"]),
        )


@dataclass(frozen=True)
class RuleEvaluation:
    promotion_id: str
    promotion_name: str
    created_at: datetime
    eligible: bool
    allocations: tuple[LineAllocation, ...] = ()
    reason: str | None = None
    failure: str | None = None
    missing_amount: Decimal | None = None
    missing_quantity: int | None = None
    code: str | None = None

    @property
    def total_amount(self) -> Decimal:
        return to_money(sum((a.amount for a in self.allocations), ZERO))

    @property
    def line_ids(self) -> set[str]:
        return {a.cart_line_id for a in self.allocations}

    def amount_for(self, cart_line_id: str) -> Decimal | None:
        for allocation in self.allocations:
            if allocation.cart_line_id == cart_line_id:
                return allocation.amount
        return None


def _rejected(rule, failure, reason, missing_amount=None, missing_quantity=None):
    return RuleEvaluation(
        promotion_id=str(rule.id),
        promotion_name=rule.name,
        created_at=rule.created_at,
        eligible=False,
        reason=reason,
        failure=failure,
        missing_amount=missing_amount,
        missing_quantity=missing_quantity,
        code=rule.code,
    )


def customer_is_eligible(rule: PromotionRule, customer: Customer | None) -> bool:
    """``All`` rules admit everyone. ``Specific`` rules admit only known customers on the list."""
    if rule.customer_eligibility == CustomerEligibility.ALL.value:
        return True
    if customer is None or customer.is_guest:
        return False
    return bool(customer.identifiers() & rule.customers)


def lines_in_scope(rule: PromotionRule, lines: list[CartLine]) -> list[CartLine]:
    eligible = lines
    if rule.is_merchant_owned:
        eligible = [line for line in eligible if line.merchant_id == str(rule.owner_id)]
    if rule.target_scope == TargetScope.SPECIFIC_PRODUCTS.value:
        targets = rule.product_ids
        eligible = [line for line in eligible if line.product_id in targets]
    return eligible


def allocate_percentage(promotion_id: str, percent, lines: list[CartLine]) -> list[LineAllocation]:
    rate = Decimal(str(percent)) / 100
    allocations = []
    for line in lines:
        amount = min(to_money(line.subtotal * rate), line.subtotal)
        if amount > 0:
            allocations.append(LineAllocation(line.id, promotion_id, amount))
    return allocations


def allocate_fixed(promotion_id: str, value, lines: list[CartLine]) -> list[LineAllocation]:
    ordered = sorted(lines, key=lambda line: (line.subtotal, line.id))
    base = sum((line.subtotal for line in ordered), ZERO)
    budget = min(to_money(value), base)
    if budget <= 0:
        return []

    shares = []
    allocated = ZERO
    for line in ordered[:-1]:
        share = floor_money(budget * line.subtotal / base)
        shares.append((line, share))
        allocated += share

    last = ordered[-1]
    shares.append((last, min(budget - allocated, last.subtotal)))

    return [LineAllocation(line.id, promotion_id, amount) for line, amount in shares if amount > 0]


def evaluate_rule(
    rule: PromotionRule,
    lines: list[CartLine],
    customer: Customer | None = None,
    include_coded: bool = False,
    now: datetime | None = None,
) -> RuleEvaluation:
    now = now or datetime.now(UTC)

    inactive = rule.inactive_reason(now)
    if inactive:
        return _rejected(rule, EvaluationFailure.INACTIVE, inactive)

    if rule.is_coded and not include_coded:
        return _rejected(rule, EvaluationFailure.REQUIRES_CODE, "This promotion requires a code")

    currency = lines[0].currency if lines else None
    if rule.value_type == PromotionValueType.FIXED.value and rule.currency and rule.currency != currency:
        return _rejected(
            rule,
            EvaluationFailure.CURRENCY,
            f"This promotion applies to {rule.currency} purchases only",
        )

    if not customer_is_eligible(rule, customer):
        return _rejected(rule, EvaluationFailure.CUSTOMER, "This promotion is not available for your account")

    eligible_lines = lines_in_scope(rule, lines)
    if not eligible_lines:
        return _rejected(rule, EvaluationFailure.SCOPE, "This promotion does not apply to any item in your cart")

    subtotal = to_money(sum((line.subtotal for line in eligible_lines), ZERO))
    quantity = sum(line.quantity for line in eligible_lines)

    missing_amount = None
    missing_quantity = None
    shortfalls = []
    if rule.min_purchase_amount is not None:
        minimum = to_money(rule.min_purchase_amount)
        if subtotal < minimum:
            missing_amount = minimum - subtotal
            shortfalls.append(
                f"Minimum purchase of {format_money(minimum, currency)} required, "
                f"add {format_money(missing_amount, currency)} more to qualify"
            )
    if rule.min_purchase_quantity is not None and quantity < rule.min_purchase_quantity:
        missing_quantity = rule.min_purchase_quantity - quantity
        noun = "item" if missing_quantity == 1 else "items"
        shortfalls.append(
            f"Minimum quantity of {rule.min_purchase_quantity} items required, "
            f"add {missing_quantity} more {noun} to qualify"
        )
    if shortfalls:
        return _rejected(
            rule,
            EvaluationFailure.MINIMUM,
            "; ".join(shortfalls),
            missing_amount=missing_amount,
            missing_quantity=missing_quantity,
        )

    if rule.value_type == PromotionValueType.PERCENTAGE.value:
        allocations = allocate_percentage(str(rule.id), rule.value, eligible_lines)
    else:
        allocations = allocate_fixed(str(rule.id), rule.value, eligible_lines)

    return RuleEvaluation(
        promotion_id=str(rule.id),
        promotion_name=rule.name,
        created_at=rule.created_at,
        eligible=True,
        allocations=tuple(allocations),
        code=rule.code,
    )


def evaluate_rules(rules, lines, customer=None, include_coded=False, now=None) -> list[RuleEvaluation]:
    now = now or datetime.now(UTC)
    return [evaluate_rule(rule, lines, customer, include_coded=include_coded, now=now) for rule in rules]
