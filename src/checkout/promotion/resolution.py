"""Promotion Resolver: one winning allocation per cart line.

Candidates from every eligible rule are compared line by line. The largest
amount wins; ties go to the rule created first, then to the lowest rule id, so
identical input always resolves the same way. Rules that target different
lines compose; rules competing for the same line replace one another.

An entered code is resolved against the automatic baseline. The coded rule
takes a line only where its amount is strictly larger than the line's current
winner and never touches lines it does not target.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from checkout.errors import CodeNotFound, NotEligible
from checkout.promotion.evaluation import LineAllocation, RuleEvaluation
from checkout.shared.money import ZERO, to_money


class CodeStatus(Enum):
    APPLIED = "Applied"
    NO_IMPROVEMENT = "No_Improvement"
    CODE_NOT_FOUND = "Code_Not_Found"
    NOT_ELIGIBLE = "Not_Eligible"


@dataclass(frozen=True)
class Resolution:
    allocations: tuple[LineAllocation, ...] = ()
    rule_names: dict[str, str] = field(default_factory=dict)
    fully_applied: frozenset[str] = frozenset()
    partially_applied: frozenset[str] = frozenset()
    applied_rule_names: tuple[str, ...] = ()

    @property
    def total_amount(self) -> Decimal:
        return to_money(sum((a.amount for a in self.allocations), ZERO))

    @property
    def promotion_ids(self) -> list[str]:
        return sorted({a.promotion_id for a in self.allocations})

    def allocation_for(self, cart_line_id: str) -> LineAllocation | None:
        return next((a for a in self.allocations if a.cart_line_id == cart_line_id), None)

    def to_dict(self) -> dict:
        return {
            "allocations": [a.to_dict() for a in self.allocations],
            "total_amount": str(self.total_amount),
            "applied_rule_names": list(self.applied_rule_names),
            "fully_applied": sorted(self.fully_applied),
            "partially_applied": sorted(self.partially_applied),
        }


@dataclass(frozen=True)
class PromotionOutcome:
    """What the storefront shows after evaluating promotions, with or without a code."""

    resolution: Resolution
    code: str | None = None
    code_status: CodeStatus | None = None
    message: str | None = None
    code_evaluation: RuleEvaluation | None = None

    @property
    def missing_amount(self) -> Decimal | None:
        return self.code_evaluation.missing_amount if self.code_evaluation else None

    @property
    def missing_quantity(self) -> int | None:
        return self.code_evaluation.missing_quantity if self.code_evaluation else None

    def raise_for_code(self) -> None:
        """Turn a rejected code into its error, for callers that cannot continue without it."""
        if self.code_status == CodeStatus.CODE_NOT_FOUND:
            raise CodeNotFound(self.code)
        if self.code_status == CodeStatus.NOT_ELIGIBLE:
            raise NotEligible(self.message, self.missing_amount, self.missing_quantity)

    def to_dict(self) -> dict:
        return {
            **self.resolution.to_dict(),
            "code": self.code,
            "code_status": self.code_status.value if self.code_status else None,
            "message": self.message,
            "missing_amount": str(self.missing_amount) if self.missing_amount is not None else None,
            "missing_quantity": self.missing_quantity,
        }


def _precedence(evaluation: RuleEvaluation, amount: Decimal):
    return (-amount, evaluation.created_at, evaluation.promotion_id)


def _compose(winners: dict[str, tuple[RuleEvaluation, LineAllocation]], line_order: list[str]) -> Resolution:
    allocations = tuple(winners[line_id][1] for line_id in line_order if line_id in winners)

    contenders = {}
    won_lines: dict[str, set[str]] = {}
    for evaluation, allocation in winners.values():
        contenders[evaluation.promotion_id] = evaluation
        won_lines.setdefault(evaluation.promotion_id, set()).add(allocation.cart_line_id)

    fully, partially = set(), set()
    for promotion_id, lines in won_lines.items():
        if lines == contenders[promotion_id].line_ids:
            fully.add(promotion_id)
        else:
            partially.add(promotion_id)

    ordered = sorted(contenders.values(), key=lambda e: (e.created_at, e.promotion_id))
    names = []
    for evaluation in ordered:
        if evaluation.promotion_name not in names:
            names.append(evaluation.promotion_name)

    return Resolution(
        allocations=allocations,
        rule_names={e.promotion_id: e.promotion_name for e in ordered},
        fully_applied=frozenset(fully),
        partially_applied=frozenset(partially),
        applied_rule_names=tuple(names),
    )


def _line_order(evaluations) -> list[str]:
    order = []
    for evaluation in evaluations:
        for allocation in evaluation.allocations:
            if allocation.cart_line_id not in order:
                order.append(allocation.cart_line_id)
    return order


def _winners(evaluations) -> dict[str, tuple[RuleEvaluation, LineAllocation]]:
    winners = {}
    for evaluation in evaluations:
        if not evaluation.eligible:
            continue
        for allocation in evaluation.allocations:
            current = winners.get(allocation.cart_line_id)
            if current is None or _precedence(evaluation, allocation.amount) < _precedence(current[0], current[1].amount):
                winners[allocation.cart_line_id] = (evaluation, allocation)
    return winners


def resolve(evaluations: list[RuleEvaluation], line_order: list[str] | None = None) -> Resolution:
    """Pick one winner per cart line from the eligible evaluations."""
    line_order = line_order or sorted(_line_order(evaluations))
    return _compose(_winners(evaluations), line_order)


def apply_code(
    baseline: list[RuleEvaluation],
    code: str,
    code_evaluation: RuleEvaluation | None,
    line_order: list[str] | None = None,
) -> PromotionOutcome:
    """Re-run resolution with an entered code in the candidate pool."""
    if code_evaluation is not None:
        baseline = [e for e in baseline if e.promotion_id != code_evaluation.promotion_id]
    line_order = line_order or sorted(_line_order(baseline + ([code_evaluation] if code_evaluation else [])))

    winners = _winners(baseline)
    if code_evaluation is None:
        return PromotionOutcome(
            resolution=_compose(winners, line_order),
            code=code,
            code_status=CodeStatus.CODE_NOT_FOUND,
            message="Discount code not found or expired",
        )

    if not code_evaluation.eligible:
        return PromotionOutcome(
            resolution=_compose(winners, line_order),
            code=code,
            code_status=CodeStatus.NOT_ELIGIBLE,
            message=code_evaluation.reason,
            code_evaluation=code_evaluation,
        )

    improved = dict(winners)
    displaced = False
    for allocation in code_evaluation.allocations:
        current = winners.get(allocation.cart_line_id)
        if current is None or allocation.amount > current[1].amount:
            improved[allocation.cart_line_id] = (code_evaluation, allocation)
            displaced = True

    if not displaced:
        return PromotionOutcome(
            resolution=_compose(winners, line_order),
            code=code,
            code_status=CodeStatus.NO_IMPROVEMENT,
            message="Your current discounts already give a better price on these items",
            code_evaluation=code_evaluation,
        )

    return PromotionOutcome(
        resolution=_compose(improved, line_order),
        code=code,
        code_status=CodeStatus.APPLIED,
        message=f"{code_evaluation.promotion_name} applied",
        code_evaluation=code_evaluation,
    )
