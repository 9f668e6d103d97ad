"""Checkout settlement: the pipeline the storefront drives.

    Shippability Gate → Promotion Evaluator → Promotion Resolver →
    Shipping Rate Consolidator → Order Assembler → payment session

Each stage is exposed on its own so the storefront can show promotions and
shipping options while the shopper is still deciding. ``settle`` runs the
whole pipeline and stops at the first stage that blocks: an unshippable cart
never reaches promotion evaluation or order creation.

Checkout is a two-step saga. ``create_orders`` commits the orders and returns
their ids; ``start_payment_session`` can then be retried on its own.
"""

import json
from dataclasses import dataclass
from datetime import datetime

import structlog
from protean.exceptions import ExpectedVersionError, TransactionError
from protean.utils.globals import current_domain

from checkout.cart.lines import CartLine, Customer, validate_cart
from checkout.carrier.port import CarrierRatePort, ShippingCatalogPort
from checkout.errors import TransactionAborted
from checkout.order.payment import PaymentSession, StartPaymentSession
from checkout.order.placement import PlaceOrders
from checkout.promotion.evaluation import evaluate_rule, evaluate_rules
from checkout.promotion.resolution import PromotionOutcome, Resolution, apply_code, resolve
from checkout.promotion.rule import PromotionRule
from checkout.shipping.consolidation import ShippingOptions, ShippingSelection, fetch_shipping_options
from checkout.shipping.gate import ShippabilityReport, check_shippability

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    order_ids: list[str]
    promotions: PromotionOutcome
    shipping: ShippingSelection

    def to_dict(self) -> dict:
        return {
            "order_ids": list(self.order_ids),
            "discount_total": str(self.promotions.resolution.total_amount),
            "promotion_message": self.promotions.message,
            "shipping": self.shipping.to_dict(),
        }


class CheckoutSettlement:
    def __init__(
        self,
        catalog: ShippingCatalogPort | None = None,
        rates: CarrierRatePort | None = None,
        timeout: float | None = None,
    ):
        self.catalog = catalog
        self.rates = rates
        self.timeout = timeout

    # -------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------
    async def check_shippability(self, lines: list[CartLine], destination_country: str) -> ShippabilityReport:
        return await check_shippability(lines, destination_country, catalog=self.catalog, timeout=self.timeout)

    def evaluate_promotions(
        self,
        lines: list[CartLine],
        customer: Customer | None = None,
        code: str | None = None,
        now: datetime | None = None,
    ) -> PromotionOutcome:
        """Resolve automatic promotions, then try the entered code against them."""
        validate_cart(lines)
        line_order = [line.id for line in lines]
        repo = current_domain.repository_for(PromotionRule)

        baseline = evaluate_rules(repo.automatic_rules(), lines, customer, now=now)
        if not code:
            return PromotionOutcome(resolution=resolve(baseline, line_order))

        rule = repo.find_live_by_code(code, now)
        code_evaluation = None
        if rule is not None:
            code_evaluation = evaluate_rule(rule, lines, customer, include_coded=True, now=now)

        outcome = apply_code(baseline, code, code_evaluation, line_order)
        logger.info("Promotion code evaluated", code=code, status=outcome.code_status.value)
        return outcome

    async def get_shipping_options(self, lines: list[CartLine], destination_country: str) -> ShippingOptions:
        return await fetch_shipping_options(lines, destination_country, rates=self.rates, timeout=self.timeout)

    def create_orders(
        self,
        lines: list[CartLine],
        resolution: Resolution | None,
        selection: ShippingSelection,
        customer: Customer,
        shipping_address: dict,
        billing_address: dict | None = None,
        notes: str | None = None,
        tax_amounts: dict | None = None,
        checkout_id: str | None = None,
    ) -> list[str]:
        """Step one of the saga: commit one order per merchant, or nothing at all."""
        command = PlaceOrders(
            checkout_id=checkout_id,
            lines=json.dumps([line.to_dict() for line in lines]),
            allocations=json.dumps([a.to_dict() for a in resolution.allocations] if resolution else []),
            shipping_selection=json.dumps(selection.to_dict()),
            customer=json.dumps(customer.to_dict()),
            shipping_address=json.dumps(shipping_address),
            billing_address=json.dumps(billing_address) if billing_address else None,
            tax_amounts=json.dumps({str(k): str(v) for k, v in (tax_amounts or {}).items()}),
            notes=notes,
        )
        try:
            return current_domain.process(command, asynchronous=False)
        except (ExpectedVersionError, TransactionError) as exc:
            # Another checkout committed stock or promotion usage first
            logger.warning("Order placement lost a concurrent update", error=str(exc))
            raise TransactionAborted(
                "Stock or promotions changed while placing your order, please try again",
                retryable=True,
            ) from exc

    def start_payment_session(self, order_ids: list[str]) -> PaymentSession:
        """Step two of the saga. Safe to retry."""
        return current_domain.process(StartPaymentSession(order_ids=json.dumps(list(order_ids))), asynchronous=False)

    # -------------------------------------------------------------------
    # Full pipeline
    # -------------------------------------------------------------------
    async def settle(
        self,
        lines: list[CartLine],
        customer: Customer,
        destination_country: str,
        shipping_address: dict,
        code: str | None = None,
        service_name: str | None = None,
        billing_address: dict | None = None,
        notes: str | None = None,
        tax_amounts: dict | None = None,
    ) -> SettlementResult:
        report = await self.check_shippability(lines, destination_country)
        report.raise_for_blocked()

        promotions = self.evaluate_promotions(lines, customer, code)
        if code:
            promotions.raise_for_code()

        options = await self.get_shipping_options(lines, destination_country)
        selection = options.select(service_name)

        order_ids = self.create_orders(
            lines,
            promotions.resolution,
            selection,
            customer,
            shipping_address,
            billing_address=billing_address,
            notes=notes,
            tax_amounts=tax_amounts,
        )
        return SettlementResult(order_ids=order_ids, promotions=promotions, shipping=selection)
