"""Order Assembler: turns a settled cart into one order per merchant, atomically.

Everything happens inside the unit of work protean opens around the handler:
stock is re-read and reserved, promotion usage is counted and the orders are
staged. Nothing is visible to anyone else until the unit of work commits, and
any exception discards all of it: no orders, no stock movement, no usage
counted.

Failures surface as ``InsufficientStock``, ``NoValidShippingOption`` or
``ValidationError`` when the input explains them, and as
``TransactionAborted`` otherwise.
"""

import json
from uuid import uuid4

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from checkout.cart.lines import CartLine, Customer, group_by_merchant, validate_cart
from checkout.domain import checkout
from checkout.errors import CheckoutError, InsufficientStock, NoValidShippingOption, TransactionAborted
from checkout.inventory.oracle import get_inventory_oracle
from checkout.order.numbering import generate_order_number
from checkout.order.order import MerchantOrder
from checkout.promotion.evaluation import LineAllocation
from checkout.promotion.rule import PromotionRule
from checkout.shared.money import to_money
from checkout.shipping.consolidation import ShippingSelection

logger = structlog.get_logger(__name__)


@checkout.command(part_of="MerchantOrder")
class PlaceOrders:
    checkout_id = Identifier()
    lines = Text(required=True, sanitize=False)  # JSON: list of cart line dicts
    allocations = Text(sanitize=False)  # JSON: resolved allocations, at most one per line
    shipping_selection = Text(required=True, sanitize=False)  # JSON: ShippingSelection dict
    customer = Text(sanitize=False)  # JSON: {"id": ..., "email": ...}
    shipping_address = Text(required=True, sanitize=False)  # JSON: address dict
    billing_address = Text(sanitize=False)  # JSON: address dict
    tax_amounts = Text(sanitize=False)  # JSON: merchant id -> tax amount
    notes = Text()


def _load(value, default=None):
    if value is None or value == "":
        return default
    return json.loads(value) if isinstance(value, str) else value


def _check_allocations(lines: list[CartLine], allocations: list[LineAllocation]) -> dict[str, LineAllocation]:
    by_line = {line.id: line for line in lines}
    checked: dict[str, LineAllocation] = {}
    for allocation in allocations:
        line = by_line.get(allocation.cart_line_id)
        if line is None:
            raise ValidationError({"allocations": [f"Allocation for unknown cart line {allocation.cart_line_id}"]})
        if allocation.cart_line_id in checked:
            raise ValidationError({"allocations": [f"Cart line {allocation.cart_line_id} has more than one discount"]})
        if allocation.amount < 0 or allocation.amount > line.subtotal:
            raise ValidationError(
                {"allocations": [f"Discount on cart line {line.id} must be between 0 and {line.subtotal}"]}
            )
        checked[allocation.cart_line_id] = allocation
    return checked


def _check_stock(oracle, lines: list[CartLine]) -> None:
    """Compare demand per stock key against what the store holds right now."""
    demand: dict[str, int] = {}
    first_line: dict[str, str] = {}
    for line in lines:
        demand[line.stock_key] = demand.get(line.stock_key, 0) + line.quantity
        first_line.setdefault(line.stock_key, line.id)

    for stock_key, requested in demand.items():
        available = oracle.get_available(stock_key)
        if available < requested:
            raise InsufficientStock(
                stock_key=stock_key,
                requested=requested,
                available=available,
                cart_line_id=first_line[stock_key],
            )


@checkout.command_handler(part_of=MerchantOrder)
class OrderAssembler:
    @handle(PlaceOrders)
    def place_orders(self, command):
        checkout_id = str(command.checkout_id or uuid4())
        try:
            order_ids = self._assemble(checkout_id, command)
        except (CheckoutError, ValidationError):
            raise
        except Exception as exc:
            logger.exception("Order placement aborted", checkout_id=checkout_id)
            raise TransactionAborted(
                "Order placement failed and was rolled back, please try again",
                {"checkout_id": checkout_id, "error": str(exc)},
                retryable=True,
            ) from exc

        logger.info("Orders placed", checkout_id=checkout_id, order_count=len(order_ids))
        return order_ids

    def _assemble(self, checkout_id, command):
        lines = [CartLine.from_dict(data) for data in _load(command.lines, [])]
        currency = validate_cart(lines)
        customer = Customer.from_dict(_load(command.customer))
        allocations = _check_allocations(
            lines, [LineAllocation.from_dict(data) for data in _load(command.allocations, [])]
        )
        selection = ShippingSelection.from_dict(_load(command.shipping_selection))
        shipping_address = _load(command.shipping_address)
        if not isinstance(shipping_address, dict):
            raise ValidationError({"shipping_address": ["A shipping address is required"]})
        billing_address = _load(command.billing_address)
        tax_amounts = {str(k): to_money(v) for k, v in _load(command.tax_amounts, {}).items()}

        partitions = group_by_merchant(lines)
        if not selection.covers(partitions):
            raise NoValidShippingOption(
                f"'{selection.service_name}' does not cover every merchant in the cart",
                {"service_name": selection.service_name, "merchants": list(partitions)},
            )
        if selection.currency != currency:
            raise NoValidShippingOption(
                f"'{selection.service_name}' is priced in {selection.currency}, the cart is in {currency}",
                {"service_name": selection.service_name, "currency": selection.currency, "cart_currency": currency},
            )
        unknown_tax = set(tax_amounts) - set(partitions)
        if unknown_tax:
            raise ValidationError({"tax_amounts": [f"Tax given for merchants not in the cart: {sorted(unknown_tax)}"]})

        oracle = get_inventory_oracle()
        _check_stock(oracle, lines)

        # Orders
        reserved_numbers: set[str] = set()
        orders = []
        for merchant_id, merchant_lines in partitions.items():
            items = []
            for line in merchant_lines:
                allocation = allocations.get(line.id)
                items.append(
                    {
                        "cart_line_id": line.id,
                        "listing_id": line.listing_id,
                        "variant_id": line.variant_id,
                        "stock_key": line.stock_key,
                        "sku": line.sku,
                        "title": line.title,
                        "options": [list(pair) for pair in line.options.pairs],
                        "quantity": line.quantity,
                        "unit_price": line.unit_price,
                        "subtotal": line.subtotal,
                        "discount_amount": allocation.amount if allocation else 0,
                        "promotion_id": allocation.promotion_id if allocation else None,
                    }
                )

            orders.append(
                MerchantOrder.place(
                    order_number=generate_order_number(reserved_numbers),
                    checkout_id=checkout_id,
                    merchant_id=merchant_id,
                    customer=customer,
                    items=items,
                    shipping_address=shipping_address,
                    billing_address=billing_address,
                    shipping_amount=selection.amount_for(merchant_id),
                    tax_amount=tax_amounts.get(merchant_id, 0),
                    currency=currency,
                    shipping_selection=selection,
                    notes=command.notes,
                )
            )

        # Inventory
        for order in orders:
            for item in order.items:
                oracle.reserve(item.stock_key, item.quantity, str(order.id))

        # Promotion usage
        promotion_repo = current_domain.repository_for(PromotionRule)
        for promotion_id in sorted({a.promotion_id for a in allocations.values()}):
            try:
                rule = promotion_repo.get(promotion_id)
            except ObjectNotFoundError:
                raise TransactionAborted(
                    "A discount in your cart no longer exists", {"promotion_id": promotion_id}
                ) from None

            reason = rule.inactive_reason()
            if reason:
                raise TransactionAborted(
                    f"{rule.name} can no longer be applied: {reason}",
                    {"promotion_id": promotion_id, "reason": reason},
                )
            rule.redeem(checkout_id)
            promotion_repo.add(rule)

        order_repo = current_domain.repository_for(MerchantOrder)
        for order in orders:
            order_repo.add(order)

        return [str(order.id) for order in orders]
