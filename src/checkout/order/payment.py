"""Payment session: the second step of the checkout saga.

Step one commits the orders and hands back their ids. Step two opens a single
hosted payment session for all of them. It can be retried on its own: the
gateway idempotency key is derived from the order ids, and once a session is
recorded on the orders it is returned as is.
"""

import hashlib
import json
from dataclasses import dataclass
from decimal import Decimal

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.errors import ServiceUnavailable
from checkout.gateway import get_gateway
from checkout.order.order import MerchantOrder, PaymentStatus
from checkout.shared.money import ZERO, to_money

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    session_id: str
    redirect_url: str | None
    amount: Decimal
    currency: str
    order_ids: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "redirect_url": self.redirect_url,
            "amount": str(self.amount),
            "currency": self.currency,
            "order_ids": list(self.order_ids),
        }


def idempotency_key(order_ids) -> str:
    digest = hashlib.sha256(",".join(sorted(order_ids)).encode()).hexdigest()
    return f"checkout-{digest[:32]}"


@checkout.command(part_of="MerchantOrder")
class StartPaymentSession:
    order_ids = Text(required=True)  # JSON array


@checkout.command_handler(part_of=MerchantOrder)
class PaymentSessionHandler:
    @handle(StartPaymentSession)
    def start_payment_session(self, command):
        order_ids = command.order_ids
        order_ids = json.loads(order_ids) if isinstance(order_ids, str) else list(order_ids)
        order_ids = sorted({str(order_id) for order_id in order_ids})
        if not order_ids:
            raise ValidationError({"order_ids": ["At least one order is required"]})

        repo = current_domain.repository_for(MerchantOrder)
        orders = [repo.get(order_id) for order_id in order_ids]

        if len({str(order.checkout_id) for order in orders}) > 1:
            raise ValidationError({"order_ids": ["Orders belong to different checkouts"]})
        currencies = {order.currency for order in orders}
        if len(currencies) > 1:
            raise ValidationError({"order_ids": ["Orders are priced in different currencies"]})
        currency = currencies.pop()
        amount = to_money(sum((to_money(order.total_amount) for order in orders), ZERO))

        recorded = {order.payment_session_id for order in orders}
        if len(recorded) == 1 and None not in recorded:
            logger.info("Payment session already started", session_id=orders[0].payment_session_id)
            return PaymentSession(
                session_id=orders[0].payment_session_id,
                redirect_url=orders[0].payment_session_url,
                amount=amount,
                currency=currency,
                order_ids=tuple(order_ids),
            )

        for order in orders:
            if order.is_cancelled or order.payment_status != PaymentStatus.PENDING.value:
                raise ValidationError({"order_ids": [f"Order {order.order_number} is not awaiting payment"]})

        result = get_gateway().create_session(
            amount=float(amount),
            currency=currency,
            idempotency_key=idempotency_key(order_ids),
            metadata={
                "checkout_id": str(orders[0].checkout_id),
                "order_numbers": [order.order_number for order in orders],
            },
        )
        if not result.success:
            logger.warning("Payment session failed", order_ids=order_ids, reason=result.failure_reason)
            raise ServiceUnavailable(
                f"Could not start payment: {result.failure_reason}",
                {"order_ids": order_ids},
            )

        for order in orders:
            order.attach_payment_session(result.session_id, redirect_url=result.redirect_url)
            repo.add(order)

        logger.info("Payment session started", session_id=result.session_id, amount=str(amount), currency=currency)
        return PaymentSession(
            session_id=result.session_id,
            redirect_url=result.redirect_url,
            amount=amount,
            currency=currency,
            order_ids=tuple(order_ids),
        )
