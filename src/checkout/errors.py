"""Checkout error taxonomy.

Malformed input is reported with protean's ``ValidationError``. Everything
else that can stop a checkout attempt derives from ``CheckoutError`` and carries
a stable ``code``, a user-facing ``message``, structured ``details`` and a
``retryable`` flag the caller can use to decide whether to try again.
"""


class CheckoutError(Exception):
    code = "checkout_error"
    retryable = False

    def __init__(self, message: str, details: dict | None = None, retryable: bool | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class NotEligible(CheckoutError):
    """A promotion failed its eligibility, scope or minimum checks."""

    code = "not_eligible"

    def __init__(self, message, missing_amount=None, missing_quantity=None):
        details = {}
        if missing_amount is not None:
            details["missing_amount"] = str(missing_amount)
        if missing_quantity is not None:
            details["missing_quantity"] = missing_quantity
        super().__init__(message, details)
        self.missing_amount = missing_amount
        self.missing_quantity = missing_quantity


class CodeNotFound(CheckoutError):
    code = "code_not_found"

    def __init__(self, promotion_code: str):
        super().__init__("Discount code not found or expired", {"promotion_code": promotion_code})
        self.promotion_code = promotion_code


class Unshippable(CheckoutError):
    """One or more cart lines cannot reach the destination. Blocks checkout entirely."""

    code = "unshippable"

    def __init__(self, destination_country: str, blocked_lines: list[dict], retryable: bool = False):
        line_ids = ", ".join(line.get("cart_line_id") or line.get("merchant_id") for line in blocked_lines)
        super().__init__(
            f"Some items cannot be shipped to {destination_country}: {line_ids}",
            {"destination_country": destination_country, "lines": blocked_lines},
            retryable=retryable,
        )
        self.destination_country = destination_country
        self.blocked_lines = blocked_lines


class NoValidShippingOption(CheckoutError):
    code = "no_valid_shipping_option"


class InsufficientStock(CheckoutError):
    code = "insufficient_stock"

    def __init__(self, stock_key: str, requested: int, available: int, cart_line_id: str | None = None):
        subject = f"cart line {cart_line_id}" if cart_line_id else f"stock item {stock_key}"
        super().__init__(
            f"Insufficient stock for {subject}: requested {requested}, available {available}",
            {
                "cart_line_id": cart_line_id,
                "stock_key": stock_key,
                "requested": requested,
                "available": available,
            },
        )
        self.cart_line_id = cart_line_id
        self.stock_key = stock_key
        self.requested = requested
        self.available = available


class TransactionAborted(CheckoutError):
    """Order placement failed and every change made by the attempt was rolled back."""

    code = "transaction_aborted"


class ServiceUnavailable(CheckoutError):
    code = "service_unavailable"
    retryable = True
