"""HTTP mapping for checkout errors.

Protean's own handlers cover ``ValidationError`` (400) and
``ObjectNotFoundError`` (404). Checkout errors carry their own code:

- 409 when the store changed underneath the attempt (stock, concurrent update)
- 422 when the cart cannot be settled as it stands
- 503 when a collaborator did not answer in time
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from checkout.errors import (
    CheckoutError,
    CodeNotFound,
    InsufficientStock,
    NoValidShippingOption,
    NotEligible,
    ServiceUnavailable,
    TransactionAborted,
    Unshippable,
)

logger = structlog.get_logger(__name__)

_STATUS_CODES = {
    InsufficientStock: 409,
    TransactionAborted: 409,
    Unshippable: 422,
    NoValidShippingOption: 422,
    NotEligible: 422,
    CodeNotFound: 422,
    ServiceUnavailable: 503,
}


def status_code_for(exc: CheckoutError) -> int:
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info("Checkout request rejected", path=request.url.path, code=exc.code, status_code=status_code)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


def register_checkout_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CheckoutError, checkout_error_handler)
