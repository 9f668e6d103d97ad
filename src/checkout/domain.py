"""Checkout bounded context: the marketplace Checkout Settlement Engine.

Turns a cart spanning several merchants into resolved promotion allocations,
a consolidated shipping quote, and one atomically-created order per merchant
ready for payment capture.
"""

import structlog
from protean.domain import Domain

checkout = Domain(name="checkout")

logger = structlog.get_logger(__name__)
