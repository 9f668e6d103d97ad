"""Order numbers: ``<PREFIX>-<YEAR>-<6 digits>``, e.g. ``MK-2025-000234``."""

import random
import time
from datetime import UTC, datetime

import structlog
from protean.utils.globals import current_domain

from checkout.order.order import MerchantOrder
from checkout.settings import get_settings

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 50


def generate_order_number(reserved: set[str] | None = None, prefix: str | None = None, now=None) -> str:
    """Pick a random number not used by any stored order nor by ``reserved``.

    ``reserved`` holds numbers already handed out in the current transaction.
    After ``MAX_ATTEMPTS`` collisions the last six digits of the clock are used.
    """
    reserved = reserved if reserved is not None else set()
    prefix = prefix or get_settings().order_number_prefix
    year = (now or datetime.now(UTC)).year
    repo = current_domain.repository_for(MerchantOrder)

    for _ in range(MAX_ATTEMPTS):
        candidate = f"{prefix}-{year}-{random.randint(100000, 999999):06d}"
        if candidate not in reserved and repo.find_by_order_number(candidate) is None:
            reserved.add(candidate)
            return candidate

    fallback = f"{prefix}-{year}-{str(time.time_ns() // 1_000_000)[-6:]}"
    logger.warning("Order number space exhausted, using timestamp", order_number=fallback)
    reserved.add(fallback)
    return fallback
