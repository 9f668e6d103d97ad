"""Runtime settings for checkout settlement, read from the environment."""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class CheckoutSettings:
    lookup_timeout_seconds: float = 2.0
    order_number_prefix: str = "MK"

    @classmethod
    def from_env(cls) -> "CheckoutSettings":
        return cls(
            lookup_timeout_seconds=float(os.environ.get("CHECKOUT_LOOKUP_TIMEOUT_SECONDS", "2.0")),
            order_number_prefix=os.environ.get("CHECKOUT_ORDER_NUMBER_PREFIX", "MK"),
        )


def get_settings() -> CheckoutSettings:
    """Settings are re-read on every call so tests can patch the environment."""
    return CheckoutSettings.from_env()
