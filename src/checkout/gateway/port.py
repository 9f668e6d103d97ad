"""Payment gateway port (abstract interface).

Checkout hands its committed orders to a hosted payment session; capture
itself happens at the gateway. Adapters must treat ``idempotency_key`` as the
identity of the session: the same key always yields the same session.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class SessionResult:
    """Result of a payment session request."""

    success: bool
    session_id: str | None = None
    redirect_url: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_session(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> SessionResult:
        """Open a payment session for ``amount``."""
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: str,
        signature: str,
    ) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
