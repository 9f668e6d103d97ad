"""Configurable fake payment gateway for development and testing.

Simulates hosted payment sessions without any external calls. It can be told
to fail, records every call, and honours idempotency keys the way a real
gateway does.
"""

from uuid import uuid4

from checkout.gateway.port import PaymentGateway, SessionResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Payment provider unavailable"
        self.calls: list[dict] = []
        self.sessions: dict[str, SessionResult] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Payment provider unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_session(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> SessionResult:
        self.calls.append(
            {
                "method": "create_session",
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
                "metadata": metadata or {},
            }
        )

        if idempotency_key in self.sessions:
            return self.sessions[idempotency_key]

        if not self.should_succeed:
            return SessionResult(success=False, failure_reason=self.failure_reason)

        session_id = f"fake_cs_{uuid4().hex[:12]}"
        result = SessionResult(
            success=True,
            session_id=session_id,
            redirect_url=f"https://pay.example.test/session/{session_id}",
        )
        self.sessions[idempotency_key] = result
        return result

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
