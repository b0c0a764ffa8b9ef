import time
import random
from uuid import uuid4
from typing import List

from storefront.adapters.payment_gateway import (
    CheckoutSessionRequest,
    PaymentDeclined,
    PaymentSession,
    PaymentTransientError,
)

DECLINE_EMAIL_DOMAIN = "@decline.example.com"

class MockPaymentAdapter:
    """
    Hosted-checkout stand-in for local development and tests.

    Sessions are kept in memory per idempotency key, so repeating a request
    for the same order returns the session created the first time.
    """

    def __init__(self, delay_ms: int = 200, base_url: str = "https://checkout.mock.local",
                 transient_failure_rate: float = 0.0):
        # Convert delay from milliseconds to seconds for time.sleep
        self.delay_seconds = delay_ms / 1000.0
        self.base_url = base_url.rstrip("/")
        self.transient_failure_rate = transient_failure_rate
        self.requests: List[CheckoutSessionRequest] = []
        self._sessions = {}

    def create_checkout_session(self, request: CheckoutSessionRequest) -> PaymentSession:
        """
        Simulates creating a hosted checkout session.

        Raises:
            PaymentDeclined: if the buyer's email is on the decline.example.com domain.
            PaymentTransientError: if a random, temporary gateway error is simulated.
        """
        self.requests.append(request)
        existing = self._sessions.get(request.idempotency_key)
        if existing:
            return existing

        # Simulate network latency / gateway processing
        time.sleep(self.delay_seconds)

        if request.customer_email.lower().endswith(DECLINE_EMAIL_DOMAIN):
            raise PaymentDeclined("Simulated forced decline")

        if self.transient_failure_rate and random.random() < self.transient_failure_rate:
            raise PaymentTransientError("Simulated transient gateway error")

        session_id = f"cs_mock_{uuid4().hex}"
        session = PaymentSession(
            id=session_id,
            url=f"{self.base_url}/pay/{session_id}",
            payment_intent=f"pi_mock_{uuid4().hex[:24]}",
        )
        self._sessions[request.idempotency_key] = session
        return session

    def health_check(self) -> bool:
        return True
