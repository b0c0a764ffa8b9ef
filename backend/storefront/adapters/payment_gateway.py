from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol


class PaymentGatewayError(Exception):
    """Raised when the gateway refuses to create a session (bad request, auth, decline)."""
    pass

class PaymentDeclined(PaymentGatewayError):
    """Raised for a non-retryable refusal tied to the buyer."""
    pass

class PaymentTransientError(PaymentGatewayError):
    """Raised for a temporary gateway error, suggesting a retry is appropriate."""
    pass


@dataclass
class PaymentLineItem:
    name: str
    unit_amount: int  # minor units of `currency`
    quantity: int
    images: List[str] = field(default_factory=list)


@dataclass
class CheckoutSessionRequest:
    order_id: int
    customer_email: str
    currency: str
    line_items: List[PaymentLineItem]
    success_url: str
    cancel_url: str
    metadata: Dict[str, str] = field(default_factory=dict)
    allowed_countries: List[str] = field(default_factory=list)

    @property
    def idempotency_key(self) -> str:
        # one hosted session per order, however often the call is retried
        return f"checkout-session-{self.order_id}"


@dataclass
class PaymentSession:
    id: str
    url: str
    payment_intent: Optional[str] = None


class PaymentGateway(Protocol):
    def create_checkout_session(self, request: CheckoutSessionRequest) -> PaymentSession:
        ...

    def health_check(self) -> bool:
        ...


def build_payment_adapter(settings) -> PaymentGateway:
    provider = settings.PAYMENT_PROVIDER.lower()
    if provider == "stripe":
        from storefront.adapters.stripe_payment import StripeCheckoutAdapter

        return StripeCheckoutAdapter(
            secret_key=settings.STRIPE_SECRET_KEY,
            api_base=settings.STRIPE_API_BASE,
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        )
    if provider == "mock":
        from storefront.adapters.mock_payment import MockPaymentAdapter

        return MockPaymentAdapter(delay_ms=settings.PAYMENT_MOCK_DELAY_MS)
    raise ValueError(f"Unknown PAYMENT_PROVIDER: {settings.PAYMENT_PROVIDER!r}")
