from typing import Any, Dict, List, Tuple

import requests

from storefront.adapters.payment_gateway import (
    CheckoutSessionRequest,
    PaymentGatewayError,
    PaymentSession,
    PaymentTransientError,
)
from storefront.utils.log import get_logger

log = get_logger(__name__)


def encode_form(params: Dict[str, Any]) -> List[Tuple[str, str]]:
    """Flatten nested dicts/lists into Stripe's bracketed form keys (a[b][0][c]=v)."""
    out: List[Tuple[str, str]] = []

    def walk(prefix: str, value: Any):
        if value is None:
            return
        if isinstance(value, dict):
            for k, v in value.items():
                walk(f"{prefix}[{k}]" if prefix else str(k), v)
        elif isinstance(value, (list, tuple)):
            for i, v in enumerate(value):
                walk(f"{prefix}[{i}]", v)
        elif isinstance(value, bool):
            out.append((prefix, "true" if value else "false"))
        else:
            out.append((prefix, str(value)))

    walk("", params)
    return out


class StripeCheckoutAdapter:
    """Creates hosted Checkout Sessions through the Stripe REST API."""

    def __init__(self, secret_key: str, api_base: str = "https://api.stripe.com",
                 timeout: float = 10.0, http: requests.Session = None):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    def session_params(self, request: CheckoutSessionRequest) -> Dict[str, Any]:
        return {
            "payment_method_types": ["card"],
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency,
                        "product_data": {"name": li.name, "images": li.images or None},
                        "unit_amount": li.unit_amount,
                    },
                    "quantity": li.quantity,
                }
                for li in request.line_items
            ],
            "customer_email": request.customer_email,
            "client_reference_id": str(request.order_id),
            "metadata": request.metadata,
            "shipping_address_collection": (
                {"allowed_countries": request.allowed_countries} if request.allowed_countries else None
            ),
            "shipping_options": [
                {
                    "shipping_rate_data": {
                        "type": "fixed_amount",
                        "fixed_amount": {"amount": 0, "currency": request.currency},
                        "display_name": "Free shipping",
                        "delivery_estimate": {
                            "minimum": {"unit": "business_day", "value": 3},
                            "maximum": {"unit": "business_day", "value": 5},
                        },
                    }
                }
            ],
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
        }

    def create_checkout_session(self, request: CheckoutSessionRequest) -> PaymentSession:
        try:
            resp = self.http.post(
                f"{self.api_base}/v1/checkout/sessions",
                data=encode_form(self.session_params(request)),
                auth=(self.secret_key, ""),
                headers={"Idempotency-Key": request.idempotency_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PaymentTransientError(f"Gateway unreachable: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise PaymentTransientError(f"Gateway returned {resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400:
            message = (body.get("error") or {}).get("message") or f"Gateway returned {resp.status_code}"
            log.error("checkout session for order %s refused: %s", request.order_id, message)
            raise PaymentGatewayError(message)
        if not body.get("id"):
            log.error("checkout session for order %s: gateway returned no session id", request.order_id)
            raise PaymentGatewayError("Gateway returned no session")

        return PaymentSession(
            id=body["id"],
            url=body.get("url"),
            payment_intent=body.get("payment_intent"),
        )

    def health_check(self) -> bool:
        if not self.secret_key:
            return False
        try:
            resp = self.http.get(
                f"{self.api_base}/v1/balance", auth=(self.secret_key, ""), timeout=self.timeout
            )
        except requests.RequestException:
            return False
        return resp.status_code == 200
