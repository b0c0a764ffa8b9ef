from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from storefront.adapters.mock_payment import MockPaymentAdapter
from storefront.adapters.payment_gateway import PaymentSession, PaymentTransientError
from storefront.adapters.stripe_payment import StripeCheckoutAdapter
from storefront.api.routes_checkout import get_checkout_service
from storefront.config import settings
from storefront.errors import EmptyCartError, InventoryError, NoActiveCartError, NotFoundError, UpstreamError
from storefront.main import app
from storefront.models.cart import CART_COMPLETED, Cart
from storefront.models.customer import Customer
from storefront.models.order import ORDER_PENDING, Order, OrderLine
from storefront.models.product import Product
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.schemas.checkout_schema import CheckoutIn
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.identity_service import resolve_identity
from storefront.services.inventory_service import InventoryService

CUSTOMER = {
    "email": "shopper@example.com",
    "name": "Sam Shopper",
    "phone": "07700900123",
    "shipping_address": {
        "line1": "1 High Street",
        "city": "Bristol",
        "postal_code": "BS1 4DJ",
        "country": "GB",
    },
}


class FlakyGateway:
    """Fails with a transient error `failures` times, then succeeds."""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def create_checkout_session(self, request):
        self.calls += 1
        if self.calls <= self.failures:
            raise PaymentTransientError("gateway timeout")
        return PaymentSession(id=f"cs_test_{request.order_id}", url="https://pay.example.com/s")

    def health_check(self):
        return True


def customer(**overrides):
    return CheckoutIn(**{**CUSTOMER, **overrides})


def service(db, adapter=None, max_retries=2):
    return CheckoutService(db, payment_adapter=adapter or MockPaymentAdapter(delay_ms=0), max_retries=max_retries)


def user_cart(db, user_id="user-1", lines=()):
    carts = CartService(db)
    cart_id = carts.get_or_create(user_id=user_id).cart_id
    for pid, qty in lines:
        carts.add_item(cart_id, pid, qty)
    return cart_id


def test_checkout_without_cart(db):
    with pytest.raises(NoActiveCartError):
        service(db).checkout(customer(), resolve_identity("user-1", None))


def test_checkout_empty_cart_writes_no_order(db):
    user_cart(db)
    with pytest.raises(EmptyCartError):
        service(db).checkout(customer(), resolve_identity("user-1", None))
    assert db.query(Order).count() == 0
    assert db.query(OrderLine).count() == 0


def test_single_shortfall_creates_no_order(db, make_product):
    pid = make_product(name="Scarce", stock=1)
    user_cart(db, lines=[(pid, 3)])

    with pytest.raises(InventoryError) as exc:
        service(db).checkout(customer(), resolve_identity("user-1", None))

    assert [(s.product_id, s.requested, s.available) for s in exc.value.shortfalls] == [(pid, 3, 1)]
    assert db.query(Order).count() == 0


def test_shortfall_lists_only_the_short_product(db, make_product):
    a = make_product(name="A", price="10.00", stock=5)
    b = make_product(name="B", price="25.00", stock=0)
    user_cart(db, lines=[(a, 2), (b, 1)])

    with pytest.raises(InventoryError) as exc:
        service(db).checkout(customer(), resolve_identity("user-1", None))

    assert [s.product_id for s in exc.value.shortfalls] == [b]
    assert exc.value.to_dict()["error"] == "Inventory validation failed"
    assert db.query(Order).count() == 0
    db.expire_all()
    assert db.get(Product, a).inventory_count == 5


def test_successful_checkout(db, make_product):
    c = make_product(name="C", price="19.99", stock=3)
    cart_id = user_cart(db, lines=[(c, 1)])
    adapter = MockPaymentAdapter(delay_ms=0)

    result = service(db, adapter).checkout(customer(), resolve_identity("user-1", None))

    db.expire_all()
    order = db.get(Order, result.order_id)
    assert order.status == ORDER_PENDING
    assert order.total_amount == Decimal("19.99")
    assert order.payment_session_id == result.session_id
    assert order.shipping_address["postal_code"] == "BS1 4DJ"
    lines = db.query(OrderLine).filter(OrderLine.order_id == order.id).all()
    assert len(lines) == 1
    assert lines[0].price_at_purchase == Decimal("19.99")
    assert lines[0].inventory_committed is True
    assert db.get(Product, c).inventory_count == 2
    assert CartRepository(db).lines(cart_id) == []

    # signed-in carts stay usable
    assert result.cart_completed is False

    request = adapter.requests[0]
    assert request.line_items[0].unit_amount == 1999
    assert request.currency == settings.CURRENCY
    assert request.metadata == {"order_id": str(order.id), "customer_id": "user-1"}
    assert result.url.endswith(result.session_id)


def test_anonymous_checkout_completes_cart(db, make_product):
    pid = make_product(stock=2)
    carts = CartService(db)
    handle = carts.get_or_create()
    carts.add_item(handle.cart_id, pid, 1)

    result = service(db).checkout(customer(), resolve_identity(None, handle.token))

    assert result.cart_completed is True
    db.expire_all()
    assert db.get(Cart, handle.cart_id).status == CART_COMPLETED


def test_customer_is_upserted_by_email(db, make_product):
    pid = make_product(stock=5)
    identity = resolve_identity("user-1", None)
    user_cart(db, lines=[(pid, 1)])
    service(db).checkout(customer(email="Shopper@Example.com"), identity)
    user_cart(db, lines=[(pid, 1)])
    service(db).checkout(customer(name="Sam Renamed"), identity)

    db.expire_all()
    rows = db.query(Customer).all()
    assert len(rows) == 1
    assert rows[0].email == "shopper@example.com"
    assert rows[0].name == "Sam Renamed"
    assert db.query(Order).filter(Order.customer_id == rows[0].id).count() == 2


def test_transient_gateway_errors_are_retried(db, make_product):
    pid = make_product(stock=2)
    user_cart(db, lines=[(pid, 1)])
    gateway = FlakyGateway(failures=2)

    result = service(db, gateway, max_retries=2).checkout(customer(), resolve_identity("user-1", None))

    assert gateway.calls == 3
    assert result.session_id == f"cs_test_{result.order_id}"


def test_gateway_failure_leaves_pending_order(db, make_product):
    pid = make_product(stock=2)
    cart_id = user_cart(db, lines=[(pid, 1)])

    with pytest.raises(UpstreamError) as exc:
        service(db, FlakyGateway(failures=10), max_retries=1).checkout(customer(), resolve_identity("user-1", None))

    order_id = exc.value.order_id
    assert order_id is not None
    db.expire_all()
    order = db.get(Order, order_id)
    assert order.status == ORDER_PENDING
    assert order.payment_session_id is None
    assert db.get(Product, pid).inventory_count == 2
    assert len(CartRepository(db).lines(cart_id)) == 1


def test_declined_email(db, make_product):
    pid = make_product(stock=2)
    user_cart(db, lines=[(pid, 1)])
    with pytest.raises(UpstreamError):
        service(db).checkout(customer(email="buyer@decline.example.com"), resolve_identity("user-1", None))


def test_failed_stock_update_does_not_fail_checkout(db, make_product, monkeypatch):
    pid = make_product(stock=2)
    cart_id = user_cart(db, lines=[(pid, 1)])

    def vanished(self, product_id, qty):
        raise NotFoundError(f"Product {product_id} not found")

    monkeypatch.setattr(InventoryService, "decrement", vanished)
    result = service(db).checkout(customer(), resolve_identity("user-1", None))

    assert result.url and result.session_id and result.order_id
    db.expire_all()
    line = db.query(OrderLine).filter(OrderLine.order_id == result.order_id).one()
    assert line.inventory_committed is False
    assert db.get(Product, pid).inventory_count == 2
    assert CartRepository(db).lines(cart_id) == []


def test_failed_payment_reference_does_not_fail_checkout(db, make_product, monkeypatch):
    pid = make_product(stock=2)
    cart_id = user_cart(db, lines=[(pid, 1)])

    def store_down(self, order_id, session_id, payment_intent_id=None):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(OrderRepository, "attach_payment", store_down)
    result = service(db).checkout(customer(), resolve_identity("user-1", None))

    assert result.session_id.startswith("cs_mock_")
    db.expire_all()
    assert db.get(Order, result.order_id).payment_session_id is None
    assert db.get(Product, pid).inventory_count == 1
    assert CartRepository(db).lines(cart_id) == []


# --- HTTP ---

def test_checkout_http_flow(client, db, make_product):
    pid = make_product(name="C", price="19.99", stock=3)
    client.post("/api/cart", json={"product_id": pid, "quantity": 1})

    r = client.post("/api/checkout", json=CUSTOMER)
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"url", "session_id", "order_id"}
    assert body["session_id"].startswith("cs_mock_")
    assert "Max-Age=0" in r.headers["set-cookie"]

    assert db.get(Order, body["order_id"]).total_amount == Decimal("19.99")


def test_checkout_http_empty_cart(client):
    r = client.post("/api/checkout", json=CUSTOMER, headers={"X-User-Id": "user-1"})
    assert r.status_code == 400
    assert r.json() == {"error": "No active cart found"}


def test_checkout_http_inventory_errors(client, db, make_product):
    pid = make_product(name="B", stock=1)
    client.post("/api/cart", json={"product_id": pid, "quantity": 1})
    db.query(Product).filter(Product.id == pid).update({"inventory_count": 0})
    db.commit()

    r = client.post("/api/checkout", json=CUSTOMER)
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Inventory validation failed"
    assert body["errors"] == [
        {"product_id": pid, "name": "B", "requested": 1, "available": 0, "error": "Insufficient inventory"}
    ]


@pytest.mark.parametrize(
    "patch",
    [
        {"email": "not-an-email"},
        {"name": "S"},
        {"shipping_address": {"line1": "1", "city": "Bristol", "postal_code": "BS1 4DJ", "country": "GB"}},
        {"shipping_address": {"line1": "1 High Street", "city": "Bristol", "postal_code": "BS1", "country": "GB"}},
    ],
)
def test_checkout_http_rejects_invalid_customer(client, patch):
    r = client.post("/api/checkout", json={**CUSTOMER, **patch})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid request data"
    assert r.json()["details"]


def test_checkout_http_gateway_failure(client, db, make_product):
    pid = make_product(stock=2)
    app.dependency_overrides[get_checkout_service] = lambda: CheckoutService(
        db, payment_adapter=FlakyGateway(failures=10), max_retries=0
    )
    client.post("/api/cart", json={"product_id": pid, "quantity": 1}, headers={"X-User-Id": "user-1"})

    r = client.post("/api/checkout", json=CUSTOMER, headers={"X-User-Id": "user-1"})
    assert r.status_code == 500
    body = r.json()
    assert body["error"].startswith("Failed to create checkout session")
    assert db.get(Order, body["order_id"]).status == ORDER_PENDING


def test_checkout_is_rate_limited(client):
    limiter = app.state.rate_limiter
    for _ in range(settings.RATE_LIMIT_CHECKOUT):
        limiter.hit(("testclient", "/api/checkout"), settings.RATE_LIMIT_CHECKOUT, settings.RATE_LIMIT_WINDOW_SECONDS)

    r = client.post("/api/checkout", json=CUSTOMER)
    assert r.status_code == 429
    assert int(r.headers["retry-after"]) > 0


class EmptyReply:
    status_code = 200

    def json(self):
        raise ValueError("Expecting value")


class EmptyReplyHttp:
    def post(self, url, **kwargs):
        return EmptyReply()


class BrokenGateway:
    def create_checkout_session(self, request):
        raise RuntimeError("unexpected gateway reply")

    def health_check(self):
        return True


def test_checkout_http_gateway_without_session(client, db, make_product):
    pid = make_product(stock=2)
    app.state.payment_adapter = StripeCheckoutAdapter("sk_test_x", http=EmptyReplyHttp())
    client.post("/api/cart", json={"product_id": pid, "quantity": 1})

    r = client.post("/api/checkout", json=CUSTOMER)
    assert r.status_code == 500
    assert r.headers["content-type"].startswith("application/json")
    body = r.json()
    assert body["error"] == "Failed to create checkout session: Gateway returned no session"
    assert db.get(Order, body["order_id"]).status == ORDER_PENDING


def test_unexpected_errors_render_json(make_product):
    pid = make_product(stock=2)
    app.state.payment_adapter = BrokenGateway()
    client = TestClient(app, raise_server_exceptions=False)
    client.post("/api/cart", json={"product_id": pid, "quantity": 1})

    r = client.post("/api/checkout", json=CUSTOMER)
    assert r.status_code == 500
    assert r.json() == {"error": "An unexpected error occurred"}


def test_payment_adapter_is_shared_across_requests(client, make_product):
    pid = make_product(stock=5)
    adapter = app.state.payment_adapter
    headers = {"X-User-Id": "user-1"}

    order_ids = []
    for _ in range(2):
        client.post("/api/cart", json={"product_id": pid, "quantity": 1}, headers=headers)
        r = client.post("/api/checkout", json=CUSTOMER, headers=headers)
        assert r.status_code == 200
        order_ids.append(r.json()["order_id"])

    assert [req.order_id for req in adapter.requests] == order_ids
    # a repeated request for the same order gets the session created first
    assert adapter.create_checkout_session(adapter.requests[-1]).id == r.json()["session_id"]
