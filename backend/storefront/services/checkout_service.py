from dataclasses import dataclass
from decimal import Decimal
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.adapters.payment_gateway import (
    CheckoutSessionRequest,
    PaymentGateway,
    PaymentGatewayError,
    PaymentLineItem,
    PaymentSession,
    PaymentTransientError,
    build_payment_adapter,
)
from storefront.config import settings
from storefront.errors import (
    EmptyCartError,
    InventoryError,
    NoActiveCartError,
    NotFoundError,
    UpstreamError,
)
from storefront.repositories.customer_repo import CustomerRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.schemas.checkout_schema import CheckoutIn
from storefront.services.cart_service import CartService, CartSummary
from storefront.services.identity_service import Identity
from storefront.services.inventory_service import InventoryService
from storefront.utils.log import get_logger
from storefront.utils.money import to_minor_units

log = get_logger(__name__)


@dataclass
class CheckoutResult:
    order_id: int
    session_id: str
    url: str
    total: Decimal
    cart_completed: bool = False

    def to_dict(self):
        return {"url": self.url, "session_id": self.session_id, "order_id": self.order_id}


class CheckoutService:
    """
    Runs one checkout attempt:

        customer upserted -> cart loaded -> inventory validated ->
        order created -> payment session created -> inventory decremented ->
        cart cleared

    Validation failures abort before the order exists. Once the order row
    is written nothing is unwound: a failed payment session is surfaced to
    the caller with the order left `pending`, and inventory/cart steps are
    best-effort. The reconciliation sweep picks up what is left behind.
    """

    def __init__(self, db: Session, payment_adapter: PaymentGateway = None,
                 currency: str = None, max_retries: int = None):
        self.db = db
        self.customers = CustomerRepository(db)
        self.orders = OrderRepository(db)
        self.carts = CartService(db)
        self.inventory = InventoryService(db)
        self.payment_adapter = payment_adapter or build_payment_adapter(settings)
        self.currency = (currency or settings.CURRENCY).lower()
        self.max_retries = settings.PAYMENT_MAX_RETRIES if max_retries is None else max_retries

    def checkout(self, customer: CheckoutIn, identity: Identity) -> CheckoutResult:
        address = customer.shipping_address.model_dump()

        # 1) customer, idempotent by email
        try:
            cust = self.customers.upsert(
                email=customer.email,
                name=customer.name,
                phone=customer.phone,
                address=address,
                user_id=identity.user_id,
            )
            self.db.commit()
            customer_id = cust.id
        except SQLAlchemyError:
            self.db.rollback()
            log.error("failed to upsert customer %s", customer.email, exc_info=True)
            raise UpstreamError("Failed to create customer record")

        # 2) + 3) cart
        cart_id = self.carts.find_cart_id(identity)
        if cart_id is None:
            raise NoActiveCartError()
        summary = self.carts.get_summary(cart_id)
        if not summary.items:
            raise EmptyCartError()

        # 4) current stock, every shortfall reported at once
        shortfalls = self.inventory.validate_lines(summary.items)
        if shortfalls:
            raise InventoryError(shortfalls, "Inventory validation failed")

        # prices are frozen from the summary, before anything expires on commit
        order_lines = [
            {
                "product_id": it.product_id,
                "name": it.product.name,
                "quantity": it.quantity,
                "price_at_purchase": it.product.price,
            }
            for it in summary.items
        ]
        line_items = self.build_line_items(summary)

        # 5) order + lines in one transaction
        try:
            self.db.commit()  # end the read transaction so the write scope owns its commit
            order = self.orders.create_with_lines(
                customer_id=customer_id,
                total_amount=summary.total,
                shipping_address=address,
                currency=self.currency,
                lines=order_lines,
            )
            self.db.commit()
            order_id = order.id
        except SQLAlchemyError:
            self.db.rollback()
            log.error("failed to create order for cart %s", cart_id, exc_info=True)
            raise UpstreamError("Failed to create order")
        log.info("order %s created for cart %s, total %s", order_id, cart_id, summary.total)

        # 6) hosted payment session
        try:
            session = self._create_payment_session(order_id, customer, identity, line_items)
        except PaymentGatewayError as e:
            log.error("payment session for order %s failed, order left pending: %s", order_id, e)
            raise UpstreamError(f"Failed to create checkout session: {e}", order_id=order_id)

        # 7) remember the session on the order
        try:
            self.orders.attach_payment(order_id, session.id, session.payment_intent)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            log.warning("could not store payment session %s on order %s", session.id, order_id, exc_info=True)

        # 8) stock, per line
        self._decrement_inventory(order_id)

        # 9) cart
        completed = not identity.is_authenticated
        try:
            self.carts.clear(cart_id, mark_completed=completed)
        except SQLAlchemyError:
            self.db.rollback()
            completed = False
            log.warning("could not clear cart %s after order %s", cart_id, order_id, exc_info=True)

        return CheckoutResult(
            order_id=order_id,
            session_id=session.id,
            url=session.url,
            total=summary.total,
            cart_completed=completed,
        )

    def build_line_items(self, summary: CartSummary) -> List[PaymentLineItem]:
        return [
            PaymentLineItem(
                name=it.product.name,
                unit_amount=to_minor_units(it.product.price, self.currency),
                quantity=it.quantity,
                images=[img.url for img in it.product.images if img.is_primary and img.url],
            )
            for it in summary.items
        ]

    def _create_payment_session(self, order_id: int, customer: CheckoutIn,
                                identity: Identity, line_items: List[PaymentLineItem]) -> PaymentSession:
        base = settings.PUBLIC_BASE_URL.rstrip("/")
        request = CheckoutSessionRequest(
            order_id=order_id,
            customer_email=customer.email,
            currency=self.currency,
            line_items=line_items,
            success_url=f"{base}/confirmation?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}/cart",
            metadata={"order_id": str(order_id), "customer_id": identity.user_id or "guest"},
            allowed_countries=list(settings.SHIPPING_ALLOWED_COUNTRIES),
        )
        # simple retry for transient errors
        attempt = 0
        while True:
            try:
                return self.payment_adapter.create_checkout_session(request)
            except PaymentTransientError as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                log.warning("transient gateway error for order %s (attempt %s): %s", order_id, attempt, e)

    def _decrement_inventory(self, order_id: int):
        for line in self.orders.lines_for(order_id):
            try:
                self.inventory.decrement(line.product_id, line.quantity)
                self.orders.mark_line_committed(line.id)
                self.db.commit()
            except NotFoundError:
                self.db.rollback()
                log.warning("order %s: product %s vanished before stock was taken", order_id, line.product_id)
            except SQLAlchemyError:
                self.db.rollback()
                log.warning("order %s: stock update for product %s failed", order_id, line.product_id, exc_info=True)
