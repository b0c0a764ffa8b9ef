import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from storefront.errors import InventoryShortfall, NotFoundError, StockShortfallError, ValidationError
from storefront.models.cart import CART_ACTIVE, CART_COMPLETED, CART_MERGED
from storefront.models.product import Product
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.product_schema import CartProductOut
from storefront.services.identity_service import Identity
from storefront.services.inventory_service import InventoryService
from storefront.utils.log import get_logger
from storefront.utils.money import round_money

log = get_logger(__name__)


@dataclass
class CartHandle:
    cart_id: int
    is_new: bool
    token: Optional[str] = None  # anonymous token to hand back in the cookie


@dataclass
class CartLineView:
    id: int
    product_id: int
    quantity: int
    product: Product


@dataclass
class CartSummary:
    items: List[CartLineView] = field(default_factory=list)
    total: Decimal = Decimal("0.00")

    def to_dict(self) -> Dict:
        return {
            "items": [
                {
                    "id": it.id,
                    "product_id": it.product_id,
                    "quantity": it.quantity,
                    "product": CartProductOut.model_validate(it.product).model_dump(),
                }
                for it in self.items
            ],
            "total": float(self.total),
        }


EMPTY_CART = {"items": [], "total": 0}


class CartService:
    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)
        self.inventory = InventoryService(db)

    # --- cart store ---

    def get_or_create(self, user_id: Optional[str] = None, anonymous_token: Optional[str] = None) -> CartHandle:
        """
        Resolution order: the user's active cart, a new cart for the user,
        the active anonymous cart named by the token, a new anonymous cart.
        """
        if user_id:
            c = self.cart_repo.get_active_by_user(user_id)
            if c:
                return CartHandle(cart_id=c.id, is_new=False)
            c = self.cart_repo.create(user_id=user_id)
            self.db.commit()
            return CartHandle(cart_id=c.id, is_new=True)

        if anonymous_token:
            c = self.cart_repo.get_active_by_token(anonymous_token)
            if c:
                return CartHandle(cart_id=c.id, is_new=False, token=c.anonymous_token)

        # a stale token still names a merged/completed cart, so always mint a new one
        token = uuid.uuid4().hex
        c = self.cart_repo.create(anonymous_token=token)
        self.db.commit()
        return CartHandle(cart_id=c.id, is_new=True, token=token)

    def get_user_cart_id(self, user_id: str) -> Optional[int]:
        c = self.cart_repo.get_active_by_user(user_id)
        return c.id if c else None

    def find_cart_id(self, identity: Identity) -> Optional[int]:
        """Active cart for the caller without creating one."""
        if identity.is_authenticated:
            return self.get_user_cart_id(identity.user_id)
        if identity.cart_token:
            c = self.cart_repo.get_active_by_token(identity.cart_token)
            return c.id if c else None
        return None

    def add_item(self, cart_id: int, product_id: int, quantity: int):
        """Insert the line or sum `quantity` into the existing one. No stock check here."""
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")
        item = self.cart_repo.add_or_increment(cart_id, product_id, quantity)
        self.db.commit()
        return item

    def get_summary(self, cart_id: int) -> CartSummary:
        """
        Join each line with the current product. Lines whose product cannot
        be resolved (deleted or inactive) are left out of items and total.
        """
        items = []
        total = Decimal("0")
        for line in self.cart_repo.lines(cart_id):
            product = self.product_repo.get_by_id(line.product_id)
            if not product:
                log.debug("cart %s: dropping line %s, product %s unresolved", cart_id, line.id, line.product_id)
                continue
            total += Decimal(product.price) * line.quantity
            items.append(
                CartLineView(id=line.id, product_id=line.product_id, quantity=line.quantity, product=product)
            )
        return CartSummary(items=items, total=round_money(total))

    def remove_item(self, item_id: int, cart_id: Optional[int] = None):
        if not self.cart_repo.delete_line(item_id, cart_id):
            raise NotFoundError("Cart item not found")
        self.db.commit()

    def update_quantity(self, item_id: int, quantity: int, cart_id: Optional[int] = None):
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")
        item = self.cart_repo.set_line_quantity(item_id, quantity, cart_id)
        if not item:
            raise NotFoundError("Cart item not found")
        self.db.commit()
        return item

    def merge_anonymous_into(self, anonymous_cart_id: int, user_id: str) -> int:
        """
        Fold a guest cart into the user's cart. Lines are replayed through
        add_item so shared products have their quantities summed. The guest
        cart ends up empty and `merged`.
        """
        anon = self.cart_repo.get(anonymous_cart_id)
        if not anon:
            raise NotFoundError("Cart not found")
        user_cart_id = self.get_or_create(user_id=user_id).cart_id
        if anon.id == user_cart_id or anon.status != CART_ACTIVE:
            return user_cart_id

        for line in self.cart_repo.lines(anon.id):
            self.add_item(user_cart_id, line.product_id, line.quantity)

        self.cart_repo.delete_lines(anon.id)
        self.cart_repo.set_status(anon.id, CART_MERGED)
        self.db.commit()
        log.info("merged cart %s into %s for user %s", anon.id, user_cart_id, user_id)
        return user_cart_id

    def clear(self, cart_id: int, mark_completed: bool = False):
        self.cart_repo.delete_lines(cart_id)
        if mark_completed:
            self.cart_repo.set_status(cart_id, CART_COMPLETED)
        self.db.commit()

    # --- HTTP-facing flows ---

    def _shortfall(self, product: Product, requested: int, available: int) -> StockShortfallError:
        return StockShortfallError(
            InventoryShortfall(
                product_id=product.id,
                name=product.name,
                requested=requested,
                available=available,
                error="Not enough inventory",
            )
        )

    def add_to_cart(self, identity: Identity, product_id: int, quantity: int) -> Tuple[CartSummary, CartHandle]:
        check = self.inventory.check_availability(product_id, quantity)
        if not check.is_available:
            raise self._shortfall(check.product, quantity, check.available)

        handle = self.get_or_create(user_id=identity.user_id, anonymous_token=identity.cart_token)

        # the line may already hold some of this product: check the new total too
        existing = self.cart_repo.get_line(handle.cart_id, product_id)
        if existing:
            new_total = existing.quantity + quantity
            if check.available < new_total:
                raise self._shortfall(check.product, new_total, check.available)

        self.add_item(handle.cart_id, product_id, quantity)
        return self.get_summary(handle.cart_id), handle

    def change_quantity(self, identity: Identity, item_id: int, quantity: int) -> CartSummary:
        cart_id = self.find_cart_id(identity)
        if cart_id is None:
            raise NotFoundError("Cart item not found")
        line = self.cart_repo.get_line_by_id(item_id, cart_id)
        if not line:
            raise NotFoundError("Cart item not found")
        check = self.inventory.check_availability(line.product_id, quantity)
        if not check.is_available:
            raise self._shortfall(check.product, quantity, check.available)
        self.update_quantity(item_id, quantity, cart_id)
        return self.get_summary(cart_id)
