from sqlalchemy import delete, update
from sqlalchemy.orm import Session
from typing import List, Optional
from storefront.models.cart import CART_ACTIVE, Cart
from storefront.models.cart_item import CartItem

class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, cart_id: int) -> Optional[Cart]:
        return self.db.get(Cart, cart_id)

    def get_active_by_user(self, user_id: str) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(Cart.user_id == user_id, Cart.status == CART_ACTIVE)
            .order_by(Cart.id)
            .first()
        )

    def get_active_by_token(self, token: str) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.anonymous_token == token, Cart.status == CART_ACTIVE).first()

    def create(self, user_id: Optional[str] = None, anonymous_token: Optional[str] = None) -> Cart:
        c = Cart(user_id=user_id, anonymous_token=anonymous_token, status=CART_ACTIVE)
        self.db.add(c)
        self.db.flush()
        return c

    def set_status(self, cart_id: int, status: str) -> bool:
        res = self.db.execute(update(Cart).where(Cart.id == cart_id).values(status=status))
        return res.rowcount == 1

    def lines(self, cart_id: int) -> List[CartItem]:
        return self.db.query(CartItem).filter(CartItem.cart_id == cart_id).order_by(CartItem.id).all()

    def get_line(self, cart_id: int, product_id: int) -> Optional[CartItem]:
        return self.db.query(CartItem).filter(CartItem.cart_id == cart_id, CartItem.product_id == product_id).first()

    def get_line_by_id(self, item_id: int, cart_id: Optional[int] = None) -> Optional[CartItem]:
        qry = self.db.query(CartItem).filter(CartItem.id == item_id)
        if cart_id is not None:
            qry = qry.filter(CartItem.cart_id == cart_id)
        return qry.first()

    def add_or_increment(self, cart_id: int, product_id: int, qty: int) -> CartItem:
        item = self.get_line(cart_id, product_id)
        if item:
            item.quantity = item.quantity + qty
        else:
            item = CartItem(cart_id=cart_id, product_id=product_id, quantity=qty)
            self.db.add(item)
        self.db.flush()
        return item

    def set_line_quantity(self, item_id: int, qty: int, cart_id: Optional[int] = None) -> Optional[CartItem]:
        item = self.get_line_by_id(item_id, cart_id)
        if not item:
            return None
        item.quantity = qty
        self.db.flush()
        return item

    def delete_line(self, item_id: int, cart_id: Optional[int] = None) -> bool:
        it = self.get_line_by_id(item_id, cart_id)
        if not it:
            return False
        self.db.delete(it)
        self.db.flush()
        return True

    def delete_lines(self, cart_id: int) -> int:
        res = self.db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
        return res.rowcount
