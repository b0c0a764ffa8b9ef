from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.models.order import ORDER_ABANDONED, ORDER_PENDING, Order, OrderLine
from storefront.utils.transactions import transaction_scope


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def create_with_lines(
        self,
        customer_id: Optional[int],
        total_amount: Decimal,
        shipping_address: Optional[dict],
        currency: str,
        lines: Iterable[dict],
    ) -> Order:
        """
        lines: iterable of {product_id, name, quantity, price_at_purchase}

        The order row and all of its lines are written in one transactional
        scope: either every row lands or none does.
        """
        with transaction_scope(self.db):
            order = Order(
                customer_id=customer_id,
                status=ORDER_PENDING,
                currency=currency,
                total_amount=total_amount,
                shipping_address=shipping_address,
            )
            self.db.add(order)
            self.db.flush()
            for ln in lines:
                self.db.add(
                    OrderLine(
                        order_id=order.id,
                        product_id=ln["product_id"],
                        name=ln.get("name"),
                        quantity=ln["quantity"],
                        price_at_purchase=ln["price_at_purchase"],
                    )
                )
            self.db.flush()
        return order

    def attach_payment(self, order_id: int, session_id: str, payment_intent_id: Optional[str] = None) -> bool:
        res = self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(payment_session_id=session_id, payment_intent_id=payment_intent_id)
        )
        return res.rowcount == 1

    def mark_line_committed(self, line_id: int) -> bool:
        res = self.db.execute(
            update(OrderLine).where(OrderLine.id == line_id).values(inventory_committed=True)
        )
        return res.rowcount == 1

    def mark_line_given_up(self, line_id: int) -> bool:
        res = self.db.execute(
            update(OrderLine).where(OrderLine.id == line_id).values(inventory_given_up=True)
        )
        return res.rowcount == 1

    def set_status(self, order_id: int, status: str) -> bool:
        res = self.db.execute(update(Order).where(Order.id == order_id).values(status=status))
        return res.rowcount == 1

    def lines_for(self, order_id: int) -> List[OrderLine]:
        return self.db.query(OrderLine).filter(OrderLine.order_id == order_id).order_by(OrderLine.id).all()

    def stale_unpaid(self, before: datetime) -> List[Order]:
        """Pending orders that never got a payment session and are older than `before`."""
        return (
            self.db.query(Order)
            .filter(
                Order.status == ORDER_PENDING,
                Order.payment_session_id.is_(None),
                Order.created_at < before,
            )
            .all()
        )

    def uncommitted_lines(self) -> List[OrderLine]:
        """Lines whose stock was never taken although the buyer was sent to pay."""
        return (
            self.db.query(OrderLine)
            .join(Order, Order.id == OrderLine.order_id)
            .filter(
                Order.payment_session_id.isnot(None),
                Order.status != ORDER_ABANDONED,
                OrderLine.inventory_committed == False,
                OrderLine.inventory_given_up == False,
            )
            .order_by(OrderLine.id)
            .all()
        )
