from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from storefront.db import Base

ORDER_PENDING = "pending"
ORDER_PAID = "paid"
ORDER_ABANDONED = "abandoned"


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    status = Column(
        String(32), nullable=False, default=ORDER_PENDING
    )  # pending, paid, abandoned
    currency = Column(String(3), nullable=False, default="gbp")
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_address = Column(JSON, nullable=True)
    payment_session_id = Column(String(255), nullable=True, index=True)
    payment_intent_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    lines = relationship(
        "OrderLine", back_populates="order", cascade="all, delete-orphan"
    )


class OrderLine(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    name = Column(String(256), nullable=True)
    quantity = Column(Integer, nullable=False)
    price_at_purchase = Column(Numeric(10, 2), nullable=False)
    inventory_committed = Column(Boolean, nullable=False, default=False)
    # product gone for good; the sweep no longer retries the decrement
    inventory_given_up = Column(Boolean, nullable=False, default=False)

    order = relationship("Order", back_populates="lines")
