from datetime import datetime, timezone

from storefront.db import Base
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

CART_ACTIVE = "active"
CART_MERGED = "merged"
CART_COMPLETED = "completed"


class Cart(Base):
    __tablename__ = "carts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=True, index=True)  # authenticated owner
    anonymous_token = Column(
        String(64), unique=True, index=True, nullable=True
    )  # guest identifier, carried in the cart cookie
    status = Column(
        String(16), nullable=False, default=CART_ACTIVE
    )  # active, merged, completed
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = relationship(
        "CartItem", back_populates="cart", cascade="all, delete-orphan"
    )
