from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from storefront.db import Base


class Customer(Base):
    __tablename__ = "customers"
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), unique=True, nullable=False, index=True)
    name = Column(String(256), nullable=False)
    phone = Column(String(64), nullable=True)
    address = Column(JSON, nullable=True)
    user_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
