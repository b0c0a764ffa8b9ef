from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class ShippingAddress(BaseModel):
    line1: str = Field(..., min_length=3)
    line2: Optional[str] = None
    city: str = Field(..., min_length=2)
    postal_code: str = Field(..., min_length=4)
    country: str = Field(..., min_length=2)


class CheckoutIn(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=2)
    phone: Optional[str] = None
    shipping_address: ShippingAddress


class CheckoutOut(BaseModel):
    url: str
    session_id: str
    order_id: int
