# backend/storefront/schemas/product_schema.py
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel
from pydantic import ConfigDict

class ProductImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    url: str
    alt_text: Optional[str] = None
    is_primary: bool

class CartProductOut(BaseModel):
    """The product fields a cart line carries."""
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    price: float
    inventory_count: int
    images: List[ProductImageOut] = []

class ProductOut(CartProductOut):
    description: Optional[str] = None
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

