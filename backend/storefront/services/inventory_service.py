from dataclasses import dataclass
from typing import Iterable, List

from sqlalchemy.orm import Session

from storefront.errors import InventoryShortfall, NotFoundError, ValidationError
from storefront.models.product import Product
from storefront.repositories.product_repo import ProductRepository
from storefront.utils.log import get_logger

log = get_logger(__name__)


@dataclass
class Availability:
    available: int
    is_available: bool
    product: Product


@dataclass
class DecrementResult:
    new_count: int
    sufficient: bool


class InventoryService:
    def __init__(self, db: Session):
        self.db = db
        self.product_repo = ProductRepository(db)

    def check_availability(self, product_id: int, requested_qty: int) -> Availability:
        product = self.product_repo.get_by_id(product_id)
        if not product:
            raise NotFoundError("Product not found")
        available = max(0, product.inventory_count or 0)
        return Availability(
            available=available,
            is_available=available >= requested_qty,
            product=product,
        )

    def decrement(self, product_id: int, qty: int) -> DecrementResult:
        """
        Take `qty` units off the product's stock in one conditional update.
        The count floors at zero; `sufficient` is False when it had to.
        The caller owns the commit.
        """
        if qty <= 0:
            raise ValidationError("Quantity must be positive")
        res = self.product_repo.decrement_with_floor(product_id, qty)
        if res is None:
            raise NotFoundError(f"Product {product_id} not found")
        new_count, sufficient = res
        if not sufficient:
            log.warning(
                "stock for product %s ran out: wanted %s, floored at 0", product_id, qty
            )
        return DecrementResult(new_count=new_count, sufficient=sufficient)

    def validate_lines(self, lines: Iterable) -> List[InventoryShortfall]:
        """
        Re-check every cart line against current stock and return all
        shortfalls, not just the first one. `lines` are objects with
        product_id, quantity and (optionally) product.
        """
        shortfalls = []
        for line in lines:
            try:
                check = self.check_availability(line.product_id, line.quantity)
            except NotFoundError:
                product = getattr(line, "product", None)
                shortfalls.append(
                    InventoryShortfall(
                        product_id=line.product_id,
                        name=getattr(product, "name", None) or "Unknown product",
                        requested=line.quantity,
                        available=0,
                        error="Product not found",
                    )
                )
                continue
            if not check.is_available:
                shortfalls.append(
                    InventoryShortfall(
                        product_id=line.product_id,
                        name=check.product.name,
                        requested=line.quantity,
                        available=check.available,
                    )
                )
        return shortfalls
