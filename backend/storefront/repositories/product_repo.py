import math
from typing import List, Optional, Sequence, Tuple

from storefront.models.product import Product, ProductImage
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

SORT_ORDERS = {
    "price_asc": (Product.price.asc(), Product.id.asc()),
    "price_desc": (Product.price.desc(), Product.id.asc()),
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "oldest": (Product.created_at.asc(), Product.id.asc()),
}


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, product_id: int, include_inactive: bool = False) -> Optional[Product]:
        """
        Return the product with its images. Inactive products are treated as
        missing unless `include_inactive` is set.
        """
        qry = (
            self.db.query(Product)
            .options(selectinload(Product.images))
            .filter(Product.id == product_id)
        )
        if not include_inactive:
            qry = qry.filter(Product.active == True)
        return qry.first()

    def list(
        self,
        category: Optional[str] = None,
        page: int = 1,
        limit: int = 12,
        sort: str = "newest",
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product).filter(Product.active == True)
        if category:
            query = query.filter(Product.category == category)
        total = query.with_entities(func.count(Product.id)).scalar() or 0
        items = (
            query.options(selectinload(Product.images))
            .order_by(*SORT_ORDERS.get(sort, SORT_ORDERS["newest"]))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def page_count(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit else 0

    def stock_of(self, product_id: int) -> Optional[int]:
        return self.db.execute(
            select(Product.inventory_count).where(Product.id == product_id)
        ).scalar_one_or_none()

    def decrement_with_floor(self, product_id: int, qty: int) -> Optional[Tuple[int, bool]]:
        """
        Atomically take `qty` units off the stock, flooring at zero.

        Each branch is a single conditional UPDATE so concurrent checkouts can
        never drive the count negative or lose an update. Returns
        (new_count, sufficient) or None when the product does not exist.
        """
        for _ in range(3):
            res = self.db.execute(
                update(Product)
                .where(Product.id == product_id, Product.inventory_count >= qty)
                .values(inventory_count=Product.inventory_count - qty)
            )
            if res.rowcount == 1:
                return self.stock_of(product_id), True

            res = self.db.execute(
                update(Product)
                .where(Product.id == product_id, Product.inventory_count < qty)
                .values(inventory_count=0)
            )
            if res.rowcount == 1:
                return 0, False

            if self.stock_of(product_id) is None:
                return None
            # stock was replenished between the two statements; go again
        return self.stock_of(product_id), False

    def create_or_update(
        self,
        name: str,
        price,
        inventory_count: int = 0,
        description: str = None,
        category: str = None,
        images: Sequence[dict] = (),
        product_id: int = None,
    ) -> Product:
        p = self.db.get(Product, product_id) if product_id is not None else None
        if p is None:
            p = self.db.query(Product).filter(Product.name == name).first()
        if p:
            p.name = name
            p.price = price
            p.inventory_count = inventory_count
            p.description = description
            p.category = category
        else:
            p = Product(
                id=product_id,
                name=name,
                price=price,
                inventory_count=inventory_count,
                description=description,
                category=category,
            )
            self.db.add(p)
        if images:
            p.images = [
                ProductImage(
                    url=img["url"],
                    alt_text=img.get("alt_text"),
                    is_primary=bool(img.get("is_primary", i == 0)),
                )
                for i, img in enumerate(images)
            ]
        self.db.flush()
        return p
