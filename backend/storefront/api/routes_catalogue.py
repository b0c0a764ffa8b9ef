from fastapi import APIRouter, Depends, Query
from typing import Literal, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from storefront.api.deps import rate_limited
from storefront.config import settings
from storefront.db import get_db
from storefront.errors import NotFoundError, UpstreamError, ValidationError
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.product_schema import ProductOut
from storefront.utils.log import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["catalogue"])

@router.get("", summary="List products")
def list_products(
    category: Optional[str] = Query(None),
    page: int = Query(1, gt=0),
    limit: int = Query(12, gt=0, le=50),
    sort: Literal["price_asc", "price_desc", "newest", "oldest"] = Query("newest"),
    _limit=Depends(rate_limited(settings.RATE_LIMIT_PRODUCTS)),
    db: Session = Depends(get_db),
):
    repo = ProductRepository(db)
    try:
        items, total = repo.list(category=category, page=page, limit=limit, sort=sort)
        products = [ProductOut.model_validate(p).model_dump(mode="json") for p in items]
    except SQLAlchemyError:
        log.error("failed to list products", exc_info=True)
        raise UpstreamError("Failed to fetch products")

    return {
        "products": products,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": repo.page_count(total, limit),
        },
    }

@router.get("/{product_id}", summary="Get product by id")
def get_product(product_id: str, db: Session = Depends(get_db)):
    try:
        pk = int(product_id)
    except ValueError:
        raise ValidationError("Invalid product ID format")
    if pk <= 0:
        raise ValidationError("Invalid product ID format")

    repo = ProductRepository(db)
    try:
        p = repo.get_by_id(pk)
    except SQLAlchemyError:
        log.error("failed to load product %s", pk, exc_info=True)
        raise UpstreamError("Failed to get product")
    if not p:
        raise NotFoundError("Product not found")
    return ProductOut.model_validate(p).model_dump(mode="json")
