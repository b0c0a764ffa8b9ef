from typing import Optional

from storefront.api.deps import clear_cart_cookie, get_identity, set_cart_cookie
from storefront.db import get_db
from storefront.errors import (
    AuthenticationRequired,
    NotFoundError,
    StorefrontError,
    UpstreamError,
    ValidationError,
)
from storefront.services.cart_service import EMPTY_CART, CartService
from storefront.services.identity_service import Identity
from storefront.utils.log import get_logger
from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

log = get_logger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddItemIn(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)


class UpdateItemIn(BaseModel):
    item_id: int
    quantity: int = Field(..., gt=0)


@router.get("", summary="Get cart")
def get_cart(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        cart_id = svc.find_cart_id(identity)
        if cart_id is None:
            return EMPTY_CART
        return svc.get_summary(cart_id).to_dict()
    except SQLAlchemyError:
        log.error("failed to read cart", exc_info=True)
        raise UpstreamError("Failed to get cart items")


@router.post("", summary="Add item to cart")
def add_item(
    payload: AddItemIn,
    response: Response,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        summary, handle = svc.add_to_cart(identity, payload.product_id, payload.quantity)
    except StorefrontError:
        raise
    except SQLAlchemyError:
        db.rollback()
        log.error("failed to add product %s to cart", payload.product_id, exc_info=True)
        raise UpstreamError("Failed to add item to cart")
    # anonymous carts travel in the cookie; refresh it on every add
    if handle.token and not identity.is_authenticated:
        set_cart_cookie(response, handle.token)
    return summary.to_dict()


@router.patch("", summary="Update item quantity")
def update_item(
    payload: UpdateItemIn,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        return svc.change_quantity(identity, payload.item_id, payload.quantity).to_dict()
    except StorefrontError:
        raise
    except SQLAlchemyError:
        db.rollback()
        log.error("failed to update cart item %s", payload.item_id, exc_info=True)
        raise UpstreamError("Failed to update item quantity")


@router.delete("", summary="Remove item")
def remove_item(
    item_id: Optional[str] = Query(None, alias="itemId"),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    if not item_id:
        raise ValidationError("Item ID is required")
    try:
        item_pk = int(item_id)
    except ValueError:
        raise ValidationError("Item ID must be an integer")

    svc = CartService(db)
    try:
        cart_id = svc.find_cart_id(identity)
        if cart_id is None:
            raise NotFoundError("Cart item not found")
        svc.remove_item(item_pk, cart_id=cart_id)
    except StorefrontError:
        raise
    except SQLAlchemyError:
        db.rollback()
        log.error("failed to remove cart item %s", item_pk, exc_info=True)
        raise UpstreamError("Failed to remove item from cart")
    return {"success": True}


@router.post("/merge", summary="Merge the guest cart into the signed-in user's cart")
def merge_cart(
    response: Response,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    if not identity.is_authenticated:
        raise AuthenticationRequired("Sign in to merge carts")
    svc = CartService(db)
    try:
        cart_id = None
        if identity.cart_token:
            anon = svc.cart_repo.get_active_by_token(identity.cart_token)
            if anon:
                cart_id = svc.merge_anonymous_into(anon.id, identity.user_id)
        if cart_id is None:
            cart_id = svc.get_or_create(user_id=identity.user_id).cart_id
        summary = svc.get_summary(cart_id)
    except StorefrontError:
        raise
    except SQLAlchemyError:
        db.rollback()
        log.error("failed to merge carts for user %s", identity.user_id, exc_info=True)
        raise UpstreamError("Failed to merge carts")
    clear_cart_cookie(response)
    return summary.to_dict()
