from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from storefront.api.deps import clear_cart_cookie, get_identity, rate_limited
from storefront.config import settings
from storefront.db import get_db
from storefront.errors import StorefrontError, UpstreamError
from storefront.schemas.checkout_schema import CheckoutIn, CheckoutOut
from storefront.services.checkout_service import CheckoutService
from storefront.services.identity_service import Identity
from storefront.utils.log import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["checkout"])


def get_checkout_service(request: Request, db: Session = Depends(get_db)) -> CheckoutService:
    return CheckoutService(db, payment_adapter=request.app.state.payment_adapter)


@router.post("", summary="Create a hosted checkout session for the current cart", response_model=CheckoutOut)
def checkout(
    payload: CheckoutIn,
    response: Response,
    identity: Identity = Depends(get_identity),
    _limit=Depends(rate_limited(settings.RATE_LIMIT_CHECKOUT)),
    svc: CheckoutService = Depends(get_checkout_service),
):
    try:
        result = svc.checkout(payload, identity)
    except StorefrontError:
        raise
    except SQLAlchemyError:
        svc.db.rollback()
        log.error("checkout failed on a store error", exc_info=True)
        raise UpstreamError("An unexpected error occurred during checkout")
    if result.cart_completed:
        clear_cart_cookie(response)
    return result.to_dict()
