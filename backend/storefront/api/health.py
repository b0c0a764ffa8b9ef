from storefront.db import engine
from storefront.utils.log import get_logger
from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

log = get_logger(__name__)

router = APIRouter()


@router.get("/health", tags=["health"])
def health(request: Request):
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except SQLAlchemyError:
        log.warning("health: database unreachable", exc_info=True)
    payment_ok = request.app.state.payment_adapter.health_check()

    return {
        "status": "ok" if db_ok and payment_ok else "degraded",
        "db": db_ok,
        "payment_adapter": payment_ok,
    }
