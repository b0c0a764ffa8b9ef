import os
import tempfile
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from filelock import FileLock, Timeout
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.adapters.payment_gateway import build_payment_adapter
from storefront.api.deps import UserHeaderMiddleware
from storefront.api.health import router as health_router
from storefront.api.routes_cart import router as cart_router
from storefront.api.routes_catalogue import router as catalogue_router
from storefront.api.routes_checkout import router as checkout_router
from storefront.config import settings
from storefront.db import SessionLocal, init_db
from storefront.errors import RateLimitError, StorefrontError, UpstreamError, ValidationError
from storefront.services.reconciliation_service import ReconciliationService
from storefront.utils.log import get_logger
from storefront.utils.rate_limit import RateLimiter

log = get_logger(__name__)

SWEEP_LOCK_PATH = os.path.join(tempfile.gettempdir(), "storefront_locks", "reconcile.lock")


def reconcile_job():
    """Periodic sweep; only one process at a time runs it."""
    os.makedirs(os.path.dirname(SWEEP_LOCK_PATH), exist_ok=True)
    lock = FileLock(SWEEP_LOCK_PATH)
    try:
        with lock.acquire(timeout=0):
            db = SessionLocal()
            try:
                ReconciliationService(db).run(settings.PENDING_ORDER_TTL_SECONDS)
            finally:
                db.close()
    except Timeout:
        log.debug("reconciliation already running in another process")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db()

    scheduler = None
    if settings.RECONCILE_ENABLED:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            reconcile_job,
            "interval",
            seconds=settings.RECONCILE_INTERVAL_SECONDS,
            id="reconcile_checkouts",
        )
        scheduler.start()

    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)


app = FastAPI(title="Storefront - Backend", version="0.1.0", lifespan=lifespan)

# process-wide; swap for a shared store when running several workers
app.state.rate_limiter = RateLimiter()
# shared by every request
app.state.payment_adapter = build_payment_adapter(settings)

app.add_middleware(UserHeaderMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    err = ValidationError(details=details)
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=UpstreamError().to_dict())


app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(catalogue_router, prefix="/api/products", tags=["catalogue"])

app.include_router(cart_router, tags=["cart"])

app.include_router(checkout_router, prefix="/api/checkout", tags=["checkout"])
