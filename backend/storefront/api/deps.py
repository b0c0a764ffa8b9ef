from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.config import settings
from storefront.errors import RateLimitError
from storefront.services.identity_service import Identity, resolve_identity
from storefront.utils.rate_limit import RateLimiter


class UserHeaderMiddleware(BaseHTTPMiddleware):
    """
    Copies the authenticated user id set by the upstream auth layer
    (USER_ID_HEADER) into request.state.user_id.
    """

    async def dispatch(self, request: Request, call_next):
        request.state.user_id = request.headers.get(settings.USER_ID_HEADER)
        return await call_next(request)


def get_identity(request: Request) -> Identity:
    return resolve_identity(
        getattr(request.state, "user_id", None),
        request.cookies.get(settings.CART_COOKIE_NAME),
    )


def set_cart_cookie(response: Response, token: str):
    response.set_cookie(
        settings.CART_COOKIE_NAME,
        token,
        max_age=settings.CART_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )


def clear_cart_cookie(response: Response):
    response.delete_cookie(settings.CART_COOKIE_NAME, path="/")


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def rate_limited(limit: int, window_seconds: Optional[int] = None):
    """Dependency factory: count this request against (client, path) and raise 429 when over."""
    window = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS

    def dependency(request: Request):
        limiter = get_rate_limiter(request)
        result = limiter.hit((client_identifier(request), request.url.path), limit, window)
        if not result.allowed:
            raise RateLimitError(retry_after=result.retry_after)
        return result

    return dependency
