from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    ENVIRONMENT: str = "development"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    PUBLIC_BASE_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # checkout / payment gateway
    CURRENCY: str = "gbp"
    SHIPPING_ALLOWED_COUNTRIES: List[str] = ["GB"]
    PAYMENT_PROVIDER: str = "mock"  # mock, stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com"
    PAYMENT_TIMEOUT_SECONDS: float = 10.0
    PAYMENT_MOCK_DELAY_MS: int = 200
    PAYMENT_MAX_RETRIES: int = 2

    # identity
    CART_COOKIE_NAME: str = "anonymous_cart_id"
    CART_COOKIE_MAX_AGE: int = 60 * 60 * 24 * 30
    USER_ID_HEADER: str = "X-User-Id"

    # rate limiting (requests per window, per client + route)
    RATE_LIMIT_PRODUCTS: int = 60
    RATE_LIMIT_CHECKOUT: int = 15
    RATE_LIMIT_WINDOW_SECONDS: int = 600

    # out-of-band reconciliation of checkout side effects
    RECONCILE_ENABLED: bool = True
    RECONCILE_INTERVAL_SECONDS: int = 300
    PENDING_ORDER_TTL_SECONDS: int = 3600

    @property
    def cookie_secure(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
