from dataclasses import asdict, dataclass
from typing import Dict, List, Optional


class StorefrontError(Exception):
    """Base for errors that map onto a JSON error response."""

    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict:
        return {"error": self.message}


class ValidationError(StorefrontError):
    status_code = 400
    default_message = "Invalid request data"

    def __init__(self, message: Optional[str] = None, details: Optional[List] = None):
        super().__init__(message)
        self.details = details or []

    def to_dict(self) -> Dict:
        body = super().to_dict()
        if self.details:
            body["details"] = self.details
        return body


class EmptyCartError(ValidationError):
    default_message = "Cart is empty"


class NoActiveCartError(ValidationError):
    default_message = "No active cart found"


class AuthenticationRequired(StorefrontError):
    status_code = 401
    default_message = "Authentication required"


class NotFoundError(StorefrontError):
    status_code = 404
    default_message = "Not found"


@dataclass
class InventoryShortfall:
    product_id: int
    name: str
    requested: int
    available: int
    error: str = "Insufficient inventory"


class InventoryError(StorefrontError):
    status_code = 400
    default_message = "Not enough inventory"

    def __init__(self, shortfalls: List[InventoryShortfall], message: Optional[str] = None):
        super().__init__(message)
        self.shortfalls = list(shortfalls)

    def to_dict(self) -> Dict:
        body = super().to_dict()
        body["errors"] = [asdict(s) for s in self.shortfalls]
        return body


class StockShortfallError(InventoryError):
    """One product short while adding to or changing a cart line."""

    def __init__(self, shortfall: InventoryShortfall, message: Optional[str] = None):
        super().__init__([shortfall], message)

    @property
    def shortfall(self) -> InventoryShortfall:
        return self.shortfalls[0]

    def to_dict(self) -> Dict:
        return {"error": self.message, "inventory": asdict(self.shortfall)}


class RateLimitError(StorefrontError):
    status_code = 429
    default_message = "Rate limit exceeded"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> Dict:
        body = super().to_dict()
        body["retry_after"] = self.retry_after
        return body


class UpstreamError(StorefrontError):
    """Store or payment gateway failure."""

    status_code = 500

    def __init__(self, message: Optional[str] = None, order_id: Optional[int] = None):
        super().__init__(message)
        self.order_id = order_id

    def to_dict(self) -> Dict:
        body = super().to_dict()
        if self.order_id is not None:
            body["order_id"] = self.order_id
        return body
