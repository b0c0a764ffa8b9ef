from dataclasses import dataclass
from typing import Optional

AUTHENTICATED = "authenticated"
ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Identity:
    kind: str
    user_id: Optional[str] = None
    cart_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.kind == AUTHENTICATED

    @property
    def needs_new_token(self) -> bool:
        # the cart store mints the token together with the cart row
        return self.kind == ANONYMOUS and not self.cart_token


def resolve_identity(user_id: Optional[str], cart_token: Optional[str]) -> Identity:
    """
    Decide who is acting on this request. Pure: never creates a token or a cart.
    The anonymous token is still carried for authenticated users so a login-time
    merge can find the guest cart.
    """
    user_id = (user_id or "").strip() or None
    cart_token = (cart_token or "").strip() or None
    if user_id:
        return Identity(kind=AUTHENTICATED, user_id=user_id, cart_token=cart_token)
    return Identity(kind=ANONYMOUS, cart_token=cart_token)
