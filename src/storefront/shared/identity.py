"""Caller identities handed to the domain by the request layer.

Authentication happens upstream; by the time a request reaches the
Storefront domain it carries an already-verified user id and role, or a
guest session id.
"""

from dataclasses import dataclass
from uuid import NAMESPACE_URL, uuid5

from protean.exceptions import ValidationError

ADMIN_ROLE = "admin"

_CART_NAMESPACE = uuid5(NAMESPACE_URL, "storefront:cart")


@dataclass(frozen=True)
class Shopper:
    """Whoever owns a cart: an authenticated user or a guest session, never both."""

    user_id: str | None = None
    session_id: str | None = None

    @classmethod
    def resolve(cls, user_id=None, session_id=None):
        """An authenticated user wins over a session id; a guest must bring one."""
        if user_id:
            return cls(user_id=str(user_id))
        if session_id:
            return cls(session_id=str(session_id))
        raise ValidationError({"session_id": ["Session ID is required for guest cart"]})

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def key(self) -> str:
        return f"user:{self.user_id}" if self.user_id else f"session:{self.session_id}"

    @property
    def cart_id(self) -> str:
        """The shopper's cart identity. Each shopper has at most one cart."""
        return str(uuid5(_CART_NAMESPACE, self.key))


@dataclass(frozen=True)
class Requester:
    """The authenticated caller of an order operation."""

    user_id: str | None = None
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def label(self) -> str:
        if self.is_admin:
            return f"admin:{self.user_id}" if self.user_id else "admin"
        return f"user:{self.user_id}" if self.user_id else "anonymous"


SYSTEM = Requester(user_id="system", role=ADMIN_ROLE)
