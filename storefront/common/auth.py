"""Request principal as forwarded by the authenticating gateway.

Token verification happens upstream; by the time a request reaches this
service the gateway has set ``X-User-Id`` and ``X-User-Role``.
"""
from dataclasses import dataclass
from functools import wraps

from quart import g, request

from ..orders.errors import AuthenticationRequired, NotAuthorized

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

ROLE_ADMIN = "admin"
ROLE_CUSTOMER = "customer"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str = ROLE_CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def owner_filter(self):
        """User id to restrict lookups to, or None for admins."""
        return None if self.is_admin else self.user_id


def require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise NotAuthorized()


def principal_from_headers(headers) -> Principal:
    user_id = (headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise AuthenticationRequired()
    role = (headers.get(USER_ROLE_HEADER) or ROLE_CUSTOMER).strip().lower()
    return Principal(user_id=user_id, role=role)


def login_required(view):
    @wraps(view)
    async def wrapper(*args, **kwargs):
        g.principal = principal_from_headers(request.headers)
        return await view(*args, **kwargs)

    return wrapper
