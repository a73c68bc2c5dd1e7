# Overview: Operator identity resolved from the shop API; keys the per-operator cart.

"""
Operator session service.

WHY: The remote shop API owns users and tokens. The terminal only needs to
know WHO is at the till, to key that operator's durable cart. The identity is
carried around as an explicit OperatorContext (never read from globals by the
cart code) so several operators can hold independent carts side by side.
"""

from __future__ import annotations

from dataclasses import dataclass

from .remote_api import AuthenticationError, RemoteAPI

ROLE_ADMIN = "admin"
ROLE_CASHIER = "cashier"

DEFAULT_CART_KEY_PREFIX = "cart_"


@dataclass(frozen=True)
class OperatorContext:
    id: int
    username: str
    display_name: str
    role: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "role": self.role,
        }


def operator_from_user(user: dict) -> OperatorContext:
    """Build the context from a /auth/me payload."""
    if not isinstance(user, dict) or user.get("id") is None or not user.get("username"):
        raise AuthenticationError("Shop API returned an incomplete user")
    if user.get("is_active") is False:
        raise AuthenticationError("User account is inactive", status_code=401)
    username = str(user["username"])
    return OperatorContext(
        id=int(user["id"]),
        username=username,
        display_name=user.get("full_name") or username,
        role=str(user.get("role") or ROLE_CASHIER),
    )


def cart_key(operator: OperatorContext, prefix: str = DEFAULT_CART_KEY_PREFIX) -> str:
    """Durable storage key for an operator's in-progress cart."""
    return f"{prefix}{operator.username}"


def login(api: RemoteAPI, username: str, password: str) -> tuple[str, OperatorContext]:
    """
    Exchange credentials for a shop API token and resolve the operator.

    Raises AuthenticationError for bad credentials.
    """
    response = api.login(username, password)
    token = (response or {}).get("access_token")
    if not token:
        raise AuthenticationError("Shop API did not return an access token")

    api.token = token
    return token, resolve_operator(api)


def resolve_operator(api: RemoteAPI) -> OperatorContext:
    return operator_from_user(api.get_me())
