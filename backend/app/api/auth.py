"""Caller identity and policy dependencies.

Credential verification belongs to the upstream authentication layer. The
bearer token here is a stand-in carrying the already-verified identity:
"Bearer <user_id>" or "Bearer <user_id>:<role>".
"""

from collections.abc import Awaitable, Callable

from backend.app.authz import context as authz_context
from backend.app.authz.interception import authorize_type
from backend.app.authz.policy import build_ability
from backend.app.authz.rules import Action
from backend.app.config import get_settings
from backend.app.db.context import Caller, RequestContext


def resolve_caller(authorization: str | None) -> Caller | None:
    """Resolve the caller from an Authorization header.

    Args:
        authorization: Authorization header (e.g., "Bearer 42:USER")

    Returns:
        Caller, or None for an anonymous request (no header)

    Raises:
        ValueError: If the header is present but malformed
    """
    if not authorization:
        return None

    if not authorization.startswith("Bearer "):
        raise ValueError("Invalid authorization header format")

    token = authorization[7:].strip()  # Strip "Bearer "
    user_part, _, role = token.partition(":")

    try:
        user_id = int(user_part)
    except ValueError as e:
        raise ValueError("Invalid token format (expected user_id[:role])") from e

    return Caller(id=user_id, role=role.strip().upper() or get_settings().default_role)


async def get_current_context() -> RequestContext:
    """Request context installed by the authorization middleware.

    Outside an installed extent this is the anonymous context, never an
    unrestricted one.
    """
    ctx = authz_context.get_current_context()
    if ctx is None:
        return RequestContext(caller=None, ability=build_ability(None))
    return ctx


def check_policies(action: Action, subject_type: str) -> Callable[[], Awaitable[None]]:
    """Dependency factory: require a type-level permission.

    Example:
        @router.post("", dependencies=[Depends(check_policies(Action.create, "Post"))])
    """

    async def _check_policies() -> None:
        authorize_type(action, subject_type)

    return _check_policies
