"""Authorization entry point: installs the caller's ability for each request."""

from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from backend.app.api.auth import resolve_caller
from backend.app.authz.context import installed
from backend.app.authz.errors import PolicyConstructionFailure
from backend.app.authz.policy import build_ability
from backend.app.authz.rules import Ability
from backend.app.db.context import Caller
from backend.app.utils.logging import StructuredAuthzLogger
from backend.app.utils.metrics import PrometheusAuthzMetrics

CallerLookup = Callable[[Request], Awaitable[Caller | None]]


async def header_caller_lookup(request: Request) -> Caller | None:
    """Default caller lookup reading the Authorization header."""
    return resolve_caller(request.headers.get("Authorization"))


class AbilityMiddleware(BaseHTTPMiddleware):
    """Resolve the caller, build its ability and install it around the request.

    Identity failures never abort the request: a failed lookup yields the
    anonymous ability and malformed caller attributes yield a deny-all one.
    Identity errors are reported by the authentication layer upstream.
    """

    def __init__(self, app: ASGIApp, lookup: CallerLookup | None = None) -> None:
        """Initialize authorization middleware.

        Args:
            app: Wrapped ASGI application
            lookup: Caller identity lookup (defaults to the bearer header stub)
        """
        super().__init__(app)
        self._lookup = lookup or header_caller_lookup
        self._logger = StructuredAuthzLogger()
        self._metrics = PrometheusAuthzMetrics()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        caller = await self._resolve_caller(request)
        ability = self._build_ability(caller)

        with installed(ability, caller):
            return await call_next(request)

    async def _resolve_caller(self, request: Request) -> Caller | None:
        try:
            return await self._lookup(request)
        except Exception as e:
            self._logger.log_identity_fallback("lookup_failed", f"{type(e).__name__}: {e}")
            self._metrics.inc_identity_fallback("lookup_failed")
            return None

    def _build_ability(self, caller: Caller | None) -> Ability:
        try:
            return build_ability(caller)
        except PolicyConstructionFailure as e:
            self._logger.log_identity_fallback("policy_construction_failed", str(e))
            self._metrics.inc_identity_fallback("policy_construction_failed")
            return Ability.deny_all()
