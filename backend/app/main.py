"""FastAPI application."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.posts import router as posts_router
from backend.app.authz.errors import AuthorizationDenied, RecordNotFound
from backend.app.config import get_settings
from backend.app.middleware.authorization import AbilityMiddleware, CallerLookup
from backend.app.utils.logging import configure_logging


async def authorization_denied_handler(request: Request, exc: AuthorizationDenied) -> JSONResponse:
    """Generic 403; never reveals which rule denied."""
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Forbidden"})


async def record_not_found_handler(request: Request, exc: RecordNotFound) -> JSONResponse:
    """404 for records that do not exist."""
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


def create_app(lookup: CallerLookup | None = None) -> FastAPI:
    """Build the application.

    Args:
        lookup: Caller identity lookup (defaults to the bearer header stub)
    """
    configure_logging(get_settings().log_level)

    app = FastAPI(title="Posts API", version="0.1.0")
    app.add_middleware(AbilityMiddleware, lookup=lookup)

    app.add_exception_handler(AuthorizationDenied, authorization_denied_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RecordNotFound, record_not_found_handler)  # type: ignore[arg-type]

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(posts_router, tags=["posts"])

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Posts API", "version": "0.1.0"}

    return app


app = create_app()
