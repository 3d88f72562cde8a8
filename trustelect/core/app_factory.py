"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability compared to a monolithic main.
"""

from __future__ import annotations

from fastapi import FastAPI

from trustelect.api.routes import health_router, rate_limits_router
from trustelect.core.config import settings
from trustelect.core.exception_handlers import setup_exception_handlers
from trustelect.core.logging import configure_logging
from trustelect.core.middleware import request_id_middleware
from trustelect.core.openapi import apply_openapi_customizations
from trustelect.core.rate_limit import get_policy_registry


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Building the policy registry here makes a bad window/limit configuration
    fail at startup instead of on the first guarded request.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)
    get_policy_registry()

    app = FastAPI(
        title="TrustElect Admission Control",
        description=(
            "Fixed-window admission control for the TrustElect election API: "
            "login, general API, voting, ballot retrieval and results polling "
            "are each throttled per caller, returning 429 with retry guidance."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
