from __future__ import annotations

from fastapi import FastAPI

from dealflow.core.db.immutability import register_immutability_listeners
from dealflow.core.errors import register_error_handlers
from dealflow.core.logging import configure_logging
from dealflow.core.middleware.request_id import RequestIdMiddleware
from dealflow.domain.deals.routes.approval import router as approval_router
from dealflow.domain.deals.routes.deals import router as deals_router
from dealflow.domain.deals.routes.dispatch import router as dispatch_router
from dealflow.domain.deals.routes.line_items import router as line_items_router


def create_app() -> FastAPI:
    configure_logging()
    register_immutability_listeners()

    app = FastAPI(title="Dealflow - Deal Lifecycle Backend", version="0.1.0")
    app.add_middleware(RequestIdMiddleware)
    register_error_handlers(app)

    @app.get("/health", tags=["admin"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(deals_router)
    app.include_router(line_items_router)
    app.include_router(approval_router)
    app.include_router(dispatch_router)

    # Azure Static Web Apps (linked backend) proxies requests under /api/*.
    app.include_router(deals_router, prefix="/api")
    app.include_router(line_items_router, prefix="/api")
    app.include_router(approval_router, prefix="/api")
    app.include_router(dispatch_router, prefix="/api")

    return app


app = create_app()
