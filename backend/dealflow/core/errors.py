from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dealflow.core.middleware.audit import get_logger
from dealflow.shared.exceptions import AppError

logger = get_logger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Render every AppError as ``{"detail", "code"}`` with the error's own status."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log("http.app_error", code=exc.code, status_code=exc.status_code, path=request.url.path)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})
