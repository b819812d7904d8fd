"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from tanggap import __version__
from tanggap.api.middleware import RateLimitMiddleware
from tanggap.api.routes import ROUTERS
from tanggap.config import settings
from tanggap.sentry import capture_exception

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    from tanggap.db.database import init_db
    from tanggap.services.media import get_media_store
    from tanggap.telegram.notifier import get_telegram_notifier
    from tanggap.whatsapp.factory import get_whatsapp_service

    init_db()
    get_media_store().ensure_directories()
    logger.info(f"Tanggap API {__version__} started ({settings.environment})")
    try:
        yield
    finally:
        await get_whatsapp_service().close()
        await get_telegram_notifier().close()
        logger.info("Tanggap API stopped")


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = "Endpoint not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in error['loc'][1:]) or 'body'}: {error['msg']}"
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"success": False, "error": "; ".join(errors)})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    capture_exception(exc)
    return JSONResponse(
        status_code=500, content={"success": False, "error": "Internal server error"}
    )


def create_app(
    rate_limit_per_minute: int | None = None, trusted_proxy_count: int | None = None
) -> FastAPI:
    app = FastAPI(title="Tanggap Darurat", version=__version__, lifespan=lifespan)

    app.add_middleware(
        RateLimitMiddleware,
        max_requests_per_minute=rate_limit_per_minute or settings.rate_limit_per_minute,
        trusted_proxy_count=(
            settings.trusted_proxy_count if trusted_proxy_count is None else trusted_proxy_count
        ),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    for router in ROUTERS:
        app.include_router(router)

    if settings.dashboard_dir:
        dashboard = Path(settings.dashboard_dir)
        if dashboard.is_dir():
            app.mount("/", StaticFiles(directory=dashboard, html=True), name="dashboard")
        else:
            logger.warning(f"Dashboard directory {dashboard} not found; not serving it")

    return app
