"""
Parcel Handoff Backend application.

Wires the v1 routers, the correlation-id middleware and the error
envelope handlers onto one FastAPI app.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, create_schema
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from backend.app.core.observability import ObservabilityMiddleware, configure_logging

EXCEPTION_HANDLERS = {
    AppException: app_exception_handler,
    HTTPException: http_exception_handler,
    RequestValidationError: validation_exception_handler,
    Exception: generic_exception_handler,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await create_schema()
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Parcel custody lifecycle and batch handoff reconciliation",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

for exc_class, handler in EXCEPTION_HANDLERS.items():
    app.add_exception_handler(exc_class, handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe; also reports the configured pickup code policy."""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "pickup_code_policy": settings.pickup_code_policy,
    }


app.include_router(api_v1_router, prefix=f"/{settings.api_version}")
