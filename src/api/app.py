"""FastAPI application factory for the reclaim control plane."""

from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.cors import CORSMiddleware

from config.settings import Settings, settings
from src.api.middleware import SecurityHeadersMiddleware
from src.reclaim.exceptions import PipelineBusyError, PipelineError
from src.reclaim.pipeline import ReclaimPipeline

# Rate limiter (shared instance)
limiter = Limiter(key_func=get_remote_address)


async def _busy_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=409, content={"success": False, "error": str(exc)})


async def _pipeline_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


async def _value_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


def create_app(pipeline: ReclaimPipeline) -> FastAPI:
    """Build the app around an already-wired pipeline."""
    app = FastAPI(
        title="Recapture Control API",
        version="0.1.0",
        docs_url="/api/docs" if os.getenv("API_DEBUG") else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if os.getenv("API_DEBUG") else None,
    )
    app.state.pipeline = pipeline

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Pipeline errors → HTTP status
    app.add_exception_handler(PipelineBusyError, _busy_handler)
    app.add_exception_handler(PipelineError, _pipeline_error_handler)
    app.add_exception_handler(ValueError, _value_error_handler)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=Settings.split_csv(settings.api_cors_origin),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    from src.api.routers.auth_router import router as auth_router
    from src.api.routers.health import router as health_router
    from src.api.routers.metrics import router as metrics_router
    from src.api.routers.reclaim import router as reclaim_router
    from src.api.routers.safety import router as safety_router

    app.include_router(auth_router)
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(reclaim_router)
    app.include_router(safety_router)

    return app
