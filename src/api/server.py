"""Control-plane server — runs uvicorn inside the existing asyncio event loop."""

from __future__ import annotations

import uvicorn
from loguru import logger

from config.settings import settings
from src.reclaim.pipeline import ReclaimPipeline


async def run_api_server(pipeline: ReclaimPipeline) -> None:
    """Serve the FastAPI app as a task alongside the scheduler."""
    from src.api.app import create_app

    app = create_app(pipeline)
    config = uvicorn.Config(
        app=app,
        host="0.0.0.0",
        port=settings.api_port,
        log_level="warning",
        loop="none",  # use the existing event loop
    )
    server = uvicorn.Server(config)
    logger.info(f"[API] Control plane starting on http://0.0.0.0:{settings.api_port}")
    await server.serve()
