"""Entry point for the rent reclaim service (scheduler + control plane API)."""

import asyncio
import signal
import sys

from loguru import logger

from config.settings import settings
from src.reclaim.exceptions import ConfigurationError
from src.reclaim.pipeline import ReclaimPipeline
from src.reclaim.scheduler import run_scheduler
from src.utils.logger import setup_logger


async def main() -> int:
    setup_logger(level="INFO", redact=[settings.operator_private_key])
    logger.info(
        f"Starting recapture ({settings.solana_network}, "
        f"{'DRY RUN' if settings.dry_run else 'LIVE'})..."
    )

    try:
        pipeline = ReclaimPipeline.from_settings(settings)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    logger.info(f"Operator: {pipeline.operator}")

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    tasks: list[asyncio.Task] = []
    if settings.scheduler_enabled:
        tasks.append(asyncio.create_task(run_scheduler(pipeline, settings.schedule_interval_sec)))
    if settings.api_enabled:
        from src.api.server import run_api_server

        tasks.append(asyncio.create_task(run_api_server(pipeline)))

    if not tasks:
        logger.warning("Scheduler and API are both disabled, nothing to run")
        await pipeline.close()
        return 0

    # Wait for any task to finish or for a shutdown signal
    done, pending = await asyncio.wait(
        [*tasks, asyncio.create_task(shutdown_event.wait())],
        return_when=asyncio.FIRST_COMPLETED,
    )

    for task in pending:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Task exited with error: {task.exception()}")

    await pipeline.close()
    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
