"""Periodic reclaim cycles.

Runs one cycle immediately, then every ``interval_sec``. A failing cycle is
logged and the loop keeps going; only cancellation stops it.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from src.reclaim.exceptions import PipelineBusyError, RecaptureError
from src.reclaim.pipeline import CycleReport, ReclaimPipeline


async def run_scheduled_cycle(pipeline: ReclaimPipeline) -> CycleReport | None:
    """One guarded cycle. Returns None if it could not run."""
    try:
        report = await pipeline.run_reclaim_cycle()
    except PipelineBusyError:
        logger.info("[SCHED] Previous run still in progress, skipping this tick")
        return None
    except RecaptureError as e:
        logger.error(f"[SCHED] Reclaim cycle failed: {e}")
        return None
    except Exception as e:
        logger.exception(f"[SCHED] Unexpected error in reclaim cycle: {e}")
        return None

    if report.skipped:
        logger.info(f"[SCHED] Cycle skipped: emergency stop active ({report.skipped_reason})")
    else:
        verb = "simulated" if report.dry_run else "reclaimed"
        logger.info(
            f"[SCHED] Cycle done: scanned={report.scanned} eligible={report.eligible} "
            f"reclaimed={report.reclaimed} total {verb}={report.to_dict()['totalSol']:.6f} SOL"
        )
    return report


async def run_scheduler(pipeline: ReclaimPipeline, interval_sec: int) -> None:
    logger.info(f"[SCHED] Scheduler started (interval: {interval_sec}s)")
    if not pipeline.dry_run:
        logger.warning("[SCHED] DRY RUN IS DISABLED - real transactions will be executed")

    while True:
        await run_scheduled_cycle(pipeline)
        await asyncio.sleep(interval_sec)
