"""Tests for the periodic reclaim scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.reclaim.exceptions import PipelineBusyError, PipelineError
from src.reclaim.pipeline import CycleReport, ReclaimPipeline
from src.reclaim.scheduler import run_scheduled_cycle, run_scheduler
from tests.fakes import seed_sponsored


def _mock_pipeline(**kwargs) -> MagicMock:
    pipeline = MagicMock(spec=ReclaimPipeline)
    pipeline.dry_run = True
    pipeline.run_reclaim_cycle = AsyncMock(**kwargs)
    return pipeline


@pytest.mark.asyncio
async def test_cycle_report_returned(pipeline, chain, operator):
    seed_sponsored(chain, operator, 2)

    report = await run_scheduled_cycle(pipeline)

    assert report is not None
    assert report.reclaimed == 2


@pytest.mark.asyncio
async def test_busy_pipeline_skips_tick():
    pipeline = _mock_pipeline(side_effect=PipelineBusyError("busy"))
    assert await run_scheduled_cycle(pipeline) is None


@pytest.mark.asyncio
async def test_failed_cycle_is_swallowed():
    pipeline = _mock_pipeline(side_effect=PipelineError("Scan failed: rpc down"))
    assert await run_scheduled_cycle(pipeline) is None


@pytest.mark.asyncio
async def test_unexpected_error_is_swallowed():
    pipeline = _mock_pipeline(side_effect=RuntimeError("boom"))
    assert await run_scheduled_cycle(pipeline) is None


@pytest.mark.asyncio
async def test_skipped_cycle_passes_through():
    skipped = CycleReport(0, 0, 0, 0, True, skipped_reason="halt")
    pipeline = _mock_pipeline(return_value=skipped)
    assert await run_scheduled_cycle(pipeline) is skipped


@pytest.mark.asyncio
async def test_scheduler_keeps_running_after_failure():
    ok = CycleReport(1, 0, 0, 0, True)
    pipeline = _mock_pipeline(side_effect=[PipelineError("x"), ok, asyncio.CancelledError()])

    with patch("src.reclaim.scheduler.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(asyncio.CancelledError):
            await run_scheduler(pipeline, interval_sec=60)

    assert pipeline.run_reclaim_cycle.await_count == 3
    assert sleep.await_args.args[0] == 60
