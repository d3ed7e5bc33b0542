"""Tests for the background maintenance scheduler."""

from __future__ import annotations

import asyncio

import pytest

from mediacat.catalogue.errors import SearchIndexError
from mediacat.catalogue.maintenance import MaintenanceJob, MaintenanceScheduler


class _Rebuild:
    """Rebuild double that blocks until released and counts its runs."""

    def __init__(self, result: int = 7) -> None:
        self.calls = 0
        self.release = asyncio.Event()
        self._result = result

    async def __call__(self) -> int:
        self.calls += 1
        await self.release.wait()
        return self._result


@pytest.mark.asyncio
async def test_rebuilds_are_single_flight() -> None:
    """Scheduling a running job returns the in-flight task."""
    index = _Rebuild()
    scheduler = MaintenanceScheduler(index, _Rebuild())

    first = scheduler.schedule_index_rebuild()
    second = scheduler.schedule(MaintenanceJob.SEARCH_INDEX)
    await asyncio.sleep(0)

    assert first is second, "a running rebuild must not be duplicated"
    assert scheduler.running(MaintenanceJob.SEARCH_INDEX) is first
    index.release.set()
    assert await first == 7
    assert index.calls == 1
    assert scheduler.running(MaintenanceJob.SEARCH_INDEX) is None


@pytest.mark.asyncio
async def test_finished_job_can_be_scheduled_again() -> None:
    """A completed rebuild does not block the next one."""
    projections = _Rebuild(result=3)
    projections.release.set()
    scheduler = MaintenanceScheduler(_Rebuild(), projections)

    await scheduler.schedule_projection_rebuild()
    await scheduler.schedule_projection_rebuild()

    assert projections.calls == 2


@pytest.mark.asyncio
async def test_jobs_are_independent() -> None:
    """Index and projection rebuilds run side by side."""
    scheduler = MaintenanceScheduler(_Rebuild(), _Rebuild())

    index_task = scheduler.schedule_index_rebuild()
    projection_task = scheduler.schedule_projection_rebuild()

    assert index_task is not projection_task
    assert index_task.get_name() == "catalogue.maintenance:search-index"
    await scheduler.aclose()


@pytest.mark.asyncio
async def test_failed_rebuild_surfaces_through_the_task() -> None:
    """Rebuild errors are kept on the task for the caller to inspect."""

    async def _fail() -> int:
        await asyncio.sleep(0)
        msg = "disk on fire"
        raise SearchIndexError(msg)

    scheduler = MaintenanceScheduler(_fail, _Rebuild())

    with pytest.raises(SearchIndexError, match="disk on fire"):
        await scheduler.schedule_index_rebuild()


@pytest.mark.asyncio
async def test_aclose_cancels_running_rebuilds() -> None:
    """Closing the scheduler cancels and awaits in-flight rebuilds."""
    scheduler = MaintenanceScheduler(_Rebuild(), _Rebuild())
    task = scheduler.schedule_index_rebuild()
    await asyncio.sleep(0)

    await scheduler.aclose()

    assert task.cancelled(), "running rebuild should be cancelled"
    assert scheduler.running(MaintenanceJob.SEARCH_INDEX) is None


@pytest.mark.asyncio
async def test_run_periodic_skips_index_when_not_needed() -> None:
    """The periodic loop consults the predicate before rebuilding the index."""
    index = _Rebuild()
    projections = _Rebuild()
    index.release.set()
    projections.release.set()
    scheduler = MaintenanceScheduler(index, projections)

    loop_task = asyncio.ensure_future(
        scheduler.run_periodic(0.01, needs_index_rebuild=lambda: False)
    )
    await asyncio.sleep(0.08)
    loop_task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await loop_task
    await scheduler.aclose()

    assert index.calls == 0, "index rebuild should be skipped"
    assert projections.calls >= 1, "projections should rebuild every round"
