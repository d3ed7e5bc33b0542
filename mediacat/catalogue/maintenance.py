"""Background maintenance for the search index and projections.

Full rebuilds are heavy, so they run as cancellable background tasks rather
than inline with ingestion. Each rebuild kind is single-flight: scheduling
while one is running returns the running task.

Examples
--------
>>> scheduler = MaintenanceScheduler(service.rebuild_index, service.rebuild_projections)
>>> task = scheduler.schedule_index_rebuild()
>>> await task
"""

from __future__ import annotations

import asyncio
import enum
import typing as typ

from mediacat.asyncio_tasks import create_task
from mediacat.logging import get_logger, log_error, log_info

from .errors import CatalogueError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

type RebuildCallable = cabc.Callable[[], cabc.Coroutine[object, object, int]]


class MaintenanceJob(enum.StrEnum):
    """Rebuild jobs the scheduler can run."""

    SEARCH_INDEX = "search-index"
    PROJECTIONS = "projections"


class MaintenanceScheduler:
    """Run full rebuilds as named background tasks.

    Parameters
    ----------
    rebuild_index : RebuildCallable
        Coroutine function performing a full search index rebuild.
    rebuild_projections : RebuildCallable
        Coroutine function performing a full projection rebuild.
    """

    def __init__(
        self,
        rebuild_index: RebuildCallable,
        rebuild_projections: RebuildCallable,
    ) -> None:
        self._jobs: dict[MaintenanceJob, RebuildCallable] = {
            MaintenanceJob.SEARCH_INDEX: rebuild_index,
            MaintenanceJob.PROJECTIONS: rebuild_projections,
        }
        self._tasks: dict[MaintenanceJob, asyncio.Task[int]] = {}

    def running(self, job: MaintenanceJob) -> asyncio.Task[int] | None:
        """Return the in-flight task for ``job``, if any."""
        task = self._tasks.get(job)
        return None if task is None or task.done() else task

    def schedule(self, job: MaintenanceJob) -> asyncio.Task[int]:
        """Start ``job`` unless it is already running; return its task."""
        current = self.running(job)
        if current is not None:
            return current
        task = create_task(
            self._jobs[job](),
            name=f"catalogue.maintenance:{job}",
            metadata={"operation_name": f"catalogue.maintenance.{job}"},
        )
        task.add_done_callback(self._log_outcome)
        self._tasks[job] = task
        log_info(logger, "Scheduled %s rebuild as %s.", job, task.get_name())
        return task

    def schedule_index_rebuild(self) -> asyncio.Task[int]:
        """Start a background search index rebuild."""
        return self.schedule(MaintenanceJob.SEARCH_INDEX)

    def schedule_projection_rebuild(self) -> asyncio.Task[int]:
        """Start a background projection rebuild."""
        return self.schedule(MaintenanceJob.PROJECTIONS)

    @staticmethod
    def _log_outcome(task: asyncio.Task[int]) -> None:
        if task.cancelled():
            log_info(logger, "Maintenance task %s cancelled.", task.get_name())
            return
        exc = task.exception()
        if exc is None:
            log_info(
                logger,
                "Maintenance task %s finished (%s items).",
                task.get_name(),
                task.result(),
            )
        elif isinstance(exc, CatalogueError):
            log_error(logger, "Maintenance task %s failed: %s", task.get_name(), exc)
        else:
            log_error(
                logger,
                "Maintenance task %s crashed.",
                task.get_name(),
                exc_info=exc,
            )

    async def run_periodic(
        self,
        interval_seconds: float,
        *,
        needs_index_rebuild: cabc.Callable[[], bool] | None = None,
    ) -> None:
        """Rebuild on a fixed interval until cancelled.

        Parameters
        ----------
        interval_seconds : float
            Delay between rebuild rounds.
        needs_index_rebuild : collections.abc.Callable[[], bool] | None, optional
            When given, the search index is rebuilt only while it returns
            True, e.g. while failed incremental updates are pending.
        """
        while True:
            await asyncio.sleep(interval_seconds)
            if needs_index_rebuild is None or needs_index_rebuild():
                await asyncio.wait({self.schedule_index_rebuild()})
            await asyncio.wait({self.schedule_projection_rebuild()})

    async def aclose(self) -> None:
        """Cancel running rebuilds and wait for them to stop."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        self._tasks.clear()


__all__ = ("MaintenanceJob", "MaintenanceScheduler", "RebuildCallable")
