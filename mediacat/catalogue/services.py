"""Catalogue service facade.

:class:`CatalogueService` wires the ingestion coordinator, the mutation hub
and its listeners (search synchroniser and projector), and the maintenance
scheduler into the operations exposed to collaborators.

Examples
--------
Build a service over a SQLite database and import one manifest:

>>> engine = create_async_engine("sqlite+aiosqlite:///catalogue.db")
>>> service = CatalogueService.from_engine(engine)
>>> await service.load_index()
>>> report = await service.ingest(source, manifest_bytes)
>>> hits = service.search("incep")
"""

from __future__ import annotations

import asyncio
import typing as typ

from sqlalchemy.ext.asyncio import async_sessionmaker

from mediacat.asyncio_tasks import create_task
from mediacat.config import CatalogueSettings
from mediacat.logging import get_logger, log_info

from .domain import ContentKind
from .grouping import group_franchises, group_records
from .ingestion_service import IngestionCoordinator
from .maintenance import MaintenanceScheduler
from .mutations import MutationHub
from .projections import Projector
from .search.synchronizer import SearchSynchronizer
from .storage.uow import SqlAlchemyUnitOfWork

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import uuid

    from sqlalchemy.ext.asyncio import AsyncEngine

    from .domain import (
        IngestionReport,
        SearchHit,
        SourceDescriptor,
        SourceStatus,
        UnifiedItem,
    )
    from .ingestion import IngestionJob, IngestionPayload
    from .ports import UnitOfWorkFactory, ViewerStateProvider

logger = get_logger(__name__)


class CatalogueService:
    """Entry point for ingestion, search, grouping and maintenance.

    Parameters
    ----------
    uow_factory : UnitOfWorkFactory
        Opens catalogue units of work.
    settings : CatalogueSettings | None, optional
        Runtime settings; defaults are used when omitted.
    viewer : ViewerStateProvider | None, optional
        Favourites and watch-history collaborator used by projections.
    sources : collections.abc.Iterable[SourceDescriptor], optional
        Known sources; their priorities rank variants when grouping.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        settings: CatalogueSettings | None = None,
        viewer: ViewerStateProvider | None = None,
        sources: cabc.Iterable[SourceDescriptor] = (),
    ) -> None:
        self._uow_factory = uow_factory
        self.settings = settings or CatalogueSettings()
        self.hub = MutationHub()
        self.synchronizer = SearchSynchronizer(uow_factory, self.hub)
        self.projector = Projector(uow_factory, self.hub, viewer=viewer)
        self.hub.register(self.synchronizer)
        self.hub.register(self.projector)
        self._coordinator = IngestionCoordinator(
            uow_factory, self.hub, settings=self.settings
        )
        self.maintenance = MaintenanceScheduler(
            self.rebuild_index, self.rebuild_projections
        )
        self._sources = {source.id: source for source in sources}
        self._periodic: asyncio.Task[None] | None = None

    @classmethod
    def from_engine(
        cls,
        engine: AsyncEngine,
        *,
        settings: CatalogueSettings | None = None,
        viewer: ViewerStateProvider | None = None,
        sources: cabc.Iterable[SourceDescriptor] = (),
    ) -> CatalogueService:
        """Build a service whose units of work use sessions on ``engine``."""
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        return cls(
            lambda: SqlAlchemyUnitOfWork(session_factory),
            settings=settings,
            viewer=viewer,
            sources=sources,
        )

    @property
    def active_sources(self) -> frozenset[str]:
        """Sources whose ingestion or removal is running or queued."""
        return self._coordinator.active_sources

    def start_maintenance(self, interval_seconds: float) -> asyncio.Task[None]:
        """Start the periodic rebuild loop in the background.

        Projections are rebuilt every round. The search index is rebuilt only
        while records whose incremental index update failed are pending, so
        those records are retried at the next scheduled round. Calling this
        again while the loop runs returns the running task.

        Parameters
        ----------
        interval_seconds : float
            Delay between rebuild rounds.
        """
        if self._periodic is not None and not self._periodic.done():
            return self._periodic
        self._periodic = create_task(
            self.maintenance.run_periodic(
                interval_seconds,
                needs_index_rebuild=lambda: bool(self.synchronizer.pending),
            ),
            name="catalogue.maintenance:periodic",
            metadata={"operation_name": "catalogue.maintenance.periodic"},
        )
        log_info(logger, "Periodic maintenance every %ss.", interval_seconds)
        return self._periodic

    def register_source(self, source: SourceDescriptor) -> None:
        """Add or replace a known source descriptor."""
        self._sources[source.id] = source

    async def ingest(
        self, source: SourceDescriptor, payload: IngestionPayload
    ) -> IngestionReport:
        """Ingest one source; see :meth:`IngestionCoordinator.ingest`."""
        self.register_source(source)
        return await self._coordinator.ingest(source, payload)

    async def ingest_many(
        self, jobs: cabc.Sequence[IngestionJob]
    ) -> list[IngestionReport]:
        """Ingest several sources with bounded parallelism, in input order."""
        for job in jobs:
            self.register_source(job.source)
        return await self._coordinator.ingest_many(jobs)

    def search(
        self,
        query: str,
        kind: ContentKind | None = None,
        limit: int = 20,
    ) -> list[SearchHit]:
        """Return ranked hits for a free-text query."""
        return self.synchronizer.search(query, kind=kind, limit=limit)

    async def _priorities(self) -> dict[str, int]:
        async with self._uow_factory() as uow:
            statuses = await uow.sources.list()
        priorities = {status.source_id: status.priority for status in statuses}
        priorities.update(
            {source_id: source.priority for source_id, source in self._sources.items()}
        )
        return priorities

    async def grouped_catalogue(
        self,
        kind: ContentKind,
        source_ids: cabc.Collection[str] | None = None,
    ) -> list[UnifiedItem]:
        """Group records of one kind across sources into unified items.

        Parameters
        ----------
        kind : ContentKind
            Kind of records to group.
        source_ids : collections.abc.Collection[str] | None, optional
            Restrict grouping to these sources; all sources when omitted.

        Returns
        -------
        list[UnifiedItem]
            One item per normalised title, variants ordered best first.
        """
        async with self._uow_factory() as uow:
            records = await uow.records.list_by_kind(kind, source_ids)
        return group_records(
            records,
            priorities=await self._priorities(),
            tables=self.settings.heuristics,
        )

    async def franchises(
        self, kind: ContentKind = ContentKind.MOVIE
    ) -> dict[str, list[UnifiedItem]]:
        """Cluster grouped items of ``kind`` into franchises."""
        items = await self.grouped_catalogue(kind)
        return group_franchises(items, self.settings.heuristics)

    async def rebuild_index(self) -> int:
        """Rebuild the search index and swap it in."""
        return await self.synchronizer.rebuild()

    async def rebuild_projections(self) -> int:
        """Recompute every projected field."""
        return await self.projector.rebuild()

    async def load_index(self) -> int:
        """Warm the in-process index from persisted entries."""
        return await self.synchronizer.load()

    async def remove_source(self, source_id: str) -> int:
        """Delete a source's records, derived rows and status."""
        removed = await self._coordinator.remove_source(source_id)
        self._sources.pop(source_id, None)
        return removed

    async def viewer_state_changed(self, record_ids: cabc.Collection[uuid.UUID]) -> int:
        """Recompute projections affected by favourite or watched changes."""
        return await self.projector.refresh(record_ids)

    async def projected_fields(
        self, source_id: str, owner_key: str
    ) -> dict[str, object] | None:
        """Return the projected fields stored for one owner."""
        return await self.projector.get(source_id, owner_key)

    async def source_statuses(self) -> list[SourceStatus]:
        """List persisted per-source ingestion status."""
        async with self._uow_factory() as uow:
            return await uow.sources.list()

    async def aclose(self) -> None:
        """Stop the periodic loop and any running rebuilds."""
        periodic, self._periodic = self._periodic, None
        if periodic is not None and not periodic.done():
            periodic.cancel()
            await asyncio.wait({periodic})
        await self.maintenance.aclose()
        log_info(logger, "Catalogue service closed.")


__all__ = ("CatalogueService",)
