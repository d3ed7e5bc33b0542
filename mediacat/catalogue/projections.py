"""Read-model projector for precomputed catalogue fields.

Projected fields answer hot-path questions ("does this series have an
unwatched episode?") without walking its children. Each commit recomputes
only the owners touched by its mutations: the record itself and, for an
episode, its season and series. :meth:`Projector.rebuild` recomputes every
owner from scratch and is the recovery path when incremental state is in
doubt.

Owner keys
----------
* series: the series identity key, e.g. ``series:the wire``
* season: the series key plus ``#s{N}``, e.g. ``series:the wire#s2``
* movie and channel: the record's identity key
"""

from __future__ import annotations

import asyncio
import datetime as dt
import enum
import typing as typ

from mediacat.catalogue.domain import ContentKind, MutationKind, ProjectedFields
from mediacat.catalogue.errors import WriteError
from mediacat.catalogue.identity import season_key
from mediacat.catalogue.ports import NoViewerState
from mediacat.logging import get_logger, log_debug, log_error, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import uuid

    from mediacat.catalogue.domain import CanonicalRecord, RecordMutation
    from mediacat.catalogue.mutations import MutationHub
    from mediacat.catalogue.ports import (
        CatalogueUnitOfWork,
        UnitOfWorkFactory,
        ViewerStateProvider,
    )

logger = get_logger(__name__)

type OwnerId = tuple[str, str]
type FieldMap = dict[str, object]


class OwnerLevel(enum.StrEnum):
    """Level of a projection owner in the series hierarchy."""

    SERIES = "series"
    SEASON = "season"
    ITEM = "item"


class Owner(typ.NamedTuple):
    """A projection owner derived from a record."""

    source_id: str
    key: str
    level: OwnerLevel
    series_key: str | None = None
    season_number: int | None = None

    @property
    def id(self) -> OwnerId:
        return (self.source_id, self.key)


def owners_of(record: CanonicalRecord) -> list[Owner]:
    """Return the owners whose fields depend on ``record``.

    Examples
    --------
    An episode invalidates its season and its series:

    >>> [owner.key for owner in owners_of(episode)]
    ['series:the wire', 'series:the wire#s2']
    """
    if record.kind is ContentKind.EPISODE:
        if record.parent_key is None:
            return []
        owners = [
            Owner(
                record.source_id,
                record.parent_key,
                OwnerLevel.SERIES,
                record.parent_key,
            )
        ]
        if record.season_number is not None:
            owners.append(
                Owner(
                    record.source_id,
                    season_key(record.parent_key, record.season_number),
                    OwnerLevel.SEASON,
                    record.parent_key,
                    record.season_number,
                )
            )
        return owners
    if record.kind is ContentKind.SERIES:
        return [
            Owner(
                record.source_id,
                record.identity_key,
                OwnerLevel.SERIES,
                record.identity_key,
            )
        ]
    return [Owner(record.source_id, record.identity_key, OwnerLevel.ITEM)]


def _unwatched(
    episodes: cabc.Sequence[CanonicalRecord], viewer: ViewerStateProvider
) -> int:
    return sum(1 for episode in episodes if not viewer.is_watched(episode.id))


def project_owner(
    owner: Owner,
    *,
    record: CanonicalRecord | None,
    episodes: cabc.Sequence[CanonicalRecord],
    viewer: ViewerStateProvider,
) -> FieldMap | None:
    """Compute the fields for one owner, or None when it no longer exists.

    Parameters
    ----------
    owner : Owner
        The owner being projected.
    record : CanonicalRecord | None
        The owner's own record; always None for seasons, and may be None for
        a series known only through its episodes.
    episodes : collections.abc.Sequence[CanonicalRecord]
        Every episode of the owner's series.
    viewer : ViewerStateProvider
        Source of favourite and watched flags.
    """
    match owner.level:
        case OwnerLevel.ITEM:
            if record is None:
                return None
            return {"is_favourite": viewer.is_favourite(record.id)}
        case OwnerLevel.SEASON:
            in_season = [
                episode
                for episode in episodes
                if episode.season_number == owner.season_number
            ]
            if not in_season:
                return None
            return {
                "episode_count": len(in_season),
                "unwatched_episode_count": _unwatched(in_season, viewer),
            }
        case OwnerLevel.SERIES:
            if record is None and not episodes:
                return None
            unwatched = _unwatched(episodes, viewer)
            seasons = {
                episode.season_number
                for episode in episodes
                if episode.season_number is not None
            }
            return {
                "season_count": len(seasons),
                "episode_count": len(episodes),
                "unwatched_episode_count": unwatched,
                "has_unwatched_episode": unwatched > 0,
                "is_favourite": record is not None
                and viewer.is_favourite(record.id),
            }


def compute_live(
    records: cabc.Iterable[CanonicalRecord],
    viewer: ViewerStateProvider | None = None,
) -> dict[OwnerId, FieldMap]:
    """Compute every projection by traversing ``records`` directly.

    This is what a full rebuild persists, and what any incrementally
    maintained projection must equal.
    """
    viewer = viewer if viewer is not None else NoViewerState()
    owners: dict[OwnerId, Owner] = {}
    own_records: dict[OwnerId, CanonicalRecord] = {}
    episodes: dict[OwnerId, list[CanonicalRecord]] = {}
    for record in records:
        for owner in owners_of(record):
            owners.setdefault(owner.id, owner)
        if record.kind is ContentKind.EPISODE:
            if record.parent_key is not None:
                episodes.setdefault((record.source_id, record.parent_key), []).append(
                    record
                )
        else:
            own_records[(record.source_id, record.identity_key)] = record

    projected: dict[OwnerId, FieldMap] = {}
    for owner_id, owner in owners.items():
        own = None if owner.level is OwnerLevel.SEASON else own_records.get(owner_id)
        fields = project_owner(
            owner,
            record=own,
            episodes=(
                episodes.get((owner.source_id, owner.series_key), [])
                if owner.series_key is not None
                else []
            ),
            viewer=viewer,
        )
        if fields is not None:
            projected[owner_id] = fields
    return projected


class _Recomputation(typ.NamedTuple):
    upserts: list[ProjectedFields]
    deletions: list[Owner]


class Projector:
    """Mutation listener maintaining projected fields.

    Parameters
    ----------
    uow_factory : UnitOfWorkFactory
        Opens units of work for refreshes and rebuilds.
    hub : MutationHub
        Hub whose commit gate and recorder serialise rebuild swaps.
    viewer : ViewerStateProvider | None, optional
        Favourites and watch-history collaborator; defaults to no state.
    page_size : int, optional
        Records read per page during a full rebuild.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        hub: MutationHub,
        *,
        viewer: ViewerStateProvider | None = None,
        page_size: int = 1000,
    ) -> None:
        self._uow_factory = uow_factory
        self._hub = hub
        self._viewer = viewer if viewer is not None else NoViewerState()
        self._page_size = page_size
        self._rebuild_lock = asyncio.Lock()
        self._touched: dict[OwnerId, Owner] | None = None

    async def _recompute(
        self,
        uow: CatalogueUnitOfWork,
        owners: cabc.Iterable[Owner],
        known: cabc.Mapping[OwnerId, CanonicalRecord | None] | None = None,
    ) -> _Recomputation:
        known = known or {}
        children: dict[OwnerId, list[CanonicalRecord]] = {}
        now = dt.datetime.now(dt.UTC)
        result = _Recomputation([], [])
        for owner in owners:
            record = None
            if owner.level is not OwnerLevel.SEASON:
                if owner.id in known:
                    record = known[owner.id]
                else:
                    record = await uow.records.get_by_key(owner.source_id, owner.key)
            episodes: list[CanonicalRecord] = []
            if owner.series_key is not None:
                series_id = (owner.source_id, owner.series_key)
                if series_id not in children:
                    children[series_id] = await uow.records.list_children(
                        owner.source_id, owner.series_key
                    )
                episodes = children[series_id]
            fields = project_owner(
                owner, record=record, episodes=episodes, viewer=self._viewer
            )
            if fields is None:
                result.deletions.append(owner)
            else:
                result.upserts.append(
                    ProjectedFields(owner.source_id, owner.key, fields, now)
                )
        return result

    @staticmethod
    async def _persist(uow: CatalogueUnitOfWork, change: _Recomputation) -> None:
        keys_by_source: dict[str, list[str]] = {}
        for owner in change.deletions:
            keys_by_source.setdefault(owner.source_id, []).append(owner.key)
        for source_id, owner_keys in keys_by_source.items():
            await uow.projections.delete_many(source_id, owner_keys)
        await uow.projections.upsert_many(change.upserts)

    async def before_commit(
        self,
        uow: CatalogueUnitOfWork,
        mutations: cabc.Sequence[RecordMutation],
    ) -> None:
        """Recompute the owners touched by ``mutations`` in the open transaction."""
        owners: dict[OwnerId, Owner] = {}
        known: dict[OwnerId, CanonicalRecord | None] = {}
        for mutation in mutations:
            record = mutation.record
            for owner in owners_of(record):
                owners[owner.id] = owner
            if record.kind is not ContentKind.EPISODE:
                known[(record.source_id, record.identity_key)] = (
                    None if mutation.kind is MutationKind.DELETE else record
                )
        change = await self._recompute(uow, owners.values(), known)
        await self._persist(uow, change)

    def after_commit(self, mutations: cabc.Sequence[RecordMutation]) -> None:
        """Projected fields live only in the store; nothing to publish."""
        log_debug(logger, "Projections committed for %s mutation(s).", len(mutations))

    async def get(self, source_id: str, owner_key: str) -> FieldMap | None:
        """Return the projected fields for one owner."""
        async with self._uow_factory() as uow:
            projection = await uow.projections.get(source_id, owner_key)
        return None if projection is None else dict(projection.fields)

    async def refresh(self, record_ids: cabc.Collection[uuid.UUID]) -> int:
        """Recompute the parent chains of records whose viewer state changed.

        Returns
        -------
        int
            Number of owners recomputed.
        """
        async with self._hub.shared():
            async with self._uow_factory() as uow:
                records = await uow.records.get_many(record_ids)
                owners = {
                    owner.id: owner for record in records for owner in owners_of(record)
                }
                change = await self._recompute(uow, owners.values())
                await self._persist(uow, change)
                await uow.commit()
            if self._touched is not None:
                self._touched.update(owners)
        log_debug(logger, "Refreshed %s projection owner(s).", len(owners))
        return len(owners)

    async def _compute_all(self) -> dict[OwnerId, FieldMap]:
        records: list[CanonicalRecord] = []
        async with self._uow_factory() as uow:
            async for page in uow.records.iter_pages(self._page_size):
                records.extend(page)
        return compute_live(records, self._viewer)

    async def rebuild(self) -> int:
        """Recompute and replace every projection.

        Returns
        -------
        int
            Number of projections stored.

        Raises
        ------
        WriteError
            If the projections cannot be read or replaced; the previous
            projections stay in place.
        """
        async with self._rebuild_lock:
            log_info(logger, "Rebuilding projections.")
            with self._hub.recording() as recorder:
                self._touched = {}
                try:
                    projected = await self._compute_all()
                    async with self._hub.exclusive():
                        owners = dict(self._touched)
                        for mutation in recorder.drain():
                            owners.update(
                                (owner.id, owner)
                                for owner in owners_of(mutation.record)
                            )
                        async with self._uow_factory() as uow:
                            change = await self._recompute(uow, owners.values())
                            for owner in change.deletions:
                                projected.pop(owner.id, None)
                            projected.update(
                                ((p.source_id, p.owner_key), dict(p.fields))
                                for p in change.upserts
                            )
                            now = dt.datetime.now(dt.UTC)
                            await uow.projections.replace_all(
                                [
                                    ProjectedFields(source_id, key, fields, now)
                                    for (source_id, key), fields in projected.items()
                                ]
                            )
                            await uow.commit()
                except WriteError as exc:
                    log_error(logger, "Projection rebuild failed: %s", exc)
                    raise
                finally:
                    self._touched = None
        log_info(logger, "Rebuilt %s projection(s).", len(projected))
        return len(projected)


__all__ = (
    "Owner",
    "OwnerLevel",
    "Projector",
    "compute_live",
    "owners_of",
    "project_owner",
)
