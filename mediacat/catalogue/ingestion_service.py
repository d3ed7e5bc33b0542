"""Ingestion coordinator: feed to deduplicated, batched catalogue writes.

One call ingests one source. The coordinator reads the identity keys already
stored for that source, streams drafts from the parser, classifies each draft
against a private :class:`RunLedger`, and flushes staged records in bulk
batches through :class:`MutationHub` so every committed batch carries its
search-index and projection counterparts.

A batch is the unit of atomicity. When a bulk write fails, the batch is
retried once in two halves; a half that still fails is written record by
record so only the offending records are skipped.

Examples
--------
>>> coordinator = IngestionCoordinator(uow_factory, hub, settings=settings)
>>> report = await coordinator.ingest(source, manifest_bytes)
>>> report.summary()
'Imported 480 of 500, 20 skipped (duplicates), 0 failed.'
"""

from __future__ import annotations

import asyncio
import collections
import contextlib
import datetime as dt
import typing as typ
import uuid

from mediacat.asyncio_tasks import create_task
from mediacat.config import CatalogueSettings
from mediacat.logging import get_logger, log_error, log_info, log_warning

from .domain import (
    CanonicalRecord,
    IngestionReport,
    MutationKind,
    RecordMutation,
    ReportError,
    SourceKind,
    SourceStatus,
)
from .errors import (
    CatalogueError,
    ConfigurationError,
    EmptyFeedError,
    FeedIOError,
    FormatError,
    WriteError,
)
from .feed_reader import FeedReader
from .grouping import normalize_title
from .identity import Disposition, RunLedger, fingerprint, identity_key, parent_key
from .ingestion import ALL_KINDS, IngestionRun, ingestion_task_metadata
from .parsers.catalogue_api import (
    CATEGORY_KINDS,
    CatalogueCategory,
    decode_page,
    parse_item,
)
from .parsers.manifest import (
    ManifestParseResult,
    Skipped,
    aparse_manifest,
    parse_manifest,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .domain import ContentKind, RecordDraft, SourceDescriptor
    from .feed_reader import BytePayload
    from .ingestion import IngestionJob, IngestionPayload, StagedRecord
    from .mutations import MutationHub
    from .parsers.catalogue_api import CategoryFetcher
    from .ports import UnitOfWorkFactory

logger = get_logger(__name__)


def _is_async_stream(payload: object) -> bool:
    return hasattr(payload, "__aiter__")


class IngestionCoordinator:
    """Run deduplicated, batched ingestion passes for catalogue sources.

    Parameters
    ----------
    uow_factory : UnitOfWorkFactory
        Opens a fresh unit of work for every batch.
    hub : MutationHub
        Commits batches together with their derived rows.
    settings : CatalogueSettings | None, optional
        Batch size, timeouts, concurrency and heuristic tables.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        hub: MutationHub,
        *,
        settings: CatalogueSettings | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._hub = hub
        self._settings = settings or CatalogueSettings()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: collections.Counter[str] = collections.Counter()

    @property
    def active_sources(self) -> frozenset[str]:
        """Sources with an ingestion or removal running or waiting."""
        return frozenset(self._locks)

    @contextlib.asynccontextmanager
    async def _source_lock(self, source_id: str) -> cabc.AsyncIterator[None]:
        """Hold the source's single-flight lock; drop it once nobody waits."""
        lock = self._locks.setdefault(source_id, asyncio.Lock())
        self._lock_users[source_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[source_id] -= 1
            if not self._lock_users[source_id]:
                del self._lock_users[source_id]
                del self._locks[source_id]

    async def ingest(
        self, source: SourceDescriptor, payload: IngestionPayload
    ) -> IngestionReport:
        """Ingest one source and report what happened.

        Concurrent calls for the same source wait for each other; calls for
        different sources proceed independently.

        Parameters
        ----------
        source : SourceDescriptor
            The source to ingest.
        payload : IngestionPayload
            Manifest bytes, binary file, path or async chunk stream for a
            manifest source; a :class:`CategoryFetcher` for an API source.

        Returns
        -------
        IngestionReport
            Counts and messages for the attempt. Source-level failures are
            reported through ``error`` rather than raised.
        """
        report = IngestionReport(
            source.id, message_limit=self._settings.report_message_limit
        )
        async with self._source_lock(source.id):
            log_info(logger, "Ingesting source %s (%s).", source.id, source.kind)
            run: IngestionRun | None = None
            try:
                source.validate()
                async with self._uow_factory() as uow:
                    existing = await uow.records.existing_identities(source.id)
                run = IngestionRun(source, RunLedger(source.id, existing), report)
                await self._run(run, payload)
            except CatalogueError as exc:
                report.error = ReportError(exc.code, str(exc), exc.retryable)
                log_error(logger, "Ingestion of %s failed: %s", source.id, exc)
            await self._record_status(source, report, run)
        log_info(logger, "%s", report.summary())
        return report

    async def ingest_many(
        self, jobs: cabc.Sequence[IngestionJob]
    ) -> list[IngestionReport]:
        """Ingest several sources with bounded parallelism.

        Reports are returned in the order of ``jobs``.
        """
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_sources)

        async def bounded(job: IngestionJob) -> IngestionReport:
            async with semaphore:
                return await self.ingest(job.source, job.payload)

        tasks = [
            create_task(
                bounded(job),
                name=f"catalogue.ingest:{job.source.id}",
                metadata=ingestion_task_metadata(job.source, position),
            )
            for position, job in enumerate(jobs, start=1)
        ]
        return list(await asyncio.gather(*tasks))

    async def _run(self, run: IngestionRun, payload: IngestionPayload) -> None:
        if run.source.kind is SourceKind.MANIFEST:
            await self._ingest_manifest(run, payload)
            swept_kinds: frozenset[ContentKind] = ALL_KINDS
        else:
            if not hasattr(payload, "fetch"):
                msg = f"API source {run.source.id!r} needs a category fetcher."
                raise ConfigurationError(msg, source_id=run.source.id)
            swept_kinds = await self._ingest_api(
                run, typ.cast("CategoryFetcher", payload)
            )
        await self._flush(run)
        if self._settings.prune_stale and swept_kinds:
            await self._sweep(run, swept_kinds)

    async def _ingest_manifest(
        self, run: IngestionRun, payload: IngestionPayload
    ) -> None:
        settings = self._settings
        reader = FeedReader(
            chunk_size=settings.chunk_size,
            chunked_threshold=settings.chunked_threshold,
            source_id=run.source.id,
        )
        result = ManifestParseResult()
        if _is_async_stream(payload):
            stream = typ.cast("cabc.AsyncIterable[bytes]", payload)
            outcomes = aparse_manifest(
                reader.alines(stream, timeout=settings.fetch_timeout_seconds),
                source_id=run.source.id,
                tables=settings.heuristics,
                result=result,
            )
            async for outcome in outcomes:
                await self._accept(run, outcome)
        else:
            for outcome in parse_manifest(
                reader.lines(typ.cast("BytePayload", payload)),
                source_id=run.source.id,
                tables=settings.heuristics,
                result=result,
            ):
                await self._accept(run, outcome)
        run.epg_url = result.epg_url
        if reader.decode_failures:
            run.report.skipped_invalid += reader.decode_failures
            run.report.add_message(
                f"{reader.decode_failures} undecodable line(s) skipped."
            )

    async def _category_items(
        self,
        run: IngestionRun,
        fetcher: CategoryFetcher,
        category: CatalogueCategory,
    ) -> cabc.AsyncIterator[object]:
        timeout = self._settings.fetch_timeout_seconds
        pages = aiter(fetcher.fetch(category))
        while True:
            try:
                async with asyncio.timeout(timeout):
                    page = await anext(pages)
            except StopAsyncIteration:
                return
            except TimeoutError as exc:
                msg = f"Timed out after {timeout}s fetching {category} catalogue."
                raise FeedIOError(msg, source_id=run.source.id) from exc
            except OSError as exc:
                msg = f"Failed to fetch {category} catalogue: {exc}"
                raise FeedIOError(msg, source_id=run.source.id) from exc
            for item in decode_page(page, category=category, source_id=run.source.id):
                yield item

    async def _ingest_api(
        self, run: IngestionRun, fetcher: CategoryFetcher
    ) -> frozenset[ContentKind]:
        succeeded: set[ContentKind] = set()
        failed = 0
        position = 0
        for category in CatalogueCategory:
            try:
                async for item in self._category_items(run, fetcher, category):
                    position += 1
                    parsed = parse_item(
                        item,
                        category=category,
                        source=run.source,
                        tables=self._settings.heuristics,
                        position=position,
                    )
                    if isinstance(parsed, Skipped):
                        await self._accept(run, parsed)
                        continue
                    for draft in parsed:
                        await self._accept(run, draft)
            except FormatError as exc:
                failed += 1
                run.report.add_message(f"Category {category} skipped: {exc}")
                log_warning(
                    logger,
                    "Category %s of %s skipped: %s",
                    category,
                    run.source.id,
                    exc,
                )
                continue
            succeeded.update(CATEGORY_KINDS[category])

        if failed == len(CatalogueCategory):
            msg = f"Every catalogue category of {run.source.id!r} was malformed."
            raise FormatError(msg, source_id=run.source.id)
        if run.drafts == 0 and failed == 0:
            msg = f"Catalogue API for {run.source.id!r} returned no items."
            raise EmptyFeedError(msg, source_id=run.source.id)
        return frozenset(succeeded)

    def _build_record(
        self,
        draft: RecordDraft,
        *,
        key: str,
        digest: str,
        record_id: uuid.UUID,
        position: int,
    ) -> CanonicalRecord:
        now = dt.datetime.now(dt.UTC)
        return CanonicalRecord(
            id=record_id,
            source_id=draft.source_id,
            identity_key=key,
            title=draft.title,
            normalized_title=normalize_title(draft.title, self._settings.heuristics),
            kind=draft.kind,
            stream_url=draft.stream_url,
            logo_url=draft.logo_url,
            category=draft.category,
            summary=draft.summary,
            parent_key=parent_key(draft),
            season_number=draft.season_number,
            episode_number=draft.episode_number,
            attributes=dict(draft.attributes),
            fingerprint=digest,
            position=position,
            created_at=now,
            updated_at=now,
        )

    async def _accept(self, run: IngestionRun, outcome: RecordDraft | Skipped) -> None:
        report = run.report
        if isinstance(outcome, Skipped):
            report.skipped_invalid += 1
            report.add_message(f"Entry {outcome.line_number}: {outcome.reason}")
            log_warning(
                logger,
                "Skipped entry %s of %s: %s",
                outcome.line_number,
                run.source.id,
                outcome.reason,
            )
            return

        run.drafts += 1
        key = identity_key(outcome)
        digest = fingerprint(outcome)
        disposition = run.ledger.admit(key, digest)
        match disposition:
            case Disposition.DUPLICATE:
                report.skipped_duplicates += 1
                report.add_message(f"Duplicate {key!r} skipped.")
            case Disposition.UNCHANGED:
                report.unchanged += 1
            case Disposition.INSERT | Disposition.UPDATE:
                record_id = run.ledger.record_id(key) or uuid.uuid4()
                run.stage(
                    self._build_record(
                        outcome,
                        key=key,
                        digest=digest,
                        record_id=record_id,
                        position=run.drafts,
                    ),
                    disposition,
                )
                if len(run.staged) >= self._settings.batch_size:
                    await self._flush(run)

    async def _commit(self, staged: cabc.Sequence[StagedRecord]) -> None:
        inserts = [s.record for s in staged if s.disposition is Disposition.INSERT]
        updates = [s.record for s in staged if s.disposition is Disposition.UPDATE]
        async with self._hub.shared(), self._uow_factory() as uow:
            await uow.records.insert_many(inserts)
            await uow.records.update_many(updates)
            await self._hub.commit(uow, [item.mutation() for item in staged])

    def _fail(self, run: IngestionRun, item: StagedRecord, exc: WriteError) -> None:
        run.report.failed_records += 1
        run.report.add_message(f"Write failed for {item.record.identity_key!r}.")
        log_error(
            logger,
            "Record %s of %s could not be written: %s",
            item.record.identity_key,
            run.source.id,
            exc,
        )

    async def _write_isolated(
        self, run: IngestionRun, staged: list[StagedRecord]
    ) -> None:
        for item in staged:
            try:
                await self._commit([item])
            except WriteError as exc:
                self._fail(run, item, exc)
            else:
                run.count_written([item])

    async def _flush(self, run: IngestionRun) -> None:
        staged = run.drain()
        if not staged:
            return
        try:
            await self._commit(staged)
        except WriteError as exc:
            log_warning(
                logger,
                "Batch of %s record(s) for %s failed, retrying at half size: %s",
                len(staged),
                run.source.id,
                exc,
            )
        else:
            run.count_written(staged)
            log_info(
                logger,
                "Committed batch of %s record(s) for %s.",
                len(staged),
                run.source.id,
            )
            return

        middle = (len(staged) + 1) // 2
        for half in (staged[:middle], staged[middle:]):
            if not half:
                continue
            try:
                await self._commit(half)
            except WriteError as exc:
                if len(half) == 1:
                    self._fail(run, half[0], exc)
                    continue
                log_warning(
                    logger,
                    "Half batch of %s record(s) for %s failed, isolating records.",
                    len(half),
                    run.source.id,
                )
                await self._write_isolated(run, half)
            else:
                run.count_written(half)

    async def _delete_records(self, record_ids: cabc.Sequence[uuid.UUID]) -> int:
        removed = 0
        batch_size = self._settings.batch_size
        for start in range(0, len(record_ids), batch_size):
            chunk = record_ids[start : start + batch_size]
            async with self._hub.shared(), self._uow_factory() as uow:
                records = await uow.records.get_many(chunk)
                await uow.records.delete_many([record.id for record in records])
                await self._hub.commit(
                    uow,
                    [RecordMutation(MutationKind.DELETE, record) for record in records],
                )
            removed += len(records)
        return removed

    async def _sweep(self, run: IngestionRun, kinds: frozenset[ContentKind]) -> None:
        stale = run.ledger.stale_ids(kinds)
        run.report.removed += await self._delete_records(stale)
        if stale:
            log_info(
                logger,
                "Removed %s stale record(s) from %s.",
                run.report.removed,
                run.source.id,
            )

    async def remove_source(self, source_id: str) -> int:
        """Delete every record of a source together with its status.

        Records are deleted in batches through the mutation hub, so index
        entries and projections follow them out.

        Returns
        -------
        int
            Number of records removed.
        """
        async with self._source_lock(source_id):
            async with self._uow_factory() as uow:
                record_ids = await uow.records.ids_for_source(source_id)
            removed = await self._delete_records(record_ids)
            async with self._hub.shared(), self._uow_factory() as uow:
                await uow.projections.delete_for_source(source_id)
                await uow.sources.delete(source_id)
                await uow.commit()
        log_info(logger, "Removed source %s (%s record(s)).", source_id, removed)
        return removed

    async def _record_status(
        self,
        source: SourceDescriptor,
        report: IngestionReport,
        run: IngestionRun | None,
    ) -> None:
        try:
            async with self._uow_factory() as uow:
                previous = await uow.sources.get(source.id)
                last_ingested_at = dt.datetime.now(dt.UTC) if report.succeeded else None
                epg_url = None if run is None else run.epg_url
                if previous is not None:
                    last_ingested_at = last_ingested_at or previous.last_ingested_at
                    epg_url = epg_url or previous.epg_url
                status = SourceStatus(
                    source_id=source.id,
                    kind=source.kind,
                    priority=source.priority,
                    last_ingested_at=last_ingested_at,
                    last_error=None if report.error is None else report.error.message,
                    record_count=await uow.records.count_by_source(source.id),
                    epg_url=epg_url,
                )
                await uow.sources.upsert(status)
                await uow.commit()
        except WriteError as exc:
            report.add_message(f"Source status not saved: {exc}")
            log_error(logger, "Could not save status for %s: %s", source.id, exc)


__all__ = ("IngestionCoordinator",)
