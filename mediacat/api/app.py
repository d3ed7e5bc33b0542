"""Falcon API adapter for catalogue search, grouping and maintenance."""

from __future__ import annotations

import typing as typ

import falcon
from falcon import asgi

from mediacat.catalogue.maintenance import MaintenanceJob
from mediacat.logging import get_logger, log_info

from .helpers import (
    parse_kind,
    parse_limit,
    parse_optional_kind,
    parse_source_ids,
    require_query,
)
from .serializers import (
    serialize_search_hit,
    serialize_source_status,
    serialize_unified_item,
)

if typ.TYPE_CHECKING:
    from mediacat.catalogue.services import CatalogueService

logger = get_logger(__name__)


class _ServiceResource:
    """Base resource holding the catalogue service."""

    def __init__(self, service: CatalogueService) -> None:
        self._service = service


class SearchResource(_ServiceResource):
    """Free-text search over the in-process index."""

    async def on_get(self, req: falcon.Request, resp: falcon.Response) -> None:
        """Return ranked hits for ``q``, optionally filtered by ``kind``.

        Raises
        ------
        falcon.HTTPBadRequest
            Raised for an empty query, an unknown kind or an invalid limit.
        """
        query = require_query(req.get_param("q"))
        kind = parse_optional_kind(req.get_param("kind"), "kind")
        limit = parse_limit(req.get_param("limit"))
        hits = self._service.search(query, kind=kind, limit=limit)
        resp.media = {"items": [serialize_search_hit(hit) for hit in hits]}
        resp.status = falcon.HTTP_200


class CatalogueResource(_ServiceResource):
    """Grouped catalogue listing for one content kind."""

    async def on_get(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        kind: str,
    ) -> None:
        """List unified items; repeat ``source`` to restrict the sources."""
        parsed_kind = parse_kind(kind, "kind")
        source_ids = parse_source_ids(req.get_param_as_list("source"))
        items = await self._service.grouped_catalogue(parsed_kind, source_ids)
        resp.media = {"items": [serialize_unified_item(item) for item in items]}
        resp.status = falcon.HTTP_200


class FranchisesResource(_ServiceResource):
    """Franchise clusters over grouped items of one kind."""

    async def on_get(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        kind: str,
    ) -> None:
        """Return clusters keyed by franchise."""
        del req
        clusters = await self._service.franchises(parse_kind(kind, "kind"))
        resp.media = {
            "items": [
                {
                    "franchise": key,
                    "items": [serialize_unified_item(item) for item in members],
                }
                for key, members in sorted(clusters.items())
            ]
        }
        resp.status = falcon.HTTP_200


class SourcesResource(_ServiceResource):
    """Persisted per-source ingestion status."""

    async def on_get(self, req: falcon.Request, resp: falcon.Response) -> None:
        """List source statuses ordered by priority."""
        del req
        statuses = await self._service.source_statuses()
        resp.media = {"items": [serialize_source_status(s) for s in statuses]}
        resp.status = falcon.HTTP_200


class SourceResource(_ServiceResource):
    """Single-source endpoint."""

    async def on_delete(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        source_id: str,
    ) -> None:
        """Remove a source and everything derived from it."""
        del req
        removed = await self._service.remove_source(source_id)
        resp.media = {"source_id": source_id, "removed": removed}
        resp.status = falcon.HTTP_200


class ProjectionResource(_ServiceResource):
    """Projected fields stored for one owner."""

    async def on_get(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        source_id: str,
        owner_key: str,
    ) -> None:
        """Return the projected fields or 404 when none are stored."""
        del req
        fields = await self._service.projected_fields(source_id, owner_key)
        if fields is None:
            msg = f"No projected fields for {source_id}/{owner_key}."
            raise falcon.HTTPNotFound(description=msg)
        resp.media = {"source_id": source_id, "owner_key": owner_key, **fields}
        resp.status = falcon.HTTP_200


class MaintenanceResource(_ServiceResource):
    """Start background rebuilds."""

    async def on_post(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        job: str,
    ) -> None:
        """Schedule ``job`` and return the background task name.

        Raises
        ------
        falcon.HTTPNotFound
            Raised when ``job`` is not a known maintenance job.
        """
        del req
        try:
            parsed_job = MaintenanceJob(job)
        except ValueError as exc:
            msg = f"Unknown maintenance job: {job!r}."
            raise falcon.HTTPNotFound(description=msg) from exc
        task = self._service.maintenance.schedule(parsed_job)
        log_info(logger, "Maintenance %s requested over HTTP.", parsed_job)
        resp.media = {"job": parsed_job.value, "task": task.get_name()}
        resp.status = falcon.HTTP_202


def create_app(service: CatalogueService) -> asgi.App:
    """Build and return the Falcon ASGI application for the catalogue."""
    app = asgi.App()

    app.add_route("/search", SearchResource(service))
    app.add_route("/catalogue/{kind}", CatalogueResource(service))
    app.add_route("/catalogue/{kind}/franchises", FranchisesResource(service))
    app.add_route("/sources", SourcesResource(service))
    app.add_route("/sources/{source_id}", SourceResource(service))
    app.add_route(
        "/projections/{source_id}/{owner_key}",
        ProjectionResource(service),
    )
    app.add_route("/maintenance/{job}", MaintenanceResource(service))

    return app
