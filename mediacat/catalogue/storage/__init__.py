"""SQLAlchemy persistence adapters for the media catalogue.

This package provides the models, repositories and unit-of-work used by the
catalogue services, keeping persistence out of the domain layer.

Examples
--------
>>> async with SqlAlchemyUnitOfWork(session_factory) as uow:
...     record = await uow.records.get(record_id)
"""

from .migration_check import detect_schema_drift
from .models import (
    Base,
    CatalogueRecordRow,
    IndexEntryRow,
    ProjectionRow,
    SourceStatusRow,
)
from .repositories import (
    SqlAlchemyCatalogueRecordRepository,
    SqlAlchemyIndexEntryRepository,
    SqlAlchemyProjectionRepository,
    SqlAlchemySourceStatusRepository,
)
from .uow import SqlAlchemyUnitOfWork

__all__ = (
    "Base",
    "CatalogueRecordRow",
    "IndexEntryRow",
    "ProjectionRow",
    "SourceStatusRow",
    "SqlAlchemyCatalogueRecordRepository",
    "SqlAlchemyIndexEntryRepository",
    "SqlAlchemyProjectionRepository",
    "SqlAlchemySourceStatusRepository",
    "SqlAlchemyUnitOfWork",
    "detect_schema_drift",
)
