"""Guard against catalogue models drifting away from the migrations.

``mediacat-check-migrations`` migrates a throwaway SQLite file to the latest
revision and asks Alembic's autogenerate comparison what it would still need
to emit for :data:`Base.metadata`. Anything it finds means a model changed
without a migration, and the command exits 1.

Examples
--------
>>> python -m mediacat.catalogue.storage.migration_check
"""

from __future__ import annotations

import asyncio
import pathlib
import sys
import tempfile
import typing as typ

from alembic.autogenerate import compare_metadata
from alembic.migration import MigrationContext
from sqlalchemy.ext.asyncio import create_async_engine

from mediacat.catalogue.storage.alembic_helpers import (
    apply_migrations,
    current_revision,
)
from mediacat.catalogue.storage.models import Base
from mediacat.logging import (
    configure_from_environment,
    get_logger,
    log_error,
    log_info,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.engine import Connection
    from sqlalchemy.ext.asyncio import AsyncEngine

type SchemaDiff = tuple[object, ...]

_logger = get_logger(__name__)


def _diffs(connection: Connection) -> list[SchemaDiff]:
    context = MigrationContext.configure(connection)
    return typ.cast("list[SchemaDiff]", compare_metadata(context, Base.metadata))


async def detect_schema_drift(engine: AsyncEngine) -> list[SchemaDiff]:
    """Return what autogenerate would still emit for the migrated ``engine``.

    An empty list means the models and the applied migrations agree.
    """
    async with engine.connect() as connection:
        return await connection.run_sync(_diffs)


def describe_drift(diffs: cabc.Iterable[SchemaDiff | list[SchemaDiff]]) -> list[str]:
    """Render autogenerate diffs as one readable line each.

    Column modifications arrive as nested lists of tuples and are flattened.

    Examples
    --------
    >>> describe_drift([("add_table", table)])
    ['add_table _test_drift_table']
    """
    lines: list[str] = []
    for diff in diffs:
        if isinstance(diff, list):
            lines.extend(describe_drift(diff))
            continue
        operation, *details = diff
        subject = next(
            (getattr(item, "name", None) for item in details if hasattr(item, "name")),
            None,
        )
        lines.append(f"{operation} {subject}" if subject else str(diff))
    return lines


async def check_migrations_cli() -> int:
    """Migrate an ephemeral database and report drift; return the exit code."""
    with tempfile.TemporaryDirectory(prefix="mediacat-migration-check-") as work:
        database = pathlib.Path(work) / "drift.sqlite3"
        engine = create_async_engine(f"sqlite+aiosqlite:///{database}")
        try:
            await apply_migrations(engine)
            revision = await current_revision(engine)
            diffs = await detect_schema_drift(engine)
        finally:
            await engine.dispose()

    if not diffs:
        log_info(_logger, "Models match migrations at revision %s.", revision)
        return 0
    log_error(
        _logger,
        "Models drifted from revision %s; add a migration for:",
        revision,
    )
    for line in describe_drift(diffs):
        log_error(_logger, "  %s", line)
    return 1


def main() -> None:
    """Console entrypoint for ``mediacat-check-migrations``."""
    configure_from_environment()
    sys.exit(asyncio.run(check_migrations_cli()))


if __name__ == "__main__":
    main()
