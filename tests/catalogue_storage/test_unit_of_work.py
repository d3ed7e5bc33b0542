"""Unit tests for catalogue storage unit-of-work behaviour.

Examples
--------
Run the unit-of-work tests:

>>> pytest tests/catalogue_storage/test_unit_of_work.py
"""

from __future__ import annotations

import typing as typ

import pytest
from _catalogue_helpers import make_record

from mediacat.catalogue.errors import WriteError
from mediacat.catalogue.storage import SqlAlchemyUnitOfWork

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

pytestmark = pytest.mark.database


@pytest.mark.asyncio
async def test_uow_rollback_discards_uncommitted_changes(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Rollback discards uncommitted changes."""
    record = make_record("Rollback Test")

    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        await uow.records.insert_many([record])
        await uow.rollback()

    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        result = await uow.records.get(record.id)

    assert result is None, "Expected rollback to discard the uncommitted record."


@pytest.mark.asyncio
async def test_uow_rolls_back_on_exception(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """UoW context manager rolls back on unhandled exception."""
    record = make_record("Exception Test")

    async def _add_and_raise() -> None:
        async with SqlAlchemyUnitOfWork(session_factory) as uow:
            await uow.records.insert_many([record])
            msg = "Simulated failure."
            raise RuntimeError(msg)

    with pytest.raises(RuntimeError):
        await _add_and_raise()

    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        result = await uow.records.get(record.id)

    assert result is None, "Expected exception to trigger rollback."


@pytest.mark.asyncio
async def test_duplicate_identity_raises_write_error(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Constraint violations surface as WriteError, not driver errors."""
    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        await uow.records.insert_many([make_record("Heat")])
        await uow.commit()

    with pytest.raises(WriteError, match="rejected insert"):
        async with SqlAlchemyUnitOfWork(session_factory) as uow:
            await uow.records.insert_many([make_record("Heat")])
            await uow.commit()


@pytest.mark.asyncio
async def test_commit_outside_context_is_a_programming_error(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Committing without entering the unit of work raises RuntimeError."""
    uow = SqlAlchemyUnitOfWork(session_factory)

    with pytest.raises(RuntimeError, match="Session not initialized"):
        await uow.commit()
