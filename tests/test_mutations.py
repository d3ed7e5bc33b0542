"""Tests for the mutation hub and its commit gate."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from _catalogue_helpers import make_record

from mediacat.catalogue.domain import MutationKind, RecordMutation
from mediacat.catalogue.errors import WriteError
from mediacat.catalogue.mutations import MutationHub

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from mediacat.catalogue.ports import CatalogueUnitOfWork


class _FakeUnitOfWork:
    """Unit-of-work double recording commits into a shared event log."""

    def __init__(self, events: list[str], *, fail: bool = False) -> None:
        self._events = events
        self._fail = fail

    async def commit(self) -> None:
        await asyncio.sleep(0)
        if self._fail:
            msg = "commit refused"
            raise WriteError(msg)
        self._events.append("commit")


class _Listener:
    """Listener double recording hook order."""

    def __init__(self, name: str, events: list[str]) -> None:
        self._name = name
        self._events = events
        self.applied: list[RecordMutation] = []

    async def before_commit(
        self,
        uow: CatalogueUnitOfWork,
        mutations: cabc.Sequence[RecordMutation],
    ) -> None:
        _ = uow
        self._events.append(f"{self._name}.before:{len(mutations)}")

    def after_commit(self, mutations: cabc.Sequence[RecordMutation]) -> None:
        self._events.append(f"{self._name}.after")
        self.applied.extend(mutations)


def _uow(events: list[str], *, fail: bool = False) -> CatalogueUnitOfWork:
    return typ.cast("CatalogueUnitOfWork", _FakeUnitOfWork(events, fail=fail))


def _insert(title: str) -> RecordMutation:
    return RecordMutation(MutationKind.INSERT, make_record(title))


@pytest.mark.asyncio
async def test_commit_runs_hooks_around_the_commit_in_order() -> None:
    """Before-hooks run before the commit, after-hooks after it."""
    events: list[str] = []
    first = _Listener("index", events)
    hub = MutationHub([first])
    hub.register(_Listener("projections", events))

    await hub.commit(_uow(events), [_insert("Heat")])

    assert events == [
        "index.before:1",
        "projections.before:1",
        "commit",
        "index.after",
        "projections.after",
    ], f"unexpected hook order: {events!r}"
    assert [m.record.title for m in first.applied] == ["Heat"]


@pytest.mark.asyncio
async def test_failed_commit_leaves_listener_state_untouched() -> None:
    """A failing commit propagates and skips after-commit hooks."""
    events: list[str] = []
    listener = _Listener("index", events)
    hub = MutationHub([listener])

    with pytest.raises(WriteError):
        await hub.commit(_uow(events, fail=True), [_insert("Heat")])

    assert listener.applied == [], "after_commit must not run on failure"


@pytest.mark.asyncio
async def test_recording_captures_only_while_attached() -> None:
    """Recorders see commits made inside their context only."""
    events: list[str] = []
    hub = MutationHub()

    with hub.recording() as recorder:
        await hub.commit(_uow(events), [_insert("Heat")])
        drained = recorder.drain()
        await hub.commit(_uow(events), [_insert("Ronin")])
    await hub.commit(_uow(events), [_insert("Thief")])

    assert [m.record.title for m in drained] == ["Heat"]
    assert [m.record.title for m in recorder.mutations] == ["Ronin"]


@pytest.mark.asyncio
async def test_exclusive_hold_blocks_commits_until_released() -> None:
    """Commits wait while a swap holds the gate exclusively."""
    events: list[str] = []
    hub = MutationHub()

    async with hub.exclusive():
        pending = asyncio.ensure_future(hub.commit(_uow(events), [_insert("Heat")]))
        await asyncio.sleep(0.01)
        assert events == [], "commit must wait for the exclusive hold"
    await pending

    assert events == ["commit"]


@pytest.mark.asyncio
async def test_exclusive_waits_for_shared_units_of_work() -> None:
    """A swap waits for open write units of work, which may commit inside."""
    events: list[str] = []
    hub = MutationHub()
    acquired = asyncio.Event()

    async def _swap() -> None:
        async with hub.exclusive():
            events.append("swap")
        acquired.set()

    async with hub.shared():
        swap = asyncio.ensure_future(_swap())
        await asyncio.sleep(0.01)
        await hub.commit(_uow(events), [_insert("Heat")])
        assert not acquired.is_set(), "swap must wait for the shared hold"
    await swap

    assert events == ["commit", "swap"]
