"""Explicit mutation hooks invoked by every catalogue commit path.

Every write to the catalogue goes through :meth:`MutationHub.commit`. Each
listener first persists its derived rows (index entries, projections) inside
the same transaction, then, once the commit has succeeded, updates its
in-process state synchronously. No await separates the commit from the
in-process update, so a reader in the same process never observes a catalogue
write without its counterparts.

Examples
--------
>>> hub = MutationHub([search_synchronizer, projector])
>>> async with uow_factory() as uow:
...     await uow.records.insert_many(records)
...     await hub.commit(uow, [RecordMutation(MutationKind.INSERT, r) for r in records])
"""

from __future__ import annotations

import asyncio
import contextlib
import typing as typ

from mediacat.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .domain import RecordMutation
    from .ports import CatalogueUnitOfWork

logger = get_logger(__name__)


class MutationListener(typ.Protocol):
    """Hook pair notified about every committed catalogue mutation."""

    async def before_commit(
        self,
        uow: CatalogueUnitOfWork,
        mutations: cabc.Sequence[RecordMutation],
    ) -> None:
        """Persist derived rows inside the triggering transaction."""
        ...

    def after_commit(self, mutations: cabc.Sequence[RecordMutation]) -> None:
        """Update in-process state once the transaction has committed."""
        ...


class _CommitGate:
    """Shared/exclusive gate around commits.

    Ordinary commits share the gate; a maintenance swap holds it exclusively
    for the short window in which it persists and publishes a rebuilt view.
    """

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._active = 0
        self._exclusive = False

    @contextlib.asynccontextmanager
    async def shared(self) -> cabc.AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(lambda: not self._exclusive)
            self._active += 1
        try:
            yield
        finally:
            async with self._condition:
                self._active -= 1
                self._condition.notify_all()

    @contextlib.asynccontextmanager
    async def exclusive(self) -> cabc.AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._exclusive and self._active == 0
            )
            self._exclusive = True
        try:
            yield
        finally:
            async with self._condition:
                self._exclusive = False
                self._condition.notify_all()


class MutationRecorder:
    """Collects mutations committed while it is attached to a hub."""

    def __init__(self) -> None:
        self.mutations: list[RecordMutation] = []

    def drain(self) -> list[RecordMutation]:
        """Return and clear the recorded mutations."""
        drained, self.mutations = self.mutations, []
        return drained


class MutationHub:
    """Fan committed catalogue mutations out to listeners.

    Parameters
    ----------
    listeners : collections.abc.Iterable[MutationListener], optional
        Listeners notified in registration order.
    """

    def __init__(self, listeners: cabc.Iterable[MutationListener] = ()) -> None:
        self._listeners = list(listeners)
        self._recorders: list[MutationRecorder] = []
        self._gate = _CommitGate()

    def register(self, listener: MutationListener) -> None:
        """Add a listener after construction."""
        self._listeners.append(listener)

    async def commit(
        self,
        uow: CatalogueUnitOfWork,
        mutations: cabc.Sequence[RecordMutation],
    ) -> None:
        """Run listener hooks around ``uow.commit()``.

        Raises
        ------
        WriteError
            If persisting the records or their derived rows fails. In-process
            listener state is left untouched in that case.
        """
        async with self._gate.shared():
            for listener in self._listeners:
                await listener.before_commit(uow, mutations)
            await uow.commit()
            for listener in self._listeners:
                listener.after_commit(mutations)
            for recorder in self._recorders:
                recorder.mutations.extend(mutations)
        log_debug(logger, "Committed %s catalogue mutation(s).", len(mutations))

    @contextlib.contextmanager
    def recording(self) -> cabc.Iterator[MutationRecorder]:
        """Capture mutations committed while the context is open."""
        recorder = MutationRecorder()
        self._recorders.append(recorder)
        try:
            yield recorder
        finally:
            self._recorders.remove(recorder)

    def shared(self) -> contextlib.AbstractAsyncContextManager[None]:
        """Hold the commit gate shared for a whole unit of work.

        Writers take this before their first statement so a rebuild swap never
        waits on a transaction that is itself waiting for the gate. Shared
        holds nest, so :meth:`commit` inside the block proceeds.
        """
        return self._gate.shared()

    def exclusive(self) -> contextlib.AbstractAsyncContextManager[None]:
        """Hold off every commit until the returned context exits."""
        return self._gate.exclusive()


__all__ = ("MutationHub", "MutationListener", "MutationRecorder")
