"""Metadata-aware asyncio task creation.

Ingestion fans out one task per source and maintenance runs full rebuilds as
background tasks. Both go through :func:`create_task` so a custom event-loop
task factory can observe which operation and which source a task belongs to,
while plain event loops keep working unchanged.
"""

from __future__ import annotations

import asyncio
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import contextvars as cv

TASK_METADATA_KWARG = "mediacat_task_metadata"
_TASK_METADATA_KEYS = frozenset({"operation_name", "correlation_id", "priority_hint"})


class TaskMetadata(typ.TypedDict, total=False):
    """Optional metadata attached to task-factory task creation kwargs."""

    operation_name: str
    correlation_id: str
    priority_hint: int


class TaskCreateKwargs(typ.TypedDict, total=False):
    """Supported kwargs for metadata-aware task creation helpers."""

    name: str | None
    context: cv.Context | None
    metadata: TaskMetadata | None


_TASK_CREATE_KWARGS_KEYS = frozenset({"name", "context", "metadata"})


def _validate_string_field(metadata: TaskMetadata, field_name: str) -> str | None:
    value = metadata.get(field_name)
    if value is None:
        return None
    if not isinstance(value, str):
        msg = (
            f"Task metadata {field_name!r} must be a string, "
            f"got {type(value).__name__!r}."
        )
        raise TypeError(msg)
    if not value:
        msg = f"Task metadata {field_name!r} must be a non-empty string."
        raise ValueError(msg)
    return value


def _validate_task_metadata(metadata: TaskMetadata) -> TaskMetadata | None:
    """Validate metadata shape and return a narrowed typed payload."""
    unsupported_keys = set(metadata) - _TASK_METADATA_KEYS
    if unsupported_keys:
        keys = ", ".join(repr(key) for key in sorted(unsupported_keys, key=repr))
        msg = f"Unsupported task metadata keys: {keys}"
        raise ValueError(msg)

    validated: TaskMetadata = {}
    for field_name in ("operation_name", "correlation_id"):
        value = _validate_string_field(metadata, field_name)
        if value is not None:
            validated[field_name] = value

    priority_hint = metadata.get("priority_hint")
    if priority_hint is not None:
        if isinstance(priority_hint, bool) or not isinstance(priority_hint, int):
            msg = "Task metadata 'priority_hint' must be an integer."
            raise TypeError(msg)
        validated["priority_hint"] = priority_hint

    return validated or None


def create_task[T](
    coro: cabc.Coroutine[object, object, T],
    /,
    **kwargs: typ.Unpack[TaskCreateKwargs],
) -> asyncio.Task[T]:
    """Create an asyncio task, forwarding metadata only to custom factories.

    Parameters
    ----------
    coro : Coroutine
        Coroutine to schedule.
    **kwargs : TaskCreateKwargs
        ``name``, ``context`` and optional ``metadata``.

    Returns
    -------
    asyncio.Task
        The scheduled task.

    Raises
    ------
    TypeError
        If an unsupported keyword argument or metadata value type is given.
    ValueError
        If metadata contains unknown keys or empty strings.
    """
    unexpected_keys = set(kwargs) - _TASK_CREATE_KWARGS_KEYS
    if unexpected_keys:
        keys = ", ".join(sorted(unexpected_keys, key=repr))
        msg = f"Unsupported task creation kwargs: {keys}"
        raise TypeError(msg)

    raw_metadata = kwargs.get("metadata")
    metadata = None if raw_metadata is None else _validate_task_metadata(raw_metadata)
    loop = asyncio.get_running_loop()
    factory = loop.get_task_factory()

    if metadata is None or factory is None:
        return loop.create_task(
            coro,
            name=kwargs.get("name"),
            context=kwargs.get("context"),
        )
    # loop.create_task forwards extra kwargs to the factory only from 3.14.
    task_factory = typ.cast("typ.Callable[..., asyncio.Task[T]]", factory)
    return task_factory(
        loop,
        coro,
        name=kwargs.get("name"),
        context=kwargs.get("context"),
        **{TASK_METADATA_KWARG: metadata},
    )
