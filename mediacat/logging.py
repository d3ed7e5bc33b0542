"""femtologging wrappers used across the catalogue.

Ingestion, search and maintenance code log through the ``log_*`` helpers,
which interpolate percent-style templates before handing the message to a
femtologging logger. Level selection for processes comes from
``MEDIACAT_LOG_LEVEL``.

Examples
--------
Configure logging from the environment and emit a message:

>>> level, used_default = configure_from_environment()
>>> log_info(get_logger(__name__), "Ingested %s records", 480)
"""

from __future__ import annotations

import enum
import os
import typing as typ
import warnings

from femtologging import basicConfig, get_logger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

LOG_LEVEL_ENV = "MEDIACAT_LOG_LEVEL"


class LogLevel(enum.StrEnum):
    """Levels accepted by femtologging; ``WARN`` is a deprecated alias."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _resolve_level(level: str | None) -> tuple[LogLevel, bool]:
    requested = level.strip().upper() if level else ""
    if requested not in LogLevel.__members__:
        return LogLevel.INFO, True
    resolved = LogLevel(requested)
    if resolved is LogLevel.WARN:
        warnings.warn(
            "LogLevel.WARN is deprecated; use LogLevel.WARNING instead.",
            DeprecationWarning,
            stacklevel=3,
        )
        resolved = LogLevel.WARNING
    return resolved, False


def configure_logging(level: str | None, *, force: bool = False) -> tuple[str, bool]:
    """Configure femtologging and return the normalised level.

    Parameters
    ----------
    level : str | None
        Requested level name in any case; blank or unknown names select INFO.
    force : bool, optional
        Replace handlers installed by an earlier call.

    Returns
    -------
    tuple[str, bool]
        ``(effective_level, used_default)``; ``used_default`` is True when
        ``level`` was missing or not recognised.
    """
    resolved, used_default = _resolve_level(level)
    basicConfig(level=resolved, force=force)
    return (resolved, used_default)


def configure_from_environment(
    env: cabc.Mapping[str, str] | None = None, *, force: bool = False
) -> tuple[str, bool]:
    """Configure logging from ``MEDIACAT_LOG_LEVEL``.

    An unrecognised value is reported once at WARNING after the default level
    is installed.
    """
    source = os.environ if env is None else env
    raw = source.get(LOG_LEVEL_ENV)
    level, used_default = configure_logging(raw, force=force)
    if used_default and raw and raw.strip():
        log_warning(
            get_logger(__name__),
            "Unknown %s %r; logging at %s.",
            LOG_LEVEL_ENV,
            raw,
            level,
        )
    return (level, used_default)


class _SupportsLog(typ.Protocol):
    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> None: ...


class _LogHelper(typ.Protocol):
    def __call__(
        self,
        logger: _SupportsLog,
        template: str,
        *args: object,
        exc_info: object | None = None,
    ) -> None: ...


def _helper(level: LogLevel) -> _LogHelper:
    def emit(
        logger: _SupportsLog,
        template: str,
        *args: object,
        exc_info: object | None = None,
    ) -> None:
        message = template % args if args else template
        logger.log(level, message, exc_info=exc_info, stack_info=False)

    emit.__name__ = emit.__qualname__ = f"log_{level.lower()}"
    emit.__doc__ = (
        f"Interpolate ``template % args`` and emit it at {level}.\n\n"
        "Raises\n------\nTypeError\n"
        "    If the template and arguments do not align.\n"
    )
    return emit


log_debug = _helper(LogLevel.DEBUG)
log_info = _helper(LogLevel.INFO)
log_warning = _helper(LogLevel.WARNING)
log_error = _helper(LogLevel.ERROR)


__all__ = (
    "LOG_LEVEL_ENV",
    "LogLevel",
    "configure_from_environment",
    "configure_logging",
    "get_logger",
    "log_debug",
    "log_error",
    "log_info",
    "log_warning",
)
