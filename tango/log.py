"""Logging configuration.

This module wraps the :mod:`structlog` framework to provide structured logging for tango
clients and servers. A chain of "processors" (callables) filters or transforms events
produced by log statements.

Loggers returned by :func:`get_logger` expose both synchronous methods (``info``,
``error``, ...) used by the blocking core and their async counterparts (``ainfo``,
``aerror``, ...) used by :class:`tango.server.Server`.

Note:
    An *unbound* logger is a proxy that borrows its configuration from the global
    configuration set by :func:`tango.log.configure`. Once a logger is bound by calling
    :meth:`structlog.BoundLoggerBase.bind`, the global configuration is copied into the
    logger's local state and frozen. Prefer bound loggers on hot paths.
"""

import functools
import logging
from collections.abc import Callable, MutableMapping
from typing import Any, Literal, NoReturn, Union

import orjson as json
import structlog
import structlog.contextvars
import structlog.processors
from structlog.typing import FilteringBoundLogger as Logger

from .exception import TangoError

__all__ = [
    'LEVELS',
    'Logger',
    'configure',
    'get_level_num',
    'get_logger',
    'get_null_logger',
]


Event = MutableMapping[str, Any]
ProcessorReturnType = Union[Event, str, bytes]
Processor = Callable[[Any, str, Event], ProcessorReturnType]
LEVELS: list[str] = ['debug', 'info', 'warning', 'error', 'critical']
"""Log severity levels, in ascending order of severity.

============ ================================= =========================================
Level        Description                       Example
============ ================================= =========================================
``debug``    Frequent, low-level tracing.      A call is issued or a request dispatched.
``info``     Normal operation (default level). A server binds to an address.
``warning``  Unusual or anomalous events.      A transport is reopened after a timeout.
``error``    Failure mode.                     A server drops a malformed message.
``critical`` Cannot continue running.          The namespace cannot be imported.
============ ================================= =========================================
"""


def drop(_logger: Any, _method: str, _event: Event, /) -> NoReturn:
    """A simple :mod:`structlog` processor to drop all events."""
    raise structlog.DropEvent


def get_logger(*factory_args: Any, **context: Any) -> Logger:
    """Get an unbound logger.

    Parameters:
        factory_args: Positional arguments passed to the logger factory.
        context: Contextual variables added to every event produced by this logger.
    """
    return structlog.get_logger(*factory_args, **context)


def get_null_logger() -> Logger:
    """Get a logger that drops all events unconditionally.

    Useful for objects that emit unimportant or noisy log events.
    """
    return structlog.wrap_logger(
        structlog.PrintLogger(),
        processors=[drop],
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
    )


@functools.lru_cache(maxsize=16)
def get_level_num(level_name: str, /, *, default: int = logging.DEBUG) -> int:
    """Translate a :mod:`logging` level name into its numeric value.

    Parameters:
        level_name: A case-insensitive name, such as ``'DEBUG'``.
        default: The numeric level to return if the name is invalid.

    Example:
        >>> get_level_num('INFO')
        20
        >>> assert get_level_num('DNE') == logging.DEBUG == 10
    """
    level = getattr(logging, level_name.upper(), None)
    return level if isinstance(level, int) else default


def _add_exc_context(_logger: Any, _method: str, event: Event, /) -> Event:
    """A processor to add the context of a :class:`TangoError` to the event.

    When the keys of the exception context clash with those of the event, the event's
    entries take priority.
    """
    exception = event.get('exc_info')
    if isinstance(exception, TangoError):
        event = exception.context | event
    return event


def configure(
    *,
    fmt: Literal['json', 'pretty'] = 'json',
    level: str = 'INFO',
) -> None:
    """Configure :mod:`structlog` with the desired log format and filtering.

    Parameters:
        fmt: The format of events written to standard output.
        level: The minimum log level (inclusive) that should be processed. Severities
            are compared using :func:`tango.log.get_level_num`.

    For development, we recommend the ``'pretty'`` log format, which is human-readable
    and renders exception tracebacks but cannot be parsed:

    .. code-block:: text

        2024-03-02T21:01:22.301992Z [info     ] Server started       concurrency=5
        2024-03-02T21:01:22.304771Z [error    ] Server dropped malformed message

    In production, we recommend the ``'json'`` format, which produces events in
    `jsonlines <https://jsonlines.org/>`_ format (required entries shown):

    .. code-block:: json

        {"event":"Started","level":"info","timestamp":"2024-03-02T21:04:15.507057Z"}
    """
    logging.captureWarnings(True)
    renderers: list[Processor] = []
    logger_factory: Callable[..., Union[structlog.PrintLogger, structlog.BytesLogger]]
    if fmt == 'pretty':
        renderers.append(structlog.processors.ExceptionPrettyPrinter())
        renderers.append(structlog.dev.ConsoleRenderer(pad_event=40))
        logger_factory = structlog.PrintLoggerFactory()
    else:
        renderers.append(structlog.processors.JSONRenderer(serializer=json.dumps))
        logger_factory = structlog.BytesLoggerFactory()

    structlog.configure(
        cache_logger_on_first_use=True,
        wrapper_class=structlog.make_filtering_bound_logger(get_level_num(level)),
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_exc_context,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt='iso'),
            *renderers,
        ],
        logger_factory=logger_factory,
    )
