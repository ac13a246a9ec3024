"""A small, transport- and serialization-agnostic remote procedure call framework."""

__version__ = '0.9.0'

# pylint: disable=wrong-import-position
from .envelope import Outcome, RequestKind
from .exception import (
    InvocationError,
    MalformedMessageError,
    NotInvocableError,
    PathResolutionError,
    TangoError,
    TransportError,
)
from .namespace import Handler, route
from .protocol import call, dispatch, notify, protected_invoke
from .proxy import proxy

# isort: unique-list
__all__ = [
    'Handler',
    'InvocationError',
    'MalformedMessageError',
    'NotInvocableError',
    'Outcome',
    'PathResolutionError',
    'RequestKind',
    'TangoError',
    'TransportError',
    'call',
    'dispatch',
    'notify',
    'protected_invoke',
    'proxy',
    'route',
]
