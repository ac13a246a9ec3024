"""Common tango exceptions."""

from typing import Any

# isort: unique-list
__all__ = [
    'InvocationError',
    'MalformedMessageError',
    'NotInvocableError',
    'PathResolutionError',
    'TangoError',
    'TransportError',
]


class TangoError(Exception):
    """Base exception for tango.

    Parameters:
        message: A human-readable description of the exception.
        context: Machine-readable data.
    """

    def __init__(self, message: str, /, **context: Any) -> None:
        super().__init__(message)
        self.context = context

    def __repr__(self, /) -> str:
        cls_name, args = self.__class__.__name__, [repr(self.args[0])]
        args.extend(f'{name}={value!r}' for name, value in self.context.items())
        return f'{cls_name}({", ".join(args)})'


class PathResolutionError(TangoError):
    """A dotted method path does not resolve to a member of the namespace."""


class NotInvocableError(TangoError):
    """A dotted method path resolves to a member that is not callable."""


class InvocationError(TangoError):
    """A remote call failed.

    The message is exactly the description the server reported. Path resolution
    failures and exceptions raised by the remote method are indistinguishable except by
    the message's content.
    """


class MalformedMessageError(TangoError, ValueError):
    """A request or response envelope is not well-formed."""


class TransportError(TangoError):
    """A bundled transport failed to send or receive a message."""
