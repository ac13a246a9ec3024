"""Request and response envelopes.

An envelope is the ordered-sequence wire representation of a message:

* A request envelope is ``[method_name, kind, arg_1, ..., arg_n]``, where ``kind`` is a
  :class:`RequestKind` value.
* A response envelope is ``[True, result_1, ..., result_m]`` on success or
  ``[False, error_description]`` on failure. Notifications never receive one.

Python callables return a single object, so return values are mapped onto the result
list by :meth:`Outcome.success` and back by :func:`unwrap_results`.
"""

import enum
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

from .exception import MalformedMessageError

# isort: unique-list
__all__ = [
    'METHOD_NAME',
    'NOT_INVOCABLE',
    'NOT_SERIALIZABLE',
    'Outcome',
    'PATH_INVALID',
    'Request',
    'RequestKind',
    'SEGMENT',
    'describe_exception',
    'parse_response',
    'unwrap_results',
]

SEGMENT = re.compile(r'[A-Za-z0-9_]+')
METHOD_NAME = re.compile(r'[A-Za-z0-9_]+(\.[A-Za-z0-9_]+)*')

PATH_INVALID = 'tango server path invalid:'
NOT_INVOCABLE = 'tango server path no function:'
NOT_SERIALIZABLE = 'tango server result not serializable:'


class RequestKind(enum.IntEnum):
    """The request kind tag.

    Attributes:
        CALL: The caller blocks until it receives exactly one response envelope.
        NOTIFICATION: A one-way request. The server never responds, even on failure.
    """

    CALL = 1
    NOTIFICATION = 2


@dataclass(frozen=True)
class Request:
    """A decoded request envelope.

    Parameters:
        method_name: A dotted method path, such as ``'math.add'``.
        kind: Whether a response is expected.
        args: Positional arguments passed to the method.
    """

    method_name: str
    kind: RequestKind
    args: tuple[Any, ...] = ()

    @property
    def notification(self, /) -> bool:
        return self.kind is RequestKind.NOTIFICATION

    def envelope(self, /) -> list[Any]:
        return [self.method_name, self.kind.value, *self.args]

    @classmethod
    def from_envelope(cls, envelope: Any, /) -> 'Request':
        """Validate and unpack a decoded request envelope.

        The method name is not checked against :data:`METHOD_NAME`. The dispatcher is
        forgiving of stray characters between segments.

        Raises:
            MalformedMessageError: If the envelope is not a sequence of at least two
                elements, the method name is not a string, or the kind is unknown.
        """
        if isinstance(envelope, (str, bytes)) or not isinstance(envelope, Sequence):
            raise MalformedMessageError(
                'request envelope must be a sequence',
                envelope_type=type(envelope).__name__,
            )
        if len(envelope) < 2:
            raise MalformedMessageError(
                'request envelope is too short',
                length=len(envelope),
            )
        method_name, kind, *args = envelope
        if not isinstance(method_name, str):
            raise MalformedMessageError('method name must be a string')
        if isinstance(kind, bool) or kind not in tuple(RequestKind):
            raise MalformedMessageError('unknown request kind', kind=kind)
        return cls(method_name, RequestKind(kind), tuple(args))


class Outcome(NamedTuple):
    """The outcome of a protected invocation.

    The shape of an outcome is the shape of a response envelope: a success flag
    followed by either the results or a single error description.

    Attributes:
        ok: Whether the invocation succeeded.
        values: The results (on success) or a one-element list holding the error
            description (on failure).
    """

    ok: bool
    values: list[Any]

    @classmethod
    def success(cls, result: Any = None, /) -> 'Outcome':
        """Build a successful outcome from a return value.

        ``None`` produces no results, a tuple produces one result per element, and
        anything else produces exactly one result.

        Example:
            >>> Outcome.success((1, 2)).envelope()
            [True, 1, 2]
            >>> Outcome.success().envelope()
            [True]
        """
        if result is None:
            return cls(True, [])
        if isinstance(result, tuple):
            return cls(True, list(result))
        return cls(True, [result])

    @classmethod
    def failure(cls, description: str, /) -> 'Outcome':
        return cls(False, [description])

    @property
    def error(self, /) -> str:
        """The error description of a failed outcome.

        Raises:
            ValueError: If the outcome is a success.
        """
        if self.ok:
            raise ValueError('outcome is not a failure')
        return str(self.values[0])

    def envelope(self, /) -> list[Any]:
        return [self.ok, *self.values]


def describe_exception(exc: BaseException, /) -> str:
    """Render an exception as a one-line description.

    Example:
        >>> describe_exception(ZeroDivisionError('division by zero'))
        'ZeroDivisionError: division by zero'
        >>> describe_exception(ValueError())
        'ValueError'
    """
    message = str(exc)
    return f'{type(exc).__name__}: {message}' if message else type(exc).__name__


def parse_response(envelope: Any, /) -> Outcome:
    """Validate and unpack a decoded response envelope.

    Raises:
        MalformedMessageError: If the envelope is not a nonempty sequence starting with
            a boolean, or a failure envelope does not carry exactly one description.
    """
    if isinstance(envelope, (str, bytes)) or not isinstance(envelope, Sequence):
        raise MalformedMessageError(
            'response envelope must be a sequence',
            envelope_type=type(envelope).__name__,
        )
    if not envelope or not isinstance(envelope[0], bool):
        raise MalformedMessageError('response envelope must start with a boolean')
    ok, *values = envelope
    if not ok and len(values) != 1:
        raise MalformedMessageError(
            'failure envelope must hold one description',
            length=len(values),
        )
    return Outcome(ok, values)


def unwrap_results(values: Sequence[Any], /) -> Any:
    """Collapse a result list into a single Python return value.

    This is the inverse of :meth:`Outcome.success`.

    Example:
        >>> unwrap_results([]) is None
        True
        >>> unwrap_results([5])
        5
        >>> unwrap_results([5, 'a'])
        (5, 'a')
    """
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return tuple(values)
