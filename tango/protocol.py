"""Blocking remote calls and request dispatch.

This module is the core of tango. It is synchronous and holds no state of its own:

* Clients issue requests with :func:`call` (blocks for a response) or :func:`notify`
  (one-way) through any object implementing the :class:`Transport` port.
* Servers pass each raw request to :func:`dispatch`, which resolves the dotted method
  name against a namespace (see :mod:`tango.namespace`), invokes the method with
  :func:`protected_invoke`, and returns the raw response to send back, if any.

Both ends agree on a :class:`tango.serialization.Serializer`, which defaults to CBOR.
:mod:`tango.aio` provides the :mod:`asyncio` versions of these functions.
"""

import abc
from collections.abc import Callable, Sequence
from typing import Any, Optional, Protocol

from . import log
from .envelope import (
    NOT_SERIALIZABLE,
    Outcome,
    Request,
    RequestKind,
    describe_exception,
    parse_response,
    unwrap_results,
)
from .exception import InvocationError, MalformedMessageError, TangoError
from .namespace import check_method_name, resolve
from .serialization import DEFAULT_SERIALIZER, Serializer

# isort: unique-list
__all__ = [
    'Invoke',
    'Transport',
    'call',
    'decode_request',
    'dispatch',
    'encode_request',
    'encode_response',
    'notify',
    'protected_invoke',
    'raise_for_outcome',
]

Invoke = Callable[[Callable[..., Any], Sequence[Any]], Outcome]
logger = log.get_logger()


class Transport(Protocol):
    """The transport port.

    A transport moves whole encoded messages. Both operations block from the caller's
    point of view. Timeouts, retries, and framing are the transport's responsibility.
    """

    @abc.abstractmethod
    def send_message(self, message: bytes, /) -> None:
        """Transmit one encoded message."""
        raise NotImplementedError

    @abc.abstractmethod
    def receive_message(self, /) -> bytes:
        """Block until one encoded message is received."""
        raise NotImplementedError


def encode_request(
    method_name: str,
    kind: RequestKind,
    args: Sequence[Any],
    serializer: Serializer,
    /,
) -> bytes:
    request = Request(check_method_name(method_name), kind, tuple(args))
    logger.debug('Issuing remote call', method=method_name, kind=kind.name)
    return serializer.encode(request.envelope())


def raise_for_outcome(outcome: Outcome, method_name: str, /) -> Any:
    """Unwrap a response outcome into a return value.

    Raises:
        InvocationError: If the outcome is a failure. The message is exactly the
            description the server reported.
    """
    if not outcome.ok:
        raise InvocationError(outcome.error, method=method_name)
    return unwrap_results(outcome.values)


def call(
    transport: Transport,
    method_name: str,
    /,
    *args: Any,
    serializer: Serializer = DEFAULT_SERIALIZER,
) -> Any:
    """Call a remote method and wait for its result.

    Performs exactly one send and one receive. There is no timeout. A call whose
    response never arrives blocks until the transport gives up.

    Parameters:
        transport: The transport to send the request over.
        method_name: A dotted method name, such as ``'math.add'``.
        args: Positional arguments to the method.
        serializer: Encodes the request and decodes the response.

    Returns:
        ``None`` if the method returned no values, the value itself if it returned
        exactly one, or a tuple of the values otherwise.

    Raises:
        ValueError: If the method name is malformed. Nothing is sent.
        InvocationError: If the server reported a failure, whether the method does not
            exist, is not callable, or raised an exception.
        MalformedMessageError: If the response is not a response envelope.
    """
    transport.send_message(
        encode_request(method_name, RequestKind.CALL, args, serializer),
    )
    response = serializer.decode(transport.receive_message())
    return raise_for_outcome(parse_response(response), method_name)


def notify(
    transport: Transport,
    method_name: str,
    /,
    *args: Any,
    serializer: Serializer = DEFAULT_SERIALIZER,
) -> None:
    """Send a one-way notification.

    Performs exactly one send and never waits for a response. Failures on the remote
    side are never reported back.

    Raises:
        ValueError: If the method name is malformed. Nothing is sent.
    """
    transport.send_message(
        encode_request(method_name, RequestKind.NOTIFICATION, args, serializer),
    )


def protected_invoke(func: Callable[..., Any], args: Sequence[Any], /) -> Outcome:
    """Call a function, converting any exception it raises into a failed outcome.

    Exceptions that do not inherit from :class:`Exception` (such as
    :class:`KeyboardInterrupt`) are not caught.
    """
    try:
        return Outcome.success(func(*args))
    except Exception as exc:  # pylint: disable=broad-except; isolates remote callers
        return Outcome.failure(describe_exception(exc))


def decode_request(raw_request: bytes, serializer: Serializer, /) -> Request:
    """Decode and validate a raw request.

    Raises:
        MalformedMessageError: If the request cannot be decoded or is not a request
            envelope.
    """
    try:
        envelope = serializer.decode(raw_request)
    except Exception as exc:
        raise MalformedMessageError('request could not be decoded') from exc
    return Request.from_envelope(envelope)


def encode_response(
    request: Request,
    outcome: Outcome,
    serializer: Serializer,
    /,
) -> Optional[bytes]:
    """Encode the response to a request, if the request needs one.

    A successful outcome whose results cannot be encoded is replaced by a failure.
    """
    if request.notification:
        return None
    try:
        return serializer.encode(outcome.envelope())
    except Exception as exc:  # pylint: disable=broad-except; serializer-specific
        logger.warning(
            'Result not serializable',
            method=request.method_name,
            exc_info=exc,
        )
        failure = Outcome.failure(NOT_SERIALIZABLE + request.method_name)
        return serializer.encode(failure.envelope())


def dispatch(
    raw_request: bytes,
    namespace: Any,
    invoke: Invoke = protected_invoke,
    /,
    *,
    serializer: Serializer = DEFAULT_SERIALIZER,
) -> Optional[bytes]:
    """Execute a raw request against a namespace.

    Path resolution failures and exceptions raised by the method are reported to the
    caller in the response and never raised:

    * ``[False, 'tango server path invalid:<method>']`` if the path does not resolve.
    * ``[False, 'tango server path no function:<method>']`` if the member the path
      resolves to is not callable.
    * ``[False, '<description>']`` if the method raised an exception.

    Parameters:
        raw_request: An encoded request envelope.
        namespace: The root namespace node (see :mod:`tango.namespace`).
        invoke: Calls the resolved method. Must not raise.
        serializer: Decodes the request and encodes the response.

    Returns:
        The encoded response envelope, or ``None`` if the request is a notification
        (regardless of whether the call succeeded).

    Raises:
        MalformedMessageError: If the request is malformed. Since the request kind may
            be unknown, no response can be produced.
    """
    request = decode_request(raw_request, serializer)
    try:
        func = resolve(namespace, request.method_name)
    except TangoError as exc:
        outcome = Outcome.failure(str(exc))
    else:
        outcome = invoke(func, request.args)
    logger.debug(
        'Dispatched request',
        method=request.method_name,
        kind=request.kind.name,
        ok=outcome.ok,
    )
    return encode_response(request, outcome, serializer)
