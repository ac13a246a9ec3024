"""Remote calls and request dispatch for :mod:`asyncio`.

The functions in this module mirror those in :mod:`tango.protocol` and produce
identical messages. They differ only in that:

* The transport's ``send_message`` and ``receive_message`` are coroutine methods.
* Namespaces may hold coroutine functions. Plain functions run in the default executor
  so that blocking methods do not stall the event loop.

A remote path proxy bound to :func:`call` or :func:`notify` returns a coroutine:

>>> from tango.proxy import proxy
>>> async def main(transport):
...     calc = proxy(transport, call)
...     return await calc.math.add(2, 3)
"""

import abc
import asyncio
import inspect
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Optional, Protocol

from . import log
from .envelope import Outcome, RequestKind, describe_exception, parse_response
from .exception import TangoError
from .namespace import resolve
from .protocol import decode_request, encode_request, encode_response, raise_for_outcome
from .serialization import DEFAULT_SERIALIZER, Serializer

# isort: unique-list
__all__ = [
    'AsyncInvoke',
    'AsyncTransport',
    'call',
    'dispatch',
    'notify',
    'protected_invoke',
]

AsyncInvoke = Callable[[Callable[..., Any], Sequence[Any]], Awaitable[Outcome]]
logger = log.get_logger()


class AsyncTransport(Protocol):
    """The transport port, for :mod:`asyncio`."""

    @abc.abstractmethod
    async def send_message(self, message: bytes, /) -> None:
        """Transmit one encoded message."""
        raise NotImplementedError

    @abc.abstractmethod
    async def receive_message(self, /) -> bytes:
        """Wait until one encoded message is received."""
        raise NotImplementedError


async def call(
    transport: AsyncTransport,
    method_name: str,
    /,
    *args: Any,
    serializer: Serializer = DEFAULT_SERIALIZER,
) -> Any:
    """Call a remote method and wait for its result.

    The :mod:`asyncio` version of :func:`tango.protocol.call`. Wrap this coroutine in
    :func:`asyncio.wait_for` to bound how long to wait.

    Raises:
        ValueError: If the method name is malformed. Nothing is sent.
        InvocationError: If the server reported a failure.
        MalformedMessageError: If the response is not a response envelope.
    """
    await transport.send_message(
        encode_request(method_name, RequestKind.CALL, args, serializer),
    )
    response = serializer.decode(await transport.receive_message())
    return raise_for_outcome(parse_response(response), method_name)


async def notify(
    transport: AsyncTransport,
    method_name: str,
    /,
    *args: Any,
    serializer: Serializer = DEFAULT_SERIALIZER,
) -> None:
    """Send a one-way notification.

    The :mod:`asyncio` version of :func:`tango.protocol.notify`.
    """
    await transport.send_message(
        encode_request(method_name, RequestKind.NOTIFICATION, args, serializer),
    )


async def _invoke(func: Callable[..., Any], args: Sequence[Any], /) -> Outcome:
    try:
        if inspect.iscoroutinefunction(func):
            result = await func(*args)
        else:
            result = await asyncio.to_thread(func, *args)
        return Outcome.success(result)
    except Exception as exc:  # pylint: disable=broad-except; isolates remote callers
        return Outcome.failure(describe_exception(exc))


async def protected_invoke(
    func: Callable[..., Any],
    args: Sequence[Any],
    /,
    *,
    timeout: Optional[float] = None,
) -> Outcome:
    """Call a (possibly coroutine) function, converting exceptions into failures.

    If the function is synchronous (possibly blocking), the default executor performs
    the call.

    Parameters:
        func: The function to call.
        args: Positional arguments for the function.
        timeout: Maximum duration (in seconds) to wait for the result. ``None`` waits
            indefinitely. A timed-out call is a failure.
    """
    try:
        return await asyncio.wait_for(_invoke(func, args), timeout)
    except asyncio.TimeoutError:
        description = f'TimeoutError: method timed out after {timeout} seconds'
        return Outcome.failure(description)


async def dispatch(
    raw_request: bytes,
    namespace: Any,
    invoke: AsyncInvoke = protected_invoke,
    /,
    *,
    serializer: Serializer = DEFAULT_SERIALIZER,
) -> Optional[bytes]:
    """Execute a raw request against a namespace.

    The :mod:`asyncio` version of :func:`tango.protocol.dispatch`. To bound how long
    methods may run, bind a timeout to the invoke function::

        await dispatch(raw, namespace, functools.partial(protected_invoke, timeout=5))

    Raises:
        MalformedMessageError: If the request is malformed.
    """
    request = decode_request(raw_request, serializer)
    try:
        func = resolve(namespace, request.method_name)
    except TangoError as exc:
        outcome = Outcome.failure(str(exc))
    else:
        outcome = await invoke(func, request.args)
    await logger.adebug(
        'Dispatched request',
        method=request.method_name,
        kind=request.kind.name,
        ok=outcome.ok,
    )
    return encode_response(request, outcome, serializer)
