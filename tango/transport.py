"""Bundled transports.

Every transport implements the transport port (:class:`tango.protocol.Transport` or,
for :mod:`asyncio`, :class:`tango.aio.AsyncTransport`):

* :class:`LoopbackTransport` and :class:`AsyncLoopbackTransport` feed requests straight
  into a dispatcher running in the same process. They are useful for testing and for
  exposing a namespace through the same interface as a remote one.
* :class:`SocketTransport` and :class:`AsyncSocketTransport` wrap a ZMQ ``DEALER``
  socket connected to a :class:`tango.server.Server`.

Because envelopes carry no request identifier, a transport can only match a response to
a request by order. Do not issue concurrent calls through the same transport.
"""

import collections
import contextlib
import functools
import types
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar, Union

import zmq
import zmq.asyncio
import zmq.error

from . import aio, log
from .exception import TransportError
from .protocol import Invoke, dispatch, protected_invoke
from .serialization import DEFAULT_SERIALIZER, Serializer

# isort: unique-list
__all__ = [
    'AsyncLoopbackTransport',
    'AsyncSocketTransport',
    'LoopbackTransport',
    'SocketOptions',
    'SocketTransport',
    'async_context',
]

SocketOptions = dict[int, Union[int, bytes]]
SocketTransportType = TypeVar('SocketTransportType', bound='SocketTransport')


def async_context() -> zmq.asyncio.Context:
    """Get an :mod:`asyncio` context sharing the process-wide ZMQ context.

    :meth:`zmq.asyncio.Context.instance` returns a synchronous context if the
    synchronous singleton was created first, so shadow the singleton instead.
    """
    return zmq.asyncio.Context.shadow(zmq.Context.instance())


@dataclass
class LoopbackTransport:
    """A transport that dispatches requests in-process.

    Sending a request dispatches it immediately. Any response is queued until received.

    Parameters:
        namespace: The root namespace node requests are dispatched against.
        serializer: Must match the serializer the client uses.
        invoke: The protected invoke function passed to :func:`tango.protocol.dispatch`.
        send_count: The number of messages sent.
        recv_count: The number of messages received.
    """

    namespace: Any
    serializer: Serializer = DEFAULT_SERIALIZER
    invoke: Invoke = protected_invoke
    send_count: int = field(default=0, init=False)
    recv_count: int = field(default=0, init=False)
    responses: collections.deque[bytes] = field(
        default_factory=collections.deque,
        init=False,
        repr=False,
    )

    def send_message(self, message: bytes, /) -> None:
        response = dispatch(
            message,
            self.namespace,
            self.invoke,
            serializer=self.serializer,
        )
        self.send_count += 1
        if response is not None:
            self.responses.append(response)

    def receive_message(self, /) -> bytes:
        """Pop the oldest queued response.

        Raises:
            TransportError: If no response is queued. A real transport would block
                forever instead.
        """
        if not self.responses:
            raise TransportError('no response to receive', send_count=self.send_count)
        self.recv_count += 1
        return self.responses.popleft()


@dataclass
class AsyncLoopbackTransport:
    """The :mod:`asyncio` version of :class:`LoopbackTransport`.

    Parameters:
        timeout: Maximum duration (in seconds) each method may run for.
    """

    namespace: Any
    serializer: Serializer = DEFAULT_SERIALIZER
    timeout: Optional[float] = None
    send_count: int = field(default=0, init=False)
    recv_count: int = field(default=0, init=False)
    responses: collections.deque[bytes] = field(
        default_factory=collections.deque,
        init=False,
        repr=False,
    )

    async def send_message(self, message: bytes, /) -> None:
        invoke = functools.partial(aio.protected_invoke, timeout=self.timeout)
        response = await aio.dispatch(
            message,
            self.namespace,
            invoke,
            serializer=self.serializer,
        )
        self.send_count += 1
        if response is not None:
            self.responses.append(response)

    async def receive_message(self, /) -> bytes:
        if not self.responses:
            raise TransportError('no response to receive', send_count=self.send_count)
        self.recv_count += 1
        return self.responses.popleft()


@dataclass
class _SocketBase:
    """Configuration and state shared by the ZMQ transports.

    Parameters:
        connections: Addresses of the servers to connect to, such as
            ``'tcp://localhost:6000'``. ZMQ load-balances requests across the servers
            if there are several.
        options: A mapping of `ZMQ socket option symbols
            <http://api.zeromq.org/4-3:zmq-setsockopt>`_ to their values. Set
            ``zmq.RCVTIMEO`` (milliseconds) to bound how long a call waits.
        send_count: The number of messages sent since the socket was opened.
        recv_count: The number of messages received since the socket was opened.
    """

    connections: frozenset[str] = frozenset()
    options: SocketOptions = field(default_factory=dict)
    send_count: int = field(default=0, init=False)
    recv_count: int = field(default=0, init=False)
    logger: log.Logger = field(default_factory=log.get_logger, repr=False)

    def __post_init__(self, /) -> None:
        if isinstance(self.connections, str):
            self.connections = frozenset({self.connections})
        self.connections = frozenset(self.connections)
        if not self.connections:
            raise ValueError('must provide at least one address to connect to')

    @property
    def closed(self, /) -> bool:
        socket = getattr(self, 'socket', None)
        return bool(socket.closed) if socket is not None else True

    def _configure(self, socket: zmq.Socket, /) -> None:
        for name, value in self.options.items():
            socket.set(name, value)
        for address in self.connections:
            socket.connect(address)
        self.send_count = self.recv_count = 0

    def close(self, /) -> None:
        """Close the underlying socket. Closing a closed transport has no effect."""
        if not self.closed:
            self.socket.close()


@dataclass
class SocketTransport(_SocketBase):
    """A blocking transport over a ZMQ ``DEALER`` socket.

    The socket is opened on first use. :class:`SocketTransport` also supports the
    context manager protocol (reusable) for closing the socket.

    When the socket times out, it is closed and rebuilt to discard a response that may
    still arrive late, which would otherwise be mistaken for the next call's response.
    """

    socket: zmq.Socket = field(init=False, repr=False)

    def __enter__(self: SocketTransportType, /) -> SocketTransportType:
        if self.closed:
            self.open()
        return self

    def __exit__(
        self,
        _exc_type: Optional[type[BaseException]],
        _exc: Optional[BaseException],
        _traceback: Optional[types.TracebackType],
        /,
    ) -> None:
        self.close()

    def open(self, /) -> None:
        """Open the underlying socket."""
        self.socket = zmq.Context.instance().socket(zmq.DEALER)
        self._configure(self.socket)

    @contextlib.contextmanager
    def _maybe_reopen(self, /) -> Iterator[None]:
        """A context manager for reopening the socket when an operation times out.

        Raises:
            TransportError: If the socket is reopened.
        """
        if self.closed:
            self.open()
        try:
            yield
        except zmq.error.Again as exc:
            self.close()
            self.open()
            self.logger.warning(
                'Transport reopened',
                connections=sorted(self.connections),
            )
            raise TransportError('transport timed out and was reopened') from exc

    def send_message(self, message: bytes, /) -> None:
        with self._maybe_reopen():
            self.socket.send(message)
        self.send_count += 1

    def receive_message(self, /) -> bytes:
        with self._maybe_reopen():
            message = self.socket.recv()
        self.recv_count += 1
        return message


@dataclass
class AsyncSocketTransport(_SocketBase):
    """The :mod:`asyncio` version of :class:`SocketTransport`.

    Supports the async context manager protocol (reusable).
    """

    socket: zmq.asyncio.Socket = field(init=False, repr=False)

    async def __aenter__(self, /) -> 'AsyncSocketTransport':
        if self.closed:
            await self.open()
        return self

    async def __aexit__(
        self,
        _exc_type: Optional[type[BaseException]],
        _exc: Optional[BaseException],
        _traceback: Optional[types.TracebackType],
        /,
    ) -> None:
        self.close()

    async def open(self, /) -> None:
        """Open the underlying socket."""
        self.socket = async_context().socket(zmq.DEALER)
        self._configure(self.socket)

    @contextlib.asynccontextmanager
    async def _maybe_reopen(self, /) -> AsyncIterator[None]:
        if self.closed:
            await self.open()
        try:
            yield
        except zmq.error.Again as exc:
            self.close()
            await self.open()
            await self.logger.awarning(
                'Transport reopened',
                connections=sorted(self.connections),
            )
            raise TransportError('transport timed out and was reopened') from exc

    async def send_message(self, message: bytes, /) -> None:
        async with self._maybe_reopen():
            await self.socket.send(message)
        self.send_count += 1

    async def receive_message(self, /) -> bytes:
        async with self._maybe_reopen():
            message = await self.socket.recv()
        self.recv_count += 1
        return message
