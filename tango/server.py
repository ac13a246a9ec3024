"""A ZMQ server that dispatches requests against a namespace.

The server binds a ZMQ ``ROUTER`` socket, which prefixes every incoming message with the
sender's identity. Any number of :class:`tango.transport.SocketTransport` clients
(``DEALER`` sockets) may connect. Responses are routed back to the sender by identity;
notifications produce no response.

Example:
    .. code-block:: python

        async with Server({'math': {'add': operator.add}}, 'tcp://*:6000') as server:
            await server.serve_forever()
"""

import asyncio
import contextlib
import functools
import types
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import zmq
import zmq.asyncio
import zmq.error

from . import aio, log
from .exception import TangoError
from .serialization import DEFAULT_SERIALIZER, Serializer
from .transport import SocketOptions, async_context

# isort: unique-list
__all__ = ['Server']


@dataclass
class Server:
    """Serves a namespace over a ZMQ ``ROUTER`` socket.

    A server has a number of workers (instances of :class:`asyncio.Task`) that process
    incoming requests concurrently. Once all workers are busy, incoming messages are
    buffered. Synchronous methods run in the default executor.

    :class:`Server` supports the async context manager protocol for automatically
    binding the socket and starting and cancelling the workers.

    Parameters:
        namespace: The root namespace node (see :mod:`tango.namespace`).
        bindings: Addresses to bind to, such as ``'tcp://*:6000'``.
        concurrency: The number of workers.
        timeout: Maximum duration (in seconds) to execute methods for. ``None`` lets
            methods run indefinitely.
        serializer: Must match the serializer clients use.
        options: ZMQ socket options.
        logger: A logger instance.
    """

    namespace: Any
    bindings: frozenset[str] = frozenset()
    concurrency: int = 1
    timeout: Optional[float] = 30
    serializer: Serializer = DEFAULT_SERIALIZER
    options: SocketOptions = field(default_factory=dict)
    logger: log.Logger = field(default_factory=log.get_logger, repr=False)
    socket: zmq.asyncio.Socket = field(init=False, repr=False)
    recv_queue: asyncio.Queue[list[bytes]] = field(
        default_factory=lambda: asyncio.Queue(128),
        init=False,
        repr=False,
    )
    workers: list[asyncio.Task[NoReturn]] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    stack: contextlib.AsyncExitStack = field(
        default_factory=contextlib.AsyncExitStack,
        init=False,
        repr=False,
    )

    def __post_init__(self, /) -> None:
        if isinstance(self.bindings, str):
            self.bindings = frozenset({self.bindings})
        self.bindings = frozenset(self.bindings)
        if not self.bindings:
            raise ValueError('must provide at least one address to bind to')
        if self.concurrency < 1:
            raise ValueError('concurrency must be a positive integer')

    async def __aenter__(self, /) -> 'Server':
        await self.stack.__aenter__()
        self.socket = async_context().socket(zmq.ROUTER)
        self.stack.callback(self.socket.close)
        for name, value in self.options.items():
            self.socket.set(name, value)
        for address in self.bindings:
            self.socket.bind(address)
        tasks = [asyncio.create_task(self._recv_forever(), name='recv')]
        for _ in range(self.concurrency):
            worker = asyncio.create_task(self._process_forever(), name='process-msg')
            tasks.append(worker)
        for task in tasks:
            self.stack.callback(task.cancel)
        self.workers = tasks[1:]
        await self.logger.ainfo(
            'Server started',
            bindings=sorted(self.bindings),
            concurrency=self.concurrency,
        )
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[types.TracebackType],
        /,
    ) -> Optional[bool]:
        await self.logger.ainfo('Server stopped', bindings=sorted(self.bindings))
        return await self.stack.__aexit__(exc_type, exc, traceback)

    @property
    def closed(self, /) -> bool:
        socket = getattr(self, 'socket', None)
        return bool(socket.closed) if socket is not None else True

    async def serve_forever(self, /) -> NoReturn:
        """Wait until the workers are cancelled.

        Raises:
            ValueError: If the server has not been entered.
        """
        if not self.workers:
            raise ValueError('server is not started')
        await asyncio.gather(*self.workers)
        raise ValueError('server workers exited')  # pragma: no cover

    async def _recv_forever(self, /) -> NoReturn:
        """Receive messages indefinitely and enqueue them."""
        while True:
            try:
                frames = await self.socket.recv_multipart()
            except zmq.error.Again:
                continue
            await self.recv_queue.put(frames)

    async def _process_forever(self, /, *, cooldown: float = 0.01) -> NoReturn:
        """Dispatch messages indefinitely and send any responses."""
        logger = self.logger.bind()
        invoke = functools.partial(aio.protected_invoke, timeout=self.timeout)
        while True:
            try:
                sender_id, payload = await self.recv_queue.get()
                response = await aio.dispatch(
                    payload,
                    self.namespace,
                    invoke,
                    serializer=self.serializer,
                )
                if response is not None:
                    await self.socket.send_multipart([sender_id, response])
            except (ValueError, TangoError, zmq.error.ZMQError) as exc:
                await logger.aerror('Server failed to process message', exc_info=exc)
                await asyncio.sleep(cooldown)
