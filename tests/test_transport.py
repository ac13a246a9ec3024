import pytest
import zmq

from tango.envelope import Outcome
from tango.exception import TransportError
from tango.protocol import call, notify
from tango.transport import (
    AsyncSocketTransport,
    LoopbackTransport,
    SocketTransport,
    async_context,
)
from testcode import calc


def test_loopback_queue():
    transport = LoopbackTransport({'add': calc.add})
    with pytest.raises(TransportError) as excinfo:
        transport.receive_message()
    assert excinfo.value.context == {'send_count': 0}
    notify(transport, 'add', 1, 2)
    assert not transport.responses
    assert call(transport, 'add', 1, 2) == 3
    assert (transport.send_count, transport.recv_count) == (2, 1)


def test_loopback_custom_invoke(mocker):
    invoke = mocker.Mock(return_value=Outcome.success(9))
    transport = LoopbackTransport({'add': calc.add}, invoke=invoke)
    assert call(transport, 'add', 1, 2) == 9
    invoke.assert_called_once_with(calc.add, (1, 2))


def test_socket_connections():
    transport = SocketTransport('ipc:///tmp/tango-a.ipc')
    assert transport.connections == frozenset({'ipc:///tmp/tango-a.ipc'})
    assert transport.closed
    transport.close()
    transport = SocketTransport(['ipc:///tmp/tango-a.ipc', 'ipc:///tmp/tango-b.ipc'])
    assert len(transport.connections) == 2


def test_socket_reentrant():
    transport = SocketTransport('ipc:///tmp/tango-a.ipc', options={zmq.LINGER: 0})
    with transport:
        assert not transport.closed
        socket = transport.socket
        assert socket.getsockopt(zmq.LINGER) == 0
        assert socket.socket_type == zmq.DEALER
    assert transport.closed
    with transport:
        assert transport.socket is not socket
    assert transport.closed


@pytest.mark.asyncio
async def test_async_socket_reentrant():
    transport = AsyncSocketTransport('ipc:///tmp/tango-a.ipc', options={zmq.LINGER: 0})
    async with transport:
        assert not transport.closed
        assert transport.socket.socket_type == zmq.DEALER
    assert transport.closed


def test_async_context_shares_instance():
    sync_context = zmq.Context.instance()
    context = async_context()
    assert context.underlying == sync_context.underlying
