"""Remote path proxies.

A proxy lets a caller spell a dotted remote method name with attribute access and call
it like a local function:

>>> from tango.transport import LoopbackTransport
>>> remote = proxy(LoopbackTransport({'math': {'add': lambda a, b: a + b}}))
>>> remote.math.add(2, 3)
5

Every attribute access returns a child proxy for the longer path. Children are created
on first access and cached, so ``remote.math is remote.math``. Attribute names that are
not dunder names never reach the proxy's own state, so a remote method may be named
``invoke`` or ``_children``. Use item access (``remote['__init__']``) for names that
are not valid Python identifiers or look like dunder names.

The proxy's own operations are module-level functions instead of methods, for the same
reason: :func:`child`, :func:`invoke`, and :func:`path`.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from .protocol import call

# isort: unique-list
__all__ = ['Proxy', 'Strategy', 'child', 'invoke', 'path', 'proxy']

Strategy = Callable[..., Any]
"""An invocation strategy, called as ``strategy(transport, method_name, *args)``.

Typically one of :func:`tango.protocol.call`, :func:`tango.protocol.notify`,
:func:`tango.aio.call`, or :func:`tango.aio.notify`.
"""


@dataclass
class _ProxyState:
    transport: Any
    strategy: Strategy
    path: Optional[str] = None
    children: dict[str, 'Proxy'] = field(default_factory=dict)


def _state(node: 'Proxy', /) -> _ProxyState:
    return object.__getattribute__(node, '_state')


def _is_dunder(name: str, /) -> bool:
    return len(name) > 4 and name.startswith('__') and name.endswith('__')


class Proxy:
    """A node of a remote method path.

    Create the root with :func:`proxy` rather than instantiating this class directly.

    Parameters:
        transport: Passed to the strategy on every call.
        strategy: Performs the call (see :data:`Strategy`).
        path: The dotted path accumulated so far. ``None`` for the root.
    """

    __slots__ = ('_state',)

    def __init__(
        self,
        transport: Any,
        strategy: Strategy,
        path: Optional[str] = None,
        /,
    ) -> None:
        object.__setattr__(self, '_state', _ProxyState(transport, strategy, path))

    def __getattribute__(self, name: str, /) -> Any:
        if _is_dunder(name):
            return object.__getattribute__(self, name)
        return child(self, name)

    def __getitem__(self, name: str, /) -> 'Proxy':
        return child(self, name)

    def __setattr__(self, name: str, value: Any, /) -> None:
        raise AttributeError(f'cannot assign {name!r} on a remote path proxy')

    def __delattr__(self, name: str, /) -> None:
        raise AttributeError(f'cannot delete {name!r} on a remote path proxy')

    def __call__(self, /, *args: Any) -> Any:
        return invoke(self, *args)

    def __repr__(self, /) -> str:
        state = _state(self)
        return f'<{self.__class__.__name__} {state.path!r} via {state.transport!r}>'


def child(node: Proxy, name: str, /) -> Proxy:
    """Get (or create and cache) the proxy for ``<path>.<name>``."""
    state = _state(node)
    prox = state.children.get(name)
    if prox is None:
        new_path = name if not state.path else f'{state.path}.{name}'
        prox = state.children[name] = Proxy(state.transport, state.strategy, new_path)
    return prox


def invoke(node: Proxy, /, *args: Any) -> Any:
    """Call the remote method a proxy stands for with its bound strategy.

    Raises:
        ValueError: If the proxy is a root (has no path).
    """
    state = _state(node)
    if not state.path:
        raise ValueError('cannot invoke the root of a remote path proxy')
    return state.strategy(state.transport, state.path, *args)


def path(node: Proxy, /) -> Optional[str]:
    """The dotted path a proxy stands for (``None`` for the root)."""
    return _state(node).path


def proxy(transport: Any, strategy: Strategy = call, /) -> Proxy:
    """Build the root of a remote path proxy.

    Parameters:
        transport: The transport every call through this proxy uses.
        strategy: Performs the calls. Defaults to the blocking
            :func:`tango.protocol.call`. To use a non-default serializer, bind it with
            :func:`functools.partial`.
    """
    return Proxy(transport, strategy)
