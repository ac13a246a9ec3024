"""Namespaces of remotely callable methods.

A namespace is a tree whose interior nodes map segment names to children and whose
leaves are callables. The dispatcher walks the tree one segment of a dotted method name
at a time. These objects act as interior nodes:

* Any :class:`collections.abc.Mapping`. Its keys are the children's names.
* A :class:`Handler` instance. Its :func:`route`-decorated methods are its children.
* A module. If the module defines ``__all__``, only those names are children. Otherwise,
  every attribute not starting with an underscore is a child.

Warning:
    Exposing a module without ``__all__`` also exposes the modules it imports. Only
    expose what remote callers may execute.
"""

import functools
import inspect
import types
import typing
from collections.abc import Callable, Mapping
from typing import Any, Protocol, Union

from .envelope import METHOD_NAME, NOT_INVOCABLE, PATH_INVALID, SEGMENT
from .exception import NotInvocableError, PathResolutionError

# isort: unique-list
__all__ = [
    'Handler',
    'RemoteMethod',
    'check_method_name',
    'is_namespace',
    'lookup',
    'resolve',
    'route',
]

Method = Callable[..., Any]


class RemoteMethod(Protocol):
    """A remotely callable method (any signature, any return value)."""

    __remote__: str

    def __call__(self, /, *args: Any, **kwargs: Any) -> Any:
        ...


def _check_segment(name: str, /) -> str:
    if not SEGMENT.fullmatch(name):
        raise ValueError(f'{name!r} is not a valid method name segment')
    return name


@typing.overload
def route(method_or_name: str, /) -> Callable[[Method], RemoteMethod]:
    ...


@typing.overload
def route(method_or_name: Method, /) -> RemoteMethod:
    ...


def route(
    method_or_name: Union[str, Method],
    /,
) -> Union[RemoteMethod, Callable[[Method], RemoteMethod]]:
    """Decorator for marking a method of a :class:`Handler` as remotely callable.

    Parameters:
        method_or_name: Either the method to be registered or the name it should be
            registered under. If the former, the method name is exposed. The latter is
            useful for exposing a name that clashes with a Python keyword or builtin.

    Returns:
        Either an identity decorator (if a name was provided) or the method provided.

    Raises:
        ValueError: If the name is not a single segment (letters, digits, underscores).
    """
    if isinstance(method_or_name, str):
        name = _check_segment(method_or_name)

        def decorator(method: Callable[..., Any]) -> RemoteMethod:
            remote_method = typing.cast(RemoteMethod, method)
            remote_method.__remote__ = name
            return remote_method

        return decorator
    remote_method = typing.cast(RemoteMethod, method_or_name)
    remote_method.__remote__ = _check_segment(method_or_name.__name__)
    return remote_method


class Handler:
    """An object whose routed methods form one level of a namespace.

    Define a handler by subclassing :class:`Handler` and applying the :func:`route`
    decorator:

    >>> class Calculator(Handler):
    ...     @route
    ...     def add(self, a, b):
    ...         return a + b
    ...     @route('pow')
    ...     async def power(self, a, b):
    ...         return a ** b
    >>> sorted(Calculator().remote_methods)
    ['add', 'pow']

    Handlers nest inside other namespace nodes, such as ``{'calc': Calculator()}``.
    """

    @functools.cached_property
    def remote_methods(self) -> dict[str, types.MethodType]:
        """A mapping of exposed names to (possibly coroutine) bound methods."""
        # Need to use the class to avoid calling `getattr(...)` on this property.
        # Accessing bound methods directly can lead to infinite recursion.
        funcs = inspect.getmembers(self.__class__, inspect.isfunction)
        funcs = [(attr, func) for attr, func in funcs if hasattr(func, '__remote__')]
        return {func.__remote__: getattr(self, attr) for attr, func in funcs}


def is_namespace(node: Any, /) -> bool:
    """Whether the dispatcher can descend into this node."""
    return isinstance(node, (Mapping, Handler, types.ModuleType))


def lookup(node: Any, segment: str, /) -> Any:
    """Get the child of a namespace node.

    Raises:
        KeyError: If the node is not a namespace or has no such child.
    """
    if isinstance(node, Mapping):
        if segment in node:
            return node[segment]
        raise KeyError(segment)
    if isinstance(node, Handler):
        return node.remote_methods[segment]
    if isinstance(node, types.ModuleType):
        exported = getattr(node, '__all__', None)
        if exported is not None:
            visible = segment in exported
        else:
            visible = not segment.startswith('_')
        if visible and hasattr(node, segment):
            return getattr(node, segment)
    raise KeyError(segment)


def resolve(namespace: Any, method_name: str, /) -> Callable[..., Any]:
    """Resolve a dotted method name to a callable.

    The method name is split into segments matching :data:`tango.envelope.SEGMENT`.
    Characters between segments are ignored, so ``'math.add'`` and ``'math/add'``
    resolve identically.

    Parameters:
        namespace: The root namespace node.
        method_name: The dotted method name.

    Raises:
        PathResolutionError: If some segment does not name a child of a namespace node,
            or looking up the child raised an exception.
        NotInvocableError: If the member the path resolves to is not callable.

    Example:
        >>> import math
        >>> resolve({'math': {'floor': math.floor}}, 'math.floor')(2.5)
        2
    """
    node = namespace
    for segment in SEGMENT.findall(method_name):
        try:
            node = lookup(node, segment)
        except Exception as exc:  # pylint: disable=broad-except; runs user code
            raise PathResolutionError(
                PATH_INVALID + method_name,
                method=method_name,
                segment=segment,
            ) from exc
    if not callable(node):
        raise NotInvocableError(NOT_INVOCABLE + method_name, method=method_name)
    return node


def check_method_name(method_name: str, /) -> str:
    """Check that a method name is a nonempty dotted sequence of segments.

    Raises:
        ValueError: If the method name is malformed.

    Example:
        >>> check_method_name('math.add')
        'math.add'
        >>> check_method_name('math..add')
        Traceback (most recent call last):
          ...
        ValueError: 'math..add' is not a valid method name
    """
    if not isinstance(method_name, str) or not METHOD_NAME.fullmatch(method_name):
        raise ValueError(f'{method_name!r} is not a valid method name')
    return method_name
