"""Command-line interface and configuration.

Every option can also be set through an environment variable named after the command
path and the option, such as ``TANGO_LOG_LEVEL`` or ``TANGO_SERVE_WORKERS``. A YAML file
passed with ``--config`` provides defaults for any option, nested by command:

.. code-block:: yaml

    log_level: debug
    serializer: json
    serve:
      bindings: ['tcp://*:6000']
      workers: 4
    call:
      connections: ['tcp://localhost:6000']

Explicit command-line options and environment variables take priority over the file.
"""

import contextlib
import functools
import importlib
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, Optional, Union

import click
import orjson as json
import uvloop
import yaml
import zmq

import tango

from . import log
from .exception import InvocationError, TransportError
from .namespace import is_namespace
from .protocol import call, notify
from .serialization import SERIALIZERS, get_serializer
from .server import Server
from .transport import SocketTransport

__all__ = [
    'check_positive',
    'cli',
    'import_namespace',
    'load_yaml',
    'make_converter',
    'make_multipart_parser',
    'parse_argument',
    'to_int_or_bytes',
]

ParameterCallback = Callable[[click.Context, click.Parameter, Any], Any]


@functools.lru_cache(maxsize=64)
def make_converter(convert: Callable[[Any], Any]) -> ParameterCallback:
    """Make a :mod:`click` callback that applies a conversion to each option value.

    Works with options provided multiple times (where ``multiple=True``) and with
    variadic arguments (where ``nargs=-1``).

    Parameters:
        convert: A unary conversion callable. The argument/return types are arbitrary
            and need not be the same.

    Returns:
        A :mod:`click`-compatible callback.
    """

    def callback(_ctx: click.Context, _param: click.Parameter, value: Any, /) -> Any:
        try:
            if isinstance(value, (tuple, list)):
                return tuple(convert(element) for element in value)
            return convert(value)
        except Exception as exc:
            raise click.BadParameter(str(exc)) from exc

    return callback


def make_multipart_parser(
    *converters: Callable[[str], Any],
    delimeter: str = ':',
) -> ParameterCallback:
    """Make a :mod:`click` callback that parses a tuple-like multipart option.

    Examples:
        >>> make_multipart_parser()
        Traceback (most recent call last):
          ...
        ValueError: not enough converters
        >>> convert = make_multipart_parser(str, int)
        >>> convert(None, None, 'RCVTIMEO')
        Traceback (most recent call last):
          ...
        click.exceptions.BadParameter: not enough or too many parts provided
        >>> convert(None, None, 'RCVTIMEO:1000')
        ('RCVTIMEO', 1000)
    """
    if not converters:
        raise ValueError('not enough converters')

    def convert(element: str) -> Iterator[Any]:
        components = element.split(delimeter, maxsplit=len(converters) - 1)
        if len(components) != len(converters):
            raise click.BadParameter('not enough or too many parts provided')
        for i, (converter, component) in enumerate(zip(converters, components)):
            try:
                yield converter(component)
            except Exception as exc:
                raise click.BadParameter(f'failed to parse part {i+1}: {exc}') from exc

    return make_converter(lambda value: tuple(convert(value)))


def to_int_or_bytes(value: str) -> Union[int, bytes]:
    r"""Parse a socket option value as either an integer or a bytestring.

    Examples:
        >>> to_int_or_bytes('1000')
        1000
        >>> to_int_or_bytes('-1')
        -1
        >>> to_int_or_bytes('a0')
        b'\xa0'
        >>> to_int_or_bytes("'1212'")  # Note the disambiguation
        b'\x12\x12'
    """
    try:
        return int(value)
    except ValueError:
        return bytes.fromhex(value.removeprefix("'").removesuffix("'"))


def get_zmq_option(name: str) -> int:
    """Look up a ZMQ socket option symbol by its case-insensitive name.

    Example:
        >>> get_zmq_option('rcvtimeo') == zmq.RCVTIMEO
        True
    """
    option = getattr(zmq, name.upper(), None)
    if not isinstance(option, int):
        raise ValueError(f'{name!r} is not a ZMQ socket option')
    return option


def check_positive(value: float) -> float:
    """Check whether the provided value is strictly positive.

    Examples:
        >>> check_positive(0.01)
        0.01
        >>> check_positive(0)
        Traceback (most recent call last):
          ...
        ValueError: '0' should be a positive number
    """
    if value <= 0:
        raise ValueError(f"'{value}' should be a positive number")
    return value


def load_yaml(path: Union[str, Path]) -> Any:
    """Read and parse a YAML file.

    Parameters:
        path: A path to a valid regular text file.

    Examples:
        >>> import tempfile
        >>> with tempfile.NamedTemporaryFile(mode='w') as tmp:
        ...     print('serve: {workers: 2}', file=tmp)
        ...     _ = tmp.seek(0)
        ...     load_yaml(tmp.name)
        {'serve': {'workers': 2}}
    """
    try:
        with Path(path).open() as stream:
            return yaml.load(stream, Loader=yaml.SafeLoader)
    except yaml.YAMLError as exc:
        message = f'Unable to parse YAML ({path})'
        mark = getattr(exc, 'problem_mark', None)
        if mark:  # pragma: no cover
            message += f': line {mark.line + 1}, column {mark.column + 1}'
        raise ValueError(message) from exc


def load_config(
    ctx: click.Context,
    _param: click.Parameter,
    value: Optional[str],
) -> None:
    """Install a YAML config file as the default map of the root context."""
    if not value:
        return
    try:
        config = load_yaml(value) or {}
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if not isinstance(config, dict):
        raise click.BadParameter('config file must contain a mapping')
    ctx.default_map = (ctx.default_map or {}) | config


def import_namespace(target: str) -> Any:
    """Import the namespace to serve.

    Parameters:
        target: Either a module name (``package.module``) or a module name and an
            attribute path separated by a colon (``package.module:attr.subattr``).

    Raises:
        ValueError: If the target cannot be imported or is not a namespace.

    Examples:
        >>> import_namespace('operator').__name__
        'operator'
        >>> import_namespace('operator:add')
        Traceback (most recent call last):
          ...
        ValueError: 'operator:add' is not a namespace (mapping, handler, or module)
    """
    module_name, _, attrs = target.partition(':')
    try:
        namespace = importlib.import_module(module_name)
        if attrs:
            namespace = functools.reduce(getattr, attrs.split('.'), namespace)
    except (ImportError, AttributeError) as exc:
        raise ValueError(f'unable to import {target!r}: {exc}') from exc
    if not is_namespace(namespace):
        raise ValueError(f'{target!r} is not a namespace (mapping, handler, or module)')
    return namespace


def parse_argument(value: str) -> Any:
    """Parse a positional argument as JSON, falling back to the raw string.

    Examples:
        >>> parse_argument('[1, 2.5, true]')
        [1, 2.5, True]
        >>> parse_argument('hello')
        'hello'
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


SOCKET_OPTION = dict(
    callback=make_multipart_parser(get_zmq_option, to_int_or_bytes),
    metavar='OPTION:VALUE',
    multiple=True,
    help='ZMQ socket options.',
)


@click.group(
    context_settings=dict(
        auto_envvar_prefix='TANGO',
        max_content_width=100,
        show_default=True,
    ),
)
@click.option(
    '--config',
    type=click.Path(dir_okay=False, exists=True),
    callback=load_config,
    is_eager=True,
    expose_value=False,
    help='YAML file providing option defaults.',
)
@click.option(
    '--log-level',
    type=click.Choice(log.LEVELS, case_sensitive=False),
    default='info',
    help='Minimum severity of log records displayed.',
)
@click.option(
    '--log-format',
    type=click.Choice(['json', 'pretty'], case_sensitive=False),
    default='json',
    help='Format of records printed to standard output.',
)
@click.option(
    '--serializer',
    type=click.Choice(sorted(SERIALIZERS), case_sensitive=False),
    default='cbor',
    callback=make_converter(get_serializer),
    help='Message serialization format. Clients and servers must agree.',
)
@click.version_option(version=tango.__version__, message='%(version)s')
@click.pass_context
def cli(ctx: click.Context, **options: Any) -> None:
    """A small remote procedure call framework.

    Serve a namespace of Python callables, or call methods on a running server.
    """
    log.configure(fmt=options['log_format'].lower(), level=options['log_level'])
    ctx.ensure_object(dict).update(options)


async def _serve(namespace: Any, options: dict[str, Any]) -> None:
    server = Server(
        namespace,
        frozenset(options['bindings']),
        concurrency=options['workers'],
        timeout=options['timeout'],
        serializer=options['serializer'],
        options=dict(options['socket_options']),
    )
    async with server:
        await server.serve_forever()


@cli.command()
@click.option(
    '--bind',
    'bindings',
    metavar='ADDRESS',
    multiple=True,
    default=['tcp://*:6000'],
    help='Addresses to bind to.',
)
@click.option(
    '--workers',
    type=int,
    callback=make_converter(check_positive),
    default=5,
    help='Number of requests processed concurrently.',
)
@click.option(
    '--timeout',
    type=float,
    callback=make_converter(check_positive),
    default=30,
    help='Seconds a method may run for.',
)
@click.option('--socket-option', 'socket_options', **SOCKET_OPTION)
@click.argument('namespace', callback=make_converter(import_namespace))
@click.pass_context
def serve(ctx: click.Context, namespace: Any, **options: Any) -> None:
    """Serve NAMESPACE, given as "package.module" or "package.module:attribute".

    \b
        $ tango serve --bind tcp://*:6000 operator
        $ tango call --address tcp://localhost:6000 add 2 3
        5
    """
    options = ctx.obj | options
    with contextlib.suppress(KeyboardInterrupt):
        uvloop.run(_serve(namespace, options))


@cli.command(name='call')
@click.option(
    '--address',
    'connections',
    metavar='ADDRESS',
    multiple=True,
    default=['tcp://localhost:6000'],
    help='Server addresses to connect to.',
)
@click.option('--notification/--no-notification', help='Send a one-way notification.')
@click.option(
    '--socket-option',
    'socket_options',
    **(SOCKET_OPTION | {'default': ['SNDTIMEO:1000', 'RCVTIMEO:5000', 'LINGER:1000']}),
)
@click.argument('method')
@click.argument('arguments', nargs=-1, callback=make_converter(parse_argument))
@click.pass_context
def call_cli(ctx: click.Context, **options: Any) -> None:
    """Call METHOD with ARGUMENTS (each parsed as JSON) and print the result as JSON."""
    options = ctx.obj | options
    strategy = notify if options['notification'] else call
    logger = log.get_logger().bind(method=options['method'])
    transport = SocketTransport(
        frozenset(options['connections']),
        options=dict(options['socket_options']),
    )
    with transport:
        try:
            result = strategy(
                transport,
                options['method'],
                *options['arguments'],
                serializer=options['serializer'],
            )
        except (InvocationError, TransportError, ValueError) as exc:
            logger.error('Remote call failed', exc_info=exc)
            ctx.exit(1)
    if not options['notification']:
        click.echo(json.dumps(result, default=repr))


def main() -> None:
    cli(prog_name='tango')  # pylint: disable=no-value-for-parameter
