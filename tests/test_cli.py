import pytest
import zmq
from click.testing import CliRunner

import tango
from tango.cli import cli
from tango.exception import InvocationError
from tango.serialization import DEFAULT_SERIALIZER, JSONSerializer
from testcode import calc

ADDR = 'ipc:///tmp/tango-cli.ipc'


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def serve(mocker):
    mocker.patch('uvloop.run')
    return mocker.patch('tango.cli._serve')


@pytest.fixture
def remote_call(mocker):
    return mocker.patch('tango.cli.call', return_value=[1, 'a'])


def test_help(runner):
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    assert 'serve' in result.output
    assert 'call' in result.output


def test_version(runner):
    result = runner.invoke(cli, ['--version'])
    assert result.exit_code == 0
    assert result.output.strip() == tango.__version__


def test_call(runner, remote_call):
    result = runner.invoke(cli, ['call', '--address', ADDR, 'math.add', '2', '"3"', 'x', '[1]'])
    assert result.exit_code == 0
    assert result.output.strip().splitlines()[-1] == '[1,"a"]'
    transport, method_name, *args = remote_call.call_args.args
    assert method_name == 'math.add'
    assert args == [2, '3', 'x', [1]]
    assert transport.connections == frozenset({ADDR})
    assert transport.options[zmq.RCVTIMEO] == 5000
    assert transport.closed
    assert remote_call.call_args.kwargs['serializer'] is DEFAULT_SERIALIZER


def test_notification(runner, mocker, remote_call):
    notify = mocker.patch('tango.cli.notify', return_value=None)
    result = runner.invoke(cli, ['call', '--address', ADDR, '--notification', 'log.write', 'hi'])
    assert result.exit_code == 0
    assert result.output == ''
    remote_call.assert_not_called()
    assert notify.call_args.args[1:] == ('log.write', 'hi')


def test_call_failure(runner, mocker):
    error = InvocationError('tango server path invalid:math.missing', method='math.missing')
    mocker.patch('tango.cli.call', side_effect=error)
    args = ['--log-format', 'pretty', 'call', '--address', ADDR, 'math.missing']
    result = runner.invoke(cli, args)
    assert result.exit_code == 1
    assert 'Remote call failed' in result.output


def test_call_options(runner, remote_call):
    args = ['--serializer', 'JSON', 'call', '--address', ADDR]
    result = runner.invoke(cli, [*args, '--socket-option', 'rcvtimeo:10', 'a'])
    assert result.exit_code == 0
    transport = remote_call.call_args.args[0]
    assert transport.options == {zmq.RCVTIMEO: 10}
    assert isinstance(remote_call.call_args.kwargs['serializer'], JSONSerializer)
    for bad_option in ['rcvtimeo', 'notanoption:1', 'linger:zz']:
        result = runner.invoke(cli, ['call', '--socket-option', bad_option, 'a'])
        assert result.exit_code == 2


def test_environment(runner, remote_call):
    env = {
        'TANGO_CALL_CONNECTIONS': f'{ADDR} ipc:///tmp/tango-cli-2.ipc',
        'TANGO_SERIALIZER': 'json',
    }
    result = runner.invoke(cli, ['call', 'a'], env=env)
    assert result.exit_code == 0
    transport = remote_call.call_args.args[0]
    assert transport.connections == frozenset({ADDR, 'ipc:///tmp/tango-cli-2.ipc'})
    assert isinstance(remote_call.call_args.kwargs['serializer'], JSONSerializer)


def test_config_file(runner, remote_call, serve, tmp_path):
    config = tmp_path / 'tango.yaml'
    config.write_text(
        'serializer: json\n'
        'call:\n'
        f'  connections: [{ADDR}]\n'
        'serve:\n'
        '  workers: 2\n'
        '  bindings: [ipc:///tmp/tango-serve.ipc]\n'
    )
    result = runner.invoke(cli, ['--config', str(config), 'call', 'a'])
    assert result.exit_code == 0
    assert remote_call.call_args.args[0].connections == frozenset({ADDR})
    result = runner.invoke(cli, ['--config', str(config), 'serve', 'testcode.calc'])
    assert result.exit_code == 0
    _namespace, options = serve.call_args.args
    assert options['workers'] == 2
    assert options['bindings'] == ('ipc:///tmp/tango-serve.ipc',)
    assert isinstance(options['serializer'], JSONSerializer)


def test_bad_config_file(runner, tmp_path):
    config = tmp_path / 'tango.yaml'
    config.write_text('- not\n- a mapping\n')
    result = runner.invoke(cli, ['--config', str(config), 'call', 'a'])
    assert result.exit_code == 2
    config.write_text('serve: [unclosed\n')
    result = runner.invoke(cli, ['--config', str(config), 'call', 'a'])
    assert result.exit_code == 2


def test_serve(runner, serve):
    args = ['serve', '--bind', ADDR, '--workers', '3', '--timeout', '1.5', 'testcode.calc:math']
    result = runner.invoke(cli, args)
    assert result.exit_code == 0
    namespace, options = serve.call_args.args
    assert namespace is calc.math
    assert options['bindings'] == (ADDR,)
    assert options['workers'] == 3
    assert options['timeout'] == 1.5
    assert options['serializer'] is DEFAULT_SERIALIZER
    result = runner.invoke(cli, ['serve', 'testcode.calc'])
    assert result.exit_code == 0
    assert serve.call_args.args[0] is calc


@pytest.mark.parametrize('args', [
    ['serve', 'testcode.calc:add'],
    ['serve', 'testcode.missing'],
    ['serve', 'testcode.calc:missing'],
    ['serve', '--workers', '0', 'testcode.calc'],
    ['serve', '--timeout', '-1', 'testcode.calc'],
    ['--log-level', 'verbose', 'serve', 'testcode.calc'],
    ['--serializer', 'pickle', 'serve', 'testcode.calc'],
])
def test_serve_bad_arguments(runner, serve, args):
    result = runner.invoke(cli, args)
    assert result.exit_code == 2
    serve.assert_not_called()
