import collections
import types

import pytest

from tango.exception import NotInvocableError, PathResolutionError
from tango.namespace import Handler, check_method_name, is_namespace, lookup, resolve, route
from testcode import calc


class Greeter(Handler):
    @route
    def hello(self, name: str) -> str:
        return f'hello, {name}'

    @route('import')
    def import_(self):
        return 'imported'

    @route
    async def wait(self):
        return 'waited'

    def private(self):
        return 'private'


def test_route_names():
    greeter = Greeter()
    assert set(greeter.remote_methods) == {'hello', 'import', 'wait'}
    assert greeter.remote_methods['hello']('world') == 'hello, world'
    assert Greeter.hello.__remote__ == 'hello'
    assert Greeter.import_.__remote__ == 'import'


@pytest.mark.parametrize('name', ['', 'a.b', 'with space', 'dash-name'])
def test_route_bad_name(name):
    with pytest.raises(ValueError):
        route(name)


def test_is_namespace():
    assert is_namespace({})
    assert is_namespace(Greeter())
    assert is_namespace(calc)
    assert not is_namespace(calc.add)
    assert not is_namespace([calc.add])


def test_lookup_mapping():
    assert lookup({'a': 1}, 'a') == 1
    with pytest.raises(KeyError):
        lookup({'a': 1}, 'b')
    with pytest.raises(KeyError):
        lookup(calc.add, 'a')


def test_lookup_handler():
    greeter = Greeter()
    assert lookup(greeter, 'import')() == 'imported'
    for name in ['private', 'import_', 'remote_methods', '__init__']:
        with pytest.raises(KeyError):
            lookup(greeter, name)


def test_lookup_module():
    assert lookup(calc, 'add') is calc.add
    for name in ['hidden', 'Tally', 'asyncio', '__name__', 'missing']:
        with pytest.raises(KeyError):
            lookup(calc, name)
    module = types.ModuleType('exposed')
    module.visible, module._invisible = 1, 2
    assert lookup(module, 'visible') == 1
    with pytest.raises(KeyError):
        lookup(module, '_invisible')


def test_resolve():
    namespace = {'math': {'add': calc.add}, 'greeter': Greeter(), 'calc': calc}
    assert resolve(namespace, 'math.add') is calc.add
    assert resolve(namespace, 'greeter.hello')('you') == 'hello, you'
    assert resolve(namespace, 'calc.math.nested.tally.incr') == calc.tally.incr
    assert resolve(namespace, '.math..add.') is calc.add
    assert resolve(namespace, 'math/add') is calc.add


def test_resolve_invalid_path():
    namespace = {'math': {'add': calc.add, 'pi': 3.14}}
    for method_name in ['math.missing', 'missing', 'math.add.extra', 'math.pi.real']:
        with pytest.raises(PathResolutionError) as excinfo:
            resolve(namespace, method_name)
        assert str(excinfo.value) == 'tango server path invalid:' + method_name
        assert excinfo.value.context['method'] == method_name


def test_resolve_not_invocable():
    namespace = {'math': {'pi': 3.14}}
    for method_name in ['math.pi', 'math', '', '...']:
        with pytest.raises(NotInvocableError) as excinfo:
            resolve(namespace, method_name)
        assert str(excinfo.value) == 'tango server path no function:' + method_name


def test_check_method_name():
    assert check_method_name('a') == 'a'
    assert check_method_name('a.b_c.D9') == 'a.b_c.D9'
    for method_name in ['', '.', 'a.', '.a', 'a..b', 'a b', 'a-b', None, 5]:
        with pytest.raises(ValueError):
            check_method_name(method_name)


def test_resolve_lookup_raises():
    namespace = {'broken': calc.BrokenNamespace()}
    with pytest.raises(PathResolutionError) as excinfo:
        resolve(namespace, 'broken.x')
    assert str(excinfo.value) == 'tango server path invalid:broken.x'
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    module = types.ModuleType('lazy')

    def module_getattr(name):
        raise RuntimeError(f'cannot load {name}')

    module.__getattr__ = module_getattr
    with pytest.raises(PathResolutionError):
        resolve({'lazy': module}, 'lazy.x')


def test_lookup_does_not_insert_keys():
    namespace = collections.defaultdict(dict, {'math': {'add': calc.add}})
    with pytest.raises(PathResolutionError):
        resolve(namespace, 'nope.x')
    assert list(namespace) == ['math']
