import pytest

from tango.envelope import (
    Outcome,
    Request,
    RequestKind,
    describe_exception,
    parse_response,
    unwrap_results,
)
from tango.exception import MalformedMessageError


def test_request_kind_values():
    assert RequestKind.CALL == 1
    assert RequestKind.NOTIFICATION == 2


def test_request_envelope():
    request = Request('math.add', RequestKind.CALL, (2, 3))
    assert request.envelope() == ['math.add', 1, 2, 3]
    assert not request.notification
    assert Request.from_envelope(request.envelope()) == request
    notification = Request.from_envelope(('log.write', 2))
    assert notification.notification
    assert notification.args == ()


@pytest.mark.parametrize('envelope', [
    None,
    5,
    'math.add',
    b'math.add',
    {'method': 'math.add'},
    [],
    ['math.add'],
    [1, RequestKind.CALL],
    ['math.add', 3],
    ['math.add', 0],
    ['math.add', True],
    ['math.add', 'call'],
    ['math.add', [1]],
])
def test_malformed_request(envelope):
    with pytest.raises(MalformedMessageError):
        Request.from_envelope(envelope)


def test_malformed_request_is_value_error():
    with pytest.raises(ValueError):
        Request.from_envelope([])


def test_outcome_success():
    assert Outcome.success().envelope() == [True]
    assert Outcome.success(None).envelope() == [True]
    assert Outcome.success(5).envelope() == [True, 5]
    assert Outcome.success((1, 'a')).envelope() == [True, 1, 'a']
    assert Outcome.success(()).envelope() == [True]
    assert Outcome.success([1, 2]).envelope() == [True, [1, 2]]
    with pytest.raises(ValueError):
        Outcome.success(1).error


def test_outcome_failure():
    outcome = Outcome.failure('ValueError: bad')
    assert not outcome.ok
    assert outcome.error == 'ValueError: bad'
    assert outcome.envelope() == [False, 'ValueError: bad']


def test_describe_exception():
    assert describe_exception(KeyError('x')) == "KeyError: 'x'"
    assert describe_exception(RuntimeError()) == 'RuntimeError'
    assert describe_exception(ValueError('a b')) == 'ValueError: a b'


def test_parse_response():
    assert parse_response([True]) == Outcome(True, [])
    assert parse_response([True, 1, 2]) == Outcome(True, [1, 2])
    assert parse_response((False, 'error')) == Outcome(False, ['error'])
    for envelope in [None, 'true', [], [1, 2], [None], [False], [False, 'a', 'b']]:
        with pytest.raises(MalformedMessageError):
            parse_response(envelope)


def test_unwrap_results():
    assert unwrap_results([]) is None
    assert unwrap_results([[]]) == []
    assert unwrap_results([None]) is None
    assert unwrap_results(['a']) == 'a'
    assert unwrap_results([1, 2, 3]) == (1, 2, 3)


@pytest.mark.skipif(not hasattr(BaseException, 'add_note'), reason='notes require 3.11+')
def test_describe_exception_with_notes():
    exc = ValueError('bad input')
    exc.add_note('while parsing row 3')
    assert describe_exception(exc) == 'ValueError: bad input'
