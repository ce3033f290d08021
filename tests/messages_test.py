from __future__ import annotations

import json
import sys
from typing import Any

import pytest

from callrelay.messages import AnswerRequest
from callrelay.messages import CallAnswered
from callrelay.messages import CallEnded
from callrelay.messages import CallError
from callrelay.messages import CallRequest
from callrelay.messages import decode_frame
from callrelay.messages import decode_inbound
from callrelay.messages import decode_outbound
from callrelay.messages import encode
from callrelay.messages import EndCallRequest
from callrelay.messages import ErrorResponse
from callrelay.messages import IceCandidate
from callrelay.messages import IceCandidateRequest
from callrelay.messages import IncomingCall
from callrelay.messages import Message
from callrelay.messages import MessageDecodeError
from callrelay.messages import MessageEncodeError
from callrelay.messages import parse_inbound
from callrelay.messages import parse_outbound
from callrelay.messages import Registered
from callrelay.messages import RegisterRequest
from callrelay.messages import to_data

OFFER = {'type': 'offer', 'sdp': 'v=0\r\no=- 4611731400430051336 2 IN IP4'}


@pytest.mark.parametrize(
    ('event', 'data', 'expected'),
    (
        ('register', {'userId': 'alice'}, RegisterRequest('alice')),
        ('register', 'alice', RegisterRequest('alice')),
        (
            'call',
            {'to': 'bob', 'offer': OFFER, 'callerName': 'Alice'},
            CallRequest('bob', OFFER, 'Alice'),
        ),
        ('call', {'to': 'bob', 'offer': None}, CallRequest('bob', None)),
        (
            'answer',
            {'to': 'alice', 'answer': {'sdp': '...'}},
            AnswerRequest('alice', {'sdp': '...'}),
        ),
        (
            'ice-candidate',
            {'to': 'alice', 'candidate': {'candidate': 'candidate:1'}},
            IceCandidateRequest('alice', {'candidate': 'candidate:1'}),
        ),
        ('end-call', {'to': 'alice'}, EndCallRequest('alice')),
        ('register', {'userId': ''}, RegisterRequest('')),
        ('end-call', {'to': ''}, EndCallRequest('')),
    ),
)
def test_parse_inbound(event: str, data: Any, expected: Message) -> None:
    assert parse_inbound(event, data) == expected


def test_parse_inbound_ignores_client_supplied_from() -> None:
    message = parse_inbound(
        'call',
        {'to': 'bob', 'offer': OFFER, 'from': 'mallory', 'extra': 1},
    )
    assert message == CallRequest('bob', OFFER)


@pytest.mark.parametrize(
    ('event', 'data', 'match'),
    (
        ('dial', {'to': 'bob'}, 'Unknown event type'),
        ('incoming-call', {'from': 'bob', 'offer': OFFER}, 'Unknown event'),
        (None, {}, 'Unknown event type'),
        (['register'], {}, 'Unknown event type'),
        ('register', {}, 'missing the "userId" field'),
        ('register', {'userId': 42}, 'must be a string user id'),
        ('register', None, 'must be an object'),
        ('call', {'offer': OFFER}, 'missing the "to" field'),
        ('call', {'to': 'bob'}, 'missing the "offer" field'),
        (
            'call',
            {'to': 'bob', 'offer': OFFER, 'callerName': 3},
            '"callerName" of "call" must be a string',
        ),
        ('answer', {'to': 'alice'}, 'missing the "answer" field'),
        ('ice-candidate', {'to': 'alice'}, 'missing the "candidate" field'),
        ('end-call', {}, 'missing the "to" field'),
        ('end-call', ['alice'], 'must be an object'),
    ),
)
def test_parse_inbound_malformed(event: Any, data: Any, match: str) -> None:
    with pytest.raises(MessageDecodeError, match=match):
        parse_inbound(event, data)


@pytest.mark.parametrize(
    'message',
    (
        Registered('alice'),
        IncomingCall('alice', OFFER, 'Alice'),
        IncomingCall('alice', OFFER),
        CallAnswered({'sdp': '...'}),
        IceCandidate({'candidate': 'candidate:1', 'sdpMLineIndex': 0}),
        CallEnded(),
        CallError('User not available'),
        ErrorResponse('BadRequestError: oops'),
    ),
)
def test_encode_decode_outbound(message: Message) -> None:
    assert decode_outbound(encode(message)) == message


def test_encode_wire_format() -> None:
    message = IncomingCall('alice', OFFER, 'Alice')
    assert json.loads(encode(message)) == {
        'event': 'incoming-call',
        'data': {'from': 'alice', 'offer': OFFER, 'callerName': 'Alice'},
    }
    assert json.loads(encode(CallEnded())) == {
        'event': 'call-ended',
        'data': {},
    }


def test_to_data_uses_wire_names() -> None:
    assert to_data(RegisterRequest('alice')) == {'userId': 'alice'}
    assert to_data(CallRequest('bob', OFFER)) == {
        'to': 'bob',
        'offer': OFFER,
        'callerName': None,
    }


def test_decode_inbound() -> None:
    frame = json.dumps({'event': 'register', 'data': {'userId': 'alice'}})
    assert decode_inbound(frame) == RegisterRequest('alice')
    assert decode_inbound(encode(EndCallRequest('bob'))) == EndCallRequest(
        'bob',
    )


def test_decode_outbound_call_ended_without_data() -> None:
    assert decode_outbound('{"event": "call-ended"}') == CallEnded()


@pytest.mark.parametrize(
    ('frame', 'match'),
    (
        ('not json', 'Failed to load string as JSON'),
        ('["register", "alice"]', 'must be a JSON object'),
        ('{"data": {}}', 'does not contain a string event key'),
        ('{"event": 1, "data": {}}', 'does not contain a string event key'),
    ),
)
def test_decode_frame_errors(frame: str, match: str) -> None:
    with pytest.raises(MessageDecodeError, match=match):
        decode_frame(frame)


def test_decode_frame_deeply_nested() -> None:
    depth = 200_000
    offer = '[' * depth + ']' * depth
    frame = f'{{"event": "call", "data": {{"to": "bob", "offer": {offer}}}}}'
    with pytest.raises(MessageDecodeError, match='Failed to load string'):
        decode_frame(frame)


@pytest.mark.skipif(
    getattr(sys, 'get_int_max_str_digits', lambda: 0)() == 0,
    reason='Interpreter has no integer string conversion limit.',
)
def test_decode_frame_integer_over_digit_limit() -> None:
    digits = '1' * (sys.get_int_max_str_digits() + 700)
    frame = f'{{"event": "call", "data": {{"to": "bob", "offer": {digits}}}}}'
    with pytest.raises(MessageDecodeError, match='Failed to load string'):
        decode_frame(frame)


def test_decode_frame_missing_data() -> None:
    assert decode_frame('{"event": "end-call"}') == ('end-call', None)


def test_parse_outbound_unknown_event() -> None:
    with pytest.raises(MessageDecodeError, match='Unknown event type'):
        parse_outbound('call', {'to': 'bob', 'offer': OFFER})


def test_encode_errors() -> None:
    with pytest.raises(MessageEncodeError, match='Got object'):
        encode(object())  # type: ignore[arg-type]

    with pytest.raises(MessageEncodeError, match='Got Message'):
        encode(Message())

    with pytest.raises(MessageEncodeError, match='Error encoding message'):
        encode(CallAnswered(answer=object()))
