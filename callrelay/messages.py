"""Message types exchanged between relay clients and the relay server.

Every message is sent over the wire as a JSON object of the form
`#!json {"event": "<name>", "data": {...}}`. Payload keys use the camelCase
names of the signaling vocabulary (e.g., `userId`, `callerName`), while the
Python attributes use snake_case.

The set of messages is closed: inbound events that do not match one of the
five inbound message types are rejected rather than ignored.
"""
from __future__ import annotations

import dataclasses
import json
from typing import Any
from typing import ClassVar
from typing import TypeVar

_USER_ID = 'user_id'
_TEXT = 'text'
_OPAQUE = 'opaque'

MessageT = TypeVar('MessageT', bound='Message')


def _field(alias: str, kind: str, **kwargs: Any) -> Any:
    return dataclasses.field(metadata={'alias': alias, 'kind': kind}, **kwargs)


@dataclasses.dataclass
class Message:
    """Base message."""

    event: ClassVar[str] = ''


@dataclasses.dataclass
class InboundMessage(Message):
    """Base type of messages sent by clients to the relay server."""

    pass


@dataclasses.dataclass
class OutboundMessage(Message):
    """Base type of messages sent by the relay server to clients."""

    pass


@dataclasses.dataclass
class RegisterRequest(InboundMessage):
    """Bind a user id to the sending connection.

    Attributes:
        user_id: User id to register.
    """

    event: ClassVar[str] = 'register'

    user_id: str = _field('userId', _USER_ID)


@dataclasses.dataclass
class CallRequest(InboundMessage):
    """Start a call with another user.

    Attributes:
        to: User id of the callee.
        offer: Opaque session description offer.
        caller_name: Display name of the caller.
    """

    event: ClassVar[str] = 'call'

    to: str = _field('to', _USER_ID)
    offer: Any = _field('offer', _OPAQUE)
    caller_name: str | None = _field('callerName', _TEXT, default=None)


@dataclasses.dataclass
class AnswerRequest(InboundMessage):
    """Answer a call from another user.

    Attributes:
        to: User id of the caller.
        answer: Opaque session description answer.
    """

    event: ClassVar[str] = 'answer'

    to: str = _field('to', _USER_ID)
    answer: Any = _field('answer', _OPAQUE)


@dataclasses.dataclass
class IceCandidateRequest(InboundMessage):
    """Send an ICE candidate to the other party of a call.

    Attributes:
        to: User id of the peer.
        candidate: Opaque ICE candidate.
    """

    event: ClassVar[str] = 'ice-candidate'

    to: str = _field('to', _USER_ID)
    candidate: Any = _field('candidate', _OPAQUE)


@dataclasses.dataclass
class EndCallRequest(InboundMessage):
    """End a call with another user.

    Attributes:
        to: User id of the peer.
    """

    event: ClassVar[str] = 'end-call'

    to: str = _field('to', _USER_ID)


@dataclasses.dataclass
class Registered(OutboundMessage):
    """Acknowledgement that a registration was processed.

    Attributes:
        user_id: User id now bound to the connection.
    """

    event: ClassVar[str] = 'registered'

    user_id: str = _field('userId', _USER_ID)


@dataclasses.dataclass
class IncomingCall(OutboundMessage):
    """Call offer forwarded to the callee.

    Attributes:
        source: User id of the caller. Always taken from the caller's
            registration, never from the caller's payload.
        offer: Opaque session description offer.
        caller_name: Display name of the caller.
    """

    event: ClassVar[str] = 'incoming-call'

    source: str = _field('from', _USER_ID)
    offer: Any = _field('offer', _OPAQUE)
    caller_name: str | None = _field('callerName', _TEXT, default=None)


@dataclasses.dataclass
class CallAnswered(OutboundMessage):
    """Answer forwarded to the caller."""

    event: ClassVar[str] = 'call-answered'

    answer: Any = _field('answer', _OPAQUE)


@dataclasses.dataclass
class IceCandidate(OutboundMessage):
    """ICE candidate forwarded to a peer."""

    event: ClassVar[str] = 'ice-candidate'

    candidate: Any = _field('candidate', _OPAQUE)


@dataclasses.dataclass
class CallEnded(OutboundMessage):
    """Notification that the peer ended the call."""

    event: ClassVar[str] = 'call-ended'


@dataclasses.dataclass
class CallError(OutboundMessage):
    """Call could not be started.

    Attributes:
        message: Reason the call failed.
    """

    event: ClassVar[str] = 'call-error'

    message: str = _field('message', _TEXT)


@dataclasses.dataclass
class ErrorResponse(OutboundMessage):
    """Inbound event was rejected by the relay server.

    Attributes:
        message: Reason the event was rejected.
    """

    event: ClassVar[str] = 'error'

    message: str = _field('message', _TEXT)


INBOUND_MESSAGES: dict[str, type[InboundMessage]] = {
    cls.event: cls
    for cls in (
        RegisterRequest,
        CallRequest,
        AnswerRequest,
        IceCandidateRequest,
        EndCallRequest,
    )
}
OUTBOUND_MESSAGES: dict[str, type[OutboundMessage]] = {
    cls.event: cls
    for cls in (
        Registered,
        IncomingCall,
        CallAnswered,
        IceCandidate,
        CallEnded,
        CallError,
        ErrorResponse,
    )
}


class MessageError(Exception):
    """Base exception type for messages."""

    pass


class MessageDecodeError(MessageError):
    """Exception raised when a message cannot be decoded."""

    pass


class MessageEncodeError(MessageError):
    """Exception raised when a message cannot be encoded."""

    pass


def _validate(
    event: str,
    key: str,
    kind: str,
    value: Any,
    optional: bool,
) -> Any:
    if kind == _USER_ID:
        if not isinstance(value, str):
            raise MessageDecodeError(
                f'Field "{key}" of "{event}" must be a string user id.',
            )
    elif kind == _TEXT:
        if not (isinstance(value, str) or (optional and value is None)):
            raise MessageDecodeError(
                f'Field "{key}" of "{event}" must be a string.',
            )
    return value


def _from_data(cls: type[MessageT], data: Any) -> MessageT:
    fields = dataclasses.fields(cls)
    if data is None and len(fields) == 0:
        data = {}
    if not isinstance(data, dict):
        raise MessageDecodeError(
            f'Payload of "{cls.event}" must be an object. '
            f'Got {type(data).__name__}.',
        )

    kwargs: dict[str, Any] = {}
    for field in fields:
        key = field.metadata['alias']
        kind = field.metadata['kind']
        optional = field.default is None
        if key not in data:
            if optional:
                continue
            raise MessageDecodeError(
                f'Payload of "{cls.event}" is missing the "{key}" field.',
            )
        kwargs[field.name] = _validate(
            cls.event,
            key,
            kind,
            data[key],
            optional,
        )
    # Unknown keys (e.g., a client supplied "from") are dropped here.
    return cls(**kwargs)


def parse_inbound(event: Any, data: Any) -> InboundMessage:
    """Parse an inbound event name and payload into a message.

    Args:
        event: Event name.
        data: Event payload. A `register` event may also carry the user id
            as a bare string instead of an object.

    Returns:
        Parsed message.

    Raises:
        MessageDecodeError: If the event is unknown or the payload is
            missing required fields or has fields of the wrong type.
    """
    try:
        message_type = INBOUND_MESSAGES[event]
    except (KeyError, TypeError) as e:
        raise MessageDecodeError(f'Unknown event type: {event}.') from e

    if message_type is RegisterRequest and isinstance(data, str):
        data = {'userId': data}

    return _from_data(message_type, data)


def parse_outbound(event: Any, data: Any) -> OutboundMessage:
    """Parse an outbound event name and payload into a message.

    Raises:
        MessageDecodeError: If the event is unknown or the payload is
            invalid.
    """
    try:
        message_type = OUTBOUND_MESSAGES[event]
    except (KeyError, TypeError) as e:
        raise MessageDecodeError(f'Unknown event type: {event}.') from e

    return _from_data(message_type, data)


def decode_frame(frame: str) -> tuple[str, Any]:
    """Decode a JSON frame into its event name and payload.

    Args:
        frame: JSON string to decode.

    Returns:
        Tuple of the event name and the (unparsed) payload.

    Raises:
        MessageDecodeError: If the frame is not a JSON object with a string
            `event` key.
    """
    try:
        obj = json.loads(frame)
    except (ValueError, RecursionError) as e:
        # Also raised for valid JSON beyond the nesting or int digit limits
        raise MessageDecodeError('Failed to load string as JSON.') from e

    if not isinstance(obj, dict):
        raise MessageDecodeError('Message must be a JSON object.')

    event = obj.get('event', None)
    if not isinstance(event, str):
        raise MessageDecodeError(
            'Message does not contain a string event key.',
        )

    return event, obj.get('data', None)


def decode_inbound(frame: str) -> InboundMessage:
    """Decode a JSON frame sent by a client."""
    return parse_inbound(*decode_frame(frame))


def decode_outbound(frame: str) -> OutboundMessage:
    """Decode a JSON frame sent by the relay server."""
    return parse_outbound(*decode_frame(frame))


def to_data(message: Message) -> dict[str, Any]:
    """Get the wire payload of a message keyed by the camelCase names."""
    return {
        field.metadata['alias']: getattr(message, field.name)
        for field in dataclasses.fields(message)
    }


def encode(message: Message) -> str:
    """Encode message as JSON string.

    Args:
        message: Message to JSON encode.

    Raises:
        MessageEncodeError: If the message cannot be JSON encoded.
    """
    if not isinstance(message, Message) or type(message).event == '':
        raise MessageEncodeError(
            f'Message is not a concrete {Message.__name__} type. '
            f'Got {type(message).__name__}.',
        )

    try:
        return json.dumps({'event': message.event, 'data': to_data(message)})
    except (TypeError, ValueError) as e:
        raise MessageEncodeError('Error encoding message.') from e
