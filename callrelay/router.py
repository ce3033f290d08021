"""Signaling router for forwarding call setup messages between users.

The router is independent of the underlying transport. A transport
creates a [`Session`][callrelay.session.Session] with
[`connect()`][callrelay.router.SignalingRouter.connect] when a connection
opens, passes each inbound event to
[`receive()`][callrelay.router.SignalingRouter.receive], and calls
[`disconnect()`][callrelay.router.SignalingRouter.disconnect] exactly once
when the connection closes.
"""
from __future__ import annotations

import datetime
import logging
from typing import Any
from typing import Generic
from typing import TypeVar

from callrelay.exceptions import BadRequestError
from callrelay.exceptions import NotRegisteredError
from callrelay.messages import AnswerRequest
from callrelay.messages import CallAnswered
from callrelay.messages import CallEnded
from callrelay.messages import CallError
from callrelay.messages import CallRequest
from callrelay.messages import EndCallRequest
from callrelay.messages import ErrorResponse
from callrelay.messages import IceCandidate
from callrelay.messages import IceCandidateRequest
from callrelay.messages import InboundMessage
from callrelay.messages import IncomingCall
from callrelay.messages import MessageDecodeError
from callrelay.messages import OutboundMessage
from callrelay.messages import parse_inbound
from callrelay.messages import Registered
from callrelay.messages import RegisterRequest
from callrelay.protocols import Transport
from callrelay.registry import PresenceRegistry
from callrelay.session import Session
from callrelay.session import SessionState

logger = logging.getLogger(__name__)
HandleT = TypeVar('HandleT')

USER_NOT_AVAILABLE = 'User not available'


class SignalingRouter(Generic[HandleT]):
    """Routes signaling messages between registered users.

    The router is stateless with respect to call progress. It does not check
    that an answer follows an offer; it only resolves the target user and
    forwards the message. Only a failed `call` is reported to the sender.
    Answers, ICE candidates, and call terminations addressed to an unknown
    user are dropped because the peers will notice the failure through their
    own connection state.

    Args:
        registry: Registry shared by all connections of this router.
        transport: Transport used to deliver outbound messages.
    """

    def __init__(
        self,
        registry: PresenceRegistry[HandleT],
        transport: Transport[HandleT],
    ) -> None:
        self._registry = registry
        self._transport = transport

    @property
    def registry(self) -> PresenceRegistry[HandleT]:
        """Presence registry of user ids to connections."""
        return self._registry

    def connect(self, handle: HandleT) -> Session[HandleT]:
        """Create the session for a newly opened connection."""
        session = Session(handle)
        logger.debug(f'Opened session for connection {handle}')
        return session

    async def disconnect(self, session: Session[HandleT]) -> None:
        """Clean up after a closed connection.

        The registry entry of the session's user is only removed if it still
        belongs to this connection. If the user has since registered on a
        new connection, the newer registration is left alone.
        """
        if session.closed:
            return
        session.closed = True

        if session.user_id is None:
            logger.debug('Unregistered connection closed')
            return

        if self._registry.remove(session.user_id, session.handle):
            logger.info(
                f'User disconnected: {session.user_id} '
                f'(active users: {self._registry.size()})',
            )
        else:
            logger.info(
                f'Stale connection for user {session.user_id} closed; '
                'registration is owned by a newer connection',
            )

    async def receive(
        self,
        session: Session[HandleT],
        event: Any,
        data: Any,
    ) -> None:
        """Handle an inbound event from a connection.

        Events that cannot be parsed or are not allowed in the current
        session state are rejected. The sender receives an
        [`ErrorResponse`][callrelay.messages.ErrorResponse] and the
        connection stays open.

        Args:
            session: Session of the sending connection.
            event: Event name.
            data: Event payload.
        """
        try:
            message = parse_inbound(event, data)
        except MessageDecodeError as e:
            await self.reject(session, BadRequestError(str(e)))
            return

        try:
            await self.dispatch(session, message)
        except BadRequestError as e:
            await self.reject(session, e)

    async def reject(
        self,
        session: Session[HandleT],
        error: BadRequestError,
    ) -> None:
        """Report a rejected event back to the sender only."""
        source = (
            'unregistered user' if session.user_id is None else session.user_id
        )
        logger.warning(
            f'Rejected event from {source}: '
            f'{error.__class__.__name__}: {error}',
        )
        await self._send(
            session.handle,
            ErrorResponse(message=f'{error.__class__.__name__}: {error}'),
        )

    async def dispatch(
        self,
        session: Session[HandleT],
        message: InboundMessage,
    ) -> None:
        """Dispatch a parsed message to its handler.

        Raises:
            BadRequestError: If the session is closed.
            NotRegisteredError: If a signaling message is sent before the
                connection registered a user id.
        """
        if session.state is SessionState.CLOSED:
            raise BadRequestError('Connection is closed.')

        if isinstance(message, RegisterRequest):
            await self.register(session, message)
            return

        source = self._require_identity(session)
        if isinstance(message, CallRequest):
            await self.call(source, session, message)
        elif isinstance(message, AnswerRequest):
            await self._forward(
                source,
                message.to,
                CallAnswered(answer=message.answer),
            )
        elif isinstance(message, IceCandidateRequest):
            await self._forward(
                source,
                message.to,
                IceCandidate(candidate=message.candidate),
            )
        elif isinstance(message, EndCallRequest):
            await self._forward(source, message.to, CallEnded())
        else:
            raise AssertionError('Unreachable.')

    async def register(
        self,
        session: Session[HandleT],
        request: RegisterRequest,
    ) -> None:
        """Bind a user id to the session's connection.

        Registering a user id owned by another connection takes it over; the
        other connection is not closed but is no longer routable. If the
        session was already bound to a different user id, that user id is
        released first.
        """
        old_user_id = session.user_id
        if old_user_id is not None and old_user_id != request.user_id:
            self._registry.remove(old_user_id, session.handle)
            logger.info(
                f'Connection rebinding from user {old_user_id} to '
                f'{request.user_id}',
            )

        session.user_id = request.user_id
        previous = self._registry.register(request.user_id, session.handle)
        if previous is not None and previous is not session.handle:
            logger.info(
                f'User {request.user_id} registered on a new connection; '
                'previous connection is no longer routable',
            )

        logger.info(
            f'User registered: {request.user_id} '
            f'(active users: {self._registry.size()})',
        )
        await self._send(session.handle, Registered(user_id=request.user_id))

    async def call(
        self,
        source: str,
        session: Session[HandleT],
        request: CallRequest,
    ) -> None:
        """Forward a call offer to the callee.

        If the callee is not registered, a
        [`CallError`][callrelay.messages.CallError] is sent back to the
        caller instead.
        """
        message = IncomingCall(
            source=source,
            offer=request.offer,
            caller_name=request.caller_name,
        )
        target = self._registry.lookup(request.to)
        if target is None:
            logger.warning(
                f'Call from {source} to {request.to} failed: '
                'target user not found',
            )
            await self._send(
                session.handle,
                CallError(message=USER_NOT_AVAILABLE),
            )
            return

        logger.info(f'Forwarding call from {source} to {request.to}')
        await self._send(target, message)

    def status(self) -> dict[str, Any]:
        """Get a read-only status summary of the router."""
        return {
            'status': 'running',
            'activeUsers': self._registry.size(),
            'timestamp': datetime.datetime.now(
                tz=datetime.timezone.utc,
            ).isoformat(),
        }

    def _require_identity(self, session: Session[HandleT]) -> str:
        if session.user_id is None:
            raise NotRegisteredError(
                'Connection must register a user id before sending '
                'signaling messages.',
            )
        return session.user_id

    async def _forward(
        self,
        source: str,
        to: str,
        message: OutboundMessage,
    ) -> None:
        target = self._registry.lookup(to)
        if target is None:
            logger.debug(
                f'Dropping {message.event} from {source} to unknown user {to}',
            )
            return

        logger.debug(f'Forwarding {message.event} from {source} to {to}')
        await self._send(target, message)

    async def _send(self, handle: HandleT, message: OutboundMessage) -> None:
        await self._transport.send(handle, message)
