"""Client interface to a relay server."""
from __future__ import annotations

import asyncio
import logging
import ssl
import sys
from types import TracebackType
from typing import Any

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

import websockets.exceptions
from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect
from websockets.protocol import State

from callrelay.exceptions import NotConnectedError
from callrelay.exceptions import RegistrationError
from callrelay.messages import AnswerRequest
from callrelay.messages import CallRequest
from callrelay.messages import decode_outbound
from callrelay.messages import encode
from callrelay.messages import EndCallRequest
from callrelay.messages import ErrorResponse
from callrelay.messages import IceCandidateRequest
from callrelay.messages import InboundMessage
from callrelay.messages import MessageDecodeError
from callrelay.messages import OutboundMessage
from callrelay.messages import Registered
from callrelay.messages import RegisterRequest
from callrelay.utils.tasks import spawn_guarded_background_task

logger = logging.getLogger(__name__)


class SignalingClient:
    """Client interface to a relay server.

    The client owns a single websocket connection registered under one user
    id and exposes the signaling operations as methods.

    Tip:
        This class can be used as an async context manager!
        ```python
        from callrelay.client import SignalingClient

        async with SignalingClient('ws://localhost:3000', 'alice') as client:
            await client.call('bob', offer, caller_name='Alice')
            message = await client.recv()
        ```

    Note:
        WebSocket connections are not opened until a message is sent,
        a message is received, or
        [`connect()`][callrelay.client.SignalingClient.connect]
        is called.

    Args:
        address: Address of the relay server. Should start with `ws://` or
            `wss://`.
        user_id: User id to register with the relay server.
        reconnect_task: Spawn a background task which will automatically
            reconnect to the relay server when the websocket client closes.
            Otherwise, reconnections will only be attempted when sending or
            receiving a message.
        ssl_context: Custom SSL context to pass to
            [`websockets.connect()`][websockets.asyncio.client.connect]. A TLS
            context is created with
            [`ssl.create_default_context()`][ssl.create_default_context]
            when connecting to a `wss://` URI and `ssl_context` is not
            provided.
        timeout: Time to wait in seconds on relay server connection.
        verify_certificate: Verify the relay server's SSL certificate. Only
            used if `ssl_context` is `None` and connecting to a `wss://` URI.

    Raises:
        ValueError: If address does not start with `ws://` or `wss://`.
    """

    def __init__(
        self,
        address: str,
        user_id: str,
        *,
        reconnect_task: bool = False,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float = 10,
        verify_certificate: bool = True,
    ) -> None:
        if not (address.startswith('ws://') or address.startswith('wss://')):
            raise ValueError(
                'Relay server address must start with ws:// or wss://. '
                f'Got {address}.',
            )

        self._address = address
        self._user_id = user_id
        self._timeout = timeout

        if self._address.startswith('wss://') and ssl_context is None:
            ssl_context = ssl.create_default_context()
            if not verify_certificate:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

        self._ssl_context = ssl_context
        self._create_reconnect_task = reconnect_task

        self._initial_backoff_seconds = 1.0

        self._connect_lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._websocket: ClientConnection | None = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_traceback: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def address(self) -> str:
        """Address of the relay server."""
        return self._address

    @property
    def user_id(self) -> str:
        """User id registered with the relay server."""
        return self._user_id

    @property
    def websocket(self) -> ClientConnection:
        """Websocket connection to the relay server.

        Raises:
            NotConnectedError: If the connection has not been opened yet.
        """
        if self._websocket is None:
            raise NotConnectedError(
                'Connection to relay server has not been established. '
                'Call connect() first.',
            )
        return self._websocket

    async def _register(self, timeout: float) -> ClientConnection:
        """Open a websocket connection and register with the relay server.

        Args:
            timeout: Timeout to wait on opening the initial connection and
                waiting for a server response.

        Returns:
            Open websocket connection with the relay server.

        Raises:
            ConnectionRefusedError: If the server could not be connected to.
            asyncio.TimeoutError: If the server did not reply within the
                timeout.
            websockets.exceptions.ConnectionClosed: If the websocket connection
                was closed while registering.
            RegistrationError: If the registration process failed.
        """
        websocket = await connect(
            self._address,
            open_timeout=timeout,
            ssl=self._ssl_context,
        )

        try:
            request = RegisterRequest(user_id=self.user_id)
            await websocket.send(encode(request))

            message_str = await asyncio.wait_for(websocket.recv(), timeout)
            if not isinstance(message_str, str):
                raise RegistrationError(
                    'Relay server replied with a non-string message.',
                )
            try:
                message = decode_outbound(message_str)
            except MessageDecodeError as e:
                raise RegistrationError(
                    'Unable to decode response message from relay server.',
                ) from e

            if isinstance(message, ErrorResponse):
                raise RegistrationError(
                    'Failed to register with the relay server. '
                    f'Got error: {message.message}',
                )
            elif not isinstance(message, Registered):
                raise RegistrationError(
                    'Relay server replied with unexpected message type: '
                    f'{type(message).__name__}.',
                )
        except RegistrationError:
            await websocket.close()
            raise

        logger.info(
            'Established client connection to relay server at '
            f'{self._address} with user id {self.user_id}',
        )
        return websocket

    async def _reconnect_on_close(self) -> None:
        """Wait for websocket to close and immediately reconnect.

        This is intended to be run as an asyncio tasks and should only
        be started after the websocket connection has been created.
        """
        while True:
            await self.websocket.wait_closed()
            await self.connect()

    async def connect(self, retry: bool = True) -> ClientConnection:
        """Connect and register with the relay server.

        Note:
            Typically this does not need to be called because the
            send and receive methods will automatically call this.

        Note:
            If an existing and open connection exists, that will be returned.
            Otherwise, a new connection will be attempted with
            exponential backoff (starting at 1 second and increasing to a max
            of 60 seconds) for connection failures.

        Args:
            retry: Retry the connection with exponential backoff if the
                server is unreachable.

        Returns:
            WebSocket connection to the relay server.

        Raises:
            RegistrationError: If the relay server rejects the registration.
        """
        async with self._connect_lock:
            if (
                self._websocket is not None
                and self._websocket.state is State.OPEN
            ):
                return self._websocket

            backoff_seconds = self._initial_backoff_seconds
            while True:
                try:
                    self._websocket = await self._register(
                        timeout=self._timeout,
                    )
                except (
                    # Exceptions that we should wait and retry again for
                    OSError,
                    asyncio.TimeoutError,
                    websockets.exceptions.ConnectionClosed,
                ) as e:
                    if not retry:
                        raise
                    logger.warning(
                        f'Registration with relay server at {self._address} '
                        f'failed because of {e}. Retrying connection in '
                        f'{backoff_seconds} seconds',
                    )
                    await asyncio.sleep(backoff_seconds)
                    backoff_seconds = min(backoff_seconds * 2, 60)
                else:
                    break

            if self._reconnect_task is None and self._create_reconnect_task:
                self._reconnect_task = spawn_guarded_background_task(
                    self._reconnect_on_close,
                    name='relay-client-reconnect',
                )

        return self._websocket

    async def close(self) -> None:
        """Close the connection to the relay server."""
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        if self._websocket is not None:
            await self._websocket.close()

    async def recv(self) -> OutboundMessage:
        """Receive the next message.

        Returns:
            The message received from the relay server.

        Raises:
            MessageDecodeError: If the message received cannot
                be decoded into the appropriate message type.
        """
        websocket = await self.connect()
        message_str = await websocket.recv()
        if not isinstance(message_str, str):
            raise MessageDecodeError('Received non-string from websocket.')
        return decode_outbound(message_str)

    async def send(self, message: InboundMessage) -> None:
        """Send a message to the relay server.

        Args:
            message: The message to send to the relay server.
        """
        message_str = encode(message)
        websocket = await self.connect()
        await websocket.send(message_str)

    async def call(
        self,
        to: str,
        offer: Any,
        caller_name: str | None = None,
    ) -> None:
        """Send a call offer to another user.

        The relay server replies with a
        [`CallError`][callrelay.messages.CallError] if the user is not
        available.
        """
        await self.send(
            CallRequest(to=to, offer=offer, caller_name=caller_name),
        )

    async def answer(self, to: str, answer: Any) -> None:
        """Send a call answer to the caller."""
        await self.send(AnswerRequest(to=to, answer=answer))

    async def send_ice_candidate(self, to: str, candidate: Any) -> None:
        """Send an ICE candidate to the peer."""
        await self.send(IceCandidateRequest(to=to, candidate=candidate))

    async def end_call(self, to: str) -> None:
        """Tell the peer the call has ended."""
        await self.send(EndCallRequest(to=to))
