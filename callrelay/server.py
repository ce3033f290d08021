"""WebSocket server that relays signaling messages between clients.

The relay server (or signaling server) is a lightweight server accessible by
all peers (e.g., has a public IP address) that brokers the exchange of
session descriptions and ICE candidates needed before two peers can open a
direct WebRTC connection. Media never passes through the relay.
"""
from __future__ import annotations

import http
import json
import logging
import sys
from typing import Any

import websockets.exceptions
from websockets.asyncio.server import ServerConnection
from websockets.http11 import Request
from websockets.http11 import Response

from callrelay.exceptions import BadRequestError
from callrelay.messages import decode_frame
from callrelay.messages import encode
from callrelay.messages import MessageDecodeError
from callrelay.messages import MessageEncodeError
from callrelay.messages import OutboundMessage
from callrelay.registry import PresenceRegistry
from callrelay.router import SignalingRouter

logger = logging.getLogger(__name__)


class SignalingServer:
    """WebRTC signaling relay server.

    Each client connection registers a user id and then exchanges call
    offers, answers, ICE candidates, and call terminations with other
    users by user id. The server only forwards these messages; the
    routing rules are implemented by
    [`SignalingRouter`][callrelay.router.SignalingRouter] and this class
    provides the websocket transport.

    The server is built on websockets and designed to be served using
    [`serve()`][callrelay.run.serve].

    The handler closes a connection only if the client sends a message
    larger than the allowed size (code 4003). All other invalid messages
    are answered with an `error` message and the connection stays open.

    Args:
        registry: Presence registry to use. A new, empty registry is created
            if not provided.
        max_message_bytes: Optional maximum size of client messages in bytes.
            Clients that send oversized messages will have their connections
            closed. Note that message size is computed using
            [`sys.getsizeof()`][sys.getsizeof] so will also include the
            PyObject overhead.
    """

    def __init__(
        self,
        registry: PresenceRegistry[ServerConnection] | None = None,
        max_message_bytes: int | None = None,
    ) -> None:
        self._registry: PresenceRegistry[ServerConnection] = (
            PresenceRegistry() if registry is None else registry
        )
        self._router = SignalingRouter(self._registry, self)
        self._max_message_bytes = max_message_bytes

    @property
    def registry(self) -> PresenceRegistry[ServerConnection]:
        """Presence registry of user ids to connections."""
        return self._registry

    @property
    def router(self) -> SignalingRouter[ServerConnection]:
        """Router handling messages of all connections."""
        return self._router

    async def send(
        self,
        handle: ServerConnection,
        message: OutboundMessage,
    ) -> None:
        """Send message on the socket.

        Note:
            Messages are JSON string encoded using
            [`encode()`][callrelay.messages.encode].

        Args:
            handle: Websocket connection to send the message to.
            message: Message to encode and send.
        """
        try:
            message_str = encode(message)
        except MessageEncodeError as e:
            logger.error(f'Failed to encode message: {e}')
            return

        try:
            await handle.send(message_str)
        except websockets.exceptions.ConnectionClosed:
            logger.warning(
                'Connection closed while attempting to send '
                f'{message.event} message',
            )

    def process_request(
        self,
        connection: ServerConnection,
        request: Request,
    ) -> Response | None:
        """Answer plain HTTP status probes.

        A `GET /health` returns `#!json {"status": "ok"}` and a
        `GET /` returns the router
        [`status()`][callrelay.router.SignalingRouter.status]. Websocket
        upgrade requests are passed through to the handshake.

        Args:
            connection: Connection the request was made on.
            request: HTTP request.

        Returns:
            HTTP response or `None` to continue the websocket handshake.
        """
        if request.headers.get('Upgrade', '').lower() == 'websocket':
            return None

        path = request.path.split('?', 1)[0]
        body: dict[str, Any]
        if path == '/health':
            body = {'status': 'ok'}
        elif path == '/':
            body = self.router.status()
        else:
            return connection.respond(
                http.HTTPStatus.NOT_FOUND,
                'Not found.\n',
            )

        response = connection.respond(http.HTTPStatus.OK, json.dumps(body))
        del response.headers['Content-Type']
        response.headers['Content-Type'] = 'application/json'
        return response

    async def handler(self, websocket: ServerConnection) -> None:
        """Websocket server connection handler.

        Receives messages on the connection until it closes and passes them
        to the router. The router is notified of the closure exactly once
        regardless of how the connection ended.

        Args:
            websocket: Websocket connection with a client.
        """
        session = self.router.connect(websocket)
        logger.info(f'Client connected from {websocket.remote_address}')

        try:
            while True:
                try:
                    message_str = await websocket.recv()
                except websockets.exceptions.ConnectionClosedOK:
                    logger.info(
                        f'Connection from {websocket.remote_address} closed',
                    )
                    break
                except websockets.exceptions.ConnectionClosedError as e:
                    logger.info(
                        f'Connection from {websocket.remote_address} closed '
                        f'unexpectedly: {e}',
                    )
                    break

                if (
                    self._max_message_bytes is not None
                    and sys.getsizeof(message_str) > self._max_message_bytes
                ):
                    await websocket.close(
                        4003,
                        reason='Message length exceeds limit.',
                    )
                    logger.warning(
                        f'Client at {websocket.remote_address} sent message '
                        f'with size {sys.getsizeof(message_str)} bytes which '
                        'exceeds the max configured size of '
                        f'{self._max_message_bytes} bytes. Connection closed '
                        'with error code 4003',
                    )
                    break

                try:
                    if isinstance(message_str, bytes):
                        raise MessageDecodeError(
                            'Got message as bytes but expected str.',
                        )
                    event, data = decode_frame(message_str)
                except MessageDecodeError as e:
                    await self.router.reject(session, BadRequestError(str(e)))
                    continue

                await self.router.receive(session, event, data)
        finally:
            await self.router.disconnect(session)
