"""Fixtures and utilities for testing."""
from __future__ import annotations

import asyncio
import socket

from websockets.asyncio.client import ClientConnection

from callrelay.messages import decode_outbound
from callrelay.messages import OutboundMessage


def open_port() -> int:
    """Return open port.

    Source: https://stackoverflow.com/questions/2838244
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(('', 0))
    s.listen(1)
    port = s.getsockname()[1]
    s.close()
    return port


async def recv_message(
    websocket: ClientConnection,
    timeout: float = 1.0,
) -> OutboundMessage:
    """Receive and decode the next relay message on a client websocket."""
    message_str = await asyncio.wait_for(websocket.recv(), timeout)
    assert isinstance(message_str, str)
    return decode_outbound(message_str)


async def assert_no_message(
    websocket: ClientConnection,
    timeout: float = 0.1,
) -> None:
    """Assert that no message arrives on the websocket within the timeout."""
    try:
        message_str = await asyncio.wait_for(websocket.recv(), timeout)
    except asyncio.TimeoutError:
        return
    raise AssertionError(f'Got unexpected message: {message_str}')
