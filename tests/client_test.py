from __future__ import annotations

import asyncio
from unittest import mock

import pytest
from websockets.asyncio.server import serve
from websockets.asyncio.server import ServerConnection

from callrelay.client import SignalingClient
from callrelay.exceptions import NotConnectedError
from callrelay.exceptions import RegistrationError
from callrelay.messages import CallAnswered
from callrelay.messages import CallEnded
from callrelay.messages import CallError
from callrelay.messages import encode
from callrelay.messages import ErrorResponse
from callrelay.messages import IceCandidate
from callrelay.messages import IncomingCall
from callrelay.messages import OutboundMessage
from testing.signaling_server import SignalingServerInfo
from testing.utils import open_port

OFFER = {'type': 'offer', 'sdp': 'offer-sdp'}


async def recv(client: SignalingClient) -> OutboundMessage:
    return await asyncio.wait_for(client.recv(), 1.0)


def test_client_bad_address() -> None:
    with pytest.raises(ValueError, match='must start with ws:// or wss://'):
        SignalingClient('http://localhost', 'alice')


def test_client_websocket_not_connected() -> None:
    client = SignalingClient('ws://localhost', 'alice')
    assert client.user_id == 'alice'
    assert client.address == 'ws://localhost'
    with pytest.raises(NotConnectedError):
        client.websocket  # noqa: B018


def test_client_wss_without_verification() -> None:
    client = SignalingClient(
        'wss://localhost',
        'alice',
        verify_certificate=False,
    )
    assert client._ssl_context is not None
    assert not client._ssl_context.check_hostname


@pytest.mark.asyncio()
async def test_client_call_flow(
    signaling_server: SignalingServerInfo,
) -> None:
    address = signaling_server.address
    alice = SignalingClient(address, 'alice')
    bob = SignalingClient(address, 'bob')
    async with alice, bob:
        await alice.connect()
        await bob.connect()

        await alice.call('bob', OFFER, caller_name='Alice')
        assert await recv(bob) == IncomingCall('alice', OFFER, 'Alice')

        await bob.answer('alice', {'sdp': 'answer'})
        assert await recv(alice) == CallAnswered({'sdp': 'answer'})

        await alice.send_ice_candidate('bob', {'candidate': 'c1'})
        assert await recv(bob) == IceCandidate({'candidate': 'c1'})

        await bob.end_call('alice')
        assert await recv(alice) == CallEnded()

        await alice.call('carol', OFFER)
        assert await recv(alice) == CallError('User not available')


@pytest.mark.asyncio()
async def test_client_connect_reuses_open_connection(
    signaling_server: SignalingServerInfo,
) -> None:
    async with SignalingClient(signaling_server.address, 'alice') as client:
        websocket = await client.connect()
        assert await client.connect() is websocket
        assert client.websocket is websocket


@pytest.mark.asyncio()
async def test_client_reconnect_task(
    signaling_server: SignalingServerInfo,
) -> None:
    server = signaling_server.signaling_server
    client = SignalingClient(
        signaling_server.address,
        'alice',
        reconnect_task=True,
    )
    old_websocket = await client.connect()

    await old_websocket.close()
    for _ in range(100):  # pragma: no branch
        websocket = client._websocket
        if websocket is not old_websocket and websocket is not None:
            break
        await asyncio.sleep(0.01)

    assert client.websocket is not old_websocket
    assert server.registry.lookup('alice') is not None

    await client.close()


@pytest.mark.asyncio()
async def test_client_connect_refused_without_retry() -> None:
    client = SignalingClient(f'ws://127.0.0.1:{open_port()}', 'alice')
    with pytest.raises(OSError):
        await client.connect(retry=False)


@pytest.mark.asyncio()
async def test_client_connect_retries_with_backoff(
    signaling_server: SignalingServerInfo,
) -> None:
    client = SignalingClient(signaling_server.address, 'alice')
    client._initial_backoff_seconds = 0.01

    register = client._register
    calls = 0

    async def _flaky_register(timeout: float):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ConnectionRefusedError()
        return await register(timeout)

    with mock.patch.object(client, '_register', _flaky_register):
        await client.connect()

    assert calls == 2
    await client.close()


@pytest.mark.parametrize(
    ('reply', 'match'),
    (
        (encode(ErrorResponse('BadRequestError: no')), 'Got error'),
        (encode(CallEnded()), 'unexpected message type: CallEnded'),
        ('not json', 'Unable to decode response'),
    ),
)
@pytest.mark.asyncio()
async def test_client_registration_failures(reply: str, match: str) -> None:
    host, port = '127.0.0.1', open_port()

    async def _handler(websocket: ServerConnection) -> None:
        await websocket.recv()
        await websocket.send(reply)
        await websocket.wait_closed()

    async with serve(_handler, host, port):
        client = SignalingClient(f'ws://{host}:{port}', 'alice')
        with pytest.raises(RegistrationError, match=match):
            await client.connect(retry=False)
