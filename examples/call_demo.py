"""Exchange a call offer and answer between two users through a relay.

Start a relay server first:

    $ callrelay-server --port 3000

Then run:

    $ python examples/call_demo.py --address ws://localhost:3000
"""
from __future__ import annotations

import argparse
import asyncio
import logging

from callrelay.client import SignalingClient
from callrelay.messages import CallAnswered
from callrelay.messages import CallEnded
from callrelay.messages import IncomingCall

logger = logging.getLogger(__name__)


async def main(address: str) -> None:
    alice = SignalingClient(address, 'alice')
    bob = SignalingClient(address, 'bob')

    async with alice, bob:
        await alice.connect()
        await bob.connect()

        await alice.call('bob', {'type': 'offer', 'sdp': '...'}, 'Alice')
        incoming = await bob.recv()
        assert isinstance(incoming, IncomingCall)
        logger.info(f'bob received call from {incoming.source}')

        await bob.answer(incoming.source, {'type': 'answer', 'sdp': '...'})
        answered = await alice.recv()
        assert isinstance(answered, CallAnswered)
        logger.info('alice received answer from bob')

        await alice.end_call('bob')
        ended = await bob.recv()
        assert isinstance(ended, CallEnded)
        logger.info('call ended')


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        '--address',
        default='ws://localhost:3000',
        help='Relay server address',
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(main(args.address))
