"""Transport interface protocol used by the signaling router."""
from __future__ import annotations

from typing import Protocol
from typing import runtime_checkable
from typing import TypeVar

from callrelay.messages import OutboundMessage

HandleT_contra = TypeVar('HandleT_contra', contravariant=True)


@runtime_checkable
class Transport(Protocol[HandleT_contra]):
    """Transport that delivers router messages to live connections."""

    async def send(
        self,
        handle: HandleT_contra,
        message: OutboundMessage,
    ) -> None:
        """Send a message to a connection.

        Delivery is best effort. Implementations should not raise if the
        connection has already closed.

        Args:
            handle: Connection to send the message to.
            message: Message to send.
        """
        ...
