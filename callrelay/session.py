"""Per-connection session state tracked by the router."""
from __future__ import annotations

import dataclasses
import datetime
import enum
from typing import Generic
from typing import TypeVar

HandleT = TypeVar('HandleT')


def _utc_current_time() -> datetime.datetime:
    # dataclasses.field's default_factory requires a zero argument callable
    return datetime.datetime.now(tz=datetime.timezone.utc)


class SessionState(enum.Enum):
    """Lifecycle states of a connection."""

    CONNECTED = 'connected'
    """Connection is open but has not registered a user id."""
    IDENTIFIED = 'identified'
    """Connection has registered a user id."""
    CLOSED = 'closed'
    """Connection has closed. Terminal state."""


@dataclasses.dataclass(eq=False)
class Session(Generic[HandleT]):
    """Router-owned record of a single live connection.

    Sessions compare by identity, so two sessions wrapping the same handle
    are still distinct connections.

    Attributes:
        handle: Opaque connection handle owned by the transport.
        user_id: User id bound by the last `register` event, if any.
        created: Time the connection was opened.
        closed: If the transport reported the connection as closed.
    """

    handle: HandleT
    user_id: str | None = None
    created: datetime.datetime = dataclasses.field(
        default_factory=_utc_current_time,
    )
    closed: bool = False

    @property
    def state(self) -> SessionState:
        """Current lifecycle state of the connection."""
        if self.closed:
            return SessionState.CLOSED
        elif self.user_id is None:
            return SessionState.CONNECTED
        else:
            return SessionState.IDENTIFIED

    def __repr__(self) -> str:
        created = self.created.strftime('%Y-%m-%d %H:%M:%S %Z')
        return (
            f'{self.__class__.__name__}(user_id={self.user_id}, '
            f'state={self.state.value}, created={created})'
        )
