"""Presence registry mapping user ids to live connection handles."""
from __future__ import annotations

import threading
from typing import Generic
from typing import TypeVar

HandleT = TypeVar('HandleT')


class PresenceRegistry(Generic[HandleT]):
    """Thread-safe mapping of user id to the connection currently owning it.

    A user id maps to at most one connection handle at any time. Registering
    an id that is already present replaces the handle (last registration
    wins) and the previous connection simply becomes unroutable.

    Handles are opaque to the registry. They are only stored and compared
    by identity.

    Example:
        ```python
        from callrelay.registry import PresenceRegistry

        registry = PresenceRegistry()
        registry.register('alice', websocket)
        assert registry.lookup('alice') is websocket
        ```
    """

    def __init__(self) -> None:
        self._handles: dict[str, HandleT] = {}
        self._lock = threading.Lock()

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._handles

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(size={self.size()})'

    def register(self, user_id: str, handle: HandleT) -> HandleT | None:
        """Bind a user id to a connection handle.

        Args:
            user_id: User id to register.
            handle: Connection handle that now owns the user id.

        Returns:
            The handle previously bound to `user_id`, or `None` if the user \
            id was not registered.
        """
        with self._lock:
            previous = self._handles.get(user_id, None)
            self._handles[user_id] = handle
            return previous

    def lookup(self, user_id: str) -> HandleT | None:
        """Get the connection handle bound to a user id."""
        with self._lock:
            return self._handles.get(user_id, None)

    def remove(self, user_id: str, handle: HandleT | None = None) -> bool:
        """Remove a user id from the registry.

        Args:
            user_id: User id to remove.
            handle: If provided, the entry is only removed if `user_id` is
                still bound to this exact handle. A connection cleaning up
                after itself should always pass its own handle so that it
                cannot remove a newer registration made by another
                connection.

        Returns:
            If an entry was removed.
        """
        with self._lock:
            current = self._handles.get(user_id, None)
            if current is None:
                return False
            if handle is not None and current is not handle:
                return False
            del self._handles[user_id]
            return True

    def size(self) -> int:
        """Number of registered user ids."""
        with self._lock:
            return len(self._handles)

    def user_ids(self) -> list[str]:
        """Get a snapshot of the registered user ids."""
        with self._lock:
            return list(self._handles)
