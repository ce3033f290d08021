"""Exception types raised by the relay server and client."""
from __future__ import annotations


class RelayServerError(Exception):
    """Base exception type for exceptions raised by the relay server."""

    pass


class BadRequestError(RelayServerError):
    """An inbound event could not be parsed or is not allowed."""

    pass


class NotRegisteredError(BadRequestError):
    """Connection sent signaling messages before registering a user id."""

    pass


class RelayClientError(Exception):
    """Base exception type for exceptions raised by relay clients."""

    pass


class NotConnectedError(RelayClientError):
    """Exception raised if a client is not connected to a relay server."""

    pass


class RegistrationError(RelayClientError):
    """Exception raised by client if unable to register with relay server."""

    pass
