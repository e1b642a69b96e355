"""
Closed error taxonomy for everything that can go wrong talking to the server.

The transport raises the :class:`TransportError` subclasses, the gateway
catches them (plus :class:`ApplicationError`) and turns them into
:class:`~whattoeat.models.Failure` values with the text from
:func:`describe`.  Controllers never see an exception from a gateway call.
"""
from __future__ import annotations


class WhatToEatError(Exception):
    """Base class for client errors."""


class TransportError(WhatToEatError):
    """Raised when a request never produced an HTTP response."""


class HostUnresolvable(TransportError):
    """The server host name could not be resolved."""


class ConnectionRefused(TransportError):
    """The server could not be connected to."""


class Timeout(TransportError):
    """Connecting to or reading from the server timed out."""


class OtherTransport(TransportError):
    """Any other network-level failure."""


class ApplicationError(WhatToEatError):
    """Nonzero envelope code, or a payload that is absent or malformed."""


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

MSG_HOST_UNRESOLVABLE = "Unable to reach the server, please check the server address"
MSG_CONNECTION_REFUSED = "Failed to connect to the server, please check the network or the server address"
MSG_TIMEOUT = "Connection timed out, please check the network"
MSG_NETWORK = "Network error"


def describe(exc: BaseException) -> str:
    """Return the message shown to the user for a gateway-level failure."""
    if isinstance(exc, HostUnresolvable):
        return MSG_HOST_UNRESOLVABLE
    if isinstance(exc, ConnectionRefused):
        return MSG_CONNECTION_REFUSED
    if isinstance(exc, Timeout):
        return MSG_TIMEOUT
    return str(exc) or MSG_NETWORK
