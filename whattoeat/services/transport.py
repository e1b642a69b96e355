"""
HTTP transport shared by every gateway call.

One :class:`requests.Session` is kept for the life of the client.  Each
request is built against a placeholder base and then passed through two
mutators, always in this order:

1. bearer auth: ``Authorization: Bearer <token>`` when a token is stored;
2. dynamic base URL: scheme, host and port are replaced with the server
   address currently held by the :class:`~whattoeat.repositories.ConfigStore`.

Because the address is read on every call, changing it in the settings takes
effect on the next request without rebuilding the client.  Network failures
leave this module as one of the :mod:`whattoeat.errors` transport classes.
"""
from __future__ import annotations

import logging
import socket
from typing import Any, Iterator, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from ..errors import ConnectionRefused, HostUnresolvable, OtherTransport, Timeout, TransportError
from ..repositories import ConfigStore

logger = logging.getLogger('whattoeat.transport')

PLACEHOLDER_BASE = 'http://placeholder.local'
DEFAULT_TIMEOUT = 30  # seconds

_DNS_MARKERS = (
    'Name or service not known',
    'nodename nor servname',
    'getaddrinfo failed',
    'Temporary failure in name resolution',
    'No address associated with hostname',
    'Failed to resolve',
)


class Transport:
    """Sends requests to the configured server.

    Args:
        store:   Settings store supplying the token and the server address.
        timeout: Default request timeout in seconds.
        session: Optional pre-built session (tests pass a mock).
    """

    def __init__(self, store: ConfigStore, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None) -> None:
        self._store = store
        self._timeout = timeout
        self.session = session if session is not None else requests.Session()

    def send(
        self,
        method: str,
        path: str,
        json: Any = None,
        *,
        authenticated: bool = True,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        """Send one request and return the raw response.

        Args:
            method:        HTTP verb.
            path:          Path below the server root, e.g. ``api/menus``.
            json:          Optional JSON body.
            authenticated: Attach the stored token, if there is one.
            base_url:      Send to this address as-is instead of the
                           configured server (the dynamic rewrite is skipped).
            timeout:       Per-call timeout overriding the default.

        Raises:
            TransportError: No HTTP response was obtained.
        """
        base = base_url.rstrip('/') if base_url else PLACEHOLDER_BASE
        request = requests.Request(
            method.upper(),
            f"{base}/{path.lstrip('/')}",
            json=json,
            headers={'Accept': 'application/json'},
        )
        try:
            # A malformed address already fails here with InvalidURL.
            prepared = request.prepare()
            bearer = self._apply_bearer(prepared) if authenticated else False
            if base_url is None:
                self._apply_base_url(prepared)
            response = self.session.send(prepared, timeout=timeout or self._timeout)
        except requests.RequestException as exc:
            error = translate(exc)
            logger.warning("%s %s failed: %s", request.method, path, type(error).__name__)
            raise error from exc

        logger.debug("%s %s -> HTTP %s", prepared.method, prepared.url, response.status_code)
        if response.status_code == 401 and bearer:
            logger.warning("Server rejected the stored token; clearing credentials")
            try:
                self._store.clear_credentials()
            except OSError as exc:
                logger.warning("Could not clear the rejected credentials: %s", exc)
        return response

    # ------------------------------------------------------------------
    # Request mutators
    # ------------------------------------------------------------------

    def _apply_bearer(self, prepared: requests.PreparedRequest) -> bool:
        token = self._store.get_token()
        if token is None:
            return False
        prepared.headers['Authorization'] = f'Bearer {token}'
        return True

    def _apply_base_url(self, prepared: requests.PreparedRequest) -> None:
        host = self._store.get_server_host()
        target = urlsplit(host)
        if not target.scheme or not target.netloc:
            logger.warning("Configured server address %r is not a URL; request left unchanged", host)
            return
        original = urlsplit(prepared.url)
        prepared.url = urlunsplit(
            (target.scheme, target.netloc, original.path, original.query, original.fragment)
        )


# ---------------------------------------------------------------------------
# Failure translation
# ---------------------------------------------------------------------------

def translate(exc: requests.RequestException) -> TransportError:
    """Map a ``requests`` exception onto the transport taxonomy."""
    detail = str(exc) or type(exc).__name__
    # ConnectTimeout is both a ConnectionError and a Timeout.
    if isinstance(exc, requests.Timeout):
        return Timeout(detail)
    if isinstance(exc, requests.exceptions.SSLError):
        return OtherTransport(detail)
    if isinstance(exc, requests.ConnectionError):
        if _is_name_resolution_failure(exc):
            return HostUnresolvable(detail)
        return ConnectionRefused(detail)
    return OtherTransport(detail)


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Walk the wrapped exceptions behind a ``requests`` error.

    ``requests`` wraps urllib3's ``MaxRetryError`` in ``args``, which keeps
    the underlying error in ``reason``; the socket error sits in ``__cause__``.
    """
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.extend(a for a in getattr(current, 'args', ()) if isinstance(a, BaseException))
        reason = getattr(current, 'reason', None)
        if isinstance(reason, BaseException):
            pending.append(reason)
        pending.append(current.__cause__)
        pending.append(current.__context__)


def _is_name_resolution_failure(exc: BaseException) -> bool:
    for cause in _causes(exc):
        if isinstance(cause, socket.gaierror):
            return True
        if any(marker in str(cause) for marker in _DNS_MARKERS):
            return True
    return False
