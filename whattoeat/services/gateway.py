"""Typed access to the remote WhatToEat API."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from ..errors import ApplicationError, TransportError, describe
from ..models import (
    CreatedMenu, Decision, Failure, History, LoginInfo, MenuItem, Restaurant,
    Result, Success, User,
)
from .transport import Transport

logger = logging.getLogger('whattoeat.gateway')

DEFAULT_HEALTH_TIMEOUT = 10  # seconds

MSG_BAD_HEALTH = "Server responded abnormally, please check the server status"


class RemoteGateway:
    """One method per remote operation, each returning a ``Result``.

    Every response except ``/health`` is wrapped in an envelope::

        {"code": 0, "message": "success", "data": {...}}

    A call succeeds only when the HTTP status is 2xx *and* ``code`` is 0.
    Otherwise the envelope's ``message`` becomes the failure text, falling
    back to a per-operation default when the server sent none.  Nothing is
    retried here and nothing is raised: transport and payload problems come
    back as :class:`~whattoeat.models.Failure`.

    Args:
        transport:      Shared :class:`Transport`.
        health_timeout: Timeout in seconds for health probes.
    """

    def __init__(self, transport: Transport,
                 health_timeout: float = DEFAULT_HEALTH_TIMEOUT) -> None:
        self._transport = transport
        self._health_timeout = health_timeout

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health(self, base_url: Optional[str] = None,
               timeout: Optional[float] = None) -> Result:
        """Probe ``GET /health``.

        Args:
            base_url: Probe this address directly instead of the configured
                      server; used to validate an address before saving it.
            timeout:  Overrides the health timeout.

        Returns:
            ``Success(body)`` on 2xx with ``{"status": "ok"}``.
        """
        try:
            response = self._transport.send(
                'GET', 'health',
                authenticated=False,
                base_url=base_url,
                timeout=timeout or self._health_timeout,
            )
        except TransportError as exc:
            return Failure(describe(exc), exc)

        body = _decode(response)
        if _is_2xx(response) and isinstance(body, dict) and body.get('status') == 'ok':
            return Success(body)
        logger.info("Health probe got HTTP %s with body %r", response.status_code, body)
        return Failure(MSG_BAD_HEALTH, ApplicationError(MSG_BAD_HEALTH))

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def register(self, username: str, password: str) -> Result:
        return self._call(
            'POST', 'api/auth/register', User.from_dict, "Registration failed",
            json={'username': username, 'password': password},
            authenticated=False,
        )

    def login(self, username: str, password: str) -> Result:
        return self._call(
            'POST', 'api/auth/login', LoginInfo.from_dict, "Login failed",
            json={'username': username, 'password': password},
            authenticated=False,
            rejected="Invalid username or password",
        )

    def guest_login(self) -> Result:
        return self._call('POST', 'api/auth/guest', LoginInfo.from_dict,
                          "Guest login failed", authenticated=False)

    # ------------------------------------------------------------------
    # Menus and restaurants
    # ------------------------------------------------------------------

    def get_menus(self) -> Result:
        return self._call('GET', 'api/menus', _list_of(MenuItem),
                          "Failed to load menus", on_empty=list)

    def create_menu(self, restaurant_name: str, dish_name: str) -> Result:
        return self._call(
            'POST', 'api/menus', CreatedMenu.from_dict, "Failed to add menu",
            json={'restaurant_name': restaurant_name, 'dish_name': dish_name},
        )

    def delete_menu(self, menu_id: int) -> Result:
        return self._call('DELETE', f'api/menus/{int(menu_id)}', lambda data: None,
                          "Failed to delete menu", on_empty=lambda: None)

    def get_restaurants(self) -> Result:
        return self._call('GET', 'api/restaurants', _list_of(Restaurant),
                          "Failed to load restaurants", on_empty=list)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(self, menu_ids: Optional[Iterable[int]] = None) -> Result:
        """Ask the server to pick a menu.

        An empty ``menu_ids`` (the default) lets the server choose among all
        of the user's menus.
        """
        payload = {'menu_ids': [int(i) for i in (menu_ids or [])]}
        return self._call('POST', 'api/decide', Decision.from_dict,
                          "Failed to decide", json=payload)

    def get_history(self) -> Result:
        """Fetch past decisions.

        History is a non-critical read: an envelope without data and any
        failure both come back as an empty successful history.
        """
        result = self._call('GET', 'api/history', History.from_dict,
                            "Failed to load history", on_empty=History)
        if isinstance(result, Failure):
            logger.warning("History unavailable, showing none: %s", result.message)
            return Success(History())
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _call(
        self,
        method: str,
        path: str,
        parse: Callable[[Any], Any],
        fallback: str,
        *,
        json: Any = None,
        authenticated: bool = True,
        rejected: Optional[str] = None,
        on_empty: Optional[Callable[[], Any]] = None,
    ) -> Result:
        """Send a request and unwrap its envelope.

        Args:
            parse:    Turns the envelope ``data`` into the typed payload.
            fallback: Failure text when the server gave no usable message.
            rejected: Failure text for a rejected call without a message;
                      defaults to *fallback*.
            on_empty: Factory for the payload when ``data`` is absent.  When
                      omitted, absent data is a failure.
        """
        try:
            response = self._transport.send(method, path, json, authenticated=authenticated)
        except TransportError as exc:
            return Failure(describe(exc), exc)

        body = _decode(response)
        envelope: Dict[str, Any] = body if isinstance(body, dict) else {}
        if not _is_2xx(response) or envelope.get('code') != 0:
            message = envelope.get('message') or rejected or fallback
            logger.info("%s %s rejected (HTTP %s, code %r): %s", method, path,
                        response.status_code, envelope.get('code'), message)
            return Failure(message, ApplicationError(message))

        data = envelope.get('data')
        if data is None:
            if on_empty is None:
                logger.warning("%s %s succeeded without data", method, path)
                return Failure(fallback, ApplicationError(fallback))
            return Success(on_empty())

        try:
            return Success(parse(data))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Malformed payload from %s %s: %s", method, path, exc)
            return Failure(fallback, ApplicationError(fallback))


def _is_2xx(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def _decode(response: requests.Response) -> Optional[Any]:
    """Return the decoded JSON body, or ``None`` when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None


def _list_of(model) -> Callable[[Any], List[Any]]:
    def parse(data: Any) -> List[Any]:
        return [model.from_dict(item) for item in data]
    return parse
