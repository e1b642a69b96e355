"""Server-address settings, validated by a live health probe before saving."""
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Optional

from ..errors import ConnectionRefused, HostUnresolvable, OtherTransport, Timeout
from ..models import Failure
from ..repositories import DEFAULT_SERVER_HOST, ConfigStore
from .gateway import MSG_BAD_HEALTH, RemoteGateway
from .observable import StateController

ACCEPTED_SCHEMES = ('http://', 'https://')

MSG_EMPTY_HOST = "Please enter the server address"
MSG_INVALID_HOST = "Please enter a valid server address (starting with http:// or https://)"
MSG_PROBE_UNRESOLVABLE = "Cannot resolve the server address, please check that it is correct"
MSG_PROBE_REFUSED = "Cannot connect to the server, please check that it is running"
MSG_PROBE_TIMEOUT = "Connection timed out, please check the network or the server address"


@dataclass(frozen=True)
class SettingsState:
    server_host: str = ''
    is_saving: bool = False
    save_success: bool = False
    error: Optional[str] = None


class SettingsController(StateController[SettingsState]):
    """Edits the server address.

    ``server_host`` in the state is the candidate being edited; it only
    reaches the store after :meth:`save_settings` has probed
    ``<candidate>/health`` directly and got ``{"status": "ok"}`` back.
    """

    def __init__(self, gateway: RemoteGateway, store: ConfigStore) -> None:
        super().__init__(SettingsState(server_host=store.get_server_host()), 'settings',
                         max_workers=1)
        self._gateway = gateway
        self._store = store

    def update_server_host(self, host: str) -> None:
        self._update(server_host=host)

    def reset_to_default(self) -> None:
        """Put the built-in address in the editor; it still has to be saved."""
        self._update(server_host=DEFAULT_SERVER_HOST)

    def save_server_address(self, candidate: str) -> Optional[Future]:
        """Shorthand for :meth:`update_server_host` then :meth:`save_settings`."""
        self.update_server_host(candidate)
        return self.save_settings()

    def save_settings(self) -> Optional[Future]:
        """Probe the candidate address and store it when the server is healthy.

        Returns:
            ``None`` when the address is rejected locally, otherwise a Future
            resolving to ``True`` once the address has been stored.
        """
        host = self.state.server_host.strip()
        if not host:
            self._update(error=MSG_EMPTY_HOST)
            return None
        if not host.startswith(ACCEPTED_SCHEMES):
            self._update(error=MSG_INVALID_HOST)
            return None
        self._update(is_saving=True, save_success=False, error=None)
        return self._submit(self._save, host)

    def clear_error(self) -> None:
        self._update(error=None)

    def clear_save_success(self) -> None:
        self._update(save_success=False)

    def _save(self, host: str) -> bool:
        try:
            result = self._gateway.health(base_url=host)
            if isinstance(result, Failure):
                self._log.info("Health probe of %s failed: %s", host, result.message)
                self._update(is_saving=False, error=probe_message(result))
                return False
            self._store.set_server_host(host)
        except Exception as exc:
            self._log.exception("Saving server address failed")
            self._update(is_saving=False, error=f"Save failed: {exc}")
            return False
        self._log.info("Server address set to %s", host)
        self._update(is_saving=False, save_success=True, server_host=host)
        return True


def probe_message(failure: Failure) -> str:
    """Word a failed health probe by its cause."""
    cause = failure.cause
    if isinstance(cause, HostUnresolvable):
        return MSG_PROBE_UNRESOLVABLE
    if isinstance(cause, ConnectionRefused):
        return MSG_PROBE_REFUSED
    if isinstance(cause, Timeout):
        return MSG_PROBE_TIMEOUT
    if isinstance(cause, OtherTransport):
        return f"Connection failed: {str(cause) or 'unknown error'}"
    return MSG_BAD_HEALTH
