"""Session state machine: login, registration, guest access and logout."""
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Optional

from ..errors import MSG_NETWORK
from ..models import (
    Anonymous, Authenticated, Failure, Guest, LoginInfo, Result, SessionState,
    Success, Unknown,
)
from ..repositories import KEY_TOKEN, ConfigStore
from .gateway import RemoteGateway
from .observable import StateController

MIN_PASSWORD_LENGTH = 6

MSG_MISSING_CREDENTIALS = "Please enter a username and password"
MSG_SHORT_PASSWORD = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"


@dataclass(frozen=True)
class AuthState:
    session: SessionState = Unknown()
    is_loading: bool = False
    error: Optional[str] = None
    is_success: bool = False


class SessionController(StateController[AuthState]):
    """Owns "is the user signed in" and every operation that changes it.

    Transitions::

        Unknown   --check()-------------> Guest | Authenticated
        Unknown/Guest/Anonymous --auto_guest_login()--> Authenticated | Anonymous
        any       --login()/register()/guest_login()--> Authenticated
        any       --logout()------------> Anonymous

    Credentials are written to the store before a successful login is
    reported, and cleared before the state drops to ``Anonymous``.  If the
    stored token disappears for another reason (the server answered 401),
    the controller falls back to ``Anonymous`` as well.

    Args:
        gateway: Remote API.
        store:   Settings store holding the credentials.
    """

    def __init__(self, gateway: RemoteGateway, store: ConfigStore) -> None:
        super().__init__(AuthState(), 'session')
        self._gateway = gateway
        self._store = store
        self._unwatch = store.watch(KEY_TOKEN, self._on_token_changed)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def session(self) -> SessionState:
        return self.state.session

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self.state.session, Authenticated)

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    def check(self) -> SessionState:
        """Resolve the initial ``Unknown`` state from the stored credentials."""
        creds = self._store.get_credentials()
        if creds.present:
            session = Authenticated(creds.user_id, creds.username)
        else:
            session = Guest()
        if self._update_if(lambda state: isinstance(state.session, Unknown),
                           session=session) is None:
            return self.state.session
        self._log.debug("Launch session state: %s", session)
        return session

    def auto_guest_login(self) -> Future:
        """Sign in as a guest unless a session already exists.

        No request is made when a token is stored.  A failed guest login
        leaves the controller ``Anonymous``; it is never raised.

        Returns:
            Future resolving to the resulting session state.
        """
        return self._submit(self._auto_guest_login)

    def _auto_guest_login(self) -> SessionState:
        creds = self._store.get_credentials()
        if creds.present:
            if not self.is_authenticated:
                self._update(session=Authenticated(creds.user_id, creds.username))
            return self.state.session

        try:
            result = self._gateway.guest_login()
            if isinstance(result, Success) and self._persist(result.data):
                return self._update(
                    session=Authenticated(result.data.user_id, result.data.username)
                ).session
            if isinstance(result, Failure):
                self._log.info("Automatic guest login failed: %s", result.message)
        except Exception:
            self._log.exception("Automatic guest login crashed")
        return self._update(session=Anonymous()).session

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> Optional[Future]:
        """Log in with a username and password.

        Returns:
            ``None`` when the input is rejected locally (no request is made),
            otherwise a Future resolving to ``True`` on success.
        """
        if not username.strip() or not password.strip():
            self._update(is_loading=False, error=MSG_MISSING_CREDENTIALS, is_success=False)
            return None
        self._update(is_loading=True, error=None, is_success=False)
        return self._submit(self._guarded, self._login, username, password)

    def register(self, username: str, password: str) -> Optional[Future]:
        """Create an account, then log in with the same credentials.

        Registration alone does not establish a session; the chained login
        does.  Returns ``None`` on local validation failure.
        """
        if not username.strip() or not password.strip():
            self._update(is_loading=False, error=MSG_MISSING_CREDENTIALS, is_success=False)
            return None
        if len(password) < MIN_PASSWORD_LENGTH:
            self._update(is_loading=False, error=MSG_SHORT_PASSWORD, is_success=False)
            return None
        self._update(is_loading=True, error=None, is_success=False)
        return self._submit(self._guarded, self._register, username, password)

    def guest_login(self) -> Future:
        """Explicitly sign in as a guest."""
        self._update(is_loading=True, error=None, is_success=False)
        return self._submit(self._guarded, self._guest_login)

    def logout(self) -> None:
        """End the session.  Credentials are gone before the state changes."""
        self._store.clear_credentials()
        self._update(session=Anonymous(), is_loading=False, error=None, is_success=False)
        self._log.info("Logged out")

    def clear_error(self) -> None:
        self._update(error=None)

    def clear_success(self) -> None:
        self._update(is_success=False)

    def shutdown(self, wait: bool = True) -> None:
        self._unwatch()
        super().shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _login(self, username: str, password: str) -> bool:
        return self._complete_login(self._gateway.login(username, password))

    def _register(self, username: str, password: str) -> bool:
        result = self._gateway.register(username, password)
        if isinstance(result, Failure):
            self._update(is_loading=False, error=result.message)
            return False
        self._log.info("Registered user %s", result.data.username)
        return self._login(username, password)

    def _guest_login(self) -> bool:
        return self._complete_login(self._gateway.guest_login())

    def _complete_login(self, result: Result) -> bool:
        if isinstance(result, Failure):
            self._update(is_loading=False, error=result.message, is_success=False)
            return False
        info: LoginInfo = result.data
        if not self._persist(info):
            return False
        self._update(
            session=Authenticated(info.user_id, info.username),
            is_loading=False,
            error=None,
            is_success=True,
        )
        self._log.info("Logged in as %s", info.username)
        return True

    def _persist(self, info: LoginInfo) -> bool:
        try:
            self._store.set_credentials(info.token, info.user_id, info.username)
        except (OSError, ValueError) as exc:
            self._log.error("Could not save credentials: %s", exc)
            self._update(is_loading=False, error=f"Could not save login: {exc}", is_success=False)
            return False
        return True

    def _guarded(self, worker, *args) -> bool:
        try:
            return worker(*args)
        except Exception as exc:
            self._log.exception("Session operation failed")
            self._update(is_loading=False, error=str(exc) or MSG_NETWORK, is_success=False)
            return False

    def _on_token_changed(self, token: Optional[str]) -> None:
        if token is None and self.is_authenticated:
            self._log.info("Stored token removed; session ended")
            self._update(session=Anonymous())
