"""Repository for the client's durable settings: server address and identity."""
import queue
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..models import Credentials
from .base import BaseRepository

KEY_SERVER_HOST = 'server_host'
KEY_TOKEN = 'token'
KEY_USER_ID = 'user_id'
KEY_USERNAME = 'username'

CREDENTIAL_KEYS = (KEY_TOKEN, KEY_USER_ID, KEY_USERNAME)
KEYS = (KEY_SERVER_HOST,) + CREDENTIAL_KEYS

DEFAULT_SERVER_HOST = 'http://localhost:8080'


class ConfigStore(BaseRepository):
    """Persists the four client settings to a JSON file.

    Schema::

        {
          "server_host": "http://192.168.1.20:8080",
          "token":       "<bearer token>",
          "user_id":     3,
          "username":    "alice"
        }

    The credential keys form one group: they are written by
    :meth:`set_credentials` and removed by :meth:`clear_credentials` as a
    single locked update followed by one atomic file write, so a reader never
    sees a token without its user.  A file holding a partial group is treated
    as logged out.

    Changes can be observed two ways: :meth:`subscribe` hands out an endless
    iterator of values for one key (current value first), and :meth:`watch`
    registers a callback that runs after each change of a key.
    """

    DEFAULT_FILE = '.whattoeat_settings.json'

    def __init__(self, file_path: str = DEFAULT_FILE) -> None:
        super().__init__(file_path)
        raw = self._load({})
        data = {k: raw[k] for k in KEYS if raw.get(k) is not None}
        present = [k for k in CREDENTIAL_KEYS if k in data]
        if present and len(present) != len(CREDENTIAL_KEYS):
            self._log.warning("Dropping incomplete credentials from %s", file_path)
            for k in present:
                del data[k]
        self._data: Dict[str, Any] = data
        self._lock = threading.RLock()
        self._queues: Dict[str, List[queue.Queue]] = defaultdict(list)
        self._watchers: Dict[str, List[Callable[[Any], None]]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Point reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Return the value stored under *key*, or ``None`` when absent.

        ``server_host`` falls back to :data:`DEFAULT_SERVER_HOST`.
        """
        _check_key(key)
        with self._lock:
            return self._value(key)

    def get_server_host(self) -> str:
        return self.get(KEY_SERVER_HOST)

    def get_token(self) -> Optional[str]:
        return self.get(KEY_TOKEN)

    def get_credentials(self) -> Credentials:
        """Return the credential triple read in one locked step."""
        with self._lock:
            return Credentials(
                token=self._data.get(KEY_TOKEN),
                user_id=self._data.get(KEY_USER_ID),
                username=self._data.get(KEY_USERNAME),
            )

    def is_logged_in(self) -> bool:
        return self.get_token() is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        """Store *value* under a non-credential *key*.

        Raises:
            ValueError: for unknown keys and for the credential keys, which
                only change through :meth:`set_credentials`.
        """
        _check_key(key)
        if key in CREDENTIAL_KEYS:
            raise ValueError(f"'{key}' is part of the credentials; use set_credentials()")
        self._commit({key: value})

    def set_server_host(self, host: str) -> None:
        self.set(KEY_SERVER_HOST, host)

    def clear(self, keys: Iterable[str]) -> None:
        """Remove *keys*.  The credential keys can only be cleared together."""
        keys = list(keys)
        for key in keys:
            _check_key(key)
        creds = [k for k in keys if k in CREDENTIAL_KEYS]
        if creds and set(creds) != set(CREDENTIAL_KEYS):
            raise ValueError("credential keys must be cleared together")
        self._commit({k: None for k in keys})

    def set_credentials(self, token: str, user_id: int, username: str) -> None:
        """Store the token and the identity it belongs to as one unit."""
        if not token or user_id is None or not username:
            raise ValueError("token, user_id and username are all required")
        self._commit({KEY_TOKEN: token, KEY_USER_ID: int(user_id), KEY_USERNAME: username})
        self._log.info("Stored credentials for user %s (id %s)", username, user_id)

    def clear_credentials(self) -> None:
        """Remove the token and identity as one unit."""
        self._commit({k: None for k in CREDENTIAL_KEYS})
        self._log.info("Cleared stored credentials")

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, key: str) -> 'Subscription':
        """Return an endless iterator over the values of *key*.

        The first item is the value at the time of the call; every later
        change follows in order.  Each call is an independent subscription;
        closing the iterator (``close()`` or garbage collection) ends it.
        Iterating blocks until the next change arrives.
        """
        _check_key(key)
        q: queue.Queue = queue.Queue()
        with self._lock:
            q.put(self._value(key))
            self._queues[key].append(q)
        return Subscription(self, key, q)

    def watch(self, key: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Call ``callback(new_value)`` after every change of *key*.

        Returns:
            A function that removes the callback again.
        """
        _check_key(key)
        with self._lock:
            self._watchers[key].append(callback)

        def unwatch() -> None:
            with self._lock:
                if callback in self._watchers[key]:
                    self._watchers[key].remove(callback)
        return unwatch

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _value(self, key: str) -> Optional[Any]:
        if key == KEY_SERVER_HOST:
            return self._data.get(key) or DEFAULT_SERVER_HOST
        return self._data.get(key)

    def _commit(self, changes: Dict[str, Any]) -> None:
        """Apply *changes* (``None`` removes a key) and persist them atomically."""
        callbacks = []
        with self._lock:
            before = {k: self._value(k) for k in changes}
            updated = dict(self._data)
            for key, value in changes.items():
                if value is None:
                    updated.pop(key, None)
                else:
                    updated[key] = value
            # The in-memory copy only changes once the file write succeeded.
            self._save(updated)
            self._data = updated
            for key in changes:
                value = self._value(key)
                if value == before[key]:
                    continue
                for q in self._queues.get(key, []):
                    q.put(value)
                callbacks.extend((cb, value) for cb in self._watchers.get(key, []))
        for callback, value in callbacks:
            try:
                callback(value)
            except Exception:
                self._log.exception("Settings watcher %r failed", callback)

    def _unsubscribe(self, key: str, q: queue.Queue) -> None:
        with self._lock:
            if q in self._queues.get(key, []):
                self._queues[key].remove(q)


class Subscription:
    """Endless iterator over the values of one setting.

    The store only keeps the queue; the subscription removes it again on
    :meth:`close` or when it is garbage collected, whether or not it was
    ever iterated.
    """

    def __init__(self, store: ConfigStore, key: str, q: queue.Queue) -> None:
        self._store = store
        self._key = key
        self._queue: Optional[queue.Queue] = q

    def __iter__(self) -> 'Subscription':
        return self

    def __next__(self) -> Optional[Any]:
        if self._queue is None:
            raise StopIteration
        return self._queue.get()

    def close(self) -> None:
        q, self._queue = self._queue, None
        if q is not None:
            self._store._unsubscribe(self._key, q)

    def __del__(self) -> None:
        self.close()


def _check_key(key: str) -> None:
    if key not in KEYS:
        raise ValueError(f"Unknown setting '{key}'")
