"""Base class for controllers that publish immutable UI-state snapshots."""
import dataclasses
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Generic, List, Optional, TypeVar

S = TypeVar('S')

Listener = Callable[[Any], None]


class StateController(Generic[S]):
    """Holds one frozen dataclass snapshot and the listeners watching it.

    Sub-classes change state with :meth:`_update`, which swaps in a copy with
    the given fields replaced and then calls every listener with the new
    snapshot.  Listeners run on whichever thread made the change, outside
    the state lock.

    Network-bound operations are submitted to the controller's own worker
    pool through :meth:`_submit`, so callers get a :class:`Future` back and
    are never blocked.
    """

    def __init__(self, initial: S, name: str, max_workers: int = 4) -> None:
        self._state = initial
        self._state_lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix=f'whattoeat_{name}')
        self._log = logging.getLogger(f'whattoeat.{name}')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> S:
        """The current snapshot."""
        return self._state

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(snapshot)`` after every state change.

        Returns:
            A function that removes the listener again.
        """
        with self._state_lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._state_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return remove

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool; running operations finish first when *wait*."""
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Helpers for sub-classes
    # ------------------------------------------------------------------

    def _update(self, **changes: Any) -> S:
        return self._update_if(lambda state: True, **changes)

    def _update_if(self, condition: Callable[[S], bool], **changes: Any) -> Optional[S]:
        """Apply *changes* only if ``condition(current)`` holds.

        The test and the swap happen under the state lock; listeners are
        notified after it is released.  Returns the new snapshot, or ``None``
        when the condition failed and nothing changed.
        """
        with self._state_lock:
            if not condition(self._state):
                return None
            self._state = dataclasses.replace(self._state, **changes)
            snapshot = self._state
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                self._log.exception("State listener %r failed", listener)
        return snapshot

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        return self._executor.submit(fn, *args)
