"""Menu caches and the decide interaction with its reveal animation."""
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import MSG_NETWORK
from ..models import (
    DecisionRecord, Failure, History, MenuItem, Restaurant, Result, Success,
)
from .gateway import RemoteGateway
from .observable import StateController

REVEAL_STEPS = 20
REVEAL_BASE_DELAY_MS = 50
REVEAL_STEP_DELAY_MS = 10

IDLE_PLACEHOLDERS = ("🍜", "🍕", "🍔", "🍣", "🍱", "🍛", "🍝", "🍲", "🥘", "🥡", "🍙", "🍚")

MSG_NO_MENUS = "Please add a menu first"
MSG_ALREADY_DECIDING = "A decision is already in progress"
MSG_MISSING_MENU_FIELDS = "Please enter a restaurant name and a dish name"


def reveal_delay(step: int) -> float:
    """Seconds to hold reveal step *step*; grows linearly so the spin slows."""
    return (REVEAL_BASE_DELAY_MS + REVEAL_STEP_DELAY_MS * step) / 1000.0


@dataclass(frozen=True)
class HomeState:
    is_loading: bool = False
    menus: Tuple[MenuItem, ...] = ()
    restaurants: Tuple[Restaurant, ...] = ()
    history_records: Tuple[DecisionRecord, ...] = ()
    history_total: int = 0
    error: Optional[str] = None
    # Current decide run
    is_deciding: bool = False
    decision_result: Optional[str] = None
    decision_message: Optional[str] = None
    slot_display_text: str = IDLE_PLACEHOLDERS[0]
    # Add-menu form
    is_adding_menu: bool = False
    add_menu_success: bool = False


class DecisionController(StateController[HomeState]):
    """Drives the home screen: cached menus, restaurants and history, plus
    the decide interaction.

    A decide run spins through random candidate labels for a fixed number
    of steps while the real request is in flight on another worker.  The
    server's answer is applied only after the spin has finished, so the
    label left on screen after a successful run is always the server's
    choice.  Only one run can be active at a time.

    Args:
        gateway: Remote API.
        sleep:   Delay function used between reveal steps (tests pass a
                 no-op).
        rng:     Random source for reveal labels and idle placeholders.
    """

    def __init__(self, gateway: RemoteGateway,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None) -> None:
        super().__init__(HomeState(), 'decision')
        self._gateway = gateway
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._decide_lock = threading.Lock()
        self._running = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_data(self) -> Future:
        """Reload menus, restaurants and history in parallel.

        A facet that fails to load is shown empty; the others are unaffected.
        """
        self._update(is_loading=True)
        return self._submit(self._guarded, self._load_data)

    def refresh_history(self) -> Future:
        return self._submit(self._guarded, self._refresh_history)

    def _load_data(self) -> HomeState:
        fetchers: Dict[str, Callable[[], Result]] = {
            'menus': self._gateway.get_menus,
            'restaurants': self._gateway.get_restaurants,
            'history': self._gateway.get_history,
        }
        results: Dict[str, Result] = {}
        with ThreadPoolExecutor(max_workers=len(fetchers),
                                thread_name_prefix='whattoeat_load') as executor:
            future_map = {executor.submit(fn): facet for facet, fn in fetchers.items()}
            for future in as_completed(future_map):
                facet = future_map[future]
                try:
                    results[facet] = future.result()
                except Exception as exc:
                    self._log.exception("Loading %s crashed", facet)
                    results[facet] = Failure(str(exc) or MSG_NETWORK)

        menus = self._payload(results['menus'], 'menus', [])
        restaurants = self._payload(results['restaurants'], 'restaurants', [])
        history = self._payload(results['history'], 'history', History())
        return self._update(
            is_loading=False,
            menus=tuple(menus),
            restaurants=tuple(restaurants),
            history_records=tuple(history.records),
            history_total=history.total,
        )

    def _refresh_history(self) -> HomeState:
        result = self._gateway.get_history()
        if isinstance(result, Success):
            return self._update(history_records=tuple(result.data.records),
                                history_total=result.data.total)
        return self.state

    def _payload(self, result: Result, facet: str, default: Any) -> Any:
        if isinstance(result, Success):
            return result.data
        self._log.warning("Could not load %s: %s", facet, result.message)
        return default

    # ------------------------------------------------------------------
    # Deciding
    # ------------------------------------------------------------------

    def decide(self, menu_ids: Optional[Iterable[int]] = None) -> Optional[Future]:
        """Start a decide run.

        Args:
            menu_ids: Restrict the pick to these cached menus.  By default
                      the server chooses among all of the user's menus.

        Returns:
            ``None`` when the run is refused locally (no candidates, or a run
            is already active); otherwise a Future resolving to the gateway
            ``Result``.
        """
        ids = [int(i) for i in menu_ids] if menu_ids else []
        candidates: List[MenuItem] = []
        with self._decide_lock:
            if self._running:
                refused = MSG_ALREADY_DECIDING
            else:
                candidates = _candidates(self.state.menus, ids)
                refused = None if candidates else MSG_NO_MENUS
                if candidates:
                    self._running = True
        if refused:
            self._update(error=refused)
            return None

        previous = self.state.slot_display_text
        self._update(is_deciding=True, decision_result=None, decision_message=None, error=None)
        labels = [menu.label for menu in candidates]
        return self._submit(self._decide, labels, ids, previous)

    def _decide(self, labels: Sequence[str], menu_ids: List[int], previous: str) -> Result:
        try:
            network = self._submit(self._gateway.decide, menu_ids)
            for step in range(REVEAL_STEPS):
                self._update(slot_display_text=self._rng.choice(labels))
                self._sleep(reveal_delay(step))

            try:
                result = network.result()
            except Exception as exc:
                self._log.exception("Decide request crashed")
                result = Failure(str(exc) or MSG_NETWORK)

            if isinstance(result, Success):
                label = result.data.menu.label
                self._update(
                    is_deciding=False,
                    slot_display_text=label,
                    decision_result=label,
                    decision_message=result.data.message,
                )
                self._log.info("Decided: %s", label)
                self._guarded(self._refresh_history)
            else:
                self._update(is_deciding=False, slot_display_text=previous, error=result.message)
            return result
        except Exception as exc:
            self._log.exception("Decide run failed")
            self._update(is_deciding=False, slot_display_text=previous,
                         error=str(exc) or MSG_NETWORK)
            return Failure(str(exc) or MSG_NETWORK, exc)
        finally:
            with self._decide_lock:
                self._running = False

    def dismiss_result(self) -> None:
        """Clear the shown result and put an idle placeholder back."""
        self._update(
            decision_result=None,
            decision_message=None,
            slot_display_text=self._rng.choice(IDLE_PLACEHOLDERS),
        )

    # ------------------------------------------------------------------
    # Menu editing
    # ------------------------------------------------------------------

    def add_menu(self, restaurant_name: str, dish_name: str) -> Optional[Future]:
        """Add a dish; the restaurant is created server-side when new.

        Returns ``None`` when a field is blank.
        """
        if not restaurant_name.strip() or not dish_name.strip():
            self._update(error=MSG_MISSING_MENU_FIELDS)
            return None
        self._update(is_adding_menu=True, add_menu_success=False)
        return self._submit(self._guarded, self._add_menu,
                            restaurant_name.strip(), dish_name.strip())

    def delete_menu(self, menu_id: int) -> Future:
        return self._submit(self._guarded, self._delete_menu, menu_id)

    def _add_menu(self, restaurant_name: str, dish_name: str) -> Result:
        result = self._gateway.create_menu(restaurant_name, dish_name)
        if isinstance(result, Failure):
            self._update(is_adding_menu=False, error=result.message)
            return result
        self._log.info("Added %s (new restaurant: %s)",
                       result.data.menu.label, result.data.is_new_restaurant)
        self._update(is_adding_menu=False, add_menu_success=True)
        self._update(is_loading=True)
        self._load_data()
        return result

    def _delete_menu(self, menu_id: int) -> Result:
        result = self._gateway.delete_menu(menu_id)
        if isinstance(result, Failure):
            self._update(error=result.message)
            return result
        self._log.info("Deleted menu %s", menu_id)
        self._update(is_loading=True)
        self._load_data()
        return result

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def clear_error(self) -> None:
        self._update(error=None)

    def clear_add_menu_success(self) -> None:
        self._update(add_menu_success=False)

    def _guarded(self, worker, *args):
        try:
            return worker(*args)
        except Exception as exc:
            self._log.exception("Home operation failed")
            self._update(is_loading=False, is_adding_menu=False, error=str(exc) or MSG_NETWORK)
            return Failure(str(exc) or MSG_NETWORK, exc)


def _candidates(menus: Sequence[MenuItem], menu_ids: List[int]) -> List[MenuItem]:
    if not menu_ids:
        return list(menus)
    wanted = set(menu_ids)
    return [menu for menu in menus if menu.id in wanted]
