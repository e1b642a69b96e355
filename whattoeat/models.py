"""
Data model shared by the repository, gateway and controller layers.

Wire payloads use snake_case keys (``dish_name``, ``restaurant_id`` ...);
each model exposes ``from_dict`` which maps a decoded JSON object onto the
dataclass and tolerates missing optional fields.  ``from_dict`` raises
``KeyError``/``TypeError``/``ValueError`` on a structurally invalid payload;
the gateway turns those into an application-level failure.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

T = TypeVar('T')

UNKNOWN_RESTAURANT = 'Unknown'


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful gateway call carrying the typed payload."""
    data: T


@dataclass(frozen=True)
class Failure:
    """Failed gateway call.

    ``message`` is user-facing text.  ``cause`` is the taxonomy exception
    (see :mod:`whattoeat.errors`) when the failure came from one, so callers
    that word each cause differently can dispatch on its type.
    """
    message: str
    cause: Optional[BaseException] = None


Result = Union[Success, Failure]


# ---------------------------------------------------------------------------
# Local state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Credentials:
    """Stored identity; either all three fields are set or none is."""
    token: Optional[str] = None
    user_id: Optional[int] = None
    username: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.token is not None


# Session states.  ``Unknown`` is the only legal initial state.

@dataclass(frozen=True)
class Unknown:
    pass


@dataclass(frozen=True)
class Guest:
    """Launched without stored credentials; auto guest login still pending."""


@dataclass(frozen=True)
class Authenticated:
    user_id: Optional[int]
    username: Optional[str]


@dataclass(frozen=True)
class Anonymous:
    pass


SessionState = Union[Unknown, Guest, Authenticated, Anonymous]


# ---------------------------------------------------------------------------
# Remote entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class User:
    id: int
    username: str

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'User':
        return cls(id=int(raw['id']), username=str(raw['username']))


@dataclass(frozen=True)
class LoginInfo:
    token: str
    user_id: int
    username: str

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'LoginInfo':
        token = raw['token']
        if not token:
            raise ValueError('login payload without token')
        return cls(token=str(token), user_id=int(raw['user_id']),
                   username=str(raw['username']))


@dataclass(frozen=True)
class Restaurant:
    id: int
    name: str
    created_at: str = ''
    updated_at: str = ''

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Restaurant':
        return cls(
            id=int(raw['id']),
            name=str(raw['name']),
            created_at=raw.get('created_at') or '',
            updated_at=raw.get('updated_at') or '',
        )


@dataclass(frozen=True)
class MenuItem:
    id: int
    restaurant_id: int
    dish_name: str
    created_at: str = ''
    updated_at: str = ''
    restaurant: Optional[Restaurant] = None

    @property
    def label(self) -> str:
        """Display text used by the reveal loop and the final result."""
        name = self.restaurant.name if self.restaurant else UNKNOWN_RESTAURANT
        return f"{name} - {self.dish_name}"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'MenuItem':
        restaurant = raw.get('restaurant')
        return cls(
            id=int(raw['id']),
            restaurant_id=int(raw['restaurant_id']),
            dish_name=str(raw['dish_name']),
            created_at=raw.get('created_at') or '',
            updated_at=raw.get('updated_at') or '',
            restaurant=Restaurant.from_dict(restaurant) if restaurant else None,
        )


@dataclass(frozen=True)
class CreatedMenu:
    menu: MenuItem
    is_new_restaurant: bool = False

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'CreatedMenu':
        return cls(menu=MenuItem.from_dict(raw['menu']),
                   is_new_restaurant=bool(raw.get('is_new_restaurant', False)))


@dataclass(frozen=True)
class DecisionRecord:
    id: int
    user_id: int
    menu_id: int
    decided_at: str = ''
    menu: Optional[MenuItem] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'DecisionRecord':
        menu = raw.get('menu')
        return cls(
            id=int(raw['id']),
            user_id=int(raw['user_id']),
            menu_id=int(raw['menu_id']),
            decided_at=raw.get('decided_at') or '',
            menu=MenuItem.from_dict(menu) if menu else None,
        )


@dataclass(frozen=True)
class Decision:
    menu: MenuItem
    message: str = ''

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Decision':
        return cls(menu=MenuItem.from_dict(raw['menu']),
                   message=str(raw.get('message') or ''))


@dataclass(frozen=True)
class History:
    records: List[DecisionRecord] = field(default_factory=list)
    total: int = 0

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'History':
        records = [DecisionRecord.from_dict(r) for r in raw.get('records') or []]
        return cls(records=records, total=int(raw.get('total') or 0))
