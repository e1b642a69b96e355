"""Services package: expose the transport, gateway and controllers from one import."""
from .transport import Transport
from .gateway import RemoteGateway
from .observable import StateController
from .session_service import AuthState, SessionController
from .decision_service import DecisionController, HomeState
from .settings_service import SettingsController, SettingsState

__all__ = [
    'Transport',
    'RemoteGateway',
    'StateController',
    'AuthState',
    'SessionController',
    'DecisionController',
    'HomeState',
    'SettingsController',
    'SettingsState',
]
