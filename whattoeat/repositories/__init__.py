"""Repository package: expose the local-state repositories from one import."""
from .config_repository import (
    CREDENTIAL_KEYS,
    DEFAULT_SERVER_HOST,
    KEY_SERVER_HOST,
    KEY_TOKEN,
    KEY_USER_ID,
    KEY_USERNAME,
    ConfigStore,
    Subscription,
)

__all__ = [
    'ConfigStore',
    'Subscription',
    'DEFAULT_SERVER_HOST',
    'KEY_SERVER_HOST',
    'KEY_TOKEN',
    'KEY_USER_ID',
    'KEY_USERNAME',
    'CREDENTIAL_KEYS',
]
