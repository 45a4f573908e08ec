"""Remote managed key stores.

- VaultRemoteStore: HashiCorp Vault ``sys/managed-keys`` over HTTP
- InMemoryRemoteStore: development only, nothing persisted
"""

from .base import RemoteStore
from .memory import InMemoryRemoteStore
from .http import VaultRemoteStore
from .factory import (
    get_remote_store,
    create_remote_store,
    reset_remote_store,
    close_remote_store,
)

__all__ = [
    "RemoteStore",
    "InMemoryRemoteStore",
    "VaultRemoteStore",
    "get_remote_store",
    "create_remote_store",
    "reset_remote_store",
    "close_remote_store",
]
