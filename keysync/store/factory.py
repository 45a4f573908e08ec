"""Remote store factory.

Creates the remote store selected by configuration.
"""

from functools import lru_cache

from keysync.config import Settings, get_settings
from keysync.logging import get_logger
from keysync.store.base import RemoteStore
from keysync.store.http import VaultRemoteStore
from keysync.store.memory import InMemoryRemoteStore

logger = get_logger(__name__)


def create_remote_store(settings: Settings) -> RemoteStore:
    """Build a store for the given settings.

    Raises:
        ValueError: If the configured backend is unknown
    """
    if settings.store_backend == "memory":
        store = InMemoryRemoteStore(server_version=settings.vault_version)
    elif settings.store_backend == "vault":
        store = VaultRemoteStore(
            vault_addr=settings.vault_addr,
            token=settings.vault_token or "",
            namespace=settings.vault_namespace,
            managed_keys_path=settings.managed_keys_path,
            version_field=settings.version_field,
            timeout=settings.request_timeout,
        )
    else:
        raise ValueError(f"Unknown store backend: {settings.store_backend}")

    logger.info("Created remote store", backend=settings.store_backend)
    return store


@lru_cache(maxsize=1)
def get_remote_store() -> RemoteStore:
    """Get the configured remote store.

    Returns a cached singleton instance.
    """
    return create_remote_store(get_settings())


def reset_remote_store() -> None:
    """Reset the cached remote store.

    Useful for testing or reconfiguration.
    """
    get_remote_store.cache_clear()


def close_remote_store() -> None:
    """Close connections held by the cached store, if one was created.

    The cached instance stays in place; a closed HTTP session reconnects on
    its next request.
    """
    if get_remote_store.cache_info().currsize:
        get_remote_store().close()
