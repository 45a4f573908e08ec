"""Base remote store interface.

The remote namespace keeps one flat collection of managed keys per family.
Every store implements the same four calls so the reconciler never depends on
transport details. No transactional or batch semantics are assumed.
"""

from abc import ABC, abstractmethod
from typing import Any

from keysync.models import Family, RemoteKeyRecord


class RemoteStore(ABC):
    """Abstract managed key store scoped by ``(family, name)``.

    Failures surface as typed errors:
    - NotFoundError: the key does not exist (``get`` only)
    - UnsupportedFamilyError: the remote does not know the family
    - TransportError: network, auth or server failure
    """

    @abstractmethod
    def put(self, family: Family, name: str, fields: dict[str, Any]) -> None:
        """Create or replace a managed key.

        Redacted fields are accepted here even though reads never return them.
        """
        pass

    @abstractmethod
    def list(self, family: Family) -> list[str]:
        """List key names of a family; an empty family returns ``[]``."""
        pass

    @abstractmethod
    def get(self, family: Family, name: str) -> RemoteKeyRecord:
        """Read a managed key.

        Raises:
            NotFoundError: If the key does not exist
        """
        pass

    @abstractmethod
    def delete(self, family: Family, name: str) -> None:
        """Delete a managed key."""
        pass

    def server_version(self) -> str | None:
        """Version of the remote server, if the store can tell."""
        return None

    def close(self) -> None:
        """Close any open connections."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
