"""In-memory remote store for development and tests.

WARNING: This store is for DEVELOPMENT ONLY. Nothing is persisted.

It mimics the remote server closely enough to exercise the engine:
- Redacted fields are accepted on write and dropped on read
- Every write assigns a fresh UUID version token
- Families can be marked unsupported to emulate older servers
"""

import copy
import uuid
from typing import Any, Iterable

from keysync.errors import NotFoundError, UnsupportedFamilyError
from keysync.logging import get_logger
from keysync.models import Family, RemoteKeyRecord
from keysync.registry import DEFAULT_REGISTRY, TypeRegistry
from keysync.store.base import RemoteStore

logger = get_logger(__name__)


class InMemoryRemoteStore(RemoteStore):
    """Dict-backed store with remote-like read semantics."""

    def __init__(
        self,
        registry: TypeRegistry | None = None,
        unsupported: Iterable[Family] = (),
        server_version: str | None = None,
    ):
        self.registry = registry or DEFAULT_REGISTRY
        self.unsupported = {Family.parse(f) for f in unsupported}
        self._server_version = server_version
        self._data: dict[Family, dict[str, dict[str, Any]]] = {}
        self._versions: dict[tuple[Family, str], str] = {}

    def put(self, family: Family, name: str, fields: dict[str, Any]) -> None:
        family = self._check(family, "put", name)
        self._data.setdefault(family, {})[name] = copy.deepcopy(fields)
        self._versions[(family, name)] = str(uuid.uuid4())
        logger.debug("Stored managed key", family=family.value, name=name)

    def list(self, family: Family) -> list[str]:
        family = self._check(family, "list")
        return sorted(self._data.get(family, {}))

    def get(self, family: Family, name: str) -> RemoteKeyRecord:
        family = self._check(family, "get", name)
        stored = self._data.get(family, {}).get(name)
        if stored is None:
            raise NotFoundError(
                "managed key not found",
                family=family.value, name=name, operation="get",
            )

        schema = self.registry.lookup(family)
        redacted = schema.redacted_keys
        fields = {k: copy.deepcopy(v) for k, v in stored.items() if k not in redacted}
        token = self._versions[(family, name)]
        version_field = schema.version_field
        if version_field is not None:
            fields[version_field.wire_key] = token
        return RemoteKeyRecord(family=family, name=name, fields=fields, version_token=token)

    def delete(self, family: Family, name: str) -> None:
        family = self._check(family, "delete", name)
        entries = self._data.get(family, {})
        if name not in entries:
            raise NotFoundError(
                "managed key not found",
                family=family.value, name=name, operation="delete",
            )
        del entries[name]
        del self._versions[(family, name)]
        logger.debug("Deleted managed key", family=family.value, name=name)

    def server_version(self) -> str | None:
        return self._server_version

    def raw(self, family: Family, name: str) -> dict[str, Any] | None:
        """Stored payload including redacted fields (tests only)."""
        stored = self._data.get(Family.parse(family), {}).get(name)
        return copy.deepcopy(stored) if stored is not None else None

    def _check(self, family: Family, operation: str, name: str | None = None) -> Family:
        family = Family.parse(family)
        if family in self.unsupported:
            raise UnsupportedFamilyError(
                f"unsupported managed key type: {family.value}",
                family=family.value, name=name, operation=operation,
            )
        return family
