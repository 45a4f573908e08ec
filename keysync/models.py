"""Core data types for managed key reconciliation.

A declaration is a set of typed blocks, one collection per provider family.
Blocks are identified inside their family by the ``name`` field.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator

from keysync.errors import BlockValidationError, UnknownFamilyError

IDENTITY_FIELD = "name"


class Family(str, Enum):
    """Supported managed key families, valued by their remote key type."""
    AWS = "awskms"            # AWS Key Management Service
    PKCS = "pkcs11"           # PKCS#11 HSM mechanism
    AZURE = "azurekeyvault"   # Azure Key Vault
    GCP = "gcpckms"           # Google Cloud KMS

    @property
    def label(self) -> str:
        """Block label used in declaration documents."""
        return _LABELS[self]

    @classmethod
    def parse(cls, value: "str | Family") -> "Family":
        """Resolve a family from its remote key type or its block label."""
        if isinstance(value, Family):
            return value
        for family in cls:
            if value in (family.value, family.label):
                return family
        raise UnknownFamilyError(
            f"Unknown managed key family: {value}. "
            f"Supported: {', '.join(f.label for f in cls)}"
        )


_LABELS = {
    Family.AWS: "aws",
    Family.PKCS: "pkcs",
    Family.AZURE: "azure",
    Family.GCP: "gcp",
}


@dataclass
class ManagedKeyBlock:
    """One declared managed key.

    Attributes:
        family: Provider family the key belongs to
        name: Identity of the key within its family
        fields: Every declared field, identity included
    """
    family: Family
    name: str
    fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.family = Family.parse(self.family)
        if not self.name:
            raise BlockValidationError(
                "managed key block is missing its name",
                family=self.family.value,
            )
        self.fields = {**self.fields, IDENTITY_FIELD: self.name}

    @classmethod
    def from_fields(cls, family: "Family | str", fields: dict[str, Any]) -> "ManagedKeyBlock":
        """Build a block from a flat field mapping that carries the name."""
        return cls(family=family, name=fields.get(IDENTITY_FIELD, ""), fields=dict(fields))

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass
class RemoteKeyRecord:
    """A managed key as returned by the remote store.

    ``version_token`` is opaque and changes whenever the remote object is
    written, by us or by anyone else.
    """
    family: Family
    name: str
    fields: dict[str, Any] = field(default_factory=dict)
    version_token: str | None = None


class Snapshot:
    """An unordered set of declared blocks partitioned by family.

    Names must be unique within a family.
    """

    def __init__(self, blocks: Iterable[ManagedKeyBlock] = ()):
        self._by_family: dict[Family, dict[str, ManagedKeyBlock]] = {}
        for block in blocks:
            self.add(block)

    def add(self, block: ManagedKeyBlock) -> None:
        entries = self._by_family.setdefault(block.family, {})
        if block.name in entries:
            raise BlockValidationError(
                f"duplicate managed key name {block.name!r}",
                family=block.family.value,
                name=block.name,
            )
        entries[block.name] = block

    def by_name(self, family: Family) -> dict[str, ManagedKeyBlock]:
        return dict(self._by_family.get(Family.parse(family), {}))

    def blocks(self, family: Family) -> list[ManagedKeyBlock]:
        """Blocks of a family ordered by name."""
        entries = self._by_family.get(Family.parse(family), {})
        return [entries[name] for name in sorted(entries)]

    def get(self, family: Family, name: str) -> ManagedKeyBlock | None:
        return self._by_family.get(Family.parse(family), {}).get(name)

    def requests(self, family: Family) -> bool:
        """True if the snapshot declares at least one key of the family."""
        return bool(self._by_family.get(Family.parse(family)))

    def families(self) -> set[Family]:
        return {f for f, entries in self._by_family.items() if entries}

    def __iter__(self) -> Iterator[ManagedKeyBlock]:
        for family in Family:
            yield from self.blocks(family)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._by_family.values())

    @classmethod
    def from_document(cls, document: dict[str, list[dict[str, Any]]] | None) -> "Snapshot":
        """Build a snapshot from ``{"aws": [{...}], "pkcs": [...]}``."""
        snapshot = cls()
        for label, entries in (document or {}).items():
            family = Family.parse(label)
            for fields in entries or []:
                snapshot.add(ManagedKeyBlock.from_fields(family, fields))
        return snapshot

    @classmethod
    def from_blocks(cls, blocks_by_family: dict[Family, list[ManagedKeyBlock]]) -> "Snapshot":
        return cls(b for blocks in blocks_by_family.values() for b in blocks)

    def to_document(self) -> dict[str, list[dict[str, Any]]]:
        return {
            family.label: [dict(b.fields) for b in self.blocks(family)]
            for family in Family
            if self.requests(family)
        }
