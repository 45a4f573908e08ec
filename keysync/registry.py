"""Managed key type registry.

Maps every supported family to an immutable field schema: which fields are
required, which are write-only (redacted by the remote on read), which value
is the version token, and which field is the identity.

The table is fixed at import time. Schemas are plain value objects handed to
the reconciler; nothing here is mutated at runtime.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator

from keysync.errors import BlockValidationError, UnknownFamilyError
from keysync.models import IDENTITY_FIELD, Family, ManagedKeyBlock


@dataclass(frozen=True)
class FieldDescriptor:
    """Description of one field of a family schema.

    Attributes:
        key: Field name in declarations
        required: Must be present and non-empty in every declared block
        redacted: Accepted on write, never returned on read
        identity: Names the key within its family
        computed: Assigned by the remote, never written
        retain_local: Echoed by the remote in an incompatible format, so the
            declared value always wins on read
        remote_key: Field name in the remote payload, if different
        encode: Transform applied on write
        decode: Transform applied on read
    """
    key: str
    required: bool = False
    redacted: bool = False
    identity: bool = False
    computed: bool = False
    retain_local: bool = False
    remote_key: str | None = None
    encode: Callable[[Any], Any] | None = None
    decode: Callable[[Any], Any] | None = None

    @property
    def wire_key(self) -> str:
        return self.remote_key or self.key

    @property
    def kept_from_declaration(self) -> bool:
        """Whether reads restore this field from the declared block."""
        return self.redacted or self.retain_local


@dataclass(frozen=True)
class FamilySchema:
    """Field schema of one managed key family."""
    family: Family
    fields: tuple[FieldDescriptor, ...]
    min_version: str = "1.10.0"
    require_one_of: tuple[tuple[str, ...], ...] = ()
    description: str = ""

    def __post_init__(self):
        identities = [f for f in self.fields if f.identity]
        if len(identities) != 1:
            raise ValueError(
                f"schema for {self.family.value} must have exactly one identity field, "
                f"found {len(identities)}"
            )
        if identities[0].key != IDENTITY_FIELD:
            raise ValueError(f"identity field of {self.family.value} must be {IDENTITY_FIELD!r}")

    @property
    def label(self) -> str:
        return self.family.label

    @property
    def identity(self) -> FieldDescriptor:
        return next(f for f in self.fields if f.identity)

    @property
    def version_field(self) -> FieldDescriptor | None:
        """The computed field that carries the remote version token."""
        return next((f for f in self.fields if f.computed), None)

    @property
    def redacted_keys(self) -> frozenset[str]:
        return frozenset(f.key for f in self.fields if f.redacted)

    def keys(self) -> list[str]:
        return [f.key for f in self.fields]

    def get_field(self, key: str) -> FieldDescriptor | None:
        return next((f for f in self.fields if f.key == key), None)

    def validate(self, block: ManagedKeyBlock) -> None:
        """Check a declared block against this schema.

        Raises:
            BlockValidationError: On unknown, missing or conflicting fields
        """
        known = set(self.keys())
        unknown = sorted(set(block.fields) - known)
        if unknown:
            raise BlockValidationError(
                f"unknown fields for {self.label} managed key: {', '.join(unknown)}",
                family=self.family.value,
                name=block.name,
            )

        missing = [
            f.key for f in self.fields
            if f.required and _is_empty(block.fields.get(f.key))
        ]
        if missing:
            raise BlockValidationError(
                f"missing required fields: {', '.join(missing)}",
                family=self.family.value,
                name=block.name,
            )

        for group in self.require_one_of:
            if all(_is_empty(block.fields.get(k)) for k in group):
                raise BlockValidationError(
                    f"at least one of {' or '.join(group)} must be provided",
                    family=self.family.value,
                    name=block.name,
                )

    def to_payload(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Build the write payload for a declared block.

        Computed fields are never written, and empty strings are not sent so
        the remote keeps its own defaults.
        """
        payload = {}
        for descriptor in self.fields:
            if descriptor.computed or descriptor.key not in fields:
                continue
            value = fields[descriptor.key]
            if _is_empty(value):
                continue
            if descriptor.encode is not None:
                value = descriptor.encode(value)
            payload[descriptor.wire_key] = value
        return payload

    def from_remote(self, data: dict[str, Any]) -> dict[str, Any]:
        """Map a remote read payload onto schema keys.

        Redacted and retain_local fields are dropped; they are restored from
        the declaration by the read path, never taken from the remote.
        """
        fields = {}
        for descriptor in self.fields:
            if descriptor.kept_from_declaration or descriptor.computed:
                continue
            if descriptor.wire_key not in data:
                continue
            value = data[descriptor.wire_key]
            if descriptor.decode is not None:
                value = descriptor.decode(value)
            fields[descriptor.key] = value
        return fields


class TypeRegistry:
    """Fixed, ordered mapping of family to schema."""

    def __init__(self, schemas: Iterable[FamilySchema]):
        self._schemas: dict[Family, FamilySchema] = {}
        for schema in schemas:
            if schema.family in self._schemas:
                raise ValueError(f"duplicate schema for family {schema.family.value}")
            self._schemas[schema.family] = schema

    def lookup(self, family: "Family | str") -> FamilySchema:
        """Get the schema of a family.

        Raises:
            UnknownFamilyError: If the family is not registered
        """
        family = Family.parse(family)
        schema = self._schemas.get(family)
        if schema is None:
            raise UnknownFamilyError(
                f"managed key family {family.value} is not registered",
                family=family.value,
            )
        return schema

    def by_label(self, label: str) -> FamilySchema:
        return self.lookup(Family.parse(label))

    def families(self) -> list[Family]:
        """Registered families in fixed reconciliation order."""
        return list(self._schemas)

    def __iter__(self) -> Iterator[FamilySchema]:
        return iter(self._schemas.values())

    def __contains__(self, family: object) -> bool:
        return family in self._schemas


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def _join_usages(value: Any) -> Any:
    # Remote expects a comma-delimited string
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return value


def _format_mechanism(value: Any) -> Any:
    # Remote returns the mechanism as a number
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return f"0x{value:04x}"
    if isinstance(value, str) and value.isdigit():
        return f"0x{int(value):04x}"
    return value


def _common_fields() -> tuple[FieldDescriptor, ...]:
    return (
        FieldDescriptor("allow_generate_key"),
        FieldDescriptor("allow_replace_key"),
        FieldDescriptor("allow_store_key"),
        FieldDescriptor("any_mount"),
        FieldDescriptor("usages", retain_local=True, encode=_join_usages),
        FieldDescriptor("uuid", computed=True, remote_key="UUID"),
    )


PKCS_SCHEMA = FamilySchema(
    family=Family.PKCS,
    description="PKCS#11 HSM backed managed keys",
    fields=(
        FieldDescriptor(IDENTITY_FIELD, required=True, identity=True),
        FieldDescriptor("library", required=True),
        FieldDescriptor("key_label"),
        FieldDescriptor("key_id", redacted=True),
        FieldDescriptor("mechanism", required=True, decode=_format_mechanism),
        FieldDescriptor("pin", required=True, redacted=True),
        FieldDescriptor("slot"),
        FieldDescriptor("token_label"),
        FieldDescriptor("curve"),
        FieldDescriptor("key_bits"),
        FieldDescriptor("force_rw_session"),
        FieldDescriptor("max_parallel"),
    ) + _common_fields(),
    require_one_of=(("key_id", "key_label"),),
)

AWS_SCHEMA = FamilySchema(
    family=Family.AWS,
    description="AWS KMS managed keys",
    fields=(
        FieldDescriptor(IDENTITY_FIELD, required=True, identity=True),
        FieldDescriptor("access_key", required=True, redacted=True),
        FieldDescriptor("secret_key", required=True, redacted=True),
        FieldDescriptor("curve"),
        FieldDescriptor("endpoint"),
        FieldDescriptor("key_bits", required=True),
        FieldDescriptor("key_type", required=True),
        FieldDescriptor("kms_key", required=True),
        FieldDescriptor("region"),
    ) + _common_fields(),
)

AZURE_SCHEMA = FamilySchema(
    family=Family.AZURE,
    description="Azure Key Vault managed keys",
    fields=(
        FieldDescriptor(IDENTITY_FIELD, required=True, identity=True),
        FieldDescriptor("tenant_id", required=True),
        FieldDescriptor("client_id", required=True),
        FieldDescriptor("client_secret", required=True),
        FieldDescriptor("environment"),
        FieldDescriptor("vault_name", required=True),
        FieldDescriptor("key_name", required=True),
        FieldDescriptor("resource"),
        FieldDescriptor("key_bits"),
        FieldDescriptor("key_type", required=True),
    ) + _common_fields(),
)

GCP_SCHEMA = FamilySchema(
    family=Family.GCP,
    description="GCP Cloud KMS managed keys",
    min_version="1.15.0",
    fields=(
        FieldDescriptor(IDENTITY_FIELD, required=True, identity=True),
        FieldDescriptor("credentials", required=True, redacted=True),
        FieldDescriptor("project", required=True),
        FieldDescriptor("key_ring", required=True),
        FieldDescriptor("crypto_key", required=True),
        FieldDescriptor("crypto_key_version"),
        FieldDescriptor("region", required=True),
        FieldDescriptor("algorithm", required=True),
        FieldDescriptor("max_parallel"),
    ) + _common_fields(),
)

# Reconciliation order across families
DEFAULT_REGISTRY = TypeRegistry([AWS_SCHEMA, PKCS_SCHEMA, AZURE_SCHEMA, GCP_SCHEMA])
