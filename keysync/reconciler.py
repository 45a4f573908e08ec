"""Managed key reconciliation.

Brings the remote namespace in line with a declared snapshot, one family at
a time:

1. A fresh resource refuses to adopt pre-existing remote keys of a family
   it declares (CollisionError); they must be imported instead. A full pass
   checks every family this way before its first write.
2. Every declared key is written (upsert), new and changed alike.
3. Only after all writes succeed are keys dropped from the declaration
   deleted, so a rename never leaves a window without either key.

Calls are issued sequentially and fail fast. Nothing is retried or rolled
back: a failed pass leaves the remote partially applied, and the next pass
with the same inputs converges because writes are upserts and deletes only
touch names absent from the declaration.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable

from keysync.differ import SnapshotDiff, diff
from keysync.drift import DriftReporter
from keysync.errors import (
    CollisionError,
    FeatureUnavailableError,
    ManagedKeyError,
    NotFoundError,
    ReconcileCancelledError,
    UnsupportedFamilyError,
)
from keysync.logging import get_logger, log_operation, reconcile_context
from keysync.models import IDENTITY_FIELD, Family, ManagedKeyBlock, RemoteKeyRecord, Snapshot
from keysync.registry import DEFAULT_REGISTRY, FamilySchema, TypeRegistry
from keysync.store.base import RemoteStore
from keysync.version import always_available

logger = get_logger(__name__)


class SkipReason:
    FEATURE_UNAVAILABLE = "feature_unavailable"  # Server older than the family
    UNSUPPORTED = "unsupported"  # Server rejected the family as unknown


@dataclass
class ReconcileResult:
    """Outcome of reconciling one family."""
    family: Family
    diff: SnapshotDiff
    written: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    skipped: str | None = None

    def summary(self) -> str:
        if self.skipped:
            return f"{self.family.value}: skipped ({self.skipped})"
        return (
            f"{self.family.value}: wrote {len(self.written)}, "
            f"deleted {len(self.deleted)}"
        )


@dataclass
class ApplyResult:
    """Outcome of a full pass: per-family results and the refreshed state."""
    results: list[ReconcileResult] = field(default_factory=list)
    state: dict[Family, list[ManagedKeyBlock]] = field(default_factory=dict)


class Reconciler:
    """Synchronizes declared managed keys with a remote store.

    Args:
        store: Remote store the keys live in
        registry: Family schemas, fixed at startup
        is_feature_available: ``(min_version) -> bool`` gate for families
        drift_reporter: Receives every record read by ``read_all``
        guard_new_families: Also refuse to adopt remote keys when a family
            first appears in the declaration of an existing resource
    """

    def __init__(
        self,
        store: RemoteStore,
        registry: TypeRegistry | None = None,
        is_feature_available: Callable[[str], bool] | None = None,
        drift_reporter: DriftReporter | None = None,
        guard_new_families: bool = False,
    ):
        self.store = store
        self.registry = registry or DEFAULT_REGISTRY
        self.is_feature_available = is_feature_available or always_available
        self.drift_reporter = drift_reporter or DriftReporter()
        self.guard_new_families = guard_new_families

    def reconcile(
        self,
        family: "Family | str",
        old: Snapshot,
        new: Snapshot,
        is_fresh: bool,
        cancel: threading.Event | None = None,
    ) -> ReconcileResult:
        """Reconcile one family of the declaration.

        Args:
            family: Family to reconcile
            old: Previously declared snapshot
            new: Currently declared snapshot
            is_fresh: No prior declared state exists for this resource
            cancel: Set by the caller to stop before the next remote call

        Returns:
            What was written and deleted

        Raises:
            CollisionError: Fresh resource, remote already has keys of the family
            BlockValidationError: A declared block does not fit its schema
            FeatureUnavailableError: Requested family needs a newer server
            ReconcileCancelledError: ``cancel`` was set mid-pass
            ManagedKeyError: Any other store failure, with context
        """
        schema = self.registry.lookup(family)
        return self._reconcile(schema, old, new, is_fresh, cancel, guard=True)

    def _reconcile(
        self,
        schema: FamilySchema,
        old: Snapshot,
        new: Snapshot,
        is_fresh: bool,
        cancel: threading.Event | None,
        guard: bool,
    ) -> ReconcileResult:
        family = schema.family
        requested = new.requests(family)
        result = ReconcileResult(family=family, diff=diff(family, old, new))

        with reconcile_context(family=family.value):
            if not self._available(schema, requested):
                result.skipped = SkipReason.FEATURE_UNAVAILABLE
                return result

            blocks = new.blocks(family)
            for block in blocks:
                schema.validate(block)

            try:
                if guard and self._needs_guard(family, old, new, is_fresh):
                    self._check_collision(family, cancel)

                for block in blocks:
                    self._put(schema, block, cancel)
                    result.written.append(block.name)

                for name in sorted(result.diff.removed):
                    self._delete(family, name, cancel)
                    result.deleted.append(name)
            except UnsupportedFamilyError:
                if requested:
                    raise
                logger.info("Managed key type not supported by server, nothing to do")
                result.skipped = SkipReason.UNSUPPORTED
                return result

            logger.info(
                "Reconciled managed keys",
                written=len(result.written),
                deleted=len(result.deleted),
            )
        return result

    @log_operation("reconcile")
    def reconcile_all(
        self,
        old: Snapshot,
        new: Snapshot,
        is_fresh: bool,
        cancel: threading.Event | None = None,
    ) -> list[ReconcileResult]:
        """Reconcile every family present in either snapshot, in registry order.

        Every family is gated, validated and checked for collisions before the
        first write of any family, so a collision in one family leaves the
        remote untouched. Stops at the first failing family.
        """
        schemas = [
            s for s in self.registry
            if new.requests(s.family) or old.requests(s.family)
        ]
        results = []
        with reconcile_context():
            for schema in schemas:
                self._preflight(schema, old, new, is_fresh, cancel)
            for schema in schemas:
                results.append(self._reconcile(schema, old, new, is_fresh, cancel, guard=False))
        return results

    def apply(
        self,
        old: Snapshot,
        new: Snapshot,
        is_fresh: bool,
        cancel: threading.Event | None = None,
    ) -> ApplyResult:
        """Reconcile every family, then refresh the families just written.

        The refresh records the version tokens produced by this pass's own
        writes, so the returned state does not report them as drift on the
        next ``read_all``.
        """
        results = self.reconcile_all(old, new, is_fresh, cancel)
        written = [r.family for r in results if r.skipped is None and new.requests(r.family)]
        state = self.read_all(written, self._without_versions(new, written))
        return ApplyResult(results=results, state=state)

    def read_all(
        self,
        families: Iterable["Family | str"] | None = None,
        declared: Snapshot | None = None,
    ) -> dict[Family, list[ManagedKeyBlock]]:
        """Refresh declared state from the remote store.

        Remote fields are merged with redacted and retain_local values taken
        from the declared block of the same name; those are never taken from
        the remote response. Each record's version token is checked for drift
        against the token recorded in the declaration.

        Args:
            families: Families to read (default: all registered)
            declared: Last declared state, source of redacted values

        Returns:
            Blocks per family, ordered by name
        """
        declared = declared or Snapshot()
        result: dict[Family, list[ManagedKeyBlock]] = {}

        with reconcile_context():
            for schema in self._schemas(families):
                family = schema.family
                requested = declared.requests(family)

                if not self._available(schema, requested, operation="list"):
                    result[family] = []
                    continue

                try:
                    names = self.store.list(family)
                except UnsupportedFamilyError:
                    if requested:
                        raise
                    logger.info("Managed key type not supported by server", family=family.value)
                    result[family] = []
                    continue

                blocks = []
                for name in sorted(names):
                    try:
                        record = self.store.get(family, name)
                    except NotFoundError:
                        # Deleted between list and read
                        continue
                    blocks.append(self._merge(schema, record, declared.get(family, name)))
                result[family] = blocks

        return result

    def import_state(
        self, families: Iterable["Family | str"] | None = None
    ) -> dict[Family, list[ManagedKeyBlock]]:
        """Read every remote key without prior declared state.

        Redacted fields cannot be recovered this way and are absent from the
        returned blocks.
        """
        return self.read_all(families, Snapshot())

    @log_operation("destroy")
    def destroy(
        self,
        families: Iterable["Family | str"],
        cancel: threading.Event | None = None,
    ) -> dict[Family, list[str]]:
        """Delete every remote key of the given families.

        Returns:
            Deleted names per family
        """
        deleted: dict[Family, list[str]] = {}
        with reconcile_context():
            for schema in self._schemas(families):
                family = schema.family
                with reconcile_context(family=family.value):
                    self._check_cancelled(cancel, family, None, "list")
                    try:
                        names = self.store.list(family)
                    except ManagedKeyError as e:
                        raise e.with_context(family=family.value, operation="list")
                    deleted[family] = []
                    for name in sorted(names):
                        self._delete(family, name, cancel)
                        deleted[family].append(name)
        return deleted

    def _schemas(self, families: Iterable["Family | str"] | None) -> list[FamilySchema]:
        if families is None:
            return list(self.registry)
        wanted = {Family.parse(f) for f in families}
        for family in wanted:
            self.registry.lookup(family)
        return [s for s in self.registry if s.family in wanted]

    def _available(self, schema: FamilySchema, requested: bool,
                   operation: str | None = None) -> bool:
        """Apply the feature gate; a requested family above the server version fails."""
        if self.is_feature_available(schema.min_version):
            return True
        if requested:
            raise FeatureUnavailableError(
                f"managed key type {schema.family.value} requires server version "
                f">= {schema.min_version}",
                family=schema.family.value,
                operation=operation,
            )
        return False

    def _needs_guard(self, family: Family, old: Snapshot, new: Snapshot,
                     is_fresh: bool) -> bool:
        if not new.requests(family):
            return False
        return is_fresh or (self.guard_new_families and not old.requests(family))

    def _preflight(self, schema: FamilySchema, old: Snapshot, new: Snapshot,
                   is_fresh: bool, cancel: threading.Event | None) -> None:
        family = schema.family
        with reconcile_context(family=family.value):
            if not self._available(schema, new.requests(family)):
                return
            for block in new.blocks(family):
                schema.validate(block)
            if self._needs_guard(family, old, new, is_fresh):
                self._check_collision(family, cancel)

    def _without_versions(self, snapshot: Snapshot, families: Iterable[Family]) -> Snapshot:
        # Tokens recorded before this pass predate its own writes
        blocks = []
        for family in families:
            version = self.registry.lookup(family).version_field
            for block in snapshot.blocks(family):
                fields = {
                    k: v for k, v in block.fields.items()
                    if version is None or k != version.key
                }
                blocks.append(ManagedKeyBlock(family=family, name=block.name, fields=fields))
        return Snapshot(blocks)

    def _check_collision(self, family: Family, cancel: threading.Event | None) -> None:
        self._check_cancelled(cancel, family, None, "list")
        try:
            existing = self.store.list(family)
        except ManagedKeyError as e:
            raise e.with_context(family=family.value, operation="list")
        if existing:
            raise CollisionError(
                f"{len(existing)} managed key(s) of type {family.value} already exist "
                f"remotely; import them instead of declaring a new resource",
                family=family.value,
                operation="list",
            )

    def _put(self, schema: FamilySchema, block: ManagedKeyBlock,
             cancel: threading.Event | None) -> None:
        family = schema.family
        self._check_cancelled(cancel, family, block.name, "put")
        logger.debug("Writing managed key", name=block.name)
        try:
            self.store.put(family, block.name, schema.to_payload(block.fields))
        except ManagedKeyError as e:
            raise e.with_context(family=family.value, name=block.name, operation="put")

    def _delete(self, family: Family, name: str, cancel: threading.Event | None) -> None:
        self._check_cancelled(cancel, family, name, "delete")
        logger.debug("Deleting managed key", name=name)
        try:
            self.store.delete(family, name)
        except NotFoundError:
            logger.debug("Managed key already absent", name=name)
        except ManagedKeyError as e:
            raise e.with_context(family=family.value, name=name, operation="delete")

    @staticmethod
    def _check_cancelled(cancel: threading.Event | None, family: Family,
                         name: str | None, operation: str) -> None:
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelledError(
                "reconciliation cancelled",
                family=family.value, name=name, operation=operation,
            )

    def _merge(self, schema: FamilySchema, record: RemoteKeyRecord,
               declared: ManagedKeyBlock | None) -> ManagedKeyBlock:
        fields = schema.from_remote(record.fields)

        if declared is not None:
            for descriptor in schema.fields:
                if descriptor.kept_from_declaration and descriptor.key in declared.fields:
                    fields[descriptor.key] = declared.fields[descriptor.key]

        version = schema.version_field
        if version is not None:
            last_token = declared.get(version.key) if declared is not None else None
            self.drift_reporter.check(record, last_token)
            if record.version_token is not None:
                fields[version.key] = record.version_token

        fields[IDENTITY_FIELD] = record.name
        return ManagedKeyBlock(family=schema.family, name=record.name, fields=fields)
