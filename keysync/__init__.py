"""
keysync - Managed key reconciliation for HashiCorp Vault.

Declare managed keys for several provider families (PKCS#11, AWS KMS,
Azure Key Vault, GCP Cloud KMS) and keep Vault's ``sys/managed-keys``
collections in line with the declaration.

Example:
    from keysync import Reconciler, Snapshot
    from keysync.store import get_remote_store

    reconciler = Reconciler(get_remote_store())
    new = Snapshot.from_document({"aws": [{"name": "key-1", ...}]})
    reconciler.reconcile_all(Snapshot(), new, is_fresh=True)
"""

__version__ = "0.1.0"

from keysync.errors import (
    ManagedKeyError,
    CollisionError,
    UnsupportedFamilyError,
    NotFoundError,
    TransportError,
    AuthenticationError,
    AuthorizationError,
    ServerError,
    BlockValidationError,
    UnknownFamilyError,
    FeatureUnavailableError,
    ReconcileCancelledError,
)
from keysync.models import Family, ManagedKeyBlock, RemoteKeyRecord, Snapshot
from keysync.registry import DEFAULT_REGISTRY, FamilySchema, FieldDescriptor, TypeRegistry
from keysync.differ import SnapshotDiff, diff
from keysync.drift import DriftNotice, DriftReporter
from keysync.reconciler import ApplyResult, Reconciler, ReconcileResult
from keysync.version import ServerVersionGate

__all__ = [
    "__version__",
    # Engine
    "Reconciler",
    "ReconcileResult",
    "ApplyResult",
    "DriftReporter",
    "DriftNotice",
    "SnapshotDiff",
    "diff",
    "ServerVersionGate",
    # Model
    "Family",
    "ManagedKeyBlock",
    "RemoteKeyRecord",
    "Snapshot",
    "FamilySchema",
    "FieldDescriptor",
    "TypeRegistry",
    "DEFAULT_REGISTRY",
    # Errors
    "ManagedKeyError",
    "CollisionError",
    "UnsupportedFamilyError",
    "NotFoundError",
    "TransportError",
    "AuthenticationError",
    "AuthorizationError",
    "ServerError",
    "BlockValidationError",
    "UnknownFamilyError",
    "FeatureUnavailableError",
    "ReconcileCancelledError",
]
