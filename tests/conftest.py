"""Test configuration and fixtures."""

import pytest

from keysync.config import get_settings
from keysync.models import Family, ManagedKeyBlock, Snapshot
from keysync.reconciler import Reconciler
from keysync.store.factory import reset_remote_store
from keysync.store.memory import InMemoryRemoteStore


class RecordingStore(InMemoryRemoteStore):
    """In-memory store that records every call and can fail on demand.

    ``failures`` maps ``(operation, name)`` to an exception raised once, the
    next time that call is made.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: list[tuple[str, str, str | None]] = []
        self.failures: dict[tuple[str, str | None], Exception] = {}

    def _record(self, operation, family, name=None):
        self.calls.append((operation, Family.parse(family).value, name))
        exc = self.failures.pop((operation, name), None)
        if exc is not None:
            raise exc

    def put(self, family, name, fields):
        self._record("put", family, name)
        super().put(family, name, fields)

    def list(self, family):
        self._record("list", family)
        return super().list(family)

    def get(self, family, name):
        self._record("get", family, name)
        return super().get(family, name)

    def delete(self, family, name):
        self._record("delete", family, name)
        super().delete(family, name)

    def operations(self, *kinds):
        return [c for c in self.calls if not kinds or c[0] in kinds]


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset cached settings and store between tests."""
    get_settings.cache_clear()
    reset_remote_store()
    yield
    get_settings.cache_clear()
    reset_remote_store()


@pytest.fixture
def store():
    """Fresh recording in-memory store."""
    return RecordingStore()


@pytest.fixture
def reconciler(store):
    """Reconciler over the recording store."""
    return Reconciler(store)


def aws_fields(name: str, **overrides) -> dict:
    fields = {
        "name": name,
        "access_key": "ASIAKBASDADA09090",
        "secret_key": "8C7THtrIigh2rPZQMbguugt8IUftWhMRCOBzbuyz",
        "key_bits": "2048",
        "key_type": "RSA",
        "kms_key": "alias/test_identifier_string",
    }
    fields.update(overrides)
    return fields


def pkcs_fields(name: str, **overrides) -> dict:
    fields = {
        "name": name,
        "library": "softhsm",
        "key_label": "kms-intermediate",
        "key_id": "8001",
        "mechanism": "0x0001",
        "pin": "1234",
        "slot": "0",
        "key_bits": "4096",
    }
    fields.update(overrides)
    return fields


def azure_fields(name: str, **overrides) -> dict:
    fields = {
        "name": name,
        "tenant_id": "tenant-1",
        "client_id": "client-1",
        "client_secret": "azure-secret",
        "vault_name": "hc-vault",
        "key_name": "vault-key",
        "key_type": "RSA-HSM",
    }
    fields.update(overrides)
    return fields


def gcp_fields(name: str, **overrides) -> dict:
    fields = {
        "name": name,
        "credentials": "/etc/gcp/credentials.json",
        "project": "my-project",
        "key_ring": "ring-1",
        "crypto_key": "key-1",
        "region": "us-east1",
        "algorithm": "ec_sign_p256_sha256",
    }
    fields.update(overrides)
    return fields


def aws_block(name: str, **overrides) -> ManagedKeyBlock:
    return ManagedKeyBlock.from_fields(Family.AWS, aws_fields(name, **overrides))


def snapshot(*blocks: ManagedKeyBlock) -> Snapshot:
    return Snapshot(blocks)
