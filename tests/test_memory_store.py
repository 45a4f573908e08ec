"""Tests for the in-memory remote store and the store factory."""

from unittest.mock import patch

import pytest

from conftest import aws_fields, pkcs_fields
from keysync.config import Settings
from keysync.errors import NotFoundError, UnsupportedFamilyError
from keysync.models import Family
from keysync.store import (
    InMemoryRemoteStore,
    VaultRemoteStore,
    close_remote_store,
    create_remote_store,
    get_remote_store,
)


class TestInMemoryRemoteStore:
    """Test remote-like semantics of the development store."""

    def test_put_get(self):
        store = InMemoryRemoteStore()
        store.put(Family.AWS, "k", aws_fields("k"))

        record = store.get(Family.AWS, "k")

        assert record.name == "k"
        assert record.fields["kms_key"] == "alias/test_identifier_string"
        assert record.fields["UUID"] == record.version_token

    def test_get_drops_redacted(self):
        store = InMemoryRemoteStore()
        store.put(Family.PKCS, "hsm", pkcs_fields("hsm"))

        record = store.get(Family.PKCS, "hsm")

        assert "pin" not in record.fields
        assert "key_id" not in record.fields
        assert store.raw(Family.PKCS, "hsm")["pin"] == "1234"

    def test_every_write_changes_token(self):
        store = InMemoryRemoteStore()
        store.put(Family.AWS, "k", aws_fields("k"))
        first = store.get(Family.AWS, "k").version_token

        store.put(Family.AWS, "k", aws_fields("k"))

        assert store.get(Family.AWS, "k").version_token != first

    def test_stored_copy_is_isolated(self):
        store = InMemoryRemoteStore()
        fields = aws_fields("k")
        store.put(Family.AWS, "k", fields)

        fields["kms_key"] = "changed"

        assert store.get(Family.AWS, "k").fields["kms_key"] == "alias/test_identifier_string"

    def test_list_sorted_and_scoped(self):
        store = InMemoryRemoteStore()
        store.put(Family.AWS, "b", aws_fields("b"))
        store.put(Family.AWS, "a", aws_fields("a"))
        store.put(Family.PKCS, "c", pkcs_fields("c"))

        assert store.list(Family.AWS) == ["a", "b"]
        assert store.list(Family.GCP) == []

    def test_missing_key(self):
        store = InMemoryRemoteStore()

        with pytest.raises(NotFoundError):
            store.get(Family.AWS, "gone")
        with pytest.raises(NotFoundError):
            store.delete(Family.AWS, "gone")

    def test_delete(self):
        store = InMemoryRemoteStore()
        store.put(Family.AWS, "k", aws_fields("k"))

        store.delete(Family.AWS, "k")

        assert store.list(Family.AWS) == []
        assert store.raw(Family.AWS, "k") is None

    def test_unsupported_family(self):
        store = InMemoryRemoteStore(unsupported=["gcp"])

        with pytest.raises(UnsupportedFamilyError) as exc_info:
            store.list(Family.GCP)

        assert "unsupported managed key type" in str(exc_info.value)
        assert store.list(Family.AWS) == []

    def test_server_version(self):
        assert InMemoryRemoteStore().server_version() is None
        assert InMemoryRemoteStore(server_version="1.12.0").server_version() == "1.12.0"


class TestStoreFactory:
    """Test store selection from settings."""

    def test_memory_backend(self):
        store = create_remote_store(Settings(store_backend="memory", vault_version="1.15.0"))

        assert isinstance(store, InMemoryRemoteStore)
        assert store.server_version() == "1.15.0"

    def test_vault_backend(self):
        settings = Settings(
            store_backend="vault",
            vault_addr="https://vault.example.com:8200",
            vault_token="hvs.test",
            vault_namespace="admin",
            managed_keys_path="/sys/managed-keys/",
            request_timeout=5,
        )

        store = create_remote_store(settings)

        assert isinstance(store, VaultRemoteStore)
        assert store.vault_addr == "https://vault.example.com:8200"
        assert store.managed_keys_path == "sys/managed-keys"
        assert store.timeout == 5
        assert store.session.headers["X-Vault-Namespace"] == "admin"

    def test_cached_singleton(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "memory")

        assert get_remote_store() is get_remote_store()

    def test_close_remote_store(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "memory")

        # Nothing cached yet, nothing to close
        close_remote_store()
        store = get_remote_store()

        with patch.object(store, "close") as mock_close:
            close_remote_store()

        mock_close.assert_called_once()
        assert get_remote_store() is store
