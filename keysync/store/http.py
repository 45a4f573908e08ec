"""
HTTP remote store for HashiCorp Vault managed keys.
"""

from typing import Any
from urllib.parse import quote

import requests
from pydantic import BaseModel, Field, ValidationError

from keysync import __version__
from keysync.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ServerError,
    TransportError,
    UnsupportedFamilyError,
)
from keysync.logging import get_logger
from keysync.models import Family, RemoteKeyRecord
from keysync.store.base import RemoteStore

logger = get_logger(__name__)

UNSUPPORTED_MARKER = "unsupported managed key type"


class _ReadResponse(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)


class _KeyList(BaseModel):
    keys: list[str] = Field(default_factory=list)


class _ListResponse(BaseModel):
    data: _KeyList = Field(default_factory=_KeyList)


class VaultRemoteStore(RemoteStore):
    """
    Managed key store backed by the Vault HTTP API.

    Keys of one family live under ``{managed_keys_path}/{family}``; LIST on
    that prefix returns names, and each name is read, written and deleted
    at ``{managed_keys_path}/{family}/{name}``.

    Example:
        store = VaultRemoteStore(
            vault_addr="https://vault.example.com:8200",
            token="hvs.example",
        )
        store.put(Family.AWS, "key-1", {"kms_key": "alias/app", ...})
    """

    def __init__(
        self,
        vault_addr: str,
        token: str,
        namespace: str | None = None,
        managed_keys_path: str = "sys/managed-keys",
        version_field: str = "UUID",
        timeout: float = 30.0,
        user_agent: str | None = None,
    ):
        """
        Initialize the store.

        Args:
            vault_addr: Base URL of the Vault server
            token: Vault token used for every request
            namespace: Enterprise namespace, sent as X-Vault-Namespace
            managed_keys_path: API path holding the managed key collections
            version_field: Read response field carrying the version token
            timeout: Request timeout in seconds
            user_agent: Custom user agent string
        """
        self.vault_addr = vault_addr.rstrip("/")
        self.managed_keys_path = managed_keys_path.strip("/")
        self.version_field = version_field
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({
            "X-Vault-Token": token,
            "Content-Type": "application/json",
            "User-Agent": user_agent or f"keysync/{__version__}",
        })
        if namespace:
            self.session.headers["X-Vault-Namespace"] = namespace

    def put(self, family: Family, name: str, fields: dict[str, Any]) -> None:
        family = Family.parse(family)
        path = self._key_path(family, name)
        logger.debug("Writing managed key", path=path)
        self._request("PUT", path, family=family, name=name, json=fields)

    def list(self, family: Family) -> list[str]:
        family = Family.parse(family)
        path = self._family_path(family)
        logger.debug("Listing managed keys", path=path)
        try:
            body = self._request("LIST", path, family=family)
        except NotFoundError:
            # Vault answers 404 for an empty collection
            return []
        if body is None:
            return []
        return self._parse(_ListResponse, body, family, None, "list").data.keys

    def get(self, family: Family, name: str) -> RemoteKeyRecord:
        family = Family.parse(family)
        path = self._key_path(family, name)
        logger.debug("Reading managed key", path=path)
        body = self._request("GET", path, family=family, name=name)
        if body is None:
            raise NotFoundError(
                "managed key not found",
                family=family.value, name=name, operation="get",
            )
        data = self._parse(_ReadResponse, body, family, name, "get").data
        token = data.get(self.version_field)
        return RemoteKeyRecord(
            family=family,
            name=name,
            fields=data,
            version_token=str(token) if token is not None else None,
        )

    def delete(self, family: Family, name: str) -> None:
        family = Family.parse(family)
        path = self._key_path(family, name)
        logger.debug("Deleting managed key", path=path)
        self._request("DELETE", path, family=family, name=name)

    def server_version(self) -> str | None:
        """Read the server version from ``sys/seal-status``."""
        try:
            body = self._request("GET", "sys/seal-status")
        except TransportError as e:
            logger.warning("Could not determine server version", error=str(e))
            return None
        return (body or {}).get("version")

    def close(self):
        """Close the HTTP session."""
        self.session.close()

    def _family_path(self, family: Family) -> str:
        return f"{self.managed_keys_path}/{family.value}"

    def _key_path(self, family: Family, name: str) -> str:
        return f"{self._family_path(family)}/{quote(name, safe='')}"

    def _request(
        self,
        method: str,
        path: str,
        family: Family | None = None,
        name: str | None = None,
        **kwargs,
    ) -> dict[str, Any] | None:
        """
        Make an authenticated request to the Vault API.

        Returns:
            Response JSON, or None for an empty body

        Raises:
            ManagedKeyError: Typed error for any failed request
        """
        kwargs.setdefault("timeout", self.timeout)
        operation = _OPERATIONS.get(method, method.lower())
        family_value = family.value if family else None

        try:
            response = self.session.request(
                method,
                f"{self.vault_addr}/v1/{path}",
                **kwargs,
            )
        except requests.RequestException as e:
            raise TransportError(
                f"Request to {path} failed: {e}",
                family=family_value, name=name, operation=operation,
            ) from e

        return self._handle_response(response, path, family_value, name, operation)

    def _handle_response(
        self,
        response: requests.Response,
        path: str,
        family: str | None,
        name: str | None,
        operation: str,
    ) -> dict[str, Any] | None:
        """
        Handle API response and raise the matching typed error.
        """
        status = response.status_code
        context = {"family": family, "name": name, "operation": operation}

        if status in (200, 201):
            try:
                return response.json()
            except ValueError as e:
                raise TransportError(
                    f"Malformed response from {path}", status_code=status, **context
                ) from e
        if status == 204:
            return None

        detail = _error_detail(response)

        if UNSUPPORTED_MARKER in detail.lower():
            raise UnsupportedFamilyError(detail, **context)
        if status == 401:
            raise AuthenticationError(
                f"Invalid or expired token: {detail}", status_code=status, **context
            )
        elif status == 403:
            raise AuthorizationError(
                f"Not authorized: {detail}", status_code=status, **context
            )
        elif status == 404:
            raise NotFoundError(f"Not found: {path}", **context)
        elif status >= 500:
            raise ServerError(
                f"Server error ({status}): {detail}", status_code=status, **context
            )
        else:
            raise TransportError(
                f"Request failed ({status}): {detail}", status_code=status, **context
            )

    @staticmethod
    def _parse(model: type[BaseModel], body: dict[str, Any], family: Family,
               name: str | None, operation: str):
        try:
            return model.model_validate(body)
        except ValidationError as e:
            raise TransportError(
                f"Unexpected response shape: {e}",
                family=family.value, name=name, operation=operation,
            ) from e


_OPERATIONS = {"PUT": "put", "GET": "get", "LIST": "list", "DELETE": "delete"}


def _error_detail(response: requests.Response) -> str:
    """Vault reports failures as ``{"errors": ["..."]}``."""
    try:
        errors = response.json().get("errors") or []
        detail = "; ".join(str(e) for e in errors)
    except (ValueError, AttributeError):
        detail = ""
    return detail or response.text or "Unknown error"
