"""
Exception classes for keysync.
"""


class ManagedKeyError(Exception):
    """Base exception for managed key operations.

    Carries the family, key name and remote operation that failed so the
    caller can log and retry the reconciliation.
    """

    def __init__(
        self,
        message: str,
        family: str | None = None,
        name: str | None = None,
        operation: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.family = family
        self.name = name
        self.operation = operation

    def with_context(
        self,
        family: str | None = None,
        name: str | None = None,
        operation: str | None = None,
    ) -> "ManagedKeyError":
        """Fill in missing context fields and return self."""
        self.family = self.family or family
        self.name = self.name or name
        self.operation = self.operation or operation
        return self

    def __str__(self) -> str:
        parts = []
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.family:
            parts.append(f"family={self.family}")
        if self.name:
            parts.append(f"name={self.name}")
        if not parts:
            return self.message
        return f"{self.message} ({', '.join(parts)})"


class CollisionError(ManagedKeyError):
    """Remote already holds keys of a family a fresh resource declares."""
    pass


class UnsupportedFamilyError(ManagedKeyError):
    """The remote server does not know this managed key family."""
    pass


class NotFoundError(ManagedKeyError):
    """The requested managed key does not exist remotely."""
    pass


class TransportError(ManagedKeyError):
    """Network or server failure talking to the remote store."""

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class AuthenticationError(TransportError):
    """Authentication failed - invalid or expired token."""
    pass


class AuthorizationError(TransportError):
    """Token is not permitted to manage keys at this path."""
    pass


class ServerError(TransportError):
    """Remote server encountered an error."""
    pass


class BlockValidationError(ManagedKeyError):
    """A declared block does not satisfy its family schema."""
    pass


class UnknownFamilyError(ManagedKeyError):
    """Family is not present in the type registry."""
    pass


class FeatureUnavailableError(ManagedKeyError):
    """The remote server version is too old for a requested family."""
    pass


class ReconcileCancelledError(ManagedKeyError):
    """Reconciliation was cancelled by the caller."""
    pass
