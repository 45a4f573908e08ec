"""Engine configuration."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    # Remote store: "vault" talks HTTP, "memory" is a local development store
    store_backend: Literal["vault", "memory"] = "vault"

    # Vault connection
    vault_addr: str = "http://127.0.0.1:8200"
    vault_token: Optional[str] = None
    vault_namespace: Optional[str] = None
    request_timeout: float = 30.0

    # Where managed keys live; each family is a flat collection below it
    managed_keys_path: str = "sys/managed-keys"

    # Field of a read response that carries the opaque version token
    version_field: str = "UUID"

    # Server version override for the feature gate (skips sys/seal-status)
    vault_version: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @model_validator(mode="after")
    def _require_token(self) -> "Settings":
        """The HTTP store cannot authenticate without a token."""
        if self.store_backend == "vault" and not self.vault_token:
            raise ValueError("Missing VAULT_TOKEN (set STORE_BACKEND=memory for local development)")
        self.managed_keys_path = self.managed_keys_path.strip("/")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
