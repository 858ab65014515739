"""
Shared configuration management for the Wallet Gateway client.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseSettings):
    """Client configuration loaded from ``WALLET_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Backends
    auth_service_url: str = Field(default="http://localhost:3001/api/v1")
    wallet_service_url: str = Field(default="http://localhost:3002/api/v1")
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    user_agent: str = Field(default="wallet-gateway/0.1", min_length=1)

    # Credential persistence
    credentials_file: Optional[str] = Field(default=None)
    credentials_key: Optional[str] = Field(default=None)

    # Observability
    enable_metrics: bool = Field(default=True)

    @property
    def persistent_credentials(self) -> bool:
        """Whether credentials should be kept in an encrypted file."""
        return bool(self.credentials_file and self.credentials_key)


def get_config(**overrides) -> ClientConfig:
    """Get client configuration, applying explicit overrides over the environment."""
    return ClientConfig(**overrides)
