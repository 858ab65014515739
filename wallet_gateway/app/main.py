"""
Composition root for the Wallet Gateway client.
"""

from typing import Optional

import httpx

from shared.config import ClientConfig, get_config
from shared.logging import get_logger
from shared.metrics import ClientMetrics

from .api.client import ApiGatewayClient
from .auth.client import AuthClient
from .auth.store import CredentialStore, EncryptedFileCredentialStore, InMemoryCredentialStore
from .recipients.client import RecipientsClient
from .transactions.client import TransactionsClient
from .wallet.client import WalletClient


class WalletApp:
    """Service clients sharing one authenticated gateway and credential store."""

    def __init__(self, gateway: ApiGatewayClient):
        self.gateway = gateway
        self.store = gateway.store
        self.auth = AuthClient(gateway)
        self.wallet = WalletClient(gateway)
        self.recipients = RecipientsClient(gateway)
        self.transactions = TransactionsClient(gateway)

    async def aclose(self):
        await self.gateway.aclose()

    async def __aenter__(self) -> "WalletApp":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


def build_store(config: ClientConfig) -> CredentialStore:
    """Encrypted file store when a file and key are configured, memory otherwise."""
    if config.persistent_credentials:
        return EncryptedFileCredentialStore(config.credentials_file, config.credentials_key)

    if config.credentials_file:
        get_logger("wallet_gateway.main").warning(
            "Credentials file configured without a key; keeping credentials in memory",
            credentials_file=config.credentials_file
        )
    return InMemoryCredentialStore()


def create_app(
    config: Optional[ClientConfig] = None,
    store: Optional[CredentialStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    metrics: Optional[ClientMetrics] = None
) -> WalletApp:
    """Create the Wallet Gateway client application."""
    config = config or get_config()
    gateway = ApiGatewayClient(
        store if store is not None else build_store(config),
        config,
        transport=transport,
        metrics=metrics
    )
    return WalletApp(gateway)
