"""
Wallet backend client: account search and saved beneficiaries.
"""

from typing import List

from shared.errors import ValidationError
from shared.logging import get_logger

from ..api.client import ApiGatewayClient, Backend, parse_model, parse_models
from ..models import Recipient


class RecipientsClient:
    """Client for beneficiary endpoints of the wallet backend."""

    def __init__(self, gateway: ApiGatewayClient):
        self.gateway = gateway
        self.logger = get_logger("wallet_gateway.recipients.client")

    async def search(self, account_number: str) -> Recipient:
        """Look up the owner of an account number."""
        account_number = _normalize_account_number(account_number)
        data = await self.gateway.get(
            Backend.WALLET,
            "/wallets/search",
            params={"accountNumber": account_number}
        )
        return parse_model(Recipient, data, "/wallets/search")

    async def add(self, account_number: str) -> Recipient:
        """Save an account as a beneficiary."""
        account_number = _normalize_account_number(account_number)
        data = await self.gateway.post(
            Backend.WALLET,
            "/beneficiaries/add",
            json={"accountNumber": account_number}
        )
        self.logger.info("Beneficiary added")
        return parse_model(Recipient, data, "/beneficiaries/add")

    async def list(self) -> List[Recipient]:
        data = await self.gateway.get(Backend.WALLET, "/beneficiaries")
        return parse_models(Recipient, data, "/beneficiaries")

    async def get(self, recipient_id: str) -> Recipient:
        if not recipient_id:
            raise ValidationError("Recipient id is required", details={"field": "recipient_id"})
        path = f"/beneficiaries/{recipient_id}"
        data = await self.gateway.get(Backend.WALLET, path)
        return parse_model(Recipient, data, path)


def _normalize_account_number(account_number: str) -> str:
    normalized = (account_number or "").strip()
    if not normalized:
        raise ValidationError("Account number is required", details={"field": "account_number"})
    return normalized
