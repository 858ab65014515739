"""
Wallet backend client: wallet lifecycle and transaction PIN.
"""

import re
from typing import Any, Optional

from shared.errors import InvalidResponse, RequestFailed, ValidationError
from shared.logging import get_logger

from ..api.client import ApiGatewayClient, Backend, parse_model
from ..models import SetPinDto, VerifyPinDto, Wallet

PIN_PATTERN = re.compile(r"^\d{4}$")
INVALID_PIN_MARKER = "invalid pin"


def validate_pin(pin: str, field: str = "pin") -> str:
    """Return ``pin`` if it is exactly four digits."""
    if not isinstance(pin, str) or not PIN_PATTERN.match(pin):
        raise ValidationError("PIN must be exactly 4 digits", details={"field": field})
    return pin


class WalletClient:
    """Client for wallet endpoints of the wallet backend."""

    def __init__(self, gateway: ApiGatewayClient):
        self.gateway = gateway
        self.logger = get_logger("wallet_gateway.wallet.client")

    async def get_wallet(self) -> Optional[Wallet]:
        """The signed-in user's wallet, or ``None`` when none has been created yet."""
        data = await self.gateway.get(Backend.WALLET, "/wallets/user")
        if not data:
            return None
        return parse_model(Wallet, data, "/wallets/user")

    async def create_wallet(self) -> Optional[Wallet]:
        data = await self.gateway.post(Backend.WALLET, "/wallets/create")
        self.logger.info("Wallet created")
        if not data:
            return None
        return parse_model(Wallet, data, "/wallets/create")

    async def get_or_create_wallet(self) -> Wallet:
        """Fetch the wallet, creating it first for users who do not have one."""
        wallet = await self.get_wallet()
        if wallet is not None:
            return wallet

        self.logger.info("No wallet found, creating one")
        await self.create_wallet()
        wallet = await self.get_wallet()
        if wallet is None:
            raise InvalidResponse(
                "Wallet missing after creation",
                details={"path": "/wallets/user"}
            )
        return wallet

    async def set_pin(self, pin: str, confirm_pin: str) -> Any:
        """Set the transaction PIN; both entries must be four matching digits."""
        validate_pin(pin)
        validate_pin(confirm_pin, field="confirm_pin")
        if pin != confirm_pin:
            raise ValidationError("PINs do not match", details={"field": "confirm_pin"})

        dto = SetPinDto(pin=pin, confirm_pin=confirm_pin)
        result = await self.gateway.post(Backend.WALLET, "/wallets/set-pin", json=dto.to_payload())
        self.logger.info("Wallet PIN set")
        return result

    async def verify_pin(self, pin: str) -> bool:
        """
        Check the transaction PIN.

        A rejected PIN is an answer, not an error: the backend's
        ``{"verified": false}`` and "Invalid PIN" failures both yield ``False``.
        """
        validate_pin(pin)
        try:
            data = await self.gateway.post(
                Backend.WALLET,
                "/wallets/verify-pin",
                json=VerifyPinDto(pin=pin).to_payload()
            )
        except RequestFailed as e:
            if INVALID_PIN_MARKER in e.message.lower():
                self.logger.info("PIN rejected", status_code=e.status_code)
                return False
            raise

        verified = bool(data.get("verified")) if isinstance(data, dict) else False
        self.logger.info("PIN verification completed", verified=verified)
        return verified
