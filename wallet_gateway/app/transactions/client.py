"""
Wallet backend client: transfers, funding and history.
"""

from typing import Any, List

from shared.errors import ValidationError
from shared.logging import get_logger

from ..api.client import ApiGatewayClient, Backend, parse_model, parse_models
from ..models import FundWalletDto, Transaction, TransactionDto

MIN_TRANSFER_AMOUNT = 1.00
MIN_FUND_AMOUNT = 10.00
MAX_FUND_AMOUNT = 10_000.00


class TransactionsClient:
    """Client for transaction endpoints of the wallet backend."""

    def __init__(self, gateway: ApiGatewayClient):
        self.gateway = gateway
        self.logger = get_logger("wallet_gateway.transactions.client")

    async def transfer(self, transaction: TransactionDto) -> Any:
        """Send money to another user."""
        if transaction.amount < MIN_TRANSFER_AMOUNT:
            raise ValidationError(
                f"Minimum amount is {MIN_TRANSFER_AMOUNT:.2f}",
                details={"field": "amount", "amount": transaction.amount}
            )

        result = await self.gateway.post(
            Backend.WALLET,
            "/transactions/transfer",
            json=transaction.to_payload()
        )
        self.logger.info("Transfer submitted", amount=transaction.amount)
        return result

    async def history(self) -> List[Transaction]:
        data = await self.gateway.get(Backend.WALLET, "/transactions/history")
        return parse_models(Transaction, data, "/transactions/history")

    async def fund(self, amount: float) -> Transaction:
        """Add money to the signed-in user's wallet."""
        if not MIN_FUND_AMOUNT <= amount <= MAX_FUND_AMOUNT:
            raise ValidationError(
                f"Amount must be between {MIN_FUND_AMOUNT:,.2f} and {MAX_FUND_AMOUNT:,.2f}",
                details={"field": "amount", "amount": amount}
            )

        data = await self.gateway.post(
            Backend.WALLET,
            "/transactions/fund",
            json=FundWalletDto(amount=amount).to_payload()
        )
        self.logger.info("Wallet funded", amount=amount)
        return parse_model(Transaction, data, "/transactions/fund")
