"""
Payload models shared by the Wallet Gateway service clients.

Fields are snake_case in Python and camelCase on the wire. Unknown fields sent
by the backends are ignored so that additive API changes do not break parsing.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WalletModel(BaseModel):
    """Base model with camelCase wire aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore"
    )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for a request body."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# Auth

class User(WalletModel):
    id: str
    email: str
    full_name: str = ""
    phone_number: Optional[str] = None


class AuthTokens(WalletModel):
    """Credential pair issued on sign-in and sign-up."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)


class SignInCredentials(WalletModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)


class SignUpData(WalletModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)
    confirm_password: str
    full_name: str = Field(..., min_length=1, max_length=128)
    phone_number: Optional[str] = None

    def registration_payload(self) -> Dict[str, Any]:
        """Body for ``POST /auth/register``; the confirmation never leaves the client."""
        return {
            "email": self.email,
            "password": self.password,
            "fullName": self.full_name,
        }


# Wallet

class WalletStatus(str, Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    CLOSED = "closed"


class Wallet(WalletModel):
    id: str
    balance: float = 0.0
    currency: Optional[str] = None
    status: WalletStatus = WalletStatus.ACTIVE
    account_number: Optional[str] = None


class SetPinDto(WalletModel):
    pin: str = Field(..., pattern=r"^\d{4}$")
    confirm_pin: str = Field(..., pattern=r"^\d{4}$")


class VerifyPinDto(WalletModel):
    pin: str = Field(..., pattern=r"^\d{4}$")


# Recipients

class Recipient(WalletModel):
    """A beneficiary, or the owner of a searched account number."""

    id: str
    user_id: Optional[str] = None
    recipient_user_id: Optional[str] = None
    full_name: Optional[str] = None
    account_number: Optional[str] = None
    avatar: Optional[str] = None


# Transactions

class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    TRANSFER = "transfer"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionRecipient(WalletModel):
    name: str
    avatar: Optional[str] = None


class Transaction(WalletModel):
    id: str
    type: TransactionType
    amount: float
    reference: str = ""
    description: str = ""
    category: str = ""
    created_at: datetime
    recipient: Optional[TransactionRecipient] = None
    status: TransactionStatus = TransactionStatus.PENDING


class TransactionDto(WalletModel):
    """Transfer request body."""

    to_user_id: str = Field(..., min_length=1)
    amount: float
    description: Optional[str] = None


class FundWalletDto(WalletModel):
    amount: float
