"""
Shared error handling for the Wallet Gateway client.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class WalletClientError(Exception):
    """Base exception for Wallet Gateway clients."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationExpired(WalletClientError):
    """Session can no longer be recovered; the caller must sign in again."""

    def __init__(self, message: str = "Session expired", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_EXPIRED", message, details)


class RequestFailed(WalletClientError):
    """Backend answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        message: str = "Request failed",
        errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.errors = errors
        merged = {"status_code": status_code, **(details or {})}
        if errors:
            merged["errors"] = errors
        super().__init__("REQUEST_FAILED", message, merged)


class TransportFailure(WalletClientError):
    """No response was obtained from the backend."""

    def __init__(self, message: str = "Network error", reason: str = "network", details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        super().__init__("TRANSPORT_FAILURE", message, {"reason": reason, **(details or {})})


class ValidationError(WalletClientError):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class InvalidResponse(WalletClientError):
    """Backend answered 2xx with a body that does not match the expected shape."""

    def __init__(self, message: str = "Unexpected response", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_RESPONSE", message, details)
