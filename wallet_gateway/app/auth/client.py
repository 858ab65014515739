"""
Auth backend client: sign-in, sign-up, sign-out and session checks.
"""

from typing import Optional

from shared.errors import AuthenticationExpired, RequestFailed, ValidationError, WalletClientError
from shared.logging import get_logger, set_user_context

from ..api.client import ApiGatewayClient, Backend, parse_model
from ..models import AuthTokens, SignInCredentials, SignUpData, User


class AuthClient:
    """Client for the auth backend."""

    def __init__(self, gateway: ApiGatewayClient):
        self.gateway = gateway
        self.store = gateway.store
        self.logger = get_logger("wallet_gateway.auth.client")

    async def sign_in(self, credentials: SignInCredentials) -> AuthTokens:
        """Exchange email and password for a credential pair and persist it."""
        data = await self.gateway.post(
            Backend.AUTH,
            "/auth/login",
            json={"email": credentials.email, "password": credentials.password},
            allow_refresh=False
        )
        tokens = parse_model(AuthTokens, data, "/auth/login")
        await self.store.set_tokens(tokens)
        self.logger.info("Signed in")
        return tokens

    async def sign_up(self, data: SignUpData) -> AuthTokens:
        """Register a new account and persist the issued credential pair."""
        if data.password != data.confirm_password:
            raise ValidationError("Passwords do not match", details={"field": "confirm_password"})

        payload = await self.gateway.post(
            Backend.AUTH,
            "/auth/register",
            json=data.registration_payload(),
            allow_refresh=False
        )
        tokens = parse_model(AuthTokens, payload, "/auth/register")
        await self.store.set_tokens(tokens)
        self.logger.info("Account registered")
        return tokens

    async def sign_out(self) -> None:
        """Revoke the session on the backend; local credentials are cleared regardless."""
        try:
            await self.gateway.post(Backend.AUTH, "/auth/logout")
        except WalletClientError as e:
            self.logger.warning("Backend sign out failed", code=e.code, error=e.message)
        finally:
            await self.store.clear_auth()
            self.logger.info("Signed out")

    async def check_auth(self) -> bool:
        """Whether the stored access token is still accepted by the backend."""
        try:
            await self.gateway.get(Backend.AUTH, "/auth/me")
        except (RequestFailed, AuthenticationExpired) as e:
            self.logger.info("Session is not authenticated", code=e.code)
            return False
        return True

    async def get_current_user(self) -> User:
        """Fetch the signed-in user's profile and cache it in the store."""
        data = await self.gateway.get(Backend.AUTH, "/auth/me")
        user = parse_model(User, data, "/auth/me")
        await self.store.set_user(user)
        set_user_context(user.id)
        return user

    async def restore_session(self) -> Optional[User]:
        """
        Resume a previously persisted session.

        Returns the cached (or freshly fetched) user when the stored token is
        still valid, ``None`` when there is no session to resume.
        """
        if not await self.store.get_access_token():
            return None

        if not await self.check_auth():
            await self.store.clear_auth()
            return None

        user = await self.store.get_user()
        if user is None:
            user = await self.get_current_user()
        set_user_context(user.id)
        return user
