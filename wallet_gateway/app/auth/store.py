"""
Credential stores for the Wallet Gateway client.

The gateway never caches tokens itself: it reads the access token from a
``CredentialStore`` before every attempt and writes back after a refresh.
"""

import asyncio
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, TypeVar, runtime_checkable

from shared.logging import get_logger
from shared.secrets_manager import CredentialCipher

from ..models import AuthTokens, User

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
USER_KEY = "user_data"

T = TypeVar("T")


@runtime_checkable
class CredentialStore(Protocol):
    """Durable key-value capability holding the signed-in user's credentials."""

    async def get_access_token(self) -> Optional[str]:
        ...

    async def set_access_token(self, token: str) -> None:
        ...

    async def get_refresh_token(self) -> Optional[str]:
        ...

    async def set_refresh_token(self, token: str) -> None:
        ...

    async def get_user(self) -> Optional[User]:
        ...

    async def set_user(self, user: User) -> None:
        ...

    async def set_tokens(self, tokens: AuthTokens) -> None:
        ...

    async def clear_auth(self) -> None:
        ...


class InMemoryCredentialStore:
    """Process-local store; credentials vanish when the process exits."""

    def __init__(self, tokens: Optional[AuthTokens] = None, user: Optional[User] = None):
        self._items: Dict[str, Any] = {}
        if tokens is not None:
            self._items[ACCESS_TOKEN_KEY] = tokens.access_token
            self._items[REFRESH_TOKEN_KEY] = tokens.refresh_token
        if user is not None:
            self._items[USER_KEY] = user.model_dump(mode="json")

    async def get_access_token(self) -> Optional[str]:
        return self._items.get(ACCESS_TOKEN_KEY)

    async def set_access_token(self, token: str) -> None:
        self._items[ACCESS_TOKEN_KEY] = token

    async def get_refresh_token(self) -> Optional[str]:
        return self._items.get(REFRESH_TOKEN_KEY)

    async def set_refresh_token(self, token: str) -> None:
        self._items[REFRESH_TOKEN_KEY] = token

    async def get_user(self) -> Optional[User]:
        data = self._items.get(USER_KEY)
        return User.model_validate(data) if data else None

    async def set_user(self, user: User) -> None:
        self._items[USER_KEY] = user.model_dump(mode="json")

    async def set_tokens(self, tokens: AuthTokens) -> None:
        self._items[ACCESS_TOKEN_KEY] = tokens.access_token
        self._items[REFRESH_TOKEN_KEY] = tokens.refresh_token

    async def clear_auth(self) -> None:
        self._items.clear()


class EncryptedFileCredentialStore:
    """
    Store credentials in a Fernet-encrypted JSON file.

    Every write replaces the whole document atomically (temp file + rename)
    and leaves the file readable only by its owner. An unreadable document is
    treated as an empty store.
    """

    def __init__(self, path: str, passphrase: str):
        self.path = Path(path).expanduser()
        self.logger = get_logger("wallet_gateway.auth.store")
        self._cipher = CredentialCipher(passphrase)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, Any]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        try:
            return self._cipher.decrypt_document(raw)
        except ValueError:
            self.logger.warning("Ignoring unreadable credentials file", path=str(self.path))
            return {}

    def _write(self, document: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(self._cipher.encrypt_document(document))
        os.chmod(tmp, 0o600)
        tmp.replace(self.path)

    async def _get(self, key: str) -> Any:
        async with self._lock:
            document = await self._run(self._read)
            return document.get(key)

    async def _update(self, values: Dict[str, Any]) -> None:
        async with self._lock:
            document = await self._run(self._read)
            document.update(values)
            await self._run(self._write, document)

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        # File I/O and encryption run off the event loop.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def get_access_token(self) -> Optional[str]:
        return await self._get(ACCESS_TOKEN_KEY)

    async def set_access_token(self, token: str) -> None:
        await self._update({ACCESS_TOKEN_KEY: token})

    async def get_refresh_token(self) -> Optional[str]:
        return await self._get(REFRESH_TOKEN_KEY)

    async def set_refresh_token(self, token: str) -> None:
        await self._update({REFRESH_TOKEN_KEY: token})

    async def get_user(self) -> Optional[User]:
        data = await self._get(USER_KEY)
        return User.model_validate(data) if data else None

    async def set_user(self, user: User) -> None:
        await self._update({USER_KEY: user.model_dump(mode="json")})

    async def set_tokens(self, tokens: AuthTokens) -> None:
        await self._update({
            ACCESS_TOKEN_KEY: tokens.access_token,
            REFRESH_TOKEN_KEY: tokens.refresh_token,
        })

    async def clear_auth(self) -> None:
        async with self._lock:
            try:
                await self._run(self.path.unlink)
                self.logger.info("Credentials removed", path=str(self.path))
            except FileNotFoundError:
                self.logger.debug("Credentials already absent", path=str(self.path))
