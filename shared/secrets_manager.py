"""
Encryption for credentials persisted by the Wallet Gateway client.
"""

import base64
import json
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from shared.logging import get_logger

logger = get_logger("wallet_gateway.secrets")

KDF_SALT = b"wallet_gateway_credentials"
KDF_ITERATIONS = 390000


class CredentialCipher:
    """
    Encrypts and decrypts credential documents.

    The Fernet key is derived from a passphrase with PBKDF2-HMAC-SHA256, so the
    same passphrase always opens documents written by an earlier process.
    """

    def __init__(self, passphrase: str):
        """
        Initialize the cipher.

        Args:
            passphrase: Secret used to derive the encryption key
        """
        if not passphrase:
            raise ValueError("Passphrase is required")

        self._fernet = self._create_fernet(passphrase)

    @staticmethod
    def _create_fernet(passphrase: str) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=KDF_SALT,
            iterations=KDF_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))
        return Fernet(key)

    def encrypt_document(self, document: Dict[str, Any]) -> bytes:
        """
        Encrypt a JSON-serializable document.

        Args:
            document: Mapping to encrypt

        Returns:
            Fernet token bytes
        """
        payload = json.dumps(document, ensure_ascii=False).encode("utf-8")
        return self._fernet.encrypt(payload)

    def decrypt_document(self, token: bytes) -> Dict[str, Any]:
        """
        Decrypt a document produced by ``encrypt_document``.

        Raises:
            ValueError: If the token cannot be decrypted or is not a JSON object
        """
        try:
            payload = self._fernet.decrypt(token)
            document = json.loads(payload.decode("utf-8"))
        except (InvalidToken, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to decrypt credential document", error=type(e).__name__)
            raise ValueError("Credential document is unreadable") from e

        if not isinstance(document, dict):
            raise ValueError("Credential document is not an object")
        return document
