"""
Authentication: credential stores and the auth backend client.
"""

from .store import CredentialStore, EncryptedFileCredentialStore, InMemoryCredentialStore

__all__ = ["CredentialStore", "EncryptedFileCredentialStore", "InMemoryCredentialStore"]
