"""
Encryption utilities for token storage.
"""
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from postmeeting.exceptions import ConfigurationError


class TokenCipher:
    """Fernet wrapper that passes empty values through untouched."""

    def __init__(self, encryption_key: str):
        """Initialize with encryption key."""
        try:
            self.fernet = Fernet(encryption_key.encode() if isinstance(encryption_key, str) else encryption_key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid encryption key: {str(e)}")

    def encrypt(self, token: Optional[str]) -> Optional[str]:
        """
        Encrypt a token for secure storage.

        Args:
            token: Plain text token

        Returns:
            Encrypted token as string
        """
        if token is None:
            return None
        if token == "":
            return ""
        return self.fernet.encrypt(token.encode()).decode()

    def decrypt(self, encrypted_token: Optional[str]) -> Optional[str]:
        """
        Decrypt a token from storage.

        Args:
            encrypted_token: Encrypted token string

        Returns:
            Decrypted plain text token

        Raises:
            cryptography.fernet.InvalidToken: If the value was encrypted with another key
        """
        if encrypted_token is None:
            return None
        if encrypted_token == "":
            return ""
        return self.fernet.decrypt(encrypted_token.encode()).decode()


__all__ = ["TokenCipher", "InvalidToken"]
