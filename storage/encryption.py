"""
At-rest encryption for TOTP shared secrets.

Wraps core.crypto so the database never holds a secret in plaintext. Key
management stays with the caller; keys are never written to disk here.
"""

import base64

from core import crypto


class SecretEncryptor:
    """Encrypt / decrypt shared secrets using AES-256-GCM."""

    def __init__(self, key: bytes) -> None:
        """
        Args:
            key: 32-byte AES key derived with :func:`core.crypto.derive_key`.
        """
        if len(key) != crypto.KEY_SIZE:
            raise ValueError("Key must be 32 bytes.")
        self._key = key

    @classmethod
    def from_master_key(cls, master_key: str, salt: bytes) -> "SecretEncryptor":
        """Derive the AES key from a master key string and a stored salt."""
        return cls(crypto.derive_key(master_key, salt))

    def encrypt_secret(self, secret: str) -> str:
        """Encrypt a Base32 secret into a URL-safe base64 blob for SQLite."""
        blob = crypto.encrypt(secret.encode("ascii"), self._key)
        return base64.urlsafe_b64encode(blob).decode("ascii")

    def decrypt_secret(self, encoded: str) -> str:
        """
        Decrypt a blob produced by :meth:`encrypt_secret`.

        Raises:
            cryptography.exceptions.InvalidTag: On a wrong key or tampering.
        """
        blob = base64.urlsafe_b64decode(encoded.encode("ascii"))
        return crypto.decrypt(blob, self._key).decode("ascii")
