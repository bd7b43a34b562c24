"""
Cryptographic primitives for the two-factor engine.

Randomness      : ``secrets`` (OS CSPRNG), never ``random``
One-time codes  : HMAC-SHA1 (RFC 4226 / RFC 6238)
Key derivation  : PBKDF2-HMAC-SHA256
Secrets at rest : AES-256-GCM (authenticated encryption)
"""

import hashlib
import hmac
import logging
import secrets

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

SALT_SIZE = 32          # 256-bit salt
NONCE_SIZE = 12         # 96-bit nonce (GCM recommendation)
KEY_SIZE = 32           # 256-bit AES key
PBKDF2_ITERATIONS = 480_000  # OWASP 2023 recommendation for PBKDF2-SHA256
PBKDF2_HASH = "sha256"


class EntropyUnavailableError(RuntimeError):
    """The operating system could not supply cryptographic randomness."""


# ── Randomness ────────────────────────────────────────────────────────────────

def random_bytes(n: int) -> bytes:
    """
    Return *n* bytes from the operating system CSPRNG.

    Raises:
        ValueError:              If *n* is negative.
        EntropyUnavailableError: If the entropy source fails. There is no
            fallback generator.
    """
    if n < 0:
        raise ValueError(f"Byte count must be non-negative, got {n}")
    try:
        return secrets.token_bytes(n)
    except (OSError, NotImplementedError) as exc:
        logger.critical("CSPRNG unavailable: %s", exc)
        raise EntropyUnavailableError("Cryptographic random source unavailable") from exc


# ── HMAC ──────────────────────────────────────────────────────────────────────

def hmac_sha1(key: bytes, message: bytes) -> bytes:
    """Return the 20-byte HMAC-SHA1 of *message* under *key*."""
    return hmac.new(key, message, hashlib.sha1).digest()


def constant_time_compare(a: str, b: str) -> bool:
    """Return True if *a* == *b* in constant time (timing-safe)."""
    return hmac.compare_digest(a.encode(), b.encode())


# ── Key derivation ────────────────────────────────────────────────────────────

def derive_key(password: str, salt: bytes) -> bytes:
    """
    Derive a 256-bit key from ``password`` using PBKDF2-HMAC-SHA256.

    Args:
        password: Master key material (unicode string).
        salt:     Random 32-byte salt.

    Returns:
        32-byte derived key.
    """
    return hashlib.pbkdf2_hmac(
        PBKDF2_HASH,
        password.encode("utf-8"),
        salt,
        PBKDF2_ITERATIONS,
        dklen=KEY_SIZE,
    )


def generate_salt() -> bytes:
    """Return a cryptographically random 32-byte salt."""
    return random_bytes(SALT_SIZE)


# ── AES-256-GCM encryption / decryption ──────────────────────────────────────

def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """
    Encrypt *plaintext* with AES-256-GCM.

    Layout of returned ciphertext blob::

        [ nonce (12 bytes) | ciphertext+tag ]

    Raises:
        ValueError: If key length is not 32 bytes.
    """
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    nonce = random_bytes(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, None)


def decrypt(blob: bytes, key: bytes) -> bytes:
    """
    Decrypt a blob produced by :func:`encrypt`.

    Raises:
        ValueError: If key length is not 32 bytes.
        cryptography.exceptions.InvalidTag: If authentication fails (wrong key
            or tampered data).
    """
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    nonce = blob[:NONCE_SIZE]
    ciphertext = blob[NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ciphertext, None)
