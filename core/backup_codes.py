"""
Single-use recovery codes.

Each code is drawn independently from the CSPRNG; nothing is derived from the
TOTP secret. Only bcrypt hashes of the normalised form are ever stored.
"""

import logging

import bcrypt

from core.crypto import random_bytes

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 10
CODE_BYTES = 4
DEFAULT_ROUNDS = 10


def generate_backup_codes(count: int = DEFAULT_COUNT) -> list[str]:
    """
    Generate *count* recovery codes formatted ``XXXX-XXXX``.

    Args:
        count: Number of codes (default 10).

    Returns:
        Codes in generation order (uppercase hex).

    Raises:
        ValueError: If *count* is negative.
    """
    if count < 0:
        raise ValueError(f"Backup code count must be non-negative, got {count}")
    codes = []
    for _ in range(count):
        raw = random_bytes(CODE_BYTES).hex().upper()
        codes.append(f"{raw[:4]}-{raw[4:]}")
    return codes


def normalize_backup_code(text: str) -> str:
    """Uppercase and strip hyphens/whitespace ("abcd-1234" -> "ABCD1234")."""
    return "".join(text.split()).replace("-", "").upper()


def hash_backup_code(code: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the normalised *code*."""
    normalized = normalize_backup_code(code).encode("ascii")
    return bcrypt.hashpw(normalized, bcrypt.gensalt(rounds=rounds)).decode("ascii")


def check_backup_code(code: str, hashed: str) -> bool:
    """Return True if *code* matches *hashed*. Malformed input never matches."""
    normalized = normalize_backup_code(code)
    if not normalized.isascii() or len(normalized) != CODE_BYTES * 2:
        return False
    try:
        return bcrypt.checkpw(normalized.encode("ascii"), hashed.encode("ascii"))
    except ValueError:
        logger.warning("Stored backup code hash is malformed")
        return False
