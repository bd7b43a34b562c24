"""
Password hashing with bcrypt.
"""

from functools import lru_cache

import bcrypt

DEFAULT_ROUNDS = 12
MAX_PASSWORD_BYTES = 72  # bcrypt ignores (or rejects) anything beyond this


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Return a salted bcrypt hash of *password*.

    Raises:
        ValueError: If the password is empty or longer than 72 bytes.
    """
    raw = password.encode("utf-8")
    if not raw:
        raise ValueError("Password must not be empty.")
    if len(raw) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    """Return True if *password* matches the bcrypt *hashed* value."""
    raw = password.encode("utf-8")
    if not raw or len(raw) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(raw, hashed.encode("ascii"))


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> bytes:
    return bcrypt.hashpw(b"playforge-dummy-password", bcrypt.gensalt(rounds=rounds))


def verify_dummy(password: str, rounds: int = DEFAULT_ROUNDS) -> bool:
    """
    Spend the same bcrypt work as :func:`verify_password` and return False.

    Used when there is no stored hash to check, so a missing account costs
    as much time as a wrong password.
    """
    raw = password.encode("utf-8")[:MAX_PASSWORD_BYTES] or b"-"
    bcrypt.checkpw(raw, _dummy_hash(rounds))
    return False
