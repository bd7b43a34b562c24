"""
Utility helpers for the two-factor engine.
"""

import unicodedata

from core import base32
from core.crypto import random_bytes

SECRET_BYTES = 20  # 160-bit shared secret


# ── Secrets ───────────────────────────────────────────────────────────────────

def generate_secret() -> str:
    """
    Generate a fresh shared secret.

    Returns:
        32-character Base32 string encoding 20 CSPRNG bytes.

    Raises:
        core.crypto.EntropyUnavailableError: If no randomness is available.
    """
    return base32.encode(random_bytes(SECRET_BYTES))


# ── Labels ────────────────────────────────────────────────────────────────────

def sanitise_label(text: str) -> str:
    """Remove control characters and limit label length."""
    text = unicodedata.normalize("NFC", text)
    text = "".join(ch for ch in text if unicodedata.category(ch)[0] != "C")
    return text[:128].strip()


# ── Codes ─────────────────────────────────────────────────────────────────────

def normalize_code(text: str) -> str:
    """Drop all whitespace from a typed code ("123 456" -> "123456")."""
    return "".join(text.split())


def format_otp(code: str, group: int = 3) -> str:
    """
    Format an OTP code with spaces for readability.

    Example::

        >>> format_otp("123456")
        "123 456"
    """
    return " ".join(code[i : i + group] for i in range(0, len(code), group))
