"""
HOTP (HMAC-based One-Time Password) implementation following RFC 4226.
"""

import struct

from core import base32
from core.crypto import hmac_sha1

DIGITS = 6
_MODULUS = 10**DIGITS
_MAX_COUNTER = 2**64 - 1


def dynamic_truncate(digest: bytes) -> int:
    """
    RFC 4226 §5.3 dynamic truncation.

    The low nibble of the last byte selects an offset; four bytes from that
    offset are read big-endian with the top bit cleared.
    """
    offset = digest[-1] & 0x0F
    return (
        (digest[offset] & 0x7F) << 24
        | (digest[offset + 1] & 0xFF) << 16
        | (digest[offset + 2] & 0xFF) << 8
        | (digest[offset + 3] & 0xFF)
    )


def hotp(secret: str, counter: int) -> str:
    """
    Generate a 6-digit HOTP code.

    Args:
        secret:  Base32-encoded shared secret (decoded permissively).
        counter: Unsigned 64-bit counter value.

    Returns:
        Zero-padded 6-digit code.

    Raises:
        ValueError: If *counter* does not fit in an unsigned 64-bit integer.
    """
    if not 0 <= counter <= _MAX_COUNTER:
        raise ValueError(f"Counter must be an unsigned 64-bit integer, got {counter}")

    key = base32.decode(secret)
    digest = hmac_sha1(key, struct.pack(">Q", counter))
    return str(dynamic_truncate(digest) % _MODULUS).zfill(DIGITS)
