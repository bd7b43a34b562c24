"""
Base32 codec (RFC 4648 alphabet, unpadded) for shared secrets.

Decoding is deliberately permissive: secrets are often typed by hand, so
padding, lowercase letters and stray separators are tolerated. A corrupted
secret decodes to *some* bytes and simply fails verification later.
"""

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

_LOOKUP: dict[str, int] = {ch: idx for idx, ch in enumerate(ALPHABET)}


def encode(data: bytes) -> str:
    """
    Encode *data* as unpadded Base32.

    A final group of fewer than 5 bits is left-shifted into a full 5-bit
    slot, so the output never contains ``=``.

    Args:
        data: Arbitrary bytes (may be empty).

    Returns:
        Uppercase Base32 string.
    """
    out = []
    buffer = 0
    bits = 0

    for byte in data:
        buffer = (buffer << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            out.append(ALPHABET[(buffer >> bits) & 0x1F])
        buffer &= (1 << bits) - 1

    if bits:
        out.append(ALPHABET[(buffer << (5 - bits)) & 0x1F])

    return "".join(out)


def decode(text: str) -> bytes:
    """
    Best-effort Base32 decode.

    Trailing ``=`` padding is stripped, case is ignored and any character
    outside the alphabet is skipped. Leftover bits that do not fill a whole
    byte are discarded. Never raises for malformed input.

    Args:
        text: Base32 text as typed or stored.

    Returns:
        Decoded bytes (possibly empty).
    """
    out = bytearray()
    buffer = 0
    bits = 0

    for ch in text.rstrip("=").upper():
        value = _LOOKUP.get(ch)
        if value is None:
            continue
        buffer = (buffer << 5) | value
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
            buffer &= (1 << bits) - 1

    return bytes(out)
