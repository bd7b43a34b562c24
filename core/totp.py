"""
TOTP (Time-based One-Time Password) implementation following RFC 6238.

Produces codes identical to Google Authenticator (SHA1, 6 digits, 30 s).
"""

import time
from typing import Optional

from core.crypto import constant_time_compare
from core.hotp import DIGITS, hotp

DEFAULT_TIME_STEP = 30
DEFAULT_WINDOW = 1


def _validate_time_step(time_step: int) -> None:
    if time_step < 1:
        raise ValueError(f"Time step must be at least 1 second, got {time_step}")


def current_counter(
    time_step: int = DEFAULT_TIME_STEP,
    timestamp: Optional[float] = None,
) -> int:
    """Return floor(unix_time / time_step) for *timestamp* (default: now)."""
    _validate_time_step(time_step)
    t = timestamp if timestamp is not None else time.time()
    return int(t // time_step)


def totp(
    secret: str,
    time_step: int = DEFAULT_TIME_STEP,
    timestamp: Optional[float] = None,
) -> str:
    """
    Generate the TOTP code for the current time step.

    Args:
        secret:    Base32-encoded shared secret.
        time_step: Step length in seconds (default 30).
        timestamp: Override Unix timestamp (uses time.time() if None).

    Returns:
        Zero-padded 6-digit code.
    """
    return hotp(secret, current_counter(time_step, timestamp))


def remaining_seconds(
    time_step: int = DEFAULT_TIME_STEP,
    timestamp: Optional[float] = None,
) -> int:
    """Return seconds until the current TOTP step expires."""
    _validate_time_step(time_step)
    t = timestamp if timestamp is not None else time.time()
    return time_step - (int(t) % time_step)


def _is_well_formed(code: object) -> bool:
    return (
        isinstance(code, str)
        and len(code) == DIGITS
        and code.isascii()
        and code.isdigit()
    )


def verify_totp(
    secret: str,
    code: str,
    window: int = DEFAULT_WINDOW,
    time_step: int = DEFAULT_TIME_STEP,
    timestamp: Optional[float] = None,
) -> bool:
    """
    Validate a submitted code within ±``window`` time steps.

    The window only absorbs clock skew between client and server; each extra
    step widens the set of accepted guesses. Malformed codes (wrong length,
    non-digits, non-strings) are rejected like wrong ones, without raising.

    Args:
        secret:    Base32-encoded shared secret.
        code:      Code as submitted (compared exactly, no trimming).
        window:    Allowed skew in steps (default 1).
        time_step: Step length in seconds.
        timestamp: Override Unix timestamp.

    Returns:
        True if the code matches any candidate counter.

    Raises:
        ValueError: If *window* is negative or *time_step* is below 1.
    """
    if window < 0:
        raise ValueError(f"Window must be non-negative, got {window}")
    counter = current_counter(time_step, timestamp)

    if not _is_well_formed(code):
        return False

    for step in range(-window, window + 1):
        candidate = counter + step
        if candidate < 0:
            continue
        if constant_time_compare(code, hotp(secret, candidate)):
            return True
    return False
