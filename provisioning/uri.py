"""
Build and parse otpauth:// provisioning URIs (Google Authenticator Key URI Format).

Reference: https://github.com/google/google-authenticator/wiki/Key-Uri-Format
"""

import urllib.parse
from dataclasses import dataclass

from core.hotp import DIGITS
from core.totp import DEFAULT_TIME_STEP

DEFAULT_ISSUER = "Playforge"
ALGORITHM = "SHA1"


@dataclass
class ProvisioningURI:
    """Parsed representation of an otpauth://totp URI."""

    otp_type: str       # always "totp"
    issuer: str         # issuer parameter, falling back to the label prefix
    account: str        # account name extracted from label
    secret: str         # Base32 secret exactly as carried by the URI
    algorithm: str
    digits: int
    period: int


def _enc(text: str) -> str:
    return urllib.parse.quote(text, safe="!'()*~")


def build_uri(secret: str, account: str, issuer: str = DEFAULT_ISSUER) -> str:
    """
    Format the URI authenticator apps consume at enrollment.

    Issuer and account are percent-encoded independently, so a ``:`` or
    ``&`` in either cannot break the label or the query string. The secret
    is inserted verbatim (Base32 is URL-safe).
    """
    enc_issuer = _enc(issuer)
    return (
        f"otpauth://totp/{enc_issuer}:{_enc(account)}"
        f"?secret={secret}&issuer={enc_issuer}"
        f"&algorithm={ALGORITHM}&digits={DIGITS}&period={DEFAULT_TIME_STEP}"
    )


def parse_uri(uri: str) -> ProvisioningURI:
    """
    Parse and validate an ``otpauth://totp`` URI.

    Raises:
        ValueError: If the URI is malformed or contains invalid values.
    """
    parsed = urllib.parse.urlparse(uri.strip())

    if parsed.scheme.lower() != "otpauth":
        raise ValueError(f"Expected 'otpauth' scheme, got '{parsed.scheme}'.")

    otp_type = parsed.netloc.lower()
    if otp_type != "totp":
        raise ValueError(f"Unsupported OTP type '{otp_type}'. Expected totp.")

    # Split on the literal colon before unquoting: an encoded %3A belongs to a part.
    raw_label = parsed.path.lstrip("/")
    if not raw_label:
        raise ValueError("Missing label in otpauth URI.")
    if ":" in raw_label:
        label_issuer, account = raw_label.split(":", 1)
    else:
        label_issuer, account = "", raw_label
    label_issuer = urllib.parse.unquote(label_issuer)
    account = urllib.parse.unquote(account)

    params = dict(urllib.parse.parse_qsl(parsed.query))

    secret = params.get("secret", "")
    if not secret:
        raise ValueError("Missing 'secret' parameter in otpauth URI.")

    try:
        digits = int(params.get("digits", DIGITS))
        period = int(params.get("period", DEFAULT_TIME_STEP))
    except ValueError:
        raise ValueError("'digits' and 'period' must be integers.")

    return ProvisioningURI(
        otp_type=otp_type,
        issuer=params.get("issuer", label_issuer),
        account=account,
        secret=secret,
        algorithm=params.get("algorithm", ALGORITHM).upper(),
        digits=digits,
        period=period,
    )
