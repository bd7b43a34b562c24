"""Tests for provisioning.uri."""

import urllib.parse

import pytest

from provisioning.uri import build_uri, parse_uri

SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"


# ── Builder ───────────────────────────────────────────────────────────────────

def test_build_exact_format() -> None:
    uri = build_uri(SECRET, "alice", "Playforge")
    assert uri == (
        f"otpauth://totp/Playforge:alice?secret={SECRET}&issuer=Playforge"
        "&algorithm=SHA1&digits=6&period=30"
    )


def test_build_default_issuer() -> None:
    assert build_uri(SECRET, "alice").startswith("otpauth://totp/Playforge:alice?")


def test_build_percent_encodes_label_and_issuer() -> None:
    uri = build_uri(SECRET, "user@example.com", "My App")
    assert uri.startswith("otpauth://totp/My%20App:user%40example.com?")
    assert "issuer=My%20App" in uri
    assert "@" not in uri and " " not in uri

    query = urllib.parse.parse_qs(urllib.parse.urlparse(uri).query)
    assert query["secret"] == [SECRET]
    assert f"secret={SECRET}&" in uri


def test_build_reserved_characters_do_not_break_structure() -> None:
    uri = build_uri(SECRET, "a:b&c=d", "X&Y:Z")
    parsed = parse_uri(uri)
    assert parsed.account == "a:b&c=d"
    assert parsed.issuer == "X&Y:Z"
    assert parsed.secret == SECRET


# ── Parser ────────────────────────────────────────────────────────────────────

def test_parse_roundtrip() -> None:
    parsed = parse_uri(build_uri(SECRET, "alice@example.com", "My App"))
    assert parsed.otp_type == "totp"
    assert parsed.account == "alice@example.com"
    assert parsed.issuer == "My App"
    assert parsed.algorithm == "SHA1"
    assert parsed.digits == 6
    assert parsed.period == 30


def test_parse_issuer_from_label() -> None:
    parsed = parse_uri(f"otpauth://totp/GitHub:john?secret={SECRET}")
    assert parsed.issuer == "GitHub"
    assert parsed.account == "john"


def test_parse_no_issuer() -> None:
    parsed = parse_uri(f"otpauth://totp/myaccount?secret={SECRET}")
    assert parsed.account == "myaccount"
    assert parsed.issuer == ""


def test_parse_wrong_scheme() -> None:
    with pytest.raises(ValueError, match="scheme"):
        parse_uri("http://totp/acc?secret=ABC")


def test_parse_hotp_rejected() -> None:
    with pytest.raises(ValueError, match="OTP type"):
        parse_uri(f"otpauth://hotp/acc?secret={SECRET}&counter=1")


def test_parse_missing_secret() -> None:
    with pytest.raises(ValueError, match="secret"):
        parse_uri("otpauth://totp/acc")


def test_parse_bad_digits() -> None:
    with pytest.raises(ValueError):
        parse_uri(f"otpauth://totp/acc?secret={SECRET}&digits=six")


def test_build_leaves_unreserved_marks_unescaped() -> None:
    uri = build_uri(SECRET, "o'neil(x)*~@example.com", issuer="Playforge!")
    assert uri == (
        "otpauth://totp/Playforge!:o'neil(x)*~%40example.com"
        f"?secret={SECRET}&issuer=Playforge!&algorithm=SHA1&digits=6&period=30"
    )
    parsed = parse_uri(uri)
    assert parsed.account == "o'neil(x)*~@example.com"
    assert parsed.issuer == "Playforge!"
