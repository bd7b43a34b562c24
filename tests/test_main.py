"""Tests for the command-line entry point."""

import re
from pathlib import Path

import pytest

import main
from core.totp import totp
from provisioning.uri import parse_uri

PASSWORD = "hunter2hunter2"


@pytest.fixture()
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "cli.db"
    monkeypatch.setenv("PLAYFORGE_DB_PATH", str(db_path))
    monkeypatch.setenv("PLAYFORGE_MASTER_KEY", "cli-test-master-key")
    monkeypatch.setenv("PLAYFORGE_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("PLAYFORGE_BACKUP_CODE_ROUNDS", "4")
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": PASSWORD)
    return db_path


def test_code_command(capsys: pytest.CaptureFixture) -> None:
    assert main.main(["code", "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"]) == 0
    out = capsys.readouterr().out
    assert re.match(r"^\d{3} \d{3}  \(valid", out)


def test_uri_command(capsys: pytest.CaptureFixture) -> None:
    assert main.main(["uri", "JBSWY3DPEHPK3PXP", "user@example.com", "--issuer", "My App"]) == 0
    parsed = parse_uri(capsys.readouterr().out.strip())
    assert parsed.account == "user@example.com"
    assert parsed.issuer == "My App"


def test_missing_master_key(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PLAYFORGE_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.delenv("PLAYFORGE_MASTER_KEY", raising=False)
    assert main.main(["status", "alice@example.com"]) == 2


def test_full_flow(env: Path, capsys: pytest.CaptureFixture) -> None:
    assert main.main(["register", "alice@example.com"]) == 0
    assert main.main(["register", "alice@example.com"]) == 2  # duplicate
    capsys.readouterr()

    assert main.main(["enroll", "alice@example.com"]) == 0
    out = capsys.readouterr().out
    secret = re.search(r"Secret: ([A-Z2-7]+)", out).group(1)
    backup = re.findall(r"^  ([0-9A-F]{4}-[0-9A-F]{4})$", out, re.MULTILINE)
    assert len(backup) == 10

    assert main.main(["confirm", "alice@example.com", totp(secret)]) == 0
    assert main.main(["login", "alice@example.com", "--code", backup[0]]) == 0
    assert "9 remaining" in capsys.readouterr().out

    assert main.main(["status", "alice@example.com"]) == 0
    assert "2FA enabled, 9 backup codes unused" in capsys.readouterr().out

    assert main.main(["disable", "alice@example.com", totp(secret)]) == 0
    assert main.main(["status", "nobody@example.com"]) == 1


def test_wrong_master_key_refused(
    env: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    assert main.main(["register", "alice@example.com"]) == 0
    assert main.main(["register", "bob@example.com"]) == 0
    assert main.main(["enroll", "alice@example.com"]) == 0
    capsys.readouterr()

    monkeypatch.setenv("PLAYFORGE_MASTER_KEY", "some-other-master-key")
    assert main.main(["enroll", "bob@example.com"]) == 2
    assert main.main(["status", "alice@example.com"]) == 2
    assert "Secret:" not in capsys.readouterr().out

    monkeypatch.setenv("PLAYFORGE_MASTER_KEY", "cli-test-master-key")
    assert main.main(["status", "bob@example.com"]) == 0
    assert "2FA disabled, 0 backup codes unused" in capsys.readouterr().out
    settings = main.Settings.from_env()
    db = main.open_database(settings)
    try:
        assert db.get_user_by_email("bob@example.com").totp_secret is None
        assert db.get_user_by_email("alice@example.com").totp_secret is not None
    finally:
        db.close()
