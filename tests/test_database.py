"""Tests for storage.database and storage.encryption."""

from pathlib import Path

import pytest
from cryptography.exceptions import InvalidTag

from core.crypto import KEY_SIZE, generate_salt, random_bytes
from storage.database import TwoFactorDatabase
from storage.encryption import SecretEncryptor

SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def tmp_db(tmp_path: Path) -> TwoFactorDatabase:
    db = TwoFactorDatabase(
        db_path=tmp_path / "test.db",
        encryptor=SecretEncryptor(random_bytes(KEY_SIZE)),
    )
    yield db
    db.close()


# ── Salt / meta ───────────────────────────────────────────────────────────────

def test_fresh_db_no_salt(tmp_path: Path) -> None:
    db = TwoFactorDatabase(db_path=tmp_path / "fresh.db")
    assert db.get_salt() is None
    salt = generate_salt()
    db.set_salt(salt)
    assert db.get_salt() == salt
    db.close()


# ── Users ─────────────────────────────────────────────────────────────────────

def test_add_and_get_user(tmp_db: TwoFactorDatabase) -> None:
    user_id = tmp_db.add_user("alice@example.com", "hash")
    user = tmp_db.get_user(user_id)
    assert user.email == "alice@example.com"
    assert user.password_hash == "hash"
    assert user.totp_secret is None
    assert not user.two_factor_enabled
    assert tmp_db.get_user_by_email("alice@example.com").id == user_id


def test_unknown_user(tmp_db: TwoFactorDatabase) -> None:
    assert tmp_db.get_user(999) is None
    assert tmp_db.get_user_by_email("nobody@example.com") is None


def test_duplicate_email_rejected(tmp_db: TwoFactorDatabase) -> None:
    tmp_db.add_user("alice@example.com")
    with pytest.raises(ValueError):
        tmp_db.add_user("alice@example.com")


def test_secret_encrypted_at_rest(tmp_db: TwoFactorDatabase) -> None:
    user_id = tmp_db.add_user("alice@example.com")
    tmp_db.set_totp_secret(user_id, SECRET)
    raw = tmp_db._conn.execute(
        "SELECT totp_secret FROM users WHERE id=?", (user_id,)
    ).fetchone()["totp_secret"]
    assert SECRET not in raw
    assert tmp_db.get_user(user_id).totp_secret == SECRET


def test_enable_and_clear(tmp_db: TwoFactorDatabase) -> None:
    user_id = tmp_db.add_user("alice@example.com")
    tmp_db.set_totp_secret(user_id, SECRET)
    tmp_db.set_two_factor_enabled(user_id, True)
    tmp_db.replace_backup_codes(user_id, ["h1", "h2"])
    assert tmp_db.get_user(user_id).two_factor_enabled

    tmp_db.clear_two_factor(user_id)
    user = tmp_db.get_user(user_id)
    assert not user.two_factor_enabled
    assert user.totp_secret is None
    assert tmp_db.count_unused_backup_codes(user_id) == 0


# ── Backup codes ──────────────────────────────────────────────────────────────

def test_replace_backup_codes(tmp_db: TwoFactorDatabase) -> None:
    user_id = tmp_db.add_user("alice@example.com")
    tmp_db.replace_backup_codes(user_id, ["a", "b", "c"])
    tmp_db.replace_backup_codes(user_id, ["d", "e"])
    assert [c.code_hash for c in tmp_db.unused_backup_codes(user_id)] == ["d", "e"]


def test_mark_backup_code_used_once(tmp_db: TwoFactorDatabase) -> None:
    user_id = tmp_db.add_user("alice@example.com")
    tmp_db.replace_backup_codes(user_id, ["a", "b"])
    first = tmp_db.unused_backup_codes(user_id)[0]
    assert tmp_db.mark_backup_code_used(first.id)
    assert not tmp_db.mark_backup_code_used(first.id)
    assert tmp_db.count_unused_backup_codes(user_id) == 1


# ── Encryption correctness ────────────────────────────────────────────────────

def test_locked_database_raises(tmp_path: Path) -> None:
    db = TwoFactorDatabase(db_path=tmp_path / "locked.db")
    user_id = db.add_user("alice@example.com")
    with pytest.raises(RuntimeError):
        db.set_totp_secret(user_id, SECRET)
    db.close()


def test_wrong_key_cannot_decrypt(tmp_path: Path) -> None:
    salt = generate_salt()
    db = TwoFactorDatabase(
        db_path=tmp_path / "enc.db",
        encryptor=SecretEncryptor.from_master_key("correct", salt),
    )
    user_id = db.add_user("alice@example.com")
    db.set_totp_secret(user_id, SECRET)
    db.close()

    db2 = TwoFactorDatabase(
        db_path=tmp_path / "enc.db",
        encryptor=SecretEncryptor.from_master_key("wrong", salt),
    )
    with pytest.raises(InvalidTag):
        db2.get_user(user_id)
    db2.close()


def test_unlock_rejects_wrong_master_key(tmp_path: Path) -> None:
    salt = generate_salt()
    db = TwoFactorDatabase(db_path=tmp_path / "unlock.db")
    db.unlock(SecretEncryptor.from_master_key("correct", salt))
    user_id = db.add_user("alice@example.com")
    db.set_totp_secret(user_id, SECRET)
    db.close()

    db2 = TwoFactorDatabase(db_path=tmp_path / "unlock.db")
    with pytest.raises(RuntimeError, match="Wrong master key"):
        db2.unlock(SecretEncryptor.from_master_key("wrong", salt))
    # A failed unlock leaves the store locked
    with pytest.raises(RuntimeError, match="locked"):
        db2.set_totp_secret(user_id, "AAAAAAAA")
    db2.unlock(SecretEncryptor.from_master_key("correct", salt))
    assert db2.get_user(user_id).totp_secret == SECRET
    db2.close()


def test_encryptor_rejects_short_key() -> None:
    with pytest.raises(ValueError):
        SecretEncryptor(b"short")
