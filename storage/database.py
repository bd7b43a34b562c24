"""
SQLite-backed two-factor state with encrypted shared secrets.

Schema
------
users
  id                 INTEGER PRIMARY KEY AUTOINCREMENT
  email              TEXT    NOT NULL UNIQUE
  password_hash      TEXT                -- bcrypt; NULL for federated users
  totp_secret        TEXT                -- AES-GCM encrypted Base32 secret
  two_factor_enabled INTEGER NOT NULL    -- 0 / 1

backup_codes
  id        INTEGER PRIMARY KEY AUTOINCREMENT
  user_id   INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE
  code_hash TEXT    NOT NULL             -- bcrypt of the normalised code
  used      INTEGER NOT NULL             -- 0 / 1

meta
  key       TEXT PRIMARY KEY
  value     TEXT                         -- salt as hex (NOT encrypted), key-check marker (encrypted)
"""

import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from cryptography.exceptions import InvalidTag

from storage.encryption import SecretEncryptor

logger = logging.getLogger(__name__)

KEY_CHECK_PLAINTEXT = "playforge-key-check"


# ── Data model ────────────────────────────────────────────────────────────────

@dataclass
class User:
    """Account fields the two-factor flow reads and writes."""

    email: str
    password_hash: Optional[str] = None
    totp_secret: Optional[str] = None     # plaintext Base32 once loaded
    two_factor_enabled: bool = False
    id: Optional[int] = None


@dataclass
class BackupCode:
    """A stored recovery code hash."""

    id: int
    user_id: int
    code_hash: str
    used: bool = False


# ── Database ──────────────────────────────────────────────────────────────────

class TwoFactorDatabase:
    """Thread-safe SQLite store with transparent secret encryption."""

    _DEFAULT_DIR = Path(
        os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")
    ) / "playforge"

    def __init__(
        self,
        db_path: Optional[Path] = None,
        encryptor: Optional[SecretEncryptor] = None,
    ) -> None:
        """
        Args:
            db_path:   Path to the SQLite file, or ``":memory:"``. Defaults to
                       ``~/.local/share/playforge/twofactor.db``.
            encryptor: :class:`~storage.encryption.SecretEncryptor` used for
                       ``totp_secret``. Can be attached later with
                       :meth:`set_encryptor` once the salt is known.
        """
        if db_path is None:
            db_path = self._DEFAULT_DIR / "twofactor.db"
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._encryptor = encryptor
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._bootstrap()

    # ── Schema ───────────────────────────────────────────────────────────

    def _bootstrap(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
                    email              TEXT    NOT NULL UNIQUE,
                    password_hash      TEXT,
                    totp_secret        TEXT,
                    two_factor_enabled INTEGER NOT NULL DEFAULT 0
                );
                CREATE TABLE IF NOT EXISTS backup_codes (
                    id        INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id   INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    code_hash TEXT    NOT NULL,
                    used      INTEGER NOT NULL DEFAULT 0
                );
                CREATE TABLE IF NOT EXISTS meta (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

    # ── Salt / meta ───────────────────────────────────────────────────────

    def get_salt(self) -> Optional[bytes]:
        """Return stored salt or None if database is fresh."""
        row = self._conn.execute(
            "SELECT value FROM meta WHERE key='salt'"
        ).fetchone()
        return bytes.fromhex(row["value"]) if row else None

    def set_salt(self, salt: bytes) -> None:
        """Persist the salt (stored as hex, NOT encrypted)."""
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('salt', ?)",
                (salt.hex(),),
            )

    # ── Encryptor ─────────────────────────────────────────────────────────

    def set_encryptor(self, encryptor: SecretEncryptor) -> None:
        """Attach or replace the secret encryptor."""
        self._encryptor = encryptor

    def unlock(self, encryptor: SecretEncryptor) -> None:
        """
        Check *encryptor* against the stored key-check marker, then attach it.

        The first unlock of a store writes the marker, so every later unlock
        must use the same master key.

        Raises:
            RuntimeError: If the marker does not decrypt under *encryptor*.
        """
        row = self._conn.execute(
            "SELECT value FROM meta WHERE key='key_check'"
        ).fetchone()
        if row is None:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO meta (key, value) VALUES ('key_check', ?)",
                    (encryptor.encrypt_secret(KEY_CHECK_PLAINTEXT),),
                )
        else:
            try:
                plaintext = encryptor.decrypt_secret(row["value"])
            except InvalidTag:
                plaintext = None
            if plaintext != KEY_CHECK_PLAINTEXT:
                raise RuntimeError("Wrong master key.")
        self._encryptor = encryptor

    def _require_encryptor(self) -> SecretEncryptor:
        if self._encryptor is None:
            raise RuntimeError("Database is locked – no encryptor set.")
        return self._encryptor

    # ── Users ─────────────────────────────────────────────────────────────

    def add_user(self, email: str, password_hash: Optional[str] = None) -> int:
        """
        Insert a user without two-factor state; return the new row id.

        Raises:
            ValueError: If the email is already registered.
        """
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "INSERT INTO users (email, password_hash) VALUES (?, ?)",
                    (email, password_hash),
                )
        except sqlite3.IntegrityError:
            raise ValueError(f"User '{email}' already exists.")
        return cursor.lastrowid  # type: ignore[return-value]

    def get_user(self, user_id: int) -> Optional[User]:
        row = self._conn.execute(
            "SELECT * FROM users WHERE id=?", (user_id,)
        ).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self._conn.execute(
            "SELECT * FROM users WHERE email=?", (email,)
        ).fetchone()
        return self._row_to_user(row) if row else None

    def set_totp_secret(self, user_id: int, secret: str) -> None:
        """Store a (pending) shared secret, encrypted."""
        encrypted = self._require_encryptor().encrypt_secret(secret)
        with self._conn:
            self._conn.execute(
                "UPDATE users SET totp_secret=? WHERE id=?", (encrypted, user_id)
            )

    def set_two_factor_enabled(self, user_id: int, enabled: bool) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE users SET two_factor_enabled=? WHERE id=?",
                (int(enabled), user_id),
            )

    def clear_two_factor(self, user_id: int) -> None:
        """Disable 2FA, drop the secret and every backup code in one transaction."""
        with self._conn:
            self._conn.execute(
                "UPDATE users SET two_factor_enabled=0, totp_secret=NULL WHERE id=?",
                (user_id,),
            )
            self._conn.execute(
                "DELETE FROM backup_codes WHERE user_id=?", (user_id,)
            )

    # ── Backup codes ──────────────────────────────────────────────────────

    def replace_backup_codes(self, user_id: int, code_hashes: List[str]) -> None:
        """Delete existing codes for *user_id* and insert *code_hashes*."""
        with self._conn:
            self._conn.execute(
                "DELETE FROM backup_codes WHERE user_id=?", (user_id,)
            )
            self._conn.executemany(
                "INSERT INTO backup_codes (user_id, code_hash) VALUES (?, ?)",
                [(user_id, h) for h in code_hashes],
            )

    def unused_backup_codes(self, user_id: int) -> List[BackupCode]:
        rows = self._conn.execute(
            "SELECT * FROM backup_codes WHERE user_id=? AND used=0 ORDER BY id",
            (user_id,),
        ).fetchall()
        return [
            BackupCode(
                id=r["id"],
                user_id=r["user_id"],
                code_hash=r["code_hash"],
                used=bool(r["used"]),
            )
            for r in rows
        ]

    def mark_backup_code_used(self, code_id: int) -> bool:
        """
        Flag a backup code as used.

        Returns:
            False if the code was already used (lost a race), else True.
        """
        with self._conn:
            cursor = self._conn.execute(
                "UPDATE backup_codes SET used=1 WHERE id=? AND used=0", (code_id,)
            )
        return cursor.rowcount == 1

    def count_unused_backup_codes(self, user_id: int) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) AS n FROM backup_codes WHERE user_id=? AND used=0",
            (user_id,),
        ).fetchone()
        return int(row["n"])

    # ── Internals ─────────────────────────────────────────────────────────

    def _row_to_user(self, row: sqlite3.Row) -> User:
        secret = row["totp_secret"]
        if secret is not None:
            secret = self._require_encryptor().decrypt_secret(secret)
        return User(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            totp_secret=secret,
            two_factor_enabled=bool(row["two_factor_enabled"]),
        )

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
