"""
Two-factor enrollment, login verification and removal.

This is the collaborator around the pure TOTP engine in ``core``: it checks
passwords, persists secrets and backup-code hashes, and issues session
tokens. Every operation returns a :class:`TwoFactorResult` whose ``status``
says what happened; nothing here raises for a wrong password or code.

Rate limiting and replay protection are not handled here.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from auth import passwords
from auth.passwords import verify_dummy, verify_password
from core import backup_codes
from core.totp import DEFAULT_TIME_STEP, DEFAULT_WINDOW, verify_totp
from core.utils import generate_secret, normalize_code, sanitise_label
from provisioning.uri import DEFAULT_ISSUER, build_uri
from storage.database import TwoFactorDatabase, User
from storage.sessions import PENDING_TWO_FACTOR, SESSION, SessionStore

logger = logging.getLogger(__name__)


class TwoFactorStatus(str, Enum):
    """Outcome of a two-factor operation."""

    SUCCESS = "success"
    TWO_FACTOR_REQUIRED = "two_factor_required"
    INVALID_PASSWORD = "invalid_password"
    INVALID_CODE = "invalid_code"
    ALREADY_ENABLED = "already_enabled"
    NOT_ENABLED = "not_enabled"
    SETUP_NOT_STARTED = "setup_not_started"
    NOT_AUTHENTICATED = "not_authenticated"


@dataclass
class Enrollment:
    """Material shown to the user exactly once when setting up 2FA."""

    secret: str
    uri: str
    backup_codes: List[str] = field(default_factory=list)


@dataclass
class TwoFactorResult:
    status: TwoFactorStatus
    enrollment: Optional[Enrollment] = None
    session_token: Optional[str] = None
    pending_token: Optional[str] = None
    used_backup_code: bool = False

    @property
    def ok(self) -> bool:
        return self.status is TwoFactorStatus.SUCCESS


class TwoFactorService:
    """Glue between the TOTP engine, the user store and the session store."""

    def __init__(
        self,
        db: TwoFactorDatabase,
        sessions: SessionStore,
        issuer: str = DEFAULT_ISSUER,
        window: int = DEFAULT_WINDOW,
        time_step: int = DEFAULT_TIME_STEP,
        backup_code_count: int = backup_codes.DEFAULT_COUNT,
        backup_code_rounds: int = backup_codes.DEFAULT_ROUNDS,
        password_rounds: int = passwords.DEFAULT_ROUNDS,
    ) -> None:
        self._db = db
        self._sessions = sessions
        self._issuer = sanitise_label(issuer)
        self._window = window
        self._time_step = time_step
        self._backup_code_count = backup_code_count
        self._backup_code_rounds = backup_code_rounds
        self._password_rounds = password_rounds

    # ── Login ─────────────────────────────────────────────────────────────

    def authenticate(self, email: str, password: str) -> TwoFactorResult:
        """
        First login step.

        Returns ``SUCCESS`` with a session token, or ``TWO_FACTOR_REQUIRED``
        with a pending token to pass to :meth:`verify_login`.
        """
        user = self._db.get_user_by_email(email)
        if user is None or not user.password_hash:
            # Match the bcrypt cost of a real password check
            verify_dummy(password, rounds=self._password_rounds)
            logger.info("Password login rejected")
            return TwoFactorResult(TwoFactorStatus.INVALID_PASSWORD)
        if not verify_password(password, user.password_hash):
            logger.info("Password login rejected")
            return TwoFactorResult(TwoFactorStatus.INVALID_PASSWORD)

        if user.two_factor_enabled:
            pending = self._sessions.create(user.id, kind=PENDING_TWO_FACTOR)
            logger.info("User %s passed password check; second factor pending", user.id)
            return TwoFactorResult(TwoFactorStatus.TWO_FACTOR_REQUIRED, pending_token=pending)

        return TwoFactorResult(
            TwoFactorStatus.SUCCESS,
            session_token=self._sessions.create(user.id, kind=SESSION),
        )

    def verify_login(self, pending_token: str, code: str) -> TwoFactorResult:
        """
        Second login step: accept a TOTP code or an unused backup code.

        A matched backup code is marked used. On success the pending token is
        revoked and a full session token is issued.
        """
        user_id = self._sessions.lookup(pending_token, kind=PENDING_TWO_FACTOR)
        user = self._db.get_user(user_id) if user_id is not None else None
        if user is None:
            return TwoFactorResult(TwoFactorStatus.NOT_AUTHENTICATED)
        if not user.two_factor_enabled or not user.totp_secret:
            return TwoFactorResult(TwoFactorStatus.NOT_ENABLED)

        used_backup = False
        if not self._check_totp(user, code):
            if not self._consume_backup_code(user, code):
                logger.warning("Invalid second factor for user %s", user.id)
                return TwoFactorResult(TwoFactorStatus.INVALID_CODE)
            used_backup = True

        self._sessions.revoke(pending_token)
        token = self._sessions.create(user.id, kind=SESSION)
        logger.info("User %s completed two-factor login", user.id)
        return TwoFactorResult(
            TwoFactorStatus.SUCCESS,
            session_token=token,
            used_backup_code=used_backup,
        )

    # ── Enrollment ────────────────────────────────────────────────────────

    def begin_enrollment(self, user_id: int, password: Optional[str] = None) -> TwoFactorResult:
        """
        Generate a pending secret and a fresh set of backup codes.

        Users with a password must re-enter it. Any earlier pending secret and
        backup codes are replaced. 2FA is not active until
        :meth:`confirm_enrollment` succeeds.
        """
        user = self._db.get_user(user_id)
        if user is None:
            return TwoFactorResult(TwoFactorStatus.NOT_AUTHENTICATED)
        if user.two_factor_enabled:
            return TwoFactorResult(TwoFactorStatus.ALREADY_ENABLED)
        if not self._password_ok(user, password):
            return TwoFactorResult(TwoFactorStatus.INVALID_PASSWORD)

        secret = generate_secret()
        codes = backup_codes.generate_backup_codes(self._backup_code_count)
        hashes = [
            backup_codes.hash_backup_code(c, rounds=self._backup_code_rounds)
            for c in codes
        ]
        self._db.set_totp_secret(user.id, secret)
        self._db.replace_backup_codes(user.id, hashes)
        logger.info("Started 2FA enrollment for user %s", user.id)

        uri = build_uri(secret, sanitise_label(user.email), self._issuer)
        return TwoFactorResult(
            TwoFactorStatus.SUCCESS,
            enrollment=Enrollment(secret=secret, uri=uri, backup_codes=codes),
        )

    def confirm_enrollment(self, user_id: int, code: str) -> TwoFactorResult:
        """Turn 2FA on once the user proves their authenticator is in sync."""
        user = self._db.get_user(user_id)
        if user is None:
            return TwoFactorResult(TwoFactorStatus.NOT_AUTHENTICATED)
        if user.two_factor_enabled:
            return TwoFactorResult(TwoFactorStatus.ALREADY_ENABLED)
        if not user.totp_secret:
            return TwoFactorResult(TwoFactorStatus.SETUP_NOT_STARTED)
        if not self._check_totp(user, code):
            return TwoFactorResult(TwoFactorStatus.INVALID_CODE)

        self._db.set_two_factor_enabled(user.id, True)
        logger.info("Enabled 2FA for user %s", user.id)
        return TwoFactorResult(TwoFactorStatus.SUCCESS)

    def disable(self, user_id: int, password: Optional[str], code: str) -> TwoFactorResult:
        """Turn 2FA off, clearing the secret and every backup code."""
        user = self._db.get_user(user_id)
        if user is None:
            return TwoFactorResult(TwoFactorStatus.NOT_AUTHENTICATED)
        if not user.two_factor_enabled or not user.totp_secret:
            return TwoFactorResult(TwoFactorStatus.NOT_ENABLED)
        if not self._password_ok(user, password):
            return TwoFactorResult(TwoFactorStatus.INVALID_PASSWORD)
        if not self._check_totp(user, code):
            return TwoFactorResult(TwoFactorStatus.INVALID_CODE)

        self._db.clear_two_factor(user.id)
        logger.info("Disabled 2FA for user %s", user.id)
        return TwoFactorResult(TwoFactorStatus.SUCCESS)

    def backup_codes_remaining(self, user_id: int) -> int:
        return self._db.count_unused_backup_codes(user_id)

    # ── Internals ─────────────────────────────────────────────────────────

    @staticmethod
    def _password_ok(user: User, password: Optional[str]) -> bool:
        # Federated accounts have no password to re-check.
        if not user.password_hash:
            return True
        return bool(password) and verify_password(password, user.password_hash)

    def _check_totp(self, user: User, code: str) -> bool:
        return verify_totp(
            user.totp_secret,
            normalize_code(code),
            window=self._window,
            time_step=self._time_step,
        )

    def _consume_backup_code(self, user: User, code: str) -> bool:
        # bcrypt per stored hash: linear in the number of unused codes.
        for stored in self._db.unused_backup_codes(user.id):
            if backup_codes.check_backup_code(code, stored.code_hash):
                if self._db.mark_backup_code_used(stored.id):
                    logger.info("User %s consumed a backup code", user.id)
                    return True
                return False
        return False
