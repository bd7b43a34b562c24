"""
Playforge two-factor – command-line entry point.

Usage
-----
    python main.py register alice@example.com
    python main.py enroll alice@example.com
    python main.py confirm alice@example.com 123456
    python main.py login alice@example.com
    python main.py code JBSWY3DPEHPK3PXP

Or, if installed as a package:
    playforge-2fa <command> ...

``PLAYFORGE_MASTER_KEY`` must be set for any command that touches the store.
"""

import argparse
import getpass
import logging
import sys
from typing import List, Optional

from auth.passwords import hash_password
from auth.two_factor import TwoFactorService, TwoFactorStatus
from config import Settings
from core.crypto import generate_salt
from core.totp import remaining_seconds, totp
from core.utils import format_otp
from provisioning.uri import build_uri
from storage.database import TwoFactorDatabase
from storage.encryption import SecretEncryptor
from storage.sessions import SessionStore

logger = logging.getLogger("playforge")


# ── Bootstrap ─────────────────────────────────────────────────────────────────

def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Keep key material out of the logs
    logging.getLogger("core.crypto").setLevel(logging.WARNING)
    logging.getLogger("storage.encryption").setLevel(logging.WARNING)


def open_database(settings: Settings) -> TwoFactorDatabase:
    """
    Open the store and unlock it with an encryptor derived from the master key.

    Raises:
        RuntimeError: If the master key is missing or does not match the store.
    """
    if not settings.master_key:
        raise RuntimeError("PLAYFORGE_MASTER_KEY is not set.")
    db = TwoFactorDatabase(db_path=settings.db_path)
    salt = db.get_salt()
    if salt is None:
        # First run – generate and store a new salt
        salt = generate_salt()
        db.set_salt(salt)
        logger.info("Initialised new two-factor store.")
    try:
        db.unlock(SecretEncryptor.from_master_key(settings.master_key, salt))
    except RuntimeError:
        db.close()
        raise
    return db


def build_service(settings: Settings, db: TwoFactorDatabase) -> TwoFactorService:
    return TwoFactorService(
        db,
        SessionStore(),
        issuer=settings.issuer,
        window=settings.totp_window,
        backup_code_rounds=settings.backup_code_rounds,
        password_rounds=settings.bcrypt_rounds,
    )


def _user_id(db: TwoFactorDatabase, email: str) -> Optional[int]:
    user = db.get_user_by_email(email)
    if user is None:
        print(f"No such user: {email}", file=sys.stderr)
        return None
    return user.id


def _report(status: TwoFactorStatus) -> int:
    if status is TwoFactorStatus.SUCCESS:
        return 0
    print(f"Failed: {status.value}", file=sys.stderr)
    return 1


# ── Commands ──────────────────────────────────────────────────────────────────

def cmd_register(args, settings: Settings) -> int:
    db = open_database(settings)
    try:
        password_hash = None
        if not args.no_password:
            password = getpass.getpass("New password: ")
            password_hash = hash_password(password, rounds=settings.bcrypt_rounds)
        user_id = db.add_user(args.email, password_hash)
        print(f"Registered {args.email} (id {user_id})")
        return 0
    finally:
        db.close()


def cmd_enroll(args, settings: Settings) -> int:
    db = open_database(settings)
    try:
        user_id = _user_id(db, args.email)
        if user_id is None:
            return 1
        password = getpass.getpass("Password: ")
        result = build_service(settings, db).begin_enrollment(user_id, password or None)
        if not result.ok:
            return _report(result.status)
        enrollment = result.enrollment
        print(f"Secret: {enrollment.secret}")
        print(f"URI:    {enrollment.uri}")
        print("Backup codes (shown once):")
        for code in enrollment.backup_codes:
            print(f"  {code}")
        print("Run 'confirm' with a code from your authenticator to finish.")
        return 0
    finally:
        db.close()


def cmd_confirm(args, settings: Settings) -> int:
    db = open_database(settings)
    try:
        user_id = _user_id(db, args.email)
        if user_id is None:
            return 1
        result = build_service(settings, db).confirm_enrollment(user_id, args.code)
        if result.ok:
            print("Two-factor authentication enabled.")
        return _report(result.status)
    finally:
        db.close()


def cmd_login(args, settings: Settings) -> int:
    db = open_database(settings)
    try:
        service = build_service(settings, db)
        result = service.authenticate(args.email, getpass.getpass("Password: "))
        if result.status is TwoFactorStatus.TWO_FACTOR_REQUIRED:
            code = args.code or input("Authenticator or backup code: ")
            result = service.verify_login(result.pending_token, code)
            if result.used_backup_code:
                user_id = _user_id(db, args.email)
                remaining = service.backup_codes_remaining(user_id)
                print(f"Backup code accepted; {remaining} remaining.")
        if result.ok:
            print(f"Session: {result.session_token}")
        return _report(result.status)
    finally:
        db.close()


def cmd_disable(args, settings: Settings) -> int:
    db = open_database(settings)
    try:
        user_id = _user_id(db, args.email)
        if user_id is None:
            return 1
        password = getpass.getpass("Password: ")
        result = build_service(settings, db).disable(user_id, password or None, args.code)
        if result.ok:
            print("Two-factor authentication disabled.")
        return _report(result.status)
    finally:
        db.close()


def cmd_status(args, settings: Settings) -> int:
    db = open_database(settings)
    try:
        user = db.get_user_by_email(args.email)
        if user is None:
            print(f"No such user: {args.email}", file=sys.stderr)
            return 1
        state = "enabled" if user.two_factor_enabled else "disabled"
        print(f"{user.email}: 2FA {state}, "
              f"{db.count_unused_backup_codes(user.id)} backup codes unused")
        return 0
    finally:
        db.close()


def cmd_code(args, settings: Settings) -> int:
    code = totp(args.secret)
    print(f"{format_otp(code)}  (valid ~{remaining_seconds():2d}s)")
    return 0


def cmd_uri(args, settings: Settings) -> int:
    print(build_uri(args.secret, args.account, args.issuer or settings.issuer))
    return 0


# ── Main ──────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playforge-2fa",
        description="Manage TOTP two-factor authentication for Playforge accounts.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("register", help="create a user")
    p.add_argument("email")
    p.add_argument("--no-password", action="store_true",
                   help="federated account without a local password")
    p.set_defaults(func=cmd_register)

    p = sub.add_parser("enroll", help="start 2FA setup and print secret, URI and backup codes")
    p.add_argument("email")
    p.set_defaults(func=cmd_enroll)

    p = sub.add_parser("confirm", help="finish 2FA setup with a current code")
    p.add_argument("email")
    p.add_argument("code")
    p.set_defaults(func=cmd_confirm)

    p = sub.add_parser("login", help="password login followed by the second factor")
    p.add_argument("email")
    p.add_argument("--code", help="TOTP or backup code (prompted if omitted)")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("disable", help="turn 2FA off")
    p.add_argument("email")
    p.add_argument("code")
    p.set_defaults(func=cmd_disable)

    p = sub.add_parser("status", help="show 2FA state for a user")
    p.add_argument("email")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("code", help="print the current code for a Base32 secret")
    p.add_argument("secret")
    p.set_defaults(func=cmd_code)

    p = sub.add_parser("uri", help="print an otpauth:// provisioning URI")
    p.add_argument("secret")
    p.add_argument("account")
    p.add_argument("--issuer")
    p.set_defaults(func=cmd_uri)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    _configure_logging(settings.log_level)
    try:
        return args.func(args, settings)
    except (RuntimeError, ValueError) as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
