"""
Runtime settings read from ``PLAYFORGE_*`` environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from auth.passwords import DEFAULT_ROUNDS as PASSWORD_ROUNDS
from core.backup_codes import DEFAULT_ROUNDS as BACKUP_CODE_ROUNDS
from core.totp import DEFAULT_WINDOW
from provisioning.uri import DEFAULT_ISSUER

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Settings:
    """Application settings with validated defaults."""

    db_path: Optional[Path] = None
    master_key: Optional[str] = None
    issuer: str = DEFAULT_ISSUER
    totp_window: int = DEFAULT_WINDOW
    bcrypt_rounds: int = PASSWORD_ROUNDS
    backup_code_rounds: int = BACKUP_CODE_ROUNDS
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not 0 <= self.totp_window <= 3:
            raise ValueError("TOTP window must be between 0 and 3 steps.")
        for rounds in (self.bcrypt_rounds, self.backup_code_rounds):
            if not 4 <= rounds <= 31:
                raise ValueError("bcrypt rounds must be between 4 and 31.")
        self.log_level = self.log_level.upper()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level '{self.log_level}'.")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment.

        Raises:
            ValueError: If a numeric variable is not an integer or a value is
                out of range.
        """
        env = os.environ if environ is None else environ

        def _int(name: str, default: int) -> int:
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got '{raw}'.")

        db_path = env.get("PLAYFORGE_DB_PATH")
        return cls(
            db_path=Path(db_path) if db_path else None,
            master_key=env.get("PLAYFORGE_MASTER_KEY") or None,
            issuer=env.get("PLAYFORGE_ISSUER") or DEFAULT_ISSUER,
            totp_window=_int("PLAYFORGE_TOTP_WINDOW", DEFAULT_WINDOW),
            bcrypt_rounds=_int("PLAYFORGE_BCRYPT_ROUNDS", PASSWORD_ROUNDS),
            backup_code_rounds=_int("PLAYFORGE_BACKUP_CODE_ROUNDS", BACKUP_CODE_ROUNDS),
            log_level=env.get("PLAYFORGE_LOG_LEVEL") or "INFO",
        )
