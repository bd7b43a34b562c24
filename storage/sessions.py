"""
In-memory session store keyed by opaque random tokens.

Two kinds of token live here: full login sessions and short-lived
"password accepted, second factor pending" tokens.

Expired entries are dropped on lookup and whenever a token is created.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from core.crypto import random_bytes

SESSION = "session"
PENDING_TWO_FACTOR = "pending_2fa"

SESSION_TTL = 7 * 24 * 60 * 60   # 7 days
PENDING_TTL = 10 * 60            # 10 minutes
TOKEN_BYTES = 32


@dataclass
class SessionEntry:
    user_id: int
    kind: str
    expires_at: float


class SessionStore:
    """Thread-safe token → user mapping with per-entry expiry."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: Dict[str, SessionEntry] = {}
        self._lock = threading.Lock()

    def create(self, user_id: int, kind: str = SESSION, ttl: Optional[int] = None) -> str:
        """Issue a new token for *user_id*; *ttl* defaults per *kind*."""
        if ttl is None:
            ttl = PENDING_TTL if kind == PENDING_TWO_FACTOR else SESSION_TTL
        token = random_bytes(TOKEN_BYTES).hex()
        now = self._clock()
        with self._lock:
            self._purge_locked(now)
            self._entries[token] = SessionEntry(user_id, kind, now + ttl)
        return token

    def lookup(self, token: str, kind: str = SESSION) -> Optional[int]:
        """Return the user id for a live token of *kind*, else None."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None or entry.kind != kind:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[token]
                return None
            return entry.user_id

    def revoke(self, token: str) -> None:
        with self._lock:
            self._entries.pop(token, None)

    def purge_expired(self) -> int:
        """Drop every expired entry; return how many were removed."""
        now = self._clock()
        with self._lock:
            return self._purge_locked(now)

    def _purge_locked(self, now: float) -> int:
        expired = [t for t, e in self._entries.items() if e.expires_at <= now]
        for token in expired:
            del self._entries[token]
        return len(expired)
