"""
In-process registry of access tokens revoked before their natural expiry.

Entries are kept only until the token itself would expire; after that the
signature check rejects it anyway, so pruning never re-enables a token.
Contents are lost on restart.
"""
from __future__ import annotations

import threading
import time
from typing import Dict, Optional


class RevocationSet:
    def __init__(self, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, float] = {}

    def add(self, token: str, expires_at: Optional[float] = None) -> None:
        """Revoke token. expires_at is a unix timestamp; None keeps it for the process lifetime."""
        with self._lock:
            self._prune_locked()
            current = self._entries.get(token)
            if current is None or (expires_at is not None and expires_at > current):
                self._entries[token] = expires_at if expires_at is not None else float("inf")

    def __contains__(self, token: str) -> bool:
        with self._lock:
            expires_at = self._entries.get(token)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._entries[token]
                return False
            return True

    def __len__(self) -> int:
        with self._lock:
            self._prune_locked()
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _prune_locked(self) -> None:
        now = self._clock()
        expired = [token for token, exp in self._entries.items() if exp <= now]
        for token in expired:
            del self._entries[token]
