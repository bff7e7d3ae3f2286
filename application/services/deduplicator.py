"""
Short-lived, in-process claims that collapse bursts of duplicate triggers.

Claims are not durable and do not survive a restart; the durable guarantee
comes from the sticky processing flags on the record itself.
"""
from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional


class ProcessingDeduplicator:
    def __init__(self, default_ttl: float = 5.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._claims: Dict[str, float] = {}
        self._lock = threading.Lock()

    def try_claim(self, key: str, ttl: Optional[float] = None) -> bool:
        """Claim `key` for `ttl` seconds; False if an unexpired claim exists."""
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            expires_at = self._claims.get(key)
            if expires_at is not None and expires_at > now:
                return False
            self._claims[key] = now + ttl
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._claims.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._claims.clear()

    def is_claimed(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            expires_at = self._claims.get(key)
            return expires_at is not None and expires_at > now

    @property
    def active_claims(self) -> int:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            return len(self._claims)

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, exp in self._claims.items() if exp <= now]
        for k in expired:
            del self._claims[k]
