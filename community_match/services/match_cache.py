import hashlib
import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from community_match.config import MATCH_CACHE_SINGLE_FLIGHT, MATCH_CACHE_TTL_MINUTES
from community_match.models import MatchScore, Preferences

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


def cache_key(user_id: str, preferences: Preferences) -> CacheKey:
    digest = hashlib.sha256(preferences.cache_fingerprint().encode("utf-8")).hexdigest()
    return (user_id, digest[:20])


@dataclass(frozen=True)
class CacheEntry:
    results: tuple[MatchScore, ...]
    expires_at: float


class MatchCache:
    """TTL cache of ranked match lists keyed by (user id, preferences digest).

    Entries are immutable tuples swapped in under a lock, so a reader sees
    either a complete earlier write or a miss. With ``single_flight`` enabled,
    concurrent ``get_or_compute`` calls for one key wait on a per-key lock and
    only the first computes; otherwise concurrent misses each recompute.
    """

    def __init__(
        self,
        ttl_minutes: float = MATCH_CACHE_TTL_MINUTES,
        clock: Callable[[], float] = time.time,
        single_flight: bool = MATCH_CACHE_SINGLE_FLIGHT,
    ) -> None:
        self.ttl_seconds = float(ttl_minutes) * 60.0
        self.single_flight = single_flight
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()
        self._inflight: dict[CacheKey, threading.Lock] = {}

    def get(self, key: CacheKey) -> tuple[MatchScore, ...] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                logger.debug("[CACHE] expired user_id=%s", key[0])
                return None
            return entry.results

    def put(self, key: CacheKey, results: Sequence[MatchScore]) -> tuple[MatchScore, ...]:
        frozen = tuple(results)
        entry = CacheEntry(results=frozen, expires_at=self._clock() + self.ttl_seconds)
        with self._lock:
            self._entries[key] = entry
        return frozen

    def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], Sequence[MatchScore]],
    ) -> tuple[MatchScore, ...]:
        hit = self.get(key)
        if hit is not None:
            logger.debug("[CACHE] hit user_id=%s", key[0])
            return hit
        if not self.single_flight:
            logger.debug("[CACHE] miss user_id=%s", key[0])
            return self.put(key, compute())

        with self._lock:
            key_lock = self._inflight.setdefault(key, threading.Lock())
        with key_lock:
            hit = self.get(key)
            if hit is not None:
                return hit
            logger.debug("[CACHE] miss user_id=%s (single-flight)", key[0])
            try:
                return self.put(key, compute())
            finally:
                with self._lock:
                    self._inflight.pop(key, None)

    def clear(self, user_id: str | None = None) -> int:
        with self._lock:
            if user_id is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                keys = [k for k in self._entries if k[0] == user_id]
                for k in keys:
                    del self._entries[k]
                removed = len(keys)
        logger.info("[CACHE] cleared %s entries user_id=%s", removed, user_id)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
