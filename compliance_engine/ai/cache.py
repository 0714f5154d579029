"""
Contractor Compliance Decision Engine
Recommendation Cache — request fingerprint + TTL store.

Two requests are the same request when they cover the same set of
contractor/document pairs under the same project context; any other
field (names, counts, timestamps) is ignored for caching.

Entries live in the injected KeyValueStore under
``ai_recommendations_cache:<fingerprint>``. An entry is served only while
``now - timestamp < ttl``; expired entries are deleted on read.
"""

import hashlib
import logging
import time
from threading import Lock

from compliance_engine.models.issues import Recommendation, RecommendationRequest
from compliance_engine.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600  # 1 hour
CACHE_PREFIX = "ai_recommendations_cache:"
FINGERPRINT_HEX_CHARS = 16  # 64 bits


def fingerprint(request: RecommendationRequest) -> str:
    """Stable short hash of a recommendation request."""
    pairs = sorted(issue.pair_key for issue in request.critical_issues)
    ctx = request.project_context
    canonical = "|".join([
        *pairs,
        ctx.project_phase.value,
        ctx.deadline_pressure.value,
        ctx.stakeholder_visibility.value,
    ])
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_HEX_CHARS]


class RecommendationCache:
    """TTL cache of recommendation lists keyed by request fingerprint."""

    def __init__(self, store: KeyValueStore, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock=time.time):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "expired": 0}

    def _bump(self, name: str):
        with self._lock:
            self._stats[name] += 1

    def get(self, key: str) -> list[Recommendation] | None:
        """Return cached recommendations, or None on miss / expiry."""
        entry = self.store.get(CACHE_PREFIX + key)
        if entry is None:
            self._bump("misses")
            return None

        age = self._clock() - entry["timestamp"]
        if age >= self.ttl_seconds:
            self.store.delete(CACHE_PREFIX + key)
            self._bump("expired")
            self._bump("misses")
            logger.debug("Recommendation cache expired: %s (age=%.0fs)", key, age)
            return None

        self._bump("hits")
        logger.debug("Recommendation cache hit: %s", key)
        return [Recommendation.from_dict(r) for r in entry["payload"]]

    def set(self, key: str, recommendations: list[Recommendation]):
        self.store.set(CACHE_PREFIX + key, {
            "hash": key,
            "payload": [r.to_dict() for r in recommendations],
            "timestamp": self._clock(),
        })
        self._bump("sets")

    def invalidate(self, key: str | None = None) -> int:
        """Drop one entry, or every entry when ``key`` is None."""
        if key is not None:
            return int(self.store.delete(CACHE_PREFIX + key))
        count = 0
        for full_key in self.store.keys(CACHE_PREFIX):
            count += int(self.store.delete(full_key))
        return count

    def clear(self) -> int:
        return self.invalidate()

    def get_stats(self) -> dict:
        with self._lock:
            stats = dict(self._stats)
        total = stats["hits"] + stats["misses"]
        stats["hit_rate_pct"] = round(stats["hits"] / total * 100, 2) if total else 0.0
        stats["entries"] = len(self.store.keys(CACHE_PREFIX))
        stats["ttl_seconds"] = self.ttl_seconds
        return stats
