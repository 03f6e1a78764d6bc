"""Three-tier (hot/warm/cold) cache for hospital assessments.

Entries live in a single arena keyed by cache key; each entry carries the tier
it currently sits in. Every tier keeps a min-heap of eviction candidates with
lazy deletion, so choosing a victim is O(log n).

Eviction score is ``ln(1 + frequency) * context_weight * recency`` with
``recency = exp(-decay * age)``. Taking logs, the ordering only depends on
``ln(ln(1 + f)) + ln(w) + decay * last_access``, which does not change as time
passes; that value is what the heaps are keyed on. Entries that were never
read score zero and always go first. Equal scores evict the oldest insert.
"""

import heapq
import itertools
import logging
import math
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from specforge.errors import CacheConsistencyError

logger = logging.getLogger(__name__)

TIERS: tuple[str, ...] = ("L1", "L2", "L3")


@dataclass
class CacheEntry:
    key: str
    value: Any
    tier: str
    access_frequency: int
    context_weight: float
    last_access: float
    sequence: int
    version: int = 0


def context_weight(context: Mapping[str, Any] | None) -> float:
    """Healthcare weighting: clinical data x1.5, large hospital x1.3, complexity > 7 x1.2."""
    if not context:
        return 1.0
    weight = 1.0
    if context.get("clinical"):
        weight *= 1.5
    beds = context.get("bed_count") or 0
    if context.get("large_hospital") or beds > 500:
        weight *= 1.3
    if (context.get("complexity_score") or 0) > 7:
        weight *= 1.2
    return weight


class AssessmentCache:
    def __init__(
        self,
        l1_size: int = 100,
        l2_size: int = 500,
        l3_size: int = 2000,
        *,
        half_life_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min(l1_size, l2_size, l3_size) < 1:
            raise ValueError("every cache tier needs a capacity of at least 1")
        self._capacity = {"L1": l1_size, "L2": l2_size, "L3": l3_size}
        self._decay = math.log(2) / half_life_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry] = {}
        self._members: dict[str, dict[str, None]] = {tier: {} for tier in TIERS}
        self._heaps: dict[str, list[tuple[tuple[int, float, int], int, str]]] = {tier: [] for tier in TIERS}
        self._sequence = itertools.count()
        self._versions = itertools.count(1)
        self._stats = {
            "hits": {tier: 0 for tier in TIERS},
            "misses": 0,
            "sets": 0,
            "promotions": 0,
            "demotions": 0,
            "evictions": 0,
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Look up L1, then L2, then L3; a hit below L1 moves the entry up one tier."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return default

            self._stats["hits"][entry.tier] += 1
            entry.access_frequency += 1
            entry.last_access = self._clock()

            if entry.tier != "L1":
                source = entry.tier
                target = TIERS[TIERS.index(source) - 1]
                del self._members[source][key]
                self._place(entry, target)
                self._stats["promotions"] += 1
                logger.debug("Promoted %s from %s to %s", key, source, target)
            else:
                self._push(entry)
            return entry.value

    def set(self, key: str, value: Any, context: Mapping[str, Any] | None = None) -> None:
        """Insert into L1, cascading demotions down the tiers if L1 is full.

        Writing is not an access: frequency carries over from a previous
        value under the same key but is not incremented.
        """
        with self._lock:
            previous = self._entries.pop(key, None)
            if previous is not None:
                del self._members[previous.tier][key]

            entry = CacheEntry(
                key=key,
                value=value,
                tier="L1",
                access_frequency=previous.access_frequency if previous else 0,
                context_weight=context_weight(context),
                last_access=self._clock(),
                sequence=next(self._sequence),
            )
            self._entries[key] = entry
            self._place(entry, "L1")
            self._stats["sets"] += 1

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def tier_of(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            return entry.tier if entry else None

    def invalidate(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            del self._members[entry.tier][key]
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            for tier in TIERS:
                self._members[tier].clear()
                self._heaps[tier].clear()

    def eviction_score(self, key: str) -> float | None:
        """Current ``ln(1+f) * w * recency`` for a key, mostly for inspection."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            age = max(0.0, self._clock() - entry.last_access)
            return math.log1p(entry.access_frequency) * entry.context_weight * math.exp(-self._decay * age)

    def metrics(self) -> dict[str, Any]:
        with self._lock:
            hits = sum(self._stats["hits"].values())
            lookups = hits + self._stats["misses"]
            return {
                "size": len(self._entries),
                "tiers": {tier: len(self._members[tier]) for tier in TIERS},
                "capacity": dict(self._capacity),
                "hits": dict(self._stats["hits"]),
                "misses": self._stats["misses"],
                "sets": self._stats["sets"],
                "promotions": self._stats["promotions"],
                "demotions": self._stats["demotions"],
                "evictions": self._stats["evictions"],
                "hit_rate": round(hits / lookups, 4) if lookups else 0.0,
            }

    def verify(self) -> None:
        """Raise CacheConsistencyError if tier bookkeeping disagrees with the arena."""
        with self._lock:
            seen = 0
            for tier in TIERS:
                members = self._members[tier]
                if len(members) > self._capacity[tier]:
                    raise CacheConsistencyError(
                        f"tier {tier} holds {len(members)} entries, capacity {self._capacity[tier]}"
                    )
                for key in members:
                    entry = self._entries.get(key)
                    if entry is None:
                        raise CacheConsistencyError(f"{tier} lists {key!r} which is not in the arena")
                    if entry.tier != tier:
                        raise CacheConsistencyError(f"{key!r} is listed in {tier} but tagged {entry.tier}")
                seen += len(members)
            if seen != len(self._entries):
                raise CacheConsistencyError(f"arena has {len(self._entries)} entries, tiers list {seen}")

    # Internal bookkeeping; callers hold the lock.

    def _place(self, entry: CacheEntry, tier: str) -> None:
        if len(self._members[tier]) >= self._capacity[tier]:
            victim = self._pop_victim(tier)
            del self._members[tier][victim.key]
            next_index = TIERS.index(tier) + 1
            if next_index < len(TIERS):
                self._stats["demotions"] += 1
                logger.debug("Demoting %s from %s to %s", victim.key, tier, TIERS[next_index])
                self._place(victim, TIERS[next_index])
            else:
                del self._entries[victim.key]
                self._stats["evictions"] += 1
                logger.debug("Evicted %s from cache", victim.key)
        entry.tier = tier
        self._members[tier][entry.key] = None
        self._push(entry)

    def _eviction_key(self, entry: CacheEntry) -> tuple[int, float, int]:
        if entry.access_frequency <= 0:
            return (0, 0.0, entry.sequence)
        log_score = (
            math.log(math.log1p(entry.access_frequency))
            + math.log(entry.context_weight)
            + self._decay * entry.last_access
        )
        return (1, log_score, entry.sequence)

    def _push(self, entry: CacheEntry) -> None:
        entry.version = next(self._versions)
        heap = self._heaps[entry.tier]
        heapq.heappush(heap, (self._eviction_key(entry), entry.version, entry.key))
        if len(heap) > 4 * len(self._members[entry.tier]) + 16:
            self._compact(entry.tier)

    def _compact(self, tier: str) -> None:
        heap = [
            (self._eviction_key(self._entries[key]), self._entries[key].version, key)
            for key in self._members[tier]
        ]
        heapq.heapify(heap)
        self._heaps[tier] = heap

    def _pop_victim(self, tier: str) -> CacheEntry:
        heap = self._heaps[tier]
        while heap:
            _, version, key = heapq.heappop(heap)
            entry = self._entries.get(key)
            if entry is not None and entry.tier == tier and entry.version == version and key in self._members[tier]:
                return entry
        raise CacheConsistencyError(f"tier {tier} is full but has no eviction candidate")
