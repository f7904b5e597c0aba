"""In-memory memoization of simulation results keyed by (positions, shock, asset)"""

import logging
from collections import OrderedDict
from typing import Any, Hashable, Iterable, Optional, Tuple

from ..state.models import PositionSnapshot

logger = logging.getLogger(__name__)


class ScenarioCache:
    """Bounded LRU cache for aggregation and sweep results"""

    def __init__(self, max_entries: int = 256):
        """
        Initialize cache

        Args:
            max_entries: Entries kept before the least recently used is evicted
        """
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")

        self.max_entries = max_entries
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(
        kind: str,
        positions: Iterable[PositionSnapshot],
        shock_pct: Optional[float],
        shock_asset: str,
    ) -> Tuple:
        """
        Build a cache key

        Snapshots are frozen, so the tuple of positions hashes by value and a
        refreshed position set produces a different key.

        Args:
            kind: Result type stored under the key (e.g. 'summary', 'point')
            positions: Position set the result was computed from
            shock_pct: Shock percentage (None for whole-sweep results)
            shock_asset: Shock asset selector

        Returns:
            Hashable key
        """
        pct = None if shock_pct is None else float(shock_pct)
        return (kind, tuple(positions), pct, shock_asset)

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Get cached result

        Args:
            key: Cache key

        Returns:
            Cached value, or None on a miss
        """
        if key not in self._entries:
            self.misses += 1
            logger.debug(f"Cache miss: {key[0]} pct={key[2]} asset={key[3]}")
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return self._entries[key]

    def set(self, key: Hashable, value: Any):
        """
        Cache a result, evicting the oldest entry when full

        Args:
            key: Cache key
            value: Result to cache
        """
        self._entries[key] = value
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cache entry: {evicted[0]} pct={evicted[2]}")

    def clear(self, kind: Optional[str] = None):
        """
        Clear cache

        Args:
            kind: Only drop entries of this result type, or None to clear all
        """
        if kind is None:
            self._entries.clear()
            logger.info("Cleared all cache")
        else:
            for key in [k for k in self._entries if k[0] == kind]:
                del self._entries[key]
            logger.info(f"Cleared cache for: {kind}")

    def __len__(self) -> int:
        return len(self._entries)

    def get_cache_info(self) -> dict:
        """Get information about cache contents"""
        lookups = self.hits + self.misses
        kinds = {}
        for key in self._entries:
            kinds[key[0]] = kinds.get(key[0], 0) + 1

        return {
            'max_entries': self.max_entries,
            'num_entries': len(self._entries),
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': self.hits / lookups if lookups else 0.0,
            'entries_by_kind': kinds,
        }
