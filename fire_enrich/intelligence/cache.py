"""
Per-session domain cache.

Memoizes the reconciled enrichments for a company domain so that later rows
for the same company skip discovery entirely. Entries never expire: the
cache lives exactly as long as the session (or service) that owns it.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import structlog

from fire_enrich.core.models import EnrichmentResult
from fire_enrich.utils.domains import normalize_domain

logger = structlog.get_logger(__name__)


class CacheStats:
    """Track cache performance metrics."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.writes = 0
        self.total_hit_time = 0.0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Export stats as dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class DomainCache:
    """
    At-most-once-per-domain store of enrichment results.

    All access happens on one event loop and neither ``get`` nor ``put``
    awaits, so two rows racing on the same domain can at worst both miss and
    both write; the later write replaces the earlier whole.
    """

    def __init__(self):
        self._entries: Dict[str, Dict[str, EnrichmentResult]] = {}
        self.stats = CacheStats()

    @staticmethod
    def normalize_key(domain: Optional[str]) -> str:
        return normalize_domain(domain)

    def get(self, domain: Optional[str]) -> Optional[Dict[str, EnrichmentResult]]:
        """Cached enrichments minus null values, or None on a miss."""
        start_time = time.monotonic()
        key = self.normalize_key(domain)
        entry = self._entries.get(key) if key else None
        if entry is None:
            self.stats.misses += 1
            return None

        self.stats.hits += 1
        self.stats.total_hit_time += time.monotonic() - start_time
        filtered = {name: result for name, result in entry.items() if result.value is not None}
        logger.debug("Domain cache hit", domain=key, fields=len(filtered))
        return filtered

    def put(self, domain: Optional[str], enrichments: Dict[str, EnrichmentResult]) -> None:
        """Store a row's enrichments for its domain, empty results included."""
        key = self.normalize_key(domain)
        if not key:
            return
        self._entries[key] = dict(enrichments)
        self.stats.writes += 1
        logger.debug("Domain cached", domain=key, fields=len(enrichments))

    def __contains__(self, domain: str) -> bool:
        return self.normalize_key(domain) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
