"""
Parsed commission policy cache.

Policies are parsed once per (entity kind, entity id) and kept for a short
TTL so a burst of sales does not re-validate the same document on every
bet line. Absent or malformed policies are cached as None too.

Usage:
    cache = PolicyCache(ttl=300, max_size=1000)
    hit, policy = cache.get("SELLER", seller_id)
    if not hit:
        cache.put("SELLER", seller_id, parse_commission_policy(doc, "SELLER"))

    # After a policy edit
    cache.invalidate("SELLER", seller_id)
"""
import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from lotto_ledger.schemas.commission import CommissionPolicy

logger = logging.getLogger(__name__)


class PolicyCache:
    """TTL cache with LRU eviction keyed by (kind, entity id)."""

    def __init__(
        self,
        ttl: float = 300,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock
        # key -> (policy, expires_at); order tracks recency
        self._entries: "OrderedDict[str, Tuple[Optional[CommissionPolicy], float]]" = OrderedDict()

    @staticmethod
    def _make_key(kind: str, entity_id) -> str:
        return f"{kind}:{entity_id}"

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, kind: str, entity_id) -> Tuple[bool, Optional[CommissionPolicy]]:
        """Return (hit, policy). A hit may carry None for a cached absent policy."""
        key = self._make_key(kind, entity_id)
        entry = self._entries.get(key)
        if entry is None:
            return False, None

        policy, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return False, None

        self._entries.move_to_end(key)
        return True, policy

    def put(self, kind: str, entity_id, policy: Optional[CommissionPolicy]) -> None:
        key = self._make_key(kind, entity_id)
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Policy cache LRU evict: {evicted} (size {len(self._entries)})")
        self._entries[key] = (policy, self._clock() + self._ttl)

    def invalidate(self, kind: str, entity_id=None) -> int:
        """Drop one entry, or every entry of a kind when entity_id is None."""
        if entity_id is not None:
            return 1 if self._entries.pop(self._make_key(kind, entity_id), None) is not None else 0

        prefix = f"{kind}:"
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup_expired(self) -> int:
        """Remove expired entries. Call periodically to prevent memory bloat."""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Policy cache cleanup: {len(expired)} expired, {len(self._entries)} remaining")
        return len(expired)
