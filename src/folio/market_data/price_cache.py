"""Shared in-memory price cache with a staleness window.

Consulted by the token discovery and balance resolution tasks of every
(wallet, chain) unit running in the same cycle. Writes are whole-record
replacements of a frozen CachedPrice under an asyncio.Lock, so a reader
never observes a half-written entry; last writer wins.

Persistence is NOT a side effect of put(): the fetch cycle loads entries
from the registry database at start and flushes them once at the end.
"""

import asyncio
import time
from collections.abc import Iterable
from decimal import Decimal

from folio.logging import get_logger
from folio.models import CachedPrice

logger = get_logger(__name__)


class PriceCache:
    """Time-boxed identifier -> price cache.

    Args:
        expiry_seconds: Entries older than this are treated as absent by get().
    """

    def __init__(self, expiry_seconds: float = 3600.0) -> None:
        self._expiry_seconds = expiry_seconds
        self._prices: dict[str, CachedPrice] = {}
        self._lock = asyncio.Lock()

    @property
    def expiry_seconds(self) -> float:
        return self._expiry_seconds

    async def get(self, identifier: str) -> Decimal | None:
        """Return the cached price if younger than the expiry window, else None."""
        async with self._lock:
            entry = self._prices.get(identifier)
        if entry is None:
            return None
        if time.time() - entry.timestamp >= self._expiry_seconds:
            return None
        return entry.price

    async def put(self, identifier: str, price: Decimal, source: str = "coingecko") -> None:
        """Store a price, always overwriting and stamping the current time."""
        entry = CachedPrice(
            identifier=identifier,
            price=price,
            timestamp=time.time(),
            source=source,
        )
        async with self._lock:
            self._prices[identifier] = entry

    async def is_stale(self, identifier: str) -> bool:
        """True when the identifier is missing or older than the expiry window."""
        return await self.get(identifier) is None

    async def entries(self) -> list[CachedPrice]:
        """Return a copy of every entry, stale ones included, for flushing."""
        async with self._lock:
            return list(self._prices.values())

    async def load(self, entries: Iterable[CachedPrice]) -> None:
        """Populate from persisted entries, keeping the newer of two records."""
        loaded = 0
        async with self._lock:
            for entry in entries:
                current = self._prices.get(entry.identifier)
                if current is None or entry.timestamp > current.timestamp:
                    self._prices[entry.identifier] = entry
                    loaded += 1
        logger.debug("price_cache_loaded", count=loaded)
