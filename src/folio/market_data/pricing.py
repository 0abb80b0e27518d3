"""External pricing collaborator and the cache-aware price lookup.

PriceService is the only path used to value balances: it answers from the
PriceCache when the entry is fresh, otherwise asks the PriceSource once
(bounded by a timeout, never retried) and populates the cache. Any failure
yields a price of zero so one pricing error cannot abort a wallet scan.
"""

import asyncio
from abc import ABC, abstractmethod
from decimal import Decimal

import aiohttp

from folio.logging import get_logger
from folio.market_data.price_cache import PriceCache
from folio.models import Resolution, to_decimal

logger = get_logger(__name__)

_ZERO = Decimal("0")


class PriceSource(ABC):
    """Abstract symbol/identifier -> fiat price lookup."""

    name: str = "unknown"

    @abstractmethod
    async def fetch_price(self, identifier: str) -> Decimal | None:
        """Return the fiat price for a pricing identifier, or None if unknown."""
        ...

    @abstractmethod
    async def search_pricing_id(self, symbol: str) -> str | None:
        """Map a token symbol to the source's canonical pricing identifier."""
        ...

    async def close(self) -> None:
        """Release network resources."""


class CoinGeckoPriceSource(PriceSource):
    """CoinGecko public API via aiohttp."""

    name = "coingecko"

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        vs_currency: str = "usd",
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._vs_currency = vs_currency
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _get_json(self, path: str, params: dict) -> dict:
        session = await self._get_session()
        async with session.get(f"{self._base_url}{path}", params=params) as response:
            response.raise_for_status()
            return await response.json()

    async def fetch_price(self, identifier: str) -> Decimal | None:
        data = await self._get_json(
            "/simple/price",
            {"ids": identifier, "vs_currencies": self._vs_currency},
        )
        raw = (data.get(identifier) or {}).get(self._vs_currency)
        return None if raw is None else to_decimal(raw)

    async def search_pricing_id(self, symbol: str) -> str | None:
        data = await self._get_json("/search", {"query": symbol})
        wanted = symbol.lower()
        for coin in data.get("coins") or []:
            if str(coin.get("symbol", "")).lower() == wanted:
                return coin.get("id")
        return None

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


class PriceService:
    """Cache-aware price lookup returning tagged resolutions.

    Args:
        cache: Shared PriceCache.
        source: External pricing collaborator.
        timeout: Upper bound for a single fresh lookup, in seconds.
    """

    def __init__(self, cache: PriceCache, source: PriceSource, timeout: float = 10.0) -> None:
        self._cache = cache
        self._source = source
        self._timeout = timeout

    @property
    def source(self) -> PriceSource:
        return self._source

    async def get_price(self, symbol: str, pricing_id: str | None = None) -> Resolution[Decimal]:
        """Price a symbol, preferring its pricing identifier as the cache key.

        Returns RESOLVED for a cached or freshly fetched price, DEFAULTED (zero,
        cached) when the source answered but has no price, FAILED (zero, not
        cached) when the lookup raised or timed out.
        """
        key = pricing_id or symbol.lower()

        cached = await self._cache.get(key)
        if cached is not None:
            return Resolution.resolved(cached)

        try:
            price = await asyncio.wait_for(self._source.fetch_price(key), self._timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("price_lookup_failed", symbol=symbol, key=key, error=str(e))
            return Resolution.failed(_ZERO, f"price lookup failed: {e}")

        if price is None:
            await self._cache.put(key, _ZERO, source=self._source.name)
            logger.debug("price_unknown", symbol=symbol, key=key)
            return Resolution.defaulted(_ZERO, "price unknown")

        await self._cache.put(key, price, source=self._source.name)
        return Resolution.resolved(price)
