"""Market data layer -- shared price cache and external price lookups."""

from folio.market_data.price_cache import PriceCache
from folio.market_data.pricing import CoinGeckoPriceSource, PriceService, PriceSource

__all__ = ["CoinGeckoPriceSource", "PriceCache", "PriceService", "PriceSource"]
