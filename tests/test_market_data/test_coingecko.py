"""Tests for CoinGeckoPriceSource against a fake aiohttp session.

Tests verify:
- /simple/price answers are parsed to Decimal
- A missing coin or currency is an unknown price (None)
- Symbol search matches case-insensitively and returns the coin id
- HTTP errors propagate to the caller (PriceService absorbs them)
- An injected session is never closed by the source
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from folio.market_data.pricing import CoinGeckoPriceSource


def _session(payload: dict) -> MagicMock:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = AsyncMock(return_value=payload)

    request = MagicMock()
    request.__aenter__ = AsyncMock(return_value=response)
    request.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.closed = False
    session.get = MagicMock(return_value=request)
    session.close = AsyncMock()
    return session


class TestFetchPrice:
    @pytest.mark.asyncio
    async def test_parses_price(self) -> None:
        session = _session({"ethereum": {"usd": 3012.57}})
        source = CoinGeckoPriceSource(session=session)

        price = await source.fetch_price("ethereum")

        assert price == Decimal("3012.57")
        url = session.get.call_args.args[0]
        assert url.endswith("/simple/price")
        assert session.get.call_args.kwargs["params"] == {"ids": "ethereum", "vs_currencies": "usd"}

    @pytest.mark.asyncio
    async def test_unknown_coin_is_none(self) -> None:
        source = CoinGeckoPriceSource(session=_session({}))
        assert await source.fetch_price("not-a-coin") is None

    @pytest.mark.asyncio
    async def test_http_error_propagates(self) -> None:
        session = _session({})
        session.get.side_effect = aiohttp.ClientConnectionError("refused")
        source = CoinGeckoPriceSource(session=session)

        with pytest.raises(aiohttp.ClientError):
            await source.fetch_price("ethereum")


class TestSearch:
    @pytest.mark.asyncio
    async def test_matches_symbol(self) -> None:
        session = _session(
            {
                "coins": [
                    {"id": "usd-coin-bridged", "symbol": "USDC.e"},
                    {"id": "usd-coin", "symbol": "USDC"},
                ]
            }
        )
        source = CoinGeckoPriceSource(session=session)

        assert await source.search_pricing_id("usdc") == "usd-coin"

    @pytest.mark.asyncio
    async def test_no_match(self) -> None:
        source = CoinGeckoPriceSource(session=_session({"coins": []}))
        assert await source.search_pricing_id("ZZZ") is None


class TestClose:
    @pytest.mark.asyncio
    async def test_injected_session_left_open(self) -> None:
        session = _session({})
        source = CoinGeckoPriceSource(session=session)

        await source.close()

        session.close.assert_not_awaited()
