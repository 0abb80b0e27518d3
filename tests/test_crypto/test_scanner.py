"""Tests for WalletScanner.

Tests verify:
- Known and newly discovered tokens are both resolved
- Every (wallet, chain) pair is scanned
- An unreachable chain aborts the whole scan and cancels in-flight units
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from folio.chain.types import ChainConfig, KnownToken, NativeCurrency
from folio.config import DiscoverySettings
from folio.crypto.scanner import WalletScanner
from folio.discovery.balances import BalanceResolver
from folio.discovery.engine import TokenDiscoveryEngine
from folio.discovery.registry import TokenRegistry
from folio.exceptions import SourceUnavailableError
from folio.market_data.price_cache import PriceCache
from folio.market_data.pricing import PriceService

WALLET_A = "0xaaaa00000000000000000000000000000000aaaa"
WALLET_B = "0xbbbb00000000000000000000000000000000bbbb"

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
NEW_TOKEN = "0xdef0000000000000000000000000000000000def"


def _chain(name: str, known: tuple[KnownToken, ...] = ()) -> ChainConfig:
    return ChainConfig(
        name=name,
        chain_id=1,
        rpc_url="http://localhost:8545",
        native_currency=NativeCurrency("Ether", "ETH", 18, "ethereum"),
        explorer_api_url="http://explorer.local/api",
        known_tokens=known,
    )


def _client(native: int = 10**18) -> MagicMock:
    client = MagicMock()
    client.has_explorer = True
    client.get_native_balance = AsyncMock(return_value=native)
    client.fetch_token_transfers = AsyncMock(
        return_value=[{"contractAddress": NEW_TOKEN, "timeStamp": "100"}]
    )
    client.read_symbol = AsyncMock(return_value="DEF")
    client.read_name = AsyncMock(return_value="Def Protocol")
    client.read_decimals = AsyncMock(return_value=18)
    client.balance_of = AsyncMock(
        side_effect=lambda address, wallet: {USDC: 500 * 10**6, NEW_TOKEN: 3 * 10**18}.get(
            address, 0
        )
    )
    return client


def _scanner(clients: dict[str, MagicMock], chains: dict[str, ChainConfig]) -> WalletScanner:
    prices = {"ethereum": Decimal("3000"), "usd-coin": Decimal("1"), "def-protocol": Decimal("2")}
    source = MagicMock()
    source.name = "coingecko"
    source.fetch_price = AsyncMock(side_effect=lambda key: prices.get(key))
    source.search_pricing_id = AsyncMock(return_value="def-protocol")

    registry = TokenRegistry()
    service = PriceService(PriceCache(), source, timeout=1.0)
    engine = TokenDiscoveryEngine(clients, registry, source, DiscoverySettings(), timeout=1.0)
    resolver = BalanceResolver(clients, chains, service, timeout=1.0)
    return WalletScanner(chains, engine, resolver, registry, max_concurrency=2)


class TestScanWalletChain:
    @pytest.mark.asyncio
    async def test_native_known_and_discovered_balances(self) -> None:
        chains = {"ethereum": _chain("ethereum", (KnownToken(USDC, "USDC", "USD Coin", 6, "usd-coin"),))}
        scanner = _scanner({"ethereum": _client()}, chains)
        await scanner._registry.seed_known_tokens(chains)

        result = await scanner.scan_wallet_chain(WALLET_A, "ethereum")

        by_symbol = {b.symbol: b for b in result.balances}
        assert set(by_symbol) == {"ETH", "USDC", "DEF"}
        assert by_symbol["ETH"].value == Decimal("3000")
        assert by_symbol["USDC"].value == Decimal("500")
        assert by_symbol["DEF"].value == Decimal("6")
        assert [t.address for t in result.discovered] == [NEW_TOKEN]
        assert result.total_value == Decimal("3506")
        assert result.degraded == 0


class TestScanAll:
    @pytest.mark.asyncio
    async def test_every_pair_scanned(self) -> None:
        chains = {"ethereum": _chain("ethereum"), "arbitrum": _chain("arbitrum")}
        clients = {"ethereum": _client(), "arbitrum": _client()}
        scanner = _scanner(clients, chains)

        results = await scanner.scan_all([WALLET_A, WALLET_B])

        assert {(r.wallet, r.chain) for r in results} == {
            (WALLET_A, "ethereum"),
            (WALLET_A, "arbitrum"),
            (WALLET_B, "ethereum"),
            (WALLET_B, "arbitrum"),
        }

    @pytest.mark.asyncio
    async def test_no_wallets(self) -> None:
        scanner = _scanner({"ethereum": _client()}, {"ethereum": _chain("ethereum")})
        assert await scanner.scan_all([]) == []

    @pytest.mark.asyncio
    async def test_unreachable_chain_aborts_and_cancels(self) -> None:
        cancelled = asyncio.Event()

        async def _hang(wallet: str) -> int:
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return 0

        slow = _client()
        slow.get_native_balance = AsyncMock(side_effect=_hang)
        broken = _client()
        broken.get_native_balance = AsyncMock(side_effect=ConnectionError("refused"))

        chains = {"slow": _chain("slow"), "broken": _chain("broken")}
        scanner = _scanner({"slow": slow, "broken": broken}, chains)
        # Generous resolver timeout so only the failure can end the hang.
        scanner._resolver._timeout = 60

        with pytest.raises(SourceUnavailableError):
            await scanner.scan_all([WALLET_A])

        assert cancelled.is_set()
