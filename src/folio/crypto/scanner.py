"""Concurrent wallet scanning across every configured (wallet, chain) pair.

Each pair is an independent unit of work; the only state shared between
units is the TokenRegistry and the PriceCache. Per-token failures are
absorbed inside a unit. A chain that cannot be reached at all raises
SourceUnavailableError, which cancels the remaining units and aborts the
scan: a partial crypto inventory is never handed to the normalizer.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from folio.chain.types import ChainConfig
from folio.discovery.balances import BalanceResolver
from folio.discovery.engine import TokenDiscoveryEngine
from folio.discovery.registry import TokenRegistry
from folio.logging import get_logger
from folio.models import BalanceRecord, DiscoveredToken, ResolutionStatus

logger = get_logger(__name__)


@dataclass
class WalletScanResult:
    """Balances found for one (wallet, chain) unit."""

    wallet: str
    chain: str
    balances: list[BalanceRecord] = field(default_factory=list)
    discovered: list[DiscoveredToken] = field(default_factory=list)
    degraded: int = 0  # token resolutions or prices that fell back to defaults

    @property
    def total_value(self) -> Decimal:
        return sum((b.value for b in self.balances), Decimal("0"))


class WalletScanner:
    """Fans out native + token balance resolution over wallets and chains.

    Args:
        chains: Chain name -> ChainConfig (defines which chains are scanned).
        engine: Token discovery engine.
        resolver: Balance resolver.
        registry: Shared token registry.
        max_concurrency: Maximum (wallet, chain) units in flight.
    """

    def __init__(
        self,
        chains: Mapping[str, ChainConfig],
        engine: TokenDiscoveryEngine,
        resolver: BalanceResolver,
        registry: TokenRegistry,
        max_concurrency: int = 4,
    ) -> None:
        self._chains = chains
        self._engine = engine
        self._resolver = resolver
        self._registry = registry
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def scan_wallet_chain(self, wallet: str, chain: str) -> WalletScanResult:
        """Resolve every balance one wallet holds on one chain."""
        result = WalletScanResult(wallet=wallet, chain=chain)

        native = await self._resolver.resolve_native(wallet, chain)
        if native is not None:
            result.balances.append(native)

        observed = await self._engine.scan_transfers(wallet, chain)
        result.discovered = await self._engine.filter_unregistered(chain, observed)

        resolutions = await asyncio.gather(
            *(self._engine.resolve_metadata(chain, t.address) for t in result.discovered)
        )
        result.degraded += sum(1 for r in resolutions if not r.is_resolved)

        # Known tokens are always checked; other registry tokens only when
        # the wallet has touched them recently.
        addresses = [t.address for t in self._chains[chain].known_tokens]
        addresses += [a for a in observed if a not in addresses]

        candidates = []
        for address in addresses:
            metadata = await self._registry.get(chain, address)
            if metadata is not None:
                candidates.append(metadata)

        balances = await asyncio.gather(
            *(self._resolver.resolve(wallet, chain, m) for m in candidates)
        )
        for balance in balances:
            if balance is None:
                continue
            if balance.price_status is not ResolutionStatus.RESOLVED:
                result.degraded += 1
            result.balances.append(balance)

        logger.info(
            "wallet_chain_scanned",
            wallet=wallet,
            chain=chain,
            balances=len(result.balances),
            discovered=len(result.discovered),
            degraded=result.degraded,
            total_value=str(result.total_value),
        )
        return result

    async def _bounded_scan(self, wallet: str, chain: str) -> WalletScanResult:
        async with self._semaphore:
            return await self.scan_wallet_chain(wallet, chain)

    async def scan_all(self, wallets: list[str]) -> list[WalletScanResult]:
        """Scan every (wallet, chain) pair concurrently.

        If any unit raises, every other in-flight unit is cancelled before
        the error propagates. Cancelling the caller cancels all units too.
        """
        if not wallets:
            logger.info("no_crypto_wallets_configured")
            return []

        tasks = [
            asyncio.create_task(self._bounded_scan(wallet, chain))
            for wallet in wallets
            for chain in self._chains
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
