"""Fetch cycle -- wires sources, normalization, diffing and persistence.

One cycle:
  1. LOAD: previous snapshot, token registry, cached prices
  2. FETCH: banking accounts/instruments and every (wallet, chain) balance
  3. NORMALIZE: build the new canonical snapshot
  4. DIFF: typed changes against the previous snapshot
  5. COMMIT: ledger entries (one atomic append), then snapshot + archive
  6. FLUSH: registry and price cache to SQLite

Either the whole new snapshot is committed or the previous one stays
authoritative. A source that cannot be reached aborts before anything
but a failure entry reaches the ledger. The ledger is written before the
snapshot: if the snapshot write then fails, the next cycle diffs against
the old snapshot again and no audit entry is lost.
"""

import asyncio
import time
from datetime import UTC, datetime

import aiosqlite
import structlog

from folio.banking.client import BankingClient
from folio.chain.types import ChainConfig
from folio.crypto.scanner import WalletScanner
from folio.data.store import RegistryStore
from folio.discovery.registry import TokenRegistry
from folio.exceptions import PersistenceError, SourceUnavailableError
from folio.ledger.entries import change_entry, failure_entry, make_run_id, summary_entry
from folio.ledger.writer import LedgerWriter
from folio.logging import get_logger
from folio.market_data.price_cache import PriceCache
from folio.models import BalanceRecord, CycleResult
from folio.portfolio.differ import SnapshotDiffer
from folio.portfolio.normalizer import PositionNormalizer
from folio.portfolio.snapshot_store import SnapshotStore

logger = get_logger(__name__)


class FetchCycle:
    """Runs one reconciliation cycle end to end.

    Args:
        banking: Banking aggregation client.
        normalizer: Builds the canonical snapshot.
        differ: Compares snapshots.
        snapshot_store: Persisted snapshot file.
        ledger: Append-only ledger.
        scanner: Wallet scanner; None disables the crypto side.
        wallets: Wallet addresses to scan.
        chains: Chain configs whose known tokens seed the registry.
        registry: Shared token registry.
        price_cache: Shared price cache.
        registry_store: SQLite store backing the price cache.
    """

    def __init__(
        self,
        banking: BankingClient,
        normalizer: PositionNormalizer,
        differ: SnapshotDiffer,
        snapshot_store: SnapshotStore,
        ledger: LedgerWriter,
        scanner: WalletScanner | None = None,
        wallets: list[str] | None = None,
        chains: dict[str, ChainConfig] | None = None,
        registry: TokenRegistry | None = None,
        price_cache: PriceCache | None = None,
        registry_store: RegistryStore | None = None,
    ) -> None:
        self._banking = banking
        self._normalizer = normalizer
        self._differ = differ
        self._snapshot_store = snapshot_store
        self._ledger = ledger
        self._scanner = scanner
        self._wallets = wallets or []
        self._chains = chains or {}
        self._registry = registry
        self._price_cache = price_cache
        self._registry_store = registry_store
        self._cycle_lock = asyncio.Lock()

    async def run(self) -> CycleResult:
        """Run one cycle; category 1 and 4 failures become a failed result."""
        async with self._cycle_lock:
            now = datetime.now(UTC)
            run_id = make_run_id(now)
            structlog.contextvars.bind_contextvars(run_id=run_id)
            try:
                return await self._run(run_id, now)
            finally:
                await self._flush_shared_state()
                structlog.contextvars.unbind_contextvars("run_id")

    async def _run(self, run_id: str, now: datetime) -> CycleResult:
        started = time.monotonic()
        timestamp = now.isoformat()
        logger.info("fetch_cycle_started")

        try:
            previous = await self._snapshot_store.load_previous()
            await self._load_shared_state()

            try:
                raw_accounts, raw_instruments = await self._fetch_banking()
                balances = await self._scan_crypto()
            except SourceUnavailableError as e:
                logger.error("source_unavailable", source=e.source, reason=e.reason)
                entry = failure_entry(run_id, timestamp, str(e), time.monotonic() - started)
                await self._ledger.append([entry])
                return CycleResult(success=False, error=str(e))

            snapshot = self._normalizer.build_snapshot(
                raw_accounts, raw_instruments, balances, timestamp
            )
            changes = self._differ.diff(previous, snapshot)
            significant = self._differ.significant(changes)

            entries = [change_entry(c, run_id, timestamp) for c in significant]
            entries.append(
                summary_entry(
                    run_id,
                    timestamp,
                    previous,
                    snapshot,
                    changes,
                    significant,
                    time.monotonic() - started,
                )
            )
            await self._ledger.append(entries)
            await self._snapshot_store.save(snapshot)
            await self._snapshot_store.archive(snapshot, now)
        except PersistenceError as e:
            logger.error("persistence_failed", error=str(e))
            return CycleResult(success=False, error=str(e))

        logger.info(
            "fetch_cycle_completed",
            positions=snapshot.position_count,
            net_worth=str(snapshot.total_net_worth),
            changes=len(changes),
            significant=len(significant),
            duration=round(time.monotonic() - started, 3),
        )
        return CycleResult(
            success=True,
            snapshot=snapshot,
            changes=changes,
            significant_changes=significant,
        )

    # ──────────────────────────────────────────────
    # Sources
    # ──────────────────────────────────────────────

    async def _fetch_banking(self) -> tuple[list[dict], list[dict]]:
        await self._banking.authenticate()
        accounts, investments = await asyncio.gather(
            self._banking.fetch_accounts(),
            self._banking.fetch_investments(),
        )
        if not investments:
            raise SourceUnavailableError("banking", "no investment data received")
        logger.info("banking_fetched", accounts=len(accounts), instruments=len(investments))
        return accounts, investments

    async def _scan_crypto(self) -> list[BalanceRecord]:
        if self._scanner is None or not self._wallets:
            return []
        results = await self._scanner.scan_all(self._wallets)
        return [balance for result in results for balance in result.balances]

    # ──────────────────────────────────────────────
    # Shared state
    # ──────────────────────────────────────────────

    async def _load_shared_state(self) -> None:
        try:
            if self._registry is not None:
                await self._registry.load()
                await self._registry.seed_known_tokens(self._chains)
            if self._price_cache is not None and self._registry_store is not None:
                await self._price_cache.load(await self._registry_store.get_prices())
        except aiosqlite.Error as e:
            raise PersistenceError(f"cannot load token registry: {e}") from e

    async def _flush_shared_state(self) -> None:
        """Persist registry and price cache. Failures are logged, not raised:
        the snapshot and ledger are already settled by now.
        """
        try:
            if self._registry is not None:
                await self._registry.flush()
            if self._price_cache is not None and self._registry_store is not None:
                await self._registry_store.save_prices(await self._price_cache.entries())
        except (aiosqlite.Error, RuntimeError) as e:
            logger.error("registry_flush_failed", error=str(e))
