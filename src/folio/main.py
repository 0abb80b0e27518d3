"""Entry point for the portfolio reconciler.

Actions:
  fetch            run one fetch cycle (exit 0 on success, 1 on failure)
  status           print the last committed snapshot's headline figures
  test-connection  authenticate against the banking provider
  serve            run the read-only status API

Component wiring order (in _build_components):
1. Chain configs and per-chain clients (only when wallets are configured)
2. PriceCache + CoinGeckoPriceSource + PriceService
3. TokenRegistry (backed by the SQLite RegistryStore)
4. TokenDiscoveryEngine, BalanceResolver, WalletScanner
5. PowensClient (banking)
6. AssetClassifier, PositionNormalizer, SnapshotDiffer
7. SnapshotStore, LedgerWriter
8. FetchCycle
"""

import argparse
import asyncio
import sys
from typing import Any

import uvicorn

from folio.banking.powens_client import PowensClient
from folio.chain.evm_client import EvmChainClient
from folio.chain.types import ChainConfig, load_chain_configs
from folio.config import AppSettings
from folio.crypto.scanner import WalletScanner
from folio.data.database import RegistryDatabase
from folio.data.store import RegistryStore
from folio.discovery.balances import BalanceResolver
from folio.discovery.engine import TokenDiscoveryEngine
from folio.discovery.registry import TokenRegistry
from folio.exceptions import FolioError, PersistenceError, SourceUnavailableError
from folio.ledger.writer import LedgerWriter
from folio.logging import get_logger, setup_logging
from folio.market_data.price_cache import PriceCache
from folio.market_data.pricing import CoinGeckoPriceSource, PriceService
from folio.orchestrator import FetchCycle
from folio.portfolio.classifier import AssetClassifier
from folio.portfolio.differ import SnapshotDiffer
from folio.portfolio.normalizer import PositionNormalizer
from folio.portfolio.snapshot_store import SnapshotStore


def _build_components(settings: AppSettings, database: RegistryDatabase) -> dict[str, Any]:
    """Build every component of a fetch cycle from settings.

    Does NOT open network connections; clients connect lazily and are
    closed by _close_components.
    """
    wallets = settings.crypto.wallet_list
    chains: dict[str, ChainConfig] = {}
    if wallets:
        chains = load_chain_configs(settings.crypto.chains_file)
    clients = {
        name: EvmChainClient(config, timeout=settings.crypto.request_timeout)
        for name, config in chains.items()
    }

    price_cache = PriceCache(settings.discovery.cache_expiry_seconds)
    price_source = CoinGeckoPriceSource(timeout=settings.crypto.request_timeout)
    price_service = PriceService(price_cache, price_source, settings.crypto.request_timeout)

    registry_store = RegistryStore(database)
    registry = TokenRegistry(registry_store)

    engine = TokenDiscoveryEngine(
        clients, registry, price_source, settings.discovery, settings.crypto.request_timeout
    )
    resolver = BalanceResolver(clients, chains, price_service, settings.crypto.request_timeout)
    scanner = WalletScanner(
        chains,
        engine,
        resolver,
        registry,
        max_concurrency=settings.crypto.max_concurrent_scans,
    )

    banking = PowensClient(settings.banking)

    normalizer = PositionNormalizer(
        AssetClassifier.from_file(settings.storage.patterns_file),
        settings.crypto.min_position_value,
    )
    differ = SnapshotDiffer(settings.significance)
    snapshot_store = SnapshotStore(settings.storage.positions_file, settings.storage.history_dir)
    ledger = LedgerWriter(settings.storage.ledger_file)

    cycle = FetchCycle(
        banking=banking,
        normalizer=normalizer,
        differ=differ,
        snapshot_store=snapshot_store,
        ledger=ledger,
        scanner=scanner,
        wallets=wallets,
        chains=chains,
        registry=registry,
        price_cache=price_cache,
        registry_store=registry_store,
    )

    return {
        "clients": clients,
        "price_source": price_source,
        "banking": banking,
        "cycle": cycle,
    }


async def _close_components(components: dict[str, Any]) -> None:
    await components["banking"].close()
    await components["price_source"].close()
    for client in components["clients"].values():
        await client.close()


async def fetch(settings: AppSettings) -> int:
    logger = get_logger("folio.main")
    try:
        async with RegistryDatabase(settings.discovery.registry_db_path) as database:
            components = _build_components(settings, database)
            try:
                result = await components["cycle"].run()
            finally:
                await _close_components(components)
    except FolioError as e:
        logger.error("fetch_aborted", error=str(e))
        return 1

    if not result.success:
        logger.error("fetch_failed", error=result.error)
        return 1
    return 0


async def status(settings: AppSettings) -> int:
    store = SnapshotStore(settings.storage.positions_file, settings.storage.history_dir)
    try:
        snapshot = await store.load_previous()
    except PersistenceError as e:
        get_logger("folio.main").error("status_failed", error=str(e))
        return 1

    if not snapshot.last_updated:
        print("No snapshot recorded yet")
        return 0
    print(f"Last updated:   {snapshot.last_updated}")
    print(f"Net worth:      {snapshot.total_net_worth:,.2f}")
    print(f"Positions:      {snapshot.position_count}")
    for category, positions in snapshot.positions.items():
        if positions:
            print(f"  {category:<16}{len(positions)}")
    return 0


async def test_connection(settings: AppSettings) -> int:
    logger = get_logger("folio.main")
    client = PowensClient(settings.banking)
    try:
        await client.authenticate()
    except SourceUnavailableError as e:
        logger.error("connection_test_failed", reason=e.reason)
        print(f"Connection failed: {e.reason}")
        return 1
    finally:
        await client.close()
    print("Connection successful")
    return 0


async def serve(settings: AppSettings) -> int:
    from folio.api.app import create_app

    logger = get_logger("folio.main")
    app = create_app(settings)
    logger.info("starting_api", host=settings.api.host, port=settings.api.port)
    config = uvicorn.Config(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    await uvicorn.Server(config).serve()
    return 0


_ACTIONS = {
    "fetch": fetch,
    "status": status,
    "test-connection": test_connection,
    "test_connection": test_connection,
    "serve": serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="folio",
        description="Reconcile banking and on-chain positions into an audited snapshot.",
    )
    parser.add_argument("action", choices=sorted(_ACTIONS))
    return parser


def main(argv: list[str] | None = None) -> None:
    """Synchronous entry point."""
    args = build_parser().parse_args(argv)

    settings = AppSettings()
    setup_logging(settings.log_level)

    sys.exit(asyncio.run(_ACTIONS[args.action](settings)))


if __name__ == "__main__":
    main()
