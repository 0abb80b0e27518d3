"""Typed SQLite read/write abstraction for token metadata and cached prices.

All SQL is isolated behind RegistryStore. Prices are stored as TEXT and
restored as Decimal on read.
"""

from decimal import Decimal

from folio.data.database import RegistryDatabase
from folio.logging import get_logger
from folio.models import CachedPrice, TokenMetadata

logger = get_logger(__name__)


class RegistryStore:
    """Async SQLite store for TokenMetadata and CachedPrice records."""

    def __init__(self, database: RegistryDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def upsert_tokens(self, tokens: list[TokenMetadata]) -> int:
        """Insert or replace token metadata rows keyed by (chain, address).

        The upgrade-only rule (verified is never replaced by unverified)
        is enforced in SQL as well, so a stale in-memory registry flushing
        late cannot downgrade a row written by another process.
        """
        if not tokens:
            return 0

        data = [
            (
                t.chain,
                t.address,
                t.symbol,
                t.name,
                t.decimals,
                t.asset_class,
                t.pricing_id,
                1 if t.verified else 0,
                t.discovered_at,
            )
            for t in tokens
        ]

        await self._database.db.executemany(
            "INSERT INTO token_registry "
            "(chain, address, symbol, name, decimals, asset_class, pricing_id, verified, discovered_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(chain, address) DO UPDATE SET "
            "symbol = excluded.symbol, name = excluded.name, decimals = excluded.decimals, "
            "asset_class = excluded.asset_class, pricing_id = excluded.pricing_id, "
            "verified = excluded.verified "
            "WHERE excluded.verified >= token_registry.verified",
            data,
        )
        await self._database.db.commit()
        logger.debug("tokens_flushed", count=len(tokens))
        return len(tokens)

    async def save_prices(self, prices: list[CachedPrice]) -> int:
        """Insert or replace cached prices, keeping the newest timestamp per identifier."""
        if not prices:
            return 0

        data = [(p.identifier, str(p.price), p.timestamp, p.source) for p in prices]
        await self._database.db.executemany(
            "INSERT INTO price_cache (identifier, price, timestamp, source) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(identifier) DO UPDATE SET "
            "price = excluded.price, timestamp = excluded.timestamp, source = excluded.source "
            "WHERE excluded.timestamp >= price_cache.timestamp",
            data,
        )
        await self._database.db.commit()
        logger.debug("prices_flushed", count=len(prices))
        return len(prices)

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get_tokens(self, chain: str | None = None) -> list[TokenMetadata]:
        """Return registry rows, optionally for one chain, ordered by discovery time."""
        query = (
            "SELECT chain, address, symbol, name, decimals, asset_class, pricing_id, "
            "verified, discovered_at FROM token_registry"
        )
        params: list = []
        if chain is not None:
            query += " WHERE chain = ?"
            params.append(chain)
        query += " ORDER BY discovered_at ASC"

        cursor = await self._database.db.execute(query, params)
        rows = await cursor.fetchall()
        return [
            TokenMetadata(
                chain=row[0],
                address=row[1],
                symbol=row[2],
                name=row[3],
                decimals=row[4],
                asset_class=row[5],
                pricing_id=row[6],
                verified=bool(row[7]),
                discovered_at=row[8],
            )
            for row in rows
        ]

    async def get_prices(self) -> list[CachedPrice]:
        cursor = await self._database.db.execute(
            "SELECT identifier, price, timestamp, source FROM price_cache"
        )
        rows = await cursor.fetchall()
        return [
            CachedPrice(
                identifier=row[0],
                price=Decimal(row[1]),
                timestamp=row[2],
                source=row[3],
            )
            for row in rows
        ]
