"""Position normalization and deduplication.

Turns raw banking records and on-chain balances into one canonical
Position per symbol. Pure and synchronous: every input is already fetched.

Pipeline (banking side):
    1. Deduplicate accounts (IBAN, then provider number/web id, then
       name + type). Instruments owned by a dropped duplicate account are
       discarded with it.
    2. Keep tracked instruments only (ISIN-coded, non-cash, value > 0).
    3. Drop exact duplicate rows (same symbol, quantity, value, price).
    4. Merge rows sharing a symbol; unit price is recomputed as
       total value / total quantity.
    5. Classify each position into a category.

Net worth is the sum of deduplicated account balances (investment
valuations are already inside them) plus the crypto positions.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from folio.banking.records import RawAccount, RawInstrument, parse_account, parse_instrument
from folio.exceptions import DataShapeError
from folio.logging import get_logger
from folio.models import CRYPTO_CATEGORY, BalanceRecord, Position, Snapshot
from folio.portfolio.classifier import AssetClassifier

logger = get_logger(__name__)

CRYPTO_CURRENCY = "USD"


def wallet_label(chain: str, wallet: str) -> str:
    """Short account label for a wallet on a chain, e.g. ``ethereum-0x1234...abcd``."""
    return f"{chain}-{wallet[:6]}...{wallet[-4:]}"


def merge_positions(existing: Position, other: Position) -> Position:
    """Combine two rows of the same symbol into one position.

    Quantities, market values and cost bases are summed; the unit price is
    the ratio of the sums, never an average of the input prices.
    """
    quantity = existing.quantity + other.quantity
    market_value = existing.market_value + other.market_value
    cost_basis = existing.cost_basis + other.cost_basis
    unit_price = market_value / quantity if quantity > 0 else Decimal("0")
    return Position(
        symbol=existing.symbol,
        name=existing.name,
        quantity=quantity,
        unit_price=unit_price,
        market_value=market_value,
        cost_basis=cost_basis,
        unrealized_gain_loss=market_value - cost_basis,
        account=f"{existing.account},{other.account}",
        currency=existing.currency,
        asset_class=existing.asset_class,
        instrument_id=existing.instrument_id,
        last_updated=existing.last_updated,
        chain=existing.chain if existing.chain == other.chain else None,
        wallet=existing.wallet if existing.wallet == other.wallet else None,
    )


def merge_by_symbol(rows: Iterable[Position]) -> list[Position]:
    """Group rows by symbol key, merging each group, in first-seen order."""
    merged: dict[str, Position] = {}
    for row in rows:
        existing = merged.get(row.key)
        merged[row.key] = row if existing is None else merge_positions(existing, row)
    return list(merged.values())


class PositionNormalizer:
    """Builds canonical snapshots from raw source records.

    Args:
        classifier: Asset-class classifier for banking positions.
        min_position_value: Floor below which merged crypto positions are dropped.
    """

    def __init__(
        self,
        classifier: AssetClassifier | None = None,
        min_position_value: Decimal = Decimal("100"),
    ) -> None:
        self._classifier = classifier or AssetClassifier()
        self._min_position_value = min_position_value

    # ──────────────────────────────────────────────
    # Banking side
    # ──────────────────────────────────────────────

    def deduplicate_accounts(
        self, accounts: Iterable[RawAccount]
    ) -> tuple[list[RawAccount], set[str]]:
        """Collapse accounts reported under several views.

        Returns:
            (unique accounts in input order, ids of the surviving accounts).
        """
        unique: list[RawAccount] = []
        surviving_ids: set[str] = set()
        seen: dict[str, RawAccount] = {}
        total = 0

        for account in accounts:
            total += 1
            key = account.dedup_key
            first = seen.get(key)
            if first is not None:
                logger.info(
                    "duplicate_account_skipped",
                    account_id=account.id,
                    name=account.name,
                    balance=str(account.balance),
                    matches=first.id,
                    key=key,
                )
                continue
            seen[key] = account
            unique.append(account)
            surviving_ids.add(account.id)

        logger.info("accounts_deduplicated", before=total, after=len(unique))
        return unique, surviving_ids

    def filter_instruments(
        self, instruments: Iterable[RawInstrument], surviving_ids: set[str]
    ) -> list[Position]:
        """Keep tracked instruments of surviving accounts, as per-row positions."""
        rows: list[Position] = []
        for inst in instruments:
            if inst.account_id not in surviving_ids or not inst.is_tracked:
                continue
            rows.append(
                Position(
                    symbol=inst.symbol,
                    name=inst.label,
                    quantity=inst.quantity,
                    unit_price=inst.unit_value,
                    market_value=inst.valuation,
                    cost_basis=inst.cost_basis,
                    unrealized_gain_loss=inst.diff,
                    account=inst.account_id,
                    instrument_id=inst.code,
                    last_updated=inst.vdate,
                )
            )
        return rows

    def consolidate(self, rows: Iterable[Position]) -> list[Position]:
        """Drop exact duplicate rows, then merge rows sharing a symbol."""
        unique: list[Position] = []
        seen: set[tuple[str, Decimal, Decimal, Decimal]] = set()
        for row in rows:
            signature = (row.key, row.quantity, row.market_value, row.unit_price)
            if signature in seen:
                logger.info("duplicate_instrument_skipped", symbol=row.symbol, account=row.account)
                continue
            seen.add(signature)
            unique.append(row)
        return merge_by_symbol(unique)

    def classify(self, position: Position) -> Position:
        category = self._classifier.classify(position.name, position.instrument_id)
        if category == position.asset_class:
            return position
        return replace(position, asset_class=category)

    # ──────────────────────────────────────────────
    # Crypto side
    # ──────────────────────────────────────────────

    def build_crypto_positions(
        self, balances: Iterable[BalanceRecord], timestamp: str | None = None
    ) -> list[Position]:
        """Convert wallet balances to positions, merged by symbol, floor applied."""
        rows = [
            Position(
                symbol=b.symbol,
                name=b.name,
                quantity=b.balance,
                unit_price=b.price,
                market_value=b.value,
                cost_basis=b.value,
                unrealized_gain_loss=Decimal("0"),
                account=wallet_label(b.chain, b.wallet),
                currency=CRYPTO_CURRENCY,
                asset_class=CRYPTO_CATEGORY,
                instrument_id=b.contract_address,
                last_updated=timestamp,
                chain=b.chain,
                wallet=b.wallet,
            )
            for b in balances
        ]

        kept: list[Position] = []
        for position in merge_by_symbol(rows):
            if position.market_value > 0 and position.market_value >= self._min_position_value:
                kept.append(position)
            else:
                logger.debug(
                    "crypto_position_below_floor",
                    symbol=position.symbol,
                    value=str(position.market_value),
                )
        return kept

    # ──────────────────────────────────────────────
    # Assembly
    # ──────────────────────────────────────────────

    def build_snapshot(
        self,
        raw_accounts: Iterable[Mapping[str, Any]],
        raw_instruments: Iterable[Mapping[str, Any]],
        balances: Iterable[BalanceRecord] = (),
        timestamp: str | None = None,
    ) -> Snapshot:
        """Assemble a full snapshot from raw banking dicts and crypto balances.

        Malformed raw records are skipped with a warning.
        """
        timestamp = timestamp or datetime.now(UTC).isoformat()

        accounts = _parse_all(raw_accounts, parse_account, "account")
        instruments = _parse_all(raw_instruments, parse_instrument, "instrument")

        unique_accounts, surviving_ids = self.deduplicate_accounts(accounts)
        rows = self.filter_instruments(instruments, surviving_ids)
        banking = [self.classify(p) for p in self.consolidate(rows)]
        crypto = self.build_crypto_positions(balances, timestamp)

        positions: dict[str, list[Position]] = {}
        for position in banking:
            positions.setdefault(position.asset_class, []).append(position)
        positions[CRYPTO_CATEGORY] = crypto

        accounts_total = sum((a.balance for a in unique_accounts), Decimal("0"))
        crypto_total = sum((p.market_value for p in crypto), Decimal("0"))

        snapshot = Snapshot(
            last_updated=timestamp,
            total_net_worth=accounts_total + crypto_total,
            positions={cat: tuple(items) for cat, items in positions.items()},
            accounts=tuple(dict(a.raw) for a in unique_accounts),
        )
        logger.info(
            "snapshot_built",
            positions=snapshot.position_count,
            crypto_positions=len(crypto),
            accounts=len(unique_accounts),
            net_worth=str(snapshot.total_net_worth),
        )
        return snapshot


def _parse_all(
    raw: Iterable[Mapping[str, Any]], parser: Callable[[Mapping[str, Any]], Any], kind: str
) -> list:
    parsed = []
    for record in raw:
        try:
            parsed.append(parser(record))
        except DataShapeError as e:
            logger.warning("malformed_record_skipped", kind=kind, error=str(e))
    return parsed
