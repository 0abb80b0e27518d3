"""Shared data models for the reconciliation core.

CRITICAL: All monetary values use Decimal. Never use float for prices, quantities, or values.
Persisted documents carry Decimals as strings; readers accept strings or numbers.
"""

import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Snapshot partition order. Diffing never depends on it.
CATEGORIES: tuple[str, ...] = (
    "equities",
    "funds",
    "bonds",
    "cash",
    "private_equity",
    "private_debt",
    "real_estate",
    "crowdfunding",
    "crypto",
)

DEFAULT_CATEGORY = "equities"
CRYPTO_CATEGORY = "crypto"


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Convert a raw JSON/API value to Decimal, falling back to default."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal values to strings for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {k: decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [decimal_to_str(item) for item in obj]
    return obj


class ResolutionStatus(str, Enum):
    """Outcome of a lookup that may substitute defaults instead of failing."""

    RESOLVED = "resolved"
    DEFAULTED = "defaulted"
    FAILED = "failed"


@dataclass(frozen=True)
class Resolution(Generic[T]):
    """A looked-up value tagged with how it was obtained.

    DEFAULTED means at least one documented default was substituted;
    FAILED means nothing could be looked up and the value is entirely a default.
    """

    value: T
    status: ResolutionStatus
    issues: tuple[str, ...] = ()

    @property
    def is_resolved(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED

    @classmethod
    def resolved(cls, value: T) -> "Resolution[T]":
        return cls(value, ResolutionStatus.RESOLVED)

    @classmethod
    def defaulted(cls, value: T, *issues: str) -> "Resolution[T]":
        return cls(value, ResolutionStatus.DEFAULTED, tuple(issues))

    @classmethod
    def failed(cls, value: T, *issues: str) -> "Resolution[T]":
        return cls(value, ResolutionStatus.FAILED, tuple(issues))


@dataclass(frozen=True)
class Position:
    """Canonical, deduplicated holding of one symbol."""

    symbol: str
    name: str
    quantity: Decimal
    unit_price: Decimal
    market_value: Decimal
    cost_basis: Decimal
    unrealized_gain_loss: Decimal
    account: str  # comma-joined when consolidated from several accounts
    currency: str = "EUR"
    asset_class: str = DEFAULT_CATEGORY
    instrument_id: str | None = None  # ISIN or contract address
    last_updated: str | None = None
    chain: str | None = None
    wallet: str | None = None

    @property
    def key(self) -> str:
        """Diff key: the symbol, or the instrument identifier when no symbol exists.

        Wallet holdings are keyed ``crypto:{symbol}`` so a token never shares a
        key with a banking instrument listed under the same ticker.
        """
        base = self.symbol or self.instrument_id or ""
        if base and self.asset_class == CRYPTO_CATEGORY:
            return f"{CRYPTO_CATEGORY}:{base}"
        return base

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "symbol": self.symbol,
            "name": self.name,
            "shares": str(self.quantity),
            "currentPrice": str(self.unit_price),
            "marketValue": str(self.market_value),
            "costBasis": str(self.cost_basis),
            "unrealizedGainLoss": str(self.unrealized_gain_loss),
            "account": self.account,
            "currency": self.currency,
            "assetClass": self.asset_class,
        }
        optional = {
            "instrumentId": self.instrument_id,
            "lastUpdated": self.last_updated,
            "chain": self.chain,
            "wallet": self.wallet,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], category: str = DEFAULT_CATEGORY) -> "Position":
        return cls(
            symbol=str(data.get("symbol") or ""),
            name=str(data.get("name") or ""),
            quantity=to_decimal(data.get("shares", data.get("balance"))),
            unit_price=to_decimal(data.get("currentPrice")),
            market_value=to_decimal(data.get("marketValue")),
            cost_basis=to_decimal(data.get("costBasis")),
            unrealized_gain_loss=to_decimal(data.get("unrealizedGainLoss")),
            account=str(data.get("account") or ""),
            currency=str(data.get("currency") or "EUR"),
            asset_class=str(data.get("assetClass") or category),
            instrument_id=data.get("instrumentId") or data.get("isin") or data.get("contractAddress"),
            last_updated=data.get("lastUpdated"),
            chain=data.get("chain"),
            wallet=data.get("wallet"),
        )


@dataclass(frozen=True)
class Snapshot:
    """Immutable, timestamped set of canonical positions partitioned by category."""

    last_updated: str
    total_net_worth: Decimal
    positions: Mapping[str, tuple[Position, ...]]
    accounts: tuple[Mapping[str, Any], ...] = ()

    def __post_init__(self) -> None:
        frozen = {cat: tuple(self.positions.get(cat, ())) for cat in CATEGORIES}
        for cat, items in self.positions.items():
            if cat not in frozen:
                frozen[cat] = tuple(items)
        object.__setattr__(self, "positions", MappingProxyType(frozen))
        object.__setattr__(self, "accounts", tuple(self.accounts))

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls(last_updated="", total_net_worth=Decimal("0"), positions={})

    def all_positions(self) -> Iterator[Position]:
        for items in self.positions.values():
            yield from items

    @property
    def position_count(self) -> int:
        return sum(len(items) for items in self.positions.values())

    def by_key(self) -> dict[str, Position]:
        """Flatten to a key -> Position map, independent of category layout."""
        result: dict[str, Position] = {}
        for position in self.all_positions():
            if position.key:
                result[position.key] = position
        return result

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastUpdated": self.last_updated,
            "totalNetWorth": str(self.total_net_worth),
            "accounts": [decimal_to_str(dict(a)) for a in self.accounts],
            "positions": {
                cat: [p.to_dict() for p in items] for cat, items in self.positions.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Snapshot":
        raw_positions = data.get("positions") or {}
        positions = {
            cat: tuple(Position.from_dict(p, category=cat) for p in (items or []))
            for cat, items in raw_positions.items()
        }
        return cls(
            last_updated=str(data.get("lastUpdated") or ""),
            total_net_worth=to_decimal(data.get("totalNetWorth")),
            positions=positions,
            accounts=tuple(data.get("accounts") or ()),
        )


class ChangeType(str, Enum):
    """Kinds of difference between two snapshots."""

    OPENED = "opened"
    CLOSED = "closed"
    VALUE_CHANGE = "value_change"
    QUANTITY_CHANGE = "quantity_change"


@dataclass(frozen=True)
class Change:
    """One typed diff fact for a symbol."""

    change_type: ChangeType
    symbol: str
    old_value: Decimal | None = None
    new_value: Decimal | None = None
    old_quantity: Decimal | None = None
    new_quantity: Decimal | None = None
    percent_change: Decimal | None = None  # None when the old value is zero
    significant: bool = False

    @property
    def value_delta(self) -> Decimal:
        return (self.new_value or Decimal("0")) - (self.old_value or Decimal("0"))

    @property
    def quantity_delta(self) -> Decimal:
        return (self.new_quantity or Decimal("0")) - (self.old_quantity or Decimal("0"))

    def note(self) -> str:
        """Human-readable audit note."""
        if self.change_type is ChangeType.OPENED:
            return f"New position opened: {self.symbol}"
        if self.change_type is ChangeType.CLOSED:
            return f"Position closed: {self.symbol}"
        if self.change_type is ChangeType.VALUE_CHANGE:
            if self.percent_change is None:
                return f"{self.symbol}: value {self.old_value} -> {self.new_value}"
            return f"{self.symbol}: {self.percent_change:.1f}% change"
        return f"{self.symbol}: quantity {self.old_quantity} -> {self.new_quantity}"


@dataclass
class LedgerEntry:
    """Append-only audit record."""

    id: str
    timestamp: str
    phase: str
    status: str
    duration: float = 0.0
    errors: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)
    notes: str = ""
    symbol: str | None = None
    change_type: str | None = None
    value: Decimal | None = None
    shares: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "duration": self.duration,
            "phase": self.phase,
            "status": self.status,
            "errors": list(self.errors),
            "summary": decimal_to_str(self.summary),
            "notes": self.notes,
        }
        if self.symbol is not None:
            data["symbol"] = self.symbol
            data["change_type"] = self.change_type
            data["value"] = None if self.value is None else str(self.value)
            data["shares"] = None if self.shares is None else str(self.shares)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LedgerEntry":
        value = data.get("value")
        shares = data.get("shares")
        return cls(
            id=str(data.get("id", "")),
            timestamp=str(data.get("timestamp", "")),
            phase=str(data.get("phase", "")),
            status=str(data.get("status", "")),
            duration=float(data.get("duration") or 0),
            errors=list(data.get("errors") or []),
            summary=dict(data.get("summary") or {}),
            notes=str(data.get("notes") or ""),
            symbol=data.get("symbol"),
            change_type=data.get("change_type"),
            value=None if value is None else to_decimal(value),
            shares=None if shares is None else to_decimal(shares),
        )


@dataclass(frozen=True)
class TokenMetadata:
    """Verified or inferred metadata for one (chain, contract address).

    Frozen so a registry reader always sees a whole record.
    """

    chain: str
    address: str  # lower-cased
    symbol: str
    name: str
    decimals: int
    asset_class: str = "utility"
    pricing_id: str | None = None
    verified: bool = False
    discovered_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class CachedPrice:
    """Last known unit price for an asset identifier."""

    identifier: str
    price: Decimal
    timestamp: float
    source: str


@dataclass
class DiscoveredToken:
    """A contract address seen in a wallet's transfer history."""

    address: str
    chain: str
    first_seen: int  # unix seconds
    last_seen: int
    transfer_count: int = 1


@dataclass(frozen=True)
class BalanceRecord:
    """Balance of one token (or the native currency) held by a wallet on a chain."""

    symbol: str
    name: str
    chain: str
    wallet: str
    balance: Decimal
    decimals: int
    price: Decimal
    value: Decimal
    contract_address: str | None = None  # None for the native currency
    price_status: ResolutionStatus = ResolutionStatus.RESOLVED


@dataclass
class CycleResult:
    """Outcome of one fetch cycle."""

    success: bool
    snapshot: Snapshot | None = None
    changes: list[Change] = field(default_factory=list)
    significant_changes: list[Change] = field(default_factory=list)
    error: str | None = None
