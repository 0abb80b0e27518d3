"""Raw banking records as delivered by the aggregation provider.

Parsers raise DataShapeError for records missing a field the normalizer
cannot do without; the normalizer logs and skips them.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from folio.exceptions import DataShapeError
from folio.models import to_decimal

# Provider pseudo-instrument for the cash leg of an investment account.
LIQUIDITY_CODE = "XX-liquidity"


@dataclass(frozen=True)
class RawAccount:
    """One account as reported by the provider (possibly a duplicate view)."""

    id: str
    balance: Decimal
    name: str = ""
    account_type: str = ""
    iban: str | None = None
    number: str | None = None
    webid: str | None = None
    currency: str = "EUR"
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def dedup_key(self) -> str:
        """Identity of the underlying account, first available wins:
        IBAN, then provider account number / web id, then name + type.
        """
        if self.iban:
            return self.iban
        if self.number or self.webid:
            return str(self.number or self.webid)
        return f"{self.name}-{self.account_type}"


@dataclass(frozen=True)
class RawInstrument:
    """One instrument row owned by an account."""

    account_id: str
    code: str
    code_type: str
    symbol: str
    label: str
    quantity: Decimal
    unit_value: Decimal  # current unit price
    unit_price: Decimal  # purchase unit price
    valuation: Decimal
    diff: Decimal
    vdate: str | None = None

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.unit_price

    @property
    def is_tracked(self) -> bool:
        """ISIN-coded, not the cash pseudo-instrument, and worth something."""
        return (
            self.code_type == "ISIN"
            and self.code != LIQUIDITY_CODE
            and self.valuation > 0
        )


def _optional_str(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


def parse_account(data: Mapping[str, Any]) -> RawAccount:
    """Build a RawAccount from a provider account dict."""
    if data.get("id") is None:
        raise DataShapeError(f"account without id: {data.get('original_name')!r}")
    currency = data.get("currency")
    if isinstance(currency, Mapping):
        currency = currency.get("id")
    return RawAccount(
        id=str(data["id"]),
        balance=to_decimal(data.get("balance")),
        name=str(data.get("original_name") or data.get("name") or ""),
        account_type=str(data.get("id_type") or data.get("type") or ""),
        iban=_optional_str(data.get("iban")),
        number=_optional_str(data.get("number")),
        webid=_optional_str(data.get("webid")),
        currency=str(currency or "EUR"),
        raw=dict(data),
    )


def parse_instrument(data: Mapping[str, Any]) -> RawInstrument:
    """Build a RawInstrument from a provider investment dict."""
    if data.get("id_account") is None:
        raise DataShapeError(f"instrument without owning account: {data.get('label')!r}")
    code = _optional_str(data.get("code"))
    if code is None:
        raise DataShapeError(f"instrument without identifier: {data.get('label')!r}")
    return RawInstrument(
        account_id=str(data["id_account"]),
        code=code,
        code_type=str(data.get("code_type") or ""),
        symbol=str(data.get("stock_symbol") or code),
        label=str(data.get("label") or ""),
        quantity=to_decimal(data.get("quantity")),
        unit_value=to_decimal(data.get("unitvalue")),
        unit_price=to_decimal(data.get("unitprice")),
        valuation=to_decimal(data.get("valuation")),
        diff=to_decimal(data.get("diff")),
        vdate=_optional_str(data.get("vdate")),
    )
