"""Tests for raw banking record parsing and account identity."""

from decimal import Decimal

import pytest

from folio.banking.records import parse_account, parse_instrument
from folio.exceptions import DataShapeError


class TestParseAccount:
    def test_iban_has_priority(self) -> None:
        account = parse_account({
            "id": 1,
            "balance": 1500.5,
            "iban": "FR7612345",
            "number": "000123",
            "original_name": "Compte courant",
            "type": "checking",
        })

        assert account.id == "1"
        assert account.balance == Decimal("1500.5")
        assert account.dedup_key == "FR7612345"

    def test_number_then_webid(self) -> None:
        assert parse_account({"id": 1, "number": "000123"}).dedup_key == "000123"
        assert parse_account({"id": 2, "webid": "w-9"}).dedup_key == "w-9"

    def test_name_and_type_fallback(self) -> None:
        account = parse_account({"id": 3, "original_name": "PEA", "id_type": 12, "type": "pea"})
        assert account.dedup_key == "PEA-12"

        account = parse_account({"id": 4, "original_name": "PEA", "type": "pea"})
        assert account.dedup_key == "PEA-pea"

    def test_currency_object(self) -> None:
        account = parse_account({"id": 5, "currency": {"id": "USD"}})
        assert account.currency == "USD"

    def test_missing_id_rejected(self) -> None:
        with pytest.raises(DataShapeError):
            parse_account({"balance": 10})


class TestParseInstrument:
    def test_fields(self) -> None:
        inst = parse_instrument({
            "id_account": 7,
            "code": "US0378331005",
            "code_type": "ISIN",
            "stock_symbol": "AAPL",
            "label": "Apple Inc",
            "quantity": 10,
            "unitvalue": 120,
            "unitprice": 100,
            "valuation": 1200,
            "diff": 200,
            "vdate": "2024-05-01",
        })

        assert inst.account_id == "7"
        assert inst.symbol == "AAPL"
        assert inst.cost_basis == Decimal("1000")
        assert inst.is_tracked is True

    def test_symbol_falls_back_to_code(self) -> None:
        inst = parse_instrument({"id_account": 1, "code": "FR0000120271", "code_type": "ISIN"})
        assert inst.symbol == "FR0000120271"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"valuation": 0},
            {"valuation": -5},
            {"code_type": "CUSIP"},
            {"code": "XX-liquidity"},
        ],
    )
    def test_untracked_rows(self, overrides: dict) -> None:
        data = {"id_account": 1, "code": "IE00B4L5Y983", "code_type": "ISIN", "valuation": 100}
        data.update(overrides)
        assert parse_instrument(data).is_tracked is False

    def test_missing_code_rejected(self) -> None:
        with pytest.raises(DataShapeError):
            parse_instrument({"id_account": 1, "label": "Mystery"})

    def test_missing_account_rejected(self) -> None:
        with pytest.raises(DataShapeError):
            parse_instrument({"code": "IE00B4L5Y983"})
