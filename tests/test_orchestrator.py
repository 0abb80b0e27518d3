"""Tests for the fetch cycle.

Tests verify:
- First run: every position is opened, ledger gets change + summary entries
- Second run diffs against the committed snapshot
- Unreachable banking source: failure entry only, snapshot untouched
- Empty investment list is treated as an unavailable source
- Crypto balances are merged into the snapshot and net worth
- Unwritable ledger: failed result, previous snapshot stays authoritative
- Registry and price cache are loaded before and flushed after each cycle
- Cycle lock prevents overlapping cycles
- A malformed banking response fails the cycle with a failure entry
"""

import asyncio
import json
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from folio.banking.client import BankingClient
from folio.banking.powens_client import PowensClient
from folio.config import BankingSettings
from folio.crypto.scanner import WalletScanResult, WalletScanner
from folio.exceptions import PersistenceError, SourceUnavailableError
from folio.ledger.writer import LedgerWriter
from folio.models import BalanceRecord
from folio.orchestrator import FetchCycle
from folio.portfolio.classifier import AssetClassifier
from folio.portfolio.differ import SnapshotDiffer
from folio.portfolio.normalizer import PositionNormalizer
from folio.portfolio.snapshot_store import SnapshotStore

WALLET = "0x1234567890abcdef1234567890abcdef12345678"

ACCOUNTS = [
    {"id": 1, "balance": "12000", "original_name": "PEA", "type": "market", "iban": "FR761"},
    {"id": 2, "balance": "3000", "original_name": "CTO", "type": "market", "iban": "FR762"},
]


def _instrument(account_id: int, symbol: str, quantity: str, valuation: str) -> dict:
    return {
        "id_account": account_id,
        "code": f"US{symbol:0>10}",
        "code_type": "ISIN",
        "stock_symbol": symbol,
        "label": f"{symbol} Inc",
        "quantity": quantity,
        "unitvalue": str(Decimal(valuation) / Decimal(quantity)),
        "unitprice": "0",
        "valuation": valuation,
        "diff": "0",
    }


def _banking(investments: list[dict]) -> AsyncMock:
    client = AsyncMock(spec=BankingClient)
    client.fetch_accounts.return_value = ACCOUNTS
    client.fetch_investments.return_value = investments
    return client


def _cycle(tmp_path: Path, banking: AsyncMock, **kwargs: object) -> FetchCycle:
    return FetchCycle(
        banking=banking,
        normalizer=PositionNormalizer(AssetClassifier()),
        differ=SnapshotDiffer(),
        snapshot_store=SnapshotStore(tmp_path / "positions.json", tmp_path / "history"),
        ledger=LedgerWriter(tmp_path / "ledger.json"),
        **kwargs,
    )


def _ledger(tmp_path: Path) -> list[dict]:
    return json.loads((tmp_path / "ledger.json").read_text())["entries"]


class TestSuccessfulCycle:
    @pytest.mark.asyncio
    async def test_first_run_opens_every_position(self, tmp_path: Path) -> None:
        banking = _banking([_instrument(1, "AAPL", "10", "1000"), _instrument(2, "MSFT", "5", "900")])
        cycle = _cycle(tmp_path, banking)

        result = await cycle.run()

        assert result.success is True
        assert result.snapshot is not None
        assert result.snapshot.total_net_worth == Decimal("15000")
        assert sorted(c.symbol for c in result.significant_changes) == ["AAPL", "MSFT"]

        entries = _ledger(tmp_path)
        assert [e["change_type"] for e in entries[:-1]] == ["new_position", "new_position"]
        summary = entries[-1]
        assert summary["status"] == "completed"
        assert summary["summary"]["newPositions"] == 2
        assert summary["summary"]["changeFromLastRun"] == "15000"

        saved = json.loads((tmp_path / "positions.json").read_text())
        assert saved["totalNetWorth"] == "15000"
        assert len(list((tmp_path / "history").iterdir())) == 1
        banking.authenticate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_run_diffs_against_committed_snapshot(self, tmp_path: Path) -> None:
        banking = _banking([_instrument(1, "AAPL", "10", "1000")])
        cycle = _cycle(tmp_path, banking)
        await cycle.run()

        banking.fetch_investments.return_value = [_instrument(1, "AAPL", "10", "1200")]
        result = await cycle.run()

        assert result.success is True
        assert len(result.changes) == 1
        change = result.changes[0]
        assert change.change_type.value == "value_change"
        assert change.percent_change == Decimal("20")

        entries = _ledger(tmp_path)
        assert entries[-2]["change_type"] == "value_change"
        assert entries[-2]["phase"] == "price_update"
        assert entries[-1]["summary"]["significantMovements"] == 1

    @pytest.mark.asyncio
    async def test_unchanged_run_writes_summary_only(self, tmp_path: Path) -> None:
        banking = _banking([_instrument(1, "AAPL", "10", "1000")])
        cycle = _cycle(tmp_path, banking)
        await cycle.run()
        before = len(_ledger(tmp_path))

        result = await cycle.run()

        assert result.changes == []
        entries = _ledger(tmp_path)
        assert len(entries) == before + 1
        assert entries[-1]["summary"]["changeFromLastRun"] == "0"

    @pytest.mark.asyncio
    async def test_crypto_balances_join_snapshot(self, tmp_path: Path) -> None:
        scanner = AsyncMock(spec=WalletScanner)
        scanner.scan_all.return_value = [
            WalletScanResult(
                wallet=WALLET,
                chain="ethereum",
                balances=[
                    BalanceRecord(
                        symbol="ETH",
                        name="Ether",
                        chain="ethereum",
                        wallet=WALLET,
                        balance=Decimal("1.5"),
                        decimals=18,
                        price=Decimal("2000"),
                        value=Decimal("3000"),
                    )
                ],
            )
        ]
        cycle = _cycle(
            tmp_path,
            _banking([_instrument(1, "AAPL", "10", "1000")]),
            scanner=scanner,
            wallets=[WALLET],
        )

        result = await cycle.run()

        assert result.snapshot is not None
        crypto = result.snapshot.positions["crypto"]
        assert [p.symbol for p in crypto] == ["ETH"]
        assert result.snapshot.total_net_worth == Decimal("18000")
        scanner.scan_all.assert_awaited_once_with([WALLET])


class TestFailedCycle:
    @pytest.mark.asyncio
    async def test_banking_unavailable_keeps_snapshot(self, tmp_path: Path) -> None:
        banking = _banking([_instrument(1, "AAPL", "10", "1000")])
        cycle = _cycle(tmp_path, banking)
        await cycle.run()
        committed = (tmp_path / "positions.json").read_text()

        banking.fetch_investments.side_effect = SourceUnavailableError("banking", "timeout")
        result = await cycle.run()

        assert result.success is False
        assert "timeout" in (result.error or "")
        assert (tmp_path / "positions.json").read_text() == committed
        last = _ledger(tmp_path)[-1]
        assert last["status"] == "failed"
        assert last["errors"] == ["banking unavailable: timeout"]

    @pytest.mark.asyncio
    async def test_empty_investments_is_source_failure(self, tmp_path: Path) -> None:
        cycle = _cycle(tmp_path, _banking([]))

        result = await cycle.run()

        assert result.success is False
        assert not (tmp_path / "positions.json").exists()
        assert _ledger(tmp_path)[-1]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_chain_unreachable_aborts(self, tmp_path: Path) -> None:
        scanner = AsyncMock(spec=WalletScanner)
        scanner.scan_all.side_effect = SourceUnavailableError("polygon", "rpc down")
        cycle = _cycle(
            tmp_path,
            _banking([_instrument(1, "AAPL", "10", "1000")]),
            scanner=scanner,
            wallets=[WALLET],
        )

        result = await cycle.run()

        assert result.success is False
        assert not (tmp_path / "positions.json").exists()

    @pytest.mark.asyncio
    async def test_ledger_failure_leaves_snapshot(self, tmp_path: Path) -> None:
        ledger = AsyncMock(spec=LedgerWriter)
        ledger.append.side_effect = PersistenceError("disk full")
        cycle = FetchCycle(
            banking=_banking([_instrument(1, "AAPL", "10", "1000")]),
            normalizer=PositionNormalizer(),
            differ=SnapshotDiffer(),
            snapshot_store=SnapshotStore(tmp_path / "positions.json", tmp_path / "history"),
            ledger=ledger,
        )

        result = await cycle.run()

        assert result.success is False
        assert result.error == "disk full"
        assert not (tmp_path / "positions.json").exists()

    @pytest.mark.asyncio
    async def test_corrupt_previous_snapshot_fails(self, tmp_path: Path) -> None:
        (tmp_path / "positions.json").write_text("{not json")
        banking = _banking([_instrument(1, "AAPL", "10", "1000")])

        result = await _cycle(tmp_path, banking).run()

        assert result.success is False
        banking.authenticate.assert_not_awaited()
        assert (tmp_path / "positions.json").read_text() == "{not json"


class TestSharedState:
    @pytest.mark.asyncio
    async def test_registry_loaded_and_flushed(self, tmp_path: Path) -> None:
        registry = AsyncMock()
        price_cache = AsyncMock()
        price_cache.entries.return_value = []
        registry_store = AsyncMock()
        registry_store.get_prices.return_value = []
        chains = {"ethereum": MagicMock()}
        cycle = _cycle(
            tmp_path,
            _banking([_instrument(1, "AAPL", "10", "1000")]),
            chains=chains,
            registry=registry,
            price_cache=price_cache,
            registry_store=registry_store,
        )

        await cycle.run()

        registry.load.assert_awaited_once()
        registry.seed_known_tokens.assert_awaited_once_with(chains)
        price_cache.load.assert_awaited_once_with([])
        registry.flush.assert_awaited_once()
        registry_store.save_prices.assert_awaited_once_with([])

    @pytest.mark.asyncio
    async def test_flush_runs_after_failed_cycle(self, tmp_path: Path) -> None:
        registry = AsyncMock()
        cycle = _cycle(tmp_path, _banking([]), registry=registry)

        await cycle.run()

        registry.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_flush_failure_is_not_fatal(self, tmp_path: Path) -> None:
        registry = AsyncMock()
        registry.flush.side_effect = RuntimeError("registry store not connected")
        cycle = _cycle(tmp_path, _banking([_instrument(1, "AAPL", "10", "1000")]), registry=registry)

        result = await cycle.run()

        assert result.success is True


class TestCycleLock:
    @pytest.mark.asyncio
    async def test_cycles_do_not_overlap(self, tmp_path: Path) -> None:
        banking = _banking([_instrument(1, "AAPL", "10", "1000")])
        active = 0
        peak = 0

        async def slow_accounts() -> list[dict]:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return ACCOUNTS

        banking.fetch_accounts.side_effect = slow_accounts
        cycle = _cycle(tmp_path, banking)

        results = await asyncio.gather(cycle.run(), cycle.run())

        assert all(r.success for r in results)
        assert peak == 1


class TestMalformedBankingResponse:
    @pytest.mark.asyncio
    async def test_invalid_json_becomes_failed_cycle(self, tmp_path: Path) -> None:
        auth = MagicMock()
        auth.raise_for_status = MagicMock()
        auth.json = AsyncMock(return_value={"access_token": "tok"})
        broken = MagicMock()
        broken.raise_for_status = MagicMock()
        broken.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "{bad", 1))

        def _request(response: MagicMock) -> MagicMock:
            request = MagicMock()
            request.__aenter__ = AsyncMock(return_value=response)
            request.__aexit__ = AsyncMock(return_value=False)
            return request

        session = MagicMock()
        session.closed = False
        session.post = MagicMock(return_value=_request(auth))
        session.get = MagicMock(side_effect=lambda *a, **kw: _request(broken))
        banking = PowensClient(
            BankingSettings(domain="bank.example", client_id="c", client_secret="s", user_id="42"),
            session=session,
        )

        result = await _cycle(tmp_path, banking).run()

        assert result.success is False
        last = _ledger(tmp_path)[-1]
        assert last["status"] == "failed"
        assert last["errors"][0].startswith("banking unavailable")
        assert not (tmp_path / "positions.json").exists()
