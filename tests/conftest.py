"""Shared test fixtures for the portfolio reconciler."""

from decimal import Decimal
from pathlib import Path

import pytest

from folio.config import (
    AppSettings,
    CryptoSettings,
    DiscoverySettings,
    SignificanceSettings,
    StorageSettings,
)


@pytest.fixture
def significance() -> SignificanceSettings:
    """Default thresholds: 5% or 1000 in absolute value."""
    return SignificanceSettings(
        percent_threshold=Decimal("5.0"),
        value_threshold=Decimal("1000"),
    )


@pytest.fixture
def discovery_settings() -> DiscoverySettings:
    return DiscoverySettings(enabled=True, scan_depth=100, cache_expiry_hours=1.0)


@pytest.fixture
def storage_settings(tmp_path: Path) -> StorageSettings:
    """Storage paths rooted in the test's temporary directory."""
    return StorageSettings(
        positions_file=str(tmp_path / "data" / "positions.json"),
        ledger_file=str(tmp_path / "data" / "ledger.json"),
        history_dir=str(tmp_path / "data" / "positions_history"),
        patterns_file=str(tmp_path / "config" / "asset-patterns.json"),
    )


@pytest.fixture
def mock_settings(
    tmp_path: Path,
    storage_settings: StorageSettings,
    significance: SignificanceSettings,
) -> AppSettings:
    """AppSettings with every file under tmp_path and no wallets."""
    return AppSettings(
        log_level="DEBUG",
        crypto=CryptoSettings(wallets="", min_position_value=Decimal("100")),
        discovery=DiscoverySettings(registry_db_path=str(tmp_path / "data" / "registry.db")),
        significance=significance,
        storage=storage_settings,
    )
