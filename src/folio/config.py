"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BankingSettings(BaseSettings):
    """Banking aggregation provider (Powens) connection settings."""

    model_config = SettingsConfigDict(env_prefix="BANKING_", env_file=".env", extra="ignore")

    domain: str = ""
    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    user_id: str = ""
    request_timeout: float = 30.0

    def missing_fields(self) -> list[str]:
        """Return the names of required credentials that are not configured."""
        values = {
            "domain": self.domain,
            "client_id": self.client_id,
            "client_secret": self.client_secret.get_secret_value(),
            "user_id": self.user_id,
        }
        return [name for name, value in values.items() if not value]


class CryptoSettings(BaseSettings):
    """Wallets to scan and chain definitions."""

    model_config = SettingsConfigDict(env_prefix="CRYPTO_", env_file=".env", extra="ignore")

    wallets: str = ""  # comma-separated addresses
    chains_file: str = "config/chains.json"
    min_position_value: Decimal = Decimal("100")
    request_timeout: float = 10.0
    max_concurrent_scans: int = 4

    @property
    def wallet_list(self) -> list[str]:
        return [w.strip() for w in self.wallets.split(",") if w.strip()]


class DiscoverySettings(BaseSettings):
    """Token discovery and price cache parameters."""

    model_config = SettingsConfigDict(env_prefix="DISCOVERY_", env_file=".env", extra="ignore")

    enabled: bool = True
    scan_depth: int = 100  # most recent transfer events per wallet/chain
    cache_expiry_hours: float = 1.0
    registry_db_path: str = "data/registry.db"

    @property
    def cache_expiry_seconds(self) -> float:
        return self.cache_expiry_hours * 3600


class SignificanceSettings(BaseSettings):
    """Thresholds deciding whether a value change is audit-worthy.

    Either threshold suffices: a change is significant when the percent move
    OR the absolute currency move reaches its threshold.
    """

    model_config = SettingsConfigDict(env_prefix="SIGNIFICANCE_", env_file=".env", extra="ignore")

    percent_threshold: Decimal = Decimal("5.0")
    value_threshold: Decimal = Decimal("1000.0")


class StorageSettings(BaseSettings):
    """Locations of the persisted snapshot, ledger and pattern files."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", env_file=".env", extra="ignore")

    positions_file: str = "data/positions.json"
    ledger_file: str = "data/ledger.json"
    history_dir: str = "data/positions_history"
    patterns_file: str = "config/asset-patterns.json"


class ApiSettings(BaseSettings):
    """Read-only status API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_", env_file=".env", extra="ignore")

    host: str = "127.0.0.1"
    port: int = 8080


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"
    banking: BankingSettings = BankingSettings()
    crypto: CryptoSettings = CryptoSettings()
    discovery: DiscoverySettings = DiscoverySettings()
    significance: SignificanceSettings = SignificanceSettings()
    storage: StorageSettings = StorageSettings()
    api: ApiSettings = ApiSettings()
