"""Async SQLite database manager for the token registry and price cache.

Uses aiosqlite for non-blocking database operations with WAL mode
so the status API can read while a fetch cycle flushes. A file written
by a different schema version is refused rather than migrated.
"""

from pathlib import Path
from typing import Self

import aiosqlite

from folio.exceptions import PersistenceError
from folio.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS token_registry (
    chain TEXT NOT NULL,
    address TEXT NOT NULL,
    symbol TEXT NOT NULL,
    name TEXT NOT NULL,
    decimals INTEGER NOT NULL,
    asset_class TEXT NOT NULL,
    pricing_id TEXT,
    verified INTEGER NOT NULL DEFAULT 0,
    discovered_at REAL NOT NULL,
    PRIMARY KEY (chain, address)
);

CREATE TABLE IF NOT EXISTS price_cache (
    identifier TEXT PRIMARY KEY,
    price TEXT NOT NULL,
    timestamp REAL NOT NULL,
    source TEXT NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_token_registry_chain
    ON token_registry(chain);
"""


class RegistryDatabase:
    """Connection owner for the registry file.

    Usage:
        async with RegistryDatabase("data/registry.db") as db:
            store = RegistryStore(db)
            tokens = await store.get_tokens()
    """

    def __init__(self, db_path: str | Path = "data/registry.db", busy_timeout_ms: int = 5000) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout_ms = busy_timeout_ms
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """The open aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Registry database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the file, set pragmas, create the schema and check its version.

        Raises:
            PersistenceError: the file cannot be opened or has another schema version.
        """
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._db_path)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")
            await self._connection.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
            await self._connection.executescript(_CREATE_TABLES_SQL)
            await self._connection.executescript(_CREATE_INDEXES_SQL)
            await self._connection.commit()
            version = await self._schema_version()
        except (OSError, aiosqlite.Error) as e:
            await self.close()
            raise PersistenceError(f"cannot open registry {self._db_path}: {e}") from e

        if version != SCHEMA_VERSION:
            await self.close()
            raise PersistenceError(
                f"registry {self._db_path} has schema version {version}, expected {SCHEMA_VERSION}"
            )
        logger.info("registry_db_connected", db_path=str(self._db_path))

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("registry_db_closed", db_path=str(self._db_path))

    async def _schema_version(self) -> int:
        assert self._connection is not None
        cursor = await self._connection.execute("SELECT version FROM schema_version LIMIT 1")
        row = await cursor.fetchone()
        if row is not None:
            return int(row[0])

        await self._connection.execute(
            "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
        )
        await self._connection.commit()
        logger.info("schema_version_set", version=SCHEMA_VERSION)
        return SCHEMA_VERSION

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
