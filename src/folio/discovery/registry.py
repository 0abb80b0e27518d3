"""Token registry: shared (chain, address) -> TokenMetadata map.

In-memory for the duration of a cycle, loaded from and flushed to the
RegistryStore. Records are frozen and swapped whole under an asyncio.Lock.
Upserts follow the upgrade-only rule: an unverified record never replaces
a verified one, and the original discovery time is preserved.
"""

import asyncio
import dataclasses

from folio.chain.types import ChainConfig
from folio.data.store import RegistryStore
from folio.discovery.classifier import classify_token
from folio.logging import get_logger
from folio.models import TokenMetadata

logger = get_logger(__name__)


def _key(chain: str, address: str) -> tuple[str, str]:
    return chain, address.lower()


class TokenRegistry:
    """Durable cache of token metadata shared by all discovery tasks."""

    def __init__(self, store: RegistryStore | None = None) -> None:
        self._store = store
        self._tokens: dict[tuple[str, str], TokenMetadata] = {}
        self._dirty: set[tuple[str, str]] = set()
        self._lock = asyncio.Lock()

    async def load(self) -> int:
        """Load every persisted record into memory."""
        if self._store is None:
            return 0
        tokens = await self._store.get_tokens()
        async with self._lock:
            for token in tokens:
                self._tokens[_key(token.chain, token.address)] = token
        logger.info("token_registry_loaded", count=len(tokens))
        return len(tokens)

    async def get(self, chain: str, address: str) -> TokenMetadata | None:
        async with self._lock:
            return self._tokens.get(_key(chain, address))

    async def contains(self, chain: str, address: str) -> bool:
        """Exact, case-insensitive address match on the given chain."""
        async with self._lock:
            return _key(chain, address) in self._tokens

    async def tokens_for_chain(self, chain: str) -> list[TokenMetadata]:
        async with self._lock:
            return [t for (c, _), t in self._tokens.items() if c == chain]

    async def all_tokens(self) -> list[TokenMetadata]:
        async with self._lock:
            return list(self._tokens.values())

    async def upsert(self, metadata: TokenMetadata) -> TokenMetadata:
        """Insert or upgrade a record; return the record now stored.

        Never downgrades verified -> unverified.
        """
        metadata = dataclasses.replace(metadata, address=metadata.address.lower())
        key = _key(metadata.chain, metadata.address)
        async with self._lock:
            existing = self._tokens.get(key)
            if existing is not None:
                if existing.verified and not metadata.verified:
                    return existing
                metadata = dataclasses.replace(
                    metadata, discovered_at=existing.discovered_at
                )
            self._tokens[key] = metadata
            self._dirty.add(key)
        return metadata

    async def seed_known_tokens(self, chains: dict[str, ChainConfig]) -> int:
        """Register configured known tokens as verified records."""
        seeded = 0
        for chain in chains.values():
            for token in chain.known_tokens:
                await self.upsert(
                    TokenMetadata(
                        chain=chain.name,
                        address=token.address,
                        symbol=token.symbol,
                        name=token.name,
                        decimals=token.decimals,
                        asset_class=classify_token(token.symbol, token.name),
                        pricing_id=token.pricing_id,
                        verified=True,
                    )
                )
                seeded += 1
        return seeded

    async def flush(self) -> int:
        """Persist records changed since the last flush."""
        if self._store is None:
            return 0
        async with self._lock:
            pending = [self._tokens[k] for k in self._dirty]
            self._dirty.clear()
        if not pending:
            return 0
        try:
            await self._store.upsert_tokens(pending)
        except Exception:
            async with self._lock:
                self._dirty.update(_key(t.chain, t.address) for t in pending)
            raise
        logger.info("token_registry_flushed", count=len(pending))
        return len(pending)
