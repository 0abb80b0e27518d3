"""Token discovery -- finds contract addresses a wallet has touched that the
registry does not know yet, and resolves their metadata.

Discovery is a delta, not an inventory: addresses already in the
TokenRegistry are never returned. Every external call (explorer query,
contract read, symbol search) is bounded by a timeout and never retried
within the cycle; failures substitute documented defaults and are reported
through the returned Resolution instead of raising.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import TypeVar

from folio.chain.client import ChainClient
from folio.config import DiscoverySettings
from folio.discovery.classifier import classify_token
from folio.discovery.registry import TokenRegistry
from folio.logging import get_logger
from folio.market_data.pricing import PriceSource
from folio.models import DiscoveredToken, Resolution, ResolutionStatus, TokenMetadata

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_SYMBOL = "UNKNOWN"
DEFAULT_NAME = "Unknown Token"
DEFAULT_DECIMALS = 18


class TokenDiscoveryEngine:
    """Scans transfer history and resolves metadata for unregistered tokens.

    Args:
        clients: Chain name -> ChainClient.
        registry: Shared TokenRegistry (read for exclusion, written on resolve).
        price_source: Used for the symbol -> pricing identifier search.
        settings: Discovery toggle and scan depth.
        timeout: Upper bound for each external call, in seconds.
    """

    def __init__(
        self,
        clients: Mapping[str, ChainClient],
        registry: TokenRegistry,
        price_source: PriceSource,
        settings: DiscoverySettings,
        timeout: float = 10.0,
    ) -> None:
        self._clients = clients
        self._registry = registry
        self._price_source = price_source
        self._settings = settings
        self._timeout = timeout

    # ──────────────────────────────────────────────
    # Transfer history
    # ──────────────────────────────────────────────

    async def scan_transfers(self, wallet: str, chain: str) -> dict[str, DiscoveredToken]:
        """Return every contract address in the wallet's recent transfers.

        Keyed by lower-cased address. Bounded by settings.scan_depth events.
        Returns an empty map when discovery is disabled, the chain has no
        explorer, or the history query fails.
        """
        if not self._settings.enabled:
            return {}

        client = self._clients.get(chain)
        if client is None or not client.has_explorer:
            logger.debug("discovery_skipped_no_explorer", chain=chain)
            return {}

        try:
            events = await asyncio.wait_for(
                client.fetch_token_transfers(wallet, self._settings.scan_depth),
                self._timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "token_discovery_failed",
                chain=chain,
                wallet=wallet,
                error=str(e) or type(e).__name__,
            )
            return {}

        observed: dict[str, DiscoveredToken] = {}
        for event in events[: self._settings.scan_depth]:
            address = str(event.get("contractAddress") or "").lower()
            if not address:
                logger.debug("transfer_without_contract", chain=chain)
                continue
            try:
                seen_at = int(event.get("timeStamp") or 0)
            except (TypeError, ValueError):
                seen_at = 0

            token = observed.get(address)
            if token is None:
                observed[address] = DiscoveredToken(
                    address=address,
                    chain=chain,
                    first_seen=seen_at,
                    last_seen=seen_at,
                )
            else:
                token.transfer_count += 1
                token.first_seen = min(token.first_seen, seen_at)
                token.last_seen = max(token.last_seen, seen_at)

        logger.info(
            "transfers_scanned",
            chain=chain,
            wallet=wallet,
            events=len(events),
            unique_tokens=len(observed),
        )
        return observed

    async def filter_unregistered(
        self, chain: str, observed: Mapping[str, DiscoveredToken]
    ) -> list[DiscoveredToken]:
        """Drop addresses already present in the registry."""
        result = []
        for token in observed.values():
            if not await self._registry.contains(chain, token.address):
                result.append(token)
        return result

    async def discover(self, wallet: str, chain: str) -> list[DiscoveredToken]:
        """Return the wallet's recently used tokens that the registry lacks."""
        observed = await self.scan_transfers(wallet, chain)
        discovered = await self.filter_unregistered(chain, observed)
        if discovered:
            logger.info(
                "tokens_discovered",
                chain=chain,
                wallet=wallet,
                count=len(discovered),
            )
        return discovered

    # ──────────────────────────────────────────────
    # Metadata resolution
    # ──────────────────────────────────────────────

    async def _bounded(
        self,
        call: Callable[[], Awaitable[T]],
        default: T,
        label: str,
    ) -> tuple[T, str | None]:
        """Run one external call; on failure return the default and an issue."""
        try:
            return await asyncio.wait_for(call(), self._timeout), None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return default, f"{label}: {str(e) or type(e).__name__}"

    async def resolve_metadata(self, chain: str, address: str) -> Resolution[TokenMetadata]:
        """Resolve and register metadata for one contract address.

        symbol/name/decimals are read concurrently and fail independently
        (defaults: UNKNOWN, Unknown Token, 18). A pricing identifier found
        through the price source marks the token verified. The result is
        written to the registry whatever its status, so a failing contract
        is not re-queried every cycle.
        """
        address = address.lower()
        client = self._clients.get(chain)

        if client is None:
            symbol, name, decimals = DEFAULT_SYMBOL, DEFAULT_NAME, DEFAULT_DECIMALS
            issues = [f"no client for chain {chain}"]
            read_failures = 3
        else:
            (symbol, symbol_issue), (name, name_issue), (decimals, decimals_issue) = (
                await asyncio.gather(
                    self._bounded(lambda: client.read_symbol(address), DEFAULT_SYMBOL, "symbol"),
                    self._bounded(lambda: client.read_name(address), DEFAULT_NAME, "name"),
                    self._bounded(
                        lambda: client.read_decimals(address), DEFAULT_DECIMALS, "decimals"
                    ),
                )
            )
            issues = [i for i in (symbol_issue, name_issue, decimals_issue) if i]
            read_failures = len(issues)

        pricing_id: str | None = None
        if symbol != DEFAULT_SYMBOL:
            pricing_id, search_issue = await self._bounded(
                lambda: self._price_source.search_pricing_id(symbol), None, "pricing_id"
            )
            if search_issue:
                issues.append(search_issue)
            elif pricing_id is None:
                issues.append("pricing_id: no match")
        else:
            issues.append("pricing_id: skipped for unknown symbol")

        metadata = await self._registry.upsert(
            TokenMetadata(
                chain=chain,
                address=address,
                symbol=symbol,
                name=name,
                decimals=decimals,
                asset_class=classify_token(symbol, name),
                pricing_id=pricing_id,
                verified=pricing_id is not None,
            )
        )

        if read_failures == 3:
            status = ResolutionStatus.FAILED
        elif issues:
            status = ResolutionStatus.DEFAULTED
        else:
            status = ResolutionStatus.RESOLVED

        log = logger.info if status is ResolutionStatus.RESOLVED else logger.warning
        log(
            "token_resolved",
            chain=chain,
            address=address,
            symbol=metadata.symbol,
            verified=metadata.verified,
            status=status.value,
            issues=issues or None,
        )
        return Resolution(metadata, status, tuple(issues))
