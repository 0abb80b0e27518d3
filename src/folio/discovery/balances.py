"""Balance resolution for (wallet, chain, token) triples.

Returns nothing for zero balances. Values below the minimum-position
floor are still returned; the normalizer applies the floor when it
assembles the snapshot, so raw balances stay usable for diagnostics.
"""

import asyncio
from collections.abc import Mapping
from decimal import Decimal

from folio.chain.client import ChainClient
from folio.chain.types import ChainConfig
from folio.exceptions import SourceUnavailableError
from folio.logging import get_logger
from folio.market_data.pricing import PriceService
from folio.models import BalanceRecord, TokenMetadata

logger = get_logger(__name__)


def scale_units(raw: int, decimals: int) -> Decimal:
    """Convert integer base units to a token amount."""
    return Decimal(int(raw)).scaleb(-decimals)


class BalanceResolver:
    """Reads on-chain balances and values them through the PriceService."""

    def __init__(
        self,
        clients: Mapping[str, ChainClient],
        chains: Mapping[str, ChainConfig],
        price_service: PriceService,
        timeout: float = 10.0,
    ) -> None:
        self._clients = clients
        self._chains = chains
        self._price_service = price_service
        self._timeout = timeout

    async def resolve(
        self, wallet: str, chain: str, metadata: TokenMetadata
    ) -> BalanceRecord | None:
        """Return the wallet's balance of one token, or None if zero or unreadable.

        A failed or timed-out balanceOf is absorbed (logged, None returned);
        it never aborts the rest of the wallet scan.
        """
        client = self._clients.get(chain)
        if client is None:
            return None

        try:
            raw = await asyncio.wait_for(
                client.balance_of(metadata.address, wallet), self._timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "token_balance_failed",
                chain=chain,
                symbol=metadata.symbol,
                address=metadata.address,
                error=str(e) or type(e).__name__,
            )
            return None

        if not raw:
            return None

        balance = scale_units(raw, metadata.decimals)
        price = await self._price_service.get_price(metadata.symbol, metadata.pricing_id)
        return BalanceRecord(
            symbol=metadata.symbol,
            name=metadata.name,
            chain=chain,
            wallet=wallet,
            balance=balance,
            decimals=metadata.decimals,
            price=price.value,
            value=balance * price.value,
            contract_address=metadata.address,
            price_status=price.status,
        )

    async def resolve_native(self, wallet: str, chain: str) -> BalanceRecord | None:
        """Return the wallet's native-currency balance, or None if zero.

        Raises:
            SourceUnavailableError: the chain's RPC endpoint cannot be reached.
                Without it the chain's holdings are unknown, and a snapshot
                missing them would report spurious closed positions.
        """
        client = self._clients.get(chain)
        config = self._chains.get(chain)
        if client is None or config is None:
            raise SourceUnavailableError(chain, "no client configured")

        try:
            raw = await asyncio.wait_for(client.get_native_balance(wallet), self._timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise SourceUnavailableError(chain, str(e) or type(e).__name__) from e

        if not raw:
            return None

        native = config.native_currency
        balance = scale_units(raw, native.decimals)
        price = await self._price_service.get_price(native.symbol, native.pricing_id)
        return BalanceRecord(
            symbol=native.symbol,
            name=native.name,
            chain=chain,
            wallet=wallet,
            balance=balance,
            decimals=native.decimals,
            price=price.value,
            value=balance * price.value,
            price_status=price.status,
        )
