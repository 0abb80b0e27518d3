"""EVM chain client: web3 async RPC for contract reads, aiohttp for the explorer.

The explorer is any Etherscan-compatible API (module=account,
action=tokentx). Connection pooling and chain quirks are left to web3
and aiohttp; this class only enforces a per-call timeout.
"""

import asyncio

import aiohttp
from web3 import AsyncWeb3

from folio.chain.client import ChainClient
from folio.chain.types import ERC20_ABI, ChainConfig
from folio.logging import get_logger

logger = get_logger(__name__)


class EvmChainClient(ChainClient):
    """Concrete ChainClient for one EVM chain."""

    def __init__(
        self,
        config: ChainConfig,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                config.rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)},
            )
        )
        self._session = session
        self._owns_session = session is None

    @property
    def chain(self) -> str:
        return self._config.name

    @property
    def config(self) -> ChainConfig:
        return self._config

    @property
    def has_explorer(self) -> bool:
        return bool(self._config.explorer_api_url)

    def _contract(self, address: str):  # type: ignore[no-untyped-def]
        return self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=ERC20_ABI,
        )

    async def get_native_balance(self, wallet: str) -> int:
        return await asyncio.wait_for(
            self._w3.eth.get_balance(AsyncWeb3.to_checksum_address(wallet)),
            self._timeout,
        )

    async def read_symbol(self, address: str) -> str:
        return await asyncio.wait_for(
            self._contract(address).functions.symbol().call(), self._timeout
        )

    async def read_name(self, address: str) -> str:
        return await asyncio.wait_for(
            self._contract(address).functions.name().call(), self._timeout
        )

    async def read_decimals(self, address: str) -> int:
        return int(
            await asyncio.wait_for(
                self._contract(address).functions.decimals().call(), self._timeout
            )
        )

    async def balance_of(self, address: str, wallet: str) -> int:
        return await asyncio.wait_for(
            self._contract(address)
            .functions.balanceOf(AsyncWeb3.to_checksum_address(wallet))
            .call(),
            self._timeout,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
            self._owns_session = True
        return self._session

    async def fetch_token_transfers(self, wallet: str, limit: int) -> list[dict]:
        """Query the explorer's tokentx endpoint, newest first.

        An explorer "no transactions" answer (status "0" with an empty or
        non-list result) is an empty history, not an error.
        """
        if not self._config.explorer_api_url:
            return []

        params = {
            "module": "account",
            "action": "tokentx",
            "address": wallet,
            "page": 1,
            "offset": limit,
            "sort": "desc",
        }
        if self._config.explorer_api_key:
            params["apikey"] = self._config.explorer_api_key

        session = await self._get_session()
        async with session.get(self._config.explorer_api_url, params=params) as response:
            response.raise_for_status()
            data = await response.json(content_type=None)

        result = data.get("result")
        if str(data.get("status")) != "1" or not isinstance(result, list):
            logger.debug(
                "explorer_no_transfers",
                chain=self.chain,
                message=data.get("message"),
            )
            return []
        return result[:limit]

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
        logger.debug("chain_client_closed", chain=self.chain)
