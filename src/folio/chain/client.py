"""Abstract blockchain client interface.

Discovery and balance resolution depend only on this interface. Each
method is one external call; callers bound it with a timeout and decide
whether a failure is recoverable.
"""

from abc import ABC, abstractmethod


class ChainClient(ABC):
    """Per-chain RPC and explorer access."""

    @property
    @abstractmethod
    def chain(self) -> str:
        """Name of the chain this client talks to."""
        ...

    @property
    @abstractmethod
    def has_explorer(self) -> bool:
        """Whether a transaction-history endpoint is configured."""
        ...

    @abstractmethod
    async def get_native_balance(self, wallet: str) -> int:
        """Return the wallet's native-currency balance in base units (wei)."""
        ...

    @abstractmethod
    async def read_symbol(self, address: str) -> str:
        ...

    @abstractmethod
    async def read_name(self, address: str) -> str:
        ...

    @abstractmethod
    async def read_decimals(self, address: str) -> int:
        ...

    @abstractmethod
    async def balance_of(self, address: str, wallet: str) -> int:
        """Return the wallet's token balance in base units."""
        ...

    @abstractmethod
    async def fetch_token_transfers(self, wallet: str, limit: int) -> list[dict]:
        """Return up to `limit` most recent token transfer events for a wallet.

        Each event is an explorer-format dict with at least
        ``contractAddress`` and ``timeStamp``.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up network resources."""
        ...
