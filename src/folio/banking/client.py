"""Abstract banking aggregation client interface.

Authentication and retry policy belong to implementations; callers only
see raw provider dicts or a SourceUnavailableError.
"""

from abc import ABC, abstractmethod


class BankingClient(ABC):
    """Source of raw account and instrument records."""

    @abstractmethod
    async def authenticate(self) -> None:
        """Obtain credentials. Raises SourceUnavailableError on failure."""
        ...

    @abstractmethod
    async def fetch_accounts(self) -> list[dict]:
        """Return raw account dicts."""
        ...

    @abstractmethod
    async def fetch_investments(self) -> list[dict]:
        """Return raw investment (instrument) dicts."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
