"""Powens (open banking aggregation) client via aiohttp."""

import aiohttp

from folio.banking.client import BankingClient
from folio.config import BankingSettings
from folio.exceptions import SourceUnavailableError
from folio.logging import get_logger

logger = get_logger(__name__)

_SOURCE = "banking"


class PowensClient(BankingClient):
    """Concrete BankingClient for the Powens 2.0 API."""

    def __init__(
        self,
        settings: BankingSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = f"https://{settings.domain}/2.0"
        self._session = session
        self._owns_session = session is None
        self._access_token: str | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def authenticate(self) -> None:
        missing = self._settings.missing_fields()
        if missing:
            raise SourceUnavailableError(
                _SOURCE, f"missing required config: {', '.join(missing)}"
            )
        try:
            user_id = int(self._settings.user_id)
        except ValueError as e:
            raise SourceUnavailableError(
                _SOURCE, f"user_id must be numeric, got {self._settings.user_id!r}"
            ) from e

        session = await self._get_session()
        payload = {
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret.get_secret_value(),
            "id_user": user_id,
        }
        try:
            async with session.post(f"{self._base_url}/auth/renew", json=payload) as response:
                response.raise_for_status()
                data = await _json_object(response, "auth/renew")
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise SourceUnavailableError(_SOURCE, f"authentication failed: {e}") from e

        token = data.get("access_token")
        if not token:
            raise SourceUnavailableError(_SOURCE, "authentication returned no access token")
        self._access_token = token
        logger.info("banking_authenticated", domain=self._settings.domain)

    async def _get(self, path: str) -> dict:
        if self._access_token is None:
            await self.authenticate()

        session = await self._get_session()
        headers = {"Authorization": f"Bearer {self._access_token}"}
        url = f"{self._base_url}/users/{self._settings.user_id}/{path}"
        try:
            async with session.get(url, headers=headers) as response:
                response.raise_for_status()
                return await _json_object(response, path)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise SourceUnavailableError(_SOURCE, f"GET {path} failed: {e}") from e

    async def fetch_accounts(self) -> list[dict]:
        accounts = _record_list(await self._get("accounts"), "accounts")
        logger.info("banking_accounts_fetched", count=len(accounts))
        return accounts

    async def fetch_investments(self) -> list[dict]:
        investments = _record_list(await self._get("investments"), "investments")
        logger.info("banking_investments_fetched", count=len(investments))
        return investments

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


async def _json_object(response: aiohttp.ClientResponse, path: str) -> dict:
    """Decode a response body that must be a JSON object.

    Raises ValueError for malformed JSON or any other top-level type.
    """
    data = await response.json()
    if not isinstance(data, dict):
        raise ValueError(f"{path} returned {type(data).__name__}, expected an object")
    return data


def _record_list(data: dict, field: str) -> list[dict]:
    records = data.get(field) or []
    if not isinstance(records, list):
        raise SourceUnavailableError(_SOURCE, f"{field} is {type(records).__name__}, expected a list")
    return records
