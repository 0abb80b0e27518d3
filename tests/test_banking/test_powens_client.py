"""Tests for PowensClient failure handling (no network access)."""

import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from folio.banking.powens_client import PowensClient
from folio.config import BankingSettings
from folio.exceptions import SourceUnavailableError


def _settings(**overrides: object) -> BankingSettings:
    values = {
        "domain": "example.biapi.pro",
        "client_id": "client",
        "client_secret": "secret",
        "user_id": "42",
    }
    values.update(overrides)
    return BankingSettings(**values)


def _session_raising(error: Exception) -> MagicMock:
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(side_effect=error)
    session.get = MagicMock(side_effect=error)
    session.close = AsyncMock()
    return session


def _response(body: object = None, error: Exception | None = None) -> MagicMock:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = AsyncMock(return_value=body, side_effect=error)
    request = MagicMock()
    request.__aenter__ = AsyncMock(return_value=response)
    request.__aexit__ = AsyncMock(return_value=False)
    return request


def _session_answering(auth: object, data: object = None, data_error: Exception | None = None) -> MagicMock:
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=_response(auth))
    session.get = MagicMock(return_value=_response(data, data_error))
    session.close = AsyncMock()
    return session


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_missing_config_is_source_unavailable(self) -> None:
        client = PowensClient(_settings(client_secret="", user_id=""))

        with pytest.raises(SourceUnavailableError) as exc_info:
            await client.authenticate()

        assert exc_info.value.source == "banking"
        assert "client_secret" in exc_info.value.reason
        assert "user_id" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_connection_error_is_source_unavailable(self) -> None:
        session = _session_raising(aiohttp.ClientConnectionError("refused"))
        client = PowensClient(_settings(), session=session)

        with pytest.raises(SourceUnavailableError):
            await client.authenticate()

    @pytest.mark.asyncio
    async def test_fetch_authenticates_first(self) -> None:
        session = _session_raising(aiohttp.ClientConnectionError("refused"))
        client = PowensClient(_settings(), session=session)

        with pytest.raises(SourceUnavailableError):
            await client.fetch_accounts()
        session.post.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self) -> None:
        session = _session_raising(aiohttp.ClientConnectionError("refused"))
        client = PowensClient(_settings(), session=session)

        await client.close()

        session.close.assert_not_awaited()


class TestMalformedResponses:
    @pytest.mark.asyncio
    async def test_non_numeric_user_id(self) -> None:
        session = _session_answering({"access_token": "tok"})
        client = PowensClient(_settings(user_id="me@example.com"), session=session)

        with pytest.raises(SourceUnavailableError, match="numeric"):
            await client.authenticate()
        session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_auth_body_not_an_object(self) -> None:
        client = PowensClient(_settings(), session=_session_answering(["tok"]))

        with pytest.raises(SourceUnavailableError):
            await client.authenticate()

    @pytest.mark.asyncio
    async def test_invalid_json_body(self) -> None:
        session = _session_answering(
            {"access_token": "tok"},
            data_error=json.JSONDecodeError("Expecting property name", "{bad", 1),
        )
        client = PowensClient(_settings(), session=session)

        with pytest.raises(SourceUnavailableError) as exc_info:
            await client.fetch_investments()
        assert exc_info.value.source == "banking"

    @pytest.mark.asyncio
    async def test_list_body_rejected(self) -> None:
        session = _session_answering({"access_token": "tok"}, data=[{"id": 1}])
        client = PowensClient(_settings(), session=session)

        with pytest.raises(SourceUnavailableError):
            await client.fetch_accounts()

    @pytest.mark.asyncio
    async def test_records_field_not_a_list(self) -> None:
        session = _session_answering({"access_token": "tok"}, data={"investments": "none"})
        client = PowensClient(_settings(), session=session)

        with pytest.raises(SourceUnavailableError):
            await client.fetch_investments()

    @pytest.mark.asyncio
    async def test_well_formed_body(self) -> None:
        session = _session_answering({"access_token": "tok"}, data={"investments": [{"id": 7}]})
        client = PowensClient(_settings(), session=session)

        assert await client.fetch_investments() == [{"id": 7}]
        headers = session.get.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer tok"}
