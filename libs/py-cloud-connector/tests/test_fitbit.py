"""Tests for the Fitbit connector against a mocked HTTP transport."""

import asyncio
import json
from datetime import UTC, date, datetime, timedelta

import httpx
import pytest
import pytest_asyncio

from fitsync_cloud_connector.credentials import MemoryCredentialStore
from fitsync_cloud_connector.exceptions import (
    AuthenticationError,
    OAuthError,
    RateLimitError,
    VendorAPIError,
)
from fitsync_cloud_connector.fitbit import MAX_RANGE_DAYS, FitbitConnector
from fitsync_cloud_connector.tokens import TokenStore
from fitsync_cloud_connector.vendor_types import FitbitConfig, OAuthTokens
from fitsync_core.exceptions import SourceError
from fitsync_core.schema import DateRange

RANGE = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))


def make_tokens(expired: bool = False) -> OAuthTokens:
    delta = timedelta(hours=-1) if expired else timedelta(hours=1)
    return OAuthTokens(
        access_token="valid_access",
        refresh_token="valid_refresh",
        expires_in=3600,
        expires_at=datetime.now(UTC) + delta,
        scopes=["weight"],
    )


class FakeFitbit:
    """Records requests and answers them with canned responses."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, httpx.Response] = {}
        self.token_response = httpx.Response(
            200,
            json={
                "access_token": "refreshed_access",
                "refresh_token": "refreshed_refresh",
                "expires_in": 3600,
                "scope": "weight",
            },
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/oauth2/token":
            return self.token_response
        if path == "/oauth2/revoke":
            return httpx.Response(200)
        for resource, response in self.responses.items():
            if path.startswith(f"/1/user/-/body/{resource}/"):
                return response
        return httpx.Response(404, text="not found")

    def data_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/1/")]


@pytest.fixture
def fake():
    return FakeFitbit()


@pytest.fixture
def token_store():
    store = TokenStore(MemoryCredentialStore())
    store.save_tokens(make_tokens())
    return store


@pytest_asyncio.fixture
async def connector(fake, token_store):
    config = FitbitConfig(
        client_id="client",
        client_secret="secret",
        timezone="America/New_York",
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as client:
        yield FitbitConnector(config, token_store, http_client=client)


class TestFetch:
    """Tests for time series fetching and parsing."""

    @pytest.mark.asyncio
    async def test_fetch_weight(self, connector, fake):
        fake.responses["weight"] = httpx.Response(
            200,
            json={
                "body-weight": [
                    {"dateTime": "2024-01-05", "value": "80.2"},
                    {"dateTime": "2024-01-12", "value": "79.8"},
                ]
            },
        )

        entries = await connector.fetch_weight(RANGE)

        assert [e.value for e in entries] == [80.2, 79.8]
        assert entries[0].day == date(2024, 1, 5)
        assert entries[0].timestamp.utcoffset() == timedelta(hours=-5)
        assert entries[0].provenance == "Fitbit"

        request = fake.data_requests()[0]
        assert request.url.path == "/1/user/-/body/weight/date/2024-01-01/2024-01-31.json"
        assert request.headers["Authorization"] == "Bearer valid_access"

    @pytest.mark.asyncio
    async def test_fetch_body_fat(self, connector, fake):
        fake.responses["fat"] = httpx.Response(
            200, json={"body-fat": [{"dateTime": "2024-01-05", "value": "21.5"}]}
        )

        entries = await connector.fetch_body_fat(RANGE)

        assert [e.value for e in entries] == [21.5]
        assert fake.data_requests()[0].url.path.startswith("/1/user/-/body/fat/date/")

    @pytest.mark.asyncio
    async def test_empty_series(self, connector, fake):
        fake.responses["weight"] = httpx.Response(200, json={"body-weight": []})

        assert await connector.fetch_weight(RANGE) == []

    @pytest.mark.asyncio
    async def test_malformed_rows_skipped(self, connector, fake):
        fake.responses["weight"] = httpx.Response(
            200,
            json={
                "body-weight": [
                    {"dateTime": "2024-01-05", "value": "80.2"},
                    {"dateTime": "not-a-date", "value": "80.0"},
                    {"dateTime": "2024-01-06", "value": "heavy"},
                    {"dateTime": "2024-01-07"},
                    {"dateTime": "2024-01-08", "value": "-1"},
                    "garbage",
                ]
            },
        )

        entries = await connector.fetch_weight(RANGE)

        assert [e.value for e in entries] == [80.2]

    @pytest.mark.asyncio
    async def test_long_range_is_chunked(self, connector, fake):
        fake.responses["weight"] = httpx.Response(200, json={"body-weight": []})
        long_range = DateRange(start=date(2018, 1, 1), end=date(2024, 1, 1))

        await connector.fetch_weight(long_range)

        paths = [r.url.path for r in fake.data_requests()]
        assert len(paths) == 3
        assert paths[0] == "/1/user/-/body/weight/date/2018-01-01/2020-12-30.json"
        assert paths[1].startswith("/1/user/-/body/weight/date/2020-12-31/")
        assert paths[-1].endswith("/2024-01-01.json")

    def test_windows_cover_range_once(self):
        long_range = DateRange(start=date(2015, 3, 1), end=date(2024, 2, 29))

        windows = list(FitbitConnector._windows(long_range))

        assert windows[0][0] == long_range.start
        assert windows[-1][1] == long_range.end
        for (_, end), (next_start, _) in zip(windows, windows[1:]):
            assert next_start == end + timedelta(days=1)
        for start, end in windows:
            assert (end - start).days < MAX_RANGE_DAYS

    def test_unknown_timezone(self, token_store):
        with pytest.raises(ValueError):
            FitbitConnector(FitbitConfig(timezone="Mars/Olympus_Mons"), token_store)


class TestFetchErrors:
    """Tests for failure classification."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403])
    async def test_auth_failures_require_reauthentication(self, connector, fake, status):
        fake.responses["weight"] = httpx.Response(status, json={"errors": []})

        with pytest.raises(VendorAPIError) as exc_info:
            await connector.fetch_weight(RANGE)

        assert exc_info.value.status_code == status
        assert exc_info.value.requires_reauthentication

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self, connector, fake):
        fake.responses["weight"] = httpx.Response(503, text="unavailable")

        with pytest.raises(VendorAPIError) as exc_info:
            await connector.fetch_weight(RANGE)

        assert exc_info.value.is_retryable
        assert not exc_info.value.requires_reauthentication

    @pytest.mark.asyncio
    async def test_rate_limit(self, connector, fake):
        fake.responses["weight"] = httpx.Response(429, headers={"Fitbit-Rate-Limit-Reset": "120"})

        with pytest.raises(RateLimitError) as exc_info:
            await connector.fetch_weight(RANGE)

        assert exc_info.value.retry_after == 120
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_network_error(self, token_store):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(fail)) as client:
            connector = FitbitConnector(FitbitConfig(), token_store, http_client=client)
            with pytest.raises(VendorAPIError) as exc_info:
                await connector.fetch_weight(RANGE)

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value, SourceError)

    @pytest.mark.asyncio
    async def test_invalid_json(self, connector, fake):
        fake.responses["weight"] = httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(VendorAPIError):
            await connector.fetch_weight(RANGE)

    @pytest.mark.asyncio
    async def test_missing_series_key(self, connector, fake):
        fake.responses["weight"] = httpx.Response(200, json={"something-else": []})

        with pytest.raises(VendorAPIError) as exc_info:
            await connector.fetch_weight(RANGE)

        assert "body-weight" in str(exc_info.value)


class TestAuthentication:
    """Tests for token handling inherited from CloudConnectorBase."""

    @pytest.mark.asyncio
    async def test_no_tokens(self, connector, fake):
        connector.token_store.delete_tokens()

        with pytest.raises(AuthenticationError) as exc_info:
            await connector.fetch_weight(RANGE)

        assert exc_info.value.requires_reauthentication
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self, connector, fake):
        connector.token_store.save_tokens(make_tokens(expired=True))
        fake.responses["weight"] = httpx.Response(200, json={"body-weight": []})

        await connector.fetch_weight(RANGE)

        token_requests = [r for r in fake.requests if r.url.path == "/oauth2/token"]
        assert len(token_requests) == 1
        assert b"refresh_token=valid_refresh" in token_requests[0].content
        assert fake.data_requests()[0].headers["Authorization"] == "Bearer refreshed_access"
        assert connector.token_store.get_tokens().access_token == "refreshed_access"

    @pytest.mark.asyncio
    async def test_concurrent_fetches_refresh_once(self, connector, fake):
        connector.token_store.save_tokens(make_tokens(expired=True))
        fake.responses["weight"] = httpx.Response(200, json={"body-weight": []})
        fake.responses["fat"] = httpx.Response(200, json={"body-fat": []})

        await asyncio.gather(connector.fetch_weight(RANGE), connector.fetch_body_fat(RANGE))

        token_requests = [r for r in fake.requests if r.url.path == "/oauth2/token"]
        assert len(token_requests) == 1

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self, connector):
        tokens = make_tokens(expired=True)
        tokens.refresh_token = None
        connector.token_store.save_tokens(tokens)

        with pytest.raises(AuthenticationError):
            await connector.access_token()

    @pytest.mark.asyncio
    async def test_refresh_rejected(self, connector, fake):
        connector.token_store.save_tokens(make_tokens(expired=True))
        fake.token_response = httpx.Response(
            400, json={"errors": [{"errorType": "invalid_grant", "message": "Refresh token invalid"}]}
        )

        with pytest.raises(OAuthError) as exc_info:
            await connector.fetch_weight(RANGE)

        assert exc_info.value.requires_reauthentication

    def test_authorization_url(self, connector):
        url = connector.build_authorization_url(state="xyz")

        assert url.startswith("https://www.fitbit.com/oauth2/authorize?")
        assert "client_id=client" in url
        assert "scope=weight" in url
        assert "expires_in=31536000" in url

    @pytest.mark.asyncio
    async def test_exchange_code_from_redirect_url(self, connector, fake):
        connector.token_store.delete_tokens()
        fake.token_response = httpx.Response(
            200,
            json={
                "access_token": "new_access",
                "refresh_token": "new_refresh",
                "expires_in": 31536000,
                "user_id": "ABC123",
            },
        )

        tokens = await connector.exchange_code("http://localhost:8080/callback?code=the_code#_=_")

        assert tokens.user_id == "ABC123"
        assert connector.is_authenticated
        assert b"code=the_code" in fake.requests[0].content

    @pytest.mark.asyncio
    async def test_exchange_code_without_code(self, connector, fake):
        with pytest.raises(OAuthError):
            await connector.exchange_code("http://localhost:8080/callback?error=access_denied")

        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_logout_revokes_and_deletes(self, connector, fake):
        await connector.logout()

        assert not connector.is_authenticated
        revoke = [r for r in fake.requests if r.url.path == "/oauth2/revoke"]
        assert len(revoke) == 1
        assert b"token=valid_refresh" in revoke[0].content

    @pytest.mark.asyncio
    async def test_logout_without_revoke(self, connector, fake):
        await connector.logout(revoke=False)

        assert not connector.is_authenticated
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_logout_with_corrupted_tokens(self, connector):
        connector.token_store.credential_store.set(connector.token_store.key, json.dumps([1, 2]))

        await connector.logout()

        assert not connector.is_authenticated

    @pytest.mark.asyncio
    async def test_close_keeps_shared_client(self, connector):
        await connector.close()

        assert not connector.http_client.is_closed
