"""
Tests for the Farcaster directory client.
"""

import httpx
import pytest

from userbase.config import Settings
from userbase.exceptions import DirectoryError
from userbase.services import directory_client
from userbase.services.directory_client import DirectoryClient, parse_profile

NEYNAR_USER = {
    "fid": 1234,
    "username": "skater",
    "display_name": "Sk8",
    "pfp_url": "https://img/pfp.png",
    "profile": {"bio": {"text": "kickflips"}},
    "custody_address": "0xABCDEF0000000000000000000000000000000001",
    "verifications": ["0xAAAA000000000000000000000000000000000001"],
    "verified_addresses": {
        "eth_addresses": [
            "0xaaaa000000000000000000000000000000000001",
            "0xBBBB000000000000000000000000000000000002",
        ]
    },
}


@pytest.fixture
def directory_settings(test_settings: Settings) -> Settings:
    return test_settings.model_copy(
        update={"neynar_api_key": "test-key", "neynar_api_url": "https://neynar.example"}
    )


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(directory_client, "RETRY_DELAYS", [0.0])


class TestParseProfile:
    def test_maps_fields(self):
        profile = parse_profile(NEYNAR_USER)

        assert profile.fid == "1234"
        assert profile.username == "skater"
        assert profile.bio == "kickflips"
        assert profile.custody_address == "0xabcdef0000000000000000000000000000000001"

    def test_verifications_deduplicated_case_insensitively(self):
        profile = parse_profile(NEYNAR_USER)

        assert profile.verifications == (
            "0xaaaa000000000000000000000000000000000001",
            "0xbbbb000000000000000000000000000000000002",
        )

    def test_sparse_user(self):
        profile = parse_profile({"fid": 7})

        assert profile.username == ""
        assert profile.custody_address is None
        assert profile.verifications == ()


class TestGetProfile:
    @pytest.mark.asyncio
    async def test_found(self, directory_settings: Settings):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v2/farcaster/user/bulk"
            assert request.url.params["fids"] == "1234"
            assert request.headers["api_key"] == "test-key"
            return httpx.Response(200, json={"users": [NEYNAR_USER]})

        client = DirectoryClient(directory_settings, transport=httpx.MockTransport(handler))

        profile = await client.get_profile("1234")

        assert profile is not None
        assert profile.username == "skater"

    @pytest.mark.asyncio
    async def test_not_found(self, directory_settings: Settings):
        client = DirectoryClient(
            directory_settings, transport=httpx.MockTransport(lambda r: httpx.Response(404))
        )

        assert await client.get_profile("1234") is None

    @pytest.mark.asyncio
    async def test_empty_user_list(self, directory_settings: Settings):
        client = DirectoryClient(
            directory_settings,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"users": []})),
        )

        assert await client.get_profile("1234") is None

    @pytest.mark.asyncio
    async def test_server_error_retried_then_raised(self, directory_settings: Settings):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(502)

        client = DirectoryClient(directory_settings, transport=httpx.MockTransport(handler))

        with pytest.raises(DirectoryError, match="HTTP 502"):
            await client.get_profile("1234")

        assert calls == 1 + directory_settings.directory_retries

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, directory_settings: Settings):
        responses = iter([httpx.Response(500), httpx.Response(200, json={"users": [NEYNAR_USER]})])
        client = DirectoryClient(
            directory_settings, transport=httpx.MockTransport(lambda r: next(responses))
        )

        profile = await client.get_profile("1234")

        assert profile is not None

    @pytest.mark.asyncio
    async def test_client_error_raises(self, directory_settings: Settings):
        client = DirectoryClient(
            directory_settings, transport=httpx.MockTransport(lambda r: httpx.Response(401))
        )

        with pytest.raises(DirectoryError, match="HTTP 401"):
            await client.get_profile("1234")

    @pytest.mark.asyncio
    async def test_missing_api_key(self, test_settings: Settings):
        client = DirectoryClient(test_settings.model_copy(update={"neynar_api_key": ""}))

        with pytest.raises(DirectoryError, match="not configured"):
            await client.get_profile("1234")
