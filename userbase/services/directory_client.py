"""
Identity Directory Client - Farcaster profile lookup via the Neynar API.

Wraps GET /v2/farcaster/user/bulk with an explicit timeout and a bounded
retry with backoff. A missing profile is None; an unreachable directory is
DirectoryError.
"""

import asyncio

import httpx
from structlog import get_logger

from userbase.config import Settings
from userbase.exceptions import DirectoryError
from userbase.models.domain import DirectoryProfile
from userbase.observability.metrics import metrics

logger = get_logger(__name__)

RETRY_DELAYS = [0.5, 1.5]


def _dedupe_addresses(*groups: list[str] | None) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for group in groups:
        for address in group or []:
            if isinstance(address, str) and address:
                seen.setdefault(address.lower(), None)
    return tuple(seen)


def parse_profile(user: dict) -> DirectoryProfile:
    """Build a DirectoryProfile from one Neynar user object."""
    profile = user.get("profile") or {}
    bio = (profile.get("bio") or {}).get("text")
    verified = user.get("verified_addresses") or {}
    custody = user.get("custody_address")
    return DirectoryProfile(
        fid=str(user["fid"]),
        username=user.get("username") or "",
        display_name=user.get("display_name"),
        pfp_url=user.get("pfp_url"),
        bio=bio,
        custody_address=custody.lower() if custody else None,
        verifications=_dedupe_addresses(
            user.get("verifications"), verified.get("eth_addresses")
        ),
    )


class DirectoryClient:
    """Async client for the Farcaster directory."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = settings.neynar_api_url.rstrip("/")
        self._api_key = settings.neynar_api_key
        self._timeout = settings.directory_timeout_seconds
        self._retries = settings.directory_retries
        self._transport = transport

    async def _get(self, path: str, params: dict[str, str]) -> httpx.Response:
        last_error = "no attempts made"

        for attempt in range(1 + self._retries):
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.get(
                        f"{self._base_url}{path}",
                        params=params,
                        headers={"api_key": self._api_key, "accept": "application/json"},
                    )
                if response.status_code < 500:
                    return response
                last_error = f"HTTP {response.status_code}"
            except httpx.HTTPError as exc:
                last_error = str(exc) or type(exc).__name__

            if attempt < self._retries:
                delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                logger.warning(
                    "directory_request_retry",
                    path=path,
                    attempt=attempt + 1,
                    error=last_error,
                    delay_seconds=delay,
                )
                await asyncio.sleep(delay)

        metrics.record_external_call("neynar", success=False)
        logger.error("directory_request_failed", path=path, error=last_error)
        raise DirectoryError(last_error)

    async def get_profile(self, fid: str) -> DirectoryProfile | None:
        """Fetch the canonical profile for a numeric Farcaster id."""
        if not self._api_key:
            raise DirectoryError("directory API key not configured")

        response = await self._get("/v2/farcaster/user/bulk", {"fids": fid})
        if response.status_code == 404:
            metrics.record_external_call("neynar", success=True)
            return None
        if response.status_code != 200:
            metrics.record_external_call("neynar", success=False)
            raise DirectoryError(f"HTTP {response.status_code}")

        metrics.record_external_call("neynar", success=True)
        try:
            users = response.json().get("users") or []
        except ValueError as exc:
            raise DirectoryError("response is not JSON") from exc

        if not users:
            return None
        return parse_profile(users[0])
