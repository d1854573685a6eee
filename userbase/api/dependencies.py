"""
FastAPI Dependencies - Session authentication and service wiring.

NO DICTIONARIES - All dependencies return typed objects.

Stateless clients (vault, chain, directory, email) are constructed once per
process. Services are constructed per request around a Store bound to the
request's database session. Every layer can be replaced in tests through
app.dependency_overrides.
"""

from functools import lru_cache
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from userbase.config import settings
from userbase.db.repositories import Store
from userbase.db.session import get_read_db, get_write_db
from userbase.services.credential_vault import CredentialVault
from userbase.services.directory_client import DirectoryClient
from userbase.services.hive_client import ChainVerifier, HiveClient
from userbase.services.hive_keys import HiveProfilePublisher
from userbase.services.identity_linker import IdentityLinker
from userbase.services.key_custody import KeyCustodyService
from userbase.services.notifications import EmailDispatcher
from userbase.services.session_validator import SessionValidator
from userbase.services.signature_proof import SignatureProofVerifier
from userbase.services.sponsorship import SponsorshipService

# Bearer token is accepted alongside the session cookie
bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================================
# Process-wide clients
# ============================================================================


@lru_cache
def get_vault() -> CredentialVault:
    return CredentialVault(settings.key_encryption_secret)


@lru_cache
def get_hive_client() -> HiveClient:
    return HiveClient(settings)


@lru_cache
def get_directory_client() -> DirectoryClient:
    return DirectoryClient(settings)


@lru_cache
def get_email_dispatcher() -> EmailDispatcher:
    return EmailDispatcher(settings)


@lru_cache
def get_profile_publisher() -> HiveProfilePublisher:
    return HiveProfilePublisher(settings)


# ============================================================================
# Per-request
# ============================================================================


async def get_store(db: AsyncSession = Depends(get_write_db)) -> Store:
    return Store(db)


async def get_read_store(db: AsyncSession = Depends(get_read_db)) -> Store:
    """Store on the read replica (primary when none is configured); never commits."""
    return Store(db)


def session_token(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> str | None:
    """Raw session token from the session cookie, else from the Authorization header."""
    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie:
        return cookie
    if credentials is not None:
        return credentials.credentials
    return None


async def get_current_user_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    store: Store = Depends(get_store),
) -> UUID:
    """
    FastAPI dependency resolving the acting user from their session.

    Usage:
        @router.get("/sponsorships/my-info")
        async def my_info(user_id: UUID = Depends(get_current_user_id)):
            ...

    Raises:
        AuthenticationError: 401 when the token is missing or unknown
        SessionExpiredError: 401 when the session is revoked or expired
    """
    validator = SessionValidator(store.sessions)
    return await validator.validate(session_token(request, credentials))


def get_identity_linker(store: Store = Depends(get_store)) -> IdentityLinker:
    return IdentityLinker(store)


def get_signature_verifier(
    directory: DirectoryClient = Depends(get_directory_client),
) -> SignatureProofVerifier:
    return SignatureProofVerifier(directory, settings.link_message_preamble)


def _sponsorship_service(
    store: Store,
    hive: HiveClient,
    vault: CredentialVault,
    notifier: EmailDispatcher,
    publisher: HiveProfilePublisher,
) -> SponsorshipService:
    verifier = ChainVerifier(
        hive,
        attempts=settings.hive_tx_lookup_attempts,
        delay_seconds=settings.hive_tx_lookup_delay_seconds,
    )
    return SponsorshipService(
        store,
        hive,
        verifier,
        vault,
        IdentityLinker(store),
        notifier,
        publisher,
        settings,
    )


def get_sponsorship_service(
    store: Store = Depends(get_store),
    hive: HiveClient = Depends(get_hive_client),
    vault: CredentialVault = Depends(get_vault),
    notifier: EmailDispatcher = Depends(get_email_dispatcher),
    publisher: HiveProfilePublisher = Depends(get_profile_publisher),
) -> SponsorshipService:
    return _sponsorship_service(store, hive, vault, notifier, publisher)


def get_read_sponsorship_service(
    store: Store = Depends(get_read_store),
    hive: HiveClient = Depends(get_hive_client),
    vault: CredentialVault = Depends(get_vault),
    notifier: EmailDispatcher = Depends(get_email_dispatcher),
    publisher: HiveProfilePublisher = Depends(get_profile_publisher),
) -> SponsorshipService:
    """Sponsorship service for the public read-only routes."""
    return _sponsorship_service(store, hive, vault, notifier, publisher)


def get_key_custody_service(
    store: Store = Depends(get_store),
    hive: HiveClient = Depends(get_hive_client),
    vault: CredentialVault = Depends(get_vault),
    notifier: EmailDispatcher = Depends(get_email_dispatcher),
) -> KeyCustodyService:
    return KeyCustodyService(store, vault, hive, notifier, settings)
