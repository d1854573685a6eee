"""
Identity API routes - link externally verified identities to the session user.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

import secrets
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from userbase.api.dependencies import (
    get_current_user_id,
    get_identity_linker,
    get_signature_verifier,
)
from userbase.config import settings
from userbase.exceptions import MergeRequiredError
from userbase.models.api import (
    IdentityResponse,
    LinkChallengeResponse,
    LinkIdentityResponse,
    SocialVerifyRequest,
    WalletVerifyRequest,
)
from userbase.models.domain import AlreadyLinkedToSelf, IdentityData, LinkResult, MergeRequired
from userbase.services.identity_linker import IdentityLinker, farcaster_draft, wallet_draft
from userbase.services.signature_proof import SignatureProofVerifier, build_link_message

router = APIRouter(tags=["identities"])


def identity_response(identity: IdentityData) -> IdentityResponse:
    return IdentityResponse(
        id=identity.identity_id,
        user_id=identity.user_id,
        type=identity.type,
        handle=identity.handle,
        address=identity.address,
        external_id=identity.external_id,
        is_primary=identity.is_primary,
        is_sponsored=identity.is_sponsored,
        sponsor_user_id=identity.sponsor_user_id,
        verified_at=identity.verified_at,
        metadata=identity.metadata,
    )


def link_response(result: LinkResult) -> LinkIdentityResponse:
    """Render a link result; a cross-user collision becomes a 409 merge_required error."""
    if isinstance(result, MergeRequired):
        raise MergeRequiredError(result.identity_type.value, result.existing_user_id)
    return LinkIdentityResponse(
        already_linked=isinstance(result, AlreadyLinkedToSelf),
        identity=identity_response(result.identity),
    )


@router.get("/identities/social/challenge", response_model=LinkChallengeResponse)
async def get_social_challenge(
    fid: str = Query(..., min_length=1, max_length=32),
    user_id: UUID = Depends(get_current_user_id),
    verifier: SignatureProofVerifier = Depends(get_signature_verifier),
) -> LinkChallengeResponse:
    """
    Build the challenge the Farcaster custody wallet must sign.

    Auth: session cookie or Bearer session token
    """
    profile = await verifier.resolve_custody(fid)
    nonce = secrets.token_hex(16)
    issued_at = datetime.now(UTC)
    message = build_link_message(
        settings.link_message_preamble,
        user_id,
        profile.fid,
        profile.username,
        nonce=nonce,
        issued_at=issued_at,
    )
    return LinkChallengeResponse(
        fid=profile.fid,
        username=profile.username,
        message=message,
        nonce=nonce,
        issued_at=issued_at.isoformat(),
    )


@router.post("/identities/social/verify", response_model=LinkIdentityResponse)
async def verify_social_identity(
    request: SocialVerifyRequest,
    user_id: UUID = Depends(get_current_user_id),
    verifier: SignatureProofVerifier = Depends(get_signature_verifier),
    linker: IdentityLinker = Depends(get_identity_linker),
) -> LinkIdentityResponse:
    """
    Link a Farcaster account after proving control of its custody wallet.

    Returns the identity (already_linked=true when it was linked before).
    409 merge_required when the account belongs to another user.

    Auth: session cookie or Bearer session token
    """
    profile = await verifier.verify_social(request.fid, request.message, request.signature)
    result = await linker.link(user_id, farcaster_draft(profile))
    return link_response(result)


@router.post("/identities/wallet/verify", response_model=LinkIdentityResponse)
async def verify_wallet_identity(
    request: WalletVerifyRequest,
    user_id: UUID = Depends(get_current_user_id),
    verifier: SignatureProofVerifier = Depends(get_signature_verifier),
    linker: IdentityLinker = Depends(get_identity_linker),
) -> LinkIdentityResponse:
    """Link an EVM wallet after verifying a personal_sign over a nonce message."""
    address = verifier.verify_wallet(request.address, request.message, request.signature)
    result = await linker.link(user_id, wallet_draft(address))
    return link_response(result)
