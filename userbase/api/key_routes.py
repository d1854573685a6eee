"""
Custodial key API routes - posting key custody and backup re-issuance.

NO DICTIONARIES - All requests/responses use Pydantic models.
Private keys are accepted on POST only and never returned.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from userbase.api.dependencies import get_current_user_id, get_key_custody_service
from userbase.models.api import (
    HiveKeyInfoResponse,
    PostingKeyStatusResponse,
    StorePostingKeyRequest,
    SuccessResponse,
)
from userbase.services.key_custody import KeyCustodyService

router = APIRouter(tags=["keys"])


@router.get("/keys/posting", response_model=PostingKeyStatusResponse)
async def get_posting_key_status(
    user_id: UUID = Depends(get_current_user_id),
    custody: KeyCustodyService = Depends(get_key_custody_service),
) -> PostingKeyStatusResponse:
    record = await custody.get_posting_key(user_id)
    if record is None:
        return PostingKeyStatusResponse(stored=False, custody="none")
    return PostingKeyStatusResponse(
        stored=True,
        custody="stored",
        status="enabled",
        key_type=record.key_type,
        created_at=record.created_at,
        last_used_at=record.last_used_at,
    )


@router.post("/keys/posting", response_model=SuccessResponse)
async def store_posting_key(
    request: StorePostingKeyRequest,
    user_id: UUID = Depends(get_current_user_id),
    custody: KeyCustodyService = Depends(get_key_custody_service),
) -> SuccessResponse:
    """
    Store a posting key for the user's linked Hive account.

    The key must be one of the account's on-chain posting authorities.

    Auth: session cookie or Bearer session token
    """
    await custody.store_posting_key(user_id, request.posting_key, request.handle)
    return SuccessResponse(message="Posting key stored")


@router.delete("/keys/posting", response_model=SuccessResponse)
async def delete_posting_key(
    user_id: UUID = Depends(get_current_user_id),
    custody: KeyCustodyService = Depends(get_key_custody_service),
) -> SuccessResponse:
    await custody.delete_posting_key(user_id)
    return SuccessResponse(message="Posting key removed")


@router.get("/keys/hive-info", response_model=HiveKeyInfoResponse)
async def get_hive_key_info(
    user_id: UUID = Depends(get_current_user_id),
    custody: KeyCustodyService = Depends(get_key_custody_service),
) -> HiveKeyInfoResponse:
    """Custodied key metadata; nothing is decrypted."""
    record = await custody.key_info(user_id)
    if record is None:
        return HiveKeyInfoResponse(has_key=False)
    return HiveKeyInfoResponse(
        has_key=True,
        hive_username=record.hive_username,
        key_type=record.key_type,
        created_at=record.created_at,
        last_used_at=record.last_used_at,
    )


@router.post("/keys/resend-backup", response_model=SuccessResponse)
async def resend_key_backup(
    user_id: UUID = Depends(get_current_user_id),
    custody: KeyCustodyService = Depends(get_key_custody_service),
) -> SuccessResponse:
    """
    Email the custodied posting key as a partial backup.

    404 when no key or no email is on file; 500 when decryption or
    delivery fails.

    Auth: session cookie or Bearer session token
    """
    await custody.resend_backup(user_id)
    return SuccessResponse(message="Key backup sent to your email")
