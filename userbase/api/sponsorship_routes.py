"""
Sponsorship API routes - create, process and describe account sponsorships.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from userbase.api.dependencies import (
    get_current_user_id,
    get_read_sponsorship_service,
    get_sponsorship_service,
)
from userbase.models.api import (
    CreateSponsorshipRequest,
    CreateSponsorshipResponse,
    EligibilityResponse,
    ErrorResponse,
    MySponsorshipResponse,
    ProcessDetails,
    ProcessSponsorshipRequest,
    ProcessSponsorshipResponse,
    SponsorshipInfoResponse,
)
from userbase.models.domain import HiveAccountKeys
from userbase.services.sponsorship import SponsorshipService

router = APIRouter(tags=["sponsorships"])


@router.post(
    "/sponsorships/create",
    response_model=CreateSponsorshipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_sponsorship(
    request: CreateSponsorshipRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: SponsorshipService = Depends(get_sponsorship_service),
) -> CreateSponsorshipResponse:
    """
    Open a pending sponsorship for a lite user.

    The session user is the sponsor and must own a Hive account. The
    requested username must be valid and still free on chain.

    Auth: session cookie or Bearer session token
    """
    sponsorship = await service.create(
        sponsor_user_id=user_id,
        lite_user_id=request.lite_user_id,
        hive_username=request.hive_username,
        cost_type=request.cost_type.value,
        cost_amount=request.cost_amount,
    )
    return CreateSponsorshipResponse(
        sponsorship_id=sponsorship.sponsorship_id,
        status=sponsorship.status,
        message="Sponsorship created. Broadcast the account creation, then process it.",
    )


@router.post(
    "/sponsorships/process",
    response_model=ProcessSponsorshipResponse,
    responses={400: {"model": ProcessSponsorshipResponse}, 404: {"model": ErrorResponse}},
)
async def process_sponsorship(
    request: ProcessSponsorshipRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: SponsorshipService = Depends(get_sponsorship_service),
) -> ProcessSponsorshipResponse | JSONResponse:
    """
    Verify the account creation on chain and hand the account to its recipient.

    A failed workflow is recorded on the sponsorship and returned as a 400
    with the same body shape as success.

    Auth: session cookie or Bearer session token (sponsor only)
    """
    keys = HiveAccountKeys(**request.keys.model_dump())
    result = await service.process(user_id, request.sponsorship_id, request.transaction_id, keys)

    response = ProcessSponsorshipResponse(
        success=result.success,
        status=result.status,
        message="Sponsorship completed successfully" if result.success else result.error or "",
        details=ProcessDetails(
            account_created=result.account_created,
            key_encrypted=result.key_encrypted,
            email_sent=result.email_sent,
            profile_updated=result.profile_updated,
        ),
        block_number=result.block_number,
        error=result.error,
    )
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content=response.model_dump(mode="json")
        )
    return response


@router.get("/sponsorships/eligible/{user_id}", response_model=EligibilityResponse)
async def check_eligibility(
    user_id: UUID,
    service: SponsorshipService = Depends(get_read_sponsorship_service),
) -> EligibilityResponse:
    """Whether a user can be sponsored. Public."""
    result = await service.check_eligibility(user_id)
    return EligibilityResponse(eligible=result.eligible, reason=result.reason)


@router.get("/sponsorships/my-info", response_model=MySponsorshipResponse)
async def get_my_sponsorship(
    user_id: UUID = Depends(get_current_user_id),
    service: SponsorshipService = Depends(get_sponsorship_service),
) -> MySponsorshipResponse:
    info = await service.get_info(user_id)
    return MySponsorshipResponse(
        sponsored=info.sponsored,
        sponsor_username=info.sponsor_username,
        hive_username=info.hive_username,
        sponsored_at=info.sponsored_at,
    )


@router.get("/sponsorships/info/{user_id}", response_model=SponsorshipInfoResponse)
async def get_sponsorship_badge(
    user_id: UUID,
    service: SponsorshipService = Depends(get_read_sponsorship_service),
) -> SponsorshipInfoResponse:
    """Public badge data for profile pages."""
    info = await service.get_info(user_id)
    return SponsorshipInfoResponse(
        sponsored=info.sponsored,
        hive_username=info.hive_username,
        sponsor_username=info.sponsor_username,
    )
