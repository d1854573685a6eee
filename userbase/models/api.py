"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class UserStatus(str, Enum):
    """User account status enumeration."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class IdentityType(str, Enum):
    """Identity namespace discriminant."""

    HIVE = "hive"  # chain account
    EVM = "evm"  # wallet address
    FARCASTER = "farcaster"  # social graph


class SponsorshipStatus(str, Enum):
    """Sponsorship workflow state. Transitions only move forward."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CostType(str, Enum):
    """How the sponsor paid for account creation."""

    HIVE_TRANSFER = "hive_transfer"
    ACCOUNT_TOKEN = "account_token"


class KeyType(str, Enum):
    """Origin of a custodial key record."""

    SPONSORED = "sponsored"
    USER_PROVIDED = "user_provided"


class AuthMethodType(str, Enum):
    """Login method types for lite accounts."""

    EMAIL_MAGIC = "email_magic"


# ============================================================================
# Shared
# ============================================================================


class ErrorResponse(BaseModel):
    """Body rendered for every domain error."""

    error: str
    message: str
    details: dict[str, Any] | None = None


class SuccessResponse(BaseModel):
    success: bool = True
    message: str | None = None


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: str
    version: str


# ============================================================================
# Identity Models
# ============================================================================


class IdentityResponse(BaseModel):
    """A linked identity as returned to clients."""

    id: UUID
    user_id: UUID
    type: IdentityType
    handle: str | None = None
    address: str | None = None
    external_id: str | None = None
    is_primary: bool
    is_sponsored: bool = False
    sponsor_user_id: UUID | None = None
    verified_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SocialVerifyRequest(BaseModel):
    """POST /identities/social/verify request body."""

    fid: str = Field(
        ...,
        min_length=1,
        max_length=32,
        validation_alias=AliasChoices("fid", "external_id"),
    )
    message: str = Field(..., min_length=1, max_length=4096)
    signature: str = Field(..., min_length=1, max_length=512)


class WalletVerifyRequest(BaseModel):
    """POST /identities/wallet/verify request body."""

    address: str = Field(..., min_length=42, max_length=42)
    message: str = Field(..., min_length=1, max_length=4096)
    signature: str = Field(..., min_length=1, max_length=512)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v.startswith("0x"):
            raise ValueError("address must be 0x-prefixed")
        return v.lower()


class LinkIdentityResponse(BaseModel):
    """Successful or idempotent identity link."""

    success: bool = True
    already_linked: bool = False
    identity: IdentityResponse


class LinkChallengeResponse(BaseModel):
    """GET /identities/social/challenge response."""

    fid: str
    username: str
    message: str
    nonce: str
    issued_at: str


# ============================================================================
# Sponsorship Models
# ============================================================================


class CreateSponsorshipRequest(BaseModel):
    """POST /sponsorships/create request body."""

    lite_user_id: UUID
    hive_username: str = Field(..., min_length=1, max_length=32)
    cost_type: CostType = CostType.HIVE_TRANSFER
    cost_amount: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=3)

    @field_validator("hive_username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        return v.strip().lower().lstrip("@")


class CreateSponsorshipResponse(BaseModel):
    success: bool = True
    sponsorship_id: UUID
    status: SponsorshipStatus
    message: str


class HiveAccountKeysModel(BaseModel):
    """Generated credential bundle for a new chain account (camelCase accepted)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    owner: str = Field(..., min_length=1)
    owner_public: str = Field(..., min_length=1)
    active: str = Field(..., min_length=1)
    active_public: str = Field(..., min_length=1)
    posting: str = Field(..., min_length=1)
    posting_public: str = Field(..., min_length=1)
    memo: str = Field(..., min_length=1)
    memo_public: str = Field(..., min_length=1)


class ProcessSponsorshipRequest(BaseModel):
    """POST /sponsorships/process request body."""

    sponsorship_id: UUID
    transaction_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("transaction_id", "hive_tx_id"),
    )
    keys: HiveAccountKeysModel


class ProcessDetails(BaseModel):
    account_created: bool
    key_encrypted: bool
    email_sent: bool
    profile_updated: bool = False


class ProcessSponsorshipResponse(BaseModel):
    success: bool
    status: SponsorshipStatus
    message: str
    details: ProcessDetails
    block_number: int | None = None
    error: str | None = None


class EligibilityResponse(BaseModel):
    eligible: bool
    reason: str | None = None


class MySponsorshipResponse(BaseModel):
    """GET /sponsorships/my-info response."""

    sponsored: bool
    sponsor_username: str | None = None
    hive_username: str | None = None
    sponsored_at: datetime | None = None


class SponsorshipInfoResponse(BaseModel):
    """GET /sponsorships/info/{user_id} response (public badge)."""

    sponsored: bool
    hive_username: str | None = None
    sponsor_username: str | None = None


# ============================================================================
# Custodial Key Models
# ============================================================================


class StorePostingKeyRequest(BaseModel):
    """POST /keys/posting request body."""

    posting_key: str = Field(..., min_length=1, max_length=64)
    handle: str | None = Field(None, max_length=32)


class PostingKeyStatusResponse(BaseModel):
    """GET /keys/posting response."""

    stored: bool
    custody: str
    status: str | None = None
    key_type: KeyType | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None
    rotation_count: int = 0


class HiveKeyInfoResponse(BaseModel):
    """GET /keys/hive-info response."""

    has_key: bool
    hive_username: str | None = None
    key_type: KeyType | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None
