"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
Identity metadata is the one free-form field: it is a profile snapshot
whose shape belongs to the external namespace.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from userbase.models.api import (
    IdentityType,
    KeyType,
    SponsorshipStatus,
    UserStatus,
)

NOT_STORED_MARKER = "NOT_STORED_CONTACT_SPONSOR"


# ============================================================================
# Users and Sessions
# ============================================================================


@dataclass(frozen=True)
class UserData:
    """Application user record."""

    user_id: UUID
    handle: str | None
    display_name: str | None
    avatar_url: str | None
    status: UserStatus
    created_at: datetime


@dataclass(frozen=True)
class SessionData:
    """Stored session; the raw token never leaves the client."""

    session_id: UUID
    user_id: UUID
    refresh_token_hash: str
    expires_at: datetime
    revoked_at: datetime | None

    def is_usable(self, now: datetime) -> bool:
        return self.revoked_at is None and now < self.expires_at


# ============================================================================
# Identities
# ============================================================================


@dataclass(frozen=True)
class IdentityDraft:
    """An identity about to be attached to a user."""

    type: IdentityType
    external_id: str | None = None
    handle: str | None = None
    address: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    is_sponsored: bool = False
    sponsor_user_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.external_id and not self.handle:
            raise ValueError("identity needs an external_id or a handle")
        if self.address is not None:
            object.__setattr__(self, "address", self.address.lower())
        if self.type == IdentityType.EVM and self.external_id:
            object.__setattr__(self, "external_id", self.external_id.lower())
        if self.is_sponsored and self.sponsor_user_id is None:
            raise ValueError("sponsored identity needs a sponsor_user_id")


@dataclass(frozen=True)
class IdentityData:
    """A persisted identity."""

    identity_id: UUID
    user_id: UUID
    type: IdentityType
    handle: str | None
    address: str | None
    external_id: str | None
    is_primary: bool
    verified_at: datetime | None
    metadata: dict[str, Any]
    is_sponsored: bool
    sponsor_user_id: UUID | None
    created_at: datetime


@dataclass(frozen=True)
class Linked:
    """A new identity row was created."""

    identity: IdentityData
    outcome: str = "linked"


@dataclass(frozen=True)
class AlreadyLinkedToSelf:
    """The identity already belonged to the acting user; nothing changed."""

    identity: IdentityData
    outcome: str = "already_linked"


@dataclass(frozen=True)
class MergeRequired:
    """The identity belongs to another user; nothing changed."""

    identity_type: IdentityType
    existing_user_id: UUID
    outcome: str = "merge_required"


LinkResult = Linked | AlreadyLinkedToSelf | MergeRequired


# ============================================================================
# External Namespaces
# ============================================================================


@dataclass(frozen=True)
class DirectoryProfile:
    """Canonical Farcaster profile as reported by the directory."""

    fid: str
    username: str
    display_name: str | None
    pfp_url: str | None
    bio: str | None
    custody_address: str | None
    verifications: tuple[str, ...] = ()


@dataclass(frozen=True)
class HiveAccount:
    """On-chain account fields the service reads."""

    name: str
    posting_key_auths: tuple[str, ...]
    posting_json_metadata: str = ""


@dataclass(frozen=True)
class ChainVerification:
    """Outcome of checking an account-creation transaction."""

    success: bool
    transaction_id: str
    username: str
    block_number: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class ProfileSnapshot:
    """Public profile fields pushed into a new chain account."""

    name: str | None
    profile_image: str | None
    about: str | None
    website: str | None

    def as_posting_metadata(self) -> dict[str, Any]:
        profile = {
            "name": self.name,
            "profile_image": self.profile_image,
            "about": self.about,
            "website": self.website,
        }
        return {"profile": {k: v for k, v in profile.items() if v}}


# ============================================================================
# Credentials
# ============================================================================


@dataclass(frozen=True)
class EncryptedSecret:
    """AES-GCM output, each part base64 encoded."""

    ciphertext: str
    iv: str
    auth_tag: str


@dataclass(frozen=True)
class HiveAccountKeys:
    """Credential bundle for a chain account, one key pair per authority tier."""

    owner: str
    owner_public: str
    active: str
    active_public: str
    posting: str
    posting_public: str
    memo: str
    memo_public: str

    @classmethod
    def posting_only(cls, posting: str, posting_public: str) -> "HiveAccountKeys":
        """Bundle for a partial backup: only the custodied posting tier is real."""
        return cls(
            owner=NOT_STORED_MARKER,
            owner_public=NOT_STORED_MARKER,
            active=NOT_STORED_MARKER,
            active_public=NOT_STORED_MARKER,
            posting=posting,
            posting_public=posting_public,
            memo=NOT_STORED_MARKER,
            memo_public=NOT_STORED_MARKER,
        )

    @property
    def is_partial(self) -> bool:
        return self.owner == NOT_STORED_MARKER

    def __repr__(self) -> str:
        return f"HiveAccountKeys(posting_public={self.posting_public}, partial={self.is_partial})"


@dataclass(frozen=True)
class CustodialKeyData:
    """Encrypted posting key held for a user."""

    user_id: UUID
    hive_username: str
    encrypted_posting_key: str
    encryption_iv: str
    encryption_auth_tag: str
    key_type: KeyType
    created_at: datetime
    updated_at: datetime
    last_used_at: datetime | None

    @property
    def secret(self) -> EncryptedSecret:
        return EncryptedSecret(
            ciphertext=self.encrypted_posting_key,
            iv=self.encryption_iv,
            auth_tag=self.encryption_auth_tag,
        )


# ============================================================================
# Sponsorships
# ============================================================================


@dataclass(frozen=True)
class SponsorshipIntent:
    """Validated request to sponsor a new chain account."""

    sponsor_user_id: UUID
    lite_user_id: UUID
    hive_username: str
    cost_type: str
    cost_amount: Decimal

    def __post_init__(self) -> None:
        if self.cost_amount < 0:
            raise ValueError(f"Cost amount cannot be negative: {self.cost_amount}")
        if not self.hive_username:
            raise ValueError("hive_username cannot be empty")


@dataclass(frozen=True)
class SponsorshipData:
    """A persisted sponsorship."""

    sponsorship_id: UUID
    lite_user_id: UUID
    sponsor_user_id: UUID
    hive_username: str
    cost_type: str
    cost_amount: Decimal
    hive_tx_id: str | None
    status: SponsorshipStatus
    error_message: str | None
    created_at: datetime
    completed_at: datetime | None


@dataclass(frozen=True)
class SideEffectOutcome:
    """Result of one best-effort step."""

    effect: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class ProcessResult:
    """Structured outcome of processing a sponsorship."""

    sponsorship_id: UUID
    status: SponsorshipStatus
    account_created: bool = False
    key_encrypted: bool = False
    email_sent: bool = False
    profile_updated: bool = False
    block_number: int | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == SponsorshipStatus.COMPLETED


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: str | None = None


@dataclass(frozen=True)
class SponsorshipInfo:
    """Sponsorship badge data derived from a sponsored chain identity."""

    sponsored: bool
    hive_username: str | None = None
    sponsor_username: str | None = None
    sponsored_at: datetime | None = None
