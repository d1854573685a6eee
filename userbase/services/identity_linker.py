"""
Identity Linker.

Attaches an external identity to a user. Existence check and insert are a
single INSERT ... ON CONFLICT DO NOTHING; when nothing is inserted the
conflicting row is read back to decide between an idempotent re-link and a
cross-user collision. A collision never mutates anything.
"""

from datetime import UTC, datetime
from uuid import UUID

from structlog import get_logger

from userbase.db.repositories import Store
from userbase.exceptions import ConflictError
from userbase.models.api import IdentityType
from userbase.models.domain import (
    AlreadyLinkedToSelf,
    DirectoryProfile,
    IdentityData,
    IdentityDraft,
    Linked,
    LinkResult,
    MergeRequired,
)
from userbase.observability.metrics import metrics

logger = get_logger(__name__)


class IdentityLinker:
    """
    Links identities of any type through one generic code path.

    Usage:
        linker = IdentityLinker(store)
        result = await linker.link(user_id, IdentityDraft(type=IdentityType.FARCASTER, ...))
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    async def _find_owner_row(self, draft: IdentityDraft) -> IdentityData | None:
        if draft.external_id:
            existing = await self.store.identities.get_by_external_id(draft.type, draft.external_id)
            if existing is not None:
                return existing
        if draft.handle:
            return await self.store.identities.get_by_handle(draft.type, draft.handle)
        return None

    async def link(
        self,
        acting_user_id: UUID,
        draft: IdentityDraft,
        commit: bool = True,
    ) -> LinkResult:
        """
        Attach draft to acting_user_id.

        The new row is primary only if the user has no identity of that
        type. If a concurrent link claimed the primary slot first, the
        insert is retried once as non-primary.

        Args:
            commit: False when the caller owns the surrounding transaction
        """
        now = datetime.now(UTC)
        is_primary = not await self.store.identities.has_type(acting_user_id, draft.type)

        for primary in (is_primary, False) if is_primary else (False,):
            inserted = await self.store.identities.insert_if_absent(
                acting_user_id, draft, is_primary=primary, verified_at=now
            )
            if inserted is not None:
                if commit:
                    await self.store.commit()
                metrics.record_identity_link(draft.type.value, "linked")
                logger.info(
                    "identity_linked",
                    user_id=str(acting_user_id),
                    identity_type=draft.type.value,
                    identity_id=str(inserted.identity_id),
                    is_primary=inserted.is_primary,
                    is_sponsored=inserted.is_sponsored,
                )
                return Linked(identity=inserted)

            existing = await self._find_owner_row(draft)
            if existing is None:
                # only the primary-per-type index can have fired
                continue

            if existing.user_id == acting_user_id:
                metrics.record_identity_link(draft.type.value, "already_linked")
                logger.info(
                    "identity_already_linked",
                    user_id=str(acting_user_id),
                    identity_type=draft.type.value,
                    identity_id=str(existing.identity_id),
                )
                return AlreadyLinkedToSelf(identity=existing)

            metrics.record_identity_link(draft.type.value, "merge_required")
            logger.warning(
                "identity_merge_required",
                user_id=str(acting_user_id),
                existing_user_id=str(existing.user_id),
                identity_type=draft.type.value,
            )
            return MergeRequired(identity_type=draft.type, existing_user_id=existing.user_id)

        raise ConflictError(f"Could not link {draft.type.value} identity; please retry")


def farcaster_draft(profile: DirectoryProfile) -> IdentityDraft:
    """Identity draft for a verified Farcaster profile."""
    return IdentityDraft(
        type=IdentityType.FARCASTER,
        external_id=profile.fid,
        handle=profile.username or None,
        address=profile.custody_address,
        metadata={
            "pfp_url": profile.pfp_url,
            "display_name": profile.display_name,
            "bio": profile.bio,
            "verifications": list(profile.verifications),
        },
    )


def wallet_draft(address: str) -> IdentityDraft:
    return IdentityDraft(type=IdentityType.EVM, external_id=address, address=address)
