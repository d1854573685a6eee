"""
Sponsorship Orchestrator.

Runs the account sponsorship workflow:

    pending -> processing -> completed | failed

Required steps (verify, resolve contact, custody, attach identity) decide
the outcome. Custody and attach are written in the same transaction as the
completed transition, so a crash between them leaves nothing half-written.
A required-step failure is recorded on the row as error_message and comes
back as a ProcessResult, never as an exception.

Best-effort steps (profile sync, credential email) run concurrently after
the completed commit. Each reports through side_effects_total and a log
event; neither can fail the workflow.

NO DICTIONARIES - Results are typed dataclasses.
"""

import asyncio
from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from structlog import get_logger

from userbase.config import Settings
from userbase.db.repositories import Store
from userbase.exceptions import (
    AccountNameTakenError,
    AuthorizationError,
    InvalidStateTransitionError,
    MissingFundingAccountError,
    SelfSponsorshipError,
    SponsorshipNotFoundError,
    UserbaseError,
    UserNotFoundError,
)
from userbase.models.api import IdentityType, KeyType, SponsorshipStatus, UserStatus
from userbase.models.domain import (
    EligibilityResult,
    HiveAccountKeys,
    IdentityData,
    IdentityDraft,
    MergeRequired,
    ProcessResult,
    ProfileSnapshot,
    SideEffectOutcome,
    SponsorshipData,
    SponsorshipInfo,
    SponsorshipIntent,
)
from userbase.observability.logging import log_context
from userbase.observability.metrics import metrics, track_step
from userbase.observability.tracing import trace_operation
from userbase.services.credential_vault import CredentialVault
from userbase.services.hive_client import ChainVerifier, HiveClient, ensure_valid_account_name
from userbase.services.hive_keys import HiveProfilePublisher
from userbase.services.identity_linker import IdentityLinker
from userbase.services.notifications import EmailDispatcher

logger = get_logger(__name__)

CREATED_VIA = "skatehive_sponsorship"
PROFILE_ABOUT = "Skatehive member • Sponsored account"


class StepFailed(Exception):
    """A required workflow step failed; carries the text stored on the row."""

    def __init__(self, step: str, reason: str) -> None:
        self.step = step
        self.reason = reason
        super().__init__(f"{step}: {reason}")

    @property
    def public_message(self) -> str:
        if self.step == "verify":
            return f"Transaction verification failed: {self.reason}"
        return self.reason


async def resolve_sponsor_username(
    store: Store,
    sponsor_user_id: UUID,
    identity: IdentityData | None,
    default_label: str,
) -> str:
    """Sponsor's Hive handle, then the handle recorded at sponsorship time, then default_label."""
    sponsor_identity = await store.identities.get_primary(sponsor_user_id, IdentityType.HIVE)
    if sponsor_identity is not None and sponsor_identity.handle:
        return sponsor_identity.handle
    if identity is not None and identity.metadata.get("sponsor_username"):
        return str(identity.metadata["sponsor_username"])
    return default_label


@contextmanager
def _required_step(step: str, sponsorship_id: UUID) -> Iterator[None]:
    """Time and trace one required step, converting its errors to StepFailed."""
    with track_step(step), trace_operation(
        f"sponsorship.{step}", sponsorship_id=str(sponsorship_id)
    ):
        try:
            yield
        except StepFailed:
            raise
        except UserbaseError as exc:
            raise StepFailed(step, exc.message) from exc
        except Exception as exc:
            logger.exception("sponsorship_step_error", step=step)
            raise StepFailed(step, f"Internal error during {step}") from exc


class SponsorshipService:
    """
    Create, process and describe sponsorships.

    Usage:
        service = SponsorshipService(store, hive, verifier, vault, linker,
                                     notifier, publisher, settings)
        sponsorship = await service.create(alice_id, bob_id, "bobskates")
        result = await service.process(alice_id, sponsorship.sponsorship_id, tx_id, keys)
    """

    def __init__(
        self,
        store: Store,
        hive: HiveClient,
        verifier: ChainVerifier,
        vault: CredentialVault,
        linker: IdentityLinker,
        notifier: EmailDispatcher,
        profile_publisher: HiveProfilePublisher,
        settings: Settings,
    ) -> None:
        self.store = store
        self.hive = hive
        self.verifier = verifier
        self.vault = vault
        self.linker = linker
        self.notifier = notifier
        self.profile_publisher = profile_publisher
        self.settings = settings

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        sponsor_user_id: UUID,
        lite_user_id: UUID,
        hive_username: str,
        cost_type: str | None = None,
        cost_amount: Decimal | None = None,
    ) -> SponsorshipData:
        """
        Open a pending sponsorship.

        Preconditions are checked in order and the first failure wins; no
        row is written unless all pass.

        Raises:
            SelfSponsorshipError: sponsor and recipient are the same user
            MissingFundingAccountError: sponsor has no Hive identity
            InvalidAccountNameError: hive_username fails format rules
            AccountNameTakenError: hive_username already exists on chain
            ChainRPCError: name availability could not be checked
            UserNotFoundError: recipient does not exist
            AlreadySponsoredOrPendingError: recipient has a live sponsorship
        """
        if sponsor_user_id == lite_user_id:
            raise SelfSponsorshipError(sponsor_user_id)

        if not await self.store.identities.has_type(sponsor_user_id, IdentityType.HIVE):
            raise MissingFundingAccountError(sponsor_user_id)

        ensure_valid_account_name(hive_username)

        if await self.hive.account_exists(hive_username):
            raise AccountNameTakenError(hive_username)

        if await self.store.users.get(lite_user_id) is None:
            raise UserNotFoundError(lite_user_id)

        intent = SponsorshipIntent(
            sponsor_user_id=sponsor_user_id,
            lite_user_id=lite_user_id,
            hive_username=hive_username,
            cost_type=cost_type or self.settings.sponsorship_default_cost_type,
            cost_amount=(
                cost_amount if cost_amount is not None else self.settings.sponsorship_default_cost
            ),
        )
        sponsorship = await self.store.sponsorships.create(intent)
        await self.store.commit()

        metrics.record_sponsorship_transition(SponsorshipStatus.PENDING.value)
        logger.info(
            "sponsorship_created",
            sponsorship_id=str(sponsorship.sponsorship_id),
            sponsor_user_id=str(sponsor_user_id),
            lite_user_id=str(lite_user_id),
            hive_username=hive_username,
            cost_type=intent.cost_type,
            cost_amount=str(intent.cost_amount),
        )
        return sponsorship

    # ------------------------------------------------------------------
    # Process
    # ------------------------------------------------------------------

    async def process(
        self,
        acting_user_id: UUID,
        sponsorship_id: UUID,
        transaction_id: str,
        keys: HiveAccountKeys,
    ) -> ProcessResult:
        """
        Drive a pending sponsorship to completed or failed.

        Errors before the processing claim (unknown id, wrong sponsor,
        wrong state) raise. After the claim every outcome is returned as
        a ProcessResult.

        Raises:
            SponsorshipNotFoundError: unknown sponsorship_id
            AuthorizationError: acting user is not the sponsor
            InvalidStateTransitionError: sponsorship is not pending
        """
        existing = await self.store.sponsorships.get(sponsorship_id)
        if existing is None:
            raise SponsorshipNotFoundError(sponsorship_id)
        if existing.sponsor_user_id != acting_user_id:
            raise AuthorizationError("Only the sponsor can process this sponsorship")

        claimed = await self.store.sponsorships.claim_for_processing(sponsorship_id)
        if claimed is None:
            current = await self.store.sponsorships.get(sponsorship_id)
            status = current.status.value if current is not None else existing.status.value
            raise InvalidStateTransitionError(sponsorship_id, status)
        await self.store.commit()
        metrics.record_sponsorship_transition(SponsorshipStatus.PROCESSING.value)

        with log_context(sponsorship_id=str(sponsorship_id)):
            logger.info(
                "sponsorship_processing",
                hive_username=claimed.hive_username,
                transaction_id=transaction_id,
            )
            try:
                block_number, email, sponsor_username = await self._run_required_steps(
                    claimed, transaction_id, keys
                )
            except StepFailed as failure:
                return await self._fail(claimed, transaction_id, failure)

            metrics.record_sponsorship_transition(SponsorshipStatus.COMPLETED.value)
            logger.info(
                "sponsorship_completed",
                hive_username=claimed.hive_username,
                block_number=block_number,
            )

            profile, notified = await asyncio.gather(
                self._run_side_effect("profile_sync", self._sync_profile(claimed, keys)),
                self._run_side_effect(
                    "credential_email",
                    self.notifier.send_credentials(
                        email, claimed.hive_username, sponsor_username, keys
                    ),
                ),
            )

        return ProcessResult(
            sponsorship_id=sponsorship_id,
            status=SponsorshipStatus.COMPLETED,
            account_created=True,
            key_encrypted=True,
            email_sent=notified.success,
            profile_updated=profile.success,
            block_number=block_number,
        )

    async def _run_required_steps(
        self,
        sponsorship: SponsorshipData,
        transaction_id: str,
        keys: HiveAccountKeys,
    ) -> tuple[int | None, str, str]:
        sponsorship_id = sponsorship.sponsorship_id

        with _required_step("verify", sponsorship_id):
            verification = await self.verifier.verify_account_creation(
                transaction_id, sponsorship.hive_username
            )
            if not verification.success:
                raise StepFailed("verify", verification.error or "verification failed")

        with _required_step("resolve_contact", sponsorship_id):
            email = await self.store.users.get_contact_email(sponsorship.lite_user_id)
            if not email:
                raise StepFailed("resolve_contact", "User email not found")
            sponsor_username = await self.sponsor_username(sponsorship.sponsor_user_id)

        with _required_step("custody", sponsorship_id):
            secret = self.vault.encrypt(keys.posting)
            await self.store.keys.upsert(
                sponsorship.lite_user_id, sponsorship.hive_username, secret, KeyType.SPONSORED
            )

        with _required_step("attach", sponsorship_id):
            draft = IdentityDraft(
                type=IdentityType.HIVE,
                handle=sponsorship.hive_username,
                external_id=sponsorship.hive_username,
                metadata={
                    "sponsored": True,
                    "sponsor_user_id": str(sponsorship.sponsor_user_id),
                    "sponsor_username": sponsor_username,
                    "created_via": CREATED_VIA,
                },
                is_sponsored=True,
                sponsor_user_id=sponsorship.sponsor_user_id,
            )
            linked = await self.linker.link(sponsorship.lite_user_id, draft, commit=False)
            if isinstance(linked, MergeRequired):
                raise StepFailed("attach", "Hive account is already linked to another user")

        with _required_step("complete", sponsorship_id):
            completed = await self.store.sponsorships.mark_completed(
                sponsorship_id, transaction_id, datetime.now(UTC)
            )
            if completed is None:
                raise StepFailed("complete", "Sponsorship left processing state unexpectedly")
            await self.store.commit()

        return verification.block_number, email, sponsor_username

    async def _fail(
        self,
        sponsorship: SponsorshipData,
        transaction_id: str,
        failure: StepFailed,
    ) -> ProcessResult:
        # discard custody/attach writes from the open transaction
        await self.store.rollback()
        await self.store.sponsorships.mark_failed(
            sponsorship.sponsorship_id, failure.reason, transaction_id
        )
        await self.store.commit()

        metrics.record_sponsorship_transition(SponsorshipStatus.FAILED.value)
        metrics.record_error(f"sponsorship_{failure.step}_failed", "process_sponsorship")
        logger.warning(
            "sponsorship_failed",
            step=failure.step,
            reason=failure.reason,
            hive_username=sponsorship.hive_username,
            transaction_id=transaction_id,
        )
        return ProcessResult(
            sponsorship_id=sponsorship.sponsorship_id,
            status=SponsorshipStatus.FAILED,
            account_created=failure.step != "verify",
            error=failure.public_message,
        )

    async def _sync_profile(self, sponsorship: SponsorshipData, keys: HiveAccountKeys) -> None:
        user = await self.store.users.get(sponsorship.lite_user_id)
        name = (user.handle or user.display_name) if user is not None else None
        snapshot = ProfileSnapshot(
            name=name or sponsorship.hive_username,
            profile_image=user.avatar_url if user is not None else None,
            about=PROFILE_ABOUT,
            website=self.settings.app_base_url,
        )
        await self.profile_publisher.publish(sponsorship.hive_username, keys.posting, snapshot)

    @staticmethod
    async def _run_side_effect(effect: str, operation: Awaitable[None]) -> SideEffectOutcome:
        """Await a best-effort step and report it; never raises."""
        with track_step(effect), trace_operation(f"sponsorship.{effect}"):
            try:
                await operation
            except UserbaseError as exc:
                metrics.record_side_effect(effect, success=False)
                logger.warning("sponsorship_side_effect_failed", effect=effect, error=exc.message)
                return SideEffectOutcome(effect=effect, success=False, error=exc.message)
            except Exception as exc:
                metrics.record_side_effect(effect, success=False)
                logger.exception("sponsorship_side_effect_error", effect=effect)
                return SideEffectOutcome(effect=effect, success=False, error=type(exc).__name__)

        metrics.record_side_effect(effect, success=True)
        logger.info("sponsorship_side_effect_succeeded", effect=effect)
        return SideEffectOutcome(effect=effect, success=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def sponsor_username(
        self, sponsor_user_id: UUID, identity: IdentityData | None = None
    ) -> str:
        return await resolve_sponsor_username(
            self.store, sponsor_user_id, identity, self.settings.default_sponsor_label
        )

    async def check_eligibility(self, user_id: UUID) -> EligibilityResult:
        """
        Whether a user can receive a sponsorship.

        Raises:
            UserNotFoundError: user does not exist
        """
        user = await self.store.users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if user.status != UserStatus.ACTIVE:
            return EligibilityResult(eligible=False, reason="User account is not active")

        existing = await self.store.sponsorships.get_for_recipient(user_id)
        if existing is not None and existing.status != SponsorshipStatus.FAILED:
            if existing.status == SponsorshipStatus.COMPLETED:
                return EligibilityResult(eligible=False, reason="Already sponsored")
            return EligibilityResult(eligible=False, reason="Sponsorship pending")

        if await self.store.identities.has_type(user_id, IdentityType.HIVE):
            return EligibilityResult(eligible=False, reason="Already has Hive account")

        return EligibilityResult(eligible=True)

    async def get_info(self, user_id: UUID) -> SponsorshipInfo:
        """Sponsorship badge data; sponsored=False when the user has no sponsored identity."""
        identity = await self.store.identities.get_sponsored(user_id)
        if identity is None:
            return SponsorshipInfo(sponsored=False)

        sponsor_username = None
        if identity.sponsor_user_id is not None:
            sponsor_username = await self.sponsor_username(identity.sponsor_user_id, identity)

        return SponsorshipInfo(
            sponsored=True,
            hive_username=identity.handle,
            sponsor_username=sponsor_username,
            sponsored_at=identity.verified_at,
        )
