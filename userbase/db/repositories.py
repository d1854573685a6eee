"""
Repositories - typed persistence operations over an AsyncSession.

Every mutation that guards an invariant is a single constrained statement:
identity links use INSERT ... ON CONFLICT DO NOTHING RETURNING, the
pending -> processing claim is a conditional UPDATE ... RETURNING, and key
custody is INSERT ... ON CONFLICT (user_id) DO UPDATE.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import delete, exists, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from userbase.db.models import (
    AuthMethod,
    CustodialKeyRecord,
    Identity,
    Session,
    Sponsorship,
    User,
    utc_now,
)
from userbase.exceptions import AlreadySponsoredOrPendingError
from userbase.models.api import (
    AuthMethodType,
    IdentityType,
    KeyType,
    SponsorshipStatus,
    UserStatus,
)
from userbase.models.domain import (
    CustodialKeyData,
    EncryptedSecret,
    IdentityData,
    IdentityDraft,
    SessionData,
    SponsorshipData,
    SponsorshipIntent,
    UserData,
)

logger = get_logger(__name__)

ACTIVE_SPONSORSHIP_INDEX = "uq_sponsorships_active_recipient"


# ============================================================================
# Row conversion
# ============================================================================


def _user_data(row: User) -> UserData:
    return UserData(
        user_id=row.id,
        handle=row.handle,
        display_name=row.display_name,
        avatar_url=row.avatar_url,
        status=UserStatus(row.status),
        created_at=row.created_at,
    )


def _session_data(row: Session) -> SessionData:
    return SessionData(
        session_id=row.id,
        user_id=row.user_id,
        refresh_token_hash=row.refresh_token_hash,
        expires_at=row.expires_at,
        revoked_at=row.revoked_at,
    )


def _identity_data(row: Identity) -> IdentityData:
    return IdentityData(
        identity_id=row.id,
        user_id=row.user_id,
        type=IdentityType(row.type),
        handle=row.handle,
        address=row.address,
        external_id=row.external_id,
        is_primary=row.is_primary,
        verified_at=row.verified_at,
        metadata=dict(row.identity_metadata or {}),
        is_sponsored=row.is_sponsored,
        sponsor_user_id=row.sponsor_user_id,
        created_at=row.created_at,
    )


def _sponsorship_data(row: Sponsorship) -> SponsorshipData:
    return SponsorshipData(
        sponsorship_id=row.id,
        lite_user_id=row.lite_user_id,
        sponsor_user_id=row.sponsor_user_id,
        hive_username=row.hive_username,
        cost_type=row.cost_type,
        cost_amount=row.cost_amount,
        hive_tx_id=row.hive_tx_id,
        status=SponsorshipStatus(row.status),
        error_message=row.error_message,
        created_at=row.created_at,
        completed_at=row.completed_at,
    )


def _key_data(row: CustodialKeyRecord) -> CustodialKeyData:
    return CustodialKeyData(
        user_id=row.user_id,
        hive_username=row.hive_username,
        encrypted_posting_key=row.encrypted_posting_key,
        encryption_iv=row.encryption_iv,
        encryption_auth_tag=row.encryption_auth_tag,
        key_type=KeyType(row.key_type),
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_used_at=row.last_used_at,
    )


# ============================================================================
# Repositories
# ============================================================================


class UserRepository:
    """Read access to users and their contact methods."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: UUID) -> UserData | None:
        row = await self.session.get(User, user_id)
        return _user_data(row) if row is not None else None

    async def get_contact_email(self, user_id: UUID) -> str | None:
        """Oldest email_magic identifier for the user."""
        stmt = (
            select(AuthMethod.identifier)
            .where(
                AuthMethod.user_id == user_id,
                AuthMethod.type == AuthMethodType.EMAIL_MAGIC.value,
            )
            .order_by(AuthMethod.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class SessionRepository:
    """Session lookup by token hash."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_token_hash(self, token_hash: str) -> SessionData | None:
        stmt = select(Session).where(Session.refresh_token_hash == token_hash)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _session_data(row) if row is not None else None


class IdentityRepository:
    """Identity rows, keyed globally by (type, external_id) and (type, handle)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_if_absent(
        self,
        user_id: UUID,
        draft: IdentityDraft,
        is_primary: bool,
        verified_at: datetime,
    ) -> IdentityData | None:
        """
        Insert the identity unless any unique index already covers it.

        Returns None on conflict; the caller decides which index fired.
        """
        stmt = (
            pg_insert(Identity)
            .values(
                id=uuid4(),
                user_id=user_id,
                type=draft.type.value,
                handle=draft.handle,
                address=draft.address,
                external_id=draft.external_id,
                is_primary=is_primary,
                verified_at=verified_at,
                identity_metadata=draft.metadata,
                is_sponsored=draft.is_sponsored,
                sponsor_user_id=draft.sponsor_user_id,
            )
            .on_conflict_do_nothing()
            .returning(Identity)
        )
        result = await self.session.scalars(stmt)
        row = result.first()
        return _identity_data(row) if row is not None else None

    async def get_by_external_id(
        self, identity_type: IdentityType, external_id: str
    ) -> IdentityData | None:
        stmt = select(Identity).where(
            Identity.type == identity_type.value, Identity.external_id == external_id
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _identity_data(row) if row is not None else None

    async def get_by_handle(self, identity_type: IdentityType, handle: str) -> IdentityData | None:
        stmt = select(Identity).where(
            Identity.type == identity_type.value, Identity.handle == handle
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _identity_data(row) if row is not None else None

    async def has_type(self, user_id: UUID, identity_type: IdentityType) -> bool:
        stmt = select(
            exists().where(Identity.user_id == user_id, Identity.type == identity_type.value)
        )
        result = await self.session.execute(stmt)
        return bool(result.scalar())

    async def get_primary(self, user_id: UUID, identity_type: IdentityType) -> IdentityData | None:
        """Primary identity of a type, falling back to the oldest one."""
        stmt = (
            select(Identity)
            .where(Identity.user_id == user_id, Identity.type == identity_type.value)
            .order_by(Identity.is_primary.desc(), Identity.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _identity_data(row) if row is not None else None

    async def get_sponsored(self, user_id: UUID) -> IdentityData | None:
        """The sponsored chain-account identity of a user, if any."""
        stmt = (
            select(Identity)
            .where(
                Identity.user_id == user_id,
                Identity.type == IdentityType.HIVE.value,
                Identity.is_sponsored.is_(True),
            )
            .order_by(Identity.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _identity_data(row) if row is not None else None


class SponsorshipRepository:
    """Sponsorship rows and their forward-only status transitions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, intent: SponsorshipIntent) -> SponsorshipData:
        """
        Insert a pending sponsorship.

        The partial unique index on lite_user_id is the only duplicate
        guard; a violation surfaces as AlreadySponsoredOrPendingError.
        """
        row = Sponsorship(
            id=uuid4(),
            lite_user_id=intent.lite_user_id,
            sponsor_user_id=intent.sponsor_user_id,
            hive_username=intent.hive_username,
            cost_type=intent.cost_type,
            cost_amount=intent.cost_amount,
            status=SponsorshipStatus.PENDING.value,
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            if ACTIVE_SPONSORSHIP_INDEX not in str(exc.orig):
                raise
            logger.info(
                "sponsorship_duplicate_rejected",
                lite_user_id=str(intent.lite_user_id),
            )
            raise AlreadySponsoredOrPendingError(intent.lite_user_id) from exc

        return _sponsorship_data(row)

    async def get(self, sponsorship_id: UUID) -> SponsorshipData | None:
        row = await self.session.get(Sponsorship, sponsorship_id)
        return _sponsorship_data(row) if row is not None else None

    async def get_for_recipient(self, lite_user_id: UUID) -> SponsorshipData | None:
        """Most relevant sponsorship for a recipient: live ones before failed ones."""
        stmt = (
            select(Sponsorship)
            .where(Sponsorship.lite_user_id == lite_user_id)
            .order_by(
                (Sponsorship.status == SponsorshipStatus.FAILED.value).asc(),
                Sponsorship.created_at.desc(),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _sponsorship_data(row) if row is not None else None

    async def _transition(
        self,
        sponsorship_id: UUID,
        from_status: SponsorshipStatus,
        to_status: SponsorshipStatus,
        **values: object,
    ) -> SponsorshipData | None:
        stmt = (
            update(Sponsorship)
            .where(Sponsorship.id == sponsorship_id, Sponsorship.status == from_status.value)
            .values(status=to_status.value, updated_at=utc_now(), **values)
            .returning(Sponsorship)
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalars(stmt)
        row = result.first()
        return _sponsorship_data(row) if row is not None else None

    async def claim_for_processing(self, sponsorship_id: UUID) -> SponsorshipData | None:
        """pending -> processing; None when the row is missing or not pending."""
        return await self._transition(
            sponsorship_id, SponsorshipStatus.PENDING, SponsorshipStatus.PROCESSING
        )

    async def mark_completed(
        self, sponsorship_id: UUID, hive_tx_id: str, completed_at: datetime
    ) -> SponsorshipData | None:
        return await self._transition(
            sponsorship_id,
            SponsorshipStatus.PROCESSING,
            SponsorshipStatus.COMPLETED,
            hive_tx_id=hive_tx_id,
            completed_at=completed_at,
            error_message=None,
        )

    async def mark_failed(
        self, sponsorship_id: UUID, error_message: str, hive_tx_id: str | None = None
    ) -> SponsorshipData | None:
        return await self._transition(
            sponsorship_id,
            SponsorshipStatus.PROCESSING,
            SponsorshipStatus.FAILED,
            error_message=error_message[:1000],
            hive_tx_id=hive_tx_id,
        )


class CustodialKeyRepository:
    """Encrypted posting keys, one record per user."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(
        self,
        user_id: UUID,
        hive_username: str,
        secret: EncryptedSecret,
        key_type: KeyType,
    ) -> CustodialKeyData:
        now = utc_now()
        stmt = pg_insert(CustodialKeyRecord).values(
            id=uuid4(),
            user_id=user_id,
            hive_username=hive_username,
            encrypted_posting_key=secret.ciphertext,
            encryption_iv=secret.iv,
            encryption_auth_tag=secret.auth_tag,
            key_type=key_type.value,
            created_at=now,
            updated_at=now,
        )
        stmt = (
            stmt.on_conflict_do_update(
                index_elements=[CustodialKeyRecord.user_id],
                set_={
                    "hive_username": stmt.excluded.hive_username,
                    "encrypted_posting_key": stmt.excluded.encrypted_posting_key,
                    "encryption_iv": stmt.excluded.encryption_iv,
                    "encryption_auth_tag": stmt.excluded.encryption_auth_tag,
                    "key_type": stmt.excluded.key_type,
                    "updated_at": now,
                },
            )
            .returning(CustodialKeyRecord)
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalars(stmt)
        return _key_data(result.one())

    async def get(self, user_id: UUID) -> CustodialKeyData | None:
        stmt = select(CustodialKeyRecord).where(CustodialKeyRecord.user_id == user_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _key_data(row) if row is not None else None

    async def delete(self, user_id: UUID) -> bool:
        stmt = (
            delete(CustodialKeyRecord)
            .where(CustodialKeyRecord.user_id == user_id)
            .returning(CustodialKeyRecord.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def touch_last_used(self, user_id: UUID, used_at: datetime) -> None:
        stmt = (
            update(CustodialKeyRecord)
            .where(CustodialKeyRecord.user_id == user_id)
            .values(last_used_at=used_at)
        )
        await self.session.execute(stmt)


class Store:
    """
    Repositories sharing one AsyncSession, i.e. one unit of work.

    Services receive a Store rather than a raw session so tests can
    substitute in-memory repositories.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.users = UserRepository(session)
        self.sessions = SessionRepository(session)
        self.identities = IdentityRepository(session)
        self.sponsorships = SponsorshipRepository(session)
        self.keys = CustodialKeyRepository(session)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
