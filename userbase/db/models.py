"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.

Uniqueness invariants (one identity owner, one live sponsorship per
recipient, one key record per user) are enforced here by indexes, not by
application pre-checks.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class User(Base):
    """ORM model for users table."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    handle: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'suspended', 'deleted')", name="ck_users_status_valid"
        ),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, handle={self.handle}, status={self.status})>"


class AuthMethod(Base):
    """
    ORM model for auth_methods table.

    Login methods for lite users; the email_magic identifier is the
    out-of-band contact address used for credential delivery.
    """

    __tablename__ = "auth_methods"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("uq_auth_methods_type_identifier", "type", "identifier", unique=True),
        Index("idx_auth_methods_user_id", "user_id"),
    )


class Session(Base):
    """
    ORM model for sessions table.

    Only the SHA-256 hash of the refresh token is stored.
    """

    __tablename__ = "sessions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    refresh_token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_sessions_user_id", "user_id"),
        Index("idx_sessions_expires_at", "expires_at"),
    )


class Identity(Base):
    """
    ORM model for identities table.

    One row per external namespace entry, discriminated by type.
    """

    __tablename__ = "identities"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    handle: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    identity_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )
    is_sponsored: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sponsor_user_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("type IN ('hive', 'evm', 'farcaster')", name="ck_identities_type_valid"),
        CheckConstraint(
            "external_id IS NOT NULL OR handle IS NOT NULL", name="ck_identities_has_key"
        ),
        Index(
            "uq_identities_type_external_id",
            "type",
            "external_id",
            unique=True,
            postgresql_where=(external_id.isnot(None)),
        ),
        Index(
            "uq_identities_type_handle",
            "type",
            "handle",
            unique=True,
            postgresql_where=(handle.isnot(None)),
        ),
        Index(
            "uq_identities_primary_per_type",
            "user_id",
            "type",
            unique=True,
            postgresql_where=(is_primary.is_(True)),
        ),
        Index("idx_identities_user_id", "user_id"),
        Index(
            "idx_identities_sponsor_user_id",
            "sponsor_user_id",
            postgresql_where=(sponsor_user_id.isnot(None)),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Identity(id={self.id}, user_id={self.user_id}, type={self.type}, "
            f"external_id={self.external_id}, handle={self.handle})>"
        )


class Sponsorship(Base):
    """
    ORM model for sponsorships table.

    At most one pending/processing/completed row per recipient.
    """

    __tablename__ = "sponsorships"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    lite_user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    sponsor_user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    hive_username: Mapped[str] = mapped_column(String(16), nullable=False)
    cost_type: Mapped[str] = mapped_column(String(20), nullable=False)
    cost_amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    hive_tx_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_sponsorships_status_valid",
        ),
        CheckConstraint(
            "cost_type IN ('hive_transfer', 'account_token')",
            name="ck_sponsorships_cost_type_valid",
        ),
        CheckConstraint("cost_amount >= 0", name="ck_sponsorships_cost_non_negative"),
        CheckConstraint("lite_user_id <> sponsor_user_id", name="ck_sponsorships_not_self"),
        Index(
            "uq_sponsorships_active_recipient",
            "lite_user_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'processing', 'completed')"),
        ),
        Index("idx_sponsorships_sponsor_user_id", "sponsor_user_id"),
        Index("idx_sponsorships_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Sponsorship(id={self.id}, lite_user_id={self.lite_user_id}, "
            f"hive_username={self.hive_username}, status={self.status})>"
        )


class CustodialKeyRecord(Base):
    """
    ORM model for custodial_key_records table.

    Holds the AES-256-GCM encrypted posting key, one row per user.
    """

    __tablename__ = "custodial_key_records"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    hive_username: Mapped[str] = mapped_column(String(16), nullable=False)
    encrypted_posting_key: Mapped[str] = mapped_column(Text, nullable=False)
    encryption_iv: Mapped[str] = mapped_column(String(32), nullable=False)
    encryption_auth_tag: Mapped[str] = mapped_column(String(32), nullable=False)
    key_type: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "key_type IN ('sponsored', 'user_provided')",
            name="ck_custodial_key_records_key_type_valid",
        ),
        Index("idx_custodial_key_records_hive_username", "hive_username"),
    )

    def __repr__(self) -> str:
        return f"<CustodialKeyRecord(user_id={self.user_id}, hive_username={self.hive_username})>"
