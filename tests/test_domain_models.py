"""
Tests for domain dataclasses.
"""

from dataclasses import FrozenInstanceError
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from userbase.models.api import HiveAccountKeysModel, IdentityType, SponsorshipStatus
from userbase.models.domain import (
    NOT_STORED_MARKER,
    HiveAccountKeys,
    IdentityDraft,
    ProcessResult,
    SessionData,
    SponsorshipIntent,
)


class TestSessionData:
    def test_usable_until_expiry(self):
        now = datetime.now(UTC)
        session = SessionData(uuid4(), uuid4(), "hash", now + timedelta(seconds=1), None)

        assert session.is_usable(now) is True
        assert session.is_usable(now + timedelta(seconds=1)) is False

    def test_revoked_never_usable(self):
        now = datetime.now(UTC)
        session = SessionData(uuid4(), uuid4(), "hash", now + timedelta(days=1), now)

        assert session.is_usable(now) is False


class TestIdentityDraft:
    def test_wallet_addresses_are_lowercased(self):
        draft = IdentityDraft(
            type=IdentityType.EVM,
            external_id="0xABCDEF0000000000000000000000000000000001",
            address="0xABCDEF0000000000000000000000000000000001",
        )

        assert draft.external_id == "0xabcdef0000000000000000000000000000000001"
        assert draft.address == draft.external_id

    def test_sponsored_needs_sponsor(self):
        with pytest.raises(ValueError, match="sponsor_user_id"):
            IdentityDraft(type=IdentityType.HIVE, handle="bobskates", is_sponsored=True)

    def test_immutable(self):
        draft = IdentityDraft(type=IdentityType.HIVE, handle="bobskates")

        with pytest.raises(FrozenInstanceError):
            draft.handle = "other"  # type: ignore[misc]


class TestSponsorshipIntent:
    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            SponsorshipIntent(uuid4(), uuid4(), "bobskates", "hive_transfer", Decimal("-1"))

    def test_empty_username_rejected(self):
        with pytest.raises(ValueError):
            SponsorshipIntent(uuid4(), uuid4(), "", "hive_transfer", Decimal("3"))


class TestHiveAccountKeys:
    def test_posting_only_marks_other_tiers(self):
        keys = HiveAccountKeys.posting_only("5Kposting", "STM6posting")

        assert keys.is_partial is True
        assert keys.owner == keys.active_public == keys.memo == NOT_STORED_MARKER
        assert keys.posting == "5Kposting"

    def test_repr_hides_private_keys(self, generated_keys: HiveAccountKeys):
        assert generated_keys.owner not in repr(generated_keys)
        assert generated_keys.posting not in repr(generated_keys)

    def test_request_model_accepts_camel_case(self, generated_keys: HiveAccountKeys):
        model = HiveAccountKeysModel.model_validate(
            {
                "owner": generated_keys.owner,
                "ownerPublic": generated_keys.owner_public,
                "active": generated_keys.active,
                "activePublic": generated_keys.active_public,
                "posting": generated_keys.posting,
                "postingPublic": generated_keys.posting_public,
                "memo": generated_keys.memo,
                "memoPublic": generated_keys.memo_public,
            }
        )

        assert HiveAccountKeys(**model.model_dump()) == generated_keys


class TestProcessResult:
    def test_success_follows_status(self):
        sponsorship_id = uuid4()

        assert ProcessResult(sponsorship_id, SponsorshipStatus.COMPLETED).success is True
        assert ProcessResult(sponsorship_id, SponsorshipStatus.FAILED).success is False
