"""
Tests for the Identity Linker.

Covers idempotent re-linking, cross-user merge detection and the
primary-per-type rule, all against the in-memory store's unique indexes.
"""

import pytest
from fakes import FakeStore

from userbase.models.api import IdentityType
from userbase.models.domain import (
    AlreadyLinkedToSelf,
    DirectoryProfile,
    IdentityDraft,
    Linked,
    MergeRequired,
    UserData,
)
from userbase.services.identity_linker import IdentityLinker, farcaster_draft, wallet_draft


def social(external_id: str = "1234", handle: str | None = "skater") -> IdentityDraft:
    return IdentityDraft(type=IdentityType.FARCASTER, external_id=external_id, handle=handle)


class TestLink:
    @pytest.mark.asyncio
    async def test_first_link_creates_primary(self, store: FakeStore, bob: UserData):
        result = await IdentityLinker(store).link(bob.user_id, social())

        assert isinstance(result, Linked)
        assert result.identity.is_primary is True
        assert result.identity.verified_at is not None
        assert store.commits == 1

    @pytest.mark.asyncio
    async def test_linking_twice_is_idempotent(self, store: FakeStore, bob: UserData):
        linker = IdentityLinker(store)

        first = await linker.link(bob.user_id, social())
        second = await linker.link(bob.user_id, social())

        assert isinstance(first, Linked)
        assert isinstance(second, AlreadyLinkedToSelf)
        assert second.identity.identity_id == first.identity.identity_id
        assert len(store.identities.for_user(bob.user_id)) == 1

    @pytest.mark.asyncio
    async def test_other_users_identity_requires_merge(
        self, store: FakeStore, alice: UserData, bob: UserData
    ):
        linker = IdentityLinker(store)
        await linker.link(alice.user_id, social())

        result = await linker.link(bob.user_id, social())

        assert isinstance(result, MergeRequired)
        assert result.existing_user_id == alice.user_id
        assert result.identity_type == IdentityType.FARCASTER
        assert store.identities.for_user(bob.user_id) == []

    @pytest.mark.asyncio
    async def test_handle_collision_requires_merge(
        self, store: FakeStore, alice: UserData, bob: UserData
    ):
        draft = IdentityDraft(type=IdentityType.HIVE, handle="alice", external_id="alice")

        result = await IdentityLinker(store).link(bob.user_id, draft)

        assert isinstance(result, MergeRequired)
        assert result.existing_user_id == alice.user_id

    @pytest.mark.asyncio
    async def test_second_identity_of_type_is_not_primary(self, store: FakeStore, bob: UserData):
        linker = IdentityLinker(store)
        await linker.link(bob.user_id, wallet_draft("0x" + "a" * 40))

        result = await linker.link(bob.user_id, wallet_draft("0x" + "b" * 40))

        assert isinstance(result, Linked)
        assert result.identity.is_primary is False

    @pytest.mark.asyncio
    async def test_same_external_id_in_other_namespace_is_independent(
        self, store: FakeStore, alice: UserData, bob: UserData
    ):
        linker = IdentityLinker(store)
        await linker.link(alice.user_id, social(external_id="42", handle=None))

        result = await linker.link(
            bob.user_id, IdentityDraft(type=IdentityType.HIVE, external_id="42", handle="fortytwo")
        )

        assert isinstance(result, Linked)

    @pytest.mark.asyncio
    async def test_commit_false_leaves_transaction_open(self, store: FakeStore, bob: UserData):
        result = await IdentityLinker(store).link(bob.user_id, social(), commit=False)

        assert isinstance(result, Linked)
        assert store.commits == 0
        await store.rollback()
        assert store.identities.for_user(bob.user_id) == []


class TestDrafts:
    def test_farcaster_draft_snapshot(self):
        profile = DirectoryProfile(
            fid="1234",
            username="skater",
            display_name="Sk8",
            pfp_url="https://img/pfp.png",
            bio="kickflips",
            custody_address="0xABCDEF0000000000000000000000000000000001",
            verifications=("0x1111111111111111111111111111111111111111",),
        )

        draft = farcaster_draft(profile)

        assert draft.type == IdentityType.FARCASTER
        assert draft.external_id == "1234"
        assert draft.handle == "skater"
        assert draft.address == "0xabcdef0000000000000000000000000000000001"
        assert draft.metadata["verifications"] == ["0x1111111111111111111111111111111111111111"]
        assert draft.metadata["display_name"] == "Sk8"

    def test_wallet_draft_lowercases(self):
        draft = wallet_draft("0xABC0000000000000000000000000000000000001")

        assert draft.external_id == "0xabc0000000000000000000000000000000000001"
        assert draft.address == draft.external_id

    def test_draft_needs_a_key(self):
        with pytest.raises(ValueError):
            IdentityDraft(type=IdentityType.HIVE)
