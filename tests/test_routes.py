"""
Tests for the HTTP surface.

Routes run against the in-memory store through dependency overrides; the
session cookie and Bearer token paths are both exercised.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fakes import POSTING_PUBLIC, POSTING_WIF, FakeStore
from fastapi import FastAPI
from fastapi.testclient import TestClient

from userbase.api.dependencies import get_signature_verifier
from userbase.exceptions import (
    ChainRPCError,
    DecryptionError,
    MergeRequiredError,
    NotificationError,
    SignatureMismatchError,
)
from userbase.main import render_error
from userbase.models.api import IdentityType, KeyType
from userbase.models.domain import ChainVerification, DirectoryProfile, HiveAccount, UserData
from userbase.services.credential_vault import CredentialVault
from userbase.services.signature_proof import SignatureProofVerifier

KEYS_JSON = {
    "owner": "5KOwnerPrivateKey",
    "ownerPublic": "STM5OwnerPublic",
    "active": "5KActivePrivateKey",
    "activePublic": "STM5ActivePublic",
    "posting": POSTING_WIF,
    "postingPublic": POSTING_PUBLIC,
    "memo": "5KMemoPrivateKey",
    "memoPublic": "STM5MemoPublic",
}


def login(client: TestClient, store: FakeStore, user: UserData, token: str | None = None) -> str:
    token = token or f"token-{user.user_id}"
    store.add_session(user.user_id, token, datetime.now(UTC) + timedelta(days=1))
    client.cookies.set("userbase_refresh", token)
    return token


def create_sponsorship(client: TestClient, bob: UserData) -> str:
    response = client.post(
        "/sponsorships/create",
        json={"lite_user_id": str(bob.user_id), "hive_username": "@BobSkates"},
    )
    assert response.status_code == 201
    return response.json()["sponsorship_id"]


class TestAuthentication:
    def test_missing_session(self, api_client: TestClient):
        response = api_client.get("/sponsorships/my-info")

        assert response.status_code == 401
        assert response.json() == {"error": "unauthorized", "message": "Unauthorized"}

    def test_bearer_token(self, api_client: TestClient, store: FakeStore, bob: UserData):
        store.add_session(bob.user_id, "bearer-token", datetime.now(UTC) + timedelta(days=1))

        response = api_client.get(
            "/sponsorships/my-info", headers={"Authorization": "Bearer bearer-token"}
        )

        assert response.status_code == 200
        assert response.json()["sponsored"] is False

    def test_expired_session(self, api_client: TestClient, store: FakeStore, bob: UserData):
        store.add_session(bob.user_id, "old", datetime.now(UTC) - timedelta(seconds=1))
        api_client.cookies.set("userbase_refresh", "old")

        response = api_client.get("/keys/hive-info")

        assert response.status_code == 401
        assert response.json()["message"] == "Session expired"


class TestSponsorshipRoutes:
    def test_create_and_process(
        self,
        api_client: TestClient,
        store: FakeStore,
        notifier: AsyncMock,
        alice: UserData,
        bob: UserData,
    ):
        login(api_client, store, alice)
        sponsorship_id = create_sponsorship(api_client, bob)

        response = api_client.post(
            "/sponsorships/process",
            json={"sponsorship_id": sponsorship_id, "hive_tx_id": "tx-abc", "keys": KEYS_JSON},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "completed"
        assert body["block_number"] == 90000001
        assert body["details"] == {
            "account_created": True,
            "key_encrypted": True,
            "email_sent": True,
            "profile_updated": True,
        }
        assert store.keys.rows[bob.user_id].hive_username == "bobskates"
        notifier.send_credentials.assert_awaited_once()

    def test_duplicate_create_conflicts(
        self, api_client: TestClient, store: FakeStore, alice: UserData, bob: UserData
    ):
        login(api_client, store, alice)
        create_sponsorship(api_client, bob)

        response = api_client.post(
            "/sponsorships/create",
            json={"lite_user_id": str(bob.user_id), "hive_username": "bobskates2"},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "already_sponsored"

    def test_failed_processing_is_400_with_result_body(
        self,
        api_client: TestClient,
        store: FakeStore,
        chain_verifier: AsyncMock,
        alice: UserData,
        bob: UserData,
    ):
        chain_verifier.verify_account_creation.side_effect = None
        chain_verifier.verify_account_creation.return_value = ChainVerification(
            success=False,
            transaction_id="tx",
            username="bobskates",
            error="Transaction not found on blockchain",
        )
        login(api_client, store, alice)
        sponsorship_id = create_sponsorship(api_client, bob)

        response = api_client.post(
            "/sponsorships/process",
            json={"sponsorship_id": sponsorship_id, "transaction_id": "tx", "keys": KEYS_JSON},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["status"] == "failed"
        assert body["error"] == (
            "Transaction verification failed: Transaction not found on blockchain"
        )
        assert body["details"]["account_created"] is False

    def test_reprocessing_completed_is_rejected(
        self, api_client: TestClient, store: FakeStore, alice: UserData, bob: UserData
    ):
        login(api_client, store, alice)
        sponsorship_id = create_sponsorship(api_client, bob)
        payload = {"sponsorship_id": sponsorship_id, "transaction_id": "tx", "keys": KEYS_JSON}
        api_client.post("/sponsorships/process", json=payload)

        response = api_client.post("/sponsorships/process", json=payload)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"
        assert response.json()["details"] == {"current_status": "completed"}

    def test_non_sponsor_cannot_process(
        self, api_client: TestClient, store: FakeStore, alice: UserData, bob: UserData
    ):
        login(api_client, store, alice)
        sponsorship_id = create_sponsorship(api_client, bob)
        login(api_client, store, bob)

        response = api_client.post(
            "/sponsorships/process",
            json={"sponsorship_id": sponsorship_id, "transaction_id": "tx", "keys": KEYS_JSON},
        )

        assert response.status_code == 403

    def test_self_sponsorship(self, api_client: TestClient, store: FakeStore, alice: UserData):
        login(api_client, store, alice)

        response = api_client.post(
            "/sponsorships/create",
            json={"lite_user_id": str(alice.user_id), "hive_username": "alicetwo"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "self_sponsorship"

    def test_missing_fields_are_validation_errors(
        self, api_client: TestClient, store: FakeStore, alice: UserData
    ):
        login(api_client, store, alice)

        response = api_client.post("/sponsorships/process", json={"transaction_id": "tx"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        fields = {tuple(e["loc"]) for e in body["details"]["errors"]}
        assert ("body", "sponsorship_id") in fields
        assert ("body", "keys") in fields

    def test_eligibility_is_public(self, api_client: TestClient, bob: UserData):
        response = api_client.get(f"/sponsorships/eligible/{bob.user_id}")

        assert response.status_code == 200
        assert response.json() == {"eligible": True, "reason": None}

    def test_eligibility_unknown_user(self, api_client: TestClient):
        response = api_client.get(f"/sponsorships/eligible/{uuid4()}")

        assert response.status_code == 404

    def test_badge_after_completion(
        self, api_client: TestClient, store: FakeStore, alice: UserData, bob: UserData
    ):
        login(api_client, store, alice)
        sponsorship_id = create_sponsorship(api_client, bob)
        api_client.post(
            "/sponsorships/process",
            json={"sponsorship_id": sponsorship_id, "transaction_id": "tx", "keys": KEYS_JSON},
        )

        response = api_client.get(f"/sponsorships/info/{bob.user_id}")

        assert response.json() == {
            "sponsored": True,
            "hive_username": "bobskates",
            "sponsor_username": "alice",
        }


class TestIdentityRoutes:
    @pytest.fixture
    def verifier(self, app: FastAPI, api_client: TestClient) -> AsyncMock:
        verifier = AsyncMock(spec=SignatureProofVerifier)
        verifier.verify_social.return_value = DirectoryProfile(
            fid="1234",
            username="skater",
            display_name="Sk8",
            pfp_url=None,
            bio=None,
            custody_address="0xabcdef0000000000000000000000000000000001",
        )
        app.dependency_overrides[get_signature_verifier] = lambda: verifier
        return verifier

    def test_link_then_relink(
        self, api_client: TestClient, store: FakeStore, verifier: AsyncMock, bob: UserData
    ):
        login(api_client, store, bob)
        payload = {"fid": "1234", "message": "signed challenge", "signature": "0x00"}

        first = api_client.post("/identities/social/verify", json=payload)
        second = api_client.post("/identities/social/verify", json=payload)

        assert first.status_code == 200
        assert first.json()["already_linked"] is False
        assert first.json()["identity"]["type"] == IdentityType.FARCASTER.value
        assert first.json()["identity"]["is_primary"] is True
        assert second.json()["already_linked"] is True
        assert second.json()["identity"]["id"] == first.json()["identity"]["id"]

    def test_merge_required(
        self,
        api_client: TestClient,
        store: FakeStore,
        verifier: AsyncMock,
        alice: UserData,
        bob: UserData,
    ):
        store.add_identity(
            alice.user_id, IdentityType.FARCASTER, handle="skater", external_id="1234"
        )
        login(api_client, store, bob)

        response = api_client.post(
            "/identities/social/verify",
            json={"fid": "1234", "message": "signed challenge", "signature": "0x00"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "merge_required"
        assert body["details"] == {"merge_required": True, "existing_user_id": str(alice.user_id)}

    def test_signature_mismatch(
        self, api_client: TestClient, store: FakeStore, verifier: AsyncMock, bob: UserData
    ):
        verifier.verify_social.side_effect = SignatureMismatchError("0xaaa", "0xbbb")
        login(api_client, store, bob)

        response = api_client.post(
            "/identities/social/verify",
            json={"fid": "1234", "message": "signed challenge", "signature": "0x00"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "signature_mismatch"
        assert store.identities.for_user(bob.user_id) == []


class TestKeyRoutes:
    def test_status_without_key(self, api_client: TestClient, store: FakeStore, bob: UserData):
        login(api_client, store, bob)

        response = api_client.get("/keys/posting")

        assert response.json()["stored"] is False
        assert response.json()["custody"] == "none"

    def test_store_status_and_delete(
        self,
        api_client: TestClient,
        store: FakeStore,
        hive_client: AsyncMock,
        alice: UserData,
    ):
        hive_client.get_account.return_value = HiveAccount(
            name="alice", posting_key_auths=(POSTING_PUBLIC,)
        )
        login(api_client, store, alice)

        stored = api_client.post("/keys/posting", json={"posting_key": POSTING_WIF})
        status_body = api_client.get("/keys/posting").json()
        deleted = api_client.delete("/keys/posting")

        assert stored.json() == {"success": True, "message": "Posting key stored"}
        assert status_body["stored"] is True
        assert status_body["status"] == "enabled"
        assert status_body["key_type"] == KeyType.USER_PROVIDED.value
        assert deleted.json()["message"] == "Posting key removed"
        assert alice.user_id not in store.keys.rows

    def test_store_mismatched_key(
        self,
        api_client: TestClient,
        store: FakeStore,
        hive_client: AsyncMock,
        alice: UserData,
    ):
        hive_client.get_account.return_value = HiveAccount(
            name="alice", posting_key_auths=("STM8Unrelated",)
        )
        login(api_client, store, alice)

        response = api_client.post("/keys/posting", json={"posting_key": POSTING_WIF})

        assert response.status_code == 400
        assert response.json()["error"] == "key_mismatch"

    def test_resend_backup(
        self,
        api_client: TestClient,
        store: FakeStore,
        vault: CredentialVault,
        notifier: AsyncMock,
        bob: UserData,
    ):
        login(api_client, store, bob)
        missing = api_client.post("/keys/resend-backup")

        store.add_key(bob.user_id, "bobskates", vault.encrypt(POSTING_WIF), KeyType.SPONSORED)
        sent = api_client.post("/keys/resend-backup")

        assert missing.status_code == 404
        assert missing.json()["message"] == "No Hive account keys found"
        assert sent.status_code == 200
        assert sent.json()["message"] == "Key backup sent to your email"
        assert notifier.send_credentials.await_args.kwargs == {"is_backup": True}

    def test_resend_backup_delivery_failure(
        self,
        api_client: TestClient,
        store: FakeStore,
        vault: CredentialVault,
        notifier: AsyncMock,
        bob: UserData,
    ):
        notifier.send_credentials.side_effect = NotificationError("bo***@example.com", "down")
        store.add_key(bob.user_id, "bobskates", vault.encrypt(POSTING_WIF), KeyType.SPONSORED)
        login(api_client, store, bob)

        response = api_client.post("/keys/resend-backup")

        assert response.status_code == 500
        assert response.json()["error"] == "notification_failed"

    def test_hive_info_never_returns_key_material(
        self,
        api_client: TestClient,
        store: FakeStore,
        vault: CredentialVault,
        bob: UserData,
    ):
        secret = vault.encrypt(POSTING_WIF)
        store.add_key(bob.user_id, "bobskates", secret, KeyType.SPONSORED)
        login(api_client, store, bob)

        response = api_client.get("/keys/hive-info")

        body = response.json()
        assert body["has_key"] is True
        assert body["hive_username"] == "bobskates"
        assert secret.ciphertext not in response.text
        assert POSTING_WIF not in response.text


class TestErrorRendering:
    def test_upstream_details_hidden_in_production(self):
        body = render_error(ChainRPCError("get_transaction", "node timeout"), production=True)

        assert body.error == "chain_rpc_error"
        assert "node timeout" not in body.message

    def test_decryption_hidden_in_production(self):
        body = render_error(DecryptionError("authentication tag mismatch"), production=True)

        assert body.message == "A cryptographic operation failed"
        assert body.details is None

    def test_messages_shown_in_development(self):
        body = render_error(NotificationError("bo***@example.com", "down"), production=False)

        assert body.message == "Failed to send email: down"

    def test_merge_details_shown_in_production(self):
        existing = uuid4()
        body = render_error(MergeRequiredError("farcaster", existing), production=True)

        assert body.details == {"merge_required": True, "existing_user_id": str(existing)}
