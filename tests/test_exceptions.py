"""
Tests for exception classes.

Covers the taxonomy's HTTP mapping and the attributes leaf errors carry.
"""

from uuid import uuid4

import pytest

from userbase.exceptions import (
    AccountNameTakenError,
    AlreadySponsoredOrPendingError,
    AuthenticationError,
    AuthorizationError,
    ChainRPCError,
    ConflictError,
    ContactNotFoundError,
    CryptoError,
    CustodialKeyNotFoundError,
    DecryptionError,
    DirectoryError,
    ExternalAccountNotFoundError,
    InvalidAccountNameError,
    InvalidStateTransitionError,
    MergeRequiredError,
    MissingCustodyAddressError,
    MissingFundingAccountError,
    NotFoundError,
    SelfSponsorshipError,
    SessionExpiredError,
    SignatureMismatchError,
    UpstreamServiceError,
    UserbaseError,
    ValidationError,
)


class TestTaxonomy:
    @pytest.mark.parametrize(
        "error_class,status_code",
        [
            (ValidationError, 400),
            (AuthenticationError, 401),
            (AuthorizationError, 403),
            (NotFoundError, 404),
            (ConflictError, 409),
            (UpstreamServiceError, 500),
            (CryptoError, 400),
        ],
    )
    def test_status_codes(self, error_class: type[UserbaseError], status_code: int):
        assert error_class.status_code == status_code
        assert issubclass(error_class, UserbaseError)

    def test_base_has_no_details(self):
        assert UserbaseError("boom").details is None


class TestLeafErrors:
    def test_session_expired(self):
        session_id = uuid4()
        exc = SessionExpiredError(session_id)

        assert isinstance(exc, AuthenticationError)
        assert exc.session_id == session_id
        assert str(exc) == "Session expired"

    def test_sponsorship_preconditions(self):
        assert isinstance(SelfSponsorshipError(uuid4()), ValidationError)
        assert isinstance(MissingFundingAccountError(uuid4()), AuthorizationError)
        assert isinstance(AlreadySponsoredOrPendingError(uuid4()), ConflictError)
        assert "bobskates" in str(AccountNameTakenError("bobskates"))

    def test_invalid_account_name_message(self):
        exc = InvalidAccountNameError("ab", "must be 3-16 characters")

        assert exc.message == "Invalid Hive username 'ab': must be 3-16 characters"
        assert exc.reason == "invalid_account_name"

    def test_invalid_state_details(self):
        exc = InvalidStateTransitionError(uuid4(), "processing")

        assert exc.message == "Sponsorship already processing"
        assert exc.details == {"current_status": "processing"}

    def test_merge_required_details(self):
        existing = uuid4()
        exc = MergeRequiredError("farcaster", existing)

        assert exc.status_code == 409
        assert exc.details == {"merge_required": True, "existing_user_id": str(existing)}

    def test_not_found_messages(self):
        assert CustodialKeyNotFoundError(uuid4()).message == "No Hive account keys found"
        assert ContactNotFoundError(uuid4()).message == "User email not found"
        assert ExternalAccountNotFoundError("Farcaster", "1234").message == (
            "Farcaster account not found: 1234"
        )

    def test_missing_custody_is_a_client_error(self):
        exc = MissingCustodyAddressError("1234")

        assert isinstance(exc, ValidationError)
        assert exc.status_code == 400
        assert exc.fid == "1234"

    def test_crypto_errors(self):
        mismatch = SignatureMismatchError("0xaaa", "0xbbb")

        assert mismatch.status_code == 400
        assert mismatch.recovered_address == "0xbbb"
        assert DecryptionError("tag mismatch").status_code == 500
        assert isinstance(DecryptionError("x"), CryptoError)

    def test_upstream_errors_keep_their_problem(self):
        rpc = ChainRPCError("condenser_api.get_accounts", "timeout")
        directory = DirectoryError("HTTP 502")

        assert rpc.method == "condenser_api.get_accounts"
        assert rpc.problem == "timeout"
        assert directory.message == "Directory lookup failed: HTTP 502"
