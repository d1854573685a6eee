"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Each taxonomy class carries the HTTP status it maps to and a short
machine-readable reason. Leaf errors add the attributes callers need.
"""

from uuid import UUID


class UserbaseError(Exception):
    """Base exception for all userbase errors."""

    status_code: int = 500
    reason: str = "internal_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def details(self) -> dict[str, object] | None:
        """Structured context rendered alongside the message (non-production)."""
        return None


# ============================================================================
# Taxonomy
# ============================================================================


class ValidationError(UserbaseError):
    """Malformed or missing input."""

    status_code = 400
    reason = "validation_error"


class AuthenticationError(UserbaseError):
    """Missing, expired or revoked session."""

    status_code = 401
    reason = "unauthorized"


class AuthorizationError(UserbaseError):
    """Acting user lacks a required capability."""

    status_code = 403
    reason = "forbidden"


class ConflictError(UserbaseError):
    """Uniqueness violation or entity already in a terminal state."""

    status_code = 409
    reason = "conflict"


class NotFoundError(UserbaseError):
    """Referenced entity is absent."""

    status_code = 404
    reason = "not_found"


class UpstreamServiceError(UserbaseError):
    """Directory, chain RPC or notification failure."""

    status_code = 500
    reason = "upstream_error"


class CryptoError(UserbaseError):
    """Signature or decryption failure."""

    status_code = 400
    reason = "crypto_error"


# ============================================================================
# Session
# ============================================================================


class SessionExpiredError(AuthenticationError):
    """Raised when a session is revoked or past its expiry."""

    reason = "session_expired"

    def __init__(self, session_id: UUID) -> None:
        self.session_id = session_id
        super().__init__("Session expired")


# ============================================================================
# Sponsorship
# ============================================================================


class SelfSponsorshipError(ValidationError):
    """Raised when a sponsor names themselves as the recipient."""

    reason = "self_sponsorship"

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__("Cannot sponsor yourself")


class MissingFundingAccountError(AuthorizationError):
    """Raised when the sponsor has no chain account to pay from."""

    reason = "missing_funding_account"

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__("You must have a Hive account to sponsor users")


class InvalidAccountNameError(ValidationError):
    """Raised when a requested chain account name fails format rules."""

    reason = "invalid_account_name"

    def __init__(self, username: str, problem: str) -> None:
        self.username = username
        self.problem = problem
        super().__init__(f"Invalid Hive username '{username}': {problem}")


class AccountNameTakenError(ValidationError):
    """Raised when a requested chain account name already exists on-chain."""

    reason = "account_name_taken"

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Hive username '{username}' is already taken")


class AlreadySponsoredOrPendingError(ConflictError):
    """Raised when the recipient already has a live or completed sponsorship."""

    reason = "already_sponsored"

    def __init__(self, lite_user_id: UUID) -> None:
        self.lite_user_id = lite_user_id
        super().__init__("User is already sponsored or has a pending sponsorship")


class InvalidStateTransitionError(ValidationError):
    """Raised when a sponsorship is asked to move out of a non-pending state."""

    reason = "invalid_state"

    def __init__(self, sponsorship_id: UUID, current_status: str) -> None:
        self.sponsorship_id = sponsorship_id
        self.current_status = current_status
        super().__init__(f"Sponsorship already {current_status}")

    @property
    def details(self) -> dict[str, object] | None:
        return {"current_status": self.current_status}


class SponsorshipNotFoundError(NotFoundError):
    """Raised when a sponsorship id does not exist."""

    def __init__(self, sponsorship_id: UUID) -> None:
        self.sponsorship_id = sponsorship_id
        super().__init__("Sponsorship not found")


# ============================================================================
# Users, identities, keys
# ============================================================================


class UserNotFoundError(NotFoundError):
    """Raised when a user id does not exist."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__("User not found")


class IdentityNotLinkedError(ValidationError):
    """Raised when an operation needs an identity type the user has not linked."""

    reason = "identity_not_linked"

    def __init__(self, user_id: UUID, identity_type: str) -> None:
        self.user_id = user_id
        self.identity_type = identity_type
        super().__init__(f"No {identity_type} identity linked to this account")


class KeyMismatchError(ValidationError):
    """Raised when a supplied key does not belong to the chain account."""

    reason = "key_mismatch"

    def __init__(self, hive_username: str) -> None:
        self.hive_username = hive_username
        super().__init__(f"Posting key does not match account @{hive_username}")


class CustodialKeyNotFoundError(NotFoundError):
    """Raised when a user has no custodial key record."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__("No Hive account keys found")


class ContactNotFoundError(NotFoundError):
    """Raised when a user has no email contact on file."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__("User email not found")


class ExternalAccountNotFoundError(NotFoundError):
    """Raised when an external namespace entry cannot be resolved."""

    reason = "external_account_not_found"

    def __init__(self, namespace: str, external_id: str) -> None:
        self.namespace = namespace
        self.external_id = external_id
        super().__init__(f"{namespace} account not found: {external_id}")


class MissingCustodyAddressError(ValidationError):
    """Raised when a Farcaster account has no custody wallet to prove control with."""

    reason = "missing_custody_address"

    def __init__(self, fid: str) -> None:
        self.fid = fid
        super().__init__("Farcaster account has no custody address")


class MergeRequiredError(ConflictError):
    """Raised when an identity is already owned by a different user."""

    reason = "merge_required"

    def __init__(self, identity_type: str, existing_user_id: UUID) -> None:
        self.identity_type = identity_type
        self.existing_user_id = existing_user_id
        super().__init__(f"This {identity_type} identity is linked to another account")

    @property
    def details(self) -> dict[str, object] | None:
        return {"merge_required": True, "existing_user_id": str(self.existing_user_id)}


# ============================================================================
# Crypto
# ============================================================================


class InvalidMessageFormatError(ValidationError):
    """Raised when a signed challenge does not name the expected identity."""

    reason = "invalid_message_format"

    def __init__(self, problem: str) -> None:
        self.problem = problem
        super().__init__(f"Invalid message format: {problem}")


class InvalidSignatureError(CryptoError):
    """Raised when a signature cannot be parsed or recovered."""

    reason = "invalid_signature"

    def __init__(self, problem: str) -> None:
        self.problem = problem
        super().__init__(f"Invalid signature: {problem}")


class SignatureMismatchError(CryptoError):
    """Raised when the recovered signer is not the expected address."""

    reason = "signature_mismatch"

    def __init__(self, expected_address: str, recovered_address: str) -> None:
        self.expected_address = expected_address
        self.recovered_address = recovered_address
        super().__init__("Signature does not match custody address")


class DecryptionError(CryptoError):
    """Raised when a ciphertext fails authentication or is malformed."""

    status_code = 500
    reason = "decryption_failed"

    def __init__(self, problem: str) -> None:
        self.problem = problem
        super().__init__(f"Decryption failed: {problem}")


class InvalidPrivateKeyError(ValidationError):
    """Raised when a supplied private key is not a valid WIF string."""

    reason = "invalid_private_key"

    def __init__(self) -> None:
        super().__init__("Invalid posting key format")


# ============================================================================
# Upstream
# ============================================================================


class ChainRPCError(UpstreamServiceError):
    """Raised when every Hive RPC node failed for a call."""

    reason = "chain_rpc_error"

    def __init__(self, method: str, problem: str) -> None:
        self.method = method
        self.problem = problem
        super().__init__(f"Hive RPC {method} failed: {problem}")


class DirectoryError(UpstreamServiceError):
    """Raised when the social-graph directory cannot be reached."""

    reason = "directory_error"

    def __init__(self, problem: str) -> None:
        self.problem = problem
        super().__init__(f"Directory lookup failed: {problem}")


class NotificationError(UpstreamServiceError):
    """Raised when the email dispatcher gives up on a message."""

    reason = "notification_failed"

    def __init__(self, recipient: str, problem: str) -> None:
        self.recipient = recipient
        self.problem = problem
        super().__init__(f"Failed to send email: {problem}")


class ChainBroadcastError(UpstreamServiceError):
    """Raised when a signed operation could not be broadcast."""

    reason = "chain_broadcast_error"

    def __init__(self, operation: str, problem: str) -> None:
        self.operation = operation
        self.problem = problem
        super().__init__(f"Broadcast of {operation} failed: {problem}")
